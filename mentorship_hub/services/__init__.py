"""
Services module - the engagement lifecycle.

- catalog_service: domain/stack taxonomy and cascading filters
- resource_cache: profile image handles
- request_queue: admin moderation of mentorship requests
- program_service: mentor program lifecycle, tasks and updates
- session: per-process wiring of the above to the remote API
"""
