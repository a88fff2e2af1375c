"""
Mentorship Hub
Engagement lifecycle service for the internship/mentorship marketplace.

Architecture:
- Remote REST API: source of truth for requests, programs, students, images
- This service: session state for the admin moderation queue and the
  mentor program board, exposed to the UI as FastAPI routes
- No local database: every write goes through a collaborator
"""

__version__ = "1.0.0"
