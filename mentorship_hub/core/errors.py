"""
Error taxonomy for the engagement lifecycle.

ValidationFailure      - bad input, rejected before any collaborator call
InvalidTransitionError - operation not allowed from the current status
RecordNotFoundError    - id not present in the current working set
RecordBusyError        - a mutation on the same request is already in flight
CollaboratorFailure    - a remote call failed; local state is left untouched
ResourceReleasedError  - an image handle was used after its scope released it

Stale listing responses are NOT errors: they are dropped on arrival.
"""

from typing import Optional


class MentorshipError(Exception):
    """Base class. `message` is safe to show to the user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailure(MentorshipError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InvalidTransitionError(MentorshipError):
    pass


class RecordNotFoundError(MentorshipError):
    pass


class RecordBusyError(MentorshipError):
    pass


class CollaboratorFailure(MentorshipError):
    def __init__(self, operation: str, message: Optional[str] = None):
        super().__init__(message or f"{operation} failed")
        self.operation = operation


class ResourceReleasedError(MentorshipError):
    pass
