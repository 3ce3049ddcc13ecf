"""
Exception taxonomy for the feedback learning engine.

Rate-limited profile updates are not errors: they surface as
ProfileUpdateOutcome.RATE_LIMITED.
"""

from typing import Optional


class LearningError(Exception):
    """Base class for learning engine failures."""


class ValidationError(LearningError):
    """A referenced record is missing or malformed."""


class JobNotFoundError(ValidationError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Learning job {job_id} not found")


class ContentNotFoundError(ValidationError):
    def __init__(self, content_id: str):
        self.content_id = content_id
        super().__init__(f"Content {content_id} not found")


class UserNotFoundError(ValidationError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class DeltaExtractionError(LearningError):
    """Delta could not be computed from the given texts."""


class TransientStorageError(LearningError):
    """Reading or writing durable state failed; safe to retry."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Storage failure during {operation}{detail}")


class ProfileConflictError(LearningError):
    """Optimistic version check kept failing for a profile write."""

    def __init__(self, user_id: str, retries: int):
        self.user_id = user_id
        self.retries = retries
        super().__init__(
            f"Concurrent update conflict for user {user_id} after {retries} retries"
        )
