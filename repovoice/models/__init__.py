"""Database models"""

from repovoice.models.user import User
from repovoice.models.content import Content
from repovoice.models.learning import DeadLetterJob, JobStatus, LearningJob, ProfileVersion

__all__ = [
    "User",
    "Content",
    "LearningJob",
    "JobStatus",
    "DeadLetterJob",
    "ProfileVersion",
]
