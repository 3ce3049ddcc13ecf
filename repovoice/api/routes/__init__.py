"""API Route modules"""

from repovoice.api.routes.content import router as content_router
from repovoice.api.routes.learning import router as learning_router
from repovoice.api.routes.profile import router as profile_router

__all__ = [
    "content_router",
    "learning_router",
    "profile_router",
]
