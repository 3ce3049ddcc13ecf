"""Core infrastructure modules"""

from repovoice.core.config import settings
from repovoice.core.database import get_db, AsyncSessionLocal
from repovoice.core.cache import RedisCache
from repovoice.core.llm_clients import GeminiClient

__all__ = ["settings", "get_db", "AsyncSessionLocal", "RedisCache", "GeminiClient"]
