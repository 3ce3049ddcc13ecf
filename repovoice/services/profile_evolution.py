"""
Profile evolution score and analytics.

Score (0-100) weighting:
- Initial samples: 20 points
- Feedback iterations: 40 points (10+ iterations earns all of them)
- Profile completeness: 20 points
- Edit consistency: 20 points
"""

import math
import statistics
from collections import Counter
from datetime import datetime
from typing import Optional

import structlog
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from repovoice.core.cache import RedisCache
from repovoice.core.database import get_db_context
from repovoice.core.exceptions import UserNotFoundError
from repovoice.models.user import User
from repovoice.schemas.edit_metadata import EditMetadata, ToneShift
from repovoice.schemas.style_profile import StyleProfile, ToneMetrics, WritingTraits
from repovoice.services.edit_metadata_store import EditMetadataStore

logger = structlog.get_logger(__name__)

CONSISTENCY_WINDOW = 20


class ProfileAnalytics(BaseModel):
    evolution_score: int
    total_edits: int
    learning_iterations: int
    last_updated: datetime
    tone: ToneMetrics
    writing_traits: WritingTraits
    common_phrases: list[str]
    banned_phrases: list[str]
    profile_source: str
    has_initial_samples: bool


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def profile_completeness(profile: StyleProfile) -> int:
    """Four points each for tone, traits, structure, vocabulary and phrases."""
    score = 12  # tone, structure and vocabulary always carry values
    if profile.writing_traits.avg_sentence_length > 0:
        score += 4
    if profile.common_phrases or profile.banned_phrases:
        score += 4
    return score


def edit_consistency(edits: list[EditMetadata]) -> int:
    """
    0-20 points, five each for:
    sentence-length spread, emoji direction, dominant tone shift and
    repeated added phrases.
    """
    if not edits:
        return 0

    score = 0.0

    deltas = [e.sentence_length_delta for e in edits]
    std_dev = statistics.pstdev(deltas)
    score += max(0.0, min(5.0, 5 - std_dev / 2))

    net_changes = [e.emoji_changes.net_change for e in edits]
    positive = sum(1 for c in net_changes if c > 0)
    negative = sum(1 for c in net_changes if c < 0)
    score += max(positive, negative) / len(net_changes) * 5

    shifts = [e.tone_shift for e in edits if e.tone_shift != ToneShift.NO_CHANGE]
    if shifts:
        score += Counter(shifts).most_common(1)[0][1] / len(shifts) * 5

    phrase_counts = Counter(p for e in edits for p in e.phrases_added)
    if phrase_counts:
        repeated = sum(1 for count in phrase_counts.values() if count > 1)
        score += min(5.0, repeated / 3 * 5)

    return _round_half_up(score)


class ProfileEvolutionService:
    """How far a user's profile has been trained by their edits."""

    def __init__(
        self,
        store: EditMetadataStore,
        cache: Optional[RedisCache] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.store = store
        self.cache = cache
        self.session_factory = session_factory

    async def calculate_evolution_score(self, user_id: str, db: Optional[AsyncSession] = None) -> int:
        """Evolution score, cached for a few minutes."""
        cached = await self._cached_score(user_id)
        if cached is not None:
            return cached

        async def _calculate(session: AsyncSession) -> int:
            user = await session.get(User, user_id)
            if user is None or not user.style_profile:
                return 0

            profile = StyleProfile.model_validate(user.style_profile)
            edits = await self.store.get_recent_edits(user_id, limit=CONSISTENCY_WINDOW, db=session)

            score = 20 if profile.sample_posts else 0
            score += min(profile.learning_iterations / 10, 1) * 40
            score += profile_completeness(profile)
            score += edit_consistency(edits)
            return max(0, min(100, _round_half_up(score)))

        if db:
            score = await _calculate(db)
        else:
            async with get_db_context(self.session_factory) as session:
                score = await _calculate(session)

        await self._cache_score(user_id, score)
        return score

    async def get_analytics(self, user_id: str, db: Optional[AsyncSession] = None) -> ProfileAnalytics:
        async def _analytics(session: AsyncSession) -> ProfileAnalytics:
            user = await session.get(User, user_id)
            if user is None or not user.style_profile:
                raise UserNotFoundError(user_id)

            profile = StyleProfile.model_validate(user.style_profile)
            return ProfileAnalytics(
                evolution_score=await self.calculate_evolution_score(user_id, db=session),
                total_edits=await self.store.get_edit_count(user_id, db=session),
                learning_iterations=profile.learning_iterations,
                last_updated=profile.last_updated,
                tone=profile.tone,
                writing_traits=profile.writing_traits,
                common_phrases=profile.common_phrases,
                banned_phrases=profile.banned_phrases,
                profile_source=profile.profile_source.value,
                has_initial_samples=bool(profile.sample_posts),
            )

        if db:
            return await _analytics(db)

        async with get_db_context(self.session_factory) as session:
            return await _analytics(session)

    async def _cached_score(self, user_id: str) -> Optional[int]:
        if self.cache is None:
            return None
        try:
            return await self.cache.get_evolution_score(user_id)
        except Exception as e:
            logger.warning("Evolution score cache read failed", user_id=user_id, error=str(e))
            return None

    async def _cache_score(self, user_id: str, score: int) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.set_evolution_score(user_id, score)
        except Exception as e:
            logger.warning("Evolution score cache write failed", user_id=user_id, error=str(e))
