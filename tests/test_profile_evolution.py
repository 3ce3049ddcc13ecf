"""
Profile evolution score tests.
"""

from unittest.mock import AsyncMock

import pytest

from repovoice.core.exceptions import UserNotFoundError
from repovoice.schemas.edit_metadata import EditMetadata, EmojiChanges, ToneShift
from repovoice.schemas.style_profile import StyleProfile
from repovoice.services.profile_evolution import (
    ProfileEvolutionService,
    edit_consistency,
    profile_completeness,
)


def test_profile_completeness():
    assert profile_completeness(StyleProfile()) == 16
    assert profile_completeness(StyleProfile(banned_phrases=["synergy play"])) == 20


def test_edit_consistency_empty():
    assert edit_consistency([]) == 0


def test_edit_consistency_uniform_edits():
    edits = [
        EditMetadata(
            sentence_length_delta=2.0,
            emoji_changes=EmojiChanges(added=1, net_change=1),
            tone_shift=ToneShift.MORE_CASUAL,
            phrases_added=["ship it today"],
        )
        for _ in range(3)
    ]
    # 5 + 5 + 5 + 5/3, rounded half up
    assert edit_consistency(edits) == 17


def test_edit_consistency_unchanged_edits():
    assert edit_consistency([EditMetadata(), EditMetadata()]) == 5


@pytest.fixture
def evolution(services) -> ProfileEvolutionService:
    return services.evolution


@pytest.mark.asyncio
async def test_score_without_profile(evolution, create_user):
    user_id = await create_user(profile=None)
    assert await evolution.calculate_evolution_score(user_id) == 0


@pytest.mark.asyncio
async def test_score_components(evolution, create_user):
    user_id = await create_user(
        profile=StyleProfile(sample_posts=["A sample post."], learning_iterations=5)
    )
    # samples 20 + iterations 20 + completeness 16 + no edits 0
    assert await evolution.calculate_evolution_score(user_id) == 56


@pytest.mark.asyncio
async def test_iterations_cap_at_forty_points(evolution, create_user):
    user_id = await create_user(profile=StyleProfile(learning_iterations=25))
    assert await evolution.calculate_evolution_score(user_id) == 56


@pytest.mark.asyncio
async def test_cached_score_is_used(services, create_user):
    cache = AsyncMock()
    cache.get_evolution_score.return_value = 42
    evolution = ProfileEvolutionService(services.store, cache=cache, session_factory=services.store.session_factory)

    assert await evolution.calculate_evolution_score(await create_user()) == 42
    cache.set_evolution_score.assert_not_awaited()


@pytest.mark.asyncio
async def test_cache_errors_fall_back_to_computing(services, create_user):
    cache = AsyncMock()
    cache.get_evolution_score.side_effect = ConnectionError("redis down")
    cache.set_evolution_score.side_effect = ConnectionError("redis down")
    evolution = ProfileEvolutionService(services.store, cache=cache, session_factory=services.store.session_factory)

    assert await evolution.calculate_evolution_score(await create_user()) == 16


@pytest.mark.asyncio
async def test_analytics(evolution, services, create_user, create_content):
    user_id = await create_user(profile=StyleProfile(common_phrases=["ship it today"]))
    content_id = await create_content(user_id)
    await services.store.store_edit_metadata(content_id, "Original text.", "Edited text.")

    analytics = await evolution.get_analytics(user_id)

    assert analytics.total_edits == 1
    assert analytics.common_phrases == ["ship it today"]
    assert analytics.has_initial_samples is False
    assert 0 <= analytics.evolution_score <= 100


@pytest.mark.asyncio
async def test_analytics_without_profile(evolution, create_user):
    with pytest.raises(UserNotFoundError):
        await evolution.get_analytics(await create_user(profile=None))
