"""
Edit metadata storage tests.
"""

import pytest

from repovoice.core.exceptions import ContentNotFoundError, DeltaExtractionError
from repovoice.models.content import Content
from repovoice.schemas.edit_metadata import (
    ContentFormat,
    EditedTweet,
    EmojiChanges,
    StyleDelta,
    ToneShift,
    VocabularyChanges,
    WordSubstitution,
)
from repovoice.services.edit_metadata_store import EditMetadataStore, aggregate_deltas
from repovoice.services.style_delta import StyleDeltaExtractor


@pytest.fixture
def store(session_factory, clock) -> EditMetadataStore:
    return EditMetadataStore(
        StyleDeltaExtractor(), session_factory=session_factory, max_per_user=3, clock=clock
    )


@pytest.mark.asyncio
async def test_store_edit_metadata_persists_on_content(store, session_factory, create_user, create_content):
    user_id = await create_user()
    content_id = await create_content(user_id, generated_text="Hello world")

    metadata = await store.store_edit_metadata(content_id, "Hello world", "Hello world \U0001F680")

    assert metadata.content_id == content_id
    assert metadata.original_text == "Hello world"
    assert metadata.original_length == 11
    assert metadata.learning_processed is False

    async with session_factory() as session:
        content = await session.get(Content, content_id)
        assert content.edited_text == "Hello world \U0001F680"
        assert content.edit_metadata["emoji_changes"]["added"] == 1
        assert content.edit_timestamp is not None
        assert content.generated_text == "Hello world"


@pytest.mark.asyncio
async def test_store_for_missing_content(store):
    with pytest.raises(ContentNotFoundError):
        await store.store_edit_metadata("missing", "Hello world", "Hello there")


@pytest.mark.asyncio
async def test_recent_edits_newest_first(store, create_user, create_content):
    user_id = await create_user()
    content_ids = [await create_content(user_id) for _ in range(3)]
    for content_id in content_ids:
        await store.store_edit_metadata(content_id, "Original text here.", "Edited text here.")

    edits = await store.get_recent_edits(user_id, limit=2)

    assert [e.content_id for e in edits] == [content_ids[2], content_ids[1]]


@pytest.mark.asyncio
async def test_retention_cap_prunes_oldest(store, session_factory, create_user, create_content):
    """Only the newest `max_per_user` edits keep metadata; content rows survive."""
    user_id = await create_user()
    content_ids = [await create_content(user_id) for _ in range(5)]
    for content_id in content_ids:
        await store.store_edit_metadata(content_id, "Original text here.", "Edited text here.")

    assert await store.get_edit_count(user_id) == 3
    edits = await store.get_recent_edits(user_id, limit=20)
    assert [e.content_id for e in edits] == list(reversed(content_ids[2:]))

    async with session_factory() as session:
        for pruned_id in content_ids[:2]:
            content = await session.get(Content, pruned_id)
            assert content is not None
            assert content.edit_metadata is None
            assert content.edit_timestamp is None


@pytest.mark.asyncio
async def test_retention_cap_is_per_user(store, create_user, create_content):
    first = await create_user()
    second = await create_user()
    for _ in range(3):
        await store.store_edit_metadata(await create_content(first), "Original text.", "Edited text.")
    await store.store_edit_metadata(await create_content(second), "Original text.", "Edited text.")

    assert await store.get_edit_count(first) == 3
    assert await store.get_edit_count(second) == 1


@pytest.mark.asyncio
async def test_thread_edit_aggregates_tweets(store, create_user, create_content):
    """Three tweets each gaining one emoji aggregate to three emojis added."""
    tweets = ["First tweet about shipping", "Second tweet about testing", "Third tweet about docs"]
    user_id = await create_user()
    content_id = await create_content(user_id, content_format=ContentFormat.MINI_THREAD, tweets=tweets)

    originals = [EditedTweet(position=i, text=t) for i, t in enumerate(tweets)]
    edited = [EditedTweet(position=i, text=f"{t} \U0001F680") for i, t in enumerate(tweets)]
    metadata = await store.store_thread_edit_metadata(content_id, edited, originals)

    assert metadata.emoji_changes.added == 3
    assert metadata.emoji_changes.net_change == 3
    assert metadata.original_text == "\n\n".join(tweets)


@pytest.mark.asyncio
async def test_thread_edit_skips_unmatched_tweets(store, create_user, create_content):
    user_id = await create_user()
    content_id = await create_content(user_id, content_format=ContentFormat.FULL_THREAD, tweets=["Only tweet"])
    originals = [EditedTweet(position=0, text="Only tweet")]
    edited = [
        EditedTweet(position=0, text="Only tweet \U0001F680"),
        EditedTweet(position=7, text="Brand new tweet \U0001F525\U0001F525"),
    ]

    metadata = await store.store_thread_edit_metadata(content_id, edited, originals)

    assert metadata.emoji_changes.added == 1


@pytest.mark.asyncio
async def test_thread_edit_without_matches(store, create_user, create_content):
    user_id = await create_user()
    content_id = await create_content(user_id, content_format=ContentFormat.MINI_THREAD, tweets=["Only tweet"])

    with pytest.raises(DeltaExtractionError):
        await store.store_thread_edit_metadata(
            content_id,
            [EditedTweet(position=3, text="Unmatched")],
            [EditedTweet(position=0, text="Only tweet")],
        )


@pytest.mark.asyncio
async def test_mark_edits_processed(store, create_user, create_content):
    user_id = await create_user()
    content_id = await create_content(user_id)
    await store.store_edit_metadata(content_id, "Original text.", "Edited text.")

    assert await store.mark_edits_processed([content_id]) == 1

    edits = await store.get_recent_edits(user_id)
    assert edits[0].learning_processed is True
    assert await store.get_recent_edits(user_id, include_processed=False) == []


@pytest.mark.asyncio
async def test_aggregate_edit_patterns(store, create_user, create_content):
    user_id = await create_user()
    for _ in range(2):
        content_id = await create_content(user_id)
        await store.record_delta(
            content_id,
            StyleDelta(
                sentence_length_delta=2.0,
                emoji_changes=EmojiChanges(added=1, net_change=1),
                tone_shift=ToneShift.MORE_DIRECT,
                phrases_added=["ship it today"],
            ),
            "Original text.",
            "Edited text.",
        )

    summary = await store.aggregate_edit_patterns(user_id)

    assert summary.total_edits == 2
    assert summary.avg_sentence_length_delta == pytest.approx(2.0)
    assert summary.total_emoji_changes.added == 2
    assert summary.common_tone_shifts[0].shift == ToneShift.MORE_DIRECT
    assert summary.common_tone_shifts[0].count == 2
    assert summary.common_phrases_added[0].phrase == "ship it today"


def test_aggregate_deltas_majority_tone_and_averages():
    deltas = [
        StyleDelta(
            sentence_length_delta=2.0,
            tone_shift=ToneShift.MORE_CASUAL,
            vocabulary_changes=VocabularyChanges(
                words_substituted=[WordSubstitution(from_word="utilize", to_word="use")],
                complexity_shift=-1,
            ),
            phrases_added=["ship it today"],
        ),
        StyleDelta(
            sentence_length_delta=4.0,
            tone_shift=ToneShift.MORE_DIRECT,
            vocabulary_changes=VocabularyChanges(complexity_shift=-1),
            phrases_added=["ship it today", "ask me anything"],
        ),
        StyleDelta(sentence_length_delta=0.0, tone_shift=ToneShift.MORE_CASUAL),
    ]

    aggregated = aggregate_deltas(deltas)

    assert aggregated.sentence_length_delta == pytest.approx(2.0)
    assert aggregated.tone_shift == ToneShift.MORE_CASUAL
    assert aggregated.vocabulary_changes.complexity_shift == -1
    assert len(aggregated.vocabulary_changes.words_substituted) == 1
    assert aggregated.phrases_added == ["ship it today", "ask me anything"]


def test_aggregate_deltas_tone_tie_goes_to_first_seen():
    aggregated = aggregate_deltas(
        [
            StyleDelta(tone_shift=ToneShift.MORE_SERIOUS),
            StyleDelta(tone_shift=ToneShift.NO_CHANGE),
            StyleDelta(tone_shift=ToneShift.MORE_HUMOROUS),
        ]
    )
    assert aggregated.tone_shift == ToneShift.MORE_SERIOUS
