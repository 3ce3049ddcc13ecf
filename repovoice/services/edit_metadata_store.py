"""
Edit metadata storage.

One EditMetadata record lives on each edited content row. Records are
bounded per user; the oldest are cleared first and the content row is kept.
"""

import math
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from repovoice.core.config import settings
from repovoice.core.database import get_db_context, translate_storage_errors
from repovoice.core.exceptions import ContentNotFoundError, DeltaExtractionError
from repovoice.models.content import Content
from repovoice.schemas.edit_metadata import (
    AggregatedEditPatterns,
    EditedTweet,
    EditMetadata,
    EmojiChanges,
    PhraseCount,
    StructureChanges,
    StyleDelta,
    ToneShift,
    ToneShiftCount,
    VocabularyChanges,
)
from repovoice.services.style_delta import MAX_PHRASE_CHANGES, StyleDeltaExtractor

logger = structlog.get_logger(__name__)

THREAD_SEPARATOR = "\n\n"
MAX_THREAD_SUBSTITUTIONS = 10


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _dump(metadata: EditMetadata) -> dict:
    return metadata.model_dump(mode="json", by_alias=True, exclude={"content_id"})


def _load(content: Content) -> EditMetadata:
    metadata = EditMetadata.model_validate(content.edit_metadata)
    metadata.content_id = content.id
    return metadata


class EditMetadataStore:
    """
    Persists per-edit deltas on content rows.

    Handles:
    - Computing and storing single-post and thread edit metadata
    - Reading a user's recent edit window, newest first
    - Enforcing the per-user retention cap
    """

    def __init__(
        self,
        extractor: StyleDeltaExtractor,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        max_per_user: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.extractor = extractor
        self.session_factory = session_factory
        self.max_per_user = max_per_user or settings.learning_max_edit_metadata_per_user
        self.clock = clock

    async def store_edit_metadata(
        self,
        content_id: str,
        original: str,
        edited: str,
        db: Optional[AsyncSession] = None,
    ) -> EditMetadata:
        """
        Compute the delta for a single post edit and store it.

        Raises:
            ContentNotFoundError: content row does not exist
            DeltaExtractionError: either text is blank
        """
        delta = await self.extractor.extract_deltas(original, edited)
        return await self.record_delta(content_id, delta, original, edited, db=db)

    async def record_delta(
        self,
        content_id: str,
        delta: StyleDelta,
        original: str,
        edited: str,
        db: Optional[AsyncSession] = None,
    ) -> EditMetadata:
        """Store an already computed delta as the content's edit metadata."""
        metadata = self._build_metadata(content_id, delta, original, edited)
        return await self._persist(content_id, metadata, edited, db)

    async def store_thread_edit_metadata(
        self,
        content_id: str,
        edited_tweets: Sequence[EditedTweet],
        original_tweets: Sequence[EditedTweet],
        db: Optional[AsyncSession] = None,
    ) -> EditMetadata:
        """
        Compute per-tweet deltas and store them as one aggregated record.

        Edited tweets are matched to generated tweets by position; an edited
        tweet with no counterpart is skipped.

        Raises:
            ContentNotFoundError: content row does not exist
            DeltaExtractionError: no edited tweet matched a generated tweet
        """
        originals = {tweet.position: tweet.text for tweet in original_tweets}
        deltas: list[StyleDelta] = []
        for tweet in edited_tweets:
            original_text = originals.get(tweet.position)
            if original_text is None:
                logger.warning(
                    "Generated tweet not found for edit",
                    content_id=content_id,
                    position=tweet.position,
                )
                continue
            deltas.append(await self.extractor.extract_deltas(original_text, tweet.text))

        if not deltas:
            raise DeltaExtractionError(f"No edited tweet of content {content_id} matches a generated tweet")

        original_text = THREAD_SEPARATOR.join(t.text for t in original_tweets)
        edited_text = THREAD_SEPARATOR.join(t.text for t in edited_tweets)
        metadata = self._build_metadata(
            content_id, aggregate_deltas(deltas), original_text, edited_text
        )

        logger.info(
            "Thread edit aggregated",
            content_id=content_id,
            tweet_edits=len(edited_tweets),
            matched=len(deltas),
        )
        return await self._persist(content_id, metadata, edited_text, db)

    async def get_recent_edits(
        self,
        user_id: str,
        limit: int = 20,
        include_processed: bool = True,
        db: Optional[AsyncSession] = None,
    ) -> list[EditMetadata]:
        """Most recent edits for a user, newest first."""
        async def _get(session: AsyncSession) -> list[EditMetadata]:
            stmt = (
                select(Content)
                .where(Content.user_id == user_id, Content.edit_timestamp.is_not(None))
                .order_by(Content.edit_timestamp.desc(), Content.id)
            )
            if include_processed:
                stmt = stmt.limit(limit)
            with translate_storage_errors("get_recent_edits"):
                result = await session.execute(stmt)
            edits = [_load(c) for c in result.scalars().all() if c.edit_metadata]
            if not include_processed:
                edits = [e for e in edits if not e.learning_processed][:limit]
            return edits

        if db:
            return await _get(db)

        async with get_db_context(self.session_factory) as session:
            return await _get(session)

    async def get_edit_count(self, user_id: str, db: Optional[AsyncSession] = None) -> int:
        async def _count(session: AsyncSession) -> int:
            stmt = select(func.count(Content.id)).where(
                Content.user_id == user_id, Content.edit_timestamp.is_not(None)
            )
            with translate_storage_errors("get_edit_count"):
                return (await session.execute(stmt)).scalar_one()

        if db:
            return await _count(db)

        async with get_db_context(self.session_factory) as session:
            return await _count(session)

    async def mark_edits_processed(
        self,
        content_ids: Sequence[str],
        db: Optional[AsyncSession] = None,
    ) -> int:
        """Flag the given edits as consumed by a learning cycle."""
        if not content_ids:
            return 0

        async def _mark(session: AsyncSession) -> int:
            marked = await self.mark_processed_in_session(session, content_ids)
            with translate_storage_errors("mark_edits_processed"):
                await session.commit()
            return marked

        if db:
            return await _mark(db)

        async with get_db_context(self.session_factory) as session:
            return await _mark(session)

    async def mark_processed_in_session(self, session: AsyncSession, content_ids: Sequence[str]) -> int:
        """Flag edits within the caller's transaction; the caller commits."""
        if not content_ids:
            return 0

        stmt = select(Content).where(Content.id.in_(list(content_ids)))
        with translate_storage_errors("mark_edits_processed"):
            contents = (await session.execute(stmt)).scalars().all()
        marked = 0
        for content in contents:
            if not content.edit_metadata:
                continue
            content.edit_metadata = {**content.edit_metadata, "learning_processed": True}
            marked += 1

        logger.debug("Edits marked processed", count=marked)
        return marked

    async def prune_old_edit_metadata(
        self,
        user_id: str,
        db: Optional[AsyncSession] = None,
    ) -> int:
        """Clear edit metadata beyond the retention cap, oldest first."""
        async def _prune(session: AsyncSession) -> int:
            pruned = await self._prune_in_session(session, user_id)
            await session.commit()
            return pruned

        if db:
            return await _prune(db)

        async with get_db_context(self.session_factory) as session:
            return await _prune(session)

    async def aggregate_edit_patterns(
        self,
        user_id: str,
        limit: int = 50,
        db: Optional[AsyncSession] = None,
    ) -> AggregatedEditPatterns:
        """Summary statistics over a user's most recent edits."""
        edits = await self.get_recent_edits(user_id, limit=limit, db=db)
        if not edits:
            return AggregatedEditPatterns()

        tone_counts = Counter(
            e.tone_shift for e in edits if e.tone_shift != ToneShift.NO_CHANGE
        )
        added_counts = Counter(p for e in edits for p in e.phrases_added)
        removed_counts = Counter(p for e in edits for p in e.phrases_removed)

        return AggregatedEditPatterns(
            total_edits=len(edits),
            avg_sentence_length_delta=sum(e.sentence_length_delta for e in edits) / len(edits),
            total_emoji_changes=EmojiChanges(
                added=sum(e.emoji_changes.added for e in edits),
                removed=sum(e.emoji_changes.removed for e in edits),
                net_change=sum(e.emoji_changes.net_change for e in edits),
            ),
            common_tone_shifts=[
                ToneShiftCount(shift=shift, count=count)
                for shift, count in tone_counts.most_common()
            ],
            common_phrases_added=[
                PhraseCount(phrase=p, count=c) for p, c in added_counts.most_common()
            ],
            common_phrases_removed=[
                PhraseCount(phrase=p, count=c) for p, c in removed_counts.most_common()
            ],
            paragraphs_added=sum(e.structure_changes.paragraphs_added for e in edits),
            paragraphs_removed=sum(e.structure_changes.paragraphs_removed for e in edits),
            bullets_added=sum(1 for e in edits if e.structure_changes.bullets_added),
        )

    def _build_metadata(
        self,
        content_id: str,
        delta: StyleDelta,
        original: str,
        edited: str,
    ) -> EditMetadata:
        return EditMetadata(
            **delta.model_dump(),
            content_id=content_id,
            original_text=original,
            original_length=len(original),
            edited_length=len(edited),
            edit_timestamp=self.clock(),
            learning_processed=False,
        )

    async def _persist(
        self,
        content_id: str,
        metadata: EditMetadata,
        edited_text: str,
        db: Optional[AsyncSession],
    ) -> EditMetadata:
        async def _store(session: AsyncSession) -> EditMetadata:
            with translate_storage_errors("store_edit_metadata"):
                content = await session.get(Content, content_id)
                if content is None:
                    raise ContentNotFoundError(content_id)

                content.edited_text = edited_text
                content.edit_metadata = _dump(metadata)
                content.edit_timestamp = metadata.edit_timestamp
                await session.flush()

                # Same transaction as the insert so the cap holds under concurrent saves
                pruned = await self._prune_in_session(session, content.user_id)
                await session.commit()

            logger.info(
                "Edit metadata stored",
                content_id=content_id,
                user_id=content.user_id,
                tone_shift=metadata.tone_shift.value,
                pruned=pruned,
            )
            return metadata

        if db:
            return await _store(db)

        async with get_db_context(self.session_factory) as session:
            return await _store(session)

    async def _prune_in_session(self, session: AsyncSession, user_id: str) -> int:
        stale = (
            select(Content.id)
            .where(Content.user_id == user_id, Content.edit_timestamp.is_not(None))
            .order_by(Content.edit_timestamp.desc(), Content.id)
            .offset(self.max_per_user)
        )
        with translate_storage_errors("prune_old_edit_metadata"):
            stale_ids = list((await session.execute(stale)).scalars().all())
            if not stale_ids:
                return 0

            await session.execute(
                update(Content)
                .where(Content.id.in_(stale_ids))
                .values(edit_metadata=None, edit_timestamp=None)
                .execution_options(synchronize_session=False)
            )

        logger.info("Old edit metadata pruned", user_id=user_id, count=len(stale_ids))
        return len(stale_ids)


def aggregate_deltas(deltas: Sequence[StyleDelta]) -> StyleDelta:
    """
    Fold per-tweet deltas into one thread-level delta.

    Sentence-length delta and complexity shift are averaged, counts are
    summed, phrases are unioned in order, and the tone shift is the most
    frequent non-neutral label (ties go to the first seen).
    """
    count = len(deltas)
    emoji_added = sum(d.emoji_changes.added for d in deltas)
    emoji_removed = sum(d.emoji_changes.removed for d in deltas)

    tone_counts: Counter = Counter()
    for d in deltas:
        if d.tone_shift != ToneShift.NO_CHANGE:
            tone_counts[d.tone_shift] += 1
    tone = ToneShift.NO_CHANGE
    best = 0
    for label, seen in tone_counts.items():
        if seen > best:
            tone, best = label, seen

    formatting = list(dict.fromkeys(f for d in deltas for f in d.structure_changes.formatting_changes))

    return StyleDelta(
        sentence_length_delta=sum(d.sentence_length_delta for d in deltas) / count,
        emoji_changes=EmojiChanges(
            added=emoji_added,
            removed=emoji_removed,
            net_change=emoji_added - emoji_removed,
        ),
        structure_changes=StructureChanges(
            paragraphs_added=sum(d.structure_changes.paragraphs_added for d in deltas),
            paragraphs_removed=sum(d.structure_changes.paragraphs_removed for d in deltas),
            bullets_added=any(d.structure_changes.bullets_added for d in deltas),
            formatting_changes=formatting,
        ),
        tone_shift=tone,
        vocabulary_changes=VocabularyChanges(
            words_substituted=[
                s for d in deltas for s in d.vocabulary_changes.words_substituted
            ][:MAX_THREAD_SUBSTITUTIONS],
            complexity_shift=math.floor(
                sum(d.vocabulary_changes.complexity_shift for d in deltas) / count + 0.5
            ),
        ),
        phrases_added=list(dict.fromkeys(p for d in deltas for p in d.phrases_added))[:MAX_PHRASE_CHANGES],
        phrases_removed=list(dict.fromkeys(p for d in deltas for p in d.phrases_removed))[:MAX_PHRASE_CHANGES],
    )
