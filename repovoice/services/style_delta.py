"""
Style delta extraction.

Compares AI-generated text with the user's edit and reports what changed:
sentence length, emojis, structure, vocabulary, phrases and tone.
"""

from typing import Optional

import structlog

from repovoice.core.exceptions import DeltaExtractionError
from repovoice.schemas.edit_metadata import (
    DeltaMetrics,
    EmojiChanges,
    StructureChanges,
    StyleDelta,
    ToneShift,
    VocabularyChanges,
    WordSubstitution,
)
from repovoice.services.tone_classifier import HeuristicToneClassifier, ToneClassifier
from repovoice.utils import text as textstats

logger = structlog.get_logger(__name__)

MAX_WORD_SUBSTITUTIONS = 5
MAX_PHRASE_CHANGES = 10
COMPLEXITY_THRESHOLD = 0.5


class StyleDeltaExtractor:
    """
    Stateless apart from the tone classifier it delegates to.

    Inputs are never modified; a delta is either complete or an exception
    is raised.
    """

    def __init__(self, tone_classifier: Optional[ToneClassifier] = None):
        self.tone_classifier = tone_classifier or HeuristicToneClassifier()

    async def extract_deltas(self, original_text: str, edited_text: str) -> StyleDelta:
        """
        Extract style deltas between generated and edited text.

        Raises:
            DeltaExtractionError: either text is empty or blank
        """
        if not original_text or not original_text.strip():
            raise DeltaExtractionError("Original text is empty")
        if not edited_text or not edited_text.strip():
            raise DeltaExtractionError("Edited text is empty")

        added, removed = self._phrase_changes(original_text, edited_text)
        tone_shift = await self.tone_classifier.classify(original_text, edited_text)

        delta = StyleDelta(
            sentence_length_delta=(
                textstats.avg_sentence_length(edited_text)
                - textstats.avg_sentence_length(original_text)
            ),
            emoji_changes=self._emoji_changes(original_text, edited_text),
            structure_changes=self._structure_changes(original_text, edited_text),
            tone_shift=tone_shift,
            vocabulary_changes=self._vocabulary_changes(original_text, edited_text),
            phrases_added=added,
            phrases_removed=removed,
        )

        logger.debug(
            "Style delta extracted",
            sentence_length_delta=round(delta.sentence_length_delta, 2),
            emoji_net_change=delta.emoji_changes.net_change,
            tone_shift=delta.tone_shift.value,
        )
        return delta

    def calculate_metrics(self, delta: StyleDelta) -> DeltaMetrics:
        """Count changed categories and how many of them are significant."""
        total = 0
        significant = 0
        categories = []

        if abs(delta.sentence_length_delta) > 2:
            total += 1
            significant += 1
            categories.append("sentence_length")

        net = delta.emoji_changes.net_change
        if net != 0:
            total += 1
            if abs(net) >= 2:
                significant += 1
            categories.append("emoji")

        structure = delta.structure_changes
        if structure.paragraphs_added > 0 or structure.paragraphs_removed > 0:
            total += 1
            if structure.paragraphs_added > 1 or structure.paragraphs_removed > 1:
                significant += 1
            categories.append("structure")

        if structure.bullets_added:
            total += 1
            significant += 1
            categories.append("bullets")

        substitutions = delta.vocabulary_changes.words_substituted
        if substitutions:
            total += 1
            if len(substitutions) >= 3:
                significant += 1
            categories.append("vocabulary")

        if delta.phrases_added or delta.phrases_removed:
            total += 1
            if len(delta.phrases_added) >= 2 or len(delta.phrases_removed) >= 2:
                significant += 1
            categories.append("phrases")

        if delta.tone_shift != ToneShift.NO_CHANGE:
            total += 1
            significant += 1
            categories.append("tone")

        return DeltaMetrics(
            total_changes=total,
            significant_changes=significant,
            change_categories=categories,
        )

    @staticmethod
    def _emoji_changes(original: str, edited: str) -> EmojiChanges:
        before = textstats.count_emojis(original)
        after = textstats.count_emojis(edited)
        return EmojiChanges(
            added=max(0, after - before),
            removed=max(0, before - after),
            net_change=after - before,
        )

    @staticmethod
    def _structure_changes(original: str, edited: str) -> StructureChanges:
        before = textstats.count_paragraphs(original)
        after = textstats.count_paragraphs(edited)
        had_bullets = textstats.has_bullet_points(original)
        has_bullets = textstats.has_bullet_points(edited)

        formatting = []
        if has_bullets and not had_bullets:
            formatting.append("bullets_added")
        if had_bullets and not has_bullets:
            formatting.append("bullets_removed")

        return StructureChanges(
            paragraphs_added=max(0, after - before),
            paragraphs_removed=max(0, before - after),
            bullets_added=has_bullets and not had_bullets,
            formatting_changes=formatting,
        )

    @staticmethod
    def _vocabulary_changes(original: str, edited: str) -> VocabularyChanges:
        original_words = textstats.extract_words(original)
        edited_words = textstats.extract_words(edited)
        original_set = set(original_words)
        edited_set = set(edited_words)

        removed = [w for w in original_words if w not in edited_set]
        added = [w for w in edited_words if w not in original_set]
        substitutions = [
            WordSubstitution(from_word=old, to_word=new)
            for old, new in zip(removed, added)
        ][:MAX_WORD_SUBSTITUTIONS]

        before = textstats.avg_word_length(original)
        after = textstats.avg_word_length(edited)
        shift = 0
        if after > before + COMPLEXITY_THRESHOLD:
            shift = 1
        elif after < before - COMPLEXITY_THRESHOLD:
            shift = -1

        return VocabularyChanges(words_substituted=substitutions, complexity_shift=shift)

    @staticmethod
    def _phrase_changes(original: str, edited: str) -> tuple[list[str], list[str]]:
        original_phrases = textstats.extract_phrases(original)
        edited_phrases = textstats.extract_phrases(edited)
        original_set = set(original_phrases)
        edited_set = set(edited_phrases)

        added = _unique(p for p in edited_phrases if p not in original_set)
        removed = _unique(p for p in original_phrases if p not in edited_set)
        return added[:MAX_PHRASE_CHANGES], removed[:MAX_PHRASE_CHANGES]


def _unique(items) -> list[str]:
    return list(dict.fromkeys(items))
