"""
Pattern detection over a window of recent edits.

A pattern is only reported once it recurs across enough edits; every
threshold below is exact.
"""

import math
from collections import Counter
from dataclasses import dataclass
from typing import Optional, Sequence

import structlog

from repovoice.core.config import settings
from repovoice.schemas.edit_metadata import (
    DetectedPatterns,
    EmojiPattern,
    StyleDelta,
    ToneShift,
)

logger = structlog.get_logger(__name__)

CTA_KEYWORDS = (
    "check out",
    "learn more",
    "click here",
    "visit",
    "try now",
    "get started",
    "sign up",
    "download",
)

MAX_EMOJI_FREQUENCY = 5


@dataclass(frozen=True)
class PatternThresholds:
    min_edits: int = 3
    sentence_length_min_delta: float = 1.0
    min_emojis_added: int = 3
    min_cta_edits: int = 3
    min_tone_edits: int = 3
    min_banned_phrase_edits: int = 2
    min_common_phrase_edits: int = 3

    @classmethod
    def from_settings(cls) -> "PatternThresholds":
        return cls(
            min_edits=settings.learning_min_edits_for_pattern_detection,
            sentence_length_min_delta=settings.learning_sentence_length_min_delta,
            min_emojis_added=settings.learning_min_emojis_added,
            min_cta_edits=settings.learning_min_edits_for_pattern_detection,
            min_tone_edits=settings.learning_min_edits_for_pattern_detection,
            min_banned_phrase_edits=settings.learning_min_edits_for_banned_phrases,
            min_common_phrase_edits=settings.learning_min_edits_for_common_phrases,
        )


class PatternDetector:
    """Deterministic: the same edit window always yields the same patterns."""

    def __init__(self, thresholds: Optional[PatternThresholds] = None):
        self.thresholds = thresholds or PatternThresholds()

    def detect_patterns(self, edits: Sequence[StyleDelta]) -> DetectedPatterns:
        patterns = DetectedPatterns(
            sentence_length_pattern=self.detect_sentence_length(edits),
            emoji_pattern=self.detect_emoji(edits),
            cta_pattern=self.detect_cta(edits),
            tone_pattern=self.detect_tone(edits),
            banned_phrases=self.detect_banned_phrases(edits),
            common_phrases=self.detect_common_phrases(edits),
        )

        logger.debug(
            "Patterns detected",
            edit_count=len(edits),
            sentence_length=patterns.sentence_length_pattern,
            emoji=patterns.emoji_pattern is not None,
            cta=patterns.cta_pattern,
            tone=patterns.tone_pattern.value if patterns.tone_pattern else None,
            banned=len(patterns.banned_phrases),
            common=len(patterns.common_phrases),
        )
        return patterns

    def detect_sentence_length(self, edits: Sequence[StyleDelta]) -> Optional[float]:
        if len(edits) < self.thresholds.min_edits:
            return None

        mean = sum(e.sentence_length_delta for e in edits) / len(edits)
        if abs(mean) > self.thresholds.sentence_length_min_delta:
            return mean
        return None

    def detect_emoji(self, edits: Sequence[StyleDelta]) -> Optional[EmojiPattern]:
        if len(edits) < self.thresholds.min_edits:
            return None

        total_added = sum(e.emoji_changes.added for e in edits)
        total_removed = sum(e.emoji_changes.removed for e in edits)
        if total_added > total_removed and total_added >= self.thresholds.min_emojis_added:
            frequency = min(MAX_EMOJI_FREQUENCY, math.ceil(total_added / len(edits)))
            return EmojiPattern(should_use=True, frequency=frequency)
        return None

    def detect_cta(self, edits: Sequence[StyleDelta]) -> bool:
        cta_edits = sum(1 for e in edits if _adds_cta(e))
        return cta_edits >= self.thresholds.min_cta_edits

    def detect_tone(self, edits: Sequence[StyleDelta]) -> Optional[ToneShift]:
        shifts = [e.tone_shift for e in edits if e.tone_shift != ToneShift.NO_CHANGE]
        if len(shifts) < self.thresholds.min_tone_edits:
            return None

        # Counter keeps first-seen order, so the strict > below breaks ties by it
        label, best = None, 0
        for shift, count in Counter(shifts).items():
            if count > best:
                label, best = shift, count

        if best >= self.thresholds.min_tone_edits:
            return label
        return None

    def detect_banned_phrases(self, edits: Sequence[StyleDelta]) -> list[str]:
        return _phrases_in_distinct_edits(
            (e.phrases_removed for e in edits), self.thresholds.min_banned_phrase_edits
        )

    def detect_common_phrases(self, edits: Sequence[StyleDelta]) -> list[str]:
        return _phrases_in_distinct_edits(
            (e.phrases_added for e in edits), self.thresholds.min_common_phrase_edits
        )


def _adds_cta(edit: StyleDelta) -> bool:
    return any(
        keyword in phrase.lower()
        for phrase in edit.phrases_added
        for keyword in CTA_KEYWORDS
    )


def _phrases_in_distinct_edits(phrase_lists, min_edits: int) -> list[str]:
    """Phrases appearing in at least `min_edits` different edits, first-seen order."""
    counts: Counter = Counter()
    for phrases in phrase_lists:
        counts.update(dict.fromkeys(phrases, 1))
    return [phrase for phrase, count in counts.items() if count >= min_edits]
