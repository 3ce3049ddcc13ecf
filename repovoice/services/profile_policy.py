"""
Weighted, override-respecting style profile updates.

The policy never mutates its input: the profile is deep-copied, the copy is
adjusted and returned.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from repovoice.core.config import settings
from repovoice.schemas.edit_metadata import DetectedPatterns, ToneShift
from repovoice.schemas.style_profile import EndingStyle, ManualOverrides, StyleProfile

logger = structlog.get_logger(__name__)

TONE_MIN = 1
TONE_MAX = 10

# Tone shift -> (tone metric, step)
TONE_ADJUSTMENTS: dict[ToneShift, tuple[str, int]] = {
    ToneShift.MORE_CASUAL: ("formality", -1),
    ToneShift.MORE_PROFESSIONAL: ("formality", 1),
    ToneShift.MORE_ENTHUSIASTIC: ("enthusiasm", 1),
    ToneShift.MORE_SUBDUED: ("enthusiasm", -1),
    ToneShift.MORE_DIRECT: ("directness", 1),
    ToneShift.MORE_INDIRECT: ("directness", -1),
    ToneShift.MORE_HUMOROUS: ("humor", 1),
    ToneShift.MORE_SERIOUS: ("humor", -1),
}


def clamp(value, lower, upper):
    return max(lower, min(upper, value))


def append_bounded(existing: list[str], new: list[str], bound: int) -> list[str]:
    """Append unseen entries, then drop the oldest beyond `bound`."""
    merged = list(existing)
    for phrase in new:
        if phrase not in merged:
            merged.append(phrase)
    if len(merged) > bound:
        merged = merged[len(merged) - bound:]
    return merged


class ProfileUpdatePolicy:
    """
    Applies detected patterns to a style profile.

    Rules, each skipped when the touched field is manually overridden:
    1. avg_sentence_length moves by pattern * adjustment percentage, clamped
    2. emoji usage and frequency are set from the emoji pattern
    3. a CTA pattern sets the ending style to "cta"
    4. a tone pattern moves the mapped tone metric by one step, only when
       major changes are allowed
    5. banned and common phrases are always appended, bounded FIFO
    """

    def __init__(
        self,
        adjustment_percentage: Optional[float] = None,
        sentence_length_min: Optional[float] = None,
        sentence_length_max: Optional[float] = None,
        max_phrases: Optional[int] = None,
    ):
        self.adjustment_percentage = (
            adjustment_percentage
            if adjustment_percentage is not None
            else settings.learning_adjustment_percentage
        )
        self.sentence_length_min = sentence_length_min or settings.learning_sentence_length_min
        self.sentence_length_max = sentence_length_max or settings.learning_sentence_length_max
        self.max_phrases = max_phrases or settings.learning_max_phrases

    def apply_weighted_updates(
        self,
        profile: StyleProfile,
        patterns: DetectedPatterns,
        overrides: Optional[ManualOverrides] = None,
        can_make_major_changes: bool = False,
        now: Optional[datetime] = None,
    ) -> StyleProfile:
        overrides = overrides or ManualOverrides()
        updated = profile.model_copy(deep=True)
        traits = updated.writing_traits

        if patterns.sentence_length_pattern is not None:
            if overrides.is_overridden("writing_traits", "avg_sentence_length"):
                logger.debug("Sentence length overridden, skipping")
            else:
                traits.avg_sentence_length = clamp(
                    traits.avg_sentence_length
                    + patterns.sentence_length_pattern * self.adjustment_percentage,
                    self.sentence_length_min,
                    self.sentence_length_max,
                )

        if patterns.emoji_pattern is not None:
            if overrides.is_overridden("writing_traits", "uses_emojis") or overrides.is_overridden(
                "writing_traits", "emoji_frequency"
            ):
                logger.debug("Emoji usage overridden, skipping")
            else:
                traits.uses_emojis = patterns.emoji_pattern.should_use
                traits.emoji_frequency = clamp(patterns.emoji_pattern.frequency, 0, 5)

        if patterns.cta_pattern:
            if overrides.is_overridden("structure_preferences", "ending_style"):
                logger.debug("Ending style overridden, skipping")
            else:
                updated.structure_preferences.ending_style = EndingStyle.CTA

        if patterns.tone_pattern is not None and can_make_major_changes:
            adjustment = TONE_ADJUSTMENTS.get(patterns.tone_pattern)
            if adjustment is not None:
                metric, step = adjustment
                if overrides.is_overridden("tone", metric):
                    logger.debug("Tone metric overridden, skipping", metric=metric)
                else:
                    current = getattr(updated.tone, metric)
                    setattr(updated.tone, metric, clamp(current + step, TONE_MIN, TONE_MAX))

        if patterns.banned_phrases:
            updated.banned_phrases = append_bounded(
                updated.banned_phrases, patterns.banned_phrases, self.max_phrases
            )
        if patterns.common_phrases:
            updated.common_phrases = append_bounded(
                updated.common_phrases, patterns.common_phrases, self.max_phrases
            )

        updated.learning_iterations = profile.learning_iterations + 1
        updated.last_updated = now or datetime.now(timezone.utc)
        return updated


def changed_fields(before: StyleProfile, after: StyleProfile) -> list[str]:
    """Dotted paths of fields whose values differ, ignoring learning metadata."""
    ignored = {"learning_iterations", "last_updated"}
    return _diff(
        before.model_dump(mode="json", exclude=ignored),
        after.model_dump(mode="json", exclude=ignored),
    )


def _diff(before: dict[str, Any], after: dict[str, Any], prefix: str = "") -> list[str]:
    paths = []
    for key in before.keys() | after.keys():
        path = f"{prefix}{key}"
        old, new = before.get(key), after.get(key)
        if isinstance(old, dict) and isinstance(new, dict):
            paths.extend(_diff(old, new, prefix=f"{path}."))
        elif old != new:
            paths.append(path)
    return sorted(paths)
