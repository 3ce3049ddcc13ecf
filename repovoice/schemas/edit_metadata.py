"""
Pydantic schemas for edit deltas, stored edit metadata and detected patterns.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ToneShift(str, Enum):
    """Closed label set for tone shifts between a draft and its edit."""
    MORE_CASUAL = "more casual"
    MORE_PROFESSIONAL = "more professional"
    MORE_ENTHUSIASTIC = "more enthusiastic"
    MORE_SUBDUED = "more subdued"
    MORE_DIRECT = "more direct"
    MORE_INDIRECT = "more indirect"
    MORE_HUMOROUS = "more humorous"
    MORE_SERIOUS = "more serious"
    NO_CHANGE = "no change"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "ToneShift":
        """Map free text onto the label set, defaulting to NO_CHANGE."""
        cleaned = (raw or "").strip().lower()
        for label in cls:
            if label.value in cleaned:
                return label
        return cls.NO_CHANGE


class ContentFormat(str, Enum):
    """Shape of a generated content item."""
    SINGLE = "single"
    MINI_THREAD = "mini_thread"
    FULL_THREAD = "full_thread"

    @property
    def is_thread(self) -> bool:
        return self is not ContentFormat.SINGLE


class EditedTweet(BaseModel):
    position: int = Field(..., ge=0)
    text: str


# ============================================================================
# Delta components
# ============================================================================

class EmojiChanges(BaseModel):
    added: int = 0
    removed: int = 0
    net_change: int = 0


class StructureChanges(BaseModel):
    paragraphs_added: int = 0
    paragraphs_removed: int = 0
    bullets_added: bool = False
    formatting_changes: list[str] = Field(default_factory=list)


class WordSubstitution(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_word: str = Field(..., alias="from")
    to_word: str = Field(..., alias="to")


class VocabularyChanges(BaseModel):
    words_substituted: list[WordSubstitution] = Field(default_factory=list)
    complexity_shift: int = Field(0, ge=-1, le=1)


class StyleDelta(BaseModel):
    """Structured difference between generated text and the user's edit."""

    sentence_length_delta: float = 0.0
    emoji_changes: EmojiChanges = Field(default_factory=EmojiChanges)
    structure_changes: StructureChanges = Field(default_factory=StructureChanges)
    tone_shift: ToneShift = ToneShift.NO_CHANGE
    vocabulary_changes: VocabularyChanges = Field(default_factory=VocabularyChanges)
    phrases_added: list[str] = Field(default_factory=list)
    phrases_removed: list[str] = Field(default_factory=list)


class EditMetadata(StyleDelta):
    """A delta plus the bookkeeping needed to keep it in the rolling window."""

    content_id: Optional[str] = None
    original_text: str = ""
    original_length: int = 0
    edited_length: int = 0
    edit_timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    learning_processed: bool = False

    def to_delta(self) -> StyleDelta:
        return StyleDelta.model_validate(self.model_dump(include=set(StyleDelta.model_fields)))


class DeltaMetrics(BaseModel):
    total_changes: int = 0
    significant_changes: int = 0
    change_categories: list[str] = Field(default_factory=list)


# ============================================================================
# Patterns
# ============================================================================

class EmojiPattern(BaseModel):
    should_use: bool
    frequency: int = Field(..., ge=0, le=5)


class DetectedPatterns(BaseModel):
    """Patterns with enough support in the edit window to act on."""

    sentence_length_pattern: Optional[float] = None
    emoji_pattern: Optional[EmojiPattern] = None
    cta_pattern: bool = False
    tone_pattern: Optional[ToneShift] = None
    banned_phrases: list[str] = Field(default_factory=list)
    common_phrases: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return (
            self.sentence_length_pattern is None
            and self.emoji_pattern is None
            and not self.cta_pattern
            and self.tone_pattern is None
            and not self.banned_phrases
            and not self.common_phrases
        )


class PhraseCount(BaseModel):
    phrase: str
    count: int


class ToneShiftCount(BaseModel):
    shift: ToneShift
    count: int


class AggregatedEditPatterns(BaseModel):
    """Summary statistics over a user's stored edits."""

    total_edits: int = 0
    avg_sentence_length_delta: float = 0.0
    total_emoji_changes: EmojiChanges = Field(default_factory=EmojiChanges)
    common_tone_shifts: list[ToneShiftCount] = Field(default_factory=list)
    common_phrases_added: list[PhraseCount] = Field(default_factory=list)
    common_phrases_removed: list[PhraseCount] = Field(default_factory=list)
    paragraphs_added: int = 0
    paragraphs_removed: int = 0
    bullets_added: int = 0
