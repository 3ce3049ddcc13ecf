"""
Pydantic schemas for the per-user style profile.

The profile is stored as JSON on the users table; these models validate it
on the way in and out and carry the numeric bounds.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Enums
# ============================================================================

class VoiceType(str, Enum):
    EDUCATIONAL = "educational"
    STORYTELLING = "storytelling"
    OPINIONATED = "opinionated"
    ANALYTICAL = "analytical"
    CASUAL = "casual"
    PROFESSIONAL = "professional"


class IntroStyle(str, Enum):
    HOOK = "hook"
    STORY = "story"
    PROBLEM = "problem"
    STATEMENT = "statement"


class BodyStyle(str, Enum):
    STEPS = "steps"
    NARRATIVE = "narrative"
    ANALYSIS = "analysis"
    BULLETS = "bullets"


class EndingStyle(str, Enum):
    CTA = "cta"
    REFLECTION = "reflection"
    SUMMARY = "summary"
    QUESTION = "question"


class VocabularyLevel(str, Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    ADVANCED = "advanced"


class ProfileSource(str, Enum):
    """Where the profile originally came from."""
    MANUAL = "manual"
    FILE = "file"
    FEEDBACK = "feedback"
    ARCHETYPE = "archetype"


class SnapshotSource(str, Enum):
    """What triggered a version snapshot."""
    MANUAL = "manual"
    FEEDBACK = "feedback"
    ARCHETYPE = "archetype"
    ROLLBACK = "rollback"


# ============================================================================
# Profile
# ============================================================================

class ToneMetrics(BaseModel):
    """Tone metrics on a 1-10 scale."""
    formality: int = Field(5, ge=1, le=10)  # 1 = very casual, 10 = very formal
    enthusiasm: int = Field(5, ge=1, le=10)  # 1 = subdued, 10 = very enthusiastic
    directness: int = Field(5, ge=1, le=10)  # 1 = indirect, 10 = very direct
    humor: int = Field(5, ge=1, le=10)  # 1 = serious, 10 = very humorous
    emotionality: int = Field(5, ge=1, le=10)  # 1 = detached, 10 = very emotional


class WritingTraits(BaseModel):
    avg_sentence_length: float = Field(15.0, ge=5, le=50)  # words per sentence
    uses_questions_often: bool = False
    uses_emojis: bool = False
    emoji_frequency: int = Field(0, ge=0, le=5)
    uses_bullet_points: bool = False
    uses_short_paragraphs: bool = False
    uses_hooks: bool = False


class StructurePreferences(BaseModel):
    intro_style: IntroStyle = IntroStyle.HOOK
    body_style: BodyStyle = BodyStyle.NARRATIVE
    ending_style: EndingStyle = EndingStyle.REFLECTION


class StyleProfile(BaseModel):
    """
    Persistent model of a user's writing voice.

    Mutated only by the feedback learning policy or an explicit user edit.
    """

    voice_type: VoiceType = VoiceType.EDUCATIONAL
    tone: ToneMetrics = Field(default_factory=ToneMetrics)
    writing_traits: WritingTraits = Field(default_factory=WritingTraits)
    structure_preferences: StructurePreferences = Field(default_factory=StructurePreferences)
    vocabulary_level: VocabularyLevel = VocabularyLevel.MEDIUM
    common_phrases: list[str] = Field(default_factory=list)
    banned_phrases: list[str] = Field(default_factory=list)
    sample_posts: list[str] = Field(default_factory=list)

    # Learning metadata
    learning_iterations: int = Field(0, ge=0)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    profile_source: ProfileSource = ProfileSource.MANUAL
    archetype_base: Optional[str] = None


# ============================================================================
# Manual overrides
# ============================================================================

class _OverrideSection(BaseModel):
    """A key that was provided (even as null) counts as overridden."""

    def is_overridden(self, field_name: str) -> bool:
        return field_name in self.model_fields_set


class ToneOverrides(_OverrideSection):
    formality: Optional[int] = None
    enthusiasm: Optional[int] = None
    directness: Optional[int] = None
    humor: Optional[int] = None
    emotionality: Optional[int] = None


class WritingTraitOverrides(_OverrideSection):
    avg_sentence_length: Optional[float] = None
    uses_questions_often: Optional[bool] = None
    uses_emojis: Optional[bool] = None
    emoji_frequency: Optional[int] = None
    uses_bullet_points: Optional[bool] = None
    uses_short_paragraphs: Optional[bool] = None
    uses_hooks: Optional[bool] = None


class StructureOverrides(_OverrideSection):
    intro_style: Optional[IntroStyle] = None
    body_style: Optional[BodyStyle] = None
    ending_style: Optional[EndingStyle] = None


class ManualOverrides(BaseModel):
    """
    Sparse map of fields the user pinned by hand.

    Read-only to the learning engine.
    """

    tone: ToneOverrides = Field(default_factory=ToneOverrides)
    writing_traits: WritingTraitOverrides = Field(default_factory=WritingTraitOverrides)
    structure_preferences: StructureOverrides = Field(default_factory=StructureOverrides)

    def is_overridden(self, section: str, field_name: str) -> bool:
        return getattr(self, section).is_overridden(field_name)


class ProfileVersionSnapshot(BaseModel):
    """Immutable copy of a profile taken before an update."""

    model_config = ConfigDict(frozen=True)

    profile: StyleProfile
    source: SnapshotSource
    learning_iterations: int
    timestamp: datetime
