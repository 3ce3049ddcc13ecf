"""
Services layer for the feedback learning engine.
Contains delta extraction, edit storage, pattern detection and profile updates.
"""

from repovoice.services.edit_metadata_store import EditMetadataStore
from repovoice.services.feedback_learning import FeedbackLearningEngine, ProfileUpdateOutcome
from repovoice.services.learning_gate import LearningGate
from repovoice.services.pattern_detector import PatternDetector
from repovoice.services.profile_policy import ProfileUpdatePolicy
from repovoice.services.style_delta import StyleDeltaExtractor

__all__ = [
    "EditMetadataStore",
    "FeedbackLearningEngine",
    "ProfileUpdateOutcome",
    "LearningGate",
    "PatternDetector",
    "ProfileUpdatePolicy",
    "StyleDeltaExtractor",
]
