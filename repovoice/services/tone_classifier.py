"""
Tone-shift classification for edit deltas.

The heuristic classifier is the default and needs no network access. The
Gemini classifier asks the model for one label and falls back to the
heuristic whenever the provider call fails.
"""

import re
from typing import Optional, Protocol

import structlog

from repovoice.core.llm_clients import GeminiClient
from repovoice.schemas.edit_metadata import ToneShift
from repovoice.utils.text import count_emojis

logger = structlog.get_logger(__name__)

PROMPT_MAX_CHARS = 1000

TONE_PROMPT = """You are an expert at analyzing tone shifts in text edits. Compare the original and edited versions and classify the tone shift.

ORIGINAL TEXT:
{original}

EDITED TEXT:
{edited}

Classify the tone shift in ONE of these categories:
- "more casual" - the edited version is more informal, conversational
- "more professional" - the edited version is more formal, business-like
- "more enthusiastic" - the edited version shows more excitement, energy
- "more subdued" - the edited version is calmer, less emotional
- "more direct" - the edited version is more straightforward, less verbose
- "more indirect" - the edited version is more nuanced, diplomatic
- "more humorous" - the edited version adds humor or wit
- "more serious" - the edited version removes humor, becomes more earnest
- "no change" - no significant tone shift detected

Respond with ONLY the category name, nothing else."""


class ToneClassifier(Protocol):
    async def classify(self, original: str, edited: str) -> ToneShift:
        ...


_CONTRACTION = re.compile(r"\b\w+'(?:s|re|ll|ve|d|t|m)\b", re.IGNORECASE)
_WORD = re.compile(r"[a-z']+")

CASUAL_WORDS = {
    "gonna", "wanna", "kinda", "hey", "yeah", "cool", "stuff",
    "folks", "btw", "tbh", "yep", "nope", "super",
}
FORMAL_WORDS = {
    "therefore", "furthermore", "however", "moreover", "consequently",
    "additionally", "regarding", "utilize", "leverage", "demonstrate",
    "facilitate", "subsequently",
}
ENTHUSIASM_WORDS = {
    "amazing", "incredible", "excited", "thrilled", "love", "wow",
    "huge", "fantastic", "awesome",
}
HEDGE_PHRASES = (
    "maybe", "perhaps", "might", "possibly", "somewhat", "probably",
    "i think", "i believe", "kind of", "sort of", "could be",
)
HUMOR_MARKERS = ("lol", "haha", "lmao", "joke", "funny", "\U0001F602", "\U0001F923", "\U0001F605")


class HeuristicToneClassifier:
    """
    Marker-count tone classifier.

    Each text is scored on four axes:
      formality   formal words minus (contractions + casual words)
      enthusiasm  exclamation marks + emojis + enthusiasm words
      directness  minus the number of hedges
      humor       humor markers
    The axis whose score moved most between original and edited wins,
    provided it moved by at least `min_shift`. Ties resolve in the order
    listed above.
    """

    AXES = (
        ("formality", ToneShift.MORE_PROFESSIONAL, ToneShift.MORE_CASUAL),
        ("enthusiasm", ToneShift.MORE_ENTHUSIASTIC, ToneShift.MORE_SUBDUED),
        ("directness", ToneShift.MORE_DIRECT, ToneShift.MORE_INDIRECT),
        ("humor", ToneShift.MORE_HUMOROUS, ToneShift.MORE_SERIOUS),
    )

    def __init__(self, min_shift: int = 1):
        self.min_shift = min_shift

    @staticmethod
    def score(text: str) -> dict[str, int]:
        lowered = text.lower()
        words = _WORD.findall(lowered)
        return {
            "formality": (
                sum(1 for w in words if w in FORMAL_WORDS)
                - len(_CONTRACTION.findall(text))
                - sum(1 for w in words if w in CASUAL_WORDS)
            ),
            "enthusiasm": (
                text.count("!")
                + count_emojis(text)
                + sum(1 for w in words if w in ENTHUSIASM_WORDS)
            ),
            "directness": -sum(
                len(re.findall(rf"\b{re.escape(h)}\b", lowered)) for h in HEDGE_PHRASES
            ),
            "humor": sum(lowered.count(marker) for marker in HUMOR_MARKERS),
        }

    async def classify(self, original: str, edited: str) -> ToneShift:
        return self.classify_sync(original, edited)

    def classify_sync(self, original: str, edited: str) -> ToneShift:
        before = self.score(original)
        after = self.score(edited)

        best: Optional[ToneShift] = None
        best_magnitude = 0
        for axis, up, down in self.AXES:
            shift = after[axis] - before[axis]
            if abs(shift) > best_magnitude:
                best_magnitude = abs(shift)
                best = up if shift > 0 else down

        if best is None or best_magnitude < self.min_shift:
            return ToneShift.NO_CHANGE
        return best


class GeminiToneClassifier:
    """Asks Gemini for a label; any failure falls back to the heuristic."""

    def __init__(
        self,
        client: Optional[GeminiClient] = None,
        fallback: Optional[HeuristicToneClassifier] = None,
    ):
        self.client = client or GeminiClient()
        self.fallback = fallback or HeuristicToneClassifier()

    async def classify(self, original: str, edited: str) -> ToneShift:
        prompt = TONE_PROMPT.format(
            original=original[:PROMPT_MAX_CHARS],
            edited=edited[:PROMPT_MAX_CHARS],
        )
        try:
            response = await self.client.generate(prompt)
        except Exception as e:
            logger.warning("Tone classification failed, using heuristic", error=str(e))
            return await self.fallback.classify(original, edited)

        return ToneShift.parse(response.content)


def build_tone_classifier(kind: str) -> ToneClassifier:
    if kind == "gemini":
        return GeminiToneClassifier()
    return HeuristicToneClassifier()
