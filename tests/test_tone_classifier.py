"""
Tone classifier tests.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from repovoice.schemas.edit_metadata import ToneShift
from repovoice.services.tone_classifier import (
    GeminiToneClassifier,
    HeuristicToneClassifier,
    build_tone_classifier,
)


@pytest.fixture
def heuristic() -> HeuristicToneClassifier:
    return HeuristicToneClassifier()


@pytest.mark.parametrize(
    "original,edited,expected",
    [
        ("We will leverage our platform.", "We're gonna use our platform.", ToneShift.MORE_CASUAL),
        ("Launching today.", "Launching today! So excited!", ToneShift.MORE_ENTHUSIASTIC),
        ("I think this might possibly work.", "This works.", ToneShift.MORE_DIRECT),
        ("The build passed.", "The build passed lol haha", ToneShift.MORE_HUMOROUS),
        ("Same text here.", "Same text here.", ToneShift.NO_CHANGE),
    ],
)
def test_heuristic_labels(heuristic, original, edited, expected):
    assert heuristic.classify_sync(original, edited) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("more professional", ToneShift.MORE_PROFESSIONAL),
        ("  More Casual.\n", ToneShift.MORE_CASUAL),
        ("something unexpected", ToneShift.NO_CHANGE),
        (None, ToneShift.NO_CHANGE),
    ],
)
def test_parse_label(raw, expected):
    assert ToneShift.parse(raw) == expected


@pytest.mark.asyncio
async def test_gemini_label_is_parsed():
    client = AsyncMock()
    client.generate.return_value = SimpleNamespace(content="More Professional")
    classifier = GeminiToneClassifier(client=client)

    assert await classifier.classify("hey folks", "Dear colleagues") == ToneShift.MORE_PROFESSIONAL


@pytest.mark.asyncio
async def test_gemini_prompt_truncates_long_texts():
    client = AsyncMock()
    client.generate.return_value = SimpleNamespace(content="no change")
    classifier = GeminiToneClassifier(client=client)

    await classifier.classify("a" * 1500, "b" * 1500)

    prompt = client.generate.await_args.args[0]
    assert "a" * 1000 in prompt
    assert "a" * 1001 not in prompt


@pytest.mark.asyncio
async def test_gemini_failure_falls_back_to_heuristic():
    client = AsyncMock()
    client.generate.side_effect = RuntimeError("quota exceeded")
    classifier = GeminiToneClassifier(client=client, fallback=HeuristicToneClassifier())

    label = await classifier.classify("We will leverage our platform.", "We're gonna use our platform.")

    assert label == ToneShift.MORE_CASUAL


def test_default_classifier_is_heuristic():
    assert isinstance(build_tone_classifier("heuristic"), HeuristicToneClassifier)
