"""
Style delta extraction tests.
"""

from unittest.mock import AsyncMock

import pytest

from repovoice.core.exceptions import DeltaExtractionError
from repovoice.schemas.edit_metadata import EmojiChanges, StyleDelta, ToneShift
from repovoice.services.style_delta import StyleDeltaExtractor


@pytest.fixture
def extractor() -> StyleDeltaExtractor:
    return StyleDeltaExtractor()


@pytest.mark.asyncio
@pytest.mark.parametrize("original,edited", [("", "edited"), ("original", "   "), ("\n", "\t")])
async def test_blank_input_rejected(extractor: StyleDeltaExtractor, original: str, edited: str):
    """Either text being blank fails the whole extraction."""
    with pytest.raises(DeltaExtractionError):
        await extractor.extract_deltas(original, edited)


@pytest.mark.asyncio
async def test_sentence_length_delta(extractor: StyleDeltaExtractor):
    delta = await extractor.extract_deltas(
        "This is a long sentence with many words in it.",
        "Short one. Another short.",
    )
    assert delta.sentence_length_delta == pytest.approx(-8.0)


@pytest.mark.asyncio
async def test_emoji_changes(extractor: StyleDeltaExtractor):
    delta = await extractor.extract_deltas("Hello world", "Hello world \U0001F680\U0001F525")
    assert delta.emoji_changes == EmojiChanges(added=2, removed=0, net_change=2)

    delta = await extractor.extract_deltas("Shipped \U0001F680", "Shipped")
    assert delta.emoji_changes == EmojiChanges(added=0, removed=1, net_change=-1)


@pytest.mark.asyncio
async def test_structure_changes(extractor: StyleDeltaExtractor):
    delta = await extractor.extract_deltas(
        "One paragraph here.",
        "First part.\n\n- point one\n- point two",
    )
    assert delta.structure_changes.paragraphs_added == 1
    assert delta.structure_changes.paragraphs_removed == 0
    assert delta.structure_changes.bullets_added is True
    assert delta.structure_changes.formatting_changes == ["bullets_added"]


@pytest.mark.asyncio
async def test_vocabulary_changes(extractor: StyleDeltaExtractor):
    delta = await extractor.extract_deltas(
        "We utilize advanced methodologies",
        "We use new methods",
    )
    substitutions = [(s.from_word, s.to_word) for s in delta.vocabulary_changes.words_substituted]
    assert substitutions == [("utilize", "use"), ("advanced", "new"), ("methodologies", "methods")]
    assert delta.vocabulary_changes.complexity_shift == -1


@pytest.mark.asyncio
async def test_word_substitutions_serialize_with_short_keys(extractor: StyleDeltaExtractor):
    delta = await extractor.extract_deltas("We utilize tools", "We use tools")
    dumped = delta.model_dump(mode="json", by_alias=True)
    assert dumped["vocabulary_changes"]["words_substituted"] == [{"from": "utilize", "to": "use"}]


@pytest.mark.asyncio
async def test_phrase_changes(extractor: StyleDeltaExtractor):
    delta = await extractor.extract_deltas("the quick brown fox", "the quick brown dog")
    assert delta.phrases_added == ["quick brown dog", "the quick brown dog"]
    assert delta.phrases_removed == ["quick brown fox", "the quick brown fox"]


@pytest.mark.asyncio
async def test_tone_comes_from_classifier():
    classifier = AsyncMock()
    classifier.classify.return_value = ToneShift.MORE_HUMOROUS
    extractor = StyleDeltaExtractor(tone_classifier=classifier)

    delta = await extractor.extract_deltas("Quarterly results are in.", "Quarterly results are in lol")

    assert delta.tone_shift == ToneShift.MORE_HUMOROUS
    classifier.classify.assert_awaited_once_with("Quarterly results are in.", "Quarterly results are in lol")


def test_calculate_metrics(extractor: StyleDeltaExtractor):
    delta = StyleDelta(
        sentence_length_delta=3.0,
        emoji_changes=EmojiChanges(added=1, net_change=1),
        tone_shift=ToneShift.MORE_CASUAL,
    )
    metrics = extractor.calculate_metrics(delta)

    assert metrics.total_changes == 3
    assert metrics.significant_changes == 2
    assert metrics.change_categories == ["sentence_length", "emoji", "tone"]


def test_calculate_metrics_no_changes(extractor: StyleDeltaExtractor):
    metrics = extractor.calculate_metrics(StyleDelta())
    assert metrics.total_changes == 0
    assert metrics.change_categories == []
