"""
Pattern detection tests.
"""

import pytest

from repovoice.schemas.edit_metadata import EmojiChanges, EmojiPattern, StyleDelta, ToneShift
from repovoice.services.pattern_detector import PatternDetector, PatternThresholds


@pytest.fixture
def detector() -> PatternDetector:
    return PatternDetector()


def emoji_edit(added: int = 1, removed: int = 0) -> StyleDelta:
    return StyleDelta(emoji_changes=EmojiChanges(added=added, removed=removed, net_change=added - removed))


def test_emoji_pattern_needs_three_edits(detector: PatternDetector):
    """Two emoji-adding edits are not enough; three are."""
    assert detector.detect_patterns([emoji_edit(2), emoji_edit(2)]).emoji_pattern is None

    patterns = detector.detect_patterns([emoji_edit(), emoji_edit(), emoji_edit()])
    assert patterns.emoji_pattern == EmojiPattern(should_use=True, frequency=1)


def test_emoji_frequency_rounds_up_and_caps(detector: PatternDetector):
    assert detector.detect_emoji([emoji_edit(2), emoji_edit(1), emoji_edit(1)]).frequency == 2
    assert detector.detect_emoji([emoji_edit(9), emoji_edit(9), emoji_edit(9)]).frequency == 5


def test_emoji_pattern_requires_net_additions(detector: PatternDetector):
    edits = [emoji_edit(1, 2), emoji_edit(1, 1), emoji_edit(1, 0)]
    assert detector.detect_emoji(edits) is None


def test_sentence_length_pattern(detector: PatternDetector):
    assert detector.detect_sentence_length([StyleDelta(sentence_length_delta=2.0)] * 3) == pytest.approx(2.0)
    # Mean must exceed one word strictly
    assert detector.detect_sentence_length([StyleDelta(sentence_length_delta=1.0)] * 3) is None
    assert detector.detect_sentence_length([StyleDelta(sentence_length_delta=-4.0)] * 2) is None


def test_cta_pattern(detector: PatternDetector):
    cta = StyleDelta(phrases_added=["check out the repo"])
    assert detector.detect_cta([cta, cta]) is False
    assert detector.detect_cta([cta, cta, StyleDelta(phrases_added=["Sign up today"])]) is True


def test_tone_pattern(detector: PatternDetector):
    casual = StyleDelta(tone_shift=ToneShift.MORE_CASUAL)
    direct = StyleDelta(tone_shift=ToneShift.MORE_DIRECT)
    neutral = StyleDelta(tone_shift=ToneShift.NO_CHANGE)

    assert detector.detect_tone([casual, casual, neutral, neutral]) is None
    assert detector.detect_tone([casual, direct, casual, neutral, casual]) == ToneShift.MORE_CASUAL
    # Tie: first seen wins
    assert detector.detect_tone([direct, casual, casual, direct, direct, casual]) == ToneShift.MORE_DIRECT


def test_tone_pattern_needs_three_of_the_winning_label(detector: PatternDetector):
    edits = [
        StyleDelta(tone_shift=ToneShift.MORE_CASUAL),
        StyleDelta(tone_shift=ToneShift.MORE_DIRECT),
        StyleDelta(tone_shift=ToneShift.MORE_HUMOROUS),
    ]
    assert detector.detect_tone(edits) is None


def test_banned_phrases_counted_per_edit(detector: PatternDetector):
    once_twice = StyleDelta(phrases_removed=["Leverage", "Leverage"])
    assert detector.detect_banned_phrases([once_twice, StyleDelta()]) == []
    assert detector.detect_banned_phrases([once_twice, StyleDelta(phrases_removed=["Leverage"])]) == ["Leverage"]


def test_common_phrases_need_three_edits(detector: PatternDetector):
    edit = StyleDelta(phrases_added=["ship it today", "happy building"])
    assert detector.detect_common_phrases([edit, edit]) == []
    assert detector.detect_common_phrases([edit, edit, edit]) == ["ship it today", "happy building"]


def test_empty_window(detector: PatternDetector):
    assert detector.detect_patterns([]).is_empty


def test_deterministic(detector: PatternDetector):
    edits = [
        StyleDelta(sentence_length_delta=3.0, tone_shift=ToneShift.MORE_CASUAL, phrases_removed=["synergy play"]),
        StyleDelta(sentence_length_delta=2.0, tone_shift=ToneShift.MORE_CASUAL, phrases_removed=["synergy play"]),
        StyleDelta(sentence_length_delta=4.0, tone_shift=ToneShift.MORE_CASUAL),
    ]
    assert detector.detect_patterns(edits) == detector.detect_patterns(edits)


def test_custom_thresholds():
    detector = PatternDetector(PatternThresholds(min_edits=2, min_emojis_added=2))
    assert detector.detect_emoji([emoji_edit(), emoji_edit()]) == EmojiPattern(should_use=True, frequency=1)
