"""
Plain-text statistics used by delta extraction and tone scoring.
"""

import re

EMOJI_PATTERN = re.compile(
    "["
    "\U0001F600-\U0001F64F"  # emoticons
    "\U0001F300-\U0001F5FF"  # symbols & pictographs
    "\U0001F680-\U0001F6FF"  # transport & map
    "\U0001F1E0-\U0001F1FF"  # flags
    "\u2600-\u26FF"  # misc symbols
    "\u2700-\u27BF"  # dingbats
    "\U0001F900-\U0001F9FF"  # supplemental symbols
    "\U0001FA70-\U0001FAFF"  # symbols & pictographs extended-A
    "]"
)

SENTENCE_SPLIT = re.compile(r"[.!?]+")
PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
BULLET_PATTERNS = (
    re.compile(r"^\s*[-*•]\s+", re.MULTILINE),
    re.compile(r"^\s*\d+\.\s+", re.MULTILINE),
    re.compile(r"^\s*[a-z]\.\s+", re.MULTILINE),
)

_NON_ALNUM = re.compile(r"[^a-z0-9]")

MIN_PHRASE_WORDS = 2
MAX_PHRASE_WORDS = 5
MIN_PHRASE_CHARS = 10


def count_emojis(text: str) -> int:
    return len(EMOJI_PATTERN.findall(text))


def avg_sentence_length(text: str) -> float:
    """Mean words per sentence; 0 for blank text."""
    if not text or not text.strip():
        return 0.0

    sentences = [s.strip() for s in SENTENCE_SPLIT.split(text)]
    sentences = [s for s in sentences if s]
    if not sentences:
        return 0.0

    total_words = sum(len(s.split()) for s in sentences)
    return total_words / len(sentences)


def count_paragraphs(text: str) -> int:
    if not text or not text.strip():
        return 0
    return len([p for p in PARAGRAPH_SPLIT.split(text) if p.strip()])


def has_bullet_points(text: str) -> bool:
    return any(pattern.search(text) for pattern in BULLET_PATTERNS)


def extract_words(text: str) -> list[str]:
    """Lower-cased words with punctuation stripped."""
    words = (_NON_ALNUM.sub("", w) for w in text.lower().split())
    return [w for w in words if w]


def avg_word_length(text: str) -> float:
    words = extract_words(text)
    if not words:
        return 0.0
    return sum(len(w) for w in words) / len(words)


def extract_phrases(text: str) -> list[str]:
    """
    All 2-5 word n-grams of at least 10 characters, in order of
    n-gram size then position. Duplicates are kept.
    """
    words = extract_words(text)
    phrases = []
    for size in range(MIN_PHRASE_WORDS, MAX_PHRASE_WORDS + 1):
        for i in range(len(words) - size + 1):
            phrase = " ".join(words[i:i + size])
            if len(phrase) >= MIN_PHRASE_CHARS:
                phrases.append(phrase)
    return phrases
