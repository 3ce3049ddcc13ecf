"""Utility functions and helpers"""

from repovoice.utils.text import count_emojis

__all__ = [
    "count_emojis",
]
