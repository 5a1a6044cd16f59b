"""Edit-distance similarity between normalized titles.

Distances are computed over Unicode code points by rapidfuzz, so a Hangul
syllable counts as one character regardless of its UTF-8 width.
"""
from __future__ import annotations

from rapidfuzz.distance import Levenshtein


def levenshtein(a: str, b: str) -> int:
    """Unit-cost insertion/deletion/substitution distance."""
    return Levenshtein.distance(a, b)


def similarity(a: str, b: str) -> float:
    """Similarity in ``[0, 1]``: ``1 - distance / max(len(a), len(b), 1)``.

    Two empty strings are identical (1.0); an empty string against a
    non-empty one scores 0.0. Inputs are compared as given, so callers
    should pass normalized titles.
    """
    longest = max(len(a), len(b), 1)
    return 1.0 - levenshtein(a, b) / longest
