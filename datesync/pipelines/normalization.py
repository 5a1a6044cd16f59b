"""Title normalization for ko/en mixed program titles.

Handles Unicode compatibility forms, case folding, whitespace, bracketed
annotations, punctuation and trailing session markers ("3기", "2차").
"""
from __future__ import annotations

import logging
import re
import unicodedata

from config.title_markers import BRACKET_PAIRS, SESSION_PREFIXES, SESSION_UNITS

logger = logging.getLogger(__name__)


_WHITESPACE_RE = re.compile(r'\s+')
# Anything that is not a letter, digit, underscore or whitespace
_PUNCTUATION_RE = re.compile(r'[^\w\s]')

_BRACKET_RES = [
    re.compile(f'{re.escape(opening)}[^{re.escape(opening)}{re.escape(closing)}]*{re.escape(closing)}')
    for opening, closing in BRACKET_PAIRS
]

_UNITS = '|'.join(re.escape(u) for u in SESSION_UNITS)
_PREFIXES = '|'.join(re.escape(p) for p in SESSION_PREFIXES)

# "제 3기", "3기", "12차", "2회차"
_TRAILING_UNIT_RE = re.compile(rf'\s*(?:제\s*)?\d+\s*(?:{_UNITS})$')
# "시즌2", "season 3" but not "counterpart 2"
_TRAILING_PREFIX_RE = re.compile(rf'\s*(?<![a-z])(?:{_PREFIXES})\s*\d+$')


def normalize_whitespace(text: str) -> str:
    """Normalize whitespace: collapse runs (incl. full-width spaces), trim."""
    return _WHITESPACE_RE.sub(' ', text).strip()


def normalize_punctuation(text: str) -> str:
    """Replace punctuation and symbols (quotes, `+`, `·`, `-`, `/`, `!`) with spaces."""
    return _PUNCTUATION_RE.sub(' ', text)


def fold_case(text: str) -> str:
    """NFKC + case folding, re-normalized so the result is stable."""
    text = unicodedata.normalize('NFKC', text)
    text = text.casefold()
    return unicodedata.normalize('NFKC', text)


def strip_brackets(text: str) -> str:
    """Remove bracketed annotations such as ``(온라인)`` or ``【마감】``.

    Innermost pairs go first, so nested annotations are removed whole.
    Unbalanced brackets are left as-is.
    """
    while True:
        stripped = text
        for pattern in _BRACKET_RES:
            stripped = pattern.sub(' ', stripped)
        if stripped == text:
            return text
        text = stripped


def strip_session_markers(text: str) -> str:
    """Remove trailing cohort/session markers, possibly stacked ("3기 2차")."""
    text = text.strip()
    while True:
        stripped = _TRAILING_UNIT_RE.sub('', text)
        stripped = _TRAILING_PREFIX_RE.sub('', stripped).strip()
        if stripped == text:
            return text
        text = stripped


def normalize(raw: str | None) -> str:
    """Canonical comparable form of a program title.

    Steps, in order: compatibility normalization and case folding,
    whitespace collapse, bracket stripping, punctuation folding, trailing
    session marker removal.
    Never raises; returns ``""`` for empty input.

    Args:
        raw: Title as scraped or stored

    Returns:
        Normalized title
    """
    if not raw or not raw.strip():
        return ""

    text = fold_case(raw)
    text = normalize_whitespace(text)
    text = strip_brackets(text)
    text = normalize_punctuation(text)
    text = normalize_whitespace(text)
    text = strip_session_markers(text)
    return normalize_whitespace(text)
