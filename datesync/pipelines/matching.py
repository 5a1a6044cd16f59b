"""Matching pipeline: legacy record → target program by title similarity.

Ranks every candidate program for one legacy record and decides between a
confident match, an ambiguous shortlist for operator review, or no match.
Matching performs no I/O; candidates are loaded by the sync orchestrator.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, Sequence, Union

from ..config import settings
from ..extraction import LegacyRecord
from ..models import Program
from .dates import days_outside, parse_date_text
from .normalization import normalize
from .similarity import similarity

logger = logging.getLogger(__name__)

# Score gaps are compared after rounding so 0.85 - 0.80 counts as 0.05.
GAP_PRECISION = 9

Scorer = Callable[[str, str], float]


@dataclass(frozen=True)
class Thresholds:
    """Acceptance threshold and ambiguity margin for one run."""
    accept: float = 0.80
    ambiguity_margin: float = 0.05

    def __post_init__(self) -> None:
        if not 0.0 <= self.accept <= 1.0:
            raise ValueError(f"accept must be within [0, 1], got {self.accept}")
        if not 0.0 <= self.ambiguity_margin <= 1.0:
            raise ValueError(f"ambiguity_margin must be within [0, 1], got {self.ambiguity_margin}")

    @classmethod
    def from_settings(
        cls,
        *,
        accept: float | None = None,
        ambiguity_margin: float | None = None,
    ) -> Thresholds:
        """Configured thresholds with optional per-run overrides."""
        return cls(
            accept=settings.matching.accept if accept is None else accept,
            ambiguity_margin=(
                settings.matching.ambiguity_margin if ambiguity_margin is None else ambiguity_margin
            ),
        )


@dataclass(frozen=True)
class TargetProgram:
    """Read-only snapshot of a program row used as a match candidate."""
    id: int
    title: str
    status: str | None = None
    recruit_start_date: date | None = None
    recruit_end_date: date | None = None
    start_date: date | None = None
    end_date: date | None = None

    @classmethod
    def from_model(cls, program: Program) -> TargetProgram:
        return cls(
            id=program.id,
            title=program.title,
            status=program.status,
            recruit_start_date=program.recruit_start_date,
            recruit_end_date=program.recruit_end_date,
            start_date=program.start_date,
            end_date=program.end_date,
        )


@dataclass(frozen=True)
class MatchCandidate:
    """One scored (legacy, target) pair."""
    legacy: LegacyRecord
    target: TargetProgram
    similarity: float


@dataclass(frozen=True)
class Matched:
    """Confident match; safe to apply."""
    target: TargetProgram
    similarity: float
    outcome: str = field(default="matched", init=False)


@dataclass(frozen=True)
class Ambiguous:
    """Several candidates too close to call; needs operator review."""
    top_candidates: tuple[MatchCandidate, ...]
    outcome: str = field(default="ambiguous", init=False)

    @property
    def best_similarity(self) -> float:
        return self.top_candidates[0].similarity


@dataclass(frozen=True)
class Unmatched:
    """No candidate reached the acceptance threshold."""
    best_similarity: float
    outcome: str = field(default="unmatched", init=False)


MatchResult = Union[Matched, Ambiguous, Unmatched]


class TitleIndex:
    """Normalized candidate titles, cached by program id for one run."""

    def __init__(self, candidates: Iterable[TargetProgram] = ()) -> None:
        self._titles: dict[int, str] = {}
        for candidate in candidates:
            self.get(candidate)

    def get(self, target: TargetProgram) -> str:
        title = self._titles.get(target.id)
        if title is None:
            title = normalize(target.title)
            self._titles[target.id] = title
        return title

    def __len__(self) -> int:
        return len(self._titles)


def _date_key(target: TargetProgram, legacy_day: date | None) -> tuple[int, int]:
    """Sort key preferring targets whose dates lie closest to the legacy date."""
    if legacy_day is None:
        return (0, 0)
    days = days_outside(legacy_day, target.start_date, target.end_date)
    if days is None:
        days = days_outside(legacy_day, target.recruit_start_date, target.recruit_end_date)
    if days is None:
        return (1, 0)
    return (0, days)


def rank_candidates(
    legacy: LegacyRecord,
    candidates: Sequence[TargetProgram],
    *,
    index: TitleIndex | None = None,
    scorer: Scorer = similarity,
    today: date | None = None,
) -> list[MatchCandidate]:
    """Score and order all candidates for one legacy record.

    Order: similarity descending, then date proximity to the legacy date,
    then target id ascending.
    """
    index = index if index is not None else TitleIndex()
    legacy_title = normalize(legacy.raw_title)
    legacy_day = parse_date_text(legacy.extracted_date_text, today=today).start

    scored = [
        (MatchCandidate(legacy, target, scorer(legacy_title, index.get(target))), target)
        for target in candidates
    ]
    scored.sort(key=lambda pair: (-pair[0].similarity, _date_key(pair[1], legacy_day), pair[1].id))
    return [candidate for candidate, _ in scored]


def match(
    legacy: LegacyRecord,
    candidates: Sequence[TargetProgram],
    thresholds: Thresholds | None = None,
    *,
    index: TitleIndex | None = None,
    scorer: Scorer = similarity,
    today: date | None = None,
) -> MatchResult:
    """Decide the outcome for one legacy record.

    Args:
        legacy: Extracted legacy record
        candidates: Eligible target programs
        thresholds: Acceptance/ambiguity thresholds (configured defaults if None)
        index: Shared normalized-title cache for the run
        scorer: Similarity function over normalized titles
        today: Reference day for year-less legacy dates

    Returns:
        Exactly one of Matched, Ambiguous or Unmatched
    """
    thresholds = thresholds or Thresholds.from_settings()

    if not normalize(legacy.raw_title) or not candidates:
        return Unmatched(best_similarity=0.0)

    ranked = rank_candidates(legacy, candidates, index=index, scorer=scorer, today=today)
    best = ranked[0]

    if best.similarity < thresholds.accept:
        logger.debug(f"Unmatched {legacy.raw_title!r} (best {best.similarity:.3f})")
        return Unmatched(best_similarity=best.similarity)

    if len(ranked) > 1:
        gap = round(best.similarity - ranked[1].similarity, GAP_PRECISION)
        if gap < thresholds.ambiguity_margin:
            close = tuple(
                c for c in ranked
                if round(best.similarity - c.similarity, GAP_PRECISION) < thresholds.ambiguity_margin
            )
            logger.debug(f"Ambiguous {legacy.raw_title!r}: {len(close)} candidates within margin")
            return Ambiguous(top_candidates=close)

    logger.debug(f"Matched {legacy.raw_title!r} -> {best.target.title!r} ({best.similarity:.3f})")
    return Matched(target=best.target, similarity=best.similarity)
