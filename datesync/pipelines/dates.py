"""Parsing of legacy date text into date ranges, and status derivation.

Legacy pages (and OCR over their posters) write dates in several Korean and
numeric forms:

- ``2024년 3월 15일``, ``24년 3월 15일``
- ``2024.03.15``, ``2024-03-15``, ``2024/3/15``, ``24.03.15``, ``22. 9. 23``
- ``3월 15일`` (no year)

Ranges are written with ``~`` or dashes between two dates; the second date
may omit the year (``2024년 3월 15일 ~ 4월 30일``).
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from enum import Enum

from ..models import ProgramStatus

logger = logging.getLogger(__name__)

MIN_YEAR = 2000
MAX_YEAR = 2100

_DATE_RE = re.compile(
    r'(?<!\d)(?P<ky>\d{4}|\d{2})\s*년\s*(?P<km>\d{1,2})\s*월\s*(?P<kd>\d{1,2})(?!\d)\s*일?'
    r'|(?<!\d)(?P<ny>\d{4}|\d{2})\s*[./-]\s*(?P<nm>\d{1,2})\s*[./-]\s*(?P<nd>\d{1,2})(?!\d)'
    r'|(?<!\d)(?P<mm>\d{1,2})\s*월\s*(?P<md>\d{1,2})(?!\d)\s*일?'
)

_RECRUIT_RE = re.compile(r'모집|접수|신청')


class RangeKind(str, Enum):
    """What a parsed range describes."""
    PROGRAM = "program"
    RECRUIT = "recruit"


@dataclass(frozen=True)
class DateRange:
    """Start/end dates parsed from legacy text."""
    start: date | None = None
    end: date | None = None
    kind: RangeKind = RangeKind.PROGRAM

    @property
    def is_empty(self) -> bool:
        return self.start is None


@dataclass(frozen=True)
class _Found:
    day: date
    year_inherited: bool


def _expand_year(raw: str) -> int:
    year = int(raw)
    return year + 2000 if len(raw) == 2 else year


def _guess_year(month: int, today: date) -> int:
    """Year for a year-less first date: assume the recent past."""
    if month > today.month + 3:
        return today.year - 1
    return today.year


def _make_date(year: int, month: int, day: int) -> date | None:
    if not MIN_YEAR <= year <= MAX_YEAR:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _find_dates(text: str, today: date) -> list[_Found]:
    found: list[_Found] = []
    for m in _DATE_RE.finditer(text):
        if m.group('ky'):
            parsed = _make_date(_expand_year(m.group('ky')), int(m.group('km')), int(m.group('kd')))
            inherited = False
        elif m.group('ny'):
            parsed = _make_date(_expand_year(m.group('ny')), int(m.group('nm')), int(m.group('nd')))
            inherited = False
        else:
            month, day = int(m.group('mm')), int(m.group('md'))
            year = found[-1].day.year if found else _guess_year(month, today)
            parsed = _make_date(year, month, day)
            inherited = True

        if parsed is None:
            logger.debug(f"Ignoring invalid date {m.group(0)!r}")
            continue
        found.append(_Found(parsed, inherited))
        if len(found) == 2:
            break
    return found


def parse_date_text(text: str | None, *, today: date | None = None) -> DateRange:
    """Parse the first date (or date range) found in ``text``.

    Args:
        text: Date text extracted from a legacy page or poster
        today: Reference day for year-less dates (defaults to today)

    Returns:
        DateRange; empty when no valid date is present
    """
    if not text or not text.strip():
        return DateRange()

    today = today or date.today()
    kind = RangeKind.RECRUIT if _RECRUIT_RE.search(text) else RangeKind.PROGRAM
    found = _find_dates(text, today)

    if not found:
        return DateRange(kind=kind)

    start = found[0].day
    if len(found) == 1:
        return DateRange(start=start, end=start, kind=kind)

    end = found[1].day
    if end < start and found[1].year_inherited:
        # "12월 20일 ~ 1월 10일" crosses a year boundary
        end = _make_date(end.year + 1, end.month, end.day) or end
    if end < start:
        logger.warning(f"Date range ends before it starts: {text!r}")
        end = start
    return DateRange(start=start, end=end, kind=kind)


def days_outside(day: date, start: date | None, end: date | None) -> int | None:
    """Days between ``day`` and the range ``[start, end]``; 0 inside it.

    Returns None when the range has no dates at all.
    """
    start = start or end
    end = end or start
    if start is None or end is None:
        return None
    if day < start:
        return (start - day).days
    if day > end:
        return (day - end).days
    return 0


def derive_status(date_range: DateRange, today: date) -> ProgramStatus | None:
    """Status implied by where ``today`` falls relative to the range."""
    if date_range.is_empty:
        return None

    start = date_range.start
    end = date_range.end or start

    if date_range.kind == RangeKind.RECRUIT:
        if today < start:
            return ProgramStatus.UPCOMING
        if today <= end:
            return ProgramStatus.RECRUITING
        return ProgramStatus.RECRUIT_CLOSED

    if today < start:
        return ProgramStatus.UPCOMING
    if today <= end:
        return ProgramStatus.ONGOING
    return ProgramStatus.COMPLETED


def proposed_fields(
    date_range: DateRange,
    *,
    today: date,
    with_status: bool = True,
) -> dict[str, object]:
    """Program columns to write for a parsed range.

    Returns an empty dict when the range is empty.
    """
    if date_range.is_empty:
        return {}

    if date_range.kind == RangeKind.RECRUIT:
        fields: dict[str, object] = {
            "recruit_start_date": date_range.start,
            "recruit_end_date": date_range.end or date_range.start,
        }
    else:
        fields = {
            "start_date": date_range.start,
            "end_date": date_range.end or date_range.start,
        }

    if with_status:
        status = derive_status(date_range, today)
        if status is not None:
            fields["status"] = status.value
    return fields
