"""Legacy date text parsing and status derivation."""
from datetime import date

import pytest

from datesync.models import ProgramStatus
from datesync.pipelines.dates import (
    DateRange,
    RangeKind,
    days_outside,
    derive_status,
    parse_date_text,
    proposed_fields,
)

TODAY = date(2024, 6, 1)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("2024년 3월 15일", date(2024, 3, 15)),
        ("24년 3월 15일", date(2024, 3, 15)),
        ("2024.03.15", date(2024, 3, 15)),
        ("2024-03-15", date(2024, 3, 15)),
        ("2024/3/15", date(2024, 3, 15)),
        ("24.03.15", date(2024, 3, 15)),
        ("22. 9. 23", date(2022, 9, 23)),
        ("일시: 2024. 3. 15 (금) 오후 7시", date(2024, 3, 15)),
    ],
)
def test_single_date_formats(text, expected):
    result = parse_date_text(text, today=TODAY)
    assert result.start == expected
    assert result.end == expected
    assert result.kind == RangeKind.PROGRAM


def test_range_with_year_less_end():
    result = parse_date_text("2024년 3월 15일 ~ 4월 30일", today=TODAY)
    assert (result.start, result.end) == (date(2024, 3, 15), date(2024, 4, 30))


def test_numeric_range():
    result = parse_date_text("24.03.15 - 24.04.01", today=TODAY)
    assert (result.start, result.end) == (date(2024, 3, 15), date(2024, 4, 1))


def test_year_less_range_rolls_over_new_year():
    result = parse_date_text("12월 20일 ~ 1월 10일", today=date(2024, 12, 1))
    assert (result.start, result.end) == (date(2024, 12, 20), date(2025, 1, 10))


def test_year_less_date_far_ahead_means_last_year():
    assert parse_date_text("11월 1일", today=date(2024, 3, 1)).start == date(2023, 11, 1)
    assert parse_date_text("5월 1일", today=date(2024, 3, 1)).start == date(2024, 5, 1)


def test_reversed_explicit_range_collapses_to_start():
    result = parse_date_text("2024.03.10 ~ 2024.03.01", today=TODAY)
    assert (result.start, result.end) == (date(2024, 3, 10), date(2024, 3, 10))


def test_recruitment_range_detected():
    result = parse_date_text("모집기간: 2024.03.01 ~ 2024.03.10", today=TODAY)
    assert result.kind == RangeKind.RECRUIT
    assert (result.start, result.end) == (date(2024, 3, 1), date(2024, 3, 10))


@pytest.mark.parametrize("text", [None, "", "   ", "추후 공지", "2024.13.45", "1999.01.01"])
def test_no_valid_date(text):
    assert parse_date_text(text, today=TODAY).is_empty


def test_days_outside():
    start, end = date(2024, 3, 1), date(2024, 3, 31)
    assert days_outside(date(2024, 3, 15), start, end) == 0
    assert days_outside(date(2024, 2, 28), start, end) == 2
    assert days_outside(date(2024, 4, 2), start, end) == 2
    assert days_outside(date(2024, 3, 3), start, None) == 2
    assert days_outside(date(2024, 3, 3), None, None) is None


@pytest.mark.parametrize(
    "today, expected",
    [
        (date(2024, 2, 29), ProgramStatus.UPCOMING),
        (date(2024, 3, 1), ProgramStatus.ONGOING),
        (date(2024, 3, 31), ProgramStatus.ONGOING),
        (date(2024, 4, 1), ProgramStatus.COMPLETED),
    ],
)
def test_program_status(today, expected):
    program = DateRange(date(2024, 3, 1), date(2024, 3, 31))
    assert derive_status(program, today) == expected


@pytest.mark.parametrize(
    "today, expected",
    [
        (date(2024, 2, 29), ProgramStatus.UPCOMING),
        (date(2024, 3, 10), ProgramStatus.RECRUITING),
        (date(2024, 3, 11), ProgramStatus.RECRUIT_CLOSED),
    ],
)
def test_recruit_status(today, expected):
    recruit = DateRange(date(2024, 3, 1), date(2024, 3, 10), RangeKind.RECRUIT)
    assert derive_status(recruit, today) == expected


def test_empty_range_has_no_status():
    assert derive_status(DateRange(), TODAY) is None


def test_proposed_fields():
    program = DateRange(date(2024, 3, 1), date(2024, 3, 31))
    assert proposed_fields(program, today=TODAY) == {
        "start_date": date(2024, 3, 1),
        "end_date": date(2024, 3, 31),
        "status": "COMPLETED",
    }

    recruit = DateRange(date(2024, 6, 1), date(2024, 6, 10), RangeKind.RECRUIT)
    assert proposed_fields(recruit, today=TODAY, with_status=False) == {
        "recruit_start_date": date(2024, 6, 1),
        "recruit_end_date": date(2024, 6, 10),
    }

    assert proposed_fields(DateRange(), today=TODAY) == {}
