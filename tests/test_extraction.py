"""Legacy record sources and concurrent collection."""
import json

import pytest

from datesync.extraction import (
    ExtractionError,
    FileLegacySource,
    FileType,
    LegacyRecord,
    SourceConfidence,
    StaticLegacySource,
    collect_legacy_records,
    detect_file_type,
)


class FlakySource:
    """Fails ``failures`` times, then returns its records."""

    def __init__(self, failures, records=(), name="flaky"):
        self.name = name
        self.failures = failures
        self.calls = 0
        self.records = list(records)

    def fetch(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("legacy site timed out")
        return list(self.records)


class MalformedSource:
    """Rejects its input on every call."""

    name = "malformed"

    def __init__(self):
        self.calls = 0

    def fetch(self):
        self.calls += 1
        raise ExtractionError("row 3 has no title")


def test_detect_file_type():
    assert detect_file_type("out.CSV") == FileType.CSV
    assert detect_file_type("out.xlsx") == FileType.EXCEL
    assert detect_file_type("out.json") == FileType.JSON
    assert detect_file_type("out.txt") == FileType.UNKNOWN


def test_record_from_loosely_named_row():
    record = LegacyRecord.from_row({"title": " 독서모임 ", "dateText": "3월 15일", "confidence": "OCR"})
    assert record == LegacyRecord("독서모임", "3월 15일", SourceConfidence.OCR)


def test_record_from_row_requires_title():
    with pytest.raises(ValueError):
        LegacyRecord.from_row({"title": "", "date_text": "2024.03.01"})


def test_csv_source(tmp_path):
    path = tmp_path / "legacy.csv"
    path.write_text(
        "raw_title,extracted_date_text,source_confidence\n"
        "인문학 아카데미 3기,2024.03.01 ~ 2024.03.31,text\n"
        ",2024.04.01,text\n"
        "독서모임,,ocr\n",
        encoding="utf-8",
    )

    records = FileLegacySource(path).fetch()

    assert records == [
        LegacyRecord("인문학 아카데미 3기", "2024.03.01 ~ 2024.03.31", SourceConfidence.TEXT),
        LegacyRecord("독서모임", "", SourceConfidence.OCR),
    ]


def test_json_source(tmp_path):
    path = tmp_path / "legacy.json"
    path.write_text(
        json.dumps(
            [
                {"title": "글쓰기 워크숍", "date_text": "2024년 5월 1일"},
                {"title": "독서모임", "date_text": "5월 3일", "confidence": "ocr"},
            ],
            ensure_ascii=False,
        ),
        encoding="utf-8",
    )

    records = FileLegacySource(path).fetch()

    assert [r.raw_title for r in records] == ["글쓰기 워크숍", "독서모임"]
    assert records[0].source_confidence == SourceConfidence.TEXT
    assert records[1].source_confidence == SourceConfidence.OCR


def test_malformed_row_raises(tmp_path):
    path = tmp_path / "legacy.csv"
    path.write_text("title,date_text,confidence\n독서모임,2024.03.01,handwritten\n", encoding="utf-8")

    with pytest.raises(ExtractionError):
        FileLegacySource(path).fetch()


def test_unsupported_file_raises(tmp_path):
    path = tmp_path / "legacy.txt"
    path.write_text("독서모임", encoding="utf-8")

    with pytest.raises(ExtractionError):
        FileLegacySource(path).fetch()


@pytest.mark.asyncio
async def test_collect_keeps_source_order():
    sources = [
        StaticLegacySource([LegacyRecord("a"), LegacyRecord("b")], name="first"),
        StaticLegacySource([LegacyRecord("c")], name="second"),
    ]

    records = await collect_legacy_records(sources, max_workers=1)

    assert [r.raw_title for r in records] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_collect_retries_transient_failures():
    source = FlakySource(failures=2, records=[LegacyRecord("독서모임")])

    records = await collect_legacy_records([source], attempts=3, wait_min=0, wait_max=0)

    assert records == [LegacyRecord("독서모임")]
    assert source.calls == 3


@pytest.mark.asyncio
async def test_collect_gives_up_after_last_attempt():
    source = FlakySource(failures=5)

    with pytest.raises(ExtractionError):
        await collect_legacy_records([source], attempts=2, wait_min=0, wait_max=0)
    assert source.calls == 2


@pytest.mark.asyncio
async def test_malformed_input_is_not_retried():
    source = MalformedSource()

    with pytest.raises(ExtractionError, match="row 3 has no title"):
        await collect_legacy_records([source], attempts=3, wait_min=0, wait_max=0)
    assert source.calls == 1
