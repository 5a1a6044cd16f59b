"""Boundary with the legacy extraction collaborator.

The scraper/OCR tooling that reads the legacy site is external; this module
only consumes what it produces: ``(raw_title, extracted_date_text,
source_confidence)`` rows, handed over in memory or as CSV, Excel or JSON
files.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol, Sequence

import pandas as pd
from tenacity import AsyncRetrying, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from .config import settings

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """Raised when legacy records cannot be obtained."""
    pass


class SourceConfidence(str, Enum):
    """How the legacy text was obtained."""
    TEXT = "text"
    OCR = "ocr"


class FileType(str, Enum):
    """Supported extraction output files."""
    CSV = "csv"
    EXCEL = "excel"
    JSON = "json"
    UNKNOWN = "unknown"


TITLE_COLUMNS = ("raw_title", "title")
DATE_COLUMNS = ("extracted_date_text", "date_text", "dateText")
CONFIDENCE_COLUMNS = ("source_confidence", "confidence")


@dataclass(frozen=True)
class LegacyRecord:
    """One program as seen on the legacy site."""
    raw_title: str
    extracted_date_text: str = ""
    source_confidence: SourceConfidence = SourceConfidence.TEXT

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> LegacyRecord:
        """Build a record from a loosely-named row (CSV/Excel/JSON).

        Raises:
            ValueError: If the title is blank or the confidence is unknown
        """
        title = _first_value(row, TITLE_COLUMNS)
        if not title:
            raise ValueError("row has no title")

        confidence = _first_value(row, CONFIDENCE_COLUMNS) or SourceConfidence.TEXT.value
        return cls(
            raw_title=title,
            extracted_date_text=_first_value(row, DATE_COLUMNS),
            source_confidence=SourceConfidence(confidence.lower()),
        )


def _first_value(row: Mapping[str, Any], columns: Sequence[str]) -> str:
    for column in columns:
        value = row.get(column)
        if value is None:
            continue
        text = str(value).strip()
        if text and text.lower() != "nan":
            return text
    return ""


class LegacySource(Protocol):
    """Anything that can hand over a batch of legacy records."""

    name: str

    def fetch(self) -> list[LegacyRecord]:
        ...


class StaticLegacySource:
    """Records already held in memory."""

    def __init__(self, records: Iterable[LegacyRecord], name: str = "memory") -> None:
        self.name = name
        self._records = list(records)

    def fetch(self) -> list[LegacyRecord]:
        return list(self._records)


def detect_file_type(filename: str) -> FileType:
    """Detect file type from the filename extension."""
    filename_lower = filename.lower()

    if filename_lower.endswith('.csv'):
        return FileType.CSV
    elif filename_lower.endswith(('.xls', '.xlsx', '.xlsm')):
        return FileType.EXCEL
    elif filename_lower.endswith('.json'):
        return FileType.JSON
    return FileType.UNKNOWN


class FileLegacySource:
    """Extraction output written to disk by the scraper/OCR run."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.name = self.path.name

    def _read_frame(self) -> pd.DataFrame:
        file_type = detect_file_type(self.path.name)

        if file_type == FileType.CSV:
            return pd.read_csv(self.path, encoding='utf-8', dtype=str, keep_default_na=False)
        elif file_type == FileType.EXCEL:
            return pd.read_excel(self.path, dtype=str, engine='openpyxl')
        elif file_type == FileType.JSON:
            return pd.read_json(self.path, orient='records', dtype=False, convert_dates=False)
        raise ExtractionError(f"Unsupported extraction file type: {self.path}")

    def fetch(self) -> list[LegacyRecord]:
        """Read all records from the file.

        Rows without a title are skipped with a warning.

        Raises:
            ExtractionError: If the file cannot be read or a row is malformed
        """
        try:
            df = self._read_frame()
        except ExtractionError:
            raise
        except Exception as e:
            logger.error(f"Reading {self.path} failed: {e}")
            raise ExtractionError(f"Failed to read {self.path}: {e}") from e

        df = df.fillna("")
        records: list[LegacyRecord] = []
        for row_number, row in enumerate(df.to_dict('records'), start=1):
            if not _first_value(row, TITLE_COLUMNS):
                logger.warning(f"{self.name}: row {row_number} has no title, skipping")
                continue
            try:
                records.append(LegacyRecord.from_row(row))
            except ValueError as e:
                raise ExtractionError(f"{self.name}: row {row_number} is malformed: {e}") from e

        logger.info(f"Read {len(records)} legacy records from {self.name}")
        return records


async def _fetch_with_retry(
    source: LegacySource,
    *,
    attempts: int,
    wait_min: float,
    wait_max: float,
) -> list[LegacyRecord]:
    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=wait_min, max=wait_max),
        # malformed input fails the same way every time
        retry=retry_if_not_exception_type(ExtractionError),
        reraise=True,
    )
    try:
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(f"Retrying {source.name} (attempt {attempt.retry_state.attempt_number})")
                return await asyncio.to_thread(source.fetch)
    except ExtractionError:
        raise
    except Exception as e:
        logger.error(f"Extraction from {source.name} failed after {attempts} attempts: {e}")
        raise ExtractionError(f"Extraction from {source.name} failed: {e}") from e
    return []


async def collect_legacy_records(
    sources: Sequence[LegacySource],
    *,
    max_workers: int | None = None,
    attempts: int | None = None,
    wait_min: float | None = None,
    wait_max: float | None = None,
) -> list[LegacyRecord]:
    """Fetch every source with bounded concurrency and retries.

    Args:
        sources: Extraction sources (pages, files, ...)
        max_workers: Sources fetched at once (default from config)
        attempts: Fetch attempts per source (default from config)
        wait_min: Minimum backoff in seconds (default from config)
        wait_max: Maximum backoff in seconds (default from config)

    Returns:
        Records of all sources, in source order

    Raises:
        ExtractionError: If any source still fails after its last attempt
    """
    cfg = settings.extraction
    semaphore = asyncio.Semaphore(max_workers or cfg.max_workers)

    async def _bounded(source: LegacySource) -> list[LegacyRecord]:
        async with semaphore:
            return await _fetch_with_retry(
                source,
                attempts=attempts or cfg.attempts,
                wait_min=cfg.wait_min if wait_min is None else wait_min,
                wait_max=cfg.wait_max if wait_max is None else wait_max,
            )

    batches = await asyncio.gather(*(_bounded(source) for source in sources))
    records = [record for batch in batches for record in batch]
    logger.info(f"Collected {len(records)} legacy records from {len(sources)} sources")
    return records
