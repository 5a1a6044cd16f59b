"""Run reports: pydantic models for JSON output and a plain-text table."""
from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field

from .backup import BackupSnapshot
from .pipelines.matching import Ambiguous, Matched, Unmatched
from .pipelines.sync import RecordOutcome, SyncRun

TITLE_WIDTH = 30


class CandidateDTO(BaseModel):
    """A candidate listed for operator review."""
    target_id: int
    title: str
    similarity: float


class RecordDTO(BaseModel):
    """Per-record detail."""
    legacy_title: str
    date_text: str
    source_confidence: str
    outcome: str
    target_id: int | None = None
    target_title: str | None = None
    similarity: float | None = None
    candidates: list[CandidateDTO] = Field(default_factory=list)
    proposed: dict[str, str] = Field(default_factory=dict)
    changes: dict[str, str] = Field(default_factory=dict)
    written: bool = False
    skip_reason: str | None = None


class BackupDTO(BaseModel):
    """Snapshot metadata."""
    name: str
    source_table: str
    created_at: str
    row_count: int


class SyncRunReport(BaseModel):
    """Externally visible report of one run."""
    mode: str
    status: str
    started_at: str
    finished_at: str | None = None
    accept: float | None = None
    ambiguity_margin: float | None = None
    total: int
    matched: int
    ambiguous: int
    unmatched: int
    updated: int
    unchanged: int
    skipped: int
    error_count: int
    errors: list[str] = Field(default_factory=list)
    records: list[RecordDTO] = Field(default_factory=list)
    backup: BackupDTO | None = None
    pruned_backups: list[str] = Field(default_factory=list)
    restored_rows: int | None = None

    @classmethod
    def from_run(cls, run: SyncRun) -> SyncRunReport:
        return cls(
            mode=run.mode.value,
            status=run.status.value,
            started_at=run.started_at.isoformat(),
            finished_at=run.finished_at.isoformat() if run.finished_at else None,
            accept=run.thresholds.accept if run.thresholds else None,
            ambiguity_margin=run.thresholds.ambiguity_margin if run.thresholds else None,
            total=len(run.results),
            matched=run.matched_count,
            ambiguous=run.ambiguous_count,
            unmatched=run.unmatched_count,
            updated=run.updated_count,
            unchanged=run.unchanged_count,
            skipped=run.skipped_count,
            error_count=run.error_count,
            errors=list(run.errors),
            records=[record_dto(r) for r in run.results],
            backup=backup_dto(run.backup) if run.backup else None,
            pruned_backups=list(run.pruned_backups),
            restored_rows=run.restored_rows,
        )


def _fmt(value: object) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def backup_dto(snapshot: BackupSnapshot) -> BackupDTO:
    return BackupDTO(
        name=snapshot.name,
        source_table=snapshot.source_table,
        created_at=snapshot.created_at.isoformat(),
        row_count=snapshot.row_count,
    )


def record_dto(outcome: RecordOutcome) -> RecordDTO:
    legacy = outcome.legacy
    dto = RecordDTO(
        legacy_title=legacy.raw_title,
        date_text=legacy.extracted_date_text,
        source_confidence=legacy.source_confidence.value,
        outcome=outcome.result.outcome,
        proposed={k: _fmt(v) for k, v in outcome.proposed.items()},
        changes={k: _fmt(v) for k, v in outcome.changes.items()},
        written=outcome.written,
        skip_reason=outcome.skip_reason.value if outcome.skip_reason else None,
    )

    result = outcome.result
    if isinstance(result, Matched):
        dto.target_id = result.target.id
        dto.target_title = result.target.title
        dto.similarity = round(result.similarity, 4)
    elif isinstance(result, Ambiguous):
        dto.similarity = round(result.best_similarity, 4)
        dto.candidates = [
            CandidateDTO(target_id=c.target.id, title=c.target.title, similarity=round(c.similarity, 4))
            for c in result.top_candidates
        ]
    elif isinstance(result, Unmatched):
        dto.similarity = round(result.best_similarity, 4)
    return dto


def _short(text: str | None, width: int = TITLE_WIDTH) -> str:
    if not text:
        return "-"
    return text if len(text) <= width else text[: width - 1] + "…"


def render_table(report: SyncRunReport) -> str:
    """Render a report for the terminal."""
    rule = "=" * 72
    lines = [
        rule,
        f"Program date sync: {report.mode} ({report.status})",
        rule,
    ]

    if report.mode != "restore":
        lines += [
            f"  thresholds      accept={report.accept} margin={report.ambiguity_margin}",
            f"  legacy records  {report.total}",
            f"  matched         {report.matched}",
            f"  ambiguous       {report.ambiguous}",
            f"  unmatched       {report.unmatched}",
            f"  updated         {report.updated}",
            f"  unchanged       {report.unchanged}",
            f"  skipped         {report.skipped}",
            f"  errors          {report.error_count}",
            "",
            f"  {'outcome':<10} {'score':>6}  {'legacy title':<{TITLE_WIDTH}}  {'target':<{TITLE_WIDTH}}  changes",
            "  " + "-" * 70,
        ]
        for record in report.records:
            score = f"{record.similarity:.3f}" if record.similarity is not None else "-"
            if record.skip_reason:
                detail = f"skipped: {record.skip_reason}"
            else:
                detail = ", ".join(f"{k}={v}" for k, v in record.changes.items()) or "-"
            lines.append(
                f"  {record.outcome:<10} {score:>6}  {_short(record.legacy_title):<{TITLE_WIDTH}}  "
                f"{_short(record.target_title):<{TITLE_WIDTH}}  {detail}"
            )
            for candidate in record.candidates:
                lines.append(f"  {'':<10} {candidate.similarity:>6.3f}    ? #{candidate.target_id} {_short(candidate.title)}")

    if report.backup:
        lines += [
            "",
            f"  backup          {report.backup.name} ({report.backup.row_count} rows)",
        ]
    if report.restored_rows is not None:
        lines.append(f"  restored rows   {report.restored_rows}")
    for name in report.pruned_backups:
        lines.append(f"  pruned          {name}")
    for error in report.errors:
        lines.append(f"  ERROR           {error}")

    lines.append(rule)
    return "\n".join(lines)
