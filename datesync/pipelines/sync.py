"""Sync orchestration: legacy records → matched programs → backed-up writes.

Implements the run protocol:
1. Load eligible target programs
2. Match every legacy record (no I/O)
3. Plan field updates from the legacy date text
4. dry-run: report only
5. apply: snapshot the table, then write all updates in one transaction
6. restore: put a snapshot back, bypassing matching
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from ..backup import BackupError, BackupManager, BackupSnapshot, RestoreError
from ..config import settings
from ..db import session_factory
from ..extraction import LegacyRecord
from ..models import SYNCABLE_FIELDS, Program
from .dates import parse_date_text, proposed_fields
from .matching import Matched, MatchResult, TargetProgram, Thresholds, TitleIndex, match

logger = logging.getLogger(__name__)


class SyncMode(str, Enum):
    """What a run is allowed to do."""
    DRY_RUN = "dry-run"
    APPLY = "apply"
    RESTORE = "restore"


class RunStatus(str, Enum):
    """Overall run status; unmatched/ambiguous records never fail a run."""
    OK = "ok"
    FAILED = "failed"


class SkipReason(str, Enum):
    """Why a matched record was not written."""
    NO_DATE = "no_date"
    CONFLICT = "conflict"
    ALREADY_DATED = "already_dated"


class WriteError(Exception):
    """Raised when the update transaction fails; nothing was written."""
    pass


@dataclass
class RecordOutcome:
    """Per-record detail of a run."""
    legacy: LegacyRecord
    result: MatchResult
    proposed: dict[str, object] = field(default_factory=dict)
    changes: dict[str, object] = field(default_factory=dict)
    written: bool = False
    skip_reason: SkipReason | None = None


@dataclass
class SyncRun:
    """Report of one run."""
    mode: SyncMode
    thresholds: Thresholds | None = None
    status: RunStatus = RunStatus.OK
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    results: list[RecordOutcome] = field(default_factory=list)
    updated_count: int = 0
    unchanged_count: int = 0
    errors: list[str] = field(default_factory=list)
    backup: BackupSnapshot | None = None
    pruned_backups: list[str] = field(default_factory=list)
    restored_rows: int | None = None

    def _count(self, outcome: str) -> int:
        return sum(1 for r in self.results if r.result.outcome == outcome)

    @property
    def matched_count(self) -> int:
        return self._count("matched")

    @property
    def ambiguous_count(self) -> int:
        return self._count("ambiguous")

    @property
    def unmatched_count(self) -> int:
        return self._count("unmatched")

    @property
    def skipped_count(self) -> int:
        return sum(1 for r in self.results if r.skip_reason is not None)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.OK

    def fail(self, message: str) -> None:
        self.status = RunStatus.FAILED
        self.errors.append(message)

    def finish(self) -> SyncRun:
        self.finished_at = datetime.now(timezone.utc)
        return self


async def load_target_programs(session: AsyncSession) -> list[TargetProgram]:
    """Load every program as a match candidate, ordered by id.

    The candidate set never depends on program dates, so a record matches
    the same program before and after its dates are written.
    """
    result = await session.execute(select(Program).order_by(Program.id))
    targets = [TargetProgram.from_model(p) for p in result.scalars().all()]
    logger.info(f"Loaded {len(targets)} target programs")
    return targets


def match_records(
    records: Sequence[LegacyRecord],
    targets: Sequence[TargetProgram],
    thresholds: Thresholds,
    *,
    today: date | None = None,
) -> list[RecordOutcome]:
    """Match every legacy record against the same candidate set."""
    index = TitleIndex(targets)
    return [
        RecordOutcome(legacy=record, result=match(record, targets, thresholds, index=index, today=today))
        for record in records
    ]


def plan_updates(
    outcomes: Sequence[RecordOutcome],
    *,
    today: date,
    with_status: bool,
    only_missing_dates: bool = False,
) -> dict[int, dict[str, object]]:
    """Changed field values per target program id.

    Matched records without a parseable date are skipped. When several
    records matched the same program with different values, all of them
    are skipped rather than letting input order pick a winner. With
    ``only_missing_dates``, programs that already have a start date are
    not written; they still count as unchanged when nothing would change.
    """
    by_target: dict[int, list[RecordOutcome]] = defaultdict(list)
    targets: dict[int, TargetProgram] = {}

    for outcome in outcomes:
        if not isinstance(outcome.result, Matched):
            continue
        date_range = parse_date_text(outcome.legacy.extracted_date_text, today=today)
        outcome.proposed = proposed_fields(date_range, today=today, with_status=with_status)
        if not outcome.proposed:
            outcome.skip_reason = SkipReason.NO_DATE
            continue
        target = outcome.result.target
        by_target[target.id].append(outcome)
        targets[target.id] = target

    plan: dict[int, dict[str, object]] = {}
    for target_id, group in by_target.items():
        distinct = {tuple(sorted(o.proposed.items())) for o in group}
        if len(distinct) > 1:
            logger.warning(
                f"{len(group)} legacy records matched program {target_id} with conflicting dates, skipping"
            )
            for outcome in group:
                outcome.skip_reason = SkipReason.CONFLICT
            continue

        target = targets[target_id]
        changes = {k: v for k, v in group[0].proposed.items() if getattr(target, k) != v}
        if changes and only_missing_dates and target.start_date is not None:
            for outcome in group:
                outcome.skip_reason = SkipReason.ALREADY_DATED
            continue
        for outcome in group:
            outcome.changes = dict(changes)
        plan[target_id] = changes

    return plan


async def apply_updates(engine: AsyncEngine, updates: dict[int, dict[str, object]]) -> int:
    """Write all updates in a single transaction.

    Args:
        engine: Database engine
        updates: Changed values per program id (empty dicts are ignored)

    Returns:
        Number of programs updated

    Raises:
        WriteError: If any update fails; the transaction is rolled back
    """
    writes = {program_id: values for program_id, values in updates.items() if values}
    if not writes:
        return 0

    table = Program.__tablename__
    try:
        async with session_factory(engine)() as session:
            async with session.begin():
                for program_id, values in writes.items():
                    unknown = set(values) - set(SYNCABLE_FIELDS)
                    if unknown:
                        raise WriteError(f"Refusing to write non-syncable columns: {', '.join(sorted(unknown))}")
                    result = await session.execute(
                        update(Program).where(Program.id == program_id).values(**values)
                    )
                    if result.rowcount != 1:
                        raise WriteError(f"Program {program_id} not found in {table!r}")
    except Exception as e:
        logger.error(f"Write to {table!r} rolled back ({len(writes)} records attempted): {e}")
        raise WriteError(f"Write to {table!r} rolled back ({len(writes)} records attempted): {e}") from e

    logger.info(f"Updated {len(writes)} programs")
    return len(writes)


async def run_sync(
    engine: AsyncEngine,
    records: Sequence[LegacyRecord],
    *,
    mode: SyncMode = SyncMode.DRY_RUN,
    thresholds: Thresholds | None = None,
    only_missing_dates: bool | None = None,
    derive_status: bool | None = None,
    today: date | None = None,
    backups: BackupManager | None = None,
) -> SyncRun:
    """Execute a dry-run or apply run for a batch of legacy records.

    Args:
        engine: Database engine of the program store
        records: Legacy records from the extraction collaborator
        mode: ``DRY_RUN`` (no writes, no backup) or ``APPLY``
        thresholds: Matching thresholds (configured defaults if None)
        only_missing_dates: Only write programs that have no start date yet
        derive_status: Also write a status derived from the dates
        today: Reference day for year-less dates and status derivation
        backups: Backup manager (one bound to ``engine`` if None)

    Returns:
        SyncRun report; ``status`` is FAILED if the write transaction failed

    Raises:
        BackupError: If the pre-write snapshot cannot be created; nothing
            has been written in that case
    """
    if mode == SyncMode.RESTORE:
        raise ValueError("restore runs go through run_restore()")

    thresholds = thresholds or Thresholds.from_settings()
    only_missing_dates = settings.sync.only_missing_dates if only_missing_dates is None else only_missing_dates
    derive_status = settings.sync.derive_status if derive_status is None else derive_status
    today = today or date.today()
    table = Program.__tablename__

    run = SyncRun(mode=mode, thresholds=thresholds)
    logger.info(
        f"Starting {mode.value} run: {len(records)} legacy records "
        f"(accept={thresholds.accept}, margin={thresholds.ambiguity_margin})"
    )

    async with session_factory(engine)() as session:
        targets = await load_target_programs(session)

    run.results = match_records(records, targets, thresholds, today=today)
    plan = plan_updates(
        run.results,
        today=today,
        with_status=derive_status,
        only_missing_dates=only_missing_dates,
    )
    writes = {program_id: changes for program_id, changes in plan.items() if changes}
    run.unchanged_count = len(plan) - len(writes)

    logger.info(
        f"Matched {run.matched_count}, ambiguous {run.ambiguous_count}, "
        f"unmatched {run.unmatched_count}; {len(writes)} programs to update"
    )

    if mode == SyncMode.DRY_RUN or not writes:
        return run.finish()

    backups = backups or BackupManager(engine)
    run.backup = await backups.create_backup(table)

    try:
        run.updated_count = await apply_updates(engine, writes)
    except WriteError as e:
        run.fail(str(e))
        return run.finish()

    for outcome in run.results:
        if outcome.changes:
            outcome.written = True

    keep_last = settings.backup.keep_last
    if settings.backup.prune_after_apply and keep_last:
        try:
            run.pruned_backups = await backups.prune_backups(table, keep_last)
        except BackupError as e:
            logger.warning(f"Pruning old backups failed: {e}")
            run.errors.append(str(e))

    return run.finish()


async def run_restore(
    engine: AsyncEngine,
    *,
    backup_name: str | None = None,
    table: str | None = None,
    backups: BackupManager | None = None,
) -> SyncRun:
    """Restore a snapshot of the program table.

    Args:
        engine: Database engine of the program store
        backup_name: Snapshot to restore; the most recent one if None
        table: Live table (defaults to the programs table)
        backups: Backup manager (one bound to ``engine`` if None)

    Returns:
        SyncRun report in ``RESTORE`` mode
    """
    table = table or Program.__tablename__
    backups = backups or BackupManager(engine)
    run = SyncRun(mode=SyncMode.RESTORE)

    try:
        if backup_name:
            snapshot = await backups.get_backup(table, backup_name)
        else:
            snapshot = await backups.latest_backup(table)
    except BackupError as e:
        run.fail(str(e))
        return run.finish()

    if snapshot is None:
        run.fail(f"No backup of {table!r} found" + (f" named {backup_name!r}" if backup_name else ""))
        return run.finish()

    run.backup = snapshot
    try:
        run.restored_rows = await backups.restore_backup(snapshot)
    except RestoreError as e:
        run.fail(str(e))

    return run.finish()
