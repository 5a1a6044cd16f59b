"""Table snapshots: create, list, restore, delete and prune.

A snapshot is a full copy of a live table in a sibling table named
``<table>_backup_<timestamp>``, e.g. ``programs_backup_2024-01-28T12-30-45-123456Z``.
The timestamp is UTC with fixed-width fields and ``:``/``.`` replaced by
``-``, so names sort chronologically and parse back to their creation time.
The naming convention is the only index of snapshots; there is no registry
table to drift out of date.
"""
from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

logger = logging.getLogger(__name__)

BACKUP_INFIX = "_backup_"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S-%fZ"
# PostgreSQL identifier limit; longer names are silently truncated
MAX_NAME_BYTES = 63

_NAME_RE = re.compile(
    rf'^(?P<table>.+){BACKUP_INFIX}(?P<ts>\d{{4}}-\d{{2}}-\d{{2}}T\d{{2}}-\d{{2}}-\d{{2}}-\d{{6}}Z)$'
)


class BackupError(Exception):
    """Raised when a snapshot cannot be created, listed or deleted."""
    pass


class RestoreError(Exception):
    """Raised when a snapshot cannot be restored; the live table is unchanged."""
    pass


@dataclass(frozen=True)
class BackupSnapshot:
    """A point-in-time copy of a table."""
    source_table: str
    name: str
    created_at: datetime
    row_count: int


class MonotonicClock:
    """UTC timestamps that strictly increase within the process.

    Two calls in the same microsecond get timestamps one microsecond apart,
    keeping snapshot names unique and ordered.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: datetime | None = None

    def now(self) -> datetime:
        with self._lock:
            current = datetime.now(timezone.utc)
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


_clock = MonotonicClock()


def backup_name(table: str, created_at: datetime) -> str:
    """Snapshot table name for ``table`` taken at ``created_at``."""
    created_at = created_at.astimezone(timezone.utc)
    return f"{table}{BACKUP_INFIX}{created_at.strftime(TIMESTAMP_FORMAT)}"


def parse_backup_name(name: str) -> tuple[str, datetime] | None:
    """Split a snapshot name into (source table, creation time).

    Returns None for names that do not follow the convention.
    """
    m = _NAME_RE.match(name)
    if not m:
        return None
    try:
        created_at = datetime.strptime(m.group('ts'), TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None
    return m.group('table'), created_at


class BackupManager:
    """Snapshot lifecycle for tables in one database."""

    def __init__(self, engine: AsyncEngine, clock: MonotonicClock | None = None) -> None:
        self.engine = engine
        self._clock = clock or _clock

    def _quote(self, name: str) -> str:
        return self.engine.dialect.identifier_preparer.quote_identifier(name)

    async def _table_names(self, conn: AsyncConnection) -> list[str]:
        return await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())

    async def _column_names(self, conn: AsyncConnection, table: str) -> list[str]:
        columns = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_columns(table))
        return [c["name"] for c in columns]

    async def _count(self, conn: AsyncConnection, table: str) -> int:
        result = await conn.execute(text(f"SELECT COUNT(*) FROM {self._quote(table)}"))
        return int(result.scalar_one())

    async def create_backup(self, table: str) -> BackupSnapshot:
        """Copy ``table`` into a new snapshot table.

        An empty source table gives a snapshot with ``row_count == 0``.

        Raises:
            BackupError: If the snapshot name would be too long, the source
                is missing, the name is taken, or the copy fails
        """
        created_at = self._clock.now()
        name = backup_name(table, created_at)
        if len(name.encode("utf-8")) > MAX_NAME_BYTES:
            message = (
                f"Cannot back up {table!r}: snapshot name {name!r} exceeds "
                f"{MAX_NAME_BYTES} bytes"
            )
            logger.error(message)
            raise BackupError(message)

        try:
            async with self.engine.begin() as conn:
                tables = await self._table_names(conn)
                if table not in tables:
                    raise BackupError(f"Cannot back up {table!r}: table does not exist")
                if name in tables:
                    raise BackupError(f"Cannot back up {table!r}: snapshot {name!r} already exists")

                await conn.execute(
                    text(f"CREATE TABLE {self._quote(name)} AS SELECT * FROM {self._quote(table)}")
                )
                row_count = await self._count(conn, name)
        except BackupError as e:
            logger.error(str(e))
            raise
        except Exception as e:
            logger.error(f"Backup of {table!r} into {name!r} failed: {e}")
            raise BackupError(f"Backup of {table!r} into {name!r} failed: {e}") from e

        logger.info(f"Created backup {name} ({row_count} rows)")
        return BackupSnapshot(source_table=table, name=name, created_at=created_at, row_count=row_count)

    async def list_backups(self, table: str) -> list[BackupSnapshot]:
        """All snapshots of ``table``, newest first.

        Raises:
            BackupError: If the schema cannot be read
        """
        try:
            async with self.engine.connect() as conn:
                snapshots = []
                for name in await self._table_names(conn):
                    parsed = parse_backup_name(name)
                    if parsed is None or parsed[0] != table:
                        continue
                    snapshots.append(
                        BackupSnapshot(
                            source_table=table,
                            name=name,
                            created_at=parsed[1],
                            row_count=await self._count(conn, name),
                        )
                    )
        except Exception as e:
            logger.error(f"Listing backups of {table!r} failed: {e}")
            raise BackupError(f"Listing backups of {table!r} failed: {e}") from e

        snapshots.sort(key=lambda s: s.created_at, reverse=True)
        return snapshots

    async def get_backup(self, table: str, name: str) -> BackupSnapshot | None:
        """Snapshot of ``table`` called ``name``, if it exists."""
        for snapshot in await self.list_backups(table):
            if snapshot.name == name:
                return snapshot
        return None

    async def latest_backup(self, table: str) -> BackupSnapshot | None:
        """Most recent snapshot of ``table``, if any."""
        snapshots = await self.list_backups(table)
        return snapshots[0] if snapshots else None

    async def restore_backup(self, snapshot: BackupSnapshot) -> int:
        """Replace the live table's rows with the snapshot's, atomically.

        Delete and re-insert run in one transaction; the row count is
        verified before commit. The snapshot itself is kept.

        Args:
            snapshot: Snapshot to restore

        Returns:
            Number of rows restored

        Raises:
            RestoreError: On any failure; the live table is left as it was
        """
        table = snapshot.source_table
        try:
            async with self.engine.begin() as conn:
                tables = await self._table_names(conn)
                if snapshot.name not in tables:
                    raise RestoreError(f"Snapshot {snapshot.name!r} does not exist")
                if table not in tables:
                    raise RestoreError(f"Live table {table!r} does not exist")

                live_columns = await self._column_names(conn, table)
                snapshot_columns = set(await self._column_names(conn, snapshot.name))
                missing = [c for c in live_columns if c not in snapshot_columns]
                if missing:
                    raise RestoreError(
                        f"Snapshot {snapshot.name!r} lacks columns of {table!r}: {', '.join(missing)}"
                    )

                expected = await self._count(conn, snapshot.name)
                columns = ", ".join(self._quote(c) for c in live_columns)

                await conn.execute(text(f"DELETE FROM {self._quote(table)}"))
                await conn.execute(
                    text(
                        f"INSERT INTO {self._quote(table)} ({columns}) "
                        f"SELECT {columns} FROM {self._quote(snapshot.name)}"
                    )
                )

                restored = await self._count(conn, table)
                if restored != expected:
                    raise RestoreError(
                        f"Restore of {table!r} from {snapshot.name!r} copied {restored} rows, expected {expected}"
                    )
        except RestoreError as e:
            logger.error(str(e))
            raise
        except Exception as e:
            logger.error(f"Restore of {table!r} from {snapshot.name!r} failed: {e}")
            raise RestoreError(f"Restore of {table!r} from {snapshot.name!r} failed: {e}") from e

        logger.info(f"Restored {table} from {snapshot.name} ({restored} rows)")
        return restored

    async def delete_backup(self, snapshot: BackupSnapshot) -> None:
        """Drop a snapshot table.

        Raises:
            BackupError: If the name is not a snapshot name or the drop fails
        """
        if parse_backup_name(snapshot.name) is None:
            raise BackupError(f"Refusing to drop {snapshot.name!r}: not a backup table")

        try:
            async with self.engine.begin() as conn:
                await conn.execute(text(f"DROP TABLE {self._quote(snapshot.name)}"))
        except Exception as e:
            logger.error(f"Dropping backup {snapshot.name!r} failed: {e}")
            raise BackupError(f"Dropping backup {snapshot.name!r} failed: {e}") from e

        logger.info(f"Deleted backup {snapshot.name}")

    async def prune_backups(self, table: str, keep_last: int) -> list[str]:
        """Keep the newest ``keep_last`` snapshots of ``table``, drop the rest.

        Returns:
            Names of the dropped snapshots, newest first
        """
        if keep_last < 0:
            raise ValueError(f"keep_last must be >= 0, got {keep_last}")

        snapshots = await self.list_backups(table)
        dropped = []
        for snapshot in snapshots[keep_last:]:
            await self.delete_backup(snapshot)
            dropped.append(snapshot.name)

        if dropped:
            logger.info(f"Pruned {len(dropped)} backups of {table}, kept {min(keep_last, len(snapshots))}")
        return dropped
