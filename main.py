"""Command-line entry point for the program date sync job.

    python main.py sync extracted.csv            # dry-run report
    python main.py sync extracted.csv --apply    # back up, then write
    python main.py restore                       # most recent backup
    python main.py backups list
    python main.py backups prune --keep 5
"""
from __future__ import annotations

import asyncio
import sys

import click

from datesync.backup import BackupError, BackupManager
from datesync.config import settings
from datesync.db import create_engine
from datesync.extraction import ExtractionError, FileLegacySource, collect_legacy_records
from datesync.logging_config import setup_logging
from datesync.models import Program
from datesync.pipelines.matching import Thresholds
from datesync.pipelines.sync import SyncMode, run_restore, run_sync
from datesync.reporting import SyncRunReport, backup_dto, render_table


def _emit(report: SyncRunReport, as_json: bool) -> None:
    click.echo(report.model_dump_json(indent=2) if as_json else render_table(report))


@click.group()
@click.version_option(settings.version, prog_name=settings.app_name)
@click.option('--db-url', default=None, help='Database URL (overrides DB_URL)')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, db_url, verbose):
    """Reconcile program dates from the legacy site into the program store."""
    setup_logging(level="DEBUG" if verbose else None)
    ctx.ensure_object(dict)
    ctx.obj['db_url'] = db_url


@cli.command('sync')
@click.argument('inputs', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--apply', 'apply_changes', is_flag=True, help='Write accepted matches (default: dry-run)')
@click.option('--accept', type=click.FloatRange(0.0, 1.0), help='Minimum similarity for a match')
@click.option('--margin', type=click.FloatRange(0.0, 1.0), help='Required gap to the runner-up')
@click.option('--only-missing', is_flag=True, help='Only write programs without a start date')
@click.option('--no-status', is_flag=True, help='Do not derive status from the synced dates')
@click.option('--json', 'as_json', is_flag=True, help='Print the report as JSON')
@click.pass_context
def sync(ctx, inputs, apply_changes, accept, margin, only_missing, no_status, as_json):
    """Match extracted legacy records (CSV, Excel or JSON files) and sync their dates."""
    mode = SyncMode.APPLY if apply_changes else SyncMode.DRY_RUN
    thresholds = Thresholds.from_settings(accept=accept, ambiguity_margin=margin)

    async def _run():
        engine = create_engine(ctx.obj['db_url'])
        try:
            records = await collect_legacy_records([FileLegacySource(path) for path in inputs])
            return await run_sync(
                engine,
                records,
                mode=mode,
                thresholds=thresholds,
                only_missing_dates=True if only_missing else None,
                derive_status=False if no_status else None,
            )
        finally:
            await engine.dispose()

    try:
        run = asyncio.run(_run())
    except (ExtractionError, BackupError) as e:
        click.echo(f"❌ Sync aborted: {e}", err=True)
        sys.exit(1)

    _emit(SyncRunReport.from_run(run), as_json)
    if not run.ok:
        sys.exit(1)


@cli.command('restore')
@click.option('--backup', 'backup_name', help='Snapshot to restore (default: most recent)')
@click.option('--table', default=Program.__tablename__, show_default=True, help='Live table to restore')
@click.option('--json', 'as_json', is_flag=True, help='Print the report as JSON')
@click.pass_context
def restore(ctx, backup_name, table, as_json):
    """Put a backup snapshot back into the live table."""

    async def _run():
        engine = create_engine(ctx.obj['db_url'])
        try:
            return await run_restore(engine, backup_name=backup_name, table=table)
        finally:
            await engine.dispose()

    run = asyncio.run(_run())
    _emit(SyncRunReport.from_run(run), as_json)
    if not run.ok:
        sys.exit(1)


@cli.group('backups')
def backups():
    """Inspect and prune backup snapshots."""


@backups.command('list')
@click.option('--table', default=Program.__tablename__, show_default=True)
@click.option('--json', 'as_json', is_flag=True, help='Print the snapshots as JSON')
@click.pass_context
def list_backups(ctx, table, as_json):
    """List snapshots of a table, newest first."""

    async def _run():
        engine = create_engine(ctx.obj['db_url'])
        try:
            return await BackupManager(engine).list_backups(table)
        finally:
            await engine.dispose()

    try:
        snapshots = asyncio.run(_run())
    except BackupError as e:
        click.echo(f"❌ Listing backups failed: {e}", err=True)
        sys.exit(1)

    if as_json:
        click.echo("[" + ", ".join(backup_dto(s).model_dump_json() for s in snapshots) + "]")
        return
    if not snapshots:
        click.echo(f"No backups of {table}")
        return
    for snapshot in snapshots:
        click.echo(f"{snapshot.name}  {snapshot.created_at.isoformat()}  {snapshot.row_count} rows")


@backups.command('prune')
@click.option('--keep', type=click.IntRange(min=1), required=True, help='Number of newest snapshots to keep')
@click.option('--table', default=Program.__tablename__, show_default=True)
@click.pass_context
def prune_backups(ctx, keep, table):
    """Drop all but the newest KEEP snapshots of a table."""

    async def _run():
        engine = create_engine(ctx.obj['db_url'])
        try:
            return await BackupManager(engine).prune_backups(table, keep)
        finally:
            await engine.dispose()

    try:
        dropped = asyncio.run(_run())
    except BackupError as e:
        click.echo(f"❌ Pruning backups failed: {e}", err=True)
        sys.exit(1)

    for name in dropped:
        click.echo(f"Dropped {name}")
    click.echo(f"✅ Pruned {len(dropped)} backups of {table}")


if __name__ == '__main__':
    cli()
