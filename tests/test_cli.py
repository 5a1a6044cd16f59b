"""Operator CLI: output and exit codes."""
import asyncio
import json

import pytest
from click.testing import CliRunner

import main
from datesync.backup import BackupManager
from datesync.config import settings
from datesync.db import create_engine
from datesync.models import Base, Program


@pytest.fixture
def cli_db(db_url, monkeypatch):
    """Seeded store for synchronous CLI invocations."""
    monkeypatch.setattr(main, "setup_logging", lambda **kwargs: None)

    async def _setup():
        engine = create_engine(db_url, echo=False)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            await conn.execute(
                Program.__table__.insert(),
                [{"title": "인문학 아카데미"}, {"title": "인문학 세미나"}],
            )
        await engine.dispose()

    asyncio.run(_setup())
    return db_url


@pytest.fixture
def legacy_csv(tmp_path):
    path = tmp_path / "legacy.csv"
    path.write_text(
        "raw_title,extracted_date_text\n인문학 아카데미 3기,2024.03.01 ~ 2024.03.31\n",
        encoding="utf-8",
    )
    return str(path)


def _backups(db_url):
    async def _list():
        engine = create_engine(db_url, echo=False)
        try:
            return await BackupManager(engine).list_backups("programs")
        finally:
            await engine.dispose()

    return asyncio.run(_list())


def test_dry_run_json(cli_db, legacy_csv):
    result = CliRunner().invoke(main.cli, ["--db-url", cli_db, "sync", legacy_csv, "--json"])

    assert result.exit_code == 0, result.output
    report = json.loads(result.stdout)
    assert report["mode"] == "dry-run"
    assert report["matched"] == 1
    assert report["backup"] is None
    assert _backups(cli_db) == []


def test_apply_then_restore(cli_db, legacy_csv):
    runner = CliRunner()

    applied = runner.invoke(main.cli, ["--db-url", cli_db, "sync", legacy_csv, "--apply"])
    assert applied.exit_code == 0, applied.output
    assert "apply (ok)" in applied.output
    assert len(_backups(cli_db)) == 1

    listed = runner.invoke(main.cli, ["--db-url", cli_db, "backups", "list"])
    assert listed.exit_code == 0
    assert "programs_backup_" in listed.output

    restored = runner.invoke(main.cli, ["--db-url", cli_db, "restore"])
    assert restored.exit_code == 0, restored.output
    assert "restored rows   2" in restored.output


def test_restore_without_backups_exits_1(cli_db):
    result = CliRunner().invoke(main.cli, ["--db-url", cli_db, "restore"])
    assert result.exit_code == 1


def test_unreadable_input_exits_1(cli_db, tmp_path, monkeypatch):
    monkeypatch.setattr(settings.extraction, "wait_min", 0.0)
    monkeypatch.setattr(settings.extraction, "wait_max", 0.0)
    path = tmp_path / "legacy.txt"
    path.write_text("인문학 아카데미", encoding="utf-8")

    result = CliRunner().invoke(main.cli, ["--db-url", cli_db, "sync", str(path)])

    assert result.exit_code == 1


@pytest.mark.parametrize(
    "args",
    [
        ["sync"],
        ["sync", "does-not-exist.csv"],
        ["backups", "prune", "--keep", "0"],
    ],
)
def test_usage_errors_exit_2(cli_db, args):
    result = CliRunner().invoke(main.cli, ["--db-url", cli_db, *args])
    assert result.exit_code == 2


def test_accept_out_of_range_exits_2(cli_db, legacy_csv):
    result = CliRunner().invoke(main.cli, ["--db-url", cli_db, "sync", legacy_csv, "--accept", "1.5"])
    assert result.exit_code == 2


def test_prune(cli_db):
    async def _create(count):
        engine = create_engine(cli_db, echo=False)
        try:
            for _ in range(count):
                await BackupManager(engine).create_backup("programs")
        finally:
            await engine.dispose()

    asyncio.run(_create(3))

    result = CliRunner().invoke(main.cli, ["--db-url", cli_db, "backups", "prune", "--keep", "1"])

    assert result.exit_code == 0, result.output
    assert "Pruned 2 backups" in result.output
    assert len(_backups(cli_db)) == 1
