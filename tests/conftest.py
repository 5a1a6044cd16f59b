"""Shared fixtures: a file-backed SQLite program store per test."""
from __future__ import annotations

from datetime import date

import pytest
import pytest_asyncio
from sqlalchemy import select

from datesync.db import create_engine, session_factory
from datesync.models import Base, Program


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'programs.db'}"


@pytest_asyncio.fixture
async def engine(db_url):
    engine = create_engine(db_url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


async def _seed(engine, *programs: dict) -> list[int]:
    async with session_factory(engine)() as session:
        async with session.begin():
            rows = [Program(**values) for values in programs]
            session.add_all(rows)
        return [row.id for row in rows]


async def _fetch(engine) -> dict[int, Program]:
    async with session_factory(engine)() as session:
        result = await session.execute(select(Program).order_by(Program.id))
        return {p.id: p for p in result.scalars().all()}


@pytest.fixture
def seed():
    """Insert programs: ``await seed(engine, {"title": ...}, ...)`` -> ids."""
    return _seed


@pytest.fixture
def fetch():
    """All programs by id: ``await fetch(engine)``."""
    return _fetch


@pytest.fixture
def today():
    return date(2024, 2, 1)
