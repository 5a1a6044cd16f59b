"""Initialize the program store schema.

Creates the tables declared in ``datesync.models`` if they do not exist.
Pass ``--drop`` to drop them first (development databases only).
"""

import asyncio
import sys

from datesync.config import settings
from datesync.db import create_engine
from datesync.models import Base


async def init_database(url: str | None = None, *, drop: bool = False):
    """Create all database tables."""
    engine = create_engine(url)
    print(f"Initializing database: {engine.url.render_as_string(hide_password=True)}")

    try:
        async with engine.begin() as conn:
            if drop:
                await conn.run_sync(Base.metadata.drop_all)
                print("✓ Dropped existing tables")

            await conn.run_sync(Base.metadata.create_all)
            print("✓ Created missing tables")
    finally:
        await engine.dispose()

    print(f"Tables: {', '.join(Base.metadata.tables.keys())}")


async def main():
    """Main entry point."""
    drop = "--drop" in sys.argv[1:]
    if drop and settings.environment.value == "production":
        print("❌ Refusing to drop tables in production")
        sys.exit(2)

    try:
        await init_database(drop=drop)
    except Exception as e:
        print(f"\n❌ Error initializing database: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
