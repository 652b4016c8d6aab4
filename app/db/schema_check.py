"""
Create any missing tables for the exeat and NYSC payment models.

Idempotent: existing tables are left alone. Reports which tables it created.
Usage: python -m app.db.schema_check
"""

import asyncio
from typing import List

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

import app.core.models  # noqa: F401  (registers every table on Base.metadata)
from app.db.session import Base, engine


async def ensure_tables(db_engine: AsyncEngine) -> List[str]:
    """Create tables missing from the database; return the names created."""
    async with db_engine.begin() as conn:
        existing = set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))
        missing = [t.name for t in Base.metadata.sorted_tables if t.name not in existing]
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)

    if missing:
        print("Created missing tables: " + ", ".join(missing))
    else:
        print("All required exeat/payment tables already exist in the database.")
    return missing


async def main() -> None:
    await ensure_tables(engine)


if __name__ == "__main__":
    asyncio.run(main())
