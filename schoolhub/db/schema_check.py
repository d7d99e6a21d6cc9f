"""
Create any missing tables. Safe to run repeatedly:

    python -m schoolhub.db.schema_check
"""
import asyncio
import logging

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

# Registers every model on Base.metadata
import schoolhub.auth.models  # noqa: F401
import schoolhub.core.models  # noqa: F401
from schoolhub.db.session import Base, engine

logger = logging.getLogger(__name__)


async def ensure_tables(db_engine: AsyncEngine) -> list:
    """Create tables that do not exist yet; returns the names that were created."""
    async with db_engine.begin() as conn:
        existing = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
        missing = [name for name in Base.metadata.tables if name not in existing]
        await conn.run_sync(Base.metadata.create_all)

    if missing:
        logger.info("Created missing tables: %s", ", ".join(sorted(missing)))
    else:
        logger.info("All required tables already exist in the database.")
    return missing


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    await ensure_tables(engine)
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
