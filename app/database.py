"""Database utilities for the FlixMap service."""

from __future__ import annotations

import logging

from sqlalchemy import MetaData, inspect, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

# Columns added after the first release, keyed by table. Each entry is the
# DDL type used when an older database lacks the column.
ADDITIVE_COLUMNS: dict[str, dict[str, str]] = {
    "mappings": {"poster": "VARCHAR(512)"},
}


class Base(DeclarativeBase):
    """Declarative base shared by the mapping and skip segment tables."""

    metadata = MetaData()


class Database:
    """Owns the async engine and hands out sessions to the stores."""

    def __init__(self, database_url: str):
        self._engine: AsyncEngine = create_async_engine(database_url, future=True)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine, expire_on_commit=False
        )

    async def create_all(self) -> None:
        """Create missing tables and backfill columns added since."""

        async with self._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
            await connection.run_sync(self._apply_schema_migrations)

    @staticmethod
    def _apply_schema_migrations(sync_connection) -> None:
        inspector = inspect(sync_connection)
        table_names = set(inspector.get_table_names())
        for table, columns in ADDITIVE_COLUMNS.items():
            if table not in table_names:
                continue
            existing = {column["name"] for column in inspector.get_columns(table)}
            for name, ddl_type in columns.items():
                if name in existing:
                    continue
                logger.info("Adding column %s.%s", table, name)
                sync_connection.execute(
                    text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl_type}")
                )

    async def dispose(self) -> None:
        await self._engine.dispose()
