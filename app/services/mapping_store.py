"""Durable storage for resolved TMDB to FlixHQ mappings."""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import MappingRecord
from ..models import Mapping

logger = logging.getLogger(__name__)


class MappingStore:
    """Append-only mapping collection with a single writer.

    Writes are serialised through one lock so the uniqueness checks on
    ``(tmdb_id, type)`` and ``flix_slug`` cannot race with a concurrent
    append. Reads go straight to the database.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._write_lock = asyncio.Lock()

    async def get(self, tmdb_id: int, content_type: str) -> Mapping | None:
        async with self._session_factory() as session:
            stmt = select(MappingRecord).where(
                MappingRecord.tmdb_id == tmdb_id,
                MappingRecord.type == content_type,
            )
            record = (await session.execute(stmt)).scalar_one_or_none()
        return self._to_model(record) if record is not None else None

    async def get_by_slug(self, slug: str) -> Mapping | None:
        async with self._session_factory() as session:
            stmt = select(MappingRecord).where(MappingRecord.flix_slug == slug)
            record = (await session.execute(stmt)).scalar_one_or_none()
        return self._to_model(record) if record is not None else None

    async def contains(self, tmdb_id: int, content_type: str) -> bool:
        async with self._session_factory() as session:
            stmt = (
                select(MappingRecord.id)
                .where(
                    MappingRecord.tmdb_id == tmdb_id,
                    MappingRecord.type == content_type,
                )
                .limit(1)
            )
            return (await session.execute(stmt)).scalar_one_or_none() is not None

    async def add(self, mapping: Mapping) -> tuple[Mapping, bool]:
        """Append ``mapping`` unless it collides with an existing entry.

        Returns the stored mapping and whether it was newly created. On a
        collision the existing mapping is returned untouched.
        """

        async with self._write_lock:
            async with self._session_factory() as session:
                stmt = select(MappingRecord).where(
                    or_(
                        (MappingRecord.tmdb_id == mapping.tmdb_id)
                        & (MappingRecord.type == mapping.type),
                        MappingRecord.flix_slug == mapping.flix_slug,
                    )
                ).limit(1)
                existing = (await session.execute(stmt)).scalar_one_or_none()
                if existing is not None:
                    logger.info(
                        "Mapping for %s %s / %s already stored",
                        mapping.type,
                        mapping.tmdb_id,
                        mapping.flix_slug,
                    )
                    return self._to_model(existing), False

                session.add(self._to_record(mapping))
                await session.commit()
        return mapping, True

    async def list_all(self, content_type: str | None = None) -> list[Mapping]:
        async with self._session_factory() as session:
            stmt = select(MappingRecord).order_by(MappingRecord.id)
            if content_type:
                stmt = stmt.where(MappingRecord.type == content_type)
            records = (await session.execute(stmt)).scalars().all()
        return [self._to_model(record) for record in records]

    async def mapped_ids(self, content_type: str | None = None) -> list[int]:
        """Return mapped TMDB ids sorted ascending."""

        async with self._session_factory() as session:
            stmt = select(MappingRecord.tmdb_id).order_by(MappingRecord.tmdb_id)
            if content_type:
                stmt = stmt.where(MappingRecord.type == content_type)
            return [row[0] for row in (await session.execute(stmt)).all()]

    async def max_mapped_id(self, content_type: str) -> int | None:
        async with self._session_factory() as session:
            stmt = select(func.max(MappingRecord.tmdb_id)).where(
                MappingRecord.type == content_type
            )
            return (await session.execute(stmt)).scalar_one_or_none()

    @staticmethod
    def _to_record(mapping: Mapping) -> MappingRecord:
        return MappingRecord(**mapping.model_dump())

    @staticmethod
    def _to_model(record: MappingRecord) -> Mapping:
        return Mapping(
            tmdb_id=record.tmdb_id,
            tmdb_title=record.tmdb_title,
            type=record.type,  # type: ignore[arg-type]
            flix_slug=record.flix_slug,
            flix_id=record.flix_id,
            flix_title=record.flix_title,
            flix_year=record.flix_year,
            flix_url=record.flix_url,
            description=record.description or "",
            released=record.released or "",
            genres=list(record.genres or []),
            poster=record.poster,
        )
