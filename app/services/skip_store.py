"""Durable storage for crowd-submitted skip segments."""

from __future__ import annotations

import asyncio
from typing import Callable

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import SkipSubmissionRecord
from ..models import Interval, SkipSubmission


class SkipSegmentStore:
    """Submissions grouped by episode key, kept in insertion order.

    Every mutation runs under one lock and commits before returning.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._write_lock = asyncio.Lock()

    async def list_episode(self, episode_key: str) -> list[SkipSubmission]:
        async with self._session_factory() as session:
            return await self._list_episode(session, episode_key)

    async def append(
        self,
        episode_key: str,
        build: Callable[[list[SkipSubmission]], SkipSubmission],
    ) -> SkipSubmission:
        """Append the submission produced by ``build``.

        ``build`` receives the episode's current submissions and runs inside
        the write lock, so decisions it makes from them cannot go stale.
        """

        async with self._write_lock:
            async with self._session_factory() as session:
                existing = await self._list_episode(session, episode_key)
                submission = build(existing)
                session.add(self._to_record(submission))
                await session.commit()
        return submission

    async def adjust_votes(self, submission_id: str, delta: int) -> SkipSubmission | None:
        async with self._write_lock:
            async with self._session_factory() as session:
                record = await self._get_record(session, submission_id)
                if record is None:
                    return None
                record.votes = record.votes + delta
                await session.commit()
                return self._to_model(record)

    async def mark_verified(self, submission_id: str) -> SkipSubmission | None:
        async with self._write_lock:
            async with self._session_factory() as session:
                record = await self._get_record(session, submission_id)
                if record is None:
                    return None
                if not record.verified:
                    record.verified = True
                    await session.commit()
                return self._to_model(record)

    async def delete_episode(self, episode_key: str) -> int:
        async with self._write_lock:
            async with self._session_factory() as session:
                removed = await self._count(session, episode_key)
                await session.execute(
                    delete(SkipSubmissionRecord).where(
                        SkipSubmissionRecord.episode_key == episode_key
                    )
                )
                await session.commit()
        return removed

    async def delete_all(self) -> int:
        async with self._write_lock:
            async with self._session_factory() as session:
                removed = await self._count(session)
                await session.execute(delete(SkipSubmissionRecord))
                await session.commit()
        return removed

    async def _list_episode(
        self, session: AsyncSession, episode_key: str
    ) -> list[SkipSubmission]:
        stmt = (
            select(SkipSubmissionRecord)
            .where(SkipSubmissionRecord.episode_key == episode_key)
            .order_by(SkipSubmissionRecord.seq)
        )
        records = (await session.execute(stmt)).scalars().all()
        return [self._to_model(record) for record in records]

    @staticmethod
    async def _get_record(
        session: AsyncSession, submission_id: str
    ) -> SkipSubmissionRecord | None:
        stmt = select(SkipSubmissionRecord).where(
            SkipSubmissionRecord.submission_id == submission_id
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    @staticmethod
    async def _count(session: AsyncSession, episode_key: str | None = None) -> int:
        stmt = select(func.count(SkipSubmissionRecord.seq))
        if episode_key is not None:
            stmt = stmt.where(SkipSubmissionRecord.episode_key == episode_key)
        return int((await session.execute(stmt)).scalar_one())

    @staticmethod
    def _to_record(submission: SkipSubmission) -> SkipSubmissionRecord:
        return SkipSubmissionRecord(
            submission_id=submission.id,
            episode_key=submission.episode_key,
            intro_start=submission.intro.start,
            intro_end=submission.intro.end,
            outro_start=submission.outro.start,
            outro_end=submission.outro.end,
            votes=submission.votes,
            verified=submission.verified,
            created_at=submission.created_at,
        )

    @staticmethod
    def _to_model(record: SkipSubmissionRecord) -> SkipSubmission:
        return SkipSubmission(
            id=record.submission_id,
            episode_key=record.episode_key,
            intro=Interval(start=record.intro_start, end=record.intro_end),
            outro=Interval(start=record.outro_start, end=record.outro_end),
            votes=record.votes,
            verified=bool(record.verified),
            created_at=record.created_at,
        )
