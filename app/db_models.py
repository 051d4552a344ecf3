"""SQLAlchemy ORM models backing the persistent state."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class MappingRecord(Base):
    """A resolved TMDB to FlixHQ cross-reference. Rows are never updated."""

    __tablename__ = "mappings"
    __table_args__ = (
        UniqueConstraint("tmdb_id", "type", name="uq_mapping_tmdb_type"),
        UniqueConstraint("flix_slug", name="uq_mapping_flix_slug"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tmdb_id: Mapped[int] = mapped_column(Integer, index=True)
    tmdb_title: Mapped[str] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(16))
    flix_slug: Mapped[str] = mapped_column(String(255))
    flix_id: Mapped[str] = mapped_column(String(64))
    flix_title: Mapped[str] = mapped_column(String(255))
    flix_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    flix_url: Mapped[str] = mapped_column(String(512))
    description: Mapped[str] = mapped_column(Text, default="")
    released: Mapped[str] = mapped_column(String(32), default="")
    genres: Mapped[list[str]] = mapped_column(JSON, default=list)
    poster: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class SkipSubmissionRecord(Base):
    """Persisted intro/outro submission for one episode."""

    __tablename__ = "skip_submissions"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[str] = mapped_column(String(128), unique=True)
    episode_key: Mapped[str] = mapped_column(String(64), index=True)
    intro_start: Mapped[int] = mapped_column(Integer)
    intro_end: Mapped[int] = mapped_column(Integer)
    outro_start: Mapped[int] = mapped_column(Integer)
    outro_end: Mapped[int] = mapped_column(Integer)
    votes: Mapped[int] = mapped_column(Integer, default=0)
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
