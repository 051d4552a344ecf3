"""Pydantic models describing mappings and skip segments."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ContentType = Literal["movie", "tv"]
MappingSource = Literal["cache", "live", "live_reverse"]
CONTENT_TYPES: tuple[str, ...] = ("movie", "tv")


class Mapping(BaseModel):
    """Cross-reference between one TMDB entry and one FlixHQ page."""

    model_config = ConfigDict(frozen=True)

    tmdb_id: int
    tmdb_title: str
    type: ContentType
    flix_slug: str
    flix_id: str
    flix_title: str
    flix_year: int | None = None
    flix_url: str
    description: str = ""
    released: str = ""
    genres: list[str] = Field(default_factory=list)
    poster: str | None = None

    def to_payload(self, source: MappingSource) -> dict[str, object]:
        """Return the lookup response body for this mapping."""

        return {"found": True, **self.model_dump(mode="json"), "source": source}


class ResolvedMapping(BaseModel):
    """A mapping together with the path that produced it."""

    mapping: Mapping
    source: MappingSource

    def to_payload(self) -> dict[str, object]:
        return self.mapping.to_payload(self.source)


class Interval(BaseModel):
    """A ``[start, end)`` span in whole seconds."""

    start: int
    end: int


class SkipSubmission(BaseModel):
    """One crowd-submitted intro/outro pair for an episode."""

    id: str
    episode_key: str
    intro: Interval
    outro: Interval
    votes: int = 0
    verified: bool = False
    created_at: datetime

    @property
    def boundaries(self) -> tuple[int, int, int, int]:
        return (self.intro.start, self.intro.end, self.outro.start, self.outro.end)

    @property
    def visible(self) -> bool:
        """Heavily downvoted submissions are hidden from queries."""

        return self.votes > -2

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "episodeKey": self.episode_key,
            "intro": self.intro.model_dump(),
            "outro": self.outro.model_dump(),
            "votes": self.votes,
            "verified": self.verified,
            "createdAt": self.created_at.isoformat(),
        }


class EpisodeSegments(BaseModel):
    """Visible submissions for an episode and the current favourite."""

    episode_key: str
    best: SkipSubmission | None = None
    submissions: list[SkipSubmission] = Field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.best is not None

    def to_payload(self) -> dict[str, object]:
        return {
            "found": self.found,
            "episodeKey": self.episode_key,
            "best": self.best.to_payload() if self.best else None,
            "all": [submission.to_payload() for submission in self.submissions],
        }


def episode_key(tmdb_id: int, season: int, episode: int) -> str:
    """Return the composite key grouping submissions for one episode."""

    return f"{tmdb_id}:{season}:{episode}"
