"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.services.flixhq import FlixHQDetails, FlixHQSearchResult  # noqa: E402
from app.services.tmdb import TMDBMetadata, TMDBSearchResult  # noqa: E402


class FakeTMDB:
    """In-memory stand-in for :class:`TMDBClient` that records calls."""

    def __init__(self) -> None:
        self.metadata: dict[tuple[int, str], TMDBMetadata | Exception] = {}
        self.search_results: dict[str, list[TMDBSearchResult] | Exception] = {}
        self.lookups: list[tuple[int, str]] = []
        self.searches: list[tuple[str, str]] = []

    def add(
        self,
        tmdb_id: int,
        title: str,
        year: int | None,
        *,
        content_type: str = "movie",
        popularity: float = 10.0,
    ) -> None:
        self.metadata[(tmdb_id, content_type)] = TMDBMetadata(
            tmdb_id=tmdb_id, title=title, year=year, popularity=popularity
        )

    async def get_by_id(self, tmdb_id: int, content_type: str) -> TMDBMetadata | None:
        self.lookups.append((tmdb_id, content_type))
        value = self.metadata.get((tmdb_id, content_type))
        if isinstance(value, Exception):
            raise value
        return value

    async def search_by_title(
        self, title: str, content_type: str
    ) -> list[TMDBSearchResult]:
        self.searches.append((title, content_type))
        value = self.search_results.get(title, [])
        if isinstance(value, Exception):
            raise value
        return value


class FakeFlixHQ:
    """In-memory stand-in for :class:`FlixHQClient`."""

    base_url = "https://flixhq.example"

    def __init__(self) -> None:
        self.search_results: dict[str, list[FlixHQSearchResult] | Exception] = {}
        self.details: dict[str, FlixHQDetails] = {}
        self.searches: list[str] = []
        self.detail_requests: list[str] = []

    def build_url(self, slug: str) -> str:
        return f"{self.base_url}/{slug}"

    async def search(self, title: str) -> list[FlixHQSearchResult]:
        self.searches.append(title)
        value = self.search_results.get(title, [])
        if isinstance(value, Exception):
            raise value
        return value

    async def get_details(self, slug: str) -> FlixHQDetails | None:
        self.detail_requests.append(slug)
        return self.details.get(slug)


@pytest.fixture
def fake_tmdb() -> FakeTMDB:
    return FakeTMDB()


@pytest.fixture
def fake_flixhq() -> FakeFlixHQ:
    return FakeFlixHQ()


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'flixmap.db'}"

