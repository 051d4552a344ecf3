"""Utilities for resolving metadata from The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ..config import Settings
from ..utils import parse_year

logger = logging.getLogger(__name__)


class ReferenceCatalogError(RuntimeError):
    """Raised when TMDB could not be reached or returned an error."""


@dataclass(slots=True)
class TMDBMetadata:
    """Title, year and popularity for a single TMDB entry."""

    tmdb_id: int
    title: str
    year: int | None
    popularity: float = 0.0


@dataclass(slots=True)
class TMDBSearchResult:
    """Normalized view of a TMDB search result."""

    tmdb_id: int
    title: str
    year: int | None


class TMDBClient:
    """Client fetching canonical titles and years from TMDB."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client

    async def get_by_id(self, tmdb_id: int, content_type: str) -> TMDBMetadata | None:
        """Return metadata for ``tmdb_id`` or ``None`` when TMDB has no such entry.

        Any other failure raises :class:`ReferenceCatalogError` so callers can
        decide whether to retry.
        """

        endpoint = f"/{self._path_segment(content_type)}/{tmdb_id}"
        response = await self._get(endpoint, {"api_key": self._settings.tmdb_api_key})
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise ReferenceCatalogError(
                f"TMDB lookup for {content_type} {tmdb_id} failed with "
                f"status {response.status_code}"
            )

        payload = self._json(response)
        title = self._extract_title(payload, content_type)
        if not title:
            return None
        try:
            popularity = float(payload.get("popularity") or 0.0)
        except (TypeError, ValueError):
            popularity = 0.0
        return TMDBMetadata(
            tmdb_id=int(payload.get("id") or tmdb_id),
            title=title,
            year=self._extract_year(payload, content_type),
            popularity=popularity,
        )

    async def search_by_title(
        self, title: str, content_type: str
    ) -> list[TMDBSearchResult]:
        """Return TMDB search results for ``title`` in TMDB's own order."""

        endpoint = f"/search/{self._path_segment(content_type)}"
        params = {
            "query": title,
            "include_adult": "false",
            "page": 1,
            "api_key": self._settings.tmdb_api_key,
        }
        response = await self._get(endpoint, params)
        if response.status_code >= 400:
            raise ReferenceCatalogError(
                f"TMDB search for {title!r} ({content_type}) failed with "
                f"status {response.status_code}"
            )

        results: list[TMDBSearchResult] = []
        for candidate in self._json(response).get("results") or []:
            if not isinstance(candidate, dict) or candidate.get("id") is None:
                continue
            candidate_title = self._extract_title(candidate, content_type)
            if not candidate_title:
                continue
            results.append(
                TMDBSearchResult(
                    tmdb_id=int(candidate["id"]),
                    title=candidate_title,
                    year=self._extract_year(candidate, content_type),
                )
            )
        return results

    async def _get(self, endpoint: str, params: dict[str, Any]) -> httpx.Response:
        try:
            return await self._client.get(endpoint, params=params)
        except httpx.HTTPError as exc:
            logger.warning("TMDB request to %s failed: %s", endpoint, exc)
            raise ReferenceCatalogError(str(exc) or exc.__class__.__name__) from exc

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise ReferenceCatalogError("TMDB returned a non-JSON payload") from exc
        if isinstance(data, dict):
            return data
        return {}

    @staticmethod
    def _path_segment(content_type: str) -> str:
        return "movie" if content_type == "movie" else "tv"

    @staticmethod
    def _extract_title(result: dict[str, Any], content_type: str) -> str:
        if content_type == "movie":
            title = result.get("title") or result.get("name")
        else:
            title = result.get("name") or result.get("title")
        return str(title or "").strip()

    @staticmethod
    def _extract_year(result: dict[str, Any], content_type: str) -> int | None:
        date_key = "release_date" if content_type == "movie" else "first_air_date"
        return parse_year(result.get(date_key))
