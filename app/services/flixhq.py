"""Scraping client for the FlixHQ provider catalog."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from urllib.parse import quote

import httpx
from bs4 import BeautifulSoup, Tag

from ..config import Settings
from ..utils import parse_year, slugify

logger = logging.getLogger(__name__)

_PARSER = "html.parser"
_YEAR_TEXT_RE = re.compile(r"^\d{4}$")

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml",
}


class ProviderCatalogError(RuntimeError):
    """Raised when FlixHQ could not be reached or returned an error page."""


@dataclass(slots=True)
class FlixHQSearchResult:
    """A search result card from the FlixHQ listing pages."""

    slug: str
    title: str
    year: int | None
    type: str
    poster: str | None = None


@dataclass(slots=True)
class FlixHQDetails:
    """Fields scraped from a FlixHQ title page."""

    id: str
    title: str
    year: int | None
    description: str = ""
    released: str = ""
    genres: list[str] = field(default_factory=list)
    poster: str | None = None


def content_type_from_slug(slug: str) -> str:
    """FlixHQ slugs start with ``movie/`` or ``tv/``."""

    segments = [segment for segment in slug.strip("/").split("/") if segment]
    return "movie" if "movie" in segments[:-1] else "tv"


def provider_id_from_slug(slug: str) -> str:
    """Return the numeric id FlixHQ appends to every slug."""

    return slug.rstrip("/").rsplit("-", 1)[-1]


class FlixHQClient:
    """Reads search results and title pages from FlixHQ."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    @property
    def base_url(self) -> str:
        return self._settings.provider_base_url

    def build_url(self, slug: str) -> str:
        """Return the canonical page URL for ``slug``."""

        return f"{self.base_url}/{slug.lstrip('/')}"

    async def search(self, title: str) -> list[FlixHQSearchResult]:
        """Return search result cards for ``title`` in page order."""

        query = slugify(title)
        if not query:
            return []
        response = await self._get(f"/search/{quote(query, safe='-')}")
        if response.status_code >= 400:
            raise ProviderCatalogError(
                f"FlixHQ search for {title!r} failed with status {response.status_code}"
            )
        return self.parse_search_results(response.text)

    async def get_details(self, slug: str) -> FlixHQDetails | None:
        """Return the scraped title page for ``slug`` or ``None`` when missing."""

        slug = slug.strip("/")
        if not slug:
            return None
        response = await self._get(f"/{slug}")
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise ProviderCatalogError(
                f"FlixHQ page {slug} failed with status {response.status_code}"
            )
        return self.parse_details(slug, response.text)

    async def _get(self, path: str) -> httpx.Response:
        try:
            return await self._client.get(path, headers=DEFAULT_HEADERS)
        except httpx.HTTPError as exc:
            logger.warning("FlixHQ request to %s failed: %s", path, exc)
            raise ProviderCatalogError(str(exc) or exc.__class__.__name__) from exc

    @staticmethod
    def parse_search_results(html: str) -> list[FlixHQSearchResult]:
        soup = BeautifulSoup(html, _PARSER)
        results: list[FlixHQSearchResult] = []
        seen: set[str] = set()
        for card in soup.select("div.flw-item"):
            link = card.select_one(".film-detail .film-name a") or card.select_one(
                "a.film-poster-ahref"
            )
            if link is None:
                continue
            slug = str(link.get("href") or "").strip().strip("/")
            if not slug or slug in seen:
                continue
            seen.add(slug)
            title = str(link.get("title") or link.get_text(" ", strip=True)).strip()
            if not title:
                continue

            type_label = card.select_one(".fd-infor .fdi-type")
            if type_label is not None:
                label = type_label.get_text(strip=True).lower()
                content_type = "movie" if label == "movie" else "tv"
            else:
                content_type = content_type_from_slug(slug)

            year = None
            for info in card.select(".fd-infor .fdi-item"):
                text = info.get_text(strip=True)
                if _YEAR_TEXT_RE.match(text):
                    year = int(text)
                    break

            poster_tag = card.select_one("img.film-poster-img")
            results.append(
                FlixHQSearchResult(
                    slug=slug,
                    title=title,
                    year=year,
                    type=content_type,
                    poster=_image_source(poster_tag),
                )
            )
        return results

    @staticmethod
    def parse_details(slug: str, html: str) -> FlixHQDetails | None:
        soup = BeautifulSoup(html, _PARSER)
        heading = soup.select_one(".heading-name a") or soup.select_one(".heading-name")
        if heading is None:
            return None
        title = heading.get_text(" ", strip=True)
        if not title:
            return None

        description_tag = soup.select_one(".description")
        description = (
            description_tag.get_text(" ", strip=True) if description_tag else ""
        )

        released = ""
        genres: list[str] = []
        for row in soup.select(".row-line"):
            label_tag = row.select_one(".type")
            if label_tag is None:
                continue
            label = label_tag.get_text(strip=True).rstrip(":").lower()
            if label == "released":
                label_tag.extract()
                released = row.get_text(" ", strip=True)
            elif label == "genre":
                genres = [
                    anchor.get_text(strip=True)
                    for anchor in row.select("a")
                    if anchor.get_text(strip=True)
                ]

        return FlixHQDetails(
            id=provider_id_from_slug(slug),
            title=title,
            year=parse_year(released),
            description=description,
            released=released,
            genres=genres,
            poster=_image_source(soup.select_one(".film-poster img")),
        )


def _image_source(tag: Tag | None) -> str | None:
    if tag is None:
        return None
    value = tag.get("data-src") or tag.get("src")
    if isinstance(value, str) and value.startswith("http"):
        return value
    return None
