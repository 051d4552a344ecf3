"""Resolve TMDB ids to FlixHQ pages and back, caching every result."""

from __future__ import annotations

import logging
from typing import Sequence, cast

from ..models import Mapping, MappingSource, ResolvedMapping
from ..utils import parse_year
from .flixhq import (
    FlixHQClient,
    FlixHQDetails,
    FlixHQSearchResult,
    ProviderCatalogError,
    content_type_from_slug,
    provider_id_from_slug,
)
from .mapping_store import MappingStore
from .matching import (
    FORWARD_POLICY,
    CandidateMatcher,
    MatchTarget,
    SimilarityYearMatcher,
    YearOnlyMatcher,
)
from .tmdb import ReferenceCatalogError, TMDBClient, TMDBMetadata, TMDBSearchResult

logger = logging.getLogger(__name__)


class InvalidReferenceId(LookupError):
    """TMDB has no entry for the requested id (or could not be asked)."""


class MappingNotFound(LookupError):
    """No counterpart could be found in the other catalog."""


class ProviderContentNotFound(MappingNotFound):
    """The FlixHQ slug itself does not resolve to a title page."""


class MappingService:
    """Identity resolution between TMDB and FlixHQ."""

    def __init__(
        self,
        tmdb_client: TMDBClient,
        flixhq_client: FlixHQClient,
        store: MappingStore,
        *,
        forward_matcher: CandidateMatcher | None = None,
        reverse_matcher: CandidateMatcher | None = None,
    ):
        self._tmdb = tmdb_client
        self._flixhq = flixhq_client
        self._store = store
        self._forward_matcher: CandidateMatcher = forward_matcher or SimilarityYearMatcher(
            FORWARD_POLICY
        )
        self._reverse_matcher: CandidateMatcher = reverse_matcher or YearOnlyMatcher(
            year_tolerance=1
        )

    @property
    def store(self) -> MappingStore:
        return self._store

    async def resolve(self, tmdb_id: int, content_type: str) -> ResolvedMapping:
        """Return the FlixHQ mapping for a TMDB id, searching FlixHQ on a miss."""

        cached = await self._store.get(tmdb_id, content_type)
        if cached is not None:
            return ResolvedMapping(mapping=cached, source="cache")

        logger.info("Searching FlixHQ for TMDB %s (%s)", tmdb_id, content_type)
        try:
            metadata = await self._tmdb.get_by_id(tmdb_id, content_type)
        except ReferenceCatalogError as exc:
            logger.warning("TMDB lookup for %s failed: %s", tmdb_id, exc)
            metadata = None
        if metadata is None:
            raise InvalidReferenceId(f"Invalid TMDB ID {tmdb_id}")

        try:
            match = await self.find_provider_match(metadata, content_type)
        except ProviderCatalogError as exc:
            logger.warning("FlixHQ search for %s failed: %s", metadata.title, exc)
            match = None
        if match is None:
            raise MappingNotFound(f"TMDB {tmdb_id} not found on FlixHQ")

        logger.info("Match found (%s). Fetching details...", match.title)
        details = await self._fetch_details(match.slug)
        year = match.year
        if year is None and details is not None:
            year = parse_year(details.released)
        mapping = self.build_mapping(
            metadata, content_type, match, details, flix_year=year
        )
        return await self._persist(mapping, "live")

    async def resolve_reverse(self, slug: str) -> ResolvedMapping:
        """Return the TMDB mapping for a FlixHQ slug, searching TMDB on a miss."""

        slug = slug.strip("/")
        cached = await self._store.get_by_slug(slug)
        if cached is not None:
            return ResolvedMapping(mapping=cached, source="cache")

        logger.info("Scraping details for slug: %s", slug)
        details = await self._fetch_details(slug)
        if details is None:
            raise ProviderContentNotFound(f"FlixHQ content {slug} not found")

        content_type = content_type_from_slug(slug)
        logger.info("Searching TMDB for: %s (%s)", details.title, details.year)
        try:
            results = await self._tmdb.search_by_title(details.title, content_type)
        except ReferenceCatalogError as exc:
            logger.warning("TMDB search for %s failed: %s", details.title, exc)
            results = []

        target = MatchTarget(title=details.title, year=details.year, content_type=content_type)
        result = self._reverse_matcher.select(target, results)
        if result is None:
            raise MappingNotFound(f"TMDB match not found for FlixHQ content {slug}")

        result = cast(TMDBSearchResult, result)
        mapping = Mapping(
            tmdb_id=result.tmdb_id,
            tmdb_title=result.title,
            type=content_type,  # type: ignore[arg-type]
            flix_slug=slug,
            flix_id=details.id,
            flix_title=details.title,
            flix_year=details.year,
            flix_url=self._flixhq.build_url(slug),
            description=details.description,
            released=details.released,
            genres=list(details.genres),
            poster=details.poster,
        )
        return await self._persist(mapping, "live_reverse")

    async def find_provider_match(
        self,
        metadata: TMDBMetadata,
        content_type: str,
        matcher: CandidateMatcher | None = None,
    ) -> FlixHQSearchResult | None:
        """Search FlixHQ for ``metadata`` and return the first acceptable card.

        Raises :class:`ProviderCatalogError` when FlixHQ cannot be searched.
        """

        candidates = await self._flixhq.search(metadata.title)
        target = MatchTarget(
            title=metadata.title, year=metadata.year, content_type=content_type
        )
        selected = (matcher or self._forward_matcher).select(target, candidates)
        return cast("FlixHQSearchResult | None", selected)

    def build_mapping(
        self,
        metadata: TMDBMetadata,
        content_type: str,
        match: FlixHQSearchResult,
        details: FlixHQDetails | None,
        *,
        flix_year: int | None,
    ) -> Mapping:
        """Assemble a complete mapping from a search card and its title page."""

        return Mapping(
            tmdb_id=metadata.tmdb_id,
            tmdb_title=metadata.title,
            type=content_type,  # type: ignore[arg-type]
            flix_slug=match.slug,
            flix_id=details.id if details else provider_id_from_slug(match.slug),
            flix_title=match.title,
            flix_year=flix_year,
            flix_url=self._flixhq.build_url(match.slug),
            description=details.description if details else "",
            released=details.released if details else "",
            genres=list(details.genres) if details else [],
            poster=(details.poster if details else None) or match.poster,
        )

    async def fetch_details(self, slug: str) -> FlixHQDetails | None:
        """Expose the title page lookup to the crawler."""

        return await self._fetch_details(slug)

    async def latest_mapped_id(
        self, mode: str | None, content_type: str | None = None
    ) -> int | None:
        """Answer the resume-point query over the mapped TMDB ids.

        ``ascending`` returns the smallest id, ``descending`` the end of the
        unbroken run of consecutive ids starting at the smallest one, and any
        other mode the largest id. Returns ``None`` when nothing is mapped.
        """

        ids = await self._store.mapped_ids(content_type)
        return contiguous_boundary(ids, mode)

    async def _fetch_details(self, slug: str) -> FlixHQDetails | None:
        try:
            return await self._flixhq.get_details(slug)
        except ProviderCatalogError as exc:
            logger.warning("FlixHQ details for %s failed: %s", slug, exc)
            return None

    async def _persist(self, mapping: Mapping, source: MappingSource) -> ResolvedMapping:
        """Store ``mapping``; a collision only counts as a hit on the requested key.

        Forward lookups are keyed by ``(tmdb_id, type)`` and reverse lookups by
        slug. A collision on the other key means the counterpart already
        belongs to a different entry, which is reported as not found.
        """

        stored, created = await self._store.add(mapping)
        if created:
            return ResolvedMapping(mapping=stored, source=source)
        if source == "live_reverse":
            existing = await self._store.get_by_slug(mapping.flix_slug)
        else:
            existing = await self._store.get(mapping.tmdb_id, mapping.type)
        if existing is None:
            logger.warning(
                "%s %s / %s is already mapped elsewhere (TMDB %s / %s)",
                mapping.type,
                mapping.tmdb_id,
                mapping.flix_slug,
                stored.tmdb_id,
                stored.flix_slug,
            )
            raise MappingNotFound(
                f"{mapping.flix_slug} or TMDB {mapping.tmdb_id} is already claimed"
            )
        return ResolvedMapping(mapping=existing, source="cache")


def contiguous_boundary(ids: Sequence[int], mode: str | None) -> int | None:
    """Return the min, contiguous-run end, or max of ``ids`` depending on ``mode``."""

    if not ids:
        return None
    ordered = sorted(ids)
    if mode == "ascending":
        return ordered[0]
    if mode == "descending":
        last = ordered[0]
        for current in ordered[1:]:
            if current == last:
                continue
            if current != last + 1:
                break
            last = current
        return last
    return ordered[-1]
