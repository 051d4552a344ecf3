"""Unattended bulk mapper walking TMDB ids one at a time."""

from __future__ import annotations

import asyncio
import enum
import logging
from contextlib import suppress
from dataclasses import dataclass

from ..config import Settings
from .mapping_store import MappingStore
from .matching import CRAWLER_POLICY, CandidateMatcher, SimilarityYearMatcher
from .resolver import MappingService
from .tmdb import ReferenceCatalogError, TMDBClient

logger = logging.getLogger(__name__)


class CrawlMode(str, enum.Enum):
    FILL = "fill"
    RESUME = "resume"


class CrawlOutcome(str, enum.Enum):
    ALREADY_MAPPED = "already_mapped"
    MISSING = "missing"
    RETRY = "retry"
    LOW_POPULARITY = "low_popularity"
    MATCHED = "matched"
    NO_MATCH = "no_match"
    SLUG_TAKEN = "slug_taken"

    @property
    def advances(self) -> bool:
        return self is not CrawlOutcome.RETRY

    @property
    def rate_limited(self) -> bool:
        """Only outcomes that searched FlixHQ count against the request budget."""

        return self in {
            CrawlOutcome.MATCHED,
            CrawlOutcome.NO_MATCH,
            CrawlOutcome.SLUG_TAKEN,
        }


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Wait ``interval`` seconds between attempts; ``None`` attempts means forever."""

    interval: float
    max_attempts: int | None = None

    def should_retry(self, attempt: int) -> bool:
        return self.max_attempts is None or attempt < self.max_attempts


class ReconciliationCrawler:
    """Builds mappings for every TMDB id of one content type.

    The crawl never finishes on its own; call :meth:`stop` (or cancel the
    task) to end it. Every sleep wakes up immediately once stopped.
    """

    def __init__(
        self,
        settings: Settings,
        tmdb_client: TMDBClient,
        mapping_service: MappingService,
        store: MappingStore,
        content_type: str,
        *,
        retry_policy: RetryPolicy | None = None,
        matcher: CandidateMatcher | None = None,
    ):
        self._tmdb = tmdb_client
        self._service = mapping_service
        self._store = store
        self.content_type = content_type
        self.delay_seconds = settings.crawl_delay_seconds
        self.failure_pause_seconds = settings.crawl_failure_pause_seconds
        self.min_popularity = settings.crawl_min_popularity
        self.retry_policy = retry_policy or RetryPolicy(
            interval=settings.crawl_retry_interval_seconds
        )
        self._matcher: CandidateMatcher = matcher or SimilarityYearMatcher(CRAWLER_POLICY)
        self._stop_event = asyncio.Event()
        self.current_id: int | None = None

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Ask the crawl loop to exit after the current identifier."""

        self._stop_event.set()

    async def start_id(self, mode: CrawlMode) -> int:
        """Return the first id to visit for ``mode``."""

        if mode is CrawlMode.RESUME:
            latest = await self._store.max_mapped_id(self.content_type)
            if latest is not None:
                logger.info(
                    "Latest mapped %s id is %s. Resuming from %s...",
                    self.content_type,
                    latest,
                    latest + 1,
                )
                return latest + 1
            logger.info("No mapped %s entries found. Starting from 1.", self.content_type)
        return 1

    async def run(self, start_id: int) -> None:
        """Crawl from ``start_id`` until stopped."""

        logger.info(
            "Starting crawler: %s from id %s (delay %.1fs)",
            self.content_type.upper(),
            start_id,
            self.delay_seconds,
        )
        self.current_id = start_id
        attempt = 0
        while not self.stopped:
            try:
                outcome = await self.step(self.current_id)
            except Exception:
                logger.exception("Crash on id %s; retrying", self.current_id)
                await self._sleep(self.failure_pause_seconds)
                continue

            if not outcome.advances:
                attempt += 1
                if self.retry_policy.should_retry(attempt):
                    logger.warning(
                        "TMDB API error on id %s. Retrying in %.0fs...",
                        self.current_id,
                        self.retry_policy.interval,
                    )
                    await self._sleep(self.retry_policy.interval)
                    continue
                logger.error(
                    "Giving up on id %s after %s attempts", self.current_id, attempt
                )
            attempt = 0

            if outcome.rate_limited:
                await self._sleep(self.delay_seconds)
            self.current_id += 1
        logger.info("Crawler stopped at id %s", self.current_id)

    async def step(self, tmdb_id: int) -> CrawlOutcome:
        """Process a single TMDB id and report what happened."""

        if await self._store.contains(tmdb_id, self.content_type):
            return CrawlOutcome.ALREADY_MAPPED

        try:
            metadata = await self._tmdb.get_by_id(tmdb_id, self.content_type)
        except ReferenceCatalogError:
            return CrawlOutcome.RETRY
        if metadata is None:
            return CrawlOutcome.MISSING

        label = (
            f"[{self.content_type.upper()}] {str(tmdb_id).ljust(7)} | "
            f"{metadata.title[:30].ljust(30)} | {metadata.year or '----'}"
        )
        if metadata.popularity < self.min_popularity:
            logger.info("%s | SKIP (Low Pop: %s)", label, metadata.popularity)
            return CrawlOutcome.LOW_POPULARITY

        match = await self._service.find_provider_match(
            metadata, self.content_type, matcher=self._matcher
        )
        if match is None:
            logger.info("%s | No Match", label)
            return CrawlOutcome.NO_MATCH

        details = await self._service.fetch_details(match.slug)
        mapping = self._service.build_mapping(
            metadata,
            self.content_type,
            match,
            details,
            flix_year=match.year or metadata.year,
        )
        stored, created = await self._store.add(mapping)
        if not created:
            logger.info(
                "%s | TAKEN: %s already maps TMDB %s", label, match.slug, stored.tmdb_id
            )
            return CrawlOutcome.SLUG_TAKEN
        logger.info("%s | MATCH: %s", label, match.slug)
        return CrawlOutcome.MATCHED

    async def _sleep(self, seconds: float) -> None:
        if self.stopped:
            return
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
