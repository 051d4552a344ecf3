"""Command line interface for running and maintaining FlixMap."""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import signal
from contextlib import suppress
from pathlib import Path
from typing import Any, Optional

import httpx
import typer
from pydantic import ValidationError

from app import __version__
from app.config import get_settings
from app.database import Database
from app.models import Mapping
from app.services.crawler import CrawlMode, ReconciliationCrawler
from app.services.flixhq import DEFAULT_HEADERS, FlixHQClient
from app.services.mapping_store import MappingStore
from app.services.resolver import MappingService
from app.services.tmdb import TMDBClient

logger = logging.getLogger(__name__)

app = typer.Typer(help="Map TMDB ids to FlixHQ pages and serve the mapping API.")


class ContentTypeChoice(str, enum.Enum):
    MOVIE = "movie"
    TV = "tv"


def _database_url_option() -> Any:
    return typer.Option(
        None,
        "--database-url",
        help="Override DATABASE_URL for this command.",
        envvar="DATABASE_URL",
    )


@app.callback()
def _configure_logging(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def version() -> None:
    """Print the installed FlixMap version."""

    typer.echo(__version__)


@app.command()
def serve() -> None:
    """Start the uvicorn server using the configured settings."""

    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )


@app.command()
def crawl(
    content_type: ContentTypeChoice = typer.Option(
        ..., "--type", prompt="Select content type", help="Which TMDB id space to walk."
    ),
    mode: CrawlMode = typer.Option(
        ...,
        "--mode",
        prompt="Select mode (fill = start from id 1, resume = after latest mapped id)",
        help="Where the crawl starts.",
    ),
    start: Optional[int] = typer.Option(
        None, "--start", min=1, help="Explicit first id; overrides --mode."
    ),
    database_url: Optional[str] = _database_url_option(),
) -> None:
    """Walk TMDB ids forever, mapping every popular title found on FlixHQ."""

    settings = get_settings()
    if not settings.tmdb_api_key:
        typer.echo("TMDB_API_KEY must be configured to crawl.", err=True)
        raise typer.Exit(code=1)
    asyncio.run(
        _run_crawler(
            content_type.value,
            mode,
            start,
            database_url or settings.database_url,
        )
    )


async def _run_crawler(
    content_type: str, mode: CrawlMode, start: int | None, database_url: str
) -> None:
    settings = get_settings()
    database = Database(database_url)
    await database.create_all()
    timeout = httpx.Timeout(settings.http_timeout_seconds, connect=10.0)
    async with httpx.AsyncClient(
        base_url=str(settings.tmdb_api_url).rstrip("/"), timeout=timeout
    ) as tmdb_http, httpx.AsyncClient(
        base_url=settings.provider_base_url,
        headers=DEFAULT_HEADERS,
        follow_redirects=True,
        timeout=timeout,
    ) as flixhq_http:
        tmdb = TMDBClient(settings, tmdb_http)
        store = MappingStore(database.session_factory)
        service = MappingService(tmdb, FlixHQClient(settings, flixhq_http), store)
        crawler = ReconciliationCrawler(settings, tmdb, service, store, content_type)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError):
                loop.add_signal_handler(sig, crawler.stop)

        first_id = start if start is not None else await crawler.start_id(mode)
        try:
            await crawler.run(first_id)
        finally:
            await database.dispose()


@app.command("import-mappings")
def import_mappings(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    database_url: Optional[str] = _database_url_option(),
) -> None:
    """Load a flat JSON list of mappings, skipping duplicates and bad rows."""

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        typer.echo(f"{path} is not valid JSON: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    if not isinstance(payload, list):
        typer.echo(f"{path} must contain a JSON list of mappings", err=True)
        raise typer.Exit(code=1)

    created, skipped, invalid = asyncio.run(
        _import_mappings(payload, database_url or get_settings().database_url)
    )
    typer.echo(f"Imported {created} mappings ({skipped} duplicates, {invalid} invalid).")


async def _import_mappings(
    payload: list[Any], database_url: str
) -> tuple[int, int, int]:
    database = Database(database_url)
    await database.create_all()
    store = MappingStore(database.session_factory)
    created = skipped = invalid = 0
    try:
        for index, entry in enumerate(payload):
            try:
                mapping = Mapping.model_validate(entry)
            except ValidationError as exc:
                logger.warning("Skipping mapping #%s: %s", index, exc)
                invalid += 1
                continue
            _, was_created = await store.add(mapping)
            if was_created:
                created += 1
            else:
                skipped += 1
    finally:
        await database.dispose()
    return created, skipped, invalid


@app.command("export-mappings")
def export_mappings(
    path: Path = typer.Argument(..., dir_okay=False, writable=True),
    content_type: Optional[ContentTypeChoice] = typer.Option(
        None, "--type", help="Only export one content type."
    ),
    database_url: Optional[str] = _database_url_option(),
) -> None:
    """Write every stored mapping to ``path`` as a flat JSON list."""

    mappings = asyncio.run(
        _export_mappings(
            content_type.value if content_type else None,
            database_url or get_settings().database_url,
        )
    )
    path.write_text(
        json.dumps([mapping.model_dump(mode="json") for mapping in mappings], indent=2),
        encoding="utf-8",
    )
    typer.echo(f"Exported {len(mappings)} mappings to {path}.")


async def _export_mappings(content_type: str | None, database_url: str) -> list[Mapping]:
    database = Database(database_url)
    await database.create_all()
    try:
        return await MappingStore(database.session_factory).list_all(content_type)
    finally:
        await database.dispose()
