"""Entry point for the FastAPI-powered mapping service."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import settings
from .database import Database
from .models import CONTENT_TYPES
from .services.flixhq import DEFAULT_HEADERS, FlixHQClient
from .services.mapping_store import MappingStore
from .services.resolver import (
    InvalidReferenceId,
    MappingNotFound,
    MappingService,
    ProviderContentNotFound,
)
from .services.skip_segments import (
    AdminForbidden,
    SkipSegmentService,
    SubmissionNotFound,
    SubmissionValidationError,
)
from .services.skip_store import SkipSegmentStore
from .services.tmdb import TMDBClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url).rstrip("/"),
            timeout=httpx.Timeout(settings.http_timeout_seconds, connect=10.0),
        )
    )
    flixhq_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=settings.provider_base_url,
            headers=DEFAULT_HEADERS,
            follow_redirects=True,
            timeout=httpx.Timeout(settings.http_timeout_seconds, connect=10.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    mapping_store = MappingStore(database.session_factory)
    mapping_service = MappingService(
        TMDBClient(settings, tmdb_http_client),
        FlixHQClient(settings, flixhq_http_client),
        mapping_store,
    )
    skip_service = SkipSegmentService(
        settings, SkipSegmentStore(database.session_factory)
    )
    if not settings.admin_secret:
        logger.warning("ADMIN_SECRET is not set; admin endpoints will reject every call")

    fastapi_app.state.database = database
    fastapi_app.state.mapping_service = mapping_service
    fastapi_app.state.skip_service = skip_service

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="TMDB to FlixHQ mapping and community skip segments",
        version=__version__,
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_mapping_service(app: FastAPI) -> MappingService:
    service = getattr(app.state, "mapping_service", None)
    if not isinstance(service, MappingService):
        raise RuntimeError("Mapping service not initialised")
    return service


def get_skip_service(app: FastAPI) -> SkipSegmentService:
    service = getattr(app.state, "skip_service", None)
    if not isinstance(service, SkipSegmentService):
        raise RuntimeError("Skip segment service not initialised")
    return service


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/map/tmdb/{tmdb_id}")
    async def map_tmdb(tmdb_id: int, type: str = "movie") -> JSONResponse:
        if type not in CONTENT_TYPES:
            return _error(400, "type must be 'movie' or 'tv'", found=False)
        service = get_mapping_service(fastapi_app)
        try:
            resolved = await service.resolve(tmdb_id, type)
        except InvalidReferenceId:
            return _error(404, "Invalid TMDB ID", found=False)
        except MappingNotFound:
            return _error(404, "Not found on FlixHQ", found=False)
        return JSONResponse(resolved.to_payload())

    @fastapi_app.get("/map/flix/{slug:path}")
    async def map_flix(slug: str) -> JSONResponse:
        service = get_mapping_service(fastapi_app)
        try:
            resolved = await service.resolve_reverse(slug)
        except ProviderContentNotFound:
            return _error(404, "FlixHQ content not found", found=False)
        except MappingNotFound:
            return _error(
                404, "TMDB match not found for this FlixHQ content", found=False
            )
        return JSONResponse(resolved.to_payload())

    @fastapi_app.get("/getlatest")
    async def latest_mapped(
        type: str | None = None, media: str | None = None
    ) -> dict[str, Any]:
        if media is not None and media not in CONTENT_TYPES:
            media = None
        service = get_mapping_service(fastapi_app)
        latest = await service.latest_mapped_id(type, media)
        if latest is None:
            return {"id": 0, "found": False}
        return {"id": latest}

    @fastapi_app.get("/skip/{tmdb_id}/{season}/{episode}")
    async def skip_segments(tmdb_id: int, season: int, episode: int) -> dict[str, Any]:
        service = get_skip_service(fastapi_app)
        segments = await service.best_for(tmdb_id, season, episode)
        return segments.to_payload()

    @fastapi_app.post("/skip/{tmdb_id}/{season}/{episode}")
    async def submit_skip_segment(
        request: Request, tmdb_id: int, season: int, episode: int
    ) -> JSONResponse:
        service = get_skip_service(fastapi_app)
        payload = await _json_body(request)
        try:
            submission = await service.submit(
                tmdb_id, season, episode, payload.get("intro"), payload.get("outro")
            )
        except SubmissionValidationError as exc:
            return _error(400, str(exc))
        return JSONResponse({"success": True, "submission": submission.to_payload()})

    @fastapi_app.post("/skip/vote/{submission_id}")
    async def vote_skip_segment(request: Request, submission_id: str) -> JSONResponse:
        service = get_skip_service(fastapi_app)
        payload = await _json_body(request)
        try:
            submission = await service.vote(
                submission_id, str(payload.get("direction") or "")
            )
        except SubmissionValidationError as exc:
            return _error(400, str(exc))
        except SubmissionNotFound:
            return _error(404, "Submission not found")
        return JSONResponse({"success": True, "submission": submission.to_payload()})

    @fastapi_app.post("/skip/verify/{submission_id}")
    async def verify_skip_segment(request: Request, submission_id: str) -> JSONResponse:
        service = get_skip_service(fastapi_app)
        payload = await _json_body(request)
        try:
            submission = await service.verify(submission_id, _secret(payload))
        except AdminForbidden:
            return _error(403, "Forbidden")
        except SubmissionNotFound:
            return _error(404, "Submission not found")
        return JSONResponse({"success": True, "submission": submission.to_payload()})

    @fastapi_app.post("/skip/purge/{tmdb_id}/{season}/{episode}")
    async def purge_episode(
        request: Request, tmdb_id: int, season: int, episode: int
    ) -> JSONResponse:
        service = get_skip_service(fastapi_app)
        payload = await _json_body(request)
        try:
            key, removed = await service.purge_episode(
                tmdb_id, season, episode, _secret(payload)
            )
        except AdminForbidden:
            return _error(403, "Forbidden")
        return JSONResponse({"success": True, "episodeKey": key, "removed": removed})

    @fastapi_app.post("/skip/purge-all")
    async def purge_all(request: Request) -> JSONResponse:
        service = get_skip_service(fastapi_app)
        payload = await _json_body(request)
        try:
            removed = await service.purge_all(_secret(payload))
        except AdminForbidden:
            return _error(403, "Forbidden")
        return JSONResponse({"success": True, "removed": removed})


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = {}
    if not isinstance(payload, dict):
        return {}
    return payload


def _secret(payload: dict[str, Any]) -> str | None:
    value = payload.get("secret")
    return value if isinstance(value, str) else None


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse({**extra, "error": message}, status_code=status_code)


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
