from __future__ import annotations

import httpx
import pytest

from app.config import Settings
from app.services.tmdb import ReferenceCatalogError, TMDBClient


def build_settings() -> Settings:
    return Settings(_env_file=None, TMDB_API_KEY="tmdb-key")


@pytest.mark.anyio("asyncio")
async def test_get_by_id_reads_movie_metadata() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "id": 27205,
                "title": "Inception",
                "release_date": "2010-07-15",
                "popularity": 83.2,
            },
        )

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com") as http_client:
        client = TMDBClient(build_settings(), http_client)
        metadata = await client.get_by_id(27205, "movie")

    assert metadata is not None
    assert metadata.title == "Inception"
    assert metadata.year == 2010
    assert metadata.popularity == pytest.approx(83.2)
    assert requests[0].url.path == "/movie/27205"
    assert requests[0].url.params["api_key"] == "tmdb-key"


@pytest.mark.anyio("asyncio")
async def test_get_by_id_reads_series_name_and_air_date() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/tv/1399"
        return httpx.Response(
            200,
            json={"id": 1399, "name": "Game of Thrones", "first_air_date": "2011-04-17"},
        )

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com") as http_client:
        metadata = await TMDBClient(build_settings(), http_client).get_by_id(1399, "tv")

    assert metadata is not None
    assert metadata.title == "Game of Thrones"
    assert metadata.year == 2011
    assert metadata.popularity == 0.0


@pytest.mark.anyio("asyncio")
async def test_get_by_id_missing_entry_returns_none() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"status_code": 34})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com") as http_client:
        metadata = await TMDBClient(build_settings(), http_client).get_by_id(1, "movie")

    assert metadata is None


@pytest.mark.anyio("asyncio")
async def test_get_by_id_server_error_raises() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"status_message": "slow down"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com") as http_client:
        client = TMDBClient(build_settings(), http_client)
        with pytest.raises(ReferenceCatalogError):
            await client.get_by_id(1, "movie")


@pytest.mark.anyio("asyncio")
async def test_transport_errors_raise_catalog_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com") as http_client:
        client = TMDBClient(build_settings(), http_client)
        with pytest.raises(ReferenceCatalogError):
            await client.search_by_title("Inception", "movie")


@pytest.mark.anyio("asyncio")
async def test_search_by_title_keeps_order_and_skips_bad_rows() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "results": [
                    {"id": 64956, "title": "Inception: The Cobol Job", "release_date": "2010-12-07"},
                    {"title": "No id"},
                    {"id": 27205, "title": "Inception", "release_date": ""},
                ]
            },
        )

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com") as http_client:
        results = await TMDBClient(build_settings(), http_client).search_by_title(
            "Inception", "movie"
        )

    assert [(result.tmdb_id, result.year) for result in results] == [
        (64956, 2010),
        (27205, None),
    ]
    assert requests[0].url.path == "/search/movie"
    assert requests[0].url.params["query"] == "Inception"


def test_client_requires_api_key() -> None:
    with pytest.raises(ValueError):
        TMDBClient(Settings(_env_file=None, TMDB_API_KEY=""), None)  # type: ignore[arg-type]
