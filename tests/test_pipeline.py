"""Tests for the authenticated request pipeline."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from fake_server import BASE_URL, USER_ID, FakeMediaServer, build_client
from jellyshelf.errors import TransportError

ITEMS_PATH = f"/Users/{USER_ID}/Items"
LISTING = {"Items": [], "TotalRecordCount": 0}


@pytest.mark.anyio("asyncio")
async def test_first_request_logs_in_and_attaches_token() -> None:
    server = FakeMediaServer()
    server.route(ITEMS_PATH, LISTING)
    async with httpx.AsyncClient(transport=server.transport) as http_client:
        client = await build_client(http_client)
        await client.list_popular(1)

    assert server.login_calls == 1
    catalog_request = server.requests[-1]
    assert 'Token="token-1"' in catalog_request.headers["Authorization"]


@pytest.mark.anyio("asyncio")
async def test_unauthorized_response_triggers_one_refresh_and_replay() -> None:
    server = FakeMediaServer()
    server.route(ITEMS_PATH, LISTING)
    async with httpx.AsyncClient(transport=server.transport) as http_client:
        client = await build_client(http_client)
        await client.list_popular(1)
        server.expire_tokens()
        page = await client.list_popular(1)

    assert page.total_count == 0
    assert server.login_calls == 2
    assert server.hits[ITEMS_PATH] == 3
    assert 'Token="token-2"' in server.requests[-1].headers["Authorization"]


@pytest.mark.anyio("asyncio")
async def test_second_unauthorized_response_is_returned_without_retry() -> None:
    server = FakeMediaServer()
    server.reject_all = True
    async with httpx.AsyncClient(transport=server.transport) as http_client:
        client = await build_client(http_client)
        request = http_client.build_request("GET", f"{BASE_URL}{ITEMS_PATH}")
        response = await client.pipeline.send(request)

    assert response.status_code == 401
    assert server.login_calls == 2
    assert server.hits[ITEMS_PATH] == 2


@pytest.mark.anyio("asyncio")
async def test_concurrent_unauthorized_responses_share_one_refresh() -> None:
    server = FakeMediaServer(login_delay=0.02)
    server.route(ITEMS_PATH, LISTING)
    async with httpx.AsyncClient(transport=server.transport) as http_client:
        client = await build_client(http_client)
        await client.sessions.ensure_authenticated()
        server.expire_tokens()
        pages = await asyncio.gather(*(client.list_popular(1) for _ in range(5)))

    assert len(pages) == 5
    assert server.login_calls == 2


@pytest.mark.anyio("asyncio")
async def test_login_requests_pass_through_untouched() -> None:
    server = FakeMediaServer()
    async with httpx.AsyncClient(transport=server.transport) as http_client:
        client = await build_client(http_client)
        request = http_client.build_request(
            "POST",
            f"{BASE_URL}/Users/AuthenticateByName",
            json={"Username": "user", "Pw": "1234"},
        )
        response = await client.pipeline.send(request)

    assert response.status_code == 200
    assert server.login_calls == 1
    assert "Authorization" not in server.requests[0].headers


@pytest.mark.anyio("asyncio")
async def test_transport_errors_are_not_treated_as_auth_failures() -> None:
    server = FakeMediaServer()

    def broken(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    server.route(ITEMS_PATH, broken)
    async with httpx.AsyncClient(transport=server.transport) as http_client:
        client = await build_client(http_client)
        with pytest.raises(TransportError) as excinfo:
            await client.list_popular(1)

    assert isinstance(excinfo.value.__cause__, httpx.ReadTimeout)
    assert server.login_calls == 1
    assert server.hits[ITEMS_PATH] == 1


@pytest.mark.anyio("asyncio")
async def test_undecodable_body_raises_transport_error() -> None:
    server = FakeMediaServer()

    def garbled(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip")

    server.route(ITEMS_PATH, garbled)
    async with httpx.AsyncClient(transport=server.transport) as http_client:
        client = await build_client(http_client)
        with pytest.raises(TransportError) as excinfo:
            await client.list_popular(1)

    assert isinstance(excinfo.value.__cause__, httpx.DecodingError)
    assert server.login_calls == 1


@pytest.mark.anyio("asyncio")
async def test_concurrent_catalog_requests_on_fresh_session_share_one_login() -> None:
    server = FakeMediaServer(login_delay=0.02)
    server.route(ITEMS_PATH, LISTING)
    async with httpx.AsyncClient(transport=server.transport) as http_client:
        client = await build_client(http_client)
        pages = await asyncio.gather(*(client.list_popular(1) for _ in range(6)))

    assert len(pages) == 6
    assert server.login_calls == 1
    catalog_requests = [r for r in server.requests if r.url.path == ITEMS_PATH]
    assert len(catalog_requests) == 6
    assert all(
        'Token="token-1"' in request.headers["Authorization"] for request in catalog_requests
    )
