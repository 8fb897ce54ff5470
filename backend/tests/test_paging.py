import json

import httpx
import pytest

from shipmirror.services.provider.client import ProviderClient
from shipmirror.services.provider.errors import (
    ProviderAuthError,
    ProviderClientError,
    ProviderNotFoundError,
    ProviderRateLimitError,
    ProviderServerError,
)
from shipmirror.services.provider.paging import (
    STOP_AUTH_ERROR,
    STOP_EXHAUSTED,
    STOP_MAX_PAGES,
    STOP_NETWORK_ERROR,
    STOP_RATE_LIMITED,
    STOP_SERVER_ERROR,
    PagedFetcher,
)


def _numbered_handler(items, *, total_pages_header=True, fail_page=None, fail_status=429):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["Page"])
        limit = int(request.url.params["Limit"])
        seen.append(page)
        if page == fail_page:
            return httpx.Response(fail_status, headers={"retry-after": "30"})
        chunk = items[(page - 1) * limit : page * limit]
        headers = {"content-type": "application/json"}
        if total_pages_header:
            headers["total-pages"] = str(max(1, -(-len(items) // limit)))
        return httpx.Response(200, content=json.dumps(chunk).encode(), headers=headers)

    return handler, seen


async def _fetch_numbered(handler, *, page_size=2, max_pages=50):
    async with ProviderClient("tok", transport=httpx.MockTransport(handler)) as client:
        fetcher = PagedFetcher(client, max_pages=max_pages)
        outcome = await fetcher.fetch_numbered("/order", params={"StartDate": "x"}, page_size=page_size)
        return outcome, client.request_count


@pytest.mark.asyncio
async def test_numbered_stops_at_total_pages_header():
    items = [{"id": i} for i in range(5)]
    handler, seen = _numbered_handler(items)

    outcome, requests = await _fetch_numbered(handler)

    assert outcome.complete
    assert outcome.stop_reason == STOP_EXHAUSTED
    assert [i["id"] for i in outcome.items] == [0, 1, 2, 3, 4]
    assert seen == [1, 2, 3]
    assert requests == 3


@pytest.mark.asyncio
async def test_numbered_stops_on_short_page_without_header():
    items = [{"id": i} for i in range(3)]
    handler, seen = _numbered_handler(items, total_pages_header=False)

    outcome, _ = await _fetch_numbered(handler)

    assert outcome.complete
    assert len(outcome.items) == 3
    assert seen == [1, 2]


@pytest.mark.asyncio
async def test_numbered_stops_on_empty_page():
    items = [{"id": i} for i in range(4)]
    handler, seen = _numbered_handler(items, total_pages_header=False)

    outcome, _ = await _fetch_numbered(handler)

    assert outcome.complete
    assert len(outcome.items) == 4
    assert seen == [1, 2, 3]


@pytest.mark.asyncio
async def test_rate_limit_mid_listing_returns_partial_outcome():
    items = [{"id": i} for i in range(6)]
    handler, seen = _numbered_handler(items, fail_page=2, fail_status=429)

    outcome, _ = await _fetch_numbered(handler)

    assert not outcome.complete
    assert outcome.stop_reason == STOP_RATE_LIMITED
    assert outcome.is_warning
    assert [i["id"] for i in outcome.items] == [0, 1]
    assert seen == [1, 2]


@pytest.mark.asyncio
async def test_server_error_is_not_a_warning():
    items = [{"id": i} for i in range(6)]
    handler, _ = _numbered_handler(items, fail_page=1, fail_status=503)

    outcome, _ = await _fetch_numbered(handler)

    assert not outcome.complete
    assert outcome.stop_reason == STOP_SERVER_ERROR
    assert not outcome.is_warning
    assert outcome.items == []


@pytest.mark.asyncio
async def test_auth_error_is_flagged():
    items = [{"id": 1}]
    handler, _ = _numbered_handler(items, fail_page=1, fail_status=401)

    outcome, _ = await _fetch_numbered(handler)

    assert outcome.stop_reason == STOP_AUTH_ERROR
    assert outcome.is_auth_failure


@pytest.mark.asyncio
async def test_max_pages_truncates_listing():
    items = [{"id": i} for i in range(10)]
    handler, seen = _numbered_handler(items)

    outcome, _ = await _fetch_numbered(handler, page_size=2, max_pages=3)

    assert not outcome.complete
    assert outcome.stop_reason == STOP_MAX_PAGES
    assert outcome.is_warning
    assert len(outcome.items) == 6
    assert seen == [1, 2, 3]


@pytest.mark.asyncio
async def test_network_error_stops_listing():
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    outcome, _ = await _fetch_numbered(handler)

    assert outcome.stop_reason == STOP_NETWORK_ERROR
    assert not outcome.complete


@pytest.mark.asyncio
async def test_cursor_pagination_follows_next():
    pages = {None: ([{"transaction_id": "a"}], "c1"), "c1": ([{"transaction_id": "b"}], "c2"), "c2": ([], None)}
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        items, nxt = pages[request.url.params.get("Cursor")]
        return httpx.Response(200, json={"items": items, "next": nxt})

    async with ProviderClient("tok", transport=httpx.MockTransport(handler)) as client:
        outcome = await PagedFetcher(client, max_pages=10).fetch_cursor(
            "/transactions:query", method="POST", json_body={"page_size": 1000}
        )

    assert outcome.complete
    assert [i["transaction_id"] for i in outcome.items] == ["a", "b"]
    assert outcome.pages == 3
    assert all(body == {"page_size": 1000} for body in bodies)


@pytest.mark.asyncio
async def test_cursor_pagination_respects_max_pages():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"items": [{"transaction_id": "x"}], "next": "more"})

    async with ProviderClient("tok", transport=httpx.MockTransport(handler)) as client:
        outcome = await PagedFetcher(client, max_pages=4).fetch_cursor("/transactions:query", method="POST")

    assert outcome.stop_reason == STOP_MAX_PAGES
    assert outcome.pages == 4


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code, error",
    [
        (401, ProviderAuthError),
        (403, ProviderAuthError),
        (404, ProviderNotFoundError),
        (429, ProviderRateLimitError),
        (500, ProviderServerError),
        (422, ProviderClientError),
    ],
)
async def test_client_maps_status_codes(status_code, error):
    transport = httpx.MockTransport(lambda request: httpx.Response(status_code, text="x"))
    async with ProviderClient("tok", transport=transport) as client:
        with pytest.raises(error) as excinfo:
            await client.request_json("GET", "/order/1")
    assert excinfo.value.status_code == status_code


@pytest.mark.asyncio
async def test_client_sends_bearer_token():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"id": 1})

    async with ProviderClient("secret-token", transport=httpx.MockTransport(handler)) as client:
        assert await client.get_order("1") == {"id": 1}
    assert captured["auth"] == "Bearer secret-token"


@pytest.mark.asyncio
async def test_invalid_json_is_a_client_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"<html>"))
    async with ProviderClient("tok", transport=transport) as client:
        with pytest.raises(ProviderClientError):
            await client.request_json("GET", "/order")
