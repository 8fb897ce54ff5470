"""Paginated collection fetches.

The provider exposes two pagination styles:

* page-number collections (``/order``, ``/receiving``) take ``Page``/``Limit``
  and report the page count in a ``total-pages`` header;
* cursor collections (``/transactions:query``) wrap results as
  ``{"items": [...], "next": "<cursor>"}`` and expect the cursor back as
  ``Cursor``.

Neither fetch raises on provider failures. The caller gets a ``FetchOutcome``
whose ``complete`` flag is True only when the collection was exhausted
naturally; anything else (rate limit, 5xx, network, page cap) leaves a partial
listing that must not be used for reconciliation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from shipmirror.utils.logger import logger

from .client import ProviderClient
from .errors import (
    ProviderAuthError,
    ProviderError,
    ProviderNetworkError,
    ProviderRateLimitError,
    ProviderServerError,
)

STOP_EXHAUSTED = "exhausted"
STOP_MAX_PAGES = "max_pages"
STOP_RATE_LIMITED = "rate_limited"
STOP_SERVER_ERROR = "server_error"
STOP_NETWORK_ERROR = "network_error"
STOP_AUTH_ERROR = "auth_error"
STOP_CLIENT_ERROR = "client_error"

# Stops reported as warnings; the rest are errors.
WARNING_STOPS = frozenset({STOP_RATE_LIMITED, STOP_MAX_PAGES})


@dataclass
class FetchOutcome:
    items: List[Dict[str, Any]] = field(default_factory=list)
    pages: int = 0
    complete: bool = False
    stop_reason: str = STOP_EXHAUSTED
    message: Optional[str] = None

    @property
    def is_warning(self) -> bool:
        return self.stop_reason in WARNING_STOPS

    @property
    def is_auth_failure(self) -> bool:
        return self.stop_reason == STOP_AUTH_ERROR


def classify_error(exc: ProviderError) -> str:
    if isinstance(exc, ProviderRateLimitError):
        return STOP_RATE_LIMITED
    if isinstance(exc, ProviderAuthError):
        return STOP_AUTH_ERROR
    if isinstance(exc, ProviderServerError):
        return STOP_SERVER_ERROR
    if isinstance(exc, ProviderNetworkError):
        return STOP_NETWORK_ERROR
    return STOP_CLIENT_ERROR


def _header_int(headers, name: str) -> Optional[int]:
    raw = headers.get(name) if headers is not None else None
    if not raw:
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def _page_items(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return data.get("items") or []
    return []


class PagedFetcher:
    def __init__(self, client: ProviderClient, *, max_pages: int):
        self.client = client
        self.max_pages = max(1, int(max_pages))

    def _interrupted(self, path: str, items: List[Dict[str, Any]], pages: int, exc: ProviderError) -> FetchOutcome:
        reason = classify_error(exc)
        if reason == STOP_RATE_LIMITED:
            logger.warning("[paging] %s rate limited after %s pages; stopping", path, pages)
        else:
            logger.error("[paging] %s stopped after %s pages: %s", path, pages, exc)
        return FetchOutcome(items=items, pages=pages, complete=False, stop_reason=reason, message=str(exc))

    def _capped(self, path: str, items: List[Dict[str, Any]], pages: int) -> FetchOutcome:
        logger.warning("[paging] %s reached max_pages=%s; listing truncated", path, self.max_pages)
        return FetchOutcome(
            items=items,
            pages=pages,
            complete=False,
            stop_reason=STOP_MAX_PAGES,
            message=f"{path}: stopped at max_pages={self.max_pages}",
        )

    async def fetch_numbered(
        self,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        page_size: int,
    ) -> FetchOutcome:
        items: List[Dict[str, Any]] = []
        total_pages: Optional[int] = None
        page = 1
        pages_fetched = 0

        while True:
            if pages_fetched >= self.max_pages:
                return self._capped(path, items, pages_fetched)

            query = dict(params or {})
            query["Page"] = page
            query["Limit"] = page_size
            try:
                data, headers = await self.client.request_json("GET", path, params=query)
            except ProviderError as exc:
                return self._interrupted(path, items, pages_fetched, exc)

            pages_fetched += 1
            batch = _page_items(data)
            if total_pages is None:
                total_pages = _header_int(headers, "total-pages")

            if not batch:
                break
            items.extend(batch)

            if total_pages and page >= total_pages:
                break
            if not total_pages and len(batch) < page_size:
                break
            page += 1

        return FetchOutcome(items=items, pages=pages_fetched, complete=True, stop_reason=STOP_EXHAUSTED)

    async def fetch_cursor(
        self,
        path: str,
        *,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> FetchOutcome:
        items: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        pages_fetched = 0

        while True:
            if pages_fetched >= self.max_pages:
                return self._capped(path, items, pages_fetched)

            query = dict(params or {})
            if cursor:
                query["Cursor"] = cursor
            try:
                data, _ = await self.client.request_json(method, path, params=query or None, json_body=json_body)
            except ProviderError as exc:
                return self._interrupted(path, items, pages_fetched, exc)

            pages_fetched += 1
            items.extend(_page_items(data))
            cursor = data.get("next") if isinstance(data, dict) else None
            if not cursor:
                break

        return FetchOutcome(items=items, pages=pages_fetched, complete=True, stop_reason=STOP_EXHAUSTED)
