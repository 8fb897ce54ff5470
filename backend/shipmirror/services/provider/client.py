"""Thin async client for the fulfillment provider's REST API.

One instance is bound to one bearer token and one ``Throttler``. Every call
waits on the throttler first, then maps non-2xx responses onto the
``ProviderError`` hierarchy so callers can decide how far a failure reaches.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import httpx

from shipmirror.config import settings
from shipmirror.utils.logger import logger

from .errors import (
    ProviderAuthError,
    ProviderClientError,
    ProviderError,
    ProviderNetworkError,
    ProviderNotFoundError,
    ProviderRateLimitError,
    ProviderServerError,
)
from .throttle import Throttler


class ProviderClient:
    def __init__(
        self,
        token: str,
        *,
        throttler: Optional[Throttler] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.throttler = throttler or Throttler.from_rate(settings.PROVIDER_REQUESTS_PER_MINUTE)
        self._base_url = (base_url or settings.PROVIDER_API_BASE_URL).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None
        self.request_count = 0

    async def __aenter__(self) -> "ProviderClient":
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=httpx.Timeout(self._timeout, connect=10.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Any, httpx.Headers]:
        if self._http is None:
            raise RuntimeError("ProviderClient must be used as an async context manager")

        await self.throttler.wait()
        self.request_count += 1

        try:
            resp = await self._http.request(method, path, params=params, json=json_body)
        except httpx.RequestError as exc:
            raise ProviderNetworkError(f"request failed: {exc!r}", path=path) from exc

        code = resp.status_code
        if code in (401, 403):
            raise ProviderAuthError("credential rejected", status_code=code, path=path)
        if code == 404:
            raise ProviderNotFoundError("not found", status_code=code, path=path)
        if code == 429:
            raise ProviderRateLimitError(
                "rate limited",
                status_code=code,
                path=path,
                retry_after=resp.headers.get("retry-after"),
            )
        if code >= 500:
            raise ProviderServerError(
                f"server error: {resp.text[:200]}", status_code=code, path=path
            )
        if code >= 400:
            raise ProviderClientError(
                f"request rejected: {resp.text[:200]}", status_code=code, path=path
            )

        if code == 204 or not resp.content:
            return None, resp.headers
        try:
            return resp.json(), resp.headers
        except ValueError as exc:
            logger.error("[provider] invalid JSON from %s %s: %s", method, path, exc)
            raise ProviderClientError("response is not valid JSON", status_code=code, path=path) from exc

    async def get_order(self, order_id: str) -> Any:
        data, _ = await self.request_json("GET", f"/order/{order_id}")
        return data

    async def get_shipment(self, shipment_id: str) -> Any:
        data, _ = await self.request_json("GET", f"/shipment/{shipment_id}")
        return data

    async def get_shipment_timeline(self, shipment_id: str) -> Any:
        data, _ = await self.request_json("GET", f"/shipment/{shipment_id}/timeline")
        return data

    async def get_return(self, return_id: str) -> Any:
        data, _ = await self.request_json("GET", f"/return/{return_id}")
        return data

    async def list_shipping_methods(self) -> List[Any]:
        data, _ = await self.request_json("GET", "/shipping-method")
        return data if isinstance(data, list) else []

    async def list_channels(self) -> List[Any]:
        data, _ = await self.request_json("GET", "/channel")
        # Newer API versions wrap the list in {"items": [...]}.
        if isinstance(data, dict):
            data = data.get("items")
        return data if isinstance(data, list) else []


__all__ = ["ProviderClient", "ProviderError"]
