from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from hypebiscus.errors import GatewayError

logger = logging.getLogger(__name__)

USER_AGENT = "Hypebiscus/1.0"


class HttpClient:
    """Thin async HTTP wrapper. Raises GatewayError on any non-2xx or transport fault."""

    def __init__(self, timeout: float = 15.0, transport: httpx.AsyncBaseTransport | None = None):
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"User-Agent": USER_AGENT},
        )

    async def get(self, url: str, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        logger.debug(f"HTTP GET {url} params={params}")
        return await self._send("GET", url, params=params, headers=headers)

    async def post(self, url: str, json: Optional[Any] = None, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        logger.debug(f"HTTP POST {url} json_keys={list(json.keys()) if isinstance(json, dict) else None}")
        return await self._send("POST", url, json=json, headers=headers)

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise GatewayError(f"{method} {url} failed: {e.__class__.__name__}") from e
        if resp.status_code >= 400:
            raise GatewayError(f"{method} {url} returned HTTP {resp.status_code}")
        return resp

    async def aclose(self) -> None:
        await self._client.aclose()
