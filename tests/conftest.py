from typing import Any, Dict, List, Optional

import httpx
import pytest

from hypebiscus.http import HttpClient
from hypebiscus.models import ApiPool


def make_pool(
    name: str = "wBTC-SOL",
    bin_step: Optional[int] = 10,
    liquidity: str = "100000",
    apy: float = 0.05,
    fees_24h: float = 10.0,
    address: Optional[str] = None,
    **extra: Any,
) -> ApiPool:
    return ApiPool(
        name=name,
        address=address or f"{name.lower()}-{bin_step}-{liquidity}",
        liquidity=liquidity,
        current_price=extra.pop("current_price", 95000.0),
        apy=apy,
        fees_24h=fees_24h,
        trade_volume_24h=extra.pop("trade_volume_24h", 250000.0),
        bin_step=bin_step,
    )


def pool_json(pool: ApiPool) -> Dict[str, Any]:
    return pool.model_dump()


def groups_payload(*pools: ApiPool, group_name: str = "BTC-SOL") -> Dict[str, Any]:
    return {"groups": [{"name": group_name, "pairs": [pool_json(p) for p in pools]}], "total": len(pools)}


class IndexStub:
    """Serves /pair/all_by_groups from a term -> payload (or status code) map and records calls."""

    def __init__(self, responses: Dict[str, Any]):
        self.responses = responses
        self.calls: List[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        term = request.url.params.get("search_term")
        self.calls.append(term)
        resp = self.responses.get(term, {"groups": [], "total": 0})
        if isinstance(resp, int):
            return httpx.Response(resp, json={"error": "boom"})
        return httpx.Response(200, json=resp)


@pytest.fixture
def index_http():
    """Factory for an HttpClient whose transport is an IndexStub."""
    clients: List[HttpClient] = []

    def _make(responses: Dict[str, Any]):
        stub = IndexStub(responses)
        http = HttpClient(transport=httpx.MockTransport(stub))
        clients.append(http)
        return http, stub

    return _make


class FakeStream:
    def __init__(self, chunks: List[str], error: Optional[BaseException] = None):
        self.chunks = chunks
        self.error = error
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.closed = True
        return False

    @property
    def text_stream(self):
        return self._gen()

    async def _gen(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


class FakeMessages:
    def __init__(self, chunks: List[str], error: Optional[BaseException] = None):
        self.chunks = chunks
        self.error = error
        self.calls: List[Dict[str, Any]] = []
        self.streams: List[FakeStream] = []

    def stream(self, **kwargs):
        self.calls.append(kwargs)
        s = FakeStream(self.chunks, self.error)
        self.streams.append(s)
        return s


class FakeAnthropic:
    def __init__(self, chunks: Optional[List[str]] = None, error: Optional[BaseException] = None):
        self.messages = FakeMessages(chunks if chunks is not None else ["Hello", ", ", "world"], error)
        self.closed = False

    async def close(self):
        self.closed = True
