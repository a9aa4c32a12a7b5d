from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from redis.asyncio import Redis
from starlette.requests import Request


def _now_ms() -> int:
    return int(time.monotonic() * 1000)


@dataclass
class RateLimitRecord:
    count: int
    window_start: int


class RateLimiter:
    """Fixed-window request counter per client key, held in process memory.

    Records are evicted once their window has expired, and the map never
    holds more than ``max_keys`` entries (least recently used go first).
    Only suitable for a single-instance deployment; use RedisRateLimiter
    when several processes serve the same clients.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_ms: int = 60_000,
        max_keys: int = 10_000,
        clock: Callable[[], int] = _now_ms,
    ):
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.max_keys = max_keys
        self._clock = clock
        self._records: "OrderedDict[str, RateLimitRecord]" = OrderedDict()
        self._lock = threading.Lock()

    def is_allowed(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            rec = self._records.get(key)
            if rec is None or now - rec.window_start >= self.window_ms:
                rec = RateLimitRecord(count=1, window_start=now)
                self._records[key] = rec
            else:
                rec.count += 1
            self._records.move_to_end(key)
            while len(self._records) > self.max_keys:
                self._records.popitem(last=False)
            return rec.count <= self.max_requests

    def get_remaining_time(self, key: str) -> int:
        now = self._clock()
        with self._lock:
            rec = self._records.get(key)
            if rec is None:
                return 0
            return max(0, rec.window_start + self.window_ms - now)

    def get_count(self, key: str) -> int:
        with self._lock:
            rec = self._records.get(key)
            return rec.count if rec else 0

    def reset(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    def _evict_expired(self, now: int) -> None:
        # Oldest-touched first; stop at the first live record.
        while self._records:
            key, rec = next(iter(self._records.items()))
            if now - rec.window_start < self.window_ms:
                break
            del self._records[key]


class RedisRateLimiter:
    """Same fixed-window policy backed by Redis SET NX PX + INCR, shared across instances."""

    def __init__(self, redis: Redis, max_requests: int = 10, window_ms: int = 60_000, prefix: str = "rate:chat"):
        self.redis = redis
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def is_allowed(self, key: str) -> bool:
        k = self._key(key)
        # Window and expiry are created together so a key can never outlive it.
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(k, 0, px=self.window_ms, nx=True)
            pipe.incr(k)
            _, current = await pipe.execute()
        return int(current) <= self.max_requests

    async def get_remaining_time(self, key: str) -> int:
        ttl = await self.redis.pttl(self._key(key))
        return max(0, int(ttl or 0))

    async def get_count(self, key: str) -> int:
        value = await self.redis.get(self._key(key))
        return int(value or 0)

    async def reset(self) -> None:
        async for k in self.redis.scan_iter(match=f"{self.prefix}:*"):
            await self.redis.delete(k)


def client_identifier(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip: Optional[str] = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
