from starlette.requests import Request

from hypebiscus.services.rate_limiter import RateLimiter, RedisRateLimiter, client_identifier


class FakeClock:
    def __init__(self, now: int = 1_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now


def test_eleventh_request_in_window_is_rejected():
    limiter = RateLimiter(max_requests=10, window_ms=60_000)
    results = [limiter.is_allowed("1.2.3.4") for _ in range(11)]

    assert results == [True] * 10 + [False]
    remaining = limiter.get_remaining_time("1.2.3.4")
    assert 0 < remaining <= 60_000


def test_window_resets_after_expiry():
    clock = FakeClock()
    limiter = RateLimiter(max_requests=2, window_ms=1000, clock=clock)
    assert limiter.is_allowed("k") and limiter.is_allowed("k")
    assert not limiter.is_allowed("k")

    clock.now += 400
    assert limiter.get_remaining_time("k") == 600

    clock.now += 600
    assert limiter.is_allowed("k")
    assert limiter.get_count("k") == 1


def test_keys_are_counted_independently():
    limiter = RateLimiter(max_requests=1, window_ms=1000)
    assert limiter.is_allowed("a")
    assert limiter.is_allowed("b")
    assert not limiter.is_allowed("a")
    assert limiter.get_remaining_time("unknown") == 0


def test_store_is_bounded_and_expired_records_are_evicted():
    clock = FakeClock()
    limiter = RateLimiter(max_requests=5, window_ms=1000, max_keys=3, clock=clock)
    for key in ["a", "b", "c", "d"]:
        limiter.is_allowed(key)
    assert len(limiter) == 3
    assert limiter.get_count("a") == 0

    clock.now += 1000
    limiter.is_allowed("e")
    assert len(limiter) == 1


def test_reset_clears_all_records():
    limiter = RateLimiter(max_requests=1)
    limiter.is_allowed("a")
    limiter.reset()
    assert limiter.is_allowed("a")


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def set(self, key, value, px=None, nx=False):
        self.commands.append(("set", key, value, px, nx))
        return self

    def incr(self, key):
        self.commands.append(("incr", key))
        return self

    async def execute(self):
        self.redis.transactions += 1
        results = []
        for name, key, *args in self.commands:
            if name == "set":
                value, px, nx = args
                if nx and key in self.redis.values:
                    results.append(None)
                    continue
                self.redis.values[key] = value
                self.redis.ttls[key] = px
                results.append(True)
            else:
                results.append(await self.redis.incr(key))
        self.commands = []
        return results


class FakeRedis:
    def __init__(self):
        self.values = {}
        self.ttls = {}
        self.transactions = 0

    def pipeline(self, transaction=True):
        assert transaction
        return FakePipeline(self)

    async def incr(self, key):
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def pttl(self, key):
        return self.ttls.get(key, -2)

    async def get(self, key):
        return self.values.get(key)

    async def delete(self, key):
        self.values.pop(key, None)
        self.ttls.pop(key, None)

    async def scan_iter(self, match=None):
        prefix = match.rstrip("*") if match else ""
        for key in list(self.values):
            if key.startswith(prefix):
                yield key


async def test_redis_limiter_sets_window_expiry_in_the_same_transaction():
    redis = FakeRedis()
    limiter = RedisRateLimiter(redis, max_requests=2, window_ms=60_000)

    assert await limiter.is_allowed("ip")
    assert await limiter.is_allowed("ip")
    assert not await limiter.is_allowed("ip")
    assert redis.ttls == {"rate:chat:ip": 60_000}
    assert redis.transactions == 3
    assert await limiter.get_remaining_time("ip") == 60_000
    assert await limiter.get_count("ip") == 3

    await limiter.reset()
    assert await limiter.get_remaining_time("ip") == 0


def _request(headers=None, client=("10.0.0.1", 1234)):
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/chat",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def test_client_identifier_prefers_first_forwarded_entry():
    assert client_identifier(_request({"X-Forwarded-For": "203.0.113.5, 10.0.0.2"})) == "203.0.113.5"
    assert client_identifier(_request({"X-Real-IP": "198.51.100.7"})) == "198.51.100.7"
    assert client_identifier(_request()) == "10.0.0.1"
    assert client_identifier(_request(client=None)) == "unknown"
