"""Unit tests for TTLCache with a controllable clock."""
import pytest

from gridlines.services.core.ttl_cache import TTLCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    """Tests for get/put/invalidate and expiry."""

    @pytest.mark.asyncio
    async def test_put_and_get(self):
        cache = TTLCache(60, clock=FakeClock())

        await cache.put("odds:sport=americanfootball_nfl", [{"id": "evt_1"}])

        assert await cache.get("odds:sport=americanfootball_nfl") == [{"id": "evt_1"}]
        assert await cache.get("missing") is None

    @pytest.mark.asyncio
    async def test_entry_expires(self):
        clock = FakeClock()
        cache = TTLCache(60, clock=clock)
        await cache.put("k", "v")

        clock.now += 59
        assert await cache.get("k") == "v"

        clock.now += 1
        assert await cache.get("k") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_per_entry_ttl(self):
        clock = FakeClock()
        cache = TTLCache(600, clock=clock)
        await cache.put("short", 1, ttl=5)
        await cache.put("long", 2)

        clock.now += 10

        assert await cache.get("short") is None
        assert await cache.get("long") == 2

    @pytest.mark.asyncio
    async def test_invalidate(self):
        cache = TTLCache(60, clock=FakeClock())
        await cache.put("a", 1)
        await cache.put("b", 2)

        await cache.invalidate("a")
        assert await cache.get("a") is None
        assert await cache.get("b") == 2

        await cache.invalidate()
        assert len(cache) == 0

    def test_make_key(self):
        """Parameters are sorted and None values dropped."""
        assert TTLCache.make_key("odds", sport="nfl", date=None) == "odds:sport=nfl"
        assert TTLCache.make_key("historical", sport="nfl", date="2025-09-14T16:00:00Z") == (
            "historical:date=2025-09-14T16:00:00Z,sport=nfl"
        )
        assert TTLCache.make_key("markets") == "markets"
