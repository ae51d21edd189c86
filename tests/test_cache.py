"""Tests for cache.py (SQLite market cache with TTL)."""

import pytest

from pmarket.cache import MarketCache, _humanize_age
from pmarket.models import Market


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _market(cid: str, question: str, active=True, closed=False) -> Market:
    return Market(
        condition_id=cid,
        question=question,
        active=active,
        closed=closed,
        yes_token_id=f"{cid}-yes",
        no_token_id=f"{cid}-no",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_path, clock):
    c = MarketCache(tmp_path / "cache.db", ttl_sec=3600, clock=clock)
    yield c
    c.close()


class TestMarketCache:
    def test_empty(self, cache):
        assert not cache.has_cache()
        assert not cache.is_valid()
        assert cache.cache_age() is None
        assert cache.cached_markets() == []

    def test_store_and_filter(self, cache):
        written = cache.store_markets([
            _market("0x1", "Will Bitcoin hit 100k?"),
            _market("0x2", "Will ETH flip BTC?"),
            _market("0x3", "Bitcoin closed market", closed=True),
            _market("0x4", "Inactive bitcoin", active=False),
        ])
        assert written == 4
        assert cache.market_count() == 4

        found = cache.cached_markets("bitcoin")
        assert [m.condition_id for m in found] == ["0x1"]
        assert found[0].yes_token_id == "0x1-yes"
        assert len(cache.cached_markets()) == 2

    def test_skips_markets_without_condition_id(self, cache):
        assert cache.store_markets([_market("", "No id")]) == 0
        assert cache.market_count() == 0

    def test_upsert_replaces(self, cache):
        cache.store_markets([_market("0x1", "Old question")])
        cache.store_markets([_market("0x1", "New question")])
        assert cache.market_count() == 1
        assert cache.cached_markets()[0].question == "New question"

    def test_ttl(self, cache, clock):
        cache.store_markets([_market("0x1", "Q")])
        assert cache.is_valid()
        clock.now += 3599
        assert cache.is_valid()
        clock.now += 2
        assert not cache.is_valid()

    def test_cache_age(self, cache, clock):
        cache.store_markets([_market("0x1", "Q")])
        assert cache.cache_age() == "just now"
        clock.now += 2 * 3600 + 5
        assert cache.cache_age() == "2 hours ago"

    def test_clear(self, cache):
        cache.store_markets([_market("0x1", "Q")])
        cache.clear()
        assert not cache.has_cache()
        assert cache.cache_age() is None

    def test_persists_across_instances(self, tmp_path, clock):
        first = MarketCache(tmp_path / "c.db", clock=clock)
        first.store_markets([_market("0x1", "Q")])
        first.close()
        second = MarketCache(tmp_path / "c.db", clock=clock)
        assert second.market_count() == 1
        second.close()


class TestHumanizeAge:
    @pytest.mark.parametrize("seconds,expected", [
        (30, "just now"),
        (60, "1 minute ago"),
        (150, "2 minutes ago"),
        (3600, "1 hour ago"),
        (86400 * 3, "3 days ago"),
    ])
    def test_buckets(self, seconds, expected):
        assert _humanize_age(seconds) == expected
