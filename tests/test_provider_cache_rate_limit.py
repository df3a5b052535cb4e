"""Tests for the response cache and the tier rate limiter."""

import pytest

from src.config.settings import TIER_LIMITS, Tier
from src.providers import RateLimiter, ResponseCache
from tests.helpers import text_response


class TestResponseCache:
    """Tests for TTL and LRU behaviour."""

    def test_hit_and_miss(self, clock):
        """Test that stored responses are returned and counted."""
        cache = ResponseCache(clock=clock)
        assert cache.get("k") is None
        cache.put("k", text_response("hello"))
        assert cache.get("k").text == "hello"
        assert cache.stats() == {"size": 1, "hits": 1, "misses": 1, "hit_rate": 0.5}

    def test_entries_expire(self, clock):
        """Test that an entry is gone once the TTL has passed."""
        cache = ResponseCache(ttl_seconds=60, clock=clock)
        cache.put("k", text_response("hello"))
        clock.advance(59)
        assert cache.get("k") is not None
        clock.advance(1)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_least_recently_used_is_evicted(self, clock):
        """Test LRU eviction at capacity."""
        cache = ResponseCache(max_entries=2, clock=clock)
        cache.put("a", text_response("a"))
        cache.put("b", text_response("b"))
        cache.get("a")
        cache.put("c", text_response("c"))
        assert cache.get("b") is None
        assert cache.get("a") is not None
        assert cache.get("c") is not None

    def test_clear_resets_counters(self, clock):
        """Test clear."""
        cache = ResponseCache(clock=clock)
        cache.put("k", text_response("x"))
        cache.get("k")
        cache.clear()
        assert cache.stats() == {"size": 0, "hits": 0, "misses": 0, "hit_rate": 0.0}

    def test_rejects_zero_capacity(self):
        """Test capacity validation."""
        with pytest.raises(ValueError):
            ResponseCache(max_entries=0)


class TestRateLimiter:
    """Tests for hourly and daily windows on the free tier (5/hour, 10/day)."""

    @pytest.fixture
    def limiter(self, clock) -> RateLimiter:
        return RateLimiter(TIER_LIMITS[Tier.FREE], clock=clock)

    def test_allows_until_hourly_limit(self, limiter):
        """Test that the sixth message in an hour is refused."""
        for _ in range(5):
            assert limiter.check() is None
            limiter.record()
        assert limiter.check() == (
            "You've reached your hourly limit of 5 messages. Try again in 60 minutes."
        )

    def test_wait_time_counts_down(self, limiter, clock):
        """Test that the retry hint reflects the time left in the window."""
        for _ in range(5):
            limiter.record()
        clock.advance(600)
        assert limiter.check().endswith("Try again in 50 minutes.")

    def test_hourly_window_resets_lazily(self, limiter, clock):
        """Test that the count restarts once the hour has passed."""
        for _ in range(5):
            limiter.record()
        clock.advance(3600)
        assert limiter.check() is None
        assert limiter.status()["hourly"]["used"] == 0
        assert limiter.status()["daily"]["used"] == 5

    def test_daily_limit(self, limiter, clock):
        """Test the daily limit after two full hours."""
        for _ in range(5):
            limiter.record()
        clock.advance(3600)
        for _ in range(5):
            limiter.record()
        clock.advance(3600)
        assert limiter.check() == (
            "You've reached your daily limit of 10 messages. Try again in 22 hours."
        )

    def test_unlimited(self, clock):
        """Test that testing mode never refuses."""
        limiter = RateLimiter(TIER_LIMITS[Tier.FREE], unlimited=True, clock=clock)
        for _ in range(50):
            limiter.record()
        assert limiter.check() is None
        assert limiter.status()["unlimited"] is True

    def test_status(self, limiter, clock):
        """Test usage reporting."""
        limiter.record()
        clock.advance(100)
        status = limiter.status()
        assert status["hourly"] == {"used": 1, "limit": 5, "reset_in": 3500}
        assert status["daily"]["limit"] == 10
