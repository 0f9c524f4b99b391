"""Tests for per-provider request budgets."""
from email.utils import format_datetime
from datetime import datetime, timezone

from pokeprice.core.rate_limit import RateLimiter


class TestCheckLimit:
    """Tests for fixed-window counting."""

    def test_allows_until_budget_spent(self, clock):
        limiter = RateLimiter(clock=clock)

        first = limiter.check_limit("ebay", max_requests=2, window_seconds=60)
        second = limiter.check_limit("ebay", max_requests=2, window_seconds=60)
        third = limiter.check_limit("ebay", max_requests=2, window_seconds=60)

        assert first.allowed and first.remaining == 1
        assert second.allowed and second.remaining == 0
        assert not third.allowed
        assert third.reset_at == clock.now + 60

    def test_new_window_opens_after_reset(self, clock):
        limiter = RateLimiter(clock=clock)
        limiter.check_limit("ebay", max_requests=1, window_seconds=60)
        assert not limiter.check_limit("ebay", max_requests=1, window_seconds=60).allowed

        clock.advance(60)

        result = limiter.check_limit("ebay", max_requests=1, window_seconds=60)
        assert result.allowed
        assert result.reset_at == clock.now + 60

    def test_keys_are_independent(self, clock):
        limiter = RateLimiter(clock=clock)
        limiter.check_limit("ebay", max_requests=1, window_seconds=60)

        assert limiter.check_limit("justtcg", max_requests=1, window_seconds=60).allowed


class TestForcedBlocks:
    """Tests for explicit provider backoff."""

    def test_set_rate_limited_blocks_until_reset(self, clock):
        limiter = RateLimiter(clock=clock)
        limiter.set_rate_limited("justtcg", clock.now + 30)

        assert limiter.is_rate_limited("justtcg")
        assert not limiter.check_limit("justtcg", max_requests=100, window_seconds=60).allowed
        assert limiter.get_reset_time("justtcg") == 30

        clock.advance(30)

        assert not limiter.is_rate_limited("justtcg")
        assert limiter.check_limit("justtcg", max_requests=100, window_seconds=60).allowed

    def test_exhausted_budget_is_not_a_forced_block(self, clock):
        limiter = RateLimiter(clock=clock)
        limiter.check_limit("ebay", max_requests=1, window_seconds=60)
        limiter.check_limit("ebay", max_requests=1, window_seconds=60)

        assert not limiter.is_rate_limited("ebay")

    def test_retry_after_delta_seconds(self, clock):
        limiter = RateLimiter(clock=clock)

        reset_at = limiter.handle_rate_limit_response("ebay", "120")

        assert reset_at == clock.now + 120
        assert limiter.is_rate_limited("ebay")

    def test_retry_after_http_date(self, clock):
        limiter = RateLimiter(clock=clock)
        until = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

        reset_at = limiter.handle_rate_limit_response("ebay", format_datetime(until, usegmt=True))

        assert reset_at == until.timestamp()

    def test_missing_or_garbage_hint_uses_default_block(self, clock):
        limiter = RateLimiter(clock=clock)

        assert limiter.handle_rate_limit_response("a", None, default_block_seconds=900) == clock.now + 900
        assert limiter.handle_rate_limit_response("b", "soon", default_block_seconds=900) == clock.now + 900
        assert limiter.handle_rate_limit_response("c", "") == clock.now + 3600

    def test_cleanup_drops_expired_windows(self, clock):
        limiter = RateLimiter(clock=clock)
        limiter.check_limit("ebay", max_requests=1, window_seconds=10)
        limiter.check_limit("tcgdex", max_requests=1, window_seconds=100)

        clock.advance(50)
        limiter.cleanup()

        assert limiter.get_reset_time("ebay") is None
        assert limiter.get_reset_time("tcgdex") == 50
