"""
Tests for rate limiter.
"""
import time

from jurissign.utils.rate_limiter import RateLimiter


class TestRateLimiter:
    """Tests for token bucket rate limiter."""

    def test_allows_within_limit(self):
        """Requests within limit are allowed."""
        limiter = RateLimiter(max_requests=5, window_seconds=60)

        for _ in range(5):
            allowed, retry_after = limiter.is_allowed("verify:203.0.113.7")
            assert allowed is True
            assert retry_after == 0

    def test_blocks_over_limit(self):
        """Requests over limit are blocked."""
        limiter = RateLimiter(max_requests=3, window_seconds=60)

        for _ in range(3):
            limiter.is_allowed("verify:203.0.113.7")

        allowed, retry_after = limiter.is_allowed("verify:203.0.113.7")
        assert allowed is False
        assert retry_after > 0

    def test_different_keys_independent(self):
        """Different client IPs have independent limits."""
        limiter = RateLimiter(max_requests=2, window_seconds=60)

        limiter.is_allowed("verify:203.0.113.7")
        limiter.is_allowed("verify:203.0.113.7")

        allowed, _ = limiter.is_allowed("verify:198.51.100.1")
        assert allowed is True

    def test_refills_over_time(self):
        """Tokens refill over time."""
        limiter = RateLimiter(max_requests=1, window_seconds=1)

        limiter.is_allowed("test-key")
        allowed1, _ = limiter.is_allowed("test-key")
        assert allowed1 is False

        time.sleep(1.1)

        allowed2, _ = limiter.is_allowed("test-key")
        assert allowed2 is True

    def test_get_remaining_and_reset(self):
        limiter = RateLimiter(max_requests=3, window_seconds=60)
        limiter.is_allowed("key")

        assert limiter.get_remaining("key") == 2

        limiter.reset("key")
        assert limiter.get_remaining("key") == 3
