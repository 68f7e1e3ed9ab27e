"""
Unit tests for the per-route rate limit store.
"""

import httpx
import pytest

from eludris.rate_limiter import RateLimitBucket, RateLimitStore

from conftest import rate_limit_headers


@pytest.fixture
def store():
    """Store frozen at t=1500ms."""
    return RateLimitStore(clock=lambda: 1500)


class TestRateLimitStore:
    """Test RateLimitStore functionality."""

    def test_empty_store_is_unconstrained(self, store):
        assert store.get("create_message") is None
        assert store.delay_for("create_message") == 0.0
        assert not store.is_exhausted("create_message")
        assert len(store) == 0

    def test_update_from_headers(self, store):
        """count=5, max=5, lastReset=1000, resetAfter=2000 -> remaining 0, reset at 3000."""
        bucket = store.update("create_message", rate_limit_headers(5, 5, 1000, 2000))

        assert bucket == RateLimitBucket(route="create_message", remaining=0, reset_at=3000)
        assert store.get("create_message") == bucket
        assert "create_message" in store

    def test_update_requires_all_headers(self, store):
        headers = rate_limit_headers(1, 5, 1000, 2000)
        del headers["X-RateLimit-Reset"]

        assert store.update("create_message", headers) is None
        assert "create_message" not in store

    def test_update_ignores_non_integer_headers(self, store):
        headers = rate_limit_headers(1, 5, 1000, 2000)
        headers["X-RateLimit-Max"] = "lots"

        assert store.update("create_message", headers) is None
        assert "create_message" not in store

    def test_update_reads_case_insensitive_headers(self, store):
        headers = httpx.Headers({k.lower(): v for k, v in rate_limit_headers(2, 10, 1000, 500).items()})

        bucket = store.update("get_user", headers)

        assert bucket.remaining == 8
        assert bucket.reset_at == 1500

    def test_update_never_goes_negative(self, store):
        bucket = store.update("get_user", rate_limit_headers(12, 10, 1000, 500))
        assert bucket.remaining == 0

    def test_buckets_are_per_route(self, store):
        store.update("create_message", rate_limit_headers(5, 5, 1000, 2000))

        assert store.delay_for("create_message") == pytest.approx(1.5)
        assert store.delay_for("get_user") == 0.0

    def test_delay_when_exhausted_before_reset(self, store):
        store.update("create_message", rate_limit_headers(5, 5, 1000, 2000))

        assert store.is_exhausted("create_message")
        assert store.delay_for("create_message") == pytest.approx(1.5)

    def test_no_delay_after_reset(self):
        store = RateLimitStore(clock=lambda: 3000)
        store.update("create_message", rate_limit_headers(5, 5, 1000, 2000))

        assert store.is_exhausted("create_message")
        assert store.delay_for("create_message") == 0.0

    def test_no_delay_with_remaining_calls(self, store):
        store.update("create_message", rate_limit_headers(4, 5, 1000, 2000))

        assert not store.is_exhausted("create_message")
        assert store.delay_for("create_message") == 0.0

    def test_discard_and_clear(self, store):
        store.update("create_message", rate_limit_headers(5, 5, 1000, 2000))
        store.update("get_user", rate_limit_headers(1, 5, 1000, 2000))

        store.discard("create_message")
        store.discard("never_seen")
        assert "create_message" not in store
        assert len(store) == 1

        store.clear()
        assert len(store) == 0
