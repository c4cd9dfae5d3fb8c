"""Tests for the sliding-window rate limiter."""

import math
from unittest.mock import MagicMock

import pytest
from redis.exceptions import TimeoutError as RedisTimeoutError

from task_api.middleware.rate_limiter import RateLimiter, RateLimitExceeded

NOW_MS = 1_700_000_000_000


class TestWindowBatch:
    """Tests for the Redis command batch."""

    def test_runs_four_steps_in_one_transaction(self):
        """Test prune, insert, count and expire are queued on one MULTI pipeline."""
        client = MagicMock()
        pipe = client.pipeline.return_value
        pipe.execute.return_value = [0, 1, 1, True]
        limiter = RateLimiter(client, max_requests=100, window_seconds=60)

        limiter.evaluate("k1", NOW_MS)

        client.pipeline.assert_called_once_with(transaction=True)
        key = "rate_limit:k1"
        pipe.zremrangebyscore.assert_called_once_with(key, 0, f"({NOW_MS - 60_000}")
        (zadd_key, mapping), _ = pipe.zadd.call_args
        assert zadd_key == key
        assert list(mapping.values()) == [NOW_MS]
        assert next(iter(mapping)).startswith(str(NOW_MS))
        pipe.zcard.assert_called_once_with(key)
        pipe.expire.assert_called_once_with(key, 60)
        pipe.execute.assert_called_once()

        call_order = [c[0] for c in pipe.method_calls]
        assert call_order == ["zremrangebyscore", "zadd", "zcard", "expire", "execute"]

    def test_no_separate_round_trips(self):
        """Test commands never go to the client outside the pipeline."""
        client = MagicMock()
        client.pipeline.return_value.execute.return_value = [0, 1, 1, True]
        limiter = RateLimiter(client, max_requests=10, window_seconds=60)

        limiter.evaluate("k1", NOW_MS)

        client.zadd.assert_not_called()
        client.zcard.assert_not_called()
        client.expire.assert_not_called()

    @pytest.mark.parametrize("results", [None, []])
    def test_empty_result_counts_as_zero(self, results):
        """Test an empty transaction result is treated as a count of zero."""
        client = MagicMock()
        client.pipeline.return_value.execute.return_value = results
        limiter = RateLimiter(client, max_requests=10, window_seconds=60)

        decision = limiter.evaluate("k1", NOW_MS)

        assert decision is not None
        assert decision.allowed
        assert decision.current_count == 0
        assert decision.remaining == 10


class TestSlidingWindow:
    """Tests for the allow/deny decision over time."""

    def test_first_max_calls_allowed_then_denied(self, rate_limiter):
        """Test 100 calls pass with remaining 99..0 and the 101st is denied."""
        remaining = []
        for _ in range(100):
            decision = rate_limiter.evaluate("k1", NOW_MS)
            assert decision.allowed
            remaining.append(decision.remaining)

        assert remaining == list(range(99, -1, -1))

        denied = rate_limiter.evaluate("k1", NOW_MS)
        assert not denied.allowed
        assert denied.remaining == 0
        assert denied.current_count == 101

    def test_count_equal_to_max_is_allowed(self, fake_redis, clock):
        """Test the boundary: count == max allowed, count == max + 1 denied."""
        limiter = RateLimiter(fake_redis, max_requests=3, window_seconds=60, clock=clock)

        decisions = [limiter.evaluate("k1", NOW_MS) for _ in range(4)]

        assert [d.current_count for d in decisions] == [1, 2, 3, 4]
        assert [d.allowed for d in decisions] == [True, True, True, False]

    def test_remaining_stays_zero_while_denied(self, fake_redis, clock):
        """Test remaining never goes negative within the window."""
        limiter = RateLimiter(fake_redis, max_requests=2, window_seconds=60, clock=clock)

        decisions = [limiter.evaluate("k1", NOW_MS + i) for i in range(6)]

        assert [d.remaining for d in decisions] == [1, 0, 0, 0, 0, 0]

    def test_window_resets_after_inactivity(self, rate_limiter, clock):
        """Test a call after the window has elapsed counts as fresh."""
        clock.now = NOW_MS / 1000
        for _ in range(101):
            rate_limiter.evaluate("k1", NOW_MS)

        clock.advance(61)
        decision = rate_limiter.evaluate("k1", NOW_MS + 61_000)

        assert decision.allowed
        assert decision.remaining == 99
        assert decision.current_count == 1

    def test_old_entries_pruned_within_live_key(self, fake_redis, clock):
        """Test timestamps older than the window are dropped before counting."""
        limiter = RateLimiter(fake_redis, max_requests=10, window_seconds=60, clock=clock)
        clock.now = NOW_MS / 1000

        limiter.evaluate("k1", NOW_MS)
        limiter.evaluate("k1", NOW_MS + 30_000)
        decision = limiter.evaluate("k1", NOW_MS + 61_000)

        assert decision.current_count == 2

    def test_credentials_are_independent(self, fake_redis, clock):
        """Test each credential has its own window."""
        limiter = RateLimiter(fake_redis, max_requests=1, window_seconds=60, clock=clock)

        assert limiter.evaluate("k1", NOW_MS).allowed
        assert not limiter.evaluate("k1", NOW_MS).allowed
        assert limiter.evaluate("k2", NOW_MS).allowed

    def test_record_expires_with_window(self, rate_limiter, fake_redis, clock):
        """Test the window record carries an expiry equal to the window."""
        rate_limiter.evaluate("k1", NOW_MS)

        assert fake_redis.ttl("rate_limit:k1") == 60

    @pytest.mark.parametrize("now_ms", [NOW_MS, NOW_MS + 1, NOW_MS + 999])
    def test_reset_is_ceil_now_plus_window(self, rate_limiter, now_ms):
        """Test reset equals ceil(now / 1000) + window regardless of count."""
        first = rate_limiter.evaluate("k1", now_ms)
        second = rate_limiter.evaluate("k1", now_ms)

        expected = math.ceil(now_ms / 1000) + 60
        assert first.reset_epoch_seconds == expected
        assert second.reset_epoch_seconds == expected

    def test_uses_clock_when_now_not_given(self, rate_limiter, clock):
        """Test evaluate reads the injected clock."""
        clock.now = 1_700_000_000.5

        decision = rate_limiter.evaluate("k1")

        assert decision.reset_epoch_seconds == 1_700_000_001 + 60


class TestFailOpen:
    """Tests for store failures."""

    def test_store_error_returns_none(self, rate_limiter, fake_redis):
        """Test a store error yields no decision."""
        fake_redis.fail = True

        assert rate_limiter.evaluate("k1", NOW_MS) is None

    def test_timeout_returns_none(self):
        """Test a timeout during execute yields no decision."""
        client = MagicMock()
        client.pipeline.return_value.execute.side_effect = RedisTimeoutError("timed out")
        limiter = RateLimiter(client, max_requests=10, window_seconds=60)

        assert limiter.evaluate("k1", NOW_MS) is None

    def test_check_lets_request_through_on_failure(self, rate_limiter, fake_redis):
        """Test check does not raise when the store is down."""
        fake_redis.fail = True

        assert rate_limiter.check("k1") is None


class TestCheck:
    """Tests for the request-level entry point."""

    @pytest.mark.parametrize("credential", [None, ""])
    def test_missing_credential_skips(self, credential):
        """Test no store call is made without a credential."""
        client = MagicMock()
        limiter = RateLimiter(client, max_requests=1, window_seconds=60)

        assert limiter.check(credential) is None
        client.pipeline.assert_not_called()

    def test_allowed_returns_decision(self, rate_limiter):
        """Test an allowed request returns its decision."""
        decision = rate_limiter.check("k1")

        assert decision.allowed
        assert decision.headers()["X-RateLimit-Limit"] == "100"
        assert decision.headers()["X-RateLimit-Remaining"] == "99"

    def test_denied_raises_with_structured_body(self, fake_redis, clock):
        """Test a denial raises RateLimitExceeded with retry information."""
        limiter = RateLimiter(fake_redis, max_requests=1, window_seconds=900, clock=clock)
        limiter.check("k1")

        with pytest.raises(RateLimitExceeded) as exc_info:
            limiter.check("k1")

        exc = exc_info.value
        assert exc.status_code == 429
        assert exc.retry_after == 900
        assert exc.to_dict() == {
            "error": "Too Many Requests",
            "message": "The limit of 1 requests per 15 minutes has been exceeded.",
            "retryAfter": 900,
        }
        assert exc.headers["X-RateLimit-Remaining"] == "0"

    def test_denial_message_uses_fractional_minutes(self, fake_redis, clock):
        """Test windows that are not whole minutes render as decimals."""
        limiter = RateLimiter(fake_redis, max_requests=1, window_seconds=90, clock=clock)
        limiter.check("k1")

        with pytest.raises(RateLimitExceeded, match="per 1.5 minutes"):
            limiter.check("k1")
