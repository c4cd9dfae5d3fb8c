"""Sliding-window rate limiting backed by Redis sorted sets."""

import math
import secrets
import time
from dataclasses import dataclass
from typing import Callable

import redis
import structlog

from task_api.caching.result import Ok, run_store_call
from task_api.errors import TaskAPIError
from task_api.metrics import RATE_LIMIT_DECISIONS

logger = structlog.get_logger()

LIMIT_HEADER = "X-RateLimit-Limit"
REMAINING_HEADER = "X-RateLimit-Remaining"
RESET_HEADER = "X-RateLimit-Reset"


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one rate limit evaluation."""

    allowed: bool
    remaining: int
    reset_epoch_seconds: int
    current_count: int
    limit: int

    def headers(self) -> dict[str, str]:
        return {
            LIMIT_HEADER: str(self.limit),
            REMAINING_HEADER: str(self.remaining),
            RESET_HEADER: str(self.reset_epoch_seconds),
        }


class RateLimitExceeded(TaskAPIError):
    """Raised when a credential has used up its window quota."""

    status_code = 429
    error = "Too Many Requests"

    def __init__(self, decision: RateLimitDecision, window_seconds: int):
        minutes = window_seconds / 60
        super().__init__(
            f"The limit of {decision.limit} requests per {minutes:g} minutes has been exceeded.",
            headers=decision.headers(),
        )
        self.decision = decision
        self.retry_after = window_seconds

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retryAfter"] = self.retry_after
        return body


class RateLimiter:
    """Per-credential sliding-window request counter.

    Each credential owns a sorted set of request timestamps. Every evaluation
    prunes timestamps older than the window, records the current request,
    counts the set and refreshes its expiry, all in one MULTI/EXEC
    transaction so concurrent requests never interleave between the steps.
    """

    KEY_PREFIX = "rate_limit"

    def __init__(
        self,
        client: redis.Redis,
        max_requests: int = 100,
        window_seconds: int = 900,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize rate limiter.

        Args:
            client: Shared Redis client.
            max_requests: Max requests per window.
            window_seconds: Window length in seconds.
            clock: Returns the current time in epoch seconds.
        """
        self.client = client
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock

    def _key(self, credential: str) -> str:
        return f"{self.KEY_PREFIX}:{credential}"

    def _record_request(self, key: str, now_ms: int) -> int:
        window_start = now_ms - self.window_seconds * 1000
        # Random suffix keeps requests arriving in the same millisecond distinct.
        member = f"{now_ms}-{secrets.token_hex(4)}"

        pipe = self.client.pipeline(transaction=True)
        pipe.zremrangebyscore(key, 0, f"({window_start}")
        pipe.zadd(key, {member: now_ms})
        pipe.zcard(key)
        pipe.expire(key, self.window_seconds)
        results = pipe.execute()

        if not results:
            return 0
        return int(results[2] or 0)

    def evaluate(self, credential: str, now_ms: int | None = None) -> RateLimitDecision | None:
        """Count this request against ``credential`` and decide.

        Returns None when the store call failed; the caller must then let the
        request through without rate limit headers.
        """
        if now_ms is None:
            now_ms = int(self._clock() * 1000)

        key = self._key(credential)
        result = run_store_call(
            "rate_limit",
            lambda: self._record_request(key, now_ms),
            key=key,
        )
        if not isinstance(result, Ok):
            RATE_LIMIT_DECISIONS.labels(outcome="failed_open").inc()
            return None

        count = result.value
        # A count equal to the limit is still allowed; only strictly more is denied.
        allowed = count <= self.max_requests
        decision = RateLimitDecision(
            allowed=allowed,
            remaining=max(0, self.max_requests - count),
            reset_epoch_seconds=math.ceil(now_ms / 1000) + self.window_seconds,
            current_count=count,
            limit=self.max_requests,
        )
        RATE_LIMIT_DECISIONS.labels(outcome="allowed" if allowed else "denied").inc()
        return decision

    def check(self, credential: str | None) -> RateLimitDecision | None:
        """Evaluate a request and raise when it is over quota.

        Returns the decision for header propagation, or None when no
        credential was presented or the store failed.
        """
        if not credential:
            RATE_LIMIT_DECISIONS.labels(outcome="skipped").inc()
            return None

        decision = self.evaluate(credential)
        if decision is not None and not decision.allowed:
            logger.warning(
                "Rate limit exceeded",
                count=decision.current_count,
                limit=decision.limit,
            )
            raise RateLimitExceeded(decision, self.window_seconds)
        return decision
