"""Redis connection lifecycle shared by the cache and the rate limiter."""

import redis
import structlog
from redis.backoff import NoBackoff
from redis.retry import Retry

logger = structlog.get_logger()


class RedisManager:
    """Owns the process-wide Redis client.

    One instance is built at application startup, handed to every component
    that needs Redis, and closed at shutdown.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        socket_timeout: float = 5.0,
        connect_timeout: float = 5.0,
        client: redis.Redis | None = None,
    ):
        """Initialize the manager.

        Args:
            redis_url: Redis connection URL. Ignored when ``client`` is given.
            socket_timeout: Per-command timeout in seconds.
            connect_timeout: Connection establishment timeout in seconds.
            client: Pre-built client, mainly for tests.
        """
        if client is None and not redis_url:
            raise ValueError("Either redis_url or client must be provided")

        self.redis_url = redis_url
        # Failures are absorbed by callers, never retried.
        self.client = client or redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=connect_timeout,
            retry_on_timeout=False,
            retry=Retry(NoBackoff(), 0),
        )

    def connect(self) -> bool:
        """Ping Redis once so startup logs reflect its availability."""
        try:
            self.client.ping()
        except Exception as e:
            logger.warning(
                "Redis unavailable at startup; cache and rate limiting will degrade",
                error=str(e),
            )
            return False

        logger.info("Redis connected", url=self._safe_url())
        return True

    def health_check(self) -> bool:
        """Check Redis connectivity."""
        try:
            return bool(self.client.ping())
        except Exception as e:
            logger.error("Redis health check failed", error=str(e))
            return False

    def close(self) -> None:
        """Release the connection pool."""
        try:
            self.client.close()
            logger.info("Redis connection closed")
        except Exception as e:
            logger.warning("Error closing Redis connection", error=str(e))

    def _safe_url(self) -> str:
        if not self.redis_url:
            return "injected"
        return self.redis_url.split("@")[-1]
