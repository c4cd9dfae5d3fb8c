"""Redis cache for paginated task listings."""

import json
from typing import Any, Mapping

import redis
import structlog

from task_api.caching.result import Ok, run_store_call, value_or
from task_api.metrics import CACHE_INVALIDATIONS, CACHE_LOOKUPS

logger = structlog.get_logger()

KEY_PREFIX = "tasks"

_GLOB_SPECIAL = str.maketrans({c: f"\\{c}" for c in "*?[]\\"})


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_cache_key(owner_id: str, filters: Mapping[str, Any] | None = None) -> str:
    """Build the canonical cache key for an owner and a filter combination.

    Filter names are sorted so that the key does not depend on the order the
    filters were supplied in. Filters whose value is ``None`` are skipped.
    """
    parts = [f"{KEY_PREFIX}:{owner_id}"]
    for name in sorted(filters or {}):
        value = filters[name]
        if value is not None:
            parts.append(f"{name}={_format_value(value)}")
    return ":".join(parts)


class TaskCache:
    """Best-effort cache of task listings, keyed by owner and filters.

    None of the public methods raise when Redis misbehaves: reads degrade to a
    miss, writes and invalidations degrade to a no-op.
    """

    def __init__(self, client: redis.Redis, ttl: int = 60):
        self.client = client
        self.ttl = ttl

    def get(self, owner_id: str, filters: Mapping[str, Any] | None = None) -> Any | None:
        """Return the cached listing, or None on miss or failure."""
        key = build_cache_key(owner_id, filters)

        def read():
            raw = self.client.get(key)
            return json.loads(raw) if raw else None

        result = run_store_call("cache_get", read, key=key)
        value = value_or(result, None)

        if not isinstance(result, Ok):
            CACHE_LOOKUPS.labels(result="error").inc()
        elif value is None:
            CACHE_LOOKUPS.labels(result="miss").inc()
        else:
            CACHE_LOOKUPS.labels(result="hit").inc()
            logger.debug("Cache hit", key=key)
        return value

    def set(self, owner_id: str, value: Any, filters: Mapping[str, Any] | None = None) -> None:
        """Store a listing under the same key ``get`` would use."""
        key = build_cache_key(owner_id, filters)
        run_store_call(
            "cache_set",
            lambda: self.client.setex(key, self.ttl, json.dumps(value)),
            key=key,
        )

    def invalidate(self, owner_id: str) -> None:
        """Delete the owner's base key and every filter-qualified variant."""
        base_key = build_cache_key(owner_id)

        def delete_all() -> int:
            pattern = f"{base_key.translate(_GLOB_SPECIAL)}:*"
            keys = [base_key, *self.client.scan_iter(match=pattern, count=100)]
            return self.client.delete(*keys)

        result = run_store_call("cache_invalidate", delete_all, owner_id=owner_id)
        if isinstance(result, Ok):
            CACHE_INVALIDATIONS.labels(status="success").inc()
            logger.debug("Cache invalidated", owner_id=owner_id, deleted=result.value)
        else:
            CACHE_INVALIDATIONS.labels(status="error").inc()
