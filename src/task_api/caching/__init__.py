"""Redis-backed caching layer."""

from task_api.caching.client import RedisManager
from task_api.caching.result import Degraded, Ok, StoreResult, run_store_call, value_or
from task_api.caching.task_cache import TaskCache, build_cache_key

__all__ = [
    "Degraded",
    "Ok",
    "RedisManager",
    "StoreResult",
    "TaskCache",
    "build_cache_key",
    "run_store_call",
    "value_or",
]
