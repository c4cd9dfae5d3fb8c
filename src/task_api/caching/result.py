"""Tagged outcomes for best-effort store calls.

Every store-facing call in the caching and rate limiting layer returns either
``Ok(value)`` or ``Degraded(reason)``. Callers pick their own fallback for the
degraded case instead of handling exceptions.
"""

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Store call completed."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Degraded:
    """Store call failed; ``reason`` describes why."""

    reason: str

    @property
    def ok(self) -> bool:
        return False


StoreResult = Union[Ok[T], Degraded]


def run_store_call(operation: str, func: Callable[[], T], **log_context) -> "StoreResult[T]":
    """Run ``func`` and wrap its outcome, logging failures."""
    try:
        return Ok(func())
    except Exception as e:
        reason = f"{type(e).__name__}: {e}"
        logger.error("Store call failed", operation=operation, error=reason, **log_context)
        return Degraded(reason)


def value_or(result: "StoreResult[T]", default: T) -> T:
    """Unwrap ``result`` or return ``default`` when degraded."""
    if isinstance(result, Ok):
        return result.value
    return default
