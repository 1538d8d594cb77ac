"""Errors raised by the index engine."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from collindex.records.errors import PrimaryStoreUnavailableError


class IndexEngineError(Exception):
    """Base exception for index engine operations."""


class ConfigurationError(IndexEngineError, ValueError):
    """Raised when a rebuild or query is requested with invalid mode or options."""


class InvalidCursorError(ConfigurationError):
    """Raised when a pagination cursor cannot be decoded."""


class StoreConnectivityError(IndexEngineError):
    """Raised when the index store or primary store cannot be reached.

    Attributes:
        statistics: Partial run statistics accumulated before the failure.
    """

    def __init__(self, message: str, *, statistics: Optional[Any] = None) -> None:
        super().__init__(message)
        self.statistics = statistics


class RecordIndexError(IndexEngineError):
    """Failure confined to a single record; recorded and never propagated past a batch."""

    def __init__(self, record_id: str, reason: str) -> None:
        super().__init__(f"{record_id}: {reason}")
        self.record_id = record_id
        self.reason = reason


@contextmanager
def connectivity_guard(action: str) -> Iterator[None]:
    """Translate store-level connection failures into ``StoreConnectivityError``.

    Args:
        action: Short description of the work in progress, used in the message.

    Raises:
        StoreConnectivityError: If the wrapped block loses the index store or the
            primary store.
    """
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as exc:
        raise StoreConnectivityError(f"Index store unreachable while {action}: {exc}") from exc
    except PrimaryStoreUnavailableError as exc:
        raise StoreConnectivityError(f"Primary store unavailable while {action}: {exc}") from exc


__all__ = [
    "IndexEngineError",
    "ConfigurationError",
    "InvalidCursorError",
    "StoreConnectivityError",
    "RecordIndexError",
    "connectivity_guard",
]
