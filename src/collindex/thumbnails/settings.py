"""TTL-guarded access to thumbnail resize settings."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from collindex.config.models import ThumbnailSettings

LOGGER = logging.getLogger(__name__)


class ThumbnailSettingsProvider:
    """Serve a cached ``ThumbnailSettings`` snapshot, reloading it after a TTL.

    The loader is called at most once per TTL window.
    """

    def __init__(
        self,
        loader: Callable[[], ThumbnailSettings],
        *,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: Optional[ThumbnailSettings] = None
        self._loaded_at = 0.0

    @classmethod
    def static(cls, settings: ThumbnailSettings) -> "ThumbnailSettingsProvider":
        """Return a provider that always serves ``settings``."""
        return cls(lambda: settings, ttl_seconds=float("inf"))

    def get(self) -> ThumbnailSettings:
        """Return the current settings snapshot, reloading it once the TTL expires."""
        with self._lock:
            now = self._clock()
            if self._snapshot is None or now - self._loaded_at >= self._ttl:
                self._snapshot = self._loader()
                self._loaded_at = now
                LOGGER.debug(
                    "Loaded thumbnail settings: %sx%s %s q=%s",
                    self._snapshot.target_size,
                    self._snapshot.target_size,
                    self._snapshot.format,
                    self._snapshot.quality,
                )
            return self._snapshot

    def invalidate(self) -> None:
        """Force the next ``get`` to reload settings."""
        with self._lock:
            self._snapshot = None


__all__ = ["ThumbnailSettingsProvider"]
