"""Resident-memory probes and forced collection between rebuild batches."""

from __future__ import annotations

import gc
import logging
from dataclasses import dataclass

import psutil

LOGGER = logging.getLogger(__name__)


def _megabytes(value: int) -> float:
    return value / (1024 * 1024)


@dataclass(slots=True)
class ReclaimReport:
    """Resident memory before and after a collection pass."""

    before: int
    after: int
    collected: int

    @property
    def reclaimed(self) -> int:
        return max(0, self.before - self.after)


class MemoryMonitor:
    """Track resident set size across a run and force full collections."""

    def __init__(self) -> None:
        self._process = psutil.Process()
        self.peak_rss = self.rss()

    def rss(self) -> int:
        """Return the current resident set size in bytes."""
        value = self._process.memory_info().rss
        if value > getattr(self, "peak_rss", 0):
            self.peak_rss = value
        return value

    def reclaim(self, label: str) -> ReclaimReport:
        """Run a full collection of every generation and log the RSS delta.

        Args:
            label: Context included in the log line (e.g. ``batch 3/12``).
        """
        before = self.rss()
        collected = gc.collect()
        after = self.rss()
        report = ReclaimReport(before=before, after=after, collected=collected)
        LOGGER.info(
            "%s: RSS %.1f MB -> %.1f MB (%d objects collected)",
            label,
            _megabytes(before),
            _megabytes(after),
            collected,
        )
        return report


__all__ = ["MemoryMonitor", "ReclaimReport"]
