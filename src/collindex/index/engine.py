"""Rebuild trigger surface tying the planner, writer, and verifier together."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import aclosing
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from collindex.config.models import ThumbnailSettings
from collindex.keys import IndexKeys
from collindex.memory import MemoryMonitor
from collindex.records.base import AssetSource, PrimaryStore
from collindex.records.models import PrimaryRecord
from collindex.state import StateStore
from collindex.thumbnails import ImageResizer, ThumbnailCacheAdapter, ThumbnailSettingsProvider

from .errors import ConfigurationError, StoreConnectivityError, connectivity_guard
from .models import (
    BatchWriteResult,
    PlanAction,
    RebuildMode,
    RebuildOptions,
    RebuildStatistics,
    VerifyResult,
)
from .planner import RebuildPlanner
from .reader import NavigationReader
from .verifier import ConsistencyVerifier
from .writer import IndexWriter

LOGGER = logging.getLogger(__name__)

_CLEAR_CHUNK = 500


class IndexEngine:
    """Run rebuilds and verification passes against one index keyspace.

    The engine assumes the caller serialises rebuild invocations; it performs no
    locking of its own. Reads through :attr:`reader` need no coordination.
    """

    def __init__(
        self,
        client: Any,
        store: PrimaryStore,
        asset_source: AssetSource,
        *,
        keys: Optional[IndexKeys] = None,
        thumbnail_settings: Optional[ThumbnailSettingsProvider] = None,
        resizer: Optional[ImageResizer] = None,
        batch_size: int = 100,
        concurrency: int = 100,
        memory: Optional[MemoryMonitor] = None,
    ) -> None:
        """Wire the engine components.

        Args:
            client: Shared ``redis.asyncio`` client (``decode_responses=True``).
            store: Primary store collaborator.
            asset_source: Preview byte source.
            keys: Key layout; defaults to the ``collindex`` prefix.
            thumbnail_settings: TTL-guarded accessor for resize targets.
            resizer: Image resizer; Pillow-backed by default.
            batch_size: Records per batch.
            concurrency: Records in flight per batch.
            memory: Memory monitor used between batches.

        Raises:
            ConfigurationError: If ``batch_size`` or ``concurrency`` is not positive.
        """
        if batch_size <= 0:
            raise ConfigurationError("batch_size must be positive")
        self._client = client
        self._store = store
        self.keys = keys or IndexKeys()
        self.batch_size = batch_size
        self.memory = memory or MemoryMonitor()
        settings = thumbnail_settings or ThumbnailSettingsProvider.static(ThumbnailSettings())
        self.state = StateStore(client, self.keys)
        self.adapter = ThumbnailCacheAdapter(asset_source, settings, resizer)
        self.writer = IndexWriter(
            client, self.keys, self.state, self.adapter, concurrency=concurrency
        )
        self.planner = RebuildPlanner(store, self.state, batch_size=batch_size)
        self.verifier = ConsistencyVerifier(
            client,
            self.keys,
            store,
            self.state,
            self.writer,
            batch_size=batch_size,
            memory=self.memory,
        )
        self.reader = NavigationReader(client, self.keys)

    async def rebuild(
        self,
        mode: RebuildMode | str = RebuildMode.CHANGED_ONLY,
        options: RebuildOptions | Mapping[str, Any] | None = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RebuildStatistics:
        """Bring the index in line with the primary store.

        Args:
            mode: Rebuild strategy.
            options: Dry-run and thumbnail options.
            cancel_event: Checked between batches; a set event ends the run with
                ``cancelled=True`` and partial statistics.

        Returns:
            RebuildStatistics: Counts, per-record errors, timing, and memory figures.

        Raises:
            ConfigurationError: If ``mode`` or ``options`` is invalid. Raised
                before any work begins.
            StoreConnectivityError: If a store becomes unreachable. Partial
                statistics are attached as ``statistics``.
        """
        mode = RebuildMode.parse(mode)
        options = _coerce_options(options)
        started = time.perf_counter()
        stats = RebuildStatistics(mode=mode, dry_run=options.dry_run)
        LOGGER.info(
            "Starting %s rebuild%s", mode.value, " (dry run)" if options.dry_run else ""
        )

        try:
            if mode is RebuildMode.VERIFY:
                result = await self.verifier.verify(
                    dry_run=options.dry_run,
                    skip_thumbnails=options.skip_thumbnail_caching,
                    cancel_event=cancel_event,
                )
                _merge_verify(stats, result)
            else:
                if mode is RebuildMode.FULL and not options.dry_run:
                    await self.clear()
                await self._run_batches(stats, mode, options, cancel_event)
            if not options.dry_run and not stats.cancelled:
                await self._record_rebuild(mode)
        except StoreConnectivityError as exc:
            if isinstance(exc.statistics, VerifyResult):
                _merge_verify(stats, exc.statistics)
            self._finish(stats, started)
            exc.statistics = stats
            LOGGER.error("Rebuild aborted after %d records: %s", stats.scanned, exc)
            raise

        self._finish(stats, started)
        LOGGER.info(
            "Finished %s rebuild in %d ms: scanned=%d rebuilt=%d skipped=%d removed=%d errors=%d",
            mode.value,
            stats.duration_ms,
            stats.scanned,
            stats.rebuilt,
            stats.skipped,
            stats.removed,
            len(stats.errors),
        )
        return stats

    async def verify(
        self,
        *,
        dry_run: bool = True,
        skip_thumbnails: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> VerifyResult:
        """Run the consistency verifier directly, returning its detailed result."""
        return await self.verifier.verify(
            dry_run=dry_run, skip_thumbnails=skip_thumbnails, cancel_event=cancel_event
        )

    async def add_or_update(
        self, record: PrimaryRecord, *, skip_thumbnails: bool = False
    ) -> BatchWriteResult:
        """Index a single record, or remove it when it is marked deleted."""
        if record.deleted:
            errors = await self.verifier.remove([record.id])
            return BatchWriteResult(written=[] if errors else [record.id])
        return await self.writer.write_batch([record], skip_thumbnails=skip_thumbnails)

    async def remove(self, record_id: str) -> bool:
        """Remove every index artifact of ``record_id``; return whether it succeeded."""
        return not await self.verifier.remove([record_id])

    async def clear(self) -> int:
        """Delete every ordered set, hash, and state key owned by the engine.

        Returns:
            int: Number of keys deleted.
        """
        deleted = 0
        patterns = [f"{self.keys.prefix}:sorted:*", self.keys.state_pattern]
        with connectivity_guard("clearing the index"):
            deleted += await self._client.delete(self.keys.summaries, self.keys.thumbnails)
            for pattern in patterns:
                chunk: list[str] = []
                async for key in self._client.scan_iter(match=pattern, count=1000):
                    chunk.append(key)
                    if len(chunk) >= _CLEAR_CHUNK:
                        deleted += await self._client.delete(*chunk)
                        chunk = []
                if chunk:
                    deleted += await self._client.delete(*chunk)
        LOGGER.info("Cleared %d index keys", deleted)
        return deleted

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #

    async def _run_batches(
        self,
        stats: RebuildStatistics,
        mode: RebuildMode,
        options: RebuildOptions,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        batch_number = 0
        async with aclosing(self.planner.plan(mode)) as batches:
            async for batch in batches:
                if cancel_event is not None and cancel_event.is_set():
                    stats.cancelled = True
                    LOGGER.warning("Rebuild cancelled after %d records", stats.scanned)
                    break
                batch_number += 1
                stats.scanned += len(batch)
                pending = [item for item in batch if item.action is PlanAction.REBUILD]
                stats.skipped += len(batch) - len(pending)
                previously_indexed = {item.record.id for item in pending if item.indexed}

                if options.dry_run:
                    rebuilt_ids = [item.record.id for item in pending]
                else:
                    result = await self.writer.write_batch(
                        [item.record for item in pending],
                        skip_thumbnails=options.skip_thumbnail_caching,
                    )
                    rebuilt_ids = result.written
                    stats.errors.extend(failure.message for failure in result.failures)
                    del result

                stats.rebuilt += len(rebuilt_ids)
                updated = sum(1 for record_id in rebuilt_ids if record_id in previously_indexed)
                stats.updated += updated
                stats.added += len(rebuilt_ids) - updated

                del batch, pending, rebuilt_ids, previously_indexed
                self.memory.reclaim(f"batch {batch_number}")

    async def _record_rebuild(self, mode: RebuildMode) -> None:
        with connectivity_guard("recording rebuild metadata"):
            total = await self._client.zcard(self.keys.sorted_set())
            await self._client.hset(
                self.keys.meta,
                mapping={
                    "last_rebuild_at": datetime.now(timezone.utc).isoformat(),
                    "last_rebuild_mode": mode.value,
                    "total_records": str(total),
                },
            )

    def _finish(self, stats: RebuildStatistics, started: float) -> None:
        report = self.memory.reclaim("rebuild complete")
        stats.memory_reclaimed_bytes = report.reclaimed
        stats.peak_rss_bytes = self.memory.peak_rss
        stats.completed_at = datetime.now(timezone.utc)
        stats.duration_ms = int((time.perf_counter() - started) * 1000)


def _coerce_options(options: RebuildOptions | Mapping[str, Any] | None) -> RebuildOptions:
    if options is None:
        return RebuildOptions()
    if isinstance(options, RebuildOptions):
        return options
    try:
        return RebuildOptions.model_validate(dict(options))
    except (ValidationError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid rebuild options: {exc}") from exc


def _merge_verify(stats: RebuildStatistics, result: VerifyResult) -> None:
    stats.scanned = result.total_primary
    stats.added = result.added
    stats.updated = result.updated
    stats.removed = result.removed
    stats.rebuilt = result.repaired
    stats.skipped = max(0, result.total_primary - result.added - result.updated)
    stats.errors = list(result.errors)
    stats.cancelled = result.cancelled


__all__ = ["IndexEngine"]
