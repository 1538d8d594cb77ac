"""Write index entries, thumbnails, and state for batches of records."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from collindex.keys import IndexKeys, SortField, score_for
from collindex.records.errors import AssetError
from collindex.records.models import PrimaryRecord
from collindex.state import CollectionIndexState, StateStore
from collindex.thumbnails import ThumbnailCacheAdapter, ThumbnailCacheEntry

from .errors import ConfigurationError, RecordIndexError, connectivity_guard
from .models import BatchWriteResult, IndexSummary, RecordFailure

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class _PreparedRecord:
    record: PrimaryRecord
    summary: IndexSummary
    state: CollectionIndexState
    thumbnail: Optional[ThumbnailCacheEntry]
    drop_thumbnail: bool
    stale_library: Optional[str]
    stale_type: Optional[str]


class IndexWriter:
    """Compute and commit the index entries for primary records.

    Per-record preparation (asset read and thumbnail resize) runs concurrently up
    to ``concurrency`` records. All writes of a batch then travel in a single
    non-transactional pipeline, with each record's state queued after its index
    entries.
    """

    def __init__(
        self,
        client: Any,
        keys: IndexKeys,
        state_store: StateStore,
        adapter: ThumbnailCacheAdapter,
        *,
        concurrency: int = 100,
    ) -> None:
        if concurrency <= 0:
            raise ConfigurationError("concurrency must be positive")
        self._client = client
        self._keys = keys
        self._state = state_store
        self._adapter = adapter
        self.concurrency = concurrency

    async def write_batch(
        self,
        records: Sequence[PrimaryRecord],
        *,
        skip_thumbnails: bool = False,
    ) -> BatchWriteResult:
        """Index ``records`` and return which succeeded.

        Args:
            records: Records to (re)index.
            skip_thumbnails: When true, no asset bytes are read; an existing
                thumbnail is kept only while the representative preview is unchanged.

        Returns:
            BatchWriteResult: Written ids and per-record failures.

        Raises:
            StoreConnectivityError: If the index store cannot be reached.
        """
        result = BatchWriteResult()
        if not records:
            return result

        ids = [record.id for record in records]
        with connectivity_guard("loading previous index state"):
            previous = await self._state.get_many(ids)
            previous_summaries: Dict[str, Optional[IndexSummary]] = {}
            if skip_thumbnails:
                previous_summaries = await self._load_summaries(ids)

        semaphore = asyncio.Semaphore(self.concurrency)

        async def prepare(record: PrimaryRecord) -> _PreparedRecord:
            async with semaphore:
                return await self._prepare(
                    record,
                    previous.get(record.id),
                    previous_summaries.get(record.id),
                    skip_thumbnails,
                )

        outcomes = await asyncio.gather(
            *(prepare(record) for record in records), return_exceptions=True
        )

        prepared: List[_PreparedRecord] = []
        for record, outcome in zip(records, outcomes):
            if isinstance(outcome, RecordIndexError):
                self._fail(result, outcome.record_id, outcome.reason)
            elif isinstance(outcome, Exception):
                LOGGER.debug("Unexpected failure preparing %s", record.id, exc_info=outcome)
                self._fail(result, record.id, f"{type(outcome).__name__}: {outcome}")
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                prepared.append(outcome)
        del outcomes

        if prepared:
            await self._commit(prepared, result)
        del prepared
        return result

    async def _prepare(
        self,
        record: PrimaryRecord,
        previous: Optional[CollectionIndexState],
        previous_summary: Optional[IndexSummary],
        skip_thumbnails: bool,
    ) -> _PreparedRecord:
        preview = record.representative_preview()
        source_path = preview.path if preview is not None else None
        thumbnail: Optional[ThumbnailCacheEntry] = None
        has_thumbnail = False
        thumbnail_bytes = 0

        if preview is not None and not skip_thumbnails:
            try:
                thumbnail = await self._adapter.prepare_for_cache(preview)
            except AssetError as exc:
                raise RecordIndexError(record.id, f"preview {preview.path}: {exc}") from exc
            has_thumbnail = True
            thumbnail_bytes = thumbnail.byte_size
        elif skip_thumbnails and previous is not None and previous.has_first_thumbnail:
            # Keep the cached blob while it still describes the representative preview.
            if previous.first_thumbnail_source_path == source_path:
                has_thumbnail = True
                thumbnail_bytes = previous_summary.thumbnail_bytes if previous_summary else 0

        drop_thumbnail = False
        stale_library = None
        stale_type = None
        if previous is not None:
            drop_thumbnail = previous.has_first_thumbnail and not has_thumbnail
            if previous.library_id and previous.library_id != record.library_id:
                stale_library = previous.library_id
            if previous.collection_type and previous.collection_type != record.type:
                stale_type = previous.collection_type

        summary = IndexSummary(
            id=record.id,
            name=record.name,
            path=record.path,
            library_id=record.library_id,
            type=record.type,
            sort_key=record.sort_key,
            child_count=record.child_count,
            cached_derivative_count=record.cached_derivative_count,
            total_size=record.total_size,
            created_at=record.created_at,
            updated_at=record.updated_at,
            has_thumbnail=has_thumbnail,
            thumbnail_bytes=thumbnail_bytes,
        )
        state = CollectionIndexState(
            record_id=record.id,
            source_updated_at=record.updated_at,
            child_count=record.child_count,
            cached_derivative_count=record.cached_derivative_count,
            has_first_thumbnail=has_thumbnail,
            first_thumbnail_source_path=source_path,
            library_id=record.library_id,
            collection_type=record.type,
        )
        return _PreparedRecord(
            record=record,
            summary=summary,
            state=state,
            thumbnail=thumbnail,
            drop_thumbnail=drop_thumbnail,
            stale_library=stale_library,
            stale_type=stale_type,
        )

    async def _commit(self, prepared: List[_PreparedRecord], result: BatchWriteResult) -> None:
        spans: List[int] = []
        with connectivity_guard("writing index batch"):
            async with self._client.pipeline(transaction=False) as pipe:
                for item in prepared:
                    spans.append(self._stage(pipe, item))
                replies = await pipe.execute(raise_on_error=False)

            failed: List[str] = []
            offset = 0
            for item, span in zip(prepared, spans):
                errors = [
                    reply
                    for reply in replies[offset : offset + span]
                    if isinstance(reply, Exception)
                ]
                offset += span
                if errors:
                    self._fail(result, item.record.id, f"index write failed: {errors[0]}")
                    failed.append(item.record.id)
                else:
                    result.written.append(item.record.id)

            if failed:
                # Failed records keep no state so the next changed-only pass retries them.
                async with self._client.pipeline(transaction=False) as pipe:
                    self._state.stage_delete(pipe, failed)
                    await pipe.execute(raise_on_error=False)

    def _stage(self, pipe: Any, item: _PreparedRecord) -> int:
        """Queue every write for ``item`` and return how many commands were queued."""
        record = item.record
        queued = 0
        for field in SortField:
            pipe.zadd(self._keys.sorted_set(field), {record.id: score_for(record, field)})
            queued += 1
        if item.stale_library:
            for field in SortField:
                pipe.zrem(self._keys.library_sorted_set(item.stale_library, field), record.id)
                queued += 1
        if record.library_id:
            for field in SortField:
                pipe.zadd(
                    self._keys.library_sorted_set(record.library_id, field),
                    {record.id: score_for(record, field)},
                )
                queued += 1
        if item.stale_type:
            for field in SortField:
                pipe.zrem(self._keys.type_sorted_set(item.stale_type, field), record.id)
                queued += 1
        if record.type:
            for field in SortField:
                pipe.zadd(
                    self._keys.type_sorted_set(record.type, field),
                    {record.id: score_for(record, field)},
                )
                queued += 1
        pipe.hset(self._keys.summaries, record.id, item.summary.model_dump_json())
        queued += 1
        if item.thumbnail is not None:
            pipe.hset(self._keys.thumbnails, record.id, item.thumbnail.model_dump_json())
            queued += 1
        elif item.drop_thumbnail:
            pipe.hdel(self._keys.thumbnails, record.id)
            queued += 1
        self._state.stage_put(pipe, item.state)
        return queued + 1

    async def _load_summaries(self, ids: List[str]) -> Dict[str, Optional[IndexSummary]]:
        values = await self._client.hmget(self._keys.summaries, ids)
        summaries: Dict[str, Optional[IndexSummary]] = {}
        for record_id, raw in zip(ids, values):
            summaries[record_id] = None
            if raw:
                try:
                    summaries[record_id] = IndexSummary.model_validate_json(raw)
                except ValidationError:
                    LOGGER.debug("Ignoring unreadable summary for %s", record_id)
        return summaries

    @staticmethod
    def _fail(result: BatchWriteResult, record_id: str, reason: str) -> None:
        LOGGER.warning("Failed to index %s: %s", record_id, reason)
        result.failures.append(RecordFailure(record_id=record_id, reason=reason))


__all__ = ["IndexWriter"]
