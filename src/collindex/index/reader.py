"""Read-only queries served straight from the index."""

from __future__ import annotations

import base64
import binascii
import heapq
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from collindex.keys import IndexKeys, SortField
from collindex.thumbnails import ThumbnailCacheEntry

from .errors import ConfigurationError, InvalidCursorError, connectivity_guard
from .models import (
    IndexInfo,
    IndexStatistics,
    IndexSummary,
    PageResult,
    SiblingPage,
    Siblings,
    SortDirection,
    TopRecord,
)

LOGGER = logging.getLogger(__name__)

LARGEST_LIMIT = 10


def encode_cursor(
    offset: int,
    sort: SortField,
    direction: SortDirection,
    library_id: Optional[str],
    collection_type: Optional[str] = None,
) -> str:
    """Return an opaque cursor pointing at ``offset`` within an ordering."""
    payload = {
        "o": offset,
        "s": sort.value,
        "d": direction.value,
        "l": library_id,
        "t": collection_type,
    }
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(
    cursor: str,
) -> Tuple[int, SortField, SortDirection, Optional[str], Optional[str]]:
    """Parse a cursor produced by :func:`encode_cursor`.

    Raises:
        InvalidCursorError: If the cursor is malformed.
    """
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        offset = int(payload["o"])
        sort = SortField(payload["s"])
        direction = SortDirection(payload["d"])
        library_id = payload.get("l")
        collection_type = payload.get("t")
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError, AttributeError) as exc:
        raise InvalidCursorError(f"Invalid pagination cursor: {cursor!r}") from exc
    if offset < 0:
        raise InvalidCursorError(f"Invalid pagination cursor: {cursor!r}")
    return offset, sort, direction, library_id, collection_type


def parse_sort(value: SortField | str) -> SortField:
    """Return the ordering named by ``value``.

    Raises:
        ConfigurationError: If ``value`` names no ordering.
    """
    if isinstance(value, SortField):
        return value
    try:
        return SortField(str(value).strip().lower())
    except ValueError as exc:
        choices = ", ".join(field.value for field in SortField)
        raise ConfigurationError(
            f"Unknown sort field {value!r}; expected one of: {choices}"
        ) from exc


class NavigationReader:
    """Paginate, navigate, and aggregate over the index without the primary store.

    Every method is a plain read and is safe to call while a rebuild is running;
    results may then reflect a mix of old and new entries.
    """

    def __init__(self, client: Any, keys: IndexKeys) -> None:
        self._client = client
        self._keys = keys

    async def page(
        self,
        cursor: Optional[str] = None,
        page_size: int = 20,
        direction: SortDirection | str = SortDirection.ASC,
        *,
        sort: SortField | str = SortField.SORT_KEY,
        library_id: Optional[str] = None,
        collection_type: Optional[str] = None,
    ) -> PageResult:
        """Return one page of ids from an ordering.

        Chaining ``next_cursor`` visits every id exactly once as long as the index
        is not modified in between.

        Args:
            cursor: Cursor from a previous page, or ``None`` for the first page.
            page_size: Maximum number of ids to return.
            direction: ``asc`` or ``desc`` by score.
            sort: Ordering to page through.
            library_id: Restrict to a library's secondary ordering.
            collection_type: Restrict to a collection type's secondary ordering.

        Returns:
            PageResult: Ids plus next/previous cursors (``None`` at either end).

        Raises:
            ConfigurationError: If ``page_size``, ``direction`` or ``sort`` is
                invalid, or both a library and a type are given.
            InvalidCursorError: If ``cursor`` is malformed or was issued for a
                different ordering.
        """
        if page_size <= 0:
            raise ConfigurationError("page_size must be positive")
        direction = SortDirection.parse(direction)
        sort = parse_sort(sort)
        key = self._ordering_key(sort, library_id, collection_type)
        scope = (sort, direction, library_id, collection_type)
        offset = 0
        if cursor:
            offset, *cursor_scope = decode_cursor(cursor)
            if tuple(cursor_scope) != scope:
                raise InvalidCursorError("Cursor was issued for a different ordering")

        with connectivity_guard("reading a page"):
            total = await self._client.zcard(key)
            ids = await self._range(key, offset, offset + page_size - 1, direction)

        next_cursor = None
        if offset + len(ids) < total:
            next_cursor = encode_cursor(offset + len(ids), *scope)
        previous_cursor = None
        if offset > 0:
            previous_cursor = encode_cursor(max(0, offset - page_size), *scope)
        return PageResult(
            ids=ids, next_cursor=next_cursor, previous_cursor=previous_cursor, total=total
        )

    async def siblings(
        self,
        record_id: str,
        *,
        sort: SortField | str = SortField.SORT_KEY,
        direction: SortDirection | str = SortDirection.ASC,
        library_id: Optional[str] = None,
        collection_type: Optional[str] = None,
    ) -> Siblings:
        """Return the ids immediately before and after ``record_id``.

        A record that is not indexed yields a result with ``position == 0`` and
        no neighbours.
        """
        direction = SortDirection.parse(direction)
        key = self._ordering_key(parse_sort(sort), library_id, collection_type)
        with connectivity_guard("looking up siblings"):
            rank = await self._rank(key, record_id, direction)
            total = await self._client.zcard(key)
            if rank is None:
                return Siblings(record_id=record_id, total=total)
            window = await self._range(key, max(0, rank - 1), rank + 1, direction)

        previous = window[0] if rank > 0 else None
        following = window[-1] if len(window) > (2 if rank > 0 else 1) else None
        return Siblings(
            record_id=record_id,
            previous=previous,
            next=following,
            position=rank + 1,
            total=total,
        )

    async def sibling_page(
        self,
        record_id: str,
        page_size: int = 20,
        *,
        sort: SortField | str = SortField.SORT_KEY,
        direction: SortDirection | str = SortDirection.ASC,
        library_id: Optional[str] = None,
        collection_type: Optional[str] = None,
    ) -> SiblingPage:
        """Return the page of the ordering that contains ``record_id``."""
        if page_size <= 0:
            raise ConfigurationError("page_size must be positive")
        direction = SortDirection.parse(direction)
        key = self._ordering_key(parse_sort(sort), library_id, collection_type)
        with connectivity_guard("looking up a sibling page"):
            total = await self._client.zcard(key)
            rank = await self._rank(key, record_id, direction)
            total_pages = -(-total // page_size)
            if rank is None:
                return SiblingPage(
                    record_id=record_id, page_size=page_size, total=total, total_pages=total_pages
                )
            page_index = rank // page_size
            start = page_index * page_size
            ids = await self._range(key, start, start + page_size - 1, direction)
        return SiblingPage(
            record_id=record_id,
            ids=ids,
            position=rank + 1,
            page=page_index + 1,
            page_size=page_size,
            total=total,
            total_pages=total_pages,
        )

    async def count(
        self, library_id: Optional[str] = None, collection_type: Optional[str] = None
    ) -> int:
        """Return the number of indexed records, optionally within one library or type."""
        key = self._ordering_key(SortField.SORT_KEY, library_id, collection_type)
        with connectivity_guard("counting index entries"):
            return int(await self._client.zcard(key))

    async def summaries(self, record_ids: Sequence[str]) -> List[Optional[IndexSummary]]:
        """Fetch the stored summaries for ``record_ids`` in one round trip."""
        if not record_ids:
            return []
        with connectivity_guard("reading summaries"):
            values = await self._client.hmget(self._keys.summaries, list(record_ids))
        return [self._parse_summary(record_id, raw) for record_id, raw in zip(record_ids, values)]

    async def thumbnail(self, record_id: str) -> Optional[ThumbnailCacheEntry]:
        with connectivity_guard("reading a thumbnail"):
            raw = await self._client.hget(self._keys.thumbnails, record_id)
        if raw is None:
            return None
        try:
            return ThumbnailCacheEntry.model_validate_json(raw)
        except ValidationError as exc:
            LOGGER.warning("Ignoring unreadable thumbnail for %s: %s", record_id, exc)
            return None

    async def statistics(self) -> IndexStatistics:
        """Aggregate the summary hash by streaming it with HSCAN.

        Memory stays proportional to the number of libraries plus a fixed-size
        list of the largest records, independent of corpus size.
        """
        stats = IndexStatistics()
        largest: List[Tuple[int, str, TopRecord]] = []
        with connectivity_guard("computing statistics"):
            async for record_id, raw in self._client.hscan_iter(self._keys.summaries, count=500):
                summary = self._parse_summary(record_id, raw)
                if summary is None:
                    continue
                stats.total_records += 1
                stats.total_children += summary.child_count
                stats.total_cached_derivatives += summary.cached_derivative_count
                stats.total_size += summary.total_size
                if summary.has_thumbnail:
                    stats.thumbnails_cached += 1
                    stats.thumbnail_bytes += summary.thumbnail_bytes
                if summary.library_id:
                    counts = stats.records_by_library
                    counts[summary.library_id] = counts.get(summary.library_id, 0) + 1
                if summary.type:
                    by_type = stats.records_by_type
                    by_type[summary.type] = by_type.get(summary.type, 0) + 1

                entry = (
                    summary.total_size,
                    summary.id,
                    TopRecord(
                        id=summary.id,
                        name=summary.name,
                        child_count=summary.child_count,
                        total_size=summary.total_size,
                    ),
                )
                if len(largest) < LARGEST_LIMIT:
                    heapq.heappush(largest, entry)
                elif entry[:2] > largest[0][:2]:
                    heapq.heapreplace(largest, entry)

        stats.largest = [item for _, _, item in sorted(largest, key=lambda e: e[:2], reverse=True)]
        return stats

    async def search(self, query: str, limit: int = 50) -> List[IndexSummary]:
        """Return summaries whose name or path contains ``query`` (case-insensitive)."""
        if limit <= 0:
            raise ConfigurationError("limit must be positive")
        needle = query.casefold()
        matches: List[IndexSummary] = []
        with connectivity_guard("searching summaries"):
            async for record_id, raw in self._client.hscan_iter(self._keys.summaries, count=500):
                summary = self._parse_summary(record_id, raw)
                if summary is None:
                    continue
                haystacks = (summary.name, summary.path or "")
                if any(needle in value.casefold() for value in haystacks):
                    matches.append(summary)
                    if len(matches) >= limit:
                        break
        return matches

    async def index_info(self) -> IndexInfo:
        with connectivity_guard("reading index metadata"):
            meta: Dict[str, str] = await self._client.hgetall(self._keys.meta)
            sizes = {
                field.value: int(await self._client.zcard(self._keys.sorted_set(field)))
                for field in SortField
            }
        last_rebuild_at = None
        if meta.get("last_rebuild_at"):
            try:
                last_rebuild_at = datetime.fromisoformat(meta["last_rebuild_at"])
            except ValueError:
                LOGGER.warning("Ignoring unreadable last_rebuild_at %r", meta["last_rebuild_at"])
        total = sizes[SortField.SORT_KEY.value]
        return IndexInfo(
            total_records=total,
            last_rebuild_at=last_rebuild_at,
            last_rebuild_mode=meta.get("last_rebuild_mode"),
            sorted_set_sizes=sizes,
            valid=last_rebuild_at is not None and total > 0,
        )

    async def is_valid(self) -> bool:
        """Return whether the index has been built at least once and is non-empty."""
        return (await self.index_info()).valid

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #

    def _ordering_key(
        self, sort: SortField, library_id: Optional[str], collection_type: Optional[str]
    ) -> str:
        if library_id and collection_type:
            raise ConfigurationError("Filter by library or by collection type, not both")
        if library_id:
            return self._keys.library_sorted_set(library_id, sort)
        if collection_type:
            return self._keys.type_sorted_set(collection_type, sort)
        return self._keys.sorted_set(sort)

    async def _range(self, key: str, start: int, stop: int, direction: SortDirection) -> List[str]:
        if direction is SortDirection.DESC:
            return list(await self._client.zrevrange(key, start, stop))
        return list(await self._client.zrange(key, start, stop))

    async def _rank(self, key: str, member: str, direction: SortDirection) -> Optional[int]:
        if direction is SortDirection.DESC:
            return await self._client.zrevrank(key, member)
        return await self._client.zrank(key, member)

    @staticmethod
    def _parse_summary(record_id: str, raw: Optional[str]) -> Optional[IndexSummary]:
        if raw is None:
            return None
        try:
            return IndexSummary.model_validate_json(raw)
        except ValidationError as exc:
            LOGGER.warning("Ignoring unreadable summary for %s: %s", record_id, exc)
            return None


__all__ = ["NavigationReader", "encode_cursor", "decode_cursor", "parse_sort", "LARGEST_LIMIT"]
