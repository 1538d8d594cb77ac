"""Shared fixtures for collindex tests."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable, Dict, Iterable, Iterator, List, Optional, Set

import fakeredis
import pytest

from collindex.config.models import ThumbnailSettings
from collindex.index import IndexEngine
from collindex.keys import IndexKeys
from collindex.records import (
    AssetNotFoundError,
    PreviewAsset,
    PrimaryRecord,
    PrimaryStoreError,
    PrimaryStoreUnavailableError,
)
from collindex.thumbnails import ResizedImage, ThumbnailSettingsProvider

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class MemoryPrimaryStore:
    """Primary store backed by a dict, streamed in id order.

    Ids listed in ``unreadable`` behave like corrupt documents: streaming skips
    them and direct lookups raise ``PrimaryStoreError``.
    """

    def __init__(self, records: Iterable[PrimaryRecord] = ()) -> None:
        self.records: Dict[str, PrimaryRecord] = {record.id: record for record in records}
        self.unavailable = False
        self.fail_after: Optional[int] = None
        self.unreadable: Set[str] = set()

    def put(self, record: PrimaryRecord) -> None:
        self.records[record.id] = record

    def delete(self, record_id: str) -> None:
        self.records.pop(record_id, None)

    async def stream_all(self) -> AsyncIterator[PrimaryRecord]:
        if self.unavailable:
            raise PrimaryStoreUnavailableError("primary store offline")
        for position, record_id in enumerate(sorted(self.records)):
            if self.fail_after is not None and position >= self.fail_after:
                raise PrimaryStoreUnavailableError("primary store went away")
            record = self.records[record_id]
            if record_id not in self.unreadable and not record.deleted:
                yield record

    async def get_by_id(self, record_id: str) -> Optional[PrimaryRecord]:
        if self.unavailable:
            raise PrimaryStoreUnavailableError("primary store offline")
        if record_id in self.unreadable:
            raise PrimaryStoreError(f"Invalid record document {record_id}.json")
        return self.records.get(record_id)


class MemoryAssetSource:
    """Asset source serving bytes from a dict; values may be exceptions to raise."""

    def __init__(self, blobs: Optional[Dict[str, Any]] = None) -> None:
        self.blobs: Dict[str, Any] = dict(blobs or {})
        self.reads: List[str] = []

    async def read(self, asset: PreviewAsset) -> bytes:
        self.reads.append(asset.path)
        if asset.path not in self.blobs:
            raise AssetNotFoundError(f"No asset at {asset.path}")
        value = self.blobs[asset.path]
        if isinstance(value, Exception):
            raise value
        return value


class StubResizer:
    """Resizer returning a fixed small payload, recording each call."""

    def __init__(self, payload: bytes = b"small") -> None:
        self.payload = payload
        self.calls = 0

    def resize(self, data: bytes, *, size: int, format: str, quality: int) -> ResizedImage:
        self.calls += 1
        return ResizedImage(data=self.payload, width=size, height=size, format=format)


@pytest.fixture()
def redis_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture()
def redis_client(redis_server: fakeredis.FakeServer) -> fakeredis.FakeAsyncRedis:
    return fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)


@pytest.fixture()
def keys() -> IndexKeys:
    return IndexKeys("test")


@pytest.fixture()
def primary_store() -> MemoryPrimaryStore:
    return MemoryPrimaryStore()


@pytest.fixture()
def asset_source() -> MemoryAssetSource:
    return MemoryAssetSource()


@pytest.fixture()
def resizer() -> StubResizer:
    return StubResizer()


@pytest.fixture()
def thumbnail_settings() -> ThumbnailSettingsProvider:
    return ThumbnailSettingsProvider.static(ThumbnailSettings())


@pytest.fixture()
def make_record(asset_source: MemoryAssetSource) -> Callable[..., PrimaryRecord]:
    """Return a factory building records whose preview bytes exist in ``asset_source``."""

    def _factory(
        record_id: str,
        *,
        minutes: int = 0,
        sort_key: Optional[float] = None,
        library_id: Optional[str] = None,
        collection_type: Optional[str] = None,
        preview: Optional[str] = "auto",
        child_count: int = 3,
        total_size: int = 1000,
        name: Optional[str] = None,
    ) -> PrimaryRecord:
        previews = []
        if preview == "auto":
            preview = f"{record_id}/cover.jpg"
        if preview is not None:
            previews.append(PreviewAsset(path=preview, width=200, height=150, byte_size=5))
            asset_source.blobs.setdefault(preview, b"thumb")
        return PrimaryRecord(
            id=record_id,
            name=name or f"Collection {record_id}",
            sort_key=sort_key if sort_key is not None else float(int(record_id.split("-")[-1])),
            updated_at=BASE_TIME + timedelta(minutes=minutes),
            created_at=BASE_TIME,
            library_id=library_id,
            type=collection_type,
            path=f"/collections/{record_id}",
            child_count=child_count,
            cached_derivative_count=1,
            total_size=total_size,
            previews=previews,
        )

    return _factory


@pytest.fixture()
def engine_factory(
    redis_client: fakeredis.FakeAsyncRedis,
    keys: IndexKeys,
    primary_store: MemoryPrimaryStore,
    asset_source: MemoryAssetSource,
    thumbnail_settings: ThumbnailSettingsProvider,
    resizer: StubResizer,
) -> Callable[..., IndexEngine]:
    """Return a factory wiring an ``IndexEngine`` against the shared fakes."""

    def _factory(**overrides: Any) -> IndexEngine:
        options: Dict[str, Any] = {
            "keys": keys,
            "thumbnail_settings": thumbnail_settings,
            "resizer": resizer,
        }
        options.update(overrides)
        return IndexEngine(redis_client, primary_store, asset_source, **options)

    return _factory


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    """Undo handlers installed by CLI invocations so caplog keeps seeing records."""
    yield
    logger = logging.getLogger("collindex")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
