"""IndexEngine rebuild tests."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from collindex.index import (
    ConfigurationError,
    RebuildMode,
    RebuildOptions,
    StoreConnectivityError,
)


def _seed(primary_store, make_record, count: int, **kwargs) -> None:
    for number in range(1, count + 1):
        primary_store.put(make_record(f"rec-{number}", **kwargs))


def _touch(primary_store, record_id: str, minutes: int = 30) -> None:
    record = primary_store.records[record_id]
    primary_store.put(
        record.model_copy(update={"updated_at": record.updated_at + timedelta(minutes=minutes)})
    )


@pytest.mark.asyncio()
async def test_changed_only_is_idempotent(engine_factory, make_record, primary_store) -> None:
    """Ensure a second changed-only pass without mutations rebuilds nothing."""
    _seed(primary_store, make_record, 12)
    engine = engine_factory()

    first = await engine.rebuild(RebuildMode.CHANGED_ONLY)
    second = await engine.rebuild(RebuildMode.CHANGED_ONLY)

    assert (first.scanned, first.rebuilt, first.added) == (12, 12, 12)
    assert (second.scanned, second.rebuilt, second.skipped) == (12, 0, 12)
    assert second.errors == []


@pytest.mark.asyncio()
async def test_change_detection_selects_only_mutated_record(
    engine_factory, make_record, primary_store, asset_source
) -> None:
    """Ensure changed-only rebuilds just the record whose timestamp moved."""
    _seed(primary_store, make_record, 5)
    engine = engine_factory()
    await engine.rebuild()
    asset_source.reads.clear()

    _touch(primary_store, "rec-3")
    stats = await engine.rebuild()

    assert stats.rebuilt == 1
    assert stats.updated == 1
    assert stats.added == 0
    assert stats.skipped == 4
    assert asset_source.reads == ["rec-3/cover.jpg"]


@pytest.mark.asyncio()
async def test_ten_thousand_records_with_fifty_changes(
    engine_factory, make_record, primary_store
) -> None:
    """Verify fifty changes among ten thousand records rebuild exactly fifty."""
    _seed(primary_store, make_record, 10_000, preview=None)
    engine = engine_factory()
    options = RebuildOptions(skip_thumbnail_caching=True)
    initial = await engine.rebuild(RebuildMode.CHANGED_ONLY, options)
    assert initial.rebuilt == 10_000

    for number in range(1, 10_001, 200):
        _touch(primary_store, f"rec-{number}")
    stats = await engine.rebuild(RebuildMode.CHANGED_ONLY, options)

    assert stats.scanned == 10_000
    assert stats.rebuilt == 50
    assert stats.skipped == 9_950
    assert stats.errors == []


@pytest.mark.asyncio()
async def test_deleted_asset_fails_only_its_record(
    engine_factory, make_record, primary_store, asset_source, redis_client, keys
) -> None:
    """Ensure a deleted asset fails its record while the batch completes."""
    _seed(primary_store, make_record, 5)
    del asset_source.blobs["rec-4/cover.jpg"]
    engine = engine_factory()

    stats = await engine.rebuild()

    assert stats.scanned == 5
    assert stats.rebuilt == 4
    assert len(stats.errors) == 1
    assert stats.errors[0].startswith("rec-4: ")
    assert await redis_client.zscore(keys.sorted_set(), "rec-4") is None

    retry = await engine.rebuild()
    assert retry.skipped == 4
    assert retry.rebuilt == 0
    assert len(retry.errors) == 1


@pytest.mark.asyncio()
async def test_full_rebuild_clears_stale_entries(
    engine_factory, make_record, primary_store, redis_client, keys
) -> None:
    """Verify a full rebuild drops entries for records no longer present."""
    _seed(primary_store, make_record, 3)
    engine = engine_factory()
    await engine.rebuild()
    primary_store.delete("rec-2")

    stats = await engine.rebuild(RebuildMode.FULL)

    assert (stats.rebuilt, stats.added, stats.updated) == (2, 2, 0)
    assert await redis_client.zrange(keys.sorted_set(), 0, -1) == ["rec-1", "rec-3"]
    assert await engine.state.get("rec-2") is None
    assert await redis_client.hexists(keys.summaries, "rec-2") == 0


@pytest.mark.asyncio()
async def test_force_rebuild_overwrites_in_place(
    engine_factory, make_record, primary_store, asset_source
) -> None:
    """Ensure force rebuild rewrites every record without clearing first."""
    _seed(primary_store, make_record, 3)
    engine = engine_factory()
    await engine.rebuild()
    asset_source.reads.clear()

    stats = await engine.rebuild("ForceRebuildAll")

    assert (stats.rebuilt, stats.updated, stats.skipped) == (3, 3, 0)
    assert sorted(asset_source.reads) == [f"rec-{n}/cover.jpg" for n in (1, 2, 3)]


@pytest.mark.asyncio()
async def test_dry_run_reports_without_writing(
    engine_factory, make_record, primary_store, redis_client, keys
) -> None:
    """Verify dry runs report counts and leave the index untouched."""
    _seed(primary_store, make_record, 4)
    engine = engine_factory()

    stats = await engine.rebuild(RebuildMode.CHANGED_ONLY, {"dry_run": True})

    assert stats.dry_run is True
    assert stats.rebuilt == 4
    assert await redis_client.zcard(keys.sorted_set()) == 0
    assert await redis_client.exists(keys.meta) == 0


@pytest.mark.asyncio()
async def test_rebuild_records_metadata(engine_factory, make_record, primary_store) -> None:
    """Confirm a completed rebuild stores its timestamp and mode."""
    _seed(primary_store, make_record, 2)
    engine = engine_factory()

    stats = await engine.rebuild(RebuildMode.FULL)
    info = await engine.reader.index_info()

    assert info.valid is True
    assert info.total_records == 2
    assert info.last_rebuild_mode == "full"
    assert stats.completed_at is not None
    assert stats.peak_rss_bytes > 0


@pytest.mark.asyncio()
async def test_cancellation_stops_at_batch_boundary(
    engine_factory, make_record, primary_store, keys, redis_client
) -> None:
    """Ensure a cancel event stops the run between batches."""
    _seed(primary_store, make_record, 30, preview=None)
    engine = engine_factory(batch_size=10)
    cancel = asyncio.Event()
    original = engine.writer.write_batch

    async def write_then_cancel(records, **kwargs):
        result = await original(records, **kwargs)
        cancel.set()
        return result

    engine.writer.write_batch = write_then_cancel

    stats = await engine.rebuild(cancel_event=cancel)

    assert stats.cancelled is True
    assert stats.scanned == 10
    assert stats.rebuilt == 10
    assert await redis_client.zcard(keys.sorted_set()) == 10
    assert await redis_client.exists(keys.meta) == 0


@pytest.mark.asyncio()
async def test_connectivity_loss_aborts_with_partial_statistics(
    engine_factory, make_record, primary_store
) -> None:
    """Verify losing the store aborts with the statistics gathered so far."""
    _seed(primary_store, make_record, 25, preview=None)
    primary_store.fail_after = 15
    engine = engine_factory(batch_size=10)

    with pytest.raises(StoreConnectivityError) as excinfo:
        await engine.rebuild()

    partial = excinfo.value.statistics
    assert partial.scanned == 10
    assert partial.rebuilt == 10
    assert partial.completed_at is not None


@pytest.mark.asyncio()
async def test_invalid_arguments_are_rejected_before_work(engine_factory, primary_store) -> None:
    """Ensure bad modes and options raise before anything is written."""
    primary_store.unavailable = True
    engine = engine_factory()

    with pytest.raises(ConfigurationError):
        await engine.rebuild("sometimes")
    with pytest.raises(ConfigurationError):
        await engine.rebuild(RebuildMode.CHANGED_ONLY, {"dryrun": True})


def test_invalid_engine_limits(engine_factory) -> None:
    """Verify non-positive batch and concurrency limits are rejected."""
    with pytest.raises(ConfigurationError):
        engine_factory(batch_size=0)
    with pytest.raises(ConfigurationError):
        engine_factory(concurrency=0)


@pytest.mark.asyncio()
async def test_verify_mode_reports_through_rebuild(
    engine_factory, make_record, primary_store
) -> None:
    """Confirm verify mode maps drift onto rebuild statistics."""
    _seed(primary_store, make_record, 3)
    engine = engine_factory()
    await engine.rebuild()
    primary_store.delete("rec-1")
    primary_store.put(make_record("rec-9"))

    stats = await engine.rebuild(RebuildMode.VERIFY, {"dry_run": False})

    assert stats.mode is RebuildMode.VERIFY
    assert (stats.added, stats.updated, stats.removed) == (1, 0, 1)
    assert stats.scanned == 3


@pytest.mark.asyncio()
async def test_add_or_update_and_remove(
    engine_factory, make_record, redis_client, keys
) -> None:
    """Ensure one record can be indexed on its own and then fully removed."""
    engine = engine_factory()
    record = make_record("rec-5", library_id="lib-a")

    written = await engine.add_or_update(record)
    assert written.written == ["rec-5"]
    assert await engine.reader.count("lib-a") == 1

    assert await engine.remove("rec-5") is True
    assert await redis_client.zcard(keys.sorted_set()) == 0
    assert await engine.reader.count("lib-a") == 0
    assert await engine.state.get("rec-5") is None

    await engine.add_or_update(record)
    removed = await engine.add_or_update(record.model_copy(update={"deleted": True}))
    assert removed.written == ["rec-5"]
    assert await redis_client.hexists(keys.summaries, "rec-5") == 0
