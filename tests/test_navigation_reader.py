"""NavigationReader tests."""

from __future__ import annotations

import pytest

from collindex.index import ConfigurationError, InvalidCursorError, NavigationReader
from collindex.index.models import SortDirection
from collindex.index.reader import LARGEST_LIMIT, decode_cursor, encode_cursor
from collindex.keys import SortField


async def _build(engine_factory, primary_store, make_record, count: int, **kwargs):
    for number in range(1, count + 1):
        primary_store.put(make_record(f"rec-{number}", **kwargs))
    engine = engine_factory()
    await engine.rebuild()
    return engine


async def _walk(reader: NavigationReader, page_size: int, direction: str) -> list:
    seen: list = []
    cursor = None
    while True:
        page = await reader.page(cursor, page_size, direction)
        seen.extend(page.ids)
        cursor = page.next_cursor
        if cursor is None:
            return seen


@pytest.mark.asyncio()
@pytest.mark.parametrize("direction", ["asc", "desc"])
async def test_chained_pages_visit_every_id_once(
    engine_factory, make_record, primary_store, direction
) -> None:
    """Ensure following next cursors yields no gaps and no duplicates."""
    engine = await _build(engine_factory, primary_store, make_record, 23, preview=None)

    seen = await _walk(engine.reader, 5, direction)

    expected = [f"rec-{number}" for number in range(1, 24)]
    if direction == "desc":
        expected.reverse()
    assert seen == expected


@pytest.mark.asyncio()
async def test_page_cursors_at_both_ends(engine_factory, make_record, primary_store) -> None:
    """Verify previous and next cursors are absent at the ends of an ordering."""
    engine = await _build(engine_factory, primary_store, make_record, 7, preview=None)

    first = await engine.reader.page(None, 3)
    second = await engine.reader.page(first.next_cursor, 3)
    back = await engine.reader.page(second.previous_cursor, 3)
    last = await engine.reader.page(second.next_cursor, 3)

    assert first.previous_cursor is None
    assert first.total == 7
    assert second.ids == ["rec-4", "rec-5", "rec-6"]
    assert back.ids == first.ids
    assert last.ids == ["rec-7"]
    assert last.next_cursor is None


@pytest.mark.asyncio()
async def test_page_on_empty_index(redis_client, keys) -> None:
    """Ensure an empty index yields an empty page with no cursors."""
    page = await NavigationReader(redis_client, keys).page()

    assert page.ids == []
    assert page.next_cursor is None
    assert page.total == 0


@pytest.mark.asyncio()
async def test_page_by_library_and_alternate_sort(
    engine_factory, make_record, primary_store
) -> None:
    """Confirm library filters and alternate orderings page correctly."""
    primary_store.put(make_record("rec-1", library_id="lib-a", total_size=300, preview=None))
    primary_store.put(make_record("rec-2", library_id="lib-b", total_size=100, preview=None))
    primary_store.put(make_record("rec-3", library_id="lib-a", total_size=200, preview=None))
    engine = engine_factory()
    await engine.rebuild()

    by_library = await engine.reader.page(library_id="lib-a")
    by_size = await engine.reader.page(sort=SortField.TOTAL_SIZE, direction="desc")

    assert by_library.ids == ["rec-1", "rec-3"]
    assert await engine.reader.count("lib-a") == 2
    assert await engine.reader.count() == 3
    assert by_size.ids == ["rec-1", "rec-3", "rec-2"]


@pytest.mark.asyncio()
async def test_invalid_page_arguments(redis_client, keys) -> None:
    """Verify invalid sizes, directions, sorts, filters, and cursors are rejected."""
    reader = NavigationReader(redis_client, keys)
    foreign = encode_cursor(2, SortField.SORT_KEY, SortDirection.DESC, None)

    with pytest.raises(ConfigurationError):
        await reader.page(page_size=0)
    with pytest.raises(ConfigurationError):
        await reader.page(direction="sideways")
    with pytest.raises(InvalidCursorError):
        await reader.page("not-a-cursor!")
    with pytest.raises(InvalidCursorError):
        await reader.page(foreign, direction="asc")
    with pytest.raises(ConfigurationError):
        await reader.page(sort="colour")
    with pytest.raises(ConfigurationError):
        await reader.page(library_id="lib-a", collection_type="album")


def test_cursor_encoding_is_opaque_and_reversible() -> None:
    """Cursors hide their scope but decode back to the same ordering."""
    cursor = encode_cursor(40, SortField.NAME, SortDirection.ASC, "lib-a")
    typed = encode_cursor(5, SortField.NAME, SortDirection.DESC, None, "album")

    assert "lib-a" not in cursor
    assert decode_cursor(cursor) == (40, SortField.NAME, SortDirection.ASC, "lib-a", None)
    assert decode_cursor(typed) == (5, SortField.NAME, SortDirection.DESC, None, "album")
    with pytest.raises(InvalidCursorError):
        decode_cursor(encode_cursor(-1, SortField.NAME, SortDirection.ASC, None))


@pytest.mark.asyncio()
async def test_siblings_at_edges_and_middle(engine_factory, make_record, primary_store) -> None:
    """Ensure sibling lookups handle both ends, the middle, and absent ids."""
    engine = await _build(engine_factory, primary_store, make_record, 3, preview=None)
    reader = engine.reader

    first = await reader.siblings("rec-1")
    middle = await reader.siblings("rec-2")
    last = await reader.siblings("rec-3")
    reversed_first = await reader.siblings("rec-3", direction="desc")
    absent = await reader.siblings("rec-404")

    assert (first.previous, first.next, first.position) == (None, "rec-2", 1)
    assert (middle.previous, middle.next, middle.position) == ("rec-1", "rec-3", 2)
    assert (last.previous, last.next, last.position) == ("rec-2", None, 3)
    assert (reversed_first.previous, reversed_first.next) == (None, "rec-2")
    assert (absent.previous, absent.next, absent.position, absent.total) == (None, None, 0, 3)


@pytest.mark.asyncio()
async def test_sibling_page_contains_record(engine_factory, make_record, primary_store) -> None:
    """Verify the sibling page is the page holding the record."""
    engine = await _build(engine_factory, primary_store, make_record, 11, preview=None)

    page = await engine.reader.sibling_page("rec-7", page_size=5)
    absent = await engine.reader.sibling_page("rec-404", page_size=5)

    assert page.ids == ["rec-6", "rec-7", "rec-8", "rec-9", "rec-10"]
    assert (page.position, page.page, page.total_pages) == (7, 2, 3)
    assert absent.ids == []
    assert absent.position == 0
    with pytest.raises(ConfigurationError):
        await engine.reader.sibling_page("rec-7", page_size=0)


@pytest.mark.asyncio()
async def test_summaries_and_thumbnail_lookup(engine_factory, make_record, primary_store) -> None:
    """Confirm summaries and thumbnails are read back by id."""
    engine = await _build(engine_factory, primary_store, make_record, 2)

    summaries = await engine.reader.summaries(["rec-2", "rec-404", "rec-1"])
    thumbnail = await engine.reader.thumbnail("rec-1")

    assert [summary.id if summary else None for summary in summaries] == [
        "rec-2",
        None,
        "rec-1",
    ]
    assert summaries[0].has_thumbnail is True
    assert thumbnail is not None and thumbnail.to_bytes() == b"thumb"
    assert await engine.reader.thumbnail("rec-404") is None
    assert await engine.reader.summaries([]) == []


@pytest.mark.asyncio()
async def test_statistics_stream_the_summary_hash(
    engine_factory, make_record, primary_store
) -> None:
    """Verify aggregate statistics and the largest-records list."""
    for number in range(1, 16):
        primary_store.put(
            make_record(
                f"rec-{number}",
                library_id="lib-a" if number % 2 else "lib-b",
                total_size=number * 100,
                child_count=2,
                preview=None if number > 10 else "auto",
            )
        )
    engine = engine_factory()
    await engine.rebuild()

    stats = await engine.reader.statistics()

    assert stats.total_records == 15
    assert stats.total_children == 30
    assert stats.average_children == 2.0
    assert stats.thumbnails_cached == 10
    assert stats.records_by_library == {"lib-a": 8, "lib-b": 7}
    assert len(stats.largest) == LARGEST_LIMIT
    assert [item.id for item in stats.largest[:3]] == ["rec-15", "rec-14", "rec-13"]


@pytest.mark.asyncio()
async def test_search_matches_name_and_path(engine_factory, make_record, primary_store) -> None:
    """Ensure search matches names and paths case-insensitively."""
    primary_store.put(make_record("rec-1", name="Summer Holiday", preview=None))
    primary_store.put(make_record("rec-2", name="Winter", preview=None))
    primary_store.put(make_record("rec-3", name="summertime", preview=None))
    engine = engine_factory()
    await engine.rebuild()

    matches = await engine.reader.search("SUMMER")
    by_path = await engine.reader.search("collections/rec-2")

    assert sorted(summary.id for summary in matches) == ["rec-1", "rec-3"]
    assert [summary.id for summary in by_path] == ["rec-2"]
    assert len(await engine.reader.search("rec", limit=2)) == 2
    with pytest.raises(ConfigurationError):
        await engine.reader.search("x", limit=0)


@pytest.mark.asyncio()
async def test_index_info_validity(engine_factory, make_record, primary_store) -> None:
    """Confirm index info reports validity only after a rebuild."""
    engine = engine_factory()
    assert await engine.reader.is_valid() is False

    primary_store.put(make_record("rec-1", preview=None))
    await engine.rebuild()
    info = await engine.reader.index_info()

    assert info.valid is True
    assert info.last_rebuild_mode == "changed_only"
    assert info.sorted_set_sizes[SortField.NAME.value] == 1


@pytest.mark.asyncio()
async def test_page_and_count_by_collection_type(
    engine_factory, make_record, primary_store
) -> None:
    """Per-type orderings page, count, and aggregate like the library ones."""
    for number, kind in enumerate(["album", "event", "album", "album", "event"], start=1):
        primary_store.put(make_record(f"rec-{number}", collection_type=kind, preview=None))
    primary_store.put(make_record("rec-6", preview=None))
    engine = await _build(engine_factory, primary_store, make_record, 0)
    reader = engine.reader

    first = await reader.page(None, 2, collection_type="album")
    rest = await reader.page(first.next_cursor, 2, collection_type="album")
    stats = await reader.statistics()

    assert first.ids == ["rec-1", "rec-3"]
    assert rest.ids == ["rec-4"]
    assert rest.next_cursor is None
    assert await reader.count(collection_type="event") == 2
    assert await reader.count() == 6
    assert stats.records_by_type == {"album": 3, "event": 2}
    with pytest.raises(InvalidCursorError):
        await reader.page(first.next_cursor, 2, collection_type="event")


@pytest.mark.asyncio()
async def test_sort_accepts_field_names(engine_factory, make_record, primary_store) -> None:
    """Plain strings select an ordering the same way enum members do."""
    primary_store.put(make_record("rec-1", total_size=300, preview=None))
    primary_store.put(make_record("rec-2", total_size=100, preview=None))
    engine = await _build(engine_factory, primary_store, make_record, 0)

    by_size = await engine.reader.page(sort="total_size")
    neighbours = await engine.reader.siblings("rec-2", sort="TOTAL_SIZE")

    assert by_size.ids == ["rec-2", "rec-1"]
    assert neighbours.next == "rec-1"
