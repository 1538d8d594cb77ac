"""Key layout and ordered-set scoring for the navigation index."""

from __future__ import annotations

from enum import Enum

from collindex.records.models import PrimaryRecord

DEFAULT_PREFIX = "collindex"

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193


class SortField(str, Enum):
    """Orderings maintained as separate ordered sets."""

    SORT_KEY = "sort_key"
    UPDATED_AT = "updated_at"
    CREATED_AT = "created_at"
    NAME = "name"
    CHILD_COUNT = "child_count"
    TOTAL_SIZE = "total_size"


def fnv1a_32(text: str) -> int:
    """Return the 32-bit FNV-1a hash of ``text`` encoded as UTF-8."""
    value = _FNV32_OFFSET
    for byte in text.encode("utf-8"):
        value ^= byte
        value = (value * _FNV32_PRIME) & 0xFFFFFFFF
    return value


def score_for(record: PrimaryRecord, field: SortField) -> float:
    """Return the ascending ordered-set score of ``record`` for ``field``.

    Names are scored with FNV-1a over the case-folded name so the ordering is
    identical across processes and restarts.
    """
    if field is SortField.SORT_KEY:
        return float(record.sort_key)
    if field is SortField.UPDATED_AT:
        return record.updated_at.timestamp()
    if field is SortField.CREATED_AT:
        return record.created_at.timestamp() if record.created_at is not None else 0.0
    if field is SortField.NAME:
        return float(fnv1a_32(record.name.casefold()))
    if field is SortField.CHILD_COUNT:
        return float(record.child_count)
    return float(record.total_size)


class IndexKeys:
    """Build the keys owned by the engine under a common prefix."""

    def __init__(self, prefix: str = DEFAULT_PREFIX) -> None:
        self.prefix = prefix

    def sorted_set(self, field: SortField = SortField.SORT_KEY) -> str:
        return f"{self.prefix}:sorted:{field.value}"

    def library_sorted_set(self, library_id: str, field: SortField = SortField.SORT_KEY) -> str:
        return f"{self.prefix}:sorted:by_library:{library_id}:{field.value}"

    @property
    def library_pattern(self) -> str:
        return f"{self.prefix}:sorted:by_library:*"

    def type_sorted_set(self, collection_type: str, field: SortField = SortField.SORT_KEY) -> str:
        return f"{self.prefix}:sorted:by_type:{collection_type}:{field.value}"

    @property
    def type_pattern(self) -> str:
        return f"{self.prefix}:sorted:by_type:*"

    @property
    def summaries(self) -> str:
        return f"{self.prefix}:summary"

    @property
    def thumbnails(self) -> str:
        return f"{self.prefix}:thumbs"

    @property
    def meta(self) -> str:
        return f"{self.prefix}:meta"

    def state(self, record_id: str) -> str:
        return f"{self.prefix}:state:{record_id}"

    @property
    def state_pattern(self) -> str:
        return f"{self.prefix}:state:*"

    def record_id_from_state_key(self, key: str) -> str:
        return key[len(f"{self.prefix}:state:") :]


__all__ = ["DEFAULT_PREFIX", "SortField", "IndexKeys", "fnv1a_32", "score_for"]
