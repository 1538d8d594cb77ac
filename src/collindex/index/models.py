"""Data models for rebuild runs, verification, and navigation queries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from collindex.records.models import PrimaryRecord

from .errors import ConfigurationError


class RebuildMode(str, Enum):
    """Rebuild strategies accepted by the trigger surface."""

    CHANGED_ONLY = "changed_only"
    VERIFY = "verify"
    FULL = "full"
    FORCE_REBUILD_ALL = "force_rebuild_all"

    @classmethod
    def parse(cls, value: "RebuildMode | str") -> "RebuildMode":
        """Return the mode named by ``value``.

        Accepts enum members, snake_case names, and CamelCase names such as
        ``ForceRebuildAll``.

        Raises:
            ConfigurationError: If ``value`` names no mode.
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip().replace("-", "_")
        if not text.isupper() and not text.islower():
            text = "".join(f"_{char}" if char.isupper() else char for char in text)
        normalized = text.lower().lstrip("_").replace("__", "_")
        try:
            return cls(normalized)
        except ValueError as exc:
            choices = ", ".join(mode.value for mode in cls)
            raise ConfigurationError(
                f"Unknown rebuild mode {value!r}; expected one of: {choices}"
            ) from exc


class RebuildOptions(BaseModel):
    """Options accepted alongside a rebuild mode.

    Attributes:
        dry_run: Classify and report without writing to the index.
        skip_thumbnail_caching: Write index entries without thumbnail blobs.
    """

    model_config = ConfigDict(extra="forbid")

    dry_run: bool = False
    skip_thumbnail_caching: bool = False


class PlanAction(str, Enum):
    REBUILD = "rebuild"
    SKIP = "skip"


@dataclass(slots=True)
class PlanItem:
    """Classification of one primary record by the planner.

    Attributes:
        record: The streamed primary record.
        action: Whether the record must be rewritten.
        reason: Short classification reason, logged at debug level.
        indexed: Whether a readable index state existed for the record.
    """

    record: PrimaryRecord
    action: PlanAction
    reason: str
    indexed: bool = False


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, value: "SortDirection | str") -> "SortDirection":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ConfigurationError(
                f"Unknown sort direction {value!r}; expected 'asc' or 'desc'"
            ) from exc


class RecordFailure(BaseModel):
    """A record that could not be indexed during a batch."""

    record_id: str
    reason: str

    @property
    def message(self) -> str:
        return f"{self.record_id}: {self.reason}"


@dataclass(slots=True)
class BatchWriteResult:
    """Outcome of writing one batch of records."""

    written: List[str] = field(default_factory=list)
    failures: List[RecordFailure] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RebuildStatistics(BaseModel):
    """Summary returned by every rebuild run, including partial and cancelled ones."""

    mode: RebuildMode
    dry_run: bool = False
    scanned: int = 0
    rebuilt: int = 0
    skipped: int = 0
    added: int = 0
    updated: int = 0
    removed: int = 0
    errors: List[str] = Field(default_factory=list)
    duration_ms: int = 0
    cancelled: bool = False
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None
    peak_rss_bytes: int = 0
    memory_reclaimed_bytes: int = 0


class VerifyResult(BaseModel):
    """Drift found (and optionally repaired) between the primary store and the index.

    ``added``, ``updated`` and ``removed`` classify the drift and are identical
    for dry and repairing runs. ``repaired`` and ``orphans_removed`` count the
    repairs that were committed; in a dry run they count what would be repaired.
    """

    dry_run: bool = True
    added: int = 0
    updated: int = 0
    removed: int = 0
    total_primary: int = 0
    total_indexed: int = 0
    missing_ids: List[str] = Field(default_factory=list)
    outdated_ids: List[str] = Field(default_factory=list)
    thumbnail_stale_ids: List[str] = Field(default_factory=list)
    orphan_ids: List[str] = Field(default_factory=list)
    repaired: int = 0
    orphans_removed: int = 0
    errors: List[str] = Field(default_factory=list)
    cancelled: bool = False
    duration_ms: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def consistent(self) -> bool:
        return self.added == 0 and self.updated == 0 and self.removed == 0


class IndexSummary(BaseModel):
    """Lightweight record summary stored in the index for list rendering."""

    id: str
    name: str = ""
    path: Optional[str] = None
    library_id: Optional[str] = None
    type: Optional[str] = None
    sort_key: float = 0.0
    child_count: int = 0
    cached_derivative_count: int = 0
    total_size: int = 0
    created_at: Optional[datetime] = None
    updated_at: datetime
    has_thumbnail: bool = False
    thumbnail_bytes: int = 0


class PageResult(BaseModel):
    """One page of ids plus cursors to its neighbours."""

    ids: List[str] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    previous_cursor: Optional[str] = None
    total: int = 0


class Siblings(BaseModel):
    """Predecessor and successor of a record in an ordering."""

    record_id: str
    previous: Optional[str] = None
    next: Optional[str] = None
    position: int = 0
    total: int = 0


class SiblingPage(BaseModel):
    """The page of an ordering that contains a given record."""

    record_id: str
    ids: List[str] = Field(default_factory=list)
    position: int = 0
    page: int = 0
    page_size: int = 0
    total: int = 0
    total_pages: int = 0


class TopRecord(BaseModel):
    id: str
    name: str
    child_count: int
    total_size: int


class IndexStatistics(BaseModel):
    """Aggregate counts computed by streaming the summary hash."""

    total_records: int = 0
    total_children: int = 0
    total_cached_derivatives: int = 0
    total_size: int = 0
    thumbnails_cached: int = 0
    thumbnail_bytes: int = 0
    records_by_library: Dict[str, int] = Field(default_factory=dict)
    records_by_type: Dict[str, int] = Field(default_factory=dict)
    largest: List[TopRecord] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def average_children(self) -> float:
        if not self.total_records:
            return 0.0
        return self.total_children / self.total_records


class IndexInfo(BaseModel):
    """Bookkeeping about the index as a whole."""

    total_records: int = 0
    last_rebuild_at: Optional[datetime] = None
    last_rebuild_mode: Optional[str] = None
    sorted_set_sizes: Dict[str, int] = Field(default_factory=dict)
    valid: bool = False


__all__ = [
    "RebuildMode",
    "RebuildOptions",
    "PlanAction",
    "PlanItem",
    "SortDirection",
    "RecordFailure",
    "BatchWriteResult",
    "RebuildStatistics",
    "VerifyResult",
    "IndexSummary",
    "PageResult",
    "Siblings",
    "SiblingPage",
    "TopRecord",
    "IndexStatistics",
    "IndexInfo",
]
