"""Index rebuild, consistency, and navigation engine."""

from .engine import IndexEngine
from .errors import (
    ConfigurationError,
    IndexEngineError,
    InvalidCursorError,
    RecordIndexError,
    StoreConnectivityError,
)
from .models import (
    BatchWriteResult,
    IndexInfo,
    IndexStatistics,
    IndexSummary,
    PageResult,
    PlanAction,
    PlanItem,
    RebuildMode,
    RebuildOptions,
    RebuildStatistics,
    RecordFailure,
    SiblingPage,
    Siblings,
    SortDirection,
    VerifyResult,
)
from .planner import RebuildPlanner
from .reader import NavigationReader
from .verifier import ConsistencyVerifier
from .writer import IndexWriter

__all__ = [
    "IndexEngine",
    "IndexWriter",
    "RebuildPlanner",
    "ConsistencyVerifier",
    "NavigationReader",
    "IndexEngineError",
    "ConfigurationError",
    "InvalidCursorError",
    "RecordIndexError",
    "StoreConnectivityError",
    "BatchWriteResult",
    "IndexInfo",
    "IndexStatistics",
    "IndexSummary",
    "PageResult",
    "PlanAction",
    "PlanItem",
    "RebuildMode",
    "RebuildOptions",
    "RebuildStatistics",
    "RecordFailure",
    "SiblingPage",
    "Siblings",
    "SortDirection",
    "VerifyResult",
]
