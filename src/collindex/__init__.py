"""Redis-backed navigation index for document collections.

The names most callers need are re-exported here::

    from collindex import IndexEngine, RebuildMode

    stats = await IndexEngine(client, store, assets).rebuild(RebuildMode.CHANGED_ONLY)
"""

from importlib import metadata as _metadata

from collindex.index import (
    ConfigurationError,
    IndexEngine,
    InvalidCursorError,
    RebuildMode,
    RebuildOptions,
    RebuildStatistics,
    SortDirection,
    StoreConnectivityError,
    VerifyResult,
)
from collindex.keys import IndexKeys, SortField

__all__ = [
    "__version__",
    "ConfigurationError",
    "IndexEngine",
    "IndexKeys",
    "InvalidCursorError",
    "RebuildMode",
    "RebuildOptions",
    "RebuildStatistics",
    "SortDirection",
    "SortField",
    "StoreConnectivityError",
    "VerifyResult",
]


def __getattr__(name: str) -> str:
    if name == "__version__":
        return _metadata.version("collindex")
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
