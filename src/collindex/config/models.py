"""Configuration models describing collindex settings."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CollindexBaseModel(BaseModel):
    """Shared configuration for collindex Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class RedisSettings(CollindexBaseModel):
    """Connection settings for the key-value store holding the index.

    Attributes:
        url: Redis connection URL.
        key_prefix: Namespace prepended to every key the engine owns.
        socket_timeout: Socket timeout in seconds for store commands.
    """

    url: str = "redis://localhost:6379/0"
    key_prefix: str = "collindex"
    socket_timeout: float = 5.0


class PrimaryStoreSettings(CollindexBaseModel):
    """Location of the primary record store read by the CLI.

    Attributes:
        records_dir: Directory holding one JSON document per record.
    """

    records_dir: str = "~/.collindex/records"


class AssetSettings(CollindexBaseModel):
    """Settings for resolving preview asset paths.

    Attributes:
        root: Optional base directory for relative asset paths.
        fallback_by_name: Whether to fall back to a same-name match when the exact path is gone.
    """

    root: Optional[str] = None
    fallback_by_name: bool = True


class RebuildSettings(CollindexBaseModel):
    """Batching and concurrency limits for rebuild runs.

    Attributes:
        batch_size: Number of records processed between memory reclamation points.
        concurrency: Maximum records in flight within one batch.
        default_mode: Mode used when a trigger does not name one.
    """

    batch_size: int = Field(default=100, gt=0)
    concurrency: int = Field(default=100, gt=0)
    default_mode: Literal["changed_only", "verify", "full", "force_rebuild_all"] = "changed_only"


class ThumbnailSettings(CollindexBaseModel):
    """Thresholds and targets for thumbnails stored in the index.

    Attributes:
        max_width: Width above which a cached asset is resized.
        max_height: Height above which a cached asset is resized.
        max_bytes: Byte size above which a cached asset is resized.
        target_size: Bounding box edge used when resizing.
        format: Encoding format for resized thumbnails.
        quality: Encoder quality for lossy formats.
        settings_ttl_seconds: How long resize targets are cached before re-reading.
    """

    max_width: int = Field(default=400, gt=0)
    max_height: int = Field(default=400, gt=0)
    max_bytes: int = Field(default=500 * 1024, gt=0)
    target_size: int = Field(default=300, gt=0)
    format: Literal["webp", "jpeg", "png"] = "webp"
    quality: int = Field(default=80, ge=1, le=100)
    settings_ttl_seconds: float = Field(default=300.0, ge=0)


class LoggingSettings(CollindexBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        file: Optional log file path; enables a rotating file handler.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    file: Optional[str] = None
    max_size_mb: int = 100
    backup_count: int = 5


class CLIOptions(CollindexBaseModel):
    """CLI behavior defaults and presentation preferences.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        summary_default: Whether commands only print summary lines by default.
        page_size: Default page size for the `page` command.
    """

    quiet_default: bool = False
    summary_default: bool = False
    page_size: int = Field(default=20, gt=0)


class CollindexConfig(CollindexBaseModel):
    """Top-level configuration struct for collindex.

    Attributes:
        redis: Key-value store connection settings.
        primary: Primary record store settings.
        assets: Preview asset resolution settings.
        rebuild: Rebuild batching settings.
        thumbnails: Thumbnail cache thresholds and resize targets.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    redis: RedisSettings = Field(default_factory=RedisSettings)
    primary: PrimaryStoreSettings = Field(default_factory=PrimaryStoreSettings)
    assets: AssetSettings = Field(default_factory=AssetSettings)
    rebuild: RebuildSettings = Field(default_factory=RebuildSettings)
    thumbnails: ThumbnailSettings = Field(default_factory=ThumbnailSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "CollindexBaseModel",
    "RedisSettings",
    "PrimaryStoreSettings",
    "AssetSettings",
    "RebuildSettings",
    "ThumbnailSettings",
    "LoggingSettings",
    "CLIOptions",
    "CollindexConfig",
]
