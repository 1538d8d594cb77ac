"""ThumbnailCacheAdapter and settings provider tests."""

from __future__ import annotations

import io
import logging

import pytest
from PIL import Image

from collindex.config.models import ThumbnailSettings
from collindex.records import AssetNotFoundError, PreviewAsset
from collindex.thumbnails import (
    PillowResizer,
    ResizedImage,
    ResizeError,
    ResizeReason,
    ThumbnailCacheAdapter,
    ThumbnailSettingsProvider,
)


def _png(width: int, height: int) -> bytes:
    image = Image.effect_noise((width, height), 64).convert("RGB")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def _adapter(asset_source, resizer=None, **settings) -> ThumbnailCacheAdapter:
    provider = ThumbnailSettingsProvider.static(ThumbnailSettings(**settings))
    return ThumbnailCacheAdapter(asset_source, provider, resizer)


class _FailingResizer:
    def resize(self, data: bytes, *, size: int, format: str, quality: int) -> ResizedImage:
        raise ResizeError("cannot decode")


class _CrashingResizer:
    def resize(self, data: bytes, *, size: int, format: str, quality: int) -> ResizedImage:
        raise RuntimeError("decoder crashed")


class _GrowingResizer:
    def resize(self, data: bytes, *, size: int, format: str, quality: int) -> ResizedImage:
        return ResizedImage(data=data * 4, width=size, height=size, format=format)


def test_dimension_threshold_is_strict(asset_source) -> None:
    """An asset exactly at the threshold is kept; one pixel more is resized."""
    adapter = _adapter(asset_source)

    at_limit = PreviewAsset(path="a.jpg", width=400, height=400, byte_size=10)
    wider = PreviewAsset(path="b.jpg", width=401, height=400, byte_size=10)
    taller = PreviewAsset(path="c.jpg", width=400, height=401, byte_size=10)

    assert adapter.resize_reason(at_limit) is None
    assert adapter.resize_reason(wider) is ResizeReason.DIMENSIONS
    assert adapter.resize_reason(taller) is ResizeReason.DIMENSIONS


def test_byte_threshold_is_strict(asset_source) -> None:
    """An asset exactly at the byte limit is kept; one byte more is resized."""
    adapter = _adapter(asset_source)

    at_limit = PreviewAsset(path="a.jpg", width=100, height=100, byte_size=500 * 1024)
    larger = PreviewAsset(path="b.jpg", width=100, height=100, byte_size=500 * 1024 + 1)

    assert adapter.resize_reason(at_limit) is None
    assert adapter.resize_reason(larger) is ResizeReason.BYTE_SIZE


def test_direct_asset_takes_precedence(asset_source) -> None:
    """Ensure direct originals are resized whatever their size."""
    adapter = _adapter(asset_source)

    asset = PreviewAsset(path="a.jpg", width=5000, height=5000, byte_size=10**7, is_direct=True)

    assert adapter.resize_reason(asset) is ResizeReason.DIRECT_ASSET


def test_configured_thresholds_are_respected(asset_source) -> None:
    """Verify configured limits replace the defaults."""
    adapter = _adapter(asset_source, max_width=100, max_height=100)

    asset = PreviewAsset(path="a.jpg", width=101, height=50, byte_size=10)

    assert adapter.resize_reason(asset) is ResizeReason.DIMENSIONS


@pytest.mark.asyncio()
async def test_small_asset_is_cached_unmodified(asset_source) -> None:
    """Ensure small derivatives are cached without calling the resizer."""
    asset_source.blobs["small.jpg"] = b"tiny-bytes"
    adapter = _adapter(asset_source, resizer=_FailingResizer())

    entry = await adapter.prepare_for_cache(
        PreviewAsset(path="small.jpg", width=120, height=80, byte_size=10)
    )

    assert entry.to_bytes() == b"tiny-bytes"
    assert entry.resized is False
    assert entry.width == 120
    assert entry.source_path == "small.jpg"


@pytest.mark.asyncio()
async def test_large_asset_is_resized_with_pillow(asset_source) -> None:
    """Verify Pillow shrinks oversized previews to the target size."""
    original = _png(800, 600)
    asset_source.blobs["big.png"] = original
    adapter = _adapter(asset_source, resizer=PillowResizer())

    entry = await adapter.prepare_for_cache(
        PreviewAsset(path="big.png", width=800, height=600, byte_size=len(original), format="png")
    )

    assert entry.resized is True
    assert entry.format == "webp"
    assert entry.content_type == "image/webp"
    assert max(entry.width, entry.height) <= 300
    assert entry.byte_size <= len(original)
    assert entry.data_url().startswith("data:image/webp;base64,")


@pytest.mark.asyncio()
async def test_resize_failure_falls_back_to_original(asset_source, caplog) -> None:
    """Ensure undecodable bytes are cached unmodified with a warning."""
    asset_source.blobs["broken.jpg"] = b"not really an image"
    adapter = _adapter(asset_source, resizer=PillowResizer())

    with caplog.at_level(logging.WARNING, logger="collindex.thumbnails.adapter"):
        entry = await adapter.prepare_for_cache(
            PreviewAsset(path="broken.jpg", width=10, height=10, byte_size=19, is_direct=True)
        )

    assert entry.to_bytes() == b"not really an image"
    assert entry.resized is False
    assert "Resize failed" in caplog.text


@pytest.mark.asyncio()
async def test_resized_output_never_exceeds_original(asset_source) -> None:
    """Verify a larger resize result is discarded for the original."""
    asset_source.blobs["direct.jpg"] = b"0123456789"
    adapter = _adapter(asset_source, resizer=_GrowingResizer())

    entry = await adapter.prepare_for_cache(
        PreviewAsset(path="direct.jpg", width=10, height=10, byte_size=10, is_direct=True)
    )

    assert entry.byte_size == 10
    assert entry.resized is False


@pytest.mark.asyncio()
async def test_missing_asset_propagates(asset_source) -> None:
    """Ensure a missing asset raises AssetNotFoundError."""
    adapter = _adapter(asset_source)

    with pytest.raises(AssetNotFoundError):
        await adapter.prepare_for_cache(PreviewAsset(path="gone.jpg", width=10, height=10))


def test_settings_provider_caches_until_ttl_expires() -> None:
    """Ensure the loader runs once per TTL window and again after invalidation."""
    now = [0.0]
    calls: list[int] = []

    def loader() -> ThumbnailSettings:
        calls.append(1)
        return ThumbnailSettings(quality=50 + len(calls))

    provider = ThumbnailSettingsProvider(loader, ttl_seconds=300, clock=lambda: now[0])

    assert provider.get().quality == 51
    now[0] = 299.0
    assert provider.get().quality == 51
    assert len(calls) == 1

    now[0] = 300.0
    assert provider.get().quality == 52

    provider.invalidate()
    assert provider.get().quality == 53
    assert len(calls) == 3


def test_pillow_resizer_rejects_garbage() -> None:
    """Verify Pillow raises ResizeError for non-image bytes."""
    with pytest.raises(ResizeError):
        PillowResizer().resize(b"garbage", size=100, format="jpeg", quality=80)


@pytest.mark.asyncio()
async def test_unexpected_resizer_error_falls_back_to_original(asset_source, caplog) -> None:
    """Any resizer exception still caches the original bytes with a warning."""
    asset_source.blobs["direct.jpg"] = b"original-bytes"
    adapter = _adapter(asset_source, resizer=_CrashingResizer())

    with caplog.at_level(logging.WARNING, logger="collindex.thumbnails.adapter"):
        entry = await adapter.prepare_for_cache(
            PreviewAsset(path="direct.jpg", width=50, height=50, byte_size=14, is_direct=True)
        )

    assert entry.to_bytes() == b"original-bytes"
    assert entry.resized is False
    assert "decoder crashed" in caplog.text


def test_pillow_resizer_wraps_decompression_bomb(monkeypatch: pytest.MonkeyPatch) -> None:
    """Oversized images surface as ``ResizeError`` rather than a Pillow exception."""
    data = _png(64, 64)
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)

    with pytest.raises(ResizeError):
        PillowResizer().resize(data, size=32, format="jpeg", quality=80)
