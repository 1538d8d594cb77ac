"""Pillow-based thumbnail resizing."""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Protocol

from PIL import Image, ImageOps, UnidentifiedImageError

_PIL_FORMATS = {"jpeg": "JPEG", "jpg": "JPEG", "png": "PNG", "webp": "WEBP"}


class ResizeError(Exception):
    """Raised when an image cannot be decoded or re-encoded."""


@dataclass(slots=True)
class ResizedImage:
    """Encoded output of a resize.

    Attributes:
        data: Encoded image bytes.
        width: Output pixel width.
        height: Output pixel height.
        format: Output format name.
    """

    data: bytes
    width: int
    height: int
    format: str


class ImageResizer(Protocol):
    def resize(self, data: bytes, *, size: int, format: str, quality: int) -> ResizedImage: ...


class PillowResizer:
    """Shrink images to fit a square bounding box and re-encode them."""

    def resize(self, data: bytes, *, size: int, format: str, quality: int) -> ResizedImage:
        """Return ``data`` scaled to fit within ``size`` x ``size``.

        Args:
            data: Source image bytes.
            size: Bounding box edge in pixels; aspect ratio is preserved.
            format: Output format (``webp``, ``jpeg`` or ``png``).
            quality: Encoder quality for lossy formats.

        Returns:
            ResizedImage: Encoded output and its dimensions.

        Raises:
            ResizeError: If the source cannot be decoded or the output encoded.
        """
        pil_format = _PIL_FORMATS.get(format.lower())
        if pil_format is None:
            raise ResizeError(f"Unsupported thumbnail format: {format}")

        try:
            with Image.open(io.BytesIO(data)) as source:
                image = ImageOps.exif_transpose(source)
                image.thumbnail((size, size), Image.Resampling.LANCZOS)
                if pil_format == "JPEG" and image.mode not in ("RGB", "L"):
                    image = image.convert("RGB")
                elif image.mode not in ("RGB", "RGBA", "L", "LA"):
                    image = image.convert("RGBA")
                buffer = io.BytesIO()
                save_kwargs: dict[str, object] = {}
                if pil_format in ("JPEG", "WEBP"):
                    save_kwargs["quality"] = quality
                if pil_format == "PNG":
                    save_kwargs["optimize"] = True
                image.save(buffer, format=pil_format, **save_kwargs)
                width, height = image.size
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise ResizeError(f"Unable to resize image: {exc}") from exc

        return ResizedImage(
            data=buffer.getvalue(), width=width, height=height, format=format.lower()
        )


__all__ = ["ImageResizer", "PillowResizer", "ResizeError", "ResizedImage"]
