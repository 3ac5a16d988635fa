"""Write a bitmap to disk, choosing the format from the file name."""

from __future__ import annotations

import os
from typing import Any

from image_science.logger import get_logger

from .bitmap import BitmapHandle
from .error_channel import error_channel
from .errors import UnsupportedFormatError
from .formats import ImageFormat
from .settings_manager import get_settings

_logger = get_logger("saver")

_JPEG_BITS_PER_PIXEL = 24


def _save_flags(fmt: ImageFormat) -> dict[str, Any]:
    if fmt is ImageFormat.JPEG:
        return {"Q": get_settings().jpeg_save_quality}
    return {}


def save(handle: BitmapHandle, path: str | os.PathLike[str]) -> bool:
    """Save to ``path``; the extension picks the format, else the source format."""
    codec = handle.codec
    path = os.fspath(path)
    fmt = codec.format_from_filename(path) or handle.source_format
    if fmt is None or not codec.supports_writing(fmt):
        raise UnsupportedFormatError(f"Unknown file format: {path}")

    bitmap = handle.resource
    if fmt is ImageFormat.PNG:
        codec.destroy_color_profile(bitmap)

    converted = None
    if fmt is ImageFormat.JPEG and codec.bits_per_pixel(bitmap) != _JPEG_BITS_PER_PIXEL:
        converted = codec.convert_to_24bits(bitmap)
        if converted is None:
            error_channel.raise_pending()

    _logger.debug("save: path=%s format=%s", path, fmt.value)
    try:
        ok = codec.encode(fmt, bitmap if converted is None else converted, path, _save_flags(fmt))
    finally:
        if converted is not None:
            codec.release(converted)
    if not ok:
        error_channel.raise_pending()
    return True
