"""Open images from disk or memory and yield them as scoped bitmaps."""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any, TypeVar

from image_science.logger import get_logger

from .bitmap import BitmapHandle, run_loaded
from .codec import Codec, get_codec
from .error_channel import error_channel
from .errors import ImageIOError, InvalidInputError, UnsupportedFormatError
from .formats import ImageFormat
from .settings_manager import get_settings

_logger = get_logger("loader")

T = TypeVar("T")

# EXIF orientation -> counter-clockwise rotation that makes the pixels upright
_ORIENTATION_ROTATIONS = {
    6: 270,
    3: 180,
    8: 90,
}


def _decode_flags(fmt: ImageFormat) -> dict[str, Any]:
    if fmt is ImageFormat.JPEG:
        return {"fail_on": get_settings().jpeg_fail_on}
    return {}


def _normalize_orientation(codec: Codec, bitmap: Any) -> Any | None:
    """Return an upright copy of ``bitmap`` and release the original.

    The result is always a new bitmap, even when no rotation is needed.
    """
    orientation = codec.read_orientation(bitmap)
    angle = _ORIENTATION_ROTATIONS.get(orientation or 0)
    try:
        if angle:
            _logger.debug("orientation %s: rotating %s degrees", orientation, angle)
            result = codec.rotate(bitmap, angle)
            if result is not None:
                try:
                    codec.clear_orientation(result)
                except BaseException:
                    codec.release(result)
                    raise
        else:
            result = codec.clone(bitmap)
    finally:
        codec.release(bitmap)
    return result


def _yield_decoded(
    codec: Codec, bitmap: Any | None, fmt: ImageFormat, consumer: Callable[[BitmapHandle], T]
) -> T:
    if bitmap is None:
        error_channel.raise_pending()
    bitmap = _normalize_orientation(codec, bitmap)
    if bitmap is None:
        error_channel.raise_pending()
    return run_loaded(codec, bitmap, fmt, consumer)


def open_from_path(
    path: str | os.PathLike[str], consumer: Callable[[BitmapHandle], T], codec: Codec | None = None
) -> T:
    codec = codec or get_codec()
    path = os.fspath(path)

    fmt = codec.sniff_path(path)
    if fmt is None:
        fmt = codec.format_from_filename(path)
    if fmt is None or not codec.supports_reading(fmt):
        raise UnsupportedFormatError(f"Unknown file format: {path}")

    _logger.debug("load: path=%s format=%s", path, fmt.value)
    bitmap = codec.decode_path(fmt, path, _decode_flags(fmt))
    return _yield_decoded(codec, bitmap, fmt, consumer)


def open_from_memory(data: Any, consumer: Callable[[BitmapHandle], T], codec: Codec | None = None) -> T:
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise InvalidInputError(f"image data must be bytes, not {type(data).__name__}")
    codec = codec or get_codec()

    stream = codec.open_memory(bytes(data))
    if stream is None:
        detail = error_channel.take()
        message = "Unable to open image_data"
        raise ImageIOError(f"{message}: {detail}" if detail else message)

    try:
        fmt = codec.sniff_stream(stream)
        if fmt is None or not codec.supports_reading(fmt):
            raise UnsupportedFormatError("Unknown file format")
        _logger.debug("load: %d bytes format=%s", len(data), fmt.value)
        bitmap = codec.decode_stream(fmt, stream, _decode_flags(fmt))
    finally:
        codec.close_memory(stream)

    return _yield_decoded(codec, bitmap, fmt, consumer)
