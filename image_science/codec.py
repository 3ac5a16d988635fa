"""Codec engine boundary.

``Codec`` is the narrow capability interface the rest of the package talks to.
``VipsCodec`` implements it on top of libvips through pyvips. Pixel decoding,
encoding, resampling and rotation all happen inside libvips; this module only
adapts calls and turns ``pyvips.Error`` into reports on the registered error
callbacks, returning ``None``/``False`` to the caller like the underlying C
library would.
"""

from __future__ import annotations

import contextlib
import os
import threading
from collections.abc import Callable, Iterator
from typing import Any, Protocol

import numpy as np

from image_science.logger import get_logger

from .error_channel import error_channel
from .formats import ImageFormat
from .settings_manager import SettingsManager, get_settings

_logger = get_logger("codec")

ErrorCallback = Callable[[ImageFormat | None, str], None]

_ICC_FIELD = "icc-profile-data"
_ORIENTATION_FIELD = "orientation"

# libvips band format -> (bits per sample, numpy dtype)
_BAND_FORMATS: dict[str, tuple[int, str]] = {
    "uchar": (8, "uint8"),
    "char": (8, "int8"),
    "ushort": (16, "uint16"),
    "short": (16, "int16"),
    "uint": (32, "uint32"),
    "int": (32, "int32"),
    "float": (32, "float32"),
    "double": (64, "float64"),
    "complex": (64, "complex64"),
    "dpcomplex": (128, "complex128"),
}


class Codec(Protocol):
    def on_error(self, callback: ErrorCallback) -> None: ...

    def sniff_path(self, path: str) -> ImageFormat | None: ...

    def format_from_filename(self, path: str) -> ImageFormat | None: ...

    def sniff_stream(self, stream: Any) -> ImageFormat | None: ...

    def supports_reading(self, fmt: ImageFormat) -> bool: ...

    def supports_writing(self, fmt: ImageFormat) -> bool: ...

    def supports_icc_profiles(self, fmt: ImageFormat) -> bool: ...

    def decode_path(self, fmt: ImageFormat, path: str, flags: dict[str, Any]) -> Any | None: ...

    def open_memory(self, data: bytes) -> Any | None: ...

    def decode_stream(self, fmt: ImageFormat, stream: Any, flags: dict[str, Any]) -> Any | None: ...

    def close_memory(self, stream: Any) -> None: ...

    def encode(self, fmt: ImageFormat, bitmap: Any, path: str, flags: dict[str, Any]) -> bool: ...

    def width(self, bitmap: Any) -> int: ...

    def height(self, bitmap: Any) -> int: ...

    def bits_per_pixel(self, bitmap: Any) -> int: ...

    def pixels(self, bitmap: Any) -> np.ndarray: ...

    def clone(self, bitmap: Any) -> Any | None: ...

    def copy_region(self, bitmap: Any, left: int, top: int, right: int, bottom: int) -> Any | None: ...

    def rescale(self, bitmap: Any, width: int, height: int, kernel: str) -> Any | None: ...

    def rotate(self, bitmap: Any, degrees: int) -> Any | None: ...

    def convert_to_24bits(self, bitmap: Any) -> Any | None: ...

    def read_orientation(self, bitmap: Any) -> int | None: ...

    def clear_orientation(self, bitmap: Any) -> None: ...

    def read_color_profile(self, bitmap: Any) -> bytes | None: ...

    def write_color_profile(self, bitmap: Any, data: bytes) -> None: ...

    def destroy_color_profile(self, bitmap: Any) -> None: ...

    def release(self, bitmap: Any) -> None: ...


_pyvips: Any | None = None

# libvips keeps one error buffer for the whole process. Calls that can fail
# hold this lock until their error text has been read back, so a message
# always belongs to the call that produced it.
_libvips_lock = threading.RLock()


def _get_pyvips_module() -> Any:
    global _pyvips
    if _pyvips is None:
        import pyvips  # type: ignore

        _pyvips = pyvips
    return _pyvips


class MemoryStream:
    """A libvips memory source over caller-owned bytes."""

    def __init__(self, source: Any, data: bytes):
        self.source = source
        # The source reads from this buffer; keep it alive while open.
        self._data = data

    @property
    def closed(self) -> bool:
        return self.source is None

    def close(self) -> None:
        self.source = None
        self._data = b""


class VipsCodec:
    """libvips implementation of the ``Codec`` interface."""

    def __init__(self, settings: SettingsManager | None = None):
        self._settings = settings or get_settings()
        self._callbacks: list[ErrorCallback] = []
        pyvips = _get_pyvips_module()
        max_ops, max_mem, max_files = self._settings.cache_limits()
        # Configure pyvips caches to avoid memory growth
        with contextlib.suppress(Exception):
            pyvips.cache_set_max(max_ops)
            pyvips.cache_set_max_mem(max_mem)
            pyvips.cache_set_max_files(max_files)

    # ---- error reporting -------------------------------------------
    def on_error(self, callback: ErrorCallback) -> None:
        self._callbacks.append(callback)

    def _report(self, fmt: ImageFormat | None, exc: Exception) -> None:
        parts = [getattr(exc, "message", None), getattr(exc, "detail", None)]
        message = " ".join(str(p).strip() for p in parts if p and str(p).strip()) or str(exc)
        _logger.debug("libvips failure (%s): %s", fmt.value if fmt else "???", message)
        for callback in list(self._callbacks):
            callback(fmt, message)

    @contextlib.contextmanager
    def _reporting(self, fmt: ImageFormat | None = None) -> Iterator[None]:
        """Run a libvips call; a ``pyvips.Error`` is reported and suppressed."""
        pyvips = _get_pyvips_module()
        with _libvips_lock:
            # Drop text left behind by calls that failed without raising.
            pyvips.vips_lib.vips_error_clear()
            try:
                yield
            except pyvips.Error as exc:
                self._report(fmt, exc)

    # ---- formats ---------------------------------------------------
    def sniff_path(self, path: str) -> ImageFormat | None:
        pyvips = _get_pyvips_module()
        with _libvips_lock:
            pointer = pyvips.vips_lib.vips_foreign_find_load(os.fsencode(path))
            name = None if pointer == pyvips.ffi.NULL else pyvips.ffi.string(pointer).decode()
            pyvips.vips_lib.vips_error_clear()
        return ImageFormat.from_loader(name)

    def format_from_filename(self, path: str) -> ImageFormat | None:
        return ImageFormat.from_filename(path)

    def sniff_stream(self, stream: MemoryStream) -> ImageFormat | None:
        pyvips = _get_pyvips_module()
        with _libvips_lock:
            pointer = pyvips.vips_lib.vips_foreign_find_load_source(stream.source.pointer)
            name = None if pointer == pyvips.ffi.NULL else pyvips.ffi.string(pointer).decode()
            pyvips.vips_lib.vips_error_clear()
        return ImageFormat.from_loader(name)

    def supports_reading(self, fmt: ImageFormat) -> bool:
        pyvips = _get_pyvips_module()
        return pyvips.type_find("VipsForeignLoad", fmt.loader) != 0

    def supports_writing(self, fmt: ImageFormat) -> bool:
        pyvips = _get_pyvips_module()
        return pyvips.type_find("VipsForeignSave", fmt.saver) != 0

    def supports_icc_profiles(self, fmt: ImageFormat) -> bool:
        return fmt.supports_icc

    # ---- decode / encode -------------------------------------------
    def decode_path(self, fmt: ImageFormat, path: str, flags: dict[str, Any]) -> Any | None:
        pyvips = _get_pyvips_module()
        with self._reporting(fmt):
            image = pyvips.Operation.call(fmt.loader, os.fspath(path), **flags)
            return image.copy_memory()
        return None

    def open_memory(self, data: bytes) -> MemoryStream | None:
        pyvips = _get_pyvips_module()
        with self._reporting():
            return MemoryStream(pyvips.Source.new_from_memory(data), data)
        return None

    def decode_stream(self, fmt: ImageFormat, stream: MemoryStream, flags: dict[str, Any]) -> Any | None:
        pyvips = _get_pyvips_module()
        with self._reporting(fmt):
            image = pyvips.Operation.call(f"{fmt.loader}_source", stream.source, **flags)
            return image.copy_memory()
        return None

    def close_memory(self, stream: MemoryStream) -> None:
        stream.close()

    def encode(self, fmt: ImageFormat, bitmap: Any, path: str, flags: dict[str, Any]) -> bool:
        pyvips = _get_pyvips_module()
        with self._reporting(fmt):
            pyvips.Operation.call(fmt.saver, bitmap, os.fspath(path), **flags)
            return True
        return False

    # ---- pixel access ----------------------------------------------
    def width(self, bitmap: Any) -> int:
        return int(bitmap.width)

    def height(self, bitmap: Any) -> int:
        return int(bitmap.height)

    def bits_per_pixel(self, bitmap: Any) -> int:
        bits, _ = _BAND_FORMATS.get(bitmap.format, (8, "uint8"))
        return int(bitmap.bands) * bits

    def pixels(self, bitmap: Any) -> np.ndarray:
        """Copy the pixels out as a ``height x width x bands`` array."""
        _, dtype = _BAND_FORMATS.get(bitmap.format, (8, "uint8"))
        mem = bitmap.write_to_memory()
        array = np.frombuffer(mem, dtype=np.dtype(dtype)).reshape(bitmap.height, bitmap.width, bitmap.bands)
        return array.copy()

    # ---- transforms ------------------------------------------------
    def clone(self, bitmap: Any) -> Any | None:
        with self._reporting():
            return bitmap.copy().copy_memory()
        return None

    def copy_region(self, bitmap: Any, left: int, top: int, right: int, bottom: int) -> Any | None:
        with self._reporting():
            return bitmap.crop(left, top, right - left, bottom - top).copy_memory()
        return None

    def rescale(self, bitmap: Any, width: int, height: int, kernel: str) -> Any | None:
        with self._reporting():
            image = bitmap.resize(width / bitmap.width, vscale=height / bitmap.height, kernel=kernel)
            return image.copy_memory()
        return None

    def rotate(self, bitmap: Any, degrees: int) -> Any | None:
        """Rotate counter-clockwise by ``degrees``."""
        # libvips angles are clockwise.
        clockwise = (-int(degrees)) % 360
        with self._reporting():
            if clockwise % 90 == 0:
                image = bitmap.rot(f"d{clockwise}")
            else:
                image = bitmap.rotate(clockwise)
            return image.copy_memory()
        return None

    def convert_to_24bits(self, bitmap: Any) -> Any | None:
        with self._reporting():
            image = bitmap.colourspace("srgb")
            if image.hasalpha():
                image = image.flatten(background=[255, 255, 255])
            if image.bands > 3:
                image = image.extract_band(0, n=3)
            if image.format != "uchar":
                image = image.cast("uchar")
            return image.copy_memory()
        return None

    # ---- metadata --------------------------------------------------
    def read_orientation(self, bitmap: Any) -> int | None:
        if bitmap.get_typeof(_ORIENTATION_FIELD) == 0:
            return None
        return int(bitmap.get(_ORIENTATION_FIELD))

    def clear_orientation(self, bitmap: Any) -> None:
        # Savers write orientation 1 when the field is gone.
        for field in bitmap.get_fields():
            if field == _ORIENTATION_FIELD or (field.startswith("exif-") and field.endswith("-Orientation")):
                bitmap.remove(field)

    def read_color_profile(self, bitmap: Any) -> bytes | None:
        if bitmap.get_typeof(_ICC_FIELD) == 0:
            return None
        return bytes(bitmap.get(_ICC_FIELD))

    def write_color_profile(self, bitmap: Any, data: bytes) -> None:
        pyvips = _get_pyvips_module()
        bitmap.set_type(pyvips.GValue.blob_type, _ICC_FIELD, data)

    def destroy_color_profile(self, bitmap: Any) -> None:
        if bitmap.get_typeof(_ICC_FIELD) != 0:
            bitmap.remove(_ICC_FIELD)

    def release(self, bitmap: Any) -> None:
        # Dropping the last reference frees the pixels; also drop any
        # operation cache entries that still point at them.
        bitmap.invalidate()


_codec: VipsCodec | None = None
_codec_lock = threading.Lock()


def get_codec() -> VipsCodec:
    """Process-wide libvips codec with the error channel attached."""
    global _codec
    with _codec_lock:
        if _codec is None:
            codec = VipsCodec()
            error_channel.attach(codec)
            _codec = codec
            _logger.debug("libvips codec initialized")
        return _codec
