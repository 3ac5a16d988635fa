"""Crop, resize and rotate.

Each operation validates its arguments before the codec is touched, delegates
the pixel work, carries the colour profile over to the new bitmap and yields
it through a derived scope.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

from .bitmap import BitmapHandle, run_derived
from .error_channel import error_channel
from .errors import InvalidArgumentError, OperationFailedError
from .formats import ImageFormat
from .settings_manager import get_settings

T = TypeVar("T")


def copy_color_profile(handle: BitmapHandle, source: Any, target: Any) -> None:
    """Copy the ICC profile of ``source`` onto ``target`` when the format allows it.

    PNG sources are skipped: PNG output drops profiles at save time anyway.
    """
    fmt = handle.source_format
    if fmt is None or fmt is ImageFormat.PNG or not handle.codec.supports_icc_profiles(fmt):
        return
    profile = handle.codec.read_color_profile(source)
    if profile:
        handle.codec.write_color_profile(target, profile)


def _yield_result(handle: BitmapHandle, source: Any, result: Any, consumer: Callable[[BitmapHandle], T]) -> T:
    # The derived scope owns result before anything else can fail.
    def scoped(derived: BitmapHandle) -> T:
        copy_color_profile(handle, source, derived.resource)
        return consumer(derived)

    return run_derived(handle, result, scoped)


def crop(
    handle: BitmapHandle, left: int, top: int, right: int, bottom: int, consumer: Callable[[BitmapHandle], T]
) -> T:
    source = handle.resource
    width, height = handle.width, handle.height
    if not (0 <= left < right <= width and 0 <= top < bottom <= height):
        raise InvalidArgumentError(
            f"Crop box ({left}, {top}, {right}, {bottom}) outside of {width}x{height} image"
        )

    copy = handle.codec.copy_region(source, left, top, right, bottom)
    if copy is None:
        error_channel.raise_pending(OperationFailedError)

    return _yield_result(handle, source, copy, consumer)


def resize(handle: BitmapHandle, width: int, height: int, consumer: Callable[[BitmapHandle], T]) -> T:
    if width <= 0:
        raise InvalidArgumentError("Width <= 0")
    if height <= 0:
        raise InvalidArgumentError("Height <= 0")
    source = handle.resource

    image = handle.codec.rescale(source, int(width), int(height), get_settings().resize_kernel)
    if image is None:
        error_channel.raise_pending(OperationFailedError)

    return _yield_result(handle, source, image, consumer)


def rotate(handle: BitmapHandle, angle: int, consumer: Callable[[BitmapHandle], T]) -> T:
    """Rotate counter-clockwise by a multiple of 45 degrees."""
    if angle % 45 != 0:
        raise InvalidArgumentError("Angle must be 45 degree skew")
    source = handle.resource

    image = handle.codec.rotate(source, int(angle))
    if image is None:
        error_channel.raise_pending(OperationFailedError)

    return _yield_result(handle, source, image, consumer)
