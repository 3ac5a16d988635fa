"""Thumbnail geometry composed from crop and resize."""

from __future__ import annotations

import math
from collections.abc import Callable
from typing import TypeVar

from .bitmap import BitmapHandle
from .transforms import crop, resize

T = TypeVar("T")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def thumbnail_size(width: int, height: int, size: int) -> tuple[int, int]:
    """Scale (width, height) so the longer edge becomes ``size``."""
    scale = size / max(width, height)
    return _round_half_up(width * scale), _round_half_up(height * scale)


def square_crop_box(width: int, height: int) -> tuple[int, int, int, int]:
    """Centered square (left, top, right, bottom) on the shorter edge."""
    left, top, right, bottom = 0, 0, width, height
    half = abs(width - height) // 2
    if width > height:
        left, right = half, half + height
    elif height > width:
        top, bottom = half, half + width
    return left, top, right, bottom


def thumbnail(handle: BitmapHandle, size: int, consumer: Callable[[BitmapHandle], T]) -> T:
    width, height = thumbnail_size(handle.width, handle.height, size)
    return resize(handle, width, height, consumer)


def cropped_thumbnail(handle: BitmapHandle, size: int, consumer: Callable[[BitmapHandle], T]) -> T:
    box = square_crop_box(handle.width, handle.height)
    return crop(handle, *box, lambda square: thumbnail(square, size, consumer))
