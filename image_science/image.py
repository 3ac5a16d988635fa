"""Caller-facing image API.

Every method that produces a new bitmap takes a consumer callable. The image
handed to the consumer is only valid while the consumer runs; afterwards its
bitmap is released and any access raises ``AlreadyReleasedError``.

Usage:
    from image_science import ImageScience

    def make_thumb(image):
        return image.thumbnail(300, lambda thumb: thumb.save("thumb.jpg"))

    ImageScience.with_image("photo.jpg", make_thumb)
"""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any, TypeVar

import numpy as np

from . import loader, saver, thumbnail, transforms
from .bitmap import BitmapHandle
from .codec import Codec
from .formats import ImageFormat

VERSION = "1.3.2"

T = TypeVar("T")


class ImageScience:
    VERSION = VERSION

    def __init__(self, handle: BitmapHandle):
        self._handle = handle

    # ---- loading ---------------------------------------------------
    @classmethod
    def with_image(
        cls, path: str | os.PathLike[str], consumer: Callable[[ImageScience], T], codec: Codec | None = None
    ) -> T:
        """Open the image at ``path`` and pass it to ``consumer``."""
        return loader.open_from_path(path, cls._wrap(consumer), codec)

    @classmethod
    def with_image_from_memory(
        cls, data: Any, consumer: Callable[[ImageScience], T], codec: Codec | None = None
    ) -> T:
        """Open an image from encoded ``data`` bytes and pass it to ``consumer``."""
        return loader.open_from_memory(data, cls._wrap(consumer), codec)

    @classmethod
    def _wrap(cls, consumer: Callable[[ImageScience], T]) -> Callable[[BitmapHandle], T]:
        return lambda handle: consumer(cls(handle))

    # ---- properties ------------------------------------------------
    @property
    def width(self) -> int:
        return self._handle.width

    @property
    def height(self) -> int:
        return self._handle.height

    @property
    def file_type(self) -> ImageFormat | None:
        return self._handle.source_format

    def pixels(self) -> np.ndarray:
        return self._handle.pixels()

    # ---- transforms ------------------------------------------------
    def with_crop(self, left: int, top: int, right: int, bottom: int, consumer: Callable[[ImageScience], T]) -> T:
        return transforms.crop(self._handle, left, top, right, bottom, self._wrap(consumer))

    def resize(self, width: int, height: int, consumer: Callable[[ImageScience], T]) -> T:
        """Resize to ``width`` x ``height`` with a bicubic kernel."""
        return transforms.resize(self._handle, width, height, self._wrap(consumer))

    def rotate(self, angle: int, consumer: Callable[[ImageScience], T]) -> T:
        """Rotate counter-clockwise by ``angle``, a multiple of 45 degrees."""
        return transforms.rotate(self._handle, angle, self._wrap(consumer))

    def thumbnail(self, size: int, consumer: Callable[[ImageScience], T]) -> T:
        """Proportional thumbnail whose longest edge is ``size``."""
        return thumbnail.thumbnail(self._handle, size, self._wrap(consumer))

    def cropped_thumbnail(self, size: int, consumer: Callable[[ImageScience], T]) -> T:
        """Square ``size`` x ``size`` thumbnail, cropping the longer edge."""
        return thumbnail.cropped_thumbnail(self._handle, size, self._wrap(consumer))

    def save(self, path: str | os.PathLike[str]) -> bool:
        return saver.save(self._handle, path)

    def __repr__(self) -> str:
        if self._handle.released:
            return "<ImageScience released>"
        return f"<ImageScience {self.width}x{self.height} {self.file_type.value if self.file_type else '?'}>"
