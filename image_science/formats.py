"""Image format tags understood by the codec layer."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path


class ImageFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    TIFF = "tiff"
    GIF = "gif"
    HEIF = "heif"

    @property
    def loader(self) -> str:
        """libvips load operation nickname, e.g. ``jpegload``."""
        return f"{self.value}load"

    @property
    def saver(self) -> str:
        return f"{self.value}save"

    @property
    def extensions(self) -> tuple[str, ...]:
        return _EXTENSIONS[self]

    @property
    def supports_icc(self) -> bool:
        return self is not ImageFormat.GIF

    @classmethod
    def from_filename(cls, path: str | os.PathLike[str]) -> ImageFormat | None:
        suffix = Path(path).suffix.lower()
        if not suffix:
            return None
        for fmt, exts in _EXTENSIONS.items():
            if suffix in exts:
                return fmt
        return None

    @classmethod
    def from_loader(cls, name: str | None) -> ImageFormat | None:
        """Map a libvips loader name (``VipsForeignLoadJpegFile``, ``pngload``) to a tag."""
        if not name:
            return None
        lowered = name.lower()
        for fmt in cls:
            if fmt.value in lowered:
                return fmt
        return None


_EXTENSIONS: dict[ImageFormat, tuple[str, ...]] = {
    ImageFormat.JPEG: (".jpg", ".jpeg", ".jpe", ".jfif"),
    ImageFormat.PNG: (".png",),
    ImageFormat.WEBP: (".webp",),
    ImageFormat.TIFF: (".tif", ".tiff"),
    ImageFormat.GIF: (".gif",),
    ImageFormat.HEIF: (".heic", ".heif", ".avif"),
}
