"""Scoped ownership of native codec bitmaps.

A ``BitmapHandle`` exists only while its consumer runs. When the consumer
returns or raises, the native bitmap is handed back to the codec exactly once
and the handle flips to "released"; later access raises
``AlreadyReleasedError`` instead of touching freed memory.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import numpy as np

from .codec import Codec
from .error_channel import error_channel
from .errors import AlreadyReleasedError
from .formats import ImageFormat

T = TypeVar("T")


class BitmapHandle:
    def __init__(self, codec: Codec, resource: Any, source_format: ImageFormat | None):
        self.codec = codec
        self.source_format = source_format
        self._resource = resource

    @property
    def released(self) -> bool:
        return self._resource is None

    @property
    def resource(self) -> Any:
        """The native bitmap; raises once the handle has been released."""
        if self._resource is None:
            raise AlreadyReleasedError("Bitmap has already been freed")
        return self._resource

    @property
    def width(self) -> int:
        return self.codec.width(self.resource)

    @property
    def height(self) -> int:
        return self.codec.height(self.resource)

    def pixels(self) -> np.ndarray:
        return self.codec.pixels(self.resource)

    def _release(self) -> None:
        resource = self.resource
        self._resource = None
        try:
            self.codec.release(resource)
        finally:
            error_channel.clear()

    def __repr__(self) -> str:
        state = "released" if self.released else "present"
        fmt = self.source_format.value if self.source_format else None
        return f"<BitmapHandle {state} format={fmt}>"


def _run(handle: BitmapHandle, consumer: Callable[[BitmapHandle], T]) -> T:
    try:
        return consumer(handle)
    finally:
        handle._release()


def run_loaded(
    codec: Codec, resource: Any, source_format: ImageFormat, consumer: Callable[[BitmapHandle], T]
) -> T:
    """Wrap a freshly loaded bitmap and yield it to ``consumer``."""
    return _run(BitmapHandle(codec, resource, source_format), consumer)


def run_derived(parent: BitmapHandle, resource: Any, consumer: Callable[[BitmapHandle], T]) -> T:
    """Wrap a bitmap produced from ``parent``; it inherits codec and format."""
    return _run(BitmapHandle(parent.codec, resource, parent.source_format), consumer)
