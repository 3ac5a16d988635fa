"""image_science - scoped thumbnailing and transforms on top of libvips.

Modules:
- codec: the libvips boundary (VipsCodec) and its capability interface
- error_channel: per-thread deferred codec error reporting
- bitmap: scoped bitmap ownership
- loader / transforms / thumbnail / saver: the operations
- image: the ImageScience facade
"""

from .errors import (
    AlreadyReleasedError,
    CollaboratorError,
    ImageIOError,
    ImageScienceError,
    InvalidArgumentError,
    InvalidInputError,
    OperationFailedError,
    UnsupportedFormatError,
)
from .formats import ImageFormat
from .image import VERSION, ImageScience

__version__ = VERSION

__all__ = [
    "VERSION",
    "AlreadyReleasedError",
    "CollaboratorError",
    "ImageFormat",
    "ImageIOError",
    "ImageScience",
    "ImageScienceError",
    "InvalidArgumentError",
    "InvalidInputError",
    "OperationFailedError",
    "UnsupportedFormatError",
]
