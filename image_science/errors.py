"""Exceptions raised by image_science.

Every failure surfaced to callers is one of these types. Most also derive
from the matching builtin so generic ``except ValueError``/``except OSError``
handlers keep working.
"""


class ImageScienceError(Exception):
    """Base exception for all image_science errors."""


class UnsupportedFormatError(ImageScienceError, TypeError):
    """The image format is unknown, or cannot be read or written."""


class InvalidArgumentError(ImageScienceError, ValueError):
    """A transform argument is out of range (size, angle, crop box)."""


class InvalidInputError(ImageScienceError, TypeError):
    """Input handed to the memory loader is not byte data."""


class ImageIOError(ImageScienceError, OSError):
    """The codec could not open a stream over the input."""


class CollaboratorError(ImageScienceError, RuntimeError):
    """Error reported by the codec engine, carrying its message verbatim."""


class OperationFailedError(CollaboratorError):
    """The codec produced no bitmap for an operation that should yield one."""


class AlreadyReleasedError(ImageScienceError, TypeError):
    """A bitmap was accessed after its scope released it."""
