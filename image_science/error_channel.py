"""Per-thread deferred error reporting for the codec engine.

The codec reports failures through one global callback that is not tied to
the call that triggered it. The callback runs on the thread executing the
codec call, so the message is parked in thread-local storage and read back by
that thread once the call has returned and nothing it allocated is left
unowned. Only then is it raised.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, NoReturn

from .errors import CollaboratorError
from .logger import get_logger

if TYPE_CHECKING:
    from .codec import Codec
    from .formats import ImageFormat

_logger = get_logger("error_channel")

GENERIC_MESSAGE = "libvips error"


class ErrorChannel:
    def __init__(self) -> None:
        self._local = threading.local()

    def record(self, message: str) -> None:
        # Overwrites any unread message of this thread.
        self._local.message = message

    def pending(self) -> str | None:
        return getattr(self._local, "message", None)

    def take(self) -> str | None:
        message = self.pending()
        self._local.message = None
        return message

    def clear(self) -> None:
        if self.pending() is not None:
            self._local.message = None

    def raise_pending(self, error_type: type[CollaboratorError] = CollaboratorError) -> NoReturn:
        """Raise the calling thread's pending codec message and clear it."""
        message = self.take()
        raise error_type(message or GENERIC_MESSAGE)

    def attach(self, codec: Codec) -> None:
        codec.on_error(self._on_codec_error)

    def _on_codec_error(self, fmt: ImageFormat | None, message: str) -> None:
        name = fmt.value if fmt is not None else "???"
        _logger.debug("codec reported error for %s: %s", name, message)
        self.record(f"{GENERIC_MESSAGE} for type {name}: {message}")


error_channel = ErrorChannel()
