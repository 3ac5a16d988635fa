from __future__ import annotations

import threading

import pytest

from image_science.error_channel import error_channel
from image_science.errors import (
    CollaboratorError,
    ImageIOError,
    InvalidInputError,
    UnsupportedFormatError,
)
from image_science.formats import ImageFormat
from image_science.loader import open_from_memory, open_from_path


def _size(handle):
    return handle.width, handle.height, handle.source_format


def test_open_from_path_yields_sniffed_image(fake_codec):
    fake_codec.add_file("photo.dat", 1200, 800, fmt=ImageFormat.PNG)

    assert open_from_path("photo.dat", _size, fake_codec) == (1200, 800, ImageFormat.PNG)
    assert fake_codec.live_bitmaps() == []


def test_open_from_path_falls_back_to_filename(fake_codec):
    fake_codec.add_file("photo.jpg", 10, 20, fmt=None)

    assert open_from_path("photo.jpg", _size, fake_codec) == (10, 20, ImageFormat.JPEG)


def test_jpeg_decode_uses_strict_flags(fake_codec):
    fake_codec.add_file("photo.jpg", 10, 20)
    open_from_path("photo.jpg", _size, fake_codec)

    decode = [c for c in fake_codec.calls if c[0] == "decode_path"][0]
    assert decode[3] == {"fail_on": "error"}


def test_unknown_format_is_rejected(fake_codec):
    fake_codec.add_file("notes.txt", 10, 20, fmt=None)

    with pytest.raises(UnsupportedFormatError, match="Unknown file format"):
        open_from_path("notes.txt", _size, fake_codec)


def test_unreadable_format_is_rejected_before_decoding(fake_codec):
    fake_codec.add_file("anim.gif", 10, 20, fmt=ImageFormat.GIF)
    fake_codec.readable.discard(ImageFormat.GIF)

    with pytest.raises(UnsupportedFormatError):
        open_from_path("anim.gif", _size, fake_codec)
    assert not [c for c in fake_codec.calls if c[0] == "decode_path"]


def test_decode_failure_surfaces_codec_message(fake_codec):
    fake_codec.add_file("broken.jpg", 10, 20)
    fake_codec.fail["decode"] = "Premature end of JPEG file"

    with pytest.raises(CollaboratorError, match="type jpeg: Premature end of JPEG file"):
        open_from_path("broken.jpg", _size, fake_codec)
    assert error_channel.pending() is None


@pytest.mark.parametrize(
    ("orientation", "angle", "expected"),
    [(6, 270, (20, 40)), (3, 180, (40, 20)), (8, 90, (20, 40))],
)
def test_orientation_is_normalized(fake_codec, orientation, angle, expected):
    fake_codec.add_file("exif.jpg", 40, 20, orientation=orientation)

    size = open_from_path("exif.jpg", lambda h: (h.width, h.height), fake_codec)

    assert size == expected
    assert ("rotate", angle) in fake_codec.calls
    # The decoded original is released; the rotated copy is upright.
    original, rotated = fake_codec.bitmaps
    assert original.released and rotated.released
    assert rotated.orientation is None


@pytest.mark.parametrize("orientation", [None, 1, 2, 5])
def test_other_orientations_get_a_fresh_copy(fake_codec, orientation):
    fake_codec.add_file("plain.jpg", 40, 20, orientation=orientation)

    seen = open_from_path("plain.jpg", lambda h: h.resource, fake_codec)

    original, copy = fake_codec.bitmaps
    assert seen is copy
    assert ("clone",) in fake_codec.calls
    assert original.released and copy.released


def test_orientation_failure_releases_original(fake_codec):
    fake_codec.add_file("exif.jpg", 40, 20, orientation=6)
    fake_codec.fail["rotate"] = "out of memory"

    with pytest.raises(CollaboratorError, match="out of memory"):
        open_from_path("exif.jpg", _size, fake_codec)
    assert fake_codec.live_bitmaps() == []


def test_open_from_memory(fake_codec):
    fake_codec.add_blob(b"\xff\xd8jpeg", 64, 48)

    assert open_from_memory(b"\xff\xd8jpeg", _size, fake_codec) == (64, 48, ImageFormat.JPEG)
    assert open_from_memory(bytearray(b"\xff\xd8jpeg"), _size, fake_codec) == (64, 48, ImageFormat.JPEG)
    assert all(s.closed for s in fake_codec.streams)


@pytest.mark.parametrize("data", ["a string", 42, None, ["bytes"]])
def test_open_from_memory_rejects_non_bytes(fake_codec, data):
    with pytest.raises(InvalidInputError):
        open_from_memory(data, _size, fake_codec)
    assert fake_codec.calls == []


def test_open_from_memory_stream_failure(fake_codec):
    fake_codec.fail["open_memory"] = "no memory"

    with pytest.raises(ImageIOError, match="Unable to open image_data"):
        open_from_memory(b"data", _size, fake_codec)
    assert error_channel.pending() is None


def test_open_from_memory_unknown_format_closes_stream(fake_codec):
    with pytest.raises(UnsupportedFormatError):
        open_from_memory(b"garbage", _size, fake_codec)
    assert [s.closed for s in fake_codec.streams] == [True]


def test_open_from_memory_decode_failure_closes_stream(fake_codec):
    fake_codec.add_blob(b"png!", 5, 5, fmt=ImageFormat.PNG)
    fake_codec.fail["decode"] = "bad IHDR"

    with pytest.raises(CollaboratorError, match="type png: bad IHDR"):
        open_from_memory(b"png!", _size, fake_codec)
    assert [s.closed for s in fake_codec.streams] == [True]


def test_concurrent_failures_do_not_cross_threads(fake_codec):
    fake_codec.add_file("a.jpg", 10, 10)
    barrier = threading.Barrier(2)

    def failure_message() -> str:
        message = f"failed in {threading.current_thread().name}"
        # Hold until the other thread has reported its own failure too.
        barrier.wait()
        return message

    fake_codec.fail["decode"] = failure_message
    errors: dict[str, str] = {}

    def worker() -> None:
        try:
            open_from_path("a.jpg", _size, fake_codec)
        except CollaboratorError as exc:
            errors[threading.current_thread().name] = str(exc)

    threads = [threading.Thread(target=worker, name=name) for name in ("thread-a", "thread-b")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors["thread-a"].endswith("failed in thread-a")
    assert errors["thread-b"].endswith("failed in thread-b")


def test_orientation_cleanup_failure_releases_rotated_copy(fake_codec, monkeypatch):
    fake_codec.add_file("exif.jpg", 40, 20, orientation=6)

    def broken_clear(bitmap):
        raise MemoryError("metadata update failed")

    monkeypatch.setattr(fake_codec, "clear_orientation", broken_clear)

    with pytest.raises(MemoryError):
        open_from_path("exif.jpg", _size, fake_codec)
    assert len(fake_codec.bitmaps) == 2
    assert fake_codec.live_bitmaps() == []
