from __future__ import annotations

import pytest

from image_science.bitmap import run_loaded
from image_science.errors import CollaboratorError, UnsupportedFormatError
from image_science.formats import ImageFormat
from image_science.saver import save
from image_science.transforms import crop
from tests.helpers.fake_codec import FakeBitmap


def _save_as(codec, path, fmt=ImageFormat.JPEG, **bitmap):
    params = {"width": 40, "height": 30, **bitmap}
    return run_loaded(codec, FakeBitmap(**params), fmt, lambda h: save(h, path))


def test_save_uses_extension_format(fake_codec):
    assert _save_as(fake_codec, "out.png") is True

    saved = fake_codec.saved["out.png"]
    assert saved.fmt is ImageFormat.PNG
    assert saved.flags == {}


def test_save_falls_back_to_source_format(fake_codec):
    _save_as(fake_codec, "out.unknownext", fmt=ImageFormat.TIFF)

    assert fake_codec.saved["out.unknownext"].fmt is ImageFormat.TIFF


def test_save_rejects_unwritable_format(fake_codec):
    fake_codec.writable.discard(ImageFormat.GIF)

    with pytest.raises(UnsupportedFormatError):
        _save_as(fake_codec, "out.gif")
    assert fake_codec.saved == {}


def test_jpeg_saved_with_top_quality(fake_codec):
    _save_as(fake_codec, "out.jpg")

    assert fake_codec.saved["out.jpg"].flags == {"Q": 100}


def test_png_save_destroys_profile(fake_codec):
    _save_as(fake_codec, "out.png", profile=b"icc")

    assert fake_codec.saved["out.png"].bitmap.profile is None


def test_cropped_jpeg_keeps_profile(fake_codec):
    def consumer(handle):
        return crop(handle, 0, 0, 10, 10, lambda c: save(c, "crop.jpg"))

    run_loaded(fake_codec, FakeBitmap(40, 30, profile=b"icc"), ImageFormat.JPEG, consumer)

    assert fake_codec.saved["crop.jpg"].bitmap.profile == b"icc"


def test_jpeg_with_alpha_converted_on_temporary(fake_codec):
    _save_as(fake_codec, "out.jpg", bpp=32)

    assert ("convert_to_24bits",) in fake_codec.calls
    assert fake_codec.saved["out.jpg"].bitmap.bpp == 24
    assert fake_codec.live_bitmaps() == []


def test_temporary_released_when_encode_fails(fake_codec):
    fake_codec.fail["encode"] = "disk full"

    with pytest.raises(CollaboratorError, match="type jpeg: disk full"):
        _save_as(fake_codec, "out.jpg", bpp=8)
    assert len(fake_codec.bitmaps) == 1
    assert fake_codec.live_bitmaps() == []


def test_conversion_failure_raises(fake_codec):
    fake_codec.fail["convert"] = "bad colourspace"

    with pytest.raises(CollaboratorError, match="bad colourspace"):
        _save_as(fake_codec, "out.jpg", bpp=48)
    assert fake_codec.saved == {}


def test_png_does_not_convert_depth(fake_codec):
    _save_as(fake_codec, "out.png", bpp=32)

    assert ("convert_to_24bits",) not in fake_codec.calls
