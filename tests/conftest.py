"""Pytest configuration.

Most tests run against ``FakeCodec`` (tests/helpers/fake_codec.py). libvips
backed tests live in ``test_vips_codec.py`` and skip when pyvips is missing.
"""

from __future__ import annotations

import pytest

from image_science.error_channel import error_channel
from image_science.settings_manager import reset_settings
from tests.helpers.fake_codec import FakeCodec


@pytest.fixture
def fake_codec():
    codec = FakeCodec()
    error_channel.attach(codec)
    yield codec
    error_channel.clear()


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Keep each test on default settings unless it points at its own file."""
    monkeypatch.delenv("IMAGE_SCIENCE_SETTINGS", raising=False)
    reset_settings()
    yield
    reset_settings()
