from __future__ import annotations

import json
import os
import threading
from typing import Any

from .logger import get_logger

_logger = get_logger("settings")

SETTINGS_ENV = "IMAGE_SCIENCE_SETTINGS"


class SettingsManager:
    def __init__(self, settings_path: str | None = None):
        self.settings_path = settings_path
        self._settings: dict[str, Any] = {}
        self.load()

    DEFAULTS: dict[str, Any] = {
        "jpeg_fail_on": "error",
        "jpeg_save_quality": 100,
        "resize_kernel": "cubic",
        "vips_cache_max": 0,
        "vips_cache_max_mem": 0,
        "vips_cache_max_files": 0,
    }

    def load(self) -> None:
        try:
            if self.settings_path and os.path.exists(self.settings_path):
                with open(self.settings_path, encoding="utf-8") as f:
                    data = json.load(f)
                    if isinstance(data, dict):
                        self._settings = data
                        _logger.debug("settings loaded: %s", self.settings_path)
                        return
        except (OSError, ValueError) as e:
            _logger.warning("settings load failed: %s", e)
        self._settings = {}

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._settings:
            return self._settings[key]
        if default is not None:
            return default
        return self.DEFAULTS.get(key)

    @property
    def jpeg_fail_on(self) -> str:
        return str(self.get("jpeg_fail_on"))

    @property
    def jpeg_save_quality(self) -> int:
        try:
            quality = int(self.get("jpeg_save_quality"))
        except (TypeError, ValueError):
            return int(self.DEFAULTS["jpeg_save_quality"])
        return max(1, min(100, quality))

    @property
    def resize_kernel(self) -> str:
        return str(self.get("resize_kernel"))

    def cache_limits(self) -> tuple[int, int, int]:
        """Return (max operations, max memory, max files) for the libvips cache."""
        return (
            int(self.get("vips_cache_max")),
            int(self.get("vips_cache_max_mem")),
            int(self.get("vips_cache_max_files")),
        )


_settings: SettingsManager | None = None
_settings_lock = threading.Lock()


def get_settings() -> SettingsManager:
    global _settings
    with _settings_lock:
        if _settings is None:
            _settings = SettingsManager(os.environ.get(SETTINGS_ENV))
        return _settings


def reset_settings() -> None:
    global _settings
    with _settings_lock:
        _settings = None
