"""Storage path resolver for Caregate.

Resolves where the durable key-value database lives, following the XDG
Base Directory layout on Linux and the platform conventions elsewhere.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Final

logger = logging.getLogger(__name__)

IS_WINDOWS: Final = sys.platform == "win32"
IS_MACOS: Final = sys.platform == "darwin"

APP_DIR_NAME: Final = "caregate"


class StoragePathResolver:
    """Resolves storage paths based on deployment environment."""

    def __init__(self, env: str | None = None) -> None:
        """Initialize path resolver.

        Args:
            env: Force a specific environment ('local', 'test')
        """
        self.env = env or self._detect_environment()
        self.base_path = self._resolve_base_path()

    def _detect_environment(self) -> str:
        if env_var := os.getenv("CAREGATE_ENV"):
            return env_var

        if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
            return "test"

        return "local"

    def _resolve_base_path(self) -> Path:
        # Explicit override wins in every environment
        if override := os.getenv("CAREGATE_DATA_PATH"):
            return Path(override)

        if self.env == "test":
            return Path("/tmp") / APP_DIR_NAME / "test"

        if self.env != "local":
            logger.warning(f"Unknown environment '{self.env}', using local paths")

        return self._get_xdg_data_path()

    def _get_xdg_data_path(self) -> Path:
        if IS_WINDOWS:
            local_app_data = os.getenv("LOCALAPPDATA")
            if local_app_data:
                return Path(local_app_data) / APP_DIR_NAME
            return Path.home() / f".{APP_DIR_NAME}" / "data"

        xdg_data = os.getenv("XDG_DATA_HOME")
        if xdg_data:
            return Path(xdg_data) / APP_DIR_NAME

        if IS_MACOS:
            return Path.home() / "Library" / "Application Support" / APP_DIR_NAME
        return Path.home() / ".local" / "share" / APP_DIR_NAME

    def get_database_path(self) -> Path:
        """Get the key-value database path.

        Returns:
            Path to caregate.duckdb
        """
        return self.base_path / "caregate.duckdb"

    def get_config_dir(self) -> Path:
        """Get configuration directory.

        Returns:
            Path to config directory
        """
        if IS_WINDOWS:
            app_data = os.getenv("APPDATA")
            if app_data:
                return Path(app_data) / APP_DIR_NAME
            return Path.home() / f".{APP_DIR_NAME}" / "config"

        xdg_config = os.getenv("XDG_CONFIG_HOME")
        if xdg_config:
            return Path(xdg_config) / APP_DIR_NAME

        if IS_MACOS:
            return Path.home() / "Library" / "Preferences" / APP_DIR_NAME
        return Path.home() / ".config" / APP_DIR_NAME


def get_default_resolver() -> StoragePathResolver:
    """Get default path resolver instance."""
    return StoragePathResolver()
