"""Configuration settings for winadmin.

Property-based access to configuration values. Values come from an optional
overrides mapping, then environment variables, then defaults. All values are
read-only for the lifetime of the process.
"""

from __future__ import annotations

import os
import shutil
import sys
from collections.abc import Mapping
from typing import Any

from winadmin.config.constants import (
    DEFAULT_MAX_CONCURRENT_PROCESSES,
    DEFAULT_OUTPUT_ENCODING,
)


class Settings:
    """Application settings with environment variable fallbacks."""

    def __init__(self, overrides: Mapping[str, Any] | None = None):
        self._overrides = dict(overrides or {})

    def _get(
        self,
        key: str,
        default: Any,
        env_key: str | None = None,
    ) -> Any:
        """Get config value from overrides, fallback to env, then default."""
        if key in self._overrides:
            return self._overrides[key]
        if env_key and (env_val := os.getenv(env_key)):
            # Type conversion based on default type
            if isinstance(default, bool):
                return env_val.lower() in ("true", "1", "yes")
            elif isinstance(default, int):
                return int(env_val)
            elif isinstance(default, float):
                return float(env_val)
            return env_val
        return default

    # Interpreters
    @property
    def powershell_exe(self) -> str:
        detected = (
            shutil.which("powershell.exe")
            or shutil.which("pwsh.exe")
            or shutil.which("pwsh")
            or "powershell.exe"
        )
        return self._get("powershell_exe", detected, "WINADMIN_POWERSHELL")

    @property
    def cmd_exe(self) -> str:
        return self._get("cmd_exe", "cmd.exe", "COMSPEC")

    # Execution
    @property
    def max_concurrent_processes(self) -> int:
        value = self._get(
            "max_concurrent_processes",
            DEFAULT_MAX_CONCURRENT_PROCESSES,
            "WINADMIN_MAX_PROCESSES",
        )
        return max(1, int(value))

    @property
    def output_encoding(self) -> str:
        return self._get(
            "output_encoding", DEFAULT_OUTPUT_ENCODING, "WINADMIN_OUTPUT_ENCODING"
        )

    # Elevation relaunch target
    @property
    def app_executable(self) -> str:
        return self._get("app_executable", sys.executable, "WINADMIN_APP_EXECUTABLE")


# Global settings instance
settings = Settings()
