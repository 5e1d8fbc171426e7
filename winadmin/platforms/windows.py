from __future__ import annotations

import subprocess
from typing import TYPE_CHECKING, Any

from winadmin.core.invocation import Invocation

from .base import BaseOSAdapter

if TYPE_CHECKING:
    from winadmin.config.settings import Settings


class WindowsAdapter(BaseOSAdapter):
    def make_cmd_exec(
        self, invocation: Invocation, settings: Settings
    ) -> tuple[list[str], dict[str, Any]]:
        script = invocation.inline_script or ""
        argv = [settings.cmd_exe, "/d", "/s", "/c", script]
        return argv, self.subprocess_kwargs()

    def subprocess_kwargs(self) -> dict[str, Any]:
        # Keep console windows from flashing for every child process
        return {"creationflags": getattr(subprocess, "CREATE_NO_WINDOW", 0)}

    def is_elevated(self) -> bool:
        try:
            import ctypes

            return bool(ctypes.windll.shell32.IsUserAnAdmin())  # type: ignore[attr-defined]
        except (AttributeError, OSError):
            return False
