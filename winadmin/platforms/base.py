from __future__ import annotations

import base64
from typing import TYPE_CHECKING, Any, Protocol

from winadmin.config.constants import POWERSHELL_FLAGS, POWERSHELL_PREAMBLE
from winadmin.core.errors import SpawnFailed
from winadmin.core.invocation import Interpreter, Invocation

if TYPE_CHECKING:
    from winadmin.config.settings import Settings


class OSAdapter(Protocol):
    def make_exec(
        self, invocation: Invocation, settings: Settings
    ) -> tuple[list[str], dict[str, Any]]: ...
    def is_elevated(self) -> bool: ...


def encode_powershell(script: str) -> str:
    """Encode a script for ``-EncodedCommand`` (base64 of UTF-16LE)."""
    return base64.b64encode((POWERSHELL_PREAMBLE + script).encode("utf-16-le")).decode(
        "ascii"
    )


class BaseOSAdapter:
    def make_exec(
        self, invocation: Invocation, settings: Settings
    ) -> tuple[list[str], dict[str, Any]]:
        """Build argv and extra subprocess kwargs for an invocation.

        PowerShell scripts travel as ``-EncodedCommand`` so no quoting layer
        sits between the built script and the interpreter.
        """
        if invocation.interpreter is Interpreter.POWERSHELL:
            argv = [
                settings.powershell_exe,
                *POWERSHELL_FLAGS,
                *invocation.arguments,
                "-EncodedCommand",
                encode_powershell(invocation.inline_script or ""),
            ]
            return argv, self.subprocess_kwargs()
        if invocation.interpreter is Interpreter.CMD:
            return self.make_cmd_exec(invocation, settings)
        if not invocation.arguments:
            raise SpawnFailed("Native invocation has no executable")
        return list(invocation.arguments), self.subprocess_kwargs()

    def make_cmd_exec(
        self, invocation: Invocation, settings: Settings
    ) -> tuple[list[str], dict[str, Any]]:
        raise SpawnFailed("cmd.exe is only available on Windows")

    def subprocess_kwargs(self) -> dict[str, Any]:
        return {}

    def is_elevated(self) -> bool:
        raise NotImplementedError
