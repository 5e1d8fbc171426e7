from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from winadmin.config.constants import DEFAULT_OUTPUT_ENCODING

from .errors import tool_failure


class Interpreter(StrEnum):
    POWERSHELL = "powershell"
    CMD = "cmd"
    NATIVE = "native"


class Invocation(BaseModel):
    """A fully built external command, ready to execute.

    For ``NATIVE`` the first argument is the executable. For the shell
    interpreters ``inline_script`` carries the script text and ``arguments``
    holds extra interpreter flags, if any.
    """

    model_config = ConfigDict(frozen=True)

    interpreter: Interpreter
    arguments: tuple[str, ...] = ()
    inline_script: str | None = None
    template_id: str | None = None


class ExecutionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    exit_success: bool
    exit_code: int | None = None
    stdout: bytes = b""
    stderr: bytes = b""
    encoding: str = DEFAULT_OUTPUT_ENCODING

    def _decode(self, data: bytes) -> str:
        text = data.decode(self.encoding, errors="replace")
        return text.lstrip("﻿")

    @property
    def stdout_text(self) -> str:
        return self._decode(self.stdout)

    @property
    def stderr_text(self) -> str:
        return self._decode(self.stderr)

    def raise_for_status(self, action: str) -> ExecutionResult:
        """Raise ExternalToolFailed with stderr verbatim on non-zero exit."""
        if not self.exit_success:
            raise tool_failure(action, self.stderr_text, self.exit_code)
        return self
