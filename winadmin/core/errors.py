"""Error taxonomy shared by every layer of the pipeline.

Each failure raised inside the core is an ``AdminError`` carrying an
``ErrorKind`` discriminant plus a human-readable detail. The operation
registry turns these into ``OperationError`` values at the boundary.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorKind(StrEnum):
    INVALID_ARGUMENT = "invalid_argument"
    UNSUPPORTED_TEMPLATE = "unsupported_template"
    SPAWN_FAILED = "spawn_failed"
    EXTERNAL_TOOL_FAILED = "external_tool_failed"
    MALFORMED_OUTPUT = "malformed_output"
    UNAVAILABLE = "unavailable"


class AdminError(Exception):
    kind: ErrorKind = ErrorKind.EXTERNAL_TOOL_FAILED

    def __init__(self, detail: str, **details: Any) -> None:
        super().__init__(detail)
        self.detail = detail
        self.details = details

    def __str__(self) -> str:
        return self.detail


class InvalidArgument(AdminError):
    kind = ErrorKind.INVALID_ARGUMENT

    def __init__(self, param: str, detail: str) -> None:
        super().__init__(f"Invalid value for '{param}': {detail}", param=param)
        self.param = param


class UnsupportedTemplate(AdminError):
    kind = ErrorKind.UNSUPPORTED_TEMPLATE

    def __init__(self, template_id: str) -> None:
        super().__init__(f"Unknown template: {template_id}", template_id=template_id)
        self.template_id = template_id


class SpawnFailed(AdminError):
    kind = ErrorKind.SPAWN_FAILED


class ExternalToolFailed(AdminError):
    kind = ErrorKind.EXTERNAL_TOOL_FAILED

    def __init__(
        self, detail: str, *, stderr: str = "", exit_code: int | None = None
    ) -> None:
        super().__init__(detail, stderr=stderr, exit_code=exit_code)
        self.stderr = stderr
        self.exit_code = exit_code


class MalformedOutput(AdminError):
    kind = ErrorKind.MALFORMED_OUTPUT

    def __init__(self, detail: str, *, snippet: str = "") -> None:
        super().__init__(detail, snippet=snippet)
        self.snippet = snippet


class Unavailable(AdminError):
    kind = ErrorKind.UNAVAILABLE


def tool_failure(action: str, stderr: str, exit_code: int | None = None):
    """Build an ExternalToolFailed whose message embeds stderr verbatim."""
    message = f"{action} failed"
    if stderr.strip():
        message = f"{message}: {stderr.strip()}"
    elif exit_code is not None:
        message = f"{message} (exit code {exit_code})"
    return ExternalToolFailed(message, stderr=stderr, exit_code=exit_code)
