from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel

from winadmin.config.settings import settings as default_settings
from winadmin.core import builder as b
from winadmin.core.builder import templates
from winadmin.core.errors import AdminError
from winadmin.core.executor import CommandExecutor
from winadmin.platforms import OSAdapter, get_os_adapter
from winadmin.utils.logger import get_logger

from .base import operation, run_text

admin_logger = get_logger("winadmin.ops.admin")

templates.register(
    b.powershell(
        "admin.elevate",
        "Start-Process -FilePath {{executable}} -Verb RunAs -ErrorAction Stop",
        executable=b.quoted(),
    ),
)


class ElevationOutcome(StrEnum):
    GRANTED = "ElevationGranted"
    DECLINED_OR_FAILED = "ElevationDeclinedOrFailed"


class ElevationResult(BaseModel):
    outcome: ElevationOutcome
    detail: str = ""


def _adapter(executor: CommandExecutor) -> OSAdapter:
    return getattr(executor, "adapter", None) or get_os_adapter()


def _app_executable(executor: CommandExecutor) -> str:
    return getattr(executor, "settings", default_settings).app_executable


@operation("is_elevated")
async def is_elevated(executor: CommandExecutor, args) -> bool:
    return _adapter(executor).is_elevated()


@operation("require_admin")
async def require_admin(executor: CommandExecutor, args) -> ElevationResult:
    """Start an elevated copy of the application unless already elevated.

    The current process keeps running either way; exiting after a granted
    elevation is the caller's decision.
    """
    if _adapter(executor).is_elevated():
        return ElevationResult(
            outcome=ElevationOutcome.GRANTED, detail="Already running elevated"
        )
    executable = _app_executable(executor)
    try:
        await run_text(
            executor, "admin.elevate", {"executable": executable}, action="Start-Process -Verb RunAs"
        )
    except AdminError as e:
        admin_logger.info("Elevation declined or failed", error=str(e))
        return ElevationResult(outcome=ElevationOutcome.DECLINED_OR_FAILED, detail=str(e))
    return ElevationResult(
        outcome=ElevationOutcome.GRANTED, detail=f"Elevated instance of {executable} started"
    )
