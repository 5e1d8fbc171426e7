from __future__ import annotations

from pydantic import BaseModel, Field

from winadmin.config.constants import NOT_AVAILABLE
from winadmin.core import builder as b
from winadmin.core.builder import templates
from winadmin.core.executor import CommandExecutor
from winadmin.core.mapper import CodeTable, F, FieldSchema, integer, ps_date

from .base import operation, query, run_action

templates.register(
    b.powershell(
        "backup.restore_points",
        "Get-ComputerRestorePoint | Select-Object SequenceNumber, Description,"
        " RestorePointType, CreationTime | ConvertTo-Json -Depth 3 -Compress",
    ),
    b.powershell(
        "backup.create_restore_point",
        "Checkpoint-Computer -Description {{description}}"
        " -RestorePointType MODIFY_SETTINGS -ErrorAction Stop",
        description=b.quoted(),
    ),
)

RESTORE_POINT_TYPE = CodeTable(
    {
        0: "APPLICATION_INSTALL",
        1: "APPLICATION_UNINSTALL",
        10: "DEVICE_DRIVER_INSTALL",
        12: "MODIFY_SETTINGS",
        13: "CANCELLED_OPERATION",
    }
)


def _creation_time(value) -> str:
    # WMI CIM_DATETIME: yyyymmddHHMMSS.mmmmmm+UUU
    if isinstance(value, str) and len(value) >= 14 and value[:14].isdigit():
        v = value
        return f"{v[0:4]}-{v[4:6]}-{v[6:8]} {v[8:10]}:{v[10:12]}:{v[12:14]}"
    return ps_date(value)


class RestorePointInfo(BaseModel):
    sequence_number: int
    description: str = ""
    restore_point_type: str = "Unknown"
    creation_time: str = NOT_AVAILABLE


class CreateRestorePointArgs(BaseModel):
    description: str = Field(..., description="Label shown in System Restore")


RESTORE_POINT_SCHEMA = FieldSchema(
    RestorePointInfo,
    (
        F("sequence_number", "SequenceNumber", decode=integer, required=True),
        F("description", "Description", default=""),
        F("restore_point_type", "RestorePointType", decode=RESTORE_POINT_TYPE, default="Unknown"),
        F("creation_time", "CreationTime", decode=_creation_time, default=NOT_AVAILABLE),
    ),
)


@operation("list_restore_points")
async def list_restore_points(executor: CommandExecutor, args) -> list[RestorePointInfo]:
    return await query(executor, "backup.restore_points", RESTORE_POINT_SCHEMA)


@operation("create_restore_point", CreateRestorePointArgs)
async def create_restore_point(
    executor: CommandExecutor, args: CreateRestorePointArgs
) -> None:
    await run_action(
        executor,
        "backup.create_restore_point",
        {"description": args.description},
        action="Checkpoint-Computer",
    )
