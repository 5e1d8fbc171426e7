from __future__ import annotations

from pydantic import BaseModel, Field

from winadmin.core import builder as b
from winadmin.core.builder import templates
from winadmin.core.executor import CommandExecutor
from winadmin.core.mapper import CodeTable, F, FieldSchema

from .base import operation, query, run_action

templates.register(
    b.powershell(
        "services.list",
        "Get-Service -ErrorAction SilentlyContinue"
        " | Select-Object Name, DisplayName, Status, StartType"
        " | ConvertTo-Json -Depth 1 -Compress",
    ),
    b.powershell(
        "services.start",
        "Start-Service -Name {{name}} -ErrorAction Stop",
        name=b.exact_name(),
    ),
    b.powershell(
        "services.stop",
        "Stop-Service -Name {{name}} -Force -ErrorAction Stop",
        name=b.exact_name(),
    ),
)

SERVICE_STATUS = CodeTable(
    {
        1: "Stopped",
        2: "StartPending",
        3: "StopPending",
        4: "Running",
        5: "ContinuePending",
        6: "PausePending",
        7: "Paused",
    }
)

START_TYPE = CodeTable(
    {0: "Boot", 1: "System", 2: "Automatic", 3: "Manual", 4: "Disabled"},
    aliases={"Auto": "Automatic"},
)


class ServiceInfo(BaseModel):
    name: str
    display_name: str = "Unknown Display Name"
    status: str = "Unknown"
    start_type: str = "Unknown"


class ServiceArgs(BaseModel):
    name: str = Field(..., description="Service name (not the display name)")


SERVICE_SCHEMA = FieldSchema(
    ServiceInfo,
    (
        F("name", "Name", "ServiceName", required=True),
        F("display_name", "DisplayName", default="Unknown Display Name"),
        F("status", "Status", decode=SERVICE_STATUS, default="Unknown"),
        F("start_type", "StartType", "StartMode", decode=START_TYPE, default="Unknown"),
    ),
)


@operation("list_services")
async def list_services(executor: CommandExecutor, args) -> list[ServiceInfo]:
    return await query(executor, "services.list", SERVICE_SCHEMA)


@operation("start_service", ServiceArgs)
async def start_service(executor: CommandExecutor, args: ServiceArgs) -> None:
    await run_action(
        executor, "services.start", {"name": args.name}, action=f"Start-Service {args.name}"
    )


@operation("stop_service", ServiceArgs)
async def stop_service(executor: CommandExecutor, args: ServiceArgs) -> None:
    await run_action(
        executor, "services.stop", {"name": args.name}, action=f"Stop-Service {args.name}"
    )
