from __future__ import annotations

from pydantic import BaseModel, Field

from winadmin.config.constants import DEVICE_CLASSES
from winadmin.core import builder as b
from winadmin.core.builder import templates
from winadmin.core.executor import CommandExecutor
from winadmin.core.mapper import F, FieldSchema

from .base import operation, query, run_action

_CLASSES = ",".join(b.ps_quote(c) for c in DEVICE_CLASSES)

templates.register(
    b.powershell(
        "devices.list",
        f"Get-PnpDevice -Class {_CLASSES} -ErrorAction SilentlyContinue"
        " | Select-Object InstanceId, FriendlyName, Class, Manufacturer, Status"
        " | ConvertTo-Json -Compress",
    ),
    b.powershell(
        "devices.enable",
        "Enable-PnpDevice -InstanceId {{instance_id}} -Confirm:$false -ErrorAction Stop",
        instance_id=b.quoted(),
    ),
    b.powershell(
        "devices.disable",
        "Disable-PnpDevice -InstanceId {{instance_id}} -Confirm:$false -ErrorAction Stop",
        instance_id=b.quoted(),
    ),
)


class DeviceInfo(BaseModel):
    instance_id: str
    name: str = "(Unknown)"
    device_class: str = ""
    manufacturer: str = ""
    status: str = ""


class DeviceArgs(BaseModel):
    instance_id: str = Field(..., description="PnP device instance id")


DEVICE_SCHEMA = FieldSchema(
    DeviceInfo,
    (
        F("instance_id", "InstanceId", "InstanceID", "DeviceID", required=True),
        F("name", "FriendlyName", "Name", default="(Unknown)"),
        F("device_class", "Class", default=""),
        F("manufacturer", "Manufacturer", default=""),
        F("status", "Status", default=""),
    ),
)


@operation("list_devices")
async def list_devices(executor: CommandExecutor, args) -> list[DeviceInfo]:
    """List PnP devices of the classes shown in the device manager view."""
    return await query(executor, "devices.list", DEVICE_SCHEMA)


@operation("enable_device", DeviceArgs)
async def enable_device(executor: CommandExecutor, args: DeviceArgs) -> None:
    await run_action(
        executor, "devices.enable", {"instance_id": args.instance_id}, action="Enable-PnpDevice"
    )


@operation("disable_device", DeviceArgs)
async def disable_device(executor: CommandExecutor, args: DeviceArgs) -> None:
    await run_action(
        executor,
        "devices.disable",
        {"instance_id": args.instance_id},
        action="Disable-PnpDevice",
    )
