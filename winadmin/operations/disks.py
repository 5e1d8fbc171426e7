from __future__ import annotations

import asyncio

from pydantic import BaseModel, Field

from winadmin.core import builder as b
from winadmin.core.builder import templates
from winadmin.core.errors import AdminError
from winadmin.core.executor import CommandExecutor
from winadmin.core.mapper import F, FieldSchema, get_field, integer, text
from winadmin.utils.logger import get_logger

from .base import operation, query, query_records, run_action, run_text

disk_logger = get_logger("winadmin.ops.disks")

templates.register(
    b.powershell(
        "disks.list",
        "Get-Disk | Select-Object Number, FriendlyName, Size, IsRemovable"
        " | ConvertTo-Json -Compress",
    ),
    b.powershell(
        "disks.partition_letters",
        "Get-Partition -DiskNumber {{disk_number}}"
        " | Where-Object { $_.DriveLetter -and $_.DriveLetter -ne [char]0 }"
        " | Select-Object DriveLetter | ConvertTo-Json -Compress",
        disk_number=b.integer(min_value=0),
    ),
    b.powershell(
        "disks.volume",
        "Get-Volume -DriveLetter {{drive_letter}}"
        " | Select-Object FileSystem, SizeRemaining | ConvertTo-Json -Compress",
        drive_letter=b.drive_letter(),
    ),
    b.powershell(
        "disks.partitions",
        "Get-Partition -DiskNumber {{disk_number}}"
        " | Select-Object PartitionNumber, DriveLetter, Size, Type"
        " | ConvertTo-Json -Depth 3 -Compress",
        disk_number=b.integer(min_value=0),
    ),
    b.powershell(
        "disks.recycle_bin_size",
        "try { (New-Object -ComObject Shell.Application).NameSpace(0xa).Items()"
        " | Measure-Object -Property Size -Sum"
        " | Select-Object -ExpandProperty Sum } catch { 0 }",
    ),
    b.powershell("disks.recycle_bin_clear", "Clear-RecycleBin -Force -ErrorAction Stop"),
    b.powershell(
        "disks.optimize",
        "Optimize-Volume -DriveLetter {{drive_letter}} -Verbose 4>&1 | Out-String",
        drive_letter=b.drive_letter(),
    ),
    b.powershell(
        "disks.format",
        "Format-Volume -DriveLetter {{drive_letter}} -FileSystem {{file_system}}"
        " -Force -Confirm:$false -ErrorAction Stop | Out-Null",
        drive_letter=b.drive_letter(),
        file_system=b.filesystem(),
    ),
)


class DiskInfo(BaseModel):
    disk_number: int
    name: str
    mount_point: str = ""
    total_space: int = 0
    available_space: int = 0
    file_system: str = ""
    is_removable: bool = False


class PartitionInfo(BaseModel):
    number: int
    drive_letter: str | None = None
    size: int = 0
    partition_type: str = ""


class DiskNumberArgs(BaseModel):
    disk_number: int = Field(..., description="Disk number as reported by Get-Disk")


class DriveLetterArgs(BaseModel):
    drive_letter: str = Field(..., description="Drive letter, with or without colon")


class FormatDiskArgs(DriveLetterArgs):
    file_system: str = Field(..., description="NTFS, FAT32, exFAT or ReFS")


DISK_SCHEMA = FieldSchema(
    DiskInfo,
    (
        F("disk_number", "Number", decode=integer, required=True),
        F("name", "FriendlyName", default=""),
        F("total_space", "Size", decode=integer, default=0),
        F("is_removable", "IsRemovable", decode=lambda v: v is True or v == 1, default=False),
    ),
)


def _drive_letter(value) -> str | None:
    letter = text(value)
    if not letter or not letter[0].isalpha():
        return None
    return letter[0].upper()


PARTITION_SCHEMA = FieldSchema(
    PartitionInfo,
    (
        F("number", "PartitionNumber", decode=integer, required=True),
        F("drive_letter", "DriveLetter", decode=_drive_letter),
        F("size", "Size", decode=integer, default=0),
        F("partition_type", "Type", default=""),
    ),
)


async def _fill_mount(executor: CommandExecutor, disk: DiskInfo) -> DiskInfo:
    """Attach the first lettered partition's volume data; failures leave defaults."""
    try:
        partitions = await query_records(
            executor, "disks.partition_letters", {"disk_number": disk.disk_number}
        )
        letters = [
            letter
            for letter in (_drive_letter(get_field(p, "DriveLetter")) for p in partitions)
            if letter
        ]
        if not letters:
            return disk
        letter = letters[0]
        volumes = await query_records(executor, "disks.volume", {"drive_letter": letter})
    except AdminError as e:
        disk_logger.debug(
            "Volume lookup failed", disk_number=disk.disk_number, error=str(e)
        )
        return disk

    update: dict = {"mount_point": f"{letter}:"}
    volume = volumes[0] if volumes else None
    update["file_system"] = text(get_field(volume, "FileSystem")) or "Unknown"
    update["available_space"] = integer(get_field(volume, "SizeRemaining")) or 0
    return disk.model_copy(update=update)


@operation("list_disks")
async def list_disks(executor: CommandExecutor, args) -> list[DiskInfo]:
    """List physical disks with the volume of their first lettered partition."""
    disks = await query(executor, "disks.list", DISK_SCHEMA)
    return list(await asyncio.gather(*(_fill_mount(executor, d) for d in disks)))


@operation("get_disk_partitions", DiskNumberArgs)
async def get_disk_partitions(
    executor: CommandExecutor, args: DiskNumberArgs
) -> list[PartitionInfo]:
    return await query(
        executor, "disks.partitions", PARTITION_SCHEMA, {"disk_number": args.disk_number}
    )


@operation("analyze_recycle_bin")
async def analyze_recycle_bin(executor: CommandExecutor, args) -> int:
    """Total size in bytes of the items in the recycle bin."""
    output = await run_text(executor, "disks.recycle_bin_size")
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    return (integer(lines[-1]) or 0) if lines else 0


@operation("clear_recycle_bin")
async def clear_recycle_bin(executor: CommandExecutor, args) -> None:
    await run_action(executor, "disks.recycle_bin_clear", action="Clear-RecycleBin")


@operation("optimize_volume", DriveLetterArgs)
async def optimize_volume(executor: CommandExecutor, args: DriveLetterArgs) -> str:
    """Run Optimize-Volume and return its verbose report."""
    return await run_text(
        executor,
        "disks.optimize",
        {"drive_letter": args.drive_letter},
        action="Optimize-Volume",
    )


@operation("format_disk", FormatDiskArgs)
async def format_disk(executor: CommandExecutor, args: FormatDiskArgs) -> None:
    """Format a volume. Destroys all data on it."""
    await run_action(
        executor,
        "disks.format",
        {"drive_letter": args.drive_letter, "file_system": args.file_system},
        action=f"Format-Volume {args.drive_letter}",
    )
