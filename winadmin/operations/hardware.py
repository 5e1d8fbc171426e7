from __future__ import annotations

import asyncio

from pydantic import BaseModel

from winadmin.config.constants import UNKNOWN
from winadmin.core import builder as b
from winadmin.core.builder import templates
from winadmin.core.errors import AdminError
from winadmin.core.executor import CommandExecutor
from winadmin.core.fallback import FallbackChain, command_strategy
from winadmin.core.mapper import F, FieldSchema, get_field, integer, size_bytes, text
from winadmin.utils.logger import get_logger

from .base import operation, query_records

hardware_logger = get_logger("winadmin.ops.hardware")


def _wmi(template_id: str, wmi_class: str, properties: str):
    return b.powershell(
        template_id,
        f"Get-CimInstance -ClassName {wmi_class} -ErrorAction SilentlyContinue"
        f" | Select-Object {properties} | ConvertTo-Json -Compress",
    )


templates.register(
    _wmi(
        "hardware.cpu",
        "Win32_Processor",
        "Name, NumberOfCores, NumberOfLogicalProcessors, MaxClockSpeed",
    ),
    _wmi("hardware.board", "Win32_BaseBoard", "Manufacturer, Product"),
    _wmi("hardware.memory", "Win32_PhysicalMemory", "Capacity"),
    _wmi("hardware.gpu_wmi", "Win32_VideoController", "Name, AdapterRAM, DriverVersion"),
    b.powershell(
        "hardware.gpu_dxdiag",
        "$path = Join-Path $env:TEMP ('winadmin-dxdiag-' + [guid]::NewGuid() + '.xml'); "
        "Start-Process -FilePath dxdiag.exe -ArgumentList '/x', $path -Wait -WindowStyle Hidden; "
        "try { [xml]$doc = Get-Content -Path $path -Raw; "
        "$doc.DxDiag.DisplayDevices.DisplayDevice | ForEach-Object {"
        " [PSCustomObject]@{ Name = $_.CardName; DedicatedMemory = $_.DedicatedMemory;"
        " DriverVersion = $_.DriverVersion } } | ConvertTo-Json -Compress }"
        " finally { Remove-Item -Path $path -ErrorAction SilentlyContinue }",
    ),
)

_MB = 1024 * 1024


class GpuInfo(BaseModel):
    name: str = "Unknown GPU"
    ram_mb: int = 0
    driver_version: str = UNKNOWN


class HardwareInfo(BaseModel):
    cpu_name: str = UNKNOWN
    cpu_cores: int = 0
    cpu_threads: int = 0
    cpu_max_clock_mhz: int = 0
    ram_total_gb: float = 0.0
    ram_modules_count: int = 0
    motherboard_manufacturer: str = UNKNOWN
    motherboard_product: str = UNKNOWN
    gpus: list[GpuInfo] = []


def _megabytes(value) -> int | None:
    amount = size_bytes(value)
    return None if amount is None else amount // _MB


GPU_DXDIAG_SCHEMA = FieldSchema(
    GpuInfo,
    (
        F("name", "Name", "CardName", required=True),
        F("ram_mb", "DedicatedMemory", decode=_megabytes, default=0),
        F("driver_version", "DriverVersion", default=UNKNOWN),
    ),
)

GPU_WMI_SCHEMA = FieldSchema(
    GpuInfo,
    (
        F("name", "Name", required=True),
        # AdapterRAM is a uint32 and saturates at 4 GB
        F("ram_mb", "AdapterRAM", decode=_megabytes, default=0),
        F("driver_version", "DriverVersion", default=UNKNOWN),
    ),
)


def gpu_chain() -> FallbackChain:
    return FallbackChain.exclusive(
        "gpu",
        command_strategy("dxdiag", "hardware.gpu_dxdiag", GPU_DXDIAG_SCHEMA),
        command_strategy("wmi_video_controller", "hardware.gpu_wmi", GPU_WMI_SCHEMA),
    )


async def _wmi_records(executor: CommandExecutor, template_id: str) -> list:
    """A missing WMI class yields no records instead of failing the whole report."""
    try:
        return await query_records(executor, template_id)
    except AdminError as e:
        hardware_logger.info("WMI query failed", template=template_id, error=str(e))
        return []


async def _gpus(executor: CommandExecutor) -> list[GpuInfo]:
    try:
        return await gpu_chain().resolve(executor)
    except AdminError as e:
        hardware_logger.info("GPU enumeration failed", error=str(e))
        return []


@operation("get_hardware_info")
async def get_hardware_info(executor: CommandExecutor, args) -> HardwareInfo:
    """CPU, memory, motherboard and GPU summary."""
    cpus, boards, modules, gpus = await asyncio.gather(
        _wmi_records(executor, "hardware.cpu"),
        _wmi_records(executor, "hardware.board"),
        _wmi_records(executor, "hardware.memory"),
        _gpus(executor),
    )

    info = HardwareInfo(gpus=gpus)
    if cpus:
        cpu = cpus[0]
        info.cpu_name = text(get_field(cpu, "Name")) or UNKNOWN
        info.cpu_cores = integer(get_field(cpu, "NumberOfCores")) or 0
        info.cpu_threads = integer(get_field(cpu, "NumberOfLogicalProcessors")) or 0
        info.cpu_max_clock_mhz = integer(get_field(cpu, "MaxClockSpeed")) or 0
    if boards:
        board = boards[0]
        info.motherboard_manufacturer = text(get_field(board, "Manufacturer")) or UNKNOWN
        info.motherboard_product = text(get_field(board, "Product")) or UNKNOWN

    capacities = [integer(get_field(m, "Capacity")) or 0 for m in modules]
    info.ram_modules_count = len(capacities)
    info.ram_total_gb = round(sum(capacities) / 1024**3, 2)
    return info
