from __future__ import annotations

import asyncio

from pydantic import BaseModel, Field

from winadmin.core import builder as b
from winadmin.core.builder import templates
from winadmin.core.errors import MalformedOutput
from winadmin.core.executor import CommandExecutor
from winadmin.core.fallback import FallbackChain, command_strategy
from winadmin.core.mapper import F, FieldSchema, get_field, integer, number
from winadmin.core.normalizer import extract_json
from winadmin.utils.logger import get_logger

from .base import operation, query, query_records, run_action

system_logger = get_logger("winadmin.ops.system")

templates.register(
    b.powershell(
        "system.processes",
        "$processors = (Get-CimInstance Win32_ComputerSystem).NumberOfLogicalProcessors; "
        "Get-Process | ForEach-Object { [PSCustomObject]@{"
        " Id = $_.Id; ProcessName = $_.ProcessName;"
        " CPU = if ($_.CPU -gt 0) { [math]::Min([math]::Round($_.CPU / $processors, 2), 100) } else { 0 };"
        " WS = $_.WS } } | ConvertTo-Json -Compress",
    ),
    b.powershell(
        "system.terminate",
        "Stop-Process -Id {{pid}} -Force -ErrorAction Stop -PassThru"
        " | Select-Object -Property HasExited | ConvertTo-Json -Compress",
        pid=b.integer(min_value=1),
    ),
    b.native("system.restart", "shutdown.exe", "/r", "/t", "0", "/f"),
    b.native("system.shutdown", "shutdown.exe", "/s", "/t", "0", "/f"),
    b.powershell(
        "system.cpu_counter",
        "[math]::Round((Get-Counter '\\Processor(_Total)\\% Processor Time'"
        " -SampleInterval 1 -MaxSamples 1 -ErrorAction Stop).CounterSamples.CookedValue, 2)"
        " | ConvertTo-Json",
    ),
    b.powershell(
        "system.cpu_load_percentage",
        "[math]::Round((Get-CimInstance -ClassName Win32_Processor -ErrorAction Stop"
        " | Measure-Object -Property LoadPercentage -Average).Average, 2) | ConvertTo-Json",
    ),
    b.powershell(
        "system.cpu_perf_data",
        "[math]::Round((Get-CimInstance -ClassName Win32_PerfFormattedData_PerfOS_Processor"
        " -Filter \"Name='_Total'\" -ErrorAction Stop).PercentProcessorTime, 2) | ConvertTo-Json",
    ),
    b.powershell(
        "system.cpu_process_estimate",
        "$processors = (Get-CimInstance Win32_ComputerSystem).NumberOfLogicalProcessors; "
        "$total = (Get-Process).CPU | Measure-Object -Sum | Select-Object -ExpandProperty Sum; "
        "[math]::Min([math]::Round($total / $processors, 2), 100) | ConvertTo-Json",
    ),
    b.powershell(
        "system.memory",
        "Get-CimInstance Win32_OperatingSystem"
        " | Select-Object TotalVisibleMemorySize, FreePhysicalMemory | ConvertTo-Json",
    ),
)


class ProcessInfo(BaseModel):
    pid: int
    name: str = ""
    cpu_usage: float = 0.0
    memory: int = 0


class SystemUsageInfo(BaseModel):
    cpu_usage_percent: float = 0.0
    ram_used_mb: int = 0
    ram_total_mb: int = 0


class TerminateProcessArgs(BaseModel):
    pid: int = Field(..., description="Process id")


PROCESS_SCHEMA = FieldSchema(
    ProcessInfo,
    (
        F("pid", "Id", "ProcessId", decode=integer, required=True),
        F("name", "ProcessName", "Name", default=""),
        F("cpu_usage", "CPU", decode=number, default=0.0),
        F("memory", "WS", "WorkingSet64", decode=integer, default=0),
    ),
)


def _as_list(value) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _percentages(records: list) -> list[float]:
    values = [number(r) for r in records]
    return [v for v in values if v is not None]


def _positive(items: list[float]) -> bool:
    return bool(items) and items[0] > 0


def cpu_chain() -> FallbackChain:
    return FallbackChain.exclusive(
        "cpu_usage",
        command_strategy("performance_counter", "system.cpu_counter", parse=_percentages),
        command_strategy(
            "load_percentage",
            "system.cpu_load_percentage",
            parse=_percentages,
            predicate=_positive,
        ),
        command_strategy(
            "perf_formatted_data",
            "system.cpu_perf_data",
            parse=_percentages,
            predicate=_positive,
        ),
        command_strategy(
            "process_estimate", "system.cpu_process_estimate", parse=_percentages
        ),
    )


@operation("list_processes")
async def list_processes(executor: CommandExecutor, args) -> list[ProcessInfo]:
    return await query(executor, "system.processes", PROCESS_SCHEMA)


@operation("terminate_process", TerminateProcessArgs)
async def terminate_process(executor: CommandExecutor, args: TerminateProcessArgs) -> bool:
    """Force-stop a process; True when it is gone afterwards."""
    invocation = b.build("system.terminate", pid=args.pid)
    result = await executor.execute(invocation)
    if not result.exit_success:
        system_logger.info(
            "Stop-Process failed", pid=args.pid, stderr=result.stderr_text.strip()[:300]
        )
        return False
    try:
        payload = _as_list(extract_json(result.stdout_text))
    except MalformedOutput:
        return True
    if not payload:
        return True
    has_exited = get_field(payload[0], "HasExited")
    return True if has_exited is None else bool(has_exited)


@operation("restart_computer")
async def restart_computer(executor: CommandExecutor, args) -> None:
    await run_action(executor, "system.restart", action="shutdown /r")


@operation("shutdown_computer")
async def shutdown_computer(executor: CommandExecutor, args) -> None:
    await run_action(executor, "system.shutdown", action="shutdown /s")


@operation("get_system_usage")
async def get_system_usage(executor: CommandExecutor, args) -> SystemUsageInfo:
    """Current CPU load and physical memory use."""
    cpu_values, memory = await asyncio.gather(
        cpu_chain().resolve(executor),
        query_records(executor, "system.memory", action="Win32_OperatingSystem"),
    )
    usage = SystemUsageInfo(cpu_usage_percent=cpu_values[0] if cpu_values else 0.0)
    if memory:
        total_kb = integer(get_field(memory[0], "TotalVisibleMemorySize")) or 0
        free_kb = integer(get_field(memory[0], "FreePhysicalMemory")) or 0
        usage.ram_total_mb = total_kb // 1024
        usage.ram_used_mb = max(total_kb - free_kb, 0) // 1024
    return usage
