import pytest

from stubs import StubExecutor, failed, ok
from winadmin.core.errors import ExternalToolFailed
from winadmin.core.invocation import Interpreter
from winadmin.operations.hardware import get_hardware_info
from winadmin.operations.system import (
    TerminateProcessArgs,
    get_system_usage,
    list_processes,
    restart_computer,
    terminate_process,
)


@pytest.mark.asyncio
async def test_list_processes():
    stub = StubExecutor(
        {
            "system.processes": ok(
                [
                    {"Id": 4, "ProcessName": "System", "CPU": 0, "WS": 4096},
                    {"Id": 1234, "ProcessName": "explorer", "CPU": "1,5", "WS": 104857600},
                    {"ProcessName": "ghost"},
                ]
            )
        }
    )
    processes = await list_processes(stub, None)
    assert [(p.pid, p.name) for p in processes] == [(4, "System"), (1234, "explorer")]
    assert processes[1].cpu_usage == 1.5
    assert processes[1].memory == 104857600


@pytest.mark.asyncio
async def test_terminate_process_outcomes():
    stub = StubExecutor({"system.terminate": ok({"HasExited": True})})
    assert await terminate_process(stub, TerminateProcessArgs(pid=1234)) is True
    assert "Stop-Process -Id 1234 " in stub.invocations[0].inline_script

    stub.script("system.terminate", ok(raw=""))
    assert await terminate_process(stub, TerminateProcessArgs(pid=1234)) is True

    stub.script("system.terminate", ok({"HasExited": False}))
    assert await terminate_process(stub, TerminateProcessArgs(pid=1234)) is False

    stub.script("system.terminate", failed("Cannot find a process with the process identifier 1234."))
    assert await terminate_process(stub, TerminateProcessArgs(pid=1234)) is False


@pytest.mark.asyncio
async def test_restart_is_native_shutdown():
    stub = StubExecutor()
    await restart_computer(stub, None)
    (invocation,) = stub.invocations
    assert invocation.interpreter is Interpreter.NATIVE
    assert invocation.arguments == ("shutdown.exe", "/r", "/t", "0", "/f")


@pytest.mark.asyncio
async def test_restart_failure_raises():
    stub = StubExecutor({"system.restart": failed("Access is denied.(5)")})
    with pytest.raises(ExternalToolFailed):
        await restart_computer(stub, None)


@pytest.mark.asyncio
async def test_system_usage():
    stub = StubExecutor(
        {
            "system.cpu_counter": ok(raw="37.12"),
            "system.memory": ok({"TotalVisibleMemorySize": 16777216, "FreePhysicalMemory": 4194304}),
        }
    )
    usage = await get_system_usage(stub, None)
    assert usage.cpu_usage_percent == 37.12
    assert usage.ram_total_mb == 16384
    assert usage.ram_used_mb == 12288
    assert "system.cpu_load_percentage" not in stub.calls


@pytest.mark.asyncio
async def test_system_usage_when_every_cpu_source_is_empty():
    stub = StubExecutor({"system.memory": ok({"TotalVisibleMemorySize": 2048, "FreePhysicalMemory": 1024})})
    usage = await get_system_usage(stub, None)
    assert usage.cpu_usage_percent == 0.0
    assert usage.ram_used_mb == 1


@pytest.mark.asyncio
async def test_hardware_info_with_wmi_video_fallback():
    stub = StubExecutor(
        {
            "hardware.cpu": ok(
                {
                    "Name": "AMD Ryzen 7 5800X 8-Core Processor",
                    "NumberOfCores": 8,
                    "NumberOfLogicalProcessors": 16,
                    "MaxClockSpeed": 3801,
                }
            ),
            "hardware.board": ok({"Manufacturer": "ASUSTeK COMPUTER INC.", "Product": "ROG STRIX B550-F"}),
            "hardware.memory": ok([{"Capacity": 17179869184}, {"Capacity": "17179869184"}]),
            "hardware.gpu_dxdiag": failed("dxdiag.exe is not recognized"),
            "hardware.gpu_wmi": ok({"Name": "Radeon RX 6800", "AdapterRAM": 4293918720, "DriverVersion": "31.0.21"}),
        }
    )
    info = await get_hardware_info(stub, None)
    assert info.cpu_name == "AMD Ryzen 7 5800X 8-Core Processor"
    assert (info.cpu_cores, info.cpu_threads, info.cpu_max_clock_mhz) == (8, 16, 3801)
    assert info.ram_modules_count == 2
    assert info.ram_total_gb == 32.0
    assert info.motherboard_product == "ROG STRIX B550-F"
    assert [(g.name, g.ram_mb) for g in info.gpus] == [("Radeon RX 6800", 4095)]


@pytest.mark.asyncio
async def test_hardware_info_survives_failed_queries():
    stub = StubExecutor(
        {
            "hardware.cpu": failed("Invalid class"),
            "hardware.gpu_dxdiag": failed("nope"),
            "hardware.gpu_wmi": failed("nope"),
        }
    )
    info = await get_hardware_info(stub, None)
    assert info.cpu_name == "Unknown"
    assert info.gpus == []
    assert info.ram_total_gb == 0.0
