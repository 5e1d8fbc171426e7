"""ProcessExecutor against real child processes, plus argv construction."""

import asyncio
import base64
import sys

import pytest

from winadmin.config.settings import Settings
from winadmin.core.errors import ExternalToolFailed, SpawnFailed
from winadmin.core.executor import ProcessExecutor
from winadmin.core.invocation import Interpreter, Invocation
from winadmin.platforms.base import encode_powershell
from winadmin.platforms.posix import PosixAdapter
from winadmin.platforms.windows import WindowsAdapter


def python(code: str) -> Invocation:
    return Invocation(
        interpreter=Interpreter.NATIVE,
        arguments=(sys.executable, "-c", code),
        template_id="test.python",
    )


@pytest.mark.asyncio
async def test_captures_stdout_and_exit_status():
    result = await ProcessExecutor().execute(python("print('[1, 2]')"))
    assert result.exit_success
    assert result.exit_code == 0
    assert result.stdout_text.strip() == "[1, 2]"


@pytest.mark.asyncio
async def test_non_zero_exit_is_reported_not_raised():
    code = "import sys; sys.stderr.write('Access is denied.'); sys.exit(5)"
    result = await ProcessExecutor().execute(python(code))
    assert not result.exit_success
    assert result.exit_code == 5
    assert result.stderr_text == "Access is denied."
    with pytest.raises(ExternalToolFailed) as exc:
        result.raise_for_status("Format-Volume")
    assert str(exc.value) == "Format-Volume failed: Access is denied."


@pytest.mark.asyncio
async def test_missing_executable_is_spawn_failed():
    invocation = Invocation(
        interpreter=Interpreter.NATIVE,
        arguments=("definitely-not-a-real-tool-4f1c",),
    )
    with pytest.raises(SpawnFailed) as exc:
        await ProcessExecutor().execute(invocation)
    assert exc.value.details["executable"] == "definitely-not-a-real-tool-4f1c"


@pytest.mark.asyncio
async def test_cancelled_call_frees_its_slot_and_leaves_child_running(tmp_path):
    marker = tmp_path / "finished"
    executor = ProcessExecutor(Settings({"max_concurrent_processes": 1}))
    slow = asyncio.create_task(
        executor.execute(
            python(
                "import pathlib, time; time.sleep(3); "
                f"pathlib.Path({str(marker)!r}).write_text('done')"
            )
        )
    )
    await asyncio.sleep(0.3)
    slow.cancel()
    with pytest.raises(asyncio.CancelledError):
        await slow

    # The only slot is free again while the first child is still sleeping
    result = await asyncio.wait_for(executor.execute(python("print('next')")), timeout=5)
    assert result.stdout_text.strip() == "next"
    assert not marker.exists()

    for _ in range(100):
        if marker.exists() and marker.read_text() == "done":
            break
        await asyncio.sleep(0.1)
    assert marker.read_text() == "done"


@pytest.mark.asyncio
async def test_concurrency_is_bounded_by_settings():
    executor = ProcessExecutor(Settings({"max_concurrent_processes": 1}))
    results = await asyncio.gather(
        *(executor.execute(python(f"print({i})")) for i in range(3))
    )
    assert [r.stdout_text.strip() for r in results] == ["0", "1", "2"]


def test_powershell_argv_uses_encoded_command():
    settings = Settings({"powershell_exe": "pwsh"})
    invocation = Invocation(interpreter=Interpreter.POWERSHELL, inline_script="Get-Date")
    argv, _ = PosixAdapter().make_exec(invocation, settings)
    assert argv[:5] == ["pwsh", "-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass"]
    assert argv[-2] == "-EncodedCommand"
    decoded = base64.b64decode(argv[-1]).decode("utf-16-le")
    assert decoded.endswith("Get-Date")
    assert "[Console]::OutputEncoding" in decoded
    assert argv[-1] == encode_powershell("Get-Date")


def test_cmd_is_refused_off_windows():
    invocation = Invocation(interpreter=Interpreter.CMD, inline_script="net use")
    with pytest.raises(SpawnFailed):
        PosixAdapter().make_exec(invocation, Settings())


def test_windows_cmd_argv():
    settings = Settings({"cmd_exe": "C:\\Windows\\System32\\cmd.exe"})
    invocation = Invocation(interpreter=Interpreter.CMD, inline_script="chcp 65001 >nul & net use")
    argv, kwargs = WindowsAdapter().make_exec(invocation, settings)
    assert argv == [
        "C:\\Windows\\System32\\cmd.exe",
        "/d",
        "/s",
        "/c",
        "chcp 65001 >nul & net use",
    ]
    assert "creationflags" in kwargs


def test_settings_precedence(monkeypatch):
    monkeypatch.setenv("WINADMIN_MAX_PROCESSES", "3")
    assert Settings().max_concurrent_processes == 3
    assert Settings({"max_concurrent_processes": 0}).max_concurrent_processes == 1
    monkeypatch.delenv("WINADMIN_MAX_PROCESSES")
    assert Settings().max_concurrent_processes == 8
