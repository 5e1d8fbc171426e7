"""Process Executor: runs an Invocation as a child process.

No timeout is imposed. Cancelling the awaiting task raises CancelledError in
the caller but does not kill the child, which may keep running unobserved.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Protocol

from winadmin.config.settings import Settings, settings as default_settings
from winadmin.utils.logger import exec_logger, output_log

from .errors import SpawnFailed
from .invocation import ExecutionResult, Invocation

if TYPE_CHECKING:
    from winadmin.platforms import OSAdapter


class CommandExecutor(Protocol):
    async def execute(self, invocation: Invocation) -> ExecutionResult: ...


class ProcessExecutor:
    """Spawns invocations with ``asyncio.create_subprocess_exec``.

    A semaphore bounds how many children are alive at once; calls are
    otherwise independent and may be awaited concurrently.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        adapter: OSAdapter | None = None,
    ) -> None:
        self.settings = settings or default_settings
        if adapter is None:
            from winadmin.platforms import get_os_adapter

            adapter = get_os_adapter()
        self.adapter = adapter
        self._slots = asyncio.Semaphore(self.settings.max_concurrent_processes)

    async def execute(self, invocation: Invocation) -> ExecutionResult:
        argv, kwargs = self.adapter.make_exec(invocation, self.settings)
        exec_logger.debug(
            "Spawning process",
            interpreter=invocation.interpreter.value,
            template=invocation.template_id,
            executable=argv[0],
        )
        async with self._slots:
            start = time.perf_counter()
            try:
                proc = await asyncio.create_subprocess_exec(
                    *argv,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    **kwargs,
                )
            except FileNotFoundError as e:
                raise SpawnFailed(
                    f"Executable not found: {argv[0]}", executable=argv[0]
                ) from e
            except OSError as e:
                raise SpawnFailed(
                    f"Could not start {argv[0]}: {e}", executable=argv[0]
                ) from e

            stdout, stderr = await proc.communicate()

        result = ExecutionResult(
            exit_success=proc.returncode == 0,
            exit_code=proc.returncode,
            stdout=stdout or b"",
            stderr=stderr or b"",
            encoding=self.settings.output_encoding,
        )
        exec_logger.debug(
            "Process finished",
            template=invocation.template_id,
            exit_code=proc.returncode,
            stdout_bytes=len(result.stdout),
            stderr_bytes=len(result.stderr),
            duration_ms=round((time.perf_counter() - start) * 1000, 1),
        )
        if not result.exit_success:
            output_log(
                exec_logger,
                "Process stderr",
                result.stderr_text,
                template=invocation.template_id,
            )
        return result
