from __future__ import annotations

from pydantic import BaseModel, Field

from winadmin.config.constants import NOT_AVAILABLE
from winadmin.core import builder as b
from winadmin.core.builder import templates
from winadmin.core.executor import CommandExecutor
from winadmin.core.mapper import CodeTable, F, FieldSchema, ps_date, text

from .base import operation, query, run_action

templates.register(
    b.powershell(
        "tasks.list",
        "Get-ScheduledTask | Select-Object TaskName, TaskPath, State,"
        " @{N='LastRunTime';E={($_ | Get-ScheduledTaskInfo -ErrorAction SilentlyContinue).LastRunTime}},"
        " @{N='NextRunTime';E={($_ | Get-ScheduledTaskInfo -ErrorAction SilentlyContinue).NextRunTime}},"
        " @{N='LastTaskResult';E={($_ | Get-ScheduledTaskInfo -ErrorAction SilentlyContinue).LastTaskResult}}"
        " | ConvertTo-Json -Depth 3 -Compress",
    ),
    b.powershell(
        "tasks.enable",
        "Enable-ScheduledTask -TaskName {{task_name}} -TaskPath {{task_path}} -ErrorAction Stop | Out-Null",
        task_name=b.quoted(),
        task_path=b.quoted(),
    ),
    b.powershell(
        "tasks.disable",
        "Disable-ScheduledTask -TaskName {{task_name}} -TaskPath {{task_path}} -ErrorAction Stop | Out-Null",
        task_name=b.quoted(),
        task_path=b.quoted(),
    ),
    b.powershell(
        "tasks.run",
        "Start-ScheduledTask -TaskName {{task_name}} -TaskPath {{task_path}} -ErrorAction Stop",
        task_name=b.quoted(),
        task_path=b.quoted(),
    ),
)

TASK_STATE = CodeTable({0: "Unknown", 1: "Disabled", 2: "Queued", 3: "Ready", 4: "Running"})


class TaskInfo(BaseModel):
    name: str
    path: str = "\\"
    state: str = "Unknown"
    last_run_time: str = NOT_AVAILABLE
    next_run_time: str = NOT_AVAILABLE
    last_result: str = NOT_AVAILABLE


class TaskArgs(BaseModel):
    task_name: str = Field(..., description="Task name")
    task_path: str = Field(default="\\", description="Folder path, e.g. \\Microsoft\\Windows\\")


TASK_SCHEMA = FieldSchema(
    TaskInfo,
    (
        F("name", "TaskName", required=True),
        F("path", "TaskPath", default="\\"),
        F("state", "State", decode=TASK_STATE, default="Unknown"),
        F("last_run_time", "LastRunTime", decode=ps_date, default=NOT_AVAILABLE),
        F("next_run_time", "NextRunTime", decode=ps_date, default=NOT_AVAILABLE),
        F("last_result", "LastTaskResult", decode=text, default=NOT_AVAILABLE),
    ),
)


def _task_params(args: TaskArgs) -> dict[str, str]:
    path = args.task_path or "\\"
    if not path.endswith("\\"):
        path += "\\"
    return {"task_name": args.task_name, "task_path": path}


@operation("list_scheduled_tasks")
async def list_scheduled_tasks(executor: CommandExecutor, args) -> list[TaskInfo]:
    return await query(executor, "tasks.list", TASK_SCHEMA)


@operation("enable_task", TaskArgs)
async def enable_task(executor: CommandExecutor, args: TaskArgs) -> None:
    await run_action(executor, "tasks.enable", _task_params(args), action="Enable-ScheduledTask")


@operation("disable_task", TaskArgs)
async def disable_task(executor: CommandExecutor, args: TaskArgs) -> None:
    await run_action(executor, "tasks.disable", _task_params(args), action="Disable-ScheduledTask")


@operation("run_task", TaskArgs)
async def run_task(executor: CommandExecutor, args: TaskArgs) -> None:
    await run_action(executor, "tasks.run", _task_params(args), action="Start-ScheduledTask")
