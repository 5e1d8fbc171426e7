from __future__ import annotations

from pydantic import BaseModel, Field

from winadmin.config.constants import NOT_AVAILABLE, UNKNOWN
from winadmin.core import builder as b
from winadmin.core.builder import templates
from winadmin.core.errors import MalformedOutput
from winadmin.core.executor import CommandExecutor
from winadmin.core.mapper import F, FieldSchema, integer, map_records, ps_date
from winadmin.utils.logger import get_logger

from .base import operation, query_records, run_action

events_logger = get_logger("winadmin.ops.events")

NO_EVENTS = "No events were found that match the specified selection criteria"


def _provider_pattern(param: str, value) -> str:
    return "'*" + b.like_content()(param, value) + "*'"


templates.register(
    b.powershell(
        "events.query",
        "try { Get-WinEvent -FilterHashtable @{ LogName={{log_name}}"
        "{{level}}{{provider}}{{event_id}}{{start_time}}{{end_time}} }"
        " -MaxEvents {{max_events}} -ErrorAction Stop"
        " | Select-Object -Property Id, LevelDisplayName, ProviderName,"
        " @{Name='TimeCreated';Expression={$_.TimeCreated}}, Message"
        " | ConvertTo-Json -Depth 3 -Compress }"
        " catch { if ($_.Exception.Message -like '*No events were found*') { '[]' }"
        " else { throw } }",
        log_name=b.quoted(),
        level=b.optional(b.integer(1, 5), "; Level="),
        provider=b.optional(_provider_pattern, "; ProviderName="),
        event_id=b.optional(b.integer(0, 65535), "; Id="),
        start_time=b.optional(b.timestamp(), "; StartTime="),
        end_time=b.optional(b.timestamp(), "; EndTime="),
        max_events=b.integer(1, 10000),
    ),
    b.powershell(
        "events.clear",
        "Clear-EventLog -LogName {{log_name}} -ErrorAction Stop",
        log_name=b.quoted(),
    ),
)


class EventLogEntry(BaseModel):
    event_id: int
    level: str = UNKNOWN
    provider_name: str = ""
    time_created: str = NOT_AVAILABLE
    message: str = ""


class GetEventsArgs(BaseModel):
    log_name: str = Field(..., description="System, Application, Security, ...")
    level: int | None = Field(default=None, description="1 Critical .. 5 Verbose")
    provider: str | None = None
    event_id: int | None = None
    start_time: str | None = Field(default=None, description="ISO-8601")
    end_time: str | None = Field(default=None, description="ISO-8601")
    max_events: int = 100


class LogNameArgs(BaseModel):
    log_name: str


EVENT_SCHEMA = FieldSchema(
    EventLogEntry,
    (
        F("event_id", "Id", "EventID", decode=integer, required=True),
        F("level", "LevelDisplayName", default=UNKNOWN),
        F("provider_name", "ProviderName", default=""),
        F("time_created", "TimeCreated", decode=ps_date, default=NOT_AVAILABLE),
        F("message", "Message", default=""),
    ),
)


@operation("get_events", GetEventsArgs)
async def get_events(executor: CommandExecutor, args: GetEventsArgs) -> list[EventLogEntry]:
    """Query an event log with optional level/provider/id/time filters."""
    try:
        records = await query_records(
            executor,
            "events.query",
            args.model_dump(),
            action=f"Get-WinEvent {args.log_name}",
            benign_patterns=(NO_EVENTS,),
        )
    except MalformedOutput as e:
        # Event messages occasionally break ConvertTo-Json; show nothing rather than fail
        events_logger.warning(
            "Unreadable event log output treated as empty",
            log_name=args.log_name,
            snippet=e.snippet[:200],
        )
        return []
    return map_records(records, EVENT_SCHEMA)


@operation("clear_event_log", LogNameArgs)
async def clear_event_log(executor: CommandExecutor, args: LogNameArgs) -> None:
    await run_action(
        executor,
        "events.clear",
        {"log_name": args.log_name},
        action=f"Clear-EventLog {args.log_name}",
    )
