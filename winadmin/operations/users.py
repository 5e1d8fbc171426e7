from __future__ import annotations

from pydantic import BaseModel, Field

from winadmin.config.constants import NOT_AVAILABLE
from winadmin.core import builder as b
from winadmin.core.builder import templates
from winadmin.core.executor import CommandExecutor
from winadmin.core.mapper import F, FieldSchema, flag, unwrap

from .base import operation, query, run_action

templates.register(
    b.powershell(
        "users.list",
        "Get-LocalUser | Select-Object Name, FullName, Description, Enabled, SID"
        " | ConvertTo-Json -Depth 3 -Compress",
    ),
    b.powershell(
        "users.groups",
        "Get-LocalGroup | Select-Object Name, Description, SID"
        " | ConvertTo-Json -Depth 3 -Compress",
    ),
    # Password stays in a single-quoted literal so '$' is never expanded
    b.powershell(
        "users.add",
        "$Password = ConvertTo-SecureString -String {{password}} -AsPlainText -Force; "
        "New-LocalUser -Name {{username}} -Password $Password"
        " -FullName {{full_name}} -Description {{description}} -ErrorAction Stop | Out-Null",
        username=b.quoted(),
        password=b.quoted(),
        full_name=b.quoted(allow_empty=True),
        description=b.quoted(allow_empty=True),
    ),
    b.powershell(
        "users.delete",
        "Remove-LocalUser -Name {{username}} -ErrorAction Stop",
        username=b.quoted(),
    ),
)


class LocalUserInfo(BaseModel):
    name: str
    full_name: str = ""
    description: str = ""
    enabled: bool = False
    sid: str = NOT_AVAILABLE


class LocalGroupInfo(BaseModel):
    name: str
    description: str = ""
    sid: str = NOT_AVAILABLE


class AddLocalUserArgs(BaseModel):
    username: str = Field(..., description="Account name")
    password: str = Field(..., description="Initial password")
    full_name: str = ""
    description: str = ""


class UsernameArgs(BaseModel):
    username: str


USER_SCHEMA = FieldSchema(
    LocalUserInfo,
    (
        F("name", "Name", required=True),
        F("full_name", "FullName", default=""),
        F("description", "Description", default=""),
        F("enabled", "Enabled", decode=flag, default=False),
        F("sid", "SID", decode=unwrap("Value"), default=NOT_AVAILABLE),
    ),
)

GROUP_SCHEMA = FieldSchema(
    LocalGroupInfo,
    (
        F("name", "Name", required=True),
        F("description", "Description", default=""),
        F("sid", "SID", decode=unwrap("Value"), default=NOT_AVAILABLE),
    ),
)


@operation("list_local_users")
async def list_local_users(executor: CommandExecutor, args) -> list[LocalUserInfo]:
    return await query(executor, "users.list", USER_SCHEMA)


@operation("list_local_groups")
async def list_local_groups(executor: CommandExecutor, args) -> list[LocalGroupInfo]:
    return await query(executor, "users.groups", GROUP_SCHEMA)


@operation("add_local_user", AddLocalUserArgs)
async def add_local_user(executor: CommandExecutor, args: AddLocalUserArgs) -> None:
    await run_action(
        executor,
        "users.add",
        args.model_dump(),
        action=f"New-LocalUser {args.username}",
    )


@operation("delete_local_user", UsernameArgs)
async def delete_local_user(executor: CommandExecutor, args: UsernameArgs) -> None:
    await run_action(
        executor,
        "users.delete",
        {"username": args.username},
        action=f"Remove-LocalUser {args.username}",
    )
