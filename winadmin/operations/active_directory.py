"""Domain membership details and Active Directory account management.

Directory cmdlets need a domain-joined machine with the RSAT ActiveDirectory
module; both are checked up front so callers get ``Unavailable`` instead of
a cmdlet-not-found error.
"""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

from winadmin.config.constants import NOT_AVAILABLE, UNKNOWN
from winadmin.core import builder as b
from winadmin.core.builder import templates
from winadmin.core.errors import Unavailable
from winadmin.core.executor import CommandExecutor
from winadmin.core.mapper import CodeTable, F, FieldSchema, flag, get_field, text, unwrap

from .base import operation, query, query_records, run_action

_SELECT_GROUP = (
    " | Select-Object SamAccountName, Name, GroupCategory, GroupScope, SID"
    " | ConvertTo-Json -Depth 3 -Compress"
)


def _search(template_id: str, cmdlet: str, second_attribute: str, select: str):
    return b.powershell(
        template_id,
        f"Import-Module ActiveDirectory -ErrorAction Stop; {cmdlet} -Filter"
        f" 'Name -like ''*{{{{filter}}}}*'' -or {second_attribute} -like ''*{{{{filter}}}}*'''"
        f" -ErrorAction Stop{select}",
        filter=b.ad_filter(),
    )


def _account_action(template_id: str, script: str, **params):
    return b.powershell(
        template_id,
        "Import-Module ActiveDirectory -ErrorAction Stop; " + script,
        identity=b.identity(),
        **params,
    )


templates.register(
    b.powershell(
        "ad.computer",
        "$cs = Get-CimInstance -ClassName Win32_ComputerSystem; "
        "$site = $null; "
        "if ($cs.PartOfDomain) { $site = (Get-CimInstance -ClassName Win32_NTDomain"
        " -ErrorAction SilentlyContinue | Where-Object { $_.DnsForestName -and"
        " $_.ClientSiteName } | Select-Object -First 1).ClientSiteName }; "
        "[PSCustomObject]@{ PartOfDomain = [bool]$cs.PartOfDomain; Domain = $cs.Domain;"
        " SiteName = $site } | ConvertTo-Json -Compress",
    ),
    b.powershell(
        "ad.part_of_domain",
        "(Get-CimInstance -ClassName Win32_ComputerSystem).PartOfDomain | ConvertTo-Json",
    ),
    b.powershell(
        "ad.module_check",
        "[bool](Get-Module -ListAvailable -Name ActiveDirectory) | ConvertTo-Json",
    ),
    b.native("ad.gpupdate", "gpupdate.exe", "/force"),
    _search(
        "ad.search_users",
        "Get-ADUser",
        "SamAccountName",
        " | Select-Object SamAccountName, Name, Enabled, SID | ConvertTo-Json -Depth 3 -Compress",
    ),
    _search(
        "ad.search_computers",
        "Get-ADComputer",
        "DNSHostName",
        " -Properties OperatingSystem | Select-Object Name, DNSHostName, Enabled,"
        " OperatingSystem | ConvertTo-Json -Depth 3 -Compress",
    ),
    _search("ad.search_groups", "Get-ADGroup", "SamAccountName", _SELECT_GROUP),
    _account_action(
        "ad.group_members",
        "Get-ADGroupMember -Identity {{identity}} -ErrorAction Stop"
        " | Select-Object SamAccountName, Name, objectClass, SID"
        " | ConvertTo-Json -Depth 3 -Compress",
    ),
    _account_action(
        "ad.principal_groups",
        "Get-ADPrincipalGroupMembership -Identity {{identity}} -ErrorAction Stop" + _SELECT_GROUP,
    ),
    _account_action("ad.enable", "Enable-ADAccount -Identity {{identity}} -ErrorAction Stop"),
    _account_action("ad.disable", "Disable-ADAccount -Identity {{identity}} -ErrorAction Stop"),
    _account_action("ad.unlock", "Unlock-ADAccount -Identity {{identity}} -ErrorAction Stop"),
    _account_action(
        "ad.reset_password",
        "$Password = ConvertTo-SecureString -String {{new_password}} -AsPlainText -Force; "
        "Set-ADAccountPassword -Identity {{identity}} -Reset -NewPassword $Password"
        " -ErrorAction Stop",
        new_password=b.quoted(),
    ),
)

GROUP_CATEGORY = CodeTable({0: "Distribution", 1: "Security"})
GROUP_SCOPE = CodeTable({0: "DomainLocal", 1: "Global", 2: "Universal"})


class AdComputerInfo(BaseModel):
    is_joined: bool = False
    domain_name: str | None = None
    site_name: str | None = None
    logon_server: str | None = None


class LoggedInUserInfo(BaseModel):
    user_name: str | None = None
    user_domain: str | None = None


class AdUserInfo(BaseModel):
    sam_account_name: str
    name: str = ""
    enabled: bool = False
    sid: str = NOT_AVAILABLE


class FoundAdComputerInfo(BaseModel):
    name: str
    dns_host_name: str = ""
    enabled: bool = False
    operating_system: str = NOT_AVAILABLE


class AdGroupInfo(BaseModel):
    sam_account_name: str
    name: str = ""
    category: str = UNKNOWN
    scope: str = UNKNOWN
    sid: str = NOT_AVAILABLE


class AdMemberInfo(BaseModel):
    sam_account_name: str
    name: str = ""
    object_class: str = UNKNOWN
    sid: str = NOT_AVAILABLE


class SearchArgs(BaseModel):
    filter: str = Field(default="", description="Substring of the name; empty lists everything")


class GroupIdentityArgs(BaseModel):
    group_identity: str


class IdentityArgs(BaseModel):
    identity: str = Field(..., description="sAMAccountName, DN, SID or GUID")


class ResetPasswordArgs(BaseModel):
    identity: str
    new_password: str


_SID = unwrap("Value")

USER_SCHEMA = FieldSchema(
    AdUserInfo,
    (
        F("sam_account_name", "SamAccountName", required=True),
        F("name", "Name", default=""),
        F("enabled", "Enabled", decode=flag, default=False),
        F("sid", "SID", decode=_SID, default=NOT_AVAILABLE),
    ),
)

COMPUTER_SCHEMA = FieldSchema(
    FoundAdComputerInfo,
    (
        F("name", "Name", required=True),
        F("dns_host_name", "DNSHostName", default=""),
        F("enabled", "Enabled", decode=flag, default=False),
        F("operating_system", "OperatingSystem", default=NOT_AVAILABLE),
    ),
)

GROUP_SCHEMA = FieldSchema(
    AdGroupInfo,
    (
        F("sam_account_name", "SamAccountName", required=True),
        F("name", "Name", default=""),
        F("category", "GroupCategory", decode=GROUP_CATEGORY, default=UNKNOWN),
        F("scope", "GroupScope", decode=GROUP_SCOPE, default=UNKNOWN),
        F("sid", "SID", decode=_SID, default=NOT_AVAILABLE),
    ),
)

MEMBER_SCHEMA = FieldSchema(
    AdMemberInfo,
    (
        F("sam_account_name", "SamAccountName", required=True),
        F("name", "Name", default=""),
        F("object_class", "objectClass", default=UNKNOWN),
        F("sid", "SID", decode=_SID, default=NOT_AVAILABLE),
    ),
)


async def _query_flag(executor: CommandExecutor, template_id: str) -> bool:
    records = await query_records(executor, template_id)
    return bool(records) and flag(records[0]) is True


async def require_directory(executor: CommandExecutor) -> None:
    """Raise Unavailable unless directory cmdlets can run on this machine."""
    if not await _query_flag(executor, "ad.part_of_domain"):
        raise Unavailable("This computer is not joined to an Active Directory domain")
    if not await _query_flag(executor, "ad.module_check"):
        raise Unavailable("The ActiveDirectory PowerShell module is not installed")


@operation("get_ad_computer_info")
async def get_ad_computer_info(executor: CommandExecutor, args) -> AdComputerInfo:
    """Domain membership of this computer, its AD site and logon server."""
    records = await query_records(executor, "ad.computer", action="Win32_ComputerSystem")
    info = AdComputerInfo()
    if not records:
        return info
    record = records[0]
    info.is_joined = flag(get_field(record, "PartOfDomain")) is True
    if info.is_joined:
        info.domain_name = text(get_field(record, "Domain")) or None
        info.site_name = text(get_field(record, "SiteName")) or None
        info.logon_server = os.environ.get("LOGONSERVER", "").lstrip("\\") or None
    return info


@operation("get_logged_in_user_info")
async def get_logged_in_user_info(executor: CommandExecutor, args) -> LoggedInUserInfo:
    # USERDOMAIN equals the computer name for local accounts
    domain = os.environ.get("USERDOMAIN") or None
    if domain and domain == os.environ.get("COMPUTERNAME"):
        domain = None
    return LoggedInUserInfo(user_name=os.environ.get("USERNAME") or None, user_domain=domain)


@operation("force_gp_update")
async def force_gp_update(executor: CommandExecutor, args) -> None:
    await run_action(executor, "ad.gpupdate", action="gpupdate /force")


@operation("search_ad_users", SearchArgs)
async def search_ad_users(executor: CommandExecutor, args: SearchArgs) -> list[AdUserInfo]:
    await require_directory(executor)
    return await query(
        executor, "ad.search_users", USER_SCHEMA, {"filter": args.filter}, action="Get-ADUser"
    )


@operation("search_ad_computers", SearchArgs)
async def search_ad_computers(
    executor: CommandExecutor, args: SearchArgs
) -> list[FoundAdComputerInfo]:
    await require_directory(executor)
    return await query(
        executor,
        "ad.search_computers",
        COMPUTER_SCHEMA,
        {"filter": args.filter},
        action="Get-ADComputer",
    )


@operation("search_ad_groups", SearchArgs)
async def search_ad_groups(executor: CommandExecutor, args: SearchArgs) -> list[AdGroupInfo]:
    await require_directory(executor)
    return await query(
        executor, "ad.search_groups", GROUP_SCHEMA, {"filter": args.filter}, action="Get-ADGroup"
    )


@operation("get_ad_group_members", GroupIdentityArgs)
async def get_ad_group_members(
    executor: CommandExecutor, args: GroupIdentityArgs
) -> list[AdMemberInfo]:
    b.build("ad.group_members", identity=args.group_identity)
    await require_directory(executor)
    return await query(
        executor,
        "ad.group_members",
        MEMBER_SCHEMA,
        {"identity": args.group_identity},
        action="Get-ADGroupMember",
    )


@operation("get_ad_principal_group_membership", IdentityArgs)
async def get_ad_principal_group_membership(
    executor: CommandExecutor, args: IdentityArgs
) -> list[AdGroupInfo]:
    b.build("ad.principal_groups", identity=args.identity)
    await require_directory(executor)
    return await query(
        executor,
        "ad.principal_groups",
        GROUP_SCHEMA,
        {"identity": args.identity},
        action="Get-ADPrincipalGroupMembership",
    )


async def _account_change(
    executor: CommandExecutor, template_id: str, action: str, **params
) -> None:
    # Reject a bad identity before probing the domain
    b.build(template_id, params)
    await require_directory(executor)
    await run_action(executor, template_id, params, action=action)


@operation("enable_ad_account", IdentityArgs)
async def enable_ad_account(executor: CommandExecutor, args: IdentityArgs) -> None:
    await _account_change(executor, "ad.enable", "Enable-ADAccount", identity=args.identity)


@operation("disable_ad_account", IdentityArgs)
async def disable_ad_account(executor: CommandExecutor, args: IdentityArgs) -> None:
    await _account_change(executor, "ad.disable", "Disable-ADAccount", identity=args.identity)


@operation("unlock_ad_account", IdentityArgs)
async def unlock_ad_account(executor: CommandExecutor, args: IdentityArgs) -> None:
    await _account_change(executor, "ad.unlock", "Unlock-ADAccount", identity=args.identity)


@operation("reset_ad_account_password", ResetPasswordArgs)
async def reset_ad_account_password(executor: CommandExecutor, args: ResetPasswordArgs) -> None:
    await _account_change(
        executor,
        "ad.reset_password",
        "Set-ADAccountPassword",
        identity=args.identity,
        new_password=args.new_password,
    )
