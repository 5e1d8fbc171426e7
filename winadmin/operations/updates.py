"""Windows Update history, pending updates and their installers.

History comes from several sources merged by KB id, because neither the
PSWindowsUpdate module nor WMI hotfix data is complete on its own.
"""

from __future__ import annotations

from pydantic import BaseModel

from winadmin.config.constants import (
    DEFENDER_SIGNATURE_MAX_AGE_DAYS,
    DEFENDER_UPDATE_KB,
    DEFENDER_UPDATE_SIZE,
    NOT_AVAILABLE,
)
from winadmin.core import builder as b
from winadmin.core.builder import templates
from winadmin.core.errors import AdminError, Unavailable
from winadmin.core.executor import CommandExecutor
from winadmin.core.fallback import FallbackChain, Strategy, command_strategy
from winadmin.core.mapper import F, FieldSchema, flag, map_records, ps_date, size_bytes, text
from winadmin.core.normalizer import extract_json
from winadmin.utils.logger import get_logger

from .base import operation, query_records, run_text

updates_logger = get_logger("winadmin.ops.updates")

MODULE_MISSING = "PSWindowsUpdate_NOT_AVAILABLE"
MODULE_ERROR = "PSWindowsUpdate_ERROR"

PSWINDOWSUPDATE_INSTALLERS = (
    (
        "current_user_policy",
        "Set-ExecutionPolicy -ExecutionPolicy RemoteSigned -Scope CurrentUser -Force; "
        "Install-Module -Name PSWindowsUpdate -Force -Scope CurrentUser -AllowClobber -ErrorAction Stop",
    ),
    (
        "trusted_gallery",
        "Set-PSRepository -Name PSGallery -InstallationPolicy Trusted; "
        "Install-Module -Name PSWindowsUpdate -Force -Scope CurrentUser -AllowClobber -ErrorAction Stop",
    ),
    (
        "nuget_provider",
        "Install-PackageProvider -Name NuGet -Force -Scope CurrentUser; "
        "Install-Module -Name PSWindowsUpdate -Force -Scope CurrentUser -AllowClobber -ErrorAction Stop",
    ),
)

templates.register(
    b.powershell(
        "updates.module_check",
        "Get-Module -ListAvailable -Name PSWindowsUpdate | Select-Object -First 1 Name,"
        " @{Name='Version';Expression={$_.Version.ToString()}} | ConvertTo-Json -Compress",
    ),
    b.powershell(
        "updates.wu_history",
        r"""
try {
    if (Get-Module -ListAvailable -Name PSWindowsUpdate) {
        Import-Module PSWindowsUpdate -Force -ErrorAction Stop
        Get-WUHistory | Where-Object { $_.Operation -eq 'Installation' -and $_.Result -eq 'Succeeded' } | ForEach-Object {
            $kb = if ($_.Title -match 'KB(\d+)') { 'KB' + $matches[1] } elseif ($_.KB) { "$($_.KB)" } else { 'N/A' }
            [PSCustomObject]@{
                KB = $kb
                Title = "$($_.Title)"
                Date = if ($_.Date) { $_.Date.ToString('yyyy-MM-ddTHH:mm:ss') } else { 'N/A' }
            }
        } | ConvertTo-Json -Compress
    } else {
        Write-Output 'PSWindowsUpdate_NOT_AVAILABLE'
    }
} catch {
    Write-Output "PSWindowsUpdate_ERROR: $($_.Exception.Message)"
}
""",
    ),
    b.powershell(
        "updates.hotfixes",
        r"""
Get-CimInstance -ClassName Win32_QuickFixEngineering -ErrorAction Stop | Where-Object { $_.HotFixID } | ForEach-Object {
    [PSCustomObject]@{
        HotFixID = $_.HotFixID
        Description = $_.Description
        InstalledBy = $_.InstalledBy
        InstalledOn = if ($_.InstalledOn) { ([DateTime]$_.InstalledOn).ToString('yyyy-MM-ddTHH:mm:ss') } else { $null }
    }
} | ConvertTo-Json -Compress
""",
    ),
    b.powershell(
        "updates.registry_last_install",
        r"""
$regPath = 'HKLM:\SOFTWARE\Microsoft\Windows\CurrentVersion\WindowsUpdate\Auto Update\Results\Install'
if (Test-Path $regPath) {
    $lastSuccess = (Get-ItemProperty -Path $regPath -ErrorAction SilentlyContinue).LastSuccessTime
    if ($lastSuccess) {
        [PSCustomObject]@{
            HotFixID = 'REG-LastInstall'
            Description = 'Last Windows Update installation'
            InstalledBy = 'Windows Update Service'
            InstalledOn = "$lastSuccess"
        } | ConvertTo-Json -Compress
    }
}
""",
    ),
    b.powershell(
        "updates.client_events",
        r"""
try {
    Get-WinEvent -LogName 'Microsoft-Windows-WindowsUpdateClient/Operational' -MaxEvents 300 -ErrorAction Stop |
        Where-Object { $_.Id -in 19, 44, 46 } | ForEach-Object {
            $kb = if ($_.Message -match 'KB\d+') { $matches[0] } else { 'EVT-' + $_.Id }
            [PSCustomObject]@{
                HotFixID = $kb
                Description = ($_.Message -replace '\s+', ' ').Trim()
                InstalledBy = 'Windows Update Client'
                InstalledOn = $_.TimeCreated.ToString('yyyy-MM-ddTHH:mm:ss')
            }
        } | ConvertTo-Json -Compress
} catch {
    if ($_.Exception.Message -notlike '*No events were found*') { throw }
}
""",
    ),
    b.powershell(
        "updates.available",
        r"""
Import-Module PSWindowsUpdate -Force -ErrorAction Stop
Get-WindowsUpdate -MicrosoftUpdate -ErrorAction Stop | Where-Object { -not $_.IsInstalled } | ForEach-Object {
    [PSCustomObject]@{
        Title = "$($_.Title)"
        KB = "$($_.KB)"
        Size = if ($_.Size -ne $null) { "$($_.Size)" } else { '0' }
        IsDownloaded = [bool]$_.IsDownloaded
    }
} | ConvertTo-Json -Compress
""",
    ),
    b.powershell(
        "updates.defender_signature_age",
        "$status = Get-MpComputerStatus -ErrorAction Stop; "
        "$last = $status.AntivirusSignatureLastUpdated; "
        "if (-not $last -or $last -lt (Get-Date).AddDays(-"
        + str(DEFENDER_SIGNATURE_MAX_AGE_DAYS)
        + ")) { [PSCustomObject]@{ Title = 'Security Intelligence Update for Microsoft"
        " Defender Antivirus - " + DEFENDER_UPDATE_KB + "'; KB = '" + DEFENDER_UPDATE_KB + "';"
        " Size = " + str(DEFENDER_UPDATE_SIZE) + "; IsDownloaded = $false }"
        " | ConvertTo-Json -Compress }",
    ),
    b.powershell("updates.defender_install", "Update-MpSignature -Verbose 4>&1 | Out-String"),
    [
        b.powershell(f"updates.install_module.{name}", script)
        for name, script in PSWINDOWSUPDATE_INSTALLERS
    ],
    b.powershell(
        "updates.install_all",
        "Import-Module PSWindowsUpdate -Force -ErrorAction Stop; "
        "$result = Install-WindowsUpdate -MicrosoftUpdate -AcceptAll -IgnoreReboot"
        " -Confirm:$false -ErrorAction Stop; "
        "if ($result) { $result | Select-Object Title, Result, Size | Format-Table -AutoSize | Out-String }"
        " else { 'No updates to install.' }",
    ),
)


class InstalledUpdateInfo(BaseModel):
    kb_id: str
    description: str = ""
    installed_by: str = ""
    installed_on: str = NOT_AVAILABLE


class AvailableUpdateInfo(BaseModel):
    title: str
    kb_id: str = NOT_AVAILABLE
    size: int = 0
    is_downloaded: bool = False
    is_installed: bool = False


HISTORY_SCHEMA = FieldSchema(
    InstalledUpdateInfo,
    (
        F("kb_id", "KB", required=True),
        F("description", "Title", "Description", default="Windows Update"),
        F("installed_by", "InstalledBy", default="Windows Update"),
        F("installed_on", "Date", decode=ps_date, default=NOT_AVAILABLE),
    ),
)

HOTFIX_SCHEMA = FieldSchema(
    InstalledUpdateInfo,
    (
        F("kb_id", "HotFixID", required=True),
        F("description", "Description", default="Windows hotfix"),
        F("installed_by", "InstalledBy", default="System"),
        F("installed_on", "InstalledOn", decode=ps_date, default=NOT_AVAILABLE),
    ),
)


def _non_empty(value) -> str | None:
    return text(value) or None


AVAILABLE_SCHEMA = FieldSchema(
    AvailableUpdateInfo,
    (
        F("title", "Title", required=True),
        F("kb_id", "KB", decode=_non_empty, default=NOT_AVAILABLE),
        F("size", "Size", decode=size_bytes, default=0),
        F("is_downloaded", "IsDownloaded", decode=flag, default=False),
    ),
)


def parse_wu_history(output: str) -> list[InstalledUpdateInfo]:
    """Map Get-WUHistory output; the module's own sentinels count as a miss."""
    if MODULE_MISSING in output:
        raise Unavailable("PSWindowsUpdate module is not installed")
    if MODULE_ERROR in output:
        raise Unavailable(output.strip())
    payload = extract_json(output)
    if payload is None:
        return []
    records = payload if isinstance(payload, list) else [payload]
    return map_records(records, HISTORY_SCHEMA)


def installed_chain() -> FallbackChain:
    history = FallbackChain.exclusive(
        "update_history",
        command_strategy("pswindowsupdate_history", "updates.wu_history", parse_text=parse_wu_history),
        command_strategy("quick_fix_engineering", "updates.hotfixes", HOTFIX_SCHEMA),
    )
    return FallbackChain.additive(
        "installed_updates",
        history.as_strategy(),
        command_strategy("registry_last_install", "updates.registry_last_install", HOTFIX_SCHEMA),
        command_strategy("update_client_events", "updates.client_events", HOTFIX_SCHEMA),
        key=lambda update: update.kb_id,
    )


def available_chain() -> FallbackChain:
    return FallbackChain.additive(
        "available_updates",
        command_strategy("windows_update", "updates.available", AVAILABLE_SCHEMA),
        command_strategy("defender_signatures", "updates.defender_signature_age", AVAILABLE_SCHEMA),
        key=lambda update: update.kb_id if update.kb_id != NOT_AVAILABLE else update.title,
    )


async def _module_available(executor: CommandExecutor) -> bool:
    records = await query_records(executor, "updates.module_check", action="Get-Module PSWindowsUpdate")
    return bool(records)


async def _require_module(executor: CommandExecutor) -> None:
    if not await _module_available(executor):
        raise Unavailable(
            "The PSWindowsUpdate PowerShell module is not installed; "
            "run install_pswindowsupdate_module first"
        )


@operation("list_installed_updates")
async def list_installed_updates(executor: CommandExecutor, args) -> list[InstalledUpdateInfo]:
    updates = await installed_chain().resolve(executor)
    return sorted(updates, key=lambda update: update.kb_id)


@operation("search_available_updates")
async def search_available_updates(
    executor: CommandExecutor, args
) -> list[AvailableUpdateInfo]:
    """Pending Windows updates plus an outdated Defender signature entry."""
    await _require_module(executor)
    return await available_chain().resolve(executor)


@operation("install_defender_updates")
async def install_defender_updates(executor: CommandExecutor, args) -> str:
    return await run_text(executor, "updates.defender_install", action="Update-MpSignature")


def _installer(name: str) -> Strategy:
    template_id = f"updates.install_module.{name}"

    async def acquire(executor: CommandExecutor) -> list:
        await run_text(executor, template_id, action=f"Install-Module ({name})")
        # Install-Module can exit 0 without installing anything
        return await query_records(executor, "updates.module_check")

    return Strategy(name, acquire)


@operation("install_pswindowsupdate_module")
async def install_pswindowsupdate_module(executor: CommandExecutor, args) -> str:
    """Install PSWindowsUpdate, trying progressively more permissive methods."""
    if await _module_available(executor):
        return "PSWindowsUpdate is already installed."
    chain = FallbackChain.exclusive(
        "install_pswindowsupdate",
        *(_installer(name) for name, _ in PSWINDOWSUPDATE_INSTALLERS),
    )
    try:
        installed = await chain.resolve(executor)
    except AdminError as e:
        updates_logger.warning("Every PSWindowsUpdate install method failed", error=str(e))
        raise
    if not installed:
        raise Unavailable(
            "PSWindowsUpdate could not be installed. Run as administrator or install it"
            " manually with 'Install-Module PSWindowsUpdate'."
        )
    return "PSWindowsUpdate installed successfully."


@operation("install_windows_updates")
async def install_windows_updates(executor: CommandExecutor, args) -> str:
    await _require_module(executor)
    return await run_text(executor, "updates.install_all", action="Install-WindowsUpdate")
