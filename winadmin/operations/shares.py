"""Mapped network drives and other known network locations.

Windows has no single list of "network shares the user knows about", so
discovery is an additive chain over every place that records them: drive
mappings, WMI, explorer state, registry history and shortcuts.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

from winadmin.core import builder as b
from winadmin.core.builder import templates
from winadmin.core.errors import InvalidArgument
from winadmin.core.executor import CommandExecutor
from winadmin.core.fallback import FallbackChain, command_strategy
from winadmin.core.mapper import CodeTable, F, FieldSchema, integer, text

from .base import operation, query_records, run_action

templates.register(
    b.cmd("shares.net_use", "chcp 65001 >nul & net use"),
    b.powershell(
        "shares.wmi_network_disks",
        "Get-CimInstance -ClassName Win32_LogicalDisk -Filter 'DriveType = 4'"
        " | Select-Object DeviceID, ProviderName, VolumeName, Size, FreeSpace, DriveType"
        " | ConvertTo-Json -Compress",
    ),
    b.powershell(
        "shares.explorer_drives",
        r"""
$found = @()
foreach ($letter in [char[]]([int][char]'F'..[int][char]'Z')) {
    $drivePath = "${letter}:"
    if (-not (Test-Path $drivePath)) { continue }
    $disk = Get-CimInstance -ClassName Win32_LogicalDisk -Filter "DeviceID='$drivePath'" -ErrorAction SilentlyContinue
    if (-not $disk) { continue }
    $provider = $null
    if ($disk.DriveType -eq 4) {
        $provider = $disk.ProviderName
    } elseif ($disk.DriveType -eq 3) {
        $root = Get-Item $drivePath -Force -ErrorAction SilentlyContinue
        if ($root -and $root.Target) {
            $provider = @($root.Target | Where-Object { "$_".StartsWith('\\') })[0]
        }
    }
    if ($provider) {
        $found += [PSCustomObject]@{
            DeviceID = $drivePath; ProviderName = $provider; VolumeName = $disk.VolumeName
            DriveType = $disk.DriveType
        }
    }
}
$found | ConvertTo-Json -Compress
""",
    ),
    b.powershell(
        "shares.network_places",
        r"""
$places = @()
$nameSpace = 'HKCU:\Software\Microsoft\Windows\CurrentVersion\Explorer\Desktop\NameSpace'
if (Test-Path $nameSpace) {
    Get-ChildItem $nameSpace | ForEach-Object {
        $clsidPath = "Registry::HKEY_CLASSES_ROOT\CLSID\$($_.PSChildName)"
        $target = (Get-ItemProperty -Path $clsidPath -ErrorAction SilentlyContinue).'(default)'
        if ($target -and $target.StartsWith('\\')) {
            $places += [PSCustomObject]@{ Name = $target; Path = $target; Type = 'Network Location' }
        }
    }
}
$favorites = [Environment]::GetFolderPath('Favorites')
if ($favorites -and (Test-Path $favorites)) {
    $shell = New-Object -ComObject WScript.Shell
    Get-ChildItem -Path $favorites -Recurse -Include '*.lnk' -ErrorAction SilentlyContinue | ForEach-Object {
        $link = $shell.CreateShortcut($_.FullName)
        if ($link.TargetPath -and $link.TargetPath.StartsWith('\\')) {
            $places += [PSCustomObject]@{ Name = $_.BaseName; Path = $link.TargetPath; Type = 'Network Shortcut' }
        }
    }
}
$places | ConvertTo-Json -Compress
""",
    ),
    b.powershell(
        "shares.typed_paths",
        r"""
$recent = @()
$typed = 'HKCU:\Software\Microsoft\Windows\CurrentVersion\Explorer\TypedPaths'
if (Test-Path $typed) {
    (Get-ItemProperty -Path $typed).PSObject.Properties | Where-Object { $_.Name -like 'url*' } | ForEach-Object {
        if ("$($_.Value)".StartsWith('\\')) {
            $recent += [PSCustomObject]@{ Name = $_.Value; Path = $_.Value; Type = 'Recent Network' }
        }
    }
}
$mru = 'HKCU:\Software\Microsoft\Windows\CurrentVersion\Explorer\ComDlg32\OpenSavePidlMRU'
if (Test-Path $mru) {
    Get-ChildItem $mru | ForEach-Object {
        (Get-ItemProperty -Path $_.PSPath -ErrorAction SilentlyContinue).PSObject.Properties |
            Where-Object { $_.Name -match '^\d+$' -and $_.Value -is [byte[]] } | ForEach-Object {
                $decoded = [System.Text.Encoding]::Unicode.GetString($_.Value) -replace '\x00', ''
                if ($decoded -match '\\\\[^\\\s]+\\[^\\\s]+') {
                    $recent += [PSCustomObject]@{ Name = $matches[0]; Path = $matches[0]; Type = 'Recent MRU' }
                }
            }
    }
}
$recent | Sort-Object Path -Unique | ConvertTo-Json -Compress
""",
    ),
    b.powershell(
        "shares.network_neighbourhood",
        r"""
$computers = @()
net view 2>$null | ForEach-Object {
    if ($_ -match '^\\\\(\S+)\s*(.*)$') {
        $computers += [PSCustomObject]@{
            Name = "\\$($matches[1])"; Path = "\\$($matches[1])"
            Type = 'Network Computer'; Description = $matches[2].Trim()
        }
    }
}
$computers | ConvertTo-Json -Compress
""",
    ),
    b.powershell(
        "shares.shortcuts",
        r"""
$items = @()
$ribbon = 'HKCU:\Software\Microsoft\Windows\CurrentVersion\Explorer\Ribbon'
if (Test-Path $ribbon) {
    Get-ChildItem -Path $ribbon -Recurse -ErrorAction SilentlyContinue | ForEach-Object {
        (Get-ItemProperty -Path $_.PSPath -ErrorAction SilentlyContinue).PSObject.Properties |
            Where-Object { "$($_.Value)".StartsWith('\\') } | ForEach-Object {
                $items += [PSCustomObject]@{ Name = "$($_.Value)"; Path = "$($_.Value)"; Type = 'Pinned Location' }
            }
    }
}
$desktop = [Environment]::GetFolderPath('Desktop')
if ($desktop -and (Test-Path $desktop)) {
    $shell = New-Object -ComObject WScript.Shell
    Get-ChildItem -Path $desktop -Filter '*.lnk' -ErrorAction SilentlyContinue | ForEach-Object {
        $link = $shell.CreateShortcut($_.FullName)
        if ($link.TargetPath -and $link.TargetPath.StartsWith('\\')) {
            $items += [PSCustomObject]@{ Name = $_.BaseName; Path = $link.TargetPath; Type = 'Desktop Shortcut' }
        }
    }
}
$items | ConvertTo-Json -Compress
""",
    ),
    b.powershell(
        "shares.explorer_history",
        r"""
$history = @()
$visited = 'HKCU:\Software\Microsoft\Windows\CurrentVersion\Explorer\ComDlg32\LastVisitedPidlMRU'
if (Test-Path $visited) {
    (Get-ItemProperty -Path $visited -ErrorAction SilentlyContinue).PSObject.Properties |
        Where-Object { $_.Name -match '^\d+$' -and $_.Value -is [byte[]] } | ForEach-Object {
            $decoded = [System.Text.Encoding]::Unicode.GetString($_.Value) -replace '\x00', ''
            if ($decoded -match '\\\\[^\\\s]+\\[^\\\s]+') {
                $history += [PSCustomObject]@{ Name = $matches[0]; Path = $matches[0]; Type = 'Explorer History' }
            }
        }
}
$history | Sort-Object Path -Unique | ConvertTo-Json -Compress
""",
    ),
    b.powershell(
        "shares.drive_exists",
        "Get-PSDrive -Name {{letter}} -ErrorAction SilentlyContinue"
        " | Select-Object Name | ConvertTo-Json -Compress",
        letter=b.drive_letter(),
    ),
    b.native(
        "shares.map",
        "net.exe",
        "use",
        "{{drive_name}}",
        "{{path}}",
        "/persistent:yes",
        drive_name=b.drive_name(),
        path=b.unc_path(),
    ),
    b.native(
        "shares.unmap",
        "net.exe",
        "use",
        "{{drive_name}}",
        "/delete",
        "/y",
        drive_name=b.drive_name(),
    ),
)

DRIVE_TYPE = CodeTable(
    {
        0: "Unknown",
        1: "NoRootDirectory",
        2: "Removable",
        3: "Local",
        4: "Network",
        5: "CD",
        6: "RAM",
    }
)

_DRIVE = re.compile(r"^[A-Z]:$", re.IGNORECASE)


class ShareInfo(BaseModel):
    name: str
    path: str
    description: str = ""
    state: str = "Online"
    share_type: str = "Network Drive"
    current_users: int = 0


class CreateShareArgs(BaseModel):
    drive_name: str = Field(..., description="Drive to map, e.g. Z:")
    path: str = Field(..., description=r"UNC path, e.g. \\server\share")


class DeleteShareArgs(BaseModel):
    drive_name: str


def _server(path: str) -> str:
    parts = [p for p in path.split("\\") if p]
    return parts[0] if parts else "unknown server"


def _drive_description(value) -> str:
    path = text(value) or ""
    return f"Network drive on {_server(path)}"


def parse_net_use(output: str) -> list[ShareInfo]:
    """Parse ``net use`` table rows holding a drive letter and a UNC path."""
    shares = []
    for line in output.splitlines():
        tokens = line.split()
        drive = next((t for t in tokens if _DRIVE.match(t)), None)
        path = next((t for t in tokens if t.startswith("\\\\")), None)
        if not drive or not path:
            continue
        status = tokens[0] if tokens[0] not in (drive, path) else "OK"
        shares.append(
            ShareInfo(
                name=drive.upper(),
                path=path,
                description=f"Network drive on {_server(path)}",
                state="Online" if status.upper() == "OK" else status,
                share_type="Network Drive",
                current_users=1,
            )
        )
    return shares


DRIVE_SCHEMA = FieldSchema(
    ShareInfo,
    (
        F("name", "DeviceID", required=True),
        F("path", "ProviderName", required=True),
        F("description", "ProviderName", decode=_drive_description, default=""),
        F("share_type", "DriveType", decode=lambda v: f"{DRIVE_TYPE(v)} Drive", default="Network Drive"),
        F("current_users", "CurrentUsers", decode=integer, default=1),
    ),
)


def location_schema(state: str) -> FieldSchema[ShareInfo]:
    return FieldSchema(
        ShareInfo,
        (
            F("name", "Name", "Path", required=True),
            F("path", "Path", required=True),
            F("description", "Description", "Type", default=""),
            F("state", "State", default=state),
            F("share_type", "Type", default="Network Location"),
            F("current_users", "CurrentUsers", decode=integer, default=0),
        ),
    )


def is_drive(share: ShareInfo) -> bool:
    return bool(_DRIVE.match(share.name))


def share_key(share: ShareInfo) -> tuple[str, str]:
    """Mapped drives are identified by letter, everything else by path."""
    if is_drive(share):
        return ("drive", share.name.upper())
    return ("path", share.path.rstrip("\\").lower())


def share_chain() -> FallbackChain:
    return FallbackChain.additive(
        "network_shares",
        command_strategy("net_use", "shares.net_use", parse_text=parse_net_use),
        command_strategy("wmi_network_disks", "shares.wmi_network_disks", DRIVE_SCHEMA),
        command_strategy("explorer_drives", "shares.explorer_drives", DRIVE_SCHEMA),
        command_strategy("network_places", "shares.network_places", location_schema("Online")),
        command_strategy("typed_paths", "shares.typed_paths", location_schema("Recent")),
        command_strategy(
            "network_neighbourhood",
            "shares.network_neighbourhood",
            location_schema("Available"),
        ),
        command_strategy("shortcuts", "shares.shortcuts", location_schema("Shortcut")),
        command_strategy(
            "explorer_history", "shares.explorer_history", location_schema("Historical")
        ),
        key=share_key,
    )


@operation("list_shares")
async def list_shares(executor: CommandExecutor, args) -> list[ShareInfo]:
    """Mapped drives first, then other network locations not already mapped."""
    shares = await share_chain().resolve(executor)
    mapped_paths = {s.path.rstrip("\\").lower() for s in shares if is_drive(s)}
    return [
        s for s in shares if is_drive(s) or s.path.rstrip("\\").lower() not in mapped_paths
    ]


async def _drive_in_use(executor: CommandExecutor, drive_name: str) -> bool:
    records = await query_records(executor, "shares.drive_exists", {"letter": drive_name})
    return bool(records)


@operation("create_share", CreateShareArgs)
async def create_share(executor: CommandExecutor, args: CreateShareArgs) -> None:
    """Map a network drive persistently with ``net use``."""
    # Validate both values before probing the drive
    invocation = b.build("shares.map", drive_name=args.drive_name, path=args.path)
    if await _drive_in_use(executor, args.drive_name):
        raise InvalidArgument("drive_name", f"{args.drive_name} is already in use")
    result = await executor.execute(invocation)
    result.raise_for_status(f"net use {args.drive_name}")


@operation("delete_share", DeleteShareArgs)
async def delete_share(executor: CommandExecutor, args: DeleteShareArgs) -> None:
    """Disconnect a mapped drive. The tool's stderr is reported verbatim."""
    b.build("shares.unmap", drive_name=args.drive_name)
    if not await _drive_in_use(executor, args.drive_name):
        raise InvalidArgument("drive_name", f"{args.drive_name} is not mapped")
    await run_action(
        executor,
        "shares.unmap",
        {"drive_name": args.drive_name},
        action=f"net use {args.drive_name} /delete",
    )
