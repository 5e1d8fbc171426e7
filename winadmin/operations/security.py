from __future__ import annotations

from pydantic import BaseModel

from winadmin.config.constants import NOT_AVAILABLE
from winadmin.core import builder as b
from winadmin.core.builder import templates
from winadmin.core.errors import Unavailable
from winadmin.core.executor import CommandExecutor
from winadmin.core.mapper import BitFlags, CodeTable, F, FieldSchema, map_records, ps_date

from .base import operation, query, query_records

templates.register(
    b.powershell(
        "security.firewall_rules",
        "Get-NetFirewallRule | Select-Object DisplayName, Enabled, Direction, Action, Profile"
        " | ConvertTo-Json -Depth 3 -Compress",
    ),
    b.powershell(
        "security.antivirus",
        "Get-MpComputerStatus | Select-Object AntispywareEnabled,"
        " RealTimeProtectionEnabled, AntivirusSignatureVersion, NisSignatureVersion,"
        " LastFullScanEndTime | ConvertTo-Json -Depth 3 -Compress",
    ),
)

DIRECTION = CodeTable({1: "Inbound", 2: "Outbound"})
ACTION = CodeTable({1: "NotConfigured", 2: "Allow", 3: "Block"})
PROFILE = BitFlags({1: "Domain", 2: "Private", 4: "Public"}, empty="Any")


def _rule_enabled(value) -> bool:
    # NetSecurity.Enabled is 1 (True) / 2 (False); strings from newer shells
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True or value == 1


class FirewallRuleInfo(BaseModel):
    name: str
    enabled: bool = False
    direction: str = "Unknown"
    action: str = "Unknown"
    profile: str = "Any"


class AntivirusStatus(BaseModel):
    antispyware_enabled: bool = False
    real_time_protection_enabled: bool = False
    antivirus_signature_version: str = NOT_AVAILABLE
    nis_signature_version: str = NOT_AVAILABLE
    last_full_scan_end_time: str = NOT_AVAILABLE


FIREWALL_SCHEMA = FieldSchema(
    FirewallRuleInfo,
    (
        F("name", "DisplayName", "Name", required=True),
        F("enabled", "Enabled", decode=_rule_enabled, default=False),
        F("direction", "Direction", decode=DIRECTION, default="Unknown"),
        F("action", "Action", decode=ACTION, default="Unknown"),
        F("profile", "Profile", decode=PROFILE, default="Any"),
    ),
)

ANTIVIRUS_SCHEMA = FieldSchema(
    AntivirusStatus,
    (
        F("antispyware_enabled", "AntispywareEnabled", decode=lambda v: v is True, default=False),
        F(
            "real_time_protection_enabled",
            "RealTimeProtectionEnabled",
            decode=lambda v: v is True,
            default=False,
        ),
        F("antivirus_signature_version", "AntivirusSignatureVersion", default=NOT_AVAILABLE),
        F("nis_signature_version", "NisSignatureVersion", default=NOT_AVAILABLE),
        F("last_full_scan_end_time", "LastFullScanEndTime", decode=ps_date, default=NOT_AVAILABLE),
    ),
)


@operation("list_firewall_rules")
async def list_firewall_rules(executor: CommandExecutor, args) -> list[FirewallRuleInfo]:
    return await query(executor, "security.firewall_rules", FIREWALL_SCHEMA)


@operation("get_antivirus_status")
async def get_antivirus_status(executor: CommandExecutor, args) -> AntivirusStatus:
    """Defender protection state and signature versions."""
    records = await query_records(executor, "security.antivirus", action="Get-MpComputerStatus")
    statuses = map_records(records, ANTIVIRUS_SCHEMA)
    if not statuses:
        raise Unavailable("Get-MpComputerStatus returned no data; is Defender installed?")
    return statuses[0]
