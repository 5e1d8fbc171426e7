from __future__ import annotations

import asyncio
from collections import defaultdict

from pydantic import BaseModel

from winadmin.config.constants import NOT_AVAILABLE
from winadmin.core import builder as b
from winadmin.core.builder import templates
from winadmin.core.errors import AdminError
from winadmin.core.executor import CommandExecutor
from winadmin.core.fallback import FallbackChain, Strategy, command_strategy
from winadmin.core.mapper import F, FieldSchema, get_field, integer, string_list, text
from winadmin.core.normalizer import ExtractMode
from winadmin.utils.logger import get_logger

from .base import operation, query, query_records

network_logger = get_logger("winadmin.ops.network")

templates.register(
    b.powershell(
        "network.adapters",
        "Get-NetAdapter | Select-Object Name, InterfaceDescription, MacAddress, Status,"
        " InterfaceIndex | ConvertTo-Json -Depth 3 -Compress",
    ),
    # Emits one compact JSON line last; earlier lines may be warnings
    b.powershell(
        "network.ip_addresses",
        "$VerbosePreference = 'SilentlyContinue'; "
        "@(Get-NetIPAddress -ErrorAction SilentlyContinue"
        " | Select-Object InterfaceIndex, IPAddress, AddressFamily)"
        " | ConvertTo-Json -Compress",
    ),
    b.powershell(
        "network.ip_configuration",
        "Get-NetIPConfiguration | Select-Object InterfaceIndex,"
        " @{Name='IPAddress';Expression={@($_.IPv4Address.IPAddress)}},"
        " @{Name='DNSServer';Expression={$_.DNSServer.ServerAddresses}},"
        " @{Name='Gateway';Expression={$_.IPv4DefaultGateway.NextHop}}"
        " | ConvertTo-Json -Depth 4 -Compress",
    ),
    b.powershell(
        "network.direct_ip",
        "@(Get-NetIPConfiguration -InterfaceIndex {{interface_index}}"
        " | Select-Object -ExpandProperty IPv4Address"
        " | Select-Object -ExpandProperty IPAddress) | ConvertTo-Json -Compress",
        interface_index=b.integer(min_value=0),
    ),
    b.powershell(
        "network.gateway_ip",
        "@(Get-NetIPConfiguration | Where-Object {"
        " $_.InterfaceIndex -eq {{interface_index}} -and $_.IPv4DefaultGateway -ne $null"
        " -and $_.NetAdapter.Status -eq 'Up' } | Select-Object -First 1"
        " | ForEach-Object { $_.IPv4Address.IPAddress }) | ConvertTo-Json -Compress",
        interface_index=b.integer(min_value=0),
    ),
    b.powershell(
        "network.bluetooth_status",
        "Get-PnpDevice | Where-Object { $_.FriendlyName -like '*Bluetooth*'"
        " -or $_.Class -eq 'Bluetooth' } | Select-Object Status | ConvertTo-Json -Compress",
    ),
)

_IPV4 = {"2", "ipv4", "internetwork"}
_IPV6 = {"23", "ipv6", "internetworkv6"}


class NetworkAdapterInfo(BaseModel):
    name: str
    description: str = ""
    mac_address: str = NOT_AVAILABLE
    status: str = "Unknown"
    ip_addresses: list[str] = []
    dns_servers: list[str] = []
    gateway: str = NOT_AVAILABLE


class _Adapter(BaseModel):
    name: str
    description: str = ""
    mac_address: str = NOT_AVAILABLE
    status: str = "Unknown"
    interface_index: int


ADAPTER_SCHEMA = FieldSchema(
    _Adapter,
    (
        F("name", "Name", required=True),
        F("description", "InterfaceDescription", default=""),
        F("mac_address", "MacAddress", default=NOT_AVAILABLE),
        F("status", "Status", default="Unknown"),
        F("interface_index", "InterfaceIndex", "ifIndex", decode=integer, required=True),
    ),
)


def _address_map(records: list) -> dict[int, list[str]]:
    """Interface index to IPv4 addresses first, then non link-local IPv6."""
    ipv4: dict[int, list[str]] = defaultdict(list)
    ipv6: dict[int, list[str]] = defaultdict(list)
    for record in records:
        index = integer(get_field(record, "InterfaceIndex"))
        address = text(get_field(record, "IPAddress"))
        family = (text(get_field(record, "AddressFamily")) or "").lower()
        if index is None or not address:
            continue
        if family in _IPV4:
            ipv4[index].append(address)
        elif family in _IPV6 and not address.lower().startswith("fe80"):
            ipv6[index].append(address)
    return {i: ipv4.get(i, []) + ipv6.get(i, []) for i in set(ipv4) | set(ipv6)}


def _config_map(records: list) -> dict[int, dict]:
    configs = {}
    for record in records:
        index = integer(get_field(record, "InterfaceIndex"))
        if index is None:
            continue
        configs[index] = {
            "ip_addresses": string_list(get_field(record, "IPAddress")),
            "dns_servers": string_list(get_field(record, "DNSServer")),
            "gateway": text(get_field(record, "Gateway")) or NOT_AVAILABLE,
        }
    return configs


def _known(strategy_id: str, addresses: list[str]) -> Strategy:
    """Strategy over data already fetched in bulk."""

    async def acquire(executor: CommandExecutor) -> list[str]:
        return list(addresses)

    return Strategy(strategy_id, acquire)


def ip_chain(
    adapter: _Adapter, address_map: dict[int, list[str]], configs: dict[int, dict]
) -> FallbackChain:
    index = adapter.interface_index
    strategies = [
        _known("ip_address_map", address_map.get(index, [])),
        _known("ip_configuration", configs.get(index, {}).get("ip_addresses", [])),
    ]
    if adapter.status == "Up":
        strategies += [
            command_strategy(
                "direct_query",
                "network.direct_ip",
                params={"interface_index": index},
                parse=string_list,
            ),
            command_strategy(
                "gateway_query",
                "network.gateway_ip",
                params={"interface_index": index},
                parse=string_list,
            ),
        ]
    return FallbackChain.exclusive(f"ip_addresses[{index}]", *strategies)


async def _optional_records(executor: CommandExecutor, template_id: str, **kwargs) -> list:
    try:
        return await query_records(executor, template_id, **kwargs)
    except AdminError as e:
        network_logger.info("Network query failed", template=template_id, error=str(e))
        return []


async def _bluetooth_ok(executor: CommandExecutor) -> bool:
    records = await _optional_records(executor, "network.bluetooth_status")
    return any((text(get_field(r, "Status")) or "").lower() == "ok" for r in records)


async def _resolve_ips(chain: FallbackChain, executor: CommandExecutor) -> list[str]:
    try:
        return await chain.resolve(executor)
    except AdminError as e:
        network_logger.info("IP lookup failed", chain=chain.name, error=str(e))
        return []


@operation("list_network_adapters")
async def list_network_adapters(
    executor: CommandExecutor, args
) -> list[NetworkAdapterInfo]:
    """Adapters with their addresses, DNS servers and default gateway."""
    adapters, ip_records, config_records = await asyncio.gather(
        query(executor, "network.adapters", ADAPTER_SCHEMA, action="Get-NetAdapter"),
        _optional_records(executor, "network.ip_addresses", mode=ExtractMode.LAST_LINE),
        _optional_records(executor, "network.ip_configuration"),
    )
    address_map = _address_map(ip_records)
    configs = _config_map(config_records)

    # Bluetooth PAN adapters report Disconnected while the radio is working
    bluetooth_up = False
    if any("bluetooth" in a.description.lower() for a in adapters):
        bluetooth_up = await _bluetooth_ok(executor)

    ip_lists = await asyncio.gather(
        *(_resolve_ips(ip_chain(a, address_map, configs), executor) for a in adapters)
    )

    result = []
    for adapter, ips in zip(adapters, ip_lists):
        status = adapter.status
        if bluetooth_up and "bluetooth" in adapter.description.lower():
            status = "Up"
        config = configs.get(adapter.interface_index, {})
        result.append(
            NetworkAdapterInfo(
                name=adapter.name,
                description=adapter.description,
                mac_address=adapter.mac_address,
                status=status,
                ip_addresses=ips,
                dns_servers=config.get("dns_servers", []),
                gateway=config.get("gateway", NOT_AVAILABLE),
            )
        )
    return result
