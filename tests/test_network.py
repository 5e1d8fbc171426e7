import pytest

from stubs import StubExecutor, failed, ok
from winadmin.operations.network import list_network_adapters

ETHERNET = {
    "Name": "Ethernet",
    "InterfaceDescription": "Intel(R) Ethernet Connection",
    "MacAddress": "00-11-22-33-44-55",
    "Status": "Up",
    "InterfaceIndex": 12,
}
WIFI = {
    "Name": "Wi-Fi",
    "InterfaceDescription": "Intel(R) Wi-Fi 6",
    "MacAddress": "66-77-88-99-AA-BB",
    "Status": "Disconnected",
    "InterfaceIndex": 7,
}
BLUETOOTH = {
    "Name": "Bluetooth Network Connection",
    "InterfaceDescription": "Bluetooth Device (Personal Area Network)",
    "Status": "Disconnected",
    "InterfaceIndex": 9,
}


@pytest.mark.asyncio
async def test_addresses_dns_and_gateway_are_attached():
    stub = StubExecutor(
        {
            "network.adapters": ok([ETHERNET, WIFI]),
            "network.ip_addresses": ok(
                raw="WARNING: partial data\n"
                '[{"InterfaceIndex":12,"IPAddress":"fe80::1","AddressFamily":23},'
                '{"InterfaceIndex":12,"IPAddress":"2001:db8::5","AddressFamily":23},'
                '{"InterfaceIndex":12,"IPAddress":"192.168.1.20","AddressFamily":2}]'
            ),
            "network.ip_configuration": ok(
                [
                    {
                        "InterfaceIndex": 12,
                        "IPAddress": ["192.168.1.20"],
                        "DNSServer": ["192.168.1.1", "8.8.8.8"],
                        "Gateway": "192.168.1.1",
                    }
                ]
            ),
        }
    )
    ethernet, wifi = await list_network_adapters(stub, None)
    assert ethernet.ip_addresses == ["192.168.1.20", "2001:db8::5"]
    assert ethernet.dns_servers == ["192.168.1.1", "8.8.8.8"]
    assert ethernet.gateway == "192.168.1.1"
    assert wifi.ip_addresses == []
    assert wifi.gateway == "N/A"
    # Disconnected adapters are never queried individually
    assert "network.direct_ip" not in stub.calls


@pytest.mark.asyncio
async def test_up_adapter_falls_back_to_direct_query():
    stub = StubExecutor(
        {
            "network.adapters": ok(ETHERNET),
            "network.ip_addresses": failed("Get-NetIPAddress : Access denied"),
            "network.ip_configuration": ok(raw=""),
            "network.direct_ip": ok(["10.0.0.4"]),
        }
    )
    (ethernet,) = await list_network_adapters(stub, None)
    assert ethernet.ip_addresses == ["10.0.0.4"]
    (direct,) = stub.invocations_of("network.direct_ip")
    assert "-InterfaceIndex 12" in direct.inline_script
    assert "network.gateway_ip" not in stub.calls


@pytest.mark.asyncio
async def test_bluetooth_status_is_corrected_from_pnp_state():
    stub = StubExecutor(
        {
            "network.adapters": ok([BLUETOOTH]),
            "network.bluetooth_status": ok([{"Status": "Unknown"}, {"Status": "OK"}]),
        }
    )
    (adapter,) = await list_network_adapters(stub, None)
    assert adapter.status == "Up"
    assert adapter.mac_address == "N/A"


@pytest.mark.asyncio
async def test_bluetooth_status_kept_when_radio_is_off():
    stub = StubExecutor(
        {
            "network.adapters": ok([BLUETOOTH]),
            "network.bluetooth_status": ok([{"Status": "Error"}]),
        }
    )
    (adapter,) = await list_network_adapters(stub, None)
    assert adapter.status == "Disconnected"
