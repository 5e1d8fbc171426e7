import pytest

from stubs import StubExecutor, failed, ok
from winadmin.core.errors import ExternalToolFailed, InvalidArgument
from winadmin.core.invocation import Interpreter
from winadmin.operations.shares import (
    CreateShareArgs,
    DeleteShareArgs,
    create_share,
    delete_share,
    list_shares,
    parse_net_use,
)

NET_USE = """Active code page: 65001
New connections will be remembered.


Status       Local     Remote                    Network

-------------------------------------------------------------------------------
OK           Z:        \\\\fileserver\\projects    Microsoft Windows Network
Unavailable  Y:        \\\\nas\\backup             Microsoft Windows Network
             \\\\printsrv\\IPC$                   Microsoft Windows Network
The command completed successfully.
"""


def test_parse_net_use():
    shares = parse_net_use(NET_USE)
    assert [(s.name, s.path, s.state) for s in shares] == [
        ("Z:", "\\\\fileserver\\projects", "Online"),
        ("Y:", "\\\\nas\\backup", "Unavailable"),
    ]
    assert shares[0].description == "Network drive on fileserver"


@pytest.mark.asyncio
async def test_list_shares_merges_sources_without_duplicates():
    stub = StubExecutor(
        {
            "shares.net_use": ok(raw=NET_USE),
            "shares.wmi_network_disks": ok(
                [
                    {"DeviceID": "Z:", "ProviderName": "\\\\fileserver\\projects", "DriveType": 4},
                    {"DeviceID": "X:", "ProviderName": "\\\\fileserver\\home", "DriveType": 4},
                ]
            ),
            "shares.network_places": ok(
                [
                    {"Name": "Projects", "Path": "\\\\FILESERVER\\projects\\", "Type": "Network Shortcut"},
                    {"Name": "Wiki", "Path": "\\\\intranet\\wiki", "Type": "Network Location"},
                ]
            ),
            "shares.typed_paths": ok(
                {"Name": "\\\\intranet\\wiki", "Path": "\\\\intranet\\wiki", "Type": "Recent Network"}
            ),
            "shares.network_neighbourhood": failed("System error 6118 has occurred."),
            "shares.explorer_history": ok(
                [{"Name": "\\\\old\\stuff", "Path": "\\\\old\\stuff", "Type": "Explorer History"}]
            ),
        }
    )
    shares = await list_shares(stub, None)
    assert [(s.name, s.state) for s in shares] == [
        ("Z:", "Online"),
        ("Y:", "Unavailable"),
        ("X:", "Online"),
        ("Wiki", "Online"),
        ("\\\\old\\stuff", "Historical"),
    ]
    mapped = shares[2]
    assert mapped.share_type == "Network Drive"
    assert mapped.description == "Network drive on fileserver"
    net_use = stub.invocations_of("shares.net_use")[0]
    assert net_use.interpreter is Interpreter.CMD


@pytest.mark.asyncio
async def test_create_share_maps_drive_with_net_use(stub):
    await create_share(stub, CreateShareArgs(drive_name="z:", path="\\\\srv\\data"))
    assert stub.calls == ["shares.drive_exists", "shares.map"]
    (mapping,) = stub.invocations_of("shares.map")
    assert mapping.arguments == ("net.exe", "use", "Z:", "\\\\srv\\data", "/persistent:yes")
    assert "-Name Z " in stub.invocations_of("shares.drive_exists")[0].inline_script


@pytest.mark.asyncio
async def test_create_share_refuses_used_drive():
    stub = StubExecutor({"shares.drive_exists": ok({"Name": "Z"})})
    with pytest.raises(InvalidArgument):
        await create_share(stub, CreateShareArgs(drive_name="Z:", path="\\\\srv\\data"))
    assert "shares.map" not in stub.calls


@pytest.mark.asyncio
async def test_create_share_rejects_non_unc_path_before_spawn(stub):
    with pytest.raises(InvalidArgument):
        await create_share(stub, CreateShareArgs(drive_name="Z:", path="C:\\data"))
    assert stub.invocations == []


@pytest.mark.asyncio
async def test_delete_share_reports_stderr_verbatim():
    stderr = "System error 2250 has occurred.\r\n\r\nThe network connection could not be found.\r\n"
    stub = StubExecutor({"shares.drive_exists": ok({"Name": "Z"}), "shares.unmap": failed(stderr, 2)})
    with pytest.raises(ExternalToolFailed) as exc:
        await delete_share(stub, DeleteShareArgs(drive_name="Z:"))
    assert exc.value.stderr == stderr
    assert exc.value.exit_code == 2
    assert stub.invocations_of("shares.unmap")[0].arguments == ("net.exe", "use", "Z:", "/delete", "/y")


@pytest.mark.asyncio
async def test_delete_share_of_unmapped_drive(stub):
    with pytest.raises(InvalidArgument):
        await delete_share(stub, DeleteShareArgs(drive_name="Q:"))
    assert "shares.unmap" not in stub.calls
