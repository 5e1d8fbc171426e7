"""OperationRegistry: the error envelope every caller sees."""

import pytest
from pydantic import BaseModel

from stubs import StubExecutor, failed, ok
from winadmin.core.errors import Unavailable
from winadmin.operations import OPERATIONS, OperationError, OperationRegistry, OperationSpec
from winadmin.operations.base import NoArgs


class EchoArgs(BaseModel):
    value: int


async def echo(executor, args: EchoArgs):
    return args.value * 2


async def crash(executor, args):
    raise RuntimeError("unexpected")


async def unavailable(executor, args):
    raise Unavailable("Module missing", module="PSWindowsUpdate")


@pytest.fixture
def registry():
    return OperationRegistry(
        StubExecutor(),
        {
            "echo": OperationSpec("echo", echo, EchoArgs),
            "crash": OperationSpec("crash", crash, NoArgs),
            "unavailable": OperationSpec("unavailable", unavailable, NoArgs),
        },
    )


@pytest.mark.asyncio
async def test_success_returns_plain_value(registry):
    assert await registry.run("echo", value=21) == 42


@pytest.mark.asyncio
async def test_unknown_operation(registry):
    result = await registry.run("nope")
    assert isinstance(result, OperationError)
    assert result.code == "unsupported_template"
    assert result.type == "operation_error"


@pytest.mark.asyncio
async def test_argument_validation_error(registry):
    result = await registry.run("echo", value="not a number")
    assert isinstance(result, OperationError)
    assert result.code == "invalid_argument"
    assert result.error_type == "ValidationError"


@pytest.mark.asyncio
async def test_admin_error_keeps_kind_and_details(registry):
    result = await registry.run("unavailable")
    assert result.code == "unavailable"
    assert result.message == "Module missing"
    assert result.details == {"module": "PSWindowsUpdate"}


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_internal_error(registry):
    result = await registry.run("crash")
    assert result.code == "internal_error"
    assert result.error == "unexpected"
    assert result.error_type == "RuntimeError"


@pytest.mark.asyncio
async def test_format_disk_rejects_bad_letter_before_spawning():
    stub = StubExecutor()
    result = await OperationRegistry(stub).run("format_disk", drive_letter="ZZ", file_system="NTFS")
    assert isinstance(result, OperationError)
    assert result.code == "invalid_argument"
    assert "drive_letter" in result.error
    assert stub.invocations == []


@pytest.mark.asyncio
async def test_destructive_failure_carries_stderr_verbatim():
    stub = StubExecutor({"disks.format": failed("Format-Volume : Access denied (0x5)")})
    result = await OperationRegistry(stub).run("format_disk", drive_letter="E", file_system="ntfs")
    assert result.code == "external_tool_failed"
    assert "Format-Volume : Access denied (0x5)" in result.error
    assert result.details["exit_code"] == 1


def test_registered_operations_cover_every_family():
    expected = {
        "is_elevated",
        "require_admin",
        "list_disks",
        "get_disk_partitions",
        "analyze_recycle_bin",
        "clear_recycle_bin",
        "optimize_volume",
        "format_disk",
        "list_devices",
        "enable_device",
        "disable_device",
        "get_events",
        "clear_event_log",
        "get_hardware_info",
        "list_network_adapters",
        "list_processes",
        "terminate_process",
        "restart_computer",
        "shutdown_computer",
        "get_system_usage",
        "list_services",
        "start_service",
        "stop_service",
        "list_local_users",
        "list_local_groups",
        "add_local_user",
        "delete_local_user",
        "list_firewall_rules",
        "get_antivirus_status",
        "list_shares",
        "create_share",
        "delete_share",
        "list_scheduled_tasks",
        "enable_task",
        "disable_task",
        "run_task",
        "list_restore_points",
        "create_restore_point",
        "list_installed_updates",
        "search_available_updates",
        "install_defender_updates",
        "install_pswindowsupdate_module",
        "install_windows_updates",
        "get_ad_computer_info",
        "get_logged_in_user_info",
        "force_gp_update",
        "search_ad_users",
        "search_ad_computers",
        "search_ad_groups",
        "get_ad_group_members",
        "get_ad_principal_group_membership",
        "enable_ad_account",
        "disable_ad_account",
        "unlock_ad_account",
        "reset_ad_account_password",
    }
    assert expected <= set(OPERATIONS)


@pytest.mark.asyncio
async def test_list_services_through_registry():
    stub = StubExecutor(
        {
            "services.list": ok(
                [
                    {"Name": "Spooler", "DisplayName": "Print Spooler", "Status": 4, "StartType": 2},
                    {"Name": "wuauserv", "Status": "Stopped", "StartType": 9},
                ]
            )
        }
    )
    services = await OperationRegistry(stub).run("list_services")
    assert services[0].model_dump() == {
        "name": "Spooler",
        "display_name": "Print Spooler",
        "status": "Running",
        "start_type": "Automatic",
    }
    assert services[1].display_name == "Unknown Display Name"
    assert services[1].status == "Stopped"
    assert services[1].start_type == "Unknown(9)"


@pytest.mark.asyncio
async def test_operation_parameter_called_name():
    stub = StubExecutor()
    assert await OperationRegistry(stub).run("stop_service", name="Spooler") is None
    (invocation,) = stub.invocations
    assert "Stop-Service -Name 'Spooler' -Force" in invocation.inline_script


@pytest.mark.asyncio
async def test_service_wildcards_rejected_before_spawning():
    stub = StubExecutor()
    registry = OperationRegistry(stub)
    for pattern in ("*", "Spool?r", "[ab]its"):
        result = await registry.run("stop_service", name=pattern)
        assert isinstance(result, OperationError)
        assert result.code == "invalid_argument"
    result = await registry.run("start_service", name="win*")
    assert result.code == "invalid_argument"
    assert stub.invocations == []
