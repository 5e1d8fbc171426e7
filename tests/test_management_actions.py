"""State-changing operations of the simpler families: argument quoting and failures."""

import pytest

from stubs import StubExecutor, failed, ok
from winadmin.core.errors import ExternalToolFailed, InvalidArgument
from winadmin.operations.backup import (
    CreateRestorePointArgs,
    create_restore_point,
    list_restore_points,
)
from winadmin.operations.devices import DeviceArgs, disable_device, list_devices
from winadmin.operations.services import ServiceArgs, stop_service
from winadmin.operations.tasks import TaskArgs, enable_task, list_scheduled_tasks, run_task
from winadmin.operations.users import (
    AddLocalUserArgs,
    UsernameArgs,
    add_local_user,
    delete_local_user,
    list_local_users,
)


@pytest.mark.asyncio
async def test_add_local_user_keeps_password_literal(stub):
    await add_local_user(
        stub, AddLocalUserArgs(username="svc_backup", password="p@$$'w0rd`", full_name="")
    )
    script = stub.invocations[0].inline_script
    assert "ConvertTo-SecureString -String 'p@$$''w0rd`' -AsPlainText" in script
    assert "-Name 'svc_backup' -Password $Password -FullName '' -Description ''" in script


@pytest.mark.asyncio
async def test_add_local_user_requires_password(stub):
    with pytest.raises(InvalidArgument):
        await add_local_user(stub, AddLocalUserArgs(username="bob", password="  "))
    assert stub.invocations == []


@pytest.mark.asyncio
async def test_delete_local_user_failure():
    stub = StubExecutor({"users.delete": failed("Remove-LocalUser : User ghost was not found.")})
    with pytest.raises(ExternalToolFailed) as exc:
        await delete_local_user(stub, UsernameArgs(username="ghost"))
    assert "User ghost was not found." in str(exc.value)


@pytest.mark.asyncio
async def test_local_users_sid_wrapper():
    stub = StubExecutor(
        {
            "users.list": ok(
                {
                    "Name": "Administrator",
                    "Enabled": False,
                    "Description": "Built-in account",
                    "SID": {"BinaryLength": 28, "AccountDomainSid": None, "Value": "S-1-5-21-1-500"},
                }
            )
        }
    )
    (user,) = await list_local_users(stub, None)
    assert user.sid == "S-1-5-21-1-500"
    assert user.enabled is False
    assert user.full_name == ""


@pytest.mark.asyncio
async def test_task_path_gets_trailing_separator(stub):
    await enable_task(stub, TaskArgs(task_name="ScanTask", task_path="\\Vendor\\Updater"))
    await run_task(stub, TaskArgs(task_name="Daily Cleanup"))
    enable, run = (i.inline_script for i in stub.invocations)
    assert "-TaskName 'ScanTask' -TaskPath '\\Vendor\\Updater\\'" in enable
    assert "-TaskName 'Daily Cleanup' -TaskPath '\\'" in run


@pytest.mark.asyncio
async def test_scheduled_task_states():
    stub = StubExecutor(
        {
            "tasks.list": ok(
                [
                    {"TaskName": "A", "TaskPath": "\\", "State": 3, "LastTaskResult": 0},
                    {"TaskName": "B", "TaskPath": "\\Microsoft\\", "State": "Disabled", "NextRunTime": None},
                ]
            )
        }
    )
    a, b = await list_scheduled_tasks(stub, None)
    assert (a.state, a.last_result) == ("Ready", "0")
    assert (b.state, b.path, b.next_run_time) == ("Disabled", "\\Microsoft\\", "N/A")


@pytest.mark.asyncio
async def test_restore_points():
    stub = StubExecutor(
        {
            "backup.restore_points": ok(
                [
                    {
                        "SequenceNumber": 41,
                        "Description": "Windows Update",
                        "RestorePointType": 12,
                        "CreationTime": "20240301080000.000000-000",
                    },
                    {"SequenceNumber": 42, "Description": "Installed X", "RestorePointType": 99},
                ]
            )
        }
    )
    first, second = await list_restore_points(stub, None)
    assert first.restore_point_type == "MODIFY_SETTINGS"
    assert first.creation_time == "2024-03-01 08:00:00"
    assert second.restore_point_type == "Unknown(99)"
    assert second.creation_time == "N/A"


@pytest.mark.asyncio
async def test_create_restore_point_failure():
    stub = StubExecutor(
        {
            "backup.create_restore_point": failed(
                "Checkpoint-Computer : A new system restore point cannot be created because one has"
                " already been created within the past 1440 minutes."
            )
        }
    )
    with pytest.raises(ExternalToolFailed) as exc:
        await create_restore_point(stub, CreateRestorePointArgs(description="Before driver"))
    assert "1440 minutes" in str(exc.value)
    assert "-Description 'Before driver'" in stub.invocations[0].inline_script


@pytest.mark.asyncio
async def test_devices_and_disable():
    stub = StubExecutor(
        {
            "devices.list": ok(
                [
                    {"InstanceId": "USB\\VID_046D&PID_C52B\\5&1", "Class": "USB", "Status": "OK"},
                    {"FriendlyName": "orphan"},
                ]
            )
        }
    )
    (device,) = await list_devices(stub, None)
    assert device.name == "(Unknown)"
    await disable_device(stub, DeviceArgs(instance_id=device.instance_id))
    assert (
        "Disable-PnpDevice -InstanceId 'USB\\VID_046D&PID_C52B\\5&1' -Confirm:$false"
        in stub.invocations[-1].inline_script
    )


@pytest.mark.asyncio
async def test_stop_service_quotes_name(stub):
    await stop_service(stub, ServiceArgs(name="it's"))
    assert "Stop-Service -Name 'it''s' -Force" in stub.invocations[0].inline_script


@pytest.mark.asyncio
async def test_stop_service_refuses_wildcard_name(stub):
    with pytest.raises(InvalidArgument):
        await stop_service(stub, ServiceArgs(name="*"))
    assert stub.invocations == []
