import json

import pytest

from stubs import StubExecutor, ok
from winadmin.cli import main, parse_params


def test_parse_params():
    assert parse_params(["log_name=System", "level=2", "force=true", "path=\\\\srv\\share"]) == {
        "log_name": "System",
        "level": 2,
        "force": True,
        "path": "\\\\srv\\share",
    }
    assert parse_params(["filter="]) == {"filter": ""}
    with pytest.raises(ValueError):
        parse_params(["no_separator"])


@pytest.fixture
def cli_stub(monkeypatch):
    stub = StubExecutor()
    monkeypatch.setattr("winadmin.core.executor.ProcessExecutor", lambda: stub)
    return stub


def test_list_operations(cli_stub, capsys):
    assert main(["--list"]) == 0
    out = capsys.readouterr().out
    assert "list_disks" in out
    assert "reset_ad_account_password" in out
    assert cli_stub.invocations == []


def test_run_operation_prints_json(cli_stub, capsys):
    cli_stub.script(
        "services.list",
        ok({"Name": "Spooler", "DisplayName": "Print Spooler", "Status": 4, "StartType": 2}),
    )
    assert main(["list_services"]) == 0
    assert json.loads(capsys.readouterr().out) == [
        {"name": "Spooler", "display_name": "Print Spooler", "status": "Running", "start_type": "Automatic"}
    ]


def test_operation_error_exit_code(cli_stub, capsys):
    assert main(["format_disk", "drive_letter=ZZ", "file_system=NTFS"]) == 1
    error = json.loads(capsys.readouterr().out)
    assert error["type"] == "operation_error"
    assert error["code"] == "invalid_argument"
    assert cli_stub.invocations == []


def test_unknown_operation(cli_stub, capsys):
    assert main(["defragment_everything"]) == 1
    assert json.loads(capsys.readouterr().out)["code"] == "unsupported_template"


def test_parse_params_keeps_text_fields_as_strings():
    from winadmin.operations.event_viewer import GetEventsArgs

    assert parse_params(["log_name=123", "level=2", "provider=null"], GetEventsArgs) == {
        "log_name": "123",
        "level": 2,
        "provider": "null",
    }


def test_numeric_username_reaches_operation_as_text(cli_stub, capsys):
    assert main(["delete_local_user", "username=123"]) == 0
    assert "Remove-LocalUser -Name '123' " in cli_stub.invocations[0].inline_script


def test_service_operation_by_name(cli_stub, capsys):
    assert main(["stop_service", "name=Spooler"]) == 0
    assert json.loads(capsys.readouterr().out) is None
    assert "Stop-Service -Name 'Spooler' -Force" in cli_stub.invocations[0].inline_script
