"""End-to-end tests for the secretr command entry point."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from pathlib import Path

import pytest

from secretr import cli
from secretr._errors import RetrievalError
from secretr._models import Attachment

WSDL = "https://ss.example/webservices/sswebservice.asmx?wsdl"


class RecordingOpener:
    """Replacement for ``open_secret_client`` that yields a fake client."""

    def __init__(self, client) -> None:
        self.client = client
        self.configs = []

    @asynccontextmanager
    async def __call__(self, config):
        self.configs.append(config)
        yield self.client


@pytest.fixture
def opener(monkeypatch: pytest.MonkeyPatch, fake_client_factory, secret_factory) -> RecordingOpener:
    for key in (
        "SECRETR_USERNAME",
        "SECRETR_PASSWORD",
        "SECRETR_WSDL",
        "SECRETR_ORGANIZATION",
        "SECRETR_DOMAIN",
        "SECRETR_CONCURRENCY",
    ):
        monkeypatch.delenv(key, raising=False)
    client = fake_client_factory(
        secrets={101: secret_factory(101, "db", Password="s3cret")},
        failures={202: RetrievalError("Access Denied")},
    )
    recording = RecordingOpener(client)
    monkeypatch.setattr(cli, "open_secret_client", recording)
    monkeypatch.setattr(cli, "_default_prompter", lambda: None)
    return recording


def test_direct_mode_prints_envelope_and_exits_zero(opener: RecordingOpener, capsys) -> None:
    code = cli.main("101", "202", username="alice", password="pw", wsdl=WSDL)

    captured = capsys.readouterr()
    envelope = json.loads(captured.out)
    assert code == 0
    assert [record["RetrievalStatus"] for record in envelope["Secrets"]] == ["Ok", "Error"]
    assert envelope["Secrets"][1] == {"Id": 202, "Error": "Access Denied", "RetrievalStatus": "Error"}
    assert "Error retrieving secret 202: Access Denied" in captured.err
    assert opener.configs[0].endpoint == "https://ss.example/webservices/SSWebService.asmx?WSDL"


def test_missing_endpoint_aborts_before_connecting(opener: RecordingOpener, capsys) -> None:
    code = cli.main("101", username="alice", password="pw")

    captured = capsys.readouterr()
    assert code == 1
    assert captured.out == ""
    assert "WSDL" in captured.err
    assert opener.configs == []


def test_environment_supplies_connection(
    opener: RecordingOpener, monkeypatch: pytest.MonkeyPatch, capsys
) -> None:
    monkeypatch.setenv("SECRETR_WSDL", WSDL)
    monkeypatch.setenv("SECRETR_USERNAME", "env-user")
    monkeypatch.setenv("SECRETR_PASSWORD", "env-pw")
    monkeypatch.setenv("SECRETR_DOMAIN", "corp")

    assert cli.main("101") == 0

    config = opener.configs[0]
    assert (config.username, config.password, config.domain) == ("env-user", "env-pw", "corp")
    assert json.loads(capsys.readouterr().out)["Secrets"][0]["Id"] == 101


def test_missing_credentials_without_terminal_fail(opener: RecordingOpener, capsys) -> None:
    assert cli.main("101", wsdl=WSDL) == 1
    assert "SECRETR_USERNAME is required" in capsys.readouterr().err
    assert opener.configs == []


def test_filter_projects_output(opener: RecordingOpener, capsys) -> None:
    code = cli.main("101", "202", username="a", password="b", wsdl=WSDL, filter_expression="Secrets[*].Id")

    assert code == 0
    assert json.loads(capsys.readouterr().out) == [101, 202]


def test_raw_filter_prints_plain_value(opener: RecordingOpener, capsys) -> None:
    code = cli.main(
        "101",
        username="a",
        password="b",
        wsdl=WSDL,
        filter_expression="Secrets[0].Items[?FieldName=='Password'].Value | [0]",
        raw=True,
    )

    assert code == 0
    assert capsys.readouterr().out == "s3cret\n"


def test_simple_mode_outputs_field_values(opener: RecordingOpener, capsys) -> None:
    assert cli.main("101", username="a", password="b", wsdl=WSDL, simple=True) == 0

    (record,) = json.loads(capsys.readouterr().out)["Secrets"]
    assert record == {"Name": "db", "Id": 101, "Items": {"Password": "s3cret"}, "RetrievalStatus": "Ok"}


def test_invalid_filter_is_rejected_before_connecting(opener: RecordingOpener, capsys) -> None:
    assert cli.main("101", username="a", password="b", wsdl=WSDL, filter_expression="Secrets[?") == 1
    assert "Invalid filter expression" in capsys.readouterr().err
    assert opener.configs == []


def test_fail_on_error_changes_exit_status(opener: RecordingOpener) -> None:
    assert cli.main("202", username="a", password="b", wsdl=WSDL) == 0
    assert cli.main("202", username="a", password="b", wsdl=WSDL, fail_on_error=True) == 1


@pytest.mark.parametrize(
    ("secret_ids", "kwargs", "message"),
    [
        pytest.param((), {}, "at least one secret identifier", id="nothing-requested"),
        pytest.param(("1",), {"config": Path("x.yaml")}, "cannot be combined", id="ids-and-config"),
        pytest.param(("1", "2"), {"attachment_name": "key"}, "exactly one", id="attachment-many"),
        pytest.param(("1",), {"outfile": Path("out.bin")}, "--outfile", id="outfile-alone"),
    ],
)
def test_invalid_mode_combinations(opener: RecordingOpener, capsys, secret_ids, kwargs, message) -> None:
    assert cli.main(*secret_ids, username="a", password="b", wsdl=WSDL, **kwargs) == 1
    assert message in capsys.readouterr().err
    assert opener.configs == []


def test_batch_mode_writes_each_secret(opener: RecordingOpener, tmp_path: Path, capsys) -> None:
    config = tmp_path / "secretr.yaml"
    config.write_text(
        f"wsdl: {WSDL}\n"
        "username: batch-user\n"
        "password: batch-pw\n"
        "secrets:\n"
        "  - id: 101\n"
        "    outfile: out/db.json\n"
        "  - id: 202\n"
        "    outfile: out/api.json\n",
        encoding="utf-8",
    )

    code = cli.main(config=config, pretty=True)

    captured = capsys.readouterr()
    assert code == 0
    assert captured.out == ""
    written = json.loads((tmp_path / "out" / "db.json").read_text(encoding="utf-8"))
    assert written["Id"] == 101
    assert written["RetrievalStatus"] == "Ok"
    assert not (tmp_path / "out" / "api.json").exists()
    assert opener.configs[0].username == "batch-user"


def test_flags_override_batch_file(opener: RecordingOpener, tmp_path: Path) -> None:
    config = tmp_path / "secretr.yaml"
    config.write_text(
        "wsdl: http://ignored/SSWebService.asmx?WSDL\n"
        "username: file-user\n"
        "password: file-pw\n"
        "secrets:\n"
        "  - id: 101\n"
        "    outfile: db.json\n",
        encoding="utf-8",
    )

    assert cli.main(config=config, wsdl=WSDL, username="flag-user") == 0

    connection = opener.configs[0]
    assert connection.endpoint.startswith("https://ss.example/")
    assert (connection.username, connection.password) == ("flag-user", "file-pw")


def test_attachment_is_written_to_outfile(
    opener: RecordingOpener, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    requested = []

    async def fetch_attachment(secret_id, field_name):
        requested.append((secret_id, field_name))
        return Attachment(file_name="id_rsa", content=b"PRIVATE KEY")

    monkeypatch.setattr(opener.client, "fetch_attachment", fetch_attachment)
    target = tmp_path / "id_rsa"

    code = cli.main("101", username="a", password="b", wsdl=WSDL, attachment_name="Private Key", outfile=target)

    assert code == 0
    assert requested == [(101, "Private Key")]
    assert target.read_bytes() == b"PRIVATE KEY"


def test_attachment_failure_is_reported(opener: RecordingOpener, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    async def fetch_attachment(secret_id, field_name):
        raise RetrievalError(f"Secret {secret_id} has no field named {field_name!r}")

    monkeypatch.setattr(opener.client, "fetch_attachment", fetch_attachment)

    assert cli.main("101", username="a", password="b", wsdl=WSDL, attachment_name="Key") == 1
    assert "has no field named 'Key'" in capsys.readouterr().err


def test_unicode_digit_identifier_becomes_error_record(opener: RecordingOpener, capsys) -> None:
    code = cli.main("²", "101", username="a", password="b", wsdl=WSDL)

    envelope = json.loads(capsys.readouterr().out)
    assert code == 0
    assert [record["Id"] for record in envelope["Secrets"]] == ["²", 101]
    assert [record["RetrievalStatus"] for record in envelope["Secrets"]] == ["Error", "Ok"]
    assert opener.client.calls == ["²", 101]
