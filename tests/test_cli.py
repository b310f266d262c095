"""Tests for CLI module - helpers and command behaviour."""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from modbus_layout.cli import app, connection_overrides, format_reading, parse_number
from modbus_layout.errors import ModbusIOError
from modbus_layout.form import ConnectionSettings
from modbus_layout.types import DeviceReading, Reading

runner = CliRunner()

VALID_FORM = {
    "kind": "device",
    "deviceBasics": {"name": "Boiler 1", "make": "Acme", "model": "B-100"},
    "connectionSetting": {"type": "tcp", "ip": "192.168.1.10", "port": "502", "slaveId": "1"},
    "registerRanges": [{"rangeName": "Main", "startRegister": 0, "length": 4, "functionCode": 3}],
    "parameters": [
        {"name": "temp", "dataType": "INT16", "registerRange": "Main", "bufferIndex": 0},
        {"name": "flow", "dataType": "FLOAT32", "registerRange": "Main", "bufferIndex": 2, "wordCount": 2, "byteOrder": "CDAB"},
    ],
}


@pytest.fixture
def form_file(tmp_path: Path) -> Path:
    path = tmp_path / "boiler.json"
    path.write_text(json.dumps(VALID_FORM))
    return path


@pytest.fixture
def invalid_form_file(tmp_path: Path) -> Path:
    raw = json.loads(json.dumps(VALID_FORM))
    raw["connectionSetting"]["ip"] = "999.1.1.1"
    raw["parameters"][1]["bufferIndex"] = 1
    path = tmp_path / "broken.json"
    path.write_text(json.dumps(raw))
    return path


# ============================================================================
# Helper Tests
# ============================================================================


class TestParseNumber:
    def test_integers(self) -> None:
        assert parse_number("42") == 42
        assert parse_number(" 0xFF ") == 255

    def test_float(self) -> None:
        assert parse_number("12.5") == 12.5

    def test_invalid(self) -> None:
        with pytest.raises(ValueError):
            parse_number("abc")


class TestFormatReading:
    def test_value_with_unit(self) -> None:
        assert format_reading(Reading(name="temp", value=23.5, unit="degC")) == "temp = 23.5 degC"

    def test_bool(self) -> None:
        assert format_reading(Reading(name="run", value=True)) == "run = true"

    def test_out_of_bounds(self) -> None:
        assert format_reading(Reading(name="p", value=120, out_of_bounds=True)) == "p = 120 [out of bounds]"

    def test_unparseable(self) -> None:
        reading = Reading(name="p", value=None, error="unparseable value")
        assert format_reading(reading) == "p = <unparseable value>"


def test_connection_overrides() -> None:
    rtu = ConnectionSettings(connection_type="rtu", serial_port="/dev/ttyS0")
    settings = connection_overrides(rtu, "10.0.0.9", 1502, 4)
    assert settings.is_tcp
    assert (settings.ip, settings.port, settings.slave_id) == ("10.0.0.9", "1502", "4")
    assert connection_overrides(rtu, None, None, None) is rtu


# ============================================================================
# Offline Commands
# ============================================================================


def test_validate_ok(form_file: Path) -> None:
    result = runner.invoke(app, ["validate", str(form_file)])
    assert result.exit_code == 0
    assert "OK: form is valid" in result.output


def test_validate_reports_errors(invalid_form_file: Path) -> None:
    result = runner.invoke(app, ["validate", str(invalid_form_file)])
    assert result.exit_code == 1
    assert "[connection] ip:" in result.output
    assert "[parameters] param_1_bufferIndex:" in result.output


def test_validate_json(invalid_form_file: Path) -> None:
    result = runner.invoke(app, ["validate", str(invalid_form_file), "--json"])
    assert result.exit_code == 1
    data = json.loads(result.stdout)
    assert data["isValid"] is False
    assert data["connection"][0]["field"] == "ip"


def test_validate_as_template_skips_connection(invalid_form_file: Path) -> None:
    raw = json.loads(invalid_form_file.read_text())
    raw["parameters"][1]["bufferIndex"] = 4
    raw["deviceBasics"]["deviceType"] = "Boiler"
    invalid_form_file.write_text(json.dumps(raw))
    result = runner.invoke(app, ["validate", str(invalid_form_file), "--kind", "template"])
    assert result.exit_code == 0


def test_validate_malformed_json(tmp_path: Path) -> None:
    path = tmp_path / "bad.json"
    path.write_text("{not json")
    result = runner.invoke(app, ["validate", str(path)])
    assert result.exit_code == 2
    assert "Invalid form" in result.output


def test_validate_missing_file(tmp_path: Path) -> None:
    result = runner.invoke(app, ["validate", str(tmp_path / "missing.json")])
    assert result.exit_code == 2


def test_layout_json(form_file: Path) -> None:
    result = runner.invoke(app, ["layout", str(form_file), "--json"])
    assert result.exit_code == 0
    rows = json.loads(result.stdout)
    assert rows[0]["byteCapacity"] == 8
    assert rows[0]["nextBufferIndex"] == 6
    assert [p["byteSpan"] for p in rows[0]["parameters"]] == [[0, 1], [2, 5]]


def test_layout_text(form_file: Path) -> None:
    result = runner.invoke(app, ["layout", str(form_file)])
    assert result.exit_code == 0
    assert "Main: fc 3, start 0, 4 registers (8 bytes), next index 6" in result.stdout
    assert "[2-5] flow FLOAT32 CDAB" in result.stdout


def test_next_index(form_file: Path) -> None:
    result = runner.invoke(app, ["next-index", str(form_file), "main"])
    assert result.exit_code == 0
    assert result.stdout.strip() == "6"


def test_next_index_unknown_range(form_file: Path) -> None:
    result = runner.invoke(app, ["next-index", str(form_file), "Other"])
    assert result.exit_code == 2
    assert "Unknown register range" in result.output


def test_place_next_free_index(form_file: Path) -> None:
    result = runner.invoke(app, ["place", str(form_file), "--name", "status", "--type", "UINT16", "--range", "Main"])
    assert result.exit_code == 0
    assert "OK: status fits at buffer index 6 in Main" in result.stdout


def test_place_overlap(form_file: Path) -> None:
    result = runner.invoke(
        app, ["place", str(form_file), "--name", "status", "--type", "INT32", "--range", "Main", "--index", "4"]
    )
    assert result.exit_code == 1
    assert "Conflict:" in result.output


def test_place_json_conflict(form_file: Path) -> None:
    result = runner.invoke(
        app, ["place", str(form_file), "-n", "temp", "--type", "INT16", "--range", "Main", "-i", "6", "--json"]
    )
    assert result.exit_code == 1
    data = json.loads(result.stdout)
    assert data["ok"] is False
    assert data["conflict"]["kind"] == "duplicate_name"
    assert data["conflict"]["field"] == "name"


def test_scale_equation() -> None:
    result = runner.invoke(app, ["scale", "100", "-e", "x * 1.8 + 32", "-d", "1"])
    assert result.exit_code == 0
    assert result.stdout.strip() == "212.0"


def test_scale_bitmask_and_bounds() -> None:
    result = runner.invoke(app, ["scale", "0x1234", "--bitmask", "0x00FF", "--max", "50", "--json"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["value"] == 0x34
    assert data["outOfBounds"] is True


def test_scale_bad_equation() -> None:
    result = runner.invoke(app, ["scale", "1", "-e", "y * 2"])
    assert result.exit_code == 2


def test_scale_runtime_failure() -> None:
    result = runner.invoke(app, ["scale", "0", "-e", "100 / x"])
    assert result.exit_code == 1
    assert "unparseable value" in result.output


def test_export_writes_payload(form_file: Path, tmp_path: Path) -> None:
    out = tmp_path / "payload.json"
    result = runner.invoke(app, ["export", str(form_file), "-o", str(out)])
    assert result.exit_code == 0
    payload = json.loads(out.read_text())
    assert payload["connectionSetting"]["port"] == 502
    assert payload["dataPoints"][0]["range"] == {"startAddress": 0, "count": 4, "fc": 3, "name": "Main"}


def test_export_refuses_invalid_form(invalid_form_file: Path) -> None:
    result = runner.invoke(app, ["export", str(invalid_form_file)])
    assert result.exit_code == 1
    assert "dataPoints" not in result.stdout


# ============================================================================
# Device Commands (with mocked reader)
# ============================================================================


@patch("modbus_layout.cli.read_device")
def test_read_command(mock_read: MagicMock, form_file: Path) -> None:
    mock_read.return_value = DeviceReading(
        device_id="Boiler 1",
        device_name="Boiler 1",
        readings=(
            Reading(name="temp", value=21, unit="degC"),
            Reading(name="flow", value=None, error="unparseable value"),
        ),
        timestamp="2024-01-01T00:00:00+00:00",
    )
    result = runner.invoke(app, ["read", str(form_file), "--unit-id", "5"])
    assert result.exit_code == 0
    assert "temp = 21 degC" in result.stdout
    assert "flow = <unparseable value>" in result.stdout
    settings = mock_read.call_args[1]["settings"]
    assert settings.slave_id == "5"
    assert settings.ip == "192.168.1.10"


@patch("modbus_layout.cli.read_device")
def test_read_command_json(mock_read: MagicMock, form_file: Path) -> None:
    mock_read.return_value = DeviceReading(device_id="dev-9", readings=(Reading(name="temp", value=21),))
    result = runner.invoke(app, ["read", str(form_file), "--device-id", "dev-9", "--json"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["deviceId"] == "dev-9"
    assert data["readings"][0]["value"] == 21
    assert mock_read.call_args[1]["device_id"] == "dev-9"


@patch("modbus_layout.cli.read_device")
def test_read_command_modbus_error(mock_read: MagicMock, form_file: Path) -> None:
    mock_read.side_effect = ModbusIOError("Failed to connect to 192.168.1.10:502")
    result = runner.invoke(app, ["read", str(form_file)])
    assert result.exit_code == 3
    assert "Connection/Modbus error" in result.output


@patch("modbus_layout.cli.ping_device")
def test_ping_with_host(mock_ping: MagicMock) -> None:
    mock_ping.return_value = True
    result = runner.invoke(app, ["ping", "--host", "192.168.1.10"])
    assert result.exit_code == 0
    assert "OK: Connected to 192.168.1.10:502" in result.stdout
    settings = mock_ping.call_args[0][0]
    assert settings.ip == "192.168.1.10"


@patch("modbus_layout.cli.ping_device")
def test_ping_with_form(mock_ping: MagicMock, form_file: Path) -> None:
    result = runner.invoke(app, ["ping", str(form_file), "--port", "1502"])
    assert result.exit_code == 0
    assert "OK: Connected to 192.168.1.10:1502" in result.stdout


def test_ping_requires_target() -> None:
    result = runner.invoke(app, ["ping"])
    assert result.exit_code == 2
    assert "--host is required" in result.output


def test_command_help() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("validate", "layout", "next-index", "place", "scale", "export", "read", "ping"):
        assert command in result.stdout


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "modbus-layout" in result.stdout
