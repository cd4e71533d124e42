"""Tests for CLI commands: argument handling, output formats and exit codes (mocked client)."""

import json
from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from modbus_cli.cli import app, colors_enabled, exit_code
from modbus_cli.errors import ConflictError, ModbusIOError, ValidationError
from modbus_cli.types import RtuEndpoint, TcpEndpoint

runner = CliRunner()


@pytest.fixture
def mock_client() -> Iterator[MagicMock]:
    """Patch ModbusClient; the mock keeps the real resolved endpoint and unit id."""
    with patch("modbus_cli.cli.ModbusClient") as client_class:
        client = MagicMock()
        client.last_response_at = None

        def build(endpoint, unit_id=1, **kwargs):
            client.endpoint = endpoint
            client.unit_id = unit_id
            return client

        client_class.side_effect = build
        client.factory = client_class
        yield client


def json_lines(output: str) -> list[dict]:
    return [json.loads(line) for line in output.splitlines() if line.startswith("{")]


# ============================================================================
# Helpers
# ============================================================================


class TestHelpers:
    def test_exit_codes(self) -> None:
        assert exit_code(ModbusIOError("timeout")) == 3
        assert exit_code(ValidationError("bad")) == 2
        assert exit_code(ConflictError(502, 503)) == 2
        assert exit_code(RuntimeError("?")) == 4

    def test_no_color_flag(self) -> None:
        assert colors_enabled(True) is False

    def test_no_color_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NO_COLOR", "1")
        assert colors_enabled(False) is False


def test_command_help() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ["rc", "rdi", "rhr", "rir", "wsc", "wmc", "wsr", "wmr", "mwr", "rwmr", "scan"]:
        assert name in result.stdout


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "modbus-cli" in result.stdout


# ============================================================================
# Reads
# ============================================================================


class TestReadCommands:
    def test_rhr_human(self, mock_client: MagicMock) -> None:
        mock_client.read_holding_registers.return_value = b"\x00\x2a\x00\x2b"

        result = runner.invoke(app, ["rhr", "192.168.1.10", "0", "2"])

        assert result.exit_code == 0
        assert "Hostname: 192.168.1.10:502, Unit ID: 1" in result.stdout
        assert "Offset (hex)" in result.stdout
        assert "00000000\t00 2A 00 2B .." in result.stdout
        mock_client.read_holding_registers.assert_called_once_with(0, 2)
        mock_client.close.assert_called_once()

    def test_rhr_json(self, mock_client: MagicMock) -> None:
        mock_client.read_holding_registers.return_value = b"\x00\x2a"

        result = runner.invoke(app, ["--format", "json", "rhr", "tcp:plc:5020", "100", "1", "--unit-id", "9"])

        assert result.exit_code == 0
        info, table = json_lines(result.stdout)
        assert info["message"] == "Hostname: plc:5020, Unit ID: 9"
        assert table["type"] == "register_table"
        assert table["start_address"] == 100
        assert table["data"] == [0, 42]
        mock_client.factory.assert_called_once()
        assert mock_client.factory.call_args[0][0] == TcpEndpoint("plc", 5020)

    def test_rir(self, mock_client: MagicMock) -> None:
        mock_client.read_input_registers.return_value = b"\xff\xff"
        result = runner.invoke(app, ["-f", "json", "rir", "plc", "3", "1"])
        assert result.exit_code == 0
        assert json_lines(result.stdout)[-1]["data"] == [255, 255]
        mock_client.read_input_registers.assert_called_once_with(3, 1)

    def test_rc_quiet(self, mock_client: MagicMock) -> None:
        mock_client.read_coils.return_value = b"\x05"

        result = runner.invoke(app, ["-q", "--format", "json", "rc", "plc", "0", "3"])

        assert result.exit_code == 0
        (table,) = json_lines(result.stdout)
        assert table["type"] == "coil_table"
        assert table["data"] == [True, False, True]

    def test_rdi_human(self, mock_client: MagicMock) -> None:
        mock_client.read_discrete_inputs.return_value = b"\x01"
        result = runner.invoke(app, ["rdi", "plc", "8", "2"])
        assert result.exit_code == 0
        assert "0x0008     1 0 . . . . . ." in result.stdout

    def test_polling(self, mock_client: MagicMock) -> None:
        mock_client.read_holding_registers.return_value = b"\x00\x01"

        result = runner.invoke(
            app, ["--format", "json", "rhr", "plc", "0", "1", "--count", "3", "--interval", "0"]
        )

        assert result.exit_code == 0
        tables = [r for r in json_lines(result.stdout) if r["type"] == "register_table"]
        assert [t["iteration"] for t in tables] == [1, 2, 3]
        assert mock_client.read_holding_registers.call_count == 3
        mock_client.close.assert_called_once()

    def test_polling_keeps_going_after_error(self, mock_client: MagicMock) -> None:
        mock_client.read_coils.side_effect = [ModbusIOError("timeout"), b"\x01"]

        result = runner.invoke(app, ["--format", "json", "rc", "plc", "0", "1", "-c", "2", "-i", "0"])

        assert result.exit_code == 0
        assert mock_client.read_coils.call_count == 2
        assert "timeout" in result.output

    def test_modbus_error_exit_code(self, mock_client: MagicMock) -> None:
        mock_client.read_holding_registers.side_effect = ModbusIOError("Illegal data address")

        result = runner.invoke(app, ["rhr", "plc", "0", "1"])

        assert result.exit_code == 3
        assert "Illegal data address" in result.output
        mock_client.close.assert_called_once()

    def test_connect_failure_exit_code(self, mock_client: MagicMock) -> None:
        mock_client.connect.side_effect = ModbusIOError("Failed to connect to plc:502")
        result = runner.invoke(app, ["rhr", "plc", "0", "1"])
        assert result.exit_code == 3
        mock_client.read_holding_registers.assert_not_called()


# ============================================================================
# Writes
# ============================================================================


class TestWriteCommands:
    def test_wsc(self, mock_client: MagicMock) -> None:
        result = runner.invoke(app, ["wsc", "plc", "12", "on"])
        assert result.exit_code == 0
        mock_client.write_single_coil.assert_called_once_with(12, True)
        assert "Wrote coil 12 = true" in result.stdout

    def test_wsc_invalid_value(self, mock_client: MagicMock) -> None:
        result = runner.invoke(app, ["wsc", "plc", "12", "maybe"])
        assert result.exit_code == 2
        assert "true/false, 1/0, or on/off" in result.output
        mock_client.factory.assert_not_called()

    def test_wsr_hex(self, mock_client: MagicMock) -> None:
        result = runner.invoke(app, ["wsr", "plc", "7", "0x04D2"])
        assert result.exit_code == 0
        mock_client.write_single_register.assert_called_once_with(7, 0x04D2)

    def test_wsr_negative(self, mock_client: MagicMock) -> None:
        # Use -- so -1 is not parsed as an option
        result = runner.invoke(app, ["wsr", "plc", "7", "--", "-1"])
        assert result.exit_code == 0
        mock_client.write_single_register.assert_called_once_with(7, 0xFFFF)

    def test_wsr_out_of_range(self, mock_client: MagicMock) -> None:
        result = runner.invoke(app, ["wsr", "plc", "7", "65536"])
        assert result.exit_code == 2
        mock_client.write_single_register.assert_not_called()

    def test_wmc(self, mock_client: MagicMock) -> None:
        result = runner.invoke(app, ["wmc", "plc", "0", "3", "1,0,true"])
        assert result.exit_code == 0
        mock_client.write_multiple_coils.assert_called_once_with(0, [True, False, True])

    def test_wmc_count_mismatch(self, mock_client: MagicMock) -> None:
        result = runner.invoke(app, ["wmc", "plc", "0", "3", "1,0"])
        assert result.exit_code == 2
        assert "number of values (2) does not match quantity (3)" in result.output

    def test_wmr(self, mock_client: MagicMock) -> None:
        result = runner.invoke(app, ["wmr", "plc", "10", "3", "1,0x10,65535"])
        assert result.exit_code == 0
        mock_client.write_multiple_registers.assert_called_once_with(10, [1, 16, 65535])

    def test_mwr(self, mock_client: MagicMock) -> None:
        result = runner.invoke(app, ["mwr", "plc", "4", "FF00", "0x00F0"])
        assert result.exit_code == 0
        mock_client.mask_write_register.assert_called_once_with(4, 0xFF00, 0x00F0)

    def test_mwr_invalid_mask(self, mock_client: MagicMock) -> None:
        result = runner.invoke(app, ["mwr", "plc", "4", "zz", "0"])
        assert result.exit_code == 2
        assert "Invalid hex value" in result.output

    def test_rwmr(self, mock_client: MagicMock) -> None:
        mock_client.read_write_multiple_registers.return_value = b"\x00\x01\x00\x02"

        result = runner.invoke(app, ["--format", "json", "rwmr", "plc", "0", "2", "100", "2", "5,0x06"])

        assert result.exit_code == 0
        mock_client.read_write_multiple_registers.assert_called_once_with(0, 2, 100, [5, 6])
        assert json_lines(result.stdout)[-1]["data"] == [0, 1, 0, 2]

    def test_rwmr_count_mismatch(self, mock_client: MagicMock) -> None:
        result = runner.invoke(app, ["rwmr", "plc", "0", "2", "100", "2", "5"])
        assert result.exit_code == 2
        assert "number of write values (1) does not match quantity (2)" in result.output


# ============================================================================
# Scan
# ============================================================================


class TestScanCommand:
    def test_scan_json(self, mock_client: MagicMock) -> None:
        mock_client.read_holding_registers.side_effect = lambda address, count: bytes(2 * count)

        result = runner.invoke(app, ["--format", "json", "scan", "plc", "0", "10", "--size", "4", "--step", "2"])

        assert result.exit_code == 0
        scan_record = json_lines(result.stdout)[-1]
        assert scan_record["type"] == "scan_results"
        assert [r["address"] for r in scan_record["results"]] == list(range(10))
        assert all(r["identical"] for r in scan_record["results"])
        assert [c.args for c in mock_client.read_holding_registers.call_args_list] == [
            (0, 4), (2, 4), (4, 4), (6, 4), (8, 2),
        ]

    def test_scan_defaults(self, mock_client: MagicMock) -> None:
        mock_client.read_holding_registers.side_effect = lambda address, count: bytes(2 * count)

        result = runner.invoke(app, ["scan", "plc", "0", "25", "--no-partial"])

        assert result.exit_code == 0
        assert [c.args for c in mock_client.read_holding_registers.call_args_list] == [(0, 10), (10, 10)]
        assert "Values (hex, 2 bytes each)" in result.stdout

    @pytest.mark.parametrize(
        "args, message",
        [
            (["--size", "0"], "window size must be >= 1, got 0"),
            (["--size", "-3"], "window size must be >= 1, got -3"),
            (["--step", "0"], "step must be >= 1, got 0"),
        ],
    )
    def test_scan_bad_window_rejected_before_connecting(self, mock_client: MagicMock, args, message) -> None:
        mock_client.connect.side_effect = ModbusIOError("Failed to connect to plc:502")

        result = runner.invoke(app, ["--no-color", "scan", "plc", "0", "10", *args])

        assert result.exit_code == 2
        assert message in result.output
        mock_client.factory.assert_not_called()
        mock_client.connect.assert_not_called()

    def test_scan_end_before_start(self, mock_client: MagicMock) -> None:
        result = runner.invoke(app, ["scan", "plc", "10", "5"])
        assert result.exit_code == 2
        mock_client.factory.assert_not_called()

    def test_scan_failure_aborts(self, mock_client: MagicMock) -> None:
        mock_client.read_holding_registers.side_effect = [bytes(20), ModbusIOError("Illegal data address")]

        result = runner.invoke(app, ["--format", "json", "scan", "plc", "0", "30"])

        assert result.exit_code == 3
        assert not any(r["type"] == "scan_results" for r in json_lines(result.stdout))


# ============================================================================
# Endpoints and configuration
# ============================================================================


class TestEndpointOptions:
    def test_port_conflict(self, mock_client: MagicMock) -> None:
        result = runner.invoke(app, ["rhr", "tcp:plc:5020", "0", "1", "--port", "502"])
        assert result.exit_code == 2
        assert "TCP port mismatch" in result.output
        mock_client.factory.assert_not_called()

    def test_unsupported_scheme(self, mock_client: MagicMock) -> None:
        result = runner.invoke(app, ["rhr", "udp://plc", "0", "1"])
        assert result.exit_code == 2
        assert "expected tcp or rtu" in result.output

    def test_rtu_rejects_port(self, mock_client: MagicMock) -> None:
        result = runner.invoke(app, ["rhr", "rtu:/dev/ttyUSB0", "0", "1", "--port", "502"])
        assert result.exit_code == 2
        assert "only valid for TCP" in result.output

    def test_rtu_serial_options(self, mock_client: MagicMock) -> None:
        mock_client.read_holding_registers.return_value = b"\x00\x00"

        result = runner.invoke(
            app,
            ["rhr", "rtu:COM3", "0", "1", "--baud", "19200", "--parity", "E", "--data-bits", "7", "--stop-bits", "2"],
        )

        assert result.exit_code == 0
        assert "Serial Port: COM3, Unit ID: 1" in result.stdout
        endpoint = mock_client.factory.call_args[0][0]
        serial = mock_client.factory.call_args[1]["serial"]
        assert endpoint == RtuEndpoint("COM3")
        assert (serial.baudrate, serial.data_bits, serial.parity, serial.stop_bits) == (19200, 7, "E", 2)

    def test_environment_defaults(self, mock_client: MagicMock) -> None:
        mock_client.read_holding_registers.return_value = b"\x00\x00"

        result = runner.invoke(
            app,
            ["rhr", "plc", "0", "1"],
            env={"MODBUS_CLI_PORT": "1502", "MODBUS_CLI_UNIT_ID": "4", "MODBUS_CLI_FORMAT": "json"},
        )

        assert result.exit_code == 0
        info = json_lines(result.stdout)[0]
        assert info["message"] == "Hostname: plc:1502, Unit ID: 4"
