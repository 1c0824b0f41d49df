"""Tests for CLI parsing functions and command wiring."""

from types import SimpleNamespace
from unittest.mock import patch

import pytest
import typer
from typer.testing import CliRunner

from esp_rom_flasher import cli
from esp_rom_flasher.core.parsing import parse_flash_params as parse_flash_params_core
from esp_rom_flasher.core.parsing import parse_offset as parse_offset_core
from esp_rom_flasher.core.results import OperationResult
from esp_rom_flasher.errors import ProtocolError
from esp_rom_flasher.header import GeometryOverride
from esp_rom_flasher.models.registry import ESP32C3_HEADER

runner = CliRunner()


class TestParseOffset:
    """Offsets are always hexadecimal."""

    def test_none_and_empty(self):
        assert parse_offset_core(None) == 0
        assert parse_offset_core("") == 0
        assert parse_offset_core("  ") == 0

    def test_bare_hex(self):
        assert parse_offset_core("1000") == 0x1000
        assert parse_offset_core("10000") == 0x10000
        assert parse_offset_core("ff") == 0xFF

    def test_prefix_and_suffix(self):
        assert parse_offset_core("0x1000") == 4096
        assert parse_offset_core("0X1000") == 4096
        assert parse_offset_core("1000h") == 4096
        assert parse_offset_core("1000H") == 4096

    @pytest.mark.parametrize("value", ["xyz", "0x", "h", "-100", "+100", "0xZZ"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_offset_core(value)

    def test_cli_wrapper_raises_bad_parameter(self):
        with pytest.raises(typer.BadParameter):
            cli.parse_offset("nothex")


class TestParseFlashParams:
    """MODE,FREQ,SIZE parsing against the ESP32-C3 tables."""

    def test_none(self):
        assert parse_flash_params_core(None, ESP32C3_HEADER) is None
        assert parse_flash_params_core("", ESP32C3_HEADER) is None

    def test_names(self):
        override = parse_flash_params_core("dio,80m,4MB", ESP32C3_HEADER)
        assert override == GeometryOverride(spi_mode=2, spi_speed=0xF, flash_size=2)

    def test_case_insensitive(self):
        override = parse_flash_params_core("DOUT,40M,16mb", ESP32C3_HEADER)
        assert override == GeometryOverride(spi_mode=3, spi_speed=0, flash_size=4)

    def test_keep_and_omitted_fields(self):
        override = parse_flash_params_core("keep,26m", ESP32C3_HEADER)
        assert override == GeometryOverride(spi_mode=None, spi_speed=1, flash_size=None)
        assert not override.is_complete

    def test_numeric_codes(self):
        override = parse_flash_params_core("0,0x2,3", ESP32C3_HEADER)
        assert override == GeometryOverride(spi_mode=0, spi_speed=2, flash_size=3)

    def test_code_out_of_range(self):
        with pytest.raises(ValueError, match="out of range"):
            parse_flash_params_core("dio,80m,16", ESP32C3_HEADER)

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="frequency"):
            parse_flash_params_core("dio,120m,4MB", ESP32C3_HEADER)

    def test_too_many_fields(self):
        with pytest.raises(ValueError):
            parse_flash_params_core("dio,80m,4MB,extra", ESP32C3_HEADER)

    def test_cli_wrapper_raises_bad_parameter(self):
        with pytest.raises(typer.BadParameter):
            cli.parse_flash_params("bogus", ESP32C3_HEADER)


class TestFlashCommand:
    """flash command wiring with the session replaced."""

    @pytest.fixture
    def calls(self, monkeypatch):
        recorded = []

        def fake_flash_image(port, image_path, **kwargs):
            recorded.append(SimpleNamespace(port=port, image_path=image_path, **kwargs))
            return OperationResult.success("flash", chip="ESP32-C3", bytes_len=16)

        monkeypatch.setattr(cli, "flash_image", fake_flash_image)
        return recorded

    def test_passes_options_through(self, calls):
        result = runner.invoke(
            cli.app,
            ["flash", "app.bin", "-p", "/dev/ttyUSB0", "-b", "460800", "-o", "10000", "--flash-param", "dio,80m,4MB"],
        )
        assert result.exit_code == 0, result.output
        (call,) = calls
        assert call.port == "/dev/ttyUSB0"
        assert call.image_path == "app.bin"
        assert call.baudrate == 460800
        assert call.flash_offset == 0x10000
        assert call.chip == "esp32c3"
        assert call.geometry_override == GeometryOverride(2, 0xF, 2)

    def test_defaults(self, calls):
        result = runner.invoke(cli.app, ["flash", "app.bin", "--port", "COM3"])
        assert result.exit_code == 0, result.output
        (call,) = calls
        assert call.baudrate == 115200
        assert call.flash_offset == 0
        assert call.geometry_override is None

    def test_missing_port(self, calls):
        result = runner.invoke(cli.app, ["flash", "app.bin"])
        assert result.exit_code == 1
        assert "--port" in result.output
        assert calls == []

    def test_unknown_chip(self, calls):
        result = runner.invoke(cli.app, ["flash", "app.bin", "-p", "COM3", "-c", "esp32s9"])
        assert result.exit_code == 1
        assert "Unknown chip" in result.output
        assert calls == []

    def test_bad_offset_is_usage_error(self, calls):
        result = runner.invoke(cli.app, ["flash", "app.bin", "-p", "COM3", "-o", "zz"])
        assert result.exit_code == 2
        assert calls == []

    def test_session_failure_exits_1(self, monkeypatch):
        def failing(port, image_path, **kwargs):
            raise ProtocolError("Unrecognized chip (detect register 0xDEADBEEF); refusing to flash")

        monkeypatch.setattr(cli, "flash_image", failing)
        result = runner.invoke(cli.app, ["flash", "app.bin", "-p", "COM3"])
        assert result.exit_code == 1
        assert "FAILED" in result.output


class TestOtherCommands:
    @pytest.mark.parametrize("command", ["info", "monitor", "mon"])
    def test_placeholders_succeed(self, command):
        result = runner.invoke(cli.app, [command, "-p", "COM3", "-b", "9600"])
        assert result.exit_code == 0, result.output

    def test_no_command_is_usage_error(self):
        result = runner.invoke(cli.app, [])
        assert result.exit_code != 0

    def test_unknown_command(self):
        result = runner.invoke(cli.app, ["erase"])
        assert result.exit_code == 2

    def test_list_chips(self):
        result = runner.invoke(cli.app, ["list-chips"])
        assert result.exit_code == 0
        assert "esp32c3" in result.output
        assert "ESP32-C3" in result.output

    def test_ports_lists_devices(self):
        fake = SimpleNamespace(device="/dev/ttyUSB0", name="ttyUSB0", description="CP2102")
        with patch("serial.tools.list_ports.comports", return_value=[fake]):
            result = runner.invoke(cli.app, ["ports"])
        assert result.exit_code == 0
        assert "/dev/ttyUSB0" in result.output

    def test_ports_none_found(self):
        with patch("serial.tools.list_ports.comports", return_value=[]):
            result = runner.invoke(cli.app, ["ports"])
        assert result.exit_code == 0
        assert "No serial ports" in result.output
