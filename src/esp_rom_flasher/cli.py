"""
ESP ROM Flasher CLI

Command-line interface for flashing raw firmware images through the ROM loader.
"""

import sys
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.logging import RichHandler
from rich.progress import Progress, BarColumn, TextColumn

from esp_rom_flasher.core.parsing import (
    parse_offset as _parse_offset_core,
    parse_flash_params as _parse_flash_params_core,
)
from esp_rom_flasher.core.results import OperationResult
from esp_rom_flasher.errors import ConfigurationError, FlasherError
from esp_rom_flasher.header import GeometryOverride
from esp_rom_flasher.models import (
    DEFAULT_CHIP,
    HeaderVariant,
    build_default_registry,
)
from esp_rom_flasher.protocol import DEFAULT_BAUDRATE
from esp_rom_flasher.session import flash_image

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True)],
)
logger = logging.getLogger("esp_rom_flasher")

# Setup Rich console
console = Console()
err_console = Console(stderr=True)

app = typer.Typer(help="ESP ROM Flasher - write raw firmware images through the serial ROM loader")


def print_header(text: str) -> None:
    """Print fancy header."""
    console.print(Panel(text, expand=False, style="bold blue"))


def print_success(text: str) -> None:
    """Print success message."""
    console.print(f"✓ {text}", style="green")


def print_warning(text: str) -> None:
    """Print warning message."""
    console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    """Print error message."""
    err_console.print(f"❌ {text}", style="red")


def set_verbose(verbose: bool) -> None:
    if verbose:
        logger.setLevel(logging.DEBUG)


def parse_offset(value: Optional[str]) -> int:
    """
    Parse flash offset (hexadecimal).

    CLI wrapper around core.parsing.parse_offset that converts
    ValueError to typer.BadParameter for proper CLI error handling.
    """
    try:
        return _parse_offset_core(value)
    except ValueError as e:
        raise typer.BadParameter(str(e))


def parse_flash_params(value: Optional[str], variant: HeaderVariant) -> Optional[GeometryOverride]:
    """
    Parse --flash-param MODE,FREQ,SIZE.

    CLI wrapper around core.parsing.parse_flash_params that converts
    ValueError to typer.BadParameter.
    """
    try:
        return _parse_flash_params_core(value, variant)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--flash-param")


@app.command()
def flash(
    file: str = typer.Argument(..., help="Raw firmware image (.bin)"),
    port: Optional[str] = typer.Option(None, "--port", "-p", help="Serial port of the connected ESP MCU"),
    baud: int = typer.Option(DEFAULT_BAUDRATE, "--baud", "-b", help="Baudrate of the communication"),
    offset: Optional[str] = typer.Option(None, "--offset", "-o", help="Flash offset in hex (e.g. 0x10000)"),
    flash_param: Optional[str] = typer.Option(
        None,
        "--flash-param",
        help="Flash parameters MODE,FREQ,SIZE (e.g. dio,80m,4MB); 'keep' uses the value read from the chip",
    ),
    chip: str = typer.Option(DEFAULT_CHIP, "--chip", "-c", help="Chip type, currently support only esp32c3"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug messages during execution"),
) -> None:
    """
    Flash a raw binary image.

    SPI flash mode, frequency and size are read back from the chip and
    written into the image header unless --flash-param overrides them.

    Example:
        esp-rom-flasher flash app.bin --port /dev/ttyUSB0 --offset 0x0
    """
    set_verbose(verbose)

    if baud <= 0:
        raise typer.BadParameter(f"Invalid baudrate: {baud}", param_hint="--baud")
    flash_offset = parse_offset(offset)

    registry = build_default_registry()
    try:
        strategy = registry.strategy_for(chip)
        if not port:
            raise ConfigurationError("Missing required option --port")
    except ConfigurationError as e:
        print_error(str(e))
        raise typer.Exit(code=1)

    override = parse_flash_params(flash_param, strategy.header_variant)

    print_header(f"Flashing {file}")

    try:
        with Progress(
            TextColumn("[{task.description}]"),
            BarColumn(),
            TextColumn("[{task.percentage:.0f}%]"),
            console=console,
        ) as progress:
            task = progress.add_task("Writing flash...", total=None)

            def on_progress(written: int, total: int) -> None:
                progress.update(task, completed=written, total=total)

            result = flash_image(
                port,
                file,
                baudrate=baud,
                chip=chip,
                flash_offset=flash_offset,
                geometry_override=override,
                registry=registry,
                progress_cb=on_progress,
            )
    except FlasherError as e:
        failed = OperationResult.failure("flash", str(e), chip=strategy.header_variant.name, offset=flash_offset)
        err_console.print(failed.to_summary(), style="red")
        raise typer.Exit(code=1)

    for warning in result.warnings:
        print_warning(warning)
    console.print(result.to_summary())
    print_success("Flash complete")


@app.command()
def info(
    port: Optional[str] = typer.Option(None, "--port", "-p", help="Serial port of the connected ESP MCU"),
    baud: int = typer.Option(DEFAULT_BAUDRATE, "--baud", "-b", help="Baudrate of the communication"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug messages during execution"),
) -> None:
    """Show device information (not implemented yet)."""
    set_verbose(verbose)
    logger.debug("info command is not implemented; nothing to do")


@app.command()
def monitor(
    port: Optional[str] = typer.Option(None, "--port", "-p", help="Serial port of the connected ESP MCU"),
    baud: int = typer.Option(DEFAULT_BAUDRATE, "--baud", "-b", help="Baudrate of the communication"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug messages during execution"),
) -> None:
    """Open a serial monitor (not implemented yet)."""
    set_verbose(verbose)
    logger.debug("monitor command is not implemented; nothing to do")


app.command("mon", hidden=True)(monitor)


@app.command()
def ports() -> None:
    """List available serial ports."""
    import serial.tools.list_ports

    print_header("Available Serial Ports")

    ports_list = list(serial.tools.list_ports.comports())
    if not ports_list:
        print_warning("No serial ports found")
        return

    table = Table(title="Serial Ports")
    table.add_column("Port", style="cyan")
    table.add_column("Device", style="magenta")
    table.add_column("Description", style="green")

    for port in ports_list:
        table.add_row(port.device, port.name or "-", port.description or "-")

    console.print(table)


@app.command("list-chips")
def list_chips() -> None:
    """List chip tags accepted by --chip and chips the loader can identify."""
    registry = build_default_registry()
    print_header("Supported Chips")

    table = Table(title="Chip Tags")
    table.add_column("Tag", style="cyan")
    table.add_column("Header", style="green")
    table.add_column("Default", style="yellow")
    for tag in registry.tags():
        strategy = registry.strategy_for(tag)
        table.add_row(tag, strategy.header_variant.name, "✓" if tag == DEFAULT_CHIP else "")
    console.print(table)

    table = Table(title="Identifiable Chips")
    table.add_column("Chip", style="cyan")
    table.add_column("Detect values", style="magenta")
    table.add_column("Flashable", style="green")
    tag_variants = [registry.strategy_for(tag).header_variant for tag in registry.tags()]
    for profile in registry.profiles():
        table.add_row(
            profile.name,
            ", ".join(f"0x{v:08X}" for v in profile.magic_values),
            "yes" if profile.header_variant in tag_variants else "no",
        )
    console.print(table)


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(1)
    except FlasherError as e:
        err_console.print(f"\n[red bold]Fatal error:[/red bold] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
