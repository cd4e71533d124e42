#!/usr/bin/env python3
"""Command-line Modbus TCP/RTU client using Typer."""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

import typer
from typing_extensions import Annotated

from . import __version__  # type: ignore
from .client import ModbusClient, SerialSettings
from .endpoint import parse_endpoint
from .errors import ModbusCliError, ModbusIOError, ValidationError
from .render import OutputContext
from .scan import scan as scan_registers
from .session import Action, run_once, run_polling
from .types import OutputFormat, OutputOptions
from .values import parse_coil, parse_coil_list, parse_hex, parse_register, parse_register_list, to_word

app = typer.Typer(
    name="modbus",
    help="Modbus TCP/RTU client: read, write and scan registers and coils.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

EXIT_INVALID = 2
EXIT_MODBUS = 3
EXIT_UNEXPECTED = 4

# ============================================================================
# Shared options and helpers
# ============================================================================

EndpointArgument = Annotated[
    str,
    typer.Argument(
        help="Endpoint (hostname, tcp:hostname[:port], tcp://hostname[:port], rtu:/dev/ttyUSB0, rtu:COM3)",
    ),
]
AddressArgument = Annotated[int, typer.Argument(help="Starting address", min=0, max=0xFFFF)]
PortOption = Annotated[
    Optional[int],
    typer.Option("--port", "-p", help="TCP port number (default: 502)", envvar="MODBUS_CLI_PORT"),
]
UnitIdOption = Annotated[
    int,
    typer.Option("--unit-id", "-u", help="Modbus unit ID", envvar="MODBUS_CLI_UNIT_ID", min=0, max=255),
]
TimeoutOption = Annotated[
    float,
    typer.Option("--timeout", "-t", help="Request timeout in seconds", envvar="MODBUS_CLI_TIMEOUT"),
]
BaudOption = Annotated[int, typer.Option("--baud", help="Serial baud rate")]
DataBitsOption = Annotated[int, typer.Option("--data-bits", help="Serial data bits (5, 6, 7, 8)")]
ParityOption = Annotated[str, typer.Option("--parity", help="Serial parity (N, E, O)")]
StopBitsOption = Annotated[int, typer.Option("--stop-bits", help="Serial stop bits (1, 2)")]
CountOption = Annotated[
    int,
    typer.Option("--count", "-c", help="Number of times to repeat (0 = until interrupted)", min=0),
]
IntervalOption = Annotated[
    float,
    typer.Option("--interval", "-i", help="Interval between reads in seconds", min=0.0),
]


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbose flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if not verbose else "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def colors_enabled(no_color: bool) -> bool:
    """Colors only for a terminal, and never with --no-color or NO_COLOR set."""
    if no_color or os.environ.get("NO_COLOR"):
        return False
    return sys.stdout.isatty()


def exit_code(error: BaseException) -> int:
    if isinstance(error, ModbusIOError):
        return EXIT_MODBUS
    if isinstance(error, ModbusCliError):
        return EXIT_INVALID
    return EXIT_UNEXPECTED


def get_output(ctx: typer.Context) -> OutputContext:
    options = ctx.obj if isinstance(ctx.obj, OutputOptions) else OutputOptions()
    return OutputContext.create(options)


@contextmanager
def validating(output: OutputContext) -> Iterator[None]:
    """Render argument errors raised before connecting and exit with code 2."""
    try:
        yield
    except ModbusCliError as e:
        output.exception(e)
        raise typer.Exit(exit_code(e))


def create_client(
    endpoint: str,
    port: Optional[int],
    unit_id: int,
    timeout: float,
    baud: int,
    data_bits: int,
    parity: str,
    stop_bits: int,
) -> ModbusClient:
    """Resolve the endpoint and build an unconnected ModbusClient."""
    serial = SerialSettings(baudrate=baud, data_bits=data_bits, parity=parity, stop_bits=stop_bits)
    resolved = parse_endpoint(endpoint, port)
    return ModbusClient(resolved, unit_id=unit_id, timeout=timeout, serial=serial)


def execute(
    client: ModbusClient,
    action: Action,
    output: OutputContext,
    count: int = 1,
    interval: float = 1.0,
    trace: bool = True,
) -> None:
    """Run action once (count == 1) or poll; errors are already rendered by the session."""
    try:
        if count == 1:
            run_once(client, action, output, trace=trace)
        else:
            failures = run_polling(client, action, output, count, interval, trace=trace)
            if failures:
                logger.debug("%d polling iteration(s) failed", failures)
    except KeyboardInterrupt:
        typer.echo("\nStopped by user", err=True)
        raise typer.Exit(0)
    except Exception as e:
        raise typer.Exit(exit_code(e))


# ============================================================================
# Read commands
# ============================================================================


@app.command("rc")
def read_coils(
    ctx: typer.Context,
    endpoint: EndpointArgument,
    address: AddressArgument,
    quantity: Annotated[int, typer.Argument(help="Quantity of coils", min=1, max=2000)],
    port: PortOption = None,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 5.0,
    baud: BaudOption = 9600,
    data_bits: DataBitsOption = 8,
    parity: ParityOption = "N",
    stop_bits: StopBitsOption = 1,
    count: CountOption = 1,
    interval: IntervalOption = 1.0,
) -> None:
    """Read Coils (FC 01)."""
    output = get_output(ctx)
    with validating(output):
        client = create_client(endpoint, port, unit_id, timeout, baud, data_bits, parity, stop_bits)

    def action(client: ModbusClient, output: OutputContext) -> None:
        data = client.read_coils(address, quantity)
        output.coil_table(address, quantity, data, client.last_response_at)

    execute(client, action, output, count, interval)


@app.command("rdi")
def read_discrete_inputs(
    ctx: typer.Context,
    endpoint: EndpointArgument,
    address: AddressArgument,
    quantity: Annotated[int, typer.Argument(help="Quantity of discrete inputs", min=1, max=2000)],
    port: PortOption = None,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 5.0,
    baud: BaudOption = 9600,
    data_bits: DataBitsOption = 8,
    parity: ParityOption = "N",
    stop_bits: StopBitsOption = 1,
    count: CountOption = 1,
    interval: IntervalOption = 1.0,
) -> None:
    """Read Discrete Inputs (FC 02)."""
    output = get_output(ctx)
    with validating(output):
        client = create_client(endpoint, port, unit_id, timeout, baud, data_bits, parity, stop_bits)

    def action(client: ModbusClient, output: OutputContext) -> None:
        data = client.read_discrete_inputs(address, quantity)
        output.coil_table(address, quantity, data, client.last_response_at)

    execute(client, action, output, count, interval)


@app.command("rhr")
def read_holding_registers(
    ctx: typer.Context,
    endpoint: EndpointArgument,
    address: AddressArgument,
    quantity: Annotated[int, typer.Argument(help="Quantity of registers", min=1, max=125)],
    port: PortOption = None,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 5.0,
    baud: BaudOption = 9600,
    data_bits: DataBitsOption = 8,
    parity: ParityOption = "N",
    stop_bits: StopBitsOption = 1,
    count: CountOption = 1,
    interval: IntervalOption = 1.0,
) -> None:
    """Read Holding Registers (FC 03)."""
    output = get_output(ctx)
    with validating(output):
        client = create_client(endpoint, port, unit_id, timeout, baud, data_bits, parity, stop_bits)

    def action(client: ModbusClient, output: OutputContext) -> None:
        data = client.read_holding_registers(address, quantity)
        output.register_table(address, data, client.last_response_at)

    execute(client, action, output, count, interval)


@app.command("rir")
def read_input_registers(
    ctx: typer.Context,
    endpoint: EndpointArgument,
    address: AddressArgument,
    quantity: Annotated[int, typer.Argument(help="Quantity of registers", min=1, max=125)],
    port: PortOption = None,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 5.0,
    baud: BaudOption = 9600,
    data_bits: DataBitsOption = 8,
    parity: ParityOption = "N",
    stop_bits: StopBitsOption = 1,
    count: CountOption = 1,
    interval: IntervalOption = 1.0,
) -> None:
    """Read Input Registers (FC 04)."""
    output = get_output(ctx)
    with validating(output):
        client = create_client(endpoint, port, unit_id, timeout, baud, data_bits, parity, stop_bits)

    def action(client: ModbusClient, output: OutputContext) -> None:
        data = client.read_input_registers(address, quantity)
        output.register_table(address, data, client.last_response_at)

    execute(client, action, output, count, interval)


# ============================================================================
# Write commands
# ============================================================================


@app.command("wsc")
def write_single_coil(
    ctx: typer.Context,
    endpoint: EndpointArgument,
    address: Annotated[int, typer.Argument(help="Coil address", min=0, max=0xFFFF)],
    value: Annotated[str, typer.Argument(help="Coil value (true/false, 1/0, on/off)")],
    port: PortOption = None,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 5.0,
    baud: BaudOption = 9600,
    data_bits: DataBitsOption = 8,
    parity: ParityOption = "N",
    stop_bits: StopBitsOption = 1,
) -> None:
    """Write Single Coil (FC 05)."""
    output = get_output(ctx)
    with validating(output):
        coil = parse_coil(value)
        client = create_client(endpoint, port, unit_id, timeout, baud, data_bits, parity, stop_bits)

    def action(client: ModbusClient, output: OutputContext) -> None:
        client.write_single_coil(address, coil)
        output.success(f"Wrote coil {address} = {str(coil).lower()}")

    execute(client, action, output)


@app.command("wmc")
def write_multiple_coils(
    ctx: typer.Context,
    endpoint: EndpointArgument,
    address: AddressArgument,
    quantity: Annotated[int, typer.Argument(help="Quantity of coils", min=1, max=1968)],
    values: Annotated[str, typer.Argument(help="Coil values (comma-separated, true/false or 1/0)")],
    port: PortOption = None,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 5.0,
    baud: BaudOption = 9600,
    data_bits: DataBitsOption = 8,
    parity: ParityOption = "N",
    stop_bits: StopBitsOption = 1,
) -> None:
    """Write Multiple Coils (FC 15)."""
    output = get_output(ctx)
    with validating(output):
        coils = parse_coil_list(values, quantity)
        client = create_client(endpoint, port, unit_id, timeout, baud, data_bits, parity, stop_bits)

    def action(client: ModbusClient, output: OutputContext) -> None:
        client.write_multiple_coils(address, coils)
        output.success(f"Wrote {quantity} coil(s) starting at {address}")

    execute(client, action, output)


@app.command("wsr")
def write_single_register(
    ctx: typer.Context,
    endpoint: EndpointArgument,
    address: Annotated[int, typer.Argument(help="Register address", min=0, max=0xFFFF)],
    value: Annotated[str, typer.Argument(help="Register value (decimal or hex, e.g., 1234 or 0x04D2)")],
    port: PortOption = None,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 5.0,
    baud: BaudOption = 9600,
    data_bits: DataBitsOption = 8,
    parity: ParityOption = "N",
    stop_bits: StopBitsOption = 1,
) -> None:
    """Write Single Register (FC 06)."""
    output = get_output(ctx)
    with validating(output):
        word = to_word(parse_register(value))
        client = create_client(endpoint, port, unit_id, timeout, baud, data_bits, parity, stop_bits)

    def action(client: ModbusClient, output: OutputContext) -> None:
        client.write_single_register(address, word)
        output.success(f"Wrote register {address} = 0x{word:04X}")

    execute(client, action, output)


@app.command("wmr")
def write_multiple_registers(
    ctx: typer.Context,
    endpoint: EndpointArgument,
    address: AddressArgument,
    quantity: Annotated[int, typer.Argument(help="Quantity of registers", min=1, max=123)],
    values: Annotated[str, typer.Argument(help="Register values (comma-separated, decimal or 0x hex)")],
    port: PortOption = None,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 5.0,
    baud: BaudOption = 9600,
    data_bits: DataBitsOption = 8,
    parity: ParityOption = "N",
    stop_bits: StopBitsOption = 1,
) -> None:
    """Write Multiple Registers (FC 16)."""
    output = get_output(ctx)
    with validating(output):
        words = parse_register_list(values, quantity)
        client = create_client(endpoint, port, unit_id, timeout, baud, data_bits, parity, stop_bits)

    def action(client: ModbusClient, output: OutputContext) -> None:
        client.write_multiple_registers(address, words)
        output.success(f"Wrote {quantity} register(s) starting at {address}")

    execute(client, action, output)


@app.command("mwr")
def mask_write_register(
    ctx: typer.Context,
    endpoint: EndpointArgument,
    address: Annotated[int, typer.Argument(help="Register address", min=0, max=0xFFFF)],
    and_mask: Annotated[str, typer.Argument(help="AND mask (hex, e.g., 0xFFFF or FFFF)")],
    or_mask: Annotated[str, typer.Argument(help="OR mask (hex, e.g., 0x0000 or 0000)")],
    port: PortOption = None,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 5.0,
    baud: BaudOption = 9600,
    data_bits: DataBitsOption = 8,
    parity: ParityOption = "N",
    stop_bits: StopBitsOption = 1,
) -> None:
    """
    Mask Write Register (FC 22).

    The register becomes (current AND and_mask) OR (or_mask AND NOT and_mask).
    """
    output = get_output(ctx)
    with validating(output):
        and_value = to_word(parse_hex(and_mask))
        or_value = to_word(parse_hex(or_mask))
        client = create_client(endpoint, port, unit_id, timeout, baud, data_bits, parity, stop_bits)

    def action(client: ModbusClient, output: OutputContext) -> None:
        client.mask_write_register(address, and_value, or_value)
        output.success(f"Masked register {address} (AND 0x{and_value:04X}, OR 0x{or_value:04X})")

    execute(client, action, output)


@app.command("rwmr")
def read_write_multiple_registers(
    ctx: typer.Context,
    endpoint: EndpointArgument,
    read_address: Annotated[int, typer.Argument(help="Read starting address", min=0, max=0xFFFF)],
    read_quantity: Annotated[int, typer.Argument(help="Read quantity", min=1, max=125)],
    write_address: Annotated[int, typer.Argument(help="Write starting address", min=0, max=0xFFFF)],
    write_quantity: Annotated[int, typer.Argument(help="Write quantity", min=1, max=121)],
    values: Annotated[str, typer.Argument(help="Write values (comma-separated, decimal or 0x hex)")],
    port: PortOption = None,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 5.0,
    baud: BaudOption = 9600,
    data_bits: DataBitsOption = 8,
    parity: ParityOption = "N",
    stop_bits: StopBitsOption = 1,
) -> None:
    """Read/Write Multiple Registers (FC 23): write first, then read."""
    output = get_output(ctx)
    with validating(output):
        words = parse_register_list(values, write_quantity, what="write values")
        client = create_client(endpoint, port, unit_id, timeout, baud, data_bits, parity, stop_bits)

    def action(client: ModbusClient, output: OutputContext) -> None:
        data = client.read_write_multiple_registers(read_address, read_quantity, write_address, words)
        output.register_table(read_address, data, client.last_response_at)

    execute(client, action, output)


# ============================================================================
# Scan
# ============================================================================


@app.command("scan")
def scan(
    ctx: typer.Context,
    endpoint: EndpointArgument,
    start: Annotated[int, typer.Argument(help="Start address (inclusive)", min=0, max=0xFFFF)],
    end: Annotated[int, typer.Argument(help="End address (exclusive)", min=0, max=0x10000)],
    size: Annotated[int, typer.Option("--size", help="Registers to read in each window")] = 10,
    step: Annotated[
        Optional[int],
        typer.Option("--step", help="Registers to move the window forward by (default: --size)"),
    ] = None,
    partial: Annotated[
        bool,
        typer.Option("--partial/--no-partial", help="Read the last window even if it is smaller than --size"),
    ] = True,
    port: PortOption = None,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 5.0,
    baud: BaudOption = 9600,
    data_bits: DataBitsOption = 8,
    parity: ParityOption = "N",
    stop_bits: StopBitsOption = 1,
) -> None:
    """
    Scan holding registers [START, END) with a sliding window.

    With --step smaller than --size the windows overlap; each address read
    more than once is marked with = when the readings agree and ! when they
    differ.
    """
    output = get_output(ctx)
    window_step = step if step is not None else size
    with validating(output):
        if end < start:
            raise ValidationError(f"end address ({end}) must not be less than start address ({start})")
        if size < 1:
            raise ValidationError(f"window size must be >= 1, got {size}")
        if window_step < 1:
            raise ValidationError(f"step must be >= 1, got {window_step}")
        client = create_client(endpoint, port, unit_id, timeout, baud, data_bits, parity, stop_bits)

    def action(client: ModbusClient, output: OutputContext) -> None:
        results = scan_registers(start, end, size, window_step, partial, client.read_holding_registers)
        output.scan_results(results)

    execute(client, action, output, trace=False)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"modbus-cli {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    ctx: typer.Context,
    output_format: Annotated[
        OutputFormat,
        typer.Option("--format", "-f", help="Output format", envvar="MODBUS_CLI_FORMAT", case_sensitive=False),
    ] = OutputFormat.HUMAN,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Hide info and protocol output")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging and full error tracebacks")] = False,
    no_color: Annotated[bool, typer.Option("--no-color", help="Disable ANSI color output")] = False,
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """modbus - Modbus TCP/RTU client for reading, writing and scanning a device."""
    setup_logging(verbose)
    ctx.obj = OutputOptions(
        format=output_format,
        verbose=verbose,
        quiet=quiet,
        colors_enabled=colors_enabled(no_color),
    )


if __name__ == "__main__":
    app()
