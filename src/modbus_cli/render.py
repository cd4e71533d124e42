"""
Render output events as JSON lines or human-readable tables.

Two renderers share one event vocabulary (see events.py). The renderer is
chosen once from OutputOptions.format; commands only ever call render() and
set_iteration().
"""

import json
import logging
import traceback
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, TextIO

import typer

from .events import (
    CoilTable,
    Error,
    Info,
    OutputEvent,
    Protocol,
    RegisterTable,
    ScanResults,
    Success,
    Warning,
)
from .types import Direction, OutputFormat, OutputOptions, ScanResult
from .values import unpack_bits

logger = logging.getLogger(__name__)

REGISTER_ROW_BYTES = 16
COIL_ROW_BITS = 8
SCAN_ROW_ADDRESSES = 8

FUNCTION_NAMES: dict[int, str] = {
    0x01: "Read Coils",
    0x02: "Read Discrete Inputs",
    0x03: "Read Holding Registers",
    0x04: "Read Input Registers",
    0x05: "Write Single Coil",
    0x06: "Write Single Register",
    0x0F: "Write Multiple Coils",
    0x10: "Write Multiple Registers",
    0x16: "Mask Write Register",
    0x17: "Read/Write Multiple Registers",
}

_MESSAGE_TYPES: dict[type, str] = {
    Info: "info",
    Success: "success",
    Warning: "warning",
    Error: "error",
}

_MESSAGE_COLORS: dict[type, str] = {
    Info: typer.colors.BLUE,
    Success: typer.colors.GREEN,
    Warning: typer.colors.YELLOW,
    Error: typer.colors.RED,
}


def is_visible(event: OutputEvent, options: OutputOptions) -> bool:
    """Quiet mode hides Info and Protocol events; everything else is always shown."""
    if options.quiet and isinstance(event, (Info, Protocol)):
        return False
    return True


def is_diagnostic(event: OutputEvent) -> bool:
    """Errors and warnings go to stderr."""
    return isinstance(event, (Error, Warning))


def describe_error(exc: BaseException, verbose: bool = False) -> str:
    """Message text for an Error event: the exception message, or the full traceback when verbose."""
    if verbose:
        return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).rstrip()
    return str(exc) or type(exc).__name__


class Renderer(ABC):
    """Base renderer: visibility, stream routing and the iteration tag."""

    def __init__(self, out: TextIO | None = None, err: TextIO | None = None) -> None:
        self._out = out
        self._err = err
        self._iteration: int | None = None

    @property
    def iteration(self) -> int | None:
        return self._iteration

    def set_iteration(self, iteration: int | None) -> None:
        """Tag all following events with iteration (None clears it)."""
        self._iteration = iteration

    def render(self, event: OutputEvent, options: OutputOptions) -> None:
        if not is_visible(event, options):
            return
        diagnostic = is_diagnostic(event)
        stream = self._err if diagnostic else self._out
        for line in self.format(event, options):
            typer.echo(line, file=stream, err=diagnostic, color=options.colors_enabled)

    @abstractmethod
    def format(self, event: OutputEvent, options: OutputOptions) -> list[str]:
        """Lines for one visible event, without trailing newlines."""


# ============================================================================
# JSON lines
# ============================================================================


def _iso_timestamp(timestamp: datetime | None) -> str:
    ts = timestamp if timestamp is not None else datetime.now(timezone.utc)
    if ts.tzinfo is None:
        ts = ts.astimezone()
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


class JsonRenderer(Renderer):
    """One compact JSON object per event, keys in a fixed order."""

    def _record(self, event_type: str, timestamp: datetime | None = None) -> dict[str, Any]:
        record: dict[str, Any] = {"timestamp": _iso_timestamp(timestamp)}
        if self._iteration is not None:
            record["iteration"] = self._iteration
        record["type"] = event_type
        return record

    def format(self, event: OutputEvent, options: OutputOptions) -> list[str]:
        match event:
            case Info() | Success() | Warning() | Error():
                record = self._record(_MESSAGE_TYPES[type(event)])
                record["message"] = event.message
            case Protocol():
                record = self._record("protocol", event.timestamp)
                record["direction"] = event.direction.value
                if event.function_code is not None:
                    record["function_code"] = event.function_code
                record["pdu"] = event.payload.hex().upper()
            case RegisterTable():
                record = self._record("register_table", event.timestamp)
                record["start_address"] = event.start_address
                record["quantity"] = event.quantity
                record["data"] = list(event.data)
            case CoilTable():
                record = self._record("coil_table", event.timestamp)
                record["start_address"] = event.start_address
                record["quantity"] = event.quantity
                record["data"] = unpack_bits(event.data, event.quantity)
            case ScanResults():
                if not event.results:
                    return []
                record = self._record("scan_results")
                record["results"] = [
                    {
                        "address": r.address,
                        "values": [[v[0], v[1]] for v in r.values],
                        "identical": r.identical,
                    }
                    for r in event.results
                ]
            case _:
                raise TypeError(f"Unsupported output event: {event!r}")
        return [json.dumps(record, separators=(",", ":"), ensure_ascii=False)]


# ============================================================================
# Human-readable tables
# ============================================================================


class TableRenderer(Renderer):
    """Aligned text tables and colored messages for terminals."""

    FILLER_BYTE = ".."
    FILLER_BIT = "."
    FILLER_WORD = "...."

    # scan cell suffixes: one reading, overlapping readings agree, overlapping readings differ
    MARK_SINGLE = " "
    MARK_AGREE = "="
    MARK_CONFLICT = "!"

    def _style(self, text: str, options: OutputOptions, fg: str) -> str:
        if not options.colors_enabled:
            return text
        return typer.style(text, fg=fg)

    def _prefix(self, timestamp: datetime | None = None) -> str:
        if self._iteration is None:
            return ""
        ts = (timestamp if timestamp is not None else datetime.now(timezone.utc)).astimezone()
        return f"[{ts:%Y-%m-%d %H:%M:%S}.{ts.microsecond // 1000:03d}] [{self._iteration}] "

    def format(self, event: OutputEvent, options: OutputOptions) -> list[str]:
        match event:
            case Info() | Success() | Warning() | Error():
                text = self._prefix() + event.message
                return [self._style(text, options, _MESSAGE_COLORS[type(event)])]
            case Protocol():
                return [self._format_protocol(event, options)]
            case RegisterTable():
                return self._format_register_table(event, options)
            case CoilTable():
                return self._format_coil_table(event, options)
            case ScanResults():
                return self._format_scan_results(event.results, options)
            case _:
                raise TypeError(f"Unsupported output event: {event!r}")

    def _format_protocol(self, event: Protocol, options: OutputOptions) -> str:
        parts = [event.direction.arrow]
        fc = event.function_code
        if fc is not None:
            name = FUNCTION_NAMES.get(fc & 0x7F, "Unknown Function")
            if fc & 0x80:
                name += " (exception)"
            parts.append(f"{name} [0x{fc:02X}]")
        parts.append(event.payload.hex(" ").upper() if event.payload else "(empty)")
        text = self._prefix(event.timestamp) + " ".join(parts)
        color = typer.colors.CYAN if event.direction is Direction.SENT else typer.colors.GREEN
        return self._style(text, options, color)

    def _header(self, text: str, rule: str, options: OutputOptions) -> list[str]:
        return [
            self._style(text, options, typer.colors.BLUE),
            self._style(rule, options, typer.colors.BLUE),
        ]

    def _format_register_table(self, event: RegisterTable, options: OutputOptions) -> list[str]:
        header = f"{'Offset (hex)':<8}\t{'Bytes (hex)'}"
        lines = self._header(header, "-" * (len(header) + 1), options)
        if not event.data:
            return lines

        # register address -> byte offset
        start = event.start_address * 2
        end = start + len(event.data) - 1
        first_row = start - start % REGISTER_ROW_BYTES
        last_row = end - end % REGISTER_ROW_BYTES

        for row in range(first_row, last_row + 1, REGISTER_ROW_BYTES):
            cells = []
            for offset in range(row, row + REGISTER_ROW_BYTES):
                if start <= offset <= end:
                    cells.append(self._style(f"{event.data[offset - start]:02X}", options, typer.colors.GREEN))
                else:
                    cells.append(self._style(self.FILLER_BYTE, options, typer.colors.BRIGHT_BLACK))
            lines.append(self._style(f"{row:08X}", options, typer.colors.CYAN) + "\t" + " ".join(cells))
        return lines

    def _format_coil_table(self, event: CoilTable, options: OutputOptions) -> list[str]:
        lines = self._header(f"{'Address':<10} Bits", "-" * 10 + " " + "-" * 15, options)
        if event.quantity == 0:
            return lines

        bits = unpack_bits(event.data, event.quantity)
        start = event.start_address
        end = start + event.quantity - 1
        first_row = start - start % COIL_ROW_BITS
        last_row = end - end % COIL_ROW_BITS

        for row in range(first_row, last_row + 1, COIL_ROW_BITS):
            cells = []
            for address in range(row, row + COIL_ROW_BITS):
                if start <= address <= end:
                    bit = bits[address - start]
                    color = typer.colors.GREEN if bit else typer.colors.YELLOW
                    cells.append(self._style("1" if bit else "0", options, color))
                else:
                    cells.append(self._style(self.FILLER_BIT, options, typer.colors.BRIGHT_BLACK))
            lines.append(self._style(f"0x{row:04X}", options, typer.colors.CYAN) + "     " + " ".join(cells))
        return lines

    def _scan_cell(self, result: ScanResult, options: OutputOptions) -> str:
        first = result.values[0]
        text = f"{first[0]:02X}{first[1]:02X}"
        if len(result.values) == 1:
            return self._style(text + self.MARK_SINGLE, options, typer.colors.GREEN)
        if result.identical:
            return self._style(text + self.MARK_AGREE, options, typer.colors.YELLOW)
        return self._style(text + self.MARK_CONFLICT, options, typer.colors.RED)

    def _format_scan_results(self, results: tuple[ScanResult, ...], options: OutputOptions) -> list[str]:
        by_address = {r.address: r for r in results if r.values}
        if not by_address:
            return []

        lines = self._header(f"{'Address':<8}\tValues (hex, 2 bytes each)", "-" * 55, options)
        rows = sorted({address - address % SCAN_ROW_ADDRESSES for address in by_address})
        for row in rows:
            cells = []
            for address in range(row, row + SCAN_ROW_ADDRESSES):
                result = by_address.get(address)
                if result is None:
                    cells.append(self._style(self.FILLER_WORD + " ", options, typer.colors.BRIGHT_BLACK))
                else:
                    cells.append(self._scan_cell(result, options))
            lines.append(self._style(f"{row:04X}    ", options, typer.colors.CYAN) + "\t" + " ".join(cells))

        if any(len(r.values) > 1 for r in by_address.values()):
            lines.append(
                f"({self.MARK_AGREE} overlapping reads agree, {self.MARK_CONFLICT} overlapping reads differ)"
            )
        return lines


def create_renderer(options: OutputOptions, out: TextIO | None = None, err: TextIO | None = None) -> Renderer:
    """Pick the renderer for options.format."""
    match options.format:
        case OutputFormat.JSON:
            return JsonRenderer(out, err)
        case OutputFormat.HUMAN:
            return TableRenderer(out, err)
    raise ValueError(f"Unknown output format: {options.format!r}")


class OutputContext:
    """Renderer plus the options it renders with; what commands write to."""

    def __init__(self, renderer: Renderer, options: OutputOptions) -> None:
        self.renderer = renderer
        self.options = options

    @classmethod
    def create(cls, options: OutputOptions, out: TextIO | None = None, err: TextIO | None = None) -> "OutputContext":
        return cls(create_renderer(options, out, err), options)

    def emit(self, event: OutputEvent) -> None:
        self.renderer.render(event, self.options)

    def set_iteration(self, iteration: int | None) -> None:
        self.renderer.set_iteration(iteration)

    def info(self, message: str) -> None:
        self.emit(Info(message))

    def success(self, message: str) -> None:
        self.emit(Success(message))

    def warning(self, message: str) -> None:
        self.emit(Warning(message))

    def error(self, message: str) -> None:
        self.emit(Error(message))

    def exception(self, exc: BaseException) -> None:
        """Render exc as an Error event (traceback in verbose mode)."""
        logger.debug("Rendering error: %r", exc)
        self.error(describe_error(exc, self.options.verbose))

    def protocol(
        self,
        direction: Direction,
        payload: bytes,
        function_code: int | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        self.emit(Protocol(direction, payload, function_code, timestamp))

    def register_table(self, start_address: int, data: bytes, timestamp: datetime | None = None) -> None:
        self.emit(RegisterTable(start_address, data, timestamp))

    def coil_table(
        self, start_address: int, quantity: int, data: bytes, timestamp: datetime | None = None
    ) -> None:
        self.emit(CoilTable(start_address, quantity, data, timestamp))

    def scan_results(self, results: list[ScanResult]) -> None:
        self.emit(ScanResults(tuple(results)))
