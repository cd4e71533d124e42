"""modbus-cli: Modbus TCP/RTU client commands, register scanning and table/JSON output via pymodbus."""

__version__ = "0.1.0"

from .client import ModbusClient, SerialSettings
from .endpoint import DEFAULT_TCP_PORT, parse_endpoint
from .errors import ConflictError, ModbusCliError, ModbusIOError, UnsupportedSchemeError, ValidationError
from .render import JsonRenderer, OutputContext, TableRenderer, create_renderer
from .scan import aggregate, scan, scan_windows
from .types import (
    Direction,
    OutputFormat,
    OutputOptions,
    RtuEndpoint,
    ScanResult,
    TcpEndpoint,
    WindowResult,
)
from .values import parse_coil, parse_hex, parse_register

__all__ = [
    "__version__",
    "ModbusClient",
    "SerialSettings",
    "DEFAULT_TCP_PORT",
    "parse_endpoint",
    "ConflictError",
    "ModbusCliError",
    "ModbusIOError",
    "UnsupportedSchemeError",
    "ValidationError",
    "JsonRenderer",
    "OutputContext",
    "TableRenderer",
    "create_renderer",
    "aggregate",
    "scan",
    "scan_windows",
    "Direction",
    "OutputFormat",
    "OutputOptions",
    "RtuEndpoint",
    "ScanResult",
    "TcpEndpoint",
    "WindowResult",
    "parse_coil",
    "parse_hex",
    "parse_register",
]
