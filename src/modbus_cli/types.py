"""Core data model: endpoints, scan windows/results, and output options."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


@dataclass(frozen=True)
class TcpEndpoint:
    """Resolved Modbus TCP endpoint; port is always set."""

    hostname: str
    port: int

    def __post_init__(self) -> None:
        if not self.hostname or not self.hostname.strip():
            raise ValueError("hostname must not be blank")
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"port must be 0-65535, got {self.port}")


@dataclass(frozen=True)
class RtuEndpoint:
    """Resolved Modbus RTU endpoint (serial port path or name, e.g. /dev/ttyUSB0, COM3)."""

    serial_port: str

    def __post_init__(self) -> None:
        if not self.serial_port or not self.serial_port.strip():
            raise ValueError("serial port must not be blank")


Endpoint = Union[TcpEndpoint, RtuEndpoint]


@dataclass(frozen=True)
class WindowResult:
    """Raw bytes read by one scan window: 2 bytes per register, big-endian."""

    address: int
    data: bytes

    def __post_init__(self) -> None:
        if len(self.data) % 2 != 0:
            raise ValueError(f"window data must have an even length, got {len(self.data)}")


@dataclass(frozen=True)
class ScanResult:
    """Every 2-byte reading observed at one address, in window order."""

    address: int
    values: tuple[bytes, ...] = field(default_factory=tuple)
    identical: bool = True


class Direction(str, Enum):
    """Direction of a protocol frame relative to this tool."""

    SENT = "sent"
    RECEIVED = "received"

    @property
    def arrow(self) -> str:
        return "→" if self is Direction.SENT else "←"


class OutputFormat(str, Enum):
    """Available output formats."""

    HUMAN = "human"
    JSON = "json"


@dataclass(frozen=True)
class OutputOptions:
    """Output configuration, fixed for one invocation."""

    format: OutputFormat = OutputFormat.HUMAN
    verbose: bool = False
    quiet: bool = False
    colors_enabled: bool = True
