"""Output events: the semantic vocabulary commands hand to a renderer."""

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from .types import Direction, ScanResult


@dataclass(frozen=True)
class Info:
    """Informational message (connection details, status)."""

    message: str


@dataclass(frozen=True)
class Success:
    """Confirmation message."""

    message: str


@dataclass(frozen=True)
class Warning:  # noqa: A001
    """Warning message; routed to the diagnostic stream."""

    message: str


@dataclass(frozen=True)
class Error:
    """Error message; routed to the diagnostic stream."""

    message: str


@dataclass(frozen=True)
class Protocol:
    """A request or response PDU, as raw bytes starting with the function code."""

    direction: Direction
    payload: bytes
    function_code: int | None = None
    timestamp: datetime | None = None


@dataclass(frozen=True)
class RegisterTable:
    """Register data, 2 bytes per register, big-endian."""

    start_address: int
    data: bytes
    timestamp: datetime | None = None

    @property
    def quantity(self) -> int:
        return len(self.data) // 2


@dataclass(frozen=True)
class CoilTable:
    """Coil or discrete input data, packed LSB-first."""

    start_address: int
    quantity: int
    data: bytes
    timestamp: datetime | None = None

    def __post_init__(self) -> None:
        if self.quantity < 0 or self.quantity > len(self.data) * 8:
            raise ValueError(
                f"quantity {self.quantity} exceeds the {len(self.data) * 8} bits in data"
            )


@dataclass(frozen=True)
class ScanResults:
    """Aggregated results of one scan."""

    results: tuple[ScanResult, ...]


MessageEvent = Union[Info, Success, Warning, Error]
OutputEvent = Union[MessageEvent, Protocol, RegisterTable, CoilTable, ScanResults]
