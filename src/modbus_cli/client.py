"""ModbusClient: thin wrapper over pymodbus TCP/RTU clients that reports every PDU it exchanges."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pymodbus.client import ModbusSerialClient, ModbusTcpClient
from pymodbus.exceptions import ModbusException as PymodbusException
from pymodbus.pdu import ModbusPDU
from pymodbus.pdu.bit_message import (
    ReadCoilsRequest,
    ReadDiscreteInputsRequest,
    WriteMultipleCoilsRequest,
    WriteSingleCoilRequest,
)
from pymodbus.pdu.register_message import (
    MaskWriteRegisterRequest,
    ReadHoldingRegistersRequest,
    ReadInputRegistersRequest,
    ReadWriteMultipleRegistersRequest,
    WriteMultipleRegistersRequest,
    WriteSingleRegisterRequest,
)

from .errors import ModbusIOError, ValidationError
from .events import Protocol
from .types import Direction, Endpoint, RtuEndpoint, TcpEndpoint
from .values import pack_bits, registers_to_bytes

logger = logging.getLogger(__name__)

ProtocolObserver = Callable[[Protocol], None]


@dataclass(frozen=True)
class SerialSettings:
    """Serial line parameters for RTU endpoints."""

    baudrate: int = 9600
    data_bits: int = 8
    parity: str = "N"
    stop_bits: int = 1

    def resolve(self) -> dict[str, Any]:
        """Validate and return ModbusSerialClient keyword arguments."""
        if self.data_bits not in (5, 6, 7, 8):
            raise ValidationError("data bits must be 5, 6, 7, or 8", value=str(self.data_bits))
        if self.stop_bits not in (1, 2):
            raise ValidationError("stop bits must be 1 or 2", value=str(self.stop_bits))
        parity = self.parity.strip().upper()
        if parity not in ("N", "E", "O"):
            raise ValidationError("parity must be N, E, or O", value=self.parity)
        if self.baudrate <= 0:
            raise ValidationError(f"baud rate must be positive, got {self.baudrate}")
        return {
            "baudrate": self.baudrate,
            "bytesize": self.data_bits,
            "parity": parity,
            "stopbits": self.stop_bits,
        }


def pdu_frame(pdu: ModbusPDU) -> bytes:
    """Function code followed by the encoded PDU body."""
    return bytes([pdu.function_code & 0xFF]) + pdu.encode()


class ModbusClient:
    """
    Blocking Modbus client for one endpoint and unit id.

    Each operation builds the pymodbus request PDU, reports it to observer,
    executes it, reports the response and raises ModbusIOError on failure.
    Only one request is ever in flight.
    """

    def __init__(
        self,
        endpoint: Endpoint,
        unit_id: int = 1,
        timeout: float = 5.0,
        serial: SerialSettings | None = None,
        observer: ProtocolObserver | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._unit_id = unit_id
        self._timeout = timeout
        self._serial = serial if serial is not None else SerialSettings()
        self._client: ModbusTcpClient | ModbusSerialClient | None = None
        self.observer = observer
        self.last_response_at: datetime | None = None

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def unit_id(self) -> int:
        return self._unit_id

    def _create_client(self) -> ModbusTcpClient | ModbusSerialClient:
        match self._endpoint:
            case TcpEndpoint(hostname=hostname, port=port):
                return ModbusTcpClient(
                    host=hostname,
                    port=port,
                    timeout=self._timeout,
                )
            case RtuEndpoint(serial_port=serial_port):
                return ModbusSerialClient(
                    port=serial_port,
                    timeout=self._timeout,
                    **self._serial.resolve(),
                )
        raise TypeError(f"Unsupported endpoint: {self._endpoint!r}")

    def _get_client(self) -> ModbusTcpClient | ModbusSerialClient:
        if self._client is None:
            client = self._create_client()
            logger.debug("Connecting to %r", self._endpoint)
            if not client.connect():
                raise ModbusIOError(f"Failed to connect to {describe_target(self._endpoint)}")
            self._client = client
        return self._client

    def connect(self) -> None:
        """Open the connection (TCP socket or serial port)."""
        self._get_client()

    def close(self) -> None:
        """Close the connection; errors while closing are logged, not raised."""
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning("Error closing Modbus client: %s", e)
            self._client = None

    def __enter__(self) -> "ModbusClient":
        self.connect()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _report(self, pdu: ModbusPDU, direction: Direction, timestamp: datetime | None) -> None:
        if self.observer is not None:
            self.observer(Protocol(direction, pdu_frame(pdu), pdu.function_code, timestamp))

    def _execute(self, request: ModbusPDU, address: int) -> Any:
        client = self._get_client()
        self._report(request, Direction.SENT, None)
        logger.debug("Executing fc=0x%02X at %d", request.function_code, address)
        try:
            response = client.execute(False, request)
        except PymodbusException as e:
            raise ModbusIOError(
                str(e), function_code=request.function_code, address=address, cause=e
            ) from e
        self.last_response_at = datetime.now(timezone.utc)
        self._report(response, Direction.RECEIVED, self.last_response_at)
        if response.isError():
            raise ModbusIOError(
                str(response),
                function_code=request.function_code,
                address=address,
                cause=getattr(response, "exception", None),
            )
        return response

    def _read_bits(self, request: ModbusPDU, address: int, quantity: int) -> bytes:
        rr = self._execute(request, address)
        bits = getattr(rr, "bits", None)
        if bits is None or len(bits) < quantity:
            raise ModbusIOError(
                "Short bit response", function_code=request.function_code, address=address
            )
        return pack_bits([bool(b) for b in bits[:quantity]])

    def _read_registers(self, request: ModbusPDU, address: int, quantity: int) -> bytes:
        rr = self._execute(request, address)
        registers = getattr(rr, "registers", None)
        if registers is None or len(registers) < quantity:
            raise ModbusIOError(
                "Short register response", function_code=request.function_code, address=address
            )
        return registers_to_bytes(registers[:quantity])

    def read_coils(self, address: int, quantity: int) -> bytes:
        """FC 01; returns coil states packed LSB-first."""
        request = ReadCoilsRequest(address=address, count=quantity, dev_id=self._unit_id)
        return self._read_bits(request, address, quantity)

    def read_discrete_inputs(self, address: int, quantity: int) -> bytes:
        """FC 02; returns input states packed LSB-first."""
        request = ReadDiscreteInputsRequest(address=address, count=quantity, dev_id=self._unit_id)
        return self._read_bits(request, address, quantity)

    def read_holding_registers(self, address: int, quantity: int) -> bytes:
        """FC 03; returns 2 bytes per register, big-endian."""
        request = ReadHoldingRegistersRequest(address=address, count=quantity, dev_id=self._unit_id)
        return self._read_registers(request, address, quantity)

    def read_input_registers(self, address: int, quantity: int) -> bytes:
        """FC 04; returns 2 bytes per register, big-endian."""
        request = ReadInputRegistersRequest(address=address, count=quantity, dev_id=self._unit_id)
        return self._read_registers(request, address, quantity)

    def write_single_coil(self, address: int, value: bool) -> None:
        """FC 05."""
        request = WriteSingleCoilRequest(address=address, bits=[value], dev_id=self._unit_id)
        self._execute(request, address)

    def write_single_register(self, address: int, value: int) -> None:
        """FC 06; value must already be a 16-bit word."""
        request = WriteSingleRegisterRequest(address=address, registers=[value], dev_id=self._unit_id)
        self._execute(request, address)

    def write_multiple_coils(self, address: int, values: list[bool]) -> None:
        """FC 15."""
        request = WriteMultipleCoilsRequest(address=address, bits=list(values), dev_id=self._unit_id)
        self._execute(request, address)

    def write_multiple_registers(self, address: int, values: list[int]) -> None:
        """FC 16."""
        request = WriteMultipleRegistersRequest(
            address=address, registers=list(values), dev_id=self._unit_id
        )
        self._execute(request, address)

    def mask_write_register(self, address: int, and_mask: int, or_mask: int) -> None:
        """FC 22."""
        request = MaskWriteRegisterRequest(
            address=address, and_mask=and_mask, or_mask=or_mask, dev_id=self._unit_id
        )
        self._execute(request, address)

    def read_write_multiple_registers(
        self,
        read_address: int,
        read_quantity: int,
        write_address: int,
        values: list[int],
    ) -> bytes:
        """FC 23; writes values at write_address, then returns the registers read."""
        request = ReadWriteMultipleRegistersRequest(
            read_address=read_address,
            read_count=read_quantity,
            write_address=write_address,
            write_registers=list(values),
            dev_id=self._unit_id,
        )
        return self._read_registers(request, read_address, read_quantity)


def describe_target(endpoint: Endpoint) -> str:
    """host:port for TCP, the serial port for RTU."""
    match endpoint:
        case TcpEndpoint(hostname=hostname, port=port):
            return f"{hostname}:{port}"
        case RtuEndpoint(serial_port=serial_port):
            return serial_port
    raise TypeError(f"Unsupported endpoint: {endpoint!r}")
