"""Exceptions for modbus-cli: bad input, endpoint conflicts, and Modbus I/O errors."""


class ModbusCliError(Exception):
    """Base exception for modbus-cli."""

    pass


class ValidationError(ModbusCliError, ValueError):
    """Raised when a user-supplied token, mask, size or step is malformed."""

    def __init__(self, message: str, *, value: str | None = None) -> None:
        self.value = value
        super().__init__(message)


class ConflictError(ModbusCliError, ValueError):
    """Raised when an endpoint string and --port specify different TCP ports."""

    def __init__(self, endpoint_port: int, override_port: int) -> None:
        self.endpoint_port = endpoint_port
        self.override_port = override_port
        super().__init__(
            f"TCP port mismatch: endpoint specifies {endpoint_port} "
            f"but --port specifies {override_port}"
        )


class UnsupportedSchemeError(ModbusCliError, ValueError):
    """Raised when an endpoint uses a scheme other than tcp or rtu."""

    def __init__(self, endpoint: str, scheme: str) -> None:
        self.endpoint = endpoint
        self.scheme = scheme
        super().__init__(f"unsupported endpoint scheme (expected tcp or rtu): {endpoint}")


class ModbusIOError(ModbusCliError):
    """Raised when a Modbus request fails (wraps pymodbus or connection errors)."""

    def __init__(
        self,
        message: str,
        *,
        function_code: int | None = None,
        address: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.function_code = function_code
        self.address = address
        self.cause = cause
        super().__init__(message)
