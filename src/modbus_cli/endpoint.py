"""
Parse endpoint strings into resolved TCP or RTU endpoints.

Supported formats:

- ``hostname``                 bare hostname, TCP with default port
- ``tcp:hostname[:port]``      TCP with optional port
- ``tcp://hostname[:port]``    TCP URI format
- ``rtu:/dev/ttyUSB0``         RTU with serial port path
- ``rtu:COM3``                 RTU with serial port name
- ``rtu:///dev/ttyUSB0``       RTU URI format
"""

import logging
from urllib.parse import urlsplit

from .errors import ConflictError, UnsupportedSchemeError, ValidationError
from .types import Endpoint, RtuEndpoint, TcpEndpoint

logger = logging.getLogger(__name__)

DEFAULT_TCP_PORT = 502

_MAX_PORT = 0xFFFF


def parse_endpoint(raw: str | None, port_override: int | None = None) -> Endpoint:
    """
    Parse a raw endpoint string and resolve it into a TcpEndpoint or RtuEndpoint.

    port_override is the --port flag. It fills in the TCP port when the endpoint
    has none; if both are present and differ, ConflictError is raised. RTU
    endpoints reject any port_override.
    """
    if raw is None or not raw.strip():
        raise ValidationError("endpoint must not be blank", value=raw)

    trimmed = raw.strip()
    lower = trimmed.lower()

    if lower.startswith("tcp://"):
        host, port = _parse_tcp_uri(trimmed)
        endpoint: Endpoint = _resolve_tcp(host, port, port_override)
    elif lower.startswith("rtu://"):
        endpoint = _resolve_rtu(trimmed[len("rtu://"):], port_override)
    elif lower.startswith("tcp:"):
        host, port = _parse_tcp_scheme(trimmed[len("tcp:"):])
        endpoint = _resolve_tcp(host, port, port_override)
    elif lower.startswith("rtu:"):
        endpoint = _resolve_rtu(trimmed[len("rtu:"):], port_override)
    elif "://" in lower:
        raise UnsupportedSchemeError(trimmed, lower.split("://", 1)[0])
    else:
        endpoint = _resolve_tcp(trimmed, None, port_override)

    logger.debug("Resolved endpoint %r -> %r", raw, endpoint)
    return endpoint


def _resolve_tcp(hostname: str, port: int | None, port_override: int | None) -> TcpEndpoint:
    if not hostname or not hostname.strip():
        raise ValidationError("tcp endpoint must include a hostname")
    if port_override is not None and not 0 <= port_override <= _MAX_PORT:
        raise ValidationError(f"--port out of range 0-{_MAX_PORT}: {port_override}")

    if port is not None:
        if port_override is not None and port_override != port:
            raise ConflictError(port, port_override)
        resolved = port
    elif port_override is not None:
        resolved = port_override
    else:
        resolved = DEFAULT_TCP_PORT

    return TcpEndpoint(hostname=hostname, port=resolved)


def _resolve_rtu(serial_port: str, port_override: int | None) -> RtuEndpoint:
    if not serial_port.strip():
        raise ValidationError("rtu endpoint must include a serial port")
    if port_override is not None:
        raise ValidationError("--port is only valid for TCP endpoints")
    return RtuEndpoint(serial_port=serial_port)


def _parse_port(value: str) -> int:
    if not value:
        raise ValidationError("tcp endpoint port is missing")
    if not (value.isascii() and value.isdigit()):
        raise ValidationError("tcp endpoint port must be numeric", value=value)
    port = int(value)
    if port > _MAX_PORT:
        raise ValidationError(f"tcp endpoint port out of range 0-{_MAX_PORT}: {port}", value=value)
    return port


def _parse_bracketed(endpoint: str) -> tuple[str, int | None]:
    """Parse ``[literal]`` or ``[literal]:port``; brackets are stripped from the host."""
    closing = endpoint.find("]")
    if closing < 0:
        raise ValidationError("tcp endpoint has an invalid IPv6 host", value=endpoint)

    host = endpoint[1:closing]
    if not host.strip():
        raise ValidationError("tcp endpoint must include a hostname", value=endpoint)

    remainder = endpoint[closing + 1:]
    if not remainder:
        return host, None
    if not remainder.startswith(":"):
        raise ValidationError("tcp endpoint has unexpected characters after host", value=endpoint)
    return host, _parse_port(remainder[1:])


def _parse_host_port(endpoint: str) -> tuple[str, int | None]:
    """
    Split ``host[:port]``.

    Unbracketed input is split only when it has exactly one colon followed by
    digits; anything else (including bare IPv6 text) is taken whole as the host.
    """
    if endpoint.startswith("["):
        return _parse_bracketed(endpoint)

    if endpoint.count(":") == 1:
        host, _, suffix = endpoint.partition(":")
        if host and suffix and suffix.isascii() and suffix.isdigit():
            if not host.strip():
                raise ValidationError("tcp endpoint must include a hostname", value=endpoint)
            return host, _parse_port(suffix)

    return endpoint, None


def _parse_tcp_scheme(endpoint: str) -> tuple[str, int | None]:
    if not endpoint.strip():
        raise ValidationError("tcp endpoint must include a hostname")
    if endpoint.startswith("/"):
        raise ValidationError("tcp endpoint must not start with '/'", value=endpoint)
    return _parse_host_port(endpoint)


def _parse_tcp_uri(endpoint: str) -> tuple[str, int | None]:
    try:
        parts = urlsplit(endpoint)
    except ValueError as e:
        raise ValidationError(f"invalid tcp endpoint: {e}", value=endpoint) from e

    if parts.path and parts.path != "/":
        raise ValidationError("tcp endpoint must not include a path", value=endpoint)

    # userinfo is tolerated and ignored
    authority = parts.netloc.rpartition("@")[2]
    if not authority:
        raise ValidationError("tcp endpoint must include a hostname", value=endpoint)

    if authority.startswith("["):
        return _parse_bracketed(authority)

    host, sep, port_text = authority.partition(":")
    if ":" in port_text:
        raise ValidationError(f"invalid tcp endpoint: {endpoint}", value=endpoint)
    if not host:
        raise ValidationError("tcp endpoint must include a hostname", value=endpoint)
    if sep and port_text:
        return host, _parse_port(port_text)
    return host, None
