"""Run a command action against a connected client, once or as a polling loop."""

import logging
import time
from collections.abc import Callable

from .client import ModbusClient
from .render import OutputContext
from .types import RtuEndpoint, TcpEndpoint

logger = logging.getLogger(__name__)

Action = Callable[[ModbusClient, OutputContext], None]


def describe_endpoint(client: ModbusClient) -> str:
    match client.endpoint:
        case TcpEndpoint(hostname=hostname, port=port):
            return f"Hostname: {hostname}:{port}, Unit ID: {client.unit_id}"
        case RtuEndpoint(serial_port=serial_port):
            return f"Serial Port: {serial_port}, Unit ID: {client.unit_id}"
    raise TypeError(f"Unsupported endpoint: {client.endpoint!r}")


def _open(client: ModbusClient, output: OutputContext, trace: bool) -> None:
    client.observer = output.emit if trace else None
    output.info(describe_endpoint(client))
    client.connect()


def run_once(client: ModbusClient, action: Action, output: OutputContext, trace: bool = True) -> None:
    """
    Connect, run action once and close the client.

    With trace, every request and response PDU is rendered as a Protocol
    event. Any failure is rendered as an Error event and then re-raised.
    """
    try:
        _open(client, output, trace)
        action(client, output)
    except Exception as e:
        output.exception(e)
        raise
    finally:
        client.close()


def run_polling(
    client: ModbusClient,
    action: Action,
    output: OutputContext,
    count: int,
    interval_s: float,
    trace: bool = True,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """
    Run action count times (0 = until interrupted) over one connection.

    Events are tagged with the iteration number, starting at 1. A failed
    iteration is rendered as an Error event and polling carries on. Between
    iterations the loop sleeps for whatever is left of interval_s; it never
    sleeps after the last one. Returns the number of failed iterations.
    """
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")

    failures = 0
    try:
        try:
            _open(client, output, trace)
        except Exception as e:
            output.exception(e)
            raise

        iteration = 0
        while count == 0 or iteration < count:
            iteration += 1
            output.set_iteration(iteration)
            started = clock()
            try:
                action(client, output)
            except Exception as e:
                failures += 1
                logger.debug("Iteration %d failed: %r", iteration, e)
                output.exception(e)

            if count == 0 or iteration < count:
                sleep(max(0.0, interval_s - (clock() - started)))
    finally:
        output.set_iteration(None)
        client.close()
    return failures
