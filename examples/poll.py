#!/usr/bin/env python3
"""Example: poll holding registers on an interval as JSON lines; graceful shutdown on Ctrl+C."""

import sys

from modbus_cli import ModbusClient, OutputContext, OutputFormat, OutputOptions, parse_endpoint
from modbus_cli.errors import ModbusIOError
from modbus_cli.session import run_polling


def main() -> None:
    endpoint = parse_endpoint("192.168.1.10")  # change to your device
    output = OutputContext.create(OutputOptions(format=OutputFormat.JSON, quiet=True))
    address, quantity = 0, 4
    interval_s = 1.0

    def read(client: ModbusClient, output: OutputContext) -> None:
        output.register_table(address, client.read_holding_registers(address, quantity), client.last_response_at)

    try:
        failures = run_polling(ModbusClient(endpoint), read, output, count=0, interval_s=interval_s)
        print(f"{failures} failed reads", file=sys.stderr)
    except KeyboardInterrupt:
        print("\nStopped.", file=sys.stderr)
    except ModbusIOError as e:
        print(f"Modbus/connection error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
