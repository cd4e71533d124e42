#!/usr/bin/env python3
"""Example: connect to a Modbus TCP device, write a register, read it back and print a table."""

import sys

from modbus_cli import ModbusClient, OutputContext, OutputOptions, parse_endpoint
from modbus_cli.errors import ModbusCliError, ModbusIOError


def main() -> None:
    endpoint = parse_endpoint("tcp:192.168.1.10:502")  # change to your device
    output = OutputContext.create(OutputOptions())

    try:
        with ModbusClient(endpoint, unit_id=1, observer=output.emit) as device:
            # Write holding register 7
            device.write_single_register(7, 0x04D2)

            # Read holding registers 0..9 and render them as a table
            data = device.read_holding_registers(0, 10)
            output.register_table(0, data, device.last_response_at)

            # Read 16 coils
            coils = device.read_coils(0, 16)
            output.coil_table(0, 16, coils, device.last_response_at)
    except ModbusIOError as e:
        print(f"Modbus/connection error: {e}", file=sys.stderr)
        sys.exit(1)
    except ModbusCliError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
