#!/usr/bin/env python3
"""Example: load a device form from JSON and read every parameter from the device."""

import json
import sys

from modbus_layout import read_device
from modbus_layout.errors import InvalidFormError, ModbusIOError
from modbus_layout.submission import load_form
from modbus_layout.validation import validate_form


def main() -> None:
    path = sys.argv[1] if len(sys.argv) > 1 else "device.json"  # form or submission payload

    try:
        with open(path, encoding="utf-8") as f:
            form = load_form(json.load(f))
        result = validate_form(form)
        if not result.is_valid:
            for e in result.all_errors():
                print(f"{e.field}: {e.message}", file=sys.stderr)
            sys.exit(1)

        reading = read_device(form, timeout=2.0, retries=1)
        print(f"{reading.device_name} @ {reading.timestamp}")
        for r in reading.readings:
            if r.error:
                print(f"  {r.name}: <{r.error}>")
            else:
                flag = " (out of bounds)" if r.out_of_bounds else ""
                print(f"  {r.name} = {r.value} {r.unit}{flag}")
    except (OSError, json.JSONDecodeError, InvalidFormError) as e:
        print(f"Cannot load form: {e}", file=sys.stderr)
        sys.exit(2)
    except ModbusIOError as e:
        print(f"Modbus/connection error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
