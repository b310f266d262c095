#!/usr/bin/env python3
"""Example: build a template form step by step, walk the tabs and print the submission payload."""

import json
import sys

from modbus_layout.form import (
    FormKind,
    add_parameter,
    add_register_range,
    reset_form,
    set_device_basics,
    update_parameter,
)
from modbus_layout.overlap import check_placement
from modbus_layout.types import ParameterConfig, RegisterRange
from modbus_layout.wizard import WizardState, next_tab, submit


def main() -> None:
    form = reset_form(FormKind.TEMPLATE)
    form = set_device_basics(form, name="Energy Meter", device_type="Meter", make="Acme", model="EM-200")

    form = add_register_range(form, RegisterRange("Measurements", start_register=3000, length=10, function_code=4))
    form = add_register_range(form, RegisterRange("Status", start_register=0, length=1, function_code=3))

    # Buffer indexes are allocated after the last parameter of each range
    form = add_parameter(form, ParameterConfig(name="voltage", register_range="Measurements", unit="V"))
    form = add_parameter(form, ParameterConfig(name="current", register_range="Measurements", unit="A"))
    form = add_parameter(
        form,
        ParameterConfig(name="alarm", data_type="BOOLEAN", register_range="Status", bit_position=3),
    )

    # Changing a data type retypes the parameter and moves it to a free index
    voltage = form.parameters[0]
    form = update_parameter(
        form,
        0,
        ParameterConfig(
            name=voltage.name,
            data_type="FLOAT32",
            register_range=voltage.register_range,
            buffer_index=voltage.buffer_index,
            unit=voltage.unit,
            decimal_point=1,
        ),
    )
    for p in form.parameters:
        print(f"{p.register_range}: {p.name} {p.data_type} {p.byte_order} at buffer index {p.buffer_index}")

    # A parameter dropped onto an occupied index is refused
    clash = ParameterConfig(name="power", register_range="Measurements", buffer_index=2)
    print(f"power at 2: {check_placement(clash, form.parameters, form.register_ranges)}")

    state = WizardState()
    while True:
        moved = next_tab(state, form)
        if moved.tab == state.tab:
            break
        state = moved

    outcome = submit(state, form)
    if outcome.payload is None:
        for e in outcome.result.all_errors():
            print(f"{e.field}: {e.message}", file=sys.stderr)
        sys.exit(1)
    print(json.dumps(outcome.payload, indent=2))


if __name__ == "__main__":
    main()
