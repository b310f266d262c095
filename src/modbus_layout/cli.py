#!/usr/bin/env python3
"""Command-line tools for modbus-layout device and template forms, built on Typer."""

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from . import __version__  # type: ignore
from .allocator import allocate, next_buffer_index, params_in_range
from .errors import InvalidFormError, ModbusIOError
from .form import ConnectionSettings, DeviceForm, FormKind
from .layout import buffer_span, is_bit_type, retype_parameter
from .overlap import find_placement_conflict, find_range
from .reader import ping_device, read_device
from .scaling import apply_bitmask, make_reading, validate_bitmask, validate_scaling_equation
from .submission import load_form, to_submission
from .types import DeviceReading, ParameterConfig, Reading, ValidationCategory, ValidationResult
from .validation import validate_form

app = typer.Typer(
    name="mblayout",
    help="Validate, lay out, export and read Modbus device and template forms.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Shared options and helpers
# ============================================================================

FormArgument = Annotated[
    Path,
    typer.Argument(help="Form JSON file (form shape or submission shape with dataPoints)"),
]
KindOption = Annotated[
    Optional[FormKind],
    typer.Option("--kind", "-k", help="Treat the form as a device or a template (default: from the file)"),
]
HostOption = Annotated[
    Optional[str],
    typer.Option("--host", "-h", help="Device hostname or IP address (overrides the form)", envvar="MBLAYOUT_HOST"),
]
PortOption = Annotated[
    Optional[int],
    typer.Option("--port", "-p", help="Modbus TCP port (overrides the form)", envvar="MBLAYOUT_PORT"),
]
UnitIdOption = Annotated[
    Optional[int],
    typer.Option("--unit-id", "-u", help="Modbus unit/slave ID (overrides the form)", envvar="MBLAYOUT_UNIT_ID"),
]
TimeoutOption = Annotated[
    float,
    typer.Option("--timeout", "-t", help="Connection timeout in seconds", envvar="MBLAYOUT_TIMEOUT"),
]
RetriesOption = Annotated[
    int,
    typer.Option("--retries", "-r", help="Number of retries on failure", envvar="MBLAYOUT_RETRIES"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbose flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if not verbose else "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def load_form_file(path: Path, kind: Optional[FormKind] = None) -> DeviceForm:
    """Read and load a form JSON file. Raises InvalidFormError for unreadable or malformed files."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise InvalidFormError(f"Cannot read {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise InvalidFormError(f"{path} is not valid JSON: {e}") from e
    return load_form(raw, kind)


def connection_overrides(
    settings: ConnectionSettings,
    host: Optional[str],
    port: Optional[int],
    unit_id: Optional[int],
) -> ConnectionSettings:
    """Settings with command-line overrides applied; --host switches to Modbus TCP."""
    changes: dict[str, str] = {}
    if host:
        changes.update(connection_type="tcp", ip=host)
    if port is not None:
        changes["port"] = str(port)
    if unit_id is not None:
        changes["slave_id"] = str(unit_id)
    return dataclasses.replace(settings, **changes) if changes else settings


def parse_number(value: str) -> int | float:
    """Parse a raw value: decimal integer, 0x hex integer, or float."""
    v = value.strip()
    if v.lower().startswith("0x"):
        return int(v, 16)
    try:
        return int(v)
    except ValueError:
        return float(v)


def format_reading(reading: Reading) -> str:
    """One line per reading: name = value unit, with flags."""
    if reading.error is not None:
        return f"{reading.name} = <{reading.error}>"
    value = reading.value
    text = str(value).lower() if isinstance(value, bool) else str(value)
    if reading.unit:
        text = f"{text} {reading.unit}"
    line = f"{reading.name} = {text}"
    if reading.out_of_bounds:
        line += " [out of bounds]"
    return line


def echo_validation(result: ValidationResult) -> None:
    if result.is_valid:
        typer.echo("OK: form is valid")
        return
    typer.echo(f"Invalid: {len(result.all_errors())} error(s)", err=True)
    for category in ValidationCategory:
        for e in result.errors_for(category):
            typer.echo(f"  [{category.value}] {e.field}: {e.message}", err=True)


def layout_rows(form: DeviceForm) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for r in form.register_ranges:
        params = []
        for p in sorted(
            params_in_range(form.parameters, r.range_name),
            key=lambda p: (p.effective_buffer_index is None, p.effective_buffer_index or 0, p.bit_position or 0),
        ):
            span = buffer_span(p)
            entry: dict[str, Any] = {
                "name": p.name,
                "dataType": p.data_type,
                "bufferIndex": p.effective_buffer_index,
                "byteSpan": list(span) if span else None,
                "byteOrder": p.byte_order,
            }
            if is_bit_type(p.data_type):
                entry["bitPosition"] = p.bit_position
            params.append(entry)
        rows.append(
            {
                "range": r.to_dict(),
                "byteCapacity": r.byte_capacity,
                "nextBufferIndex": next_buffer_index(params_in_range(form.parameters, r.range_name)),
                "parameters": params,
            }
        )
    return rows


def _unexpected(e: Exception, verbose: bool) -> typer.Exit:
    typer.echo(f"Error: Unexpected error: {e}", err=True)
    if verbose:
        import traceback
        traceback.print_exc()
    return typer.Exit(4)


# ============================================================================
# Commands
# ============================================================================

@app.command()
def validate(
    form_path: FormArgument,
    kind: KindOption = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Validate a form: basic info, connection, register ranges and parameter placement.

    Exits 0 when valid, 1 when the form has errors.
    """
    setup_logging(verbose)

    try:
        form = load_form_file(form_path, kind)
        result = validate_form(form)
    except InvalidFormError as e:
        typer.echo(f"Error: Invalid form: {e}", err=True)
        raise typer.Exit(2)
    except Exception as e:
        raise _unexpected(e, verbose)

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        echo_validation(result)
    if not result.is_valid:
        raise typer.Exit(1)


@app.command()
def layout(
    form_path: FormArgument,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """Show how parameters occupy each register range's byte buffer."""
    setup_logging(verbose)

    try:
        form = load_form_file(form_path)
        rows = layout_rows(form)
    except InvalidFormError as e:
        typer.echo(f"Error: Invalid form: {e}", err=True)
        raise typer.Exit(2)
    except Exception as e:
        raise _unexpected(e, verbose)

    if json_output:
        typer.echo(json.dumps(rows, indent=2))
        return
    for row in rows:
        r = row["range"]
        typer.echo(
            f"{r['rangeName']}: fc {r['functionCode']}, start {r['startRegister']}, "
            f"{r['length']} registers ({row['byteCapacity']} bytes), next index {row['nextBufferIndex']}"
        )
        for p in row["parameters"]:
            span = p["byteSpan"]
            where = f"{span[0]}-{span[1]}" if span else "?"
            bit = f" bit {p['bitPosition']}" if "bitPosition" in p else ""
            typer.echo(f"  [{where}]{bit} {p['name']} {p['dataType']} {p['byteOrder']}")


@app.command(name="next-index")
def next_index(
    form_path: FormArgument,
    range_name: Annotated[str, typer.Argument(help="Register range name")],
    verbose: VerboseOption = False,
) -> None:
    """Print the buffer index a new parameter in RANGE_NAME would be given."""
    setup_logging(verbose)

    try:
        form = load_form_file(form_path)
        if find_range(form.register_ranges, range_name) is None:
            typer.echo(f"Error: Unknown register range: {range_name!r}", err=True)
            raise typer.Exit(2)
        typer.echo(str(next_buffer_index(params_in_range(form.parameters, range_name))))
    except InvalidFormError as e:
        typer.echo(f"Error: Invalid form: {e}", err=True)
        raise typer.Exit(2)
    except typer.Exit:
        raise
    except Exception as e:
        raise _unexpected(e, verbose)


@app.command()
def place(
    form_path: FormArgument,
    name: Annotated[str, typer.Option("--name", "-n", help="Parameter name")],
    data_type: Annotated[str, typer.Option("--type", help="Data type, e.g. INT16, FLOAT32, BOOLEAN")],
    range_name: Annotated[str, typer.Option("--range", help="Register range name")],
    buffer_index: Annotated[
        Optional[int], typer.Option("--index", "-i", help="Buffer index (default: next free index)")
    ] = None,
    bit_position: Annotated[Optional[int], typer.Option("--bit", help="Bit position for BOOLEAN/BIT")] = None,
    word_count: Annotated[Optional[int], typer.Option("--word-count", help="Word count for STRING/ASCII")] = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Check whether a new parameter can be placed in a form.

    Without --index, the next free index of the range is used.
    Exits 1 when the placement conflicts.
    """
    setup_logging(verbose)

    try:
        form = load_form_file(form_path)
        candidate = ParameterConfig(name=name, register_range=range_name, word_count=word_count)
        candidate = retype_parameter(candidate, data_type)
        if bit_position is not None:
            candidate = dataclasses.replace(candidate, bit_position=bit_position)
        if buffer_index is None:
            candidate = allocate(candidate, form.parameters)
        else:
            candidate = dataclasses.replace(candidate, buffer_index=buffer_index, register_index=buffer_index // 2)
        conflict = find_placement_conflict(candidate, form.parameters, form.register_ranges)
    except InvalidFormError as e:
        typer.echo(f"Error: Invalid form: {e}", err=True)
        raise typer.Exit(2)
    except Exception as e:
        raise _unexpected(e, verbose)

    if json_output:
        out: dict[str, Any] = {"parameter": candidate.to_dict(), "ok": conflict is None}
        if conflict is not None:
            out["conflict"] = {
                "kind": conflict.kind.value,
                "field": conflict.field,
                "message": conflict.message,
                "other": conflict.other,
            }
        typer.echo(json.dumps(out, indent=2))
    elif conflict is None:
        typer.echo(f"OK: {name} fits at buffer index {candidate.buffer_index} in {range_name}")
    else:
        typer.echo(f"Conflict: {conflict.message}", err=True)
    if conflict is not None:
        raise typer.Exit(1)


@app.command()
def scale(
    raw: Annotated[str, typer.Argument(help="Raw value (decimal, 0x hex or float)")],
    equation: Annotated[Optional[str], typer.Option("--equation", "-e", help="Scaling equation in x")] = None,
    factor: Annotated[float, typer.Option("--factor", "-f", help="Scaling factor")] = 1.0,
    decimals: Annotated[int, typer.Option("--decimals", "-d", help="Decimal places")] = 0,
    bitmask: Annotated[Optional[str], typer.Option("--bitmask", help="Bitmask (0x...) applied to integer raw values")] = None,
    min_value: Annotated[Optional[float], typer.Option("--min", help="Lower bound")] = None,
    max_value: Annotated[Optional[float], typer.Option("--max", help="Upper bound")] = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """Run a raw value through the scaling pipeline."""
    setup_logging(verbose)

    for message in (validate_scaling_equation(equation), validate_bitmask(bitmask)):
        if message:
            typer.echo(f"Error: {message}", err=True)
            raise typer.Exit(2)
    try:
        value = parse_number(raw)
    except ValueError:
        typer.echo(f"Error: Invalid raw value: {raw!r}", err=True)
        raise typer.Exit(2)
    if bitmask and isinstance(value, int):
        value = apply_bitmask(value, bitmask)

    param = ParameterConfig(
        name="value",
        scaling_equation=equation,
        scaling_factor=factor,
        decimal_point=decimals,
        min_value=min_value,
        max_value=max_value,
    )
    reading = make_reading(param, value)
    if json_output:
        typer.echo(json.dumps(reading.to_dict()))
    elif reading.error is not None:
        typer.echo(f"Error: {reading.error}", err=True)
    else:
        typer.echo(str(reading.value) + (" [out of bounds]" if reading.out_of_bounds else ""))
    if reading.error is not None:
        raise typer.Exit(1)


@app.command()
def export(
    form_path: FormArgument,
    kind: KindOption = None,
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Write the payload to this file")] = None,
    verbose: VerboseOption = False,
) -> None:
    """
    Validate a form and print its submission payload (deviceBasics, connectionSetting, dataPoints).

    Nothing is written when the form is invalid (exit 1).
    """
    setup_logging(verbose)

    try:
        form = load_form_file(form_path, kind)
        result = validate_form(form)
    except InvalidFormError as e:
        typer.echo(f"Error: Invalid form: {e}", err=True)
        raise typer.Exit(2)
    except Exception as e:
        raise _unexpected(e, verbose)

    if not result.is_valid:
        echo_validation(result)
        raise typer.Exit(1)
    text = json.dumps(to_submission(form), indent=2)
    if output is None:
        typer.echo(text)
        return
    try:
        output.write_text(text + "\n", encoding="utf-8")
    except OSError as e:
        typer.echo(f"Error: Cannot write {output}: {e}", err=True)
        raise typer.Exit(2)
    typer.echo(f"OK: Wrote {output}")


@app.command()
def read(
    form_path: FormArgument,
    host: HostOption = None,
    port: PortOption = None,
    unit_id: UnitIdOption = None,
    timeout: TimeoutOption = 3.0,
    retries: RetriesOption = 1,
    device_id: Annotated[Optional[str], typer.Option("--device-id", help="Device ID in the output")] = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Read every parameter of a device form from the device.

    Connection settings come from the form; --host/--port/--unit-id override them.
    Parameters of a range that fails to read are reported as unparseable.
    """
    setup_logging(verbose)

    try:
        form = load_form_file(form_path)
        settings = connection_overrides(form.connection, host, port, unit_id)
        reading: DeviceReading = read_device(
            form, device_id=device_id, settings=settings, timeout=timeout, retries=retries
        )
    except InvalidFormError as e:
        typer.echo(f"Error: Invalid form: {e}", err=True)
        raise typer.Exit(2)
    except ModbusIOError as e:
        typer.echo(f"Error: Connection/Modbus error: {e}", err=True)
        raise typer.Exit(3)
    except Exception as e:
        raise _unexpected(e, verbose)

    if json_output:
        typer.echo(json.dumps(reading.to_dict(), indent=2))
    else:
        for r in reading.readings:
            typer.echo(format_reading(r))


@app.command()
def ping(
    form_path: Annotated[
        Optional[Path], typer.Argument(help="Form JSON file providing connection settings")
    ] = None,
    host: HostOption = None,
    port: PortOption = None,
    unit_id: UnitIdOption = None,
    timeout: TimeoutOption = 3.0,
    retries: RetriesOption = 1,
    verbose: VerboseOption = False,
) -> None:
    """
    Test connectivity by reading one holding register at address 0.

    Uses the form's connection settings, or --host alone.
    """
    setup_logging(verbose)

    try:
        if form_path is not None:
            settings = load_form_file(form_path).connection
        elif host:
            settings = ConnectionSettings()
        else:
            typer.echo("Error: a form file or --host is required for this command", err=True)
            raise typer.Exit(2)
        settings = connection_overrides(settings, host, port, unit_id)
        ping_device(settings, timeout=timeout, retries=retries)
        target = f"{settings.ip}:{settings.port}" if settings.is_tcp else settings.serial_port
        typer.echo(f"OK: Connected to {target}")
    except InvalidFormError as e:
        typer.echo(f"Error: Invalid form: {e}", err=True)
        raise typer.Exit(2)
    except ModbusIOError as e:
        typer.echo(f"Error: Connection/Modbus error: {e}", err=True)
        raise typer.Exit(3)
    except typer.Exit:
        raise
    except Exception as e:
        raise _unexpected(e, verbose)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"modbus-layout {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """mblayout - validate, lay out, export and read Modbus device and template forms."""
    pass


if __name__ == "__main__":
    app()
