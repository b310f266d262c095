"""
Whole-form validation.

Every check returns messages keyed by form field; nothing here raises for bad
input. validate_form() groups them into a ValidationResult by tab category.
"""

import logging
import re
from typing import Sequence

from .form import ConnectionSettings, DeviceBasics, DeviceForm, FormKind
from .layout import (
    MAX_WORDS_PER_READ,
    byte_order_error,
    is_bit_type,
    is_known_data_type,
    is_string_type,
)
from .overlap import find_placement_conflict
from .scaling import validate_bitmask, validate_scaling_equation
from .types import FieldError, FunctionCode, ParameterConfig, RegisterRange, ValidationResult

logger = logging.getLogger(__name__)

IP_RE = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$")
VALID_BAUD_RATES = (1200, 2400, 4800, 9600, 19200, 38400, 57600, 115200)
VALID_STOP_BITS = ("1", "1.5", "2")
VALID_PARITY = ("none", "even", "odd")
MIN_DEVICE_NAME_LENGTH = 3
MAX_DECIMAL_POINT = 10
MAX_BIT_POSITION = 15

FieldErrors = dict[str, str]


def _add(errors: FieldErrors, field: str, message: str) -> None:
    # First message per field wins
    errors.setdefault(field, message)


def _parse_int(value: str) -> int | None:
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def validate_device_basics(basics: DeviceBasics, kind: FormKind = FormKind.DEVICE) -> FieldErrors:
    errors: FieldErrors = {}
    noun = "Template" if kind == FormKind.TEMPLATE else "Device"
    name = basics.name.strip()
    if not name:
        _add(errors, "name", f"{noun} name is required")
    elif len(name) < MIN_DEVICE_NAME_LENGTH:
        _add(errors, "name", f"{noun} name must be at least {MIN_DEVICE_NAME_LENGTH} characters")
    if not basics.make.strip():
        _add(errors, "make", "Manufacturer/Make is required")
    if not basics.model.strip():
        _add(errors, "model", "Model is required")
    if kind == FormKind.TEMPLATE and not basics.device_type.strip():
        _add(errors, "deviceType", "Device type is required")
    return errors


def validate_connection_settings(conn: ConnectionSettings) -> FieldErrors:
    errors: FieldErrors = {}
    conn_type = conn.connection_type.strip().lower()
    if conn_type == "tcp":
        ip = conn.ip.strip()
        if not ip:
            _add(errors, "ip", "IP address is required")
        elif not IP_RE.match(ip) or any(int(octet) > 255 for octet in ip.split(".")):
            _add(errors, "ip", "Please enter a valid IP address (e.g., 192.168.1.100)")
        if not conn.port.strip():
            _add(errors, "port", "Port is required")
        else:
            port = _parse_int(conn.port)
            if port is None or not 1 <= port <= 65535:
                _add(errors, "port", "Port must be a number between 1 and 65535")
    elif conn_type == "rtu":
        if not conn.serial_port.strip():
            _add(errors, "serialPort", "Serial port is required")
        if not conn.baud_rate.strip():
            _add(errors, "baudRate", "Baud rate is required")
        elif _parse_int(conn.baud_rate) not in VALID_BAUD_RATES:
            _add(errors, "baudRate", "Please select a valid baud rate")
        if not conn.data_bits.strip():
            _add(errors, "dataBits", "Data bits is required")
        else:
            data_bits = _parse_int(conn.data_bits)
            if data_bits is None or not 5 <= data_bits <= 8:
                _add(errors, "dataBits", "Data bits must be between 5 and 8")
        if not conn.stop_bits.strip():
            _add(errors, "stopBits", "Stop bits is required")
        elif conn.stop_bits.strip() not in VALID_STOP_BITS:
            _add(errors, "stopBits", "Please select a valid stop bits value")
        if not conn.parity.strip():
            _add(errors, "parity", "Parity is required")
        elif conn.parity.strip().lower() not in VALID_PARITY:
            _add(errors, "parity", "Please select a valid parity option")
    else:
        _add(errors, "type", f"Unknown connection type {conn.connection_type!r}, use tcp or rtu")

    if not conn.slave_id.strip():
        _add(errors, "slaveId", "Slave ID is required")
    else:
        slave_id = _parse_int(conn.slave_id)
        if slave_id is None or not 1 <= slave_id <= 255:
            _add(errors, "slaveId", "Slave ID must be a number between 1 and 255")
    return errors


def validate_register_ranges(ranges: Sequence[RegisterRange]) -> FieldErrors:
    errors: FieldErrors = {}
    if not ranges:
        _add(errors, "registerRanges", "At least one register range is required")
        return errors
    seen: dict[str, int] = {}
    for i, r in enumerate(ranges):
        key = r.range_name.strip().casefold()
        if not key:
            _add(errors, f"range_{i}_name", "Range name is required")
        elif key in seen:
            _add(errors, f"range_{i}_name", f'Range name "{r.range_name}" is already used by range {seen[key] + 1}')
        else:
            seen[key] = i
        if r.start_register < 0:
            _add(errors, f"range_{i}_startRegister", "Start register must be a positive number")
        if r.length < 1:
            _add(errors, f"range_{i}_length", "Length must be greater than 0")
        elif r.length > MAX_WORDS_PER_READ:
            _add(
                errors,
                f"range_{i}_length",
                f"Length must not exceed the Modbus limit of {MAX_WORDS_PER_READ} registers per read",
            )
        if r.function_code not in {int(fc) for fc in FunctionCode}:
            _add(errors, f"range_{i}_functionCode", "Function code must be 1, 2, 3 or 4")
    return errors


def parameter_field_errors(param: ParameterConfig) -> FieldErrors:
    """Checks that depend on param alone, keyed by bare field name."""
    errors: FieldErrors = {}
    if not param.name.strip():
        _add(errors, "name", "Parameter name is required")
    if not param.data_type.strip():
        _add(errors, "dataType", "Data type is required")
    elif not is_known_data_type(param.data_type):
        _add(errors, "dataType", f'Unsupported data type "{param.data_type}"')
    if not param.register_range.strip():
        _add(errors, "registerRange", "Register range is required")
    if param.effective_buffer_index is None:
        _add(errors, "bufferIndex", "Buffer index is required")

    if is_known_data_type(param.data_type):
        message = byte_order_error(param.data_type, param.byte_order)
        if message:
            _add(errors, "byteOrder", message)

    message = validate_scaling_equation(param.scaling_equation)
    if message:
        _add(errors, "scalingEquation", message)
    message = validate_bitmask(param.bitmask)
    if message:
        _add(errors, "bitmask", message)

    if is_bit_type(param.data_type):
        if param.bit_position is None:
            _add(errors, "bitPosition", "Bit position is required for boolean/bit types")
        elif not 0 <= param.bit_position <= MAX_BIT_POSITION:
            _add(errors, "bitPosition", f"Bit position must be between 0 and {MAX_BIT_POSITION}")

    if is_string_type(param.data_type):
        if not param.word_count or param.word_count < 1:
            _add(errors, "wordCount", "String types must have a word count of at least 1")
        elif param.word_count > MAX_WORDS_PER_READ:
            _add(errors, "wordCount", f"Word count must not exceed {MAX_WORDS_PER_READ} for strings")

    if not 0 <= (param.decimal_point or 0) <= MAX_DECIMAL_POINT:
        _add(errors, "decimalPoint", f"Decimal places must be between 0 and {MAX_DECIMAL_POINT}")

    if param.min_value is not None and param.max_value is not None and param.min_value >= param.max_value:
        _add(errors, "minValue", "Minimum value must be less than maximum value")
    return errors


def validate_parameters(params: Sequence[ParameterConfig], ranges: Sequence[RegisterRange]) -> FieldErrors:
    """
    Field checks for every parameter, then its placement against every other
    parameter of the form (compared by position, so duplicate names are caught).
    """
    errors: FieldErrors = {}
    for i, param in enumerate(params):
        for field, message in parameter_field_errors(param).items():
            _add(errors, f"param_{i}_{field}", message)
        if not ranges:
            continue
        others = list(params[:i]) + list(params[i + 1 :])
        conflict = find_placement_conflict(param, others, ranges)
        if conflict is not None:
            _add(errors, f"param_{i}_{conflict.field}", conflict.message)
    return errors


def _field_errors(errors: FieldErrors) -> tuple[FieldError, ...]:
    return tuple(FieldError(field, message) for field, message in errors.items())


def validate_form(form: DeviceForm) -> ValidationResult:
    """Validate every tab of form. Templates carry no connection settings to check."""
    basic_info = validate_device_basics(form.basics, form.kind)
    connection = {} if form.is_template else validate_connection_settings(form.connection)
    registers = validate_register_ranges(form.register_ranges)
    parameters = validate_parameters(form.parameters, form.register_ranges)

    general: list[FieldError] = []
    if form.parameters and not form.register_ranges:
        general.append(FieldError("general", "Register ranges must be defined before adding parameters"))

    result = ValidationResult(
        is_valid=not (basic_info or connection or registers or parameters or general),
        basic_info=_field_errors(basic_info),
        connection=_field_errors(connection),
        registers=_field_errors(registers),
        parameters=_field_errors(parameters),
        general=tuple(general),
    )
    logger.debug(
        "Validated %s form %r: valid=%s, %d error(s)",
        form.kind.value,
        form.basics.name,
        result.is_valid,
        len(result.all_errors()),
    )
    return result
