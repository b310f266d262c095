"""modbus-layout: register/parameter layout, overlap validation and scaling for Modbus device forms."""

__version__ = "0.1.0"

from .allocator import allocate, next_buffer_index
from .errors import DecodeError, ExpressionError, InvalidFormError, ModbusIOError, ModbusLayoutError
from .form import ConnectionSettings, DeviceBasics, DeviceForm, FormKind
from .layout import byte_size, is_multi_register, required_word_count
from .overlap import PlacementConflict, check_placement, find_placement_conflict
from .reader import DeviceReader, read_device
from .submission import from_data_points, load_form, to_data_points, to_submission
from .types import (
    ByteOrder,
    DataType,
    DeviceReading,
    FieldError,
    FunctionCode,
    ParameterConfig,
    Reading,
    RegisterRange,
    ValidationResult,
)
from .validation import validate_form

__all__ = [
    "__version__",
    "allocate",
    "next_buffer_index",
    "DecodeError",
    "ExpressionError",
    "InvalidFormError",
    "ModbusIOError",
    "ModbusLayoutError",
    "ConnectionSettings",
    "DeviceBasics",
    "DeviceForm",
    "FormKind",
    "byte_size",
    "is_multi_register",
    "required_word_count",
    "PlacementConflict",
    "check_placement",
    "find_placement_conflict",
    "DeviceReader",
    "read_device",
    "from_data_points",
    "load_form",
    "to_data_points",
    "to_submission",
    "ByteOrder",
    "DataType",
    "DeviceReading",
    "FieldError",
    "FunctionCode",
    "ParameterConfig",
    "Reading",
    "RegisterRange",
    "ValidationResult",
    "validate_form",
]
