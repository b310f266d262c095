"""Core data model: data type and byte order enums, register ranges, parameters, validation and reading results."""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any

from .errors import InvalidFormError


class DataType(str, Enum):
    """Data types a parameter can be decoded as."""

    INT8 = "INT8"
    UINT8 = "UINT8"
    INT16 = "INT16"
    UINT16 = "UINT16"
    INT32 = "INT32"
    UINT32 = "UINT32"
    INT64 = "INT64"
    UINT64 = "UINT64"
    FLOAT32 = "FLOAT32"
    FLOAT = "FLOAT"
    DOUBLE = "DOUBLE"
    FLOAT64 = "FLOAT64"
    BCD = "BCD"
    STRING = "STRING"
    ASCII = "ASCII"
    BOOLEAN = "BOOLEAN"
    BIT = "BIT"


class ByteOrder(str, Enum):
    """Byte order tags: AB/BA for one register, ABCD/DCBA/BADC/CDAB for register groups."""

    AB = "AB"
    BA = "BA"
    ABCD = "ABCD"
    DCBA = "DCBA"
    BADC = "BADC"
    CDAB = "CDAB"


class FunctionCode(IntEnum):
    """Modbus read function codes a register range may use."""

    READ_COILS = 1
    READ_DISCRETE_INPUTS = 2
    READ_HOLDING_REGISTERS = 3
    READ_INPUT_REGISTERS = 4


class ValidationCategory(str, Enum):
    """Error groups of a form validation result, keyed as the form renders them."""

    BASIC_INFO = "basicInfo"
    CONNECTION = "connection"
    REGISTERS = "registers"
    PARAMETERS = "parameters"
    GENERAL = "general"


def _int_field(raw: dict[str, Any], key: str, default: int | None = None) -> int | None:
    value = raw.get(key, default)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise InvalidFormError(f"{key} must be a number, got {value!r}", field=key)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidFormError(f"{key} must be a number, got {value!r}", field=key) from None
    if not number.is_integer():
        raise InvalidFormError(f"{key} must be a whole number, got {value!r}", field=key)
    return int(number)


def _float_field(raw: dict[str, Any], key: str, default: float | None = None) -> float | None:
    value = raw.get(key, default)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise InvalidFormError(f"{key} must be a number, got {value!r}", field=key)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidFormError(f"{key} must be a number, got {value!r}", field=key) from None


def _bool_field(raw: dict[str, Any], key: str) -> bool | None:
    value = raw.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    v = str(value).lower().strip()
    if v in ("true", "1", "on", "yes"):
        return True
    if v in ("false", "0", "off", "no"):
        return False
    raise InvalidFormError(f"{key} must be a boolean, got {value!r}", field=key)


def _str_field(raw: dict[str, Any], key: str, default: str | None = None) -> str | None:
    value = raw.get(key, default)
    if value is None:
        return default
    return str(value)


@dataclass(frozen=True)
class RegisterRange:
    """A contiguous block of 16-bit registers requested with one function code."""

    range_name: str
    start_register: int = 0
    length: int = 1
    function_code: int = FunctionCode.READ_HOLDING_REGISTERS

    @property
    def byte_capacity(self) -> int:
        return self.length * 2

    def to_dict(self) -> dict[str, Any]:
        return {
            "rangeName": self.range_name,
            "startRegister": self.start_register,
            "length": self.length,
            "functionCode": int(self.function_code),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "RegisterRange":
        if not isinstance(raw, dict):
            raise InvalidFormError(f"Register range must be an object, got {type(raw).__name__}")
        return cls(
            range_name=_str_field(raw, "rangeName", "") or "",
            start_register=_int_field(raw, "startRegister", 0),
            length=_int_field(raw, "length", 1),
            function_code=_int_field(raw, "functionCode", int(FunctionCode.READ_HOLDING_REGISTERS)),
        )


@dataclass(frozen=True)
class ParameterConfig:
    """
    A named, typed value extracted from a register range's response buffer.

    buffer_index is the authoritative byte offset; register_index is the legacy
    word offset kept equal to buffer_index // 2. Either may be None in data
    loaded from older payloads.
    """

    name: str
    data_type: str = DataType.INT16.value
    register_range: str = ""
    buffer_index: int | None = 0
    register_index: int | None = 0
    word_count: int | None = 1
    byte_order: str = ByteOrder.AB.value
    bit_position: int | None = None
    signed: bool | None = None
    scaling_factor: float = 1.0
    scaling_equation: str | None = None
    decimal_point: int = 0
    bitmask: str | None = None
    min_value: float | None = None
    max_value: float | None = None
    unit: str | None = None
    description: str | None = None
    format_string: str | None = None

    @property
    def effective_buffer_index(self) -> int | None:
        """buffer_index, or register_index * 2 when buffer_index is absent."""
        if self.buffer_index is not None:
            return self.buffer_index
        if self.register_index is not None:
            return self.register_index * 2
        return None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "dataType": self.data_type,
            "registerRange": self.register_range,
            "bufferIndex": self.buffer_index,
            "registerIndex": self.register_index,
            "wordCount": self.word_count,
            "byteOrder": self.byte_order,
            "bitPosition": self.bit_position,
            "signed": self.signed,
            "scalingFactor": self.scaling_factor,
            "scalingEquation": self.scaling_equation,
            "decimalPoint": self.decimal_point,
            "bitmask": self.bitmask,
            "minValue": self.min_value,
            "maxValue": self.max_value,
            "unit": self.unit,
            "description": self.description,
            "formatString": self.format_string,
        }
        return {k: v for k, v in out.items() if v is not None}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ParameterConfig":
        if not isinstance(raw, dict):
            raise InvalidFormError(f"Parameter must be an object, got {type(raw).__name__}")
        return cls(
            name=_str_field(raw, "name", "") or "",
            data_type=(_str_field(raw, "dataType", DataType.INT16.value) or "").strip().upper(),
            register_range=_str_field(raw, "registerRange", "") or "",
            buffer_index=_int_field(raw, "bufferIndex"),
            register_index=_int_field(raw, "registerIndex"),
            word_count=_int_field(raw, "wordCount"),
            byte_order=(_str_field(raw, "byteOrder", "") or "").strip().upper(),
            bit_position=_int_field(raw, "bitPosition"),
            signed=_bool_field(raw, "signed"),
            scaling_factor=_float_field(raw, "scalingFactor", 1.0),
            scaling_equation=_str_field(raw, "scalingEquation") or None,
            decimal_point=_int_field(raw, "decimalPoint", 0),
            bitmask=_str_field(raw, "bitmask") or None,
            min_value=_float_field(raw, "minValue"),
            max_value=_float_field(raw, "maxValue"),
            unit=_str_field(raw, "unit"),
            description=_str_field(raw, "description"),
            format_string=_str_field(raw, "formatString"),
        )


@dataclass(frozen=True)
class FieldError:
    """One field-scoped validation message."""

    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


@dataclass(frozen=True)
class ValidationResult:
    """Aggregate form validation verdict, errors grouped by category."""

    is_valid: bool
    basic_info: tuple[FieldError, ...] = ()
    connection: tuple[FieldError, ...] = ()
    registers: tuple[FieldError, ...] = ()
    parameters: tuple[FieldError, ...] = ()
    general: tuple[FieldError, ...] = ()

    _ATTRS = {
        ValidationCategory.BASIC_INFO: "basic_info",
        ValidationCategory.CONNECTION: "connection",
        ValidationCategory.REGISTERS: "registers",
        ValidationCategory.PARAMETERS: "parameters",
        ValidationCategory.GENERAL: "general",
    }

    def errors_for(self, category: ValidationCategory) -> tuple[FieldError, ...]:
        return getattr(self, self._ATTRS[ValidationCategory(category)])

    def all_errors(self) -> list[FieldError]:
        out: list[FieldError] = []
        for category in ValidationCategory:
            out.extend(self.errors_for(category))
        return out

    def only(self, *categories: ValidationCategory) -> "ValidationResult":
        """Copy keeping only the given categories' errors; is_valid is unchanged."""
        keep = {ValidationCategory(c) for c in categories}
        kwargs = {
            attr: (self.errors_for(category) if category in keep else ())
            for category, attr in self._ATTRS.items()
        }
        return ValidationResult(is_valid=self.is_valid, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"isValid": self.is_valid}
        for category in ValidationCategory:
            out[category.value] = [e.to_dict() for e in self.errors_for(category)]
        return out


@dataclass(frozen=True)
class Reading:
    """Display value of one parameter from a device read."""

    name: str
    value: Any
    raw: Any = None
    unit: str = ""
    data_type: str | None = None
    description: str = ""
    out_of_bounds: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "value": self.value,
            "unit": self.unit,
            "dataType": self.data_type,
            "description": self.description,
        }
        if self.out_of_bounds:
            out["outOfBounds"] = True
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass(frozen=True)
class DeviceReading:
    """Result of reading every register range of one device."""

    device_id: str
    readings: tuple[Reading, ...] = ()
    device_name: str = ""
    timestamp: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "deviceId": self.device_id,
            "deviceName": self.device_name,
            "readings": [r.to_dict() for r in self.readings],
        }
        if self.timestamp is not None:
            out["timestamp"] = self.timestamp
        return out
