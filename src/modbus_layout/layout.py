"""Layout model: byte size, word count and byte order class of each data type."""

import dataclasses
import logging

from .types import ByteOrder, DataType, ParameterConfig

logger = logging.getLogger(__name__)

EIGHT_BIT_TYPES = frozenset({DataType.INT8, DataType.UINT8})
BIT_TYPES = frozenset({DataType.BOOLEAN, DataType.BIT})
SIXTEEN_BIT_TYPES = frozenset({DataType.INT16, DataType.UINT16, DataType.BCD})
THIRTY_TWO_BIT_TYPES = frozenset({DataType.INT32, DataType.UINT32, DataType.FLOAT32, DataType.FLOAT})
SIXTY_FOUR_BIT_TYPES = frozenset({DataType.INT64, DataType.UINT64, DataType.DOUBLE, DataType.FLOAT64})
STRING_TYPES = frozenset({DataType.STRING, DataType.ASCII})
FLOAT_TYPES = frozenset({DataType.FLOAT32, DataType.FLOAT, DataType.DOUBLE, DataType.FLOAT64})
INTEGER_TYPES = frozenset(
    {
        DataType.INT8,
        DataType.UINT8,
        DataType.INT16,
        DataType.UINT16,
        DataType.INT32,
        DataType.UINT32,
        DataType.INT64,
        DataType.UINT64,
    }
)

SINGLE_REGISTER_BYTE_ORDERS = (ByteOrder.AB, ByteOrder.BA)
MULTI_REGISTER_BYTE_ORDERS = (ByteOrder.ABCD, ByteOrder.DCBA, ByteOrder.BADC, ByteOrder.CDAB)

# Words a string parameter occupies when no word count has been set
DEFAULT_STRING_WORD_COUNT = 10
# Practical Modbus limit of registers per read request
MAX_WORDS_PER_READ = 125


def _data_type(data_type: str) -> DataType | None:
    try:
        return DataType(str(data_type).strip().upper())
    except ValueError:
        return None


def is_known_data_type(data_type: str) -> bool:
    return _data_type(data_type) is not None


def is_bit_type(data_type: str) -> bool:
    return _data_type(data_type) in BIT_TYPES


def is_string_type(data_type: str) -> bool:
    return _data_type(data_type) in STRING_TYPES


def is_integer_type(data_type: str) -> bool:
    return _data_type(data_type) in INTEGER_TYPES


def is_float_type(data_type: str) -> bool:
    return _data_type(data_type) in FLOAT_TYPES


def byte_size(data_type: str, word_count: int | None = None) -> int:
    """
    Number of buffer bytes a value of data_type occupies.

    Strings take word_count * 2 bytes (10 words when unset). Unknown types are
    treated as 16-bit.
    """
    dt = _data_type(data_type)
    if dt in EIGHT_BIT_TYPES or dt in BIT_TYPES:
        return 1
    if dt in SIXTEEN_BIT_TYPES:
        return 2
    if dt in THIRTY_TWO_BIT_TYPES:
        return 4
    if dt in SIXTY_FOUR_BIT_TYPES:
        return 8
    if dt in STRING_TYPES:
        return (word_count or DEFAULT_STRING_WORD_COUNT) * 2
    logger.debug("Unknown data type %r, assuming 2 bytes", data_type)
    return 2


def required_word_count(data_type: str, current_word_count: int | None = None) -> int:
    """Registers a value of data_type consumes; strings keep current_word_count (default 10)."""
    dt = _data_type(data_type)
    if dt in THIRTY_TWO_BIT_TYPES:
        return 2
    if dt in SIXTY_FOUR_BIT_TYPES:
        return 4
    if dt in STRING_TYPES:
        return current_word_count or DEFAULT_STRING_WORD_COUNT
    return 1


def is_multi_register(data_type: str) -> bool:
    return required_word_count(data_type) > 1


def allowed_byte_orders(data_type: str) -> tuple[ByteOrder, ...]:
    if is_multi_register(data_type):
        return MULTI_REGISTER_BYTE_ORDERS
    return SINGLE_REGISTER_BYTE_ORDERS


def default_byte_order(data_type: str) -> ByteOrder:
    return ByteOrder.ABCD if is_multi_register(data_type) else ByteOrder.AB


def byte_order_error(data_type: str, byte_order: str) -> str | None:
    """Message when byte_order does not belong to data_type's register class, else None."""
    order = str(byte_order).strip().upper()
    if is_multi_register(data_type):
        if order not in {o.value for o in MULTI_REGISTER_BYTE_ORDERS}:
            return "For multi-register types, use ABCD, DCBA, BADC, or CDAB"
    elif order not in {o.value for o in SINGLE_REGISTER_BYTE_ORDERS}:
        return "For single register types, use AB or BA"
    return None


def param_byte_size(param: ParameterConfig) -> int:
    return byte_size(param.data_type, param.word_count)


def param_word_count(param: ParameterConfig) -> int:
    return required_word_count(param.data_type, param.word_count)


def buffer_span(param: ParameterConfig) -> tuple[int, int] | None:
    """Inclusive [start, end] byte span of param, or None when it has no buffer index."""
    start = param.effective_buffer_index
    if start is None:
        return None
    return start, start + param_byte_size(param) - 1


def last_valid_buffer_index(range_length: int, data_type: str, word_count: int | None = None) -> int:
    """Highest buffer index at which data_type still fits inside a range of range_length registers."""
    return (range_length - required_word_count(data_type, word_count)) * 2


def retype_parameter(param: ParameterConfig, data_type: str) -> ParameterConfig:
    """
    Return param switched to data_type.

    The word count follows the new type (strings keep their own count, or 10),
    and the byte order resets to the class default when it no longer fits the
    single/multi register class of the new type.
    """
    new_type = str(data_type).strip().upper()
    current = param.word_count if is_string_type(new_type) else None
    word_count = required_word_count(new_type, current)
    byte_order = param.byte_order
    if byte_order_error(new_type, byte_order) is not None:
        byte_order = default_byte_order(new_type).value
    return dataclasses.replace(param, data_type=new_type, word_count=word_count, byte_order=byte_order)
