"""
Decode rules for a register range response buffer.

A range read yields ``length`` 16-bit registers; the buffer is those registers
laid out big-endian, so buffer index 2*i is the high byte of register i.
Coil and discrete input responses are packed 16 bits per register, least
significant bit first, before the same rules apply.
"""

import logging
import struct
from typing import Sequence

from .errors import DecodeError
from .layout import (
    EIGHT_BIT_TYPES,
    SIXTEEN_BIT_TYPES,
    SIXTY_FOUR_BIT_TYPES,
    THIRTY_TWO_BIT_TYPES,
    default_byte_order,
    is_bit_type,
    is_float_type,
    is_string_type,
    param_byte_size,
)
from .scaling import apply_bitmask, make_reading, unparseable_reading
from .types import ByteOrder, DataType, ParameterConfig, Reading

logger = logging.getLogger(__name__)

_FLOAT_FORMATS = {4: ">f", 8: ">d"}


def registers_to_bytes(registers: Sequence[int]) -> bytes:
    """Big-endian byte buffer of 16-bit register values."""
    return b"".join(int(r & 0xFFFF).to_bytes(2, "big") for r in registers)


def bits_to_registers(bits: Sequence[bool], length: int | None = None) -> list[int]:
    """Pack coil/discrete bits into 16-bit words, bit i of word k being bits[16*k + i]."""
    count = length if length is not None else (len(bits) + 15) // 16
    words = [0] * count
    for i, bit in enumerate(bits):
        word = i // 16
        if word >= count:
            break
        if bit:
            words[word] |= 1 << (i % 16)
    return words


def reorder_bytes(data: bytes, byte_order: str) -> bytes:
    """
    Rearrange data (2, 4 or 8 bytes) into big-endian order.

    AB/ABCD keep the order, BA swaps a register's bytes, DCBA reverses every
    byte, BADC swaps the bytes inside each register and CDAB swaps the two
    halves (registers for 32-bit values, 32-bit words for 64-bit values).
    """
    order = byte_order.strip().upper()
    size = len(data)
    if size == 2:
        if order == ByteOrder.AB.value:
            return data
        if order == ByteOrder.BA.value:
            return data[::-1]
    elif size in (4, 8):
        if order == ByteOrder.ABCD.value:
            return data
        if order == ByteOrder.DCBA.value:
            return data[::-1]
        if order == ByteOrder.BADC.value:
            return b"".join(data[i : i + 2][::-1] for i in range(0, size, 2))
        if order == ByteOrder.CDAB.value:
            half = size // 2
            return data[half:] + data[:half]
    raise ValueError(f"Byte order {byte_order!r} does not apply to a {size}-byte value")


def _swap_string_bytes(data: bytes, byte_order: str) -> bytes:
    if byte_order.strip().upper() in (ByteOrder.BA.value, ByteOrder.BADC.value):
        return b"".join(data[i : i + 2][::-1] for i in range(0, len(data), 2))
    return data


def _bcd_value(raw: int, name: str) -> int:
    value = 0
    for shift in (12, 8, 4, 0):
        digit = (raw >> shift) & 0xF
        if digit > 9:
            raise DecodeError(name, f"Invalid BCD digit {digit:#x} in {raw:#06x} for {name!r}")
        value = value * 10 + digit
    return value


def _is_signed(param: ParameterConfig, data_type: str) -> bool:
    if param.signed is not None:
        return bool(param.signed)
    return data_type.startswith("INT")


def decode_parameter(buffer: bytes, param: ParameterConfig) -> int | float | str | bool:
    """
    Raw value of param from a range buffer, before scaling.

    The bitmask is applied to the unsigned value after byte reordering and
    before signedness or float interpretation. Raises DecodeError when the
    parameter does not fit the buffer or its bytes cannot be interpreted.
    """
    start = param.effective_buffer_index
    if start is None:
        raise DecodeError(param.name, f"Parameter {param.name!r} has no buffer index")
    data_type = param.data_type.strip().upper()
    byte_order = param.byte_order or default_byte_order(data_type).value
    width = 2 if is_bit_type(data_type) else param_byte_size(param)
    if start < 0 or start + width > len(buffer):
        raise DecodeError(
            param.name,
            f"Bytes {start}-{start + width - 1} of {param.name!r} fall outside the {len(buffer)}-byte buffer",
        )
    chunk = buffer[start : start + width]

    try:
        if is_string_type(data_type):
            text = _swap_string_bytes(chunk, byte_order).rstrip(b"\x00")
            return text.decode("ascii")

        if is_bit_type(data_type):
            if param.bit_position is None or not 0 <= param.bit_position <= 15:
                raise DecodeError(param.name, f"Bit position {param.bit_position!r} is not within 0-15")
            word = apply_bitmask(int.from_bytes(reorder_bytes(chunk, byte_order), "big"), param.bitmask)
            return bool((word >> param.bit_position) & 1)

        if data_type in {t.value for t in EIGHT_BIT_TYPES}:
            raw = apply_bitmask(chunk[0], param.bitmask)
            if _is_signed(param, data_type) and raw >= 0x80:
                return raw - 0x100
            return raw

        ordered = reorder_bytes(chunk, byte_order)
        raw = apply_bitmask(int.from_bytes(ordered, "big"), param.bitmask)

        if data_type == DataType.BCD.value:
            return _bcd_value(raw, param.name)
        if is_float_type(data_type):
            return struct.unpack(_FLOAT_FORMATS[width], raw.to_bytes(width, "big"))[0]
        if data_type in {t.value for t in SIXTEEN_BIT_TYPES | THIRTY_TWO_BIT_TYPES | SIXTY_FOUR_BIT_TYPES}:
            bits = width * 8
            if _is_signed(param, data_type) and raw >= 1 << (bits - 1):
                return raw - (1 << bits)
            return raw
    except (ValueError, UnicodeDecodeError, struct.error) as e:
        raise DecodeError(param.name, f"Cannot decode {param.name!r} as {data_type}: {e}") from e
    raise DecodeError(param.name, f"Unknown data type {param.data_type!r} for {param.name!r}")


def read_parameter(buffer: bytes, param: ParameterConfig) -> Reading:
    """Decode and scale param; a decode failure yields an unparseable reading."""
    try:
        raw = decode_parameter(buffer, param)
    except DecodeError as e:
        logger.debug("Decode failed: %s", e)
        return unparseable_reading(param)
    return make_reading(param, raw)
