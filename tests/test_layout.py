"""Tests for the layout model: byte sizes, word counts, byte order classes."""

import pytest

from modbus_layout.layout import (
    allowed_byte_orders,
    buffer_span,
    byte_order_error,
    byte_size,
    default_byte_order,
    is_multi_register,
    last_valid_buffer_index,
    required_word_count,
    retype_parameter,
)
from modbus_layout.types import ByteOrder, ParameterConfig


@pytest.mark.parametrize(
    "data_type,expected",
    [
        ("INT8", 1),
        ("UINT8", 1),
        ("BOOLEAN", 1),
        ("BIT", 1),
        ("INT16", 2),
        ("UINT16", 2),
        ("BCD", 2),
        ("INT32", 4),
        ("UINT32", 4),
        ("FLOAT32", 4),
        ("FLOAT", 4),
        ("INT64", 8),
        ("UINT64", 8),
        ("DOUBLE", 8),
        ("FLOAT64", 8),
    ],
)
def test_byte_size_fixed_types(data_type: str, expected: int) -> None:
    assert byte_size(data_type) == expected
    # word count only matters for strings
    assert byte_size(data_type, 7) == expected


@pytest.mark.parametrize("data_type", ["STRING", "ASCII"])
def test_byte_size_strings(data_type: str) -> None:
    assert byte_size(data_type) == 20
    assert byte_size(data_type, 3) == 6
    assert byte_size(data_type, 125) == 250


def test_unknown_type_falls_back_to_16_bit() -> None:
    assert byte_size("WIDGET") == 2
    assert required_word_count("WIDGET") == 1
    assert not is_multi_register("WIDGET")


def test_lowercase_type_names_are_accepted() -> None:
    assert byte_size("float32") == 4
    assert required_word_count(" int64 ") == 4


@pytest.mark.parametrize(
    "data_type,current,expected",
    [
        ("INT16", None, 1),
        ("BOOLEAN", None, 1),
        ("INT8", None, 1),
        ("INT32", None, 2),
        ("FLOAT", 9, 2),
        ("DOUBLE", None, 4),
        ("STRING", None, 10),
        ("ASCII", 4, 4),
    ],
)
def test_required_word_count(data_type: str, current: int | None, expected: int) -> None:
    assert required_word_count(data_type, current) == expected


class TestByteOrders:
    def test_allowed_orders_follow_register_class(self) -> None:
        assert allowed_byte_orders("INT16") == (ByteOrder.AB, ByteOrder.BA)
        assert ByteOrder.CDAB in allowed_byte_orders("FLOAT32")
        assert ByteOrder.AB not in allowed_byte_orders("UINT64")

    def test_default_orders(self) -> None:
        assert default_byte_order("UINT16") == ByteOrder.AB
        assert default_byte_order("INT32") == ByteOrder.ABCD

    def test_mismatch_messages(self) -> None:
        assert byte_order_error("FLOAT32", "AB") == "For multi-register types, use ABCD, DCBA, BADC, or CDAB"
        assert byte_order_error("INT16", "ABCD") == "For single register types, use AB or BA"
        assert byte_order_error("INT16", "ba") is None
        assert byte_order_error("DOUBLE", "DCBA") is None


def test_buffer_span_is_inclusive() -> None:
    p = ParameterConfig(name="t", data_type="FLOAT32", buffer_index=4, word_count=2, byte_order="ABCD")
    assert buffer_span(p) == (4, 7)
    assert buffer_span(ParameterConfig(name="t", buffer_index=None, register_index=None)) is None


def test_buffer_span_uses_register_index_when_buffer_index_missing() -> None:
    p = ParameterConfig(name="t", data_type="INT16", buffer_index=None, register_index=3)
    assert buffer_span(p) == (6, 7)


@pytest.mark.parametrize(
    "length,data_type,word_count,expected",
    [
        (2, "INT16", None, 2),
        (4, "FLOAT32", None, 4),
        (4, "DOUBLE", None, 0),
        (10, "STRING", 10, 0),
        (1, "BOOLEAN", None, 0),
    ],
)
def test_last_valid_buffer_index(length: int, data_type: str, word_count: int | None, expected: int) -> None:
    assert last_valid_buffer_index(length, data_type, word_count) == expected


class TestRetype:
    def test_int16_to_float32_resets_order_and_word_count(self) -> None:
        p = ParameterConfig(name="temp", data_type="INT16", byte_order="AB", word_count=1)
        q = retype_parameter(p, "FLOAT32")
        assert q.data_type == "FLOAT32"
        assert q.byte_order == "ABCD"
        assert q.word_count == 2

    def test_same_class_keeps_byte_order(self) -> None:
        p = ParameterConfig(name="v", data_type="FLOAT32", byte_order="CDAB", word_count=2)
        q = retype_parameter(p, "UINT32")
        assert q.byte_order == "CDAB"

    def test_multi_to_single_resets_to_ab(self) -> None:
        p = ParameterConfig(name="v", data_type="DOUBLE", byte_order="DCBA", word_count=4)
        q = retype_parameter(p, "uint16")
        assert q.data_type == "UINT16"
        assert q.byte_order == "AB"
        assert q.word_count == 1

    def test_string_keeps_its_word_count(self) -> None:
        p = ParameterConfig(name="serial", data_type="STRING", word_count=6, byte_order="ABCD")
        assert retype_parameter(p, "ASCII").word_count == 6
        q = retype_parameter(ParameterConfig(name="s", data_type="INT16", word_count=1), "STRING")
        assert q.word_count == 1

    def test_retype_does_not_mutate(self) -> None:
        p = ParameterConfig(name="v", data_type="INT16")
        retype_parameter(p, "INT64")
        assert p.data_type == "INT16"
