"""Tests for the buffer allocator."""

import pytest

from modbus_layout.allocator import allocate, next_buffer_index, params_in_range, same_range
from modbus_layout.layout import buffer_span
from modbus_layout.types import ParameterConfig


def p(name: str, data_type: str = "INT16", index: int | None = 0, range_name: str = "R1", **kw) -> ParameterConfig:
    return ParameterConfig(name=name, data_type=data_type, register_range=range_name, buffer_index=index, **kw)


def test_empty_range_starts_at_zero() -> None:
    assert next_buffer_index([]) == 0


def test_appends_after_last_occupied_byte() -> None:
    existing = [p("a", "INT16", 0), p("b", "FLOAT32", 2, word_count=2)]
    assert next_buffer_index(existing) == 6


def test_holes_are_not_reused() -> None:
    # a at 0-1 was deleted; b still sits at 4-5
    assert next_buffer_index([p("b", "INT16", 4)]) == 6


def test_uses_max_end_not_last_in_list() -> None:
    existing = [p("late", "DOUBLE", 8, word_count=4), p("early", "INT16", 0)]
    assert next_buffer_index(existing) == 16


def test_string_end_uses_word_count() -> None:
    assert next_buffer_index([p("s", "STRING", 0, word_count=5)]) == 10


def test_bit_parameter_occupies_one_byte() -> None:
    assert next_buffer_index([p("flag", "BOOLEAN", 0, bit_position=3)]) == 1


def test_parameters_without_index_are_skipped() -> None:
    assert next_buffer_index([p("x", index=None, register_index=None)]) == 0


def test_same_range_is_case_insensitive_and_trimmed() -> None:
    assert same_range("Holding ", "holding")
    assert not same_range("R1", "R2")


def test_params_in_range_filters_other_ranges() -> None:
    params = [p("a", range_name="R1"), p("b", range_name="r1"), p("c", range_name="R2")]
    assert [x.name for x in params_in_range(params, "R1")] == ["a", "b"]


class TestAllocate:
    def test_other_ranges_are_ignored(self) -> None:
        existing = [p("other", "DOUBLE", 0, range_name="R2", word_count=4)]
        placed = allocate(p("new", index=None), existing)
        assert placed.buffer_index == 0

    def test_sets_legacy_register_index(self) -> None:
        existing = [p("a", "INT16", 0), p("b", "INT8", 2)]
        placed = allocate(p("new", index=None), existing)
        assert placed.buffer_index == 3
        assert placed.register_index == 1

    def test_excluding_name_drops_the_edited_parameter(self) -> None:
        existing = [p("a", "INT16", 0), p("b", "INT32", 2, word_count=2)]
        placed = allocate(p("b", "INT64", index=2), existing, excluding_name="b")
        assert placed.buffer_index == 2

    def test_does_not_mutate_input(self) -> None:
        original = p("new", index=None)
        allocate(original, [p("a")])
        assert original.buffer_index is None


def test_scenario_two_int16_in_four_byte_range() -> None:
    first = allocate(p("first", index=None), [])
    second = allocate(p("second", index=None), [first])
    assert (first.buffer_index, second.buffer_index) == (0, 2)
    third = allocate(p("third", index=None), [first, second])
    assert third.buffer_index == 4


@pytest.mark.parametrize(
    "types",
    [
        ["INT16", "INT16", "INT16"],
        ["INT8", "FLOAT32", "BOOLEAN", "INT16"],
        ["DOUBLE", "UINT8", "STRING", "INT32", "BCD"],
        ["BIT", "BIT", "UINT64", "INT8", "INT8"],
    ],
)
def test_allocated_spans_never_overlap(types: list[str]) -> None:
    placed: list[ParameterConfig] = []
    for i, data_type in enumerate(types):
        placed.append(allocate(p(f"p{i}", data_type, index=None), placed))
    spans = [buffer_span(x) for x in placed]
    for i, (a_start, a_end) in enumerate(spans):
        for b_start, b_end in spans[i + 1 :]:
            assert a_end < b_start or b_end < a_start
