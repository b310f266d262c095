"""Tests for the scaling equation language."""

import pytest

from modbus_layout.errors import ExpressionError
from modbus_layout.expression import Binary, Conditional, Literal, Variable, evaluate, parse, tokenize


@pytest.mark.parametrize(
    "expression,x,expected",
    [
        ("x", 7, 7),
        ("x * 1.8 + 32", 100, 212.0),
        ("x / 10", 235, 23.5),
        ("(x - 32) * 5 / 9", 212, 100.0),
        ("x >> 8", 0x1234, 0x12),
        ("x & 0xFF", 0x1234, 0x34),
        ("x | 0x8000", 1, 0x8001),
        ("x ^ 0xFF", 0x0F, 0xF0),
        ("x << 2", 3, 12),
        ("~x & 0xFFFF", 0, 0xFFFF),
        ("-x", 5, -5),
        ("+x", 5, 5),
        ("x % 7", 23, 2),
        ("x > 32767 ? x - 65536 : x", 65535, -1),
        ("x > 32767 ? x - 65536 : x", 100, 100),
        ("x == 1", 1, 1),
        ("x != 1", 1, 0),
        ("x <= 2", 3, 0),
        ("1.5e2 + x", 0, 150.0),
        ("2 + 3 * x", 4, 14),
        ("x & 1 == 1", 3, 1),
    ],
)
def test_evaluate(expression: str, x: float, expected: float) -> None:
    assert evaluate(expression, x) == pytest.approx(expected)


def test_precedence_of_shift_below_addition() -> None:
    # (1 + 1) << 2
    assert evaluate("x + 1 << 2", 1) == 8


def test_nested_conditional_is_right_associative() -> None:
    expr = "x < 0 ? 0 - 1 : x == 0 ? 0 : 1"
    assert [evaluate(expr, v) for v in (-5, 0, 5)] == [-1, 0, 1]


def test_remainder_sign_follows_dividend() -> None:
    assert evaluate("x % 3", -7) == -1


def test_parse_builds_ast() -> None:
    tree = parse("x > 0 ? x * 2 : 0")
    assert isinstance(tree, Conditional)
    assert tree.test == Binary(">", Variable(), Literal(0))
    assert tree.then == Binary("*", Variable(), Literal(2))


def test_tokenize_hex_and_operators() -> None:
    kinds = [(t.kind, t.text) for t in tokenize("0xFF>>x")]
    assert kinds == [("number", "0xFF"), ("op", ">>"), ("name", "x"), ("end", "")]


class TestErrors:
    @pytest.mark.parametrize(
        "expression",
        [
            "",
            "x +",
            "(x + 1",
            "x + 1)",
            "x ? 1",
            "x $ 2",
            "y + 1",
            "Math.abs(x)",
            "x; import os",
            "__import__('os')",
        ],
    )
    def test_syntax_errors(self, expression: str) -> None:
        with pytest.raises(ExpressionError):
            evaluate(expression, 1)

    def test_error_carries_position(self) -> None:
        with pytest.raises(ExpressionError) as exc_info:
            evaluate("x + #", 1)
        assert exc_info.value.position == 4
        assert exc_info.value.expression == "x + #"

    def test_division_by_zero(self) -> None:
        with pytest.raises(ExpressionError, match="Division by zero"):
            evaluate("10 / x", 0)

    def test_bitwise_on_fraction(self) -> None:
        with pytest.raises(ExpressionError, match="whole numbers"):
            evaluate("x & 1", 1.5)

    def test_bitwise_on_whole_float_is_allowed(self) -> None:
        assert evaluate("x >> 1", 8.0) == 4

    def test_shift_count_out_of_range(self) -> None:
        with pytest.raises(ExpressionError):
            evaluate("x << 1000", 1)

    def test_non_finite_result(self) -> None:
        with pytest.raises(ExpressionError):
            evaluate("x * 1e308 * 10", 1.0)


class TestNesting:
    @pytest.mark.parametrize(
        "expression",
        [
            "(" * 120 + "x" + ")" * 120,
            "-" * 1200 + "x",
            "x ? " * 100 + "1" + " : 0" * 100,
        ],
    )
    def test_deep_nesting_is_an_expression_error(self, expression: str) -> None:
        with pytest.raises(ExpressionError, match="nested too deeply"):
            evaluate(expression, 1)

    def test_long_operator_chain_is_an_expression_error(self) -> None:
        with pytest.raises(ExpressionError):
            evaluate("x + " * 5000 + "x", 1)

    def test_moderate_nesting_still_evaluates(self) -> None:
        assert evaluate("(" * 20 + "x + 1" + ")" * 20, 1) == 2
        assert evaluate("- - - x", 4) == -4
