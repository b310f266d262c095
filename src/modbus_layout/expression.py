"""
Scaling equation language.

A small arithmetic language over a single variable ``x``: numeric literals
(decimal, float, ``0x`` hex), ``+ - * / %``, bitwise ``<< >> & | ^ ~``,
comparisons (yielding 1 or 0), parentheses and the conditional
``cond ? a : b``. Equations are tokenized, parsed into an AST and evaluated
by walking it; nothing is handed to the interpreter.

Precedence, lowest first: conditional, comparison, ``|``, ``^``, ``&``,
shifts, ``+ -``, ``* / %``, unary.
"""

import logging
import math
import operator
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, NamedTuple, Union

from .errors import ExpressionError

logger = logging.getLogger(__name__)

VARIABLE = "x"
# Deepest run of parentheses, unary operators and conditional branches
MAX_NESTING = 32

_TOKEN_RE = re.compile(
    r"""
    (?P<number>0[xX][0-9A-Fa-f]+|(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)
    |(?P<name>[A-Za-z_][A-Za-z0-9_]*)
    |(?P<op><<|>>|<=|>=|==|!=|[-+*/%&|^~()<>?:])
    """,
    re.VERBOSE,
)

Number = Union[int, float]


class Token(NamedTuple):
    kind: str
    text: str
    pos: int


@dataclass(frozen=True)
class Literal:
    value: Number


@dataclass(frozen=True)
class Variable:
    name: str = VARIABLE


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Conditional:
    test: "Node"
    then: "Node"
    otherwise: "Node"


Node = Union[Literal, Variable, Unary, Binary, Conditional]


def tokenize(expression: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    while pos < len(expression):
        if expression[pos].isspace():
            pos += 1
            continue
        m = _TOKEN_RE.match(expression, pos)
        if m is None:
            raise ExpressionError(
                expression, f"Unexpected character {expression[pos]!r} at position {pos}", position=pos
            )
        kind = m.lastgroup or "op"
        tokens.append(Token(kind, m.group(kind), pos))
        pos = m.end()
    tokens.append(Token("end", "", len(expression)))
    return tokens


def _parse_number(text: str) -> Number:
    if text[:2].lower() == "0x":
        return int(text, 16)
    if any(c in text for c in ".eE"):
        return float(text)
    return int(text)


_COMPARISONS = ("<", "<=", ">", ">=", "==", "!=")
# Binary levels from loosest to tightest binding, above unary
_BINARY_LEVELS: tuple[tuple[str, ...], ...] = (
    _COMPARISONS,
    ("|",),
    ("^",),
    ("&",),
    ("<<", ">>"),
    ("+", "-"),
    ("*", "/", "%"),
)


class _Parser:
    def __init__(self, expression: str) -> None:
        self.expression = expression
        self.tokens = tokenize(expression)
        self.index = 0
        self.depth = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _error(self, message: str) -> ExpressionError:
        return ExpressionError(self.expression, message, position=self.current.pos)

    def _expect(self, text: str) -> None:
        if self.current.kind != "op" or self.current.text != text:
            found = self.current.text or "end of expression"
            raise self._error(f"Expected {text!r} at position {self.current.pos}, found {found!r}")
        self._advance()

    def _descend(self) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise self._error(f"Expression nested too deeply (more than {MAX_NESTING} levels)")

    def parse(self) -> Node:
        if self.current.kind == "end":
            raise self._error("Empty expression")
        node = self._conditional()
        if self.current.kind != "end":
            raise self._error(f"Unexpected {self.current.text!r} at position {self.current.pos}")
        return node

    def _conditional(self) -> Node:
        test = self._binary(0)
        if self.current.kind == "op" and self.current.text == "?":
            self._advance()
            self._descend()
            then = self._conditional()
            self._expect(":")
            otherwise = self._conditional()
            self.depth -= 1
            return Conditional(test, then, otherwise)
        return test

    def _binary(self, level: int) -> Node:
        if level == len(_BINARY_LEVELS):
            return self._unary()
        ops = _BINARY_LEVELS[level]
        left = self._binary(level + 1)
        while self.current.kind == "op" and self.current.text in ops:
            op = self._advance().text
            right = self._binary(level + 1)
            left = Binary(op, left, right)
        return left

    def _unary(self) -> Node:
        if self.current.kind == "op" and self.current.text in ("-", "+", "~"):
            op = self._advance().text
            self._descend()
            operand = self._unary()
            self.depth -= 1
            return Unary(op, operand)
        return self._primary()

    def _primary(self) -> Node:
        token = self.current
        if token.kind == "number":
            self._advance()
            return Literal(_parse_number(token.text))
        if token.kind == "name":
            if token.text != VARIABLE:
                raise self._error(f"Unknown identifier {token.text!r} at position {token.pos}")
            self._advance()
            return Variable()
        if token.kind == "op" and token.text == "(":
            self._advance()
            self._descend()
            node = self._conditional()
            self._expect(")")
            self.depth -= 1
            return node
        found = token.text or "end of expression"
        raise self._error(f"Unexpected {found!r} at position {token.pos}")


@lru_cache(maxsize=256)
def parse(expression: str) -> Node:
    """Parse expression into an AST. Raises ExpressionError on bad syntax."""
    return _Parser(expression).parse()


def _as_int(expression: str, value: Number, op: str) -> int:
    if isinstance(value, float):
        if not value.is_integer():
            raise ExpressionError(expression, f"Operator {op!r} needs whole numbers, got {value!r}")
        return int(value)
    return value


def _divide(a: Number, b: Number) -> Number:
    return a / b


def _remainder(a: Number, b: Number) -> Number:
    # Sign follows the dividend
    result = math.fmod(a, b)
    if isinstance(a, int) and isinstance(b, int):
        return int(result)
    return result


_ARITHMETIC: dict[str, Callable[[Number, Number], Number]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": _divide,
    "%": _remainder,
}

_BITWISE: dict[str, Callable[[int, int], int]] = {
    "&": operator.and_,
    "|": operator.or_,
    "^": operator.xor,
    "<<": operator.lshift,
    ">>": operator.rshift,
}

_COMPARE: dict[str, Callable[[Number, Number], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


def _eval(expression: str, node: Node, x: Number) -> Number:
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, Variable):
        return x
    if isinstance(node, Unary):
        value = _eval(expression, node.operand, x)
        if node.op == "-":
            return -value
        if node.op == "~":
            return ~_as_int(expression, value, "~")
        return value
    if isinstance(node, Conditional):
        branch = node.then if _eval(expression, node.test, x) != 0 else node.otherwise
        return _eval(expression, branch, x)
    if isinstance(node, Binary):
        left = _eval(expression, node.left, x)
        right = _eval(expression, node.right, x)
        if node.op in _COMPARE:
            return 1 if _COMPARE[node.op](left, right) else 0
        if node.op in _BITWISE:
            a = _as_int(expression, left, node.op)
            b = _as_int(expression, right, node.op)
            if node.op in ("<<", ">>") and not 0 <= b <= 63:
                raise ExpressionError(expression, f"Shift count {b} out of range 0-63")
            return _BITWISE[node.op](a, b)
        if node.op in ("/", "%") and right == 0:
            raise ExpressionError(expression, "Division by zero")
        return _ARITHMETIC[node.op](left, right)
    raise ExpressionError(expression, f"Unknown expression node {node!r}")


def evaluate(expression: str, x: Number) -> Number:
    """
    Evaluate expression with the variable bound to x.

    Raises ExpressionError for syntax errors, bad operands and results that
    are not finite numbers.
    """
    tree = parse(expression.strip())
    try:
        result = _eval(expression, tree, x)
    except OverflowError:
        raise ExpressionError(expression, "Numeric overflow") from None
    except RecursionError:
        # Long operator chains build left-deep trees the parser does not nest
        raise ExpressionError(expression, "Expression nested too deeply") from None
    if isinstance(result, float) and not math.isfinite(result):
        raise ExpressionError(expression, f"Result is not a finite number: {result!r}")
    return result


def references_variable(expression: str) -> bool:
    """True when expression textually contains the variable symbol."""
    return VARIABLE in expression
