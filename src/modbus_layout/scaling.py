"""Scaling/display pipeline: bitmask, scaling equation or factor, rounding and bounds."""

import logging
import math
import re
from typing import Any

from .errors import ExpressionError
from .expression import evaluate, references_variable
from .layout import is_bit_type, is_string_type
from .types import ParameterConfig, Reading

logger = logging.getLogger(__name__)

BITMASK_RE = re.compile(r"^0x[0-9A-Fa-f]+$")
UNPARSEABLE = "unparseable value"
# Value the equation is checked against when a form is validated
EQUATION_PROBE_VALUE = 1


def validate_bitmask(bitmask: str | None) -> str | None:
    """Message when bitmask is set but not a 0x-prefixed hex string, else None."""
    if bitmask is None or not bitmask.strip():
        return None
    if not BITMASK_RE.match(bitmask.strip()):
        return "Bitmask must be a hexadecimal value starting with 0x (e.g. 0xFF00)"
    return None


def parse_bitmask(bitmask: str | None) -> int | None:
    """Integer value of bitmask, None when unset. Raises ValueError when malformed."""
    if bitmask is None or not bitmask.strip():
        return None
    text = bitmask.strip()
    if not BITMASK_RE.match(text):
        raise ValueError(f"Invalid bitmask: {bitmask!r}")
    return int(text, 16)


def apply_bitmask(raw: int, bitmask: str | None) -> int:
    mask = parse_bitmask(bitmask)
    if mask is None:
        return raw
    return raw & mask


def validate_scaling_equation(equation: str | None) -> str | None:
    """
    Message when equation is set but unusable, else None.

    The equation must mention x and evaluate cleanly with x = 1.
    """
    if equation is None or not equation.strip():
        return None
    if not references_variable(equation):
        return "Scaling equation must use the variable x (e.g. x * 0.1)"
    try:
        evaluate(equation, EQUATION_PROBE_VALUE)
    except ExpressionError as e:
        return f"Invalid scaling equation: {e}"
    return None


def scale(param: ParameterConfig, raw: int | float) -> int | float:
    """
    Scaled value of raw: the equation when one is set, else raw * scaling_factor.

    Raises ExpressionError when the equation fails on raw.
    """
    if param.scaling_equation and param.scaling_equation.strip():
        return evaluate(param.scaling_equation, raw)
    factor = param.scaling_factor if param.scaling_factor is not None else 1.0
    if factor == 1:
        return raw
    return raw * factor


def round_display(value: int | float, decimal_point: int) -> int | float:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if decimal_point <= 0:
        return int(round(value))
    return round(value, decimal_point)


def is_out_of_bounds(param: ParameterConfig, value: Any) -> bool:
    """True when a numeric value falls outside the inclusive [min_value, max_value] window."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if param.min_value is not None and value < param.min_value:
        return True
    if param.max_value is not None and value > param.max_value:
        return True
    return False


def unparseable_reading(param: ParameterConfig, raw: Any = None) -> Reading:
    return Reading(
        name=param.name,
        value=None,
        raw=raw,
        unit=param.unit or "",
        data_type=param.data_type,
        description=param.description or "",
        error=UNPARSEABLE,
    )


def make_reading(param: ParameterConfig, raw: Any) -> Reading:
    """
    Turn a decoded raw value into a Reading.

    Bits are shown as booleans and strings as text, both unscaled. Numbers go
    through scale() and are rounded to decimal_point. Evaluation failures give
    an unparseable reading instead of raising.
    """
    if is_bit_type(param.data_type):
        value: Any = bool(raw)
    elif is_string_type(param.data_type) or isinstance(raw, str):
        value = raw
    else:
        try:
            scaled = scale(param, raw)
        except ExpressionError as e:
            logger.debug("Scaling %r failed for raw value %r: %s", param.name, raw, e)
            return unparseable_reading(param, raw)
        if isinstance(scaled, float) and not math.isfinite(scaled):
            logger.debug("Scaling %r gave non-finite value for raw %r", param.name, raw)
            return unparseable_reading(param, raw)
        value = round_display(scaled, param.decimal_point or 0)
    return Reading(
        name=param.name,
        value=value,
        raw=raw,
        unit=param.unit or "",
        data_type=param.data_type,
        description=param.description or "",
        out_of_bounds=is_out_of_bounds(param, value),
    )
