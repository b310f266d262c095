"""Buffer allocator: propose the next free buffer index inside a register range."""

import dataclasses
import logging
from typing import Iterable

from .layout import param_byte_size
from .types import ParameterConfig

logger = logging.getLogger(__name__)


def same_range(a: str, b: str) -> bool:
    """Range names match case-insensitively, ignoring surrounding whitespace."""
    return a.strip().casefold() == b.strip().casefold()


def params_in_range(parameters: Iterable[ParameterConfig], range_name: str) -> list[ParameterConfig]:
    return [p for p in parameters if same_range(p.register_range, range_name)]


def next_buffer_index(existing_params_in_same_range: Iterable[ParameterConfig]) -> int:
    """
    Append-after-last policy: the largest end-exclusive byte offset of the
    existing parameters, or 0 for an empty range. Holes are never reused.
    """
    end = 0
    for p in existing_params_in_same_range:
        start = p.effective_buffer_index
        if start is None:
            continue
        end = max(end, start + param_byte_size(p))
    return end


def allocate(
    param: ParameterConfig,
    all_parameters: Iterable[ParameterConfig],
    *,
    excluding_name: str | None = None,
) -> ParameterConfig:
    """
    Return param with buffer_index (and the legacy register_index) set to the
    next free offset of its range. Parameters of other ranges are ignored;
    excluding_name drops the parameter being edited from the computation.
    """
    candidates = params_in_range(all_parameters, param.register_range)
    if excluding_name is not None:
        candidates = [p for p in candidates if p.name != excluding_name]
    index = next_buffer_index(candidates)
    logger.debug(
        "Allocated buffer index %d for %r in range %r (%d existing)",
        index,
        param.name,
        param.register_range,
        len(candidates),
    )
    return dataclasses.replace(param, buffer_index=index, register_index=index // 2)
