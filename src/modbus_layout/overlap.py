"""Overlap validator: decide whether a parameter may be placed at its buffer index."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

from .allocator import same_range
from .layout import buffer_span, is_bit_type, last_valid_buffer_index, param_byte_size
from .types import ParameterConfig, RegisterRange

logger = logging.getLogger(__name__)


class ConflictKind(str, Enum):
    """Why a placement was refused."""

    DUPLICATE_NAME = "duplicate_name"
    MISSING_RANGE = "missing_range"
    MISSING_INDEX = "missing_index"
    INDEX_TOO_LOW = "index_too_low"
    INDEX_TOO_HIGH = "index_too_high"
    BIT_CONFLICT = "bit_conflict"
    DUPLICATE_INDEX = "duplicate_index"
    OVERLAP = "overlap"


# Form field each conflict is reported against
_CONFLICT_FIELD = {
    ConflictKind.DUPLICATE_NAME: "name",
    ConflictKind.MISSING_RANGE: "registerRange",
    ConflictKind.MISSING_INDEX: "bufferIndex",
    ConflictKind.INDEX_TOO_LOW: "bufferIndex",
    ConflictKind.INDEX_TOO_HIGH: "bufferIndex",
    ConflictKind.BIT_CONFLICT: "bufferIndex",
    ConflictKind.DUPLICATE_INDEX: "bufferIndex",
    ConflictKind.OVERLAP: "bufferIndex",
}


@dataclass(frozen=True)
class PlacementConflict:
    """First placement violation found for a candidate parameter."""

    kind: ConflictKind
    message: str
    other: str | None = None

    @property
    def field(self) -> str:
        return _CONFLICT_FIELD[self.kind]


def _normalized_name(name: str) -> str:
    return name.strip().casefold()


def find_range(ranges: Iterable[RegisterRange], range_name: str) -> RegisterRange | None:
    for r in ranges:
        if same_range(r.range_name, range_name):
            return r
    return None


def find_placement_conflict(
    candidate: ParameterConfig,
    all_parameters: Iterable[ParameterConfig],
    all_ranges: Sequence[RegisterRange],
    excluding_name: str | None = None,
) -> PlacementConflict | None:
    """
    Check candidate against every other parameter and the range list.

    Order: global name uniqueness, range existence and bounds, then overlap
    with parameters of the same range only. The first violation is returned.
    """
    others = [p for p in all_parameters if excluding_name is None or p.name != excluding_name]

    name = _normalized_name(candidate.name)
    if name:
        for p in others:
            if _normalized_name(p.name) == name:
                return PlacementConflict(
                    ConflictKind.DUPLICATE_NAME,
                    f'Parameter name "{candidate.name}" is already in use',
                    other=p.name,
                )

    if not candidate.register_range.strip():
        return PlacementConflict(ConflictKind.MISSING_RANGE, "Register range is required")
    rng = find_range(all_ranges, candidate.register_range)
    if rng is None:
        available = ", ".join(r.range_name for r in all_ranges)
        return PlacementConflict(
            ConflictKind.MISSING_RANGE,
            f'Register range "{candidate.register_range}" does not exist. Available ranges: {available}',
        )

    start = candidate.effective_buffer_index
    if start is None:
        return PlacementConflict(ConflictKind.MISSING_INDEX, "Buffer index is required")
    last_valid = last_valid_buffer_index(rng.length, candidate.data_type, candidate.word_count)
    if start < 0:
        return PlacementConflict(ConflictKind.INDEX_TOO_LOW, "Index too low. Minimum buffer index: 0")
    if start > last_valid:
        return PlacementConflict(
            ConflictKind.INDEX_TOO_HIGH,
            f"Index too high. This {candidate.data_type} uses {param_byte_size(candidate)} bytes, "
            f"max buffer index: {last_valid}",
        )

    in_range = [p for p in others if same_range(p.register_range, candidate.register_range)]

    if is_bit_type(candidate.data_type):
        # Bit parameters only collide with other bits at the same index and position
        for p in in_range:
            if (
                is_bit_type(p.data_type)
                and p.effective_buffer_index == start
                and p.bit_position == candidate.bit_position
            ):
                return PlacementConflict(
                    ConflictKind.BIT_CONFLICT,
                    f"Bit position {candidate.bit_position} at buffer index {start} is already used by "
                    f'parameter "{p.name}" in the same register range',
                    other=p.name,
                )
        return None

    end = start + param_byte_size(candidate) - 1
    for p in in_range:
        if is_bit_type(p.data_type):
            continue
        span = buffer_span(p)
        if span is None:
            continue
        other_start, other_end = span
        if start == other_start:
            return PlacementConflict(
                ConflictKind.DUPLICATE_INDEX,
                f'Buffer index {start} in register range "{candidate.register_range}" is already used by '
                f'parameter "{p.name}"',
                other=p.name,
            )
        if start <= other_end and end >= other_start:
            return PlacementConflict(
                ConflictKind.OVERLAP,
                f'Buffer range {start}-{end} in "{candidate.register_range}" overlaps with parameter '
                f'"{p.name}" (buffer range {other_start}-{other_end})',
                other=p.name,
            )
    return None


def check_placement(
    candidate: ParameterConfig,
    all_parameters: Iterable[ParameterConfig],
    all_ranges: Sequence[RegisterRange],
    excluding_name: str | None = None,
) -> str | None:
    """Reason candidate cannot be placed, or None when the placement is legal."""
    conflict = find_placement_conflict(candidate, all_parameters, all_ranges, excluding_name)
    if conflict is not None:
        logger.debug("Placement of %r refused (%s): %s", candidate.name, conflict.kind.value, conflict.message)
        return conflict.message
    return None
