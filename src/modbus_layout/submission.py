"""Conversion between form state and the submission payload ({deviceBasics, connectionSetting, dataPoints})."""

import dataclasses
import logging
from typing import Any, Sequence

from .allocator import same_range
from .errors import InvalidFormError
from .form import ConnectionSettings, DeviceBasics, DeviceForm, FormKind
from .layout import default_byte_order, required_word_count
from .types import ParameterConfig, RegisterRange

logger = logging.getLogger(__name__)


def to_data_points(ranges: Sequence[RegisterRange], parameters: Sequence[ParameterConfig]) -> list[dict[str, Any]]:
    """One entry per range, carrying the parameters whose range name matches it (case-insensitive)."""
    return [
        {
            "range": {
                "startAddress": r.start_register,
                "count": r.length,
                "fc": int(r.function_code),
                "name": r.range_name,
            },
            "parser": {
                "parameters": [p.to_dict() for p in parameters if same_range(p.register_range, r.range_name)],
            },
        }
        for r in ranges
    ]


def to_submission(form: DeviceForm) -> dict[str, Any]:
    """Payload handed to the persistence service. Templates carry no connection settings."""
    payload: dict[str, Any] = {"deviceBasics": form.basics.to_dict()}
    if form.is_template:
        payload["isTemplate"] = True
    else:
        payload["connectionSetting"] = form.connection.to_connection_setting()
    payload["dataPoints"] = to_data_points(form.register_ranges, form.parameters)
    return payload


def _normalize_parameter(param: ParameterConfig) -> ParameterConfig:
    """Fill in what older payloads leave out: word count, byte order, legacy register index."""
    changes: dict[str, Any] = {}
    if param.word_count is None:
        changes["word_count"] = required_word_count(param.data_type)
    if not param.byte_order:
        changes["byte_order"] = default_byte_order(param.data_type).value
    if param.register_index is None and param.buffer_index is not None:
        changes["register_index"] = param.buffer_index // 2
    if changes:
        logger.debug("Filled defaults for %r: %s", param.name, sorted(changes))
        return dataclasses.replace(param, **changes)
    return param


def _as_list(value: Any, field: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise InvalidFormError(f"{field} must be a list, got {type(value).__name__}", field=field)
    return value


def from_data_points(data_points: Any) -> tuple[tuple[RegisterRange, ...], tuple[ParameterConfig, ...]]:
    """
    Rebuild ranges and parameters from a dataPoints list.

    A range without a name is called "Range N" (1-based position); parameters
    without a range name are bound to the range they were listed under.
    """
    ranges: list[RegisterRange] = []
    params: list[ParameterConfig] = []
    for i, point in enumerate(_as_list(data_points, "dataPoints")):
        if not isinstance(point, dict):
            raise InvalidFormError(f"dataPoints[{i}] must be an object", field="dataPoints")
        raw_range = point.get("range")
        if not isinstance(raw_range, dict):
            raise InvalidFormError(f"dataPoints[{i}].range must be an object", field="dataPoints")
        name = str(raw_range.get("name") or "").strip() or f"Range {i + 1}"
        r = RegisterRange.from_dict(
            {
                "rangeName": name,
                "startRegister": raw_range.get("startAddress", 0),
                "length": raw_range.get("count", 1),
                "functionCode": raw_range.get("fc", 3),
            }
        )
        ranges.append(r)
        parser = point.get("parser") or {}
        if not isinstance(parser, dict):
            raise InvalidFormError(f"dataPoints[{i}].parser must be an object", field="dataPoints")
        for raw_param in _as_list(parser.get("parameters"), "parameters"):
            param = ParameterConfig.from_dict(raw_param)
            if not param.register_range.strip():
                param = dataclasses.replace(param, register_range=name)
            params.append(_normalize_parameter(param))
    return tuple(ranges), tuple(params)


def load_form(raw: Any, kind: FormKind | None = None) -> DeviceForm:
    """
    Build a DeviceForm from a JSON object in either the form shape
    (registerRanges + parameters) or the submission shape (dataPoints).

    kind overrides the "kind" key; a payload marked isTemplate loads as a
    template. Raises InvalidFormError when the payload has the wrong shape.
    """
    if not isinstance(raw, dict):
        raise InvalidFormError(f"Form must be a JSON object, got {type(raw).__name__}")

    if kind is None:
        if raw.get("kind"):
            try:
                kind = FormKind(str(raw["kind"]).lower())
            except ValueError:
                raise InvalidFormError(f"Unknown form kind {raw['kind']!r}", field="kind") from None
        else:
            kind = FormKind.TEMPLATE if raw.get("isTemplate") else FormKind.DEVICE

    basics = DeviceBasics.from_dict(raw.get("deviceBasics") or {})
    connection = ConnectionSettings.from_dict(raw.get("connectionSetting") or raw.get("connectionSettings") or {})

    if "dataPoints" in raw:
        ranges, params = from_data_points(raw["dataPoints"])
    else:
        ranges = tuple(RegisterRange.from_dict(r) for r in _as_list(raw.get("registerRanges"), "registerRanges"))
        params = tuple(
            _normalize_parameter(ParameterConfig.from_dict(p)) for p in _as_list(raw.get("parameters"), "parameters")
        )

    logger.debug("Loaded %s form with %d range(s) and %d parameter(s)", kind.value, len(ranges), len(params))
    return DeviceForm(kind=kind, basics=basics, connection=connection, register_ranges=ranges, parameters=params)
