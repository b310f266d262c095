"""
Device/template form state and the pure operations that edit it.

A DeviceForm is an immutable value. Every operation returns a new form; the
caller decides which one to keep.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .allocator import allocate
from .errors import InvalidFormError
from .layout import retype_parameter
from .types import ParameterConfig, RegisterRange

logger = logging.getLogger(__name__)


class FormKind(str, Enum):
    """A device carries connection settings; a template (device driver) does not."""

    DEVICE = "device"
    TEMPLATE = "template"


def _text(raw: dict[str, Any], *keys: str, default: str = "") -> str:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return str(value)
    return default


@dataclass(frozen=True)
class DeviceBasics:
    name: str = ""
    device_type: str = ""
    make: str = ""
    model: str = ""
    description: str = ""
    enabled: bool = True
    tags: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "deviceType": self.device_type,
            "make": self.make,
            "model": self.model,
            "description": self.description,
            "enabled": self.enabled,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "DeviceBasics":
        if not isinstance(raw, dict):
            raise InvalidFormError("deviceBasics must be an object", field="deviceBasics")
        tags = raw.get("tags") or ()
        if isinstance(tags, str) or not isinstance(tags, (list, tuple)):
            raise InvalidFormError("deviceBasics.tags must be a list", field="tags")
        return cls(
            name=_text(raw, "name"),
            device_type=_text(raw, "deviceType"),
            make=_text(raw, "make"),
            model=_text(raw, "model"),
            description=_text(raw, "description"),
            enabled=bool(raw.get("enabled", True)),
            tags=tuple(str(t) for t in tags),
        )


@dataclass(frozen=True)
class ConnectionSettings:
    """Connection fields as the form edits them: every value is text."""

    connection_type: str = "tcp"
    ip: str = ""
    port: str = "502"
    slave_id: str = "1"
    serial_port: str = ""
    baud_rate: str = "9600"
    data_bits: str = "8"
    stop_bits: str = "1"
    parity: str = "none"

    @property
    def is_tcp(self) -> bool:
        return self.connection_type.strip().lower() == "tcp"

    def to_dict(self) -> dict[str, str]:
        return {
            "type": self.connection_type,
            "ip": self.ip,
            "port": self.port,
            "slaveId": self.slave_id,
            "serialPort": self.serial_port,
            "baudRate": self.baud_rate,
            "dataBits": self.data_bits,
            "stopBits": self.stop_bits,
            "parity": self.parity,
        }

    def to_connection_setting(self) -> dict[str, Any]:
        """Submission shape: numeric fields as numbers where they parse."""

        def number(value: str) -> Any:
            text = value.strip()
            try:
                return int(text)
            except ValueError:
                return text

        out: dict[str, Any] = {
            "connectionType": self.connection_type,
            "slaveId": number(self.slave_id),
        }
        if self.is_tcp:
            out.update(ip=self.ip, port=number(self.port))
        else:
            out.update(
                serialPort=self.serial_port,
                baudRate=number(self.baud_rate),
                dataBits=number(self.data_bits),
                stopBits=self.stop_bits,
                parity=self.parity,
            )
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ConnectionSettings":
        """Accepts the form shape (type) and the submission shape (connectionType)."""
        if not isinstance(raw, dict):
            raise InvalidFormError("connectionSetting must be an object", field="connectionSetting")
        d = cls()
        return cls(
            connection_type=_text(raw, "type", "connectionType", default=d.connection_type).lower(),
            ip=_text(raw, "ip", default=d.ip),
            port=_text(raw, "port", default=d.port),
            slave_id=_text(raw, "slaveId", default=d.slave_id),
            serial_port=_text(raw, "serialPort", default=d.serial_port),
            baud_rate=_text(raw, "baudRate", default=d.baud_rate),
            data_bits=_text(raw, "dataBits", default=d.data_bits),
            stop_bits=_text(raw, "stopBits", default=d.stop_bits),
            parity=_text(raw, "parity", default=d.parity),
        )


@dataclass(frozen=True)
class DeviceForm:
    """Everything the device or template form holds before submission."""

    kind: FormKind = FormKind.DEVICE
    basics: DeviceBasics = field(default_factory=DeviceBasics)
    connection: ConnectionSettings = field(default_factory=ConnectionSettings)
    register_ranges: tuple[RegisterRange, ...] = ()
    parameters: tuple[ParameterConfig, ...] = ()

    @property
    def is_template(self) -> bool:
        return self.kind == FormKind.TEMPLATE

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "deviceBasics": self.basics.to_dict(),
            "connectionSetting": self.connection.to_dict(),
            "registerRanges": [r.to_dict() for r in self.register_ranges],
            "parameters": [p.to_dict() for p in self.parameters],
        }


def _check_index(items: tuple[Any, ...], index: int, what: str) -> None:
    if not 0 <= index < len(items):
        raise IndexError(f"{what} index {index} out of range (have {len(items)})")


def reset_form(kind: FormKind = FormKind.DEVICE) -> DeviceForm:
    return DeviceForm(kind=FormKind(kind))


def set_device_basics(form: DeviceForm, **changes: Any) -> DeviceForm:
    """Merge changes (DeviceBasics field names) into the form's basics."""
    return dataclasses.replace(form, basics=dataclasses.replace(form.basics, **changes))


def set_connection_settings(form: DeviceForm, **changes: Any) -> DeviceForm:
    """Merge changes (ConnectionSettings field names) into the connection settings."""
    changes = {k: str(v) for k, v in changes.items()}
    return dataclasses.replace(form, connection=dataclasses.replace(form.connection, **changes))


def add_register_range(form: DeviceForm, register_range: RegisterRange) -> DeviceForm:
    return dataclasses.replace(form, register_ranges=form.register_ranges + (register_range,))


def update_register_range(form: DeviceForm, index: int, register_range: RegisterRange) -> DeviceForm:
    """Replace the range at index. Parameters keep their range name; a rename is not cascaded."""
    _check_index(form.register_ranges, index, "Register range")
    ranges = list(form.register_ranges)
    ranges[index] = register_range
    return dataclasses.replace(form, register_ranges=tuple(ranges))


def delete_register_range(form: DeviceForm, index: int) -> DeviceForm:
    _check_index(form.register_ranges, index, "Register range")
    ranges = form.register_ranges[:index] + form.register_ranges[index + 1 :]
    return dataclasses.replace(form, register_ranges=ranges)


def add_parameter(form: DeviceForm, param: ParameterConfig) -> DeviceForm:
    """Append param with its buffer index allocated after the last parameter of its range."""
    placed = allocate(param, form.parameters)
    return dataclasses.replace(form, parameters=form.parameters + (placed,))


def update_parameter(form: DeviceForm, index: int, param: ParameterConfig) -> DeviceForm:
    """
    Replace the parameter at index.

    When the data type changed, param is retyped (word count, byte order) and
    its buffer index reallocated, ignoring the parameter's own old placement.
    Otherwise param is stored as given, manual buffer index edits included.
    """
    _check_index(form.parameters, index, "Parameter")
    current = form.parameters[index]
    if param.data_type.strip().upper() != current.data_type.strip().upper():
        logger.debug("Data type of %r changed %s -> %s", current.name, current.data_type, param.data_type)
        param = retype_parameter(param, param.data_type)
        others = form.parameters[:index] + form.parameters[index + 1 :]
        param = allocate(param, others)
    params = list(form.parameters)
    params[index] = param
    return dataclasses.replace(form, parameters=tuple(params))


def delete_parameter(form: DeviceForm, index: int) -> DeviceForm:
    _check_index(form.parameters, index, "Parameter")
    return dataclasses.replace(form, parameters=form.parameters[:index] + form.parameters[index + 1 :])
