"""DeviceReader: reads every register range of a device over pymodbus and decodes its parameters."""

import logging
from datetime import datetime, timezone
from typing import Any, Sequence

from pymodbus.client import ModbusSerialClient, ModbusTcpClient
from pymodbus.exceptions import ModbusException as PymodbusException

from .allocator import params_in_range, same_range
from .decode import bits_to_registers, read_parameter, registers_to_bytes
from .errors import ModbusIOError
from .form import ConnectionSettings, DeviceForm
from .scaling import unparseable_reading
from .types import DeviceReading, FunctionCode, ParameterConfig, Reading, RegisterRange

logger = logging.getLogger(__name__)

_PARITY = {"none": "N", "even": "E", "odd": "O"}


def _to_int(value: str, field: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        raise ModbusIOError(f"Invalid {field}: {value!r}") from None


class DeviceReader:
    """
    Modbus TCP or RTU connection built from a form's connection settings.
    Use as a context manager; the pymodbus client is created on first use.
    """

    def __init__(
        self,
        settings: ConnectionSettings,
        *,
        timeout: float = 3.0,
        retries: int = 3,
    ) -> None:
        self._settings = settings
        self._unit_id = _to_int(settings.slave_id, "slave ID")
        self._timeout = timeout
        self._retries = retries
        self._client: ModbusTcpClient | ModbusSerialClient | None = None

    @property
    def target(self) -> str:
        s = self._settings
        if s.is_tcp:
            return f"{s.ip}:{s.port}"
        return s.serial_port

    def _make_client(self) -> ModbusTcpClient | ModbusSerialClient:
        s = self._settings
        if s.is_tcp:
            return ModbusTcpClient(
                host=s.ip,
                port=_to_int(s.port, "port"),
                timeout=self._timeout,
                retries=self._retries,
            )
        stop_bits = float(s.stop_bits) if s.stop_bits.strip() == "1.5" else _to_int(s.stop_bits, "stop bits")
        return ModbusSerialClient(
            port=s.serial_port,
            baudrate=_to_int(s.baud_rate, "baud rate"),
            bytesize=_to_int(s.data_bits, "data bits"),
            parity=_PARITY.get(s.parity.strip().lower(), "N"),
            stopbits=stop_bits,
            timeout=self._timeout,
            retries=self._retries,
        )

    def _get_client(self) -> ModbusTcpClient | ModbusSerialClient:
        if self._client is None:
            self._client = self._make_client()
            if not self._client.connect():
                self._client = None
                raise ModbusIOError(f"Failed to connect to {self.target}")
        return self._client

    def connect(self) -> None:
        self._get_client()

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning("Error closing Modbus client: %s", e)
            self._client = None

    def __enter__(self) -> "DeviceReader":
        self.connect()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def read_range(self, register_range: RegisterRange) -> bytes:
        """
        Read one range and return its byte buffer (length * 2 bytes).

        Coil and discrete input ranges read `length` bits, packed 16 per word.
        Raises ModbusIOError on connection, exception or short responses.
        """
        client = self._get_client()
        addr = register_range.start_register
        count = register_range.length
        fc = int(register_range.function_code)

        def fail(message: str, cause: BaseException | None = None) -> ModbusIOError:
            return ModbusIOError(
                message,
                range_name=register_range.range_name,
                function_code=fc,
                address=addr,
                cause=cause,
            )

        try:
            if fc == FunctionCode.READ_COILS:
                rr = client.read_coils(addr, count=count, device_id=self._unit_id)
            elif fc == FunctionCode.READ_DISCRETE_INPUTS:
                rr = client.read_discrete_inputs(addr, count=count, device_id=self._unit_id)
            elif fc == FunctionCode.READ_HOLDING_REGISTERS:
                rr = client.read_holding_registers(addr, count=count, device_id=self._unit_id)
            elif fc == FunctionCode.READ_INPUT_REGISTERS:
                rr = client.read_input_registers(addr, count=count, device_id=self._unit_id)
            else:
                raise fail(f"Unsupported function code: {fc}")
        except PymodbusException as e:
            raise fail(str(e), e) from e

        if rr.isError():
            raise fail(str(rr), getattr(rr, "exception", None))

        if fc in (FunctionCode.READ_COILS, FunctionCode.READ_DISCRETE_INPUTS):
            bits = getattr(rr, "bits", None)
            if bits is None or len(bits) < count:
                raise fail("Short bit response")
            return registers_to_bytes(bits_to_registers(list(bits[:count]), count))

        registers = getattr(rr, "registers", None)
        if registers is None or len(registers) < count:
            raise fail("Short register response")
        return registers_to_bytes(registers[:count])

    def read_all(
        self,
        ranges: Sequence[RegisterRange],
        parameters: Sequence[ParameterConfig],
    ) -> list[Reading]:
        """
        Read every range and decode its parameters, in range order. A range that
        fails to read marks its own parameters unparseable; the rest carry on.
        Parameters whose range is missing come last, also unparseable.
        """
        readings: list[Reading] = []
        for r in ranges:
            members = params_in_range(parameters, r.range_name)
            if not members:
                continue
            try:
                buffer = self.read_range(r)
            except ModbusIOError as e:
                logger.warning("Read of range %r failed: %s", r.range_name, e)
                readings.extend(unparseable_reading(p) for p in members)
                continue
            readings.extend(read_parameter(buffer, p) for p in members)
        orphans = [p for p in parameters if not any(same_range(p.register_range, r.range_name) for r in ranges)]
        if orphans:
            logger.warning("No register range for %s", ", ".join(repr(p.name) for p in orphans))
            readings.extend(unparseable_reading(p) for p in orphans)
        return readings

    def test_connection(self) -> bool:
        """Minimal read: one holding register at address 0. Raises ModbusIOError on failure."""
        self.read_range(RegisterRange("connection test", start_register=0, length=1))
        return True


def read_device(
    form: DeviceForm,
    *,
    device_id: str | None = None,
    settings: ConnectionSettings | None = None,
    timeout: float = 3.0,
    retries: int = 3,
) -> DeviceReading:
    """Connect with the form's (or the given) settings and read every parameter."""
    with DeviceReader(settings or form.connection, timeout=timeout, retries=retries) as reader:
        readings = reader.read_all(form.register_ranges, form.parameters)
    return DeviceReading(
        device_id=device_id or form.basics.name,
        device_name=form.basics.name,
        readings=tuple(readings),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


def ping_device(settings: ConnectionSettings, *, timeout: float = 3.0, retries: int = 1) -> bool:
    with DeviceReader(settings, timeout=timeout, retries=retries) as reader:
        return reader.test_connection()
