"""Exceptions for modbus-layout: unloadable forms, bad equations, decode and Modbus I/O errors."""


class ModbusLayoutError(Exception):
    """Base exception for modbus-layout."""

    pass


class InvalidFormError(ModbusLayoutError):
    """Raised when a form payload cannot be loaded at all (wrong shape, non-numeric fields)."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class ExpressionError(ModbusLayoutError):
    """Raised when a scaling equation cannot be tokenized, parsed or evaluated."""

    def __init__(self, expression: str, message: str, *, position: int | None = None) -> None:
        self.expression = expression
        self.position = position
        super().__init__(message)


class DecodeError(ModbusLayoutError):
    """Raised when a parameter cannot be decoded from a register range buffer."""

    def __init__(self, name: str, message: str | None = None) -> None:
        self.name = name
        self._msg = message or f"Cannot decode parameter: {name!r}"
        super().__init__(self._msg)


class ModbusIOError(ModbusLayoutError):
    """Raised when a Modbus connection or read fails (wraps pymodbus errors)."""

    def __init__(
        self,
        message: str,
        *,
        range_name: str | None = None,
        function_code: int | None = None,
        address: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.range_name = range_name
        self.function_code = function_code
        self.address = address
        self.cause = cause
        super().__init__(message)
