"""
pysqlaccess: Provider-agnostic relational database access.

This module defines portable commands (SQL text or stored procedure calls) and their parameters.
"""

import copy
import enum
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Optional, Sequence, Union, overload

from .errors import ArityMismatchError, InvalidArgumentError
from .model.table import DataRow, RowVersion


class _DBNullType:
    "Represents a SQL NULL value bound to a parameter, as opposed to no value at all."

    _instance: Optional["_DBNullType"] = None

    def __new__(cls) -> "_DBNullType":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "DBNull"

    def __copy__(self) -> "_DBNullType":
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> "_DBNullType":
        return self

    def __reduce__(self) -> str:
        return "DBNull"


DBNull = _DBNullType()


def to_db_value(value: Any) -> Any:
    "Converts a Python value into a parameter value, mapping `None` to `DBNull`."

    return DBNull if value is None else value


def from_db_value(value: Any) -> Any:
    "Converts a parameter value into a Python value, mapping `DBNull` to `None`."

    return None if value is DBNull else value


@enum.unique
class CommandType(enum.Enum):
    "Interpretation of the command text."

    text = "text"
    stored_procedure = "stored_procedure"


@enum.unique
class DbType(enum.Enum):
    "Driver-neutral data type of a parameter."

    ansi_string = "ansi_string"
    ansi_string_fixed_length = "ansi_string_fixed_length"
    binary = "binary"
    boolean = "boolean"
    byte = "byte"
    currency = "currency"
    date = "date"
    datetime = "datetime"
    datetime_offset = "datetime_offset"
    decimal = "decimal"
    double = "double"
    guid = "guid"
    int16 = "int16"
    int32 = "int32"
    int64 = "int64"
    object = "object"
    single = "single"
    string = "string"
    string_fixed_length = "string_fixed_length"
    time = "time"
    xml = "xml"


@enum.unique
class ParameterDirection(enum.Enum):
    input = "input"
    output = "output"
    input_output = "input_output"
    return_value = "return_value"


@enum.unique
class UpdatedRowSource(enum.Enum):
    "Determines how command results are copied back into the row being synchronized."

    none = "none"
    output_parameters = "output_parameters"
    first_returned_record = "first_returned_record"
    both = "both"


@dataclass
class Parameter:
    """
    A named parameter of a command.

    A parameter either holds a literal value, or is bound to a column of an in-memory table, in which case its value
    is read from the row being synchronized, using the row version given.

    :param name: Parameter name, optionally including the driver-specific prefix (e.g. `@` or `:`).
    :param db_type: Driver-neutral data type.
    :param direction: Whether the parameter passes a value in, out, or both.
    :param size: Maximum size of variable-length data, 0 for default.
    :param nullable: Whether the parameter accepts NULL.
    :param precision: Number of digits for numeric values.
    :param scale: Number of decimal places for numeric values.
    :param source_column: Column of an in-memory table the parameter is bound to.
    :param source_version: Version of the row to read the column value from.
    :param value: Literal value, or `DBNull` for SQL NULL.
    """

    name: str
    db_type: DbType = DbType.object
    direction: ParameterDirection = ParameterDirection.input
    size: int = 0
    nullable: bool = False
    precision: int = 0
    scale: int = 0
    source_column: Optional[str] = None
    source_version: RowVersion = RowVersion.current
    value: Any = None

    @property
    def is_input(self) -> bool:
        return (
            self.direction is ParameterDirection.input
            or self.direction is ParameterDirection.input_output
        )

    @property
    def is_output(self) -> bool:
        return self.direction is not ParameterDirection.input

    def copy(self) -> "Parameter":
        "Returns an independently owned copy of the parameter."

        return copy.copy(self)

    def bind_row(self, row: DataRow) -> None:
        "Reads the value of the source column of the row into the parameter."

        if self.source_column is None:
            return
        self.value = to_db_value(row.get(self.source_column, self.source_version))


class ParameterCollection:
    "An ordered list of parameters, which can also be looked up by name."

    _items: list[Parameter]

    def __init__(self, items: Iterable[Parameter] = ()) -> None:
        self._items = []
        for item in items:
            self.add(item)

    def add(self, parameter: Parameter) -> Parameter:
        if not parameter.name:
            raise InvalidArgumentError("parameter name is required")
        if self.find(parameter.name) is not None:
            raise InvalidArgumentError(f"duplicate parameter: {parameter.name}")
        self._items.append(parameter)
        return parameter

    def extend(self, parameters: Iterable[Parameter]) -> None:
        for parameter in parameters:
            self.add(parameter)

    def clear(self) -> None:
        self._items.clear()

    def find(self, name: str) -> Optional[Parameter]:
        for item in self._items:
            if item.name == name:
                return item
        return None

    @overload
    def __getitem__(self, key: int) -> Parameter: ...

    @overload
    def __getitem__(self, key: str) -> Parameter: ...

    def __getitem__(self, key: Union[int, str]) -> Parameter:
        if isinstance(key, int):
            return self._items[key]
        parameter = self.find(key)
        if parameter is None:
            raise KeyError(f"parameter not found: {key}")
        return parameter

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.find(name) is not None

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Parameter]:
        return iter(self._items)

    def __repr__(self) -> str:
        return f"ParameterCollection({self._items!r})"


class Command:
    """
    A portable representation of a SQL statement or stored procedure call, and its parameters.

    A command may be executed several times, but must not be executed concurrently: parameter values are mutable
    state shared by all executions.

    :param command_type: Whether the text is a SQL statement or a stored procedure name.
    :param text: SQL statement text, or stored procedure name.
    :param parameters: Parameters in declaration order.
    :param timeout: Seconds to wait for the command to complete, or `None` for the driver default.
    :param updated_row_source: How results are copied back into rows being synchronized.
    """

    command_type: CommandType
    text: str
    parameters: ParameterCollection
    timeout: Optional[float]
    updated_row_source: UpdatedRowSource

    def __init__(
        self,
        command_type: CommandType,
        text: str,
        parameters: Iterable[Parameter] = (),
        *,
        timeout: Optional[float] = None,
        updated_row_source: UpdatedRowSource = UpdatedRowSource.both,
    ) -> None:
        if not text or not text.strip():
            raise InvalidArgumentError(
                "stored procedure name is required"
                if command_type is CommandType.stored_procedure
                else "command text is required"
            )

        self.command_type = command_type
        self.text = text
        self.parameters = ParameterCollection(parameters)
        self.timeout = timeout
        self.updated_row_source = updated_row_source

    def __str__(self) -> str:
        if self.command_type is CommandType.stored_procedure:
            return f"procedure {self.text}"
        else:
            return self.text

    def __repr__(self) -> str:
        return f"Command({self.command_type.name}, {self.text!r})"

    def input_parameters(self) -> list[Parameter]:
        return [parameter for parameter in self.parameters if parameter.is_input]

    def output_parameters(self) -> list[Parameter]:
        return [parameter for parameter in self.parameters if parameter.is_output]

    def bind_row(self, row: DataRow) -> None:
        "Reads values of source columns of the row into parameters bound to a column."

        for parameter in self.parameters:
            if parameter.is_input:
                parameter.bind_row(row)

    def parameter_values(self) -> dict[str, Any]:
        "Returns the current values of input parameters, keyed by parameter name."

        return {
            parameter.name: parameter.value
            for parameter in self.parameters
            if parameter.is_input
        }

    def set_output_values(self, values: dict[str, Any]) -> None:
        "Stores values reported by the driver for output, input-output and return-value parameters."

        for name, value in values.items():
            parameter = self.parameters.find(name)
            if parameter is not None and parameter.is_output:
                parameter.value = to_db_value(value)


def text_command(text: str) -> Command:
    "Creates a command to execute a SQL statement."

    return Command(CommandType.text, text)


def procedure_command(name: str) -> Command:
    "Creates a command to call a stored procedure."

    return Command(CommandType.stored_procedure, name)


def add_parameter(
    command: Command,
    name: str,
    db_type: DbType,
    *,
    direction: ParameterDirection = ParameterDirection.input,
    size: int = 0,
    nullable: bool = False,
    precision: int = 0,
    scale: int = 0,
    source_column: Optional[str] = None,
    source_version: RowVersion = RowVersion.current,
    value: Any = None,
) -> Parameter:
    "Appends a fully specified parameter to a command. A `None` value is stored as `DBNull`."

    parameter = Parameter(
        name=name,
        db_type=db_type,
        direction=direction,
        size=size,
        nullable=nullable,
        precision=precision,
        scale=scale,
        source_column=source_column,
        source_version=source_version,
    )
    if parameter.is_input:
        parameter.value = to_db_value(value)
    else:
        parameter.value = value
    return command.parameters.add(parameter)


def assign_parameters(command: Command, values: Sequence[Any]) -> None:
    """
    Maps a flat list of values onto the existing parameters of a command, in declaration order.

    A leading return-value parameter is skipped. `None` values are stored as `DBNull`.

    :param command: A command whose parameters have been declared or discovered.
    :param values: Values in parameter declaration order.
    """

    parameters = list(command.parameters)
    if parameters and parameters[0].direction is ParameterDirection.return_value:
        parameters = parameters[1:]

    if len(parameters) != len(values):
        raise ArityMismatchError(command.text, len(parameters), len(values))

    for parameter, value in zip(parameters, values):
        parameter.value = to_db_value(value)
