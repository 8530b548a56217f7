"""
pysqlaccess: Provider-agnostic relational database access.

This module adapts database client libraries that follow the Python Database API Specification (PEP 249) to the
connection, cursor and transaction interfaces of this package.
"""

import abc
import re
import typing
from typing import Any, Iterable, Optional, Sequence

from .base import (
    BaseConnection,
    BaseCursor,
    BaseDriver,
    BaseTransaction,
    BatchResult,
    RecordType,
)
from .command import Command, CommandType, from_db_value
from .errors import InvalidArgumentError, UnsupportedProcedureError
from .util.typing import override

PREFIX_CHARACTERS = "@:?$"


def strip_prefix(name: str) -> str:
    "Removes a leading parameter marker such as `@` or `:` from a parameter name."

    return name.lstrip(PREFIX_CHARACTERS)


def named_values(command: Command) -> dict[str, Any]:
    "Values of input parameters keyed by parameter name without prefix, for drivers that use named placeholders."

    return {
        strip_prefix(parameter.name): from_db_value(parameter.value)
        for parameter in command.input_parameters()
    }


def positional_values(command: Command) -> list[Any]:
    "Values of input parameters in declaration order, for drivers that use `?` placeholders."

    return [from_db_value(parameter.value) for parameter in command.input_parameters()]


def rewrite_named_markers(
    text: str, names: Iterable[str], prefix: str
) -> Optional[tuple[str, list[str]]]:
    """
    Rewrites named parameter markers such as `@name` into positional `?` markers.

    Markers that do not match a known parameter (e.g. system variables such as `@@VERSION`) are left unchanged.

    :returns: Statement text and parameter names in order of appearance, or `None` if the text contains no named
        markers.
    """

    known = set(names)
    ordered: list[str] = []

    def _replace(m: re.Match) -> str:
        name = m.group(1)
        if name not in known:
            return m.group(0)
        ordered.append(name)
        return "?"

    pattern = rf"(?<![\w{re.escape(prefix)}]){re.escape(prefix)}(\w+)"
    statement = re.sub(pattern, _replace, text)
    if not ordered:
        return None
    return statement, ordered


class DBAPICursor(BaseCursor):
    """
    Wraps a PEP 249 cursor.

    :param native: The cursor object of the client library, owned by this instance.
    :param outputs: Values of output parameters, keyed by parameter name.
    :param rowcount: Number of rows affected, if the client library does not report it on the cursor.
    """

    native: Any
    _current: Any
    _outputs: dict[str, Any]
    _rowcount: Optional[int]

    def __init__(
        self,
        native: Any,
        outputs: Optional[dict[str, Any]] = None,
        rowcount: Optional[int] = None,
    ) -> None:
        self.native = native
        self._current = native
        self._outputs = outputs or {}
        self._rowcount = rowcount

    @property
    @override
    def columns(self) -> list[str]:
        description = self._current.description
        if not description:
            return []
        return [column[0] for column in description]

    @property
    @override
    def rowcount(self) -> int:
        if self._rowcount is not None:
            return self._rowcount
        count = self.native.rowcount
        return count if isinstance(count, int) else -1

    @override
    def fetch(self) -> Optional[RecordType]:
        if not self._current.description:
            return None
        row = self._current.fetchone()
        if row is None:
            return None
        return tuple(row)

    @override
    def fetch_all(self) -> list[RecordType]:
        if not self._current.description:
            return []
        return [tuple(row) for row in self._current.fetchall()]

    @override
    def next_result(self) -> bool:
        nextset = getattr(self.native, "nextset", None)
        if nextset is None:
            return False
        return bool(nextset())

    @override
    def output_values(self) -> dict[str, Any]:
        return dict(self._outputs)

    @override
    def close(self) -> None:
        self.native.close()


class DBAPITransaction(BaseTransaction):
    @override
    def _commit(self) -> None:
        typing.cast(DBAPIConnection, self.connection).end_transaction(True)

    @override
    def _rollback(self) -> None:
        typing.cast(DBAPIConnection, self.connection).end_transaction(False)


class DBAPIConnection(BaseConnection):
    """
    A connection that wraps a PEP 249 connection object.

    Connections run in auto-commit mode unless a transaction is active. Dialects override the hook methods to open
    the native connection, translate commands into native statements, and call stored procedures.
    """

    native: Any
    active_cursor: Any
    _transaction: Optional[DBAPITransaction]

    def __init__(self, driver: BaseDriver, connection_string: str) -> None:
        super().__init__(driver, connection_string)
        self.native = None
        self.active_cursor = None
        self._transaction = None

    @property
    @override
    def is_open(self) -> bool:
        return self.native is not None

    @override
    def open(self) -> None:
        if self.native is not None:
            return
        self.native = self._connect()

    @override
    def close(self) -> None:
        native = self.native
        if native is None:
            return
        self.native = None
        self.active_cursor = None
        self._transaction = None
        native.close()

    @override
    def cancel(self) -> None:
        if self.native is not None:
            self._interrupt()

    @property
    def native_connection(self) -> Any:
        if self.native is None:
            raise InvalidArgumentError("connection is not open")
        return self.native

    @override
    def begin(self) -> BaseTransaction:
        native = self.native_connection
        if self._transaction is not None and not self._transaction.completed:
            raise InvalidArgumentError(
                "a transaction is already active on the connection"
            )

        self._begin(native)
        transaction = DBAPITransaction(self)
        self._transaction = transaction
        return transaction

    def end_transaction(self, commit: bool) -> None:
        native = self.native_connection
        self._transaction = None
        if commit:
            self._commit(native)
        else:
            self._rollback(native)

    @override
    def execute(
        self, command: Command, transaction: Optional[BaseTransaction] = None
    ) -> BaseCursor:
        native = self.native_connection
        self.check_transaction(transaction)
        self._set_timeout(native, self.get_timeout(command))

        cursor = native.cursor()
        self.active_cursor = cursor
        try:
            if command.command_type is CommandType.stored_procedure:
                return self._call_procedure(cursor, command)
            else:
                return self._execute_text(cursor, command)
        except BaseException:
            cursor.close()
            raise

    @override
    def execute_batch(
        self,
        command: Command,
        parameter_sets: Sequence[dict[str, Any]],
        transaction: Optional[BaseTransaction] = None,
    ) -> BatchResult:
        if not self.driver.capabilities.batch_execution:
            return super().execute_batch(command, parameter_sets, transaction)

        native = self.native_connection
        self.check_transaction(transaction)
        self._set_timeout(native, self.get_timeout(command))

        cursor = native.cursor()
        self.active_cursor = cursor
        try:
            return self._execute_many(cursor, command, parameter_sets)
        finally:
            cursor.close()

    def _execute_text(self, cursor: Any, command: Command) -> BaseCursor:
        statement, parameters = self._prepare(command)
        cursor.execute(statement, parameters)
        return DBAPICursor(cursor)

    def _execute_many(
        self, cursor: Any, command: Command, parameter_sets: Sequence[dict[str, Any]]
    ) -> BatchResult:
        statement = ""
        records: list[Any] = []
        for values in parameter_sets:
            for name, value in values.items():
                command.parameters[name].value = value
            statement, parameters = self._prepare(command)
            records.append(parameters)

        cursor.executemany(statement, records)
        count = cursor.rowcount
        return BatchResult(count if isinstance(count, int) else -1)

    def _call_procedure(self, cursor: Any, command: Command) -> BaseCursor:
        raise UnsupportedProcedureError(
            f"driver `{self.driver.name}` cannot call stored procedure `{command.text}`"
        )

    def _set_timeout(self, native: Any, timeout: Optional[float]) -> None:
        "Applies the command timeout in seconds, `None` for no limit."

        pass

    def _interrupt(self) -> None:
        "Interrupts a call in progress on another thread."

        pass

    def _begin(self, native: Any) -> None:
        native.autocommit = False

    def _commit(self, native: Any) -> None:
        try:
            native.commit()
        finally:
            native.autocommit = True

    def _rollback(self, native: Any) -> None:
        try:
            native.rollback()
        finally:
            native.autocommit = True

    @abc.abstractmethod
    def _connect(self) -> Any:
        "Opens a native connection to the database."
        ...

    @abc.abstractmethod
    def _prepare(self, command: Command) -> tuple[str, Any]:
        "Translates a text command into statement text and parameter values the client library accepts."
        ...
