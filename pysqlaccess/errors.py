"""
pysqlaccess: Provider-agnostic relational database access.

This module defines the exception types raised by the library.
"""

from typing import Any, Optional


class DatabaseAccessError(RuntimeError):
    "Base class for exceptions raised by this library."


class ConfigurationError(DatabaseAccessError):
    "Raised when database registrations are inconsistent. Never retried."


class UnknownDatabaseError(ConfigurationError, KeyError):
    "Raised when a logical database name has no registration."

    name: str

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        if self.name:
            return f"database not registered: {self.name}"
        else:
            return "default database not registered"


class DuplicateRegistrationError(ConfigurationError):
    "Raised when a logical database name is registered more than once."

    name: str

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        if self.name:
            return f"database already registered: {self.name}"
        else:
            return "default database already registered"


class AlreadyConfiguredError(ConfigurationError):
    "Raised when the process-wide database provider factory is set twice."


class NotConfiguredError(ConfigurationError):
    "Raised when databases are requested before the process-wide database provider factory is set."


class ArgumentError(DatabaseAccessError, ValueError):
    "Raised when a caller passes invalid arguments. Never retried."


class InvalidArgumentError(ArgumentError):
    pass


class ArityMismatchError(ArgumentError):
    "Raised when the number of values does not match the number of command parameters."

    expected: int
    actual: int

    def __init__(self, command_text: str, expected: int, actual: int) -> None:
        super().__init__(command_text, expected, actual)
        self.command_text = command_text
        self.expected = expected
        self.actual = actual

    def __str__(self) -> str:
        return f"parameter count mismatch for `{self.command_text}`; expected: {self.expected}; got: {self.actual}"


class MissingTableNameError(ArgumentError):
    pass


def _qualified_table(database: str, table_name: str) -> str:
    if database:
        return f"`{table_name}` in database `{database}`"
    else:
        return f"`{table_name}`"


class MissingCommandError(ArgumentError):
    "Raised when rows with pending changes have no command to apply them."

    table_name: str
    kind: str
    command: str
    database: str

    def __init__(
        self, table_name: str, kind: str, command: str, database: str = ""
    ) -> None:
        super().__init__(table_name, kind, command, database)
        self.table_name = table_name
        self.kind = kind
        self.command = command
        self.database = database

    def __str__(self) -> str:
        table = _qualified_table(self.database, self.table_name)
        return f"table {table} has {self.kind} rows but no {self.command} command was given"


class DeletedRowInaccessibleError(ArgumentError):
    pass


class RowNotInTableError(ArgumentError):
    pass


class CapabilityError(DatabaseAccessError):
    """
    Raised when the driver cannot satisfy the requested mode of operation.

    The caller must explicitly fall back to a simpler mode.
    """


class UnsupportedDiscoveryError(CapabilityError):
    pass


class UnsupportedBatchingError(CapabilityError):
    pass


class ContinueModeUnsupportedError(CapabilityError):
    pass


class UnsupportedProcedureError(CapabilityError):
    pass


class SynchronizationFailedError(DatabaseAccessError):
    "Raised when a row with a pending change could not be applied to the database."

    table_name: str
    row_index: Optional[int]
    row_key: Optional[dict[str, Any]]
    kind: str
    command_text: str
    reason: str
    database: str

    def __init__(
        self,
        table_name: str,
        row_index: Optional[int],
        row_key: Optional[dict[str, Any]],
        kind: str,
        command_text: str,
        reason: str,
        database: str = "",
    ) -> None:
        super().__init__(table_name, row_index, kind, command_text, reason, database)
        self.table_name = table_name
        self.row_index = row_index
        self.row_key = row_key
        self.kind = kind
        self.command_text = command_text
        self.reason = reason
        self.database = database

    def __str__(self) -> str:
        if self.row_key:
            row = ", ".join(f"{key}={value!r}" for key, value in self.row_key.items())
        elif self.row_index is not None:
            row = f"#{self.row_index}"
        else:
            row = "(batch)"
        table = _qualified_table(self.database, self.table_name)
        return f"failed to apply {self.kind} row {row} of table {table} with `{self.command_text}`: {self.reason}"


class QueryException(DatabaseAccessError):
    "Raised when the driver fails to execute a command."

    database: str
    query: str

    def __init__(self, query: str, database: str = "") -> None:
        super().__init__()
        self.query = query
        self.database = database

    def __str__(self) -> str:
        query = f"{self.query[:1000]}..." if len(self.query) > 1000 else self.query
        if self.database:
            return f"error executing query on `{self.database}`:\n{query}"
        else:
            return f"error executing query:\n{query}"
