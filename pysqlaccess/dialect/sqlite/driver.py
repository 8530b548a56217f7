"""
pysqlaccess: Provider-agnostic relational database access.

This module defines the driver for SQLite, built on the module `sqlite3` of the standard library.
"""

from pysqlaccess.base import BaseConnection, BaseDriver, DriverCapabilities
from pysqlaccess.util.typing import override

from .connection import SQLiteConnection


class SQLiteDriver(BaseDriver):
    _capabilities: DriverCapabilities

    def __init__(self) -> None:
        self._capabilities = DriverCapabilities(
            stored_procedures=False,
            parameter_discovery=False,
            batch_execution=True,
            row_outcomes=True,
        )

    @property
    @override
    def name(self) -> str:
        return "sqlite"

    @property
    @override
    def capabilities(self) -> DriverCapabilities:
        return self._capabilities

    @property
    @override
    def parameter_prefix(self) -> str:
        return ":"

    @override
    def create_connection(self, connection_string: str) -> BaseConnection:
        return SQLiteConnection(self, connection_string)
