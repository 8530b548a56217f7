"""
pysqlaccess: Provider-agnostic relational database access.

This module defines the driver for Microsoft SQL Server, built on the ODBC client library `pyodbc`.
"""

from pysqlaccess.base import BaseConnection, BaseDriver, DriverCapabilities
from pysqlaccess.util.typing import override

from .connection import MSSQLConnection


class MSSQLDriver(BaseDriver):
    _capabilities: DriverCapabilities

    def __init__(self) -> None:
        # `executemany` reports a single total for the batch
        self._capabilities = DriverCapabilities(
            stored_procedures=True,
            parameter_discovery=True,
            batch_execution=True,
            row_outcomes=False,
        )

    @property
    @override
    def name(self) -> str:
        return "mssql"

    @property
    @override
    def capabilities(self) -> DriverCapabilities:
        return self._capabilities

    @property
    @override
    def parameter_prefix(self) -> str:
        return "@"

    @override
    def create_connection(self, connection_string: str) -> BaseConnection:
        return MSSQLConnection(self, connection_string)
