"""
pysqlaccess: Provider-agnostic relational database access.

This module defines the driver for Oracle, built on the client library `oracledb`.
"""

from pysqlaccess.base import BaseConnection, BaseDriver, DriverCapabilities
from pysqlaccess.util.typing import override

from .connection import OracleConnection


class OracleDriver(BaseDriver):
    _capabilities: DriverCapabilities

    def __init__(self) -> None:
        self._capabilities = DriverCapabilities(
            stored_procedures=True,
            parameter_discovery=False,
            batch_execution=True,
            row_outcomes=True,
        )

    @property
    @override
    def name(self) -> str:
        return "oracle"

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
        return OracleConnection(self, connection_string)
