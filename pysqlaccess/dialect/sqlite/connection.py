import logging
import sqlite3
import time
from typing import Any, Optional, Sequence
from urllib.parse import unquote, urlparse

from pysqlaccess.base import BatchResult, RowOutcome
from pysqlaccess.command import Command
from pysqlaccess.connection import is_connection_url
from pysqlaccess.dbapi import DBAPIConnection, named_values
from pysqlaccess.util.typing import override

LOGGER = logging.getLogger("pysqlaccess.sqlite")


def get_database_path(connection_string: str) -> str:
    """
    Extracts the database file path from a connection string.

    The connection string is either a file path, or a URL such as `sqlite:///relative/path.db` or
    `sqlite:////absolute/path.db`. An empty path stands for an in-memory database.
    """

    if not is_connection_url(connection_string):
        return connection_string

    parts = urlparse(connection_string, allow_fragments=False)
    path = unquote(parts.path[1:] if parts.path.startswith("/") else parts.path)
    return path or ":memory:"


class SQLiteConnection(DBAPIConnection):
    "Represents a connection to an SQLite database file."

    native: Optional[sqlite3.Connection]

    @override
    def _connect(self) -> sqlite3.Connection:
        path = get_database_path(self.connection_string)
        LOGGER.info("connecting to %s", path)

        # transactions are started explicitly, and connections may be used from a worker thread
        return sqlite3.connect(path, isolation_level=None, check_same_thread=False)

    @override
    def _prepare(self, command: Command) -> tuple[str, Any]:
        if not len(command.parameters):
            return command.text, ()
        return command.text, named_values(command)

    @override
    def _execute_many(
        self, cursor: Any, command: Command, parameter_sets: Sequence[dict[str, Any]]
    ) -> BatchResult:
        outcomes: list[RowOutcome] = []
        for values in parameter_sets:
            for name, value in values.items():
                command.parameters[name].value = value
            statement, parameters = self._prepare(command)
            try:
                cursor.execute(statement, parameters)
            except (sqlite3.Error, OverflowError) as e:
                # rows executed earlier in the batch are already applied
                outcomes.append(RowOutcome(0, str(e)))
                if isinstance(e, sqlite3.OperationalError) and str(e) == "interrupted":
                    LOGGER.debug("batch interrupted after %d rows", len(outcomes))
                    break
            else:
                outcomes.append(RowOutcome(cursor.rowcount))

        skipped = len(parameter_sets) - len(outcomes)
        outcomes.extend(
            RowOutcome(0, "not executed: batch interrupted") for _ in range(skipped)
        )

        affected = sum(outcome.affected for outcome in outcomes if outcome.affected > 0)
        return BatchResult(affected, outcomes)

    @override
    def _set_timeout(
        self, native: sqlite3.Connection, timeout: Optional[float]
    ) -> None:
        if timeout is None or timeout <= 0:
            native.set_progress_handler(None, 0)
            return

        deadline = time.monotonic() + timeout

        def _check_deadline() -> int:
            # a non-zero return value aborts the statement
            return 1 if time.monotonic() > deadline else 0

        native.set_progress_handler(_check_deadline, 1000)

    @override
    def _interrupt(self) -> None:
        native = self.native
        if native is not None:
            native.interrupt()

    @override
    def _begin(self, native: sqlite3.Connection) -> None:
        native.execute("BEGIN")

    @override
    def _commit(self, native: sqlite3.Connection) -> None:
        native.commit()

    @override
    def _rollback(self, native: sqlite3.Connection) -> None:
        native.rollback()
