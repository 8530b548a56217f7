"""
pysqlaccess: Provider-agnostic relational database access.

This module defines base classes that database drivers implement to open connections, execute commands, and run
transactions. Optional driver features are announced with capability flags rather than assumed.
"""

import abc
import contextlib
import functools
import logging
import types
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Sequence

from .command import Command, Parameter
from .errors import (
    DatabaseAccessError,
    InvalidArgumentError,
    QueryException,
    UnsupportedBatchingError,
    UnsupportedDiscoveryError,
)
from .util.dispatch import run_in_thread

LOGGER = logging.getLogger("pysqlaccess")

RecordType = tuple[Any, ...]


@contextlib.contextmanager
def query_context(command: Command, database: str = "") -> Iterator[None]:
    "Re-raises driver exceptions as a `QueryException` that identifies the database and the command."

    try:
        yield
    except DatabaseAccessError:
        raise
    except Exception as e:
        raise QueryException(str(command), database) from e


@dataclass(frozen=True)
class DriverCapabilities:
    """
    Optional features a driver supports.

    :param stored_procedures: Whether commands may call stored procedures.
    :param parameter_discovery: Whether the driver can derive the parameters of a stored procedure.
    :param batch_execution: Whether the driver can execute a command with several sets of parameters in a single
        round trip.
    :param row_outcomes: Whether the driver reports the number of affected rows and row-level errors separately for
        each row it applies, including rows applied in a batch.
    """

    stored_procedures: bool = True
    parameter_discovery: bool = False
    batch_execution: bool = False
    row_outcomes: bool = False


@dataclass
class RowOutcome:
    """
    Result of applying a single set of parameters.

    :param affected: Number of rows affected, or -1 if unknown.
    :param error: Row-level error reported by the driver.
    """

    affected: int
    error: Optional[str] = None


@dataclass
class BatchResult:
    """
    Result of executing a command with several sets of parameters.

    :param affected: Total number of rows affected, or -1 if unknown.
    :param row_outcomes: Outcome for each set of parameters, if the driver reports row outcomes.
    """

    affected: int
    row_outcomes: Optional[list[RowOutcome]] = None


class BaseCursor(abc.ABC):
    "A forward-only, read-once cursor over the result-sets produced by a command."

    @property
    @abc.abstractmethod
    def columns(self) -> list[str]:
        "Column names of the current result-set; empty if the command produced no rows."
        ...

    @property
    @abc.abstractmethod
    def rowcount(self) -> int:
        "Number of rows affected, as reported by the driver, or -1 if unknown."
        ...

    @abc.abstractmethod
    def fetch(self) -> Optional[RecordType]:
        "Returns the next row of the current result-set, or `None` if the result-set is exhausted."
        ...

    def fetch_all(self) -> list[RecordType]:
        "Returns all remaining rows of the current result-set."

        rows: list[RecordType] = []
        while True:
            row = self.fetch()
            if row is None:
                return rows
            rows.append(row)

    @abc.abstractmethod
    def next_result(self) -> bool:
        "Advances to the next result-set. Returns false if there are no more result-sets."
        ...

    def output_values(self) -> dict[str, Any]:
        "Values of output, input-output and return-value parameters, keyed by parameter name."

        return {}

    @abc.abstractmethod
    def close(self) -> None: ...


class BaseTransaction(abc.ABC):
    """
    An active transaction on an open connection.

    When used as a context manager, the transaction commits if the block completes normally, and rolls back if the
    block raises an exception.
    """

    connection: "BaseConnection"
    completed: bool

    def __init__(self, connection: "BaseConnection") -> None:
        self.connection = connection
        self.completed = False

    def commit(self) -> None:
        if self.completed:
            raise InvalidArgumentError("transaction has already completed")
        LOGGER.debug("commit transaction")
        self._commit()
        self.completed = True

    def rollback(self) -> None:
        if self.completed:
            raise InvalidArgumentError("transaction has already completed")
        LOGGER.debug("roll back transaction")
        self._rollback()
        self.completed = True

    async def commit_async(self) -> None:
        await run_in_thread(self.commit)

    async def rollback_async(self) -> None:
        await run_in_thread(self.rollback)

    @abc.abstractmethod
    def _commit(self) -> None: ...

    @abc.abstractmethod
    def _rollback(self) -> None: ...

    def __enter__(self) -> "BaseTransaction":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[types.TracebackType],
    ) -> None:
        if self.completed:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    async def __aenter__(self) -> "BaseTransaction":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[types.TracebackType],
    ) -> None:
        if self.completed:
            return
        if exc_type is None:
            await self.commit_async()
        else:
            await self.rollback_async()


class BaseConnection(abc.ABC):
    """
    A connection to a database, created closed.

    Closing a connection is idempotent, and is permitted on a connection that failed to open.
    """

    driver: "BaseDriver"
    connection_string: str
    command_timeout: Optional[float]

    def __init__(self, driver: "BaseDriver", connection_string: str) -> None:
        self.driver = driver
        self.connection_string = connection_string
        self.command_timeout = None

    def get_timeout(self, command: Command) -> Optional[float]:
        "Seconds to wait for a command to complete, or `None` for the driver default."

        return command.timeout if command.timeout is not None else self.command_timeout

    @property
    @abc.abstractmethod
    def is_open(self) -> bool: ...

    @abc.abstractmethod
    def open(self) -> None: ...

    async def open_async(self) -> None:
        await run_in_thread(self.open, self.cancel)

    @abc.abstractmethod
    def close(self) -> None: ...

    def cancel(self) -> None:
        "Interrupts a call in progress on another thread. The default implementation does nothing."

        pass

    def __enter__(self) -> "BaseConnection":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[types.TracebackType],
    ) -> None:
        self.close()

    async def __aenter__(self) -> "BaseConnection":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[types.TracebackType],
    ) -> None:
        self.close()

    @abc.abstractmethod
    def begin(self) -> BaseTransaction:
        "Starts a transaction."
        ...

    @abc.abstractmethod
    def execute(
        self, command: Command, transaction: Optional[BaseTransaction] = None
    ) -> BaseCursor:
        """
        Executes a command with the current values of its input parameters.

        :param command: The command to execute.
        :param transaction: The transaction to enlist the command in, which must belong to this connection.
        :returns: A cursor over the result-sets produced, owned by the caller.
        """
        ...

    async def execute_async(
        self, command: Command, transaction: Optional[BaseTransaction] = None
    ) -> BaseCursor:
        return await run_in_thread(
            functools.partial(self.execute, command, transaction), self.cancel
        )

    def execute_batch(
        self,
        command: Command,
        parameter_sets: Sequence[dict[str, Any]],
        transaction: Optional[BaseTransaction] = None,
    ) -> BatchResult:
        """
        Executes a command once for each set of parameter values, in a single round trip.

        Only available if the driver has the capability `batch_execution`.

        :param command: The command to execute. Output parameters are not populated.
        :param parameter_sets: Values of input parameters keyed by parameter name, one dictionary per execution.
        :param transaction: The transaction to enlist the command in, which must belong to this connection.
        """

        raise UnsupportedBatchingError(
            f"driver `{self.driver.name}` does not support batch execution"
        )

    def derive_parameters(self, command: Command) -> list[Parameter]:
        """
        Asks the driver for the formal parameters of a stored procedure.

        Only available if the driver has the capability `parameter_discovery`.
        """

        raise UnsupportedDiscoveryError(
            f"driver `{self.driver.name}` does not support parameter discovery"
        )

    def check_transaction(self, transaction: Optional[BaseTransaction]) -> None:
        if transaction is None:
            return
        if transaction.connection is not self:
            raise InvalidArgumentError(
                "transaction belongs to a different connection"
            )
        if transaction.completed:
            raise InvalidArgumentError("transaction has already completed")


class BaseDriver(abc.ABC):
    "Represents a specific database client library, and creates connections to a database server."

    @property
    @abc.abstractmethod
    def name(self) -> str: ...

    @property
    @abc.abstractmethod
    def capabilities(self) -> DriverCapabilities: ...

    @property
    def parameter_prefix(self) -> str:
        "Prefix that distinguishes parameter names from identifiers in SQL text, e.g. `@` or `:`."

        return ""

    @abc.abstractmethod
    def create_connection(self, connection_string: str) -> BaseConnection:
        "Creates a closed connection to a database server."
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"
