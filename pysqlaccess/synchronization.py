"""
pysqlaccess: Provider-agnostic relational database access.

This module applies pending changes of an in-memory table to a database, using separate commands to insert, update
and delete rows.
"""

import enum
import functools
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .base import (
    BaseConnection,
    BaseCursor,
    BaseTransaction,
    DriverCapabilities,
    RecordType,
    RowOutcome,
    query_context,
)
from .command import Command, CommandType, UpdatedRowSource, from_db_value
from .errors import (
    ContinueModeUnsupportedError,
    InvalidArgumentError,
    MissingCommandError,
    MissingTableNameError,
    QueryException,
    SynchronizationFailedError,
    UnsupportedBatchingError,
    UnsupportedProcedureError,
)
from .model.table import DataRow, DataSet, DataTable, RowState
from .util.dispatch import run_in_thread

LOGGER = logging.getLogger("pysqlaccess")


@enum.unique
class UpdateBehavior(enum.Enum):
    "Determines how rows are applied, and what happens when a row cannot be applied."

    # rows are applied one after the other without a shared transaction;
    # the first failure stops synchronization, and rows applied before the failure remain applied
    standard = "standard"

    # rows are applied without a shared transaction;
    # a row that cannot be applied is annotated with an error, and synchronization proceeds to the next row
    continue_ = "continue"

    # all rows are applied in a single transaction; the first failure rolls back all changes
    transactional = "transactional"


_COMMAND_NAMES: dict[RowState, str] = {
    RowState.added: "insert",
    RowState.modified: "update",
    RowState.deleted: "delete",
}


@dataclass
class ChangeCommands:
    """
    Commands that apply each kind of pending change. Any of the commands may be absent.

    :param insert: Applies rows marked as added.
    :param update: Applies rows marked as modified.
    :param delete: Applies rows marked as deleted.
    """

    insert: Optional[Command] = None
    update: Optional[Command] = None
    delete: Optional[Command] = None

    def as_dict(self) -> dict[RowState, Command]:
        "Maps each row state to the command that applies it, omitting absent commands."

        commands = {
            RowState.added: self.insert,
            RowState.modified: self.update,
            RowState.deleted: self.delete,
        }
        return {
            state: command
            for state, command in commands.items()
            if command is not None
        }


class TableSynchronizer:
    """
    Applies pending changes of a single in-memory table in a single call.

    Rows are processed in table order; rows are not reordered to satisfy dependencies between them. A synchronizer
    instance is not reusable.

    :param database: Logical database name, used in diagnostics.
    :param capabilities: Optional features of the driver.
    :param open_connection: Opens a new connection to the database.
    :param accept_changes: Whether rows that have been applied are marked as unchanged.
    """

    database: str
    capabilities: DriverCapabilities
    open_connection: Callable[[], BaseConnection]
    accept_changes: bool

    _connection: Optional[BaseConnection]

    def __init__(
        self,
        database: str,
        capabilities: DriverCapabilities,
        open_connection: Callable[[], BaseConnection],
        *,
        accept_changes: bool = True,
    ) -> None:
        self.database = database
        self.capabilities = capabilities
        self.open_connection = open_connection
        self.accept_changes = accept_changes
        self._connection = None

    def synchronize(
        self,
        dataset: DataSet,
        table_name: str,
        commands: ChangeCommands,
        behavior: UpdateBehavior = UpdateBehavior.standard,
        batch_size: Optional[int] = None,
        transaction: Optional[BaseTransaction] = None,
    ) -> int:
        """
        Applies pending changes of a table in a data set.

        :param dataset: The data set that holds the table.
        :param table_name: The table whose rows to apply.
        :param commands: Commands to apply added, modified and deleted rows.
        :param behavior: Transaction and error handling mode.
        :param batch_size: Maximum number of rows to send to the driver in a single round trip, or `None` (or 1) to
            send rows one by one.
        :param transaction: A transaction managed by the caller. The synchronizer neither commits nor rolls back
            this transaction.
        :returns: The number of rows successfully applied.
        """

        table = self._get_table(dataset, table_name)
        dispatch = commands.as_dict()

        if batch_size is not None:
            if (
                not isinstance(batch_size, int)
                or isinstance(batch_size, bool)
                or batch_size < 1
            ):
                raise InvalidArgumentError(
                    f"batch size must be a positive integer; got: {batch_size!r}"
                )
        if transaction is not None and behavior is UpdateBehavior.continue_:
            raise InvalidArgumentError(
                "continue mode cannot be combined with an external transaction"
            )

        rows = table.get_changes()
        for state in (RowState.added, RowState.modified, RowState.deleted):
            if state not in dispatch and any(row.state is state for row in rows):
                raise MissingCommandError(
                    table.name, state.value, _COMMAND_NAMES[state], self.database
                )

        if not rows:
            LOGGER.debug("no pending changes in table `%s`", table.name)
            return 0

        batched = batch_size is not None and batch_size > 1
        size = batch_size if batched else None
        if batched and not self.capabilities.batch_execution:
            raise UnsupportedBatchingError(
                f"driver for database `{self.database}` cannot execute commands in batches; synchronize without a batch size"
            )
        if behavior is UpdateBehavior.continue_ and not self.capabilities.row_outcomes:
            raise ContinueModeUnsupportedError(
                f"driver for database `{self.database}` does not report row outcomes required by continue mode"
            )
        if not self.capabilities.stored_procedures:
            for command in dispatch.values():
                if command.command_type is CommandType.stored_procedure:
                    raise UnsupportedProcedureError(
                        f"driver for database `{self.database}` cannot call stored procedure `{command.text}`"
                    )

        LOGGER.debug(
            "synchronizing %d rows of table `%s` in %s mode%s",
            len(rows),
            table.name,
            behavior.value,
            f" with batch size {batch_size}" if batched else "",
        )

        positions = {id(row): index for index, row in enumerate(table.rows)}
        applier = _RowApplier(
            self.database,
            table,
            dispatch,
            positions,
            continue_on_error=behavior is UpdateBehavior.continue_,
        )

        if transaction is not None:
            applier.apply(transaction.connection, transaction, rows, size)
            self._accept(applier.applied)
            return len(applier.applied)

        connection = self.open_connection()
        self._connection = connection
        try:
            if behavior is UpdateBehavior.transactional:
                own_transaction = connection.begin()
                try:
                    applier.apply(connection, own_transaction, rows, size)
                except BaseException:
                    LOGGER.debug("rolling back changes to table `%s`", table.name)
                    own_transaction.rollback()
                    raise
                own_transaction.commit()
                self._accept(applier.applied)
            else:
                try:
                    applier.apply(connection, None, rows, size)
                finally:
                    # without a shared transaction, rows applied before a failure stay applied
                    self._accept(applier.applied)
        finally:
            self._connection = None
            connection.close()

        return len(applier.applied)

    async def synchronize_async(
        self,
        dataset: DataSet,
        table_name: str,
        commands: ChangeCommands,
        behavior: UpdateBehavior = UpdateBehavior.standard,
        batch_size: Optional[int] = None,
        transaction: Optional[BaseTransaction] = None,
    ) -> int:
        "Applies pending changes of a table in a data set, in a worker thread."

        return await run_in_thread(
            functools.partial(
                self.synchronize,
                dataset,
                table_name,
                commands,
                behavior,
                batch_size,
                transaction,
            ),
            self.cancel,
        )

    def cancel(self) -> None:
        "Interrupts the driver call in progress, if any."

        connection = self._connection
        if connection is not None:
            connection.cancel()

    def _get_table(self, dataset: DataSet, table_name: str) -> DataTable:
        if not table_name:
            raise MissingTableNameError(
                "table name is required to synchronize a data set"
            )
        if not dataset.has_table(table_name):
            raise MissingTableNameError(f"table not in data set: {table_name}")
        return dataset[table_name]

    def _accept(self, rows: list[DataRow]) -> None:
        for row in rows:
            if self.accept_changes:
                row.accept_changes()
            else:
                row.error = None


class _RowApplier:
    "Applies rows with pending changes through the command matching their state."

    database: str
    table: DataTable
    dispatch: dict[RowState, Command]
    positions: dict[int, int]
    continue_on_error: bool
    applied: list[DataRow]

    def __init__(
        self,
        database: str,
        table: DataTable,
        dispatch: dict[RowState, Command],
        positions: dict[int, int],
        *,
        continue_on_error: bool,
    ) -> None:
        self.database = database
        self.table = table
        self.dispatch = dispatch
        self.positions = positions
        self.continue_on_error = continue_on_error
        self.applied = []

    def apply(
        self,
        connection: BaseConnection,
        transaction: Optional[BaseTransaction],
        rows: list[DataRow],
        batch_size: Optional[int],
    ) -> None:
        if batch_size is None:
            for row in rows:
                self._apply_row(connection, transaction, row)
        else:
            for batch in _split_batches(rows, batch_size):
                self._apply_batch(connection, transaction, batch)

    def _apply_row(
        self,
        connection: BaseConnection,
        transaction: Optional[BaseTransaction],
        row: DataRow,
    ) -> None:
        state = row.state
        command = self.dispatch[state]
        command.bind_row(row)

        if LOGGER.isEnabledFor(logging.DEBUG):
            LOGGER.debug(
                "apply %s row #%d with: %s",
                state.value,
                self.positions[id(row)],
                command,
            )

        try:
            with query_context(command, self.database):
                cursor = connection.execute(command, transaction)
                try:
                    # some drivers count affected rows only once the returned record is consumed
                    columns = cursor.columns
                    record = cursor.fetch() if columns else None
                    affected = cursor.rowcount
                    if record is not None and affected < 1:
                        affected = 1
                    if affected != 0 and state is not RowState.deleted:
                        self._update_row(command, cursor, row, columns, record)
                finally:
                    cursor.close()
        except QueryException as e:
            # driver errors become row errors in continue mode
            reason = str(e.__cause__ or e)
            row.error = reason
            if not self.continue_on_error:
                raise
            outcome = RowOutcome(0, reason)
        else:
            outcome = RowOutcome(affected)

        self._evaluate(row, state, command, outcome)

    def _update_row(
        self,
        command: Command,
        cursor: BaseCursor,
        row: DataRow,
        columns: list[str],
        record: Optional[RecordType],
    ) -> None:
        "Copies the first returned record and output parameter values back into the row."

        source = command.updated_row_source
        if source in (UpdatedRowSource.first_returned_record, UpdatedRowSource.both):
            if record is not None:
                for name, value in zip(columns, record):
                    if self.table.has_column(name):
                        row[name] = value

        if source in (UpdatedRowSource.output_parameters, UpdatedRowSource.both):
            command.set_output_values(cursor.output_values())
            for parameter in command.output_parameters():
                column = parameter.source_column
                if column is not None and self.table.has_column(column):
                    row[column] = from_db_value(parameter.value)

    def _apply_batch(
        self,
        connection: BaseConnection,
        transaction: Optional[BaseTransaction],
        batch: list[DataRow],
    ) -> None:
        state = batch[0].state
        command = self.dispatch[state]
        parameter_sets = []
        for row in batch:
            command.bind_row(row)
            parameter_sets.append(command.parameter_values())

        LOGGER.debug(
            "apply %d %s rows in a batch with: %s", len(batch), state.value, command
        )
        with query_context(command, self.database):
            result = connection.execute_batch(command, parameter_sets, transaction)

        if result.row_outcomes is not None:
            if len(result.row_outcomes) != len(batch):
                raise QueryException(str(command), self.database) from ValueError(
                    f"driver reported {len(result.row_outcomes)} row outcomes for a batch of {len(batch)} rows"
                )

            # applied rows are accepted even if an earlier row in the batch failed
            failure: Optional[SynchronizationFailedError] = None
            for row, outcome in zip(batch, result.row_outcomes):
                try:
                    self._evaluate(row, state, command, outcome)
                except SynchronizationFailedError as e:
                    if failure is None:
                        failure = e
            if failure is not None:
                raise failure

        elif result.affected >= 0 and result.affected < len(batch):
            reason = f"batch of {len(batch)} rows affected {result.affected} records"
            for row in batch:
                row.error = reason
            raise SynchronizationFailedError(
                self.table.name,
                None,
                None,
                state.value,
                str(command),
                reason,
                self.database,
            )

        else:
            if result.affected < 0:
                LOGGER.warning(
                    "driver did not report affected rows for a batch of %d %s rows of table `%s`",
                    len(batch),
                    state.value,
                    self.table.name,
                )
            self.applied.extend(batch)

    def _evaluate(
        self, row: DataRow, state: RowState, command: Command, outcome: RowOutcome
    ) -> None:
        "Records the outcome of applying a single row."

        if outcome.error is None and outcome.affected != 0:
            if outcome.affected < 0:
                LOGGER.debug("driver did not report affected rows; assuming success")
            self.applied.append(row)
            return

        if outcome.error is not None:
            reason = outcome.error
        else:
            reason = f"concurrency violation: the {_COMMAND_NAMES[state]} command affected 0 of the expected 1 records"
        row.error = reason

        index = self.positions[id(row)]
        if self.continue_on_error:
            LOGGER.warning(
                "skipping %s row #%d of table `%s`: %s",
                state.value,
                index,
                self.table.name,
                reason,
            )
            return

        raise SynchronizationFailedError(
            self.table.name,
            index,
            row.key(),
            state.value,
            str(command),
            reason,
            self.database,
        )


def _split_batches(rows: list[DataRow], batch_size: int) -> list[list[DataRow]]:
    "Groups consecutive rows with the same state into batches of at most the given size."

    batches: list[list[DataRow]] = []
    batch: list[DataRow] = []
    for row in rows:
        if batch and (batch[0].state is not row.state or len(batch) >= batch_size):
            batches.append(batch)
            batch = []
        batch.append(row)
    if batch:
        batches.append(batch)
    return batches
