import unittest
from typing import Optional

from pysqlaccess.base import DriverCapabilities
from pysqlaccess.command import Command, DbType, ParameterDirection
from pysqlaccess.database import Database, DatabaseOptions
from pysqlaccess.errors import (
    ContinueModeUnsupportedError,
    InvalidArgumentError,
    MissingCommandError,
    MissingTableNameError,
    QueryException,
    SynchronizationFailedError,
    UnsupportedBatchingError,
    UnsupportedProcedureError,
)
from pysqlaccess.model.table import DataSet, DataTable, RowState, RowVersion
from pysqlaccess.synchronization import UpdateBehavior
from tests.params import configure
from tests.stub import ALL_CAPABILITIES, StubDriver, StubState

if __name__ == "__main__":
    configure()


def create_dataset(count: int) -> DataSet:
    "Creates a data set with a single table whose rows reflect the state of the database."

    table = DataTable("Items", ["id", "value"], primary_key=["id"])
    for i in range(1, count + 1):
        table.load_row([i, f"v{i}"])
    return DataSet([table])


def create_pending_dataset(count: int) -> DataSet:
    "Creates a data set with a single table whose rows are all pending insertion."

    table = DataTable("Items", ["id", "value"], primary_key=["id"])
    for i in range(1, count + 1):
        table.add_row([i, f"v{i}"])
    return DataSet([table])


class TestSynchronizeBase(unittest.TestCase):
    driver: StubDriver
    state: StubState
    database: Database

    def create_database(
        self,
        capabilities: Optional[DriverCapabilities] = None,
        options: Optional[DatabaseOptions] = None,
    ) -> None:
        self.driver = StubDriver(capabilities)
        self.state = self.driver.state
        self.database = Database(
            "stub://localhost/items", self.driver, name="items", options=options
        )

    def setUp(self) -> None:
        self.create_database(ALL_CAPABILITIES)

    def insert_command(self) -> Command:
        command = self.database.get_sql_string_command(
            "INSERT INTO Items (id, value) VALUES (@id, @value)"
        )
        self.database.add_in_parameter(
            command, "id", DbType.int32, source_column="id"
        )
        self.database.add_in_parameter(
            command, "value", DbType.string, source_column="value"
        )
        return command

    def update_command(self) -> Command:
        command = self.database.get_sql_string_command(
            "UPDATE Items SET value = @value WHERE id = @id AND value = @original_value"
        )
        self.database.add_in_parameter(
            command, "value", DbType.string, source_column="value"
        )
        self.database.add_in_parameter(
            command,
            "id",
            DbType.int32,
            source_column="id",
            source_version=RowVersion.original,
        )
        self.database.add_in_parameter(
            command,
            "original_value",
            DbType.string,
            source_column="value",
            source_version=RowVersion.original,
        )
        return command

    def delete_command(self) -> Command:
        command = self.database.get_sql_string_command(
            "DELETE FROM Items WHERE id = @id"
        )
        self.database.add_in_parameter(
            command,
            "id",
            DbType.int32,
            source_column="id",
            source_version=RowVersion.original,
        )
        return command


class TestSynchronize(TestSynchronizeBase):
    def test_no_changes(self) -> None:
        dataset = create_dataset(3)
        count = self.database.update_dataset(
            dataset,
            "Items",
            self.insert_command(),
            self.update_command(),
            self.delete_command(),
        )
        self.assertEqual(count, 0)
        self.assertEqual(self.state.round_trips, 0)
        self.assertEqual(self.state.opened, 0)

    def test_already_applied(self) -> None:
        dataset = create_pending_dataset(3)
        insert = self.insert_command()
        self.assertEqual(self.database.update_dataset(dataset, "Items", insert), 3)
        self.assertEqual(self.state.round_trips, 3)

        self.assertEqual(self.database.update_dataset(dataset, "Items", insert), 0)
        self.assertEqual(self.state.round_trips, 3)

    def test_dispatch(self) -> None:
        dataset = create_dataset(4)
        table = dataset["Items"]
        table[0]["value"] = "changed"
        table[1].delete()
        table.add_row([5, "v5"])

        count = self.database.update_dataset(
            dataset,
            "Items",
            self.insert_command(),
            self.update_command(),
            self.delete_command(),
        )
        self.assertEqual(count, 3)
        self.assertEqual(
            [text.split()[0] for text, _ in self.state.executed],
            ["UPDATE", "DELETE", "INSERT"],
        )
        self.assertEqual(
            self.state.executed[0][1],
            {"@value": "changed", "@id": 1, "@original_value": "v1"},
        )
        self.assertEqual(self.state.executed[1][1], {"@id": 2})
        self.assertEqual(self.state.executed[2][1], {"@id": 5, "@value": "v5"})

        self.assertEqual([row["id"] for row in table], [1, 3, 4, 5])
        self.assertFalse(table.has_changes())
        self.assertEqual(self.state.opened, 1)
        self.assertEqual(self.state.closed, 1)

    def test_two_row_scenario(self) -> None:
        dataset = create_dataset(2)
        table = dataset["Items"]
        table[0]["value"] = "B"
        table[1].delete()

        count = self.database.update_dataset(
            dataset,
            "Items",
            update_command=self.update_command(),
            delete_command=self.delete_command(),
        )
        self.assertEqual(count, 2)
        self.assertEqual(len(table), 1)
        self.assertEqual(table[0]["value"], "B")
        self.assertIs(table[0].state, RowState.unchanged)

    def test_missing_command(self) -> None:
        dataset = create_dataset(1)
        dataset["Items"].add_row([2, "v2"])
        with self.assertRaises(MissingCommandError) as cm:
            self.database.update_dataset(
                dataset, "Items", delete_command=self.delete_command()
            )
        self.assertEqual(cm.exception.command, "insert")
        self.assertEqual(cm.exception.database, "items")
        self.assertIn("database `items`", str(cm.exception))
        self.assertEqual(self.state.round_trips, 0)
        self.assertEqual(self.state.opened, 0)

    def test_missing_table_name(self) -> None:
        dataset = create_pending_dataset(1)
        with self.assertRaises(MissingTableNameError):
            self.database.update_dataset(dataset, "", self.insert_command())
        with self.assertRaises(MissingTableNameError):
            self.database.update_dataset(dataset, "Unknown", self.insert_command())

    def test_default_mode_aborts(self) -> None:
        dataset = create_pending_dataset(5)
        table = dataset["Items"]
        self.state.conflicts.add(3)

        with self.assertRaises(SynchronizationFailedError) as cm:
            self.database.update_dataset(dataset, "Items", self.insert_command())
        self.assertEqual(cm.exception.row_index, 2)
        self.assertEqual(cm.exception.row_key, {"id": 3})
        self.assertEqual(cm.exception.table_name, "Items")
        self.assertEqual(cm.exception.database, "items")
        self.assertIn("INSERT INTO Items", str(cm.exception))
        self.assertIn("database `items`", str(cm.exception))

        self.assertEqual(len(self.state.executed), 3)
        self.assertEqual(
            [row.state for row in table],
            [
                RowState.unchanged,
                RowState.unchanged,
                RowState.added,
                RowState.added,
                RowState.added,
            ],
        )
        self.assertTrue(table[2].has_error)
        self.assertEqual(self.state.closed, 1)

    def test_transactional_rollback(self) -> None:
        dataset = create_pending_dataset(5)
        table = dataset["Items"]
        self.state.conflicts.add(3)

        with self.assertRaises(SynchronizationFailedError):
            self.database.update_dataset(
                dataset,
                "Items",
                self.insert_command(),
                behavior=UpdateBehavior.transactional,
            )
        self.assertEqual(self.state.events, ["begin", "rollback"])
        self.assertEqual(len(self.state.executed), 3)
        self.assertTrue(all(row.state is RowState.added for row in table))
        self.assertEqual(self.state.closed, 1)

    def test_transactional_commit(self) -> None:
        dataset = create_pending_dataset(5)
        count = self.database.update_dataset(
            dataset,
            "Items",
            self.insert_command(),
            behavior=UpdateBehavior.transactional,
        )
        self.assertEqual(count, 5)
        self.assertEqual(self.state.events, ["begin", "commit"])
        self.assertFalse(dataset.has_changes())

    def test_continue_mode(self) -> None:
        dataset = create_pending_dataset(5)
        table = dataset["Items"]
        self.state.conflicts.add(3)

        count = self.database.update_dataset(
            dataset,
            "Items",
            self.insert_command(),
            behavior=UpdateBehavior.continue_,
        )
        self.assertEqual(count, 4)
        self.assertEqual(len(self.state.executed), 5)
        self.assertEqual(table.get_errors(), [table[2]])
        self.assertIn("concurrency violation", table[2].error or "")
        self.assertIs(table[2].state, RowState.added)
        self.assertEqual(table.get_changes(), [table[2]])
        self.assertTrue(dataset.has_errors())

    def test_continue_mode_driver_error(self) -> None:
        dataset = create_pending_dataset(4)
        table = dataset["Items"]
        self.state.failures.add(2)

        count = self.database.update_dataset(
            dataset,
            "Items",
            self.insert_command(),
            behavior=UpdateBehavior.continue_,
        )
        self.assertEqual(count, 3)
        self.assertIn("constraint violated", table[1].error or "")

    def test_default_mode_driver_error(self) -> None:
        dataset = create_pending_dataset(4)
        table = dataset["Items"]
        self.state.failures.add(2)

        with self.assertRaises(QueryException) as cm:
            self.database.update_dataset(dataset, "Items", self.insert_command())
        self.assertEqual(cm.exception.database, "items")
        self.assertIsInstance(cm.exception.__cause__, RuntimeError)
        self.assertIs(table[0].state, RowState.unchanged)
        self.assertTrue(table[1].has_error)
        self.assertEqual(len(self.state.executed), 2)

    def test_continue_mode_unsupported(self) -> None:
        self.create_database(DriverCapabilities())
        dataset = create_pending_dataset(2)
        with self.assertRaises(ContinueModeUnsupportedError):
            self.database.update_dataset(
                dataset,
                "Items",
                self.insert_command(),
                behavior=UpdateBehavior.continue_,
            )
        self.assertEqual(self.state.round_trips, 0)

    def test_external_transaction(self) -> None:
        dataset = create_pending_dataset(3)
        with self.database.connect() as connection:
            transaction = connection.begin()
            count = self.database.update_dataset(
                dataset, "Items", self.insert_command(), transaction=transaction
            )
            self.assertEqual(count, 3)
            self.assertEqual(self.state.events, ["begin"])
            self.assertFalse(transaction.completed)
            transaction.commit()

        self.assertEqual(self.state.events, ["begin", "commit"])
        self.assertEqual(self.state.opened, 1)

    def test_external_transaction_continue_mode(self) -> None:
        dataset = create_pending_dataset(1)
        with self.database.connect() as connection:
            with connection.begin() as transaction:
                with self.assertRaises(InvalidArgumentError):
                    self.database.update_dataset(
                        dataset,
                        "Items",
                        self.insert_command(),
                        behavior=UpdateBehavior.continue_,
                        transaction=transaction,
                    )

    def test_first_returned_record(self) -> None:
        insert = self.insert_command()
        self.state.results[insert.text] = [(["id", "value"], [(1, "generated")])]

        dataset = create_pending_dataset(1)
        row = dataset["Items"][0]
        self.database.update_dataset(dataset, "Items", insert)
        self.assertEqual(row["value"], "generated")
        self.assertIs(row.state, RowState.unchanged)

    def test_output_parameters(self) -> None:
        insert = self.database.get_sql_string_command(
            "INSERT INTO Items (value) VALUES (@value); SET @new_id = SCOPE_IDENTITY()"
        )
        self.database.add_in_parameter(
            insert, "value", DbType.string, source_column="value"
        )
        self.database.add_parameter(
            insert,
            "new_id",
            DbType.int32,
            direction=ParameterDirection.output,
            source_column="id",
        )
        self.state.outputs[insert.text] = {"@new_id": 42}

        dataset = create_pending_dataset(1)
        row = dataset["Items"][0]
        self.database.update_dataset(dataset, "Items", insert)
        self.assertEqual(row["id"], 42)

    def test_accept_changes_during_update(self) -> None:
        self.create_database(
            ALL_CAPABILITIES, DatabaseOptions(accept_changes_during_update=False)
        )
        dataset = create_pending_dataset(2)
        count = self.database.update_dataset(dataset, "Items", self.insert_command())
        self.assertEqual(count, 2)
        self.assertTrue(all(row.state is RowState.added for row in dataset["Items"]))

    def test_stored_procedures_unsupported(self) -> None:
        self.create_database(DriverCapabilities(stored_procedures=False))
        insert = self.database.get_stored_proc_command("InsertItem")
        dataset = create_pending_dataset(1)
        with self.assertRaises(UnsupportedProcedureError):
            self.database.update_dataset(dataset, "Items", insert)
        self.assertEqual(self.state.round_trips, 0)


class TestSynchronizeBatch(TestSynchronizeBase):
    def test_round_trips(self) -> None:
        for count, batch_size in [(10, 3), (9, 3), (1, 5), (7, 7), (8, 100)]:
            with self.subTest(count=count, batch_size=batch_size):
                self.create_database(ALL_CAPABILITIES)
                dataset = create_pending_dataset(count)
                applied = self.database.update_dataset(
                    dataset, "Items", self.insert_command(), batch_size=batch_size
                )
                self.assertEqual(applied, count)
                self.assertEqual(self.state.round_trips, -(-count // batch_size))
                self.assertEqual(len(self.state.executed), count)
                self.assertFalse(dataset.has_changes())

    def test_same_result_as_unbatched(self) -> None:
        dataset = create_pending_dataset(10)
        unbatched = self.database.update_dataset(
            dataset, "Items", self.insert_command()
        )
        unbatched_values = [values for _, values in self.state.executed]

        self.create_database(ALL_CAPABILITIES)
        dataset = create_pending_dataset(10)
        batched = self.database.update_dataset(
            dataset, "Items", self.insert_command(), batch_size=4
        )
        batched_values = [values for _, values in self.state.executed]

        self.assertEqual(unbatched, batched)
        self.assertEqual(unbatched_values, batched_values)

    def test_batches_split_by_state(self) -> None:
        dataset = create_dataset(4)
        table = dataset["Items"]
        table[0]["value"] = "a"
        table[1]["value"] = "b"
        table[2].delete()
        table[3]["value"] = "d"

        count = self.database.update_dataset(
            dataset,
            "Items",
            update_command=self.update_command(),
            delete_command=self.delete_command(),
            batch_size=10,
        )
        self.assertEqual(count, 4)
        self.assertEqual(self.state.round_trips, 3)

    def test_batch_size_one(self) -> None:
        self.create_database(DriverCapabilities())
        dataset = create_pending_dataset(3)
        count = self.database.update_dataset(
            dataset, "Items", self.insert_command(), batch_size=1
        )
        self.assertEqual(count, 3)
        self.assertEqual(self.state.round_trips, 3)

    def test_batching_unsupported(self) -> None:
        self.create_database(DriverCapabilities())
        dataset = create_pending_dataset(3)
        with self.assertRaises(UnsupportedBatchingError):
            self.database.update_dataset(
                dataset, "Items", self.insert_command(), batch_size=2
            )
        self.assertEqual(self.state.round_trips, 0)
        self.assertTrue(dataset.has_changes())

    def test_invalid_batch_size(self) -> None:
        dataset = create_pending_dataset(3)
        for batch_size in (0, -1):
            with self.assertRaises(InvalidArgumentError):
                self.database.update_dataset(
                    dataset, "Items", self.insert_command(), batch_size=batch_size
                )

    def test_continue_mode(self) -> None:
        dataset = create_pending_dataset(8)
        table = dataset["Items"]
        self.state.conflicts.update([2, 6])

        count = self.database.update_dataset(
            dataset,
            "Items",
            self.insert_command(),
            behavior=UpdateBehavior.continue_,
            batch_size=4,
        )
        self.assertEqual(count, 6)
        self.assertEqual(self.state.round_trips, 2)
        self.assertEqual(table.get_errors(), [table[1], table[5]])

    def test_default_mode_failure(self) -> None:
        dataset = create_pending_dataset(6)
        table = dataset["Items"]
        self.state.conflicts.add(2)

        with self.assertRaises(SynchronizationFailedError) as cm:
            self.database.update_dataset(
                dataset, "Items", self.insert_command(), batch_size=3
            )
        self.assertEqual(cm.exception.row_index, 1)
        self.assertEqual(self.state.round_trips, 1)
        self.assertEqual(
            [row.state for row in table],
            [RowState.unchanged, RowState.added, RowState.unchanged]
            + [RowState.added] * 3,
        )

    def test_without_row_outcomes(self) -> None:
        self.create_database(
            DriverCapabilities(batch_execution=True, row_outcomes=False)
        )
        dataset = create_pending_dataset(6)
        table = dataset["Items"]
        self.state.conflicts.add(5)

        with self.assertRaises(SynchronizationFailedError) as cm:
            self.database.update_dataset(
                dataset, "Items", self.insert_command(), batch_size=3
            )
        self.assertIsNone(cm.exception.row_index)
        self.assertEqual(self.state.round_trips, 2)
        self.assertEqual(
            [row.state for row in table],
            [RowState.unchanged] * 3 + [RowState.added] * 3,
        )
        self.assertEqual(len(table.get_errors()), 3)

    def test_unknown_affected_count(self) -> None:
        self.create_database(
            DriverCapabilities(batch_execution=True, row_outcomes=False)
        )
        self.state.affected = -1
        dataset = create_pending_dataset(4)
        with self.assertLogs("pysqlaccess", level="WARNING"):
            count = self.database.update_dataset(
                dataset, "Items", self.insert_command(), batch_size=4
            )
        self.assertEqual(count, 4)


class TestSynchronizeAsync(unittest.IsolatedAsyncioTestCase):
    async def test_update_dataset(self) -> None:
        driver = StubDriver(ALL_CAPABILITIES)
        database = Database("stub://localhost/items", driver)
        command = database.get_sql_string_command("DELETE FROM Items WHERE id = @id")
        database.add_in_parameter(
            command,
            "id",
            DbType.int32,
            source_column="id",
            source_version=RowVersion.original,
        )

        dataset = create_dataset(3)
        for row in list(dataset["Items"]):
            row.delete()

        count = await database.update_dataset_async(
            dataset, "Items", delete_command=command
        )
        self.assertEqual(count, 3)
        self.assertEqual(len(dataset["Items"]), 0)
        self.assertEqual(driver.state.closed, 1)


del TestSynchronizeBase

if __name__ == "__main__":
    unittest.main()
