"""
pysqlaccess: Provider-agnostic relational database access.

This module defines in-memory tables whose rows track pending changes against their original values.
"""

import enum
from typing import Any, Callable, Iterable, Iterator, Optional, Sequence, Union

from ..errors import (
    DeletedRowInaccessibleError,
    InvalidArgumentError,
    MissingTableNameError,
    RowNotInTableError,
)


@enum.unique
class RowState(enum.Enum):
    "Pending change state of a row."

    # row is not part of a table
    detached = "detached"

    unchanged = "unchanged"
    added = "added"
    modified = "modified"
    deleted = "deleted"


@enum.unique
class RowVersion(enum.Enum):
    "Selects which snapshot of a row to read a column value from."

    # value after the latest change
    current = "current"

    # value when the row was loaded or changes were last accepted
    original = "original"

    # value assigned while an edit is in progress
    proposed = "proposed"

    # proposed while editing, original for deleted rows, current otherwise
    default = "default"


class DataRow:
    """
    A row in an in-memory table.

    Assigning a column value to an unchanged row marks the row as modified, and keeps the value the row had before
    the first change as its original value.
    """

    table: "DataTable"
    state: RowState
    error: Optional[str]

    _current: Optional[list[Any]]
    _original: Optional[list[Any]]
    _proposed: Optional[list[Any]]

    def __init__(self, table: "DataTable", values: Sequence[Any]) -> None:
        if len(values) != len(table.columns):
            raise InvalidArgumentError(
                f"expected: {len(table.columns)} values for table `{table.name}`; got: {len(values)}"
            )

        self.table = table
        self.state = RowState.detached
        self.error = None
        self._current = list(values)
        self._original = None
        self._proposed = None

    @property
    def is_editing(self) -> bool:
        return self._proposed is not None

    @property
    def has_error(self) -> bool:
        return self.error is not None

    def has_version(self, version: RowVersion) -> bool:
        "True if the row holds a snapshot for the given version."

        if version is RowVersion.current:
            return self._current is not None
        elif version is RowVersion.original:
            return self._original is not None or self.state is RowState.unchanged
        elif version is RowVersion.proposed:
            return self._proposed is not None
        elif version is RowVersion.default:
            return True
        else:
            raise NotImplementedError("match condition not exhaustive")

    def _values(self, version: RowVersion) -> list[Any]:
        if version is RowVersion.default:
            if self._proposed is not None:
                version = RowVersion.proposed
            elif self.state is RowState.deleted:
                version = RowVersion.original
            else:
                version = RowVersion.current

        if version is RowVersion.current:
            values = self._current
        elif version is RowVersion.original:
            if self.state is RowState.unchanged:
                values = self._current
            else:
                values = self._original
        elif version is RowVersion.proposed:
            values = self._proposed
        else:
            raise NotImplementedError("match condition not exhaustive")

        if values is None:
            if self.state is RowState.deleted and version is not RowVersion.original:
                raise DeletedRowInaccessibleError(
                    f"deleted row information cannot be accessed through the row; use {RowVersion.original.name} version"
                )
            raise InvalidArgumentError(f"row has no {version.name} version")
        return values

    def get(
        self, column: Union[str, int], version: RowVersion = RowVersion.default
    ) -> Any:
        "Returns the value of a column in the given row version."

        return self._values(version)[self.table.column_index(column)]

    def __getitem__(self, column: Union[str, int]) -> Any:
        return self.get(column)

    def __setitem__(self, column: Union[str, int], value: Any) -> None:
        index = self.table.column_index(column)

        if self._proposed is not None:
            self._proposed[index] = value
            return

        if self.state is RowState.deleted:
            raise DeletedRowInaccessibleError("cannot set a value on a deleted row")

        current = self._values(RowVersion.current)
        if self.state is RowState.unchanged:
            self._original = list(current)
            self.state = RowState.modified
        current[index] = value

    @property
    def values(self) -> tuple[Any, ...]:
        "Column values in the default row version."

        return tuple(self._values(RowVersion.default))

    def key(self, version: RowVersion = RowVersion.default) -> Optional[dict[str, Any]]:
        "Primary key values of the row, if the table defines a primary key."

        if not self.table.primary_key:
            return None
        values = self._values(version)
        return {
            name: values[self.table.column_index(name)]
            for name in self.table.primary_key
        }

    def begin_edit(self) -> None:
        "Starts an edit; assignments produce a proposed version until the edit ends."

        if self.state is RowState.deleted:
            raise DeletedRowInaccessibleError("cannot edit a deleted row")
        if self._proposed is None:
            self._proposed = list(self._values(RowVersion.current))

    def end_edit(self) -> None:
        "Makes the proposed version current."

        proposed = self._proposed
        if proposed is None:
            return
        self._proposed = None
        current = self._values(RowVersion.current)
        if proposed == current:
            return
        if self.state is RowState.unchanged:
            self._original = list(current)
            self.state = RowState.modified
        self._current = proposed

    def cancel_edit(self) -> None:
        "Discards the proposed version."

        self._proposed = None

    def delete(self) -> None:
        """
        Marks the row as deleted.

        An added row, which has no counterpart in the database, is removed from its table immediately.
        """

        self._proposed = None
        if self.state is RowState.added:
            self.table._remove(self)
            self.state = RowState.detached
        elif self.state is RowState.unchanged or self.state is RowState.modified:
            if self._original is None:
                self._original = self._current
            self._current = None
            self.state = RowState.deleted
        elif self.state is RowState.detached:
            raise RowNotInTableError("cannot delete a row that is not in a table")

    def accept_changes(self) -> None:
        "Commits pending changes: the current version becomes the original version."

        self.end_edit()
        if self.state is RowState.deleted:
            self.table._remove(self)
            self.state = RowState.detached
        elif self.state is RowState.added or self.state is RowState.modified:
            self._original = None
            self.state = RowState.unchanged
        self.error = None

    def reject_changes(self) -> None:
        "Discards pending changes: the original version is restored."

        self.cancel_edit()
        if self.state is RowState.added:
            self.table._remove(self)
            self.state = RowState.detached
        elif self.state is RowState.modified or self.state is RowState.deleted:
            self._current = self._original
            self._original = None
            self.state = RowState.unchanged
        self.error = None

    def set_added(self) -> None:
        "Marks an unchanged row as added, e.g. to copy rows loaded from one database into another."

        if self.state is not RowState.unchanged:
            raise InvalidArgumentError("only unchanged rows can be marked as added")
        self.state = RowState.added

    def set_modified(self) -> None:
        "Marks an unchanged row as modified without changing any of its values."

        if self.state is not RowState.unchanged:
            raise InvalidArgumentError("only unchanged rows can be marked as modified")
        self._original = list(self._values(RowVersion.current))
        self.state = RowState.modified

    def __repr__(self) -> str:
        if self.state is RowState.deleted:
            values = self._original
        else:
            values = self._current
        return f"DataRow({self.state.name}, {values!r})"


class DataTable:
    """
    An in-memory table with a fixed set of columns, whose rows track pending changes.

    Rows are kept in insertion order. Deleted rows stay in the table until changes are accepted.

    :param name: Table name, unique within a data set.
    :param columns: Column names.
    :param primary_key: Names of columns that identify a row, used in diagnostics.
    """

    name: str
    columns: list[str]
    primary_key: tuple[str, ...]
    rows: list[DataRow]

    _index: dict[str, int]

    def __init__(
        self,
        name: str,
        columns: Iterable[str],
        primary_key: Iterable[str] = (),
    ) -> None:
        self.name = name
        self.columns = list(columns)
        self._index = {}
        for index, column in enumerate(self.columns):
            if column in self._index:
                raise InvalidArgumentError(
                    f"duplicate column `{column}` in table `{name}`"
                )
            self._index[column] = index
        self.primary_key = tuple(primary_key)
        for column in self.primary_key:
            if column not in self._index:
                raise InvalidArgumentError(
                    f"primary key column `{column}` not in table `{name}`"
                )
        self.rows = []

    def column_index(self, column: Union[str, int]) -> int:
        if isinstance(column, int):
            if column < 0 or column >= len(self.columns):
                raise IndexError(f"column index out of range: {column}")
            return column
        try:
            return self._index[column]
        except KeyError:
            raise KeyError(f"column `{column}` not in table `{self.name}`") from None

    def has_column(self, column: str) -> bool:
        return column in self._index

    def new_row(self, values: Optional[Sequence[Any]] = None) -> DataRow:
        "Creates a detached row with the schema of this table."

        if values is None:
            values = [None] * len(self.columns)
        return DataRow(self, values)

    def add_row(self, row: Union[DataRow, Sequence[Any]]) -> DataRow:
        "Appends a row as a pending insertion."

        if not isinstance(row, DataRow):
            row = self.new_row(row)
        elif row.table is not self:
            raise InvalidArgumentError("row belongs to another table")
        elif row.state is not RowState.detached:
            raise InvalidArgumentError("row already belongs to the table")
        row.state = RowState.added
        self.rows.append(row)
        return row

    def load_row(self, values: Sequence[Any]) -> DataRow:
        "Appends a row that reflects the state of the database, with no pending changes."

        row = self.new_row(values)
        row.state = RowState.unchanged
        self.rows.append(row)
        return row

    def _remove(self, row: DataRow) -> None:
        try:
            self.rows.remove(row)
        except ValueError:
            raise RowNotInTableError("row is not in the table") from None

    def select(self, predicate: Callable[[DataRow], bool]) -> list[DataRow]:
        "Returns rows that are not deleted and satisfy a condition."

        return [
            row
            for row in self.rows
            if row.state is not RowState.deleted and predicate(row)
        ]

    def find(self, **values: Any) -> Optional[DataRow]:
        "Returns the first row whose current column values match the given values."

        for row in self.rows:
            if row.state is RowState.deleted:
                continue
            if all(row[name] == value for name, value in values.items()):
                return row
        return None

    def get_changes(self, *states: RowState) -> list[DataRow]:
        "Returns rows with pending changes, in table order."

        if not states:
            states = (RowState.added, RowState.modified, RowState.deleted)
        return [row for row in self.rows if row.state in states]

    def has_changes(self) -> bool:
        return any(row.state is not RowState.unchanged for row in self.rows)

    def has_errors(self) -> bool:
        return any(row.error is not None for row in self.rows)

    def get_errors(self) -> list[DataRow]:
        return [row for row in self.rows if row.error is not None]

    def accept_changes(self) -> None:
        for row in list(self.rows):
            row.accept_changes()

    def reject_changes(self) -> None:
        for row in list(self.rows):
            row.reject_changes()

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[DataRow]:
        return iter(self.rows)

    def __getitem__(self, index: int) -> DataRow:
        return self.rows[index]

    def __repr__(self) -> str:
        return f"DataTable({self.name!r}, {self.columns!r}, rows={len(self.rows)})"


class DataSet:
    "A collection of named in-memory tables, such as the result-sets of a single query."

    _tables: dict[str, DataTable]

    def __init__(self, tables: Iterable[DataTable] = ()) -> None:
        self._tables = {}
        for table in tables:
            self.add_table(table)

    def add_table(self, table: DataTable) -> DataTable:
        if not table.name:
            raise MissingTableNameError("table name is required")
        if table.name in self._tables:
            raise InvalidArgumentError(f"duplicate table name: {table.name}")
        self._tables[table.name] = table
        return table

    @property
    def tables(self) -> list[DataTable]:
        return list(self._tables.values())

    def has_table(self, name: str) -> bool:
        return name in self._tables

    def __getitem__(self, key: Union[str, int]) -> DataTable:
        if isinstance(key, int):
            return self.tables[key]
        try:
            return self._tables[key]
        except KeyError:
            raise KeyError(f"table not in data set: {key}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    def __len__(self) -> int:
        return len(self._tables)

    def __iter__(self) -> Iterator[DataTable]:
        return iter(self._tables.values())

    def has_changes(self) -> bool:
        return any(table.has_changes() for table in self._tables.values())

    def has_errors(self) -> bool:
        return any(table.has_errors() for table in self._tables.values())

    def accept_changes(self) -> None:
        for table in self._tables.values():
            table.accept_changes()

    def reject_changes(self) -> None:
        for table in self._tables.values():
            table.reject_changes()


def default_table_name(index: int) -> str:
    "Name assigned to a table by result-set position: `Table`, `Table1`, `Table2`, etc."

    return "Table" if index == 0 else f"Table{index}"
