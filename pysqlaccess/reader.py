"""
pysqlaccess: Provider-agnostic relational database access.

This module provides a forward-only reader over the result-sets of a command, which can own the connection the
command was executed on.
"""

import logging
import types
from typing import Any, AsyncIterator, Iterator, Optional, Sequence, Union

from .base import BaseConnection, BaseCursor
from .command import Command

LOGGER = logging.getLogger("pysqlaccess")


class Record(Sequence[Any]):
    "A row of a result-set, whose fields can be accessed by position or by column name."

    __slots__ = ("_names", "_values")

    _names: dict[str, int]
    _values: tuple[Any, ...]

    def __init__(self, names: dict[str, int], values: Sequence[Any]) -> None:
        self._names = names
        self._values = tuple(values)

    def __getitem__(self, key: Union[int, str, slice]) -> Any:  # type: ignore[override]
        if isinstance(key, str):
            try:
                return self._values[self._names[key]]
            except KeyError:
                raise KeyError(f"column not in result-set: {key}") from None
        return self._values[key]

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Record):
            return self._values == other._values
        if isinstance(other, tuple):
            return self._values == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._values)

    def keys(self) -> list[str]:
        return list(self._names.keys())

    def as_dict(self) -> dict[str, Any]:
        return {name: self._values[index] for name, index in self._names.items()}

    def as_tuple(self) -> tuple[Any, ...]:
        return self._values

    def __repr__(self) -> str:
        return f"Record({self.as_dict()!r})"


class DataReader:
    """
    A forward-only, read-once sequence of rows.

    Iterating the reader yields the rows of the current result-set; once the result-set is exhausted, the reader
    advances to the next result-set, if any. When the last result-set has been read, or the reader is closed, the
    cursor is released, and so is the connection if the reader owns it.

    Values of output parameters are written back into the command when the reader is closed.
    """

    command: Command
    closed: bool

    _cursor: BaseCursor
    _connection: Optional[BaseConnection]
    _names: dict[str, int]

    def __init__(
        self,
        command: Command,
        cursor: BaseCursor,
        connection: Optional[BaseConnection] = None,
    ) -> None:
        """
        Wraps a driver cursor.

        :param command: The command that produced the cursor.
        :param cursor: The driver cursor to read from.
        :param connection: A connection to close together with the reader, or `None` if the connection is managed
            by the caller.
        """

        self.command = command
        self.closed = False
        self._cursor = cursor
        self._connection = connection
        self._names = self._get_names()

    def _get_names(self) -> dict[str, int]:
        return {name: index for index, name in enumerate(self._cursor.columns)}

    @property
    def columns(self) -> list[str]:
        "Column names of the current result-set."

        return list(self._names.keys())

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount

    def read(self) -> Optional[Record]:
        "Returns the next row of the current result-set, or `None` if the result-set is exhausted."

        if self.closed:
            return None
        values = self._cursor.fetch()
        if values is None:
            return None
        return Record(self._names, values)

    def next_result(self) -> bool:
        """
        Advances to the next result-set, skipping any rows not yet read.

        Closes the reader if there are no more result-sets.
        """

        if self.closed:
            return False
        if self._cursor.next_result():
            self._names = self._get_names()
            return True
        else:
            self.close()
            return False

    def __iter__(self) -> Iterator[Record]:
        while True:
            record = self.read()
            if record is None:
                break
            yield record
        self.next_result()

    async def __aiter__(self) -> AsyncIterator[Record]:
        for record in self:
            yield record

    def close(self) -> None:
        "Releases the cursor, and the connection if owned by the reader."

        if self.closed:
            return
        self.closed = True
        try:
            self.command.set_output_values(self._cursor.output_values())
            self._cursor.close()
        finally:
            if self._connection is not None:
                LOGGER.debug("closing connection owned by reader")
                self._connection.close()
                self._connection = None

    def __enter__(self) -> "DataReader":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[types.TracebackType],
    ) -> None:
        self.close()

    async def __aenter__(self) -> "DataReader":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[types.TracebackType],
    ) -> None:
        self.close()

