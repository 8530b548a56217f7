"""
pysqlaccess: Provider-agnostic relational database access.

This module helps convert result-set records into data-class instances, tuples or simple types.
"""

import dataclasses
import typing
from typing import Any, Iterable, TypeVar

from strong_typing.inspection import DataclassInstance, is_dataclass_type

from .reader import Record
from .util.typing import is_simple_type, is_tuple_type

D = TypeVar("D", bound=DataclassInstance)
T = TypeVar("T")


def resultset_unwrap_dataclass(
    signature: type[D], records: Iterable[Record]
) -> list[D]:
    """
    Converts a result-set into a list of data-class instances, matching column names to field names.

    :param signature: A data-class type.
    :param records: The result-set whose rows to convert.
    """

    if not is_dataclass_type(signature):
        raise TypeError(
            f"expected: data-class type as result-set signature; got: {signature}"
        )

    names = [field.name for field in dataclasses.fields(signature)]
    results: list[D] = []
    for record in records:
        try:
            results.append(signature(**{name: record[name] for name in names}))  # type: ignore
        except KeyError as e:
            raise ValueError(
                f"result-set has no column for field of {signature.__name__}: {e}"
            ) from e
    return results


def resultset_unwrap_tuple(signature: type[T], records: Iterable[Record]) -> list[T]:
    """
    Converts a result-set into a list of tuples, or a list of simple types (as appropriate).

    :param signature: A tuple type, or a simple type (e.g. `bool` or `str`).
    :param records: The result-set whose rows to convert.
    """

    if is_simple_type(signature):
        scalar_results: list[Any] = []
        for record in records:
            if len(record) != 1:
                raise ValueError(
                    f"invalid number of columns, expected: 1; got: {len(record)}"
                )
            scalar_results.append(record[0])
        return scalar_results

    if is_tuple_type(signature):
        origin_args = typing.get_args(signature)
        results: list[Any] = []
        for record in records:
            if len(record) != len(origin_args):
                raise ValueError(
                    f"invalid number of columns, expected: {len(origin_args)}; got: {len(record)}"
                )
            results.append(record.as_tuple())
        return results

    raise TypeError(
        f"expected: tuple or simple type as result-set signature; got: {signature}"
    )


def resultset_unwrap(signature: type[T], records: Iterable[Record]) -> list[T]:
    "Converts a result-set into a list of objects of the given type."

    if is_dataclass_type(signature):
        return resultset_unwrap_dataclass(signature, records)  # type: ignore
    else:
        return resultset_unwrap_tuple(signature, records)
