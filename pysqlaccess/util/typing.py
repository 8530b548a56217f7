import sys
import typing
from typing import Any, TypeGuard

if sys.version_info >= (3, 12):
    from typing import override as override  # noqa: F401
else:
    from typing_extensions import override as override  # noqa: F401

# types that a single-column result-set can be unwrapped into
SIMPLE_TYPES: tuple[type, ...] = (bool, int, float, str, bytes)


def is_simple_type(typ: Any) -> TypeGuard[type]:
    "True if the type is a scalar type that a database column value maps to directly."

    return typ in SIMPLE_TYPES


def is_tuple_type(typ: Any) -> bool:
    "True if the type is a parameterized tuple type such as `tuple[int, str]`."

    return typing.get_origin(typ) is tuple
