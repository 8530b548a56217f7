"""
pysqlaccess: Provider-agnostic relational database access.

This module helps discover and register database drivers (dialects).
"""

import importlib
import importlib.resources
import logging
import re
import typing

from strong_typing.inspection import get_module_classes

from .base import BaseConnection, BaseDriver, DriverCapabilities

LOGGER = logging.getLogger("pysqlaccess")

_drivers: dict[str, BaseDriver] = {}


def register_dialect(dialect_name: str, driver: BaseDriver) -> None:
    """
    Dynamically registers a new database driver.

    Registered drivers can be referenced by name when registering databases, and connection string URLs with the
    dialect as scheme are automatically recognized.

    :param dialect_name: The dialect name such as `mssql` or `oracle`.
    :param driver: The driver to register, which creates connections.
    """

    if dialect_name in _drivers:
        raise ValueError(f"dialect already registered: {dialect_name}")

    _drivers[dialect_name] = driver


def unregister_dialect(dialect_name: str) -> None:
    """
    Dynamically removes a database driver.

    :param dialect_name: The dialect name such as `mssql` or `oracle`.
    """

    _drivers.pop(dialect_name)


def get_dialect(dialect_name: str) -> BaseDriver:
    "Looks up a database driver based on its dialect name."

    try:
        driver = _drivers[dialect_name]
    except KeyError:
        raise ValueError(f"unrecognized dialect: {dialect_name}")
    else:
        return driver


class UnavailableDriver(BaseDriver):
    "Stands in for a bundled driver whose client library is not installed."

    _name: str
    _module: str
    _capabilities: DriverCapabilities

    @property
    def name(self) -> str:
        return self._name

    def __init__(self, name: str, module: str) -> None:
        self._name = name
        self._module = module
        self._capabilities = DriverCapabilities()

    @property
    def capabilities(self) -> DriverCapabilities:
        return self._capabilities

    def create_connection(self, connection_string: str) -> BaseConnection:
        self._raise_error()

    def _raise_error(self) -> typing.NoReturn:
        raise RuntimeError(
            f"missing dependency: `{self._module}`; you may need to run `pip install pysqlaccess[{self._name}]`"
        )


def discover_dialects() -> None:
    "Discovers database drivers bundled with this package."

    resources = importlib.resources.files(__package__).joinpath("dialect").iterdir()
    for resource in resources:
        if resource.name.startswith((".", "__")) or not resource.is_dir():
            continue

        # run a preliminary check importing only the module `dependency`;
        # if the check fails, it indicates that required dependencies have not been installed (e.g. database driver)
        try:
            module = importlib.import_module(
                f".dialect.{resource.name}.dependency", package=__package__
            )
        except ModuleNotFoundError as e:
            LOGGER.debug(
                "skipping dialect `%s`: missing dependency: `%s`; "
                "you may need to run `pip install pysqlaccess[%s]`",
                resource.name,
                e.name,
                resource.name,
            )
            register_dialect(
                resource.name, UnavailableDriver(resource.name, e.name or "")
            )
            continue

        # import the module `driver`, which acts as an entry point to connection functionality
        module = importlib.import_module(
            f".dialect.{resource.name}.driver", package=__package__
        )
        classes = [
            cls
            for cls in get_module_classes(module)
            if re.match(r"^\w+Driver$", cls.__name__)
        ]
        driver_type = typing.cast(type[BaseDriver], classes.pop())
        driver = driver_type()
        LOGGER.info(
            "found dialect `%s` defined by `%s`",
            driver.name,
            driver_type.__name__,
        )
        register_dialect(driver.name, driver)


discover_dialects()
