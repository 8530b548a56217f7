"""
pysqlaccess: Provider-agnostic relational database access.

This module maps logical database names to database handles.

Registrations are collected with a builder, which produces an immutable provider factory. A provider factory creates
the database handle for a name on first access, and returns the same handle on subsequent access. An application
would typically install a single provider factory process-wide with `set_provider_factory`, but any number of
provider factories can coexist (e.g. in tests).
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional, Union

from .base import BaseDriver
from .connection import get_parameters, is_connection_url
from .database import Database, DatabaseOptions
from .errors import (
    AlreadyConfiguredError,
    DuplicateRegistrationError,
    InvalidArgumentError,
    NotConfiguredError,
    UnknownDatabaseError,
)
from .factory import get_dialect

LOGGER = logging.getLogger("pysqlaccess")

DriverReference = Union[str, BaseDriver, None]


@dataclass(frozen=True)
class DatabaseRegistration:
    """
    Binds a logical database name to a connection string and a driver.

    :param connection_string: Driver-specific connection string or connection URL.
    :param dialect: Name of a registered dialect, resolved when the database is first requested.
    :param driver: A driver instance, when not referenced by dialect name.
    :param options: Options that apply to all operations on the database.
    """

    connection_string: str
    dialect: Optional[str] = None
    driver: Optional[BaseDriver] = None
    options: Optional[DatabaseOptions] = None


class DatabaseProviderFactory:
    "Creates database handles for registered logical database names. The empty name refers to the default database."

    _registrations: dict[str, DatabaseRegistration]
    _databases: dict[str, Database]
    _lock: threading.Lock

    def __init__(self, registrations: dict[str, DatabaseRegistration]) -> None:
        self._registrations = dict(registrations)
        self._databases = {}
        self._lock = threading.Lock()

    @staticmethod
    def builder() -> "DatabaseProviderFactoryBuilder":
        return DatabaseProviderFactoryBuilder()

    @property
    def names(self) -> list[str]:
        "Registered logical database names."

        return list(self._registrations.keys())

    def create_default(self) -> Database:
        "Returns the handle for the default database."

        return self.create("")

    def create(self, name: str) -> Database:
        """
        Returns the handle for a logical database name.

        The handle is created on first access; subsequent calls return the same instance.
        """

        if not isinstance(name, str):
            raise InvalidArgumentError(
                f"expected: database name as string; got: {name!r}"
            )

        database = self._databases.get(name)
        if database is not None:
            return database

        try:
            registration = self._registrations[name]
        except KeyError:
            raise UnknownDatabaseError(name) from None

        with self._lock:
            database = self._databases.get(name)
            if database is None:
                database = _create_database(name, registration)
                self._databases[name] = database
            return database


def _create_database(name: str, registration: DatabaseRegistration) -> Database:
    if registration.driver is not None:
        driver = registration.driver
    elif registration.dialect is not None:
        driver = get_dialect(registration.dialect)
    else:
        dialect, _ = get_parameters(registration.connection_string)
        driver = get_dialect(dialect)

    LOGGER.info("creating database `%s` using driver `%s`", name, driver.name)
    return Database(
        registration.connection_string,
        driver,
        name=name,
        options=registration.options,
    )


class DatabaseProviderFactoryBuilder:
    "Collects database registrations, and builds an immutable provider factory."

    _registrations: dict[str, DatabaseRegistration]
    _built: bool

    def __init__(self) -> None:
        self._registrations = {}
        self._built = False

    def register_default(
        self,
        connection_string: str,
        driver: DriverReference = None,
        options: Optional[DatabaseOptions] = None,
    ) -> "DatabaseProviderFactoryBuilder":
        "Registers the default database, which has the empty string as its name."

        return self.register("", connection_string, driver, options)

    def register(
        self,
        name: str,
        connection_string: str,
        driver: DriverReference = None,
        options: Optional[DatabaseOptions] = None,
    ) -> "DatabaseProviderFactoryBuilder":
        """
        Registers a logical database name.

        :param name: Logical database name; the empty string stands for the default database.
        :param connection_string: Driver-specific connection string or connection URL.
        :param driver: Dialect name (e.g. `mssql`), driver instance, or `None` to take the dialect from the scheme of
            a connection URL.
        :param options: Options that apply to all operations on the database.
        """

        if self._built:
            raise InvalidArgumentError("provider factory has already been built")
        if not isinstance(name, str):
            raise InvalidArgumentError(
                f"expected: database name as string; got: {name!r}"
            )
        if not connection_string:
            raise InvalidArgumentError("connection string is required")
        if name in self._registrations:
            raise DuplicateRegistrationError(name)

        if isinstance(driver, BaseDriver):
            registration = DatabaseRegistration(
                connection_string, driver=driver, options=options
            )
        elif isinstance(driver, str):
            if not driver:
                raise InvalidArgumentError("dialect name is required")
            registration = DatabaseRegistration(
                connection_string, dialect=driver, options=options
            )
        elif driver is None:
            if not is_connection_url(connection_string):
                raise InvalidArgumentError(
                    "a dialect or driver is required unless the connection string is a URL"
                )
            registration = DatabaseRegistration(connection_string, options=options)
        else:
            raise InvalidArgumentError(
                f"expected: dialect name or driver; got: {driver!r}"
            )

        self._registrations[name] = registration
        return self

    def build(self) -> DatabaseProviderFactory:
        if self._built:
            raise InvalidArgumentError("provider factory has already been built")
        self._built = True
        return DatabaseProviderFactory(self._registrations)


_active_lock = threading.Lock()
_active_factory: Optional[DatabaseProviderFactory] = None


def set_provider_factory(
    factory: DatabaseProviderFactory, *, throw_if_set: bool = True
) -> None:
    """
    Installs the process-wide provider factory.

    :param factory: The provider factory to install.
    :param throw_if_set: Whether to reject replacing a provider factory that has already been installed.
    """

    global _active_factory

    if factory is None:
        raise InvalidArgumentError("provider factory is required")

    with _active_lock:
        if throw_if_set and _active_factory is not None:
            raise AlreadyConfiguredError("process-wide provider factory already set")
        _active_factory = factory


def clear_provider_factory() -> None:
    "Removes the process-wide provider factory."

    global _active_factory

    with _active_lock:
        _active_factory = None


def get_provider_factory() -> DatabaseProviderFactory:
    factory = _active_factory
    if factory is None:
        raise NotConfiguredError("process-wide provider factory has not been set")
    return factory


def create_database(name: str = "") -> Database:
    "Returns the database handle for a logical name from the process-wide provider factory."

    return get_provider_factory().create(name)
