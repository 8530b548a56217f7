import threading
import unittest

from pysqlaccess.database import DatabaseOptions
from pysqlaccess.errors import (
    AlreadyConfiguredError,
    DuplicateRegistrationError,
    InvalidArgumentError,
    NotConfiguredError,
    UnknownDatabaseError,
)
from pysqlaccess.factory import register_dialect, unregister_dialect
from pysqlaccess.registry import (
    DatabaseProviderFactory,
    clear_provider_factory,
    create_database,
    get_provider_factory,
    set_provider_factory,
)
from tests.params import configure
from tests.stub import StubDriver

if __name__ == "__main__":
    configure()


class TestRegistry(unittest.TestCase):
    driver: StubDriver

    def setUp(self) -> None:
        self.driver = StubDriver()
        register_dialect("stub", self.driver)

    def tearDown(self) -> None:
        unregister_dialect("stub")

    def test_create(self) -> None:
        factory = (
            DatabaseProviderFactory.builder()
            .register_default("stub://localhost/main", self.driver)
            .register("reporting", "stub://localhost/reporting", "stub")
            .register("archive", "stub://localhost/archive")
            .build()
        )
        self.assertEqual(factory.names, ["", "reporting", "archive"])

        default = factory.create_default()
        self.assertIs(default, factory.create(""))
        self.assertEqual(default.connection_string, "stub://localhost/main")
        self.assertEqual(default.name, "")

        reporting = factory.create("reporting")
        self.assertIs(reporting.driver, self.driver)
        self.assertIsNot(reporting, default)

        archive = factory.create("archive")
        self.assertIs(archive.driver, self.driver)

    def test_create_concurrent(self) -> None:
        factory = (
            DatabaseProviderFactory.builder()
            .register("items", "stub://localhost/items", self.driver)
            .build()
        )

        databases = []

        def _create() -> None:
            databases.append(factory.create("items"))

        threads = [threading.Thread(target=_create) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(databases), 8)
        self.assertTrue(all(database is databases[0] for database in databases))

    def test_unknown_database(self) -> None:
        factory = DatabaseProviderFactory.builder().build()
        with self.assertRaises(UnknownDatabaseError) as cm:
            factory.create("missing")
        self.assertEqual(cm.exception.name, "missing")
        with self.assertRaises(UnknownDatabaseError):
            factory.create_default()
        with self.assertRaises(InvalidArgumentError):
            factory.create(None)  # type: ignore[arg-type]

    def test_duplicate_registration(self) -> None:
        builder = DatabaseProviderFactory.builder().register(
            "items", "stub://localhost/items"
        )
        with self.assertRaises(DuplicateRegistrationError) as cm:
            builder.register("items", "stub://localhost/other")
        self.assertEqual(cm.exception.name, "items")

    def test_invalid_registration(self) -> None:
        builder = DatabaseProviderFactory.builder()
        with self.assertRaises(InvalidArgumentError):
            builder.register("items", "")
        with self.assertRaises(InvalidArgumentError):
            builder.register("items", "Server=localhost;Database=items")
        with self.assertRaises(InvalidArgumentError):
            builder.register("items", "stub://localhost/items", "")

        builder.build()
        with self.assertRaises(InvalidArgumentError):
            builder.build()
        with self.assertRaises(InvalidArgumentError):
            builder.register("items", "stub://localhost/items")

    def test_dialect_resolved_on_first_access(self) -> None:
        factory = (
            DatabaseProviderFactory.builder()
            .register("items", "Server=localhost", "unknown")
            .build()
        )
        with self.assertRaises(ValueError):
            factory.create("items")

    def test_options(self) -> None:
        options = DatabaseOptions(command_timeout=10)
        factory = (
            DatabaseProviderFactory.builder()
            .register("items", "stub://localhost/items", options=options)
            .build()
        )
        self.assertEqual(factory.create("items").options.command_timeout, 10)


class TestProviderFactory(unittest.TestCase):
    def setUp(self) -> None:
        clear_provider_factory()

    def tearDown(self) -> None:
        clear_provider_factory()

    def create_factory(self, connection_string: str) -> DatabaseProviderFactory:
        return (
            DatabaseProviderFactory.builder()
            .register_default(connection_string, StubDriver())
            .build()
        )

    def test_not_configured(self) -> None:
        with self.assertRaises(NotConfiguredError):
            get_provider_factory()
        with self.assertRaises(NotConfiguredError):
            create_database()

    def test_set(self) -> None:
        factory = self.create_factory("stub://localhost/main")
        set_provider_factory(factory)
        self.assertIs(get_provider_factory(), factory)
        self.assertIs(create_database(), factory.create_default())

    def test_already_configured(self) -> None:
        first = self.create_factory("stub://localhost/first")
        second = self.create_factory("stub://localhost/second")
        set_provider_factory(first)
        with self.assertRaises(AlreadyConfiguredError):
            set_provider_factory(second)
        self.assertIs(get_provider_factory(), first)

        set_provider_factory(second, throw_if_set=False)
        self.assertEqual(create_database().connection_string, "stub://localhost/second")

    def test_clear(self) -> None:
        set_provider_factory(self.create_factory("stub://localhost/main"))
        clear_provider_factory()
        with self.assertRaises(NotConfiguredError):
            create_database()


if __name__ == "__main__":
    unittest.main()
