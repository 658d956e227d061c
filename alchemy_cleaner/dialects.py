"""Dialect specific truncation.

Each database engine truncates tables and restarts auto-increment counters in its own way.
A :class:`DialectAdapter` captures those differences behind two batch operations,
:meth:`~DialectAdapter.truncate` and :meth:`~DialectAdapter.reset_sequences`, plus the table
listing and row counting the truncation strategy needs.

Engines fall into two families:

- full reset: ``TRUNCATE`` also restarts the auto-increment counter (MySQL, MariaDB, SQL Server);
- partial: truncating leaves the counter where it was and a separate reset is needed
  (PostgreSQL, SQLite, and anything handled by :class:`GenericAdapter`).
"""

from __future__ import annotations

import contextlib
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar, TypeVar

from sqlalchemy import bindparam, func, inspect, select, table, text

from alchemy_cleaner.exceptions import EngineError, wrap_engine_exception

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.engine import Connection

__all__ = (
    "ADAPTERS",
    "CockroachDBAdapter",
    "DialectAdapter",
    "GenericAdapter",
    "MSSQLAdapter",
    "MySQLAdapter",
    "PostgreSQLAdapter",
    "SQLiteAdapter",
    "get_adapter",
    "register_adapter",
)

logger = logging.getLogger(__name__)

AdapterT = TypeVar("AdapterT", bound="type[DialectAdapter]")

ADAPTERS: dict[str, type[DialectAdapter]] = {}
"""Adapter classes keyed by SQLAlchemy dialect name."""


def register_adapter(adapter_class: AdapterT) -> AdapterT:
    """Register an adapter for every dialect it supports.

    Can be used as a class decorator. Later registrations replace earlier ones.
    """
    for dialect_name in adapter_class.supported_dialects:
        ADAPTERS[dialect_name] = adapter_class
    return adapter_class


def get_adapter(dialect_name: str) -> DialectAdapter:
    """Return the adapter for a SQLAlchemy dialect name.

    Unknown dialects get a :class:`GenericAdapter`.
    """
    adapter_class = ADAPTERS.get(dialect_name)
    if adapter_class is None:
        logger.debug("No adapter registered for %s, using generic SQL truncation", dialect_name)
        return GenericAdapter()
    return adapter_class()


class DialectAdapter(ABC):
    """Per-engine truncation behaviour."""

    dialect_name: ClassVar[str]
    supported_dialects: ClassVar[frozenset[str]] = frozenset()
    resets_sequences_on_truncate: ClassVar[bool] = False
    """``True`` when truncating a table also restarts its auto-increment counter."""
    supports_sequence_reset: ClassVar[bool] = True
    """``False`` when the adapter has no way of restarting counters after a truncate."""
    internal_tables: ClassVar[frozenset[str]] = frozenset()
    internal_prefixes: ClassVar[tuple[str, ...]] = ()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"

    def is_internal_table(self, name: str) -> bool:
        """Engine bookkeeping tables are never cleaned."""
        return name in self.internal_tables or name.startswith(self.internal_prefixes)

    def quote(self, connection: Connection, name: str) -> str:
        return connection.dialect.identifier_preparer.quote(name)

    def list_tables(self, connection: Connection) -> list[str]:
        """List the user tables of the connection's default schema.

        Raises:
            EngineError: If the table names cannot be read.

        Returns:
            list[str]: Table names, internal tables excluded.
        """
        with wrap_engine_exception("list_tables"):
            names = inspect(connection).get_table_names()
        return [name for name in names if not self.is_internal_table(name)]

    def count_rows(self, connection: Connection, table_name: str) -> int:
        with wrap_engine_exception("count_rows", table_name):
            return int(connection.execute(select(func.count()).select_from(table(table_name))).scalar_one())

    def execute(self, connection: Connection, sql: str, operation: str, table_name: str | None = None) -> None:
        logger.debug("Executing: %s", sql)
        with wrap_engine_exception(operation, table_name):
            connection.execute(text(sql))

    @abstractmethod
    def truncate(self, connection: Connection, tables: Sequence[str]) -> None:
        """Remove every row from ``tables``.

        Args:
            connection: Bound connection.
            tables: The whole batch of tables to empty.

        Raises:
            EngineError: On the first failing statement. Tables handled before the failure stay truncated.
        """

    @abstractmethod
    def reset_sequences(self, connection: Connection, tables: Sequence[str]) -> None:
        """Restart the auto-increment counters owned by ``tables``.

        Raises:
            EngineError: If a reset statement fails.
        """


@register_adapter
class MySQLAdapter(DialectAdapter):
    """MySQL and MariaDB: ``TRUNCATE TABLE`` per table with foreign key checks disabled.

    ``TRUNCATE`` restarts ``AUTO_INCREMENT``, so there is nothing left to reset.
    """

    dialect_name = "mysql"
    supported_dialects = frozenset({"mysql", "mariadb"})
    resets_sequences_on_truncate = True

    def truncate(self, connection: Connection, tables: Sequence[str]) -> None:
        if not tables:
            return
        self.execute(connection, "SET FOREIGN_KEY_CHECKS = 0", "truncate")
        try:
            for table_name in tables:
                self.execute(connection, f"TRUNCATE TABLE {self.quote(connection, table_name)}", "truncate", table_name)
        except EngineError:
            # re-enable checks but report the truncate failure
            with contextlib.suppress(EngineError):
                self.execute(connection, "SET FOREIGN_KEY_CHECKS = 1", "truncate")
            raise
        self.execute(connection, "SET FOREIGN_KEY_CHECKS = 1", "truncate")

    def reset_sequences(self, connection: Connection, tables: Sequence[str]) -> None:
        return


@register_adapter
class MSSQLAdapter(DialectAdapter):
    """SQL Server: ``TRUNCATE TABLE`` per table, which also reseeds ``IDENTITY`` columns."""

    dialect_name = "mssql"
    supported_dialects = frozenset({"mssql"})
    resets_sequences_on_truncate = True

    def truncate(self, connection: Connection, tables: Sequence[str]) -> None:
        for table_name in tables:
            self.execute(connection, f"TRUNCATE TABLE {self.quote(connection, table_name)}", "truncate", table_name)

    def reset_sequences(self, connection: Connection, tables: Sequence[str]) -> None:
        return


@register_adapter
class PostgreSQLAdapter(DialectAdapter):
    """PostgreSQL: one ``TRUNCATE`` for the whole batch, sequences restarted separately.

    The sequences restarted are the ones owned by the tables' ``serial`` and identity columns.
    """

    dialect_name = "postgresql"
    supported_dialects = frozenset({"postgresql"})

    owned_sequences_sql = """
        SELECT seq_ns.nspname, seq.relname
        FROM pg_class seq
        JOIN pg_namespace seq_ns ON seq_ns.oid = seq.relnamespace
        JOIN pg_depend dep
            ON dep.objid = seq.oid
            AND dep.classid = 'pg_class'::regclass
            AND dep.refclassid = 'pg_class'::regclass
            AND dep.deptype IN ('a', 'i')
        JOIN pg_class tbl ON tbl.oid = dep.refobjid
        JOIN pg_namespace tbl_ns ON tbl_ns.oid = tbl.relnamespace
        WHERE seq.relkind = 'S'
            AND tbl_ns.nspname = current_schema()
            AND tbl.relname IN :tables
    """

    def truncate(self, connection: Connection, tables: Sequence[str]) -> None:
        if not tables:
            return
        table_list = ", ".join(self.quote(connection, table_name) for table_name in tables)
        self.execute(connection, f"TRUNCATE TABLE {table_list}", "truncate", ", ".join(tables))

    def reset_sequences(self, connection: Connection, tables: Sequence[str]) -> None:
        if not tables:
            return
        statement = text(self.owned_sequences_sql).bindparams(bindparam("tables", expanding=True))
        with wrap_engine_exception("reset_sequences", ", ".join(tables)):
            sequences = connection.execute(statement, {"tables": list(tables)}).all()
        for schema_name, sequence_name in sequences:
            qualified = f"{self.quote(connection, schema_name)}.{self.quote(connection, sequence_name)}"
            self.execute(connection, f"ALTER SEQUENCE {qualified} RESTART", "reset_sequences", sequence_name)


@register_adapter
class CockroachDBAdapter(PostgreSQLAdapter):
    """CockroachDB truncates like PostgreSQL but cannot restart sequences."""

    dialect_name = "cockroachdb"
    supported_dialects = frozenset({"cockroachdb"})
    supports_sequence_reset = False

    def reset_sequences(self, connection: Connection, tables: Sequence[str]) -> None:
        if tables:
            logger.warning("CockroachDB does not support restarting sequences, counters are left as they are")


@register_adapter
class SQLiteAdapter(DialectAdapter):
    """SQLite has no ``TRUNCATE``; rows are deleted and ``sqlite_sequence`` is trimmed to reset counters.

    Only ``AUTOINCREMENT`` tables keep a counter in ``sqlite_sequence``. Other rowid tables
    restart from the highest remaining rowid on their own.
    """

    dialect_name = "sqlite"
    supported_dialects = frozenset({"sqlite"})
    internal_tables = frozenset({"sqlite_sequence"})
    internal_prefixes = ("sqlite_",)

    def truncate(self, connection: Connection, tables: Sequence[str]) -> None:
        for table_name in tables:
            self.execute(connection, f"DELETE FROM {self.quote(connection, table_name)}", "truncate", table_name)

    def reset_sequences(self, connection: Connection, tables: Sequence[str]) -> None:
        if not tables:
            return
        batch = ", ".join(tables)
        with wrap_engine_exception("reset_sequences", batch):
            has_sequences = connection.execute(
                text("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'sqlite_sequence'")
            ).first()
            if has_sequences is None:
                return
            statement = text("DELETE FROM sqlite_sequence WHERE name IN :tables").bindparams(
                bindparam("tables", expanding=True)
            )
            logger.debug("Executing: DELETE FROM sqlite_sequence for %s", batch)
            connection.execute(statement, {"tables": list(tables)})


class GenericAdapter(DialectAdapter):
    """Fallback for engines without a dedicated adapter: standard ``TRUNCATE TABLE``, no counter reset."""

    dialect_name = "generic"
    supports_sequence_reset = False

    def truncate(self, connection: Connection, tables: Sequence[str]) -> None:
        for table_name in tables:
            self.execute(connection, f"TRUNCATE TABLE {self.quote(connection, table_name)}", "truncate", table_name)

    def reset_sequences(self, connection: Connection, tables: Sequence[str]) -> None:
        if tables:
            logger.warning(
                "Resetting sequences is not supported for %s, counters are left as they are", connection.dialect.name
            )
