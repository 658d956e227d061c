"""Truncation strategy.

Empties the user tables of a database between tests, leaving the schema in place.

Usage:
    >>> truncation = Truncation(only=["worthless_junk", "replaceable_trifles"])
    >>> truncation.connection = connection
    >>> truncation.clean()

    >>> with clean_database(engine, except_=["alembic_version"]) as truncation:
    ...     truncation.clean()
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from alchemy_cleaner.config import TruncationConfig
from alchemy_cleaner.dialects import get_adapter
from alchemy_cleaner.exceptions import ImproperConfigurationError, wrap_engine_exception
from alchemy_cleaner.optimizer import filter_non_empty
from alchemy_cleaner.resolver import resolve_tables

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Generator, Iterable, Mapping, Sequence

    from sqlalchemy.engine import Connection, Engine
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

    from alchemy_cleaner.config import TableRef
    from alchemy_cleaner.dialects import DialectAdapter

__all__ = (
    "AsyncTruncation",
    "Truncation",
    "TruncationStats",
    "async_clean_database",
    "clean_database",
)

logger = logging.getLogger(__name__)

TRUNCATE_ALL = "truncate_all"
PRE_COUNT_TRUNCATE = "pre_count_truncate"


@dataclass
class TruncationStats:
    """Outcome of a single clean.

    Attributes:
        dialect: SQLAlchemy dialect name of the connection
        strategy_used: ``truncate_all`` or ``pre_count_truncate``
        tables_resolved: Number of tables selected by the ``only``/``except`` filters
        tables_truncated: Tables that were actually truncated
        tables_skipped: Tables skipped because the row count pre-check found them empty
        sequences_reset: Whether auto-increment counters were restarted by a separate step
        duration_seconds: Total time taken
    """

    dialect: str = ""
    strategy_used: str = ""
    tables_resolved: int = 0
    tables_truncated: tuple[str, ...] = ()
    tables_skipped: tuple[str, ...] = ()
    sequences_reset: bool = False
    duration_seconds: float = 0.0


def _build_config(
    config: Optional[TruncationConfig],
    only: Optional[Iterable[TableRef]],
    except_: Optional[Iterable[TableRef]],
    pre_count: Optional[bool],
    reset_ids: Optional[bool],
) -> TruncationConfig:
    options = {
        key: value
        for key, value in (("only", only), ("except_", except_), ("pre_count", pre_count), ("reset_ids", reset_ids))
        if value is not None
    }
    if config is None:
        return TruncationConfig(**options)
    if options:
        msg = f"Pass either a config or individual options, not both (got {sorted(options)})"
        raise ImproperConfigurationError(msg)
    return config


class _TruncationBase:
    """Configuration handling shared by the sync and async strategies."""

    def __init__(
        self,
        *,
        only: Optional[Iterable[TableRef]] = None,
        except_: Optional[Iterable[TableRef]] = None,
        pre_count: Optional[bool] = None,
        reset_ids: Optional[bool] = None,
        config: Optional[TruncationConfig] = None,
    ) -> None:
        self._config = _build_config(config, only, except_, pre_count, reset_ids)

    @property
    def config(self) -> TruncationConfig:
        return self._config

    @property
    def pre_count(self) -> bool:
        """Whether the next clean counts rows first and skips empty tables."""
        return bool(self._config.pre_count)

    @pre_count.setter
    def pre_count(self, value: bool) -> None:
        self._config.pre_count = bool(value)

    @property
    def reset_ids(self) -> bool:
        """Whether the next clean restarts auto-increment counters where truncating does not."""
        return bool(self._config.reset_ids)

    @reset_ids.setter
    def reset_ids(self, value: bool) -> None:
        self._config.reset_ids = bool(value)


class Truncation(_TruncationBase):
    """Truncation strategy for a synchronous SQLAlchemy connection.

    Args:
        connection: Connection to clean. Can also be bound later through :attr:`connection` or :meth:`bind`.
        only: Clean these tables exclusively. Takes precedence over ``except_``.
        except_: Leave these tables alone.
        pre_count: Count rows first and only truncate tables that have some.
        reset_ids: Restart auto-increment counters on engines where truncating does not do it.
        config: A prepared configuration, instead of the individual options.
    """

    def __init__(
        self,
        connection: Optional[Connection] = None,
        *,
        only: Optional[Iterable[TableRef]] = None,
        except_: Optional[Iterable[TableRef]] = None,
        pre_count: Optional[bool] = None,
        reset_ids: Optional[bool] = None,
        config: Optional[TruncationConfig] = None,
    ) -> None:
        super().__init__(only=only, except_=except_, pre_count=pre_count, reset_ids=reset_ids, config=config)
        self._connection = connection

    @classmethod
    def from_options(cls, options: Mapping[str, Any], connection: Optional[Connection] = None) -> Truncation:
        """Create a strategy from an option mapping, accepting ``except`` as a key."""
        return cls(connection, config=TruncationConfig.from_options(options))

    @property
    def connection(self) -> Optional[Connection]:
        return self._connection

    @connection.setter
    def connection(self, connection: Optional[Connection]) -> None:
        self._connection = connection

    def bind(self, connection: Connection) -> Truncation:
        """Bind ``connection`` and return the strategy."""
        self._connection = connection
        return self

    def _require_connection(self) -> Connection:
        if self._connection is None:
            msg = "No connection bound, set `Truncation.connection` before calling clean()"
            raise ImproperConfigurationError(msg)
        return self._connection

    @property
    def adapter(self) -> DialectAdapter:
        """Dialect adapter for the bound connection."""
        return get_adapter(self._require_connection().dialect.name)

    def resolve_tables(self) -> list[str]:
        """Return the tables the next clean would act on, without touching them."""
        connection = self._require_connection()
        adapter = get_adapter(connection.dialect.name)
        return resolve_tables(adapter.list_tables(connection), self._config)

    def clean(self) -> TruncationStats:
        """Empty the configured tables.

        Commits when the connection was not already inside a transaction. Transactions
        begun by the caller are left for the caller to finish.

        Raises:
            ImproperConfigurationError: If no connection is bound.
            EngineError: On the first failing statement, without rollback or retry.

        Returns:
            TruncationStats: What was done.
        """
        connection = self._require_connection()
        owns_transaction = not connection.in_transaction()
        stats = self.run(connection)
        if owns_transaction:
            with wrap_engine_exception("commit"):
                connection.commit()
        return stats

    def run(self, connection: Connection) -> TruncationStats:
        """Clean using ``connection`` without any transaction handling.

        The strategy is chosen once, from the current value of :attr:`pre_count`.
        """
        start_time = time.time()
        adapter = get_adapter(connection.dialect.name)
        tables = resolve_tables(adapter.list_tables(connection), self._config)
        if self.pre_count:
            stats = self.pre_count_truncate_tables(connection, adapter, tables)
        else:
            stats = self.truncate_tables(connection, adapter, tables)
        stats.dialect = connection.dialect.name
        stats.tables_resolved = len(tables)
        stats.duration_seconds = time.time() - start_time
        logger.info(
            "Truncated %d of %d %s tables (%s)",
            len(stats.tables_truncated),
            len(tables),
            stats.dialect,
            stats.strategy_used,
        )
        return stats

    def truncate_tables(self, connection: Connection, adapter: DialectAdapter, tables: Sequence[str]) -> TruncationStats:
        """Truncate every table in ``tables``."""
        sequences_reset = self._truncate(connection, adapter, tables)
        return TruncationStats(
            strategy_used=TRUNCATE_ALL,
            tables_truncated=tuple(tables),
            sequences_reset=sequences_reset,
        )

    def pre_count_truncate_tables(
        self, connection: Connection, adapter: DialectAdapter, tables: Sequence[str]
    ) -> TruncationStats:
        """Truncate only the tables of ``tables`` that hold rows."""
        non_empty = filter_non_empty(adapter, connection, tables)
        truncated = set(non_empty)
        sequences_reset = self._truncate(connection, adapter, non_empty)
        return TruncationStats(
            strategy_used=PRE_COUNT_TRUNCATE,
            tables_truncated=tuple(non_empty),
            tables_skipped=tuple(name for name in tables if name not in truncated),
            sequences_reset=sequences_reset,
        )

    def _truncate(self, connection: Connection, adapter: DialectAdapter, tables: Sequence[str]) -> bool:
        adapter.truncate(connection, tables)
        if not tables or not self.reset_ids or adapter.resets_sequences_on_truncate:
            return False
        adapter.reset_sequences(connection, tables)
        return adapter.supports_sequence_reset


class AsyncTruncation(_TruncationBase):
    """Truncation strategy for an :class:`AsyncConnection <sqlalchemy.ext.asyncio.AsyncConnection>`.

    The work is delegated to :class:`Truncation` through
    :meth:`AsyncConnection.run_sync() <sqlalchemy.ext.asyncio.AsyncConnection.run_sync>`.
    """

    def __init__(
        self,
        connection: Optional[AsyncConnection] = None,
        *,
        only: Optional[Iterable[TableRef]] = None,
        except_: Optional[Iterable[TableRef]] = None,
        pre_count: Optional[bool] = None,
        reset_ids: Optional[bool] = None,
        config: Optional[TruncationConfig] = None,
    ) -> None:
        super().__init__(only=only, except_=except_, pre_count=pre_count, reset_ids=reset_ids, config=config)
        self._connection = connection
        self._sync_strategy = Truncation(config=self._config)

    @classmethod
    def from_options(cls, options: Mapping[str, Any], connection: Optional[AsyncConnection] = None) -> AsyncTruncation:
        return cls(connection, config=TruncationConfig.from_options(options))

    @property
    def connection(self) -> Optional[AsyncConnection]:
        return self._connection

    @connection.setter
    def connection(self, connection: Optional[AsyncConnection]) -> None:
        self._connection = connection

    def bind(self, connection: AsyncConnection) -> AsyncTruncation:
        self._connection = connection
        return self

    def _require_connection(self) -> AsyncConnection:
        if self._connection is None:
            msg = "No connection bound, set `AsyncTruncation.connection` before calling clean()"
            raise ImproperConfigurationError(msg)
        return self._connection

    async def resolve_tables(self) -> list[str]:
        connection = self._require_connection()

        def _resolve(sync_connection: Connection) -> list[str]:
            adapter = get_adapter(sync_connection.dialect.name)
            return resolve_tables(adapter.list_tables(sync_connection), self._config)

        return await connection.run_sync(_resolve)

    async def clean(self) -> TruncationStats:
        """Empty the configured tables.

        Raises:
            ImproperConfigurationError: If no connection is bound.
            EngineError: On the first failing statement, without rollback or retry.

        Returns:
            TruncationStats: What was done.
        """
        connection = self._require_connection()
        owns_transaction = not connection.in_transaction()
        stats = await connection.run_sync(self._sync_strategy.run)
        if owns_transaction:
            with wrap_engine_exception("commit"):
                await connection.commit()
        return stats


@contextmanager
def clean_database(
    engine: Engine,
    only: Optional[Iterable[TableRef]] = None,
    except_: Optional[Iterable[TableRef]] = None,
    pre_count: Optional[bool] = None,
    reset_ids: Optional[bool] = None,
) -> Generator[Truncation, None, None]:
    """Context manager yielding a :class:`Truncation` bound to a fresh connection of ``engine``.

    The connection is closed on exit.

    Example:
        >>> with clean_database(engine, pre_count=True) as truncation:
        ...     stats = truncation.clean()
        ...     print(f"Truncated {len(stats.tables_truncated)} tables")
    """
    connection = engine.connect()
    try:
        yield Truncation(connection, only=only, except_=except_, pre_count=pre_count, reset_ids=reset_ids)
    finally:
        connection.close()


@asynccontextmanager
async def async_clean_database(
    engine: AsyncEngine,
    only: Optional[Iterable[TableRef]] = None,
    except_: Optional[Iterable[TableRef]] = None,
    pre_count: Optional[bool] = None,
    reset_ids: Optional[bool] = None,
) -> AsyncGenerator[AsyncTruncation, None]:
    """Async context manager yielding an :class:`AsyncTruncation` bound to a fresh connection of ``engine``.

    Example:
        >>> async with async_clean_database(async_engine) as truncation:
        ...     await truncation.clean()
    """
    connection = await engine.connect()
    try:
        yield AsyncTruncation(connection, only=only, except_=except_, pre_count=pre_count, reset_ids=reset_ids)
    finally:
        await connection.close()
