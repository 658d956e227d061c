"""Truncation against real databases.

SQLite always runs. PostgreSQL and MySQL need docker and are selected with ``-m docker``.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest
from sqlalchemy import Column, Connection, Engine, ForeignKey, Integer, MetaData, Table, func, insert, inspect, select

from alchemy_cleaner import Truncation, clean_database
from alchemy_cleaner.optimizer import filter_non_empty

pytestmark = [pytest.mark.integration]

FULL_RESET_DIALECTS = {"mysql", "mariadb", "mssql"}


@pytest.fixture()
def connection(engine: Engine, metadata: MetaData) -> Generator[Connection, None, None]:
    with engine.connect() as connection:
        try:
            yield connection
        finally:
            connection.rollback()
            metadata.drop_all(connection)
            connection.commit()


@pytest.fixture()
def populated(connection: Connection, metadata: MetaData, treasure_tables: dict[str, Table]) -> dict[str, Table]:
    metadata.create_all(connection)
    for table in treasure_tables.values():
        connection.execute(insert(table).values(label="one"))
    connection.commit()
    return treasure_tables


@pytest.fixture()
def counter_table(connection: Connection, metadata: MetaData) -> Table:
    table = Table(
        "replaceable_trifles",
        metadata,
        Column("id", Integer, primary_key=True),
        sqlite_autoincrement=True,
    )
    metadata.create_all(connection)
    for _ in range(2):
        connection.execute(insert(table))
    connection.commit()
    return table


def row_count(connection: Connection, table: Table) -> int:
    return connection.execute(select(func.count()).select_from(table)).scalar_one()


def next_id(connection: Connection, table: Table) -> int:
    key = connection.execute(insert(table)).inserted_primary_key[0]
    connection.commit()
    return key


def test_truncates_all_tables_by_default(connection: Connection, populated: dict[str, Table]) -> None:
    Truncation(connection).clean()
    assert [row_count(connection, table) for table in populated.values()] == [0, 0, 0]


def test_only(connection: Connection, populated: dict[str, Table]) -> None:
    Truncation(connection, only=["worthless_junk", "replaceable_trifles"]).clean()

    assert row_count(connection, populated["replaceable_trifles"]) == 0
    assert row_count(connection, populated["worthless_junk"]) == 0
    assert row_count(connection, populated["precious_stones"]) == 1


def test_except(connection: Connection, populated: dict[str, Table]) -> None:
    Truncation(connection, except_=["precious_stones"]).clean()

    assert row_count(connection, populated["replaceable_trifles"]) == 0
    assert row_count(connection, populated["worthless_junk"]) == 0
    assert row_count(connection, populated["precious_stones"]) == 1


def test_clean_twice(connection: Connection, populated: dict[str, Table]) -> None:
    truncation = Truncation(connection)
    truncation.clean()
    truncation.clean()
    assert [row_count(connection, table) for table in populated.values()] == [0, 0, 0]


def test_pre_count(connection: Connection, populated: dict[str, Table]) -> None:
    connection.execute(populated["precious_stones"].delete())
    connection.commit()
    truncation = Truncation(connection, pre_count=True)

    assert filter_non_empty(truncation.adapter, connection, ["precious_stones", "worthless_junk"]) == [
        "worthless_junk"
    ]
    stats = truncation.clean()

    assert "precious_stones" in stats.tables_skipped
    assert [row_count(connection, table) for table in populated.values()] == [0, 0, 0]


def test_related_tables_in_one_batch(connection: Connection, metadata: MetaData) -> None:
    parent = Table("parent", metadata, Column("id", Integer, primary_key=True))
    child = Table(
        "child",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("parent_id", Integer, ForeignKey("parent.id")),
    )
    metadata.create_all(connection)
    connection.execute(insert(parent).values(id=1))
    connection.execute(insert(child).values(id=1, parent_id=1))
    connection.commit()

    Truncation(connection, only=["child", "parent"]).clean()

    assert row_count(connection, parent) == 0
    assert row_count(connection, child) == 0


def test_resets_auto_increment_by_default(connection: Connection, counter_table: Table) -> None:
    Truncation(connection).clean()
    assert next_id(connection, counter_table) == 1


def test_auto_increment_left_alone_without_reset_ids(connection: Connection, counter_table: Table) -> None:
    stats = Truncation(connection, reset_ids=False).clean()

    assert stats.sequences_reset is False
    if connection.dialect.name in FULL_RESET_DIALECTS:
        # TRUNCATE restarts the counter on these engines no matter what
        assert next_id(connection, counter_table) == 1
    else:
        assert next_id(connection, counter_table) == 3


def test_pre_count_resets_auto_increment_of_truncated_tables(connection: Connection, counter_table: Table) -> None:
    Truncation(connection, pre_count=True).clean()
    assert next_id(connection, counter_table) == 1


def test_internal_tables_are_never_listed(connection: Connection, counter_table: Table) -> None:
    truncation = Truncation(connection)
    tables = truncation.resolve_tables()
    assert "replaceable_trifles" in tables
    assert not any(truncation.adapter.is_internal_table(name) for name in tables)


def test_clean_database_context_manager(engine: Engine, connection: Connection, populated: dict[str, Table]) -> None:
    with clean_database(engine, only=["worthless_junk"]) as truncation:
        stats = truncation.clean()

    assert stats.tables_truncated == ("worthless_junk",)
    assert row_count(connection, populated["worthless_junk"]) == 0
    assert row_count(connection, populated["precious_stones"]) == 1


def test_sqlite_sequence_is_trimmed(sqlite_engine: Engine, metadata: MetaData) -> None:
    table = Table("replaceable_trifles", metadata, Column("id", Integer, primary_key=True), sqlite_autoincrement=True)
    with sqlite_engine.connect() as connection:
        metadata.create_all(connection)
        connection.execute(insert(table))
        connection.commit()
        assert "sqlite_sequence" not in inspect(connection).get_table_names()

        Truncation(connection).clean()

        remaining = connection.exec_driver_sql("SELECT count(*) FROM sqlite_sequence").scalar_one()
        assert remaining == 0
