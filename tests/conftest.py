from __future__ import annotations

import logging
from collections.abc import Generator

import pytest
from sqlalchemy import Column, Engine, Integer, MetaData, String, Table, create_engine

pytest_plugins = [
    "pytest_databases.docker",
    "pytest_databases.docker.mysql",
    "pytest_databases.docker.postgres",
]


@pytest.fixture(autouse=True, scope="session")
def configure_logging() -> None:
    """Keep SQLAlchemy's own loggers quiet and show statements issued by the cleaner."""
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("alchemy_cleaner").setLevel(logging.DEBUG)


@pytest.fixture()
def metadata() -> MetaData:
    return MetaData()


@pytest.fixture()
def treasure_tables(metadata: MetaData) -> dict[str, Table]:
    """Three unrelated tables, the classic cleaning scenario."""
    return {
        name: Table(name, metadata, Column("id", Integer, primary_key=True), Column("label", String(50)))
        for name in ("precious_stones", "replaceable_trifles", "worthless_junk")
    }


@pytest.fixture()
def sqlite_memory_engine() -> Generator[Engine, None, None]:
    engine = create_engine("sqlite://")
    try:
        yield engine
    finally:
        engine.dispose()
