from __future__ import annotations

from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
from pytest_databases.docker.mysql import MySQLService
from pytest_databases.docker.postgres import PostgresService
from sqlalchemy import Engine, NullPool, create_engine
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine


@pytest.fixture()
def sqlite_engine(tmp_path: Path) -> Generator[Engine, None, None]:
    engine = create_engine(f"sqlite:///{tmp_path / 'cleaner.db'}", poolclass=NullPool)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
async def aiosqlite_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cleaner.db'}", poolclass=NullPool)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="session")
def psycopg_engine(postgres_service: PostgresService) -> Generator[Engine, None, None]:
    dsn = "postgresql+psycopg://{user}:{password}@{host}:{port}/{database}"
    engine = create_engine(
        dsn.format(
            user=postgres_service.user,
            password=postgres_service.password,
            host=postgres_service.host,
            port=postgres_service.port,
            database=postgres_service.database,
        ),
        poolclass=NullPool,
    )
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(scope="session")
def pymysql_engine(mysql_service: MySQLService) -> Generator[Engine, None, None]:
    dsn = "mysql+pymysql://{user}:{password}@{host}:{port}/{database}"
    engine = create_engine(
        dsn.format(
            user=mysql_service.user,
            password=mysql_service.password,
            host=mysql_service.host,
            port=mysql_service.port,
            database=mysql_service.db,
        ),
        poolclass=NullPool,
    )
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(
    name="engine",
    params=[
        pytest.param(
            "sqlite_engine",
            marks=[
                pytest.mark.sqlite,
                pytest.mark.integration,
            ],
        ),
        pytest.param(
            "psycopg_engine",
            marks=[
                pytest.mark.postgres,
                pytest.mark.docker,
                pytest.mark.integration,
                pytest.mark.xdist_group("postgres"),
            ],
        ),
        pytest.param(
            "pymysql_engine",
            marks=[
                pytest.mark.mysql,
                pytest.mark.docker,
                pytest.mark.integration,
                pytest.mark.xdist_group("mysql"),
            ],
        ),
    ],
)
def engine(request: pytest.FixtureRequest) -> Engine:
    return request.getfixturevalue(request.param)
