"""Row count pre-check.

Counting first trades one ``SELECT count(*)`` per table for skipping the truncate of every
table that is already empty. It pays off when most tables are empty at the end of a test,
which is the common case, and costs extra round trips when most are populated.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.engine import Connection

    from alchemy_cleaner.dialects import DialectAdapter

__all__ = ("filter_non_empty",)

logger = logging.getLogger(__name__)


def filter_non_empty(adapter: DialectAdapter, connection: Connection, tables: Sequence[str]) -> list[str]:
    """Return the tables holding at least one row, in input order.

    Raises:
        EngineError: If a count query fails.
    """
    non_empty = [name for name in tables if adapter.count_rows(connection, name) > 0]
    logger.debug("Pre-count found %d of %d tables with rows", len(non_empty), len(tables))
    return non_empty
