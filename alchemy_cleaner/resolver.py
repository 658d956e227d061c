from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from alchemy_cleaner.config import TruncationConfig

__all__ = ("resolve_tables",)

logger = logging.getLogger(__name__)


def resolve_tables(all_tables: Iterable[str], config: TruncationConfig) -> list[str]:
    """Pick the tables a clean should act on.

    ``only`` takes precedence over ``except_``: when both are set, ``except_`` is ignored.
    Names in either filter that do not exist in ``all_tables`` are ignored. The order of
    ``all_tables`` is kept.

    Args:
        all_tables: Every user table in the database.
        config: The truncation configuration.

    Returns:
        list[str]: The target tables.
    """
    only, excluded = config.only_tables, config.except_tables
    if only:
        if excluded:
            logger.debug("Both 'only' and 'except' are configured, ignoring except=%s", sorted(excluded))
        return [name for name in all_tables if name in only]
    if excluded:
        return [name for name in all_tables if name not in excluded]
    return list(all_tables)
