"""Truncation strategy configuration."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

from sqlalchemy.sql.expression import TableClause

from alchemy_cleaner.exceptions import ImproperConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

__all__ = (
    "TableRef",
    "TruncationConfig",
    "normalize_table_name",
    "normalize_table_names",
)

TableRef = Union[str, TableClause, Enum, type]
"""Anything that can name a table in a filter: a string, a :class:`Table <sqlalchemy.schema.Table>`,
a string valued :class:`~enum.Enum` member or a declarative model class."""

_FROZEN_FIELDS = frozenset({"only", "except_"})
_OPTION_ALIASES = {"except": "except_"}


def normalize_table_name(entry: Any) -> str:
    """Convert a table reference to its canonical string name.

    Args:
        entry: The table reference.

    Raises:
        ImproperConfigurationError: If the reference cannot be turned into a table name.

    Returns:
        str: The exact, case preserved table name.
    """
    if isinstance(entry, Enum):
        entry = entry.value
    if isinstance(entry, str):
        if not entry:
            msg = "Table names cannot be empty"
            raise ImproperConfigurationError(msg)
        return entry
    if isinstance(entry, TableClause):
        return entry.name
    if isinstance(entry, type):
        table = getattr(entry, "__table__", None)
        if isinstance(table, TableClause):
            return table.name
        tablename = getattr(entry, "__tablename__", None)
        if isinstance(tablename, str):
            return tablename
    msg = f"Cannot use {entry!r} as a table name"
    raise ImproperConfigurationError(msg)


def normalize_table_names(entries: Iterable[Any] | str | None) -> frozenset[str]:
    """Normalize a collection of table references.

    A bare string is treated as a single table name rather than a sequence of characters, and
    an :class:`~enum.Enum` class stands for all of its members.

    Returns:
        frozenset[str]: The canonical table names.
    """
    if entries is None:
        return frozenset()
    if isinstance(entries, type) and issubclass(entries, Enum):
        entries = list(entries)
    elif isinstance(entries, (str, Enum, TableClause, type)):
        entries = [entries]
    return frozenset(normalize_table_name(entry) for entry in entries)


@dataclass
class TruncationConfig:
    """Configuration for a truncation strategy.

    ``only`` and ``except_`` are normalized to ``frozenset[str]`` on construction and cannot be
    reassigned afterwards. ``pre_count`` and ``reset_ids`` may be toggled between calls.

    Example:
        Restrict cleaning to two tables::

            config = TruncationConfig(only=["worthless_junk", "replaceable_trifles"])

        Build from a mapping that uses the ``except`` spelling::

            config = TruncationConfig.from_options({"except": ["precious_stones"]})
    """

    only: Iterable[TableRef] = field(default_factory=frozenset)
    """Tables to clean exclusively. When non-empty, ``except_`` is ignored."""
    except_: Iterable[TableRef] = field(default_factory=frozenset)
    """Tables to leave alone."""
    pre_count: bool = False
    """Count rows first and only truncate tables that are not already empty."""
    reset_ids: bool = True
    """Reset auto-increment sequences on dialects where truncating does not already do it.

    Set to ``False`` to leave the counters of PostgreSQL, SQLite and similar engines untouched.
    MySQL and SQL Server always reset the counter as part of ``TRUNCATE``.
    """

    def __post_init__(self) -> None:
        object.__setattr__(self, "only", normalize_table_names(self.only))
        object.__setattr__(self, "except_", normalize_table_names(self.except_))
        object.__setattr__(self, "_initialized", True)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _FROZEN_FIELDS and getattr(self, "_initialized", False):
            msg = f"'{name}' cannot be changed after the configuration is created"
            raise ImproperConfigurationError(msg)
        super().__setattr__(name, value)

    @property
    def only_tables(self) -> frozenset[str]:
        return self.only  # type: ignore[return-value]

    @property
    def except_tables(self) -> frozenset[str]:
        return self.except_  # type: ignore[return-value]

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> TruncationConfig:
        """Create a configuration from a mapping of option names.

        Accepts ``except`` as an alias of ``except_``.

        Args:
            options: The option mapping.

        Raises:
            ImproperConfigurationError: On unknown or duplicated options.

        Returns:
            TruncationConfig: The configuration.
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in options.items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in known:
                msg = f"Unknown truncation option {key!r}, expected one of {sorted(known)}"
                raise ImproperConfigurationError(msg)
            if name in kwargs:
                msg = f"Truncation option {name!r} was given more than once"
                raise ImproperConfigurationError(msg)
            kwargs[name] = value
        return cls(**kwargs)
