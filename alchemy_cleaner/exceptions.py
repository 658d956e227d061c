from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator, Optional

from sqlalchemy.exc import SQLAlchemyError

__all__ = (
    "CleanerError",
    "EngineError",
    "ImproperConfigurationError",
    "wrap_engine_exception",
)


class CleanerError(Exception):
    """Base exception class from which all Alchemy Cleaner exceptions inherit."""

    detail: str

    def __init__(self, *args: Any, detail: str = "") -> None:
        """Initialize ``CleanerError``.

        Args:
            *args: args are converted to :class:`str` before passing to :class:`Exception`
            detail: detail of the exception.
        """
        str_args = [str(arg) for arg in args if arg]
        if not detail:
            if str_args:
                detail, *str_args = str_args
            elif hasattr(self, "detail"):
                detail = self.detail
        self.detail = detail
        super().__init__(*str_args)

    def __repr__(self) -> str:
        if self.detail:
            return f"{self.__class__.__name__} - {self.detail}"
        return self.__class__.__name__

    def __str__(self) -> str:
        return " ".join((*self.args, self.detail)).strip()


class ImproperConfigurationError(CleanerError):
    """Improper Configuration error.

    This exception is raised when a truncation strategy is misconfigured: no connection
    has been bound, a table filter entry cannot be turned into a table name, or an
    unknown option was supplied.

    Args:
        *args: Variable length argument list passed to parent class.
        detail: Detailed error message.
    """


class EngineError(CleanerError):
    """Database engine error.

    Raised when the database rejects or fails one of the statements issued during a
    clean: listing tables, counting rows, truncating or resetting sequences.

    Args:
        *args: Variable length argument list passed to parent class.
        operation: Name of the operation that failed.
        table: Table (or comma separated batch of tables) the operation targeted.
        detail: Detailed error message.
    """

    def __init__(
        self,
        *args: Any,
        operation: str = "",
        table: Optional[str] = None,
        detail: str = "",
    ) -> None:
        self.operation = operation
        self.table = table
        super().__init__(*args, detail=detail)


@contextmanager
def wrap_engine_exception(operation: str, table: Optional[str] = None) -> Generator[None, None, None]:
    """Do something within context to raise an ``EngineError`` chained
    from an original ``SQLAlchemyError``.

        >>> try:
        ...     with wrap_engine_exception("truncate", table="users"):
        ...         raise SQLAlchemyError("Original Exception")
        ... except EngineError as exc:
        ...     print(f"{exc.operation} failed on {exc.table}")
        truncate failed on users
    """
    try:
        yield
    except SQLAlchemyError as exc:
        target = f" on {table!r}" if table else ""
        raise EngineError(
            operation=operation,
            table=table,
            detail=f"{operation} failed{target}: {exc}",
        ) from exc
