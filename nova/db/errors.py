"""Exception hierarchy for the Nova database adapter.

Every failure raised by the adapter derives from ``DatabaseError`` and is
chained (``raise ... from e``) to the driver error that caused it.
Cancellation and deadline errors are never wrapped.
"""

from __future__ import annotations

import sqlite3
from typing import Any

# Primary result codes of the SQLite engine
SQLITE_BUSY = 5
SQLITE_CONSTRAINT = 19


class DatabaseError(Exception):
    """Base exception for database operations."""

    pass


class ConnectionError(DatabaseError):
    """Exception raised when a connection cannot be provided."""

    pass


class OpenError(ConnectionError):
    """Exception raised when opening the adapter fails at a given step."""

    def __init__(self, step: str, message: str):
        self.step = step
        super().__init__(f"{step}: {message}")


class AdapterClosedError(ConnectionError):
    """Exception raised when the adapter is used after close."""

    def __init__(self, op: str = "use"):
        self.op = op
        super().__init__(f"{op}: adapter is closed")


class QueryError(DatabaseError):
    """Exception raised when the engine rejects a statement.

    Preserves the engine's extended result code so callers can classify
    the failure without unwrapping the chain.
    """

    def __init__(
        self,
        op: str,
        message: str,
        sqlite_errorcode: int | None = None,
        sqlite_errorname: str | None = None,
    ):
        self.op = op
        self.sqlite_errorcode = sqlite_errorcode
        self.sqlite_errorname = sqlite_errorname
        super().__init__(f"{op}: {message}")

    @property
    def primary_code(self) -> int | None:
        """Primary result code (low byte of the extended code)."""
        if self.sqlite_errorcode is None:
            return None
        return self.sqlite_errorcode & 0xFF


class BusyError(QueryError):
    """The database was busy (contention); retryable."""

    pass


class ConstraintError(QueryError):
    """A unique, primary key or foreign key constraint was violated."""

    pass


class UsageError(DatabaseError):
    """Exception raised when the adapter API is misused."""

    pass


class NoPersistableFieldsError(UsageError):
    """Exception raised when a record has no tagged columns."""

    def __init__(self, record: Any):
        super().__init__(f"no persistable fields in {type(record).__name__}")


class DuplicateMigrationError(UsageError):
    """Exception raised when a migration version is registered twice."""

    def __init__(self, version: int):
        self.version = version
        super().__init__(f"migration version {version} already registered")


class UnknownMigrationError(UsageError):
    """Exception raised when the ledger holds a version nobody registered."""

    def __init__(self, version: int):
        self.version = version
        super().__init__(f"unknown migration version cursor: {version}")


class TransactionError(DatabaseError):
    """Exception raised when begin or commit fails.

    ``error`` holds the classified engine failure (a ``BusyError`` on
    contention) when the driver reported one.
    """

    def __init__(self, message: str, error: QueryError | None = None):
        self.error = error
        super().__init__(message)

    @property
    def sqlite_errorcode(self) -> int | None:
        return self.error.sqlite_errorcode if self.error is not None else None

    @property
    def primary_code(self) -> int | None:
        return self.error.primary_code if self.error is not None else None


class RollbackError(TransactionError):
    """Exception raised when the body failed and the rollback failed too."""

    def __init__(self, rollback_error: BaseException, cause: BaseException):
        self.rollback_error = rollback_error
        self.cause = cause
        super().__init__(f"rollback failed: {rollback_error} (original error: {cause})")


class MigrationError(DatabaseError):
    """Exception raised when a migration body fails."""

    def __init__(self, version: int, message: str):
        self.version = version
        super().__init__(f"migration {version}: {message}")


def sqlite_code(exc: BaseException) -> int | None:
    """Extract the extended SQLite result code from an error, if any."""
    if isinstance(exc, QueryError):
        return exc.sqlite_errorcode
    if isinstance(exc, TransactionError):
        return exc.sqlite_errorcode
    if isinstance(exc, sqlite3.Error):
        return getattr(exc, "sqlite_errorcode", None)
    return None


def is_retryable(exc: BaseException) -> bool:
    """Return True if the error is an engine BUSY (contention) error."""
    code = sqlite_code(exc)
    return code is not None and code & 0xFF == SQLITE_BUSY


def wrap_sqlite_error(op: str, exc: sqlite3.Error) -> QueryError:
    """Wrap a driver error into the matching ``QueryError`` subclass."""
    code = getattr(exc, "sqlite_errorcode", None)
    name = getattr(exc, "sqlite_errorname", None)
    primary = code & 0xFF if code is not None else None

    if primary == SQLITE_BUSY:
        cls: type[QueryError] = BusyError
    elif primary == SQLITE_CONSTRAINT:
        cls = ConstraintError
    else:
        cls = QueryError
    return cls(op, str(exc), sqlite_errorcode=code, sqlite_errorname=name)
