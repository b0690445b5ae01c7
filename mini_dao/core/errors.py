"""Error taxonomy raised by the data-access layer.

Driver exceptions never escape the database handle untranslated: each one
is re-raised as the most specific `DbError` subclass available, with the
original exception chained as ``__cause__``.
"""

from __future__ import annotations

from enum import Enum


class DbError(Exception):
    """Base exception for all data-access errors.

    Attributes:
        message: Human-readable description of what went wrong.
    """

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        self.message = message
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause


class DbConnectionError(DbError):
    """Raised when a physical connection is unreachable or broken."""


class PoolError(DbError):
    """Raised when no pooled connection is available within policy."""


class TransactionError(DbError):
    """Raised when begin/commit/rollback fails or a transaction is already open."""


class QueryErrorKind(str, Enum):
    """Sub-classification of statement execution failures."""

    SYNTAX = "syntax"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"
    UNIQUE_VIOLATION = "unique_violation"
    NOT_NULL_VIOLATION = "not_null_violation"
    CHECK_VIOLATION = "check_violation"
    EXCLUSION_VIOLATION = "exclusion_violation"
    OTHER = "other"


class QueryError(DbError):
    """Raised when statement execution fails."""

    def __init__(
        self,
        message: str,
        *,
        kind: QueryErrorKind = QueryErrorKind.OTHER,
        cause: BaseException | None = None,
    ) -> None:
        self.kind = kind
        super().__init__(message, cause=cause)

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class ConversionError(DbError):
    """Raised when entity/value marshaling fails."""
