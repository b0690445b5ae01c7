"""Concrete SQL dialect implementations for DB-API adapters.

A dialect owns everything that differs between database products at the
statement boundary: the placeholder style, how a transaction is started on a
pooled connection, how `Value` parameters are bound for the driver, and how
driver exceptions map onto the `DbError` taxonomy.
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, List, Optional, Sequence

from ...core.blob import pack_values
from ...core.errors import DbConnectionError, DbError, QueryError, QueryErrorKind
from ...core.types import DriverParams, Params
from ...core.values import Value, ValueKind


class ParamCounter:
    """Call-scoped placeholder position counter.

    Numbered dialects render `position`, `position + 1`, ... for one request
    of N placeholders and then advance the counter by exactly N.
    """

    __slots__ = ("position",)

    def __init__(self, start: int = 1):
        if start < 1:
            raise ValueError("Placeholder positions start at 1.")
        self.position = start

    def take(self, count: int) -> int:
        """Reserve `count` positions and return the first one."""

        if count < 0:
            raise ValueError("Placeholder count must be >= 0.")
        first = self.position
        self.position += count
        return first

    def __repr__(self) -> str:
        return f"ParamCounter(position={self.position})"


_POSTGRES_KINDS = {
    "23503": QueryErrorKind.FOREIGN_KEY_VIOLATION,
    "23505": QueryErrorKind.UNIQUE_VIOLATION,
    "23502": QueryErrorKind.NOT_NULL_VIOLATION,
    "23514": QueryErrorKind.CHECK_VIOLATION,
    "23P01": QueryErrorKind.EXCLUSION_VIOLATION,
    "42601": QueryErrorKind.SYNTAX,
}

_MYSQL_KINDS = {
    1451: QueryErrorKind.FOREIGN_KEY_VIOLATION,
    1452: QueryErrorKind.FOREIGN_KEY_VIOLATION,
    1062: QueryErrorKind.UNIQUE_VIOLATION,
    1048: QueryErrorKind.NOT_NULL_VIOLATION,
    3819: QueryErrorKind.CHECK_VIOLATION,
    1064: QueryErrorKind.SYNTAX,
}

# Client-side "can't connect" / "server has gone away" / "lost connection".
_MYSQL_CONNECTION_ERRNOS = frozenset({2002, 2003, 2006, 2013})

_SQLITE_MESSAGES = (
    ("UNIQUE constraint failed", QueryErrorKind.UNIQUE_VIOLATION),
    ("NOT NULL constraint failed", QueryErrorKind.NOT_NULL_VIOLATION),
    ("FOREIGN KEY constraint failed", QueryErrorKind.FOREIGN_KEY_VIOLATION),
    ("CHECK constraint failed", QueryErrorKind.CHECK_VIOLATION),
    ("syntax error", QueryErrorKind.SYNTAX),
    ("incomplete input", QueryErrorKind.SYNTAX),
)


class Dialect:
    """Base dialect that defines placeholder, binding and error behavior."""

    name: str = "generic"
    paramstyle: str = "qmark"
    numbered_prefix: str = "$"
    begin_sql: str = "BEGIN"

    def placeholder(self, position: int) -> str:
        """Return the placeholder token for one 1-based parameter position."""

        if self.paramstyle == "qmark":
            return "?"
        if self.paramstyle == "format":
            return "%s"
        if self.paramstyle == "numeric":
            return f"{self.numbered_prefix}{position}"
        raise ValueError(f"Unsupported paramstyle: {self.paramstyle}")

    def counter(self, start: int = 1) -> ParamCounter:
        return ParamCounter(start)

    def placeholders(
        self,
        names: Sequence[str],
        counter: Optional[ParamCounter] = None,
    ) -> List[str]:
        """Return one placeholder per name, advancing `counter` by `len(names)`.

        Names only fix the count; tokens are positional in every style.
        """

        counter = counter if counter is not None else ParamCounter()
        first = counter.take(len(names))
        return [self.placeholder(first + offset) for offset in range(len(names))]

    @property
    def is_numbered(self) -> bool:
        return self.paramstyle == "numeric"

    def begin_statement(self, conn: Any) -> Optional[str]:
        """Return the statement that starts a transaction on `conn`, if any.

        DB-API connections open a transaction implicitly unless they run in
        autocommit mode, so the explicit statement is only needed there.
        """

        if getattr(conn, "autocommit", False) is True:
            return self.begin_sql
        return None

    def bind_value(self, value: Value) -> Any:
        """Convert one `Value` into the object handed to the driver."""

        if value.kind is ValueKind.TABLE:
            return pack_values([value])
        return value.data

    def bind_params(self, values: Params) -> DriverParams:
        return [self.bind_value(value) for value in values]

    def read_value(self, raw: Any) -> Value:
        """Convert one driver column value into a `Value`."""

        if isinstance(raw, Decimal):
            return Value.float64(float(raw))
        if isinstance(raw, datetime):
            return Value.timestamp(raw)
        if isinstance(raw, date):
            return Value.timestamp(datetime.combine(raw, time()))
        return Value.of(raw)

    def translate_error(self, exc: BaseException) -> DbError:
        """Map a driver exception onto the `DbError` taxonomy."""

        if isinstance(exc, DbError):
            return exc
        message = str(exc) or type(exc).__name__
        if self.is_connection_error(exc):
            return DbConnectionError(message, cause=exc)
        return QueryError(message, kind=self.error_kind(exc), cause=exc)

    def error_kind(self, exc: BaseException) -> QueryErrorKind:
        return QueryErrorKind.OTHER

    def is_connection_error(self, exc: BaseException) -> bool:
        return isinstance(exc, ConnectionError)


class SQLiteDialect(Dialect):
    """SQLite dialect (`?` positional parameters)."""

    name = "sqlite"
    paramstyle = "qmark"

    def begin_statement(self, conn: Any) -> Optional[str]:
        if bool(getattr(conn, "in_transaction", False)):
            return None
        return self.begin_sql

    def bind_value(self, value: Value) -> Any:
        if value.kind is ValueKind.TIMESTAMP:
            return value.data.isoformat()
        if value.kind is ValueKind.BOOL:
            return int(value.data)
        return super().bind_value(value)

    def error_kind(self, exc: BaseException) -> QueryErrorKind:
        name = getattr(exc, "sqlite_errorname", "") or ""
        if name.endswith("_UNIQUE") or name.endswith("_PRIMARYKEY"):
            return QueryErrorKind.UNIQUE_VIOLATION
        if name.endswith("_NOTNULL"):
            return QueryErrorKind.NOT_NULL_VIOLATION
        if name.endswith("_FOREIGNKEY"):
            return QueryErrorKind.FOREIGN_KEY_VIOLATION
        if name.endswith("_CHECK"):
            return QueryErrorKind.CHECK_VIOLATION

        message = str(exc)
        for fragment, kind in _SQLITE_MESSAGES:
            if fragment in message:
                return kind
        return QueryErrorKind.OTHER


class SQLiteNumberedDialect(SQLiteDialect):
    """SQLite dialect with numbered `?NNN` parameters."""

    paramstyle = "numeric"
    numbered_prefix = "?"


class PostgresDialect(Dialect):
    """PostgreSQL dialect (`%s` positional parameters, psycopg)."""

    name = "postgres"
    paramstyle = "format"

    def error_kind(self, exc: BaseException) -> QueryErrorKind:
        return _POSTGRES_KINDS.get(_sqlstate(exc) or "", QueryErrorKind.OTHER)

    def is_connection_error(self, exc: BaseException) -> bool:
        code = _sqlstate(exc)
        if code is not None:
            return code.startswith("08")
        return super().is_connection_error(exc) or type(exc).__name__ == "OperationalError"


class PostgresNumberedDialect(PostgresDialect):
    """PostgreSQL dialect with numbered `$n` parameters."""

    paramstyle = "numeric"
    numbered_prefix = "$"


class MySQLDialect(Dialect):
    """MySQL dialect (`%s` positional parameters)."""

    name = "mysql"
    paramstyle = "format"
    begin_sql = "START TRANSACTION"

    def begin_statement(self, conn: Any) -> Optional[str]:
        return self.begin_sql

    def error_kind(self, exc: BaseException) -> QueryErrorKind:
        return _MYSQL_KINDS.get(_mysql_errno(exc), QueryErrorKind.OTHER)

    def is_connection_error(self, exc: BaseException) -> bool:
        return super().is_connection_error(exc) or (
            _mysql_errno(exc) in _MYSQL_CONNECTION_ERRNOS
        )


DIALECTS = {
    "sqlite": SQLiteDialect,
    "postgres": PostgresDialect,
    "mysql": MySQLDialect,
}


def dialect_for(backend: str) -> Dialect:
    """Return a dialect instance for a backend name."""

    try:
        return DIALECTS[backend.lower()]()
    except KeyError as exc:
        raise ValueError(
            f"Unsupported backend {backend!r}. Supported: {', '.join(sorted(DIALECTS))}."
        ) from exc


def _sqlstate(exc: BaseException) -> Optional[str]:
    # psycopg / asyncpg expose `sqlstate`, psycopg2 exposes `pgcode`.
    code = getattr(exc, "sqlstate", None) or getattr(exc, "pgcode", None)
    return code if isinstance(code, str) else None


def _mysql_errno(exc: BaseException) -> int:
    args = getattr(exc, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return 0
