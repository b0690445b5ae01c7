"""DB-API adapter implementation for the core database port.

`Database` is the handle repositories and query builders execute through. It
owns a transaction slot: once `begin()` reserves a pooled connection, every
statement issued on the handle runs on that connection until `commit()` or
`rollback()` hands it back to the pool. Outside a transaction each statement
borrows a connection for the single call and commits it immediately.
"""

from __future__ import annotations

import contextlib
import threading
from collections.abc import Callable, Iterator, Mapping, Sequence
from typing import Any, List, Optional, Tuple

import structlog

from ...config import DatabaseSettings, get_settings
from ...core.errors import DbConnectionError, DbError, PoolError, TransactionError
from ...core.types import MaybeRow, Params, Rows
from ...core.values import Row
from .dialects import Dialect, ParamCounter, dialect_for
from .pool_connector import PoolConnector

logger = structlog.get_logger()


class Database:
    """Pooled DB-API handle with per-handle transaction affinity."""

    def __init__(self, pool: PoolConnector, dialect: Dialect):
        """Create database handle.

        Args:
            pool: Connection pool the handle borrows from.
            dialect: Concrete SQL dialect instance.
        """

        self.pool = pool
        self.dialect = dialect
        self._tx_conn: Any | None = None
        self._tx_lock = threading.RLock()
        self._closed = False

    @classmethod
    def connect(cls, settings: DatabaseSettings | None = None) -> Database:
        """Build a handle (pool and dialect) from `DatabaseSettings`."""

        settings = settings or get_settings()
        return cls(PoolConnector.from_settings(settings), dialect_for(settings.backend))

    @property
    def in_transaction(self) -> bool:
        return self._tx_conn is not None

    def placeholders(
        self,
        names: Sequence[str],
        counter: Optional[ParamCounter] = None,
    ) -> List[str]:
        """Return one placeholder token per name in the dialect's style."""

        return self.dialect.placeholders(names, counter)

    def execute(self, sql: str, values: Params = ()) -> int:
        """Execute one statement and return the affected row count."""

        return self._run(sql, values, _rowcount)

    def query(self, sql: str, values: Params = ()) -> Rows:
        """Execute a query and return every result row."""

        return self._run(sql, values, self._fetch_all)

    def query_one(self, sql: str, values: Params = ()) -> MaybeRow:
        """Execute a query and return its first row, or `None`."""

        return self._run(sql, values, self._fetch_one)

    def ping(self) -> bool:
        """Check connectivity with a trivial round trip."""

        return self.query_one("SELECT 1") is not None

    def begin(self) -> None:
        """Reserve one pooled connection and start a transaction on it.

        Raises:
            TransactionError: If a transaction is already open on this handle
                or the start statement fails.
            PoolError: If no pooled connection is available.
        """

        with self._tx_lock:
            if self._tx_conn is not None:
                raise TransactionError("Transaction already open on this database handle.")
            conn = self._acquire()
            try:
                statement = self.dialect.begin_statement(conn)
                if statement is not None:
                    _run_plain(conn, statement)
            except Exception as exc:
                self.pool.release(conn)
                raise TransactionError(f"Failed to begin transaction: {exc}", cause=exc) from exc
            self._tx_conn = conn
        logger.info("transaction_begin", dialect=self.dialect.name)

    def commit(self) -> None:
        """Commit the open transaction and release its connection."""

        self._finish("commit")

    def rollback(self) -> None:
        """Roll back the open transaction and release its connection."""

        self._finish("rollback")

    @contextlib.contextmanager
    def transaction(self) -> Iterator[Database]:
        """Provide begin/commit/rollback transaction scope."""

        self.begin()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()

    def close(self) -> None:
        """Roll back any open transaction and close the pool."""

        if self._closed:
            return
        self._closed = True
        try:
            if self._tx_conn is not None:
                logger.warning("transaction_open_on_close", dialect=self.dialect.name)
                self.rollback()
        finally:
            self.pool.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    def _finish(self, action: str) -> None:
        with self._tx_lock:
            conn = self._tx_conn
            self._tx_conn = None
        if conn is None:
            raise TransactionError(f"No open transaction to {action}.")
        try:
            getattr(conn, action)()
        except Exception as exc:
            logger.warning(f"transaction_{action}_failed", error=str(exc))
            raise TransactionError(f"Failed to {action} transaction: {exc}", cause=exc) from exc
        finally:
            self.pool.release(conn)
        logger.info(f"transaction_{action}", dialect=self.dialect.name)

    def _acquire(self) -> Any:
        try:
            return self.pool.acquire()
        except PoolError:
            raise
        except Exception as exc:
            raise DbConnectionError(f"Failed to open connection: {exc}", cause=exc) from exc

    @contextlib.contextmanager
    def _connection(self) -> Iterator[Tuple[Any, bool]]:
        with self._tx_lock:
            if self._tx_conn is not None:
                yield self._tx_conn, True
                return
        conn = self._acquire()
        try:
            yield conn, False
        finally:
            self.pool.release(conn)

    def _run(self, sql: str, values: Params, fetch: Callable[[Any], Any]) -> Any:
        params = self.dialect.bind_params(values)
        with self._connection() as (conn, reserved):
            cur = conn.cursor()
            try:
                if params:
                    cur.execute(sql, params)
                else:
                    cur.execute(sql)
                result = fetch(cur)
                if not reserved:
                    conn.commit()
            except Exception as exc:
                error = self.dialect.translate_error(exc)
                logger.warning(
                    "sql_failed",
                    sql=sql,
                    error=str(error),
                    kind=getattr(getattr(error, "kind", None), "value", type(error).__name__),
                )
                if not reserved:
                    _rollback_transient(conn)
                if error is exc:
                    raise
                raise error from exc
            finally:
                _close_cursor(cur)
        logger.debug("sql_executed", sql=sql, params=len(params), in_transaction=reserved)
        return result

    def _fetch_all(self, cur: Any) -> Rows:
        columns = _columns(cur)
        return [self._to_row(columns, raw) for raw in cur.fetchall()]

    def _fetch_one(self, cur: Any) -> MaybeRow:
        raw = cur.fetchone()
        if raw is None:
            return None
        return self._to_row(_columns(cur), raw)

    def _to_row(self, columns: List[str], raw: Any) -> Row:
        return _build_row(self.dialect, columns, raw)


def _build_row(dialect: Dialect, columns: List[str], raw: Any) -> Row:
    if isinstance(raw, Mapping):
        raw = [raw[name] for name in columns]
    return Row(columns=columns, values=[dialect.read_value(item) for item in raw])


def _columns(cur: Any) -> List[str]:
    desc = getattr(cur, "description", None)
    if not desc:
        raise DbError("Cursor has no description; statement returned no result set.")
    return [d[0] for d in desc]


def _rowcount(cur: Any) -> int:
    count = getattr(cur, "rowcount", -1)
    return count if isinstance(count, int) and count >= 0 else 0


def _run_plain(conn: Any, sql: str) -> None:
    cur = conn.cursor()
    try:
        cur.execute(sql)
    finally:
        _close_cursor(cur)


def _rollback_transient(conn: Any) -> None:
    try:
        conn.rollback()
    except Exception as exc:
        logger.warning("transient_rollback_failed", error=str(exc))


def _close_cursor(cur: Any) -> None:
    close = getattr(cur, "close", None)
    if callable(close):
        close()
