"""Simple thread-safe DB-API connection pool."""

from __future__ import annotations

import contextlib
import importlib
import threading
import time
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

import structlog

from ...core.errors import PoolError

if TYPE_CHECKING:
    from ...config import DatabaseSettings

logger = structlog.get_logger()


class PoolConnector:
    """Small fixed-size pool for DB-API connection objects.

    Connections are created lazily up to `max_size`. A connection returned
    while still inside a transaction is rolled back before it becomes idle
    again, so a pooled connection never carries uncommitted work between
    borrowers.
    """

    def __init__(
        self,
        connect: Callable[..., Any],
        *connect_args: Any,
        max_size: int = 5,
        acquire_timeout: float | None = None,
        session_reset_hook: Callable[[Any], None] | None = None,
        **connect_kwargs: Any,
    ):
        if max_size < 1:
            raise ValueError("max_size must be >= 1.")
        if connect_kwargs.get("database") == ":memory:" or (
            connect_args and connect_args[0] == ":memory:"
        ):
            if max_size > 1 and _is_sqlite_connect(connect):
                raise ValueError(
                    "PoolConnector detected sqlite private in-memory database with "
                    "max_size > 1. Use max_size=1 or a file-backed database."
                )

        self._connect = connect
        self._connect_args = connect_args
        self._connect_kwargs = connect_kwargs
        self._max_size = max_size
        self._acquire_timeout = acquire_timeout
        self._session_reset_hook = session_reset_hook

        self._idle: list[Any] = []
        self._borrowed_ids: set[int] = set()
        self._known = 0
        self._closed = False
        self._condition = threading.Condition()

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> PoolConnector:
        """Build a pool whose connections are opened with the backend's driver.

        PostgreSQL uses `psycopg`, MySQL uses `pymysql`; both are optional
        extras and imported only when selected.
        """

        options = {"max_size": settings.max_size, "acquire_timeout": settings.acquire_timeout}
        if settings.backend == "sqlite":
            import sqlite3

            database = settings.database_name or ":memory:"
            if database == ":memory:":
                options["max_size"] = 1
            return cls(
                sqlite3.connect,
                database,
                check_same_thread=False,
                **options,
            )
        if settings.backend == "postgres":
            psycopg = importlib.import_module("psycopg")
            return cls(
                psycopg.connect,
                host=settings.host,
                port=settings.port,
                user=settings.username,
                password=settings.password,
                dbname=settings.database_name,
                **options,
            )
        pymysql = importlib.import_module("pymysql")
        return cls(
            pymysql.connect,
            host=settings.host,
            port=settings.port,
            user=settings.username,
            password=settings.password,
            database=settings.database_name,
            **options,
        )

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def closed(self) -> bool:
        return self._closed

    def acquire(self, timeout: float | None = None) -> Any:
        """Borrow one connection from the pool.

        Raises:
            PoolError: If the pool is closed or no connection became
                available within `timeout` seconds.
        """

        timeout = self._acquire_timeout if timeout is None else timeout
        with self._condition:
            deadline = None if timeout is None else (time.monotonic() + timeout)
            while True:
                self._ensure_open()
                if self._idle:
                    conn = self._idle.pop()
                    self._borrowed_ids.add(id(conn))
                    return conn

                if self._known < self._max_size:
                    self._known += 1
                    break

                if deadline is None:
                    self._condition.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning("pool_exhausted", max_size=self._max_size)
                    raise PoolError("Timed out waiting for a pooled DB connection.")
                self._condition.wait(remaining)

        try:
            conn = self._connect(*self._connect_args, **self._connect_kwargs)
        except BaseException:
            with self._condition:
                self._known -= 1
                self._condition.notify()
            raise

        with self._condition:
            self._borrowed_ids.add(id(conn))
        return conn

    def release(self, conn: Any) -> None:
        """Return one borrowed connection to the pool."""

        conn_id = id(conn)
        with self._condition:
            if conn_id not in self._borrowed_ids:
                raise ValueError("Connection was not acquired from this pool or already released.")
            self._borrowed_ids.remove(conn_id)

        reusable = True
        try:
            if _in_transaction(conn):
                conn.rollback()
            if self._session_reset_hook is not None:
                self._session_reset_hook(conn)
        except Exception as exc:
            logger.warning("pool_release_cleanup_failed", error=str(exc))
            reusable = False

        with self._condition:
            if self._closed or not reusable:
                self._known -= 1
            else:
                self._idle.append(conn)
            self._condition.notify()

        if self._closed or not reusable:
            _close_connection(conn)

    @contextlib.contextmanager
    def connection(self, timeout: float | None = None) -> Iterator[Any]:
        """Borrow and auto-release one connection with a context manager."""

        conn = self.acquire(timeout=timeout)
        try:
            yield conn
        finally:
            self.release(conn)

    def close(self) -> None:
        """Close all idle pooled connections and prevent future acquire."""

        with self._condition:
            if self._closed:
                return
            self._closed = True
            idle = list(self._idle)
            self._idle.clear()
            self._known -= len(idle)
            self._condition.notify_all()

        for conn in idle:
            _close_connection(conn)

    def _ensure_open(self) -> None:
        if self._closed:
            raise PoolError("PoolConnector is closed.")


def _is_sqlite_connect(connect: Callable[..., Any]) -> bool:
    module_name = getattr(connect, "__module__", "") or ""
    return module_name.startswith("sqlite3") or module_name.startswith("_sqlite3")


def _close_connection(conn: Any) -> None:
    close = getattr(conn, "close", None)
    if callable(close):
        close()


def _in_transaction(conn: Any) -> bool:
    in_tx = getattr(conn, "in_transaction", None)
    if isinstance(in_tx, bool):
        return in_tx

    info = getattr(conn, "info", None)
    tx_status = getattr(info, "transaction_status", None)
    if tx_status is not None:
        # psycopg3: 0 = idle.
        return tx_status != 0

    status = getattr(conn, "status", None)
    if status is not None and "psycopg2" in type(conn).__module__.lower():
        # psycopg2: STATUS_READY == 1 means idle.
        return status != 1

    return False
