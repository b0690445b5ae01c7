"""Async DB adapter implementation for the core async database port."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any, List, Optional, Tuple

import structlog

from ...config import DatabaseSettings, get_settings
from ...core._async_utils import _maybe_await, _maybe_close
from ...core.errors import DbConnectionError, PoolError, TransactionError
from ...core.types import MaybeRow, Params, Rows
from .database import _build_row, _columns, _rowcount
from .dialects import Dialect, ParamCounter, dialect_for
from .pool_connector import PoolConnector

logger = structlog.get_logger()


class AsyncDatabase:
    """Async counterpart of `Database`.

    Connection and cursor methods may be plain or awaitable, so the same
    handle drives native async drivers and sync DB-API connections alike.
    The transaction slot is guarded by an `asyncio.Lock`.
    """

    def __init__(self, pool: PoolConnector, dialect: Dialect):
        self.pool = pool
        self.dialect = dialect
        self._tx_conn: Any | None = None
        self._tx_lock = asyncio.Lock()
        self._closed = False

    @classmethod
    def connect(cls, settings: DatabaseSettings | None = None) -> AsyncDatabase:
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
        return self.dialect.placeholders(names, counter)

    async def execute(self, sql: str, values: Params = ()) -> int:
        """Execute one statement and return the affected row count."""

        return await self._run(sql, values, _rowcount_async)

    async def query(self, sql: str, values: Params = ()) -> Rows:
        """Execute a query and return every result row."""

        return await self._run(sql, values, self._fetch_all)

    async def query_one(self, sql: str, values: Params = ()) -> MaybeRow:
        """Execute a query and return its first row, or `None`."""

        return await self._run(sql, values, self._fetch_one)

    async def ping(self) -> bool:
        return await self.query_one("SELECT 1") is not None

    async def begin(self) -> None:
        """Reserve one pooled connection and start a transaction on it."""

        async with self._tx_lock:
            if self._tx_conn is not None:
                raise TransactionError("Transaction already open on this database handle.")
            conn = await self._acquire()
            try:
                statement = self.dialect.begin_statement(conn)
                if statement is not None:
                    cur = await _maybe_await(conn.cursor())
                    try:
                        await _maybe_await(cur.execute(statement))
                    finally:
                        await _maybe_close(cur)
            except Exception as exc:
                self.pool.release(conn)
                raise TransactionError(f"Failed to begin transaction: {exc}", cause=exc) from exc
            self._tx_conn = conn
        logger.info("transaction_begin", dialect=self.dialect.name)

    async def commit(self) -> None:
        await self._finish("commit")

    async def rollback(self) -> None:
        await self._finish("rollback")

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncDatabase]:
        """Provide async begin/commit/rollback transaction scope."""

        await self.begin()
        try:
            yield self
        except BaseException:
            await self.rollback()
            raise
        else:
            await self.commit()

    async def aclose(self) -> None:
        """Roll back any open transaction and close the pool."""

        if self._closed:
            return
        self._closed = True
        try:
            if self._tx_conn is not None:
                logger.warning("transaction_open_on_close", dialect=self.dialect.name)
                await self.rollback()
        finally:
            self.pool.close()

    async def __aenter__(self) -> AsyncDatabase:
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.aclose()

    async def _finish(self, action: str) -> None:
        async with self._tx_lock:
            conn = self._tx_conn
            self._tx_conn = None
        if conn is None:
            raise TransactionError(f"No open transaction to {action}.")
        try:
            await _maybe_await(getattr(conn, action)())
        except Exception as exc:
            logger.warning(f"transaction_{action}_failed", error=str(exc))
            raise TransactionError(f"Failed to {action} transaction: {exc}", cause=exc) from exc
        finally:
            self.pool.release(conn)
        logger.info(f"transaction_{action}", dialect=self.dialect.name)

    async def _acquire(self) -> Any:
        # The pool blocks on a threading.Condition, so wait in a worker thread.
        pending = asyncio.ensure_future(asyncio.to_thread(self.pool.acquire))
        try:
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            pending.add_done_callback(self._release_unclaimed)
            raise
        except PoolError:
            raise
        except Exception as exc:
            raise DbConnectionError(f"Failed to open connection: {exc}", cause=exc) from exc

    def _release_unclaimed(self, pending: asyncio.Future[Any]) -> None:
        if not pending.cancelled() and pending.exception() is None:
            self.pool.release(pending.result())

    @contextlib.asynccontextmanager
    async def _connection(self) -> AsyncIterator[Tuple[Any, bool]]:
        async with self._tx_lock:
            if self._tx_conn is not None:
                yield self._tx_conn, True
                return
        conn = await self._acquire()
        try:
            yield conn, False
        finally:
            self.pool.release(conn)

    async def _run(self, sql: str, values: Params, fetch: Callable[[Any], Any]) -> Any:
        params = self.dialect.bind_params(values)
        async with self._connection() as (conn, reserved):
            cur = await _maybe_await(conn.cursor())
            try:
                if params:
                    await _maybe_await(cur.execute(sql, params))
                else:
                    await _maybe_await(cur.execute(sql))
                result = await fetch(cur)
                if not reserved:
                    await _maybe_await(conn.commit())
            except Exception as exc:
                error = self.dialect.translate_error(exc)
                logger.warning(
                    "sql_failed",
                    sql=sql,
                    error=str(error),
                    kind=getattr(getattr(error, "kind", None), "value", type(error).__name__),
                )
                if not reserved:
                    await _rollback_transient(conn)
                if error is exc:
                    raise
                raise error from exc
            finally:
                await _maybe_close(cur)
        logger.debug("sql_executed", sql=sql, params=len(params), in_transaction=reserved)
        return result

    async def _fetch_all(self, cur: Any) -> Rows:
        rows = await _maybe_await(cur.fetchall())
        columns = _columns(cur)
        return [_build_row(self.dialect, columns, raw) for raw in rows]

    async def _fetch_one(self, cur: Any) -> MaybeRow:
        raw = await _maybe_await(cur.fetchone())
        if raw is None:
            return None
        return _build_row(self.dialect, _columns(cur), raw)


async def _rowcount_async(cur: Any) -> int:
    return _rowcount(cur)


async def _rollback_transient(conn: Any) -> None:
    try:
        await _maybe_await(conn.rollback())
    except Exception as exc:
        logger.warning("transient_rollback_failed", error=str(exc))
