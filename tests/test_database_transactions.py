from __future__ import annotations

import unittest
from typing import Any, List

from structlog.testing import capture_logs

from mini_dao import (
    Database,
    PoolConnector,
    PoolError,
    Repository,
    SQLiteDialect,
    TransactionError,
)
from tests._entities import PRODUCTS_DDL, Product, SQLiteFile


class _FakeCursor:
    def __init__(self, conn: "_FakeConn") -> None:
        self.conn = conn
        self.rowcount = -1
        self.description = None

    def execute(self, sql: str, params: Any = None) -> None:
        self.conn.executed.append(sql)
        if sql == self.conn.fail_on:
            raise RuntimeError(f"cannot run {sql}")

    def close(self) -> None:
        pass


class _FakeConn:
    in_transaction = False

    def __init__(self) -> None:
        self.executed: List[str] = []
        self.fail_on: str | None = None
        self.fail_commit = False
        self.fail_rollback = False
        self.commits = 0

    def cursor(self) -> _FakeCursor:
        return _FakeCursor(self)

    def commit(self) -> None:
        if self.fail_commit:
            raise RuntimeError("commit refused")
        self.commits += 1

    def rollback(self) -> None:
        if self.fail_rollback:
            raise RuntimeError("rollback refused")

    def close(self) -> None:
        pass


class TransactionSQLiteTests(unittest.TestCase):
    def setUp(self) -> None:
        self.file = SQLiteFile()
        self.db = self.file.database()
        self.db.execute(PRODUCTS_DDL)
        self.repo = Repository[Product](self.db, Product)

    def tearDown(self) -> None:
        self.db.close()
        self.file.cleanup()

    def test_rollback_discards_work(self) -> None:
        self.repo.begin()
        self.repo.create(Product(id=2, name="Gadget", stock=10))
        self.repo.rollback()

        self.assertIsNone(self.repo.find_by_id(2))

    def test_commit_keeps_work_and_reads_see_uncommitted_writes(self) -> None:
        self.db.begin()
        self.repo.create(Product(id=3, name="Bolt", stock=4))
        self.assertEqual(self.repo.find_by_id(3).name, "Bolt")
        self.db.commit()

        self.assertFalse(self.db.in_transaction)
        self.assertEqual(self.repo.find_by_id(3).stock, 4)

    def test_second_begin_fails_and_keeps_open_transaction(self) -> None:
        self.db.begin()
        self.repo.create(Product(id=5, name="Nut", stock=1))

        with self.assertRaises(TransactionError):
            self.db.begin()

        self.assertTrue(self.db.in_transaction)
        self.assertEqual(self.repo.count(), 1)
        self.db.rollback()
        self.assertEqual(self.repo.count(), 0)

    def test_commit_or_rollback_without_transaction(self) -> None:
        with self.assertRaises(TransactionError):
            self.db.commit()
        with self.assertRaises(TransactionError):
            self.db.rollback()

    def test_transaction_context_manager(self) -> None:
        with self.repo.transaction():
            self.repo.create(Product(id=1, name="Kept", stock=1))

        with self.assertRaises(RuntimeError):
            with self.db.transaction():
                self.repo.create(Product(id=2, name="Dropped", stock=1))
                raise RuntimeError("abort")

        self.assertEqual([p.name for p in self.repo.find_all()], ["Kept"])
        self.assertFalse(self.db.in_transaction)

    def test_transaction_events_are_logged(self) -> None:
        with capture_logs() as logs:
            self.db.begin()
            self.db.rollback()

        events = [entry["event"] for entry in logs]
        self.assertIn("transaction_begin", events)
        self.assertIn("transaction_rollback", events)

    def test_close_rolls_back_open_transaction(self) -> None:
        self.db.begin()
        self.repo.create(Product(id=8, name="Orphan", stock=1))
        self.db.close()

        reopened = self.file.database()
        try:
            self.assertIsNone(Repository(reopened, Product).find_by_id(8))
        finally:
            reopened.close()


class TransactionFailureTests(unittest.TestCase):
    def setUp(self) -> None:
        self.conn = _FakeConn()
        self.pool = PoolConnector(lambda: self.conn, max_size=1, acquire_timeout=0.05)
        self.db = Database(self.pool, SQLiteDialect())

    def tearDown(self) -> None:
        self.db.close()

    def test_failed_commit_frees_transaction_slot(self) -> None:
        self.db.begin()
        self.conn.fail_commit = True

        with self.assertRaises(TransactionError) as ctx:
            self.db.commit()
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)
        self.assertFalse(self.db.in_transaction)

        self.conn.fail_commit = False
        self.db.begin()
        self.db.commit()
        self.assertEqual(self.conn.commits, 1)

    def test_failed_begin_releases_connection(self) -> None:
        self.conn.fail_on = "BEGIN"
        with self.assertRaises(TransactionError):
            self.db.begin()
        self.assertFalse(self.db.in_transaction)

        with self.pool.connection() as conn:
            self.assertIs(conn, self.conn)

    def test_exhausted_pool_raises_pool_error(self) -> None:
        self.db.begin()
        other = Database(self.pool, SQLiteDialect())

        with self.assertRaises(PoolError):
            other.execute("SELECT 1")
        self.db.rollback()

    def test_statement_outside_transaction_commits(self) -> None:
        self.assertEqual(self.db.execute("DELETE FROM t"), 0)
        self.assertEqual(self.conn.executed, ["DELETE FROM t"])
        self.assertEqual(self.conn.commits, 1)

    def test_close_releases_pool_when_rollback_fails(self) -> None:
        self.db.begin()
        self.conn.fail_rollback = True

        with self.assertRaises(TransactionError):
            self.db.close()
        self.assertTrue(self.pool.closed)
        self.assertFalse(self.db.in_transaction)
        self.db.close()


if __name__ == "__main__":
    unittest.main()
