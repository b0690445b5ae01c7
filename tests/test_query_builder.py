from __future__ import annotations

import sqlite3
import unittest

from mini_dao import (
    Database,
    PoolConnector,
    PostgresNumberedDialect,
    SQLiteDialect,
    SQLiteNumberedDialect,
    SqlBuilder,
    Value,
)


def _database(dialect) -> Database:
    # Rendering never touches the pool; connections are created lazily.
    return Database(PoolConnector(sqlite3.connect, ":memory:", max_size=1), dialect)


class NumberedRenderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = _database(PostgresNumberedDialect())

    def tearDown(self) -> None:
        self.db.close()

    def builder(self, table: str = "users") -> SqlBuilder:
        return SqlBuilder(self.db, table)

    def test_update_numbers_set_before_where(self) -> None:
        sql, values = (
            self.builder().update("name", "age").where("id =").values("Ann", 30, 7).render()
        )

        self.assertEqual(sql, "UPDATE users SET name = $1, age = $2 WHERE id = $3")
        self.assertEqual(values, [Value.text("Ann"), Value.bigint(30), Value.bigint(7)])

    def test_select_with_every_clause_in_order(self) -> None:
        sql, values = (
            self.builder()
            .select("dept", "COUNT(*)")
            .where("age >", "active =")
            .group_by("dept")
            .having("COUNT(*) >")
            .order_by("dept")
            .limit(5)
            .offset(10)
            .values(18, True, 3)
            .render()
        )

        self.assertEqual(
            sql,
            "SELECT dept, COUNT(*) FROM users WHERE age > $1 AND active = $2 "
            "GROUP BY dept HAVING COUNT(*) > $3 ORDER BY dept LIMIT 5 OFFSET 10",
        )
        self.assertEqual(len(values), 3)

    def test_joins_render_between_from_and_where(self) -> None:
        sql, _ = (
            self.builder("orders o")
            .select("o.id", "c.name")
            .join("customers c", "c.id = o.customer_id")
            .left_join("refunds r", "r.order_id = o.id")
            .cross_join("regions")
            .natural_join("audit")
            .where("o.total >")
            .render()
        )

        self.assertEqual(
            sql,
            "SELECT o.id, c.name FROM orders o "
            "JOIN customers c ON c.id = o.customer_id "
            "LEFT JOIN refunds r ON r.order_id = o.id "
            "CROSS JOIN regions NATURAL JOIN audit WHERE o.total > $1",
        )

    def test_insert_with_and_without_columns(self) -> None:
        sql, values = self.builder().insert("id", "name").values(1, "Ann").render()
        self.assertEqual(sql, "INSERT INTO users (id, name) VALUES ($1, $2)")
        self.assertEqual(values, [Value.bigint(1), Value.text("Ann")])

        sql, _ = self.builder().insert().values(1, "Ann", None).render()
        self.assertEqual(sql, "INSERT INTO users VALUES ($1, $2, $3)")

    def test_delete(self) -> None:
        sql, _ = self.builder().delete().where("id =").values(9).render()
        self.assertEqual(sql, "DELETE FROM users WHERE id = $1")

    def test_find_and_from(self) -> None:
        sql, values = SqlBuilder(self.db).find().from_("users").render()
        self.assertEqual(sql, "SELECT * FROM users")
        self.assertEqual(values, [])

    def test_multiple_where_calls_continue_numbering(self) -> None:
        sql, _ = self.builder().find().where("a =").where("b =", "c <").render()
        self.assertEqual(sql, "SELECT * FROM users WHERE a = $1 AND b = $2 AND c < $3")


class BuilderValidationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = _database(SQLiteDialect())

    def tearDown(self) -> None:
        self.db.close()

    def test_render_without_kind_or_table(self) -> None:
        with self.assertRaises(ValueError):
            SqlBuilder(self.db, "users").where("id =").render()
        with self.assertRaises(ValueError):
            SqlBuilder(self.db).find().render()

    def test_limit_and_offset_must_be_non_negative_ints(self) -> None:
        builder = SqlBuilder(self.db, "users").find()
        with self.assertRaises(ValueError):
            builder.limit(-1)
        with self.assertRaises(ValueError):
            builder.offset(-5)
        with self.assertRaises(TypeError):
            builder.limit("10")
        with self.assertRaises(TypeError):
            builder.limit(True)

    def test_select_and_update_need_columns(self) -> None:
        with self.assertRaises(ValueError):
            SqlBuilder(self.db, "users").select()
        with self.assertRaises(ValueError):
            SqlBuilder(self.db, "users").update()

    def test_steps_return_new_builders(self) -> None:
        base = SqlBuilder(self.db, "users").find()
        narrowed = base.where("id =")

        self.assertIsNot(base, narrowed)
        self.assertEqual(base.render()[0], "SELECT * FROM users")
        self.assertEqual(narrowed.render()[0], "SELECT * FROM users WHERE id = ?")

    def test_qmark_and_sqlite_numbered_styles(self) -> None:
        sql, _ = SqlBuilder(self.db, "t").update("a").where("b =").render()
        self.assertEqual(sql, "UPDATE t SET a = ? WHERE b = ?")

        numbered = _database(SQLiteNumberedDialect())
        try:
            sql, _ = SqlBuilder(numbered, "t").update("a").where("b =").render()
            self.assertEqual(sql, "UPDATE t SET a = ?1 WHERE b = ?2")
        finally:
            numbered.close()

    def test_query_without_model_raises_type_error(self) -> None:
        self.db.execute("CREATE TABLE t (id INTEGER)")
        self.db.execute("INSERT INTO t VALUES (1)")
        builder = SqlBuilder(self.db, "t").find()

        self.assertEqual(builder.query_one_row().as_dict(), {"id": 1})
        with self.assertRaises(TypeError):
            builder.query()


if __name__ == "__main__":
    unittest.main()
