"""Fluent, dialect-aware SQL statement builder.

Each step returns a new builder, and the terminal call renders the statement
and dispatches it to the database handle. Placeholders are allocated when a
clause is declared, not when the statement is rendered: SET clauses are
numbered first, WHERE continues after them and HAVING after WHERE. The flat
list passed to `values()` must follow that same order.

Example::

    rows = (
        SqlBuilder(db, "orders")
        .select("customer_id", "SUM(total) AS spent")
        .where("status =")
        .group_by("customer_id")
        .having("SUM(total) >")
        .order_by("spent DESC")
        .limit(10)
        .values("paid", 100)
        .query_rows()
    )
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from .codecs import row_to_entity
from .contracts import AsyncDatabasePort, DatabasePort
from .types import MaybeRow, Rows
from .values import Value

T = TypeVar("T")
B = TypeVar("B", bound="_BuilderSteps[Any, Any]")

_SELECT = "select"
_INSERT = "insert"
_UPDATE = "update"
_DELETE = "delete"


@dataclass(frozen=True)
class BuilderState:
    """Accumulated clauses of one statement."""

    kind: Optional[str] = None
    table: Optional[str] = None
    columns: Tuple[str, ...] = ()
    set_clauses: Tuple[str, ...] = ()
    where_clauses: Tuple[str, ...] = ()
    joins: Tuple[str, ...] = ()
    group_by: Tuple[str, ...] = ()
    having: Tuple[str, ...] = ()
    order_by: Tuple[str, ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None
    values: Tuple[Value, ...] = ()


DbT = TypeVar("DbT", DatabasePort, AsyncDatabasePort)


class _BuilderSteps(Generic[DbT, T]):
    def __init__(
        self,
        db: DbT,
        table: Optional[str] = None,
        model: Optional[Type[T]] = None,
        state: Optional[BuilderState] = None,
    ):
        self.db = db
        self.model = model
        self.state = state if state is not None else BuilderState(table=table)

    def _with(self: B, **changes: Any) -> B:
        return type(self)(self.db, model=self.model, state=replace(self.state, **changes))

    def _placeholders(self, fragments: Sequence[str], start: int) -> List[str]:
        counter = self.db.dialect.counter(start)
        return self.db.placeholders(list(fragments), counter)

    def find(self: B) -> B:
        """Start a ``SELECT *`` statement."""

        return self.select("*")

    def select(self: B, *columns: str) -> B:
        if not columns:
            raise ValueError("select() needs at least one column.")
        return self._with(kind=_SELECT, columns=tuple(columns))

    def from_(self: B, table: str) -> B:
        return self._with(table=table)

    def where(self: B, *conditions: str) -> B:
        """Append ``column operator`` fragments, each followed by a placeholder.

        ``where("age >", "name =")`` renders ``age > ? AND name = ?``.
        """

        state = self.state
        start = 1 + len(state.set_clauses) + len(state.where_clauses)
        placeholders = self._placeholders(conditions, start)
        clauses = tuple(f"{cond} {ph}" for cond, ph in zip(conditions, placeholders))
        return self._with(where_clauses=state.where_clauses + clauses)

    def order_by(self: B, *columns: str) -> B:
        return self._with(order_by=self.state.order_by + tuple(columns))

    def group_by(self: B, *columns: str) -> B:
        return self._with(group_by=self.state.group_by + tuple(columns))

    def having(self: B, *conditions: str) -> B:
        state = self.state
        start = 1 + len(state.set_clauses) + len(state.where_clauses) + len(state.having)
        placeholders = self._placeholders(conditions, start)
        clauses = tuple(f"{cond} {ph}" for cond, ph in zip(conditions, placeholders))
        return self._with(having=state.having + clauses)

    def join(self: B, table: str, on: str) -> B:
        return self._add_join(f"JOIN {table} ON {on}")

    def left_join(self: B, table: str, on: str) -> B:
        return self._add_join(f"LEFT JOIN {table} ON {on}")

    def cross_join(self: B, table: str) -> B:
        return self._add_join(f"CROSS JOIN {table}")

    def natural_join(self: B, table: str) -> B:
        return self._add_join(f"NATURAL JOIN {table}")

    def _add_join(self: B, clause: str) -> B:
        return self._with(joins=self.state.joins + (clause,))

    def limit(self: B, limit: int) -> B:
        return self._with(limit=_non_negative("limit", limit))

    def offset(self: B, offset: int) -> B:
        return self._with(offset=_non_negative("offset", offset))

    def insert(self: B, *columns: str) -> B:
        """Start an INSERT; without columns every table column is targeted."""

        return self._with(kind=_INSERT, columns=tuple(columns))

    def update(self: B, *columns: str) -> B:
        if not columns:
            raise ValueError("update() needs at least one column.")
        placeholders = self._placeholders(columns, 1)
        clauses = tuple(f"{col} = {ph}" for col, ph in zip(columns, placeholders))
        return self._with(kind=_UPDATE, set_clauses=clauses)

    def delete(self: B) -> B:
        return self._with(kind=_DELETE)

    def values(self: B, *values: Any) -> B:
        """Set the flat parameter list (SET, then WHERE, then HAVING order)."""

        return self._with(values=tuple(Value.of(item) for item in values))

    def render(self) -> Tuple[str, List[Value]]:
        """Render the statement text and its ordered parameter list.

        Raises:
            ValueError: If no statement kind or no table was set.
        """

        state = self.state
        if state.kind is None:
            raise ValueError(
                "No statement kind set; call find(), select(), insert(), update() or delete()."
            )
        if not state.table:
            raise ValueError("No table set; pass one to the builder or call from_().")

        if state.kind == _SELECT:
            sql = self._render_select(state)
        elif state.kind == _INSERT:
            sql = self._render_insert(state)
        elif state.kind == _UPDATE:
            sql = f"UPDATE {state.table} SET {', '.join(state.set_clauses)}"
            sql += _where_sql(state)
        else:
            sql = f"DELETE FROM {state.table}" + _where_sql(state)
        return sql, list(state.values)

    def _render_select(self, state: BuilderState) -> str:
        parts = [f"SELECT {', '.join(state.columns)} FROM {state.table}"]
        if state.joins:
            parts.append(" " + " ".join(state.joins))
        parts.append(_where_sql(state))
        if state.group_by:
            parts.append(f" GROUP BY {', '.join(state.group_by)}")
        if state.having:
            parts.append(f" HAVING {' AND '.join(state.having)}")
        if state.order_by:
            parts.append(f" ORDER BY {', '.join(state.order_by)}")
        if state.limit is not None:
            parts.append(f" LIMIT {state.limit}")
        if state.offset is not None:
            parts.append(f" OFFSET {state.offset}")
        return "".join(parts)

    def _render_insert(self, state: BuilderState) -> str:
        count = len(state.columns) or len(state.values)
        placeholders = self._placeholders(["_"] * count, 1)
        columns_sql = f" ({', '.join(state.columns)})" if state.columns else ""
        return f"INSERT INTO {state.table}{columns_sql} VALUES ({', '.join(placeholders)})"

    def _decode(self, row: Any) -> T:
        if self.model is None:
            raise TypeError("Builder has no entity type bound; use query_rows() instead.")
        return row_to_entity(self.model, row)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.state.kind!r}, table={self.state.table!r})"


class SqlBuilder(_BuilderSteps[DatabasePort, T]):
    """Statement builder executing through a sync `DatabasePort`."""

    def query(self) -> List[T]:
        """Run the statement and decode every row into the bound entity type."""

        return [self._decode(row) for row in self.query_rows()]

    def query_rows(self) -> Rows:
        sql, values = self.render()
        return self.db.query(sql, values)

    def query_one(self) -> Optional[T]:
        row = self.query_one_row()
        return None if row is None else self._decode(row)

    def query_one_row(self) -> MaybeRow:
        sql, values = self.render()
        return self.db.query_one(sql, values)

    def execute(self) -> int:
        """Run the statement and return the affected row count."""

        sql, values = self.render()
        return self.db.execute(sql, values)


class AsyncSqlBuilder(_BuilderSteps[AsyncDatabasePort, T]):
    """Statement builder executing through an `AsyncDatabasePort`."""

    async def query(self) -> List[T]:
        return [self._decode(row) for row in await self.query_rows()]

    async def query_rows(self) -> Rows:
        sql, values = self.render()
        return await self.db.query(sql, values)

    async def query_one(self) -> Optional[T]:
        row = await self.query_one_row()
        return None if row is None else self._decode(row)

    async def query_one_row(self) -> MaybeRow:
        sql, values = self.render()
        return await self.db.query_one(sql, values)

    async def execute(self) -> int:
        sql, values = self.render()
        return await self.db.execute(sql, values)


def _where_sql(state: BuilderState) -> str:
    if not state.where_clauses:
        return ""
    return f" WHERE {' AND '.join(state.where_clauses)}"


def _non_negative(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}.")
    if value < 0:
        raise ValueError(f"{name} must be >= 0.")
    return value
