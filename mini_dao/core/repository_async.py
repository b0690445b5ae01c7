"""Async entity-bound CRUD adapter."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Any, List, Optional, Sequence, Type, TypeVar

from .contracts import AsyncDatabasePort
from .models import DataclassModel
from .query_builder import AsyncSqlBuilder
from .repository import ConditionInput, EntityStatements

T = TypeVar("T", bound=DataclassModel)


class AsyncRepository(EntityStatements[T]):
    """Async CRUD adapter backed by an `AsyncDatabasePort` implementation."""

    def __init__(self, db: AsyncDatabasePort, model: Type[T]):
        self._bind(db, model)

    async def create(self, obj: T) -> int:
        return await self.db.execute(*self._insert_statement(obj))

    async def find_by_id(self, id: Any) -> Optional[T]:
        return self._decode_row(await self.db.query_one(*self._find_by_id_statement(id)))

    async def find_all(self) -> List[T]:
        return self._decode_rows(await self.db.query(*self._find_all_statement()))

    async def update(self, obj: T) -> int:
        return await self.db.execute(*self._update_statement(obj))

    async def delete(self, id: Any) -> int:
        return await self.db.execute(*self._delete_statement(id))

    async def find_by_condition(
        self, conditions: ConditionInput, values: Sequence[Any]
    ) -> List[T]:
        rows = await self.db.query(*self._condition_statement(conditions, values))
        return self._decode_rows(rows)

    async def count(self) -> int:
        row = await self.db.query_one(*self._count_statement())
        return 0 if row is None else int(row.values[0].data)

    def prepare(self) -> AsyncSqlBuilder[T]:
        return AsyncSqlBuilder(self.db, self.meta.table, self.model)

    async def begin(self) -> None:
        await self.db.begin()

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

    def transaction(self) -> AbstractAsyncContextManager[Any]:
        return self.db.transaction()
