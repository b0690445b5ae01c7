"""Core port contracts used by adapters, repositories and the query builder."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager, AbstractContextManager
from typing import Any, List, Optional, Protocol, Sequence

from .errors import DbError
from .types import MaybeRow, Params, Rows
from .values import Value


class ParamCounterPort(Protocol):
    position: int

    def take(self, count: int) -> int: ...


class DialectPort(Protocol):
    """Dialect behavior required by statement rendering and execution."""

    name: str
    paramstyle: str

    @property
    def is_numbered(self) -> bool: ...

    def placeholder(self, position: int) -> str: ...

    def counter(self, start: int = 1) -> ParamCounterPort: ...

    def placeholders(
        self,
        names: Sequence[str],
        counter: Optional[ParamCounterPort] = None,
    ) -> List[str]: ...

    def begin_statement(self, conn: Any) -> Optional[str]: ...

    def bind_params(self, values: Params) -> List[Any]: ...

    def read_value(self, raw: Any) -> Value: ...

    def translate_error(self, exc: BaseException) -> DbError: ...


class DatabasePort(Protocol):
    """Database handle behavior required by the repository and query builder."""

    dialect: DialectPort

    def placeholders(
        self,
        names: Sequence[str],
        counter: Optional[ParamCounterPort] = None,
    ) -> List[str]: ...

    def execute(self, sql: str, values: Params = ()) -> int: ...

    def query(self, sql: str, values: Params = ()) -> Rows: ...

    def query_one(self, sql: str, values: Params = ()) -> MaybeRow: ...

    def begin(self) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def transaction(self) -> AbstractContextManager[None]: ...


class AsyncDatabasePort(Protocol):
    """Async database handle behavior required by the async repository."""

    dialect: DialectPort

    def placeholders(
        self,
        names: Sequence[str],
        counter: Optional[ParamCounterPort] = None,
    ) -> List[str]: ...

    async def execute(self, sql: str, values: Params = ()) -> int: ...

    async def query(self, sql: str, values: Params = ()) -> Rows: ...

    async def query_one(self, sql: str, values: Params = ()) -> MaybeRow: ...

    async def begin(self) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...

    def transaction(self) -> AbstractAsyncContextManager[None]: ...
