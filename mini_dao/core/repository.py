"""Entity-bound CRUD adapter for dataclass-based entities."""

from __future__ import annotations

from collections.abc import Sequence as SequenceABC
from contextlib import AbstractContextManager
from typing import Any, Generic, List, Optional, Sequence, Tuple, Type, TypeVar, Union

from .codecs import encode_value, entity_to_pairs, row_to_entity
from .contracts import DatabasePort, DialectPort
from .metadata import EntityMetadata, build_entity_metadata
from .models import DataclassModel, require_dataclass_model
from .query_builder import SqlBuilder
from .types import Rows
from .values import Row, Value

T = TypeVar("T", bound=DataclassModel)

Statement = Tuple[str, List[Value]]
ConditionInput = Union[str, Sequence[str]]


class EntityStatements(Generic[T]):
    """Renders the fixed CRUD statements for one entity type.

    Shared by `Repository` and `AsyncRepository`; nothing here touches the
    database, it only produces SQL text plus the ordered parameter list.
    """

    db: Any
    meta: EntityMetadata[T]

    def _bind(self, db: Any, model: Type[T]) -> None:
        require_dataclass_model(model)
        self.db = db
        self.model = model
        self.d: DialectPort = db.dialect
        self.meta = build_entity_metadata(model)

    def _insert_statement(self, obj: T) -> Statement:
        pairs = self._pairs(obj)
        placeholders = self.db.placeholders([name for name, _ in pairs])
        sql = f"INSERT INTO {self.meta.table} VALUES ({', '.join(placeholders)})"
        return sql, [value for _, value in pairs]

    def _find_by_id_statement(self, id: Any) -> Statement:
        (ph,) = self.db.placeholders([self.meta.pk])
        sql = f"SELECT * FROM {self.meta.table} WHERE {self.meta.pk} = {ph}"
        return sql, [self._key_value(id)]

    def _find_all_statement(self) -> Statement:
        return f"SELECT * FROM {self.meta.table}", []

    def _count_statement(self) -> Statement:
        return f"SELECT COUNT(*) FROM {self.meta.table}", []

    def _update_statement(self, obj: T) -> Statement:
        """Render ``UPDATE ... SET ... WHERE pk = ?`` with the key bound last.

        Raises:
            ValueError: If the encoded entity lacks the primary key column or
                has no other columns to set.
        """

        pk = self.meta.pk
        pairs = self._pairs(obj)
        key = [value for name, value in pairs if name == pk]
        if not key:
            raise ValueError(
                f"{self.model.__name__} has no field for primary key column {pk!r}."
            )
        rest = [(name, value) for name, value in pairs if name != pk]
        if not rest:
            raise ValueError(
                "Cannot UPDATE entity with no columns besides the primary key."
            )

        counter = self.d.counter()
        set_parts = []
        values: List[Value] = []
        for name, value in rest:
            (ph,) = self.db.placeholders([name], counter)
            set_parts.append(f"{name} = {ph}")
            values.append(value)
        values.append(key[0])
        (pk_ph,) = self.db.placeholders([pk], counter)

        sql = f"UPDATE {self.meta.table} SET {', '.join(set_parts)} WHERE {pk} = {pk_ph}"
        return sql, values

    def _delete_statement(self, id: Any) -> Statement:
        (ph,) = self.db.placeholders([self.meta.pk])
        sql = f"DELETE FROM {self.meta.table} WHERE {self.meta.pk} = {ph}"
        return sql, [self._key_value(id)]

    def _condition_statement(
        self, conditions: ConditionInput, values: Sequence[Any]
    ) -> Statement:
        fragments = [conditions] if isinstance(conditions, str) else list(conditions)
        if not isinstance(values, SequenceABC) or isinstance(values, (str, bytes)):
            raise TypeError("values must be a sequence with one item per condition.")
        if len(fragments) != len(values):
            raise ValueError(
                f"Got {len(fragments)} conditions but {len(values)} values."
            )

        sql = f"SELECT * FROM {self.meta.table}"
        if fragments:
            placeholders = self.db.placeholders(fragments)
            where = " AND ".join(
                f"{cond} {ph}" for cond, ph in zip(fragments, placeholders)
            )
            sql += f" WHERE {where}"
        return sql, [Value.of(item) for item in values]

    def _pairs(self, obj: T) -> List[Tuple[str, Value]]:
        if not isinstance(obj, self.model):
            raise TypeError(
                f"Expected {self.model.__name__}, got {type(obj).__name__}."
            )
        return entity_to_pairs(obj)

    def _key_value(self, id: Any) -> Value:
        for spec in self.meta.shape.fields:
            if spec.name == self.meta.pk:
                return encode_value(id, spec.shape)
        return Value.of(id)

    def _decode_rows(self, rows: Rows) -> List[T]:
        return [row_to_entity(self.model, row) for row in rows]

    def _decode_row(self, row: Optional[Row]) -> Optional[T]:
        return None if row is None else row_to_entity(self.model, row)


class Repository(EntityStatements[T]):
    """CRUD adapter binding one entity type to a `DatabasePort`.

    Example::

        @dataclass
        class Product(Entity):
            __table__ = "products"

            id: int
            name: str
            stock: int

        products = Repository(db, Product)
        products.create(Product(id=1, name="Widget", stock=100))
        products.find_by_id(1)
    """

    def __init__(self, db: DatabasePort, model: Type[T]):
        """Create repository for an entity type.

        Args:
            db: Database handle implementing `DatabasePort`.
            model: Dataclass entity type.

        Raises:
            ConversionError: If the entity uses an unsupported field type.
        """

        self._bind(db, model)

    def create(self, obj: T) -> int:
        """Insert one entity and return the affected row count."""

        return self.db.execute(*self._insert_statement(obj))

    def find_by_id(self, id: Any) -> Optional[T]:
        return self._decode_row(self.db.query_one(*self._find_by_id_statement(id)))

    def find_all(self) -> List[T]:
        return self._decode_rows(self.db.query(*self._find_all_statement()))

    def update(self, obj: T) -> int:
        """Update the row identified by the entity's primary key.

        Returns:
            Number of affected rows.
        """

        return self.db.execute(*self._update_statement(obj))

    def delete(self, id: Any) -> int:
        return self.db.execute(*self._delete_statement(id))

    def find_by_condition(
        self, conditions: ConditionInput, values: Sequence[Any]
    ) -> List[T]:
        """Find entities matching ``column operator`` fragments joined by AND.

        ``find_by_condition(["stock >", "name ="], [10, "Widget"])``
        """

        return self._decode_rows(
            self.db.query(*self._condition_statement(conditions, values))
        )

    def count(self) -> int:
        row = self.db.query_one(*self._count_statement())
        return 0 if row is None else int(row.values[0].data)

    def prepare(self) -> SqlBuilder[T]:
        """Return a query builder bound to this entity's table and type."""

        return SqlBuilder(self.db, self.meta.table, self.model)

    def begin(self) -> None:
        self.db.begin()

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def transaction(self) -> AbstractContextManager[Any]:
        return self.db.transaction()
