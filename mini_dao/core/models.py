"""Entity contract: dataclass records that name their table and primary key."""

from __future__ import annotations

from dataclasses import Field, fields, is_dataclass
from typing import Any, ClassVar, List, Protocol, Type, TypeVar


class DataclassModel(Protocol):
    """Protocol for supported dataclass model types."""

    __dataclass_fields__: ClassVar[dict[str, Any]]


T = TypeVar("T", bound=DataclassModel)


class Entity:
    """Optional base class for entity dataclasses.

    Subclasses declare ``__table__`` and, when the key column is not ``id``,
    ``__primary_key__``. Either classmethod may also be overridden directly.

    Example::

        @dataclass
        class Product(Entity):
            __table__ = "products"

            id: int
            name: str
    """

    __table__: ClassVar[str]
    __primary_key__: ClassVar[str] = "id"

    @classmethod
    def table_name(cls) -> str:
        name = getattr(cls, "__table__", None)
        if not isinstance(name, str) or not name:
            raise TypeError(f"{cls.__name__} must declare a non-empty __table__.")
        return name

    @classmethod
    def primary_key_column(cls) -> str:
        return cls.__primary_key__


def require_dataclass_model(cls: Type[Any]) -> None:
    """Validate that a class is a dataclass model."""

    if not isinstance(cls, type) or not is_dataclass(cls):
        name = getattr(cls, "__name__", type(cls).__name__)
        raise TypeError(f"{name} must be a dataclass.")


def table_name(model_or_cls: Any) -> str:
    """Resolve the table name supplied by a model class or instance.

    Uses ``table_name()`` when the class defines it, otherwise the
    ``__table__`` attribute. Table names are never derived from class names.
    """

    cls = model_or_cls if isinstance(model_or_cls, type) else type(model_or_cls)
    resolver = getattr(cls, "table_name", None)
    if callable(resolver):
        return resolver()
    name = getattr(cls, "__table__", None)
    if isinstance(name, str) and name:
        return name
    raise TypeError(
        f"{cls.__name__} must define table_name() or a non-empty __table__."
    )


def primary_key_column(cls: Type[DataclassModel]) -> str:
    """Resolve the primary key column supplied by a model class.

    Uses ``primary_key_column()`` or ``__primary_key__`` when present,
    otherwise the single field declared with ``metadata={"pk": True}``.
    """

    resolver = getattr(cls, "primary_key_column", None)
    if callable(resolver):
        return resolver()
    name = getattr(cls, "__primary_key__", None)
    if isinstance(name, str) and name:
        return name

    pks = [f for f in model_fields(cls) if f.metadata.get("pk")]
    if not pks:
        raise ValueError(
            f"{cls.__name__} has no PK field. Use field(metadata={{'pk': True}})."
        )
    if len(pks) != 1:
        raise ValueError("mini_dao supports exactly 1 PK column.")
    return pks[0].name


def model_fields(cls: Type[DataclassModel]) -> List[Field[Any]]:
    """Return dataclass fields for a model type in declaration order."""

    require_dataclass_model(cls)
    return list(fields(cls))
