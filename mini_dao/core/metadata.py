"""Entity metadata extraction used by adapter SQL generation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Type, TypeVar

from .models import (
    DataclassModel,
    primary_key_column,
    require_dataclass_model,
    table_name,
)
from .shapes import Shape, entity_shape

T = TypeVar("T", bound=DataclassModel)


@dataclass(frozen=True)
class EntityMetadata(Generic[T]):
    """Normalized entity description used by adapter operations."""

    model: Type[T]
    table: str
    pk: str
    shape: Shape


def build_entity_metadata(model: Type[T]) -> EntityMetadata[T]:
    """Build entity metadata from the entity contract and its dataclass fields.

    Args:
        model: Dataclass entity type.

    Returns:
        Immutable metadata object used by `Repository` and the query builder.

    Raises:
        TypeError: If the model is not a dataclass or declares no table name.
        ValueError: If no primary key column can be resolved.
        ConversionError: If any field uses an unsupported annotation.
    """

    require_dataclass_model(model)
    return EntityMetadata(
        model=model,
        table=table_name(model),
        pk=primary_key_column(model),
        shape=entity_shape(model),
    )
