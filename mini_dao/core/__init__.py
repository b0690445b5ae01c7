"""Public core API for marshaling, query building, and repository operations."""

from .blob import pack_values, unpack_values
from .codecs import (
    ValueDecoder,
    ValueEncoder,
    decode_entity,
    decode_value,
    encode_entity,
    encode_value,
    entity_to_pairs,
    row_to_entity,
)
from .contracts import AsyncDatabasePort, DatabasePort, DialectPort
from .errors import (
    ConversionError,
    DbConnectionError,
    DbError,
    PoolError,
    QueryError,
    QueryErrorKind,
    TransactionError,
)
from .metadata import EntityMetadata, build_entity_metadata
from .models import DataclassModel, Entity, model_fields, primary_key_column, table_name
from .query_builder import AsyncSqlBuilder, BuilderState, SqlBuilder
from .repository import Repository
from .repository_async import AsyncRepository
from .shapes import FieldSpec, Shape, ShapeKind, entity_shape
from .values import Row, Value, ValueKind

__all__ = [
    "AsyncDatabasePort",
    "AsyncRepository",
    "AsyncSqlBuilder",
    "BuilderState",
    "ConversionError",
    "DataclassModel",
    "DatabasePort",
    "DbConnectionError",
    "DbError",
    "DialectPort",
    "Entity",
    "EntityMetadata",
    "FieldSpec",
    "PoolError",
    "QueryError",
    "QueryErrorKind",
    "Repository",
    "Row",
    "Shape",
    "ShapeKind",
    "SqlBuilder",
    "TransactionError",
    "Value",
    "ValueDecoder",
    "ValueEncoder",
    "ValueKind",
    "build_entity_metadata",
    "decode_entity",
    "decode_value",
    "encode_entity",
    "encode_value",
    "entity_shape",
    "entity_to_pairs",
    "model_fields",
    "pack_values",
    "primary_key_column",
    "row_to_entity",
    "table_name",
    "unpack_values",
]
