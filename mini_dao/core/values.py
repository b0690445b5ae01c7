"""Dialect-neutral value tree exchanged between entities and database rows."""

from __future__ import annotations

import struct
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Sequence, Tuple

_SMALLINT_MIN = -(2**31)
_SMALLINT_MAX = 2**31 - 1
_BIGINT_MIN = -(2**63)
_BIGINT_MAX = 2**63 - 1

_FLOAT32 = struct.Struct("<f")


class ValueKind(str, Enum):
    """Closed set of value variants."""

    NULL = "null"
    BOOL = "bool"
    SMALLINT = "smallint"
    BIGINT = "bigint"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    TEXT = "text"
    BYTES = "bytes"
    TIMESTAMP = "timestamp"
    TABLE = "table"


INTEGER_KINDS = frozenset({ValueKind.SMALLINT, ValueKind.BIGINT})
FLOAT_KINDS = frozenset({ValueKind.FLOAT32, ValueKind.FLOAT64})

TableFields = Tuple[Tuple[str, "Value"], ...]


@dataclass(frozen=True)
class Value:
    """One tagged column or field value.

    Build instances through the named constructors; they validate the payload
    for the variant. `TABLE` values keep their field order and require unique
    field names.
    """

    kind: ValueKind
    data: Any = None

    @classmethod
    def null(cls) -> Value:
        return cls(ValueKind.NULL)

    @classmethod
    def bool_(cls, value: bool) -> Value:
        if not isinstance(value, bool):
            raise TypeError(f"BOOL value requires bool, got {type(value).__name__}.")
        return cls(ValueKind.BOOL, value)

    @classmethod
    def smallint(cls, value: int) -> Value:
        _require_int(value, "SMALLINT")
        if not _SMALLINT_MIN <= value <= _SMALLINT_MAX:
            raise ValueError(f"SMALLINT value out of range: {value}.")
        return cls(ValueKind.SMALLINT, value)

    @classmethod
    def bigint(cls, value: int) -> Value:
        _require_int(value, "BIGINT")
        if not _BIGINT_MIN <= value <= _BIGINT_MAX:
            raise ValueError(f"BIGINT value out of range: {value}.")
        return cls(ValueKind.BIGINT, value)

    @classmethod
    def float32(cls, value: float) -> Value:
        """Build a FLOAT32 value, rounded to single precision."""

        number = _require_float(value, "FLOAT32")
        try:
            (single,) = _FLOAT32.unpack(_FLOAT32.pack(number))
        except OverflowError as exc:
            raise ValueError(f"FLOAT32 value out of range: {value}.") from exc
        return cls(ValueKind.FLOAT32, single)

    @classmethod
    def float64(cls, value: float) -> Value:
        return cls(ValueKind.FLOAT64, _require_float(value, "FLOAT64"))

    @classmethod
    def text(cls, value: str) -> Value:
        if not isinstance(value, str):
            raise TypeError(f"TEXT value requires str, got {type(value).__name__}.")
        return cls(ValueKind.TEXT, value)

    @classmethod
    def bytes_(cls, value: bytes | bytearray | memoryview) -> Value:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise TypeError(f"BYTES value requires bytes, got {type(value).__name__}.")
        return cls(ValueKind.BYTES, bytes(value))

    @classmethod
    def timestamp(cls, value: datetime) -> Value:
        if not isinstance(value, datetime):
            raise TypeError(
                f"TIMESTAMP value requires datetime, got {type(value).__name__}."
            )
        return cls(ValueKind.TIMESTAMP, value)

    @classmethod
    def table(cls, fields: Iterable[Tuple[str, Value]]) -> Value:
        items: list[Tuple[str, Value]] = []
        seen: set[str] = set()
        for name, value in fields:
            if not isinstance(name, str):
                raise TypeError("TABLE field names must be strings.")
            if not isinstance(value, Value):
                raise TypeError(f"TABLE field {name!r} must hold a Value.")
            if name in seen:
                raise ValueError(f"Duplicate TABLE field name {name!r}.")
            seen.add(name)
            items.append((name, value))
        return cls(ValueKind.TABLE, tuple(items))

    @classmethod
    def of(cls, obj: Any) -> Value:
        """Convert one native driver/python scalar into a `Value`."""

        if isinstance(obj, Value):
            return obj
        if obj is None:
            return cls.null()
        if isinstance(obj, bool):
            return cls.bool_(obj)
        if isinstance(obj, int):
            return cls.bigint(obj)
        if isinstance(obj, float):
            return cls.float64(obj)
        if isinstance(obj, str):
            return cls.text(obj)
        if isinstance(obj, (bytes, bytearray, memoryview)):
            return cls.bytes_(obj)
        if isinstance(obj, datetime):
            return cls.timestamp(obj)
        raise TypeError(f"Cannot convert {type(obj).__name__} to a Value.")

    @property
    def is_null(self) -> bool:
        return self.kind is ValueKind.NULL

    @property
    def fields(self) -> TableFields:
        """Return `TABLE` fields in declaration order."""

        if self.kind is not ValueKind.TABLE:
            raise TypeError(f"{self.kind.value} value has no fields.")
        return self.data

    def to_python(self) -> Any:
        """Return the native payload (`TABLE` becomes a list of pairs)."""

        if self.kind is ValueKind.TABLE:
            return [(name, value.to_python()) for name, value in self.data]
        return self.data

    def __repr__(self) -> str:
        if self.kind is ValueKind.NULL:
            return "Value.null()"
        return f"Value.{self.kind.value}({self.data!r})"


@dataclass(frozen=True)
class Row:
    """One result row: column names paired positionally with values."""

    columns: Tuple[str, ...]
    values: Tuple[Value, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "values", tuple(self.values))
        if len(self.columns) != len(self.values):
            raise ValueError(
                f"Row has {len(self.columns)} columns but {len(self.values)} values."
            )

    @classmethod
    def from_table(cls, value: Value) -> Row:
        """Build a row from a `TABLE` value."""

        fields = value.fields
        return cls(
            columns=tuple(name for name, _ in fields),
            values=tuple(item for _, item in fields),
        )

    @classmethod
    def from_pairs(cls, columns: Sequence[str], raw_values: Sequence[Any]) -> Row:
        """Build a row from driver column names and native values."""

        return cls(
            columns=tuple(columns),
            values=tuple(Value.of(item) for item in raw_values),
        )

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> Row:
        return cls.from_pairs(list(mapping.keys()), list(mapping.values()))

    def to_table(self) -> Value:
        """Convert the row to a `TABLE` value, preserving column order.

        Duplicate column names (for example from a join) are kept as-is, so
        this bypasses the uniqueness check of `Value.table`.
        """

        return Value(ValueKind.TABLE, tuple(zip(self.columns, self.values)))

    def as_dict(self) -> dict[str, Any]:
        return {name: value.to_python() for name, value in zip(self.columns, self.values)}

    def __len__(self) -> int:
        return len(self.columns)

    def __getitem__(self, column: str) -> Value:
        for name, value in zip(self.columns, self.values):
            if name == column:
                return value
        raise KeyError(column)


def _require_int(value: Any, kind: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{kind} value requires int, got {type(value).__name__}.")


def _require_float(value: Any, kind: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{kind} value requires float, got {type(value).__name__}.")
    return float(value)
