"""Generic entity <-> value tree marshaling.

`ValueEncoder` walks a record along its cached `Shape` and pushes each field
into a `Value`; `ValueDecoder` pulls fields back out in the order the target
shape declares them. Struct decoding is positional: a `TABLE` must list its
fields in exactly the order the target dataclass declares them.
"""

from __future__ import annotations

import json
from collections.abc import Sequence as SequenceABC
from datetime import datetime
from enum import Enum
from typing import Any, List, Tuple, Type, TypeVar

from .blob import is_sequence_blob, pack_values, unpack_values
from .errors import ConversionError
from .shapes import Shape, ShapeKind, entity_shape
from .values import FLOAT_KINDS, INTEGER_KINDS, Row, Value, ValueKind

T = TypeVar("T")


class ValueEncoder:
    """Encode python objects into values following a `Shape`."""

    def encode(self, obj: Any, shape: Shape, path: str = "") -> Value:
        handler = getattr(self, f"_encode_{shape.kind.value}")
        return handler(obj, shape, path or _root_path(shape))

    def _encode_struct(self, obj: Any, shape: Shape, path: str) -> Value:
        if not isinstance(obj, shape.py_type):
            raise ConversionError(
                f"{path}: expected {shape.describe()}, got {type(obj).__name__}."
            )
        return Value.table(
            (spec.name, self.encode(getattr(obj, spec.name), spec.shape, f"{path}.{spec.name}"))
            for spec in shape.fields
        )

    def _encode_optional(self, obj: Any, shape: Shape, path: str) -> Value:
        if obj is None:
            return Value.null()
        return self.encode(obj, shape.inner, path)

    def _encode_sequence(self, obj: Any, shape: Shape, path: str) -> Value:
        if isinstance(obj, (str, bytes, bytearray)) or not isinstance(obj, SequenceABC):
            raise ConversionError(
                f"{path}: expected {shape.describe()}, got {type(obj).__name__}."
            )
        items = [
            self.encode(item, shape.inner, f"{path}[{index}]")
            for index, item in enumerate(obj)
        ]
        return Value.bytes_(pack_values(items))

    def _encode_bytes(self, obj: Any, shape: Shape, path: str) -> Value:
        if not isinstance(obj, (bytes, bytearray, memoryview)):
            raise ConversionError(f"{path}: expected bytes, got {type(obj).__name__}.")
        return Value.bytes_(obj)

    def _encode_scalar(self, obj: Any, shape: Shape, path: str) -> Value:
        if shape.codec == "enum":
            return _serialize_enum(obj, enum_type=shape.py_type, path=path)
        if shape.codec == "json":
            return Value.text(_serialize_json(obj, path=path))

        kind = shape.value_kind
        if not _matches_python_type(obj, kind):
            raise ConversionError(
                f"{path}: expected {kind.value}, got {type(obj).__name__}."
            )
        try:
            return _SCALAR_BUILDERS[kind](obj)
        except (TypeError, ValueError) as exc:
            raise ConversionError(f"{path}: {exc}") from exc


class ValueDecoder:
    """Decode values back into python objects following a `Shape`."""

    def decode(self, value: Value, shape: Shape, path: str = "") -> Any:
        handler = getattr(self, f"_decode_{shape.kind.value}")
        return handler(value, shape, path or _root_path(shape))

    def _decode_struct(self, value: Value, shape: Shape, path: str) -> Any:
        if value.kind is ValueKind.BYTES and is_sequence_blob(value.data):
            value = _unpack_single_table(value.data, path)
        if value.kind is not ValueKind.TABLE:
            raise _mismatch(path, shape, value)

        fields = value.fields
        if len(fields) != len(shape.fields):
            raise ConversionError(
                f"{path}: expected {len(shape.fields)} fields for {shape.describe()}, "
                f"got {len(fields)}."
            )

        init_kwargs: dict[str, Any] = {}
        late: List[Tuple[str, Any]] = []
        for position, (spec, (name, item)) in enumerate(zip(shape.fields, fields)):
            if name != spec.name:
                raise ConversionError(
                    f"{path}: expected field {spec.name!r} at position {position}, "
                    f"got {name!r}."
                )
            decoded = self.decode(item, spec.shape, f"{path}.{spec.name}")
            if spec.init:
                init_kwargs[spec.name] = decoded
            else:
                late.append((spec.name, decoded))

        obj = shape.py_type(**init_kwargs)
        for name, decoded in late:
            object.__setattr__(obj, name, decoded)
        return obj

    def _decode_optional(self, value: Value, shape: Shape, path: str) -> Any:
        if value.is_null:
            return None
        return self.decode(value, shape.inner, path)

    def _decode_sequence(self, value: Value, shape: Shape, path: str) -> Any:
        if value.kind is not ValueKind.BYTES:
            raise _mismatch(path, shape, value)
        items = [
            self.decode(item, shape.inner, f"{path}[{index}]")
            for index, item in enumerate(unpack_values(value.data))
        ]
        return shape.py_type(items)

    def _decode_bytes(self, value: Value, shape: Shape, path: str) -> bytes:
        if value.kind is not ValueKind.BYTES:
            raise _mismatch(path, shape, value)
        return value.data

    def _decode_scalar(self, value: Value, shape: Shape, path: str) -> Any:
        if shape.codec == "enum":
            return _deserialize_enum(value, enum_type=shape.py_type, path=path)
        if shape.codec == "json":
            return _deserialize_json(value, shape=shape, path=path)

        kind = shape.value_kind
        actual = value.kind
        if kind in INTEGER_KINDS and actual in INTEGER_KINDS:
            return self._narrow(value.data, kind, path)
        if kind in FLOAT_KINDS and (actual in FLOAT_KINDS or actual in INTEGER_KINDS):
            return self._narrow(float(value.data), kind, path)
        if kind is ValueKind.BOOL:
            if actual is ValueKind.BOOL:
                return value.data
            if actual in INTEGER_KINDS and value.data in (0, 1):
                return bool(value.data)
        if kind is ValueKind.TEXT and actual is ValueKind.TEXT:
            return value.data
        if kind is ValueKind.TIMESTAMP:
            if actual is ValueKind.TIMESTAMP:
                return value.data
            if actual is ValueKind.TEXT:
                try:
                    return datetime.fromisoformat(value.data)
                except ValueError as exc:
                    raise ConversionError(
                        f"{path}: cannot parse timestamp from {value.data!r}."
                    ) from exc
        raise _mismatch(path, shape, value)

    def _narrow(self, number: Any, kind: ValueKind, path: str) -> Any:
        # Width-32 fields get the same range check and rounding as on encode.
        if kind not in (ValueKind.SMALLINT, ValueKind.FLOAT32):
            return number
        try:
            return _SCALAR_BUILDERS[kind](number).data
        except ValueError as exc:
            raise ConversionError(f"{path}: {exc}") from exc


_encoder = ValueEncoder()
_decoder = ValueDecoder()


def encode_value(obj: Any, shape: Shape) -> Value:
    return _encoder.encode(obj, shape)


def decode_value(value: Value, shape: Shape) -> Any:
    return _decoder.decode(value, shape)


def encode_entity(obj: Any) -> Value:
    """Encode a dataclass entity into a `TABLE` value (declared field order)."""

    return _encoder.encode(obj, entity_shape(type(obj)))


def decode_entity(cls: Type[T], value: Value) -> T:
    """Decode a `TABLE` value into an instance of `cls`."""

    return _decoder.decode(value, entity_shape(cls))


def entity_to_pairs(obj: Any) -> List[Tuple[str, Value]]:
    """Return the entity's `(column, value)` pairs in declared order."""

    return list(encode_entity(obj).fields)


def row_to_entity(cls: Type[T], row: Row) -> T:
    """Map one result row to an entity instance."""

    return decode_entity(cls, row.to_table())


def _root_path(shape: Shape) -> str:
    if shape.kind is ShapeKind.STRUCT:
        return shape.py_type.__name__
    return "value"


def _mismatch(path: str, shape: Shape, value: Value) -> ConversionError:
    return ConversionError(
        f"{path}: expected {shape.describe()} value, got {value.kind.value}."
    )


def _unpack_single_table(blob: bytes, path: str) -> Value:
    items = unpack_values(blob)
    if len(items) != 1 or items[0].kind is not ValueKind.TABLE:
        raise ConversionError(f"{path}: blob does not hold a single struct value.")
    return items[0]


def _matches_python_type(obj: Any, kind: ValueKind) -> bool:
    if kind is ValueKind.BOOL:
        return isinstance(obj, bool)
    if kind in INTEGER_KINDS:
        return isinstance(obj, int) and not isinstance(obj, bool)
    if kind in FLOAT_KINDS:
        return isinstance(obj, (int, float)) and not isinstance(obj, bool)
    if kind is ValueKind.TEXT:
        return isinstance(obj, str)
    if kind is ValueKind.TIMESTAMP:
        return isinstance(obj, datetime)
    return False


_SCALAR_BUILDERS = {
    ValueKind.BOOL: Value.bool_,
    ValueKind.SMALLINT: Value.smallint,
    ValueKind.BIGINT: Value.bigint,
    ValueKind.FLOAT32: Value.float32,
    ValueKind.FLOAT64: Value.float64,
    ValueKind.TEXT: Value.text,
    ValueKind.TIMESTAMP: Value.timestamp,
}


def _serialize_enum(value: Any, *, enum_type: type[Enum], path: str) -> Value:
    if not isinstance(value, enum_type):
        try:
            value = enum_type(value)
        except ValueError as exc:
            raise ConversionError(
                f"{path}: invalid enum value {value!r} for {enum_type.__name__}."
            ) from exc
    try:
        return Value.of(value.value)
    except TypeError as exc:
        raise ConversionError(
            f"{path}: enum {enum_type.__name__} member value is not a scalar."
        ) from exc


def _deserialize_enum(value: Value, *, enum_type: type[Enum], path: str) -> Enum:
    if value.kind not in (ValueKind.TEXT,) and value.kind not in INTEGER_KINDS:
        raise ConversionError(
            f"{path}: expected enum {enum_type.__name__} value, got {value.kind.value}."
        )
    raw = value.data
    try:
        return enum_type(raw)
    except ValueError as exc:
        if isinstance(raw, str):
            try:
                return enum_type[raw]
            except KeyError:
                pass
        raise ConversionError(
            f"{path}: cannot decode {raw!r} to enum {enum_type.__name__}."
        ) from exc


def _serialize_json(value: Any, *, path: str) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as exc:
        raise ConversionError(f"{path}: value is not JSON serializable.") from exc


def _deserialize_json(value: Value, *, shape: Shape, path: str) -> Any:
    if value.kind is ValueKind.TEXT:
        text = value.data
    elif value.kind is ValueKind.BYTES:
        text = value.data.decode("utf-8")
    else:
        raise _mismatch(path, shape, value)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConversionError(f"{path}: cannot decode JSON {text!r}.") from exc
