"""Per-entity field descriptors derived once from dataclass type hints.

The marshaling bridge never inspects objects ad hoc: every entity type is
described by a `Shape` tree built the first time the type is used, and both
the encoder and the decoder walk that tree. Unsupported annotations fail here,
at registration time, instead of on the first row that happens to hit them.
"""

from __future__ import annotations

import types
from collections.abc import Sequence as SequenceABC
from dataclasses import Field, dataclass, fields, is_dataclass
from datetime import datetime
from enum import Enum
from functools import lru_cache
from typing import (
    Annotated,
    Any,
    Optional,
    Tuple,
    Type,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from .errors import ConversionError
from .values import ValueKind


class ShapeKind(str, Enum):
    """What a target type expects to receive."""

    SCALAR = "scalar"
    STRUCT = "struct"
    OPTIONAL = "optional"
    SEQUENCE = "sequence"
    BYTES = "bytes"


@dataclass(frozen=True)
class FieldSpec:
    """One declared struct field and its expected shape."""

    name: str
    shape: "Shape"
    init: bool = True


@dataclass(frozen=True)
class Shape:
    """Expected shape of one field or record.

    Attributes:
        kind: Structural kind.
        value_kind: Target value variant for scalars (`None` for enums, whose
            variant follows the member value).
        py_type: Dataclass for structs, enum class for enums, container type
            (`list` or `tuple`) for sequences.
        inner: Element shape for optionals and sequences.
        fields: Declared fields for structs, in declaration order.
        codec: Scalar converter name (`"enum"` or `"json"`).
    """

    kind: ShapeKind
    value_kind: Optional[ValueKind] = None
    py_type: Any = None
    inner: Optional["Shape"] = None
    fields: Tuple[FieldSpec, ...] = ()
    codec: Optional[str] = None

    def describe(self) -> str:
        """Return a short human-readable description used in errors."""

        if self.kind is ShapeKind.SCALAR:
            if self.codec == "enum":
                return f"enum {self.py_type.__name__}"
            if self.codec == "json":
                return "json"
            return self.value_kind.value if self.value_kind else "scalar"
        if self.kind is ShapeKind.STRUCT:
            return f"struct {self.py_type.__name__}"
        if self.kind is ShapeKind.OPTIONAL:
            return f"optional {self.inner.describe()}"
        if self.kind is ShapeKind.SEQUENCE:
            return f"sequence of {self.inner.describe()}"
        return "bytes"


_SCALAR_TYPES = {
    bool: ValueKind.BOOL,
    str: ValueKind.TEXT,
    datetime: ValueKind.TIMESTAMP,
}

_BYTES_SHAPE = Shape(ShapeKind.BYTES, value_kind=ValueKind.BYTES)


def entity_shape(cls: Type[Any]) -> Shape:
    """Return the cached struct shape for a dataclass entity type.

    Raises:
        ConversionError: If any field uses an unsupported annotation.
    """

    return _struct_shape(cls, ())


@lru_cache(maxsize=None)
def _cached_struct_shape(cls: Type[Any]) -> Shape:
    return _build_struct_shape(cls, ())


def _struct_shape(cls: Type[Any], building: Tuple[type, ...]) -> Shape:
    if not building:
        return _cached_struct_shape(cls)
    return _build_struct_shape(cls, building)


def _build_struct_shape(cls: Type[Any], building: Tuple[type, ...]) -> Shape:
    if not is_dataclass(cls):
        raise ConversionError(f"{cls.__name__} must be a dataclass.")
    if cls in building:
        raise ConversionError(f"Recursive struct {cls.__name__} is not supported.")

    hints = _type_hints(cls)
    specs = []
    for field in fields(cls):
        annotation = hints.get(field.name, field.type)
        context = f"{cls.__name__}.{field.name}"
        shape = _field_shape(
            annotation,
            field=field,
            context=context,
            building=building + (cls,),
        )
        specs.append(FieldSpec(name=field.name, shape=shape, init=field.init))
    return Shape(ShapeKind.STRUCT, py_type=cls, fields=tuple(specs))


def _type_hints(cls: Type[Any]) -> dict[str, Any]:
    try:
        return dict(get_type_hints(cls, include_extras=True))
    except (NameError, TypeError) as exc:
        raise ConversionError(
            f"Cannot resolve type hints for {cls.__name__}: {exc}"
        ) from exc


def _field_shape(
    annotation: Any,
    *,
    field: Field[Any],
    context: str,
    building: Tuple[type, ...],
) -> Shape:
    codec = _field_codec(field)
    width = field.metadata.get("width")
    if width not in (None, 32, 64):
        raise ConversionError(f"{context} metadata width must be 32 or 64.")
    return _shape_for(
        annotation,
        codec=codec,
        width=width,
        context=context,
        building=building,
    )


def _shape_for(
    annotation: Any,
    *,
    codec: Optional[str],
    width: Optional[int],
    context: str,
    building: Tuple[type, ...],
) -> Shape:
    if get_origin(annotation) is Annotated:
        annotation = get_args(annotation)[0]

    inner = _unwrap_optional(annotation)
    if inner is not None:
        return Shape(
            ShapeKind.OPTIONAL,
            inner=_shape_for(
                inner, codec=codec, width=width, context=context, building=building
            ),
        )

    if codec == "json":
        return Shape(ShapeKind.SCALAR, value_kind=ValueKind.TEXT, codec="json")

    if isinstance(annotation, type):
        if issubclass(annotation, Enum):
            return Shape(ShapeKind.SCALAR, py_type=annotation, codec="enum")
        if codec == "enum":
            raise ConversionError(f"{context} uses enum codec but has no Enum annotation.")
        if annotation in _SCALAR_TYPES:
            return Shape(ShapeKind.SCALAR, value_kind=_SCALAR_TYPES[annotation])
        if annotation is int:
            kind = ValueKind.SMALLINT if width == 32 else ValueKind.BIGINT
            return Shape(ShapeKind.SCALAR, value_kind=kind)
        if annotation is float:
            kind = ValueKind.FLOAT32 if width == 32 else ValueKind.FLOAT64
            return Shape(ShapeKind.SCALAR, value_kind=kind)
        if annotation in (bytes, bytearray):
            return _BYTES_SHAPE
        if annotation is dict:
            return Shape(ShapeKind.SCALAR, value_kind=ValueKind.TEXT, codec="json")
        if is_dataclass(annotation):
            return _struct_shape(annotation, building)
        if annotation in (list, tuple):
            raise ConversionError(
                f"{context} sequence annotation needs an element type, "
                f"for example list[str]."
            )

    origin = get_origin(annotation)
    if origin is dict:
        return Shape(ShapeKind.SCALAR, value_kind=ValueKind.TEXT, codec="json")
    if origin in (list, tuple, SequenceABC):
        return _sequence_shape(
            annotation, origin=origin, width=width, context=context, building=building
        )

    raise ConversionError(f"{context} has unsupported type {annotation!r}.")


def _sequence_shape(
    annotation: Any,
    *,
    origin: Any,
    width: Optional[int],
    context: str,
    building: Tuple[type, ...],
) -> Shape:
    args = get_args(annotation)
    if origin is tuple:
        if len(args) != 2 or args[1] is not Ellipsis:
            raise ConversionError(
                f"{context} tuple annotation must be homogeneous, like tuple[int, ...]."
            )
        element = args[0]
        container: type = tuple
    else:
        if len(args) != 1:
            raise ConversionError(f"{context} sequence annotation needs an element type.")
        element = args[0]
        container = list
    inner = _shape_for(
        element, codec=None, width=width, context=f"{context}[]", building=building
    )
    return Shape(ShapeKind.SEQUENCE, py_type=container, inner=inner)


def _unwrap_optional(annotation: Any) -> Any:
    """Return `X` for `Optional[X]`, otherwise `None`."""

    origin = get_origin(annotation)
    if origin not in (Union, types.UnionType):
        return None
    all_args = get_args(annotation)
    args = [arg for arg in all_args if arg is not type(None)]
    if len(args) == 1 and len(all_args) == 2:
        return args[0]
    raise ConversionError(f"Union annotation {annotation!r} is not supported.")


def _field_codec(field: Field[Any]) -> Optional[str]:
    codec = field.metadata.get("codec")
    if codec is None:
        return None
    if not isinstance(codec, str):
        raise TypeError(
            f"Field {field.name!r} metadata codec must be a string, got {type(codec).__name__}."
        )
    normalized = codec.strip().lower()
    if normalized in {"json", "enum"}:
        return normalized
    raise ConversionError(
        f"Unsupported codec {codec!r} on field {field.name!r}. "
        "Supported codecs: 'json', 'enum'."
    )
