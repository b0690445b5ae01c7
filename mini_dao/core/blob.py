"""Self-describing binary encoding for value sequences.

Sequence fields have no native column type, so they are stored as one
`BYTES` value. Layout (little-endian)::

    b"MDSQ" | u8 version | u32 count | count * tagged value

A tagged value is one tag byte followed by the variant payload. Text-like
payloads are prefixed with their u32 byte length. `TABLE` payloads are a u32
field count followed by ``name`` / tagged value pairs.
"""

from __future__ import annotations

import struct
from datetime import datetime
from typing import Iterable, List, Tuple

from .errors import ConversionError
from .values import Value, ValueKind

MAGIC = b"MDSQ"
VERSION = 1

_HEADER = struct.Struct("<4sBI")
_U32 = struct.Struct("<I")

_TAGS = {
    ValueKind.NULL: 0,
    ValueKind.BOOL: 1,
    ValueKind.SMALLINT: 2,
    ValueKind.BIGINT: 3,
    ValueKind.FLOAT32: 4,
    ValueKind.FLOAT64: 5,
    ValueKind.TEXT: 6,
    ValueKind.BYTES: 7,
    ValueKind.TIMESTAMP: 8,
    ValueKind.TABLE: 9,
}
_KINDS = {tag: kind for kind, tag in _TAGS.items()}

_FIXED = {
    ValueKind.BOOL: struct.Struct("<?"),
    ValueKind.SMALLINT: struct.Struct("<i"),
    ValueKind.BIGINT: struct.Struct("<q"),
    ValueKind.FLOAT32: struct.Struct("<f"),
    ValueKind.FLOAT64: struct.Struct("<d"),
}


def pack_values(values: Iterable[Value]) -> bytes:
    """Encode a sequence of values into one blob."""

    items = list(values)
    out = bytearray(_HEADER.pack(MAGIC, VERSION, len(items)))
    for value in items:
        _write_value(out, value)
    return bytes(out)


def unpack_values(blob: bytes) -> List[Value]:
    """Decode a blob produced by `pack_values`.

    Raises:
        ConversionError: If the blob is truncated, has trailing data, or is
            not a sequence blob.
    """

    data = bytes(blob)
    if len(data) < _HEADER.size:
        raise ConversionError("Malformed sequence blob: header is truncated.")
    magic, version, count = _HEADER.unpack_from(data, 0)
    if magic != MAGIC:
        raise ConversionError("Malformed sequence blob: bad magic header.")
    if version != VERSION:
        raise ConversionError(f"Unsupported sequence blob version {version}.")

    offset = _HEADER.size
    values: List[Value] = []
    for _ in range(count):
        value, offset = _read_value(data, offset)
        values.append(value)
    if offset != len(data):
        raise ConversionError("Malformed sequence blob: trailing bytes after last element.")
    return values


def is_sequence_blob(blob: bytes) -> bool:
    return bytes(blob[: len(MAGIC)]) == MAGIC


def _write_value(out: bytearray, value: Value) -> None:
    kind = value.kind
    out.append(_TAGS[kind])
    if kind is ValueKind.NULL:
        return
    fixed = _FIXED.get(kind)
    if fixed is not None:
        out += fixed.pack(value.data)
        return
    if kind is ValueKind.TEXT:
        _write_sized(out, value.data.encode("utf-8"))
        return
    if kind is ValueKind.BYTES:
        _write_sized(out, value.data)
        return
    if kind is ValueKind.TIMESTAMP:
        _write_sized(out, value.data.isoformat().encode("ascii"))
        return
    fields: Tuple[Tuple[str, Value], ...] = value.data
    out += _U32.pack(len(fields))
    for name, item in fields:
        _write_sized(out, name.encode("utf-8"))
        _write_value(out, item)


def _write_sized(out: bytearray, payload: bytes) -> None:
    out += _U32.pack(len(payload))
    out += payload


def _read_value(data: bytes, offset: int) -> Tuple[Value, int]:
    if offset >= len(data):
        raise ConversionError("Malformed sequence blob: element is truncated.")
    tag = data[offset]
    offset += 1
    kind = _KINDS.get(tag)
    if kind is None:
        raise ConversionError(f"Malformed sequence blob: unknown tag {tag}.")
    if kind is ValueKind.NULL:
        return Value.null(), offset

    fixed = _FIXED.get(kind)
    if fixed is not None:
        _require(data, offset, fixed.size)
        (raw,) = fixed.unpack_from(data, offset)
        return Value(kind, raw), offset + fixed.size

    if kind is ValueKind.TABLE:
        _require(data, offset, _U32.size)
        (count,) = _U32.unpack_from(data, offset)
        offset += _U32.size
        fields = []
        for _ in range(count):
            name, offset = _read_sized(data, offset)
            item, offset = _read_value(data, offset)
            fields.append((_decode_text(name), item))
        try:
            return Value.table(fields), offset
        except ValueError as exc:
            raise ConversionError(f"Malformed sequence blob: {exc}") from exc

    payload, offset = _read_sized(data, offset)
    if kind is ValueKind.TEXT:
        return Value.text(_decode_text(payload)), offset
    if kind is ValueKind.BYTES:
        return Value.bytes_(payload), offset
    try:
        stamp = datetime.fromisoformat(payload.decode("ascii"))
    except ValueError as exc:
        raise ConversionError("Malformed sequence blob: invalid timestamp.") from exc
    return Value.timestamp(stamp), offset


def _read_sized(data: bytes, offset: int) -> Tuple[bytes, int]:
    _require(data, offset, _U32.size)
    (size,) = _U32.unpack_from(data, offset)
    offset += _U32.size
    _require(data, offset, size)
    return data[offset : offset + size], offset + size


def _decode_text(payload: bytes) -> str:
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ConversionError("Malformed sequence blob: invalid UTF-8 text.") from exc


def _require(data: bytes, offset: int, size: int) -> None:
    if offset + size > len(data):
        raise ConversionError("Malformed sequence blob: element is truncated.")
