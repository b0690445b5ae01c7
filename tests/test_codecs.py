from __future__ import annotations

import struct
import unittest
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence, Union

from mini_dao import (
    ConversionError,
    Row,
    ShapeKind,
    Value,
    ValueKind,
    decode_entity,
    decode_value,
    encode_entity,
    entity_shape,
    entity_to_pairs,
    pack_values,
    row_to_entity,
)
from tests._entities import Dimensions, Gadget, Status, make_gadget


@dataclass
class Address:
    city: str
    zip_code: Optional[str] = None


@dataclass
class Customer:
    id: int
    name: str
    address: Address
    previous: Optional[Address]
    aliases: list[str]
    scores: tuple[float, ...]
    history: list[Address]
    avatar: Optional[bytes] = None


@dataclass
class Counter:
    id: int
    hits: int = field(default=0, metadata={"width": 32})
    ratio: float = field(default=0.0, metadata={"width": 32})


@dataclass
class Tagged:
    id: int
    labels: Sequence[str] = ()
    computed: int = field(default=0, init=False)


@dataclass
class Calibration:
    ratio: float = field(default=0.0, metadata={"width": 32})


@dataclass
class Reading:
    id: int
    samples: list[float] = field(default_factory=list, metadata={"width": 32})
    calibration: Optional[Calibration] = None


def _single(number: float) -> float:
    return struct.unpack("<f", struct.pack("<f", number))[0]


class PlainModel:
    pass


@dataclass
class BareList:
    items: list


@dataclass
class WithUnion:
    value: Union[int, str]


@dataclass
class WithObject:
    value: object


@dataclass
class BadCodec:
    value: str = field(default="", metadata={"codec": "yaml"})


@dataclass
class BadWidth:
    value: int = field(default=0, metadata={"width": 16})


@dataclass
class Node:
    id: int
    child: Optional["Node"] = None


class EncodeDecodeRoundtripTests(unittest.TestCase):
    def test_scalars_nested_optional_bytes_and_sequences(self) -> None:
        customers = [
            Customer(
                id=1,
                name="Ada",
                address=Address(city="London", zip_code="N1"),
                previous=None,
                aliases=[],
                scores=(),
                history=[],
            ),
            Customer(
                id=2,
                name="Grace",
                address=Address(city="Arlington"),
                previous=Address(city="New York", zip_code="10001"),
                aliases=["amazing grace", ""],
                scores=(1.5, -2.25),
                history=[Address(city="A"), Address(city="B", zip_code="b")],
                avatar=b"\x89PNG",
            ),
        ]
        for customer in customers:
            with self.subTest(id=customer.id):
                self.assertEqual(decode_entity(Customer, encode_entity(customer)), customer)

    def test_gadget_with_enum_json_and_timestamp(self) -> None:
        gadget = make_gadget(note="fragile")
        self.assertEqual(decode_entity(Gadget, encode_entity(gadget)), gadget)

    def test_width_32_floats_roundtrip_through_sequences_and_nested_records(self) -> None:
        exact = Reading(id=1, samples=[0.5, -1.25, 2.5], calibration=Calibration(ratio=0.75))
        self.assertEqual(decode_entity(Reading, encode_entity(exact)), exact)

        rounded = decode_entity(
            Reading,
            encode_entity(Reading(id=2, samples=[0.1, 2.5], calibration=Calibration(ratio=0.1))),
        )
        self.assertEqual(rounded.samples, [_single(0.1), 2.5])
        self.assertEqual(rounded.calibration.ratio, _single(0.1))
        self.assertEqual(decode_entity(Reading, encode_entity(rounded)), rounded)

    def test_init_false_fields_roundtrip(self) -> None:
        item = Tagged(id=1, labels=["a"])
        item.computed = 42
        decoded = decode_entity(Tagged, encode_entity(item))

        self.assertEqual(decoded.computed, 42)
        self.assertEqual(decoded.labels, ["a"])


class EncodeTests(unittest.TestCase):
    def test_encode_preserves_declared_field_order(self) -> None:
        pairs = entity_to_pairs(make_gadget())
        self.assertEqual(
            [name for name, _ in pairs],
            [
                "id", "name", "active", "price", "tags", "size", "payload",
                "created_at", "status", "attrs", "note", "priority",
            ],
        )

    def test_field_variants(self) -> None:
        values = dict(entity_to_pairs(make_gadget()))

        self.assertEqual(values["id"], Value.bigint(1))
        self.assertEqual(values["active"], Value.bool_(True))
        self.assertEqual(values["price"], Value.float64(9.5))
        self.assertEqual(values["tags"].kind, ValueKind.BYTES)
        self.assertEqual(values["size"].kind, ValueKind.TABLE)
        self.assertEqual(values["status"], Value.text("live"))
        self.assertEqual(values["note"], Value.null())
        self.assertEqual(values["priority"], Value.smallint(3))

    def test_width_metadata_selects_narrow_variants(self) -> None:
        values = dict(entity_to_pairs(Counter(id=1, hits=5, ratio=0.25)))
        self.assertEqual(values["hits"], Value.smallint(5))
        self.assertEqual(values["ratio"], Value.float32(0.25))

    def test_sequence_is_encoded_as_value_blob(self) -> None:
        values = dict(entity_to_pairs(make_gadget(tags=["x", "y"])))
        self.assertEqual(values["tags"].data, pack_values([Value.text("x"), Value.text("y")]))

    def test_wrong_runtime_type_raises_conversion_error(self) -> None:
        with self.assertRaises(ConversionError) as ctx:
            encode_entity(make_gadget(name=12))
        self.assertIn("Gadget.name", str(ctx.exception))

        with self.assertRaises(ConversionError):
            encode_entity(make_gadget(active=1))
        with self.assertRaises(ConversionError):
            encode_entity(make_gadget(tags="not-a-list"))

    def test_out_of_range_smallint_raises_conversion_error(self) -> None:
        with self.assertRaises(ConversionError):
            encode_entity(Counter(id=1, hits=2**40))

    def test_width_32_float_is_rounded_and_range_checked(self) -> None:
        values = dict(entity_to_pairs(Counter(id=1, ratio=0.1)))
        self.assertEqual(values["ratio"].data, _single(0.1))

        with self.assertRaises(ConversionError):
            encode_entity(Counter(id=1, ratio=1e39))


class DecodeTests(unittest.TestCase):
    def test_decode_from_row_applies_boundary_coercions(self) -> None:
        gadget = make_gadget()
        row = Row(
            columns=[
                "id", "name", "active", "price", "tags", "size", "payload",
                "created_at", "status", "attrs", "note", "priority",
            ],
            values=[
                Value.bigint(1),
                Value.text("Sprocket"),
                Value.bigint(1),
                Value.float64(9.5),
                Value.bytes_(pack_values([Value.text("metal"), Value.text("small")])),
                Value.bytes_(
                    pack_values(
                        [Value.table([("width", Value.float64(2.5)), ("height", Value.bigint(4))])]
                    )
                ),
                Value.bytes_(b"\x00\x01binary"),
                Value.text("2024-05-17T12:30:15"),
                Value.text("live"),
                Value.text('{"color": "red", "sizes": [1, 2]}'),
                Value.null(),
                Value.bigint(3),
            ],
        )
        self.assertEqual(row_to_entity(Gadget, row), gadget)

    def test_kind_mismatch_names_expected_and_actual(self) -> None:
        value = Value.table([("city", Value.bigint(5)), ("zip_code", Value.null())])
        with self.assertRaises(ConversionError) as ctx:
            decode_entity(Address, value)
        message = str(ctx.exception)
        self.assertIn("text", message)
        self.assertIn("bigint", message)

    def test_struct_decoding_is_positional(self) -> None:
        swapped = Value.table([("zip_code", Value.null()), ("city", Value.text("Oslo"))])
        with self.assertRaises(ConversionError):
            decode_entity(Address, swapped)

    def test_field_count_mismatch(self) -> None:
        with self.assertRaises(ConversionError):
            decode_entity(Address, Value.table([("city", Value.text("Oslo"))]))

    def test_optional_maps_null_to_none(self) -> None:
        value = Value.table([("city", Value.text("Rome")), ("zip_code", Value.null())])
        self.assertEqual(decode_entity(Address, value), Address(city="Rome"))

    def test_invalid_bool_integer_and_enum_value(self) -> None:
        shape = entity_shape(Gadget)
        active = next(spec.shape for spec in shape.fields if spec.name == "active")
        status = next(spec.shape for spec in shape.fields if spec.name == "status")

        with self.assertRaises(ConversionError):
            decode_value(Value.bigint(2), active)
        with self.assertRaises(ConversionError):
            decode_value(Value.text("archived"), status)
        self.assertIs(decode_value(Value.text("DRAFT"), status), Status.DRAFT)

    def test_width_32_fields_are_range_checked_on_decode(self) -> None:
        shape = entity_shape(Counter)
        hits = next(spec.shape for spec in shape.fields if spec.name == "hits")
        ratio = next(spec.shape for spec in shape.fields if spec.name == "ratio")

        self.assertEqual(decode_value(Value.bigint(7), hits), 7)
        with self.assertRaises(ConversionError):
            decode_value(Value.bigint(2**40), hits)
        self.assertEqual(decode_value(Value.float64(0.1), ratio), _single(0.1))
        with self.assertRaises(ConversionError):
            decode_value(Value.float64(1e39), ratio)

    def test_malformed_sequence_blob(self) -> None:
        value = encode_entity(make_gadget())
        broken = Value.table(
            [(name, Value.bytes_(b"MDSQ\x01") if name == "tags" else item) for name, item in value.fields]
        )
        with self.assertRaises(ConversionError):
            decode_entity(Gadget, broken)


class ShapeTests(unittest.TestCase):
    def test_shape_tree(self) -> None:
        shape = entity_shape(Customer)
        kinds = {spec.name: spec.shape.kind for spec in shape.fields}

        self.assertEqual(shape.kind, ShapeKind.STRUCT)
        self.assertEqual(kinds["address"], ShapeKind.STRUCT)
        self.assertEqual(kinds["previous"], ShapeKind.OPTIONAL)
        self.assertEqual(kinds["aliases"], ShapeKind.SEQUENCE)
        self.assertEqual(kinds["avatar"], ShapeKind.OPTIONAL)
        self.assertIs(entity_shape(Customer), shape)

    def test_unsupported_annotations_fail_at_construction(self) -> None:
        for model in (BareList, WithUnion, WithObject, BadCodec, BadWidth, Node):
            with self.subTest(model=model.__name__):
                with self.assertRaises(ConversionError):
                    entity_shape(model)

    def test_non_dataclass_is_rejected(self) -> None:
        with self.assertRaises(ConversionError):
            entity_shape(PlainModel)


if __name__ == "__main__":
    unittest.main()
