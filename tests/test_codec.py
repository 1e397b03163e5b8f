"""Tests for the point key codec."""

import pytest

from bacnet_signatures.errors import ValidationError
from bacnet_signatures.keys.codec import (
    PointKey,
    decode,
    encode,
    key_for_point,
    key_set,
    unique_by_key,
)
from bacnet_signatures.models.point import Point, PointKind
from bacnet_signatures.models.signature import SignaturePoint


class TestEncode:
    def test_string_form(self):
        assert str(encode("ZN-T", PointKind.NUMBER, "°F")) == "ZN-T|Number|°F"

    def test_missing_unit_forms_are_equivalent(self):
        a = encode("FAN-CMD", "Bool", None)
        b = encode("FAN-CMD", "Bool", "")
        c = encode("FAN-CMD", "Bool")
        assert a == b == c
        assert str(a) == "FAN-CMD|Bool|"

    def test_keys_are_hashable(self):
        keys = {encode("ZN-T", "Number", "°F"), encode("ZN-T", "Number", "°F")}
        assert len(keys) == 1

    def test_unit_distinguishes_keys(self):
        assert encode("ZN-T", "Number", "°F") != encode("ZN-T", "Number", "°C")

    def test_kind_distinguishes_keys(self):
        assert encode("OCC", "Bool") != encode("OCC", "Number")

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            encode("X", "Coord")

    def test_separator_in_unit_rejected(self):
        with pytest.raises(ValidationError):
            encode("ZN-T", "Number", "a|b")


class TestDecode:
    @pytest.mark.parametrize("name,kind,unit", [
        ("ZN-T", "Number", "°F"),
        ("FAN-CMD", "Bool", None),
        ("MODE", "Str", ""),
        ("RTU-2 'Supply|Return' Temp", "Number", "°F"),
        ("A|B|C", "Bool", None),
        ("ZN-T", "Number", "inH₂O"),
    ])
    def test_round_trip(self, name, kind, unit):
        key = decode(str(encode(name, kind, unit)))
        assert (key.name, key.kind.value, key.unit) == (name, kind, unit or "")

    def test_malformed_key(self):
        with pytest.raises(ValidationError):
            decode("no-separators")

    def test_unknown_kind_in_key(self):
        with pytest.raises(ValidationError):
            decode("ZN-T|Coord|°F")


class TestPointHelpers:
    def test_equipment_and_template_points_share_keys(self):
        point = Point(
            id="p-17",
            display_name="ZN-T",
            kind="Number",
            unit="°F",
            writable=True,
            functional_description="Zone temp",
            tags=["zone", "temp", "sensor"],
        )
        template = SignaturePoint(name="ZN-T", kind="Number", unit="°F")
        assert key_for_point(point) == key_for_point(template)

    def test_key_set(self):
        points = [
            SignaturePoint(name="A", kind="Number"),
            SignaturePoint(name="A", kind="Number", unit=""),
            SignaturePoint(name="B", kind="Bool"),
        ]
        assert key_set(points) == {encode("A", "Number"), encode("B", "Bool")}

    def test_unique_by_key_keeps_first_occurrence(self):
        first = Point(id="1", display_name="DA-T", kind="Number", unit="°F")
        second = Point(id="2", display_name="DA-T", kind="Number", unit="°F")
        other = Point(id="3", display_name="DA-T", kind="Number", unit="°C")
        result = unique_by_key([first, second, other])
        assert [p.id for p in result] == ["1", "3"]

    def test_point_key_is_immutable(self):
        key = encode("ZN-T", "Number", "°F")
        with pytest.raises(Exception):
            key.name = "other"
        assert isinstance(key, PointKey)
