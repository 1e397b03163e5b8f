"""Tests for the Signature Registry."""

import pytest

from bacnet_signatures.errors import NotFoundError, ValidationError
from bacnet_signatures.models.point import EquipmentInstance, Point
from bacnet_signatures.models.signature import (
    SignatureDraft,
    SignaturePatch,
    SignaturePoint,
    SignatureSource,
)
from bacnet_signatures.registry.store import SignatureRegistry


def _make_draft(
    name: str = "Standard VAV",
    equipment_type: str = "VAV",
    source: SignatureSource = SignatureSource.USER_CREATED,
    confidence=None,
    points=None,
) -> SignatureDraft:
    return SignatureDraft(
        name=name,
        equipment_type=equipment_type,
        point_signature=points if points is not None else [
            SignaturePoint(name="ZN-T", kind="Number", unit="°F"),
            SignaturePoint(name="DPR-POS", kind="Number", unit="%"),
        ],
        source=source,
        confidence=confidence,
    )


def _make_vav(equipment_id: str = "vav-2.9") -> EquipmentInstance:
    return EquipmentInstance(
        id=equipment_id,
        equipment_type="VAV",
        vendor_name="Trane",
        points=[
            Point(id="p1", display_name="ZN-T", kind="Number", unit="°F"),
            Point(id="p2", display_name="DPR-POS", kind="Number", unit="%"),
            Point(id="p3", display_name="FAN-CMD", kind="Bool", writable=True),
            Point(id="p4", display_name="ZN-T", kind="Number", unit="°F"),
        ],
    )


class TestCreate:
    def setup_method(self):
        self.registry = SignatureRegistry()

    def test_create_assigns_id(self):
        signature = self.registry.create(_make_draft())
        assert signature.id.startswith("sig_")
        assert self.registry.get(signature.id) == signature

    def test_user_created_defaults_to_full_confidence(self):
        signature = self.registry.create(_make_draft())
        assert signature.confidence == 100

    def test_auto_generated_keeps_given_confidence(self):
        signature = self.registry.create(
            _make_draft(source=SignatureSource.AUTO_GENERATED, confidence=62)
        )
        assert signature.confidence == 62
        assert signature.source == SignatureSource.AUTO_GENERATED

    @pytest.mark.parametrize("raw,clamped", [(140, 100), (-5, 0), (55.5, 55.5)])
    def test_confidence_is_clamped(self, raw, clamped):
        signature = self.registry.create(_make_draft(confidence=raw))
        assert signature.confidence == clamped

    @pytest.mark.parametrize("name", ["", "   "])
    def test_blank_name_rejected(self, name):
        with pytest.raises(ValidationError):
            self.registry.create(_make_draft(name=name))
        assert self.registry.list() == []

    def test_empty_points_rejected(self):
        with pytest.raises(ValidationError):
            self.registry.create(_make_draft(points=[]))

    def test_blank_point_name_rejected(self):
        with pytest.raises(ValidationError):
            self.registry.create(_make_draft(points=[
                SignaturePoint(name="ZN-T", kind="Number"),
                SignaturePoint(name=" ", kind="Bool"),
            ]))
        assert self.registry.list() == []

    def test_separator_in_point_unit_rejected(self):
        with pytest.raises(ValidationError):
            self.registry.create(_make_draft(points=[
                SignaturePoint(name="DP", kind="Number", unit="in|wc"),
            ]))
        assert self.registry.list() == []

    def test_duplicate_template_points_collapse(self):
        signature = self.registry.create(_make_draft(points=[
            SignaturePoint(name="ZN-T", kind="Number", unit="°F"),
            SignaturePoint(name="ZN-T", kind="Number", unit="°F"),
            SignaturePoint(name="OCC", kind="Bool"),
            SignaturePoint(name="OCC", kind="Bool", unit=""),
        ]))
        assert len(signature.point_signature) == 2

    def test_name_is_trimmed(self):
        assert self.registry.create(_make_draft(name="  AHU Std ")).name == "AHU Std"


class TestUpdate:
    def setup_method(self):
        self.registry = SignatureRegistry()
        self.signature = self.registry.create(_make_draft())

    def test_unknown_id(self):
        with pytest.raises(NotFoundError):
            self.registry.update("sig_missing", SignaturePatch(name="x"))

    def test_rename(self):
        updated = self.registry.update(self.signature.id, SignaturePatch(name="VAV w/ reheat"))
        assert updated.name == "VAV w/ reheat"
        assert updated.point_signature == self.signature.point_signature

    def test_confidence_only_patch(self):
        updated = self.registry.update(self.signature.id, SignaturePatch(confidence=250))
        assert updated.confidence == 100
        assert updated.name == self.signature.name

    def test_blank_rename_rejected_without_change(self):
        with pytest.raises(ValidationError):
            self.registry.update(self.signature.id, SignaturePatch(name=""))
        assert self.registry.get(self.signature.id).name == "Standard VAV"

    def test_emptying_points_rejected(self):
        with pytest.raises(ValidationError):
            self.registry.update(self.signature.id, SignaturePatch(point_signature=[]))

    def test_retype_points(self):
        updated = self.registry.update(
            self.signature.id,
            SignaturePatch(point_signature=[SignaturePoint(name="ZN-T", kind="Str")]),
        )
        assert updated.point_signature[0].kind.value == "Str"

    def test_change_source(self):
        updated = self.registry.update(
            self.signature.id, SignaturePatch(source=SignatureSource.USER_VALIDATED)
        )
        assert updated.source == SignatureSource.USER_VALIDATED

    def test_update_does_not_touch_matching_ids(self):
        self.registry.replace_matching_equipment(self.signature.id, ["vav-1"])
        updated = self.registry.update(self.signature.id, SignaturePatch(name="Renamed"))
        assert updated.matching_equipment_ids == ["vav-1"]


class TestDelete:
    def setup_method(self):
        self.registry = SignatureRegistry()

    def test_delete(self):
        signature = self.registry.create(_make_draft())
        self.registry.delete(signature.id)
        assert not self.registry.exists(signature.id)
        with pytest.raises(NotFoundError):
            self.registry.get(signature.id)

    def test_delete_twice_is_an_error(self):
        signature = self.registry.create(_make_draft())
        self.registry.delete(signature.id)
        with pytest.raises(NotFoundError):
            self.registry.delete(signature.id)


class TestQueries:
    def setup_method(self):
        self.registry = SignatureRegistry()
        self.vav = self.registry.create(_make_draft())
        self.vav_lower = self.registry.create(_make_draft(name="lower", equipment_type="vav"))
        self.ahu = self.registry.create(_make_draft(
            name="AHU Basic",
            equipment_type="AHU",
            source=SignatureSource.AUTO_GENERATED,
            confidence=65,
            points=[SignaturePoint(name="SA-T", kind="Number", unit="°F")],
        ))

    def test_list_by_equipment_type_is_case_sensitive(self):
        assert [s.id for s in self.registry.list_by_equipment_type("VAV")] == [self.vav.id]
        assert [s.id for s in self.registry.list_by_equipment_type("vav")] == [self.vav_lower.id]
        assert self.registry.list_by_equipment_type("RTU") == []

    def test_equipment_types(self):
        assert self.registry.equipment_types() == ["AHU", "VAV", "vav"]

    def test_search_by_point_name(self):
        assert [s.id for s in self.registry.search(term="sa-t")] == [self.ahu.id]

    def test_search_by_source_and_confidence(self):
        assert self.registry.search(source=SignatureSource.AUTO_GENERATED) == [self.ahu]
        assert self.registry.search(confidence_range=(90, 100)) == [self.vav, self.vav_lower]

    def test_search_filters_are_conjunctive(self):
        assert self.registry.search(term="standard", equipment_type="AHU") == []


class TestWorkflow:
    def setup_method(self):
        self.registry = SignatureRegistry()

    def test_create_from_equipment(self):
        signature = self.registry.create_from_equipment(_make_vav(), "Standard VAV")
        assert signature.source == SignatureSource.USER_CREATED
        assert signature.confidence == 100
        assert signature.equipment_type == "VAV"
        assert signature.matching_equipment_ids == ["vav-2.9"]
        # p4 duplicates p1's key
        assert [p.name for p in signature.point_signature] == ["ZN-T", "DPR-POS", "FAN-CMD"]

    def test_create_from_selected_points(self):
        signature = self.registry.create_from_equipment(
            _make_vav(), "Damper only", point_ids=["p2"]
        )
        assert [p.name for p in signature.point_signature] == ["DPR-POS"]

    def test_create_from_unknown_points(self):
        with pytest.raises(ValidationError):
            self.registry.create_from_equipment(_make_vav(), "Bad", point_ids=["p99"])

    def test_create_from_no_points(self):
        with pytest.raises(ValidationError):
            self.registry.create_from_equipment(_make_vav(), "Empty", point_ids=[])

    def test_verify_raises_confidence_and_validates(self):
        signature = self.registry.create(
            _make_draft(source=SignatureSource.AUTO_GENERATED, confidence=75)
        )
        verified = self.registry.verify(signature.id)
        assert verified.source == SignatureSource.USER_VALIDATED
        assert verified.confidence == 85

    def test_verify_caps_at_100(self):
        signature = self.registry.create(_make_draft(confidence=95))
        assert self.registry.verify(signature.id).confidence == 100

    def test_find_by_equipment(self):
        signature = self.registry.create_from_equipment(_make_vav(), "Standard VAV")
        assert self.registry.find_by_equipment("vav-2.9") == [signature]
        assert self.registry.find_by_equipment("vav-other") == []
