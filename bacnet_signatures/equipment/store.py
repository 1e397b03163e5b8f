"""
Equipment and external-record providers.

Fed by the ingestion pipeline (equipment and points) and by the
commissioning system (external records). The engine treats the returned
objects as immutable; the one permitted edit is a reviewer correcting a
point's normalization.
"""

import logging
from typing import Dict, Iterable, List, Optional

from bacnet_signatures.errors import NotFoundError, ValidationError
from bacnet_signatures.models.mapping import ExternalRecord
from bacnet_signatures.models.point import EquipmentInstance, Point

logger = logging.getLogger(__name__)

_UNSET = object()


class EquipmentStore:
    """In-memory equipment store keyed by equipment id."""

    def __init__(self, equipment: Optional[Iterable[EquipmentInstance]] = None):
        self._equipment: Dict[str, EquipmentInstance] = {}
        for e in equipment or []:
            self.upsert(e)

    def upsert(self, equipment: EquipmentInstance) -> None:
        self._equipment[equipment.id] = equipment

    def get(self, equipment_id: str) -> EquipmentInstance:
        equipment = self._equipment.get(equipment_id)
        if equipment is None:
            raise NotFoundError(f"Equipment not found: {equipment_id}")
        return equipment

    def exists(self, equipment_id: str) -> bool:
        return equipment_id in self._equipment

    def list(self) -> List[EquipmentInstance]:
        return list(self._equipment.values())

    def group_by_type(self) -> Dict[str, List[EquipmentInstance]]:
        groups: Dict[str, List[EquipmentInstance]] = {}
        for e in self._equipment.values():
            groups.setdefault(e.equipment_type or "Unknown", []).append(e)
        return groups

    def update_point_normalization(
        self,
        equipment_id: str,
        point_id: str,
        normalized_name=_UNSET,
        normalization_confidence=_UNSET,
    ) -> Point:
        """Reviewer correction of a point's normalized name and/or confidence."""
        equipment = self.get(equipment_id)
        index = next(
            (i for i, p in enumerate(equipment.points) if p.id == point_id), None
        )
        if index is None:
            raise NotFoundError(f"Point {point_id} not found on equipment {equipment_id}")

        updates = {}
        if normalized_name is not _UNSET:
            updates["normalized_name"] = normalized_name
        if normalization_confidence is not _UNSET:
            if normalization_confidence is not None and not (
                0 <= normalization_confidence <= 100
            ):
                raise ValidationError(
                    f"Normalization confidence must be within 0..100, got {normalization_confidence}"
                )
            updates["normalization_confidence"] = normalization_confidence

        point = equipment.points[index].model_copy(update=updates)
        points = list(equipment.points)
        points[index] = point
        self._equipment[equipment_id] = equipment.model_copy(update={"points": points})
        logger.info(
            "Corrected normalization of point %s on %s: %s",
            point_id, equipment_id, sorted(updates),
        )
        return point


class ExternalRecordStore:
    """In-memory commissioning-system record store."""

    def __init__(self, records: Optional[Iterable[ExternalRecord]] = None):
        self._records: Dict[str, ExternalRecord] = {}
        for r in records or []:
            self.upsert(r)

    def upsert(self, record: ExternalRecord) -> None:
        self._records[record.id] = record

    def get(self, record_id: str) -> ExternalRecord:
        record = self._records.get(record_id)
        if record is None:
            raise NotFoundError(f"External record not found: {record_id}")
        return record

    def exists(self, record_id: str) -> bool:
        return record_id in self._records

    def list(self) -> List[ExternalRecord]:
        return list(self._records.values())
