"""
Signature Registry — validated CRUD over signature definitions.

Behavioral Contract:
- Rejects blank names, empty point signatures and blank template point names
  with ValidationError before any state change.
- Confidence is clamped to [0, 100]; user-created signatures default to 100.
- Unknown ids raise NotFoundError. Deleting twice is an error, not a no-op.
- matching_equipment_ids is written only through replace_matching_equipment,
  which is reserved for the MappingManager.
- Analytics and usage counts are owned elsewhere and never recomputed here.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from bacnet_signatures.errors import NotFoundError, ValidationError
from bacnet_signatures.keys.codec import unique_by_key
from bacnet_signatures.models.config import EngineConfig
from bacnet_signatures.models.point import EquipmentInstance
from bacnet_signatures.models.signature import (
    Signature,
    SignatureDraft,
    SignaturePatch,
    SignaturePoint,
    SignatureSource,
)

logger = logging.getLogger(__name__)


def _clamp_confidence(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


def _validate_name(name: str) -> str:
    if not name or not name.strip():
        raise ValidationError("Signature name must not be blank")
    return name.strip()


def _validate_equipment_type(equipment_type: str) -> str:
    if not equipment_type or not equipment_type.strip():
        raise ValidationError("Signature equipment type must not be blank")
    return equipment_type


def _validate_points(points: Sequence[SignaturePoint]) -> List[SignaturePoint]:
    if not points:
        raise ValidationError("Signature must contain at least one point")
    for i, p in enumerate(points):
        if not p.name or not p.name.strip():
            raise ValidationError(f"Signature point {i} has a blank name")
    # pointSignature is a set of keys
    return unique_by_key(points)


class SignatureRegistry:
    """
    In-memory signature store for the engine.
    A persistent backend would sit behind the same interface.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self._signatures: Dict[str, Signature] = {}

    # --- CRUD ---

    def create(self, draft: SignatureDraft) -> Signature:
        """Validate a draft and store it under a new id."""
        name = _validate_name(draft.name)
        equipment_type = _validate_equipment_type(draft.equipment_type)
        points = _validate_points(draft.point_signature)

        if draft.confidence is None:
            confidence = 100.0 if draft.source == SignatureSource.USER_CREATED else 0.0
        else:
            confidence = _clamp_confidence(draft.confidence)

        now = datetime.utcnow()
        signature = Signature(
            id=f"sig_{uuid4().hex[:12]}",
            name=name,
            equipment_type=equipment_type,
            point_signature=points,
            source=draft.source,
            confidence=confidence,
            matching_equipment_ids=list(dict.fromkeys(draft.matching_equipment_ids)),
            created_at=now,
            updated_at=now,
        )
        self._signatures[signature.id] = signature
        logger.info(
            "Created signature %s (%s, %s, %d points)",
            signature.id, signature.name, signature.equipment_type,
            len(signature.point_signature),
        )
        return signature

    def get(self, signature_id: str) -> Signature:
        signature = self._signatures.get(signature_id)
        if signature is None:
            raise NotFoundError(f"Signature not found: {signature_id}")
        return signature

    def exists(self, signature_id: str) -> bool:
        return signature_id in self._signatures

    def list(self) -> List[Signature]:
        return list(self._signatures.values())

    def update(self, signature_id: str, patch: SignaturePatch) -> Signature:
        """
        Apply a partial update. Only the fields present in the patch are
        validated; the rest were validated when stored.
        """
        current = self.get(signature_id)
        changes = patch.model_dump(exclude_unset=True)
        updates = {}

        if "name" in changes:
            updates["name"] = _validate_name(patch.name)
        if "equipment_type" in changes:
            updates["equipment_type"] = _validate_equipment_type(patch.equipment_type)
        if "point_signature" in changes:
            updates["point_signature"] = _validate_points(patch.point_signature or [])
        if "source" in changes:
            if patch.source is None:
                raise ValidationError("Signature source must not be null")
            updates["source"] = patch.source
        if "confidence" in changes:
            if patch.confidence is None:
                raise ValidationError("Signature confidence must not be null")
            updates["confidence"] = _clamp_confidence(patch.confidence)

        updates["updated_at"] = datetime.utcnow()
        updated = current.model_copy(update=updates)
        self._signatures[signature_id] = updated
        logger.info("Updated signature %s: %s", signature_id, sorted(changes))
        return updated

    def delete(self, signature_id: str) -> None:
        """Remove a signature. Mappings that reference it are left untouched."""
        if signature_id not in self._signatures:
            raise NotFoundError(f"Signature not found: {signature_id}")
        del self._signatures[signature_id]
        logger.info("Deleted signature %s", signature_id)

    # --- Queries ---

    def list_by_equipment_type(self, equipment_type: str) -> List[Signature]:
        """Exact, case-sensitive type match."""
        return [
            s for s in self._signatures.values()
            if s.equipment_type == equipment_type
        ]

    def equipment_types(self) -> List[str]:
        return sorted({s.equipment_type for s in self._signatures.values()})

    def find_by_equipment(self, equipment_id: str) -> List[Signature]:
        """Every signature that lists the equipment. More than one means corrupted state."""
        return [
            s for s in self._signatures.values()
            if equipment_id in s.matching_equipment_ids
        ]

    def search(
        self,
        term: Optional[str] = None,
        equipment_type: Optional[str] = None,
        source: Optional[SignatureSource] = None,
        confidence_range: Tuple[float, float] = (0, 100),
    ) -> List[Signature]:
        """Conjunctive filter over name/type/template points, type, source and confidence."""
        needle = term.lower() if term else None
        low, high = confidence_range
        results = []
        for s in self._signatures.values():
            if needle and not (
                needle in s.name.lower()
                or needle in s.equipment_type.lower()
                or any(needle in p.name.lower() for p in s.point_signature)
            ):
                continue
            if equipment_type and s.equipment_type != equipment_type:
                continue
            if source and s.source != source:
                continue
            if not (low <= s.confidence <= high):
                continue
            results.append(s)
        return results

    # --- Workflow helpers ---

    def create_from_equipment(
        self,
        equipment: EquipmentInstance,
        name: str,
        point_ids: Optional[Iterable[str]] = None,
    ) -> Signature:
        """
        Promote a reviewed equipment's point set into a user-created signature.
        The source equipment is listed as matching.
        """
        selected = equipment.points
        if point_ids is not None:
            wanted = set(point_ids)
            unknown = wanted - {p.id for p in equipment.points}
            if unknown:
                raise ValidationError(
                    f"Points not on equipment {equipment.id}: {sorted(unknown)}"
                )
            selected = [p for p in equipment.points if p.id in wanted]

        draft = SignatureDraft(
            name=name,
            equipment_type=equipment.equipment_type,
            point_signature=[
                SignaturePoint(name=p.display_name, kind=p.kind, unit=p.unit)
                for p in selected
            ],
            source=SignatureSource.USER_CREATED,
            confidence=100,
            matching_equipment_ids=[equipment.id],
        )
        return self.create(draft)

    def verify(self, signature_id: str) -> Signature:
        """Mark a signature as user-validated and raise its confidence one step."""
        current = self.get(signature_id)
        return self.update(
            signature_id,
            SignaturePatch(
                source=SignatureSource.USER_VALIDATED,
                confidence=current.confidence + self.config.verify_confidence_step,
            ),
        )

    def replace_matching_equipment(
        self, signature_id: str, equipment_ids: Iterable[str]
    ) -> Signature:
        """Overwrite the matching set. Only the MappingManager calls this."""
        current = self.get(signature_id)
        updated = current.model_copy(update={
            "matching_equipment_ids": list(dict.fromkeys(equipment_ids)),
            "updated_at": datetime.utcnow(),
        })
        self._signatures[signature_id] = updated
        return updated

    def restore(self, snapshot: Signature) -> None:
        """Put back an earlier copy of a stored signature. Deleted signatures stay deleted."""
        if snapshot.id in self._signatures:
            self._signatures[snapshot.id] = snapshot
