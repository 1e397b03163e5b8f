"""
Auto-Assigner — rule-based signature assignment for unassigned equipment.

Behavioral Contract:
- An equipment instance qualifies only while unassigned, and only for the
  best-ranked same-type signature that fully covers its points, whose
  confidence meets auto_assign_min_confidence, and whose reviewer accuracy
  (when feedback exists) meets auto_assign_min_accuracy.
- Every change goes through MappingManager, so the usual invariants, locking
  and ledger entries apply. Assignment uses expected_current=None: equipment
  assigned concurrently is never overwritten.
- Dry runs report what would happen and change nothing.
- Rollback unassigns, records negative feedback and ledgers the reason.
"""

import logging
import threading
from datetime import datetime
from typing import Iterable, List, Optional
from uuid import uuid4

from bacnet_signatures.errors import ConflictError, NotFoundError, ValidationError
from bacnet_signatures.mapping.manager import MappingManager
from bacnet_signatures.matching.matcher import candidate_signatures, coverage
from bacnet_signatures.models.assignment import (
    AutoAssignment,
    AutoAssignmentStatus,
    BatchResult,
    BatchSummary,
    Recommendation,
    SkippedEquipment,
)
from bacnet_signatures.models.config import EngineConfig

logger = logging.getLogger(__name__)


class AutoAssigner:

    def __init__(self, manager: MappingManager, config: Optional[EngineConfig] = None):
        self.manager = manager
        self.config = config or manager.config
        self._assignments: List[AutoAssignment] = []
        self._lock = threading.Lock()

    # === RECOMMENDATIONS ===

    def recommend(self, equipment_id: str) -> Recommendation:
        """Evaluate one equipment instance against the auto-assignment gates."""
        equipment = self.manager.equipment_store.get(equipment_id)

        current_id = self.manager.current_signature_id(equipment_id)
        if current_id is not None:
            return Recommendation(
                equipment_id=equipment_id,
                reason=f"Already assigned to signature {current_id}",
            )

        candidates = candidate_signatures(equipment, self.manager.registry)
        if not candidates:
            return Recommendation(
                equipment_id=equipment_id,
                reason=f"No signatures for equipment type {equipment.equipment_type}",
            )

        first_refusal = None
        for signature in candidates:
            cov = coverage(equipment, signature)
            rec = Recommendation(
                equipment_id=equipment_id,
                signature_id=signature.id,
                signature_name=signature.name,
                confidence=signature.confidence,
                matched_count=cov.matched_count,
                total_signature_points=cov.total_signature_points,
                reason="",
            )
            refusal = self._refusal(signature, cov.is_full_match)
            if refusal is None:
                return rec.model_copy(update={"eligible": True, "reason": "Full match"})
            if first_refusal is None:
                first_refusal = rec.model_copy(update={"reason": refusal})
        # Explain against the best-ranked candidate
        return first_refusal

    def _refusal(self, signature, full_match: bool) -> Optional[str]:
        if not full_match:
            return f"Signature {signature.name} does not cover every template point"
        if signature.confidence < self.config.auto_assign_min_confidence:
            return (
                f"Signature {signature.name} confidence {signature.confidence:g} "
                f"is below {self.config.auto_assign_min_confidence:g}"
            )
        stats = self.manager.analytics.get(signature.id)
        feedback = stats.user_feedback.positive + stats.user_feedback.negative
        if feedback and stats.accuracy < self.config.auto_assign_min_accuracy:
            return (
                f"Signature {signature.name} accuracy {stats.accuracy:.2f} "
                f"is below {self.config.auto_assign_min_accuracy:.2f}"
            )
        return None

    def recommendations(
        self, equipment_ids: Optional[Iterable[str]] = None
    ) -> List[Recommendation]:
        """Evaluate every equipment instance, or the given ones."""
        if equipment_ids is None:
            equipment_ids = [e.id for e in self.manager.equipment_store.list()]
        return [self.recommend(i) for i in equipment_ids]

    # === ASSIGNMENT ===

    def process_equipment(
        self,
        equipment_id: str,
        dry_run: bool = False,
        actor: Optional[str] = None,
    ) -> Optional[AutoAssignment]:
        """Assign the recommended signature. None when the equipment does not qualify."""
        rec = self.recommend(equipment_id)
        if not rec.eligible:
            logger.info("No auto-assignment for %s: %s", equipment_id, rec.reason)
            return None
        return self._apply(rec, dry_run, actor)

    def _apply(
        self, rec: Recommendation, dry_run: bool, actor: Optional[str]
    ) -> AutoAssignment:
        assignment = AutoAssignment(
            id=f"auto_{uuid4().hex[:12]}",
            equipment_id=rec.equipment_id,
            signature_id=rec.signature_id,
            confidence=rec.confidence,
            requires_review=rec.confidence < self.config.auto_assign_review_below,
            status=AutoAssignmentStatus.PROPOSED if dry_run else AutoAssignmentStatus.ASSIGNED,
            assigned_by=actor or self.config.default_mapped_by,
            assigned_at=datetime.utcnow(),
        )
        if dry_run:
            return assignment

        self.manager.assign_signature(
            rec.equipment_id,
            rec.signature_id,
            actor=actor,
            expected_current=None,
            reason=f"Auto-assigned with {rec.confidence:g}% confidence",
        )
        with self._lock:
            self._assignments.append(assignment)
        logger.info(
            "Auto-assigned equipment %s to signature %s (%g%%)",
            rec.equipment_id, rec.signature_id, rec.confidence,
        )
        return assignment

    def process_batch(
        self,
        equipment_ids: List[str],
        dry_run: bool = False,
        actor: Optional[str] = None,
        max_assignments: Optional[int] = None,
        equipment_type: Optional[str] = None,
        vendor_name: Optional[str] = None,
    ) -> BatchResult:
        """
        Auto-assign a batch. Equipment past the assignment cap, excluded by
        the type/vendor filters, unknown, or not qualifying is reported as
        skipped with a reason.
        """
        if not equipment_ids:
            raise ValidationError("At least one equipment id is required")
        if len(equipment_ids) > self.config.auto_assign_max_batch:
            raise ValidationError(
                f"At most {self.config.auto_assign_max_batch} equipment ids per batch"
            )
        cap = self.config.auto_assign_batch_size if max_assignments is None else max_assignments
        if cap < 1:
            raise ValidationError("max_assignments must be at least 1")

        assignments: List[AutoAssignment] = []
        skipped: List[SkippedEquipment] = []

        for equipment_id in equipment_ids:
            if not self.manager.equipment_store.exists(equipment_id):
                skipped.append(SkippedEquipment(
                    equipment_id=equipment_id, reason="Unknown equipment"
                ))
                continue
            equipment = self.manager.equipment_store.get(equipment_id)
            if equipment_type and equipment.equipment_type != equipment_type:
                skipped.append(SkippedEquipment(
                    equipment_id=equipment_id, reason="Excluded by equipment type filter"
                ))
                continue
            if vendor_name and equipment.vendor_name != vendor_name:
                skipped.append(SkippedEquipment(
                    equipment_id=equipment_id, reason="Excluded by vendor filter"
                ))
                continue
            if len(assignments) >= cap:
                skipped.append(SkippedEquipment(
                    equipment_id=equipment_id, reason="Batch assignment limit reached"
                ))
                continue

            rec = self.recommend(equipment_id)
            if not rec.eligible:
                skipped.append(SkippedEquipment(equipment_id=equipment_id, reason=rec.reason))
                continue
            try:
                assignments.append(self._apply(rec, dry_run, actor))
            except ConflictError as exc:
                logger.warning("Auto-assignment of %s lost a race: %s", equipment_id, exc)
                skipped.append(SkippedEquipment(equipment_id=equipment_id, reason=str(exc)))

        average = (
            sum(a.confidence for a in assignments) / len(assignments) if assignments else 0.0
        )
        summary = BatchSummary(
            total=len(equipment_ids),
            assigned=len(assignments),
            skipped=len(skipped),
            average_confidence=round(average, 1),
        )
        logger.info(
            "Auto-assignment batch%s: %d assigned, %d skipped",
            " (dry run)" if dry_run else "", summary.assigned, summary.skipped,
        )
        return BatchResult(
            dry_run=dry_run, assignments=assignments, skipped=skipped, summary=summary
        )

    # === REVIEW ===

    def rollback(
        self,
        equipment_id: str,
        signature_id: str,
        reason: str,
        actor: Optional[str] = None,
    ) -> AutoAssignment:
        """Undo an active auto-assignment and count it as negative feedback."""
        if not reason or not reason.strip():
            raise ValidationError("A rollback reason is required")

        with self._lock:
            index = self._find(equipment_id, signature_id, active_only=True)
            self.manager.unassign_signature(
                equipment_id,
                actor=actor,
                reason=reason.strip(),
                expected_current=signature_id,
            )
            self.manager.analytics.record_feedback(signature_id, positive=False)
            rolled_back = self._assignments[index].model_copy(update={
                "status": AutoAssignmentStatus.ROLLED_BACK,
                "rollback_reason": reason.strip(),
                "rolled_back_at": datetime.utcnow(),
            })
            self._assignments[index] = rolled_back

        logger.info(
            "Rolled back auto-assignment of %s to %s: %s",
            equipment_id, signature_id, reason.strip(),
        )
        return rolled_back

    def record_feedback(
        self, equipment_id: str, signature_id: str, confirmed: bool
    ) -> AutoAssignment:
        """Reviewer confirms or rejects an auto-assignment. Rejection does not unassign."""
        with self._lock:
            index = self._find(equipment_id, signature_id, active_only=False)
            self.manager.analytics.record_feedback(signature_id, positive=confirmed)
            updated = self._assignments[index].model_copy(update={"confirmed": confirmed})
            self._assignments[index] = updated

        logger.info(
            "Auto-assignment of %s to %s %s by reviewer",
            equipment_id, signature_id, "confirmed" if confirmed else "rejected",
        )
        return updated

    def _find(self, equipment_id: str, signature_id: str, active_only: bool) -> int:
        """Index of the latest matching assignment."""
        for index in range(len(self._assignments) - 1, -1, -1):
            a = self._assignments[index]
            if a.equipment_id != equipment_id or a.signature_id != signature_id:
                continue
            if active_only and a.status != AutoAssignmentStatus.ASSIGNED:
                continue
            return index
        raise NotFoundError(
            f"No {'active ' if active_only else ''}auto-assignment of "
            f"{equipment_id} to {signature_id}"
        )

    def assignments(
        self, status: Optional[AutoAssignmentStatus] = None
    ) -> List[AutoAssignment]:
        with self._lock:
            return [a for a in self._assignments if status is None or a.status == status]
