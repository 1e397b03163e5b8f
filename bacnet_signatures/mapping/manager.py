"""
Mapping Manager — the only writer of equipment↔signature and
equipment↔external-record relationships.

Behavioral Contract:
- An equipment instance is listed under at most one signature.
- Equipment↔external-record is a bijection: at most one live Mapping per
  external record and per equipment instance.
- Every change is one logical operation under a lock: registry edits,
  mapping edits, usage counts and ledger events commit together. If any
  step fails, including the ledger write, everything done so far is
  restored and the error propagates. If the remove step fails the add
  never runs.
- Callers may pass expected_current (compare-and-swap). A stale expectation
  raises ConflictError instead of silently overwriting a concurrent change.
- Mapping.signature_id follows the equipment's signature: reassignment
  updates it, unassignment clears it.
- Deleting a signature never removes a Mapping. Reads flag the dangling
  reference instead of hiding it.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from bacnet_signatures.analytics.store import AnalyticsStore
from bacnet_signatures.equipment.store import EquipmentStore, ExternalRecordStore
from bacnet_signatures.errors import ConflictError
from bacnet_signatures.mapping.ledger import MappingLedger
from bacnet_signatures.models.config import EngineConfig
from bacnet_signatures.models.mapping import (
    ExternalRecord,
    Mapping,
    MappingEvent,
    MappingEventType,
    MappingState,
)
from bacnet_signatures.models.signature import Signature
from bacnet_signatures.registry.store import SignatureRegistry

logger = logging.getLogger(__name__)

# Sentinel: caller expressed no expectation about the current state
ANY = object()


class MappingManager:

    def __init__(
        self,
        registry: SignatureRegistry,
        equipment_store: EquipmentStore,
        record_store: ExternalRecordStore,
        ledger: Optional[MappingLedger] = None,
        analytics: Optional[AnalyticsStore] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.registry = registry
        self.equipment_store = equipment_store
        self.record_store = record_store
        self.ledger = ledger or MappingLedger()
        self.analytics = analytics or AnalyticsStore()
        self.config = config or EngineConfig()
        self._by_equipment: Dict[str, Mapping] = {}
        self._by_record: Dict[str, str] = {}
        self._pending: List[MappingEvent] = []
        self._lock = threading.RLock()

    @contextmanager
    def _transaction(self, signature_ids: Iterable[str] = ()):
        """
        Snapshot everything an operation may touch; flush its ledger events
        on success, restore the snapshot on any failure. Callers hold the lock.
        """
        signature_ids = [i for i in signature_ids if i is not None]
        signatures = [self.registry.get(i) for i in signature_ids if self.registry.exists(i)]
        usage = {i: self.analytics.snapshot(i) for i in signature_ids}
        by_equipment = dict(self._by_equipment)
        by_record = dict(self._by_record)
        self._pending = []
        try:
            yield
            self.ledger.append_many(self._pending)
        except Exception:
            for s in signatures:
                self.registry.restore(s)
            for signature_id, snapshot in usage.items():
                self.analytics.restore(signature_id, snapshot)
            self._by_equipment = by_equipment
            self._by_record = by_record
            logger.exception("Mapping change failed; state restored")
            raise
        finally:
            self._pending = []

    # === EQUIPMENT ↔ SIGNATURE ===

    def current_signature_id(self, equipment_id: str) -> Optional[str]:
        """The signature listing this equipment, or None when unassigned."""
        listed = self.registry.find_by_equipment(equipment_id)
        if len(listed) > 1:
            raise ConflictError(
                f"Equipment {equipment_id} is listed under several signatures: "
                f"{sorted(s.id for s in listed)}"
            )
        return listed[0].id if listed else None

    def assign_signature(
        self,
        equipment_id: str,
        signature_id: str,
        actor: Optional[str] = None,
        expected_current=ANY,
        reason: Optional[str] = None,
    ) -> Signature:
        """Move the equipment under signature_id. Repeating the call is a no-op."""
        with self._lock:
            self.equipment_store.get(equipment_id)
            target = self.registry.get(signature_id)
            current_id = self.current_signature_id(equipment_id)

            if expected_current is not ANY and expected_current != current_id:
                logger.warning(
                    "Stale signature assignment for %s: expected %s, found %s",
                    equipment_id, expected_current, current_id,
                )
                raise ConflictError(
                    f"Equipment {equipment_id} is assigned to {current_id}, "
                    f"not {expected_current}"
                )

            if current_id == signature_id:
                return target

            with self._transaction([current_id, signature_id]):
                if current_id is not None:
                    previous = self.registry.get(current_id)
                    self.registry.replace_matching_equipment(
                        current_id,
                        [i for i in previous.matching_equipment_ids if i != equipment_id],
                    )

                updated = self.registry.replace_matching_equipment(
                    signature_id, target.matching_equipment_ids + [equipment_id]
                )
                self._set_mapping_signature(equipment_id, signature_id)
                self.analytics.record_usage(signature_id)
                self._record(
                    MappingEventType.SIGNATURE_ASSIGNED,
                    equipment_id,
                    actor,
                    signature_id=signature_id,
                    previous_signature_id=current_id,
                    reason=reason,
                )

            logger.info(
                "Assigned equipment %s to signature %s (was %s)",
                equipment_id, signature_id, current_id,
            )
            return updated

    def unassign_signature(
        self,
        equipment_id: str,
        actor: Optional[str] = None,
        reason: Optional[str] = None,
        expected_current=ANY,
    ) -> Optional[str]:
        """Remove the equipment from its signature. Returns the old signature id."""
        with self._lock:
            current_id = self.current_signature_id(equipment_id)
            if expected_current is not ANY and expected_current != current_id:
                logger.warning(
                    "Stale signature unassignment for %s: expected %s, found %s",
                    equipment_id, expected_current, current_id,
                )
                raise ConflictError(
                    f"Equipment {equipment_id} is assigned to {current_id}, "
                    f"not {expected_current}"
                )
            if current_id is None:
                return None

            with self._transaction([current_id]):
                current = self.registry.get(current_id)
                self.registry.replace_matching_equipment(
                    current_id,
                    [i for i in current.matching_equipment_ids if i != equipment_id],
                )
                self._set_mapping_signature(equipment_id, None)
                self._record(
                    MappingEventType.SIGNATURE_UNASSIGNED,
                    equipment_id,
                    actor,
                    previous_signature_id=current_id,
                    reason=reason,
                )

            logger.info("Unassigned equipment %s from signature %s", equipment_id, current_id)
            return current_id

    def _set_mapping_signature(self, equipment_id: str, signature_id: Optional[str]) -> None:
        mapping = self._by_equipment.get(equipment_id)
        if mapping is not None:
            self._by_equipment[equipment_id] = mapping.model_copy(
                update={"signature_id": signature_id}
            )

    # === EQUIPMENT ↔ EXTERNAL RECORD ===

    def assign_external_record(
        self,
        equipment_id: str,
        record_id: str,
        actor: Optional[str] = None,
        expected_current=ANY,
        expected_holder=ANY,
    ) -> Mapping:
        """
        Bind equipment and record, clearing any other edge through either node.

        expected_current: the record the caller believes the equipment holds.
        expected_holder: the equipment the caller believes holds the record.
        """
        with self._lock:
            self.equipment_store.get(equipment_id)
            self.record_store.get(record_id)

            existing = self._by_equipment.get(equipment_id)
            current_record = existing.external_record_id if existing else None
            holder = self._by_record.get(record_id)

            if expected_current is not ANY and expected_current != current_record:
                logger.warning(
                    "Stale record assignment for %s: expected %s, found %s",
                    equipment_id, expected_current, current_record,
                )
                raise ConflictError(
                    f"Equipment {equipment_id} is mapped to {current_record}, "
                    f"not {expected_current}"
                )
            if expected_holder is not ANY and expected_holder != holder:
                logger.warning(
                    "Stale record assignment for %s: expected holder %s, found %s",
                    record_id, expected_holder, holder,
                )
                raise ConflictError(
                    f"External record {record_id} is mapped to {holder}, "
                    f"not {expected_holder}"
                )

            if holder == equipment_id:
                return existing

            with self._transaction():
                if holder is not None:
                    self._drop(holder, actor, MappingEventType.RECORD_DISPLACED)
                if existing is not None:
                    self._drop(equipment_id, actor, MappingEventType.RECORD_UNASSIGNED)

                mapping = Mapping(
                    external_record_id=record_id,
                    equipment_instance_id=equipment_id,
                    signature_id=self.current_signature_id(equipment_id),
                    mapped_at=datetime.utcnow(),
                    mapped_by=actor or self.config.default_mapped_by,
                )
                self._by_equipment[equipment_id] = mapping
                self._by_record[record_id] = equipment_id
                self._record(
                    MappingEventType.RECORD_ASSIGNED,
                    equipment_id,
                    actor,
                    signature_id=mapping.signature_id,
                    external_record_id=record_id,
                )

            logger.info("Mapped external record %s to equipment %s", record_id, equipment_id)
            return mapping

    def unassign_external_record(
        self, equipment_id: str, actor: Optional[str] = None
    ) -> Optional[Mapping]:
        """Remove the equipment's mapping, if any."""
        with self._lock:
            if equipment_id not in self._by_equipment:
                return None
            with self._transaction():
                return self._drop(equipment_id, actor, MappingEventType.RECORD_UNASSIGNED)

    def release_external_record(
        self, record_id: str, actor: Optional[str] = None
    ) -> Optional[Mapping]:
        """Remove the mapping holding this external record, if any."""
        with self._lock:
            holder = self._by_record.get(record_id)
            if holder is None:
                return None
            with self._transaction():
                return self._drop(holder, actor, MappingEventType.RECORD_UNASSIGNED)

    def _drop(
        self, equipment_id: str, actor: Optional[str], event_type: MappingEventType
    ) -> Mapping:
        mapping = self._by_equipment.pop(equipment_id)
        self._by_record.pop(mapping.external_record_id, None)
        self._record(
            event_type,
            equipment_id,
            actor,
            signature_id=mapping.signature_id,
            external_record_id=mapping.external_record_id,
        )
        logger.info(
            "Removed mapping %s -> %s (%s)",
            mapping.external_record_id, equipment_id, event_type.value,
        )
        return mapping

    # === READS ===

    def mapping_for_equipment(self, equipment_id: str) -> Optional[MappingState]:
        mapping = self._by_equipment.get(equipment_id)
        return self._view(mapping) if mapping else None

    def mapping_for_external_record(self, record_id: str) -> Optional[MappingState]:
        holder = self._by_record.get(record_id)
        if holder is None:
            return None
        return self._view(self._by_equipment[holder])

    def list_mappings(self) -> List[MappingState]:
        return [self._view(m) for m in self._by_equipment.values()]

    def unmapped_external_records(self) -> List[ExternalRecord]:
        return [r for r in self.record_store.list() if r.id not in self._by_record]

    def _view(self, mapping: Mapping) -> MappingState:
        record_missing = not self.record_store.exists(mapping.external_record_id)
        return MappingState(
            mapping=mapping,
            external_record_name=(
                None if record_missing
                else self.record_store.get(mapping.external_record_id).name
            ),
            signature_missing=(
                mapping.signature_id is not None
                and not self.registry.exists(mapping.signature_id)
            ),
            equipment_missing=not self.equipment_store.exists(mapping.equipment_instance_id),
            external_record_missing=record_missing,
        )

    def _record(
        self,
        event_type: MappingEventType,
        equipment_id: str,
        actor: Optional[str],
        signature_id: Optional[str] = None,
        previous_signature_id: Optional[str] = None,
        external_record_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        # Written to the ledger when the enclosing transaction commits
        self._pending.append(MappingEvent(
            id=f"evt_{uuid4().hex[:12]}",
            event_type=event_type,
            equipment_instance_id=equipment_id,
            signature_id=signature_id,
            previous_signature_id=previous_signature_id,
            external_record_id=external_record_id,
            actor=actor or self.config.default_mapped_by,
            occurred_at=datetime.utcnow(),
            reason=reason,
        ))
