"""Tests for the Mapping Ledger."""

import sqlite3
from datetime import datetime

import pytest

from bacnet_signatures.mapping.ledger import MappingLedger
from bacnet_signatures.models.mapping import MappingEvent, MappingEventType


def _make_event(
    event_id: str = "evt_1",
    equipment_id: str = "E1",
    record_id=None,
    event_type: MappingEventType = MappingEventType.SIGNATURE_ASSIGNED,
) -> MappingEvent:
    return MappingEvent(
        id=event_id,
        event_type=event_type,
        equipment_instance_id=equipment_id,
        signature_id="sig_1",
        external_record_id=record_id,
        actor="test",
        occurred_at=datetime.utcnow(),
    )


class TestMappingLedger:
    def setup_method(self):
        self.ledger = MappingLedger(db_path=":memory:")

    def test_append_signs_event(self):
        event = self.ledger.append(_make_event())
        assert event.signature != ""
        assert event.prior_record_hash is None
        assert self.ledger.count() == 1

    def test_hash_chaining(self):
        events = [self.ledger.append(_make_event(f"evt_{i}")) for i in range(5)]
        for i in range(1, len(events)):
            assert events[i].prior_record_hash == events[i - 1].signature

    def test_chain_integrity(self):
        for i in range(25):
            self.ledger.append(_make_event(f"evt_{i}"))
        assert self.ledger.verify_chain_integrity() is True

    def test_tampering_detected(self):
        for i in range(3):
            self.ledger.append(_make_event(f"evt_{i}"))
        self.ledger._conn.execute(
            "UPDATE mapping_events SET event_json = replace(event_json, '\"test\"', '\"mallory\"') "
            "WHERE id = 'evt_1'"
        )
        assert self.ledger.verify_chain_integrity() is False

    def test_empty_ledger_is_valid(self):
        assert self.ledger.verify_chain_integrity() is True

    def test_append_many_chains_in_order(self):
        events = self.ledger.append_many([_make_event("evt_a"), _make_event("evt_b")])
        assert events[1].prior_record_hash == events[0].signature
        assert self.ledger.verify_chain_integrity() is True

    def test_append_many_is_all_or_nothing(self):
        self.ledger.append(_make_event("evt_0"))
        with pytest.raises(sqlite3.IntegrityError):
            self.ledger.append_many([_make_event("evt_1"), _make_event("evt_0")])
        assert self.ledger.count() == 1
        assert self.ledger.verify_chain_integrity() is True

    def test_query_by_equipment(self):
        for i in range(4):
            self.ledger.append(_make_event(f"evt_{i}", equipment_id="E1" if i % 2 else "E2"))
        assert [e.id for e in self.ledger.query_by_equipment("E1")] == ["evt_1", "evt_3"]

    def test_query_by_external_record(self):
        self.ledger.append(_make_event("evt_a", record_id="cx-1",
                                       event_type=MappingEventType.RECORD_ASSIGNED))
        self.ledger.append(_make_event("evt_b", record_id="cx-2",
                                       event_type=MappingEventType.RECORD_ASSIGNED))
        results = self.ledger.query_by_external_record("cx-2")
        assert [e.id for e in results] == ["evt_b"]

    def test_query_recent(self):
        for i in range(10):
            self.ledger.append(_make_event(f"evt_{i}"))
        recent = self.ledger.query_recent(limit=3)
        assert [e.id for e in recent] == ["evt_7", "evt_8", "evt_9"]

    def test_file_backed_ledger_persists(self, tmp_path):
        path = str(tmp_path / "mappings.db")
        ledger = MappingLedger(db_path=path)
        ledger.append(_make_event())
        ledger.close()

        reopened = MappingLedger(db_path=path)
        assert reopened.count() == 1
        assert reopened.verify_chain_integrity() is True
        reopened.close()
