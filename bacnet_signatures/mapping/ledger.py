"""
Mapping Ledger — append-only, hash-chained history of mapping changes.

Behavioral Contract:
- Append-only. No event is ever modified or deleted.
- Each event is hashed and chained to the previous one.
- Queryable by equipment id, external record id and recency.
"""

import hashlib
import json
import logging
import sqlite3
from typing import List, Optional

from bacnet_signatures.models.mapping import MappingEvent

logger = logging.getLogger(__name__)


def _digest(event: MappingEvent) -> str:
    payload = event.model_dump(mode="json")
    payload["signature"] = ""
    return hashlib.sha256(
        json.dumps(payload, sort_keys=True, default=str).encode()
    ).hexdigest()


class MappingLedger:
    """
    Mapping event store.
    SQLite in-memory by default; pass a file path for a durable ledger.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS mapping_events (
                id TEXT PRIMARY KEY,
                event_type TEXT NOT NULL,
                equipment_instance_id TEXT NOT NULL,
                signature_id TEXT,
                external_record_id TEXT,
                actor TEXT NOT NULL,
                signature TEXT NOT NULL,
                prior_record_hash TEXT,
                event_json TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_mapping_events_equipment
            ON mapping_events(equipment_instance_id)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_mapping_events_record
            ON mapping_events(external_record_id)
        """)
        self._conn.commit()

    def append(self, event: MappingEvent) -> MappingEvent:
        """Chain the event to the latest one, sign it and store it."""
        return self.append_many([event])[0]

    def append_many(self, events: List[MappingEvent]) -> List[MappingEvent]:
        """
        Store several events in one transaction. Either all of them are
        written, chained in order, or none are.
        """
        previous = self._get_latest_hash()
        try:
            for event in events:
                event.prior_record_hash = previous
                event.signature = _digest(event)
                self._conn.execute(
                    """
                    INSERT INTO mapping_events (
                        id, event_type, equipment_instance_id, signature_id,
                        external_record_id, actor, signature, prior_record_hash, event_json
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        event.id,
                        event.event_type.value,
                        event.equipment_instance_id,
                        event.signature_id,
                        event.external_record_id,
                        event.actor,
                        event.signature,
                        event.prior_record_hash,
                        event.model_dump_json(),
                    ),
                )
                previous = event.signature
            self._conn.commit()
        except sqlite3.Error:
            self._conn.rollback()
            raise

        for event in events:
            logger.debug("Ledger %s: %s", event.event_type.value, event.id)
        return events

    def _get_latest_hash(self) -> Optional[str]:
        row = self._conn.execute(
            "SELECT signature FROM mapping_events ORDER BY rowid DESC LIMIT 1"
        ).fetchone()
        return row["signature"] if row else None

    def _deserialize(self, row: sqlite3.Row) -> MappingEvent:
        return MappingEvent.model_validate_json(row["event_json"])

    def query_by_equipment(self, equipment_id: str) -> List[MappingEvent]:
        rows = self._conn.execute(
            "SELECT event_json FROM mapping_events WHERE equipment_instance_id = ? "
            "ORDER BY rowid",
            (equipment_id,),
        ).fetchall()
        return [self._deserialize(r) for r in rows]

    def query_by_external_record(self, record_id: str) -> List[MappingEvent]:
        rows = self._conn.execute(
            "SELECT event_json FROM mapping_events WHERE external_record_id = ? "
            "ORDER BY rowid",
            (record_id,),
        ).fetchall()
        return [self._deserialize(r) for r in rows]

    def query_recent(self, limit: int = 50) -> List[MappingEvent]:
        rows = self._conn.execute(
            "SELECT event_json FROM mapping_events ORDER BY rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._deserialize(r) for r in reversed(rows)]

    def verify_chain_integrity(self) -> bool:
        """Recompute every signature and check each link to its predecessor."""
        rows = self._conn.execute(
            "SELECT event_json, signature FROM mapping_events ORDER BY rowid"
        ).fetchall()

        previous = None
        for row in rows:
            event = self._deserialize(row)
            if event.signature != row["signature"] or event.signature != _digest(event):
                return False
            if event.prior_record_hash != previous:
                return False
            previous = event.signature
        return True

    def count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) as cnt FROM mapping_events").fetchone()
        return row["cnt"]

    def close(self) -> None:
        self._conn.close()
