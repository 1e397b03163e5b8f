"""External commissioning records and the mappings that bind them to equipment."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ExternalRecord(BaseModel):
    """A CxAlloy equipment record. Opaque beyond its identity."""

    id: str
    name: str


class Mapping(BaseModel):
    """
    Live edge between one external record and one equipment instance.

    At most one Mapping exists per external_record_id and per
    equipment_instance_id.
    """

    external_record_id: str
    equipment_instance_id: str
    signature_id: Optional[str] = None
    mapped_at: datetime
    mapped_by: str


class MappingState(BaseModel):
    """
    Read view over a Mapping. References that no longer resolve are flagged,
    never hidden: a deleted signature leaves signature_missing=True.
    """

    mapping: Mapping
    external_record_name: Optional[str] = None
    signature_missing: bool = False
    equipment_missing: bool = False
    external_record_missing: bool = False


class MappingEventType(str, Enum):
    SIGNATURE_ASSIGNED = "signature_assigned"
    SIGNATURE_UNASSIGNED = "signature_unassigned"
    RECORD_ASSIGNED = "record_assigned"
    RECORD_UNASSIGNED = "record_unassigned"
    RECORD_DISPLACED = "record_displaced"     # Edge cleared to keep the bijection


class MappingEvent(BaseModel):
    """One ledger entry describing a change to the mapping state."""

    id: str
    event_type: MappingEventType
    equipment_instance_id: str
    signature_id: Optional[str] = None
    previous_signature_id: Optional[str] = None
    external_record_id: Optional[str] = None
    actor: str
    occurred_at: datetime
    reason: Optional[str] = None
    signature: str = ""
    prior_record_hash: Optional[str] = None
