"""Rule-based auto-assignment of signatures to equipment."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class AutoAssignmentStatus(str, Enum):
    PROPOSED = "proposed"       # Dry run, nothing changed
    ASSIGNED = "assigned"
    ROLLED_BACK = "rolled_back"


class Recommendation(BaseModel):
    """Whether an equipment instance qualifies for auto-assignment, and why."""

    equipment_id: str
    signature_id: Optional[str] = None
    signature_name: Optional[str] = None
    confidence: float = 0.0
    matched_count: int = 0
    total_signature_points: int = 0
    eligible: bool = False
    reason: str


class AutoAssignment(BaseModel):
    id: str
    equipment_id: str
    signature_id: str
    confidence: float
    requires_review: bool
    status: AutoAssignmentStatus
    assigned_by: str
    assigned_at: datetime
    confirmed: Optional[bool] = None
    rollback_reason: Optional[str] = None
    rolled_back_at: Optional[datetime] = None


class SkippedEquipment(BaseModel):
    equipment_id: str
    reason: str


class BatchSummary(BaseModel):
    total: int
    assigned: int
    skipped: int
    average_confidence: float


class BatchResult(BaseModel):
    dry_run: bool
    assignments: List[AutoAssignment] = []
    skipped: List[SkippedEquipment] = []
    summary: BatchSummary
