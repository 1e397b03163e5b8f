"""Signature — a named template of the points an equipment class should expose."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from bacnet_signatures.models.point import PointKind


class SignatureSource(str, Enum):
    AUTO_GENERATED = "auto-generated"
    USER_VALIDATED = "user-validated"
    USER_CREATED = "user-created"


class SignaturePoint(BaseModel):
    """A template point. Only the (name, kind, unit) triple takes part in matching."""

    name: str
    kind: PointKind
    unit: Optional[str] = None


class Signature(BaseModel):
    """A validated signature as held by the registry."""

    id: str
    name: str
    equipment_type: str
    point_signature: List[SignaturePoint]
    source: SignatureSource
    confidence: float = Field(ge=0, le=100)
    # Set semantics; kept as a list so JSON output is stable
    matching_equipment_ids: List[str] = []
    created_at: datetime
    updated_at: datetime


class SignatureDraft(BaseModel):
    """Input to SignatureRegistry.create. Confidence is clamped, not rejected."""

    name: str
    equipment_type: str
    point_signature: List[SignaturePoint]
    source: SignatureSource = SignatureSource.USER_CREATED
    confidence: Optional[float] = None      # Defaults to 100 for user-created
    matching_equipment_ids: List[str] = []


class SignaturePatch(BaseModel):
    """Partial update. Only fields explicitly set are applied and validated."""

    name: Optional[str] = None
    equipment_type: Optional[str] = None
    point_signature: Optional[List[SignaturePoint]] = None
    source: Optional[SignatureSource] = None
    confidence: Optional[float] = None
