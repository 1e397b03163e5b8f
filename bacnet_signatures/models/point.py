"""Points and equipment instances — the inputs produced by ingestion."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class PointKind(str, Enum):
    """Haystack value kinds a BACnet point can carry."""

    NUMBER = "Number"
    BOOL = "Bool"
    STR = "Str"

    @classmethod
    def _missing_(cls, value):
        # Case-insensitive; "String" is an alias of Str
        if not isinstance(value, str):
            return None
        lowered = value.lower()
        if lowered == "string":
            return cls.STR
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return None


class SemanticMetadata(BaseModel):
    """Reasoning attached to a point by the normalization pipeline."""

    vendor_specific: bool = False
    equipment_specific: bool = False
    reasoning: List[str] = []               # e.g. "Zone Temperature sensor (VAV)"


class Point(BaseModel):
    """
    A single BACnet point exposed by field equipment.

    Immutable once ingested except for normalized_name and
    normalization_confidence, which a reviewer may correct.
    """

    id: str
    display_name: str                       # BACnet "dis"
    functional_description: Optional[str] = None
    kind: PointKind
    unit: Optional[str] = None
    writable: bool = False
    normalized_name: Optional[str] = None
    normalization_confidence: Optional[float] = Field(default=None, ge=0, le=100)
    tags: List[str] = []                    # Haystack marker tags
    semantic: Optional[SemanticMetadata] = None


class EquipmentInstance(BaseModel):
    """One piece of field equipment and the points it owns, in source order."""

    id: str
    equipment_type: str
    vendor_name: Optional[str] = None
    model_name: Optional[str] = None
    points: List[Point] = []
