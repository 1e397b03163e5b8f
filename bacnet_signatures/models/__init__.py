"""BACnet signature engine data models."""

from bacnet_signatures.models.analytics import SignatureAnalytics, UserFeedback
from bacnet_signatures.models.assignment import (
    AutoAssignment,
    AutoAssignmentStatus,
    BatchResult,
    BatchSummary,
    Recommendation,
    SkippedEquipment,
)
from bacnet_signatures.models.classification import (
    ConfidenceTier,
    NormalizationSummary,
    PointCategory,
    PointClassification,
)
from bacnet_signatures.models.config import EngineConfig
from bacnet_signatures.models.mapping import (
    ExternalRecord,
    Mapping,
    MappingEvent,
    MappingEventType,
    MappingState,
)
from bacnet_signatures.models.point import (
    EquipmentInstance,
    Point,
    PointKind,
    SemanticMetadata,
)
from bacnet_signatures.models.signature import (
    Signature,
    SignatureDraft,
    SignaturePatch,
    SignaturePoint,
    SignatureSource,
)

__all__ = [
    "AutoAssignment",
    "AutoAssignmentStatus",
    "BatchResult",
    "BatchSummary",
    "ConfidenceTier",
    "EngineConfig",
    "EquipmentInstance",
    "ExternalRecord",
    "Mapping",
    "MappingEvent",
    "MappingEventType",
    "MappingState",
    "NormalizationSummary",
    "Point",
    "PointCategory",
    "PointClassification",
    "PointKind",
    "Recommendation",
    "SemanticMetadata",
    "Signature",
    "SignatureAnalytics",
    "SignatureDraft",
    "SignaturePatch",
    "SignaturePoint",
    "SignatureSource",
    "SkippedEquipment",
    "UserFeedback",
]
