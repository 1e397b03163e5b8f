"""
Point Categorizer — semantic grouping and confidence tiers for review.

Precedence is load-bearing: semantic reasoning is consulted before any
structural property, so a writable temperature point is Temperature,
not Setpoint.
"""

from typing import Iterable, List, Optional, Tuple

from bacnet_signatures.models.classification import (
    ConfidenceTier,
    NormalizationSummary,
    PointCategory,
    PointClassification,
)
from bacnet_signatures.models.config import EngineConfig
from bacnet_signatures.models.point import Point, PointKind

# Substrings that qualify a reasoning entry, in decision order.
_REASONING_RULES: List[Tuple[Tuple[str, ...], PointCategory]] = [
    (("Temperature",), PointCategory.TEMPERATURE),
    (("Pressure",), PointCategory.PRESSURE),
    (("Flow", "Airflow"), PointCategory.AIRFLOW),
    (("Status", "Occupancy"), PointCategory.STATUS),
    (("Speed", "Fan"), PointCategory.CONTROL),
]


def _category_from_reasoning(reasoning: List[str]) -> Optional[PointCategory]:
    for entry in reasoning:
        for needles, category in _REASONING_RULES:
            if any(n in entry for n in needles):
                return category
    return None


def categorize(point: Point) -> PointCategory:
    """Assign exactly one category. Pure: same point, same answer."""
    semantic = point.semantic
    if semantic is not None and semantic.equipment_specific:
        category = _category_from_reasoning(semantic.reasoning)
        if category is not None:
            return category

    if point.writable:
        return PointCategory.SETPOINT
    if point.kind == PointKind.BOOL:
        return PointCategory.STATUS
    if point.unit:
        return PointCategory.SENSOR
    return PointCategory.OTHER


def confidence_tier(
    confidence: Optional[float],
    config: Optional[EngineConfig] = None,
) -> ConfidenceTier:
    """
    Tier thresholds: absent -> None, < 70 -> Low, 70..89 -> Medium, >= 90 -> High.

    These are NOT the review-bucket thresholds used by summarize_normalization.
    """
    config = config or EngineConfig()
    if confidence is None:
        return ConfidenceTier.NONE
    if confidence >= config.tier_high_min:
        return ConfidenceTier.HIGH
    if confidence >= config.tier_medium_min:
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW


def classify(point: Point, config: Optional[EngineConfig] = None) -> PointClassification:
    return PointClassification(
        point_id=point.id,
        category=categorize(point),
        confidence=point.normalization_confidence,
        tier=confidence_tier(point.normalization_confidence, config),
    )


def classify_all(
    points: Iterable[Point],
    config: Optional[EngineConfig] = None,
) -> List[PointClassification]:
    return [classify(p, config) for p in points]


def filter_by_tier(
    points: Iterable[Point],
    tier: ConfidenceTier,
    config: Optional[EngineConfig] = None,
) -> List[Point]:
    """Confidence filter using the tier thresholds."""
    return [
        p for p in points
        if confidence_tier(p.normalization_confidence, config) == tier
    ]


def summarize_normalization(
    points: Iterable[Point],
    config: Optional[EngineConfig] = None,
) -> NormalizationSummary:
    """
    Aggregate normalization statistics for a batch of points.

    High/low counts use the review thresholds (>= 80, < 50), which are
    coarser than the tier boundaries.
    """
    config = config or EngineConfig()
    points = list(points)
    total = len(points)
    normalized = sum(1 for p in points if p.normalized_name)
    scored = [
        p.normalization_confidence for p in points
        if p.normalization_confidence is not None
    ]
    average = sum(scored) / len(scored) if scored else 0.0

    return NormalizationSummary(
        total=total,
        normalized=normalized,
        with_confidence=len(scored),
        average_confidence=round(average, 1),
        high_confidence=sum(1 for c in scored if c >= config.review_high_min),
        low_confidence=sum(1 for c in scored if c < config.review_low_below),
        normalization_rate=round(100.0 * normalized / total, 1) if total else 0.0,
    )
