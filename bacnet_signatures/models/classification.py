"""Point classification results and normalization summaries."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class PointCategory(str, Enum):
    TEMPERATURE = "Temperature"
    PRESSURE = "Pressure"
    AIRFLOW = "Airflow"
    STATUS = "Status"
    CONTROL = "Control"
    SETPOINT = "Setpoint"
    SENSOR = "Sensor"
    OTHER = "Other"


class ConfidenceTier(str, Enum):
    NONE = "None"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class PointClassification(BaseModel):
    point_id: str
    category: PointCategory
    confidence: Optional[float] = None
    tier: ConfidenceTier


class NormalizationSummary(BaseModel):
    """Aggregate over a batch of points, bucketed with the review thresholds."""

    total: int
    normalized: int
    with_confidence: int
    average_confidence: float
    high_confidence: int
    low_confidence: int
    normalization_rate: float               # Percentage of points with a normalized name
