"""Engine configuration."""

from pydantic import BaseModel


class EngineConfig(BaseModel):
    """
    Thresholds used across the engine.

    Two independent confidence threshold sets exist:
      tier_*:   confidence tiers (None/Low/Medium/High) and tier filters
      review_*: coarser operator-facing buckets for manual review summaries
    """

    tier_medium_min: float = 70
    tier_high_min: float = 90
    review_high_min: float = 80
    review_low_below: float = 50
    search_min_length: int = 2
    verify_confidence_step: float = 10
    default_mapped_by: str = "local_user"

    # Auto-assignment gates
    auto_assign_min_confidence: float = 95
    auto_assign_review_below: float = 98
    auto_assign_min_accuracy: float = 0.85
    auto_assign_batch_size: int = 10       # Default assignment cap per batch
    auto_assign_max_batch: int = 100       # Most equipment ids accepted per batch

    log_level: str = "INFO"
    log_json: bool = False
