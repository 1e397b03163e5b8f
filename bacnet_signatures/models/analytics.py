"""Signature analytics — aggregated by an external collaborator, read-only to matching."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class UserFeedback(BaseModel):
    positive: int = 0
    negative: int = 0


class SignatureAnalytics(BaseModel):
    signature_id: str
    total_matches: int = 0
    accuracy: float = 0.0                   # positive / (positive + negative)
    usage_frequency: int = 0
    last_used: Optional[datetime] = None
    user_feedback: UserFeedback = UserFeedback()
