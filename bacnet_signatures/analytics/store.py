"""
Signature Analytics Store — usage and reviewer feedback per signature.

Owned outside the matching rules: the registry and matcher never
recompute these figures, they only read them.
"""

from datetime import datetime
from typing import Dict, List, Optional

from bacnet_signatures.models.analytics import SignatureAnalytics


class AnalyticsStore:

    def __init__(self):
        self._analytics: Dict[str, SignatureAnalytics] = {}

    def get(self, signature_id: str) -> SignatureAnalytics:
        """Analytics for a signature; an empty record if none were collected yet."""
        return self._analytics.get(
            signature_id, SignatureAnalytics(signature_id=signature_id)
        )

    def list(self) -> List[SignatureAnalytics]:
        return list(self._analytics.values())

    def record_usage(self, signature_id: str) -> SignatureAnalytics:
        """Count one assignment of the signature to an equipment instance."""
        current = self.get(signature_id)
        updated = current.model_copy(update={
            "total_matches": current.total_matches + 1,
            "usage_frequency": current.usage_frequency + 1,
            "last_used": datetime.utcnow(),
        })
        self._analytics[signature_id] = updated
        return updated

    def record_feedback(self, signature_id: str, positive: bool) -> SignatureAnalytics:
        current = self.get(signature_id)
        feedback = current.user_feedback.model_copy(update={
            "positive": current.user_feedback.positive + (1 if positive else 0),
            "negative": current.user_feedback.negative + (0 if positive else 1),
        })
        total = feedback.positive + feedback.negative
        updated = current.model_copy(update={
            "user_feedback": feedback,
            "accuracy": round(feedback.positive / total, 4) if total else 0.0,
        })
        self._analytics[signature_id] = updated
        return updated

    def snapshot(self, signature_id: str) -> Optional[SignatureAnalytics]:
        return self._analytics.get(signature_id)

    def restore(self, signature_id: str, snapshot: Optional[SignatureAnalytics]) -> None:
        """Undo changes made since snapshot() was taken."""
        if snapshot is None:
            self._analytics.pop(signature_id, None)
        else:
            self._analytics[signature_id] = snapshot
