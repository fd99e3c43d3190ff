"""
NutriLens AI - In-Memory Feedback Storage

Simple storage layer for user feedback. Stands in for a database
(MongoDB, PostgreSQL) and offers no persistence guarantees.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel

from nutrilens.core.state import UserFeedback

logger = logging.getLogger(__name__)


class SatisfactionSummary(BaseModel):
    average: float = 0.0
    count: int = 0


class CorrectionStats(BaseModel):
    total_corrections: int = 0
    food_corrections: int = 0
    portion_corrections: int = 0


class InMemoryFeedbackStorage:
    """
    In-memory feedback store keyed by analysis id.

    For demo purposes - replace with database for production.
    """

    def __init__(self):
        self._feedback: dict[str, list[UserFeedback]] = defaultdict(list)
        logger.info("InMemoryFeedbackStorage initialized")

    def save_feedback(self, feedback: UserFeedback) -> UserFeedback:
        """Store feedback under its analysis id."""
        self._feedback[feedback.analysis_id].append(feedback)
        logger.info(f"Stored feedback {feedback.feedback_id} for analysis {feedback.analysis_id}")
        return feedback

    def find_by_analysis_id(self, analysis_id: str) -> list[UserFeedback]:
        """All feedback for an analysis, newest first."""
        return sorted(self._feedback.get(analysis_id, []), key=lambda f: f.timestamp, reverse=True)

    def all_feedback(self, since: Optional[datetime] = None) -> list[UserFeedback]:
        entries = [f for entries in self._feedback.values() for f in entries]
        if since is not None:
            entries = [f for f in entries if f.timestamp >= since]
        return entries

    def get_average_satisfaction(self, days: Optional[int] = None) -> SatisfactionSummary:
        """Mean satisfaction score over rated feedback."""
        since = datetime.now(timezone.utc) - timedelta(days=days) if days else None
        scores = [
            f.satisfaction_score
            for f in self.all_feedback(since)
            if f.satisfaction_score is not None
        ]
        if not scores:
            return SatisfactionSummary()
        return SatisfactionSummary(average=sum(scores) / len(scores), count=len(scores))

    def get_correction_stats(self, days: Optional[int] = None) -> CorrectionStats:
        """Counts of correction feedback, split by what was corrected."""
        since = datetime.now(timezone.utc) - timedelta(days=days) if days else None
        corrections = [
            f for f in self.all_feedback(since)
            if f.has_corrections
        ]
        return CorrectionStats(
            total_corrections=len(corrections),
            food_corrections=sum(1 for f in corrections if f.corrected_foods),
            portion_corrections=sum(1 for f in corrections if f.corrected_portions),
        )
