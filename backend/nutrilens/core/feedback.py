"""
NutriLens AI - Feedback Recorder

Accepts user corrections and ratings for a past analysis. The analysis
id is taken at face value: no lookup against stored results is made.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError

from nutrilens.core.errors import FeedbackInputError
from nutrilens.core.state import UserFeedback
from nutrilens.core.storage import InMemoryFeedbackStorage
from nutrilens.core.tracing import Tracer

logger = logging.getLogger(__name__)


class FeedbackRecorder:
    """
    Records feedback to the tracer and hands it to storage.

    Example:
        recorder = FeedbackRecorder(tracer, storage)
        feedback = recorder.record("analysis_123", satisfaction_score=4)
    """

    def __init__(
        self,
        tracer: Tracer,
        storage: InMemoryFeedbackStorage,
        store_feedback: bool = True,
    ):
        self.tracer = tracer
        self.storage = storage
        self.store_feedback = store_feedback

    def record(
        self,
        analysis_id: Optional[str],
        corrected_foods: Optional[list[str]] = None,
        corrected_portions: Optional[list[str]] = None,
        satisfaction_score: Optional[Any] = None,
        comments: Optional[str] = None,
    ) -> UserFeedback:
        """
        Record one piece of feedback.

        Raises:
            FeedbackInputError: If the analysis id is missing, or a field is out of range
        """
        if not analysis_id or not analysis_id.strip():
            raise FeedbackInputError("Analysis ID is required")

        try:
            feedback = UserFeedback(
                analysis_id=analysis_id.strip(),
                corrected_foods=corrected_foods,
                corrected_portions=corrected_portions,
                satisfaction_score=satisfaction_score,
                comments=comments,
            )
        except ValidationError as e:
            raise FeedbackInputError(f"Invalid feedback: {e.error_count()} error(s)") from e

        self.tracer.log_event(
            "user-feedback",
            input={
                "traceId": feedback.analysis_id,
                "score": feedback.satisfaction_score,
                "corrections": {
                    "foods": feedback.corrected_foods,
                    "portions": feedback.corrected_portions,
                },
                "comments": feedback.comments,
            },
            output={"feedbackId": feedback.feedback_id},
            metadata={
                "type": "feedback",
                "feedbackType": feedback.feedback_type.value,
                "originalTraceId": feedback.analysis_id,
            },
        )

        if self.store_feedback:
            self.storage.save_feedback(feedback)

        logger.info(
            f"Recorded {feedback.feedback_type.value} feedback {feedback.feedback_id} "
            f"for analysis {feedback.analysis_id}"
        )
        return feedback
