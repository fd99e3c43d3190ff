"""
NutriLens AI - Error Taxonomy

Exceptions raised by the analysis pipeline and the feedback flow.
The HTTP layer maps each family to a status category:

- InputError, FeedbackInputError -> client error (400)
- NoConfidentItemsError -> rejected input (422)
- AgentError and subclasses -> server-side failure (500)
- EvaluationError (an AgentError) -> never leaves the evaluation stage
"""

from typing import Any


class NutriLensError(Exception):
    """Base exception for all NutriLens errors."""


class InputError(NutriLensError):
    """Missing or undecodable image payload."""


class FeedbackInputError(NutriLensError):
    """Feedback submitted without an analysis identifier."""


class NoConfidentItemsError(NutriLensError):
    """Confidence filtering left no items to analyze."""

    def __init__(self, warnings: list[str], low_confidence_items: list[Any] | None = None):
        self.warnings = warnings
        self.low_confidence_items = low_confidence_items or []
        super().__init__("No food items could be recognized with sufficient confidence")


class AgentError(NutriLensError):
    """Base exception for agent errors."""

    def __init__(self, agent_name: str, message: str, original_error: Exception | None = None):
        self.agent_name = agent_name
        self.message = message
        self.original_error = original_error
        super().__init__(f"[{agent_name}] {message}")


class UpstreamInferenceError(AgentError):
    """The inference service failed, timed out or returned no usable text."""


class ResponseParseError(UpstreamInferenceError):
    """The inference service answered with a malformed or mis-shaped payload."""


class EvaluationError(AgentError):
    """Quality evaluation failed as a whole. Contained by the detached evaluation task."""
