"""Pytest configuration and fixtures."""

import asyncio
import json
import os
from typing import Any, Optional

# Keep Opik from tracking or phoning home while the suite runs
os.environ.setdefault("OPIK_TRACK_DISABLE", "true")
os.environ.setdefault("ENABLE_TRACING", "false")

import pytest

from nutrilens.config import Settings
from nutrilens.core.errors import UpstreamInferenceError
from nutrilens.core.state import FoodItem
from nutrilens.core.tracing import Tracer


class ScriptedInference:
    """
    Stand-in for InferenceClient keyed by ``generation_name``.

    A scripted value is returned as the response text; an exception
    instance is raised instead. Unscripted generations fail the way an
    unreachable service would.

    Usage:
        inference = ScriptedInference({"food-recognition": '[{"name": "Rice"}]'})
        text = await inference.generate("...", generation_name="food-recognition")
    """

    def __init__(self, responses: Optional[dict[str, Any]] = None):
        self.default_model = "fake-model"
        self.is_configured = True
        self.responses: dict[str, Any] = dict(responses or {})
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[dict[str, Any]] = []

    async def generate(self, prompt: str, *, generation_name: str = "generation", **kwargs: Any) -> str:
        self.calls.append({"prompt": prompt, "generation_name": generation_name, **kwargs})

        gate = self.gates.get(generation_name)
        if gate is not None:
            await gate.wait()

        if generation_name not in self.responses:
            raise UpstreamInferenceError(generation_name, "No scripted response")
        value = self.responses[generation_name]
        if isinstance(value, BaseException):
            raise value
        return value

    def call_count(self, generation_name: str) -> int:
        return sum(1 for call in self.calls if call["generation_name"] == generation_name)


class FakeHandle:
    """A recorded Opik trace or span."""

    def __init__(self, client: "FakeOpikClient", name: str, input: Any, metadata: Any, parent=None):
        self.client = client
        self.name = name
        self.input = input
        self.metadata = metadata
        self.parent = parent
        self.ended = False
        self.output = None
        self.end_metadata: dict = {}

    def span(self, name: str, type: str = "general", input: Any = None, metadata: Any = None) -> "FakeHandle":
        handle = FakeHandle(self.client, name, input, metadata, parent=self)
        self.client.handles.append(handle)
        return handle

    def end(self, output: Any = None, metadata: Any = None) -> None:
        self.ended = True
        self.output = output
        self.end_metadata = metadata or {}


class FakeOpikClient:
    """Records what the Tracer sends to Opik."""

    def __init__(self):
        self.handles: list[FakeHandle] = []
        self.flush_count = 0

    def trace(self, name: str, input: Any = None, metadata: Any = None) -> FakeHandle:
        handle = FakeHandle(self, name, input, metadata)
        self.handles.append(handle)
        return handle

    def flush(self) -> None:
        self.flush_count += 1

    def named(self, name: str) -> list[FakeHandle]:
        return [h for h in self.handles if h.name == name]


# === Scripted responses ===

RECOGNITION_RESPONSE = json.dumps([
    {
        "name": "Grilled chicken breast",
        "confidence": 0.9,
        "category": "protein",
        "portionSize": "medium (150g)",
        "preparationMethod": "grilled",
    },
    {"name": "Steamed broccoli", "confidence": 0.8, "category": "vegetable"},
    {"name": "Mystery sauce", "confidence": 0.2, "category": "condiment"},
])

ESTIMATION_RESPONSE = json.dumps([
    {
        "foodItem": "Grilled chicken breast",
        "calories": {"min": 140, "max": 180, "confidence": 0.8},
        "protein": {"min": 26, "max": 31, "unit": "g"},
        "carbs": {"min": 0, "max": 0, "unit": "g"},
        "fat": {"min": 3, "max": 5, "unit": "g"},
        "variabilityFactors": ["Portion size estimated"],
    },
    {
        "foodItem": "Steamed broccoli",
        "calories": {"min": 30, "max": 50, "confidence": 0.6},
        "protein": {"min": 2, "max": 4},
        "carbs": {"min": 5, "max": 8},
        "fat": {"min": 0, "max": 1},
    },
])

REFLECTION_RESPONSE = "```json\n" + json.dumps([
    {"question": "What drew you to this meal today?", "category": "awareness", "relevance": 0.9},
    {"question": "How do you usually feel after a meal like this?", "category": "habits"},
]) + "\n```"

NUDGE_RESPONSE = json.dumps([
    {"message": "Nice balance of protein and greens.", "type": "positive"},
    {
        "message": "You could explore a whole grain alongside this.",
        "type": "suggestion",
        "actionable": True,
        "relatedGoal": "variety",
    },
])

JUDGE_RESPONSES = {
    "hallucination-judge": "0.9",
    "clarity-judge": "0.8",
    "tone_safety-judge": "1.0",
}


def pipeline_responses(**overrides: Any) -> dict[str, Any]:
    """A complete, successful set of scripted responses."""
    responses = {
        "food-recognition": RECOGNITION_RESPONSE,
        "nutrition-estimation": ESTIMATION_RESPONSE,
        "reflection": REFLECTION_RESPONSE,
        "habit-nudges": NUDGE_RESPONSE,
        **JUDGE_RESPONSES,
    }
    responses.update(overrides)
    return responses


def food(name: str, confidence: float = 0.9, category: str = "unknown") -> FoodItem:
    return FoodItem(name=name, confidence=confidence, category=category)


# === Fixtures ===

@pytest.fixture
def inference() -> ScriptedInference:
    return ScriptedInference(pipeline_responses())


@pytest.fixture
def opik_client() -> FakeOpikClient:
    return FakeOpikClient()


@pytest.fixture
def tracer(opik_client: FakeOpikClient) -> Tracer:
    return Tracer(client=opik_client)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        google_api_key="test-key",
        opik_api_key="",
        enable_tracing=False,
        enable_evaluation=True,
        confidence_threshold=0.3,
    )
