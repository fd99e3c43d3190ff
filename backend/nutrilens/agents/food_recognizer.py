"""
NutriLens AI - FoodRecognizer Agent

Identifies the food items visible in a meal photo using Gemini Vision,
with a self-reported confidence for each item.

Recognition keeps every item it is given; the confidence filter below
decides which items move on to nutrition estimation.
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from nutrilens.core.base_agent import BaseAgent, clamp
from nutrilens.core.sanitizer import parse_json_array
from nutrilens.core.state import (
    ConfidenceFilterResult,
    FoodItem,
    RecognitionInput,
    RecognitionOutput,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.3

SYSTEM_PROMPT = """You are an expert food recognition AI. Analyze meal images and identify all food items visible.

For each food item, provide:
1. Name of the food
2. Confidence level (0-1) in your identification
3. Food category (protein, carbohydrate, vegetable, fruit, dairy, etc.)
4. Estimated portion size if visible (small, medium, large, or specific measurements)
5. Preparation method if identifiable (fried, baked, grilled, raw, etc.)

IMPORTANT GUIDELINES:
- Be honest about uncertainty. If you're not sure, lower the confidence score.
- Similar-looking foods can have very different nutritional profiles.
- Note any ambiguity in portion sizes or preparation methods.
- Do not make assumptions beyond what is visible in the image.

Respond ONLY with a valid JSON array of food items. No additional text.

Example format:
[
  {
    "name": "Grilled chicken breast",
    "confidence": 0.85,
    "category": "protein",
    "portionSize": "medium (approximately 150g)",
    "preparationMethod": "grilled"
  }
]"""

USER_PROMPT = "Please analyze this meal image and identify all food items."


class RawFoodItem(BaseModel):
    """Shape of one recognition entry as returned by the model."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: Optional[str] = None
    confidence: Optional[float] = None
    category: Optional[str] = None
    portion_size: Optional[str] = Field(default=None, alias="portionSize")
    preparation_method: Optional[str] = Field(default=None, alias="preparationMethod")

    @field_validator("portion_size", "preparation_method", mode="before")
    @classmethod
    def _scalar_to_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


def sanitize_food_item(raw: RawFoodItem) -> FoodItem:
    """Apply the recognition defaults: clamped confidence, default name and category."""
    return FoodItem(
        name=raw.name or "Unknown food",
        confidence=clamp(raw.confidence or 0.0),
        category=raw.category or "unknown",
        portion_size=raw.portion_size,
        preparation_method=raw.preparation_method,
    )


class FoodRecognizer(BaseAgent[RecognitionInput, RecognitionOutput]):
    """
    Specialized agent for food recognition using Gemini Vision.

    Example:
        recognizer = FoodRecognizer(inference, tracer, model="gemini-2.0-flash")
        output = await recognizer.execute(RecognitionInput(image_bytes=data))
    """

    span_name = "food-recognition-agent"

    @property
    def name(self) -> str:
        return "FoodRecognizer"

    def trace_input(self, input: RecognitionInput) -> dict[str, Any]:
        return {
            "imageProvided": True,
            "imageBytes": len(input.image_bytes),
            "mimeType": input.mime_type,
        }

    async def process(self, input: RecognitionInput) -> RecognitionOutput:
        """
        Recognize the food items in an image.

        Args:
            input: RecognitionInput with decoded image bytes

        Returns:
            RecognitionOutput with every recognized item, sanitized

        Raises:
            UpstreamInferenceError: If the call fails
            ResponseParseError: If the payload is not an array of food objects
        """
        text = await self.inference.generate(
            USER_PROMPT,
            system_prompt=SYSTEM_PROMPT,
            image=input.image_bytes,
            image_mime_type=input.mime_type,
            model=self.model,
            temperature=0.3,
            max_tokens=1000,
            generation_name="food-recognition",
        )

        entries = parse_json_array(text, self.name)
        items = [sanitize_food_item(raw) for raw in self._validate_entries(entries, RawFoodItem)]

        self._logger.info(f"FoodRecognizer detected {len(items)} items")
        return RecognitionOutput(items=items)


def filter_by_confidence(
    items: list[FoodItem],
    threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
) -> ConfidenceFilterResult:
    """
    Partition items around the confidence threshold, preserving order.

    Items at exactly the threshold are kept. An empty ``recognized_items``
    is the pipeline's only early-exit condition; the caller decides what
    to do with it.
    """
    recognized = [item for item in items if item.confidence >= threshold]
    low_confidence = [item for item in items if item.confidence < threshold]

    warnings = []
    if low_confidence:
        warnings.append(
            f"{len(low_confidence)} food item(s) detected with low confidence. "
            "Results may be less accurate."
        )
    if not recognized and items:
        warnings.append("All detected items have low confidence. Consider uploading a clearer image.")
    if not items:
        warnings.append("No food items detected in the image.")

    if low_confidence:
        logger.info(
            f"Confidence filter kept {len(recognized)}/{len(items)} items "
            f"(threshold={threshold:.2f})"
        )

    return ConfidenceFilterResult(
        recognized_items=recognized,
        low_confidence_items=low_confidence,
        warnings=warnings,
    )
