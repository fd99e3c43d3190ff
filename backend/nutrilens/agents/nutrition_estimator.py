"""
NutriLens AI - NutritionEstimator Agent

Produces ranged macro-nutrient estimates (calories, protein, carbs, fat,
optional fiber) for each accepted food item, and aggregates them into
meal totals.

Ranges are sanitized unconditionally: min is floored at 0 and max at
the adjusted min, whatever the model returned.
"""

import json
import logging
import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from nutrilens.core.base_agent import BaseAgent, clamp
from nutrilens.core.errors import ResponseParseError
from nutrilens.core.sanitizer import parse_json_array
from nutrilens.core.state import (
    EstimationInput,
    EstimationOutput,
    NutritionEstimate,
    NutritionTotals,
    RangedValue,
    RangeTotal,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert nutritionist providing nutrition range estimates for food items.

CRITICAL GUIDELINES:
- Provide RANGES, not exact values, to reflect uncertainty
- Explain variability factors (portion size, preparation method, ingredients)
- Never claim medical accuracy or prescribe dietary advice
- Be transparent about limitations and assumptions
- Consider typical preparation variations for each food

For each food item, in the same order as given, provide:
1. Calorie range (min-max) with confidence level
2. Protein range (g)
3. Carbohydrate range (g)
4. Fat range (g)
5. Fiber range (g) if applicable
6. List of variability factors affecting the estimates

Respond ONLY with a valid JSON array. No additional text.

Example format:
[
  {
    "foodItem": "Grilled chicken breast",
    "calories": {"min": 140, "max": 180, "confidence": 0.8},
    "protein": {"min": 26, "max": 31, "unit": "g"},
    "carbs": {"min": 0, "max": 0, "unit": "g"},
    "fat": {"min": 3, "max": 5, "unit": "g"},
    "fiber": {"min": 0, "max": 0, "unit": "g"},
    "variabilityFactors": [
      "Portion size estimated as medium (150g)",
      "Cooking method affects fat content",
      "Skin-on vs skinless changes calories significantly"
    ]
  }
]"""

# Unit for any range the model returns without one
DEFAULT_UNIT = "g"


class RawRange(BaseModel):
    """Shape of one range as returned by the model; min and max are required."""
    model_config = ConfigDict(extra="ignore")

    min: float
    max: float
    unit: Optional[str] = None
    confidence: Optional[float] = None


class RawNutritionEstimate(BaseModel):
    """Shape of one estimation entry as returned by the model."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    food_item: Optional[str] = Field(default=None, alias="foodItem")
    calories: RawRange
    protein: RawRange
    carbs: RawRange
    fat: RawRange
    fiber: Optional[RawRange] = None
    variability_factors: Optional[list[str]] = Field(default=None, alias="variabilityFactors")


def sanitize_range(
    raw: RawRange,
    default_confidence: Optional[float] = None,
) -> RangedValue:
    """Floor min at 0 and max at the adjusted min; clamp confidence into [0, 1]."""
    low = max(0.0, raw.min)
    high = max(low, raw.max)
    if raw.confidence is not None:
        confidence = clamp(raw.confidence)
    else:
        confidence = default_confidence
    return RangedValue(min=low, max=high, unit=raw.unit or DEFAULT_UNIT, confidence=confidence)


def sanitize_estimate(raw: RawNutritionEstimate, fallback_name: str) -> NutritionEstimate:
    """Apply the estimation invariants to one raw entry."""
    return NutritionEstimate(
        food_item=raw.food_item or fallback_name,
        calories=sanitize_range(raw.calories, default_confidence=0.0),
        protein=sanitize_range(raw.protein),
        carbs=sanitize_range(raw.carbs),
        fat=sanitize_range(raw.fat),
        fiber=sanitize_range(raw.fiber) if raw.fiber is not None else None,
        variability_factors=raw.variability_factors or [],
    )


class NutritionEstimator(BaseAgent[EstimationInput, EstimationOutput]):
    """
    Estimates nutrition ranges for accepted food items.

    Example:
        estimator = NutritionEstimator(inference, tracer)
        output = await estimator.execute(EstimationInput(food_items=items))
    """

    span_name = "nutrition-estimation-agent"

    @property
    def name(self) -> str:
        return "NutritionEstimator"

    def trace_input(self, input: EstimationInput) -> dict[str, Any]:
        return {"foodItems": [item.name for item in input.food_items]}

    async def process(self, input: EstimationInput) -> EstimationOutput:
        """
        Estimate ranged nutrition for each food item.

        Returns:
            EstimationOutput with one estimate per input item, same order

        Raises:
            UpstreamInferenceError: If the call fails
            ResponseParseError: If the payload is malformed, mis-shaped,
                or does not have one entry per food item
        """
        food_payload = [
            item.model_dump(mode="json", by_alias=True, exclude_none=True)
            for item in input.food_items
        ]
        text = await self.inference.generate(
            "Provide nutrition estimates for these food items:\n\n"
            + json.dumps(food_payload, indent=2),
            system_prompt=SYSTEM_PROMPT,
            model=self.model,
            temperature=0.4,
            max_tokens=2000,
            generation_name="nutrition-estimation",
        )

        entries = parse_json_array(text, self.name)
        raw_estimates = self._validate_entries(entries, RawNutritionEstimate)

        if len(raw_estimates) != len(input.food_items):
            raise ResponseParseError(
                self.name,
                f"Expected {len(input.food_items)} estimates, got {len(raw_estimates)}",
            )

        estimates = [
            sanitize_estimate(raw, item.name)
            for raw, item in zip(raw_estimates, input.food_items)
        ]
        return EstimationOutput(estimates=estimates)


def calculate_totals(estimates: list[NutritionEstimate]) -> NutritionTotals:
    """
    Combine per-item ranges into meal totals.

    Totals are worst-case additive bounds: ``total.min`` is the sum of the
    item minimums and ``total.max`` the sum of the item maximums. The
    average confidence is the mean calorie confidence, 0 for no items.

    ``math.fsum`` keeps the totals independent of item order.
    """

    def total(field_name: str) -> RangeTotal:
        ranges: list[RangedValue] = [getattr(estimate, field_name) for estimate in estimates]
        return RangeTotal(
            min=math.fsum(r.min for r in ranges),
            max=math.fsum(r.max for r in ranges),
        )

    if estimates:
        average_confidence = math.fsum(
            e.calories.confidence or 0.0 for e in estimates
        ) / len(estimates)
    else:
        average_confidence = 0.0

    return NutritionTotals(
        total_calories=total("calories"),
        total_protein=total("protein"),
        total_carbs=total("carbs"),
        total_fat=total("fat"),
        average_confidence=clamp(average_confidence),
    )
