"""
NutriLens AI - Pipeline Pydantic Schemas

This module defines the type-safe data structures handed between the
stages of the analysis pipeline, and the records produced for the
evaluation and feedback flows.

Wire format is camelCase (``foodItems``, ``portionSize``); Python code
uses snake_case attribute names.
"""

import secrets
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    model_validator,
)
from pydantic.alias_generators import to_camel


def new_id(prefix: str) -> str:
    """Generate an opaque identifier like ``analysis_1718000000000_k3j9x0a1b``."""
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# === Recognition ===

class FoodItem(FrozenCamelModel):
    """A single food item recognized in the meal image."""
    name: str = Field(..., description="Food item name")
    confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Self-reported model confidence in the identification"
    )
    category: str = Field(default="unknown", description="Food group (protein, vegetable, ...)")
    portion_size: Optional[str] = Field(default=None, description="Visible portion, e.g. 'medium (150g)'")
    preparation_method: Optional[str] = Field(default=None, description="fried, grilled, raw, ...")


class ConfidenceFilterResult(CamelModel):
    """Partition of recognized items around the confidence threshold."""
    recognized_items: list[FoodItem] = Field(default_factory=list)
    low_confidence_items: list[FoodItem] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# === Estimation ===

class RangedValue(CamelModel):
    """A [min, max] interval expressing uncertainty in a quantity."""
    min: float
    max: float
    unit: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "RangedValue":
        if self.min > self.max:
            raise ValueError(f"range min ({self.min}) exceeds max ({self.max})")
        return self


class NutritionEstimate(CamelModel):
    """Ranged macro-nutrient estimate for one recognized food item."""
    food_item: str = Field(..., description="Name of the food item this estimate describes")
    calories: RangedValue
    protein: RangedValue
    carbs: RangedValue
    fat: RangedValue
    fiber: Optional[RangedValue] = None
    variability_factors: list[str] = Field(
        default_factory=list,
        description="Why the ranges are wide (portion size, preparation, ...)"
    )


class RangeTotal(CamelModel):
    min: float = 0.0
    max: float = 0.0


class NutritionTotals(CamelModel):
    """Meal totals: worst-case additive bounds over all items."""
    total_calories: RangeTotal = Field(default_factory=RangeTotal)
    total_protein: RangeTotal = Field(default_factory=RangeTotal)
    total_carbs: RangeTotal = Field(default_factory=RangeTotal)
    total_fat: RangeTotal = Field(default_factory=RangeTotal)
    average_confidence: float = Field(default=0.0, ge=0.0, le=1.0)


# === Reflection & Nudges ===

class MealType(str, Enum):
    """Categorization of meal timing."""
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"


class ReflectionCategory(str, Enum):
    AWARENESS = "awareness"
    GOALS = "goals"
    HABITS = "habits"
    ALTERNATIVES = "alternatives"


class NudgeType(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    SUGGESTION = "suggestion"


class ReflectionPrompt(CamelModel):
    """Open-ended, non-prescriptive question about the meal."""
    question: str
    category: ReflectionCategory = ReflectionCategory.AWARENESS
    relevance: float = Field(default=0.5, ge=0.0, le=1.0)


class HabitNudge(CamelModel):
    """Short supportive message about eating habits."""
    message: str
    type: NudgeType = NudgeType.NEUTRAL
    actionable: bool = False
    related_goal: Optional[str] = None


# === Assembled result ===

class AnalysisResult(FrozenCamelModel):
    """
    Final analysis for one request.

    Assembled once after all user-facing stages complete and never
    mutated afterwards. Consumed by the caller and, detached, by the
    quality evaluation stage.
    """
    id: str = Field(default_factory=lambda: new_id("analysis"))
    timestamp: datetime = Field(default_factory=utc_now)
    food_items: list[FoodItem] = Field(..., min_length=1)
    nutrition_estimates: list[NutritionEstimate]
    reflection_prompts: list[ReflectionPrompt] = Field(default_factory=list, max_length=5)
    habit_nudges: list[HabitNudge] = Field(default_factory=list)
    overall_confidence: float = Field(..., ge=0.0, le=1.0)
    warnings: Optional[list[str]] = None

    @model_validator(mode="after")
    def _estimates_match_items(self) -> "AnalysisResult":
        if len(self.nutrition_estimates) != len(self.food_items):
            raise ValueError(
                f"{len(self.nutrition_estimates)} estimates for {len(self.food_items)} food items"
            )
        return self


class AnalysisOutcome(CamelModel):
    """What the pipeline hands back to the request handler."""
    analysis: AnalysisResult
    totals: NutritionTotals
    low_confidence_items: list[FoodItem] = Field(default_factory=list)


# === Evaluation ===

class CalibrationSample(CamelModel):
    """A past prediction and whether it turned out to be correct."""
    confidence: float = Field(..., ge=0.0, le=1.0)
    actual: bool


class EvaluationInput(CamelModel):
    """Text encoding of an analysis for the LLM judges."""
    analysis_id: Optional[str] = None
    input_text: str
    output_text: str
    context: Optional[str] = None
    calibration_samples: list[CalibrationSample] = Field(default_factory=list)


class EvaluationMetrics(CamelModel):
    """Quality scores for one analysis, all in [0, 1]."""
    hallucination_score: float = Field(..., ge=0.0, le=1.0)
    clarity_score: float = Field(..., ge=0.0, le=1.0)
    tone_score: float = Field(..., ge=0.0, le=1.0)
    confidence_calibration: float = Field(default=0.5, ge=0.0, le=1.0)
    overall_quality: float = Field(..., ge=0.0, le=1.0)


# === Feedback ===

class FeedbackType(str, Enum):
    CORRECTION = "correction"
    RATING = "rating"
    COMMENT = "comment"
    GENERAL = "general"


class UserFeedback(CamelModel):
    """
    User correction or rating for a past analysis.

    Linked to the analysis only by its identifier string; the identifier
    is not checked against stored results.
    """
    feedback_id: str = Field(default_factory=lambda: new_id("feedback"))
    analysis_id: str = Field(..., min_length=1)
    corrected_foods: Optional[list[str]] = None
    corrected_portions: Optional[list[str]] = None
    satisfaction_score: Optional[int] = Field(default=None, ge=1, le=5)
    comments: Optional[str] = Field(default=None, max_length=2000)
    timestamp: datetime = Field(default_factory=utc_now)

    @computed_field
    @property
    def feedback_type(self) -> FeedbackType:
        if self.has_corrections:
            return FeedbackType.CORRECTION
        if self.satisfaction_score:
            return FeedbackType.RATING
        if self.comments:
            return FeedbackType.COMMENT
        return FeedbackType.GENERAL

    @computed_field
    @property
    def sentiment(self) -> str:
        if not self.satisfaction_score:
            return "neutral"
        if self.satisfaction_score >= 4:
            return "positive"
        if self.satisfaction_score <= 2:
            return "negative"
        return "neutral"

    @property
    def has_corrections(self) -> bool:
        return bool(self.corrected_foods) or bool(self.corrected_portions)


# === Agent Input/Output Models ===

class RecognitionInput(BaseModel):
    """Input to FoodRecognizer agent."""
    image_bytes: bytes = Field(..., description="Decoded image data")
    mime_type: str = Field(default="image/jpeg")


class RecognitionOutput(BaseModel):
    """Output from FoodRecognizer agent."""
    items: list[FoodItem] = Field(default_factory=list)


class EstimationInput(BaseModel):
    """Input to NutritionEstimator agent."""
    food_items: list[FoodItem]


class EstimationOutput(BaseModel):
    """Output from NutritionEstimator agent."""
    estimates: list[NutritionEstimate] = Field(default_factory=list)


class MealContext(BaseModel):
    """Shared input of the reflection and nudge agents."""
    food_items: list[FoodItem]
    nutrition_estimates: list[NutritionEstimate] = Field(default_factory=list)
    meal_type: Optional[MealType] = None
    user_goals: list[str] = Field(default_factory=list)

    @property
    def categories(self) -> list[str]:
        """Unique categories in first-seen order."""
        return list(dict.fromkeys(item.category for item in self.food_items))


class ReflectionOutput(BaseModel):
    """Output from ReflectionCoach agent."""
    prompts: list[ReflectionPrompt] = Field(default_factory=list)


class NudgeOutput(BaseModel):
    """Output from HabitNudger agent."""
    nudges: list[HabitNudge] = Field(default_factory=list)
    variety_score: float = Field(default=0.0, ge=0.0, le=1.0)
