"""
NutriLens AI - ReflectionCoach Agent

Generates open-ended, non-prescriptive reflective questions about a
meal. Questions help the user notice patterns; they never tell the user
what to eat.
"""

import json
import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from nutrilens.core.base_agent import BaseAgent, clamp
from nutrilens.core.sanitizer import parse_json_array
from nutrilens.core.state import (
    MealContext,
    MealType,
    ReflectionCategory,
    ReflectionOutput,
    ReflectionPrompt,
)

logger = logging.getLogger(__name__)

MAX_PROMPTS = 5
DEFAULT_RELEVANCE = 0.5

SYSTEM_PROMPT = """You are a thoughtful nutrition awareness coach. Generate reflective prompts that help users develop healthier awareness without being prescriptive or judgmental.

CRITICAL GUIDELINES:
- Focus on AWARENESS and REFLECTION, not prescription
- Ask open-ended questions that encourage self-discovery
- Never tell users what to eat or avoid
- Support autonomy and personal choice
- Be kind, non-judgmental, and empowering
- Avoid triggering language around dieting or restriction

Categories of prompts:
1. awareness: Questions about current eating patterns and feelings
2. goals: Questions about personal health and wellness intentions
3. habits: Questions about eating contexts and routines
4. alternatives: Exploratory questions about variety and options

Respond ONLY with a valid JSON array of 3-5 prompts. No additional text.

Example format:
[
  {"question": "What drew you to this meal today?", "category": "awareness", "relevance": 0.9},
  {"question": "How do you typically feel after eating meals like this?", "category": "awareness", "relevance": 0.85}
]"""

# Extra prompts keyed by meal time
MEAL_TIME_PROMPTS = {
    MealType.BREAKFAST: ReflectionPrompt(
        question="How does this breakfast make you feel ready for your day?",
        category=ReflectionCategory.AWARENESS,
        relevance=0.8,
    ),
    MealType.DINNER: ReflectionPrompt(
        question="What role does this evening meal play in your daily routine?",
        category=ReflectionCategory.HABITS,
        relevance=0.8,
    ),
}


class RawReflectionPrompt(BaseModel):
    """Shape of one prompt as returned by the model; the question is required."""
    model_config = ConfigDict(extra="ignore")

    question: str
    category: Optional[str] = None
    relevance: Optional[float] = None


def sanitize_prompt(raw: RawReflectionPrompt) -> ReflectionPrompt:
    try:
        category = ReflectionCategory((raw.category or "").strip().lower())
    except ValueError:
        category = ReflectionCategory.AWARENESS
    relevance = DEFAULT_RELEVANCE if raw.relevance is None else clamp(raw.relevance)
    return ReflectionPrompt(question=raw.question, category=category, relevance=relevance)


def build_meal_summary(context: MealContext) -> dict[str, Any]:
    """Compact description of the meal sent to the model."""
    return {
        "foods": [{"name": f.name, "category": f.category} for f in context.food_items],
        "nutritionSummary": [
            {
                "food": n.food_item,
                "calorieRange": f"{n.calories.min:g}-{n.calories.max:g}",
            }
            for n in context.nutrition_estimates
        ],
    }


class ReflectionCoach(BaseAgent[MealContext, ReflectionOutput]):
    """
    Generates 3-5 reflective questions for a meal.

    When a meal time is known, a time-specific question is appended
    (breakfast and dinner only) and the list is re-capped at five.
    """

    span_name = "reflection-agent"

    @property
    def name(self) -> str:
        return "ReflectionCoach"

    def trace_input(self, input: MealContext) -> dict[str, Any]:
        return {
            "foodCount": len(input.food_items),
            "categories": input.categories,
            "mealType": input.meal_type.value if input.meal_type else None,
        }

    async def process(self, input: MealContext) -> ReflectionOutput:
        text = await self.inference.generate(
            "Generate 3-5 reflective prompts for someone who just ate:\n\n"
            + json.dumps(build_meal_summary(input), indent=2),
            system_prompt=SYSTEM_PROMPT,
            model=self.model,
            temperature=0.7,
            max_tokens=800,
            generation_name="reflection",
        )

        entries = parse_json_array(text, self.name)[:MAX_PROMPTS]
        prompts = [sanitize_prompt(raw) for raw in self._validate_entries(entries, RawReflectionPrompt)]

        extra = MEAL_TIME_PROMPTS.get(input.meal_type) if input.meal_type else None
        if extra is not None:
            prompts = (prompts + [extra])[:MAX_PROMPTS]

        return ReflectionOutput(prompts=prompts)
