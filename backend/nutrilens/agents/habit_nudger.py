"""
NutriLens AI - HabitNudger Agent

Combines two independent nudge producers into one ordered list:

1. A deterministic positive-reinforcement rule driven by the meal's
   variety score (no model call).
2. Supportive nudges generated by the model.

The deterministic nudge, when present, comes first. The two sources are
not de-duplicated against each other.
"""

import json
import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from nutrilens.core.base_agent import BaseAgent
from nutrilens.core.sanitizer import parse_json_array
from nutrilens.core.state import (
    FoodItem,
    HabitNudge,
    MealContext,
    NudgeOutput,
    NudgeType,
)

logger = logging.getLogger(__name__)

MAX_GENERATED_NUDGES = 3
VARIETY_PER_CATEGORY = 0.2
HIGH_VARIETY_THRESHOLD = 0.8

SYSTEM_PROMPT = """You are a supportive nutrition awareness coach providing gentle, positive habit nudges.

CRITICAL GUIDELINES:
- Provide supportive, encouraging messages
- Focus on adding variety and trying new things, not restriction
- Never shame, judge, or prescribe specific diets
- Celebrate positive choices without being preachy
- Keep messages brief, actionable, and empowering
- Avoid medical or health claims

Types of nudges:
1. positive: Celebrate good choices or variety
2. neutral: Informative observations about meal patterns
3. suggestion: Gentle ideas for exploration (never commands)

Respond ONLY with a valid JSON array of 2-3 nudges. No additional text.

Example format:
[
  {"message": "Great variety of colors on your plate today!", "type": "positive", "actionable": false},
  {
    "message": "If you're looking to mix things up, have you tried pairing this with leafy greens?",
    "type": "suggestion",
    "actionable": true,
    "relatedGoal": "variety"
  }
]"""


def _normalized_categories(food_items: list[FoodItem]) -> set[str]:
    return {item.category.strip().lower() for item in food_items}


def calculate_variety_score(food_items: list[FoodItem]) -> float:
    """1 unique category scores 0.2; five or more score 1.0."""
    return min(1.0, len(_normalized_categories(food_items)) * VARIETY_PER_CATEGORY)


def positive_reinforcement(food_items: list[FoodItem]) -> Optional[HabitNudge]:
    """Fixed positive nudge for high variety, or for vegetables together with fruit."""
    if calculate_variety_score(food_items) >= HIGH_VARIETY_THRESHOLD:
        return HabitNudge(
            message="🌈 Excellent variety of food groups in this meal!",
            type=NudgeType.POSITIVE,
            actionable=False,
        )

    categories = _normalized_categories(food_items)
    if "vegetable" in categories and "fruit" in categories:
        return HabitNudge(
            message="🥗 Great job including both vegetables and fruits!",
            type=NudgeType.POSITIVE,
            actionable=False,
        )

    return None


class RawHabitNudge(BaseModel):
    """Shape of one nudge as returned by the model; the message is required."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message: str
    type: Optional[str] = None
    actionable: Optional[bool] = None
    related_goal: Optional[str] = Field(default=None, alias="relatedGoal")


def sanitize_nudge(raw: RawHabitNudge) -> HabitNudge:
    try:
        nudge_type = NudgeType((raw.type or "").strip().lower())
    except ValueError:
        nudge_type = NudgeType.NEUTRAL
    return HabitNudge(
        message=raw.message,
        type=nudge_type,
        actionable=bool(raw.actionable),
        related_goal=raw.related_goal,
    )


def personalize(nudges: list[HabitNudge], user_goals: list[str]) -> list[HabitNudge]:
    """Prefix nudges tied to one of the user's goals with ``[Goal: <goal>]``."""
    if not user_goals:
        return nudges
    return [
        nudge.model_copy(update={"message": f"[Goal: {nudge.related_goal}] {nudge.message}"})
        if nudge.related_goal and nudge.related_goal in user_goals
        else nudge
        for nudge in nudges
    ]


class HabitNudger(BaseAgent[MealContext, NudgeOutput]):
    """
    Produces the meal's habit nudges.

    Example:
        nudger = HabitNudger(inference, tracer)
        output = await nudger.execute(MealContext(food_items=items, nutrition_estimates=estimates))
    """

    span_name = "habit-nudge-agent"

    @property
    def name(self) -> str:
        return "HabitNudger"

    def trace_input(self, input: MealContext) -> dict[str, Any]:
        return {
            "foodCount": len(input.food_items),
            "categories": input.categories,
            "userGoals": input.user_goals,
        }

    async def process(self, input: MealContext) -> NudgeOutput:
        variety_score = calculate_variety_score(input.food_items)
        reinforcement = positive_reinforcement(input.food_items)

        generated = personalize(await self._generate(input, variety_score), input.user_goals)

        nudges = ([reinforcement] if reinforcement else []) + generated
        return NudgeOutput(nudges=nudges, variety_score=variety_score)

    async def _generate(self, input: MealContext, variety_score: float) -> list[HabitNudge]:
        meal_summary = {
            "foods": [{"name": f.name, "category": f.category} for f in input.food_items],
            "varietyScore": variety_score,
        }
        text = await self.inference.generate(
            "Generate 2-3 supportive habit nudges for this meal:\n\n"
            + json.dumps(meal_summary, indent=2),
            system_prompt=SYSTEM_PROMPT,
            model=self.model,
            temperature=0.8,
            max_tokens=600,
            generation_name="habit-nudges",
        )

        entries = parse_json_array(text, self.name)[:MAX_GENERATED_NUDGES]
        return [sanitize_nudge(raw) for raw in self._validate_entries(entries, RawHabitNudge)]
