"""
NutriLens AI - Agents Module

Specialized agents for the meal analysis pipeline:
- FoodRecognizer: Food recognition with Gemini Vision
- NutritionEstimator: Ranged macro-nutrient estimates
- ReflectionCoach: Reflective, non-prescriptive questions
- HabitNudger: Rule-based and generated habit nudges
- QualityEvaluator: LLM-judge quality scoring
"""

from nutrilens.agents.food_recognizer import FoodRecognizer, filter_by_confidence
from nutrilens.agents.nutrition_estimator import NutritionEstimator, calculate_totals
from nutrilens.agents.reflection_coach import ReflectionCoach
from nutrilens.agents.habit_nudger import HabitNudger
from nutrilens.agents.quality_evaluator import QualityEvaluator

__all__ = [
    "FoodRecognizer",
    "NutritionEstimator",
    "ReflectionCoach",
    "HabitNudger",
    "QualityEvaluator",
    "filter_by_confidence",
    "calculate_totals",
]
