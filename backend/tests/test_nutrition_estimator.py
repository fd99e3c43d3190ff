"""Tests for NutritionEstimator and meal totals."""

import json

import pytest

from conftest import ScriptedInference, food
from nutrilens.agents.nutrition_estimator import (
    NutritionEstimator,
    RawRange,
    calculate_totals,
    sanitize_range,
)
from nutrilens.core.errors import ResponseParseError
from nutrilens.core.state import EstimationInput, NutritionEstimate, RangedValue


def estimate(name: str, calories: tuple, protein=(0, 0), carbs=(0, 0), fat=(0, 0), confidence=None):
    return NutritionEstimate(
        food_item=name,
        calories=RangedValue(min=calories[0], max=calories[1], unit="kcal", confidence=confidence),
        protein=RangedValue(min=protein[0], max=protein[1], unit="g"),
        carbs=RangedValue(min=carbs[0], max=carbs[1], unit="g"),
        fat=RangedValue(min=fat[0], max=fat[1], unit="g"),
    )


def raw_entry(calories: dict, name: str = "Pasta") -> dict:
    return {
        "foodItem": name,
        "calories": calories,
        "protein": {"min": 5, "max": 8},
        "carbs": {"min": 40, "max": 50},
        "fat": {"min": 2, "max": 4},
    }


class TestSanitizeRange:
    def test_inverted_range_collapses_to_min(self):
        sanitized = sanitize_range(RawRange(min=50, max=10))
        assert (sanitized.min, sanitized.max) == (50, 50)

    def test_negative_min_floored(self):
        sanitized = sanitize_range(RawRange(min=-20, max=-5))
        assert (sanitized.min, sanitized.max) == (0, 0)

    def test_confidence_clamped(self):
        assert sanitize_range(RawRange(min=1, max=2, confidence=3)).confidence == 1.0

    def test_default_unit(self):
        assert sanitize_range(RawRange(min=1, max=2)).unit == "g"
        assert sanitize_range(RawRange(min=1, max=2), default_confidence=0.0).unit == "g"

    def test_returned_unit_kept(self):
        assert sanitize_range(RawRange(min=1, max=2, unit="kcal")).unit == "kcal"


async def test_estimates_are_sanitized(tracer):
    inference = ScriptedInference({
        "nutrition-estimation": json.dumps([raw_entry({"min": 50, "max": 10})]),
    })
    estimator = NutritionEstimator(inference, tracer)

    output = await estimator.execute(EstimationInput(food_items=[food("Pasta")]))

    calories = output.estimates[0].calories
    assert (calories.min, calories.max) == (50, 50)
    assert calories.unit == "g"
    assert calories.confidence == 0.0
    assert output.estimates[0].variability_factors == []


async def test_missing_food_name_falls_back_to_item(tracer):
    entry = raw_entry({"min": 100, "max": 150})
    del entry["foodItem"]
    inference = ScriptedInference({"nutrition-estimation": json.dumps([entry])})

    output = await NutritionEstimator(inference, tracer).execute(
        EstimationInput(food_items=[food("Penne")])
    )

    assert output.estimates[0].food_item == "Penne"


async def test_estimate_count_must_match_items(tracer):
    inference = ScriptedInference({
        "nutrition-estimation": json.dumps([raw_entry({"min": 100, "max": 150})]),
    })

    with pytest.raises(ResponseParseError, match="Expected 2 estimates, got 1"):
        await NutritionEstimator(inference, tracer).execute(
            EstimationInput(food_items=[food("Pasta"), food("Salad")])
        )


async def test_missing_required_range_fails(tracer):
    entry = raw_entry({"min": 100, "max": 150})
    del entry["fat"]
    inference = ScriptedInference({"nutrition-estimation": json.dumps([entry])})

    with pytest.raises(ResponseParseError):
        await NutritionEstimator(inference, tracer).execute(EstimationInput(food_items=[food("Pasta")]))


class TestCalculateTotals:
    def test_ranges_add_up(self):
        totals = calculate_totals([
            estimate("Toast", (100, 120), protein=(3, 4), confidence=0.8),
            estimate("Eggs", (200, 250), protein=(12, 14), confidence=0.6),
        ])

        assert totals.total_calories.min == 300
        assert totals.total_calories.max == 370
        assert totals.total_protein.min == 15
        assert totals.total_protein.max == 18
        assert totals.average_confidence == pytest.approx(0.7)

    def test_missing_calorie_confidence_counts_as_zero(self):
        totals = calculate_totals([
            estimate("A", (10, 20), confidence=0.8),
            estimate("B", (10, 20)),
        ])
        assert totals.average_confidence == pytest.approx(0.4)

    def test_no_estimates(self):
        totals = calculate_totals([])
        assert totals.total_calories.min == 0
        assert totals.total_calories.max == 0
        assert totals.average_confidence == 0.0

    def test_totals_bracket_every_combination(self):
        estimates = [estimate("A", (10.1, 20.2)), estimate("B", (0.3, 0.7)), estimate("C", (5, 5))]

        totals = calculate_totals(estimates)

        assert totals.total_calories.min <= totals.total_calories.max
        assert totals.total_calories.min >= 0

    def test_order_does_not_matter(self):
        estimates = [
            estimate("A", (0.1, 0.2), confidence=0.3),
            estimate("B", (0.7, 1.9), confidence=0.9),
            estimate("C", (100.3, 120.6), confidence=0.5),
        ]

        forward = calculate_totals(estimates)
        backward = calculate_totals(list(reversed(estimates)))

        assert forward == backward
