"""
NutriLens AI - Offline Quality Regression Runner

Scores a fixed set of analysis outputs with the LLM judges and checks
each score against its expected value. Run it after changing prompts or
judge models to catch drift before it ships.

Usage:
    python -m nutrilens.evals.run_regression
    python -m nutrilens.evals.run_regression --cases cases.json --tolerance 0.15
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

from nutrilens.agents.quality_evaluator import QualityEvaluator
from nutrilens.config import Settings, get_settings
from nutrilens.core.inference import InferenceClient
from nutrilens.core.tracing import Tracer
from nutrilens.evals.regression import (
    DEFAULT_TOLERANCE,
    RegressionCase,
    RegressionReport,
    run_regression_tests,
)

# Sample cases with known-good and known-bad outputs
REGRESSION_CASES = [
    RegressionCase(
        name="grounded_ranges",
        input_text="Analyze nutrition for: Grilled chicken breast, Steamed broccoli",
        output_text=json.dumps({
            "nutrition": [
                {"foodItem": "Grilled chicken breast", "calories": {"min": 140, "max": 180, "unit": "kcal"}},
                {"foodItem": "Steamed broccoli", "calories": {"min": 30, "max": 50, "unit": "kcal"}},
            ],
            "reflections": [{"question": "How do you usually feel after a meal like this?"}],
            "nudges": [{"message": "Nice balance of protein and greens."}],
        }),
        expected_hallucination_score=0.9,
        expected_tone_score=0.9,
    ),
    RegressionCase(
        name="invented_precision",
        input_text="Analyze nutrition for: Banana",
        output_text=json.dumps({
            "nutrition": [{"foodItem": "Banana", "calories": {"min": 612, "max": 612, "unit": "kcal"}}],
            "reflections": [],
            "nudges": [],
        }),
        expected_hallucination_score=0.1,
    ),
    RegressionCase(
        name="prescriptive_tone",
        input_text="Analyze nutrition for: Pasta carbonara",
        output_text=json.dumps({
            "nutrition": [{"foodItem": "Pasta carbonara", "calories": {"min": 550, "max": 800, "unit": "kcal"}}],
            "reflections": [],
            "nudges": [{"message": "You MUST stop eating pasta immediately to fix your cholesterol."}],
        }),
        expected_tone_score=0.1,
    ),
]


def load_cases(path: Optional[Path]) -> list[RegressionCase]:
    """Read cases from a JSON array file; fall back to the built-in samples."""
    if path is None:
        return list(REGRESSION_CASES)
    entries = json.loads(path.read_text(encoding="utf-8"))
    return [RegressionCase.model_validate(entry) for entry in entries]


def build_evaluator(settings: Settings) -> QualityEvaluator:
    inference = InferenceClient(
        api_key=settings.google_api_key,
        default_model=settings.judge_model,
        timeout_seconds=settings.inference_timeout_seconds,
    )
    return QualityEvaluator(
        inference,
        Tracer.from_settings(settings),
        model=settings.judge_model,
        track_metrics=settings.enable_tracing,
    )


def print_report(report: RegressionReport) -> None:
    for result in report.results:
        status = "✅" if result.passed else "❌"
        scores = result.scores
        print(
            f"{status} {result.name}: hallucination={scores.hallucination_score:.2f} "
            f"clarity={scores.clarity_score:.2f} tone={scores.tone_score:.2f}"
        )
        for mismatch in result.mismatches:
            print(f"     {mismatch}")

    print("=" * 60)
    print(f"{report.passed} passed, {report.failed} failed")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="NutriLens quality regression run")
    parser.add_argument(
        "--cases",
        type=Path,
        default=None,
        help="JSON file with regression cases (defaults to the built-in samples)"
    )
    parser.add_argument(
        "--tolerance",
        type=float,
        default=DEFAULT_TOLERANCE,
        help="Allowed distance between expected and actual scores"
    )
    args = parser.parse_args(argv)

    print("=" * 60)
    print("NutriLens Quality Regression")
    print("=" * 60)

    settings = get_settings()
    evaluator = build_evaluator(settings)
    cases = load_cases(args.cases)
    print(f"\n🧪 Running {len(cases)} case(s) with tolerance {args.tolerance:.2f}\n")

    report = asyncio.run(run_regression_tests(evaluator, cases, tolerance=args.tolerance))
    evaluator.tracer.flush()

    print_report(report)
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(main())
