"""
NutriLens AI - Batch & Regression Evaluation

Offline helpers around QualityEvaluator:

- batch_evaluate: score many samples concurrently
- run_regression_tests: score fixed cases and compare each judge score
  with its expected value, within a tolerance (0.2 by default)

Usage:
    report = await run_regression_tests(evaluator, [
        RegressionCase(
            name="prescriptive tone",
            input_text="Analyze nutrition for: pasta",
            output_text="You MUST stop eating carbs.",
            expected_tone_score=0.1,
        ),
    ])
    print(f"{report.passed} passed, {report.failed} failed")
"""

import asyncio
import logging
from typing import Optional

from pydantic import BaseModel, Field

from nutrilens.agents.quality_evaluator import QualityEvaluator
from nutrilens.core.state import EvaluationInput, EvaluationMetrics

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 0.2


class RegressionCase(BaseModel):
    name: str
    input_text: str
    output_text: str
    expected_hallucination_score: Optional[float] = None
    expected_clarity_score: Optional[float] = None
    expected_tone_score: Optional[float] = None


class RegressionCaseResult(BaseModel):
    name: str
    passed: bool
    scores: EvaluationMetrics
    mismatches: list[str] = Field(default_factory=list)


class RegressionReport(BaseModel):
    passed: int = 0
    failed: int = 0
    results: list[RegressionCaseResult] = Field(default_factory=list)


async def batch_evaluate(
    evaluator: QualityEvaluator,
    samples: list[EvaluationInput],
) -> list[EvaluationMetrics]:
    """Evaluate all samples concurrently; results keep the sample order."""
    return list(await asyncio.gather(*(evaluator.execute(sample) for sample in samples)))


def _mismatches(case: RegressionCase, scores: EvaluationMetrics, tolerance: float) -> list[str]:
    checks = [
        ("hallucination_score", case.expected_hallucination_score, scores.hallucination_score),
        ("clarity_score", case.expected_clarity_score, scores.clarity_score),
        ("tone_score", case.expected_tone_score, scores.tone_score),
    ]
    return [
        f"{metric}: expected {expected:.2f}, got {actual:.2f}"
        for metric, expected, actual in checks
        if expected is not None and abs(actual - expected) > tolerance
    ]


async def run_regression_tests(
    evaluator: QualityEvaluator,
    cases: list[RegressionCase],
    tolerance: float = DEFAULT_TOLERANCE,
) -> RegressionReport:
    """Score each case in turn and compare against its expected scores."""
    report = RegressionReport()

    for case in cases:
        scores = await evaluator.execute(
            EvaluationInput(input_text=case.input_text, output_text=case.output_text)
        )
        mismatches = _mismatches(case, scores, tolerance)
        passed = not mismatches

        if passed:
            report.passed += 1
        else:
            report.failed += 1
            logger.warning(f"Regression case '{case.name}' failed: {'; '.join(mismatches)}")

        report.results.append(
            RegressionCaseResult(name=case.name, passed=passed, scores=scores, mismatches=mismatches)
        )

    logger.info(f"Regression run: {report.passed} passed, {report.failed} failed")
    return report
