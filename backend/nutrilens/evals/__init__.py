"""
NutriLens AI - Evaluation Module

Opik LLM-as-a-judge metrics and offline evaluation helpers:
- judge_metrics: hallucination, clarity and tone-safety judges
- calibration: expected calibration error of confidence scores
- regression: batch scoring and regression runs over fixed cases
- run_regression: command-line regression run (``nutrilens-eval``)
"""

from nutrilens.evals.judge_metrics import (
    ClarityMetric,
    HallucinationMetric,
    ToneSafetyMetric,
)
from nutrilens.evals.calibration import calibration_score, expected_calibration_error

__all__ = [
    "HallucinationMetric",
    "ClarityMetric",
    "ToneSafetyMetric",
    "calibration_score",
    "expected_calibration_error",
]
