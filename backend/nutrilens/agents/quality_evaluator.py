"""
NutriLens AI - QualityEvaluator Agent

Scores a finished analysis with three LLM judges run concurrently
(hallucination, clarity, tone safety) plus a confidence calibration
score computed from historical samples when any are supplied.

Runs detached from the request: the orchestrator starts it after the
response is ready and only logs its outcome.
"""

import asyncio
import logging
from typing import Any, Optional

from nutrilens.core.base_agent import BaseAgent
from nutrilens.core.errors import EvaluationError
from nutrilens.core.inference import InferenceClient
from nutrilens.core.state import EvaluationInput, EvaluationMetrics
from nutrilens.core.tracing import Tracer
from nutrilens.evals.calibration import calibration_score
from nutrilens.evals.judge_metrics import (
    ClarityMetric,
    HallucinationMetric,
    ToneSafetyMetric,
)

logger = logging.getLogger(__name__)


class QualityEvaluator(BaseAgent[EvaluationInput, EvaluationMetrics]):
    """
    Composite quality evaluation of an analysis.

    ``overall_quality`` is the mean of the three judge scores. A judge
    that fails contributes the neutral 0.5 instead of aborting.

    Example:
        evaluator = QualityEvaluator(inference, tracer, track_metrics=False)
        metrics = await evaluator.execute(EvaluationInput(input_text=..., output_text=...))
    """

    span_name = "quality-evaluation"

    def __init__(
        self,
        inference: InferenceClient,
        tracer: Tracer,
        model: Optional[str] = None,
        track_metrics: bool = True,
    ):
        super().__init__(inference, tracer, model=model)
        self.hallucination = HallucinationMetric(inference, model=model, track=track_metrics)
        self.clarity = ClarityMetric(inference, model=model, track=track_metrics)
        self.tone_safety = ToneSafetyMetric(inference, model=model, track=track_metrics)

    @property
    def name(self) -> str:
        return "QualityEvaluator"

    def trace_input(self, input: EvaluationInput) -> dict[str, Any]:
        return {
            "analysisId": input.analysis_id,
            "input": input.input_text,
            "calibrationSamples": len(input.calibration_samples),
        }

    async def process(self, input: EvaluationInput) -> EvaluationMetrics:
        try:
            hallucination, clarity, tone = await asyncio.gather(
                self.hallucination.ascore(
                    output=input.output_text,
                    input=input.input_text,
                    context=input.context,
                ),
                self.clarity.ascore(output=input.output_text),
                self.tone_safety.ascore(output=input.output_text),
            )
        except Exception as e:
            raise EvaluationError(self.name, f"Judges failed: {e}", e) from e

        overall = (hallucination.value + clarity.value + tone.value) / 3

        return EvaluationMetrics(
            hallucination_score=hallucination.value,
            clarity_score=clarity.value,
            tone_score=tone.value,
            confidence_calibration=calibration_score(input.calibration_samples),
            overall_quality=overall,
        )
