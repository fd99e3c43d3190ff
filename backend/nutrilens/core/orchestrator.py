"""
NutriLens AI - Analysis Orchestrator

The central coordinator of the meal analysis pipeline. Chains the
specialized agents, enforces the confidence gate, runs independent
stages concurrently, and detaches quality evaluation from the response.

    Received -> Recognizing -> Rejected | Estimating
             -> Aggregating || Reflecting || Nudging
             -> Assembled -> Returned -> EvaluatingAsync (detached)
"""

import asyncio
import json
import logging
import time
from enum import Enum
from typing import Optional

from nutrilens.agents import (
    FoodRecognizer,
    HabitNudger,
    NutritionEstimator,
    QualityEvaluator,
    ReflectionCoach,
    calculate_totals,
    filter_by_confidence,
)
from nutrilens.config import Settings, get_settings
from nutrilens.core.errors import NoConfidentItemsError
from nutrilens.core.image_input import DecodedImage
from nutrilens.core.inference import InferenceClient
from nutrilens.core.state import (
    AnalysisOutcome,
    AnalysisResult,
    EstimationInput,
    EvaluationInput,
    EvaluationMetrics,
    MealContext,
    MealType,
    RecognitionInput,
)
from nutrilens.core.tracing import Tracer

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Externally meaningful states of one analysis request."""
    RECEIVED = "received"
    RECOGNIZING = "recognizing"
    REJECTED = "rejected"
    ESTIMATING = "estimating"
    GENERATING = "aggregating_reflecting_nudging"
    ASSEMBLED = "assembled"
    RETURNED = "returned"
    EVALUATING_ASYNC = "evaluating_async"


def build_evaluation_input(analysis: AnalysisResult) -> EvaluationInput:
    """Text encoding of an analysis for the quality judges."""
    input_text = "Analyze nutrition for: " + ", ".join(item.name for item in analysis.food_items)
    output_text = json.dumps({
        "nutrition": [e.model_dump(mode="json", by_alias=True) for e in analysis.nutrition_estimates],
        "reflections": [p.model_dump(mode="json", by_alias=True) for p in analysis.reflection_prompts],
        "nudges": [n.model_dump(mode="json", by_alias=True) for n in analysis.habit_nudges],
    })
    return EvaluationInput(analysis_id=analysis.id, input_text=input_text, output_text=output_text)


class AnalysisOrchestrator:
    """
    Central orchestrator for the NutriLens analysis pipeline.

    1. **Recognize**: FoodRecognizer lists candidate foods with confidence
    2. **Filter**: items below the confidence threshold are set aside;
       no confident items ends the request (NoConfidentItemsError)
    3. **Estimate**: NutritionEstimator produces ranged macros per item
    4. **Aggregate / Reflect / Nudge**: totals are summed while
       ReflectionCoach and HabitNudger run concurrently
    5. **Assemble**: one immutable AnalysisResult
    6. **Evaluate**: QualityEvaluator runs as a detached task

    Any failure before assembly propagates to the caller; there are no
    retries and no partial results.

    Usage:
        orchestrator = AnalysisOrchestrator(inference, tracer)
        outcome = await orchestrator.process(decoded_image)
    """

    def __init__(
        self,
        inference: InferenceClient,
        tracer: Tracer,
        settings: Optional[Settings] = None,
    ):
        """Initialize the orchestrator with shared service handles."""
        settings = settings or get_settings()
        self.tracer = tracer
        self.confidence_threshold = settings.confidence_threshold
        self.enable_evaluation = settings.enable_evaluation
        self._logger = logging.getLogger("nutrilens.orchestrator")

        self.food_recognizer = FoodRecognizer(inference, tracer, model=settings.vision_model)
        self.nutrition_estimator = NutritionEstimator(inference, tracer, model=settings.text_model)
        self.reflection_coach = ReflectionCoach(inference, tracer, model=settings.text_model)
        self.habit_nudger = HabitNudger(inference, tracer, model=settings.text_model)
        self.quality_evaluator = QualityEvaluator(
            inference,
            tracer,
            model=settings.judge_model,
            track_metrics=settings.enable_tracing,
        )

        self._evaluation_tasks: set[asyncio.Task] = set()

    @property
    def pending_evaluations(self) -> set[asyncio.Task]:
        return set(self._evaluation_tasks)

    async def process(
        self,
        image: DecodedImage,
        meal_type: Optional[MealType] = None,
        user_goals: Optional[list[str]] = None,
    ) -> AnalysisOutcome:
        """
        Run the analysis pipeline for one image.

        Args:
            image: Decoded image bytes and mime type
            meal_type: Optional meal time for contextual reflection prompts
            user_goals: Optional goals used to personalize nudges

        Returns:
            AnalysisOutcome with the analysis, totals and set-aside items

        Raises:
            NoConfidentItemsError: If no item passes the confidence filter
            AgentError: If any generative stage fails
        """
        start_time = time.time()
        self._log_state(PipelineState.RECEIVED, f"{image.size} bytes ({image.mime_type})")

        with self.tracer.span(
            "analysis-pipeline",
            {"imageBytes": image.size, "mimeType": image.mime_type},
            {"confidenceThreshold": self.confidence_threshold},
        ) as span:
            # === RECOGNIZE ===
            self._log_state(PipelineState.RECOGNIZING)
            recognition = await self.food_recognizer.execute(
                RecognitionInput(image_bytes=image.data, mime_type=image.mime_type)
            )

            # === FILTER ===
            filtered = filter_by_confidence(recognition.items, self.confidence_threshold)
            if not filtered.recognized_items:
                self._log_state(PipelineState.REJECTED, "; ".join(filtered.warnings))
                raise NoConfidentItemsError(filtered.warnings, filtered.low_confidence_items)

            # === ESTIMATE ===
            self._log_state(PipelineState.ESTIMATING, f"{len(filtered.recognized_items)} items")
            estimation = await self.nutrition_estimator.execute(
                EstimationInput(food_items=filtered.recognized_items)
            )

            # === AGGREGATE || REFLECT || NUDGE ===
            self._log_state(PipelineState.GENERATING)
            context = MealContext(
                food_items=filtered.recognized_items,
                nutrition_estimates=estimation.estimates,
                meal_type=meal_type,
                user_goals=user_goals or [],
            )
            totals = calculate_totals(estimation.estimates)
            reflection, nudges = await asyncio.gather(
                self.reflection_coach.execute(context),
                self.habit_nudger.execute(context),
            )

            # === ASSEMBLE ===
            overall_confidence = sum(
                item.confidence for item in filtered.recognized_items
            ) / len(filtered.recognized_items)

            analysis = AnalysisResult(
                food_items=filtered.recognized_items,
                nutrition_estimates=estimation.estimates,
                reflection_prompts=reflection.prompts,
                habit_nudges=nudges.nudges,
                overall_confidence=overall_confidence,
                warnings=filtered.warnings or None,
            )
            self._log_state(PipelineState.ASSEMBLED, analysis.id)
            span.set_output({
                "analysisId": analysis.id,
                "foodCount": len(analysis.food_items),
                "overallConfidence": analysis.overall_confidence,
            })

        outcome = AnalysisOutcome(
            analysis=analysis,
            totals=totals,
            low_confidence_items=filtered.low_confidence_items,
        )

        self.schedule_evaluation(analysis)

        processing_time_ms = int((time.time() - start_time) * 1000)
        self._log_state(PipelineState.RETURNED, f"{analysis.id} in {processing_time_ms}ms")
        return outcome

    # === Detached Evaluation ===

    def schedule_evaluation(self, analysis: AnalysisResult) -> Optional[asyncio.Task]:
        """
        Start quality evaluation in the background.

        The task is never awaited by the request path. A reference is
        kept until it finishes so it is not garbage-collected mid-flight.
        """
        if not self.enable_evaluation:
            return None

        task = asyncio.create_task(
            self._evaluate_and_log(analysis),
            name=f"evaluate-{analysis.id}",
        )
        self._evaluation_tasks.add(task)
        task.add_done_callback(self._evaluation_tasks.discard)
        self._log_state(PipelineState.EVALUATING_ASYNC, analysis.id)
        return task

    async def _evaluate_and_log(self, analysis: AnalysisResult) -> Optional[EvaluationMetrics]:
        """Evaluation boundary: outcomes are logged, failures never escape."""
        try:
            metrics = await self.quality_evaluator.execute(build_evaluation_input(analysis))
        except Exception as e:
            self._logger.error(f"Evaluation failed for analysis {analysis.id}: {e}")
            return None

        self.tracer.log_event(
            "analysis-evaluation",
            input={"analysisId": analysis.id},
            output={"metrics": metrics.model_dump(mode="json", by_alias=True)},
            metadata={
                "overallConfidence": analysis.overall_confidence,
                "foodCount": len(analysis.food_items),
                "hasWarnings": bool(analysis.warnings),
            },
        )
        self._logger.info(
            f"Evaluation for {analysis.id}: "
            f"hallucination={metrics.hallucination_score:.2f} "
            f"clarity={metrics.clarity_score:.2f} "
            f"tone={metrics.tone_score:.2f} "
            f"overall={metrics.overall_quality:.2f}"
        )
        return metrics

    async def drain_evaluations(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight evaluations, e.g. at shutdown."""
        tasks = self.pending_evaluations
        if not tasks:
            return
        self._logger.info(f"Waiting for {len(tasks)} pending evaluation(s)")
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        if not pending:
            return
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._logger.warning(f"Cancelled {len(pending)} evaluation(s) still running at shutdown")

    def _log_state(self, state: PipelineState, detail: str = "") -> None:
        suffix = f": {detail}" if detail else ""
        self._logger.info(f"Pipeline {state.value}{suffix}")
