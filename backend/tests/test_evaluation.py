"""Tests for the LLM judges, QualityEvaluator, calibration and regression runs."""

import json

import pytest

from conftest import JUDGE_RESPONSES, ScriptedInference
from nutrilens.agents.quality_evaluator import QualityEvaluator
from nutrilens.core.errors import UpstreamInferenceError
from nutrilens.core.state import CalibrationSample, EvaluationInput
from nutrilens.evals.calibration import calibration_score, expected_calibration_error
from nutrilens.evals.judge_metrics import (
    ClarityMetric,
    HallucinationMetric,
    parse_judge_score,
)
from nutrilens.evals import run_regression
from nutrilens.evals.regression import RegressionCase, batch_evaluate, run_regression_tests
from nutrilens.evals.run_regression import REGRESSION_CASES, load_cases

SAMPLE = EvaluationInput(
    analysis_id="analysis_1",
    input_text="Analyze nutrition for: Oatmeal",
    output_text='{"nutrition": [{"foodItem": "Oatmeal"}]}',
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("0.85", 0.85),
        ("1", 1.0),
        ("0.7 - mostly clear", 0.7),
        ("1.4", 1.0),
        ("-0.2", 0.0),
        ("`0.6`", 0.6),
        ("Score: 0.6", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_judge_score(text, expected):
    assert parse_judge_score(text) == expected


async def test_judge_reads_score():
    inference = ScriptedInference({"clarity-judge": "0.75"})
    metric = ClarityMetric(inference, track=False)

    result = await metric.ascore(output="Some analysis")

    assert result.name == "clarity"
    assert result.value == 0.75
    assert not result.scoring_failed


async def test_judge_call_failure_is_neutral():
    inference = ScriptedInference({"clarity-judge": UpstreamInferenceError("clarity-judge", "boom")})

    result = await ClarityMetric(inference, track=False).ascore(output="Some analysis")

    assert result.value == 0.5
    assert result.scoring_failed
    assert result.reason.startswith("LLM call failed")


async def test_unparseable_judge_answer_is_neutral():
    inference = ScriptedInference({"clarity-judge": "I would say it is fairly clear."})

    result = await ClarityMetric(inference, track=False).ascore(output="Some analysis")

    assert result.value == 0.5
    assert result.reason == "Could not parse judge response"


async def test_hallucination_prompt_includes_context():
    inference = ScriptedInference({"hallucination-judge": "0.9"})

    await HallucinationMetric(inference, track=False).ascore(
        output="Out", input="In", context="USDA reference values"
    )

    prompt = inference.calls[0]["prompt"]
    assert "Input: In" in prompt
    assert "Context: USDA reference values" in prompt


# === QualityEvaluator ===

async def test_evaluator_combines_judges(tracer):
    evaluator = QualityEvaluator(ScriptedInference(JUDGE_RESPONSES), tracer, track_metrics=False)

    metrics = await evaluator.execute(SAMPLE)

    assert metrics.hallucination_score == 0.9
    assert metrics.clarity_score == 0.8
    assert metrics.tone_score == 1.0
    assert metrics.overall_quality == pytest.approx((0.9 + 0.8 + 1.0) / 3)
    assert metrics.confidence_calibration == 0.5


async def test_failed_hallucination_judge_degrades_to_neutral(tracer):
    inference = ScriptedInference({
        **JUDGE_RESPONSES,
        "hallucination-judge": UpstreamInferenceError("hallucination-judge", "timeout"),
    })
    evaluator = QualityEvaluator(inference, tracer, track_metrics=False)

    metrics = await evaluator.execute(SAMPLE)

    assert metrics.hallucination_score == 0.5
    assert metrics.clarity_score == 0.8
    assert metrics.tone_score == 1.0
    assert metrics.overall_quality == pytest.approx((0.5 + 0.8 + 1.0) / 3)


async def test_judges_run_concurrently(tracer):
    inference = ScriptedInference(JUDGE_RESPONSES)
    evaluator = QualityEvaluator(inference, tracer, track_metrics=False)

    await evaluator.execute(SAMPLE)

    assert sorted(call["generation_name"] for call in inference.calls) == sorted(JUDGE_RESPONSES)


async def test_evaluator_uses_calibration_samples(tracer):
    evaluator = QualityEvaluator(ScriptedInference(JUDGE_RESPONSES), tracer, track_metrics=False)
    sample = SAMPLE.model_copy(update={
        "calibration_samples": [
            CalibrationSample(confidence=0.9, actual=True),
            CalibrationSample(confidence=0.9, actual=False),
        ],
    })

    metrics = await evaluator.execute(sample)

    assert metrics.confidence_calibration == pytest.approx(0.6)


# === Calibration ===

class TestCalibration:
    def test_perfectly_calibrated(self):
        samples = [CalibrationSample(confidence=1.0, actual=True) for _ in range(4)]
        assert expected_calibration_error(samples) == 0.0
        assert calibration_score(samples) == 1.0

    def test_overconfident(self):
        samples = [CalibrationSample(confidence=0.95, actual=False) for _ in range(4)]
        assert expected_calibration_error(samples) == pytest.approx(0.95)
        assert calibration_score(samples) == pytest.approx(0.05)

    def test_bins_weighted_by_size(self):
        samples = [
            CalibrationSample(confidence=0.15, actual=False),
            CalibrationSample(confidence=0.85, actual=True),
            CalibrationSample(confidence=0.85, actual=True),
            CalibrationSample(confidence=0.85, actual=True),
        ]
        # bin 1: |0.15 - 0| * 1, bin 8: |0.85 - 1| * 3
        assert expected_calibration_error(samples) == pytest.approx((0.15 + 0.45) / 4)

    def test_no_history_is_neutral(self):
        assert calibration_score([]) == 0.5


# === Batch & regression ===

async def test_batch_evaluate_keeps_order(tracer):
    evaluator = QualityEvaluator(ScriptedInference(JUDGE_RESPONSES), tracer, track_metrics=False)
    samples = [SAMPLE, SAMPLE.model_copy(update={"analysis_id": "analysis_2"})]

    results = await batch_evaluate(evaluator, samples)

    assert len(results) == 2
    assert all(r.clarity_score == 0.8 for r in results)


async def test_regression_run_reports_mismatches(tracer):
    evaluator = QualityEvaluator(ScriptedInference(JUDGE_RESPONSES), tracer, track_metrics=False)
    cases = [
        RegressionCase(
            name="safe tone",
            input_text="Analyze nutrition for: Salad",
            output_text="A light salad.",
            expected_tone_score=0.9,
        ),
        RegressionCase(
            name="prescriptive tone",
            input_text="Analyze nutrition for: Pasta",
            output_text="You MUST stop eating carbs.",
            expected_tone_score=0.1,
            expected_clarity_score=0.8,
        ),
    ]

    report = await run_regression_tests(evaluator, cases)

    assert report.passed == 1
    assert report.failed == 1
    failed = report.results[1]
    assert not failed.passed
    assert failed.mismatches == ["tone_score: expected 0.10, got 1.00"]


# === Regression runner ===

def test_load_cases_from_file(tmp_path):
    path = tmp_path / "cases.json"
    path.write_text(json.dumps([
        {"name": "tone", "input_text": "Analyze nutrition for: Soup", "output_text": "Warm soup.", "expected_tone_score": 1.0},
    ]))

    cases = load_cases(path)

    assert [case.name for case in cases] == ["tone"]
    assert len(load_cases(None)) == len(REGRESSION_CASES)


def test_runner_exit_code_reflects_failures(tracer, monkeypatch, capsys):
    evaluator = QualityEvaluator(ScriptedInference(JUDGE_RESPONSES), tracer, track_metrics=False)
    monkeypatch.setattr(run_regression, "build_evaluator", lambda settings: evaluator)

    exit_code = run_regression.main([])

    # hallucination judge answers 0.9 for every case, so "invented_precision" misses
    assert exit_code == 1
    assert "invented_precision" in capsys.readouterr().out
