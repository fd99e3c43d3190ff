"""
NutriLens AI - Confidence Calibration

Expected Calibration Error over past predictions: bucket predictions by
confidence, compare each bucket's mean confidence with its accuracy, and
weight the gaps by bucket size. The calibration score is ``1 - ECE``.
"""

from nutrilens.core.state import CalibrationSample

NEUTRAL_CALIBRATION = 0.5


def expected_calibration_error(samples: list[CalibrationSample], bins: int = 10) -> float:
    """ECE over equal-width confidence bins; confidence 1.0 lands in the last bin."""
    if not samples:
        return 0.0

    buckets: list[list[CalibrationSample]] = [[] for _ in range(bins)]
    for sample in samples:
        index = min(int(sample.confidence * bins), bins - 1)
        buckets[index].append(sample)

    total_error = 0.0
    for bucket in buckets:
        if not bucket:
            continue
        avg_confidence = sum(s.confidence for s in bucket) / len(bucket)
        accuracy = sum(1 for s in bucket if s.actual) / len(bucket)
        total_error += abs(avg_confidence - accuracy) * len(bucket)

    return total_error / len(samples)


def calibration_score(samples: list[CalibrationSample], bins: int = 10) -> float:
    """1 - ECE clamped to [0, 1]; neutral 0.5 without historical data."""
    if not samples:
        return NEUTRAL_CALIBRATION
    return max(0.0, min(1.0, 1.0 - expected_calibration_error(samples, bins)))
