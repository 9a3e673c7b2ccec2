import math

import numpy as np
import pytest

from georobust.ransac.scoring import (
    STD_CONSTANT, MedianScoring, ThresholdScoring, TruncatedScoring, make_scoring_policy,
)
from georobust.ransac.types import RobustEstimatorMethod


def test_threshold_scoring_counts_inliers():
    h = ThresholdScoring(threshold=1.0).evaluate(np.array([0.1, 0.5, 2.0]), 2)
    assert h.inliers.tolist() == [True, True, False]
    assert h.num_inliers == 2
    assert h.key[0] == -2.0
    assert h.key[1] == pytest.approx(0.6)
    assert h.threshold == 1.0


def test_threshold_scoring_treats_nan_as_outlier():
    h = ThresholdScoring(threshold=1.0).evaluate(np.array([0.1, np.nan, 0.2]), 2)
    assert h.inliers.tolist() == [True, False, True]
    assert math.isinf(h.residuals[1])


def test_more_inliers_beats_lower_residual():
    policy = ThresholdScoring(threshold=1.0)
    many = policy.evaluate(np.array([0.9, 0.9, 0.9, 5.0]), 2)
    few = policy.evaluate(np.array([0.0, 0.0, 5.0, 5.0]), 2)
    assert many.is_better_than(few)
    assert not few.is_better_than(many)


def test_ties_keep_first_hypothesis():
    policy = ThresholdScoring(threshold=1.0)
    a = policy.evaluate(np.array([0.5, 0.5, 3.0]), 2)
    b = policy.evaluate(np.array([0.5, 0.5, 3.0]), 2)
    assert a.is_better_than(None)
    assert not b.is_better_than(a)


def test_truncated_scoring_caps_outliers():
    h = TruncatedScoring(threshold=1.0).evaluate(np.array([0.1, 0.5, 2.0, 10.0]), 2)
    assert h.key[0] == pytest.approx(0.1 + 0.5 + 1.0 + 1.0)
    assert h.num_inliers == 2


def test_median_scoring_estimates_threshold():
    r = np.array([1.0, 1.0, 1.0, 1.0, 100.0])
    policy = MedianScoring(stop_threshold=1e-3, inlier_factor=1.5)
    h = policy.evaluate(r, 2)

    sigma = STD_CONSTANT * (1.0 + 5.0 / 3.0) * 1.0
    assert h.key[0] == pytest.approx(1.0)
    assert h.threshold == pytest.approx(1.5 * sigma)
    assert h.inliers.tolist() == [True, True, True, True, False]
    assert h.median_residual == pytest.approx(1.0)
    assert not policy.is_converged(h)
    assert MedianScoring(stop_threshold=2.0).is_converged(h)


def test_median_threshold_never_below_stop_threshold():
    h = MedianScoring(stop_threshold=1e-3).evaluate(np.zeros(6), 3)
    assert h.threshold == pytest.approx(1e-3)
    assert h.num_inliers == 6


def test_median_scoring_with_minimal_data():
    # N == m: the finite-sample correction uses N - m = 1
    h = MedianScoring(stop_threshold=1e-3).evaluate(np.array([0.0, 0.0]), 2)
    assert h.num_inliers == 2


@pytest.mark.parametrize(
    "method, expected",
    [
        (RobustEstimatorMethod.RANSAC, ThresholdScoring),
        (RobustEstimatorMethod.PROSAC, ThresholdScoring),
        (RobustEstimatorMethod.MSAC, TruncatedScoring),
        (RobustEstimatorMethod.LMEDS, MedianScoring),
        (RobustEstimatorMethod.PROMEDS, MedianScoring),
    ],
)
def test_policy_per_method(method, expected):
    policy = make_scoring_policy(method, threshold=2.0, stop_threshold=1e-3)
    assert isinstance(policy, expected)
