"""
Per-method scoring policies.

Every policy turns the residual vector of one candidate model into a
Hypothesis: a comparison key (lower is better), an inlier mask and the
threshold that produced it.

- ThresholdScoring (RANSAC, PROSAC):
    key = (-#inliers, sum of inlier residuals)
- TruncatedScoring (MSAC):
    key = (sum(min(r_i, t)), sum of residuals)
  residuals above the threshold contribute the constant cap t.
- MedianScoring (LMedS, PROMedS):
    key = (median(r_i^2), sum of residuals)
  the inlier threshold is estimated afterwards from the median (robust scale):
    sigma = 1.4826 * (1 + 5 / (N - m)) * sqrt(median(r_i^2))
    t     = max(inlier_factor * sigma, stop_threshold)

Keys compare lexicographically, so ties on the primary score are broken by the
total residual. The loop only replaces the best hypothesis on a strictly
lower key: the earliest model wins remaining ties.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

import numpy as np

from .types import FloatArray, Mask, RobustEstimatorMethod


# Consistency factor of the median absolute deviation for Gaussian noise.
STD_CONSTANT = 1.4826

# Multiplier applied to the robust scale to get the LMedS inlier threshold.
DEFAULT_INLIER_FACTOR = 1.5


@dataclass(frozen=True)
class Hypothesis:
    key: Tuple[float, float]
    inliers: Mask
    residuals: FloatArray
    threshold: float
    num_inliers: int
    median_residual: float = math.inf

    def is_better_than(self, other: Optional[Hypothesis]) -> bool:
        return other is None or self.key < other.key


class ScoringPolicy(Protocol):

    def evaluate(self, residuals: FloatArray, sample_size: int) -> Hypothesis:
        ...

    def is_converged(self, best: Hypothesis) -> bool:
        ...


def _sanitize(residuals: FloatArray) -> FloatArray:
    # NaN residuals (broken model on some datum) are treated as infinitely far.
    r = np.asarray(residuals, dtype=np.float64)
    return np.where(np.isnan(r), np.inf, np.abs(r))


@dataclass(frozen=True)
class ThresholdScoring:
    threshold: float

    def evaluate(self, residuals: FloatArray, sample_size: int) -> Hypothesis:
        r = _sanitize(residuals)
        inliers: Mask = r <= self.threshold
        num_inliers = int(np.count_nonzero(inliers))
        return Hypothesis(
            key=(-float(num_inliers), float(np.sum(r[inliers]))),
            inliers=inliers,
            residuals=r,
            threshold=self.threshold,
            num_inliers=num_inliers,
        )

    def is_converged(self, best: Hypothesis) -> bool:
        return False


@dataclass(frozen=True)
class TruncatedScoring:
    threshold: float

    def evaluate(self, residuals: FloatArray, sample_size: int) -> Hypothesis:
        r = _sanitize(residuals)
        inliers: Mask = r <= self.threshold
        capped = np.minimum(r, self.threshold)
        return Hypothesis(
            key=(float(np.sum(capped)), float(np.sum(r))),
            inliers=inliers,
            residuals=r,
            threshold=self.threshold,
            num_inliers=int(np.count_nonzero(inliers)),
        )

    def is_converged(self, best: Hypothesis) -> bool:
        return False


@dataclass(frozen=True)
class MedianScoring:
    stop_threshold: float
    inlier_factor: float = DEFAULT_INLIER_FACTOR

    def robust_threshold(self, median_squared: float, total: int, sample_size: int) -> float:
        """
        Robust scale estimated from the median squared residual, turned into an
        inlier threshold. With N == m the finite-sample correction uses N - m = 1.
        """
        dof = max(total - sample_size, 1)
        sigma = STD_CONSTANT * (1.0 + 5.0 / dof) * math.sqrt(median_squared)
        return max(self.inlier_factor * sigma, self.stop_threshold)

    def evaluate(self, residuals: FloatArray, sample_size: int) -> Hypothesis:
        r = _sanitize(residuals)
        median_squared = float(np.median(r * r))
        if math.isnan(median_squared):
            median_squared = math.inf

        threshold = (
            self.robust_threshold(median_squared, r.shape[0], sample_size)
            if math.isfinite(median_squared) else self.stop_threshold
        )
        inliers: Mask = r <= threshold
        return Hypothesis(
            key=(median_squared, float(np.sum(r))),
            inliers=inliers,
            residuals=r,
            threshold=threshold,
            num_inliers=int(np.count_nonzero(inliers)),
            median_residual=math.sqrt(median_squared),
        )

    def is_converged(self, best: Hypothesis) -> bool:
        # Good enough: stop iterating once the median residual is below the stop threshold.
        return best.median_residual <= self.stop_threshold


def make_scoring_policy(
        method: RobustEstimatorMethod,
        *,
        threshold: float,
        stop_threshold: float,
        inlier_factor: float = DEFAULT_INLIER_FACTOR,
) -> ScoringPolicy:
    if method in (RobustEstimatorMethod.RANSAC, RobustEstimatorMethod.PROSAC):
        return ThresholdScoring(threshold=threshold)
    if method == RobustEstimatorMethod.MSAC:
        return TruncatedScoring(threshold=threshold)
    if method in (RobustEstimatorMethod.LMEDS, RobustEstimatorMethod.PROMEDS):
        return MedianScoring(stop_threshold=stop_threshold, inlier_factor=inlier_factor)
    raise ValueError(f"Unknown robust method: {method}")
