"""
Generic consensus loop (model-agnostic).

Overview:
- Draw a *minimal* subset of the data (uniformly, or progressively by quality)
- Fit zero or more candidate models from that subset
- Score all data by computing residual errors
- Keep the best-scoring model (policy depends on the robust method)
- Shrink the iteration bound as better inlier ratios are found
- Refit using all inliers (least squares) to get the final model

Uses the SampleConsensusModel Protocol from types.py, so the same loop drives
every entity (lines, planes, conics, quadrics, transformations, cameras).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

import numpy as np

from .errors import EstimationError
from .sampling import ProgressiveSampler, UniformSampler, required_iterations
from .scoring import DEFAULT_INLIER_FACTOR, Hypothesis, make_scoring_policy
from .types import FloatArray, InliersData, RobustEstimatorMethod, SampleConsensusModel

M = TypeVar("M")

logger = logging.getLogger(__name__)
_RANSAC_DEBUG = os.environ.get("GEOROBUST_RANSAC_DEBUG", "0") == "1"


@dataclass(frozen=True)
class ConsensusSettings:
    """Snapshot of the estimator configuration used for one run."""
    method: RobustEstimatorMethod
    confidence: float = 0.99
    max_iterations: int = 5000
    progress_delta: float = 0.05
    threshold: float = 1.0               # RANSAC / MSAC / PROSAC
    stop_threshold: float = 1e-3         # LMedS / PROMedS
    inlier_factor: float = DEFAULT_INLIER_FACTOR
    seed: Optional[int] = 0


@dataclass(frozen=True)
class ConsensusResult(Generic[M]):
    model: M                    # refit model (or best minimal model if the refit failed)
    best_model: M               # winning minimal-sample model
    inliers_data: InliersData


def consensus(
        model: SampleConsensusModel[M],
        settings: ConsensusSettings,
        *,
        quality_scores: Optional[FloatArray] = None,
        on_iteration: Optional[Callable[[int], None]] = None,
        on_progress: Optional[Callable[[float], None]] = None,
) -> ConsensusResult[M]:
    """
    Run the consensus loop for the method selected in settings.

    Inputs:
    - model: provides minimal solver, residuals and least-squares refit
    - settings: method, confidence, iteration cap, thresholds, seed
    - quality_scores: (N,) per-datum quality, required by PROSAC / PROMedS
    - on_iteration: called after every iteration with the 1-based iteration number
    - on_progress: called with progress in [0, 1] every progress_delta

    Returns:
    - ConsensusResult with the refit model, the winning minimal model and InliersData.

    Raises:
    - EstimationError if no suitable model was found within the iteration bound.
    """
    method = settings.method
    n = int(model.total_samples())
    m = int(model.minimal_sample_size())
    if n < m:
        raise EstimationError(f"need at least {m} samples, got {n}")

    policy = make_scoring_policy(
        method,
        threshold=settings.threshold,
        stop_threshold=settings.stop_threshold,
        inlier_factor=settings.inlier_factor,
    )

    # RNG: local to this run, reproducible when seeded
    rng = np.random.default_rng(settings.seed)

    progressive: Optional[ProgressiveSampler] = None
    if method.uses_quality_scores:
        if quality_scores is None or len(quality_scores) != n:
            raise EstimationError("quality scores must be provided, one per sample")
        progressive = ProgressiveSampler(quality_scores, m, settings.max_iterations, rng)
        sampler = progressive
    else:
        sampler = UniformSampler(n, m, rng)

    # Track the best hypothesis
    best: Optional[Hypothesis] = None
    best_model: Optional[M] = None

    # ---------- Adaptive Stopping ----------
    # Starts at the cap and only ever shrinks.
    target_iters = settings.max_iterations
    previous_progress = 0.0
    iteration = 0
    converged = False

    # ---------- Main Loop ----------
    while iteration < target_iters and not converged:
        sample = sampler.sample()
        iteration += 1

        try:
            candidates = model.compute_models(sample)
        except np.linalg.LinAlgError:
            # Singular solve on a degenerate sample
            candidates = []

        for candidate in candidates:
            if not model.is_suitable(candidate):
                continue

            hypothesis = policy.evaluate(model.residuals(candidate), m)
            if not hypothesis.is_better_than(best):
                continue

            best = hypothesis
            best_model = candidate

            # Iterations needed to reach the requested confidence with this inlier ratio
            if progressive is not None:
                needed = progressive.update_termination(best.inliers, settings.confidence)
            else:
                needed = required_iterations(
                    confidence=settings.confidence,
                    inlier_ratio=best.num_inliers / float(n),
                    sample_size=m,
                )
            if needed is not None:
                target_iters = min(target_iters, max(needed, iteration))

            if _RANSAC_DEBUG:
                logger.debug(
                    "[%s] better model at iteration %d: inliers=%d/%d, threshold=%.3g, target_iters=%d",
                    method.name, iteration, best.num_inliers, n, best.threshold, target_iters,
                )

            if policy.is_converged(best):
                converged = True
                break

        if on_iteration is not None:
            on_iteration(iteration)

        if on_progress is not None:
            progress = min(iteration / float(target_iters), 1.0)
            if progress > previous_progress and progress - previous_progress >= settings.progress_delta:
                previous_progress = progress
                on_progress(progress)

    if on_progress is not None and previous_progress < 1.0:
        on_progress(1.0)

    # If no suitable model was found, the run fails
    if best is None or best_model is None:
        raise EstimationError(
            f"{method.name} could not find a suitable model after {iteration} iterations"
        )

    inliers_data = InliersData(
        inliers=best.inliers,
        residuals=best.residuals,
        num_inliers=best.num_inliers,
        threshold=float(best.threshold),
        iterations=iteration,
        method=method,
    )

    # ---------- Least squares polish on all inliers ----------
    final_model = best_model
    inlier_idx = inliers_data.inlier_indices
    if inlier_idx.shape[0] >= m:
        try:
            refit = model.refit(inlier_idx)
        except np.linalg.LinAlgError:
            refit = None
        # If the refit fails, fall back to the best minimal model
        if refit is not None and model.is_suitable(refit):
            final_model = refit
        else:
            logger.debug("least squares refit failed, keeping the best minimal model")

    logger.debug(
        "%s finished: %d iterations, %d/%d inliers, threshold=%.3g",
        method.name, iteration, inliers_data.num_inliers, n, inliers_data.threshold,
    )

    return ConsensusResult(model=final_model, best_model=best_model, inliers_data=inliers_data)
