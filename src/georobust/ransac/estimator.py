"""
Lifecycle base class shared by every concrete robust estimator.

A concrete estimator:
- holds its correspondences and implements the SampleConsensusModel Protocol
  (minimal solver, residuals, least-squares refit) for them
- inherits configuration (confidence, iterations, thresholds, refinement flags),
  the lock, the listener plumbing and estimate() from this class

State machine:

    Idle --estimate()--> Locked (running) --finally--> Idle

While locked every setter raises LockedError. on_estimate_end is delivered
before the lock is released, so listeners observe is_locked == True in every
callback. The lock is released even if the consensus loop raises.
"""

from __future__ import annotations

import abc
import logging
from typing import Generic, Optional, Tuple

import numpy as np

from ..refine.refiner import refine_parameters
from .core import ConsensusSettings, consensus
from .errors import LockedError, NotReadyError, RefinementError
from .listener import RobustEstimatorListener
from .scoring import DEFAULT_INLIER_FACTOR
from .types import (
    DEFAULT_ROBUST_METHOD, FloatArray, InliersData, IntArray,
    M, RobustEstimatorMethod, as_float_array,
)

logger = logging.getLogger(__name__)


# ---------- Defaults ----------
DEFAULT_CONFIDENCE = 0.99
DEFAULT_MAX_ITERATIONS = 5000
DEFAULT_PROGRESS_DELTA = 0.05
DEFAULT_STOP_THRESHOLD = 1e-3
DEFAULT_SEED = 0
DEFAULT_REFINE_RESULT = True
DEFAULT_KEEP_COVARIANCE = False
DEFAULT_USE_FAST_REFINEMENT = False


class RobustEstimator(abc.ABC, Generic[M]):
    """
    Base class of all robust estimators.

    Subclasses set:
    - MINIMUM_SIZE: minimal sample size of their solver
    - DEFAULT_THRESHOLD: inlier threshold for RANSAC / MSAC / PROSAC
    - DEFAULT_STOP_THRESHOLD: LMedS / PROMedS stop threshold, in the units of
      the residual (pixels, algebraic distance, 1 - |cos|)
    - MODEL_SHAPE: shape of the model array (used by the default parametrization)

    and implement _data_size(), compute_models(), residuals() and refit().
    """

    MINIMUM_SIZE: int = 1
    DEFAULT_THRESHOLD: float = 1.0
    DEFAULT_STOP_THRESHOLD: float = DEFAULT_STOP_THRESHOLD
    MODEL_SHAPE: Tuple[int, ...] = ()

    def __init__(
            self,
            *,
            method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
            quality_scores: Optional[FloatArray] = None,
            listener: Optional[RobustEstimatorListener] = None,
    ) -> None:
        self._method = RobustEstimatorMethod(method)
        self._listener = listener

        self._confidence = DEFAULT_CONFIDENCE
        self._max_iterations = DEFAULT_MAX_ITERATIONS
        self._progress_delta = DEFAULT_PROGRESS_DELTA
        self._threshold = float(self.DEFAULT_THRESHOLD)
        self._stop_threshold = float(self.DEFAULT_STOP_THRESHOLD)
        self._inlier_factor = DEFAULT_INLIER_FACTOR
        self._seed: Optional[int] = DEFAULT_SEED

        self._refine_result = DEFAULT_REFINE_RESULT
        self._keep_covariance = DEFAULT_KEEP_COVARIANCE
        self._use_fast_refinement = DEFAULT_USE_FAST_REFINEMENT

        # Run state
        self._locked = False
        self._inliers_data: Optional[InliersData] = None
        self._covariance: Optional[FloatArray] = None

        self._quality_scores: Optional[FloatArray] = None
        if quality_scores is not None:
            self.quality_scores = quality_scores

    @classmethod
    def create(cls, *args, method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD, **kwargs):
        """
        Factory: build an estimator of this family running the given method
        (PROMedS when omitted). Argument validation happens here, never in estimate().
        """
        return cls(*args, method=method, **kwargs)

    # ---------- Subclass hooks ----------
    @abc.abstractmethod
    def _data_size(self) -> Optional[int]:
        """Number of correspondences, or None when no data has been set."""

    def _has_required_inputs(self) -> bool:
        """Extra readiness condition (e.g. intrinsics for PnP)."""
        return True

    def _check_not_locked(self) -> None:
        if self._locked:
            raise LockedError(f"{type(self).__name__} is locked while estimating")

    def _check_data_size(self, n: int, name: str = "data") -> None:
        if n < self.MINIMUM_SIZE:
            raise ValueError(f"{name} must contain at least {self.MINIMUM_SIZE} elements, got {n}")

    def _validate_data(self, values, width: int, name: str = "data") -> FloatArray:
        arr = as_float_array(values, ndim=2, width=width, name=name)
        self._check_data_size(arr.shape[0], name)
        return arr

    def _validate_pair(self, first, second, widths: Tuple[int, int], names: Tuple[str, str]):
        """Validate two parallel arrays of correspondences (same length)."""
        a = self._validate_data(first, widths[0], names[0])
        b = self._validate_data(second, widths[1], names[1])
        if a.shape[0] != b.shape[0]:
            raise ValueError(
                f"{names[0]} and {names[1]} must have the same length, got {a.shape[0]} and {b.shape[0]}"
            )
        return a, b

    # ---------- Read-only state ----------
    @property
    def method(self) -> RobustEstimatorMethod:
        return self._method

    @property
    def is_locked(self) -> bool:
        return self._locked

    @property
    def is_listener_available(self) -> bool:
        return self._listener is not None

    @property
    def inliers_data(self) -> Optional[InliersData]:
        """InliersData of the last successful estimate(), None before."""
        return self._inliers_data

    @property
    def covariance(self) -> Optional[FloatArray]:
        """Covariance of the refined parameters of the last run, if kept and available."""
        return self._covariance

    @property
    def is_ready(self) -> bool:
        n = self._data_size()
        if n is None or n < self.MINIMUM_SIZE:
            return False
        if self._method.uses_quality_scores:
            if self._quality_scores is None or self._quality_scores.shape[0] != n:
                return False
        return self._has_required_inputs()

    # ---------- Configuration ----------
    @property
    def listener(self) -> Optional[RobustEstimatorListener]:
        return self._listener

    @listener.setter
    def listener(self, listener: Optional[RobustEstimatorListener]) -> None:
        self._check_not_locked()
        self._listener = listener

    @property
    def confidence(self) -> float:
        return self._confidence

    @confidence.setter
    def confidence(self, value: float) -> None:
        self._check_not_locked()
        value = float(value)
        if not 0.0 < value <= 1.0:
            raise ValueError(f"confidence must be in (0, 1], got {value}")
        self._confidence = value

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    @max_iterations.setter
    def max_iterations(self, value: int) -> None:
        self._check_not_locked()
        if int(value) != value or value < 1:
            raise ValueError(f"max_iterations must be an integer >= 1, got {value}")
        self._max_iterations = int(value)

    @property
    def progress_delta(self) -> float:
        return self._progress_delta

    @progress_delta.setter
    def progress_delta(self, value: float) -> None:
        self._check_not_locked()
        value = float(value)
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"progress_delta must be in [0, 1], got {value}")
        self._progress_delta = value

    @property
    def threshold(self) -> float:
        """Inlier threshold used by RANSAC, MSAC and PROSAC."""
        return self._threshold

    @threshold.setter
    def threshold(self, value: float) -> None:
        self._check_not_locked()
        value = float(value)
        if not value > 0.0:
            raise ValueError(f"threshold must be > 0, got {value}")
        self._threshold = value

    @property
    def stop_threshold(self) -> float:
        """LMedS / PROMedS: stop once the median residual is below this value."""
        return self._stop_threshold

    @stop_threshold.setter
    def stop_threshold(self, value: float) -> None:
        self._check_not_locked()
        value = float(value)
        if not value > 0.0:
            raise ValueError(f"stop_threshold must be > 0, got {value}")
        self._stop_threshold = value

    @property
    def inlier_factor(self) -> float:
        return self._inlier_factor

    @inlier_factor.setter
    def inlier_factor(self, value: float) -> None:
        self._check_not_locked()
        value = float(value)
        if not value > 0.0:
            raise ValueError(f"inlier_factor must be > 0, got {value}")
        self._inlier_factor = value

    @property
    def seed(self) -> Optional[int]:
        return self._seed

    @seed.setter
    def seed(self, value: Optional[int]) -> None:
        self._check_not_locked()
        self._seed = value

    @property
    def quality_scores(self) -> Optional[FloatArray]:
        return self._quality_scores

    @quality_scores.setter
    def quality_scores(self, scores: Optional[FloatArray]) -> None:
        """
        Per-datum quality (higher = more trusted). Validated for every method,
        only kept by PROSAC / PROMedS.
        """
        self._check_not_locked()
        if scores is None:
            self._quality_scores = None
            return

        arr = np.asarray(scores, dtype=np.float64)
        if arr.ndim != 1:
            raise ValueError(f"quality_scores must be 1-D, got shape {arr.shape}")
        if arr.shape[0] < self.MINIMUM_SIZE:
            raise ValueError(
                f"quality_scores must contain at least {self.MINIMUM_SIZE} values, got {arr.shape[0]}"
            )
        if not np.isfinite(arr).all() or (arr < 0.0).any():
            raise ValueError("quality_scores must be finite and non-negative")

        n = self._data_size()
        if n is not None and arr.shape[0] != n:
            raise ValueError(f"quality_scores has {arr.shape[0]} values but there are {n} samples")

        if self._method.uses_quality_scores:
            self._quality_scores = arr

    @property
    def refine_result(self) -> bool:
        return self._refine_result

    @refine_result.setter
    def refine_result(self, value: bool) -> None:
        self._check_not_locked()
        self._refine_result = bool(value)

    @property
    def keep_covariance(self) -> bool:
        return self._keep_covariance

    @keep_covariance.setter
    def keep_covariance(self, value: bool) -> None:
        self._check_not_locked()
        self._keep_covariance = bool(value)

    @property
    def use_fast_refinement(self) -> bool:
        return self._use_fast_refinement

    @use_fast_refinement.setter
    def use_fast_refinement(self, value: bool) -> None:
        self._check_not_locked()
        self._use_fast_refinement = bool(value)

    # ---------- SampleConsensusModel ----------
    def minimal_sample_size(self) -> int:
        return self.MINIMUM_SIZE

    def total_samples(self) -> int:
        return self._data_size() or 0

    @abc.abstractmethod
    def compute_models(self, sample: IntArray) -> list:
        ...

    @abc.abstractmethod
    def residuals(self, model: M) -> FloatArray:
        ...

    @abc.abstractmethod
    def refit(self, inliers: IntArray) -> Optional[M]:
        ...

    def residual(self, model: M, index: int) -> float:
        return float(self.residuals(model)[index])

    def is_suitable(self, model: M) -> bool:
        arr = np.asarray(model, dtype=np.float64)
        return arr.size > 0 and bool(np.isfinite(arr).all())

    # ---------- Estimation ----------
    def _settings(self) -> ConsensusSettings:
        return ConsensusSettings(
            method=self._method,
            confidence=self._confidence,
            max_iterations=self._max_iterations,
            progress_delta=self._progress_delta,
            threshold=self._threshold,
            stop_threshold=self._stop_threshold,
            inlier_factor=self._inlier_factor,
            seed=self._seed,
        )

    def estimate(self) -> M:
        """
        Run the configured robust method and return the estimated model.

        Raises:
        - LockedError if called while another estimate() is running
        - NotReadyError if data or quality scores are missing
        - EstimationError if no suitable model was found
        """
        if self._locked:
            raise LockedError(f"{type(self).__name__} is already estimating")
        if not self.is_ready:
            raise NotReadyError(f"{type(self).__name__} is not ready")

        self._locked = True
        try:
            self._inliers_data = None
            self._covariance = None

            listener = self._listener
            if listener is not None:
                listener.on_estimate_start(self)

            result = consensus(
                self,
                self._settings(),
                quality_scores=self._quality_scores,
                on_iteration=(
                    (lambda i: listener.on_estimate_next_iteration(self, i))
                    if listener is not None else None
                ),
                on_progress=(
                    (lambda p: listener.on_estimate_progress_change(self, p))
                    if listener is not None else None
                ),
            )
            self._inliers_data = result.inliers_data

            model = self._attempt_refine(result.model)

            if listener is not None:
                listener.on_estimate_end(self)
            return model
        finally:
            self._locked = False

    # ---------- Refinement ----------
    def _model_to_params(self, model: M) -> FloatArray:
        return np.asarray(model, dtype=np.float64).ravel().copy()

    def _params_to_model(self, params: FloatArray) -> M:
        return np.asarray(params, dtype=np.float64).reshape(self.MODEL_SHAPE)

    def _signed_residuals(self, model: M, inliers: IntArray) -> FloatArray:
        return self.residuals(model)[inliers]

    def _gauge_residuals(self, params: FloatArray) -> FloatArray:
        """Extra residuals fixing the scale of homogeneous parametrizations."""
        return np.empty(0, dtype=np.float64)

    def _suggestion_residuals(self, model: M) -> FloatArray:
        return np.empty(0, dtype=np.float64)

    def _refinement_residuals(self, params: FloatArray, inliers: IntArray) -> FloatArray:
        model = self._params_to_model(params)
        return np.concatenate([
            np.asarray(self._signed_residuals(model, inliers), dtype=np.float64).ravel(),
            self._gauge_residuals(params),
            self._suggestion_residuals(model),
        ])

    def _attempt_refine(self, model: M) -> M:
        """
        Refine the model on the inliers of the last run if enabled.
        Any numerical failure keeps the unrefined model and no covariance.
        """
        if not self._refine_result or self._inliers_data is None:
            return model

        inliers = self._inliers_data.inlier_indices
        try:
            x0 = self._model_to_params(model)
            result = refine_parameters(
                lambda x: self._refinement_residuals(x, inliers),
                x0,
                fast=self._use_fast_refinement,
                keep_covariance=self._keep_covariance,
                standard_deviation=self._inliers_data.threshold,
            )
        except (RefinementError, np.linalg.LinAlgError, ValueError) as exc:
            logger.debug("refinement failed, keeping the unrefined model: %s", exc)
            return model

        refined = self._params_to_model(result.params) if result.improved else model
        if not self.is_suitable(refined):
            logger.debug("refined model is not suitable, keeping the unrefined model")
            return model

        if self._keep_covariance:
            self._covariance = result.covariance
        return refined
