"""
Robust conic, quadric and sphere estimators from points, and their duals
from tangent lines / planes.

Conics and quadrics are homogeneous (defined up to scale). Their residual is
the algebraic distance with both the matrix and the point (line, plane)
normalized, and their refinement parametrization is the vector of unique
matrix entries with a gauge residual ||theta|| - 1.

Spheres use the geometric residual | ||p - c|| - r |.
"""

from __future__ import annotations

from typing import List, Optional

import numpy as np

from ..ransac.estimator import RobustEstimator
from ..ransac.listener import RobustEstimatorListener
from ..ransac.types import DEFAULT_ROBUST_METHOD, FloatArray, IntArray, Mat3x3, Mat4x4, RobustEstimatorMethod
from ..solvers.conic import (
    conic_algebraic_residuals, conic_to_theta, dual_conic_algebraic_residuals, fit_conic, fit_dual_conic,
    normalize_conic, theta_to_conic,
)
from ..solvers.quadric import (
    dual_quadric_algebraic_residuals, fit_dual_quadric, fit_quadric, fit_sphere, is_valid_sphere,
    normalize_quadric, quadric_algebraic_residuals, quadric_to_theta, sphere_signed_distances,
    sphere_to_quadric, theta_to_quadric,
)
from .lines import _PointsRobustEstimator

# Normalized algebraic residuals of exact data are at round-off level.
ALGEBRAIC_STOP_THRESHOLD = 1e-9


class _HomogeneousMatrixMixin:
    """Gauge and suitability shared by scale-free matrix models."""

    def is_suitable(self, model) -> bool:
        arr = np.asarray(model, dtype=np.float64)
        return bool(np.isfinite(arr).all()) and float(np.linalg.norm(arr)) > 0.0

    def _gauge_residuals(self, params: FloatArray) -> FloatArray:
        return np.array([np.linalg.norm(params) - 1.0], dtype=np.float64)


class _ConicParametrizationMixin:

    def _model_to_params(self, model: Mat3x3) -> FloatArray:
        theta = conic_to_theta(model)
        return theta / np.linalg.norm(theta)

    def _params_to_model(self, params: FloatArray) -> Mat3x3:
        return normalize_conic(theta_to_conic(params))


class _QuadricParametrizationMixin:

    def _model_to_params(self, model: Mat4x4) -> FloatArray:
        theta = quadric_to_theta(model)
        return theta / np.linalg.norm(theta)

    def _params_to_model(self, params: FloatArray) -> Mat4x4:
        return normalize_quadric(theta_to_quadric(params))


class _TangentsRobustEstimator(RobustEstimator[FloatArray]):
    """Shared data handling of the estimators fitted to homogeneous lines or planes."""

    WIDTH = 3
    NAME = "lines"

    def __init__(
            self,
            tangents: Optional[FloatArray] = None,
            *,
            method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
            quality_scores: Optional[FloatArray] = None,
            listener: Optional[RobustEstimatorListener] = None,
    ) -> None:
        self._tangents = None if tangents is None else self._validate_data(tangents, self.WIDTH, self.NAME)
        super().__init__(method=method, quality_scores=quality_scores, listener=listener)

    def _set_tangents(self, tangents: FloatArray) -> None:
        self._check_not_locked()
        self._tangents = self._validate_data(tangents, self.WIDTH, self.NAME)

    def _data_size(self) -> Optional[int]:
        return None if self._tangents is None else self._tangents.shape[0]


# ---------- Conics ----------
class ConicRobustEstimator(_ConicParametrizationMixin, _HomogeneousMatrixMixin, _PointsRobustEstimator):
    MINIMUM_SIZE = 5
    DEFAULT_THRESHOLD = 1e-6
    DEFAULT_STOP_THRESHOLD = ALGEBRAIC_STOP_THRESHOLD
    MODEL_SHAPE = (3, 3)
    DIMENSION = 2

    def compute_models(self, sample: IntArray) -> List[Mat3x3]:
        C = fit_conic(self._points[sample])
        return [] if C is None else [C]

    def residuals(self, model: Mat3x3) -> FloatArray:
        return np.abs(conic_algebraic_residuals(model, self._points))

    def refit(self, inliers: IntArray) -> Optional[Mat3x3]:
        return fit_conic(self._points[inliers])

    def _signed_residuals(self, model: Mat3x3, inliers: IntArray) -> FloatArray:
        return conic_algebraic_residuals(model, self._points[inliers])


class DualConicRobustEstimator(_ConicParametrizationMixin, _HomogeneousMatrixMixin, _TangentsRobustEstimator):
    """Dual conic C* from lines tangent to it (l^T C* l = 0)."""

    MINIMUM_SIZE = 5
    DEFAULT_THRESHOLD = 1e-6
    DEFAULT_STOP_THRESHOLD = ALGEBRAIC_STOP_THRESHOLD
    MODEL_SHAPE = (3, 3)
    WIDTH = 3
    NAME = "lines"

    @property
    def lines(self) -> Optional[FloatArray]:
        """Homogeneous 2D lines [a, b, c], shape (N, 3)."""
        return self._tangents

    @lines.setter
    def lines(self, lines: FloatArray) -> None:
        self._set_tangents(lines)

    def compute_models(self, sample: IntArray) -> List[Mat3x3]:
        C = fit_dual_conic(self._tangents[sample])
        return [] if C is None else [C]

    def residuals(self, model: Mat3x3) -> FloatArray:
        return np.abs(dual_conic_algebraic_residuals(model, self._tangents))

    def refit(self, inliers: IntArray) -> Optional[Mat3x3]:
        return fit_dual_conic(self._tangents[inliers])

    def _signed_residuals(self, model: Mat3x3, inliers: IntArray) -> FloatArray:
        return dual_conic_algebraic_residuals(model, self._tangents[inliers])


# ---------- Quadrics ----------
class QuadricRobustEstimator(_QuadricParametrizationMixin, _HomogeneousMatrixMixin, _PointsRobustEstimator):
    MINIMUM_SIZE = 9
    DEFAULT_THRESHOLD = 1e-6
    DEFAULT_STOP_THRESHOLD = ALGEBRAIC_STOP_THRESHOLD
    MODEL_SHAPE = (4, 4)
    DIMENSION = 3

    def compute_models(self, sample: IntArray) -> List[Mat4x4]:
        Q = fit_quadric(self._points[sample])
        return [] if Q is None else [Q]

    def residuals(self, model: Mat4x4) -> FloatArray:
        return np.abs(quadric_algebraic_residuals(model, self._points))

    def refit(self, inliers: IntArray) -> Optional[Mat4x4]:
        return fit_quadric(self._points[inliers])

    def _signed_residuals(self, model: Mat4x4, inliers: IntArray) -> FloatArray:
        return quadric_algebraic_residuals(model, self._points[inliers])


class DualQuadricRobustEstimator(_QuadricParametrizationMixin, _HomogeneousMatrixMixin, _TangentsRobustEstimator):
    """Dual quadric Q* from planes tangent to it (pi^T Q* pi = 0)."""

    MINIMUM_SIZE = 9
    DEFAULT_THRESHOLD = 1e-6
    DEFAULT_STOP_THRESHOLD = ALGEBRAIC_STOP_THRESHOLD
    MODEL_SHAPE = (4, 4)
    WIDTH = 4
    NAME = "planes"

    @property
    def planes(self) -> Optional[FloatArray]:
        """Planes [a, b, c, d], shape (N, 4)."""
        return self._tangents

    @planes.setter
    def planes(self, planes: FloatArray) -> None:
        self._set_tangents(planes)

    def compute_models(self, sample: IntArray) -> List[Mat4x4]:
        Q = fit_dual_quadric(self._tangents[sample])
        return [] if Q is None else [Q]

    def residuals(self, model: Mat4x4) -> FloatArray:
        return np.abs(dual_quadric_algebraic_residuals(model, self._tangents))

    def refit(self, inliers: IntArray) -> Optional[Mat4x4]:
        return fit_dual_quadric(self._tangents[inliers])

    def _signed_residuals(self, model: Mat4x4, inliers: IntArray) -> FloatArray:
        return dual_quadric_algebraic_residuals(model, self._tangents[inliers])


# ---------- Spheres ----------
class SphereRobustEstimator(_PointsRobustEstimator):
    MINIMUM_SIZE = 4
    DEFAULT_THRESHOLD = 1e-6
    DEFAULT_STOP_THRESHOLD = 1e-6
    MODEL_SHAPE = (4,)
    DIMENSION = 3

    def compute_models(self, sample: IntArray) -> List[FloatArray]:
        sphere = fit_sphere(self._points[sample])
        return [] if sphere is None else [sphere]

    def residuals(self, model: FloatArray) -> FloatArray:
        return np.abs(sphere_signed_distances(model, self._points))

    def refit(self, inliers: IntArray) -> Optional[FloatArray]:
        return fit_sphere(self._points[inliers])

    def is_suitable(self, model: FloatArray) -> bool:
        return is_valid_sphere(np.asarray(model, dtype=np.float64))

    def _signed_residuals(self, model: FloatArray, inliers: IntArray) -> FloatArray:
        return sphere_signed_distances(model, self._points[inliers])

    @staticmethod
    def to_quadric(sphere: FloatArray) -> Mat4x4:
        """Quadric form of an estimated sphere."""
        return sphere_to_quadric(sphere)
