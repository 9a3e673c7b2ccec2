"""
Robust line and plane estimators from points.

- Line2DRobustEstimator: 2D line [a, b, c] (a^2 + b^2 = 1) from 2D points
- Line3DRobustEstimator: 3D line [point, unit direction] from 3D points
- PlaneRobustEstimator: plane [a, b, c, d] (unit normal) from 3D points

Residual: orthogonal distance from each point to the line / plane.

Refinement parametrizations:
- 2D line: normal form (theta, rho)
- 3D line: (closest point to the origin, direction) with gauge residuals
  ||d|| - 1 and d . p
- plane:   (a, b, c, d) with gauge residual ||n|| - 1
"""

from __future__ import annotations

from typing import List, Optional

import numpy as np

from ..ransac.estimator import RobustEstimator
from ..ransac.listener import RobustEstimatorListener
from ..ransac.types import DEFAULT_ROBUST_METHOD, FloatArray, IntArray, RobustEstimatorMethod
from ..solvers.line import (
    angle_distance_to_line, fit_line_2d, fit_line_3d, fit_plane, line_to_angle_distance,
    point_line_2d_distances, point_line_3d_distances, point_line_3d_offsets, point_plane_distances,
)


class _PointsRobustEstimator(RobustEstimator[FloatArray]):
    """Shared data handling of the estimators fitted to a single point set."""

    DIMENSION = 2

    def __init__(
            self,
            points: Optional[FloatArray] = None,
            *,
            method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
            quality_scores: Optional[FloatArray] = None,
            listener: Optional[RobustEstimatorListener] = None,
    ) -> None:
        self._points = None if points is None else self._validate_data(points, self.DIMENSION, "points")
        super().__init__(method=method, quality_scores=quality_scores, listener=listener)

    @property
    def points(self) -> Optional[FloatArray]:
        return self._points

    @points.setter
    def points(self, points: FloatArray) -> None:
        self._check_not_locked()
        self._points = self._validate_data(points, self.DIMENSION, "points")

    def _data_size(self) -> Optional[int]:
        return None if self._points is None else self._points.shape[0]


class Line2DRobustEstimator(_PointsRobustEstimator):
    MINIMUM_SIZE = 2
    DEFAULT_THRESHOLD = 1e-6
    MODEL_SHAPE = (3,)
    DIMENSION = 2

    def compute_models(self, sample: IntArray) -> List[FloatArray]:
        line = fit_line_2d(self._points[sample])
        return [] if line is None else [line]

    def residuals(self, model: FloatArray) -> FloatArray:
        return np.abs(point_line_2d_distances(model, self._points))

    def refit(self, inliers: IntArray) -> Optional[FloatArray]:
        return fit_line_2d(self._points[inliers])

    def is_suitable(self, model: FloatArray) -> bool:
        return super().is_suitable(model) and float(np.hypot(model[0], model[1])) > 0.0

    def _model_to_params(self, model: FloatArray) -> FloatArray:
        return line_to_angle_distance(model)

    def _params_to_model(self, params: FloatArray) -> FloatArray:
        return angle_distance_to_line(params)

    def _signed_residuals(self, model: FloatArray, inliers: IntArray) -> FloatArray:
        return point_line_2d_distances(model, self._points[inliers])


class Line3DRobustEstimator(_PointsRobustEstimator):
    MINIMUM_SIZE = 2
    DEFAULT_THRESHOLD = 1e-6
    MODEL_SHAPE = (2, 3)
    DIMENSION = 3

    def compute_models(self, sample: IntArray) -> List[FloatArray]:
        line = fit_line_3d(self._points[sample])
        return [] if line is None else [line]

    def residuals(self, model: FloatArray) -> FloatArray:
        return point_line_3d_distances(model, self._points)

    def refit(self, inliers: IntArray) -> Optional[FloatArray]:
        return fit_line_3d(self._points[inliers])

    def is_suitable(self, model: FloatArray) -> bool:
        return super().is_suitable(model) and float(np.linalg.norm(model[1])) > 0.0

    def _model_to_params(self, model: FloatArray) -> FloatArray:
        # Slide the point to the closest point to the origin so the gauge holds at x0
        d = model[1] / np.linalg.norm(model[1])
        p = model[0] - float(model[0] @ d) * d
        return np.concatenate([p, d])

    def _params_to_model(self, params: FloatArray) -> FloatArray:
        d = params[3:6]
        return np.vstack([params[:3], d / np.linalg.norm(d)])

    def _signed_residuals(self, model: FloatArray, inliers: IntArray) -> FloatArray:
        return point_line_3d_offsets(model, self._points[inliers]).ravel()

    def _gauge_residuals(self, params: FloatArray) -> FloatArray:
        d = params[3:6]
        return np.array([np.linalg.norm(d) - 1.0, float(params[:3] @ d)], dtype=np.float64)


class PlaneRobustEstimator(_PointsRobustEstimator):
    MINIMUM_SIZE = 3
    DEFAULT_THRESHOLD = 1e-6
    MODEL_SHAPE = (4,)
    DIMENSION = 3

    def compute_models(self, sample: IntArray) -> List[FloatArray]:
        plane = fit_plane(self._points[sample])
        return [] if plane is None else [plane]

    def residuals(self, model: FloatArray) -> FloatArray:
        return np.abs(point_plane_distances(model, self._points))

    def refit(self, inliers: IntArray) -> Optional[FloatArray]:
        return fit_plane(self._points[inliers])

    def is_suitable(self, model: FloatArray) -> bool:
        return super().is_suitable(model) and float(np.linalg.norm(model[:3])) > 0.0

    def _params_to_model(self, params: FloatArray) -> FloatArray:
        return params / np.linalg.norm(params[:3])

    def _signed_residuals(self, model: FloatArray, inliers: IntArray) -> FloatArray:
        return point_plane_distances(model, self._points[inliers])

    def _gauge_residuals(self, params: FloatArray) -> FloatArray:
        return np.array([np.linalg.norm(params[:3]) - 1.0], dtype=np.float64)
