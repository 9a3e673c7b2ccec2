"""
Robust point estimators.

- Point2DRobustEstimator: the 2D point where most of the given lines meet
- Point3DRobustEstimator: the 3D point where most of the given planes meet

Residual: Euclidean distance from the point to each line / plane.
"""

from __future__ import annotations

from typing import List, Optional

import numpy as np

from ..ransac.estimator import RobustEstimator
from ..ransac.listener import RobustEstimatorListener
from ..ransac.types import DEFAULT_ROBUST_METHOD, FloatArray, IntArray, RobustEstimatorMethod
from ..solvers.point import intersect_lines, intersect_planes, line_point_distances, plane_point_distances


class Point2DRobustEstimator(RobustEstimator[FloatArray]):
    MINIMUM_SIZE = 2
    DEFAULT_THRESHOLD = 1e-6
    MODEL_SHAPE = (2,)

    def __init__(
            self,
            lines: Optional[FloatArray] = None,
            *,
            method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
            quality_scores: Optional[FloatArray] = None,
            listener: Optional[RobustEstimatorListener] = None,
    ) -> None:
        self._lines = None if lines is None else self._validate_data(lines, 3, "lines")
        super().__init__(method=method, quality_scores=quality_scores, listener=listener)

    @property
    def lines(self) -> Optional[FloatArray]:
        """Homogeneous 2D lines [a, b, c], shape (N, 3)."""
        return self._lines

    @lines.setter
    def lines(self, lines: FloatArray) -> None:
        self._check_not_locked()
        self._lines = self._validate_data(lines, 3, "lines")

    def _data_size(self) -> Optional[int]:
        return None if self._lines is None else self._lines.shape[0]

    def compute_models(self, sample: IntArray) -> List[FloatArray]:
        p = intersect_lines(self._lines[sample])
        return [] if p is None else [p]

    def residuals(self, model: FloatArray) -> FloatArray:
        return np.abs(line_point_distances(self._lines, model))

    def refit(self, inliers: IntArray) -> Optional[FloatArray]:
        return intersect_lines(self._lines[inliers])

    def _signed_residuals(self, model: FloatArray, inliers: IntArray) -> FloatArray:
        return line_point_distances(self._lines[inliers], model)


class Point3DRobustEstimator(RobustEstimator[FloatArray]):
    MINIMUM_SIZE = 3
    DEFAULT_THRESHOLD = 1e-6
    MODEL_SHAPE = (3,)

    def __init__(
            self,
            planes: Optional[FloatArray] = None,
            *,
            method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
            quality_scores: Optional[FloatArray] = None,
            listener: Optional[RobustEstimatorListener] = None,
    ) -> None:
        self._planes = None if planes is None else self._validate_data(planes, 4, "planes")
        super().__init__(method=method, quality_scores=quality_scores, listener=listener)

    @property
    def planes(self) -> Optional[FloatArray]:
        """Planes [a, b, c, d], shape (N, 4)."""
        return self._planes

    @planes.setter
    def planes(self, planes: FloatArray) -> None:
        self._check_not_locked()
        self._planes = self._validate_data(planes, 4, "planes")

    def _data_size(self) -> Optional[int]:
        return None if self._planes is None else self._planes.shape[0]

    def compute_models(self, sample: IntArray) -> List[FloatArray]:
        p = intersect_planes(self._planes[sample])
        return [] if p is None else [p]

    def residuals(self, model: FloatArray) -> FloatArray:
        return np.abs(plane_point_distances(self._planes, model))

    def refit(self, inliers: IntArray) -> Optional[FloatArray]:
        return intersect_planes(self._planes[inliers])

    def _signed_residuals(self, model: FloatArray, inliers: IntArray) -> FloatArray:
        return plane_point_distances(self._planes[inliers], model)
