"""
Robust transformation estimators from correspondences.

- AffineTransformation2DRobustEstimator:  3x3 affine, 3 point pairs minimum
- AffineTransformation3DRobustEstimator:  4x4 affine, 4 point pairs minimum
- LineCorrespondenceAffineTransformation2DRobustEstimator:  3x3 affine, 3 line pairs
- PlaneCorrespondenceAffineTransformation3DRobustEstimator: 4x4 affine, 4 plane pairs
- EuclideanTransformation2DRobustEstimator: 3x3 rigid, 2 point pairs minimum
- EuclideanTransformation3DRobustEstimator: 4x4 rigid, 3 point pairs minimum
- MetricTransformation2DRobustEstimator: 3x3 similarity (rotation, scale, translation), 2 point pairs
- MetricTransformation3DRobustEstimator: 4x4 similarity, 3 point pairs
- PointCorrespondenceProjectiveTransformation2DRobustEstimator: homography, 4 point pairs
- LineCorrespondenceProjectiveTransformation2DRobustEstimator:  homography, 4 line pairs
- PointCorrespondenceProjectiveTransformation3DRobustEstimator: 4x4 homography, 5 point pairs
- PlaneCorrespondenceProjectiveTransformation3DRobustEstimator: 4x4 homography, 5 plane pairs

Every model maps input to output: output ~ T @ input (points). Lines and planes
follow the inverse transpose.

Point residuals are transfer distances in the units of the data (stop threshold
1.0); line / plane residuals are 1 - |cos| between homogeneous vectors (1e-6).
"""

from __future__ import annotations

from typing import List, Optional, Tuple

import numpy as np

from ..ransac.estimator import RobustEstimator
from ..ransac.listener import RobustEstimatorListener
from ..ransac.types import DEFAULT_ROBUST_METHOD, FloatArray, IntArray, Mat3x3, Mat4x4, RobustEstimatorMethod
from ..solvers.affine import (
    affine_to_theta, fit_affine_3d_minimal, fit_affine_from_hyperplanes, fit_affine_least_squares,
    fit_affine_minimal, residuals_L2, theta_to_affine, transfer_errors,
)
from ..solvers.euclidean import (
    euclidean_to_params, fit_euclidean_least_squares, fit_euclidean_minimal, fit_similarity,
    params_to_euclidean, params_to_similarity, similarity_to_params,
)
from ..solvers.projective import (
    fit_homography_3d, fit_homography_dlt, fit_homography_least_squares,
    fit_line_homography, fit_plane_homography, hyperplane_transfer_errors, hyperplane_transfer_residuals,
    normalize_homography, point_transfer_errors, point_transfer_residuals,
)

# Residuals in pixels (or data units).
POINT_STOP_THRESHOLD = 1.0

# Residuals as 1 - |cos| between homogeneous lines / planes.
HYPERPLANE_STOP_THRESHOLD = 1e-6


class _CorrespondenceRobustEstimator(RobustEstimator[FloatArray]):
    """Shared data handling of the estimators fitted to input/output pairs."""

    WIDTH = 2
    NAMES: Tuple[str, str] = ("input_points", "output_points")

    def __init__(
            self,
            inputs: Optional[FloatArray] = None,
            outputs: Optional[FloatArray] = None,
            *,
            method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
            quality_scores: Optional[FloatArray] = None,
            listener: Optional[RobustEstimatorListener] = None,
    ) -> None:
        self._inputs: Optional[FloatArray] = None
        self._outputs: Optional[FloatArray] = None
        if inputs is not None or outputs is not None:
            self._inputs, self._outputs = self._validate_pair(
                inputs, outputs, (self.WIDTH, self.WIDTH), self.NAMES
            )
        super().__init__(method=method, quality_scores=quality_scores, listener=listener)

    def _set_pairs(self, inputs: FloatArray, outputs: FloatArray) -> None:
        self._check_not_locked()
        self._inputs, self._outputs = self._validate_pair(
            inputs, outputs, (self.WIDTH, self.WIDTH), self.NAMES
        )

    def _data_size(self) -> Optional[int]:
        return None if self._inputs is None else self._inputs.shape[0]


class _PointCorrespondenceMixin:

    @property
    def input_points(self) -> Optional[FloatArray]:
        return self._inputs

    @property
    def output_points(self) -> Optional[FloatArray]:
        return self._outputs

    def set_points(self, input_points: FloatArray, output_points: FloatArray) -> None:
        """Replace both point sets at once (same length)."""
        self._set_pairs(input_points, output_points)


class _LineCorrespondenceMixin:

    @property
    def input_lines(self) -> Optional[FloatArray]:
        return self._inputs

    @property
    def output_lines(self) -> Optional[FloatArray]:
        return self._outputs

    def set_lines(self, input_lines: FloatArray, output_lines: FloatArray) -> None:
        """Replace both line sets at once (same length)."""
        self._set_pairs(input_lines, output_lines)


class _PlaneCorrespondenceMixin:

    @property
    def input_planes(self) -> Optional[FloatArray]:
        return self._inputs

    @property
    def output_planes(self) -> Optional[FloatArray]:
        return self._outputs

    def set_planes(self, input_planes: FloatArray, output_planes: FloatArray) -> None:
        self._set_pairs(input_planes, output_planes)


class _HyperplaneResidualsMixin:
    """1 - |cos| residuals of line / plane pairs under a point transform."""

    def residuals(self, model: FloatArray) -> FloatArray:
        return hyperplane_transfer_residuals(model, self._inputs, self._outputs)

    def _signed_residuals(self, model: FloatArray, inliers: IntArray) -> FloatArray:
        return hyperplane_transfer_errors(model, self._inputs[inliers], self._outputs[inliers]).ravel()


# ---------- Affine ----------
class _AffineParametrizationMixin:

    def _model_to_params(self, model: FloatArray) -> FloatArray:
        return affine_to_theta(model)

    def _params_to_model(self, params: FloatArray) -> FloatArray:
        return theta_to_affine(params, self.MODEL_SHAPE[0] - 1)


class AffineTransformation2DRobustEstimator(
        _PointCorrespondenceMixin, _AffineParametrizationMixin, _CorrespondenceRobustEstimator):
    MINIMUM_SIZE = 3
    DEFAULT_THRESHOLD = 1.0
    DEFAULT_STOP_THRESHOLD = POINT_STOP_THRESHOLD
    MODEL_SHAPE = (3, 3)
    WIDTH = 2

    def compute_models(self, sample: IntArray) -> List[Mat3x3]:
        T = fit_affine_minimal(self._inputs[sample], self._outputs[sample])
        return [] if T is None else [T]

    def residuals(self, model: Mat3x3) -> FloatArray:
        return residuals_L2(model, self._inputs, self._outputs)

    def refit(self, inliers: IntArray) -> Optional[Mat3x3]:
        return fit_affine_least_squares(self._inputs[inliers], self._outputs[inliers])

    def _signed_residuals(self, model: FloatArray, inliers: IntArray) -> FloatArray:
        return transfer_errors(model, self._inputs[inliers], self._outputs[inliers])


class AffineTransformation3DRobustEstimator(AffineTransformation2DRobustEstimator):
    MINIMUM_SIZE = 4
    MODEL_SHAPE = (4, 4)
    WIDTH = 3

    def compute_models(self, sample: IntArray) -> List[FloatArray]:
        T = fit_affine_3d_minimal(self._inputs[sample], self._outputs[sample])
        return [] if T is None else [T]


class _HyperplaneAffineRobustEstimator(
        _HyperplaneResidualsMixin, _AffineParametrizationMixin, _CorrespondenceRobustEstimator):
    """Affine point transform estimated from corresponding lines or planes."""

    DEFAULT_THRESHOLD = 1e-6
    DEFAULT_STOP_THRESHOLD = HYPERPLANE_STOP_THRESHOLD

    def compute_models(self, sample: IntArray) -> List[Mat3x3]:
        T = fit_affine_from_hyperplanes(self._inputs[sample], self._outputs[sample])
        return [] if T is None else [T]

    def refit(self, inliers: IntArray) -> Optional[Mat3x3]:
        return fit_affine_from_hyperplanes(self._inputs[inliers], self._outputs[inliers])


class LineCorrespondenceAffineTransformation2DRobustEstimator(_LineCorrespondenceMixin, _HyperplaneAffineRobustEstimator):
    MINIMUM_SIZE = 3
    MODEL_SHAPE = (3, 3)
    WIDTH = 3
    NAMES = ("input_lines", "output_lines")


class PlaneCorrespondenceAffineTransformation3DRobustEstimator(_PlaneCorrespondenceMixin, _HyperplaneAffineRobustEstimator):
    MINIMUM_SIZE = 4
    MODEL_SHAPE = (4, 4)
    WIDTH = 4
    NAMES = ("input_planes", "output_planes")


# ---------- Euclidean / metric ----------
class EuclideanTransformation2DRobustEstimator(_PointCorrespondenceMixin, _CorrespondenceRobustEstimator):
    MINIMUM_SIZE = 2
    DEFAULT_THRESHOLD = 1.0
    DEFAULT_STOP_THRESHOLD = POINT_STOP_THRESHOLD
    MODEL_SHAPE = (3, 3)
    WIDTH = 2

    def compute_models(self, sample: IntArray) -> List[Mat3x3]:
        T = fit_euclidean_minimal(self._inputs[sample], self._outputs[sample])
        return [] if T is None else [T]

    def residuals(self, model: Mat3x3) -> FloatArray:
        return residuals_L2(model, self._inputs, self._outputs)

    def refit(self, inliers: IntArray) -> Optional[Mat3x3]:
        return fit_euclidean_least_squares(self._inputs[inliers], self._outputs[inliers])

    def _model_to_params(self, model: Mat3x3) -> FloatArray:
        return euclidean_to_params(model)

    def _params_to_model(self, params: FloatArray) -> Mat3x3:
        return params_to_euclidean(params)

    def _signed_residuals(self, model: Mat3x3, inliers: IntArray) -> FloatArray:
        return transfer_errors(model, self._inputs[inliers], self._outputs[inliers])


class _SimilarityRobustEstimator(_PointCorrespondenceMixin, _CorrespondenceRobustEstimator):
    """
    Rigid (WITH_SCALE = False) or similarity (WITH_SCALE = True) transforms,
    solved in closed form on every sample.
    """

    DEFAULT_THRESHOLD = 1.0
    DEFAULT_STOP_THRESHOLD = POINT_STOP_THRESHOLD
    WITH_SCALE = False

    def compute_models(self, sample: IntArray) -> List[FloatArray]:
        T = fit_similarity(self._inputs[sample], self._outputs[sample], with_scale=self.WITH_SCALE)
        return [] if T is None else [T]

    def residuals(self, model: FloatArray) -> FloatArray:
        return residuals_L2(model, self._inputs, self._outputs)

    def refit(self, inliers: IntArray) -> Optional[FloatArray]:
        return fit_similarity(self._inputs[inliers], self._outputs[inliers], with_scale=self.WITH_SCALE)

    def _model_to_params(self, model: FloatArray) -> FloatArray:
        return similarity_to_params(model, with_scale=self.WITH_SCALE)

    def _params_to_model(self, params: FloatArray) -> FloatArray:
        return params_to_similarity(params, self.WIDTH, with_scale=self.WITH_SCALE)

    def _signed_residuals(self, model: FloatArray, inliers: IntArray) -> FloatArray:
        return transfer_errors(model, self._inputs[inliers], self._outputs[inliers])


class EuclideanTransformation3DRobustEstimator(_SimilarityRobustEstimator):
    MINIMUM_SIZE = 3
    MODEL_SHAPE = (4, 4)
    WIDTH = 3


class MetricTransformation2DRobustEstimator(_SimilarityRobustEstimator):
    MINIMUM_SIZE = 2
    MODEL_SHAPE = (3, 3)
    WIDTH = 2
    WITH_SCALE = True


class MetricTransformation3DRobustEstimator(_SimilarityRobustEstimator):
    MINIMUM_SIZE = 3
    MODEL_SHAPE = (4, 4)
    WIDTH = 3
    WITH_SCALE = True


# ---------- Projective ----------
class _ProjectiveRobustEstimator(_CorrespondenceRobustEstimator):
    """Homographies of any size, kept at unit Frobenius norm."""

    def is_suitable(self, model: FloatArray) -> bool:
        arr = np.asarray(model, dtype=np.float64)
        return (
            arr.shape == self.MODEL_SHAPE
            and bool(np.isfinite(arr).all())
            and abs(float(np.linalg.det(arr))) > np.finfo(np.float64).eps
        )

    def _model_to_params(self, model: FloatArray) -> FloatArray:
        return normalize_homography(model).ravel()

    def _params_to_model(self, params: FloatArray) -> FloatArray:
        return normalize_homography(params.reshape(self.MODEL_SHAPE))

    def _gauge_residuals(self, params: FloatArray) -> FloatArray:
        return np.array([np.linalg.norm(params) - 1.0], dtype=np.float64)


class ProjectiveTransformation2DRobustEstimator(_ProjectiveRobustEstimator):
    """
    Homography estimators. Use the factories to pick the correspondence type:

        ProjectiveTransformation2DRobustEstimator.create_from_points(pts0, pts1)
        ProjectiveTransformation2DRobustEstimator.create_from_lines(lines0, lines1)
    """

    MINIMUM_SIZE = 4
    MODEL_SHAPE = (3, 3)

    @classmethod
    def create(cls, *args, method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD, **kwargs):
        if cls is ProjectiveTransformation2DRobustEstimator:
            return cls.create_from_points(*args, method=method, **kwargs)
        return super().create(*args, method=method, **kwargs)

    @staticmethod
    def create_from_points(
            input_points: Optional[FloatArray] = None,
            output_points: Optional[FloatArray] = None,
            *,
            method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
            quality_scores: Optional[FloatArray] = None,
            listener: Optional[RobustEstimatorListener] = None,
    ) -> "PointCorrespondenceProjectiveTransformation2DRobustEstimator":
        return PointCorrespondenceProjectiveTransformation2DRobustEstimator(
            input_points, output_points, method=method, quality_scores=quality_scores, listener=listener,
        )

    @staticmethod
    def create_from_lines(
            input_lines: Optional[FloatArray] = None,
            output_lines: Optional[FloatArray] = None,
            *,
            method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
            quality_scores: Optional[FloatArray] = None,
            listener: Optional[RobustEstimatorListener] = None,
    ) -> "LineCorrespondenceProjectiveTransformation2DRobustEstimator":
        return LineCorrespondenceProjectiveTransformation2DRobustEstimator(
            input_lines, output_lines, method=method, quality_scores=quality_scores, listener=listener,
        )


class PointCorrespondenceProjectiveTransformation2DRobustEstimator(
        _PointCorrespondenceMixin, ProjectiveTransformation2DRobustEstimator):
    DEFAULT_THRESHOLD = 1.0
    DEFAULT_STOP_THRESHOLD = POINT_STOP_THRESHOLD
    WIDTH = 2

    def compute_models(self, sample: IntArray) -> List[Mat3x3]:
        H = fit_homography_dlt(self._inputs[sample], self._outputs[sample])
        return [] if H is None else [H]

    def residuals(self, model: Mat3x3) -> FloatArray:
        return point_transfer_residuals(model, self._inputs, self._outputs)

    def refit(self, inliers: IntArray) -> Optional[Mat3x3]:
        pts0, pts1 = self._inputs[inliers], self._outputs[inliers]
        H = fit_homography_least_squares(pts0, pts1)
        return H if H is not None else fit_homography_dlt(pts0, pts1)

    def _signed_residuals(self, model: Mat3x3, inliers: IntArray) -> FloatArray:
        return point_transfer_errors(model, self._inputs[inliers], self._outputs[inliers]).ravel()


class LineCorrespondenceProjectiveTransformation2DRobustEstimator(
        _LineCorrespondenceMixin, _HyperplaneResidualsMixin, ProjectiveTransformation2DRobustEstimator):
    DEFAULT_THRESHOLD = 1e-6
    DEFAULT_STOP_THRESHOLD = HYPERPLANE_STOP_THRESHOLD
    WIDTH = 3
    NAMES = ("input_lines", "output_lines")

    def compute_models(self, sample: IntArray) -> List[Mat3x3]:
        H = fit_line_homography(self._inputs[sample], self._outputs[sample])
        return [] if H is None else [H]

    def refit(self, inliers: IntArray) -> Optional[Mat3x3]:
        return fit_line_homography(self._inputs[inliers], self._outputs[inliers])


class ProjectiveTransformation3DRobustEstimator(_ProjectiveRobustEstimator):
    """
    4x4 homographies of 3D space:

        ProjectiveTransformation3DRobustEstimator.create_from_points(X0, X1)
        ProjectiveTransformation3DRobustEstimator.create_from_planes(planes0, planes1)
    """

    MINIMUM_SIZE = 5
    MODEL_SHAPE = (4, 4)

    @classmethod
    def create(cls, *args, method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD, **kwargs):
        if cls is ProjectiveTransformation3DRobustEstimator:
            return cls.create_from_points(*args, method=method, **kwargs)
        return super().create(*args, method=method, **kwargs)

    @staticmethod
    def create_from_points(
            input_points: Optional[FloatArray] = None,
            output_points: Optional[FloatArray] = None,
            *,
            method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
            quality_scores: Optional[FloatArray] = None,
            listener: Optional[RobustEstimatorListener] = None,
    ) -> "PointCorrespondenceProjectiveTransformation3DRobustEstimator":
        return PointCorrespondenceProjectiveTransformation3DRobustEstimator(
            input_points, output_points, method=method, quality_scores=quality_scores, listener=listener,
        )

    @staticmethod
    def create_from_planes(
            input_planes: Optional[FloatArray] = None,
            output_planes: Optional[FloatArray] = None,
            *,
            method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
            quality_scores: Optional[FloatArray] = None,
            listener: Optional[RobustEstimatorListener] = None,
    ) -> "PlaneCorrespondenceProjectiveTransformation3DRobustEstimator":
        return PlaneCorrespondenceProjectiveTransformation3DRobustEstimator(
            input_planes, output_planes, method=method, quality_scores=quality_scores, listener=listener,
        )


class PointCorrespondenceProjectiveTransformation3DRobustEstimator(
        _PointCorrespondenceMixin, ProjectiveTransformation3DRobustEstimator):
    DEFAULT_THRESHOLD = 1.0
    DEFAULT_STOP_THRESHOLD = POINT_STOP_THRESHOLD
    WIDTH = 3

    def compute_models(self, sample: IntArray) -> List[Mat4x4]:
        H = fit_homography_3d(self._inputs[sample], self._outputs[sample])
        return [] if H is None else [H]

    def residuals(self, model: Mat4x4) -> FloatArray:
        return residuals_L2(model, self._inputs, self._outputs)

    def refit(self, inliers: IntArray) -> Optional[Mat4x4]:
        return fit_homography_3d(self._inputs[inliers], self._outputs[inliers])

    def _signed_residuals(self, model: Mat4x4, inliers: IntArray) -> FloatArray:
        return transfer_errors(model, self._inputs[inliers], self._outputs[inliers])


class PlaneCorrespondenceProjectiveTransformation3DRobustEstimator(
        _PlaneCorrespondenceMixin, _HyperplaneResidualsMixin, ProjectiveTransformation3DRobustEstimator):
    DEFAULT_THRESHOLD = 1e-6
    DEFAULT_STOP_THRESHOLD = HYPERPLANE_STOP_THRESHOLD
    WIDTH = 4
    NAMES = ("input_planes", "output_planes")

    def compute_models(self, sample: IntArray) -> List[Mat4x4]:
        H = fit_plane_homography(self._inputs[sample], self._outputs[sample])
        return [] if H is None else [H]

    def refit(self, inliers: IntArray) -> Optional[Mat4x4]:
        return fit_plane_homography(self._inputs[inliers], self._outputs[inliers])
