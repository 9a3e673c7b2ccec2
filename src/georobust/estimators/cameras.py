"""
Robust pinhole camera estimators.

- DLTPointCorrespondencePinholeCameraRobustEstimator: 3D/2D points, 6 minimum
- EPnPPointCorrespondencePinholeCameraRobustEstimator: 3D/2D points + known K, 4 minimum
- DLTLinePlaneCorrespondencePinholeCameraRobustEstimator: 2D lines / 3D planes, 4 minimum

Refinement can be biased by suggestions: soft constraints pulling intrinsic
or pose parameters toward externally known values. Each enabled suggestion
adds weight * (value - suggested) to the refinement residuals:

    skewness, horizontal / vertical focal length, aspect ratio (fy / fx),
    principal point (cx, cy), rotation (Rodrigues vector of R_s^T R),
    center (C - C_s)
"""

from __future__ import annotations

from typing import Callable, List, Optional

import numpy as np

from ..ransac.estimator import RobustEstimator
from ..ransac.listener import RobustEstimatorListener
from ..ransac.types import DEFAULT_ROBUST_METHOD, FloatArray, IntArray, Mat3x3, Mat3x4, RobustEstimatorMethod, as_float_array
from ..solvers.camera import (
    backprojection_errors, backprojection_residuals, camera_to_params, camera_to_pose, decompose_camera,
    fit_camera_dlt, fit_camera_epnp, fit_camera_line_plane_dlt, params_to_camera, pose_to_camera,
    reprojection_errors, reprojection_residuals, rotation_to_vector,
)


# Multiplier of every suggestion residual.
DEFAULT_SUGGESTION_WEIGHT = 100.0
DEFAULT_SUGGESTED_SKEWNESS_VALUE = 0.0
DEFAULT_SUGGESTED_ASPECT_RATIO_VALUE = 1.0


def _locked_property(attr: str, convert: Callable, doc: Optional[str] = None) -> property:
    """Property whose setter converts the value and refuses while locked."""

    def getter(self):
        return getattr(self, attr)

    def setter(self, value):
        self._check_not_locked()
        setattr(self, attr, convert(value))

    return property(getter, setter, doc=doc)


def _as_rotation(value) -> Optional[Mat3x3]:
    if value is None:
        return None
    R = np.asarray(value, dtype=np.float64)
    if R.shape != (3, 3) or not np.isfinite(R).all():
        raise ValueError(f"rotation must be a finite 3x3 matrix, got shape {R.shape}")
    if not np.allclose(R @ R.T, np.eye(3), atol=1e-6) or np.linalg.det(R) <= 0.0:
        raise ValueError("rotation must be a proper orthonormal matrix")
    return R


def _as_vector(size: int) -> Callable:
    def convert(value) -> Optional[FloatArray]:
        if value is None:
            return None
        v = np.asarray(value, dtype=np.float64).ravel()
        if v.shape != (size,) or not np.isfinite(v).all():
            raise ValueError(f"expected {size} finite values, got shape {v.shape}")
        return v
    return convert


def _as_positive(value) -> float:
    value = float(value)
    if not value > 0.0:
        raise ValueError(f"value must be > 0, got {value}")
    return value


class PinholeCameraRobustEstimator(RobustEstimator[Mat3x4]):
    """
    Base of the camera estimators: suggestion configuration and the
    factories choosing the concrete estimator.
    """

    MODEL_SHAPE = (3, 4)
    # Reprojection errors in pixels.
    DEFAULT_STOP_THRESHOLD = 1.0

    def __init__(
            self,
            *,
            method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
            quality_scores: Optional[FloatArray] = None,
            listener: Optional[RobustEstimatorListener] = None,
    ) -> None:
        super().__init__(method=method, quality_scores=quality_scores, listener=listener)

        self._suggestion_weight = DEFAULT_SUGGESTION_WEIGHT

        self._skewness_value_suggestion_enabled = False
        self._suggested_skewness_value = DEFAULT_SUGGESTED_SKEWNESS_VALUE
        self._horizontal_focal_length_suggestion_enabled = False
        self._suggested_horizontal_focal_length_value = 0.0
        self._vertical_focal_length_suggestion_enabled = False
        self._suggested_vertical_focal_length_value = 0.0
        self._aspect_ratio_suggestion_enabled = False
        self._suggested_aspect_ratio_value = DEFAULT_SUGGESTED_ASPECT_RATIO_VALUE
        self._principal_point_suggestion_enabled = False
        self._suggested_principal_point_value: Optional[FloatArray] = None
        self._rotation_suggestion_enabled = False
        self._suggested_rotation_value: Optional[Mat3x3] = None
        self._center_suggestion_enabled = False
        self._suggested_center_value: Optional[FloatArray] = None

    # ---------- Factories ----------
    @classmethod
    def create(cls, *args, method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD, **kwargs):
        if cls is PinholeCameraRobustEstimator:
            return cls.create_from_points(*args, method=method, **kwargs)
        return super().create(*args, method=method, **kwargs)

    @staticmethod
    def create_from_points(
            points_3d: Optional[FloatArray] = None,
            points_2d: Optional[FloatArray] = None,
            *,
            intrinsic: Optional[Mat3x3] = None,
            method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
            quality_scores: Optional[FloatArray] = None,
            listener: Optional[RobustEstimatorListener] = None,
    ) -> "PinholeCameraRobustEstimator":
        """EPnP when the intrinsic parameters are known, DLT otherwise."""
        if intrinsic is not None:
            return EPnPPointCorrespondencePinholeCameraRobustEstimator(
                points_3d, points_2d, intrinsic=intrinsic,
                method=method, quality_scores=quality_scores, listener=listener,
            )
        return DLTPointCorrespondencePinholeCameraRobustEstimator(
            points_3d, points_2d, method=method, quality_scores=quality_scores, listener=listener,
        )

    @staticmethod
    def create_from_lines_and_planes(
            lines: Optional[FloatArray] = None,
            planes: Optional[FloatArray] = None,
            *,
            method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
            quality_scores: Optional[FloatArray] = None,
            listener: Optional[RobustEstimatorListener] = None,
    ) -> "DLTLinePlaneCorrespondencePinholeCameraRobustEstimator":
        return DLTLinePlaneCorrespondencePinholeCameraRobustEstimator(
            lines, planes, method=method, quality_scores=quality_scores, listener=listener,
        )

    # ---------- Suggestions ----------
    suggestion_weight = _locked_property("_suggestion_weight", _as_positive)

    skewness_value_suggestion_enabled = _locked_property("_skewness_value_suggestion_enabled", bool)
    suggested_skewness_value = _locked_property("_suggested_skewness_value", float)

    horizontal_focal_length_suggestion_enabled = _locked_property(
        "_horizontal_focal_length_suggestion_enabled", bool)
    suggested_horizontal_focal_length_value = _locked_property(
        "_suggested_horizontal_focal_length_value", float)

    vertical_focal_length_suggestion_enabled = _locked_property(
        "_vertical_focal_length_suggestion_enabled", bool)
    suggested_vertical_focal_length_value = _locked_property(
        "_suggested_vertical_focal_length_value", float)

    aspect_ratio_suggestion_enabled = _locked_property("_aspect_ratio_suggestion_enabled", bool)
    suggested_aspect_ratio_value = _locked_property("_suggested_aspect_ratio_value", _as_positive)

    principal_point_suggestion_enabled = _locked_property("_principal_point_suggestion_enabled", bool)
    suggested_principal_point_value = _locked_property("_suggested_principal_point_value", _as_vector(2))

    rotation_suggestion_enabled = _locked_property("_rotation_suggestion_enabled", bool)
    suggested_rotation_value = _locked_property("_suggested_rotation_value", _as_rotation)

    center_suggestion_enabled = _locked_property("_center_suggestion_enabled", bool)
    suggested_center_value = _locked_property("_suggested_center_value", _as_vector(3))

    @property
    def is_suggestion_enabled(self) -> bool:
        return any([
            self._skewness_value_suggestion_enabled,
            self._horizontal_focal_length_suggestion_enabled,
            self._vertical_focal_length_suggestion_enabled,
            self._aspect_ratio_suggestion_enabled,
            self._principal_point_suggestion_enabled and self._suggested_principal_point_value is not None,
            self._rotation_suggestion_enabled and self._suggested_rotation_value is not None,
            self._center_suggestion_enabled and self._suggested_center_value is not None,
        ])

    def _suggestion_residuals(self, model: Mat3x4) -> FloatArray:
        if not self.is_suggestion_enabled:
            return np.empty(0, dtype=np.float64)

        parts = decompose_camera(model)
        if parts is None:
            raise np.linalg.LinAlgError("camera cannot be decomposed")
        K, R, C = parts
        w = self._suggestion_weight

        terms: List[FloatArray] = []
        if self._skewness_value_suggestion_enabled:
            terms.append([K[0, 1] - self._suggested_skewness_value])
        if self._horizontal_focal_length_suggestion_enabled:
            terms.append([K[0, 0] - self._suggested_horizontal_focal_length_value])
        if self._vertical_focal_length_suggestion_enabled:
            terms.append([K[1, 1] - self._suggested_vertical_focal_length_value])
        if self._aspect_ratio_suggestion_enabled:
            terms.append([K[1, 1] / K[0, 0] - self._suggested_aspect_ratio_value])
        if self._principal_point_suggestion_enabled and self._suggested_principal_point_value is not None:
            terms.append(K[:2, 2] - self._suggested_principal_point_value)
        if self._rotation_suggestion_enabled and self._suggested_rotation_value is not None:
            terms.append(rotation_to_vector(self._suggested_rotation_value.T @ R))
        if self._center_suggestion_enabled and self._suggested_center_value is not None:
            terms.append(C - self._suggested_center_value)

        return w * np.concatenate([np.asarray(t, dtype=np.float64).ravel() for t in terms])

    # ---------- Model checks / parametrization ----------
    def is_suitable(self, model: Mat3x4) -> bool:
        P = np.asarray(model, dtype=np.float64)
        if P.shape != (3, 4) or not np.isfinite(P).all():
            return False
        return decompose_camera(P) is not None

    def _model_to_params(self, model: Mat3x4) -> FloatArray:
        params = camera_to_params(model)
        if params is None:
            raise ValueError("camera cannot be decomposed")
        return params

    def _params_to_model(self, params: FloatArray) -> Mat3x4:
        return params_to_camera(params)


class _PointCorrespondenceCameraMixin:
    """3D/2D point data of the point-correspondence camera estimators."""

    def _init_points(self, points_3d, points_2d) -> None:
        self._points_3d: Optional[FloatArray] = None
        self._points_2d: Optional[FloatArray] = None
        if points_3d is not None or points_2d is not None:
            self._points_3d, self._points_2d = self._validate_pair(
                points_3d, points_2d, (3, 2), ("points_3d", "points_2d")
            )

    @property
    def points_3d(self) -> Optional[FloatArray]:
        return self._points_3d

    @property
    def points_2d(self) -> Optional[FloatArray]:
        return self._points_2d

    def set_points(self, points_3d: FloatArray, points_2d: FloatArray) -> None:
        self._check_not_locked()
        self._points_3d, self._points_2d = self._validate_pair(
            points_3d, points_2d, (3, 2), ("points_3d", "points_2d")
        )

    def _data_size(self) -> Optional[int]:
        return None if self._points_3d is None else self._points_3d.shape[0]

    def residuals(self, model: Mat3x4) -> FloatArray:
        return reprojection_residuals(model, self._points_3d, self._points_2d)

    def _signed_residuals(self, model: Mat3x4, inliers: IntArray) -> FloatArray:
        return reprojection_errors(model, self._points_3d[inliers], self._points_2d[inliers]).ravel()


class DLTPointCorrespondencePinholeCameraRobustEstimator(
        _PointCorrespondenceCameraMixin, PinholeCameraRobustEstimator):
    MINIMUM_SIZE = 6
    DEFAULT_THRESHOLD = 1.0

    def __init__(
            self,
            points_3d: Optional[FloatArray] = None,
            points_2d: Optional[FloatArray] = None,
            *,
            method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
            quality_scores: Optional[FloatArray] = None,
            listener: Optional[RobustEstimatorListener] = None,
    ) -> None:
        self._init_points(points_3d, points_2d)
        super().__init__(method=method, quality_scores=quality_scores, listener=listener)

    def compute_models(self, sample: IntArray) -> List[Mat3x4]:
        P = fit_camera_dlt(self._points_3d[sample], self._points_2d[sample])
        return [] if P is None else [P]

    def refit(self, inliers: IntArray) -> Optional[Mat3x4]:
        return fit_camera_dlt(self._points_3d[inliers], self._points_2d[inliers])


class EPnPPointCorrespondencePinholeCameraRobustEstimator(
        _PointCorrespondenceCameraMixin, PinholeCameraRobustEstimator):
    """
    Pose-only estimation: the intrinsic matrix is fixed, so refinement
    optimizes [rvec, tvec] only.
    """

    MINIMUM_SIZE = 4
    DEFAULT_THRESHOLD = 1.0

    def __init__(
            self,
            points_3d: Optional[FloatArray] = None,
            points_2d: Optional[FloatArray] = None,
            *,
            intrinsic: Optional[Mat3x3] = None,
            method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
            quality_scores: Optional[FloatArray] = None,
            listener: Optional[RobustEstimatorListener] = None,
    ) -> None:
        self._init_points(points_3d, points_2d)
        self._intrinsic = None if intrinsic is None else self._validate_intrinsic(intrinsic)
        super().__init__(method=method, quality_scores=quality_scores, listener=listener)

    @staticmethod
    def _validate_intrinsic(intrinsic) -> Mat3x3:
        K = as_float_array(intrinsic, ndim=2, width=3, name="intrinsic")
        if K.shape != (3, 3) or abs(np.linalg.det(K)) <= 0.0:
            raise ValueError(f"intrinsic must be an invertible 3x3 matrix, got shape {K.shape}")
        return K / K[2, 2]

    @property
    def intrinsic(self) -> Optional[Mat3x3]:
        return self._intrinsic

    @intrinsic.setter
    def intrinsic(self, intrinsic: Mat3x3) -> None:
        self._check_not_locked()
        self._intrinsic = self._validate_intrinsic(intrinsic)

    def _has_required_inputs(self) -> bool:
        return self._intrinsic is not None

    def compute_models(self, sample: IntArray) -> List[Mat3x4]:
        P = fit_camera_epnp(self._points_3d[sample], self._points_2d[sample], self._intrinsic)
        return [] if P is None else [P]

    def refit(self, inliers: IntArray) -> Optional[Mat3x4]:
        return fit_camera_epnp(
            self._points_3d[inliers], self._points_2d[inliers], self._intrinsic, refine=True
        )

    def _model_to_params(self, model: Mat3x4) -> FloatArray:
        pose = camera_to_pose(model, self._intrinsic)
        if pose is None:
            raise ValueError("camera pose cannot be recovered")
        return np.concatenate(pose)

    def _params_to_model(self, params: FloatArray) -> Mat3x4:
        return pose_to_camera(self._intrinsic, params[:3], params[3:6])


class DLTLinePlaneCorrespondencePinholeCameraRobustEstimator(PinholeCameraRobustEstimator):
    MINIMUM_SIZE = 4
    DEFAULT_THRESHOLD = 1e-6
    DEFAULT_STOP_THRESHOLD = 1e-6

    def __init__(
            self,
            lines: Optional[FloatArray] = None,
            planes: Optional[FloatArray] = None,
            *,
            method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
            quality_scores: Optional[FloatArray] = None,
            listener: Optional[RobustEstimatorListener] = None,
    ) -> None:
        self._lines: Optional[FloatArray] = None
        self._planes: Optional[FloatArray] = None
        if lines is not None or planes is not None:
            self._lines, self._planes = self._validate_pair(lines, planes, (3, 4), ("lines", "planes"))
        super().__init__(method=method, quality_scores=quality_scores, listener=listener)

    @property
    def lines(self) -> Optional[FloatArray]:
        """Image lines [a, b, c], shape (N, 3)."""
        return self._lines

    @property
    def planes(self) -> Optional[FloatArray]:
        """World planes [a, b, c, d], shape (N, 4)."""
        return self._planes

    def set_lines_and_planes(self, lines: FloatArray, planes: FloatArray) -> None:
        self._check_not_locked()
        self._lines, self._planes = self._validate_pair(lines, planes, (3, 4), ("lines", "planes"))

    def _data_size(self) -> Optional[int]:
        return None if self._lines is None else self._lines.shape[0]

    def compute_models(self, sample: IntArray) -> List[Mat3x4]:
        P = fit_camera_line_plane_dlt(self._lines[sample], self._planes[sample])
        return [] if P is None else [P]

    def residuals(self, model: Mat3x4) -> FloatArray:
        return backprojection_residuals(model, self._lines, self._planes)

    def refit(self, inliers: IntArray) -> Optional[Mat3x4]:
        return fit_camera_line_plane_dlt(self._lines[inliers], self._planes[inliers])

    def _signed_residuals(self, model: Mat3x4, inliers: IntArray) -> FloatArray:
        return backprojection_errors(model, self._lines[inliers], self._planes[inliers]).ravel()
