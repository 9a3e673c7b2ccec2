import numpy as np
import pytest

from georobust import (
    DLTLinePlaneCorrespondencePinholeCameraRobustEstimator, DLTPointCorrespondencePinholeCameraRobustEstimator,
    EPnPPointCorrespondencePinholeCameraRobustEstimator, LockedError, NotReadyError,
    PinholeCameraRobustEstimator, RobustEstimatorListener, RobustEstimatorMethod,
)
from georobust.solvers.camera import (
    decompose_camera, normalize_camera, pose_to_camera, rotation_angle_between, vector_to_rotation,
)

METHODS = list(RobustEstimatorMethod)

K_TRUE = np.array([[800.0, 0.0, 320.0], [0.0, 780.0, 240.0], [0.0, 0.0, 1.0]])
RVEC_TRUE = np.array([0.1, -0.2, 0.05])
TVEC_TRUE = np.array([0.2, -0.1, 10.0])
P_TRUE = pose_to_camera(K_TRUE, RVEC_TRUE, TVEC_TRUE)


def _project(P, X):
    ph = np.column_stack([X, np.ones(X.shape[0])]) @ P.T
    return ph[:, :2] / ph[:, 2:3]


def _point_data(rng, n=150, outlier_ratio=0.3, noise=0.0):
    X = rng.uniform(-2.0, 2.0, (n, 3))
    x = _project(P_TRUE, X)
    if noise > 0.0:
        x += rng.normal(0.0, noise, (n, 2))
    outliers = rng.random(n) < outlier_ratio
    x[outliers] = rng.uniform([0.0, 0.0], [640.0, 480.0], (int(outliers.sum()), 2))
    scores = np.where(outliers, rng.uniform(0.0, 0.4, n), rng.uniform(0.6, 1.0, n))
    return X, x, scores, ~outliers


def _same_camera(P, expected, tol):
    return np.allclose(normalize_camera(P), normalize_camera(expected), atol=tol)


# ---------- DLT from points ----------
@pytest.mark.parametrize("method", METHODS)
def test_dlt_camera(method, rng, listener):
    X, x, scores, mask = _point_data(rng)

    estimator = DLTPointCorrespondencePinholeCameraRobustEstimator(
        X, x, method=method, quality_scores=scores, listener=listener,
    )
    P = estimator.estimate()

    assert P.shape == (3, 4)
    assert _same_camera(P, P_TRUE, 1e-6)
    assert estimator.residuals(P)[mask].max() < 1e-5
    assert estimator.inliers_data.inliers[mask].all()
    assert listener.starts == listener.ends == 1

    K, R, C = decompose_camera(P)
    assert K == pytest.approx(K_TRUE, abs=1e-4)
    assert rotation_angle_between(R, vector_to_rotation(RVEC_TRUE)) < 1e-7


def test_dlt_camera_with_minimal_data(rng):
    X, x, _, _ = _point_data(rng, n=6, outlier_ratio=0.0)
    estimator = DLTPointCorrespondencePinholeCameraRobustEstimator(X, x, method=RobustEstimatorMethod.RANSAC)
    P = estimator.estimate()
    assert estimator.residuals(P).max() < 1e-6
    assert estimator.inliers_data.num_inliers == 6


def test_dlt_camera_keeps_covariance(rng):
    X, x, _, _ = _point_data(rng, outlier_ratio=0.1, noise=0.5)
    estimator = DLTPointCorrespondencePinholeCameraRobustEstimator(X, x, method=RobustEstimatorMethod.MSAC)
    estimator.threshold = 3.0
    estimator.keep_covariance = True

    estimator.estimate()

    cov = estimator.covariance
    assert cov is not None and cov.shape == (11, 11)
    assert np.allclose(cov, cov.T)


# ---------- EPnP ----------
@pytest.mark.parametrize("method", METHODS)
def test_epnp_camera(method, rng):
    X, x, scores, mask = _point_data(rng)

    estimator = PinholeCameraRobustEstimator.create_from_points(
        X, x, intrinsic=2.0 * K_TRUE, method=method, quality_scores=scores,
    )
    P = estimator.estimate()

    assert isinstance(estimator, EPnPPointCorrespondencePinholeCameraRobustEstimator)
    assert estimator.intrinsic == pytest.approx(K_TRUE)
    assert _same_camera(P, P_TRUE, 1e-5)
    assert estimator.residuals(P)[mask].max() < 1e-4
    assert estimator.inliers_data.inliers[mask].all()


def test_epnp_needs_intrinsic(rng):
    X, x, _, _ = _point_data(rng, outlier_ratio=0.0)
    estimator = EPnPPointCorrespondencePinholeCameraRobustEstimator(X, x, method=RobustEstimatorMethod.RANSAC)
    assert not estimator.is_ready
    with pytest.raises(NotReadyError):
        estimator.estimate()

    estimator.intrinsic = K_TRUE
    assert estimator.is_ready
    assert _same_camera(estimator.estimate(), P_TRUE, 1e-5)


def test_epnp_rejects_singular_intrinsic():
    with pytest.raises(ValueError):
        EPnPPointCorrespondencePinholeCameraRobustEstimator(intrinsic=np.zeros((3, 3)))


# ---------- Lines and planes ----------
@pytest.mark.parametrize("method", METHODS)
def test_line_plane_camera(method, rng):
    K = np.array([[2.0, 0.0, 0.1], [0.0, 2.1, -0.05], [0.0, 0.0, 1.0]])
    P = pose_to_camera(K, np.array([-0.3, 0.2, 0.1]), np.array([0.1, 0.3, 4.0]))

    n = 100
    lines = rng.normal(size=(n, 3))
    planes = lines @ P                                  # rows: (P^T l)^T
    outliers = rng.random(n) < 0.25
    planes[outliers] = rng.normal(size=(int(outliers.sum()), 4))
    scores = np.where(outliers, 0.2, 0.8) + rng.uniform(0.0, 0.1, n)

    estimator = PinholeCameraRobustEstimator.create_from_lines_and_planes(
        lines, planes, method=method, quality_scores=scores,
    )
    estimated = estimator.estimate()

    assert isinstance(estimator, DLTLinePlaneCorrespondencePinholeCameraRobustEstimator)
    assert _same_camera(estimated, P, 1e-6)
    assert estimator.inliers_data.inliers[~outliers].all()


# ---------- Factories ----------
def test_create_defaults_to_point_dlt(rng):
    X, x, scores, _ = _point_data(rng)
    estimator = PinholeCameraRobustEstimator.create(X, x, quality_scores=scores)
    assert isinstance(estimator, DLTPointCorrespondencePinholeCameraRobustEstimator)
    assert estimator.method is RobustEstimatorMethod.PROMEDS
    assert estimator.is_ready

    estimator = EPnPPointCorrespondencePinholeCameraRobustEstimator.create(
        X, x, intrinsic=K_TRUE, method=RobustEstimatorMethod.LMEDS,
    )
    assert isinstance(estimator, EPnPPointCorrespondencePinholeCameraRobustEstimator)
    assert estimator.is_ready


# ---------- Suggestions ----------
def _noisy_estimators(rng):
    X, x, _, _ = _point_data(rng, n=120, outlier_ratio=0.2, noise=1.0)

    def make():
        estimator = DLTPointCorrespondencePinholeCameraRobustEstimator(X, x, method=RobustEstimatorMethod.RANSAC)
        estimator.threshold = 3.0
        estimator.seed = 42
        return estimator

    return make


def test_rotation_suggestion_pulls_rotation_towards_value(rng):
    make = _noisy_estimators(rng)
    R_true = vector_to_rotation(RVEC_TRUE)

    plain = make()
    _, R_plain, _ = decompose_camera(plain.estimate())

    suggested = make()
    suggested.rotation_suggestion_enabled = True
    suggested.suggested_rotation_value = R_true
    assert suggested.is_suggestion_enabled
    _, R_suggested, _ = decompose_camera(suggested.estimate())

    assert np.array_equal(plain.inliers_data.inliers, suggested.inliers_data.inliers)
    assert rotation_angle_between(R_suggested, R_true) <= rotation_angle_between(R_plain, R_true) + 1e-9


def test_skewness_suggestion_reduces_skew(rng):
    make = _noisy_estimators(rng)

    plain = make()
    K_plain, _, _ = decompose_camera(plain.estimate())

    suggested = make()
    suggested.skewness_value_suggestion_enabled = True
    K_suggested, _, _ = decompose_camera(suggested.estimate())

    assert abs(K_suggested[0, 1]) <= abs(K_plain[0, 1]) + 1e-9


def test_suggestion_flags_and_validation():
    estimator = DLTPointCorrespondencePinholeCameraRobustEstimator()
    assert not estimator.is_suggestion_enabled
    assert estimator.suggested_skewness_value == 0.0
    assert estimator.suggested_aspect_ratio_value == 1.0

    # Enabled without a value: nothing to pull towards
    estimator.rotation_suggestion_enabled = True
    assert not estimator.is_suggestion_enabled

    estimator.center_suggestion_enabled = True
    estimator.suggested_center_value = [0.0, 0.0, -10.0]
    assert estimator.is_suggestion_enabled
    assert estimator.suggested_center_value.shape == (3,)

    with pytest.raises(ValueError):
        estimator.suggestion_weight = 0.0
    with pytest.raises(ValueError):
        estimator.suggested_rotation_value = np.diag([1.0, 1.0, -1.0])
    with pytest.raises(ValueError):
        estimator.suggested_principal_point_value = [1.0, 2.0, 3.0]
    with pytest.raises(ValueError):
        estimator.suggested_aspect_ratio_value = -1.0


class _SuggestionListener(RobustEstimatorListener):

    def __init__(self):
        self.raised = 0

    def on_estimate_start(self, estimator):
        for name, value in (("suggestion_weight", 5.0), ("skewness_value_suggestion_enabled", True)):
            try:
                setattr(estimator, name, value)
            except LockedError:
                self.raised += 1


def test_suggestions_are_locked_during_estimation(rng):
    X, x, _, _ = _point_data(rng, outlier_ratio=0.0)
    listener = _SuggestionListener()
    estimator = DLTPointCorrespondencePinholeCameraRobustEstimator(
        X, x, method=RobustEstimatorMethod.RANSAC, listener=listener,
    )

    estimator.estimate()

    assert listener.raised == 2
    assert not estimator.skewness_value_suggestion_enabled
