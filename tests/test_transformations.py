import numpy as np
import pytest

from georobust import (
    AffineTransformation2DRobustEstimator, AffineTransformation3DRobustEstimator, EstimationError,
    EuclideanTransformation2DRobustEstimator, EuclideanTransformation3DRobustEstimator,
    LineCorrespondenceAffineTransformation2DRobustEstimator, LineCorrespondenceProjectiveTransformation2DRobustEstimator,
    LockedError, MetricTransformation2DRobustEstimator, MetricTransformation3DRobustEstimator,
    PlaneCorrespondenceAffineTransformation3DRobustEstimator,
    PlaneCorrespondenceProjectiveTransformation3DRobustEstimator,
    PointCorrespondenceProjectiveTransformation2DRobustEstimator,
    PointCorrespondenceProjectiveTransformation3DRobustEstimator,
    ProjectiveTransformation2DRobustEstimator, ProjectiveTransformation3DRobustEstimator,
    RobustEstimatorListener, RobustEstimatorMethod,
)
from georobust.solvers.affine import apply_T
from georobust.solvers.camera import vector_to_rotation
from georobust.solvers.euclidean import make_euclidean

METHODS = list(RobustEstimatorMethod)

H_TRUE = np.array([
    [1.1, 0.05, 12.0],
    [-0.08, 0.95, -7.0],
    [2e-4, -1e-4, 1.0],
])


def _corrupt(rng, pts0, pts1, ratio, low=0.0, high=500.0):
    """Replace a fraction of the targets with random points; returns data, scores and inlier mask."""
    n = pts0.shape[0]
    outliers = rng.random(n) < ratio
    pts1 = pts1.copy()
    pts1[outliers] = rng.uniform(low, high, (int(outliers.sum()), pts1.shape[1]))
    scores = np.where(outliers, rng.uniform(0.0, 0.4, n), rng.uniform(0.6, 1.0, n))
    return pts1, scores, ~outliers


def _project(H, pts):
    ph = np.column_stack([pts, np.ones(pts.shape[0])]) @ H.T
    return ph[:, :2] / ph[:, 2:3]


def _same_homography(H, expected, tol):
    return np.allclose(H / H[2, 2], expected / expected[2, 2], atol=tol)


# ---------- Affine ----------
@pytest.mark.parametrize("method", METHODS)
def test_affine_2d(method, rng):
    T = np.array([[0.9, -0.2, 15.0], [0.3, 1.2, -4.0], [0.0, 0.0, 1.0]])
    pts0 = rng.uniform(0.0, 500.0, (150, 2))
    pts1, scores, mask = _corrupt(rng, pts0, apply_T(T, pts0), 0.3)

    estimator = AffineTransformation2DRobustEstimator.create(pts0, pts1, method=method, quality_scores=scores)
    estimated = estimator.estimate()

    assert estimated == pytest.approx(T, abs=1e-6)
    assert estimator.inliers_data.inliers[mask].all()
    assert estimator.residuals(estimated)[mask].max() < 1e-6


@pytest.mark.parametrize("method", METHODS)
def test_affine_3d(method, rng):
    T = np.eye(4)
    T[:3, :3] = [[1.0, 0.1, -0.2], [0.05, 0.9, 0.0], [0.0, -0.3, 1.1]]
    T[:3, 3] = [3.0, -1.0, 2.0]
    pts0 = rng.uniform(-50.0, 50.0, (120, 3))
    pts1, scores, mask = _corrupt(rng, pts0, apply_T(T, pts0), 0.2, -50.0, 50.0)

    estimator = AffineTransformation3DRobustEstimator(pts0, pts1, method=method, quality_scores=scores)
    estimated = estimator.estimate()

    assert estimated.shape == (4, 4)
    assert estimated == pytest.approx(T, abs=1e-6)
    assert estimator.inliers_data.inliers[mask].all()


def test_affine_with_minimal_data():
    pts0 = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
    pts1 = pts0 * 2.0 + 1.0
    estimator = AffineTransformation2DRobustEstimator(
        pts0, pts1, method=RobustEstimatorMethod.PROMEDS, quality_scores=np.ones(3),
    )
    estimator.max_iterations = 100

    T = estimator.estimate()

    assert T == pytest.approx(np.array([[2.0, 0.0, 1.0], [0.0, 2.0, 1.0], [0.0, 0.0, 1.0]]), abs=1e-9)
    assert estimator.inliers_data.num_inliers == 3


def test_affine_rejects_mismatched_lengths():
    with pytest.raises(ValueError):
        AffineTransformation2DRobustEstimator(np.zeros((5, 2)), np.zeros((4, 2)))


# ---------- Euclidean ----------
@pytest.mark.parametrize("method", METHODS)
def test_euclidean_2d(method, rng):
    T = make_euclidean(0.4, -20.0, 35.0)
    pts0 = rng.uniform(0.0, 500.0, (100, 2))
    pts1, scores, mask = _corrupt(rng, pts0, apply_T(T, pts0), 0.35)

    estimator = EuclideanTransformation2DRobustEstimator(pts0, pts1, method=method, quality_scores=scores)
    estimated = estimator.estimate()

    assert estimated == pytest.approx(T, abs=1e-6)
    R = estimated[:2, :2]
    assert R @ R.T == pytest.approx(np.eye(2), abs=1e-9)
    assert estimator.inliers_data.inliers[mask].all()


def test_euclidean_refinement_with_noise_keeps_rigidity(rng):
    T = make_euclidean(-1.1, 5.0, 2.0)
    pts0 = rng.uniform(0.0, 100.0, (80, 2))
    pts1 = apply_T(T, pts0) + rng.normal(0.0, 0.2, (80, 2))

    estimator = EuclideanTransformation2DRobustEstimator(pts0, pts1, method=RobustEstimatorMethod.MSAC)
    estimator.keep_covariance = True
    estimated = estimator.estimate()

    R = estimated[:2, :2]
    assert R @ R.T == pytest.approx(np.eye(2), abs=1e-9)
    assert estimated == pytest.approx(T, abs=0.2)
    assert estimator.covariance.shape == (3, 3)


# ---------- Projective ----------
@pytest.mark.parametrize("method", METHODS)
def test_point_homography(method, rng):
    pts0 = rng.uniform(0.0, 500.0, (200, 2))
    pts1, scores, mask = _corrupt(rng, pts0, _project(H_TRUE, pts0), 0.3, -100.0, 700.0)

    estimator = ProjectiveTransformation2DRobustEstimator.create_from_points(
        pts0, pts1, method=method, quality_scores=scores,
    )
    H = estimator.estimate()

    assert isinstance(estimator, PointCorrespondenceProjectiveTransformation2DRobustEstimator)
    assert np.linalg.norm(H) == pytest.approx(1.0)
    assert _same_homography(H, H_TRUE, 1e-6)
    assert estimator.residuals(H)[mask].max() < 1e-5
    assert estimator.inliers_data.inliers[mask].all()


@pytest.mark.parametrize("method", METHODS)
def test_line_homography(method, rng):
    n = 120
    lines0 = rng.normal(size=(n, 3))
    lines0[:, 2] *= 20.0
    lines1 = lines0 @ np.linalg.inv(H_TRUE)         # rows: (H^-T l0)^T
    outliers = rng.random(n) < 0.25
    lines1[outliers] = rng.normal(size=(int(outliers.sum()), 3))
    scores = np.where(outliers, 0.1, 0.9) + rng.uniform(0.0, 0.05, n)

    estimator = ProjectiveTransformation2DRobustEstimator.create_from_lines(
        lines0, lines1, method=method, quality_scores=scores,
    )
    H = estimator.estimate()

    assert isinstance(estimator, LineCorrespondenceProjectiveTransformation2DRobustEstimator)
    assert _same_homography(H, H_TRUE, 1e-6)
    assert estimator.inliers_data.inliers[~outliers].all()


def test_projective_create_defaults_to_points(rng):
    pts0 = rng.uniform(0.0, 100.0, (10, 2))
    estimator = ProjectiveTransformation2DRobustEstimator.create(pts0, _project(H_TRUE, pts0))
    assert isinstance(estimator, PointCorrespondenceProjectiveTransformation2DRobustEstimator)
    assert estimator.method is RobustEstimatorMethod.PROMEDS
    assert not estimator.is_ready

    estimator = LineCorrespondenceProjectiveTransformation2DRobustEstimator.create(
        method=RobustEstimatorMethod.RANSAC,
    )
    assert isinstance(estimator, LineCorrespondenceProjectiveTransformation2DRobustEstimator)


def test_homography_from_collinear_points_fails():
    x = np.linspace(0.0, 10.0, 8)
    pts0 = np.column_stack([x, 2.0 * x + 1.0])
    estimator = PointCorrespondenceProjectiveTransformation2DRobustEstimator(
        pts0, pts0.copy(), method=RobustEstimatorMethod.RANSAC,
    )
    estimator.max_iterations = 20
    with pytest.raises(EstimationError):
        estimator.estimate()


class _SwapPointsListener(RobustEstimatorListener):

    def __init__(self, pts):
        self.pts = pts
        self.raised = False

    def on_estimate_progress_change(self, estimator, progress):
        try:
            estimator.set_points(self.pts, self.pts)
        except LockedError:
            self.raised = True


def test_set_points_is_locked_during_estimation(rng):
    pts0 = rng.uniform(0.0, 100.0, (20, 2))
    listener = _SwapPointsListener(pts0)
    estimator = PointCorrespondenceProjectiveTransformation2DRobustEstimator(
        pts0, _project(H_TRUE, pts0), method=RobustEstimatorMethod.RANSAC, listener=listener,
    )

    estimator.estimate()

    assert listener.raised
    estimator.set_points(pts0, pts0)
    assert estimator.output_points is not None and np.array_equal(estimator.output_points, pts0)


# ---------- Euclidean 3D / metric ----------
def _similarity(dim, scale, rotation, translation):
    T = np.eye(dim + 1)
    R = make_euclidean(rotation, 0.0, 0.0)[:2, :2] if dim == 2 else vector_to_rotation(np.asarray(rotation))
    T[:dim, :dim] = scale * R
    T[:dim, dim] = translation
    return T


@pytest.mark.parametrize("method", METHODS)
def test_euclidean_3d(method, rng):
    T = _similarity(3, 1.0, [0.2, -0.4, 0.3], [5.0, -3.0, 12.0])
    pts0 = rng.uniform(-50.0, 50.0, (120, 3))
    pts1, scores, mask = _corrupt(rng, pts0, apply_T(T, pts0), 0.3, -50.0, 50.0)

    estimator = EuclideanTransformation3DRobustEstimator(pts0, pts1, method=method, quality_scores=scores)
    estimated = estimator.estimate()

    assert estimated.shape == (4, 4)
    assert estimated == pytest.approx(T, abs=1e-6)
    R = estimated[:3, :3]
    assert R @ R.T == pytest.approx(np.eye(3), abs=1e-9)
    assert np.linalg.det(R) == pytest.approx(1.0)
    assert estimator.inliers_data.inliers[mask].all()


@pytest.mark.parametrize("method", METHODS)
def test_metric_2d(method, rng):
    T = _similarity(2, 1.7, 0.8, [-20.0, 35.0])
    pts0 = rng.uniform(0.0, 500.0, (100, 2))
    pts1, scores, mask = _corrupt(rng, pts0, apply_T(T, pts0), 0.3)

    estimator = MetricTransformation2DRobustEstimator.create(pts0, pts1, method=method, quality_scores=scores)
    estimated = estimator.estimate()

    assert estimated == pytest.approx(T, abs=1e-6)
    assert estimator.inliers_data.inliers[mask].all()


@pytest.mark.parametrize("method", METHODS)
def test_metric_3d(method, rng):
    T = _similarity(3, 0.6, [-0.5, 0.1, 0.9], [1.0, 2.0, -4.0])
    pts0 = rng.uniform(-50.0, 50.0, (120, 3))
    pts1, scores, mask = _corrupt(rng, pts0, apply_T(T, pts0), 0.3, -50.0, 50.0)

    estimator = MetricTransformation3DRobustEstimator(pts0, pts1, method=method, quality_scores=scores)
    estimated = estimator.estimate()

    assert estimated == pytest.approx(T, abs=1e-6)
    assert estimator.inliers_data.inliers[mask].all()


def test_metric_refinement_keeps_a_similarity(rng):
    T = _similarity(3, 2.5, [0.3, 0.3, -0.2], [0.0, 1.0, 2.0])
    pts0 = rng.uniform(-10.0, 10.0, (80, 3))
    pts1 = apply_T(T, pts0) + rng.normal(0.0, 0.05, (80, 3))

    estimator = MetricTransformation3DRobustEstimator(pts0, pts1, method=RobustEstimatorMethod.MSAC)
    estimator.keep_covariance = True
    estimated = estimator.estimate()

    A = estimated[:3, :3]
    scale = np.cbrt(np.linalg.det(A))
    assert scale == pytest.approx(2.5, abs=0.05)
    assert A @ A.T == pytest.approx(scale ** 2 * np.eye(3), abs=1e-9)
    # rotation vector, scale and translation
    assert estimator.covariance.shape == (7, 7)


def test_euclidean_3d_rejects_collinear_points():
    t = np.linspace(0.0, 1.0, 10)[:, None]
    pts0 = t * np.array([[1.0, 2.0, 3.0]])
    estimator = EuclideanTransformation3DRobustEstimator(pts0, pts0.copy(), method=RobustEstimatorMethod.RANSAC)
    estimator.max_iterations = 20
    with pytest.raises(EstimationError):
        estimator.estimate()


# ---------- Affine from lines / planes ----------
@pytest.mark.parametrize("method", METHODS)
def test_line_affine_2d(method, rng):
    T = np.array([[0.9, -0.2, 15.0], [0.3, 1.2, -4.0], [0.0, 0.0, 1.0]])
    n = 120
    lines0 = rng.normal(size=(n, 3))
    lines1 = lines0 @ np.linalg.inv(T)              # rows: (T^-T l0)^T
    outliers = rng.random(n) < 0.25
    lines1[outliers] = rng.normal(size=(int(outliers.sum()), 3))
    scores = np.where(outliers, 0.1, 0.9) + rng.uniform(0.0, 0.05, n)

    estimator = LineCorrespondenceAffineTransformation2DRobustEstimator(
        lines0, lines1, method=method, quality_scores=scores,
    )
    estimated = estimator.estimate()

    assert estimated == pytest.approx(T, abs=1e-6)
    assert estimator.input_lines.shape == (n, 3)
    assert estimator.inliers_data.inliers[~outliers].all()


@pytest.mark.parametrize("method", METHODS)
def test_plane_affine_3d(method, rng):
    T = np.eye(4)
    T[:3, :3] = [[1.0, 0.1, -0.2], [0.05, 0.9, 0.0], [0.0, -0.3, 1.1]]
    T[:3, 3] = [3.0, -1.0, 2.0]
    n = 120
    planes0 = rng.normal(size=(n, 4))
    planes1 = planes0 @ np.linalg.inv(T)
    outliers = rng.random(n) < 0.25
    planes1[outliers] = rng.normal(size=(int(outliers.sum()), 4))
    scores = np.where(outliers, 0.1, 0.9) + rng.uniform(0.0, 0.05, n)

    estimator = PlaneCorrespondenceAffineTransformation3DRobustEstimator(
        planes0, planes1, method=method, quality_scores=scores,
    )
    estimated = estimator.estimate()

    assert estimated == pytest.approx(T, abs=1e-6)
    assert estimator.inliers_data.inliers[~outliers].all()


# ---------- Projective 3D ----------
H3_TRUE = np.array([
    [1.1, 0.05, -0.1, 2.0],
    [-0.08, 0.95, 0.02, -1.0],
    [0.03, -0.04, 1.05, 0.5],
    [1e-3, -2e-3, 1e-3, 1.0],
])


def _same_homography_3d(H, expected, tol):
    return np.allclose(H / H[3, 3], expected / expected[3, 3], atol=tol)


@pytest.mark.parametrize("method", METHODS)
def test_point_homography_3d(method, rng):
    pts0 = rng.uniform(-10.0, 10.0, (150, 3))
    pts1, scores, mask = _corrupt(rng, pts0, apply_T(H3_TRUE, pts0), 0.3, -20.0, 20.0)

    estimator = ProjectiveTransformation3DRobustEstimator.create(pts0, pts1, method=method, quality_scores=scores)
    H = estimator.estimate()

    assert isinstance(estimator, PointCorrespondenceProjectiveTransformation3DRobustEstimator)
    assert np.linalg.norm(H) == pytest.approx(1.0)
    assert _same_homography_3d(H, H3_TRUE, 1e-6)
    assert estimator.inliers_data.inliers[mask].all()


@pytest.mark.parametrize("method", METHODS)
def test_plane_homography_3d(method, rng):
    n = 150
    planes0 = rng.normal(size=(n, 4))
    planes1 = planes0 @ np.linalg.inv(H3_TRUE)
    outliers = rng.random(n) < 0.25
    planes1[outliers] = rng.normal(size=(int(outliers.sum()), 4))
    scores = np.where(outliers, 0.1, 0.9) + rng.uniform(0.0, 0.05, n)

    estimator = ProjectiveTransformation3DRobustEstimator.create_from_planes(
        planes0, planes1, method=method, quality_scores=scores,
    )
    H = estimator.estimate()

    assert isinstance(estimator, PlaneCorrespondenceProjectiveTransformation3DRobustEstimator)
    assert _same_homography_3d(H, H3_TRUE, 1e-6)
    assert estimator.inliers_data.inliers[~outliers].all()


# ---------- Default stop thresholds ----------
@pytest.mark.parametrize("estimator_class, expected", [
    (AffineTransformation2DRobustEstimator, 1.0),
    (AffineTransformation3DRobustEstimator, 1.0),
    (EuclideanTransformation2DRobustEstimator, 1.0),
    (EuclideanTransformation3DRobustEstimator, 1.0),
    (MetricTransformation2DRobustEstimator, 1.0),
    (MetricTransformation3DRobustEstimator, 1.0),
    (PointCorrespondenceProjectiveTransformation2DRobustEstimator, 1.0),
    (PointCorrespondenceProjectiveTransformation3DRobustEstimator, 1.0),
    (LineCorrespondenceAffineTransformation2DRobustEstimator, 1e-6),
    (PlaneCorrespondenceAffineTransformation3DRobustEstimator, 1e-6),
    (LineCorrespondenceProjectiveTransformation2DRobustEstimator, 1e-6),
    (PlaneCorrespondenceProjectiveTransformation3DRobustEstimator, 1e-6),
])
def test_default_stop_threshold_matches_residual_units(estimator_class, expected):
    assert estimator_class().stop_threshold == expected
