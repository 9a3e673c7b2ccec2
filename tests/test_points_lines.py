import numpy as np
import pytest

from georobust import (
    EstimationError, Line2DRobustEstimator, Line3DRobustEstimator, PlaneRobustEstimator, Point2DRobustEstimator,
    Point3DRobustEstimator, RobustEstimatorMethod,
)
from georobust.solvers.line import point_line_3d_distances, point_plane_distances

METHODS = list(RobustEstimatorMethod)


def _scores(rng, n_in, n_out):
    return np.concatenate([rng.uniform(0.7, 1.0, n_in), rng.uniform(0.0, 0.4, n_out)])


def _shuffle(rng, data, scores, n_in):
    """Shuffle data and scores together, returning the inlier mask."""
    perm = rng.permutation(data.shape[0])
    mask = np.zeros(data.shape[0], dtype=bool)
    mask[:n_in] = True
    return data[perm], scores[perm], mask[perm]


# ---------- Points ----------
def _lines_through(rng, point, n):
    angles = rng.uniform(0.0, np.pi, n)
    normals = np.column_stack([np.cos(angles), np.sin(angles)])
    scale = rng.uniform(0.5, 3.0, (n, 1))
    return np.column_stack([normals, -(normals @ point)]) * scale


@pytest.mark.parametrize("method", METHODS)
@pytest.mark.parametrize("outlier_ratio", [0.0, 0.3])
def test_point_2d_from_lines(method, outlier_ratio, rng, listener):
    point = np.array([2.0, -3.0])
    n = 100
    n_out = int(n * outlier_ratio)
    lines = np.vstack([_lines_through(rng, point, n - n_out), rng.normal(0.0, 5.0, (n_out, 3))])
    lines, scores, mask = _shuffle(rng, lines, _scores(rng, n - n_out, n_out), n - n_out)

    estimator = Point2DRobustEstimator.create(lines, method=method, quality_scores=scores, listener=listener)
    estimator.stop_threshold = 1e-9
    estimated = estimator.estimate()

    assert estimated == pytest.approx(point, abs=1e-6)
    assert estimator.inliers_data.inliers[mask].all()
    assert estimator.inliers_data.num_inliers >= n - n_out
    assert listener.starts == listener.ends == 1


@pytest.mark.parametrize("method", METHODS)
def test_point_3d_from_planes(method, rng):
    point = np.array([1.0, -2.0, 0.5])
    n_in, n_out = 60, 20
    normals = rng.normal(size=(n_in, 3))
    normals /= np.linalg.norm(normals, axis=1, keepdims=True)
    planes = np.column_stack([normals, -(normals @ point)])
    planes = np.vstack([planes, rng.normal(0.0, 3.0, (n_out, 4))])
    planes, scores, mask = _shuffle(rng, planes, _scores(rng, n_in, n_out), n_in)

    estimator = Point3DRobustEstimator(planes, method=method, quality_scores=scores)
    estimator.stop_threshold = 1e-9
    estimated = estimator.estimate()

    assert estimated == pytest.approx(point, abs=1e-6)
    assert estimator.inliers_data.inliers[mask].all()


def test_point_from_parallel_lines_fails():
    lines = np.array([[1.0, 0.0, -float(k)] for k in range(10)])
    estimator = Point2DRobustEstimator(lines, method=RobustEstimatorMethod.RANSAC)
    estimator.max_iterations = 50
    with pytest.raises(EstimationError):
        estimator.estimate()


# ---------- Lines ----------
@pytest.mark.parametrize("method", METHODS)
@pytest.mark.parametrize("outlier_ratio", [0.0, 0.25])
def test_line_2d(method, outlier_ratio, rng):
    n = 100
    n_out = int(n * outlier_ratio)
    x = rng.uniform(-20.0, 20.0, n - n_out)
    inliers = np.column_stack([x, -0.75 * x + 4.0])
    points = np.vstack([inliers, rng.uniform(-20.0, 20.0, (n_out, 2))])
    points, scores, mask = _shuffle(rng, points, _scores(rng, n - n_out, n_out), n - n_out)

    estimator = Line2DRobustEstimator(points, method=method, quality_scores=scores)
    estimator.stop_threshold = 1e-9
    line = estimator.estimate()

    assert np.hypot(line[0], line[1]) == pytest.approx(1.0)
    assert estimator.residuals(line)[mask].max() < 1e-6
    # Same line as 0.75 x + y - 4 = 0 up to sign
    expected = np.array([0.75, 1.0, -4.0]) / 1.25
    assert abs(float(line @ expected)) == pytest.approx(float(expected @ expected))


@pytest.mark.parametrize("method", METHODS)
def test_line_3d(method, rng):
    origin = np.array([1.0, 2.0, 3.0])
    direction = np.array([1.0, -2.0, 0.5])
    direction /= np.linalg.norm(direction)
    n_in, n_out = 70, 30
    t = rng.uniform(-10.0, 10.0, n_in)
    points = np.vstack([origin + np.outer(t, direction), rng.uniform(-10.0, 10.0, (n_out, 3))])
    points, scores, mask = _shuffle(rng, points, _scores(rng, n_in, n_out), n_in)

    estimator = Line3DRobustEstimator(points, method=method, quality_scores=scores)
    estimator.stop_threshold = 1e-9
    line = estimator.estimate()

    assert line.shape == (2, 3)
    assert np.linalg.norm(line[1]) == pytest.approx(1.0)
    assert abs(float(line[1] @ direction)) == pytest.approx(1.0)
    assert point_line_3d_distances(line, origin[None, :])[0] < 1e-6
    assert estimator.inliers_data.inliers[mask].all()


@pytest.mark.parametrize("method", METHODS)
def test_plane(method, rng):
    normal = np.array([0.2, -0.4, 0.9])
    normal /= np.linalg.norm(normal)
    offset = -1.5
    n_in, n_out = 80, 20

    # Two in-plane directions
    u = np.cross(normal, [1.0, 0.0, 0.0])
    u /= np.linalg.norm(u)
    v = np.cross(normal, u)
    coeffs = rng.uniform(-5.0, 5.0, (n_in, 2))
    inliers = -offset * normal + coeffs[:, :1] * u + coeffs[:, 1:] * v

    points = np.vstack([inliers, rng.uniform(-5.0, 5.0, (n_out, 3))])
    points, scores, mask = _shuffle(rng, points, _scores(rng, n_in, n_out), n_in)

    estimator = PlaneRobustEstimator(points, method=method, quality_scores=scores)
    estimator.stop_threshold = 1e-9
    plane = estimator.estimate()

    assert np.linalg.norm(plane[:3]) == pytest.approx(1.0)
    assert abs(float(plane[:3] @ normal)) == pytest.approx(1.0)
    assert np.abs(point_plane_distances(plane, inliers)).max() < 1e-6
    assert estimator.inliers_data.inliers[mask].all()


def test_plane_with_minimal_points():
    points = np.array([[0.0, 0.0, 1.0], [1.0, 0.0, 1.0], [0.0, 1.0, 1.0]])
    estimator = PlaneRobustEstimator(points, method=RobustEstimatorMethod.PROSAC, quality_scores=np.ones(3))
    estimator.max_iterations = 100

    plane = estimator.estimate()

    assert np.abs(point_plane_distances(plane, points)).max() < 1e-9
    assert estimator.inliers_data.num_inliers == 3
