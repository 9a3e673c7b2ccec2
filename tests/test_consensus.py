import numpy as np
import pytest

from georobust.ransac.core import ConsensusSettings, consensus
from georobust.ransac.errors import EstimationError
from georobust.ransac.types import RobustEstimatorMethod


class OffsetModel:
    """1D location model: the model is a single value, residual |x - value|."""

    def __init__(self, values, fail_refit=False, degenerate=False, singular=False):
        self.values = np.asarray(values, dtype=np.float64)
        self.fail_refit = fail_refit
        self.degenerate = degenerate
        self.singular = singular

    def minimal_sample_size(self):
        return 1

    def total_samples(self):
        return self.values.shape[0]

    def compute_models(self, sample):
        if self.singular:
            raise np.linalg.LinAlgError("singular")
        if self.degenerate:
            return []
        return [float(self.values[sample[0]])]

    def residuals(self, model):
        return np.abs(self.values - model)

    def is_suitable(self, model):
        return np.isfinite(model)

    def refit(self, inliers):
        if self.fail_refit:
            return None
        return float(np.mean(self.values[inliers]))


def _values():
    rng = np.random.default_rng(7)
    inliers = 5.0 + rng.normal(0.0, 0.01, 60)
    outliers = rng.uniform(-50.0, 50.0, 20)
    return np.concatenate([inliers, outliers])


@pytest.mark.parametrize("method", list(RobustEstimatorMethod))
def test_consensus_finds_dominant_cluster(method):
    values = _values()
    scores = np.concatenate([np.ones(60), np.full(20, 0.1)])
    settings = ConsensusSettings(method=method, threshold=0.1, stop_threshold=1e-3)

    result = consensus(OffsetModel(values), settings, quality_scores=scores)

    assert result.model == pytest.approx(5.0, abs=0.01)
    data = result.inliers_data
    assert data.method is method
    assert data.inliers[:60].sum() >= 55
    assert not data.inliers[60:].any() or data.inliers[60:].sum() <= 1
    assert data.num_inliers == int(data.inliers.sum())
    assert data.residuals.shape == (80,)


def test_iteration_and_progress_callbacks():
    iterations, progress = [], []
    settings = ConsensusSettings(method=RobustEstimatorMethod.RANSAC, threshold=0.1, max_iterations=200)

    result = consensus(
        OffsetModel(_values()), settings,
        on_iteration=iterations.append, on_progress=progress.append,
    )

    assert iterations == list(range(1, result.inliers_data.iterations + 1))
    assert progress[-1] == 1.0
    assert progress == sorted(progress)
    assert all(0.0 < p <= 1.0 for p in progress)


def test_fixed_seed_is_reproducible():
    settings = ConsensusSettings(method=RobustEstimatorMethod.MSAC, threshold=0.1, seed=11)
    a = consensus(OffsetModel(_values()), settings)
    b = consensus(OffsetModel(_values()), settings)
    assert a.inliers_data.num_inliers == b.inliers_data.num_inliers
    assert np.array_equal(a.inliers_data.inliers, b.inliers_data.inliers)
    assert a.model == b.model


def test_refit_failure_keeps_best_minimal_model():
    settings = ConsensusSettings(method=RobustEstimatorMethod.RANSAC, threshold=0.1)
    result = consensus(OffsetModel(_values(), fail_refit=True), settings)
    assert result.model == result.best_model


@pytest.mark.parametrize("flag", ["degenerate", "singular"])
def test_no_model_raises_estimation_error(flag):
    settings = ConsensusSettings(method=RobustEstimatorMethod.RANSAC, max_iterations=25)
    with pytest.raises(EstimationError):
        consensus(OffsetModel(_values(), **{flag: True}), settings)


def test_too_few_samples_raises_estimation_error():
    settings = ConsensusSettings(method=RobustEstimatorMethod.RANSAC)
    with pytest.raises(EstimationError):
        consensus(OffsetModel([]), settings)


def test_progressive_methods_need_quality_scores():
    settings = ConsensusSettings(method=RobustEstimatorMethod.PROSAC)
    with pytest.raises(EstimationError):
        consensus(OffsetModel(_values()), settings)


def test_lmeds_stops_early_on_exact_data():
    values = np.full(30, 2.0)
    settings = ConsensusSettings(method=RobustEstimatorMethod.LMEDS, stop_threshold=1e-3)
    result = consensus(OffsetModel(values), settings)
    assert result.inliers_data.iterations == 1
    assert result.inliers_data.num_inliers == 30
