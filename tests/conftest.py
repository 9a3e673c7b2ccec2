import numpy as np
import pytest

from georobust import RobustEstimatorListener


class RecordingListener(RobustEstimatorListener):
    """Records every callback and the lock state seen from inside them."""

    def __init__(self):
        self.starts = 0
        self.ends = 0
        self.iterations = []
        self.progress = []
        self.locked_in_callbacks = []

    def on_estimate_start(self, estimator):
        self.starts += 1
        self.locked_in_callbacks.append(estimator.is_locked)

    def on_estimate_end(self, estimator):
        self.ends += 1
        self.locked_in_callbacks.append(estimator.is_locked)

    def on_estimate_next_iteration(self, estimator, iteration):
        self.iterations.append(iteration)

    def on_estimate_progress_change(self, estimator, progress):
        self.progress.append(progress)
        self.locked_in_callbacks.append(estimator.is_locked)


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
