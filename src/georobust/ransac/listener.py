"""
Listener notified synchronously from inside estimate().

Subclass and override only the callbacks you need. Callbacks run on the
calling thread while the estimator is locked, so setters called from them
raise LockedError.
"""

from __future__ import annotations

from typing import Any


class RobustEstimatorListener:

    def on_estimate_start(self, estimator: Any) -> None:
        """Called once when estimate() starts, after the estimator is locked."""

    def on_estimate_end(self, estimator: Any) -> None:
        """Called once when estimate() succeeds, before the estimator is unlocked."""

    def on_estimate_next_iteration(self, estimator: Any, iteration: int) -> None:
        """Called after every iteration of the consensus loop (1-based)."""

    def on_estimate_progress_change(self, estimator: Any, progress: float) -> None:
        """Called when progress in [0, 1] advanced by at least progress_delta."""
