"""
Error taxonomy of the robust estimators.

- ValueError (builtin): malformed configuration, raised at the setter or factory
- LockedError: a mutating call or a re-entrant estimate() while a run is active
- NotReadyError: estimate() invoked while required inputs are missing
- EstimationError: the consensus loop never found a suitable model
- RefinementError: internal to the refinement stage, never escapes estimate()
"""


class RobustEstimatorError(Exception):
    """Base class for every estimator failure."""


class LockedError(RobustEstimatorError):
    """The estimator is running and its configuration cannot change."""


class NotReadyError(RobustEstimatorError):
    """Data, quality scores or configuration are missing or inconsistent."""


class EstimationError(RobustEstimatorError):
    """No suitable model could be found from the provided data."""


class RefinementError(RobustEstimatorError):
    """Non-linear refinement did not converge or hit a singular system."""
