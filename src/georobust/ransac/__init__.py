"""
Robust estimation framework

This package provides:
- Typed numpy aliases, the robust method enum and the model Protocol
- Uniform and progressive (PROSAC) samplers
- Per-method scoring policies (RANSAC, LMedS, MSAC, PROSAC, PROMedS)
- The generic consensus loop
- The estimator lifecycle base class (lock, listener, configuration, refinement)
"""

from .types import (
    FloatArray, BoolArray, IntArray, Mask, Points2D, Points3D, Lines2D, Planes,
    Mat3x3, Mat4x4, Mat3x4, SampleConsensusModel, InliersData,
    RobustEstimatorMethod, DEFAULT_ROBUST_METHOD,
    as_homogeneous, from_homogeneous, is_valid_matrix, as_float_array,
)

from .errors import (
    RobustEstimatorError, LockedError, NotReadyError, EstimationError, RefinementError,
)

from .listener import RobustEstimatorListener

from .sampling import (
    PROSAC_BETA, PROSAC_PSI, UniformSampler, ProgressiveSampler, required_iterations,
)

from .scoring import (
    STD_CONSTANT, DEFAULT_INLIER_FACTOR, Hypothesis, ThresholdScoring, TruncatedScoring,
    MedianScoring, make_scoring_policy,
)

from .core import ConsensusSettings, ConsensusResult, consensus

from .estimator import (
    DEFAULT_CONFIDENCE, DEFAULT_MAX_ITERATIONS, DEFAULT_PROGRESS_DELTA, DEFAULT_STOP_THRESHOLD,
    DEFAULT_SEED, DEFAULT_REFINE_RESULT, DEFAULT_KEEP_COVARIANCE, DEFAULT_USE_FAST_REFINEMENT,
    RobustEstimator,
)

__all__ = [
    "FloatArray", "BoolArray", "IntArray", "Mask", "Points2D", "Points3D", "Lines2D", "Planes",
    "Mat3x3", "Mat4x4", "Mat3x4", "SampleConsensusModel", "InliersData",
    "RobustEstimatorMethod", "DEFAULT_ROBUST_METHOD",
    "as_homogeneous", "from_homogeneous", "is_valid_matrix", "as_float_array",
    "RobustEstimatorError", "LockedError", "NotReadyError", "EstimationError", "RefinementError",
    "RobustEstimatorListener",
    "PROSAC_BETA", "PROSAC_PSI", "UniformSampler", "ProgressiveSampler", "required_iterations",
    "STD_CONSTANT", "DEFAULT_INLIER_FACTOR", "Hypothesis", "ThresholdScoring", "TruncatedScoring",
    "MedianScoring", "make_scoring_policy",
    "ConsensusSettings", "ConsensusResult", "consensus",
    "DEFAULT_CONFIDENCE", "DEFAULT_MAX_ITERATIONS", "DEFAULT_PROGRESS_DELTA", "DEFAULT_STOP_THRESHOLD",
    "DEFAULT_SEED", "DEFAULT_REFINE_RESULT", "DEFAULT_KEEP_COVARIANCE", "DEFAULT_USE_FAST_REFINEMENT",
    "RobustEstimator",
]
