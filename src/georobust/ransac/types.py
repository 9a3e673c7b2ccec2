"""
Shared typed primitives for the robust estimation framework.

Defines:
- Typed NumPy aliases for data, masks and index sets
- The robust method enum (RANSAC, LMedS, MSAC, PROSAC, PROMedS)
- Generic sample-consensus model protocol consumed by the consensus loop
- Structured inliers container (membership + residuals + threshold)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import List, Optional, Protocol, TypeAlias, TypeVar

import numpy as np
import numpy.typing as npt

# ---------- Numpy typing aliases ----------
# - float64 for geometry / residuals (more stable for linear algebra)
# - bool_ for masks
# - intp for sample / inlier indices

FloatArray: TypeAlias = npt.NDArray[np.float64]
BoolArray: TypeAlias = npt.NDArray[np.bool_]
IntArray: TypeAlias = npt.NDArray[np.intp]

# Boolean inlier mask: True as inlier, False as outlier
Mask: TypeAlias = BoolArray           # shape: (N,)

# Points in 2D / 3D inhomogeneous coordinates.
Points2D: TypeAlias = FloatArray      # shape: (N, 2)
Points3D: TypeAlias = FloatArray      # shape: (N, 3)

# Homogeneous 2D lines [a, b, c] (a*x + b*y + c = 0) and planes [a, b, c, d].
Lines2D: TypeAlias = FloatArray       # shape: (N, 3)
Planes: TypeAlias = FloatArray        # shape: (N, 4)

# Homogeneous transforms / cameras.
Mat3x3: TypeAlias = FloatArray        # shape: (3, 3)
Mat4x4: TypeAlias = FloatArray        # shape: (4, 4)
Mat3x4: TypeAlias = FloatArray        # shape: (3, 4)

M = TypeVar("M")


# ---------- Robust methods ----------
class RobustEstimatorMethod(enum.Enum):
    """
    The five interchangeable consensus algorithms.

    - RANSAC: fixed threshold, score = inlier count
    - LMEDS: no threshold, score = median of squared residuals
    - MSAC: fixed threshold, score = sum of residuals capped at the threshold
    - PROSAC: RANSAC scoring + progressive sampling driven by quality scores
    - PROMEDS: LMedS scoring + progressive sampling driven by quality scores
    """
    RANSAC = "ransac"
    LMEDS = "lmeds"
    MSAC = "msac"
    PROSAC = "prosac"
    PROMEDS = "promeds"

    @property
    def uses_quality_scores(self) -> bool:
        return self in (RobustEstimatorMethod.PROSAC, RobustEstimatorMethod.PROMEDS)

    @property
    def uses_threshold(self) -> bool:
        return self in (
            RobustEstimatorMethod.RANSAC,
            RobustEstimatorMethod.MSAC,
            RobustEstimatorMethod.PROSAC,
        )

    @property
    def uses_median(self) -> bool:
        return self in (RobustEstimatorMethod.LMEDS, RobustEstimatorMethod.PROMEDS)


# Method picked by every factory when none is given.
DEFAULT_ROBUST_METHOD = RobustEstimatorMethod.PROMEDS


# ---------- Generic model typing ----------
class SampleConsensusModel(Protocol[M]):
    """
    Interface a dataset + solver pair must implement to be usable by the
    generic consensus loop.

    Consensus steps:
    1) Fit zero or more candidate models from a minimal sample of indices
    2) Score all data with a per-datum residual
    3) Refit a better model from all inliers (least squares)
    """

    def minimal_sample_size(self) -> int:
        """Smallest number of data that determines a model."""
        ...

    def total_samples(self) -> int:
        """Number of data (correspondences) available."""
        ...

    def compute_models(self, sample: IntArray) -> List[M]:
        """
        Fit from exactly minimal_sample_size() indices.
        Return an empty list if the sample is degenerate (e.g. collinear points).
        Some solvers yield more than one candidate.
        """
        ...

    def residuals(self, model: M) -> FloatArray:
        """
        Return one non-negative residual per datum. Shape: (N,). Smaller = better.
        """
        ...

    def is_suitable(self, model: M) -> bool:
        """Reject numerically broken candidates (NaN, infinite values)."""
        ...

    def refit(self, inliers: IntArray) -> Optional[M]:
        """
        Refit the model using all given indices.
        Return None if the set is degenerate or the solve fails.
        """
        ...


# ---------- Consensus output container ----------
# frozen=True means "immutable" after construction
@dataclass(frozen=True)
class InliersData:
    inliers: Mask           # boolean mask of inliers under the winning model
    residuals: FloatArray   # residual of every datum under the winning model
    num_inliers: int        # count of True values in inliers
    threshold: float        # configured threshold, or robust threshold estimated from the data
    iterations: int         # how many iterations were actually run
    method: RobustEstimatorMethod

    @property
    def inlier_indices(self) -> IntArray:
        return np.flatnonzero(self.inliers)


# ---------- Helper Functions ----------
def as_homogeneous(pts: FloatArray) -> FloatArray:
    """
    Convert (N,D) points -> (N,D+1) homogeneous points: [x, y, ..., 1].
    """
    if pts.ndim != 2:
        raise ValueError(f"Expected points shape (N, D) but got {pts.shape}")

    # Create a column filled with 1 for the homogeneous coordinate.
    ones = np.ones((pts.shape[0], 1), dtype=np.float64)
    return np.hstack([pts.astype(np.float64), ones])


def from_homogeneous(pts: FloatArray) -> FloatArray:
    """
    Convert (N,D+1) homogeneous points back to (N,D) by dividing by the last
    coordinate. Points at infinity become inf/nan.
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        return pts[:, :-1] / pts[:, -1:]


def is_valid_matrix(T: FloatArray, shape: tuple[int, ...]) -> bool:
    """
    Verify a transform / model matrix. Used for rejecting failed fits.
    """
    return isinstance(T, np.ndarray) and T.shape == shape and bool(np.isfinite(T).all())


def as_float_array(values, *, ndim: int, width: Optional[int] = None, name: str = "data") -> FloatArray:
    """
    Validate and convert user input to a float64 array of the expected shape.
    Raises ValueError on malformed input.
    """
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim != ndim:
        raise ValueError(f"{name} must have {ndim} dimension(s), got shape {arr.shape}")
    if width is not None and arr.shape[1] != width:
        raise ValueError(f"{name} must have shape (N, {width}), got {arr.shape}")
    if not np.isfinite(arr).all():
        raise ValueError(f"{name} contains non-finite values")
    return arr
