"""
Hartley normalization for the linear (DLT-style) solvers.

Points are translated so their centroid is the origin and scaled so their mean
distance to it is sqrt(D) (D = dimension). Solving in normalized coordinates
keeps the design matrices well conditioned.

    x_n = T @ [x, 1]^T

T is (D+1, D+1).
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from ..ransac.types import FloatArray, as_homogeneous


def normalization_transform(pts: FloatArray) -> Optional[FloatArray]:
    """
    Similarity T for (N, D) points. None if all points coincide.
    """
    d = pts.shape[1]
    centroid = pts.mean(axis=0)
    mean_dist = float(np.mean(np.linalg.norm(pts - centroid, axis=1)))
    if not np.isfinite(mean_dist) or mean_dist <= np.finfo(np.float64).eps:
        return None

    s = np.sqrt(d) / mean_dist
    T = np.eye(d + 1, dtype=np.float64)
    T[:d, :d] *= s
    T[:d, d] = -s * centroid
    return T


def normalize_points(pts: FloatArray) -> Optional[Tuple[FloatArray, FloatArray]]:
    """
    Return (normalized homogeneous points (N, D+1), T), or None if degenerate.
    """
    T = normalization_transform(pts)
    if T is None:
        return None
    return as_homogeneous(pts) @ T.T, T


def null_vector(A: FloatArray, rank: int, rel_tol: float = 1e-10) -> Optional[FloatArray]:
    """
    Right singular vector of the smallest singular value of A.

    rank is the rank A must have for a unique solution (number of unknowns - 1).
    Returns None when the (rank)-th singular value is numerically zero, meaning
    the solution space has more than one dimension (degenerate data).
    """
    _, s, Vt = np.linalg.svd(A)
    if s.shape[0] < rank or s[0] <= 0.0:
        return None
    if s[rank - 1] <= rel_tol * s[0]:
        return None
    return Vt[-1]


def normalize_rows(v: FloatArray) -> FloatArray:
    """Scale each row to unit norm (homogeneous lines / planes)."""
    norms = np.linalg.norm(v, axis=1, keepdims=True)
    with np.errstate(divide="ignore", invalid="ignore"):
        return v / norms


def dlt_rows(src: FloatArray, dst: FloatArray) -> FloatArray:
    """
    DLT design matrix of dst ~ H src for homogeneous (N, D+1) rows.

    Every correspondence gives D equations in the (D+1)^2 entries of H
    (row-major), one per coordinate i < D:

        w' (h_i . x) - x'_i (h_D . x) = 0
    """
    n, k = src.shape
    d = k - 1
    A = np.zeros((d * n, k * k), dtype=np.float64)
    for i in range(d):
        rows = A[i::d]
        rows[:, i * k:(i + 1) * k] = dst[:, d:d + 1] * src
        rows[:, d * k:(d + 1) * k] = -dst[:, i:i + 1] * src
    return A
