"""
Affine model utilities (homogeneous form), 2D and 3D.

2D: we estimate an affine transform T such that

    [x', y', 1]^T  ≈  T @ [x, y, 1]^T

where:

    T = [[a, b, tx],
         [c, d, ty],
         [0, 0,  1]]

Unknowns are 6 parameters: a, b, tx, c, d, ty.

3D: same idea with a 4x4 matrix, 12 parameters (3x3 linear part + translation).

Lines (2D) and planes (3D) map with the inverse transpose, h1 ~ T^-T h0, so
they also determine T: 3 line pairs or 4 plane pairs.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..ransac.types import FloatArray, Mat3x3, Mat4x4, as_homogeneous, from_homogeneous, is_valid_matrix
from .normalization import dlt_rows, normalize_rows, null_vector


# ---------- Degeneracy Check Helpers ----------
def _triangle_area(p1: np.ndarray, p2: np.ndarray, p3: np.ndarray) -> float:
    """
    Return 2x the triangle area formed by (p1, p2, p3).
    Compute the magnitude of the 2D cross product:

        area2 = |(p2 - p1) x (p3 - p1)|

    If area2 is near 0, the three points are collinear (degenerate for affine minimal fit).
    """
    u = p2 - p1
    v = p3 - p1
    return float(abs(u[0] * v[1] - u[1] * v[0]))


def _tetrahedron_volume(p: np.ndarray) -> float:
    """6x the volume of the tetrahedron (p0, p1, p2, p3). Near 0 means coplanar."""
    return float(abs(np.linalg.det(p[1:4] - p[0])))


# ---------- Parametrization ----------
def theta_to_affine(theta: np.ndarray, dim: int = 2) -> FloatArray:
    """
    Convert a parameter vector into a (dim+1)x(dim+1) affine matrix.
    theta holds the first dim rows of the matrix, row-major:
      2D: [a, b, tx, c, d, ty]
    """
    T = np.eye(dim + 1, dtype=np.float64)
    T[:dim, :] = np.asarray(theta, dtype=np.float64).reshape(dim, dim + 1)
    return T


def affine_to_theta(T: FloatArray) -> FloatArray:
    dim = T.shape[0] - 1
    return T[:dim, :].ravel().astype(np.float64)


# ---------- Affine Fitting ----------
def _solve_affine(pts0: FloatArray, pts1: FloatArray) -> Optional[FloatArray]:
    """
    Least squares for every output coordinate at once:

        [x, 1] @ T[:dim, :]^T = x'

    Each correspondence gives dim equations; the linear system for one output
    coordinate is (N, dim+1) and must have full column rank.
    """
    dim = pts0.shape[1]
    A = as_homogeneous(pts0)                      # (N, dim+1)
    try:
        # rank: how many independent constraints we actually have
        sol, _, rank, _ = np.linalg.lstsq(A, pts1.astype(np.float64), rcond=None)
    except np.linalg.LinAlgError:
        return None

    # Points all on a line (2D) or a plane (3D) cannot see the full linear part
    if rank < dim + 1:
        return None

    T = np.eye(dim + 1, dtype=np.float64)
    T[:dim, :] = sol.T
    if not is_valid_matrix(T, (dim + 1, dim + 1)):
        return None
    return T


def fit_affine_minimal(pts0: FloatArray, pts1: FloatArray, eps_area: float = 1e-6) -> Optional[Mat3x3]:
    """
    Fit a 2D affine transform from exactly 3 point correspondences.

    pts0: (3,2) source points
    pts1: (3,2) target points

    Returns:
      3x3 affine matrix, or None if degenerate / solve fails.
    """
    if pts0.shape != (3, 2) or pts1.shape != (3, 2):
        raise ValueError(f"fit_affine_minimal expects (3,2) inputs, got {pts0.shape} and {pts1.shape}")

    # If a triplet is collinear, the affine solve is not uniquely determined.
    if _triangle_area(*pts0) < eps_area or _triangle_area(*pts1) < eps_area:
        return None
    return _solve_affine(pts0, pts1)


def fit_affine_3d_minimal(pts0: FloatArray, pts1: FloatArray, eps_volume: float = 1e-9) -> Optional[Mat4x4]:
    """
    Fit a 3D affine transform from exactly 4 point correspondences.
    Coplanar quadruplets are degenerate.
    """
    if pts0.shape != (4, 3) or pts1.shape != (4, 3):
        raise ValueError(f"fit_affine_3d_minimal expects (4,3) inputs, got {pts0.shape} and {pts1.shape}")

    if _tetrahedron_volume(pts0) < eps_volume:
        return None
    return _solve_affine(pts0, pts1)


def fit_affine_least_squares(pts0: FloatArray, pts1: FloatArray) -> Optional[FloatArray]:
    """
    Fit an affine transform (2D or 3D) from N >= dim+1 correspondences using
    least squares. Used after consensus picks inliers: refit with all of them.
    """
    if pts0.shape != pts1.shape:
        raise ValueError(f"pts0 and pts1 must have same shape, got {pts0.shape} vs {pts1.shape}")
    if pts0.ndim != 2 or pts0.shape[1] not in (2, 3):
        raise ValueError(f"Expected pts shape (N,2) or (N,3), got {pts0.shape}")
    if pts0.shape[0] < pts0.shape[1] + 1:
        return None
    return _solve_affine(pts0, pts1)


def fit_affine_from_hyperplanes(h0: FloatArray, h1: FloatArray) -> Optional[FloatArray]:
    """
    Affine transform T (for points, x1 = T x0) from line pairs ((N,3), 2D) or
    plane pairs ((N,4), 3D).

    Hyperplanes satisfy h0 ~ T^T h1. G = T^T has a zero last column apart from
    its corner, so the DLT on (h1 -> h0) keeps only the (D+1)^2 - D unknown
    entries of G:

        2D: N >= 3 lines (2 equations each, 6 unknowns)
        3D: N >= 4 planes (3 equations each, 12 unknowns)

    Returns:
      (D+1)x(D+1) affine matrix, or None if degenerate (e.g. concurrent lines).
    """
    if h0.shape != h1.shape or h0.ndim != 2 or h0.shape[1] not in (3, 4):
        raise ValueError(f"Expected matching (N,3) or (N,4) inputs, got {h0.shape} and {h1.shape}")
    k = h0.shape[1]
    dim = k - 1
    if h0.shape[0] < k:
        raise ValueError(f"Expected at least {k} correspondences, got {h0.shape[0]}")

    n0 = normalize_rows(h0)
    n1 = normalize_rows(h1)
    if not (np.isfinite(n0).all() and np.isfinite(n1).all()):
        return None

    # Entries G[r, dim] (r < dim) are zero for an affine transform
    fixed = [r * k + dim for r in range(dim)]
    keep = np.setdiff1d(np.arange(k * k), fixed)
    g = null_vector(dlt_rows(n1, n0)[:, keep], rank=keep.shape[0] - 1)
    if g is None:
        return None

    G = np.zeros(k * k, dtype=np.float64)
    G[keep] = g
    T = G.reshape(k, k).T
    if abs(T[dim, dim]) <= np.finfo(np.float64).eps:
        return None
    T = T / T[dim, dim]

    if not is_valid_matrix(T, (k, k)) or abs(np.linalg.det(T[:dim, :dim])) <= np.finfo(np.float64).eps:
        return None
    return T


# ---------- Apply transform + residuals ----------
def apply_T(T: FloatArray, pts: FloatArray) -> FloatArray:
    """
    Apply a (D+1)x(D+1) transform to (N,D) points, returning (N,D) points.

    For affine the last homogeneous coordinate stays 1; for homographies the
    result is divided by it.
    """
    dim = T.shape[0] - 1
    if pts.ndim != 2 or pts.shape[1] != dim:
        raise ValueError(f"Expected pts shape (N,{dim}), got {pts.shape}")

    # Each point is a row, so multiply by T^T to get the transformed homogeneous point
    ph_t = as_homogeneous(pts) @ T.T
    return from_homogeneous(ph_t)


def residuals_L2(T: FloatArray, pts0: FloatArray, pts1: FloatArray) -> FloatArray:
    """
    Per-point L2 residuals:

        e_i = || apply_T(T, pts0[i]) - pts1[i] ||_2

    Returns shape (N,)
    """
    if pts0.shape != pts1.shape:
        raise ValueError(f"pts0 and pts1 must have same shape, got {pts0.shape} vs {pts1.shape}")
    diff = apply_T(T, pts0) - pts1.astype(np.float64)
    return np.linalg.norm(diff, axis=1)


def transfer_errors(T: FloatArray, pts0: FloatArray, pts1: FloatArray) -> FloatArray:
    """Signed coordinate differences apply_T(T, pts0) - pts1, flattened (N*D,)."""
    return (apply_T(T, pts0) - pts1).ravel()
