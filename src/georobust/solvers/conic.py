"""
Conic fitting (3x3 symmetric form).

A point x = [x, y, 1]^T lies on the conic C when x^T C x = 0, with

    C = [[a,   b/2, d/2],
         [b/2, c,   e/2],
         [d/2, e/2, f  ]]

i.e.  a*x^2 + b*x*y + c*y^2 + d*x + e*y + f = 0.

Unknowns: theta = [a, b, c, d, e, f] up to scale, 5 degrees of freedom.
Each point gives one linear equation, so 5 points in general position
determine the conic (SVD null vector of the 5x6 design matrix).

Points are Hartley-normalized before building the design matrix, and the
result is mapped back with C = T^T C_n T.

Dual conics C* hold the tangent lines instead: l^T C* l = 0. The same
design matrix built on unit-norm lines gives C* from 5 lines.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..ransac.types import FloatArray, Mat3x3, Points2D, as_homogeneous, is_valid_matrix
from .normalization import normalize_points, normalize_rows, null_vector


def theta_to_conic(theta: FloatArray) -> Mat3x3:
    a, b, c, d, e, f = map(float, theta.tolist())
    return np.array(
        [
            [a, b / 2.0, d / 2.0],
            [b / 2.0, c, e / 2.0],
            [d / 2.0, e / 2.0, f],
        ],
        dtype=np.float64,
    )


def conic_to_theta(C: Mat3x3) -> FloatArray:
    return np.array(
        [C[0, 0], 2.0 * C[0, 1], C[1, 1], 2.0 * C[0, 2], 2.0 * C[1, 2], C[2, 2]],
        dtype=np.float64,
    )


def normalize_conic(C: Mat3x3) -> Mat3x3:
    """Scale to unit Frobenius norm. Conics are defined up to scale."""
    return C / np.linalg.norm(C)


def _design_matrix(ph: FloatArray) -> FloatArray:
    x, y, w = ph[:, 0], ph[:, 1], ph[:, 2]
    return np.column_stack([x * x, x * y, y * y, x * w, y * w, w * w])


def fit_conic(pts: Points2D) -> Optional[Mat3x3]:
    """
    Fit a conic to N >= 5 points (exact for 5, algebraic least squares above).

    Returns:
      3x3 symmetric conic with unit Frobenius norm, or None if degenerate
      (e.g. too many collinear or repeated points).
    """
    if pts.ndim != 2 or pts.shape[1] != 2 or pts.shape[0] < 5:
        raise ValueError(f"Expected points shape (N>=5, 2), got {pts.shape}")

    normalized = normalize_points(pts)
    if normalized is None:
        return None
    ph, T = normalized

    theta = null_vector(_design_matrix(ph), rank=5)
    if theta is None:
        return None

    C = T.T @ theta_to_conic(theta) @ T
    C = normalize_conic(0.5 * (C + C.T))
    if not is_valid_matrix(C, (3, 3)):
        return None
    return C


def conic_algebraic_residuals(C: Mat3x3, pts: Points2D) -> FloatArray:
    """
    Signed algebraic residual x^T C x with ||C||_F = 1 and ||x|| = 1, so the
    value does not depend on the scale of either.
    """
    ph = as_homogeneous(pts)
    ph /= np.linalg.norm(ph, axis=1, keepdims=True)
    Cn = normalize_conic(C)
    return np.einsum("ij,jk,ik->i", ph, Cn, ph)


# ---------- Dual conics ----------
def fit_dual_conic(lines: FloatArray) -> Optional[Mat3x3]:
    """
    Fit a dual conic to N >= 5 tangent lines [a, b, c].

    Returns:
      3x3 symmetric dual conic with unit Frobenius norm, or None if degenerate.
    """
    if lines.ndim != 2 or lines.shape[1] != 3 or lines.shape[0] < 5:
        raise ValueError(f"Expected lines shape (N>=5, 3), got {lines.shape}")

    unit = normalize_rows(lines)
    if not np.isfinite(unit).all():
        return None

    theta = null_vector(_design_matrix(unit), rank=5)
    if theta is None:
        return None

    C = normalize_conic(theta_to_conic(theta))
    if not is_valid_matrix(C, (3, 3)):
        return None
    return C


def dual_conic_algebraic_residuals(C: Mat3x3, lines: FloatArray) -> FloatArray:
    """Signed l^T C* l with ||C*||_F = 1 and ||l|| = 1."""
    unit = normalize_rows(lines)
    return np.einsum("ij,jk,ik->i", unit, normalize_conic(C), unit)
