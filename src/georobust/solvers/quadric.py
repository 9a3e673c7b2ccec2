"""
Quadric (4x4 symmetric form) and sphere fitting.

A point X = [x, y, z, 1]^T lies on the quadric Q when X^T Q X = 0:

    a*x^2 + b*y^2 + c*z^2 + d*x*y + e*x*z + f*y*z + g*x + h*y + i*z + j = 0

    Q = [[a,   d/2, e/2, g/2],
         [d/2, b,   f/2, h/2],
         [e/2, f/2, c,   i/2],
         [g/2, h/2, i/2, j  ]]

10 unknowns up to scale: 9 points in general position determine the quadric.

Spheres are the special case ||X - c||^2 = r^2, linear in (D, E, F, G):

    x^2 + y^2 + z^2 + D*x + E*y + F*z + G = 0
    c = -[D, E, F] / 2,  r^2 = ||c||^2 - G

so 4 non-coplanar points determine a sphere.

Dual quadrics Q* hold the tangent planes: pi^T Q* pi = 0, fitted from 9
unit-norm planes with the same design matrix.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..ransac.types import FloatArray, Mat4x4, Points3D, as_homogeneous, is_valid_matrix
from .normalization import normalize_points, normalize_rows, null_vector


# ---------- Quadrics ----------
def theta_to_quadric(theta: FloatArray) -> Mat4x4:
    a, b, c, d, e, f, g, h, i, j = map(float, theta.tolist())
    return np.array(
        [
            [a, d / 2.0, e / 2.0, g / 2.0],
            [d / 2.0, b, f / 2.0, h / 2.0],
            [e / 2.0, f / 2.0, c, i / 2.0],
            [g / 2.0, h / 2.0, i / 2.0, j],
        ],
        dtype=np.float64,
    )


def quadric_to_theta(Q: Mat4x4) -> FloatArray:
    return np.array(
        [
            Q[0, 0], Q[1, 1], Q[2, 2],
            2.0 * Q[0, 1], 2.0 * Q[0, 2], 2.0 * Q[1, 2],
            2.0 * Q[0, 3], 2.0 * Q[1, 3], 2.0 * Q[2, 3],
            Q[3, 3],
        ],
        dtype=np.float64,
    )


def normalize_quadric(Q: Mat4x4) -> Mat4x4:
    return Q / np.linalg.norm(Q)


def _design_matrix(ph: FloatArray) -> FloatArray:
    x, y, z, w = ph[:, 0], ph[:, 1], ph[:, 2], ph[:, 3]
    return np.column_stack([
        x * x, y * y, z * z,
        x * y, x * z, y * z,
        x * w, y * w, z * w,
        w * w,
    ])


def fit_quadric(pts: Points3D) -> Optional[Mat4x4]:
    """
    Fit a quadric to N >= 9 points (exact for 9, algebraic least squares above).

    Returns:
      4x4 symmetric quadric with unit Frobenius norm, or None if degenerate.
    """
    if pts.ndim != 2 or pts.shape[1] != 3 or pts.shape[0] < 9:
        raise ValueError(f"Expected points shape (N>=9, 3), got {pts.shape}")

    normalized = normalize_points(pts)
    if normalized is None:
        return None
    ph, T = normalized

    theta = null_vector(_design_matrix(ph), rank=9)
    if theta is None:
        return None

    Q = T.T @ theta_to_quadric(theta) @ T
    Q = normalize_quadric(0.5 * (Q + Q.T))
    if not is_valid_matrix(Q, (4, 4)):
        return None
    return Q


def quadric_algebraic_residuals(Q: Mat4x4, pts: Points3D) -> FloatArray:
    """Signed algebraic residual X^T Q X with ||Q||_F = 1 and ||X|| = 1."""
    ph = as_homogeneous(pts)
    ph /= np.linalg.norm(ph, axis=1, keepdims=True)
    Qn = normalize_quadric(Q)
    return np.einsum("ij,jk,ik->i", ph, Qn, ph)


# ---------- Spheres ----------
def fit_sphere(pts: Points3D, rel_tol: float = 1e-10) -> Optional[FloatArray]:
    """
    Fit a sphere to N >= 4 points by linear least squares.

    Returns:
      (4,) array [cx, cy, cz, r], or None if the points are coplanar
      (or otherwise do not define a sphere).
    """
    if pts.ndim != 2 or pts.shape[1] != 3 or pts.shape[0] < 4:
        raise ValueError(f"Expected points shape (N>=4, 3), got {pts.shape}")

    # Solve around the centroid for conditioning.
    centroid = pts.mean(axis=0)
    rel = pts - centroid
    A = np.column_stack([rel, np.ones(rel.shape[0])])
    b = -np.sum(rel * rel, axis=1)

    sol, _, rank, s = np.linalg.lstsq(A, b, rcond=None)
    if rank < 4 or s[-1] <= rel_tol * s[0]:
        return None

    c_rel = -0.5 * sol[:3]
    r2 = float(c_rel @ c_rel - sol[3])
    if not np.isfinite(r2) or r2 <= 0.0:
        return None

    return np.array([*(c_rel + centroid), np.sqrt(r2)], dtype=np.float64)


def sphere_signed_distances(sphere: FloatArray, pts: Points3D) -> FloatArray:
    """||p - c|| - r for every point."""
    return np.linalg.norm(pts - sphere[:3], axis=1) - sphere[3]


def sphere_to_quadric(sphere: FloatArray) -> Mat4x4:
    """Quadric of a sphere: diag(1, 1, 1) block, -c column, ||c||^2 - r^2 corner."""
    c = sphere[:3]
    Q = np.eye(4, dtype=np.float64)
    Q[:3, 3] = -c
    Q[3, :3] = -c
    Q[3, 3] = float(c @ c) - float(sphere[3]) ** 2
    return normalize_quadric(Q)


def is_valid_sphere(sphere: FloatArray) -> bool:
    return is_valid_matrix(sphere, (4,)) and float(sphere[3]) > 0.0


# ---------- Dual quadrics ----------
def fit_dual_quadric(planes: FloatArray) -> Optional[Mat4x4]:
    """
    Fit a dual quadric Q* (pi^T Q* pi = 0 for every tangent plane pi) to
    N >= 9 planes [a, b, c, d].

    Returns:
      4x4 symmetric dual quadric with unit Frobenius norm, or None if degenerate.
    """
    if planes.ndim != 2 or planes.shape[1] != 4 or planes.shape[0] < 9:
        raise ValueError(f"Expected planes shape (N>=9, 4), got {planes.shape}")

    unit = normalize_rows(planes)
    if not np.isfinite(unit).all():
        return None

    theta = null_vector(_design_matrix(unit), rank=9)
    if theta is None:
        return None

    Q = normalize_quadric(theta_to_quadric(theta))
    if not is_valid_matrix(Q, (4, 4)):
        return None
    return Q


def dual_quadric_algebraic_residuals(Q: Mat4x4, planes: FloatArray) -> FloatArray:
    """Signed pi^T Q* pi with ||Q*||_F = 1 and ||pi|| = 1."""
    unit = normalize_rows(planes)
    return np.einsum("ij,jk,ik->i", unit, normalize_quadric(Q), unit)
