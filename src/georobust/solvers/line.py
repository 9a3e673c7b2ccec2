"""
Line fitting (2D and 3D) and plane fitting by total least squares.

For centered points X = P - centroid, the SVD X = U S V^T gives:
- 2D line: normal n = last right singular vector, line [n_x, n_y, -n . centroid]
- 3D line: direction d = first right singular vector, line (centroid, d)
- plane:   normal n = last right singular vector, plane [n, -n . centroid]

This minimizes the sum of squared orthogonal distances. Two distinct points
(three non-collinear points for a plane) are the minimal sets.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..ransac.types import FloatArray, Points2D, Points3D


# Spread (largest singular value) below which points are treated as coincident.
_EPS_SPREAD = 1e-12

# Relative singular value below which points are treated as collinear (planes).
_EPS_RANK = 1e-10


def _centered_svd(pts: FloatArray):
    centroid = pts.mean(axis=0)
    _, s, Vt = np.linalg.svd(pts - centroid, full_matrices=True)
    return centroid, s, Vt


# ---------- 2D lines ----------
def fit_line_2d(pts: Points2D) -> Optional[FloatArray]:
    """
    Fit a 2D line a*x + b*y + c = 0 to N >= 2 points.

    Returns:
      (3,) line with a^2 + b^2 = 1, or None if all points coincide.
    """
    if pts.ndim != 2 or pts.shape[1] != 2 or pts.shape[0] < 2:
        raise ValueError(f"Expected points shape (N>=2, 2), got {pts.shape}")

    centroid, s, Vt = _centered_svd(pts)
    if s[0] <= _EPS_SPREAD:
        return None

    n = Vt[-1]
    return np.array([n[0], n[1], -float(n @ centroid)], dtype=np.float64)


def point_line_2d_distances(line: FloatArray, pts: Points2D) -> FloatArray:
    """Signed orthogonal distance of each point to the line."""
    norm = float(np.hypot(line[0], line[1]))
    return (pts @ line[:2] + line[2]) / norm


def line_to_angle_distance(line: FloatArray) -> FloatArray:
    """
    Normal form of a line: x*cos(theta) + y*sin(theta) - rho = 0.
    Returns [theta, rho].
    """
    norm = float(np.hypot(line[0], line[1]))
    a, b, c = line / norm
    return np.array([np.arctan2(b, a), -c], dtype=np.float64)


def angle_distance_to_line(params: FloatArray) -> FloatArray:
    theta, rho = float(params[0]), float(params[1])
    return np.array([np.cos(theta), np.sin(theta), -rho], dtype=np.float64)


# ---------- 3D lines ----------
def fit_line_3d(pts: Points3D) -> Optional[FloatArray]:
    """
    Fit a 3D line to N >= 2 points.

    Returns:
      (2,3) array [point on line (centroid), unit direction], or None if all
      points coincide.
    """
    if pts.ndim != 2 or pts.shape[1] != 3 or pts.shape[0] < 2:
        raise ValueError(f"Expected points shape (N>=2, 3), got {pts.shape}")

    centroid, s, Vt = _centered_svd(pts)
    if s[0] <= _EPS_SPREAD:
        return None
    return np.vstack([centroid, Vt[0]]).astype(np.float64)


def point_line_3d_offsets(line: FloatArray, pts: Points3D) -> FloatArray:
    """
    Orthogonal offset vectors from the line to each point. Shape (N, 3).

        v_i = (p_i - c) - ((p_i - c) . d) d
    """
    c = line[0]
    d = line[1] / np.linalg.norm(line[1])
    rel = pts - c
    return rel - np.outer(rel @ d, d)


def point_line_3d_distances(line: FloatArray, pts: Points3D) -> FloatArray:
    return np.linalg.norm(point_line_3d_offsets(line, pts), axis=1)


# ---------- Planes ----------
def fit_plane(pts: Points3D) -> Optional[FloatArray]:
    """
    Fit a plane a*x + b*y + c*z + d = 0 to N >= 3 points.

    Returns:
      (4,) plane with unit normal, or None if the points are collinear.
    """
    if pts.ndim != 2 or pts.shape[1] != 3 or pts.shape[0] < 3:
        raise ValueError(f"Expected points shape (N>=3, 3), got {pts.shape}")

    centroid, s, Vt = _centered_svd(pts)
    if s[0] <= _EPS_SPREAD or s[1] <= _EPS_RANK * s[0]:
        return None

    n = Vt[-1]
    return np.array([n[0], n[1], n[2], -float(n @ centroid)], dtype=np.float64)


def point_plane_distances(plane: FloatArray, pts: Points3D) -> FloatArray:
    """Signed orthogonal distance of each point to the plane."""
    norm = float(np.linalg.norm(plane[:3]))
    return (pts @ plane[:3] + plane[3]) / norm
