"""
Projective transformation (homography) estimation, 2D and 3D.

Point correspondences: x' ~ H x
Line / plane correspondences map with the inverse transpose,
                       h' ~ H^-T h,  equivalently h ~ H^T h'.

2D: each correspondence gives 2 linear equations in the 9 entries of H (up to
scale), so 4 correspondences in general position determine it.
3D: each correspondence gives 3 linear equations in the 16 entries of the 4x4
H, so 5 correspondences are needed.

Both use the DLT (SVD null vector) on normalized inputs. The least-squares 2D
point refit uses cv2.findHomography (method 0: all points, plain least squares).
"""

from __future__ import annotations

from typing import Optional

import cv2
import numpy as np

from ..ransac.types import FloatArray, Lines2D, Mat3x3, Mat4x4, Planes, Points2D, Points3D, as_homogeneous, is_valid_matrix
from .normalization import dlt_rows, normalize_points, normalize_rows, null_vector


# Area below which 3 of the 4 minimal points are treated as collinear.
_EPS_AREA = 1e-9


def normalize_homography(H: FloatArray) -> FloatArray:
    return H / np.linalg.norm(H)


def _is_invertible(H: FloatArray) -> bool:
    k = H.shape[0]
    return abs(np.linalg.det(H)) > np.finfo(np.float64).eps * np.linalg.norm(H) ** k


def _has_collinear_triplet(pts: Points2D, eps: float = _EPS_AREA) -> bool:
    n = pts.shape[0]
    for i in range(n):
        for j in range(i + 1, n):
            for k in range(j + 1, n):
                u = pts[j] - pts[i]
                v = pts[k] - pts[i]
                if abs(u[0] * v[1] - u[1] * v[0]) < eps:
                    return True
    return False


def _fit_point_homography(pts0: FloatArray, pts1: FloatArray) -> Optional[FloatArray]:
    """Normalized DLT for (N, D) point pairs; H = T1^-1 Hn T0."""
    n0 = normalize_points(pts0)
    n1 = normalize_points(pts1)
    if n0 is None or n1 is None:
        return None
    (ph0, T0), (ph1, T1) = n0, n1

    k = pts0.shape[1] + 1
    h = null_vector(dlt_rows(ph0, ph1), rank=k * k - 1)
    if h is None:
        return None

    H = np.linalg.inv(T1) @ h.reshape(k, k) @ T0
    if not is_valid_matrix(H, (k, k)) or not _is_invertible(H):
        return None
    return normalize_homography(H)


def _fit_hyperplane_homography(h0: FloatArray, h1: FloatArray) -> Optional[FloatArray]:
    """
    Homography H (for points) from line (D = 2) or plane (D = 3) pairs h0 <-> h1.

    Hyperplanes satisfy h0 ~ H^T h1, so the DLT is run on the swapped pair
    (h1 -> h0) to get G = H^T.
    """
    n0 = normalize_rows(h0)
    n1 = normalize_rows(h1)
    if not (np.isfinite(n0).all() and np.isfinite(n1).all()):
        return None

    k = h0.shape[1]
    g = null_vector(dlt_rows(n1, n0), rank=k * k - 1)
    if g is None:
        return None

    H = g.reshape(k, k).T
    if not is_valid_matrix(H, (k, k)) or not _is_invertible(H):
        return None
    return normalize_homography(H)


# ---------- 2D ----------
def fit_homography_dlt(pts0: Points2D, pts1: Points2D) -> Optional[Mat3x3]:
    """
    Normalized DLT for N >= 4 point correspondences.

    Returns:
      3x3 homography with unit Frobenius norm, or None if degenerate.
    """
    if pts0.shape != pts1.shape or pts0.ndim != 2 or pts0.shape[1] != 2 or pts0.shape[0] < 4:
        raise ValueError(f"Expected matching (N>=4, 2) inputs, got {pts0.shape} and {pts1.shape}")

    if pts0.shape[0] == 4 and (_has_collinear_triplet(pts0) or _has_collinear_triplet(pts1)):
        return None
    return _fit_point_homography(pts0, pts1)


def fit_homography_least_squares(pts0: Points2D, pts1: Points2D) -> Optional[Mat3x3]:
    """
    Refit from all inliers with OpenCV (method=0: least squares on every point).
    """
    if pts0.shape[0] < 4:
        return None
    H, _ = cv2.findHomography(
        pts0.astype(np.float64).reshape(-1, 1, 2),
        pts1.astype(np.float64).reshape(-1, 1, 2),
        0,
    )
    if H is None or not is_valid_matrix(H, (3, 3)):
        return None
    return normalize_homography(H)


def fit_line_homography(lines0: Lines2D, lines1: Lines2D) -> Optional[Mat3x3]:
    """
    Homography H (for points, x1 ~ H x0) from N >= 4 line correspondences l0 <-> l1.
    """
    if lines0.shape != lines1.shape or lines0.ndim != 2 or lines0.shape[1] != 3 or lines0.shape[0] < 4:
        raise ValueError(f"Expected matching (N>=4, 3) inputs, got {lines0.shape} and {lines1.shape}")
    return _fit_hyperplane_homography(lines0, lines1)


# ---------- 3D ----------
def fit_homography_3d(pts0: Points3D, pts1: Points3D) -> Optional[Mat4x4]:
    """
    Normalized DLT for N >= 5 3D point correspondences.
    Minimal samples with 4 coplanar points leave the null space larger than one
    dimension and are rejected.

    Returns:
      4x4 homography with unit Frobenius norm, or None if degenerate.
    """
    if pts0.shape != pts1.shape or pts0.ndim != 2 or pts0.shape[1] != 3 or pts0.shape[0] < 5:
        raise ValueError(f"Expected matching (N>=5, 3) inputs, got {pts0.shape} and {pts1.shape}")
    return _fit_point_homography(pts0, pts1)


def fit_plane_homography(planes0: Planes, planes1: Planes) -> Optional[Mat4x4]:
    """
    Homography H (for points, X1 ~ H X0) from N >= 5 plane correspondences.
    """
    if planes0.shape != planes1.shape or planes0.ndim != 2 or planes0.shape[1] != 4 or planes0.shape[0] < 5:
        raise ValueError(f"Expected matching (N>=5, 4) inputs, got {planes0.shape} and {planes1.shape}")
    return _fit_hyperplane_homography(planes0, planes1)


# ---------- Residuals ----------
def point_transfer_errors(H: Mat3x3, pts0: Points2D, pts1: Points2D) -> FloatArray:
    """Signed coordinate differences of H x0 vs x1, shape (N, 2)."""
    ph = as_homogeneous(pts0) @ H.T
    with np.errstate(divide="ignore", invalid="ignore"):
        projected = ph[:, :2] / ph[:, 2:3]
    return projected - pts1


def point_transfer_residuals(H: Mat3x3, pts0: Points2D, pts1: Points2D) -> FloatArray:
    return np.linalg.norm(point_transfer_errors(H, pts0, pts1), axis=1)


def hyperplane_transfer_errors(H: FloatArray, h0: FloatArray, h1: FloatArray) -> FloatArray:
    """
    Compare h0 with H^T h1 (lines with a 3x3 H, planes with a 4x4 H), both
    unit-normalized with a consistent sign. Returns (N, D+1) differences.
    """
    predicted = normalize_rows(h1 @ H)          # rows: (H^T h1)^T
    observed = normalize_rows(h0)
    sign = np.sign(np.sum(predicted * observed, axis=1, keepdims=True))
    sign[sign == 0] = 1.0
    return sign * predicted - observed


def hyperplane_transfer_residuals(H: FloatArray, h0: FloatArray, h1: FloatArray) -> FloatArray:
    """
    1 - |cos| of the angle between h0 and H^T h1 as homogeneous vectors.
    Zero when the lines / planes correspond exactly.
    """
    predicted = normalize_rows(h1 @ H)
    observed = normalize_rows(h0)
    return 1.0 - np.abs(np.sum(predicted * observed, axis=1))
