"""
Euclidean (rigid) 2D motion model: rotation + translation.
The general section below also covers 3D and similarities (metric
transformations: rotation, uniform scale and translation).

Assume every point moves rigidly:
    pts1 ≈ R(theta) @ pts0 + t

This model has 3 degrees of freedom:
    theta (rotation angle)
    tx, ty (translation)

Two distinct correspondences determine it. The least squares solution over
N correspondences is the 2D Procrustes / Kabsch alignment of the centered
point sets.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..ransac.types import FloatArray, Mat3x3, Points2D
from .camera import rotation_to_vector, vector_to_rotation


def make_euclidean(theta: float, tx: float, ty: float) -> Mat3x3:
    """
    Construct the 3x3 homogeneous matrix of a rotation by theta followed by a
    translation:

        [ cos  -sin  tx ]
        [ sin   cos  ty ]
        [  0     0    1 ]
    """
    c, s = np.cos(theta), np.sin(theta)
    T = np.eye(3, dtype=np.float64)
    T[:2, :2] = [[c, -s], [s, c]]
    T[0, 2] = tx
    T[1, 2] = ty
    return T


def euclidean_to_params(T: Mat3x3) -> FloatArray:
    """[theta, tx, ty] of a rigid 3x3 matrix."""
    return np.array([np.arctan2(T[1, 0], T[0, 0]), T[0, 2], T[1, 2]], dtype=np.float64)


def params_to_euclidean(params: FloatArray) -> Mat3x3:
    return make_euclidean(float(params[0]), float(params[1]), float(params[2]))


def fit_euclidean_least_squares(pts0: Points2D, pts1: Points2D, eps: float = 1e-12) -> Optional[Mat3x3]:
    """
    Least-squares rigid motion from N >= 2 correspondences.

    With centered sets X = pts0 - mean0, Y = pts1 - mean1:
        H = X^T Y,  theta = atan2(H01 - H10, H00 + H11)
        t = mean1 - R mean0

    Returns None if all source points coincide (rotation unobservable).
    """
    if pts0.shape != pts1.shape or pts0.ndim != 2 or pts0.shape[1] != 2:
        raise ValueError(f"Expected matching (N,2) inputs, got {pts0.shape} and {pts1.shape}")
    if pts0.shape[0] < 2:
        return None

    mean0 = pts0.mean(axis=0)
    mean1 = pts1.mean(axis=0)
    X = pts0 - mean0
    Y = pts1 - mean1
    if float(np.sum(X * X)) <= eps:
        return None

    H = X.T @ Y
    theta = float(np.arctan2(H[0, 1] - H[1, 0], H[0, 0] + H[1, 1]))
    T = make_euclidean(theta, 0.0, 0.0)
    t = mean1 - T[:2, :2] @ mean0
    T[:2, 2] = t
    return T


def fit_euclidean_minimal(pts0: Points2D, pts1: Points2D) -> Optional[Mat3x3]:
    """
    Minimal sample estimator: 2 correspondences.

    Parameters:
    - pts0 : (2,2)
    - pts1 : (2,2)
    """
    if pts0.shape != (2, 2) or pts1.shape != (2, 2):
        raise ValueError(f"fit_euclidean_minimal expects (2,2) inputs, got {pts0.shape} and {pts1.shape}")
    return fit_euclidean_least_squares(pts0, pts1)


# ---------- Rigid / similarity, 2D and 3D ----------
def fit_similarity(pts0: FloatArray, pts1: FloatArray, *, with_scale: bool, rel_tol: float = 1e-10) -> Optional[FloatArray]:
    """
    Least-squares pts1 ≈ s R pts0 + t for (N, D) points, D in (2, 3)
    (Umeyama, 1991). with_scale=False keeps s = 1 (rigid motion).

    With centered sets X, Y and  U S V^T = svd(Y^T X / N):
        R = U diag(1, .., det(U V^T)) V^T
        s = trace(S diag(..)) / var(X)
        t = mean1 - s R mean0

    Returns:
      (D+1)x(D+1) matrix, or None when the source points do not fix the rotation
      (all coincide, or all on one line in 3D).
    """
    if pts0.shape != pts1.shape or pts0.ndim != 2 or pts0.shape[1] not in (2, 3):
        raise ValueError(f"Expected matching (N,2) or (N,3) inputs, got {pts0.shape} and {pts1.shape}")
    n, dim = pts0.shape
    if n < 2:
        return None

    mean0 = pts0.mean(axis=0)
    mean1 = pts1.mean(axis=0)
    X = pts0 - mean0
    Y = pts1 - mean1

    spread = np.linalg.svd(X, compute_uv=False)
    if spread[0] <= np.finfo(np.float64).eps or spread[dim - 2] <= rel_tol * spread[0]:
        return None

    U, S, Vt = np.linalg.svd(Y.T @ X / n)
    d = np.ones(dim, dtype=np.float64)
    if np.linalg.det(U) * np.linalg.det(Vt) < 0.0:
        d[-1] = -1.0
    R = U @ np.diag(d) @ Vt

    s = 1.0
    if with_scale:
        s = float(S @ d) / (float(np.sum(X * X)) / n)
        if not np.isfinite(s) or s <= 0.0:
            return None

    T = np.eye(dim + 1, dtype=np.float64)
    T[:dim, :dim] = s * R
    T[:dim, dim] = mean1 - s * R @ mean0
    return T


def _rotation_size(dim: int) -> int:
    return 1 if dim == 2 else 3


def similarity_to_params(T: FloatArray, *, with_scale: bool) -> FloatArray:
    """
    Refinement parameters of a rigid / similarity matrix:
      2D: [theta, (s), tx, ty]    3D: [rx, ry, rz, (s), tx, ty, tz] (Rodrigues)
    """
    dim = T.shape[0] - 1
    A = T[:dim, :dim]
    s = abs(float(np.linalg.det(A))) ** (1.0 / dim)
    R = A / s
    if dim == 2:
        rotation = np.array([np.arctan2(R[1, 0], R[0, 0])])
    else:
        rotation = rotation_to_vector(R)
    scale = [s] if with_scale else []
    return np.concatenate([rotation, scale, T[:dim, dim]]).astype(np.float64)


def params_to_similarity(params: FloatArray, dim: int, *, with_scale: bool) -> FloatArray:
    r = _rotation_size(dim)
    if dim == 2:
        R = make_euclidean(float(params[0]), 0.0, 0.0)[:2, :2]
    else:
        R = vector_to_rotation(params[:3])
    s = float(params[r]) if with_scale else 1.0
    t = params[r + 1:] if with_scale else params[r:]

    T = np.eye(dim + 1, dtype=np.float64)
    T[:dim, :dim] = s * R
    T[:dim, dim] = t
    return T
