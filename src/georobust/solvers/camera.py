"""
Pinhole camera estimation.

A pinhole camera is a 3x4 matrix P (defined up to scale):

    x ~ P X,     P = K R [I | -C]

    K = [[fx, skew, cx],
         [0,  fy,   cy],
         [0,  0,    1 ]]

- R: world-to-camera rotation, C: camera center in world coordinates.

Solvers:
- fit_camera_dlt: point correspondences X <-> x, 6 minimum (11 DOF, 2 equations each)
- fit_camera_epnp: point correspondences with known K, 4 minimum (cv2.solvePnP EPnP)
- fit_camera_line_plane_dlt: image line l <-> world plane pi, 4 minimum.
  The plane back-projected from l is P^T l, so for every basis vector b of
  the orthogonal complement of pi:  l^T P b = 0  (3 equations each).
"""

from __future__ import annotations

from typing import Optional, Tuple

import cv2
import numpy as np
from scipy.linalg import rq

from ..ransac.types import FloatArray, Mat3x3, Mat3x4, Planes, Lines2D, Points2D, Points3D, as_homogeneous, is_valid_matrix
from .normalization import normalize_points, normalize_rows, null_vector


# Number of parameters of the full camera parametrization
#   [fx, fy, skew, cx, cy, rx, ry, rz, Cx, Cy, Cz]
CAMERA_PARAMS = 11


# ---------- Composition / decomposition ----------
def normalize_camera(P: Mat3x4) -> Mat3x4:
    """Unit Frobenius norm, sign chosen so det(P[:, :3]) > 0."""
    P = P / np.linalg.norm(P)
    if np.linalg.det(P[:, :3]) < 0.0:
        P = -P
    return P


def compose_camera(K: Mat3x3, R: Mat3x3, C: FloatArray) -> Mat3x4:
    """P = K R [I | -C]"""
    return K @ np.hstack([R, -(R @ C).reshape(3, 1)])


def decompose_camera(P: Mat3x4) -> Optional[Tuple[Mat3x3, Mat3x3, FloatArray]]:
    """
    Split P into (K, R, C) with K upper triangular, positive diagonal and
    K[2, 2] = 1, R a proper rotation.

    Returns None when the left 3x3 block is singular (camera at infinity).
    """
    M = P[:, :3]
    if abs(np.linalg.det(M)) <= np.finfo(np.float64).eps * np.linalg.norm(M) ** 3:
        return None

    # Center: null vector of P, C = -M^-1 p4
    C = -np.linalg.solve(M, P[:, 3])

    # P is defined up to sign: work with det(M) > 0 so that R is a rotation
    if np.linalg.det(M) < 0.0:
        M = -M
    K, R = rq(M)

    # Make the diagonal of K positive: K D, D R with D = diag(sign)
    D = np.diag(np.sign(np.diag(K)))
    D[D == 0] = 1.0
    K = K @ D
    R = D @ R
    K = K / K[2, 2]
    return K, R, C


def intrinsics_to_params(K: Mat3x3) -> FloatArray:
    return np.array([K[0, 0], K[1, 1], K[0, 1], K[0, 2], K[1, 2]], dtype=np.float64)


def params_to_intrinsics(params: FloatArray) -> Mat3x3:
    fx, fy, skew, cx, cy = map(float, params[:5])
    return np.array([[fx, skew, cx], [0.0, fy, cy], [0.0, 0.0, 1.0]], dtype=np.float64)


def rotation_to_vector(R: Mat3x3) -> FloatArray:
    rvec, _ = cv2.Rodrigues(np.ascontiguousarray(R, dtype=np.float64))
    return rvec.ravel()


def vector_to_rotation(rvec: FloatArray) -> Mat3x3:
    R, _ = cv2.Rodrigues(np.ascontiguousarray(rvec, dtype=np.float64).reshape(3, 1))
    return R


def camera_to_params(P: Mat3x4) -> Optional[FloatArray]:
    parts = decompose_camera(P)
    if parts is None:
        return None
    K, R, C = parts
    return np.concatenate([intrinsics_to_params(K), rotation_to_vector(R), C])


def params_to_camera(params: FloatArray) -> Mat3x4:
    K = params_to_intrinsics(params[:5])
    R = vector_to_rotation(params[5:8])
    return normalize_camera(compose_camera(K, R, params[8:11]))


def rotation_angle_between(R0: Mat3x3, R1: Mat3x3) -> float:
    """Geodesic distance (radians) between two rotations."""
    return float(np.linalg.norm(rotation_to_vector(R0.T @ R1)))


# ---------- Residuals ----------
def reprojection_errors(P: Mat3x4, X: Points3D, x: Points2D) -> FloatArray:
    """Signed reprojection differences, shape (N, 2)."""
    ph = as_homogeneous(X) @ P.T
    with np.errstate(divide="ignore", invalid="ignore"):
        projected = ph[:, :2] / ph[:, 2:3]
    return projected - x


def reprojection_residuals(P: Mat3x4, X: Points3D, x: Points2D) -> FloatArray:
    return np.linalg.norm(reprojection_errors(P, X, x), axis=1)


def backprojection_errors(P: Mat3x4, lines: Lines2D, planes: Planes) -> FloatArray:
    """Sign-aligned difference between unit P^T l and unit pi, shape (N, 4)."""
    predicted = normalize_rows(lines @ P)            # rows: (P^T l)^T
    observed = normalize_rows(planes)
    sign = np.sign(np.sum(predicted * observed, axis=1, keepdims=True))
    sign[sign == 0] = 1.0
    return sign * predicted - observed


def backprojection_residuals(P: Mat3x4, lines: Lines2D, planes: Planes) -> FloatArray:
    """1 - |cos| between the back-projected plane P^T l and the plane pi."""
    predicted = normalize_rows(lines @ P)
    observed = normalize_rows(planes)
    return 1.0 - np.abs(np.sum(predicted * observed, axis=1))


# ---------- DLT from points ----------
def _point_dlt_rows(X: FloatArray, x: FloatArray) -> FloatArray:
    """
    Two rows per correspondence X (N,4) <-> x (N,3), unknown p = vec(P) row-major:

        [0^T,    -w X^T,  v X^T]
        [w X^T,   0^T,   -u X^T]
    """
    n = X.shape[0]
    A = np.zeros((2 * n, 12), dtype=np.float64)
    u, v, w = x[:, 0:1], x[:, 1:2], x[:, 2:3]
    A[0::2, 4:8] = -w * X
    A[0::2, 8:12] = v * X
    A[1::2, 0:4] = w * X
    A[1::2, 8:12] = -u * X
    return A


def fit_camera_dlt(X: Points3D, x: Points2D) -> Optional[Mat3x4]:
    """
    Normalized DLT camera from N >= 6 point correspondences.
    Coplanar world points (or other critical configurations) return None.
    """
    if X.ndim != 2 or X.shape[1] != 3 or x.shape != (X.shape[0], 2) or X.shape[0] < 6:
        raise ValueError(f"Expected (N>=6, 3) and (N, 2) inputs, got {X.shape} and {x.shape}")

    nX = normalize_points(X)
    nx = normalize_points(x)
    if nX is None or nx is None:
        return None
    (Xh, T3), (xh, T2) = nX, nx

    p = null_vector(_point_dlt_rows(Xh, xh), rank=11)
    if p is None:
        return None

    # Undo normalization: P = T2^-1 Pn T3
    P = np.linalg.inv(T2) @ p.reshape(3, 4) @ T3
    if not is_valid_matrix(P, (3, 4)):
        return None
    return normalize_camera(P)


# ---------- DLT from lines and planes ----------
def _plane_complement(planes: Planes) -> FloatArray:
    """
    Orthonormal basis (3 vectors) of the orthogonal complement of each plane
    vector in R^4. Shape (N, 3, 4).
    """
    out = np.empty((planes.shape[0], 3, 4), dtype=np.float64)
    for i, pi in enumerate(planes):
        _, _, Vt = np.linalg.svd(pi.reshape(1, 4))
        out[i] = Vt[1:]
    return out


def fit_camera_line_plane_dlt(lines: Lines2D, planes: Planes) -> Optional[Mat3x4]:
    """
    DLT camera from N >= 4 correspondences image line <-> world plane.

    Each basis vector b of pi's orthogonal complement gives one equation
        l^T P b = (l kron b) . vec(P) = 0
    """
    if lines.ndim != 2 or lines.shape[1] != 3 or planes.shape != (lines.shape[0], 4) or lines.shape[0] < 4:
        raise ValueError(f"Expected (N>=4, 3) and (N, 4) inputs, got {lines.shape} and {planes.shape}")

    l = normalize_rows(lines)
    pi = normalize_rows(planes)
    if not (np.isfinite(l).all() and np.isfinite(pi).all()):
        return None

    basis = _plane_complement(pi)
    A = np.einsum("ni,nkj->nkij", l, basis).reshape(-1, 12)

    p = null_vector(A, rank=11)
    if p is None:
        return None

    P = p.reshape(3, 4)
    if not is_valid_matrix(P, (3, 4)):
        return None
    return normalize_camera(P)


# ---------- PnP with known intrinsics ----------
def fit_camera_epnp(
        X: Points3D,
        x: Points2D,
        K: Mat3x3,
        refine: bool = False,
) -> Optional[Mat3x4]:
    """
    Camera pose from N >= 4 correspondences and known intrinsics K.

    refine=True polishes the EPnP pose with OpenCV's iterative (LM) solver,
    which is how the least-squares refit over all inliers is done.
    """
    if X.ndim != 2 or X.shape[1] != 3 or x.shape != (X.shape[0], 2) or X.shape[0] < 4:
        raise ValueError(f"Expected (N>=4, 3) and (N, 2) inputs, got {X.shape} and {x.shape}")

    obj = np.ascontiguousarray(X, dtype=np.float64).reshape(-1, 1, 3)
    img = np.ascontiguousarray(x, dtype=np.float64).reshape(-1, 1, 2)
    K = np.ascontiguousarray(K, dtype=np.float64)
    try:
        ok, rvec, tvec = cv2.solvePnP(obj, img, K, None, flags=cv2.SOLVEPNP_EPNP)
        if ok and refine and X.shape[0] > 4:
            ok, rvec, tvec = cv2.solvePnP(
                obj, img, K, None, rvec=rvec, tvec=tvec,
                useExtrinsicGuess=True, flags=cv2.SOLVEPNP_ITERATIVE,
            )
    except cv2.error:
        # Degenerate configurations make OpenCV assert
        return None

    if not ok:
        return None
    P = pose_to_camera(K, rvec.ravel(), tvec.ravel())
    if not is_valid_matrix(P, (3, 4)):
        return None
    return P


def pose_to_camera(K: Mat3x3, rvec: FloatArray, tvec: FloatArray) -> Mat3x4:
    R = vector_to_rotation(rvec)
    return K @ np.hstack([R, np.asarray(tvec, dtype=np.float64).reshape(3, 1)])


def camera_to_pose(P: Mat3x4, K: Mat3x3) -> Optional[Tuple[FloatArray, FloatArray]]:
    """
    (rvec, tvec) of a camera with known intrinsics: [R | t] ~ K^-1 P, with the
    scale fixed so that R has unit rows and det(R) = 1.
    """
    Rt = np.linalg.solve(K, P)
    scale = np.cbrt(np.linalg.det(Rt[:, :3]))
    if not np.isfinite(scale) or abs(scale) <= np.finfo(np.float64).eps:
        return None
    Rt = Rt / scale

    # Project onto the closest rotation
    U, _, Vt = np.linalg.svd(Rt[:, :3])
    R = U @ Vt
    return rotation_to_vector(R), Rt[:, 3].copy()
