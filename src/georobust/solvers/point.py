"""
Point estimation from lines (2D) or planes (3D).

A point lies on every input entity:

    2D:  l_i^T [x, y, 1]^T = 0        l_i = [a, b, c]
    3D:  pi_i^T [x, y, z, 1]^T = 0    pi_i = [a, b, c, d]

Stacking the (unit-normalized) entities gives A p = 0, solved with the SVD null
vector. The minimal sets are 2 lines and 3 planes. Parallel lines or planes
sharing a common line leave the null space with more than one dimension and
are rejected.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..ransac.types import FloatArray, Lines2D, Planes
from .normalization import null_vector, normalize_rows


# Homogeneous points with |w| below this are at infinity.
_EPS_W = 1e-12


def _intersect(entities: FloatArray, dim: int) -> Optional[FloatArray]:
    A = normalize_rows(entities)
    if not np.isfinite(A).all():
        return None

    p = null_vector(A, rank=dim)
    if p is None or abs(p[-1]) < _EPS_W:
        return None
    return (p[:-1] / p[-1]).astype(np.float64)


def intersect_lines(lines: Lines2D) -> Optional[FloatArray]:
    """
    Least-squares intersection of N >= 2 homogeneous 2D lines.

    Returns:
      (2,) point, or None if the lines are parallel / identical.
    """
    if lines.ndim != 2 or lines.shape[1] != 3 or lines.shape[0] < 2:
        raise ValueError(f"Expected lines shape (N>=2, 3), got {lines.shape}")
    return _intersect(lines, 2)


def intersect_planes(planes: Planes) -> Optional[FloatArray]:
    """
    Least-squares intersection of N >= 3 planes.

    Returns:
      (3,) point, or None if the planes do not meet in a single point.
    """
    if planes.ndim != 2 or planes.shape[1] != 4 or planes.shape[0] < 3:
        raise ValueError(f"Expected planes shape (N>=3, 4), got {planes.shape}")
    return _intersect(planes, 3)


def line_point_distances(lines: Lines2D, point: FloatArray) -> FloatArray:
    """
    Signed Euclidean distance of the point to every line:

        d_i = (a_i x + b_i y + c_i) / sqrt(a_i^2 + b_i^2)
    """
    normal_norm = np.linalg.norm(lines[:, :2], axis=1)
    values = lines[:, :2] @ point + lines[:, 2]
    with np.errstate(divide="ignore", invalid="ignore"):
        return values / normal_norm


def plane_point_distances(planes: Planes, point: FloatArray) -> FloatArray:
    """Signed Euclidean distance of the point to every plane."""
    normal_norm = np.linalg.norm(planes[:, :3], axis=1)
    values = planes[:, :3] @ point + planes[:, 3]
    with np.errstate(divide="ignore", invalid="ignore"):
        return values / normal_norm
