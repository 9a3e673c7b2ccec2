"""
Closed-form solvers

Pure functions used by the robust estimators:
- minimal fits (exact model from a minimal sample, None when degenerate)
- least squares fits (refit from all inliers)
- residuals and parametrizations used for refinement
"""

from .point import intersect_lines, intersect_planes, line_point_distances, plane_point_distances

from .line import (
    fit_line_2d, fit_line_3d, fit_plane,
    point_line_2d_distances, point_line_3d_distances, point_plane_distances,
)

from .conic import fit_conic, conic_algebraic_residuals, fit_dual_conic, dual_conic_algebraic_residuals

from .quadric import (
    fit_quadric, fit_sphere, quadric_algebraic_residuals, sphere_to_quadric,
    fit_dual_quadric, dual_quadric_algebraic_residuals,
)

from .affine import (
    fit_affine_minimal, fit_affine_3d_minimal, fit_affine_least_squares, fit_affine_from_hyperplanes,
    apply_T, residuals_L2,
)

from .euclidean import fit_euclidean_minimal, fit_euclidean_least_squares, fit_similarity

from .projective import (
    fit_homography_dlt, fit_homography_least_squares, fit_line_homography,
    fit_homography_3d, fit_plane_homography,
    point_transfer_residuals, hyperplane_transfer_residuals,
)

from .camera import (
    fit_camera_dlt, fit_camera_epnp, fit_camera_line_plane_dlt,
    compose_camera, decompose_camera, reprojection_residuals, backprojection_residuals,
)

__all__ = [
    "intersect_lines", "intersect_planes", "line_point_distances", "plane_point_distances",
    "fit_line_2d", "fit_line_3d", "fit_plane",
    "point_line_2d_distances", "point_line_3d_distances", "point_plane_distances",
    "fit_conic", "conic_algebraic_residuals", "fit_dual_conic", "dual_conic_algebraic_residuals",
    "fit_quadric", "fit_sphere", "quadric_algebraic_residuals", "sphere_to_quadric",
    "fit_dual_quadric", "dual_quadric_algebraic_residuals",
    "fit_affine_minimal", "fit_affine_3d_minimal", "fit_affine_least_squares", "fit_affine_from_hyperplanes",
    "apply_T", "residuals_L2",
    "fit_euclidean_minimal", "fit_euclidean_least_squares", "fit_similarity",
    "fit_homography_dlt", "fit_homography_least_squares", "fit_line_homography",
    "fit_homography_3d", "fit_plane_homography",
    "point_transfer_residuals", "hyperplane_transfer_residuals",
    "fit_camera_dlt", "fit_camera_epnp", "fit_camera_line_plane_dlt",
    "compose_camera", "decompose_camera", "reprojection_residuals", "backprojection_residuals",
]
