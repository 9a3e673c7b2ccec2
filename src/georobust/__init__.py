"""
georobust: robust estimation of geometric models.

    from georobust import Line2DRobustEstimator, RobustEstimatorMethod

    estimator = Line2DRobustEstimator(points, method=RobustEstimatorMethod.RANSAC)
    line = estimator.estimate()
    inliers = estimator.inliers_data.inliers
"""

from .ransac import (
    DEFAULT_ROBUST_METHOD, EstimationError, InliersData, LockedError, NotReadyError,
    RobustEstimator, RobustEstimatorError, RobustEstimatorListener, RobustEstimatorMethod,
)

from .refine import RefinementResult, refine_parameters

from .estimators import (
    Point2DRobustEstimator, Point3DRobustEstimator,
    Line2DRobustEstimator, Line3DRobustEstimator, PlaneRobustEstimator,
    ConicRobustEstimator, DualConicRobustEstimator,
    QuadricRobustEstimator, DualQuadricRobustEstimator, SphereRobustEstimator,
    AffineTransformation2DRobustEstimator, AffineTransformation3DRobustEstimator,
    LineCorrespondenceAffineTransformation2DRobustEstimator,
    PlaneCorrespondenceAffineTransformation3DRobustEstimator,
    EuclideanTransformation2DRobustEstimator, EuclideanTransformation3DRobustEstimator,
    MetricTransformation2DRobustEstimator, MetricTransformation3DRobustEstimator,
    ProjectiveTransformation2DRobustEstimator,
    PointCorrespondenceProjectiveTransformation2DRobustEstimator,
    LineCorrespondenceProjectiveTransformation2DRobustEstimator,
    ProjectiveTransformation3DRobustEstimator,
    PointCorrespondenceProjectiveTransformation3DRobustEstimator,
    PlaneCorrespondenceProjectiveTransformation3DRobustEstimator,
    PinholeCameraRobustEstimator, DLTPointCorrespondencePinholeCameraRobustEstimator,
    EPnPPointCorrespondencePinholeCameraRobustEstimator,
    DLTLinePlaneCorrespondencePinholeCameraRobustEstimator,
)

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_ROBUST_METHOD", "EstimationError", "InliersData", "LockedError", "NotReadyError",
    "RobustEstimator", "RobustEstimatorError", "RobustEstimatorListener", "RobustEstimatorMethod",
    "RefinementResult", "refine_parameters",
    "Point2DRobustEstimator", "Point3DRobustEstimator",
    "Line2DRobustEstimator", "Line3DRobustEstimator", "PlaneRobustEstimator",
    "ConicRobustEstimator", "DualConicRobustEstimator",
    "QuadricRobustEstimator", "DualQuadricRobustEstimator", "SphereRobustEstimator",
    "AffineTransformation2DRobustEstimator", "AffineTransformation3DRobustEstimator",
    "LineCorrespondenceAffineTransformation2DRobustEstimator",
    "PlaneCorrespondenceAffineTransformation3DRobustEstimator",
    "EuclideanTransformation2DRobustEstimator", "EuclideanTransformation3DRobustEstimator",
    "MetricTransformation2DRobustEstimator", "MetricTransformation3DRobustEstimator",
    "ProjectiveTransformation2DRobustEstimator",
    "PointCorrespondenceProjectiveTransformation2DRobustEstimator",
    "LineCorrespondenceProjectiveTransformation2DRobustEstimator",
    "ProjectiveTransformation3DRobustEstimator",
    "PointCorrespondenceProjectiveTransformation3DRobustEstimator",
    "PlaneCorrespondenceProjectiveTransformation3DRobustEstimator",
    "PinholeCameraRobustEstimator", "DLTPointCorrespondencePinholeCameraRobustEstimator",
    "EPnPPointCorrespondencePinholeCameraRobustEstimator",
    "DLTLinePlaneCorrespondencePinholeCameraRobustEstimator",
]
