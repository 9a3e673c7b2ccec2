"""
Concrete robust estimators

One class per geometric entity. Each class runs any of the five robust
methods (RANSAC, LMedS, MSAC, PROSAC, PROMedS), picked with the method
argument; PROMedS when omitted.
"""

from .points import Point2DRobustEstimator, Point3DRobustEstimator

from .lines import Line2DRobustEstimator, Line3DRobustEstimator, PlaneRobustEstimator

from .conics import (
    ConicRobustEstimator,
    DualConicRobustEstimator,
    QuadricRobustEstimator,
    DualQuadricRobustEstimator,
    SphereRobustEstimator,
)

from .transformations import (
    AffineTransformation2DRobustEstimator,
    AffineTransformation3DRobustEstimator,
    LineCorrespondenceAffineTransformation2DRobustEstimator,
    PlaneCorrespondenceAffineTransformation3DRobustEstimator,
    EuclideanTransformation2DRobustEstimator,
    EuclideanTransformation3DRobustEstimator,
    MetricTransformation2DRobustEstimator,
    MetricTransformation3DRobustEstimator,
    ProjectiveTransformation2DRobustEstimator,
    PointCorrespondenceProjectiveTransformation2DRobustEstimator,
    LineCorrespondenceProjectiveTransformation2DRobustEstimator,
    ProjectiveTransformation3DRobustEstimator,
    PointCorrespondenceProjectiveTransformation3DRobustEstimator,
    PlaneCorrespondenceProjectiveTransformation3DRobustEstimator,
)

from .cameras import (
    DEFAULT_SUGGESTION_WEIGHT,
    PinholeCameraRobustEstimator,
    DLTPointCorrespondencePinholeCameraRobustEstimator,
    EPnPPointCorrespondencePinholeCameraRobustEstimator,
    DLTLinePlaneCorrespondencePinholeCameraRobustEstimator,
)

__all__ = [
    "Point2DRobustEstimator", "Point3DRobustEstimator",
    "Line2DRobustEstimator", "Line3DRobustEstimator", "PlaneRobustEstimator",
    "ConicRobustEstimator", "DualConicRobustEstimator",
    "QuadricRobustEstimator", "DualQuadricRobustEstimator", "SphereRobustEstimator",
    "AffineTransformation2DRobustEstimator",
    "AffineTransformation3DRobustEstimator",
    "LineCorrespondenceAffineTransformation2DRobustEstimator",
    "PlaneCorrespondenceAffineTransformation3DRobustEstimator",
    "EuclideanTransformation2DRobustEstimator",
    "EuclideanTransformation3DRobustEstimator",
    "MetricTransformation2DRobustEstimator",
    "MetricTransformation3DRobustEstimator",
    "ProjectiveTransformation2DRobustEstimator",
    "PointCorrespondenceProjectiveTransformation2DRobustEstimator",
    "LineCorrespondenceProjectiveTransformation2DRobustEstimator",
    "ProjectiveTransformation3DRobustEstimator",
    "PointCorrespondenceProjectiveTransformation3DRobustEstimator",
    "PlaneCorrespondenceProjectiveTransformation3DRobustEstimator",
    "DEFAULT_SUGGESTION_WEIGHT",
    "PinholeCameraRobustEstimator",
    "DLTPointCorrespondencePinholeCameraRobustEstimator",
    "EPnPPointCorrespondencePinholeCameraRobustEstimator",
    "DLTLinePlaneCorrespondencePinholeCameraRobustEstimator",
]
