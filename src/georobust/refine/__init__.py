from .refiner import (
    RefinementResult,
    estimate_covariance,
    numerical_jacobian,
    refine_parameters,
)

__all__ = [
    "RefinementResult",
    "estimate_covariance",
    "numerical_jacobian",
    "refine_parameters",
]
