"""
Non-linear refinement of a consensus model and its covariance.

The caller flattens its model into a parameter vector x0 and hands over a
function returning signed residuals for any parameter vector (data residuals
over the inliers, plus optional gauge and suggestion penalties).

- Full refinement: scipy.optimize.least_squares
    - "lm" (Levenberg-Marquardt) when #residuals >= #parameters
    - "trf" otherwise (LM refuses under-determined problems)
- Fast refinement: one Gauss-Newton step
    J dx = -r   (least squares), kept only if the cost decreases

Covariance at the returned solution:
    cov = sigma^2 * (J^T J)^-1
It is None whenever J^T J is singular, ill-conditioned or non-finite.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from scipy.optimize import least_squares

from ..ransac.errors import RefinementError
from ..ransac.types import FloatArray

logger = logging.getLogger(__name__)

ResidualFunction = Callable[[FloatArray], FloatArray]

# Upper bound on function evaluations of the full refinement.
DEFAULT_MAX_EVALUATIONS = 2000


@dataclass(frozen=True)
class RefinementResult:
    params: FloatArray
    covariance: Optional[FloatArray]
    improved: bool              # final_cost < initial_cost
    initial_cost: float         # 0.5 * sum(r^2) at x0
    final_cost: float           # 0.5 * sum(r^2) at params


def _cost(r: FloatArray) -> float:
    return 0.5 * float(np.dot(r, r))


def _evaluate(residuals: ResidualFunction, x: FloatArray) -> FloatArray:
    r = np.asarray(residuals(x), dtype=np.float64).ravel()
    if not np.isfinite(r).all():
        raise RefinementError("residual function returned non-finite values")
    return r


def numerical_jacobian(residuals: ResidualFunction, x: FloatArray, r0: Optional[FloatArray] = None) -> FloatArray:
    """
    Forward-difference Jacobian of the residual function at x.
    Step per parameter: sqrt(eps) * max(1, |x_j|).
    """
    x = np.asarray(x, dtype=np.float64)
    if r0 is None:
        r0 = _evaluate(residuals, x)

    J = np.empty((r0.shape[0], x.shape[0]), dtype=np.float64)
    eps = np.sqrt(np.finfo(np.float64).eps)
    for j in range(x.shape[0]):
        h = eps * max(1.0, abs(x[j]))
        xj = x.copy()
        xj[j] += h
        J[:, j] = (_evaluate(residuals, xj) - r0) / h
    return J


def estimate_covariance(jacobian: FloatArray, standard_deviation: float) -> Optional[FloatArray]:
    """
    Inverse of the normal-equations matrix scaled by the residual variance.
    Returns None rather than a meaningless matrix.
    """
    JtJ = jacobian.T @ jacobian
    if not np.isfinite(JtJ).all():
        return None

    cond = np.linalg.cond(JtJ)
    if not np.isfinite(cond) or cond > 1.0 / np.finfo(np.float64).eps:
        return None

    try:
        cov = float(standard_deviation) ** 2 * np.linalg.inv(JtJ)
    except np.linalg.LinAlgError:
        return None

    if not np.isfinite(cov).all():
        return None
    # Symmetrize round-off.
    return 0.5 * (cov + cov.T)


def refine_parameters(
        residuals: ResidualFunction,
        x0: FloatArray,
        *,
        fast: bool = False,
        keep_covariance: bool = False,
        standard_deviation: float = 1.0,
        max_evaluations: int = DEFAULT_MAX_EVALUATIONS,
) -> RefinementResult:
    """
    Refine a parameter vector by minimizing 0.5 * ||residuals(x)||^2.

    Inputs:
    - residuals: x -> (K,) signed residuals
    - x0: initial parameters (P,)
    - fast: single Gauss-Newton step instead of the full solver
    - keep_covariance: also estimate the parameter covariance
    - standard_deviation: residual scale used for the covariance

    Returns:
    - RefinementResult. When nothing improved, params is x0 unchanged.

    Raises:
    - RefinementError on non-finite residuals or a failed solver.
    """
    x0 = np.asarray(x0, dtype=np.float64).ravel()
    r0 = _evaluate(residuals, x0)
    initial_cost = _cost(r0)

    if fast:
        x, J = _gauss_newton_step(residuals, x0, r0)
    else:
        x, J = _full_refinement(residuals, x0, r0, max_evaluations)

    r = _evaluate(residuals, x)
    final_cost = _cost(r)
    improved = final_cost < initial_cost
    if not improved:
        x = x0
        final_cost = initial_cost
        J = None

    covariance = None
    if keep_covariance:
        if J is None:
            J = numerical_jacobian(residuals, x, r0 if x is x0 else r)
        covariance = estimate_covariance(J, standard_deviation)
        if covariance is None:
            logger.debug("covariance discarded: normal equations are singular or ill-conditioned")

    logger.debug(
        "refinement (%s): cost %.6g -> %.6g",
        "fast" if fast else "full", initial_cost, final_cost,
    )
    return RefinementResult(
        params=x,
        covariance=covariance,
        improved=improved,
        initial_cost=initial_cost,
        final_cost=final_cost,
    )


# ---------- Solvers ----------
def _gauss_newton_step(residuals: ResidualFunction, x0: FloatArray, r0: FloatArray):
    J = numerical_jacobian(residuals, x0, r0)
    step, *_ = np.linalg.lstsq(J, -r0, rcond=None)
    if not np.isfinite(step).all():
        raise RefinementError("Gauss-Newton step is not finite")

    x = x0 + step
    # Jacobian at the new point is only needed for the covariance
    return x, None


def _full_refinement(residuals: ResidualFunction, x0: FloatArray, r0: FloatArray, max_evaluations: int):
    method = "lm" if r0.shape[0] >= x0.shape[0] else "trf"
    try:
        result = least_squares(residuals, x0, method=method, max_nfev=max_evaluations)
    except ValueError as exc:
        # Raised by scipy for non-finite residuals or an ill-posed problem
        raise RefinementError(f"least squares refinement failed: {exc}") from exc

    if result.status < 0 or not np.isfinite(result.x).all():
        raise RefinementError(f"least squares refinement failed: {result.message}")

    return result.x, np.asarray(result.jac, dtype=np.float64)
