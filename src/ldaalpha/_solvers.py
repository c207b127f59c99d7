import logging

import numpy as np
from numpy.typing import NDArray
from typing import Callable, Literal

from ldaalpha._utils import AlphaQuantities, AlphaResult
from ldaalpha.exceptions import DimensionMismatchError, NumericDegeneracyError

logger = logging.getLogger(__name__)

StepSolver = Callable[[NDArray[np.float64], float, NDArray[np.float64]], NDArray]


def structured_step(
    diagonal: NDArray[np.float64],
    constant: float,
    gradient: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Apply the inverse of H = diag(h) + z * 1 1^T to the gradient.

    Uses the Sherman-Morrison form of the inverse:

        c = (sum_j g_j / h_j) / (1/z + sum_j 1/h_j)
        step_i = (g_i - c) / h_i

    so H is never materialized and the cost is O(k).

    Parameters
    ----------
    diagonal : ndarray of shape (n_topics,)
        Diagonal part h. Every entry must be nonzero.
    constant : float
        Rank-one coefficient z. z == 0 is treated as the limit 1/z -> inf,
        i.e. the step is g / h.
    gradient : ndarray of shape (n_topics,)
        Right-hand side g.

    Returns
    -------
    ndarray of shape (n_topics,)
        H^{-1} g, before any sign is applied by the caller.

    Raises
    ------
    DimensionMismatchError
        If gradient and diagonal lengths differ.
    NumericDegeneracyError
        If a diagonal entry or the denominator is zero, or the result is not
        finite.
    """
    diagonal = np.asarray(diagonal, dtype=np.float64)
    gradient = np.asarray(gradient, dtype=np.float64)
    _check_step_inputs(diagonal, constant, gradient)

    if np.any(diagonal == 0.0):
        raise NumericDegeneracyError("Hessian diagonal has a zero entry")

    inv_h = 1.0 / diagonal
    num_sum = np.sum(gradient * inv_h)
    if constant == 0.0:
        c = 0.0
    else:
        denom = 1.0 / constant + np.sum(inv_h)
        if denom == 0.0:
            raise NumericDegeneracyError(
                "Sherman-Morrison denominator 1/z + sum(1/h) is zero"
            )
        c = num_sum / denom

    step = (gradient - c) * inv_h
    if not np.all(np.isfinite(step)):
        raise NumericDegeneracyError(f"Newton-Raphson step is not finite: {step}")
    return step


def structured_step_numba(
    diagonal: NDArray[np.float64],
    constant: float,
    gradient: NDArray[np.float64],
) -> NDArray[np.float64]:
    """numba-compiled equivalent of `structured_step`."""
    from ldaalpha._numba._solvers import structured_step as _structured_step

    diagonal = np.ascontiguousarray(diagonal, dtype=np.float64)
    gradient = np.ascontiguousarray(gradient, dtype=np.float64)
    _check_step_inputs(diagonal, constant, gradient)

    step, info = _structured_step(diagonal, float(constant), gradient)
    if info == 1:
        raise NumericDegeneracyError("Hessian diagonal has a zero entry")
    if info == 2:
        raise NumericDegeneracyError(
            "Sherman-Morrison denominator 1/z + sum(1/h) is zero"
        )
    if not np.all(np.isfinite(step)):
        raise NumericDegeneracyError(f"Newton-Raphson step is not finite: {step}")
    return step


def _check_step_inputs(
    diagonal: NDArray[np.float64],
    constant: float,
    gradient: NDArray[np.float64],
) -> None:
    if gradient.shape != diagonal.shape:
        raise DimensionMismatchError(
            "Gradient and Hessian diagonal must have the same dimension, "
            f"got {gradient.shape[0]} and {diagonal.shape[0]}"
        )
    if not (
        np.all(np.isfinite(diagonal))
        and np.all(np.isfinite(gradient))
        and np.isfinite(constant)
    ):
        raise NumericDegeneracyError(
            "Gradient or Hessian contains non-finite values"
        )


def newton_raphson(
    compute_quantities: Callable[[NDArray[np.float64]], AlphaQuantities],
    alpha_init: NDArray[np.float64],
    max_iter: int = 100,
    max_halfstep: int = 25,
    tol: float = 1e-5,
    recurrence: Literal["newton", "legacy"] = "newton",
    solve_step: StepSolver = structured_step,
) -> AlphaResult:
    """
    Newton-Raphson solver for a Dirichlet parameter with structured Hessian

    Parameters
    ----------
    compute_quantities : Callable[[NDArray], AlphaQuantities]
        Function `callable(alpha)` that returns the gradient of the
        log-likelihood and its negated Hessian as a `StructuredHessian`.
    alpha_init : ndarray of shape (n_topics,)
        Starting point. Not modified.
    max_iter : int, default=100
        Maximum number of updates.
    max_halfstep : int, default=25
        Maximum number of step-halvings used to keep alpha positive
        (`recurrence='newton'` only).
    tol : float, default=1e-5
        Stop when the Euclidean norm of the step drops below this.
    recurrence : {'newton', 'legacy'}, default='newton'
        'newton' re-evaluates quantities at the latest alpha and adds the
        step. 'legacy' evaluates them once at `alpha_init` and subtracts the
        same step every iteration.
    solve_step : callable, default=structured_step
        Function `callable(diagonal, constant, gradient)` returning H^{-1} g.

    Returns
    -------
    AlphaResult
        Result of the solve.
    """
    alpha = np.array(alpha_init, dtype=np.float64)
    step_norms: list[float] = []

    if recurrence == "legacy":
        q = compute_quantities(alpha)
        fixed_step = solve_step(q.hessian.diagonal, q.hessian.constant, q.gradient)

    n_iter = 0
    while True:
        if recurrence == "legacy":
            step = fixed_step
        else:
            q = compute_quantities(alpha)
            step = solve_step(q.hessian.diagonal, q.hessian.constant, q.gradient)

        step_norm = float(np.linalg.norm(step))
        step_norms.append(step_norm)
        logger.debug("iteration %d: step norm %.6e", n_iter, step_norm)

        if step_norm < tol:
            logger.info("Newton-Raphson converged after %d steps", n_iter)
            return AlphaResult(
                alpha=alpha, n_iter=n_iter, converged=True, step_norms=step_norms
            )

        if recurrence == "legacy":
            alpha = alpha - step
        else:
            alpha = _positive_update(alpha, step, max_halfstep)
        n_iter += 1

        if n_iter >= max_iter:
            break

    logger.warning(
        "Newton-Raphson did not converge after %d steps (last step norm %.6e)",
        n_iter,
        step_norm,
    )
    if not np.all(alpha > 0):
        raise NumericDegeneracyError(
            f"alpha left the positive orthant after {n_iter} steps: {alpha}"
        )
    return AlphaResult(
        alpha=alpha, n_iter=n_iter, converged=False, step_norms=step_norms
    )


def _positive_update(
    alpha: NDArray[np.float64], step: NDArray[np.float64], max_halfstep: int
) -> NDArray[np.float64]:
    """alpha + step, halving the step until every entry stays positive."""
    alpha_new = alpha + step
    for _ in range(max_halfstep):
        if np.all(alpha_new > 0):
            break
        step = 0.5 * step
        alpha_new = alpha + step

    if not np.all(alpha_new > 0):
        raise NumericDegeneracyError(
            f"alpha left the positive orthant after {max_halfstep} step-halvings: "
            f"{alpha_new}"
        )
    return alpha_new
