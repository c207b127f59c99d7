from ldaalpha._numba import NUMBA_AVAILABLE
from ldaalpha._special import digamma, log_gamma, trigamma
from ldaalpha._solvers import newton_raphson, structured_step
from ldaalpha._utils import AlphaResult, StructuredHessian
from ldaalpha.dirichlet import (
    DirichletAlphaNR,
    SolverConfig,
    alpha_loglik,
    compute_gradient,
    compute_hessian_constant,
    compute_hessian_diagonal,
    solve_alpha,
    solve_alpha_result,
)
from ldaalpha.exceptions import DimensionMismatchError, NumericDegeneracyError

__all__ = [
    "NUMBA_AVAILABLE",
    "AlphaResult",
    "DimensionMismatchError",
    "DirichletAlphaNR",
    "NumericDegeneracyError",
    "SolverConfig",
    "StructuredHessian",
    "alpha_loglik",
    "compute_gradient",
    "compute_hessian_constant",
    "compute_hessian_diagonal",
    "digamma",
    "log_gamma",
    "newton_raphson",
    "solve_alpha",
    "solve_alpha_result",
    "structured_step",
    "trigamma",
]
