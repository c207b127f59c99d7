import numpy as np
import warnings

from collections.abc import Iterable
from dataclasses import dataclass
from numpy.typing import ArrayLike, NDArray
from sklearn.base import BaseEstimator
from sklearn.exceptions import ConvergenceWarning
from sklearn.utils.validation import check_is_fitted, validate_data
from typing import Literal, Self, cast

from ldaalpha._numba import NUMBA_AVAILABLE
from ldaalpha._solvers import newton_raphson, structured_step, structured_step_numba
from ldaalpha._special import digamma, log_gamma, trigamma
from ldaalpha._utils import AlphaQuantities, AlphaResult, StructuredHessian
from ldaalpha.exceptions import DimensionMismatchError, NumericDegeneracyError


@dataclass(frozen=True)
class SolverConfig:
    """
    Options for the alpha Newton-Raphson solve.

    Parameters
    ----------
    max_iter : int, default=100
        Maximum number of Newton-Raphson updates.
    tol : float, default=1e-5
        The solve stops once the Euclidean norm of the step is below `tol`.
    max_halfstep : int, default=25
        Maximum number of step-halvings used to keep alpha positive.
        0 disables the safeguard. Ignored for `recurrence='legacy'`.
    recurrence : {'newton', 'legacy'}, default='newton'
        - 'newton': every iteration re-evaluates the gradient and Hessian at
          the latest alpha and takes the Newton ascent step.
        - 'legacy': reproduces the reference trajectory, which evaluates the
          gradient and Hessian once at the initial alpha, leaves the rank-one
          term unscaled by the document count, and subtracts the same step on
          every iteration.
    backend : {'auto', 'numba', 'numpy'}, default='auto'
        Implementation of the O(k) step and the gamma statistics. 'auto' uses
        numba when it is installed.
    """

    max_iter: int = 100
    tol: float = 1e-5
    max_halfstep: int = 25
    recurrence: Literal["newton", "legacy"] = "newton"
    backend: Literal["auto", "numba", "numpy"] = "auto"

    def __post_init__(self) -> None:
        if self.max_iter <= 0:
            raise ValueError(f"max_iter must be positive, got {self.max_iter}")
        if self.tol < 0:
            raise ValueError(f"tol must be non-negative, got {self.tol}")
        if self.max_halfstep < 0:
            raise ValueError(
                f"max_halfstep must be non-negative, got {self.max_halfstep}"
            )
        if self.recurrence not in ("newton", "legacy"):
            raise ValueError(
                f"recurrence must be 'newton' or 'legacy', got '{self.recurrence}'"
            )
        if self.backend not in ("auto", "numba", "numpy"):
            raise ValueError(
                f"backend must be 'auto', 'numba' or 'numpy', got '{self.backend}'"
            )

    @property
    def use_numba(self) -> bool:
        if self.backend == "numba" and not NUMBA_AVAILABLE:
            raise ImportError("backend='numba' requires numba to be installed")
        return self.backend == "numba" or (
            self.backend == "auto" and NUMBA_AVAILABLE
        )


def solve_alpha(
    config: SolverConfig,
    initial_alpha: ArrayLike,
    gamma: ArrayLike | Iterable[ArrayLike],
) -> NDArray[np.float64]:
    """
    Re-estimate the Dirichlet prior alpha from per-document variational gamma.

    This is the M-step update for alpha in variational EM for LDA.

    Parameters
    ----------
    config : SolverConfig
        Iteration cap, step-norm threshold and recurrence.
    initial_alpha : array-like of shape (n_topics,)
        Starting alpha, every entry > 0. Not modified.
    gamma : array-like of shape (n_docs, n_topics) or sequence of vectors
        Variational Dirichlet parameters of each document, every entry > 0.
        Not modified.

    Returns
    -------
    ndarray of shape (n_topics,)
        Re-estimated alpha.

    Raises
    ------
    DimensionMismatchError
        If any gamma vector's length differs from alpha's.
    NumericDegeneracyError
        If alpha or gamma has non-positive or non-finite entries, or the
        Newton-Raphson step is undefined.
    """
    return solve_alpha_result(config, initial_alpha, gamma).alpha


def solve_alpha_result(
    config: SolverConfig,
    initial_alpha: ArrayLike,
    gamma: ArrayLike | Iterable[ArrayLike],
) -> AlphaResult:
    """Same as `solve_alpha`, returning iteration count and step norms too."""
    if not isinstance(config, SolverConfig):
        raise TypeError(
            f"config must be a SolverConfig, got {type(config).__name__}"
        )
    alpha = _as_alpha(initial_alpha)
    gamma_arr = _as_gamma(gamma, n_topics=alpha.shape[0])
    _check_positive_domain(alpha, "alpha")
    _check_positive_domain(gamma_arr, "gamma")

    if alpha.shape[0] == 1:
        # one topic: the gradient is identically zero and the Hessian singular
        return AlphaResult(alpha=alpha, n_iter=0, converged=True, step_norms=[0.0])

    use_numba = config.use_numba
    stats = gamma_sufficient_statistics(gamma_arr, use_numba=use_numba)
    n_docs = gamma_arr.shape[0]
    scale_constant = config.recurrence == "newton"

    def quantities(alpha: NDArray[np.float64]) -> AlphaQuantities:
        return compute_alpha_quantities(
            alpha, stats, n_docs, scale_constant=scale_constant
        )

    return newton_raphson(
        compute_quantities=quantities,
        alpha_init=alpha,
        max_iter=config.max_iter,
        max_halfstep=config.max_halfstep,
        tol=config.tol,
        recurrence=config.recurrence,
        solve_step=structured_step_numba if use_numba else structured_step,
    )


class DirichletAlphaNR(BaseEstimator):
    """
    Newton-Raphson estimate of the LDA Dirichlet prior alpha.

    Fits alpha to the per-document variational parameters gamma produced by
    the E-step, maximizing the alpha-dependent part of the evidence lower
    bound. The Hessian is diagonal plus rank-one, so every step costs O(k).

    Parameters
    ----------
    alpha_init : array-like of shape (n_topics,) or None, default=None
        Starting alpha. If None, a vector of ones.
    max_iter : int, default=100
        Maximum number of Newton-Raphson updates.
    tol : float, default=1e-5
        Threshold on the Euclidean norm of the step.
    max_halfstep : int, default=25
        Maximum number of step-halvings used to keep alpha positive.
    recurrence : {'newton', 'legacy'}, default='newton'
        See `SolverConfig`.
    backend : {'auto', 'numba', 'numpy'}, default='auto'
        See `SolverConfig`.

    Attributes
    ----------
    alpha_ : ndarray of shape (n_topics,)
        Re-estimated alpha.
    n_iter_ : int
        Number of updates applied.
    converged_ : bool
        Whether the step norm dropped below `tol` within `max_iter`.
    step_norms_ : list of float
        Euclidean norm of every step evaluated.
    loglik_ : float
        Alpha log-likelihood at `alpha_`.
    n_features_in_ : int
        Number of topics seen during `fit`.

    References
    ----------
    Blei DM, Ng AY, Jordan MI (2003). Latent Dirichlet Allocation. Journal of
    Machine Learning Research 3, 993-1022. Appendix A.4.2.

    Minka TP (2000). Estimating a Dirichlet distribution. Technical report.

    Examples
    --------
    >>> import numpy as np
    >>> from ldaalpha import DirichletAlphaNR
    >>> gamma = np.array([[2.0, 3.0, 5.0], [1.0, 1.0, 8.0]])
    >>> model = DirichletAlphaNR().fit(gamma)
    >>> model.converged_
    True
    """

    def __init__(
        self,
        alpha_init: ArrayLike | None = None,
        max_iter: int = 100,
        tol: float = 1e-5,
        max_halfstep: int = 25,
        recurrence: Literal["newton", "legacy"] = "newton",
        backend: Literal["auto", "numba", "numpy"] = "auto",
    ) -> None:
        self.alpha_init = alpha_init
        self.max_iter = max_iter
        self.tol = tol
        self.max_halfstep = max_halfstep
        self.recurrence = recurrence
        self.backend = backend

    def fit(self, X: ArrayLike, y: None = None) -> Self:
        """
        Fit alpha to the variational parameters of a corpus.

        Parameters
        ----------
        X : array-like of shape (n_docs, n_topics)
            Per-document variational Dirichlet parameters gamma.
        y : None
            Ignored.

        Returns
        -------
        self : DirichletAlphaNR
            Fitted estimator.
        """
        config = SolverConfig(
            max_iter=self.max_iter,
            tol=self.tol,
            max_halfstep=self.max_halfstep,
            recurrence=self.recurrence,
            backend=self.backend,
        )
        X = validate_data(self, X, dtype=np.float64)
        X = cast(NDArray[np.float64], X)

        if self.alpha_init is None:
            alpha_init = np.ones(X.shape[1], dtype=np.float64)
        else:
            alpha_init = _as_alpha(self.alpha_init)
            if alpha_init.shape[0] != X.shape[1]:
                raise DimensionMismatchError(
                    f"alpha_init has {alpha_init.shape[0]} entries but X has "
                    f"{X.shape[1]} topics"
                )

        result = solve_alpha_result(config, alpha_init, X)

        if not result.converged:
            warnings.warn(
                f"alpha Newton-Raphson did not converge after {result.n_iter} "
                f"iterations (last step norm {result.step_norms[-1]:.3e}).",
                ConvergenceWarning,
                stacklevel=2,
            )

        self.alpha_ = result.alpha
        self.n_iter_ = result.n_iter
        self.converged_ = result.converged
        self.step_norms_ = result.step_norms
        self.loglik_ = alpha_loglik(result.alpha, X)
        return self

    def score(self, X: ArrayLike, y: None = None) -> float:
        """Alpha log-likelihood of gamma under the fitted alpha."""
        check_is_fitted(self)
        X = validate_data(self, X, dtype=np.float64, reset=False)
        X = cast(NDArray[np.float64], X)
        return alpha_loglik(self.alpha_, X)


def compute_gradient(
    alpha: ArrayLike, gamma: ArrayLike | Iterable[ArrayLike]
) -> NDArray[np.float64]:
    """
    Gradient of the alpha log-likelihood.

    g_i = n (Psi(sum_j alpha_j) - Psi(alpha_i))
          + sum_d (Psi(gamma_d[i]) - Psi(sum_j gamma_d[j]))

    Raises `DimensionMismatchError` before computing anything if a gamma
    vector's length differs from alpha's.
    """
    alpha = _as_alpha(alpha)
    gamma_arr = _as_gamma(gamma, n_topics=alpha.shape[0])
    _check_positive_domain(alpha, "alpha")
    _check_positive_domain(gamma_arr, "gamma")
    stats = gamma_sufficient_statistics(gamma_arr)
    return _gradient_from_statistics(alpha, stats, gamma_arr.shape[0])


def compute_hessian_diagonal(
    alpha: NDArray[np.float64], n_docs: int
) -> NDArray[np.float64]:
    """n_docs * Psi'(alpha_i) for each topic."""
    return n_docs * trigamma(np.asarray(alpha, dtype=np.float64))


def compute_hessian_constant(alpha: NDArray[np.float64]) -> float:
    """-Psi'(sum_j alpha_j)"""
    return -float(trigamma(np.sum(alpha)))


def compute_alpha_quantities(
    alpha: NDArray[np.float64],
    sufficient_stats: NDArray[np.float64],
    n_docs: int,
    scale_constant: bool = True,
) -> AlphaQuantities:
    """
    Compute all quantities needed for one Newton-Raphson iteration.

    The returned Hessian is the negated Hessian of `alpha_loglik`,
    diag(n Psi'(alpha)) - n Psi'(sum alpha) 1 1^T. With
    `scale_constant=False` the rank-one term is left as -Psi'(sum alpha).
    """
    _check_positive_domain(alpha, "alpha")
    gradient = _gradient_from_statistics(alpha, sufficient_stats, n_docs)
    diagonal = compute_hessian_diagonal(alpha, n_docs)
    constant = compute_hessian_constant(alpha)
    if scale_constant:
        constant *= n_docs
    return AlphaQuantities(
        gradient=gradient,
        hessian=StructuredHessian(diagonal=diagonal, constant=constant),
    )


def gamma_sufficient_statistics(
    gamma: NDArray[np.float64], use_numba: bool = False
) -> NDArray[np.float64]:
    """
    s_i = sum_d (Psi(gamma_d[i]) - Psi(sum_j gamma_d[j]))

    Psi of each document's row sum is evaluated once per document.
    """
    psi_gamma = digamma(gamma)
    psi_gamma_sum = digamma(np.sum(gamma, axis=1))
    if use_numba:
        from ldaalpha._numba._solvers import sufficient_statistics

        return sufficient_statistics(
            np.ascontiguousarray(psi_gamma), np.ascontiguousarray(psi_gamma_sum)
        )
    return np.sum(psi_gamma - psi_gamma_sum[:, np.newaxis], axis=0)


def alpha_loglik(alpha: ArrayLike, gamma: ArrayLike | Iterable[ArrayLike]) -> float:
    """
    Alpha-dependent part of the LDA evidence lower bound.

    L(alpha) = n (log Gamma(sum alpha) - sum_i log Gamma(alpha_i))
               + sum_i (alpha_i - 1) s_i

    where s is `gamma_sufficient_statistics(gamma)`.
    """
    alpha = _as_alpha(alpha)
    gamma_arr = _as_gamma(gamma, n_topics=alpha.shape[0])
    _check_positive_domain(alpha, "alpha")
    _check_positive_domain(gamma_arr, "gamma")
    stats = gamma_sufficient_statistics(gamma_arr)
    n_docs = gamma_arr.shape[0]
    return float(
        n_docs * (log_gamma(np.sum(alpha)) - np.sum(log_gamma(alpha)))
        + np.sum((alpha - 1.0) * stats)
    )


def _gradient_from_statistics(
    alpha: NDArray[np.float64], sufficient_stats: NDArray[np.float64], n_docs: int
) -> NDArray[np.float64]:
    return n_docs * (digamma(np.sum(alpha)) - digamma(alpha)) + sufficient_stats


def _as_alpha(alpha: ArrayLike) -> NDArray[np.float64]:
    """Copy alpha into a float64 vector"""
    alpha = np.array(alpha, dtype=np.float64)
    if alpha.ndim != 1:
        raise ValueError(f"alpha must be 1-dimensional, got shape {alpha.shape}")
    if alpha.shape[0] == 0:
        raise ValueError("alpha must have at least one topic")
    return alpha


def _as_gamma(
    gamma: ArrayLike | Iterable[ArrayLike], n_topics: int
) -> NDArray[np.float64]:
    """Stack gamma into an (n_docs, n_topics) array, checking every member"""
    members = [np.asarray(member, dtype=np.float64) for member in gamma]
    if len(members) == 0:
        raise ValueError("gamma must contain at least one document")
    for d, member in enumerate(members):
        if member.ndim != 1 or member.shape[0] != n_topics:
            raise DimensionMismatchError(
                f"All members of gamma must have dimension {n_topics}, "
                f"document {d} has shape {member.shape}"
            )
    return np.vstack(members)


def _check_positive_domain(arr: NDArray[np.float64], name: str) -> None:
    # digamma and trigamma are only evaluated on (0, inf)
    if not np.all(np.isfinite(arr)):
        raise NumericDegeneracyError(f"{name} contains non-finite values")
    if np.any(arr <= 0):
        raise NumericDegeneracyError(
            f"{name} must be strictly positive, got minimum {np.min(arr)}"
        )
