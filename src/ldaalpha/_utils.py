import numpy as np

from dataclasses import dataclass, field
from numpy.typing import NDArray


@dataclass(frozen=True)
class StructuredHessian:
    """Matrix of the form diag(diagonal) + constant * 1 1^T"""

    diagonal: NDArray[np.float64]  # (n_topics,)
    constant: float  # rank-one coefficient

    def to_dense(self) -> NDArray[np.float64]:
        """Materialize the (n_topics, n_topics) matrix. Only for testing."""
        k = self.diagonal.shape[0]
        return np.diag(self.diagonal) + self.constant * np.ones((k, k))


@dataclass
class AlphaResult:
    """Output from the alpha Newton-Raphson solve"""

    alpha: NDArray[np.float64]  # (n_topics,) re-estimated alpha
    n_iter: int  # number of updates applied
    converged: bool  # whether the step norm dropped below tol
    step_norms: list[float] = field(default_factory=list)  # norm of each step


@dataclass
class AlphaQuantities:
    """Quantities needed for one Newton-Raphson iteration"""

    gradient: NDArray[np.float64]  # (n_topics,) d loglik / d alpha
    hessian: StructuredHessian  # negated Hessian, diag(n Psi'(alpha)) + z 1 1^T
