import numpy as np
from numba import njit
from numpy.typing import NDArray


@njit(fastmath=True, cache=True)
def structured_step(
    diagonal: NDArray[np.float64],
    constant: float,
    gradient: NDArray[np.float64],
) -> tuple[NDArray[np.float64], int]:
    """
    Solve (diag(diagonal) + constant * 1 1^T) step = gradient in O(k).

    Returns the step and a status code: 0 on success, 1 for a zero diagonal
    entry, 2 for a zero Sherman-Morrison denominator.
    """
    k = diagonal.shape[0]
    step = np.zeros(k, dtype=np.float64)

    num_sum = 0.0
    den_sum = 0.0
    for j in range(k):
        h_j = diagonal[j]
        if h_j == 0.0:
            return step, 1
        num_sum += gradient[j] / h_j
        den_sum += 1.0 / h_j

    # constant == 0 means 1/z is infinite, so the correction vanishes
    c = 0.0
    if constant != 0.0:
        den_sum += 1.0 / constant
        if den_sum == 0.0:
            return step, 2
        c = num_sum / den_sum

    for i in range(k):
        step[i] = (gradient[i] - c) / diagonal[i]
    return step, 0


@njit(fastmath=True, cache=True)
def sufficient_statistics(
    psi_gamma: NDArray[np.float64],
    psi_gamma_sum: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    s_i = sum_d (Psi(gamma_d[i]) - Psi(sum_j gamma_d[j]))

    psi_gamma is the (n_docs, n_topics) digamma of gamma, psi_gamma_sum the
    (n_docs,) digamma of each document's row sum.
    """
    n = psi_gamma.shape[0]
    k = psi_gamma.shape[1]
    stats = np.zeros(k, dtype=np.float64)
    for d in range(n):
        doc_term = psi_gamma_sum[d]
        for i in range(k):
            stats[i] += psi_gamma[d, i] - doc_term
    return stats
