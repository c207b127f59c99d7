"""
Benchmark: O(k) structured Newton-Raphson step vs dense solve.

Measures scaling behavior as the number of topics k increases, for the numpy
and numba implementations of the Sherman-Morrison step and for
numpy.linalg.solve on the materialized k x k Hessian.

Run with: python benchmark_step.py
"""

import argparse
import json
import time
from typing import Callable

import numpy as np

from ldaalpha import NUMBA_AVAILABLE
from ldaalpha._solvers import structured_step, structured_step_numba
from ldaalpha.dirichlet import compute_alpha_quantities, gamma_sufficient_statistics

# -----------------------------------------------------------------------------
# Benchmark parameters
# -----------------------------------------------------------------------------
N_DOCS = 1000
K_VALUES = [10, 50, 100, 500, 1000, 2000]
N_RUNS = 20
BASE_SEED = 0

# Tolerance for checking agreement between the step implementations
STEP_TOL = 1e-8


# -----------------------------------------------------------------------------
# Data generation
# -----------------------------------------------------------------------------
def make_benchmark_data(
    n: int, k: int, base_seed: int = 0
) -> tuple[np.ndarray, np.ndarray]:
    """Generate a synthetic alpha and gamma matrix.

    Parameters
    ----------
    n : int
        Number of documents
    k : int
        Number of topics
    base_seed : int
        Base random seed (combined with k for reproducibility)

    Returns
    -------
    alpha : ndarray of shape (k,)
        Starting alpha
    gamma : ndarray of shape (n, k)
        Per-document variational parameters
    """
    rng = np.random.default_rng(base_seed * 1000 + k)
    alpha = rng.uniform(0.1, 2.0, size=k)
    # gamma = alpha + expected topic counts of a 100-word document
    theta = rng.dirichlet(np.full(k, 0.5), size=n)
    gamma = alpha + 100.0 * theta
    return alpha, gamma


# -----------------------------------------------------------------------------
# Timers
# -----------------------------------------------------------------------------
def dense_step(diagonal: np.ndarray, constant: float, gradient: np.ndarray) -> np.ndarray:
    k = diagonal.shape[0]
    H = np.diag(diagonal) + constant * np.ones((k, k))
    return np.linalg.solve(H, gradient)


def time_step(
    solver: Callable[[np.ndarray, float, np.ndarray], np.ndarray],
    diagonal: np.ndarray,
    constant: float,
    gradient: np.ndarray,
    n_runs: int = N_RUNS,
) -> tuple[np.ndarray, np.ndarray]:
    times = []
    for _ in range(n_runs):
        start = time.perf_counter()
        step = solver(diagonal, constant, gradient)
        times.append(time.perf_counter() - start)
    return np.array(times), step


def warmup_numba() -> None:
    """Compile the numba kernels before timing."""
    structured_step_numba(np.ones(3), -0.1, np.ones(3))


# -----------------------------------------------------------------------------
# Main
# -----------------------------------------------------------------------------
def run(k_values: list[int], n_docs: int, n_runs: int) -> dict[int, dict[str, float]]:
    solvers: dict[str, Callable] = {"structured": structured_step, "dense": dense_step}
    if NUMBA_AVAILABLE:
        warmup_numba()
        solvers["structured_numba"] = structured_step_numba

    results = {}
    for k in k_values:
        alpha, gamma = make_benchmark_data(n_docs, k, BASE_SEED)
        stats = gamma_sufficient_statistics(gamma)
        q = compute_alpha_quantities(alpha, stats, n_docs)

        row = {}
        reference = None
        for name, solver in solvers.items():
            times, step = time_step(
                solver, q.hessian.diagonal, q.hessian.constant, q.gradient, n_runs
            )
            if reference is None:
                reference = step
            else:
                diff = np.max(np.abs(step - reference)) / np.max(np.abs(reference))
                if diff > STEP_TOL:
                    raise AssertionError(
                        f"k={k} ({name}): relative step diff {diff:.2e} > {STEP_TOL}"
                    )
            row[name] = float(np.median(times))
        results[k] = row

        timings = "  ".join(f"{name}={t * 1e6:10.1f}us" for name, t in row.items())
        print(f"k={k:5d}  {timings}")
    return results


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--n-docs", type=int, default=N_DOCS)
    parser.add_argument("--n-runs", type=int, default=N_RUNS)
    parser.add_argument("--k", type=int, nargs="+", default=K_VALUES)
    parser.add_argument("--json", type=str, default=None, help="write results here")
    args = parser.parse_args()

    results = run(args.k, args.n_docs, args.n_runs)
    if args.json is not None:
        with open(args.json, "w") as f:
            json.dump(results, f, indent=2)


if __name__ == "__main__":
    main()
