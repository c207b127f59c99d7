"""
Special functions used by the alpha Newton-Raphson solver.

These forward to scipy.special and accept scalars or arrays. The domain of
interest is x > 0. For x <= 0 the values are whatever scipy returns: the poles
at 0 and the negative integers give inf or nan, and negative non-integers give
finite values of the analytic continuation. Nothing is clipped or coerced, so
callers that need the positive domain have to check it themselves.
"""

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy import special


def log_gamma(x: ArrayLike) -> float | NDArray[np.float64]:
    """Natural log of the absolute value of the Gamma function."""
    return special.gammaln(x)


def digamma(x: ArrayLike) -> float | NDArray[np.float64]:
    """First logarithmic derivative of the Gamma function, Psi(x)."""
    return special.digamma(x)


def trigamma(x: ArrayLike) -> float | NDArray[np.float64]:
    """Second logarithmic derivative of the Gamma function, Psi'(x)."""
    return special.polygamma(1, x)
