class DimensionMismatchError(ValueError):
    """Raised when alpha, gamma or step vectors disagree on the number of topics."""


class NumericDegeneracyError(FloatingPointError):
    """
    Raised when a Newton-Raphson quantity is undefined.

    Covers inputs outside the positive domain of digamma/trigamma, zero Hessian
    diagonal entries, a zero Sherman-Morrison denominator, non-finite gradients
    or steps, and updates that leave the positive orthant.
    """
