import logging

import numpy as np
import pytest

from ldaalpha._solvers import newton_raphson, structured_step
from ldaalpha._utils import AlphaQuantities, StructuredHessian
from ldaalpha.exceptions import DimensionMismatchError, NumericDegeneracyError


def _quadratic_quantities(target, hessian, calls=None):
    """Quantities of -0.5 (a - target)' H (a - target), whose Newton step lands on target."""
    H = hessian.to_dense()

    def compute(alpha):
        if calls is not None:
            calls.append(alpha.copy())
        return AlphaQuantities(gradient=H @ (target - alpha), hessian=hessian)

    return compute


class TestStructuredStep:
    def test_matches_dense_solve(self):
        rng = np.random.default_rng(0)
        k = 6
        hessian = StructuredHessian(diagonal=rng.uniform(1.0, 5.0, k), constant=-0.1)
        g = rng.standard_normal(k)

        step = structured_step(hessian.diagonal, hessian.constant, g)

        np.testing.assert_allclose(
            step, np.linalg.solve(hessian.to_dense(), g), rtol=1e-10
        )

    def test_positive_constant_matches_dense_solve(self):
        h = np.array([0.5, 2.0, 3.0])
        z = 4.0
        g = np.array([1.0, -2.0, 0.25])
        H = np.diag(h) + z * np.ones((3, 3))

        np.testing.assert_allclose(
            structured_step(h, z, g), np.linalg.solve(H, g), rtol=1e-12
        )

    def test_single_topic_is_scalar_newton_step(self):
        # k=1: H = h + z, so the step is g / (h + z)
        step = structured_step(np.array([2.0]), -0.5, np.array([3.0]))
        np.testing.assert_allclose(step, [3.0 / 1.5], rtol=1e-14)

    def test_zero_constant_is_diagonal_solve(self):
        h = np.array([2.0, 4.0, 8.0])
        g = np.array([1.0, 1.0, 1.0])
        np.testing.assert_allclose(structured_step(h, 0.0, g), g / h, rtol=1e-14)

    def test_dimension_mismatch(self):
        with pytest.raises(DimensionMismatchError, match="same dimension"):
            structured_step(np.ones(3), -1.0, np.ones(4))

    def test_zero_diagonal_entry(self):
        with pytest.raises(NumericDegeneracyError, match="zero entry"):
            structured_step(np.array([1.0, 0.0]), -1.0, np.ones(2))

    def test_zero_denominator(self):
        # 1/z + sum(1/h) = -2 + 2 = 0
        with pytest.raises(NumericDegeneracyError, match="denominator"):
            structured_step(np.array([1.0, 1.0]), -0.5, np.ones(2))

    def test_non_finite_gradient(self):
        with pytest.raises(NumericDegeneracyError, match="non-finite"):
            structured_step(np.ones(2), -1.0, np.array([np.nan, 1.0]))

    def test_does_not_modify_inputs(self):
        h = np.array([2.0, 3.0])
        g = np.array([1.0, -1.0])
        structured_step(h, -0.2, g)
        np.testing.assert_array_equal(h, [2.0, 3.0])
        np.testing.assert_array_equal(g, [1.0, -1.0])


class TestNewtonRaphson:
    def test_quadratic_converges_in_one_step(self):
        hessian = StructuredHessian(diagonal=np.array([3.0, 2.0, 4.0]), constant=-0.2)
        target = np.array([2.0, 0.5, 1.5])
        alpha0 = np.array([1.0, 1.0, 1.0])

        result = newton_raphson(_quadratic_quantities(target, hessian), alpha0)

        assert result.converged
        assert result.n_iter == 1
        assert len(result.step_norms) == 2
        assert result.step_norms[-1] < 1e-12
        np.testing.assert_allclose(result.alpha, target, rtol=1e-12)
        np.testing.assert_array_equal(alpha0, [1.0, 1.0, 1.0])

    def test_exhausts_iteration_cap(self):
        hessian = StructuredHessian(diagonal=np.ones(2), constant=0.0)

        def constant_gradient(alpha):
            return AlphaQuantities(gradient=np.ones(2), hessian=hessian)

        result = newton_raphson(constant_gradient, np.ones(2), max_iter=3)

        assert not result.converged
        assert result.n_iter == 3
        np.testing.assert_allclose(result.alpha, [4.0, 4.0])

    def test_converged_at_start_applies_no_update(self):
        hessian = StructuredHessian(diagonal=np.ones(2), constant=-0.1)
        target = np.array([1.0, 2.0])

        result = newton_raphson(_quadratic_quantities(target, hessian), target)

        assert result.converged
        assert result.n_iter == 0
        np.testing.assert_array_equal(result.alpha, target)

    def test_step_halving_keeps_alpha_positive(self):
        hessian = StructuredHessian(diagonal=np.ones(2), constant=0.0)
        target = np.array([-1.0, 1.0])

        # full step lands on -1, then 0, then 0.5
        result = newton_raphson(
            _quadratic_quantities(target, hessian), np.array([1.0, 1.0]), max_iter=1
        )

        np.testing.assert_allclose(result.alpha, [0.5, 1.0])

    def test_without_halving_leaving_positive_orthant_fails(self):
        hessian = StructuredHessian(diagonal=np.ones(2), constant=0.0)
        target = np.array([-1.0, 1.0])

        with pytest.raises(NumericDegeneracyError, match="positive orthant"):
            newton_raphson(
                _quadratic_quantities(target, hessian),
                np.array([1.0, 1.0]),
                max_halfstep=0,
            )

    def test_legacy_evaluates_once_and_subtracts(self):
        hessian = StructuredHessian(diagonal=np.array([4.0, 4.0]), constant=0.0)
        target = np.array([0.5, 0.0])
        alpha0 = np.array([1.0, 1.0])
        calls = []

        result = newton_raphson(
            _quadratic_quantities(target, hessian, calls),
            alpha0,
            max_iter=2,
            tol=0.0,
            recurrence="legacy",
        )

        assert len(calls) == 1
        np.testing.assert_array_equal(calls[0], alpha0)
        # step0 = target - alpha0 = [-0.5, -1], subtracted twice
        np.testing.assert_allclose(result.alpha, [2.0, 3.0])
        assert result.n_iter == 2
        assert not result.converged

    def test_legacy_leaving_positive_orthant_fails(self):
        hessian = StructuredHessian(diagonal=np.ones(2), constant=0.0)
        target = np.array([2.0, 3.0])

        with pytest.raises(NumericDegeneracyError, match="positive orthant"):
            newton_raphson(
                _quadratic_quantities(target, hessian),
                np.ones(2),
                max_iter=5,
                recurrence="legacy",
            )

    def test_logs_convergence(self, caplog):
        hessian = StructuredHessian(diagonal=np.array([1.0, 2.0]), constant=-0.1)
        target = np.array([2.0, 2.0])

        with caplog.at_level(logging.INFO, logger="ldaalpha._solvers"):
            newton_raphson(_quadratic_quantities(target, hessian), np.ones(2))

        assert "converged after 1 steps" in caplog.text

    def test_logs_exhaustion(self, caplog):
        hessian = StructuredHessian(diagonal=np.ones(2), constant=0.0)

        def constant_gradient(alpha):
            return AlphaQuantities(gradient=np.ones(2), hessian=hessian)

        with caplog.at_level(logging.WARNING, logger="ldaalpha._solvers"):
            newton_raphson(constant_gradient, np.ones(2), max_iter=2)

        assert "did not converge after 2 steps" in caplog.text
