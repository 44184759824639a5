"""Unit tests for the time stepping schemes."""

import pytest
import jax.numpy as jnp
import numpy as np

from jax_stiff import NewtonRaphson, SDIRK2, SDIRK4


def decay_rhs(u, p, t):
    """du/dt = -u^2, exact solution u0 / (1 + u0 t)."""
    return -u ** 2


def integrate_fixed(method, n_steps, T=1.0):
    """
    Integrate decay_rhs on [0, T] with n_steps equal steps.

    The Newton matrix is rebuilt from the exact Jacobian at the start of
    every step.
    """
    u = jnp.array([1.0])
    t = 0.0
    h = T / n_steps

    def norm(x):
        return float(jnp.sqrt(jnp.mean(x ** 2))) / 1e-10

    for _ in range(n_steps):
        W = 1.0 / (h * method.gamma) + 2.0 * u
        attempt = method.attempt(
            decay_rhs, t, u, h, None, lambda v: v, lambda b, W=W: b / W, norm
        )
        u = attempt.u
        t += h
    return u


def step_error(method, h):
    u = jnp.array([1.0])
    W = 1.0 / (h * method.gamma) + 2.0 * u
    norm = lambda x: float(jnp.sqrt(jnp.mean(x ** 2))) / 1e-10
    attempt = method.attempt(decay_rhs, 0.0, u, h, None, lambda v: v, lambda b: b / W, norm)
    return float(jnp.abs(attempt.error[0]))


@pytest.fixture(params=[SDIRK2, SDIRK4])
def method(request):
    return request.param(root_finder=NewtonRaphson(maxiter=20))


class TestTableau:

    def test_stiffly_accurate(self, method):
        assert np.allclose(method.b, method.A[-1])
        assert method.c[-1] == pytest.approx(1.0)

    def test_singly_diagonal(self, method):
        assert np.allclose(np.diag(method.A), method.gamma)
        assert np.allclose(np.triu(method.A, 1), 0.0)

    def test_consistency(self, method):
        assert method.b.sum() == pytest.approx(1.0)
        assert method.b_hat.sum() == pytest.approx(1.0)
        assert np.allclose(method.c, method.A.sum(axis=1))

    def test_error_weights(self, method):
        # sum_j e_j z_j equals h * sum_j (b_j - b_hat_j) k_j for z = h A k
        k = np.linspace(1.0, 2.0, method.stages)
        z = method.A @ k
        assert method.error_weights @ z == pytest.approx((method.b - method.b_hat) @ k)

    def test_sdirk4_order_conditions(self):
        scheme = SDIRK4()
        A, b, b_hat, c = scheme.A, scheme.b, scheme.b_hat, scheme.c
        # Order 4 for b
        assert b @ c == pytest.approx(1 / 2)
        assert b @ c**2 == pytest.approx(1 / 3)
        assert b @ (A @ c) == pytest.approx(1 / 6)
        assert b @ c**3 == pytest.approx(1 / 4)
        assert b @ (c * (A @ c)) == pytest.approx(1 / 8)
        assert b @ (A @ c**2) == pytest.approx(1 / 12)
        assert b @ (A @ (A @ c)) == pytest.approx(1 / 24)
        # Order 3 for the embedded solution
        assert b_hat @ c == pytest.approx(1 / 2)
        assert b_hat @ c**2 == pytest.approx(1 / 3)
        assert b_hat @ (A @ c) == pytest.approx(1 / 6)

    def test_sdirk2_order_conditions(self):
        scheme = SDIRK2()
        assert scheme.b @ scheme.c == pytest.approx(1 / 2)
        assert scheme.gamma == pytest.approx(1 - np.sqrt(2) / 2)


class TestConvergence:

    def test_global_order(self, method):
        # Error ratio for halved step sizes approaches 2^order
        n = 16 if method.order == 4 else 20
        exact = 1.0 / (1.0 + 1.0)
        err_coarse = abs(float(integrate_fixed(method, n)[0]) - exact)
        err_fine = abs(float(integrate_fixed(method, 2 * n)[0]) - exact)
        ratio = err_coarse / err_fine
        expected = 2.0 ** method.order
        assert 0.6 * expected < ratio < 1.4 * expected

    def test_error_estimate_order(self, method):
        # Local error estimate scales like h^(error_order + 1)
        ratio = step_error(method, 0.1) / step_error(method, 0.05)
        expected = 2.0 ** (method.error_order + 1)
        assert 0.5 * expected < ratio < 2.0 * expected

    def test_attempt_statistics(self, method):
        u = jnp.array([1.0])
        h = 0.1
        W = 1.0 / (h * method.gamma) + 2.0 * u
        attempt = method.attempt(
            decay_rhs, 0.0, u, h, None, lambda v: v, lambda b: b / W,
            lambda x: float(jnp.sqrt(jnp.mean(x ** 2))) / 1e-8,
        )
        assert attempt.iterations >= method.stages
        assert 0.0 <= attempt.rate < 1.0
        assert float(attempt.u[0]) == pytest.approx(1.0 / 1.1, rel=1e-3)

    def test_mass_matrix_scaling(self):
        # M u' = -u with M = 2 is the same problem as u' = -u / 2
        scheme = SDIRK4()
        h = 0.2
        u = jnp.array([1.0])
        norm = lambda x: float(jnp.sqrt(jnp.mean(x ** 2))) / 1e-10

        W_mass = 2.0 / (h * scheme.gamma) + 1.0
        with_mass = scheme.attempt(
            lambda u, p, t: -u, 0.0, u, h, None, lambda v: 2.0 * v,
            lambda b: b / W_mass, norm,
        )
        W_plain = 1.0 / (h * scheme.gamma) + 0.5
        plain = scheme.attempt(
            lambda u, p, t: -0.5 * u, 0.0, u, h, None, lambda v: v,
            lambda b: b / W_plain, norm,
        )
        assert jnp.allclose(with_mass.u, plain.u, atol=1e-12)
        assert jnp.allclose(with_mass.u, jnp.exp(-0.5 * h), atol=1e-6)
