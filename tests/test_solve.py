"""Unit/integration tests for solve_ivp."""

import pytest
import jax.numpy as jnp

from jax_stiff import (
    IntegratorConfig,
    ODEProblem,
    SDIRK2,
    NewtonRaphson,
    Solution,
    solve_ivp,
)


@pytest.fixture
def simple_dynamical_system():
    """
    ODE: dy/dt = 2y (sqrt(2) - y)

    This has an attractive fixed point at y=sqrt(2) and an unstable fixed point
    at y=0.

    Initial condition: y(t=0) = 1
    Expected solution: y(t=t') = sqrt(2), where t' >> 0.
    """
    fun = lambda y, p, t: 2.0 * y * (jnp.sqrt(2.0) - y)
    jac = lambda y, p, t: jnp.diag(2.0 * (jnp.sqrt(2.0) - 2.0 * y))
    y0 = jnp.ones((4,))
    soln = jnp.full_like(y0, jnp.sqrt(2.0))
    return fun, jac, y0, soln


class TestSolveIVP:

    def test_fixed_point(self, simple_dynamical_system):
        fun, jac, y0, expected = simple_dynamical_system
        problem = ODEProblem(fun, y0, (0.0, 20.0), jac=jac)
        sol = solve_ivp(problem, config=IntegratorConfig(rtol=1e-8, atol=1e-10))
        assert isinstance(sol, Solution)
        assert sol.status == "success"
        assert jnp.allclose(sol.u[-1], expected, atol=1e-6)

    def test_trajectory_shapes(self, simple_dynamical_system):
        fun, _, y0, _ = simple_dynamical_system
        problem = ODEProblem(fun, y0, (0.0, 1.0))
        sol = solve_ivp(problem)
        assert sol.u.shape == (sol.t.shape[0], 4)
        assert float(sol.t[0]) == 0.0
        assert jnp.array_equal(sol.u[0], y0)
        assert len(sol.records) == sol.t.shape[0]
        assert sol.stats.naccept == sol.t.shape[0] - 1

    def test_callback_stops(self, simple_dynamical_system):
        fun, _, y0, _ = simple_dynamical_system
        problem = ODEProblem(fun, y0, (0.0, 10.0))
        seen = []

        def callback(record):
            seen.append(record.t)
            return record.t > 1.0

        sol = solve_ivp(problem, callback=callback)
        assert sol.status == "stopped"
        assert 1.0 < float(sol.t[-1]) < 10.0
        assert seen[-1] == float(sol.t[-1])
        assert len(seen) == sol.stats.naccept

    def test_custom_newton_settings(self, simple_dynamical_system):
        fun, jac, y0, expected = simple_dynamical_system
        problem = ODEProblem(fun, y0, (0.0, 20.0), jac=jac)
        method = SDIRK2(root_finder=NewtonRaphson(maxiter=10, kappa=1e-3))
        sol = solve_ivp(problem, method=method, config=IntegratorConfig(rtol=1e-6, atol=1e-8))
        assert jnp.allclose(sol.u[-1], expected, atol=1e-5)

    def test_verbose(self, simple_dynamical_system, capsys):
        fun, _, y0, _ = simple_dynamical_system
        problem = ODEProblem(fun, y0, (0.0, 1.0))
        solve_ivp(problem, verbose=True)
        out = capsys.readouterr().out
        assert "SDIRK4" in out
        assert "accepted" in out

    def test_without_jit(self, simple_dynamical_system):
        fun, _, y0, _ = simple_dynamical_system
        problem = ODEProblem(fun, y0, (0.0, 1.0))
        jitted = solve_ivp(problem, config=IntegratorConfig(rtol=1e-6, atol=1e-8))
        plain = solve_ivp(problem, config=IntegratorConfig(rtol=1e-6, atol=1e-8, jit=False))
        assert jnp.allclose(jitted.u[-1], plain.u[-1], rtol=1e-6)
