"""Unit tests for problem definition and configuration."""

import pytest
import jax.numpy as jnp
import numpy as np
import scipy.sparse as sp

from jax_stiff import IntegratorConfig, ODEProblem, SparsityPattern, Tridiagonal


def rhs(u, p, t):
    return -u


class TestODEProblem:

    def test_integer_state_promoted(self):
        problem = ODEProblem(rhs, [1, 2, 3], (0, 1))
        assert jnp.issubdtype(problem.u0.dtype, jnp.floating)
        assert problem.tspan == (0.0, 1.0)
        assert problem.n == 3

    def test_state_must_be_vector(self):
        with pytest.raises(ValueError):
            ODEProblem(rhs, jnp.ones((2, 2)), (0.0, 1.0))

    def test_empty_interval(self):
        with pytest.raises(ValueError):
            ODEProblem(rhs, jnp.ones(2), (1.0, 1.0))

    def test_mass_shape(self):
        with pytest.raises(ValueError):
            ODEProblem(rhs, jnp.ones(2), (0.0, 1.0), mass=jnp.eye(3))

    def test_singular_mass_is_dae(self):
        problem = ODEProblem(rhs, jnp.ones(3), (0.0, 1.0),
                             mass=sp.diags([1.0, 0.0, 1.0]))
        assert problem.is_dae
        assert problem.algebraic_rows.tolist() == [1]

    def test_rank_deficient_mass_is_dae(self):
        mass = jnp.array([[1.0, 1.0], [1.0, 1.0]])
        problem = ODEProblem(rhs, jnp.ones(2), (0.0, 1.0), mass=mass)
        assert problem.algebraic_rows.size == 0
        assert problem.is_dae

    def test_identity_mass_is_ode(self):
        problem = ODEProblem(rhs, jnp.ones(2), (0.0, 1.0), mass=jnp.eye(2))
        assert not problem.is_dae

    def test_mass_classified_once(self, monkeypatch):
        calls = []
        matrix_rank = np.linalg.matrix_rank

        def counting_rank(M):
            calls.append(M.shape)
            return matrix_rank(M)

        monkeypatch.setattr(np.linalg, "matrix_rank", counting_rank)
        mass = sp.csc_matrix(np.array([[1.0, 1.0], [1.0, 1.0]]))
        problem = ODEProblem(rhs, jnp.ones(2), (0.0, 1.0), mass=mass)
        for _ in range(3):
            assert problem.is_dae
            assert problem.algebraic_rows.size == 0
        assert len(calls) == 1

    def test_prototype_converted(self):
        problem = ODEProblem(rhs, jnp.ones(4), (0.0, 1.0),
                             jac_prototype=np.eye(4, dtype=bool))
        assert isinstance(problem.pattern, SparsityPattern)
        assert problem.pattern.nnz == 4

    def test_prototype_shape(self):
        with pytest.raises(ValueError):
            ODEProblem(rhs, jnp.ones(4), (0.0, 1.0), jac_prototype=Tridiagonal(5))

    def test_colorvec_requires_prototype(self):
        with pytest.raises(ValueError):
            ODEProblem(rhs, jnp.ones(4), (0.0, 1.0), colorvec=[0, 1, 2, 0])

    def test_invalid_colorvec(self):
        with pytest.raises(ValueError):
            ODEProblem(rhs, jnp.ones(4), (0.0, 1.0),
                       jac_prototype=Tridiagonal(4), colorvec=[0, 1, 1, 0])

    def test_valid_colorvec_normalized(self):
        problem = ODEProblem(rhs, jnp.ones(4), (0.0, 1.0),
                             jac_prototype=Tridiagonal(4), colorvec=[5, 6, 7, 5])
        assert problem.colorvec.tolist() == [0, 1, 2, 0]


class TestIntegratorConfig:

    def test_defaults(self):
        config = IntegratorConfig()
        assert config.rtol == 1e-3
        assert config.atol == 1e-6
        assert config.theta_max == 0.1

    @pytest.mark.parametrize("kwargs", [
        {"rtol": -1.0},
        {"safety": 1.5},
        {"min_factor": 1.5},
        {"max_factor": 0.5},
        {"hold_factor": 0.9},
        {"max_rejections": 0},
        {"h0": 0.0},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            IntegratorConfig(**kwargs)

    def test_frozen(self):
        config = IntegratorConfig()
        with pytest.raises(AttributeError):
            config.rtol = 1e-6
