"""
Unit tests for the linear solvers and preconditioners.
"""

import pytest
import jax.numpy as jnp
import numpy as np
import scipy.sparse as sp

from jax_stiff import (
    Direct,
    DirectBanded,
    DirectDense,
    DirectSparse,
    FunctionPreconditioner,
    GMRES,
    IncompleteLU,
    JacobiPreconditioner,
    LinearSolverFailure,
    SingularJacobian,
    Tridiagonal,
    BandedPattern,
)
from jax_stiff.linsolvers import LinearSolverProtocol, PreconditionerProtocol
from jax_stiff.linsolvers.direct import banded_storage
from jax_stiff.linsolvers.operator import NewtonMatrix


@pytest.fixture
def banded_system(rng):
    """Newton matrix with a banded sparse Jacobian (lower=2, upper=1)."""
    n = 40
    pattern = BandedPattern(n, 2, 1)
    values = rng.standard_normal(pattern.nnz)
    J = pattern.to_csc(values)
    W = NewtonMatrix(J, dtgamma=0.05, n=n, bandwidths=(2, 1))
    b = jnp.asarray(rng.standard_normal(n))
    return W, b


@pytest.fixture
def dense_system(rng):
    n = 25
    J = jnp.asarray(rng.standard_normal((n, n)))
    W = NewtonMatrix(J, dtgamma=0.1, n=n)
    b = jnp.asarray(rng.standard_normal(n))
    return W, b


def reference_solve(W, b):
    return np.linalg.solve(np.asarray(W.dense()), np.asarray(b))


class TestNewtonMatrix:

    def test_matvec_matches_dense(self, dense_system, rng):
        W, _ = dense_system
        v = jnp.asarray(rng.standard_normal(W.n))
        assert jnp.allclose(W.matvec(v), W.dense() @ v)

    def test_mass_matrix(self):
        M = sp.diags([1.0, 1.0, 0.0]).tocsc()
        J = -jnp.eye(3)
        W = NewtonMatrix(J, dtgamma=0.5, n=3, mass=M)
        assert np.allclose(np.asarray(W.dense()), np.diag([3.0, 3.0, 1.0]))
        assert np.allclose(W.sparse().toarray(), np.diag([3.0, 3.0, 1.0]))
        assert np.allclose(W.diagonal(), [3.0, 3.0, 1.0])

    def test_operator_not_materialized(self):
        W = NewtonMatrix(lambda v: -v, dtgamma=1.0, n=3)
        assert not W.materialized
        assert jnp.allclose(W.matvec(jnp.ones(3)), 2.0 * jnp.ones(3))
        with pytest.raises(TypeError):
            W.dense()


class TestDirect:

    def test_dense(self, dense_system):
        W, b = dense_system
        solver = DirectDense()
        solver.update(W)
        assert np.allclose(np.asarray(solver(W, b)), reference_solve(W, b))

    def test_banded(self, banded_system):
        W, b = banded_system
        solver = DirectBanded()
        solver.update(W)
        assert np.allclose(np.asarray(solver(W, b)), reference_solve(W, b))

    def test_sparse(self, banded_system):
        W, b = banded_system
        solver = DirectSparse()
        solver.update(W)
        assert np.allclose(np.asarray(solver(W, b)), reference_solve(W, b))

    def test_factorization_reused(self, dense_system, rng):
        W, b = dense_system
        solver = DirectDense()
        solver.update(W)
        # Solving with a different right-hand side does not refactorize
        b2 = jnp.asarray(rng.standard_normal(W.n))
        assert np.allclose(np.asarray(solver(W, b2)), reference_solve(W, b2))

    def test_banded_storage_layout(self):
        A = sp.csc_matrix(np.array([
            [1.0, 2.0, 0.0],
            [3.0, 4.0, 5.0],
            [0.0, 6.0, 7.0],
        ]))
        ab = banded_storage(A, 1, 1)
        assert ab.shape == (4, 3)
        # Main diagonal lives on row lower + upper
        assert np.allclose(ab[2], [1.0, 4.0, 7.0])
        assert np.allclose(ab[1, 1:], [2.0, 5.0])
        assert np.allclose(ab[3, :2], [3.0, 6.0])

    def test_banded_storage_rejects_out_of_band(self):
        A = sp.csc_matrix(np.eye(4) + np.eye(4, k=3))
        with pytest.raises(ValueError):
            banded_storage(A, 1, 1)

    @pytest.mark.parametrize("fixture, kind", [
        ("dense_system", DirectDense),
        ("banded_system", DirectBanded),
    ])
    def test_select(self, request, fixture, kind):
        W, b = request.getfixturevalue(fixture)
        solver = Direct()
        solver.update(W)
        assert isinstance(solver.impl, kind)
        assert np.allclose(np.asarray(solver(W, b)), reference_solve(W, b))

    def test_select_sparse_without_band(self, rng):
        n = 10
        J = sp.random(n, n, density=0.3, random_state=1, format="csc") + sp.identity(n)
        W = NewtonMatrix(sp.csc_matrix(J), dtgamma=0.1, n=n)
        assert Direct.select(W) is DirectSparse

    def test_matrix_free_rejected(self):
        W = NewtonMatrix(lambda v: v, dtgamma=1.0, n=3)
        with pytest.raises(TypeError):
            Direct().update(W)
        with pytest.raises(TypeError):
            DirectDense().update(W)

    @pytest.mark.parametrize("solver_cls", [DirectDense, DirectSparse, DirectBanded])
    def test_singular(self, solver_cls):
        # W = I/dtgamma - J with a zero first row
        n = 4
        dtgamma = 0.5
        J = np.zeros((n, n))
        J[0, 0] = 1.0 / dtgamma
        J[1, 1] = -1.0
        J[2, 2] = -1.0
        J[3, 3] = -1.0
        J = sp.csc_matrix(J) if solver_cls is not DirectDense else jnp.asarray(J)
        W = NewtonMatrix(J, dtgamma=dtgamma, n=n, bandwidths=(0, 0))
        with pytest.raises(SingularJacobian):
            solver_cls().update(W)


class TestGMRES:

    def test_unpreconditioned(self, banded_system):
        W, b = banded_system
        solver = GMRES(tol=1e-10, restart=40, maxiter=20)
        solver.update(W)
        assert np.allclose(np.asarray(solver(W, b)), reference_solve(W, b), atol=1e-7)

    @pytest.mark.parametrize("side", ["left", "right"])
    def test_jacobi(self, banded_system, side):
        W, b = banded_system
        solver = GMRES(tol=1e-10, restart=40, maxiter=20,
                       preconditioner=JacobiPreconditioner(), side=side)
        solver.update(W)
        assert np.allclose(np.asarray(solver(W, b)), reference_solve(W, b), atol=1e-7)

    @pytest.mark.parametrize("side", ["left", "right"])
    def test_incomplete_lu(self, banded_system, side):
        W, b = banded_system
        solver = GMRES(tol=1e-10, preconditioner=IncompleteLU(), side=side)
        solver.update(W)
        assert np.allclose(np.asarray(solver(W, b)), reference_solve(W, b), atol=1e-7)

    def test_function_preconditioner(self, banded_system):
        W, b = banded_system
        updates = []
        P = FunctionPreconditioner(
            lambda v: np.asarray(v) / W.diagonal(),
            update=updates.append,
        )
        solver = GMRES(tol=1e-10, restart=40, maxiter=20, preconditioner=P)
        solver.update(W)
        assert updates == [W]
        assert np.allclose(np.asarray(solver(W, b)), reference_solve(W, b), atol=1e-7)

    def test_matrix_free_operator(self):
        n = 20
        d = jnp.linspace(1.0, 2.0, n)
        W = NewtonMatrix(lambda v: -d * v, dtgamma=1.0, n=n)
        b = jnp.ones(n)
        x = GMRES(tol=1e-12, restart=n)(W, b)
        assert jnp.allclose(x, 1.0 / (1.0 + d))

    def test_failure_raises(self, rng):
        n = 50
        J = jnp.asarray(rng.standard_normal((n, n)))
        W = NewtonMatrix(J, dtgamma=1.0, n=n)
        b = jnp.asarray(rng.standard_normal(n))
        solver = GMRES(tol=1e-14, restart=2, maxiter=1)
        with pytest.raises(LinearSolverFailure) as excinfo:
            solver(W, b)
        assert excinfo.value.residual > 1e-14

    def test_invalid_side(self):
        with pytest.raises(ValueError):
            GMRES(side="middle")


class TestPreconditioners:

    def test_jacobi_zero_diagonal(self):
        W = NewtonMatrix(jnp.eye(3), dtgamma=1.0, n=3)
        with pytest.raises(SingularJacobian):
            JacobiPreconditioner().update(W)

    def test_ilu_exact_for_tridiagonal(self, rng):
        # No fill-in: ILU with drop_tol 0 is the exact LU
        n = 15
        pattern = Tridiagonal(n)
        J = pattern.to_csc(rng.standard_normal(pattern.nnz))
        W = NewtonMatrix(J, dtgamma=0.01, n=n, bandwidths=(1, 1))
        P = IncompleteLU(drop_tol=0.0)
        P.update(W)
        b = rng.standard_normal(n)
        assert np.allclose(P.apply(b), reference_solve(W, b))


@pytest.mark.parametrize("solver", [
    Direct(), DirectDense(), DirectBanded(), DirectSparse(), GMRES(),
])
def test_solvers_implement_protocol(solver):
    assert isinstance(solver, LinearSolverProtocol)


@pytest.mark.parametrize("preconditioner", [
    JacobiPreconditioner(), IncompleteLU(), FunctionPreconditioner(lambda v: v),
])
def test_preconditioners_implement_protocol(preconditioner):
    assert isinstance(preconditioner, PreconditionerProtocol)
