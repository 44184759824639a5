"""Preconditioners for Krylov solvers."""

from typing import Callable, Optional

from flax import nnx
from jax import Array
import numpy as np
import scipy.sparse.linalg as sp_linalg

from ..errors import SingularJacobian
from .operator import NewtonMatrix


class JacobiPreconditioner(nnx.Module):
    """Inverse of the diagonal of W. Needs a materialized Jacobian."""

    def __init__(self):
        self._inv_diag = nnx.Variable(None)

    def update(self, W: NewtonMatrix) -> None:
        d = W.diagonal()
        if np.any(d == 0) or not np.all(np.isfinite(d)):
            raise SingularJacobian("Jacobi preconditioner: zero diagonal entry.")
        self._inv_diag.set_value(1.0 / d)

    def apply(self, v: Array) -> np.ndarray:
        return self._inv_diag.get_value() * np.asarray(v)


class IncompleteLU(nnx.Module):
    """
    Incomplete LU factorization of W.

    Dispatches to `scipy.sparse.linalg.spilu`. Rebuilt only when W changes.

    Attributes:
        drop_tol: Drop tolerance for small entries of the factors
        fill_factor: Upper bound on the fill ratio
    """

    def __init__(self, drop_tol: float = 1e-4, fill_factor: float = 10.0):
        self.drop_tol = drop_tol
        self.fill_factor = fill_factor
        self._ilu = nnx.Variable(None)

    def update(self, W: NewtonMatrix) -> None:
        try:
            ilu = sp_linalg.spilu(
                W.sparse(), drop_tol=self.drop_tol, fill_factor=self.fill_factor
            )
        except RuntimeError as err:
            raise SingularJacobian(f"Incomplete LU failed: {err}") from err
        self._ilu.set_value(ilu)

    def apply(self, v: Array) -> np.ndarray:
        return self._ilu.get_value().solve(np.asarray(v, dtype=np.float64))


class FunctionPreconditioner(nnx.Module):
    """
    Preconditioner from user callables.

    Args:
        apply: Function v -> P*v
        update: Optional function W -> None called when W changes, e.g. to
            rebuild a multigrid hierarchy for the new h*gamma.
    """

    def __init__(
        self,
        apply: Callable[[Array], Array],
        update: Optional[Callable[[NewtonMatrix], None]] = None,
    ):
        self._apply = apply
        self._update = update

    def update(self, W: NewtonMatrix) -> None:
        if self._update is not None:
            self._update(W)

    def apply(self, v: Array) -> np.ndarray:
        return np.asarray(self._apply(v))
