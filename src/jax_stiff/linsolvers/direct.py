"""Direct linear solvers with cached factorizations."""

import logging
from typing import Optional, Tuple

from flax import nnx
import jax
from jax import Array
import jax.numpy as jnp
import jax.scipy.linalg as jax_linalg
import numpy as np
import scipy.linalg
import scipy.sparse as sp
import scipy.sparse.linalg as sp_linalg

from ..errors import SingularJacobian
from .operator import NewtonMatrix

logger = logging.getLogger(__name__)

_lu_factor = jax.jit(jax_linalg.lu_factor)
_lu_solve = jax.jit(jax_linalg.lu_solve)


class DirectDense(nnx.Module):
    """
    Dense LU solver.

    Dispatches to `jax.scipy.linalg.lu_factor` / `lu_solve`. The factors
    are computed in `update` and reused for every subsequent solve, which
    is what makes modified Newton cheap. O(n^3) per factorization.
    """

    def __init__(self):
        self._factors = nnx.Variable(None)

    def update(self, W: NewtonMatrix) -> None:
        """
        Factorize W.

        Raises:
            TypeError: If W wraps a linear operator instead of a matrix
            SingularJacobian: If a pivot is zero or not finite
        """
        if not W.materialized:
            raise TypeError(
                "DirectDense requires a dense matrix, not a linear operator. "
                "Please provide a materializing Jacobian, "
                "or use an iterative solver (GMRES)."
            )
        lu, piv = _lu_factor(W.dense())
        pivots = jnp.diag(lu)
        if not bool(jnp.all(jnp.isfinite(pivots) & (pivots != 0))):
            raise SingularJacobian("Dense LU factorization hit a zero pivot.")
        self._factors.set_value((lu, piv))

    def __call__(
        self,
        W: NewtonMatrix,
        b: Array,
        x0: Optional[Array] = None
    ) -> Array:
        """
        Solve W*x = b with the cached factors.

        Args:
            W: Newton matrix
            b: Right-hand side vector
            x0: Ignored (kept for interface compatibility). Can be None.

        Returns:
            Solution x
        """
        factors = self._factors.get_value()
        if factors is None:
            self.update(W)
            factors = self._factors.get_value()
        return _lu_solve(factors, b)


def banded_storage(A: sp.spmatrix, lower: int, upper: int) -> np.ndarray:
    """
    LAPACK band storage for `gbtrf`.

    Entry A[i, j] lands in ab[lower + upper + i - j, j]; the first `lower`
    rows are workspace for the fill-in created by pivoting.
    """
    coo = sp.coo_matrix(A)
    offset = coo.row - coo.col
    if np.any((offset > lower) | (-offset > upper)):
        raise ValueError(
            f"Matrix has entries outside the band (lower={lower}, upper={upper})"
        )
    n = A.shape[1]
    ab = np.zeros((2 * lower + upper + 1, n), dtype=np.result_type(coo.data, np.float64))
    np.add.at(ab, (lower + upper + offset, coo.col), coo.data)
    return ab


class DirectBanded(nnx.Module):
    """
    Banded LU solver.

    Dispatches to LAPACK `gbtrf` / `gbtrs` through SciPy. The cost of a
    factorization is O(n * lower * (lower + upper)).

    Attributes:
        bandwidths: (lower, upper) bandwidths. When None they are taken from
            the Newton matrix, or measured from its nonzeros.
    """

    def __init__(self, bandwidths: Optional[Tuple[int, int]] = None):
        self.bandwidths = bandwidths
        self._factors = nnx.Variable(None)

    def update(self, W: NewtonMatrix) -> None:
        if not W.materialized:
            raise TypeError(
                "DirectBanded requires a banded matrix, not a linear operator."
            )
        A = W.sparse()
        bandwidths = self.bandwidths or W.bandwidths
        if bandwidths is None:
            coo = A.tocoo()
            offset = coo.row - coo.col
            bandwidths = (
                max(int(offset.max(initial=0)), 0),
                max(int(-offset.min(initial=0)), 0),
            )
        lower, upper = bandwidths

        ab = banded_storage(A, lower, upper)
        gbtrf, gbtrs = scipy.linalg.get_lapack_funcs(("gbtrf", "gbtrs"), (ab,))
        lu, piv, info = gbtrf(ab, lower, upper)
        if info > 0:
            raise SingularJacobian(
                f"Banded LU factorization: U[{info - 1}, {info - 1}] is zero."
            )
        if info < 0:
            raise ValueError(f"gbtrf: illegal value in argument {-info}")
        if not np.all(np.isfinite(lu[lower + upper])):
            raise SingularJacobian("Banded LU factorization produced NaN pivots.")
        self._factors.set_value((lu, piv, lower, upper, gbtrs))

    def __call__(
        self,
        W: NewtonMatrix,
        b: Array,
        x0: Optional[Array] = None
    ) -> Array:
        factors = self._factors.get_value()
        if factors is None:
            self.update(W)
            factors = self._factors.get_value()
        lu, piv, lower, upper, gbtrs = factors
        x, info = gbtrs(lu, lower, upper, np.asarray(b, dtype=lu.dtype), piv)
        if info != 0:
            raise ValueError(f"gbtrs: illegal value in argument {-info}")
        return jnp.asarray(x)


class DirectSparse(nnx.Module):
    """
    Sparse LU solver.

    Dispatches to `scipy.sparse.linalg.splu` (SuperLU). The cost depends on
    the fill-in produced by the column ordering.
    """

    def __init__(self, permc_spec: str = "COLAMD"):
        self.permc_spec = permc_spec
        self._factors = nnx.Variable(None)

    def update(self, W: NewtonMatrix) -> None:
        if not W.materialized:
            raise TypeError(
                "DirectSparse requires a sparse matrix, not a linear operator."
            )
        A = W.sparse()
        if not np.all(np.isfinite(A.data)):
            raise SingularJacobian("Newton matrix contains NaN or Inf entries.")
        try:
            lu = sp_linalg.splu(A, permc_spec=self.permc_spec)
        except RuntimeError as err:
            raise SingularJacobian(f"Sparse LU factorization failed: {err}") from err
        self._factors.set_value(lu)

    def __call__(
        self,
        W: NewtonMatrix,
        b: Array,
        x0: Optional[Array] = None
    ) -> Array:
        lu = self._factors.get_value()
        if lu is None:
            self.update(W)
            lu = self._factors.get_value()
        return jnp.asarray(lu.solve(np.asarray(b, dtype=lu.U.dtype)))


class Direct(nnx.Module):
    """
    Direct solver that picks the factorization from the Jacobian's form.

    Dense Jacobians use dense LU, sparse Jacobians with known bandwidths use
    banded LU, and other sparse Jacobians use sparse LU.
    """

    def __init__(self):
        self._impl = nnx.Variable(None)

    @property
    def impl(self):
        return self._impl.get_value()

    @staticmethod
    def select(W: NewtonMatrix) -> type:
        if not W.materialized:
            raise TypeError(
                "Direct requires a materialized Jacobian, not a linear operator. "
                "Use an iterative solver (GMRES) with matrix-free Jacobians."
            )
        if not W.is_sparse:
            return DirectDense
        if W.bandwidths is not None:
            return DirectBanded
        return DirectSparse

    def update(self, W: NewtonMatrix) -> None:
        kind = self.select(W)
        if type(self.impl) is not kind:
            self._impl.set_value(kind())
            logger.debug("Direct solver using %s", kind.__name__)
        self.impl.update(W)

    def __call__(
        self,
        W: NewtonMatrix,
        b: Array,
        x0: Optional[Array] = None
    ) -> Array:
        if self.impl is None:
            self.update(W)
        return self.impl(W, b, x0)
