"""The Newton iteration matrix W = M/(h*gamma) - J."""

from typing import Any, Optional, Tuple

from jax import Array
import jax.numpy as jnp
import numpy as np
import scipy.sparse as sp


class NewtonMatrix:
    """
    Newton iteration matrix $W = M / (h \\gamma) - J$.

    The Jacobian may be a dense array, a CSC matrix, or a function v -> J*v.
    The mass matrix defaults to the identity.

    Attributes:
        jac: Jacobian (dense, sparse or linear map).
        dtgamma: The product h * gamma of the current stage equation.
        mass: Optional mass matrix (dense or sparse).
        bandwidths: (lower, upper) bandwidths of J when known.
    """

    def __init__(
        self,
        jac: Any,
        dtgamma: float,
        n: int,
        mass: Optional[Any] = None,
        bandwidths: Optional[Tuple[int, int]] = None,
    ):
        self.jac = jac
        self.dtgamma = float(dtgamma)
        self.n = n
        self.mass = mass
        self.bandwidths = bandwidths

    @property
    def materialized(self) -> bool:
        return not callable(self.jac)

    @property
    def is_sparse(self) -> bool:
        return sp.issparse(self.jac)

    def mass_matvec(self, v: Array) -> Array:
        if self.mass is None:
            return v
        if sp.issparse(self.mass):
            return jnp.asarray(self.mass @ np.asarray(v))
        return self.mass @ v

    def jac_matvec(self, v: Array) -> Array:
        if callable(self.jac):
            return self.jac(v)
        if sp.issparse(self.jac):
            return jnp.asarray(self.jac @ np.asarray(v))
        return self.jac @ v

    def matvec(self, v: Array) -> Array:
        v = jnp.asarray(v)
        return self.mass_matvec(v) / self.dtgamma - self.jac_matvec(v)

    def dense(self) -> Array:
        """W as a dense JAX array."""
        self._require_materialized()
        if self.mass is None:
            M = jnp.eye(self.n)
        elif sp.issparse(self.mass):
            M = jnp.asarray(self.mass.toarray())
        else:
            M = jnp.asarray(self.mass)
        J = self.jac.toarray() if sp.issparse(self.jac) else self.jac
        return M / self.dtgamma - jnp.asarray(J)

    def sparse(self) -> sp.csc_matrix:
        """W as a CSC matrix."""
        self._require_materialized()
        if self.mass is None:
            M = sp.identity(self.n, format="csc")
        else:
            M = sp.csc_matrix(np.asarray(self.mass) if not sp.issparse(self.mass)
                              else self.mass)
        J = self.jac if sp.issparse(self.jac) else sp.csc_matrix(np.asarray(self.jac))
        return sp.csc_matrix(M / self.dtgamma - J)

    def diagonal(self) -> np.ndarray:
        self._require_materialized()
        if self.mass is None:
            m = np.ones(self.n)
        elif sp.issparse(self.mass):
            m = self.mass.diagonal()
        else:
            m = np.diag(np.asarray(self.mass))
        j = self.jac.diagonal() if sp.issparse(self.jac) else np.diag(np.asarray(self.jac))
        return m / self.dtgamma - j

    def _require_materialized(self):
        if not self.materialized:
            raise TypeError(
                "The Jacobian is a linear operator, not a matrix. "
                "Use an iterative solver (GMRES) with matrix-free Jacobians."
            )
