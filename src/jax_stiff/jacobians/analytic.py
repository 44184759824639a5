"""User-supplied Jacobians."""

from typing import Callable, Optional

from flax import nnx
import jax
import jax.numpy as jnp
from jax import Array
import numpy as np
import scipy.sparse as sp

from ..custom_types import JacobianMatrix
from .base import AbstractJacobian
from .sparsity import as_pattern


class AnalyticJacobian(AbstractJacobian):
    """
    Jacobian from a user function; no approximation error.

    Attributes:
        jac: Out-of-place `jac(u, p, t) -> J` or, with `inplace=True`,
            `jac(J, u, p, t)` filling a preallocated NumPy array (dense) or
            CSC matrix with the prototype's structure (sparse).
        inplace: Calling convention of `jac`.
        pattern: Optional sparsity prototype. When given the result is a CSC
            matrix with exactly this structure.
        jit: JIT-compile an out-of-place `jac` once its first result turns
            out to be a JAX array. Functions returning NumPy arrays or
            scipy sparse matrices are always called as they are.
    """

    def __init__(
        self,
        jac: Callable,
        inplace: bool = False,
        pattern=None,
        jit: bool = False,
    ):
        super().__init__(as_pattern(pattern))
        self.jac = jac
        self.inplace = inplace
        self.jit = jit
        self._compiled = nnx.Variable(None)

    def _call(self, u: Array, p, t: float) -> JacobianMatrix:
        compiled = self._compiled.get_value()
        if compiled is not None:
            return compiled(u, p, t)
        J = self.jac(u, p, t)
        if self.jit and isinstance(J, jax.Array):
            self._compiled.set_value(jax.jit(self.jac))
        return J

    def evaluate(
        self,
        fun: Callable,
        u: Array,
        p,
        t: float,
        fu: Optional[Array] = None,
    ) -> JacobianMatrix:
        pattern = self.pattern
        if self.inplace:
            if pattern is not None:
                J = pattern.to_csc(np.zeros(pattern.nnz, dtype=np.asarray(u).dtype))
            else:
                J = np.zeros((u.size, u.size), dtype=np.asarray(u).dtype)
            self.jac(J, u, p, t)
        else:
            J = self._call(u, p, t)

        if pattern is not None:
            return pattern.to_csc(pattern.values_of(J))
        if sp.issparse(J):
            return sp.csc_matrix(J)
        J = jnp.asarray(J)
        if J.shape != (u.size, u.size):
            raise ValueError(
                f"Jacobian has shape {J.shape}, expected {(u.size, u.size)}"
            )
        return J
