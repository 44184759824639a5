"""Jacobians by forward-mode automatic differentiation."""

from typing import Callable, Optional

import jax
from jax import Array

from ..custom_types import JacobianMatrix
from .base import AbstractJacobian


class AutoDiff(AbstractJacobian):
    """
    Dense Jacobian from `jax.jacfwd`.

    Requires an out-of-place right-hand side that JAX can trace.
    """

    def evaluate(
        self,
        fun: Callable,
        u: Array,
        p,
        t: float,
        fu: Optional[Array] = None,
    ) -> JacobianMatrix:
        return jax.jacfwd(lambda y: fun(y, p, t))(u)

    def apply(
        self,
        fun: Callable,
        u: Array,
        p,
        t: float,
        v: Array,
        fu: Optional[Array] = None,
    ) -> Array:
        return jax.jvp(lambda y: fun(y, p, t), (u,), (v,))[1]


class AutoDiffJVP(AbstractJacobian):
    """
    Matrix-free Jacobian-vector product from `jax.jvp`.

    Exact directional derivatives without forming J; pairs with GMRES.
    """

    materializes = False

    def __init__(self):
        super().__init__(None)

    def apply(
        self,
        fun: Callable,
        u: Array,
        p,
        t: float,
        v: Array,
        fu: Optional[Array] = None,
    ) -> Array:
        """Compute (df/du)*v using automatic differentiation."""
        return jax.jvp(lambda y: fun(y, p, t), (u,), (v,))[1]
