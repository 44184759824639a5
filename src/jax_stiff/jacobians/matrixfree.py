"""Jacobian-free directional derivatives."""

from typing import Callable, Optional

from jax import Array
import jax.numpy as jnp

from .base import AbstractJacobian


class MatrixFree(AbstractJacobian):
    """
    Finite-difference Jacobian-vector product.

    Never forms J. The product is approximated by a directional probe

    $$ J v \\approx \\frac{f(u + \\epsilon v) - f(u)}{\\epsilon} $$

    with $\\epsilon = \\sqrt{\\text{eps}} (1 + \\|u\\|) / \\|v\\|$.
    Only usable with iterative linear solvers.
    """

    materializes = False

    def __init__(self, epsilon: Optional[float] = None):
        super().__init__(None)
        self.epsilon = epsilon

    def probe_size(self, u: Array, v: Array) -> Array:
        if self.epsilon is not None:
            return jnp.asarray(self.epsilon, dtype=u.dtype)
        eps = jnp.finfo(u.dtype).eps
        return jnp.sqrt(eps) * (1.0 + jnp.linalg.norm(u)) / jnp.linalg.norm(v)

    def apply(
        self,
        fun: Callable,
        u: Array,
        p,
        t: float,
        v: Array,
        fu: Optional[Array] = None,
    ) -> Array:
        v_norm = jnp.linalg.norm(v)
        if float(v_norm) == 0.0:
            return jnp.zeros_like(v)
        if fu is None:
            fu = fun(u, p, t)
        epsilon = self.probe_size(u, v)
        return (fun(u + epsilon * v, p, t) - fu) / epsilon
