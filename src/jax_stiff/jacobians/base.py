"""Base class and cache shared by all Jacobian providers."""

from dataclasses import dataclass
import logging
from typing import Any, Callable, Optional

from flax import nnx
from jax import Array
import jax.numpy as jnp
import numpy as np
import scipy.sparse as sp

from ..custom_types import JacobianMatrix
from ..errors import InvalidJacobianValue
from .sparsity import SparsityPattern

logger = logging.getLogger(__name__)


@dataclass
class JacobianCache:
    """
    Last Jacobian and the point it was evaluated at.

    For matrix-free providers `J` is None and (u, fu) is the linearisation
    point used by the directional probe.

    Attributes:
        J: Dense array, CSC matrix, or None.
        u: State at evaluation.
        fu: Right-hand side at evaluation.
        t: Time at evaluation.
        age: Accepted steps since evaluation.
        stale: Set when Newton convergence degraded with this Jacobian.
    """

    J: Any
    u: Array
    fu: Array
    t: float
    age: int = 0
    stale: bool = False


def check_finite(J: JacobianMatrix) -> None:
    """Raise InvalidJacobianValue if J holds NaN or Inf."""
    if sp.issparse(J):
        ok = bool(np.all(np.isfinite(J.data)))
    else:
        ok = bool(jnp.all(jnp.isfinite(J)))
    if not ok:
        raise InvalidJacobianValue("Jacobian contains NaN or Inf entries.")


class AbstractJacobian(nnx.Module):
    """
    Base class for Jacobian providers.

    Subclasses implement `evaluate` (materializing providers) and/or
    `apply`. The base class owns the Jacobian cache used for
    modified-Newton reuse.
    """

    materializes: bool = True

    def __init__(self, pattern: Optional[SparsityPattern] = None):
        self.pattern = pattern
        self._cache = nnx.Variable(None)

    def evaluate(
        self,
        fun: Callable,
        u: Array,
        p,
        t: float,
        fu: Optional[Array] = None,
    ) -> JacobianMatrix:
        raise TypeError(
            f"{type(self).__name__} does not materialize the Jacobian; "
            "use an iterative linear solver (GMRES)."
        )

    def apply(
        self,
        fun: Callable,
        u: Array,
        p,
        t: float,
        v: Array,
        fu: Optional[Array] = None,
    ) -> Array:
        J = self.evaluate(fun, u, p, t, fu)
        return jnp.asarray(J @ np.asarray(v)) if sp.issparse(J) else J @ v

    # -- cache -------------------------------------------------------------

    @property
    def cache(self) -> Optional[JacobianCache]:
        return self._cache.get_value()

    def refresh(
        self, fun: Callable, u: Array, p, t: float, fu: Array
    ) -> JacobianCache:
        """
        Re-evaluate the Jacobian at (u, p, t) and store it in the cache.

        Raises:
            InvalidJacobianValue: If the new Jacobian is not finite.
        """
        J = None
        if self.materializes:
            J = self.evaluate(fun, u, p, t, fu)
            check_finite(J)
        cache = JacobianCache(J=J, u=u, fu=fu, t=t)
        self._cache.set_value(cache)
        logger.debug("Jacobian refreshed at t=%.6e", t)
        return cache

    def invalidate(self) -> None:
        """Mark the cached Jacobian stale so the next attempt refreshes it."""
        cache = self.cache
        if cache is not None:
            cache.stale = True

    def needs_refresh(self, max_age: int) -> bool:
        cache = self.cache
        return cache is None or cache.stale or cache.age >= max_age

    def is_fresh(self) -> bool:
        """True when the cache was built at the current step's state."""
        cache = self.cache
        return cache is not None and cache.age == 0 and not cache.stale

    def advance(self) -> None:
        """Age the cache by one accepted step."""
        cache = self.cache
        if cache is not None:
            cache.age += 1

    def operator(self, fun: Callable, p) -> Any:
        """
        Jacobian at the cached point, as a matrix or a J*v closure.

        Matrix-free providers return a function v -> J(u_cached) * v, so the
        linearisation point is reused exactly like a stored matrix.
        """
        cache = self.cache
        if cache is None:
            raise RuntimeError("Jacobian requested before the first refresh.")
        if self.materializes:
            return cache.J
        return lambda v: self.apply(fun, cache.u, p, cache.t, v, cache.fu)
