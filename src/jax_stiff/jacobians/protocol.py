"""Protocol for Jacobian providers used by the Newton iteration."""

from typing import Callable, Optional, Protocol, runtime_checkable

from jax import Array

from ..custom_types import JacobianMatrix
from .sparsity import SparsityPattern


@runtime_checkable
class JacobianProtocol(Protocol):
    """
    Protocol for Jacobian providers.

    A provider either materializes J = df/du (dense or sparse) or only
    exposes the directional derivative J*v. Providers are chosen when the
    integrator is built and never inspected at runtime beyond the
    `materializes` flag.
    """

    materializes: bool
    pattern: Optional[SparsityPattern]

    def evaluate(
        self,
        fun: Callable,
        u: Array,
        p,
        t: float,
        fu: Optional[Array] = None,
    ) -> JacobianMatrix:
        """
        Evaluate the Jacobian of fun at (u, p, t).

        Args:
            fun: Right-hand side with signature (u, p, t) -> du
            u: State
            p: Parameters
            t: Time
            fu: Optional fun(u, p, t), reused to save an evaluation

        Returns:
            Dense array or scipy CSC matrix
        """
        ...

    def apply(
        self,
        fun: Callable,
        u: Array,
        p,
        t: float,
        v: Array,
        fu: Optional[Array] = None,
    ) -> Array:
        """Compute the Jacobian-vector product J(u, p, t) * v."""
        ...
