"""Protocol for root-finding algorithms."""

from typing import Callable, Protocol, runtime_checkable

from jax import Array

from ..custom_types import LinearMap


@runtime_checkable
class RootFinderProtocol(Protocol):
    """
    Protocol for root-finding algorithms.

    Defines the interface for finding roots of nonlinear equations.
    Used by implicit time-stepping schemes to solve the nonlinear systems
    that arise from implicit discretization.
    """

    def __call__(
        self,
        residual_fn: LinearMap,
        y_guess: Array,
        linsolve: LinearMap,
        norm: Callable[[Array], float],
        eta: float = 1.0,
    ):
        """
        Find the root of residual_fn(y) = 0.

        Args:
            residual_fn: Function mapping y -> R(y), where we seek R(y) = 0
            y_guess: Initial guess for the solution
            linsolve: Function b -> W^{-1} b with W approximating dR/dy
            norm: Weighted norm for convergence tests
            eta: Convergence-speed estimate carried over between solves

        Returns:
            Result object exposing `y`, `iterations`, `rate` and `eta`
        """
        ...
