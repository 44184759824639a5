"""Protocols for time-stepping schemes."""

from typing import Callable, Protocol, runtime_checkable

from jax import Array

from ..custom_types import LinearMap


@runtime_checkable
class StepperProtocol(Protocol):
    """
    Protocol for implicit embedded time-stepping schemes.

    Defines the interface for attempting one step of M u' = f(u, p, t).
    Any class implementing an attempt() method with this signature and
    exposing `gamma` and `error_order` can be used by the Integrator.
    """

    gamma: float
    error_order: int

    def attempt(
        self,
        fun: Callable,
        t: float,
        u: Array,
        h: float,
        p,
        mass_matvec: LinearMap,
        linsolve: LinearMap,
        norm: Callable[[Array], float],
        eta: float = 1.0,
        filter_error: bool = False,
    ):
        """
        Attempt a single time step.

        Args:
            fun: Right-hand side function (u, p, t) -> du.
            t: Current time.
            u: Current solution.
            h: Time step size.
            p: Parameters passed to fun.
            mass_matvec: Product with the mass matrix.
            linsolve: Solve with the Newton matrix M/(h*gamma) - J.
            norm: Weighted norm for the Newton iteration.
            eta: Newton convergence-speed estimate.
            filter_error: Filter the error estimate (singular mass matrix).

        Returns:
            StepAttempt with the solution at t + h and its error estimate.
        """
        ...
