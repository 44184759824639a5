"""Protocol for linear solvers used in the Newton iteration."""

from typing import Optional, Protocol, runtime_checkable

from jax import Array

from .operator import NewtonMatrix


@runtime_checkable
class LinearSolverProtocol(Protocol):
    """
    Protocol for linear solvers.

    Defines the interface for solving W*x = b with the Newton matrix W.
    `update` is only called when W changes (new Jacobian or new h*gamma), so
    factorizations and preconditioners are reused between solves.
    """

    def update(self, W: NewtonMatrix) -> None:
        """
        Prepare for solves with a new Newton matrix.

        Args:
            W: Newton matrix M/(h*gamma) - J
        """
        ...

    def __call__(
        self,
        W: NewtonMatrix,
        b: Array,
        x0: Optional[Array] = None
    ) -> Array:
        """
        Solve the linear system W*x = b.

        Args:
            W: Newton matrix passed to the last `update`
            b: Right-hand side vector
            x0: Initial guess vector

        Returns:
            Solution vector x such that W*x ≈ b
        """
        ...


@runtime_checkable
class PreconditionerProtocol(Protocol):
    """
    Protocol for preconditioners of iterative solvers.

    `apply(v)` returns P*v where P approximates the inverse of W.
    """

    def update(self, W: NewtonMatrix) -> None:
        ...

    def apply(self, v: Array) -> Array:
        ...
