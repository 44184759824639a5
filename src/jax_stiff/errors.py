"""Exceptions raised while integrating stiff problems.

Recoverable errors are raised inside a single step attempt. The integrator
catches them, rejects the step and retries with a smaller step size. Fatal
errors propagate to the caller.
"""

from typing import Optional

from jax import Array


class IntegrationError(Exception):
    """Base class for all integration errors."""


class RecoverableError(IntegrationError):
    """Failure local to one step attempt; handled by step rejection."""


class NonConvergence(RecoverableError):
    """Newton iteration diverged or hit its iteration cap."""

    def __init__(self, message: str, iterations: int = 0):
        super().__init__(message)
        self.iterations = iterations


class SingularJacobian(RecoverableError):
    """Factorization of the Newton matrix failed."""


class LinearSolverFailure(RecoverableError):
    """Krylov solver did not reach its tolerance within its budget."""

    def __init__(self, message: str, residual: float = float("nan")):
        super().__init__(message)
        self.residual = residual


class InvalidJacobianValue(RecoverableError):
    """NaN or Inf produced while evaluating the Jacobian."""


class StepSizeUnderflow(IntegrationError):
    """Adaptive step size fell below the minimum. Always fatal."""

    def __init__(self, t: float, h: float, h_min: float):
        super().__init__(
            f"Step size {h:.3e} at t={t:.6e} fell below the minimum {h_min:.3e}."
        )
        self.t = t
        self.h = h
        self.h_min = h_min


class IntegrationFailure(IntegrationError):
    """Too many consecutive rejections.

    Attributes:
        t: Time of the last accepted state.
        u: Last accepted state.
    """

    def __init__(self, message: str, t: float, u: Optional[Array] = None):
        super().__init__(message)
        self.t = t
        self.u = u
