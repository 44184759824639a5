"""Simplified Newton-Raphson method for the implicit stage equations."""

from dataclasses import dataclass
import logging
import math
from typing import Callable

from flax import nnx
from jax import Array

from ..custom_types import LinearMap
from ..errors import NonConvergence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewtonResult:
    """
    Outcome of a converged Newton solve.

    Attributes:
        y: Solution
        iterations: Number of iterations taken
        rate: Last observed contraction rate theta (0 after one iteration)
        eta: Convergence-speed estimate theta / (1 - theta), carried over to
            the next solve
    """

    y: Array
    iterations: int
    rate: float
    eta: float


class NewtonRaphson(nnx.Module):
    """
    Simplified (modified) Newton-Raphson root-finding algorithm.

    Iterative update: $y \\leftarrow y - W^{-1} R(y)$ where W is a possibly
    stale approximation of the Jacobian of R. The linear solve is supplied
    by the caller, so the same factorization can be reused across
    iterations, stages and steps.

    Convergence test: $\\eta_k \\|\\Delta_k\\| \\le \\kappa$ with
    $\\theta_k = \\|\\Delta_k\\| / \\|\\Delta_{k-1}\\|$ and
    $\\eta_k = \\theta_k / (1 - \\theta_k)$.

    Implements: RootFinderProtocol

    Attributes:
        maxiter: Maximum number of Newton iterations
        kappa: Tolerance on the estimated distance to the solution, in units
            of the weighted norm
        damping: Factor applied to each Newton update
        max_increases: Consecutive residual increases treated as divergence
    """

    def __init__(
        self,
        maxiter: int = 7,
        kappa: float = 1e-2,
        damping: float = 1.0,
        max_increases: int = 2,
    ):
        if maxiter < 1:
            raise ValueError("maxiter must be at least 1")
        if not 0.0 < damping <= 1.0:
            raise ValueError(f"damping must lie in (0, 1], got {damping}")
        self.maxiter = maxiter
        self.kappa = kappa
        self.damping = damping
        self.max_increases = max_increases

    def __call__(
        self,
        residual_fn: LinearMap,
        y_guess: Array,
        linsolve: LinearMap,
        norm: Callable[[Array], float],
        eta: float = 1.0,
    ) -> NewtonResult:
        """
        Find the root of residual_fn(y) = 0.

        Args:
            residual_fn: Residual function R(y)
            y_guess: Initial guess
            linsolve: Function b -> W^{-1} b using the current factorization
            norm: Weighted norm used for all convergence tests
            eta: Convergence-speed estimate from the previous solve; used
                on the first iteration where no rate is available yet

        Returns:
            NewtonResult with the solution and convergence statistics

        Raises:
            NonConvergence: On divergence, non-finite values or when maxiter
                is exhausted
        """
        y = y_guess
        eta_k = max(eta, 1e-16) ** 0.8
        theta = 0.0
        r_norm_prev = math.inf
        d_norm_prev = None
        increases = 0

        for k in range(1, self.maxiter + 1):
            r = residual_fn(y)
            r_norm = norm(r)
            if not math.isfinite(r_norm):
                raise NonConvergence("Newton residual is not finite.", k)
            increases = increases + 1 if r_norm > r_norm_prev else 0
            if increases >= self.max_increases:
                raise NonConvergence(
                    f"Newton residual increased on {increases} consecutive "
                    "iterations.", k
                )
            r_norm_prev = r_norm

            delta = linsolve(-r)
            d_norm = norm(delta)
            if not math.isfinite(d_norm):
                raise NonConvergence("Newton update is not finite.", k)
            y = y + self.damping * delta

            if d_norm_prev is not None:
                theta = d_norm / d_norm_prev
                if theta >= 1.0:
                    raise NonConvergence(
                        f"Newton iteration diverging (rate {theta:.3f}).", k
                    )
                eta_k = theta / (1.0 - theta)

            if eta_k * d_norm <= self.kappa or d_norm <= 1e-14:
                return NewtonResult(y=y, iterations=k, rate=theta, eta=eta_k)
            d_norm_prev = d_norm

        logger.debug(
            "Newton-Raphson did not converge within %d iterations", self.maxiter
        )
        raise NonConvergence(
            f"Newton-Raphson did not converge within {self.maxiter} iterations.",
            self.maxiter,
        )
