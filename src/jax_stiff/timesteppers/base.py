"""Abstract base class for singly diagonally implicit Runge-Kutta schemes."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import cached_property
from typing import Callable

from jax import Array
import jax.numpy as jnp
import numpy as np

from ..custom_types import LinearMap
from ..rootfinders import NewtonRaphson, RootFinderProtocol


@dataclass(frozen=True)
class StepAttempt:
    """
    Result of one step attempt.

    Attributes:
        u: Solution at t + h
        error: Local error estimate (unscaled)
        rate: Worst Newton contraction rate over all stages
        eta: Newton convergence-speed estimate after the last stage
        iterations: Newton iterations summed over all stages
    """

    u: Array
    error: Array
    rate: float
    eta: float
    iterations: int


@dataclass(frozen=True)
class AbstractSDIRK(ABC):
    """
    Base class for stiffly accurate SDIRK schemes with an embedded pair.

    Stage equations, written for the increments $z_i = Y_i - u_n$ so that a
    singular mass matrix is allowed:

    $$ \\frac{M z_i}{h\\gamma} - f(u_n + z_i, p, t_n + c_i h)
       - \\frac{r_i}{h\\gamma} = 0, \\qquad
       r_i = \\sum_{j<i} a_{ij} h f(Y_j) $$

    Jacobian of the stage residual: $W = M / (h\\gamma) - \\partial f / \\partial u$,
    shared by all stages because the diagonal is constant.

    Since the scheme is stiffly accurate, $u_{n+1} = u_n + z_s$. The error
    estimate is $\\sum_j e_j z_j$ with $e = (b - \\hat b)^T A^{-1}$.

    Attributes:
        root_finder: Root-finding algorithm for the stage equations.
            Default: NewtonRaphson.
    """

    root_finder: RootFinderProtocol = field(default_factory=NewtonRaphson)

    @property
    @abstractmethod
    def A(self) -> np.ndarray:
        ...

    @property
    @abstractmethod
    def b_hat(self) -> np.ndarray:
        ...

    @property
    @abstractmethod
    def order(self) -> int:
        ...

    @property
    @abstractmethod
    def error_order(self) -> int:
        """Order of the embedded solution; drives step-size control."""
        ...

    @property
    def b(self) -> np.ndarray:
        return self.A[-1]

    @property
    def c(self) -> np.ndarray:
        return self.A.sum(axis=1)

    @property
    def gamma(self) -> float:
        return float(self.A[0, 0])

    @property
    def stages(self) -> int:
        return self.A.shape[0]

    @cached_property
    def error_weights(self) -> np.ndarray:
        return np.linalg.solve(self.A.T, self.b - self.b_hat)

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
    ) -> StepAttempt:
        """
        Attempt one step from (t, u) with step size h.

        Args:
            fun: Right-hand side (u, p, t) -> du
            t: Current time
            u: Current state
            h: Step size (negative when integrating backwards)
            p: Parameters
            mass_matvec: v -> M*v
            linsolve: b -> W^{-1} b for W = M/(h*gamma) - J
            norm: Weighted norm for Newton convergence tests
            eta: Newton convergence-speed estimate from the previous solve
            filter_error: Filter the error estimate through W^{-1} M / (h*gamma).
                Used for problems with a singular mass matrix.

        Returns:
            StepAttempt with the new state and error estimate

        Raises:
            RecoverableError: If a stage equation cannot be solved
        """
        A = self.A
        c = self.c
        gamma = self.gamma
        dtgamma = h * gamma

        z = []
        hf = []
        z_guess = jnp.zeros_like(u)
        rate = 0.0
        iterations = 0

        for i in range(self.stages):
            r_i = jnp.zeros_like(u)
            for j in range(i):
                r_i = r_i + A[i, j] * hf[j]
            t_i = t + c[i] * h

            def residual_fn(z_i, r_i=r_i, t_i=t_i):
                return (mass_matvec(z_i) - r_i) / dtgamma - fun(u + z_i, p, t_i)

            result = self.root_finder(residual_fn, z_guess, linsolve, norm, eta)
            eta = result.eta
            rate = max(rate, result.rate)
            iterations += result.iterations

            z_i = result.y
            z.append(z_i)
            hf.append((mass_matvec(z_i) - r_i) / gamma)

            # Extrapolate the increment to the next abscissa
            if i + 1 < self.stages:
                z_guess = z_i * (c[i + 1] / c[i])

        error = jnp.zeros_like(u)
        for e_j, z_j in zip(self.error_weights, z):
            error = error + e_j * z_j
        if filter_error:
            error = linsolve(mass_matvec(error) / dtgamma)

        return StepAttempt(
            u=u + z[-1], error=error, rate=rate, eta=eta, iterations=iterations
        )
