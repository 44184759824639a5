"""Adaptive integrator for stiff ODEs and index-1 DAEs."""

from dataclasses import dataclass
import logging
import math
import threading
from typing import Callable, List, Optional

import jax
from jax import Array
import jax.numpy as jnp
import numpy as np
import scipy.sparse as sp

from .config import IntegratorConfig
from .errors import (
    IntegrationFailure,
    NonConvergence,
    RecoverableError,
    StepSizeUnderflow,
)
from .jacobians import (
    AbstractJacobian,
    AnalyticJacobian,
    ColoredFiniteDifference,
    FiniteDifference,
)
from .linsolvers import Direct, GMRES, LinearSolverProtocol, NewtonMatrix
from .problem import ODEProblem
from .timesteppers import SDIRK4, StepperProtocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepRecord:
    """
    One attempted step.

    For rejected steps `t` and `u` are the unchanged current state and `h`
    is the step size that was tried.
    """

    t: float
    u: Array
    h: float
    accepted: bool
    error_norm: float


@dataclass
class IntegratorStats:
    """Work counters of an integration run."""

    nfev: int = 0
    njev: int = 0
    nfactor: int = 0
    nlinsolve: int = 0
    nnewton: int = 0
    naccept: int = 0
    nreject: int = 0
    nnewton_fail: int = 0


def default_jacobian(problem: ODEProblem, jit: bool = False) -> AbstractJacobian:
    """
    Jacobian strategy implied by the problem.

    Analytic when `problem.jac` is set, colored finite differences when a
    sparsity prototype is given, dense finite differences otherwise. `jit`
    is forwarded to AnalyticJacobian.
    """
    if problem.jac is not None:
        return AnalyticJacobian(
            problem.jac, inplace=problem.inplace, pattern=problem.pattern,
            jit=jit and not problem.inplace,
        )
    if problem.pattern is not None:
        return ColoredFiniteDifference(problem.pattern, colorvec=problem.colorvec)
    return FiniteDifference()


def _bandwidths(matrix) -> tuple:
    coo = sp.coo_matrix(matrix if sp.issparse(matrix) else np.asarray(matrix))
    offset = coo.row - coo.col
    return (max(int(offset.max(initial=0)), 0), max(int(-offset.min(initial=0)), 0))


class Integrator:
    """
    Adaptive stepper for M u' = f(u, p, t).

    Orchestrates step-size control and step acceptance. Each attempt solves
    the implicit stages with Newton iterations that reuse the cached
    Jacobian and factorization of W = M/(h*gamma) - J for as long as the
    iteration keeps converging quickly. The Jacobian is re-evaluated only
    when convergence degrades, when a Newton solve fails with a stale
    Jacobian, or when it is older than `config.max_jacobian_age` steps;
    W is refactorized when the Jacobian or h*gamma changes.

    Attributes:
        problem: Problem being integrated.
        method: Implicit embedded scheme (default SDIRK4).
        jacobian: Jacobian provider (default from `default_jacobian`).
        linsolver: Linear solver (Direct for materialized Jacobians, GMRES
            for matrix-free ones).
        config: Tolerances and step-size control settings.
        trajectory: Accepted steps, starting with the initial state.
        stats: Work counters.

    Example usage:
    ```python
    from jax_stiff import Integrator, ODEProblem, IntegratorConfig

    integrator = Integrator(prob, config=IntegratorConfig(rtol=1e-6, atol=1e-8))
    while not integrator.finished:
        record = integrator.step()
    ```
    """

    def __init__(
        self,
        problem: ODEProblem,
        method: Optional[StepperProtocol] = None,
        jacobian: Optional[AbstractJacobian] = None,
        linsolver: Optional[LinearSolverProtocol] = None,
        config: IntegratorConfig = IntegratorConfig(),
    ):
        self.problem = problem
        self.method = method if method is not None else SDIRK4()
        self.jacobian = (
            jacobian if jacobian is not None
            else default_jacobian(problem, jit=config.jit)
        )
        if linsolver is None:
            linsolver = Direct() if self.jacobian.materializes else GMRES()
        elif not self.jacobian.materializes and not isinstance(linsolver, GMRES):
            raise TypeError(
                f"{type(linsolver).__name__} requires a materialized Jacobian; "
                f"{type(self.jacobian).__name__} only provides J*v. "
                "Use GMRES instead."
            )
        self.linsolver = linsolver
        self.config = config
        self.stats = IntegratorStats()

        dtype = config.dtype or problem.u0.dtype
        self.t0, self.t1 = problem.tspan
        self.direction = 1.0 if self.t1 > self.t0 else -1.0
        self.t = self.t0
        self.u = jnp.asarray(problem.u0, dtype=dtype)
        self.atol = jnp.broadcast_to(
            jnp.asarray(config.atol, dtype=self.u.dtype), self.u.shape
        )
        self._eps = float(jnp.finfo(self.u.dtype).eps)

        self._fun = self._wrap_rhs(problem)
        self._fu = None
        self._W: Optional[NewtonMatrix] = None
        self._eta = 1.0
        self._rejections = 0
        self._last_rejected = False
        self._stop_requested = False
        self._bandwidths = self._newton_bandwidths()
        self.filter_error = problem.is_dae

        self.trajectory: List[StepRecord] = [
            StepRecord(t=self.t, u=self.u, h=0.0, accepted=True, error_norm=0.0)
        ]

        if problem.is_dae:
            self._check_consistency()
        self.h = self._initial_step()

    # -- setup -------------------------------------------------------------

    def _wrap_rhs(self, problem: ODEProblem) -> Callable:
        """Out-of-place right-hand side that counts evaluations."""
        stats = self.stats
        dtype = self.u.dtype
        # Colored finite differences may evaluate f from worker threads
        lock = threading.Lock()

        if problem.inplace:
            f_inplace = problem.f

            def fun(u, p, t):
                with lock:
                    stats.nfev += 1
                du = np.zeros(u.shape, dtype=np.asarray(u).dtype)
                f_inplace(du, np.asarray(u), p, t)
                return jnp.asarray(du, dtype=dtype)

            return fun

        f = jax.jit(problem.f) if self.config.jit else problem.f

        def fun(u, p, t):
            with lock:
                stats.nfev += 1
            return jnp.asarray(f(u, p, t), dtype=dtype)

        return fun

    def _newton_bandwidths(self) -> Optional[tuple]:
        pattern = self.jacobian.pattern
        if pattern is None or pattern.bandwidths() is None:
            return None
        lower, upper = pattern.bandwidths()
        if self.problem.mass is not None:
            m_lower, m_upper = _bandwidths(self.problem.mass)
            lower, upper = max(lower, m_lower), max(upper, m_upper)
        return (lower, upper)

    def _check_consistency(self) -> None:
        rows = self.problem.algebraic_rows
        if rows.size == 0:
            return
        residual = np.abs(np.asarray(self.fu)[rows])
        scale = np.asarray(self.atol)[rows] + self.config.rtol * np.abs(np.asarray(self.u)[rows])
        if np.any(residual > scale):
            logger.warning(
                "Initial state violates %d algebraic equation(s) "
                "(max residual %.3e); the DAE initial condition is inconsistent.",
                int(np.sum(residual > scale)), float(residual.max()),
            )

    def _initial_step(self) -> float:
        span = abs(self.t1 - self.t0)
        if self.config.h0 is not None:
            return min(self.config.h0, span, self.config.h_max)
        d0 = self._weighted_norm(self.u, self.u)
        d1 = self._weighted_norm(self.fu, self.u)
        if d0 < 1e-5 or d1 < 1e-5 or not math.isfinite(d1):
            h0 = 1e-6
        else:
            h0 = 0.01 * d0 / d1
        return min(h0, span, self.config.h_max)

    # -- norms -------------------------------------------------------------

    def _weights(self, u: Array) -> Array:
        return self.atol + self.config.rtol * jnp.abs(u)

    def _weighted_norm(self, x: Array, u: Array) -> float:
        return float(jnp.sqrt(jnp.mean((x / self._weights(u)) ** 2)))

    def error_norm(self, error: Array, u_old: Array, u_new: Array) -> float:
        """RMS of the error scaled by atol + rtol * max(|u_old|, |u_new|)."""
        scale = self.atol + self.config.rtol * jnp.maximum(jnp.abs(u_old), jnp.abs(u_new))
        return float(jnp.sqrt(jnp.mean((error / scale) ** 2)))

    # -- state -------------------------------------------------------------

    @property
    def fu(self) -> Array:
        """f at the current state, evaluated lazily."""
        if self._fu is None:
            self._fu = self._fun(self.u, self.problem.p, self.t)
        return self._fu

    @property
    def finished(self) -> bool:
        return self.t == self.t1

    @property
    def h_min(self) -> float:
        if self.config.h_min is not None:
            return self.config.h_min
        return 16.0 * self._eps * max(abs(self.t), np.finfo(float).tiny)

    def request_stop(self) -> None:
        """Stop `run` after the current step completes."""
        self._stop_requested = True

    # -- Newton matrix -----------------------------------------------------

    def _prepare_newton_matrix(self, h: float) -> NewtonMatrix:
        """Refresh the Jacobian and refactorize W only when needed."""
        refreshed = False
        if self.jacobian.needs_refresh(self.config.max_jacobian_age):
            self.jacobian.refresh(self._fun, self.u, self.problem.p, self.t, self.fu)
            self.stats.njev += 1
            refreshed = True

        dtgamma = h * self.method.gamma
        if refreshed or self._W is None or self._W.dtgamma != dtgamma:
            W = NewtonMatrix(
                self.jacobian.operator(self._fun, self.problem.p),
                dtgamma,
                self.u.size,
                mass=self.problem.mass,
                bandwidths=self._bandwidths,
            )
            self._W = None
            self.linsolver.update(W)
            self._W = W
            self.stats.nfactor += 1
            logger.debug("Newton matrix updated (h*gamma=%.3e)", dtgamma)
        return self._W

    def _linsolve(self, b: Array) -> Array:
        self.stats.nlinsolve += 1
        return self.linsolver(self._W, b)

    # -- stepping ----------------------------------------------------------

    def step(self) -> StepRecord:
        """
        Attempt one step with the current step size.

        Returns:
            StepRecord; accepted steps are also appended to `trajectory`.

        Raises:
            StepSizeUnderflow: If the step size falls below `h_min`
            IntegrationFailure: After more than `config.max_rejections`
                consecutive rejections
        """
        if self.finished:
            raise RuntimeError(f"Integration already reached t1={self.t1}")

        remaining = abs(self.t1 - self.t)
        h = min(self.h, self.config.h_max)
        if h >= remaining - 16.0 * self._eps * abs(self.t1):
            h = remaining
        if h < self.h_min:
            raise StepSizeUnderflow(self.t, h, self.h_min)
        h_signed = self.direction * h

        try:
            W = self._prepare_newton_matrix(h_signed)
            weights = self._weights(self.u)

            def norm(x):
                return float(jnp.sqrt(jnp.mean((x / weights) ** 2)))

            attempt = self.method.attempt(
                self._fun, self.t, self.u, h_signed, self.problem.p,
                W.mass_matvec, self._linsolve, norm,
                eta=self._eta, filter_error=self.filter_error,
            )
        except RecoverableError as err:
            return self._fail(err, h)

        self.stats.nnewton += attempt.iterations
        self._eta = attempt.eta
        if attempt.rate > self.config.theta_max:
            logger.debug(
                "Newton rate %.3f above theta_max; Jacobian marked stale", attempt.rate
            )
            self.jacobian.invalidate()

        err_norm = self.error_norm(attempt.error, self.u, attempt.u)
        if not math.isfinite(err_norm):
            return self._fail(NonConvergence("Error estimate is not finite."), h)

        exponent = -1.0 / (self.method.error_order + 1)
        factor = (
            self.config.max_factor if err_norm == 0.0
            else self.config.safety * err_norm ** exponent
        )

        if err_norm > 1.0:
            factor = max(self.config.min_factor, min(factor, 1.0))
            return self._reject(h, h * factor, err_norm)

        return self._accept(h, attempt.u, err_norm, factor)

    def _accept(self, h: float, u_new: Array, err_norm: float, factor: float) -> StepRecord:
        cfg = self.config
        factor = min(cfg.max_factor, max(cfg.min_factor, factor))
        if self._last_rejected:
            factor = min(factor, 1.0)
        if 1.0 <= factor <= cfg.hold_factor:
            factor = 1.0

        landed = h == abs(self.t1 - self.t)
        self.t = self.t1 if landed else self.t + self.direction * h
        self.u = u_new
        self._fu = None
        self.h = min(h * factor, cfg.h_max)
        self._rejections = 0
        self._last_rejected = False
        self.jacobian.advance()
        self.stats.naccept += 1

        record = StepRecord(t=self.t, u=self.u, h=h, accepted=True, error_norm=err_norm)
        self.trajectory.append(record)
        return record

    def _reject(self, h: float, h_new: float, err_norm: float, cause=None) -> StepRecord:
        self.stats.nreject += 1
        self._rejections += 1
        self._last_rejected = True
        logger.debug(
            "Step rejected at t=%.6e (h=%.3e, error norm %.3e)", self.t, h, err_norm
        )
        if self._rejections > self.config.max_rejections:
            raise IntegrationFailure(
                f"{self._rejections} consecutive step rejections at t={self.t:.6e}.",
                t=self.t, u=self.u,
            ) from cause
        if h_new < self.h_min:
            raise StepSizeUnderflow(self.t, h_new, self.h_min) from cause
        self.h = h_new
        return StepRecord(t=self.t, u=self.u, h=h, accepted=False, error_norm=err_norm)

    def _fail(self, err: RecoverableError, h: float) -> StepRecord:
        """Reject after a Newton, linear solver or Jacobian failure."""
        if isinstance(err, NonConvergence):
            self.stats.nnewton_fail += 1
        logger.debug("Step attempt failed at t=%.6e: %s", self.t, err)
        if not self.jacobian.is_fresh():
            self.jacobian.invalidate()
        self._eta = 1.0
        return self._reject(h, 0.5 * h, math.inf, cause=err)

    def run(self, callback: Optional[Callable[[StepRecord], bool]] = None) -> List[StepRecord]:
        """
        Step until t1 is reached or a stop is requested.

        Args:
            callback: Called with every accepted StepRecord. Returning True
                stops the run after that step.

        Returns:
            The trajectory of accepted steps.
        """
        self._stop_requested = False
        attempts = 0
        while not self.finished and not self._stop_requested:
            if attempts >= self.config.max_steps:
                raise IntegrationFailure(
                    f"Maximum number of steps ({self.config.max_steps}) reached "
                    f"at t={self.t:.6e}.",
                    t=self.t, u=self.u,
                )
            record = self.step()
            attempts += 1
            if record.accepted and callback is not None and callback(record):
                self.request_stop()
        return self.trajectory
