import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from jax import Array
import jax.numpy as jnp

from .config import IntegratorConfig
from .integrator import Integrator, IntegratorStats, StepRecord
from .jacobians import AbstractJacobian
from .linsolvers import LinearSolverProtocol
from .problem import ODEProblem
from .timesteppers import StepperProtocol


@dataclass(frozen=True)
class Solution:
    """
    Accepted trajectory of an integration run.

    Attributes:
        t: Times of the accepted steps, shape (N,)
        u: States at those times, shape (N, n)
        status: "success" when t1 was reached, "stopped" when a callback or
            `request_stop` ended the run early
        stats: Work counters
        records: The accepted StepRecords
    """

    t: Array
    u: Array
    status: str
    stats: IntegratorStats
    records: List[StepRecord]


def solve_ivp(
    problem: ODEProblem,
    method: Optional[StepperProtocol] = None,
    jacobian: Optional[AbstractJacobian] = None,
    linsolver: Optional[LinearSolverProtocol] = None,
    config: IntegratorConfig = IntegratorConfig(),
    callback: Optional[Callable[[StepRecord], bool]] = None,
    verbose: bool = False,
) -> Solution:
    """
    Integrate M du/dt = f(u, p, t) over problem.tspan.

    Args:
        problem: Problem definition
        method: Implicit time-stepping scheme. Default: SDIRK4.
        jacobian: Jacobian provider. Default: analytic if problem.jac is
            set, colored finite differences if a prototype is set, dense
            finite differences otherwise.
        linsolver: Linear solver. Default: Direct for materialized
            Jacobians, GMRES for matrix-free ones.
        config: Tolerances and step-size control settings
        callback: Called with every accepted StepRecord; returning True
            stops the integration after that step
        verbose: Print progress information

    Returns:
        Solution with the accepted trajectory

    Raises:
        StepSizeUnderflow: If the step size falls below the minimum
        IntegrationFailure: If too many consecutive steps are rejected

    Example usage with colored finite differences:
    ```python
    import jax.numpy as jnp
    from jax_stiff import ODEProblem, IntegratorConfig, Tridiagonal, solve_ivp

    def diffusion(u, p, t):
        d2u = jnp.diff(u, prepend=0.0, append=0.0)
        return p * jnp.diff(d2u)

    n = 64
    prob = ODEProblem(diffusion, jnp.ones(n), (0.0, 1.0), p=100.0,
                      jac_prototype=Tridiagonal(n))
    sol = solve_ivp(prob, config=IntegratorConfig(rtol=1e-6, atol=1e-8))
    ```

    Example usage with a Jacobian-free Newton-Krylov setup:
    ```python
    from jax_stiff import MatrixFree, GMRES, IncompleteLU

    sol = solve_ivp(prob, jacobian=MatrixFree(), linsolver=GMRES(tol=1e-8))
    ```
    """
    integrator = Integrator(
        problem, method=method, jacobian=jacobian, linsolver=linsolver,
        config=config,
    )

    if verbose:
        print(f"Solving with {type(integrator.method).__name__}")
        print(
            f"Time: [{integrator.t0}, {integrator.t1}], "
            f"n={problem.n}, h0={integrator.h:.3e}"
        )
        print(
            f"Jacobian: {type(integrator.jacobian).__name__}, "
            f"linear solver: {type(integrator.linsolver).__name__}"
        )

    start_wallclock = time.time()
    records = integrator.run(callback)
    elapsed_wallclock = time.time() - start_wallclock

    stats = integrator.stats
    if verbose:
        print(
            f"Completed in {elapsed_wallclock:.3f}s: "
            f"{stats.naccept} accepted, {stats.nreject} rejected steps, "
            f"{stats.nfev} f evaluations, {stats.njev} Jacobians, "
            f"{stats.nfactor} factorizations"
        )

    t_arr = jnp.array([r.t for r in records])
    u_arr = jnp.stack([r.u for r in records], axis=0)
    status = "success" if integrator.finished else "stopped"
    return Solution(t=t_arr, u=u_arr, status=status, stats=stats, records=list(records))
