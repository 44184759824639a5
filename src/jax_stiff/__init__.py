"""
Stiff ODE and DAE integration in JAX.

Implicit SDIRK time stepping with modified-Newton iterations and pluggable
Jacobian strategies (analytic, automatic differentiation, dense or colored
finite differences, matrix-free) and linear solvers (dense, banded and
sparse LU, preconditioned GMRES).
"""

# Problem definition and configuration
from .problem import ODEProblem
from .config import IntegratorConfig

# Solver interfaces
from .integrator import Integrator, IntegratorStats, StepRecord, default_jacobian
from .solve import solve_ivp, Solution

# Time-stepping schemes
from .timesteppers import AbstractSDIRK, SDIRK2, SDIRK4

# Root-finding algorithms
from .rootfinders import NewtonRaphson

# Jacobian providers and sparsity prototypes
from .jacobians import (
    AnalyticJacobian,
    AutoDiff,
    AutoDiffJVP,
    ColoredFiniteDifference,
    FiniteDifference,
    MatrixFree,
    SparsityPattern,
    BandedPattern,
    Tridiagonal,
    BlockBandedPattern,
)

# Linear solvers
from .linsolvers import (
    Direct,
    DirectDense,
    DirectBanded,
    DirectSparse,
    GMRES,
    JacobiPreconditioner,
    IncompleteLU,
    FunctionPreconditioner,
)

# Errors
from .errors import (
    IntegrationError,
    RecoverableError,
    NonConvergence,
    SingularJacobian,
    LinearSolverFailure,
    InvalidJacobianValue,
    StepSizeUnderflow,
    IntegrationFailure,
)

__all__ = [
    # Problem definition
    'ODEProblem',
    'IntegratorConfig',

    # Solver interfaces
    'Integrator',
    'IntegratorStats',
    'StepRecord',
    'default_jacobian',
    'solve_ivp',
    'Solution',

    # Time-stepping methods
    'AbstractSDIRK',
    'SDIRK2',
    'SDIRK4',

    # Root-finding algorithms
    'NewtonRaphson',

    # Jacobians
    'AnalyticJacobian',
    'AutoDiff',
    'AutoDiffJVP',
    'ColoredFiniteDifference',
    'FiniteDifference',
    'MatrixFree',
    'SparsityPattern',
    'BandedPattern',
    'Tridiagonal',
    'BlockBandedPattern',

    # Linear solvers
    'Direct',
    'DirectDense',
    'DirectBanded',
    'DirectSparse',
    'GMRES',
    'JacobiPreconditioner',
    'IncompleteLU',
    'FunctionPreconditioner',

    # Errors
    'IntegrationError',
    'RecoverableError',
    'NonConvergence',
    'SingularJacobian',
    'LinearSolverFailure',
    'InvalidJacobianValue',
    'StepSizeUnderflow',
    'IntegrationFailure',
]
