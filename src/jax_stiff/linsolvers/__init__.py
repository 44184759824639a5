"""Linear solvers used in the Newton iteration of implicit schemes."""

from .protocol import LinearSolverProtocol, PreconditionerProtocol
from .operator import NewtonMatrix
from .direct import Direct, DirectDense, DirectBanded, DirectSparse
from .krylov import GMRES
from .preconditioners import (
    JacobiPreconditioner,
    IncompleteLU,
    FunctionPreconditioner,
)


__all__ = [
    # Protocols
    "LinearSolverProtocol",
    "PreconditionerProtocol",

    # Newton matrix
    "NewtonMatrix",

    # Direct solvers
    "Direct",
    "DirectDense",
    "DirectBanded",
    "DirectSparse",

    # Krylov methods
    "GMRES",

    # Preconditioners
    "JacobiPreconditioner",
    "IncompleteLU",
    "FunctionPreconditioner",
]
