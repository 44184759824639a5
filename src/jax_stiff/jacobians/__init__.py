"""Jacobian providers: analytic, finite-difference, colored, matrix-free."""

from .protocol import JacobianProtocol
from .base import AbstractJacobian, JacobianCache
from .analytic import AnalyticJacobian
from .finitediff import FiniteDifference, ColoredFiniteDifference
from .matrixfree import MatrixFree
from .autodiff import AutoDiff, AutoDiffJVP
from .sparsity import (
    SparsityPattern,
    BandedPattern,
    Tridiagonal,
    BlockBandedPattern,
)
from .coloring import greedy_coloring, banded_coloring, is_valid_coloring


__all__ = [
    # Protocol
    "JacobianProtocol",
    "AbstractJacobian",
    "JacobianCache",

    # Providers
    "AnalyticJacobian",
    "FiniteDifference",
    "ColoredFiniteDifference",
    "MatrixFree",
    "AutoDiff",
    "AutoDiffJVP",

    # Sparsity prototypes
    "SparsityPattern",
    "BandedPattern",
    "Tridiagonal",
    "BlockBandedPattern",

    # Coloring
    "greedy_coloring",
    "banded_coloring",
    "is_valid_coloring",
]
