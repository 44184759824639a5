"""Linear solvers based on Krylov subspaces."""

import logging
from typing import Optional

from flax import nnx
from jax import Array
import jax.numpy as jnp
import numpy as np
import scipy.sparse.linalg as sp_linalg

from ..errors import LinearSolverFailure
from .operator import NewtonMatrix
from .protocol import PreconditionerProtocol

logger = logging.getLogger(__name__)


class GMRES(nnx.Module):
    """
    Restarted Generalised Minimal Residual (GMRES).

    Dispatches to `scipy.sparse.linalg.gmres` and touches W only through
    matrix-vector products, so it works with matrix-free Jacobians.
    Suitable for general non-symmetric systems.

    Attributes:
        tol: Relative residual tolerance
        restart: Krylov subspace size between restarts
        maxiter: Maximum number of restart cycles
        preconditioner: Optional object with `update(W)` and `apply(v)`
        side: "left" solves P W x = P b; "right" solves W P y = b, x = P y
    """

    def __init__(
        self,
        tol: float = 1e-6,
        restart: int = 20,
        maxiter: int = 10,
        preconditioner: Optional[PreconditionerProtocol] = None,
        side: str = "left",
    ):
        if side not in ("left", "right"):
            raise ValueError(f"side must be 'left' or 'right', got {side!r}")
        self.tol = tol
        self.restart = restart
        self.maxiter = maxiter
        self.preconditioner = preconditioner
        self.side = side

    def update(self, W: NewtonMatrix) -> None:
        """Rebuild the preconditioner for a new Newton matrix."""
        if self.preconditioner is not None:
            self.preconditioner.update(W)

    def __call__(
        self,
        W: NewtonMatrix,
        b: Array,
        x0: Optional[Array] = None
    ) -> Array:
        """
        Solve W*x = b using GMRES.

        Args:
            W: Newton matrix (dense, sparse or matrix-free)
            b: Right-hand side vector
            x0: Initial guess vector

        Returns:
            Approximate solution x

        Raises:
            LinearSolverFailure: If the residual tolerance is not reached
                within `maxiter` restart cycles
        """
        n = W.n
        b_np = np.asarray(b, dtype=np.float64)
        P = self.preconditioner

        def w_matvec(v):
            return np.asarray(W.matvec(jnp.asarray(v, dtype=b.dtype)), dtype=np.float64)

        def p_apply(v):
            return np.asarray(P.apply(v), dtype=np.float64)

        if P is None:
            op = sp_linalg.LinearOperator((n, n), matvec=w_matvec, dtype=np.float64)
            rhs = b_np
        elif self.side == "left":
            op = sp_linalg.LinearOperator(
                (n, n), matvec=lambda v: p_apply(w_matvec(v)), dtype=np.float64
            )
            rhs = p_apply(b_np)
        else:
            op = sp_linalg.LinearOperator(
                (n, n), matvec=lambda v: w_matvec(p_apply(v)), dtype=np.float64
            )
            rhs = b_np

        guess = None if x0 is None or self.side == "right" else np.asarray(x0, dtype=np.float64)
        y, info = sp_linalg.gmres(
            op, rhs, x0=guess, rtol=self.tol, atol=0.0,
            restart=self.restart, maxiter=self.maxiter,
        )
        x = p_apply(y) if (P is not None and self.side == "right") else y

        if info != 0 or not np.all(np.isfinite(x)):
            residual = np.linalg.norm(b_np - w_matvec(x)) / max(np.linalg.norm(b_np), 1e-300)
            logger.debug(
                "GMRES did not converge (info=%s, relative residual %.2e)",
                info, residual,
            )
            raise LinearSolverFailure(
                f"GMRES did not converge within {self.maxiter} restart cycles "
                f"(relative residual {residual:.2e}).",
                residual=float(residual),
            )
        return jnp.asarray(x, dtype=b.dtype)
