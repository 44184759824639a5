"""Finite-difference Jacobians, dense and colored."""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from flax import nnx
from jax import Array
import jax.numpy as jnp
import numpy as np

from ..custom_types import JacobianMatrix
from .base import AbstractJacobian
from .coloring import is_valid_coloring, normalize_coloring
from .sparsity import SparsityPattern, as_pattern


def perturbations(u: Array) -> Array:
    """Forward-difference steps sqrt(eps) * max(1, |u_j|)."""
    eps = jnp.finfo(u.dtype).eps
    return jnp.sqrt(eps) * jnp.maximum(1.0, jnp.abs(u))


class FiniteDifference(AbstractJacobian):
    """
    Dense forward-difference Jacobian.

    Perturbs one state component at a time: n right-hand side evaluations
    per Jacobian (plus one for f(u) when it is not supplied).
    """

    def evaluate(
        self,
        fun: Callable,
        u: Array,
        p,
        t: float,
        fu: Optional[Array] = None,
    ) -> JacobianMatrix:
        if fu is None:
            fu = fun(u, p, t)
        steps = perturbations(u)
        columns = []
        for j in range(u.size):
            u_j = u.at[j].add(steps[j])
            h_j = u_j[j] - u[j]
            columns.append((fun(u_j, p, t) - fu) / h_j)
        return jnp.stack(columns, axis=1)


class ColoredFiniteDifference(AbstractJacobian):
    """
    Sparse forward-difference Jacobian using a column coloring.

    All columns of one color are perturbed together; because they never
    share a nonzero row, each entry of the difference quotient belongs to a
    single column and is scattered back using the sparsity prototype. The
    number of right-hand side evaluations equals the number of colors and
    does not grow with n.

    Attributes:
        pattern: Sparsity prototype of the Jacobian.
        colors: Column colors 0, ..., ncolors - 1.
        workers: Threads used to evaluate color groups. The thread pool is
            internal to `evaluate`.
        sparse: Return a CSC matrix (True) or a dense array (False).
    """

    def __init__(
        self,
        pattern,
        colorvec=None,
        workers: int = 1,
        sparse: bool = True,
    ):
        pattern = as_pattern(pattern)
        if pattern is None:
            raise ValueError("ColoredFiniteDifference requires a sparsity pattern")
        super().__init__(pattern)

        if colorvec is None:
            colors = pattern.coloring()
        else:
            colors = normalize_coloring(colorvec)
            if not is_valid_coloring(pattern, colors):
                raise ValueError(
                    "Invalid coloring: two columns of the same color share a "
                    "nonzero row."
                )
        self._colors = nnx.Variable(colors)
        self.ncolors = int(colors.max()) + 1 if colors.size else 0
        self.workers = max(1, int(workers))
        self.sparse = sparse

    @property
    def colors(self) -> np.ndarray:
        return self._colors.get_value()

    def evaluate(
        self,
        fun: Callable,
        u: Array,
        p,
        t: float,
        fu: Optional[Array] = None,
    ) -> JacobianMatrix:
        if fu is None:
            fu = fun(u, p, t)
        pattern: SparsityPattern = self.pattern
        colors = self.colors
        steps = np.asarray(perturbations(u))
        u_np = np.asarray(u)
        fu_np = np.asarray(fu)

        # Realised step per column
        h = (u_np + steps) - u_np

        def difference(color: int) -> np.ndarray:
            d = np.where(colors == color, steps, 0.0)
            u_c = jnp.asarray(u_np + d, dtype=u.dtype)
            return np.asarray(fun(u_c, p, t)) - fu_np

        if self.workers > 1 and self.ncolors > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                diffs = list(pool.map(difference, range(self.ncolors)))
        else:
            diffs = [difference(c) for c in range(self.ncolors)]

        D = np.stack(diffs) if diffs else np.zeros((0, u.size))
        values = D[colors[pattern.cols], pattern.rows] / h[pattern.cols]

        if self.sparse:
            return pattern.to_csc(values)
        J = np.zeros(pattern.shape, dtype=values.dtype)
        J[pattern.rows, pattern.cols] = values
        return jnp.asarray(J)
