"""Problem definition for M u' = f(u, p, t)."""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple

import jax.numpy as jnp
from jax import Array
import numpy as np
import scipy.sparse as sp

from .custom_types import RHSFunction
from .jacobians.coloring import is_valid_coloring, normalize_coloring
from .jacobians.sparsity import SparsityPattern, as_pattern


@dataclass(frozen=True, eq=False)
class ODEProblem:
    """
    Immutable description of a stiff ODE or DAE.

    Attributes:
        f: Right-hand side `f(u, p, t) -> du`, or `f(du, u, p, t)` filling
            a NumPy buffer when `inplace=True`.
        u0: Initial state (1-D).
        tspan: (t0, t1) time interval.
        p: Parameters passed through to f and jac.
        mass: Optional mass matrix (dense array or scipy sparse). A singular
            mass matrix turns the problem into a DAE.
        jac: Optional analytic Jacobian `jac(u, p, t) -> J`, or
            `jac(J, u, p, t)` when `inplace=True`.
        jac_prototype: Optional sparsity prototype of the Jacobian
            (SparsityPattern, scipy sparse matrix or boolean array).
        colorvec: Optional column coloring matching jac_prototype.
        inplace: Calling convention of f and jac.

    Example (Robertson kinetics):
        ```python
        import jax.numpy as jnp
        from jax_stiff import ODEProblem

        def rober(u, p, t):
            k1, k2, k3 = p
            y1, y2, y3 = u
            return jnp.array([
                -k1 * y1 + k3 * y2 * y3,
                k1 * y1 - k2 * y2**2 - k3 * y2 * y3,
                k2 * y2**2,
            ])

        prob = ODEProblem(rober, jnp.array([1.0, 0.0, 0.0]), (0.0, 1e5),
                          p=(0.04, 3e7, 1e4))
        ```
    """

    f: RHSFunction
    u0: Array
    tspan: Tuple[float, float]
    p: Any = None
    mass: Optional[Any] = None
    jac: Optional[Callable] = None
    jac_prototype: Optional[Any] = None
    colorvec: Optional[Any] = None
    inplace: bool = False
    _algebraic_rows: np.ndarray = field(init=False, repr=False)
    _is_dae: bool = field(init=False, repr=False)

    def __post_init__(self):
        u0 = jnp.asarray(self.u0)
        if u0.ndim != 1:
            raise ValueError(f"u0 must be one-dimensional, got shape {u0.shape}")
        if not jnp.issubdtype(u0.dtype, jnp.floating):
            u0 = u0.astype(jnp.result_type(float))
        object.__setattr__(self, "u0", u0)
        n = u0.size

        t0, t1 = (float(s) for s in self.tspan)
        if t0 == t1:
            raise ValueError("tspan must have t1 != t0")
        object.__setattr__(self, "tspan", (t0, t1))

        if self.mass is not None:
            mass = self.mass
            if sp.issparse(mass):
                mass = sp.csc_matrix(mass)
            else:
                mass = jnp.asarray(mass, dtype=u0.dtype)
            if mass.shape != (n, n):
                raise ValueError(
                    f"Mass matrix has shape {mass.shape}, expected {(n, n)}"
                )
            object.__setattr__(self, "mass", mass)
        self._classify_mass()

        pattern = as_pattern(self.jac_prototype)
        if pattern is not None and pattern.shape != (n, n):
            raise ValueError(
                f"jac_prototype has shape {pattern.shape}, expected {(n, n)}"
            )
        object.__setattr__(self, "jac_prototype", pattern)

        if self.colorvec is not None:
            if pattern is None:
                raise ValueError("colorvec requires a jac_prototype")
            colors = normalize_coloring(self.colorvec)
            if colors.shape != (n,):
                raise ValueError(f"colorvec must have length {n}")
            if not is_valid_coloring(pattern, colors):
                raise ValueError(
                    "Invalid colorvec: two columns of the same color share a "
                    "nonzero row of jac_prototype."
                )
            object.__setattr__(self, "colorvec", colors)

    @property
    def n(self) -> int:
        return self.u0.size

    @property
    def t0(self) -> float:
        return self.tspan[0]

    @property
    def t1(self) -> float:
        return self.tspan[1]

    @property
    def pattern(self) -> Optional[SparsityPattern]:
        return self.jac_prototype

    def _classify_mass(self) -> None:
        rows = np.zeros(0, dtype=np.int64)
        is_dae = False
        if self.mass is not None:
            M = self.mass.toarray() if sp.issparse(self.mass) else np.asarray(self.mass)
            rows = np.flatnonzero(~np.any(M != 0, axis=1))
            is_dae = bool(rows.size) or int(np.linalg.matrix_rank(M)) < self.n
        object.__setattr__(self, "_algebraic_rows", rows)
        object.__setattr__(self, "_is_dae", is_dae)

    @property
    def algebraic_rows(self) -> np.ndarray:
        """Indices of all-zero rows of the mass matrix."""
        return self._algebraic_rows

    @property
    def is_dae(self) -> bool:
        """True when the mass matrix is singular."""
        return self._is_dae
