"""Integrator configuration."""

from dataclasses import dataclass
from typing import Optional, Union, Sequence

import math


@dataclass(frozen=True)
class IntegratorConfig:
    """
    Tolerances and step-size control settings for an integration run.

    Attributes:
        rtol: Relative tolerance.
        atol: Absolute tolerance, scalar or one value per component.
        h0: Initial step size. Chosen automatically when None.
        h_min: Minimum step size. Defaults to 16 * eps * |t|.
        h_max: Maximum step size.
        safety: Safety factor applied to the step-size proposal.
        min_factor: Smallest allowed step-size reduction factor.
        max_factor: Growth cap for the step size after an accepted step.
        hold_factor: Proposed growth ratios in [1, hold_factor] keep the
            current step size so the Newton matrix factorization survives.
        max_rejections: Consecutive rejections before the run fails.
        theta_max: Newton contraction rate above which the Jacobian is
            marked stale and re-evaluated on the next attempt.
        max_jacobian_age: Accepted steps after which the Jacobian is
            refreshed regardless of convergence.
        max_steps: Upper bound on attempted steps in `Integrator.run`.
        jit: JIT-compile the out-of-place right-hand side, and the analytic
            Jacobian when it returns JAX arrays. Sparse or NumPy Jacobians
            are called as they are.
        dtype: Dtype of the state vector. When None, the dtype of u0 is kept.
            Double precision requires `jax_enable_x64` to be set by the
            caller; the library never changes it.
    """

    rtol: float = 1e-3
    atol: Union[float, Sequence[float]] = 1e-6
    h0: Optional[float] = None
    h_min: Optional[float] = None
    h_max: float = math.inf
    safety: float = 0.9
    min_factor: float = 0.2
    max_factor: float = 5.0
    hold_factor: float = 1.2
    max_rejections: int = 10
    theta_max: float = 0.1
    max_jacobian_age: int = 50
    max_steps: int = 100_000
    jit: bool = True
    dtype: Optional[str] = None

    def __post_init__(self):
        if self.rtol < 0:
            raise ValueError(f"rtol must be non-negative, got {self.rtol}")
        if not 0.0 < self.safety <= 1.0:
            raise ValueError(f"safety must lie in (0, 1], got {self.safety}")
        if not 0.0 < self.min_factor < 1.0 < self.max_factor:
            raise ValueError(
                "Expected 0 < min_factor < 1 < max_factor, got "
                f"min_factor={self.min_factor}, max_factor={self.max_factor}"
            )
        if self.hold_factor < 1.0:
            raise ValueError(f"hold_factor must be >= 1, got {self.hold_factor}")
        if self.max_rejections < 1:
            raise ValueError("max_rejections must be at least 1")
        if self.h0 is not None and self.h0 <= 0:
            raise ValueError(f"h0 must be positive, got {self.h0}")
