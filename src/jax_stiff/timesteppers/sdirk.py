"""
Stiffly accurate SDIRK schemes with embedded error estimators.
"""

from dataclasses import dataclass
import math

import numpy as np

from .base import AbstractSDIRK


_GAMMA2 = 1.0 - 0.5 * math.sqrt(2.0)


@dataclass(frozen=True)
class SDIRK2(AbstractSDIRK):
    """
    Two-stage, second-order L-stable SDIRK (Alexander).

    $\\gamma = 1 - \\sqrt{2}/2$. The embedded first-order solution is
    $u_n + h f(Y_1)$.

    Butcher tableau:
        c = [gamma, 1]
        A = [[gamma, 0], [1 - gamma, gamma]]
        b = [1 - gamma, gamma]
        b_hat = [1, 0]
    """

    @property
    def A(self) -> np.ndarray:
        return np.array([
            [_GAMMA2, 0.0],
            [1.0 - _GAMMA2, _GAMMA2],
        ])

    @property
    def b_hat(self) -> np.ndarray:
        return np.array([1.0, 0.0])

    @property
    def order(self) -> int:
        return 2

    @property
    def error_order(self) -> int:
        return 1


@dataclass(frozen=True)
class SDIRK4(AbstractSDIRK):
    """
    Five-stage, fourth-order L-stable SDIRK of Hairer and Wanner.

    $\\gamma = 1/4$, stiffly accurate, with an embedded third-order solution.
    Reference: Hairer & Wanner, Solving ODEs II, Table IV.6.5.
    """

    @property
    def A(self) -> np.ndarray:
        return np.array([
            [1 / 4, 0.0, 0.0, 0.0, 0.0],
            [1 / 2, 1 / 4, 0.0, 0.0, 0.0],
            [17 / 50, -1 / 25, 1 / 4, 0.0, 0.0],
            [371 / 1360, -137 / 2720, 15 / 544, 1 / 4, 0.0],
            [25 / 24, -49 / 48, 125 / 16, -85 / 12, 1 / 4],
        ])

    @property
    def b_hat(self) -> np.ndarray:
        return np.array([59 / 48, -17 / 96, 225 / 32, -85 / 12, 0.0])

    @property
    def order(self) -> int:
        return 4

    @property
    def error_order(self) -> int:
        return 3
