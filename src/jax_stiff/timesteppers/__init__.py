"""Implicit time-stepping schemes for stiff problems."""

from .base import AbstractSDIRK, StepAttempt
from .protocol import StepperProtocol
from .sdirk import SDIRK2, SDIRK4

__all__ = [
    # Base class
    'AbstractSDIRK',
    'StepAttempt',
    'StepperProtocol',

    # SDIRK methods
    'SDIRK2',
    'SDIRK4',
]
