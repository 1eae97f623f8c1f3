"""
Error Taxonomy
==============
Exceptions raised by the integration engine and the sweep driver.

  GliderError
    ├── ConfigurationError   systemic misconfiguration, aborts the sweep
    └── NumericalFault       invalid derivative/state, fails one iteration
          ├── StalledIntegration
          └── BudgetExhausted

A rejected step is not an exception: the controller handles it in place.
"""

from typing import Optional

import numpy as np


class GliderError(Exception):
    """Base class for all simulator errors."""


class ConfigurationError(GliderError, ValueError):
    """Raised before any integration when the configuration is unusable."""


class NumericalFault(GliderError, ArithmeticError):
    """
    Non-finite or otherwise invalid derivative or state.

    Carries the time and state at which the fault was detected.
    """

    def __init__(self, message: str, t: Optional[float] = None,
                 state: Optional[np.ndarray] = None):
        super().__init__(message)
        self.t = t
        self.state = None if state is None else np.array(state, dtype=float)


class StalledIntegration(NumericalFault):
    """The controller could not find an acceptable step size."""


class BudgetExhausted(NumericalFault):
    """The per-run step count or wall-clock budget ran out."""
