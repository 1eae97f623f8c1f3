"""
Run Configuration
=================
Solver and sweep settings with the reference defaults:

  R = 10, t in [0, 600], eps_abs = 1e-8, eps_rel = 0, h_initial = 1e-6
  base launch (v=2, theta=-pi/3, x=0, y=2), 20 variants, +0.1 rad each

`validate()` is called once before any sweep iteration starts; a failure
there is systemic and aborts the whole sweep.
"""

from dataclasses import dataclass, field
from typing import Optional

from .dynamics import GliderParameters, LaunchConditions
from .errors import ConfigurationError


@dataclass(frozen=True)
class SolverConfig:
    """
    Tolerances, step-size limits, and per-run budgets for the integrator.
    """
    eps_abs: float = 1e-8
    eps_rel: float = 0.0
    h_initial: float = 1e-6
    t_start: float = 0.0
    t_end: float = 600.0

    # Controller
    safety: float = 0.9
    min_shrink: float = 0.2           # h' >= 0.2 h per step
    max_growth: float = 5.0           # h' <= 5 h per step
    max_rejections: int = 50          # consecutive rejections before stall
    h_min: float = 1e-14

    # Budgets (None disables the check)
    max_steps: Optional[int] = 1_000_000
    max_wall_time: Optional[float] = None   # seconds

    def validate(self):
        if self.eps_abs < 0 or self.eps_rel < 0:
            raise ConfigurationError(
                f"Tolerances must be non-negative "
                f"(eps_abs={self.eps_abs}, eps_rel={self.eps_rel})"
            )
        if self.eps_abs == 0 and self.eps_rel == 0:
            raise ConfigurationError(
                "eps_abs and eps_rel are both zero; no error scale can be formed"
            )
        if not self.h_initial > 0:
            raise ConfigurationError(
                f"Initial step size must be positive, got {self.h_initial}")
        if not self.t_end > self.t_start:
            raise ConfigurationError(
                f"t_end ({self.t_end}) must be greater than t_start ({self.t_start})")
        if not 0 < self.safety <= 1:
            raise ConfigurationError(f"safety must lie in (0, 1], got {self.safety}")
        if not 0 < self.min_shrink < 1:
            raise ConfigurationError(
                f"min_shrink must lie in (0, 1), got {self.min_shrink}")
        if not self.max_growth > 1:
            raise ConfigurationError(
                f"max_growth must exceed 1, got {self.max_growth}")
        if self.max_rejections < 1:
            raise ConfigurationError(
                f"max_rejections must be at least 1, got {self.max_rejections}")
        if self.h_min < 0:
            raise ConfigurationError(f"h_min must be non-negative, got {self.h_min}")
        if self.h_initial < self.h_min:
            raise ConfigurationError(
                f"Initial step {self.h_initial} is below the step floor {self.h_min}")
        if self.max_steps is not None and self.max_steps < 1:
            raise ConfigurationError(
                f"max_steps must be at least 1, got {self.max_steps}")
        if self.max_wall_time is not None and not self.max_wall_time > 0:
            raise ConfigurationError(
                f"max_wall_time must be positive, got {self.max_wall_time}")
        return self


@dataclass(frozen=True)
class SweepConfig:
    """
    Family of launch variants: variant i (1..count) starts from `base` with
    its angle raised by i * angle_increment.
    """
    count: int = 20
    angle_increment: float = 0.1
    base: LaunchConditions = field(default_factory=LaunchConditions)

    def validate(self):
        if self.count < 1:
            raise ConfigurationError(f"Sweep count must be at least 1, got {self.count}")
        return self


def validate_parameters(params: GliderParameters) -> GliderParameters:
    if not params.R > 0:
        raise ConfigurationError(
            f"Aerodynamic efficiency R must be positive, got {params.R}")
    return params
