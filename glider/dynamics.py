"""
Glider Equations of Motion
==========================
Defines the glider parameter set, launch conditions, and the right-hand side
of the dimensionless planar glide equations:

    v'     = -sin(theta) - v^2 / R
    theta' = -cos(theta) / v + v
    x'     =  v cos(theta)
    y'     =  v sin(theta)

State layout:
  v     = speed (dimensionless)
  theta = flight-path angle above the horizontal (rad)
  x     = horizontal position
  y     = vertical position (ground at y = 0)
"""

import math
from dataclasses import dataclass

import numpy as np

from .errors import NumericalFault


# ── State vector indices ──────────────────────────────────────────────────
V, THETA, X, Y = 0, 1, 2, 3
STATE_SIZE = 4


@dataclass(frozen=True)
class GliderParameters:
    """
    Fixed parameters of one integration run.
    """
    R: float = 10.0                   # aerodynamic efficiency (lift/drag)


@dataclass(frozen=True)
class LaunchConditions:
    """
    Initial state of the glider.
    """
    velocity: float = 2.0
    angle: float = -math.pi / 3.0     # rad, negative = nose down
    x: float = 0.0
    altitude: float = 2.0

    def initial_state(self) -> np.ndarray:
        """State vector [v, theta, x, y]."""
        return np.array([self.velocity, self.angle, self.x, self.altitude],
                        dtype=float)

    def with_angle(self, angle: float) -> 'LaunchConditions':
        return LaunchConditions(velocity=self.velocity, angle=angle,
                                x=self.x, altitude=self.altitude)


def glider_rhs(t: float, state: np.ndarray, R: float) -> np.ndarray:
    """
    Time derivative of the glider state.

    Parameters
    ----------
    t : float
        Time (the system is autonomous; kept for the solver signature)
    state : array-like
        [v, theta, x, y]
    R : float
        Aerodynamic efficiency

    Returns
    -------
    np.ndarray
        [v', theta', x', y']

    Raises
    ------
    NumericalFault
        If the speed is exactly zero (the theta equation is singular there)
        or any derivative component is not finite.
    """
    if len(state) != STATE_SIZE:
        raise ValueError(f"Glider state must have {STATE_SIZE} components, "
                         f"got {len(state)}")
    v = float(state[V])
    theta = float(state[THETA])

    if v == 0.0:
        raise NumericalFault("speed is zero; theta' = -cos(theta)/v is singular",
                             t=t, state=state)

    sin_t = math.sin(theta)
    cos_t = math.cos(theta)
    deriv = np.array([
        -sin_t - v * v / R,
        -cos_t / v + v,
        v * cos_t,
        v * sin_t,
    ])

    if not np.all(np.isfinite(deriv)):
        raise NumericalFault(f"non-finite derivative {deriv}", t=t, state=state)
    return deriv


def has_landed(t: float, state: np.ndarray) -> bool:
    """Ground contact: vertical position at or below zero."""
    return state[Y] <= 0.0
