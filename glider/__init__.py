"""
Glider Launch-Angle Sweep Simulator
===================================
Integrates the dimensionless planar glide equations

    v'     = -sin(theta) - v^2 / R
    theta' = -cos(theta) / v + v
    x'     =  v cos(theta)
    y'     =  v sin(theta)

with an adaptive Runge-Kutta-Fehlberg 4(5) engine, sweeping the launch angle
and reporting (t, v, launch angle, x, y) at touchdown for every variant.
Results can be cross-checked against SciPy's solve_ivp.
"""

from .errors import (
    GliderError, ConfigurationError, NumericalFault,
    StalledIntegration, BudgetExhausted,
)
from .dynamics import GliderParameters, LaunchConditions, glider_rhs, has_landed
from .config import SolverConfig, SweepConfig
from .integrator import (
    rkf45_step, StepController, StepDecision,
    Evolution, IntegrationResult, IntegrationStatus, evolve,
)
from .sweep import (
    SweepRecord, launch_variants, run_variant, run_sweep,
    simulate_flight, format_record,
)
from .validation import validate_sweep, ValidationResult

__version__ = "1.0.0"
__all__ = [
    'GliderError', 'ConfigurationError', 'NumericalFault',
    'StalledIntegration', 'BudgetExhausted',
    'GliderParameters', 'LaunchConditions', 'glider_rhs', 'has_landed',
    'SolverConfig', 'SweepConfig',
    'rkf45_step', 'StepController', 'StepDecision',
    'Evolution', 'IntegrationResult', 'IntegrationStatus', 'evolve',
    'SweepRecord', 'launch_variants', 'run_variant', 'run_sweep',
    'simulate_flight', 'format_record',
    'validate_sweep', 'ValidationResult',
]
