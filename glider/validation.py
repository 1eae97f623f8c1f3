"""
Validation Against SciPy
========================
Cross-checks the RKF45 engine against scipy.integrate.solve_ivp (DOP853 at
tight tolerances) on the same glide equations.

For each sweep variant that finished cleanly, the reference solution is
integrated over [t_start, t_final] and compared component-wise with the simulated
final state. A terminal y = 0 event gives the exact landing time, which the
engine only brackets (it stops at the first accepted step with y <= 0).
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from scipy.integrate import solve_ivp

from .config import SolverConfig, SweepConfig
from .dynamics import GliderParameters, Y, glider_rhs
from .sweep import SweepRecord, run_sweep, variant_conditions


REFERENCE_RTOL = 1e-11
REFERENCE_ATOL = 1e-12


@dataclass
class ValidationResult:
    """Result of one validation comparison."""
    index: int
    launch_angle: float
    t_final: float
    sim_state: np.ndarray
    ref_state: np.ndarray
    max_abs_error: float
    landing_time: Optional[float]     # exact y = 0 crossing, if any


def _ground_event(t, y, R):
    return y[Y]


_ground_event.terminal = True
_ground_event.direction = -1


def reference_state(record: SweepRecord, params: GliderParameters,
                    solver: SolverConfig, sweep: SweepConfig) -> np.ndarray:
    """SciPy solution at the record's final time for the same launch."""
    y0 = variant_conditions(record.index, sweep).initial_state()
    if record.t_final <= solver.t_start:
        return y0
    sol = solve_ivp(glider_rhs, (solver.t_start, record.t_final), y0,
                    method='DOP853', args=(params.R,),
                    rtol=REFERENCE_RTOL, atol=REFERENCE_ATOL)
    if not sol.success:
        raise RuntimeError(f"Reference integration failed: {sol.message}")
    return sol.y[:, -1]


def landing_time(index: int, params: GliderParameters, solver: SolverConfig,
                 sweep: SweepConfig) -> Optional[float]:
    """Exact touchdown time from a terminal event, or None within t_end."""
    y0 = variant_conditions(index, sweep).initial_state()
    if y0[Y] <= 0.0:
        return solver.t_start
    sol = solve_ivp(glider_rhs, (solver.t_start, solver.t_end), y0,
                    method='DOP853', args=(params.R,), events=_ground_event,
                    rtol=REFERENCE_RTOL, atol=REFERENCE_ATOL)
    if sol.t_events[0].size:
        return float(sol.t_events[0][0])
    return None


def validate_sweep(params: GliderParameters = GliderParameters(),
                   solver: SolverConfig = SolverConfig(),
                   sweep: SweepConfig = SweepConfig(),
                   records: Optional[List[SweepRecord]] = None,
                   verbose: bool = True) -> List[ValidationResult]:
    """
    Compare every successful sweep record with the SciPy reference.

    Returns list of ValidationResult for each variant that did not fail.
    """
    if records is None:
        records = run_sweep(params, solver, sweep)

    results = []

    if verbose:
        print(f"\n{'='*72}")
        print(f"  VALIDATION: RKF45 (eps_abs={solver.eps_abs:g}, "
              f"eps_rel={solver.eps_rel:g}) vs SciPy DOP853")
        print(f"{'='*72}")
        print(f"{'#':>3} {'Angle':>9} {'t_final':>11} {'t_land(ref)':>12} "
              f"{'x_sim':>11} {'x_ref':>11} {'max|err|':>10}")
        print("-" * 72)

    for record in records:
        if record.failed:
            continue

        sim = np.array([record.v_final, record.theta_final,
                        record.x_final, record.y_final])
        ref = reference_state(record, params, solver, sweep)
        err = float(np.max(np.abs(sim - ref)))
        t_land = landing_time(record.index, params, solver, sweep)

        vr = ValidationResult(
            index=record.index,
            launch_angle=record.launch_angle,
            t_final=record.t_final,
            sim_state=sim,
            ref_state=ref,
            max_abs_error=err,
            landing_time=t_land,
        )
        results.append(vr)

        if verbose:
            t_land_txt = f"{t_land:>12.5f}" if t_land is not None else f"{'-':>12}"
            print(f"{record.index:>3d} {record.launch_angle:>9.5f} "
                  f"{record.t_final:>11.5f} {t_land_txt} "
                  f"{record.x_final:>11.5f} {ref[2]:>11.5f} {err:>10.2e}")

    if verbose and results:
        worst = max(r.max_abs_error for r in results)
        print("-" * 72)
        print(f"  Worst absolute deviation: {worst:.2e}")
        status = "✓ PASS" if worst < 1e-4 else "✗ CHECK TOLERANCES"
        print(f"  Status: {status}")
        print(f"{'='*72}\n")

    return results
