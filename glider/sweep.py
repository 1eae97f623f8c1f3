"""
Launch-Angle Sweep
==================
Runs one independent integration per launch variant and reports the state
at flight termination:

    (t_final, v_final, launch_angle, x_final, y_final)

Every variant gets its own Evolution and StepController; only the frozen
configuration and the immutable RKF45 tableau are shared, so variants may run
on a thread pool. The sweep always yields exactly one record per variant, in
index order, including variants that ended in a numerical fault.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from .config import SolverConfig, SweepConfig, validate_parameters
from .dynamics import GliderParameters, LaunchConditions, glider_rhs, has_landed
from .integrator import Evolution, IntegrationResult, IntegrationStatus

logger = logging.getLogger(__name__)


@dataclass
class SweepRecord:
    """Final state of one sweep variant."""
    index: int
    t_final: float
    v_final: float
    launch_angle: float     # initial theta, not the final one
    x_final: float
    y_final: float
    status: IntegrationStatus
    message: str = ''
    theta_final: float = float('nan')

    @property
    def failed(self) -> bool:
        return self.status is IntegrationStatus.FAILED

    def as_tuple(self) -> Tuple[float, float, float, float, float]:
        return (self.t_final, self.v_final, self.launch_angle,
                self.x_final, self.y_final)


def launch_variants(sweep: SweepConfig) -> Iterator[Tuple[int, LaunchConditions]]:
    """Yield (i, conditions) for i = 1..count with angle base + i * increment."""
    for i in range(1, sweep.count + 1):
        yield i, variant_conditions(i, sweep)


def variant_conditions(index: int, sweep: SweepConfig) -> LaunchConditions:
    base = sweep.base
    return base.with_angle(base.angle + index * sweep.angle_increment)


def simulate_flight(conditions: LaunchConditions,
                    params: GliderParameters = GliderParameters(),
                    solver: SolverConfig = SolverConfig(),
                    record: bool = False) -> IntegrationResult:
    """
    Integrate one glider flight until landing (y <= 0) or solver.t_end.

    The configuration is assumed validated; see run_sweep.
    """
    evolution = Evolution(glider_rhs, conditions.initial_state(), solver,
                          args=(params.R,), stop=has_landed, record=record)
    return evolution.run()


def run_variant(index: int, params: GliderParameters, solver: SolverConfig,
                sweep: SweepConfig) -> SweepRecord:
    conditions = variant_conditions(index, sweep)
    result = simulate_flight(conditions, params, solver)
    v, theta, x, y = result.state
    if result.status is IntegrationStatus.FAILED:
        logger.warning("Variant %d (launch angle %.5f) failed: %s",
                       index, conditions.angle, result.message)
    return SweepRecord(
        index=index,
        t_final=result.t,
        v_final=float(v),
        launch_angle=conditions.angle,
        x_final=float(x),
        y_final=float(y),
        status=result.status,
        message=result.message,
        theta_final=float(theta),
    )


def validate_run(params: GliderParameters, solver: SolverConfig,
                 sweep: SweepConfig):
    """Raise ConfigurationError for a systemic misconfiguration."""
    validate_parameters(params)
    solver.validate()
    sweep.validate()


def run_sweep(params: GliderParameters = GliderParameters(),
              solver: SolverConfig = SolverConfig(),
              sweep: SweepConfig = SweepConfig(),
              workers: Optional[int] = None) -> List[SweepRecord]:
    """
    Run every launch variant and return the records ordered by index.

    Parameters
    ----------
    workers : int, optional
        Thread pool size. None or 1 runs the variants sequentially.

    Raises
    ------
    ConfigurationError
        Before any variant runs, if the configuration is unusable.
    """
    validate_run(params, solver, sweep)
    indices = [i for i, _ in launch_variants(sweep)]

    start = time.perf_counter()
    logger.info("Sweeping %d launch variants (R=%g, t_end=%g, workers=%s)",
                len(indices), params.R, solver.t_end, workers or 1)

    if workers is None or workers <= 1:
        records = [run_variant(i, params, solver, sweep) for i in indices]
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {i: executor.submit(run_variant, i, params, solver, sweep)
                       for i in indices}
            records = [futures[i].result() for i in indices]

    n_failed = sum(r.failed for r in records)
    logger.info("Sweep finished in %.2fs (%d ok, %d failed)",
                time.perf_counter() - start, len(records) - n_failed, n_failed)
    return records


def format_record(record: SweepRecord) -> str:
    """One output line: t, v, launch angle, x, y in '% .5e' format."""
    fields = '  '.join(f"{value: .5e}" for value in record.as_tuple())
    if record.failed:
        return f"Troubles: {fields}"
    return fields

