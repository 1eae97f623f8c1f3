"""
Adaptive Integration Engine
===========================
Embedded Runge-Kutta-Fehlberg 4(5) stepping with local error control.

1. **rkf45_step** — six derivative evaluations give a 5th-order solution and
   a 4th-order companion; their difference is the local error estimate.
2. **StepController** — accepts or rejects a trial step from the scaled
   max-norm of the error and proposes the next step size.
3. **Evolution** — drives steps from t_start toward t_end until the end time
   or a stopping predicate is reached (ADVANCING -> DONE | FAILED).

Output: IntegrationResult dataclass with the final time, state and status.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, NamedTuple, Optional, Tuple

import numpy as np

from .config import SolverConfig
from .errors import BudgetExhausted, NumericalFault, StalledIntegration

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
#  Fehlberg 4(5) tableau (read-only, shared by every run)
# ══════════════════════════════════════════════════════════════════════════

RKF45_C = np.array([0.0, 1/4, 3/8, 12/13, 1.0, 1/2])

RKF45_A = (
    np.array([]),
    np.array([1/4]),
    np.array([3/32, 9/32]),
    np.array([1932/2197, -7200/2197, 7296/2197]),
    np.array([439/216, -8.0, 3680/513, -845/4104]),
    np.array([-8/27, 2.0, -3544/2565, 1859/4104, -11/40]),
)

RKF45_B5 = np.array([16/135, 0.0, 6656/12825, 28561/56430, -9/50, 2/55])
RKF45_B4 = np.array([25/216, 0.0, 1408/2565, 2197/4104, -1/5, 0.0])
RKF45_E = RKF45_B5 - RKF45_B4

RKF45_ORDER = 5

for _arr in (RKF45_C, RKF45_B5, RKF45_B4, RKF45_E) + RKF45_A:
    _arr.setflags(write=False)


def _eval(fun: Callable, t: float, y: np.ndarray, args: tuple) -> np.ndarray:
    """Evaluate the RHS and convert arithmetic trouble into NumericalFault."""
    try:
        with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
            k = np.asarray(fun(t, y, *args), dtype=float)
    except (ZeroDivisionError, FloatingPointError, OverflowError) as exc:
        raise NumericalFault(f"derivative evaluation failed at t={t}: {exc}",
                             t=t, state=y) from exc
    if k.shape != y.shape:
        raise ValueError(f"fun returned shape {k.shape}, expected {y.shape}.")
    if not np.all(np.isfinite(k)):
        raise NumericalFault(f"non-finite derivative at t={t}", t=t, state=y)
    return k


def rkf45_step(fun: Callable, t: float, y: np.ndarray, h: float,
               args: tuple = ()) -> Tuple[np.ndarray, np.ndarray]:
    """
    One embedded Runge-Kutta-Fehlberg 4(5) step.

    Parameters
    ----------
    fun : callable
        RHS function fun(t, y, *args) -> dy/dt
    t, y : current time and state
    h : step size
    args : extra positional arguments forwarded to fun

    Returns
    -------
    (y5, err)
        5th-order trial state at t + h and the per-component error estimate
        y5 - y4.

    Raises
    ------
    NumericalFault
        If any stage derivative or the trial state is not finite.
    """
    y = np.asarray(y, dtype=float)
    k = np.empty((len(RKF45_C),) + y.shape)

    k[0] = _eval(fun, t, y, args)
    for i in range(1, len(RKF45_C)):
        y_stage = y + h * (RKF45_A[i] @ k[:i])
        k[i] = _eval(fun, t + RKF45_C[i] * h, y_stage, args)

    y5 = y + h * (RKF45_B5 @ k)
    err = h * (RKF45_E @ k)

    if not (np.all(np.isfinite(y5)) and np.all(np.isfinite(err))):
        raise NumericalFault(f"non-finite trial state at t={t}, h={h}",
                             t=t, state=y)
    return y5, err


# ══════════════════════════════════════════════════════════════════════════
#  Step-size controller
# ══════════════════════════════════════════════════════════════════════════

class StepDecision(NamedTuple):
    """Controller verdict for one trial step."""
    accepted: bool
    norm: float           # max_i |err_i| / scale_i
    h_next: float


class StepController:
    """
    Local error control on the state values.

    scale_i = eps_abs + eps_rel * max(|y_i|, |y_trial_i|)
    norm    = max_i |err_i| / scale_i

    Accept if norm <= 1. The next step is h * safety * norm^(-1/5), clipped
    to [min_shrink, max_growth] on acceptance and to [min_shrink, 1] on
    rejection.
    """

    def __init__(self, eps_abs: float, eps_rel: float, safety: float = 0.9,
                 min_shrink: float = 0.2, max_growth: float = 5.0,
                 order: int = RKF45_ORDER):
        self.eps_abs = eps_abs
        self.eps_rel = eps_rel
        self.safety = safety
        self.min_shrink = min_shrink
        self.max_growth = max_growth
        self.exponent = -1.0 / order

    @classmethod
    def from_config(cls, config: SolverConfig) -> 'StepController':
        return cls(config.eps_abs, config.eps_rel, safety=config.safety,
                   min_shrink=config.min_shrink, max_growth=config.max_growth)

    def error_norm(self, y: np.ndarray, y_trial: np.ndarray,
                   err: np.ndarray) -> float:
        scale = self.eps_abs + self.eps_rel * np.maximum(np.abs(y), np.abs(y_trial))
        abs_err = np.abs(err)
        # Pure relative control on a zero component: zero error counts as exact
        with np.errstate(divide='ignore', invalid='ignore'):
            ratio = np.where(abs_err == 0.0, 0.0, abs_err / scale)
        return float(np.max(ratio))

    def decide(self, h: float, y: np.ndarray, y_trial: np.ndarray,
               err: np.ndarray) -> StepDecision:
        norm = self.error_norm(y, y_trial, err)

        if norm <= 1.0:
            if norm == 0.0:
                fac = self.max_growth
            else:
                fac = self.safety * norm ** self.exponent
                fac = min(self.max_growth, max(self.min_shrink, fac))
            return StepDecision(True, norm, h * fac)

        fac = self.safety * norm ** self.exponent
        fac = min(1.0, max(self.min_shrink, fac))
        return StepDecision(False, norm, h * fac)


# ══════════════════════════════════════════════════════════════════════════
#  Evolution driver
# ══════════════════════════════════════════════════════════════════════════

class IntegrationStatus(Enum):
    ADVANCING = 'advancing'
    DONE = 'done'
    FAILED = 'failed'


@dataclass
class IntegrationResult:
    """Terminal state of one evolution run."""
    t: float
    state: np.ndarray
    status: IntegrationStatus
    message: str = ''
    fault: Optional[NumericalFault] = None
    n_accepted: int = 0
    n_rejected: int = 0
    nfev: int = 0
    h_next: float = 0.0

    # Accepted-step history, only filled when recording was requested
    time_history: Optional[np.ndarray] = field(default=None, repr=False)
    state_history: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def success(self) -> bool:
        return self.status is IntegrationStatus.DONE

    def raise_for_status(self):
        """Re-raise the recorded fault of a FAILED run."""
        if self.fault is not None:
            raise self.fault


StopPredicate = Callable[[float, np.ndarray], bool]


class Evolution:
    """
    Integration context for one run: owns t, state and h.

    Use `step()` to take one accepted step (retrying rejected trials inside),
    or `run()` to drive to DONE/FAILED. A FAILED run keeps the last valid t
    and state.
    """

    def __init__(self, fun: Callable, y0, config: SolverConfig,
                 args: tuple = (), stop: Optional[StopPredicate] = None,
                 controller: Optional[StepController] = None,
                 record: bool = False):
        self.fun = fun
        self.args = args
        self.config = config
        self.stop = stop
        self.controller = controller or StepController.from_config(config)

        self.t = float(config.t_start)
        self.state = np.array(y0, dtype=float)
        self.h = float(config.h_initial)
        self.t_end = float(config.t_end)

        self.status = IntegrationStatus.ADVANCING
        self.message = ''
        self.fault: Optional[NumericalFault] = None
        self.n_accepted = 0
        self.n_rejected = 0
        self.nfev = 0

        self.record = record
        self._times = [self.t] if record else None
        self._states = [self.state.copy()] if record else None

        self._check_done()

    def _check_done(self):
        if self.t >= self.t_end:
            self.status = IntegrationStatus.DONE
            self.message = 'Reached the end of the integration interval.'
        elif self.stop is not None and self.stop(self.t, self.state):
            self.status = IntegrationStatus.DONE
            self.message = 'Stopping condition reached.'

    def _h_floor(self) -> float:
        return max(self.config.h_min, 4.0 * float(np.spacing(self.t)))

    def step(self):
        """
        Take one accepted step, shrinking and retrying on rejection.

        Raises NumericalFault (or a subclass) without touching t or state.
        """
        rejections = 0
        while True:
            final_step = self.t + self.h >= self.t_end
            h_try = self.t_end - self.t if final_step else self.h
            if not final_step and h_try < self._h_floor():
                raise StalledIntegration(
                    f"step size {h_try:.3e} fell below the floor at t={self.t}",
                    t=self.t, state=self.state)

            y_trial, err = rkf45_step(self.fun, self.t, self.state, h_try, self.args)
            self.nfev += len(RKF45_C)

            decision = self.controller.decide(h_try, self.state, y_trial, err)
            if decision.accepted:
                self.t = self.t_end if final_step else self.t + h_try
                self.state = y_trial
                self.h = decision.h_next
                self.n_accepted += 1
                if self.record:
                    self._times.append(self.t)
                    self._states.append(self.state.copy())
                return

            self.n_rejected += 1
            rejections += 1
            self.h = decision.h_next
            logger.debug("Rejected step at t=%.6e (norm=%.3e), retrying with h=%.3e",
                         self.t, decision.norm, self.h)

            if rejections > self.config.max_rejections:
                raise StalledIntegration(
                    f"{rejections} consecutive rejections at t={self.t}",
                    t=self.t, state=self.state)

    def run(self) -> IntegrationResult:
        """Advance until DONE or FAILED and return the terminal result."""
        started = time.perf_counter()
        max_steps = self.config.max_steps
        max_wall = self.config.max_wall_time

        while self.status is IntegrationStatus.ADVANCING:
            try:
                if max_steps is not None and self.n_accepted >= max_steps:
                    raise BudgetExhausted(
                        f"step budget of {max_steps} exhausted at t={self.t}",
                        t=self.t, state=self.state)
                if max_wall is not None and time.perf_counter() - started > max_wall:
                    raise BudgetExhausted(
                        f"wall-clock budget of {max_wall}s exhausted at t={self.t}",
                        t=self.t, state=self.state)
                self.step()
            except NumericalFault as exc:
                self.status = IntegrationStatus.FAILED
                self.message = str(exc)
                self.fault = exc
                logger.warning("Integration failed: %s (t=%.6e, state=%s)",
                               exc, self.t, self.state)
                break
            self._check_done()

        if self.status is IntegrationStatus.DONE:
            logger.debug("Integration done at t=%.6e after %d accepted / %d rejected steps",
                         self.t, self.n_accepted, self.n_rejected)
        return self.result()

    def result(self) -> IntegrationResult:
        res = IntegrationResult(
            t=self.t,
            state=self.state.copy(),
            status=self.status,
            message=self.message,
            fault=self.fault,
            n_accepted=self.n_accepted,
            n_rejected=self.n_rejected,
            nfev=self.nfev,
            h_next=self.h,
        )
        if self.record:
            res.time_history = np.array(self._times)
            res.state_history = np.array(self._states)
        return res


def evolve(fun: Callable, y0, config: SolverConfig, args: tuple = (),
           stop: Optional[StopPredicate] = None,
           record: bool = False) -> IntegrationResult:
    """
    Integrate fun(t, y, *args) from config.t_start until config.t_end or
    until stop(t, y) holds.

    Numerical faults do not propagate: they end the run in the FAILED state
    with the last valid t and state (see IntegrationResult.raise_for_status).
    """
    config.validate()
    return Evolution(fun, y0, config, args=args, stop=stop, record=record).run()
