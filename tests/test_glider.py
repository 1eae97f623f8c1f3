"""
Unit Tests for the Glider Sweep Simulator
=========================================
Tests the equations of motion, the RKF45 engine, and the sweep driver.
Run: python -m pytest tests/ -v
"""

import sys
import os
import math
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from glider.config import SolverConfig, SweepConfig
from glider.dynamics import (
    STATE_SIZE, GliderParameters, LaunchConditions, glider_rhs, has_landed,
)
from glider.errors import (
    ConfigurationError, NumericalFault, StalledIntegration, BudgetExhausted,
)
from glider.integrator import (
    RKF45_B4, RKF45_B5, RKF45_C, RKF45_E,
    Evolution, IntegrationStatus, StepController, evolve, rkf45_step,
)
from glider import sweep as sweep_module
from glider.sweep import (
    SweepRecord, format_record, launch_variants, run_sweep, run_variant,
    simulate_flight,
)
from glider.validation import validate_sweep


def _decay(t, y):
    return -y


class RecordingController(StepController):
    """Controller that keeps every (h, decision) pair it hands out."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.history = []

    def decide(self, h, y, y_trial, err):
        decision = super().decide(h, y, y_trial, err)
        self.history.append((h, decision))
        return decision


class TestDynamics:
    """Verify the glide equations."""

    def test_level_flight_derivative(self):
        d = glider_rhs(0.0, np.array([2.0, 0.0, 0.0, 1.0]), 10.0)
        assert np.allclose(d, [-0.4, 1.5, 2.0, 0.0])

    def test_climbing_derivative(self):
        theta = math.pi / 6
        d = glider_rhs(0.0, np.array([1.0, theta, 5.0, 3.0]), 4.0)
        assert abs(d[0] - (-0.5 - 0.25)) < 1e-12
        assert abs(d[1] - (-math.cos(theta) + 1.0)) < 1e-12
        assert abs(d[2] - math.cos(theta)) < 1e-12
        assert abs(d[3] - 0.5) < 1e-12

    def test_zero_speed_is_a_fault(self):
        with pytest.raises(NumericalFault):
            glider_rhs(0.0, np.array([0.0, 0.3, 0.0, 1.0]), 10.0)

    def test_state_size_checked(self):
        with pytest.raises(ValueError):
            glider_rhs(0.0, np.zeros(STATE_SIZE - 1), 10.0)

    def test_default_launch_state(self):
        y0 = LaunchConditions().initial_state()
        assert np.allclose(y0, [2.0, -math.pi / 3, 0.0, 2.0])

    def test_landing_predicate(self):
        assert has_landed(0.0, np.array([1.0, 0.0, 0.0, 0.0]))
        assert has_landed(0.0, np.array([1.0, 0.0, 0.0, -1e-3]))
        assert not has_landed(0.0, np.array([1.0, 0.0, 0.0, 1e-3]))


class TestEmbeddedStep:
    """Verify the Runge-Kutta-Fehlberg 4(5) step."""

    def test_tableau_consistency(self):
        assert abs(RKF45_B5.sum() - 1.0) < 1e-14
        assert abs(RKF45_B4.sum() - 1.0) < 1e-14
        assert abs(RKF45_E.sum()) < 1e-14
        assert RKF45_C[0] == 0.0 and len(RKF45_C) == 6

    def test_tableau_is_read_only(self):
        with pytest.raises(ValueError):
            RKF45_B5[0] = 1.0

    def test_cubic_quadrature_is_exact(self):
        """Both embedded solutions integrate y' = t^3 exactly."""
        h = 0.5
        y5, err = rkf45_step(lambda t, y: np.array([t ** 3]), 0.0,
                             np.array([0.0]), h)
        assert abs(y5[0] - h ** 4 / 4) < 1e-14
        assert abs(err[0]) < 1e-14

    def test_exponential_decay_step(self):
        y5, err = rkf45_step(_decay, 0.0, np.array([1.0]), 0.1)
        assert abs(y5[0] - math.exp(-0.1)) < 1e-8
        assert 0.0 < abs(err[0]) < 1e-5

    def test_extra_args_forwarded(self):
        y5, _ = rkf45_step(glider_rhs, 0.0, np.array([2.0, 0.0, 0.0, 1.0]),
                           1e-3, args=(10.0,))
        assert y5[2] > 0.0

    def test_non_finite_derivative_is_a_fault(self):
        with pytest.raises(NumericalFault):
            rkf45_step(lambda t, y: np.array([np.nan]), 0.0, np.array([1.0]), 0.1)


class TestController:
    """Verify accept/reject decisions and step-size bounds."""

    def test_zero_error_grows_to_ceiling(self):
        c = StepController(1e-8, 0.0)
        d = c.decide(0.1, np.ones(4), np.ones(4), np.zeros(4))
        assert d.accepted
        assert d.h_next == pytest.approx(0.5)

    def test_small_error_accepted(self):
        c = StepController(1e-8, 0.0)
        d = c.decide(0.1, np.ones(2), np.ones(2), np.array([5e-9, 1e-10]))
        assert d.accepted
        assert d.norm == pytest.approx(0.5)
        assert d.h_next == pytest.approx(0.1 * 0.9 * 0.5 ** -0.2)

    def test_large_error_rejected_and_shrunk(self):
        c = StepController(1e-8, 0.0)
        d = c.decide(0.1, np.ones(2), np.ones(2), np.array([1e-3, 0.0]))
        assert not d.accepted
        assert d.h_next == pytest.approx(0.02)

    def test_relative_scale_uses_larger_magnitude(self):
        c = StepController(0.0, 1e-4)
        norm = c.error_norm(np.array([10.0]), np.array([20.0]), np.array([1e-3]))
        assert norm == pytest.approx(0.5)

    def test_pure_relative_control_on_zero_component(self):
        c = StepController(0.0, 1e-6)
        norm = c.error_norm(np.array([0.0, 1.0]), np.array([0.0, 1.0]),
                            np.array([0.0, 1e-7]))
        assert norm == pytest.approx(0.1)

    def test_next_step_within_bounds(self):
        c = StepController(1e-8, 1e-6)
        rng = np.random.default_rng(42)
        for _ in range(500):
            h = float(rng.uniform(1e-6, 1.0))
            y = rng.normal(size=4)
            err = rng.normal(size=4) * 10.0 ** rng.uniform(-14, -2)
            d = c.decide(h, y, y, err)
            assert c.min_shrink * h <= d.h_next * (1 + 1e-12)
            if d.accepted:
                assert d.norm <= 1.0
                assert d.h_next <= c.max_growth * h * (1 + 1e-12)
            else:
                assert d.h_next < h


class TestEvolution:
    """Verify the evolution driver state machine."""

    def test_decay_reaches_end_exactly(self):
        cfg = SolverConfig(eps_abs=1e-10, t_end=1.0, h_initial=1e-3)
        res = evolve(_decay, [1.0], cfg)
        assert res.status is IntegrationStatus.DONE
        assert res.t == 1.0
        assert abs(res.state[0] - math.exp(-1.0)) < 1e-7

    def test_time_monotone_and_bounded(self):
        cfg = SolverConfig(t_end=3.0)
        res = simulate_flight(LaunchConditions(altitude=50.0), solver=cfg,
                              record=True)
        times = res.time_history
        assert np.all(np.diff(times) > 0)
        assert times[-1] == 3.0
        assert res.t <= cfg.t_end

    def test_accepted_steps_respect_tolerance_and_bounds(self):
        cfg = SolverConfig(t_end=5.0)
        controller = RecordingController(cfg.eps_abs, cfg.eps_rel)
        evo = Evolution(glider_rhs, LaunchConditions().initial_state(), cfg,
                        args=(10.0,), stop=has_landed, controller=controller)
        evo.run()
        accepted = [(h, d) for h, d in controller.history if d.accepted]
        assert len(accepted) == evo.n_accepted > 0
        for h, d in accepted:
            assert d.norm <= 1.0
            assert 0.2 * h <= d.h_next * (1 + 1e-12)
            assert d.h_next <= 5.0 * h * (1 + 1e-12)

    def test_deterministic(self):
        cond = LaunchConditions(angle=-math.pi / 3 + 0.1)
        a = simulate_flight(cond, record=True)
        b = simulate_flight(cond, record=True)
        assert np.array_equal(a.time_history, b.time_history)
        assert np.array_equal(a.state_history, b.state_history)

    def test_grounded_launch_is_done_immediately(self):
        cond = LaunchConditions(altitude=0.0)
        res = simulate_flight(cond)
        assert res.status is IntegrationStatus.DONE
        assert res.t == 0.0
        assert res.t < 1e-3
        with pytest.raises(NumericalFault):
            res.raise_for_status()
        assert res.n_accepted == 0

    def test_reference_scenario_lands(self):
        cond = LaunchConditions(angle=-math.pi / 3 + 0.1)
        res = simulate_flight(cond)
        assert res.status is IntegrationStatus.DONE
        assert res.t > 0.0
        assert res.state[3] <= 0.0 or res.t == 600.0

    def test_zero_speed_launch_fails_with_last_valid_state(self):
        cond = LaunchConditions(velocity=0.0)
        res = simulate_flight(cond)
        assert res.status is IntegrationStatus.FAILED
        assert isinstance(res.fault, NumericalFault)
        assert res.t == 0.0
        assert res.t < 1e-3
        with pytest.raises(NumericalFault):
            res.raise_for_status()
        with pytest.raises(NumericalFault):
            res.raise_for_status()

    def test_speed_driven_to_zero_faults(self):
        """v' = -1 reaches v = 0 at t = 1 where 1/v blows up."""
        def fun(t, y):
            return np.array([-1.0, 1.0 / y[0]])

        res = evolve(fun, [1.0, 0.0], SolverConfig(t_end=2.0))
        assert res.status is IntegrationStatus.FAILED
        assert isinstance(res.fault, NumericalFault)
        assert res.t < 1.0
        assert np.all(np.isfinite(res.state))
        with pytest.raises(NumericalFault):
            res.raise_for_status()

    def test_retry_bound_stalls(self):
        cfg = SolverConfig(t_end=1.0, h_initial=0.5, max_rejections=1,
                           min_shrink=0.9, safety=1.0)
        res = evolve(lambda t, y: np.array([math.exp(50 * t)]), [0.0], cfg)
        assert res.status is IntegrationStatus.FAILED
        assert isinstance(res.fault, StalledIntegration)
        assert res.t == 0.0

    def test_step_floor_stalls(self):
        """y' = 1/(0.5 - t) forces steps below h_min just short of t = 0.5."""
        cfg = SolverConfig(t_end=1.0, h_min=1e-6, max_rejections=1000)
        res = evolve(lambda t, y: np.array([1.0 / (0.5 - t)]), [0.0], cfg)
        assert res.status is IntegrationStatus.FAILED
        assert isinstance(res.fault, StalledIntegration)
        assert 0.49 < res.t < 0.5
        assert np.all(np.isfinite(res.state))

    def test_wall_clock_budget(self):
        cfg = SolverConfig(eps_abs=1e-12, t_end=1e5, max_wall_time=0.05)
        res = simulate_flight(LaunchConditions(altitude=1e6), solver=cfg)
        assert res.status is IntegrationStatus.FAILED
        assert isinstance(res.fault, BudgetExhausted)
        assert 0.0 < res.t < cfg.t_end
        assert np.all(np.isfinite(res.state))

    def test_glider_near_zero_speed_faults(self):
        """Level launch at v = 1e-6: theta' ~ -1/v needs steps below h_min."""
        cfg = SolverConfig(h_min=1e-6)
        cond = LaunchConditions(velocity=1e-6, angle=0.0)
        res = simulate_flight(cond, solver=cfg)
        assert res.status is IntegrationStatus.FAILED
        assert isinstance(res.fault, NumericalFault)
        assert np.all(np.isfinite(res.state))
        assert res.t < 1e-3
        with pytest.raises(NumericalFault):
            res.raise_for_status()

    def test_step_budget(self):
        cfg = SolverConfig(t_end=600.0, max_steps=10)
        res = simulate_flight(LaunchConditions(altitude=100.0), solver=cfg)
        assert res.status is IntegrationStatus.FAILED
        assert isinstance(res.fault, BudgetExhausted)
        assert res.n_accepted == 10

    def test_degenerate_tolerance_rejected(self):
        with pytest.raises(ConfigurationError):
            evolve(_decay, [1.0], SolverConfig(eps_abs=0.0, eps_rel=0.0))


class TestConfig:
    """Verify defaults and configuration checks."""

    def test_reference_defaults(self):
        cfg = SolverConfig()
        assert (cfg.eps_abs, cfg.eps_rel, cfg.h_initial) == (1e-8, 0.0, 1e-6)
        assert (cfg.t_start, cfg.t_end) == (0.0, 600.0)
        sw = SweepConfig()
        assert sw.count == 20 and sw.angle_increment == 0.1
        assert GliderParameters().R == 10.0

    @pytest.mark.parametrize('kwargs', [
        {'eps_abs': 0.0, 'eps_rel': 0.0},
        {'eps_abs': -1e-8},
        {'h_initial': 0.0},
        {'h_initial': -1e-6},
        {'t_end': 0.0},
        {'min_shrink': 1.0},
        {'max_growth': 1.0},
        {'max_rejections': 0},
    ])
    def test_invalid_solver_config(self, kwargs):
        with pytest.raises(ConfigurationError):
            SolverConfig(**kwargs).validate()

    def test_configuration_error_is_value_error(self):
        assert issubclass(ConfigurationError, ValueError)


class TestSweep:
    """Verify the launch-angle sweep driver."""

    def test_variant_angles(self):
        sw = SweepConfig(count=3)
        angles = [c.angle for _, c in launch_variants(sw)]
        base = -math.pi / 3
        assert angles == [base + 0.1, base + 0.2, base + 0.30000000000000004]
        assert [i for i, _ in launch_variants(sw)] == [1, 2, 3]

    def test_one_record_per_variant_in_order(self):
        records = run_sweep(sweep=SweepConfig(count=3))
        assert [r.index for r in records] == [1, 2, 3]
        for r in records:
            assert r.t_final > 0.0
            assert r.y_final <= 0.0 or r.t_final == 600.0
        assert records[0].launch_angle < records[1].launch_angle < records[2].launch_angle

    def test_variant_is_independent_of_sweep(self):
        params, solver, sw = GliderParameters(), SolverConfig(), SweepConfig(count=3)
        records = run_sweep(params, solver, sw)
        single = run_variant(2, params, solver, sw)
        assert single.as_tuple() == records[1].as_tuple()

    def test_thread_pool_matches_sequential(self):
        sw = SweepConfig(count=4)
        seq = run_sweep(sweep=sw)
        par = run_sweep(sweep=sw, workers=3)
        assert [r.as_tuple() for r in par] == [r.as_tuple() for r in seq]

    def test_degenerate_tolerance_aborts_before_any_variant(self, monkeypatch):
        def boom(*args, **kwargs):
            raise AssertionError("variant ran despite bad configuration")

        monkeypatch.setattr(sweep_module, 'run_variant', boom)
        with pytest.raises(ConfigurationError):
            run_sweep(solver=SolverConfig(eps_abs=0.0, eps_rel=0.0))

    def test_non_positive_parameters_abort(self):
        with pytest.raises(ConfigurationError):
            run_sweep(params=GliderParameters(R=0.0))
        with pytest.raises(ConfigurationError):
            run_sweep(sweep=SweepConfig(count=0))

    def test_faulty_variants_still_reported(self):
        sw = SweepConfig(count=3, base=LaunchConditions(velocity=0.0))
        records = run_sweep(sweep=sw)
        assert len(records) == 3
        assert all(r.failed for r in records)
        assert all(r.t_final == 0.0 and r.y_final == 2.0 for r in records)

    def test_format_record(self):
        rec = SweepRecord(index=1, t_final=1.0, v_final=2.5, launch_angle=-0.5,
                          x_final=12.0, y_final=-0.001,
                          status=IntegrationStatus.DONE)
        assert format_record(rec) == (
            " 1.00000e+00   2.50000e+00  -5.00000e-01   1.20000e+01  -1.00000e-03")
        rec.status = IntegrationStatus.FAILED
        assert format_record(rec).startswith("Troubles:  1.00000e+00")


class TestValidation:
    """Cross-check the engine against SciPy."""

    def test_agrees_with_scipy(self):
        sw = SweepConfig(count=2)
        results = validate_sweep(sweep=sw, verbose=False)
        assert len(results) == 2
        for r in results:
            assert r.max_abs_error < 1e-3
            if r.landing_time is not None:
                assert 0.0 < r.landing_time <= r.t_final + 1e-9

    def test_agrees_with_scipy_from_later_start(self):
        solver = SolverConfig(t_start=5.0)
        results = validate_sweep(solver=solver, sweep=SweepConfig(count=1),
                                 verbose=False)
        assert len(results) == 1
        assert results[0].max_abs_error < 1e-3
        assert results[0].t_final > 5.0
        if results[0].landing_time is not None:
            assert 5.0 < results[0].landing_time <= results[0].t_final + 1e-9


class TestRunner:
    """Smoke-test the command-line runner."""

    def test_prints_one_line_per_variant(self, capsys):
        import main
        assert main.main(['--count', '2']) == 0
        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 2
        assert all(len(line.split()) == 5 for line in lines)

    def test_validate_and_plot(self, tmp_path, capsys):
        import main
        assert main.main(['--count', '2', '--validate', '--plot',
                          '--outdir', str(tmp_path)]) == 0
        assert 'VALIDATION' in capsys.readouterr().out
        for name in ('01_sweep_summary.png', '02_glide_paths.png',
                     '03_validation.png'):
            assert (tmp_path / name).exists()

    def test_configuration_error_exit_code(self, capsys):
        import main
        assert main.main(['--eps-abs', '0', '--eps-rel', '0']) == 2
        assert 'Configuration error' in capsys.readouterr().err


if __name__ == "__main__":
    pytest.main([__file__, '-v'])
