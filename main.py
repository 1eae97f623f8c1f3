#!/usr/bin/env python3
"""
═══════════════════════════════════════════════════════════════════════════════
  GLIDER LAUNCH-ANGLE SWEEP — Main Runner
═══════════════════════════════════════════════════════════════════════════════

  Integrates the glide equations for a family of launch angles and prints
  one line per variant:

      t_final   v_final   launch_angle   x_final   y_final

  Variants that hit a numerical fault are printed with a "Troubles:" prefix
  and the last valid state; the sweep always continues.

  Usage:
    python main.py                      # reference sweep (20 variants)
    python main.py --workers 4          # run variants on a thread pool
    python main.py --validate --plot    # cross-check with SciPy, save plots
═══════════════════════════════════════════════════════════════════════════════
"""

import argparse
import logging
import math
import sys
import time

from glider.config import SolverConfig, SweepConfig
from glider.dynamics import GliderParameters, LaunchConditions
from glider.errors import ConfigurationError
from glider.sweep import format_record, run_sweep, simulate_flight, variant_conditions


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Glider launch-angle sweep (RKF45)")
    ap.add_argument("--R", type=float, default=10.0, help="aerodynamic efficiency")
    ap.add_argument("--t-end", type=float, default=600.0)
    ap.add_argument("--eps-abs", type=float, default=1e-8)
    ap.add_argument("--eps-rel", type=float, default=0.0)
    ap.add_argument("--h-initial", type=float, default=1e-6)
    ap.add_argument("--v0", type=float, default=2.0)
    ap.add_argument("--theta0", type=float, default=-math.pi / 3.0)
    ap.add_argument("--y0", type=float, default=2.0)
    ap.add_argument("--count", type=int, default=20)
    ap.add_argument("--angle-increment", type=float, default=0.1)
    ap.add_argument("--workers", type=int, default=1)
    ap.add_argument("--max-steps", type=int, default=1_000_000)
    ap.add_argument("--max-wall-time", type=float, default=None,
                    help="seconds per variant")
    ap.add_argument("--validate", action="store_true",
                    help="compare against scipy.integrate.solve_ivp")
    ap.add_argument("--plot", action="store_true", help="save sweep plots")
    ap.add_argument("--outdir", type=str, default="outputs")
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )

    params = GliderParameters(R=args.R)
    solver = SolverConfig(
        eps_abs=args.eps_abs,
        eps_rel=args.eps_rel,
        h_initial=args.h_initial,
        t_end=args.t_end,
        max_steps=args.max_steps,
        max_wall_time=args.max_wall_time,
    )
    sweep = SweepConfig(
        count=args.count,
        angle_increment=args.angle_increment,
        base=LaunchConditions(velocity=args.v0, angle=args.theta0,
                              altitude=args.y0),
    )

    start_time = time.time()
    try:
        records = run_sweep(params, solver, sweep, workers=args.workers)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    for record in records:
        print(format_record(record))

    if args.validate:
        from glider.validation import validate_sweep
        val_results = validate_sweep(params, solver, sweep, records=records)
    else:
        val_results = None

    if args.plot:
        from glider.visualization import (
            ensure_output_dir, plot_sweep, plot_trajectories, plot_validation,
        )
        import matplotlib.pyplot as plt

        out = ensure_output_dir(args.outdir)
        fig = plot_sweep(records, save_path=f'{out}/01_sweep_summary.png')
        plt.close(fig)

        flights = [simulate_flight(variant_conditions(r.index, sweep), params,
                                   solver, record=True) for r in records]
        labels = [f"θ₀={r.launch_angle:+.2f}" for r in records]
        fig = plot_trajectories(flights, labels,
                                save_path=f'{out}/02_glide_paths.png')
        plt.close(fig)

        if val_results:
            fig = plot_validation(val_results,
                                  save_path=f'{out}/03_validation.png')
            plt.close(fig)
        print(f"  ✓ Plots saved to: {out}/", file=sys.stderr)

    logging.getLogger(__name__).info("Total runtime: %.1f seconds",
                                     time.time() - start_time)
    return 0


if __name__ == "__main__":
    sys.exit(main())
