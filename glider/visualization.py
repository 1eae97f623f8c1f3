"""
Visualization Engine
====================
Plots for the launch-angle sweep:
  1. Glide paths (height vs range) for recorded flights
  2. Sweep summary (range, flight time, final speed vs launch angle)
  3. Validation deviations against the SciPy reference
"""

import os
from typing import List

import numpy as np
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from .dynamics import X, Y
from .integrator import IntegrationResult
from .sweep import SweepRecord


# ── Style Configuration ───────────────────────────────────────────────────
STYLE = {
    'bg_color': '#0a0a0a',
    'text_color': '#e0e0e0',
    'grid_color': '#333333',
    'accent_colors': ['#00d4ff', '#ff6b35', '#00e676', '#ffeb3b',
                      '#e040fb', '#ff5252'],
    'fail_color': '#ff5252',
}


def _apply_dark_style(fig, axes):
    """Apply consistent dark theme to figure and axes."""
    fig.patch.set_facecolor(STYLE['bg_color'])
    if not isinstance(axes, np.ndarray):
        axes = [axes]
    else:
        axes = axes.flatten()

    for ax in axes:
        ax.set_facecolor(STYLE['bg_color'])
        ax.tick_params(colors=STYLE['text_color'])
        ax.xaxis.label.set_color(STYLE['text_color'])
        ax.yaxis.label.set_color(STYLE['text_color'])
        ax.title.set_color(STYLE['text_color'])
        ax.grid(True, color=STYLE['grid_color'], alpha=0.4, linewidth=0.5)
        for spine in ax.spines.values():
            spine.set_color(STYLE['grid_color'])


def _save(fig, save_path):
    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight',
                    facecolor=STYLE['bg_color'])


def ensure_output_dir(path: str = 'outputs'):
    os.makedirs(path, exist_ok=True)
    return path


# ══════════════════════════════════════════════════════════════════════════
#  1. Glide Paths
# ══════════════════════════════════════════════════════════════════════════

def plot_trajectories(results: List[IntegrationResult], labels: List[str] = None,
                      save_path: str = None) -> plt.Figure:
    """Height vs range for flights integrated with record=True."""
    fig, ax = plt.subplots(figsize=(12, 6))
    _apply_dark_style(fig, ax)

    cmap = plt.get_cmap('viridis')
    for i, res in enumerate(results):
        if res.state_history is None:
            raise ValueError("Trajectory plot needs results recorded with record=True")
        color = cmap(i / max(len(results) - 1, 1))
        label = labels[i] if labels else None
        ax.plot(res.state_history[:, X], res.state_history[:, Y],
                color=color, linewidth=1.5, label=label)
        marker = 'x' if res.success else 'o'
        ax.plot(res.state[X], res.state[Y], marker,
                color=color if res.success else STYLE['fail_color'],
                markersize=7)

    ax.axhline(y=0.0, color='#555', linestyle='--', alpha=0.6)
    ax.set_xlabel('Range x', fontsize=12)
    ax.set_ylabel('Height y', fontsize=12)
    ax.set_title('Glide Paths by Launch Angle', fontsize=13, fontweight='bold')
    if labels:
        ax.legend(fontsize=8, ncol=2, facecolor='#1a1a1a', edgecolor='#444',
                  labelcolor=STYLE['text_color'])

    plt.tight_layout()
    _save(fig, save_path)
    return fig


# ══════════════════════════════════════════════════════════════════════════
#  2. Sweep Summary
# ══════════════════════════════════════════════════════════════════════════

def plot_sweep(records: List[SweepRecord], save_path: str = None) -> plt.Figure:
    """Final range, flight time and final speed against launch angle."""
    angles = np.array([r.launch_angle for r in records])
    failed = np.array([r.failed for r in records], dtype=bool)

    fig, axes = plt.subplots(1, 3, figsize=(18, 5))
    _apply_dark_style(fig, axes)

    panels = [
        ('Final range x', [r.x_final for r in records], STYLE['accent_colors'][0]),
        ('Flight time t', [r.t_final for r in records], STYLE['accent_colors'][1]),
        ('Final speed v', [r.v_final for r in records], STYLE['accent_colors'][2]),
    ]

    for ax, (title, values, color) in zip(axes, panels):
        values = np.asarray(values)
        ax.plot(angles, values, '-o', color=color, linewidth=2, markersize=5)
        if failed.any():
            ax.plot(angles[failed], values[failed], 'X',
                    color=STYLE['fail_color'], markersize=10, label='Fault')
            ax.legend(fontsize=9, facecolor='#1a1a1a', edgecolor='#444',
                      labelcolor=STYLE['text_color'])
        ax.set_xlabel('Launch angle (rad)')
        ax.set_title(title, fontweight='bold')

    fig.suptitle('Launch-Angle Sweep', fontsize=14, fontweight='bold',
                 color=STYLE['text_color'], y=1.03)
    plt.tight_layout()
    _save(fig, save_path)
    return fig


# ══════════════════════════════════════════════════════════════════════════
#  3. Validation
# ══════════════════════════════════════════════════════════════════════════

def plot_validation(validation_results, save_path: str = None) -> plt.Figure:
    """Deviation from the SciPy reference per launch angle (log scale)."""
    fig, ax = plt.subplots(figsize=(10, 5))
    _apply_dark_style(fig, ax)

    angles = [r.launch_angle for r in validation_results]
    errors = [max(r.max_abs_error, 1e-16) for r in validation_results]
    ax.semilogy(angles, errors, 'o-', color=STYLE['accent_colors'][4], linewidth=2)
    ax.set_xlabel('Launch angle (rad)')
    ax.set_ylabel('max |sim - ref|')
    ax.set_title('RKF45 vs SciPy DOP853', fontweight='bold')

    plt.tight_layout()
    _save(fig, save_path)
    return fig
