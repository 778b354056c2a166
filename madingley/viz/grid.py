"""Grid maps and timeseries for Madingley dispersal runs.

Every function:
  - Accepts a DispersalSimResult, a ModelGrid or a dispersal tracking table
  - Returns a matplotlib Figure
  - Has an optional ``save_path`` parameter (saves PNG when given)
  - Uses the shared dark theme from ``madingley.viz.style``

matplotlib backend is forced to Agg (no display) on import.

Maps: x = longitude, y = latitude, cells drawn at their true extent.
"""

from __future__ import annotations

import matplotlib
matplotlib.use('Agg')

from typing import Optional, Tuple, TYPE_CHECKING

import matplotlib.patches as mpatches
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from madingley.types import DIRECTION_LONG_NAMES, DIRECTION_OFFSETS, Direction
from madingley.viz.style import (
    ACCENT_COLORS,
    REALM_CMAP,
    TEXT_COLOR,
    dark_figure,
    save_figure,
    style_colorbar,
)

if TYPE_CHECKING:
    from madingley.grid import ModelGrid
    from madingley.model import DispersalSimResult


def _extent(grid: 'ModelGrid') -> Tuple[float, float, float, float]:
    return (grid.min_lon, grid.max_lon, grid.min_lat, grid.max_lat)


def _label_map_axes(ax, title: str) -> None:
    ax.set_xlabel('Longitude (°)', fontsize=12)
    ax.set_ylabel('Latitude (°)', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')


# ═══════════════════════════════════════════════════════════════════════
# 1. REALM MAP
# ═══════════════════════════════════════════════════════════════════════

def plot_realm_map(
    grid: 'ModelGrid',
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Land / marine / inactive cells of a model grid.

    Args:
        grid: ModelGrid.
        save_path: Optional path to save the figure.

    Returns:
        matplotlib Figure.
    """
    realm = np.clip(grid.realm_grid(), 0, 2)
    fig, ax = dark_figure()
    ax.imshow(realm, origin='lower', extent=_extent(grid), cmap=REALM_CMAP,
              vmin=-0.5, vmax=2.5, interpolation='nearest', aspect='auto')
    handles = [
        mpatches.Patch(color=REALM_CMAP(2), label='Marine'),
        mpatches.Patch(color=REALM_CMAP(1), label='Land'),
    ]
    ax.legend(handles=handles, loc='upper right', fontsize=9,
              facecolor='none', labelcolor=TEXT_COLOR)
    _label_map_axes(ax, 'Model Grid Realms')

    if save_path:
        save_figure(fig, save_path)
    return fig


# ═══════════════════════════════════════════════════════════════════════
# 2. COHORT COUNT MAP
# ═══════════════════════════════════════════════════════════════════════

def plot_cohort_count_map(
    result: 'DispersalSimResult',
    time_step: int = -1,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Number of cohorts in each cell after a given time step.

    Args:
        result: DispersalSimResult with cohort_counts and grid.
        time_step: Index into cohort_counts; 0 is the seeded state and
            -1 the final state.
        save_path: Optional path to save the figure.

    Returns:
        matplotlib Figure.
    """
    counts = result.cohort_counts[time_step]
    n_states = result.cohort_counts.shape[0]
    shown = time_step % n_states

    fig, ax = dark_figure()
    im = ax.imshow(counts, origin='lower', extent=_extent(result.grid),
                   cmap='viridis', interpolation='nearest', aspect='auto')
    cbar = fig.colorbar(im, ax=ax, shrink=0.8, pad=0.02)
    style_colorbar(cbar, 'Cohorts per cell')
    label = 'seeded' if shown == 0 else f'after step {shown - 1}'
    _label_map_axes(ax, f'Cohort Count ({label})')

    if save_path:
        save_figure(fig, save_path)
    return fig


# ═══════════════════════════════════════════════════════════════════════
# 3. DISPERSAL TIMESERIES
# ═══════════════════════════════════════════════════════════════════════

def plot_dispersal_timeseries(
    result: 'DispersalSimResult',
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Dispersal events per time step, with total abundance overlaid.

    Args:
        result: DispersalSimResult with dispersals and total_abundance.
        save_path: Optional path to save the figure.

    Returns:
        matplotlib Figure.
    """
    steps = np.arange(result.n_time_steps)
    fig, ax = dark_figure(figsize=(12, 5))

    ax.bar(steps, result.dispersals, color=ACCENT_COLORS[1], alpha=0.85,
           label='Dispersals')
    ax.set_xlabel('Time step', fontsize=12)
    ax.set_ylabel('Dispersal events', fontsize=12)
    ax.set_title('Cross-Cell Dispersal', fontsize=14, fontweight='bold')

    ax2 = ax.twinx()
    ax2.plot(steps, result.total_abundance, color=ACCENT_COLORS[0],
             linewidth=2, marker='o', markersize=3, label='Total abundance')
    ax2.set_ylabel('Total abundance', color=ACCENT_COLORS[0], fontsize=12)
    ax2.tick_params(axis='y', colors=ACCENT_COLORS[0])

    lines = ax.get_legend_handles_labels()
    lines2 = ax2.get_legend_handles_labels()
    ax.legend(lines[0] + lines2[0], lines[1] + lines2[1], loc='upper right',
              fontsize=9, facecolor='none', labelcolor=TEXT_COLOR)

    if save_path:
        save_figure(fig, save_path)
    return fig


# ═══════════════════════════════════════════════════════════════════════
# 4. DISPERSAL FLOW MAP
# ═══════════════════════════════════════════════════════════════════════

def net_outbound_vectors(
    dispersal_table: pd.DataFrame,
    shape: Tuple[int, int],
    time_step: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Net outbound (east, north) cohort counts per cell.

    Args:
        dispersal_table: Table read by ``tracking.read_dispersal_file``.
        shape: (n_lat, n_lon) of the grid.
        time_step: Restrict to one time step; all steps summed if None.

    Returns:
        (u, v) arrays of shape ``shape``.
    """
    table = dispersal_table
    if time_step is not None:
        table = table[table['TimeStep'] == time_step]
    u = np.zeros(shape)
    v = np.zeros(shape)
    rows = table['Cellrow'].to_numpy(dtype=int)
    cols = table['CellCol'].to_numpy(dtype=int)
    for direction in Direction:
        d_lat, d_lon = DIRECTION_OFFSETS[direction]
        counts = table[f'cohortsExit{DIRECTION_LONG_NAMES[direction]}'].to_numpy(dtype=float)
        np.add.at(u, (rows, cols), counts * d_lon)
        np.add.at(v, (rows, cols), counts * d_lat)
    return u, v


def plot_dispersal_flow_map(
    dispersal_table: pd.DataFrame,
    grid: 'ModelGrid',
    time_step: Optional[int] = None,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Arrows of net outbound dispersal direction over the realm map.

    Arrow length is proportional to the net number of cohorts leaving
    each cell; cells with no net outflow are left blank.

    Args:
        dispersal_table: Table read by ``tracking.read_dispersal_file``.
        grid: ModelGrid the table was recorded from.
        time_step: Restrict to one time step; all steps summed if None.
        save_path: Optional path to save the figure.

    Returns:
        matplotlib Figure.
    """
    u, v = net_outbound_vectors(dispersal_table, grid.shape, time_step)
    realm = np.clip(grid.realm_grid(), 0, 2)

    fig, ax = dark_figure()
    ax.imshow(realm, origin='lower', extent=_extent(grid), cmap=REALM_CMAP,
              vmin=-0.5, vmax=2.5, interpolation='nearest', aspect='auto',
              alpha=0.6)

    lon_centres = grid.lons + grid.lon_cell_size / 2.0
    lat_centres = grid.lats + grid.lat_cell_size / 2.0
    X, Y = np.meshgrid(lon_centres, lat_centres)
    moving = (u != 0) | (v != 0)
    if moving.any():
        ax.quiver(X[moving], Y[moving], u[moving], v[moving],
                  color=ACCENT_COLORS[2], angles='xy', pivot='middle')

    label = 'all steps' if time_step is None else f'step {time_step}'
    _label_map_axes(ax, f'Net Dispersal Flow ({label})')
    ax.set_xlim(grid.min_lon, grid.max_lon)
    ax.set_ylim(grid.min_lat, grid.max_lat)

    if save_path:
        save_figure(fig, save_path)
    return fig
