#!/usr/bin/env python3
"""Run a dispersal-only Madingley simulation from a YAML configuration.

Loads the base config (plus an optional scenario override), seeds the
grid, runs cross-grid-cell dispersal, writes the dispersal tracking file
when tracking is enabled, and optionally saves summary plots.

Usage:
    python scripts/run_dispersal.py
    python scripts/run_dispersal.py --scenario configs/advection.yaml --track
    python scripts/run_dispersal.py --steps 24 --output results/run1 --plots

References:
    - madingley/config.py: load_config, MadingleyConfig
    - madingley/model.py: run_dispersal_simulation
"""

import argparse
import logging
import sys
import time
from pathlib import Path

# ── Project imports ──────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from madingley.config import configure_logging, load_config
from madingley.model import run_dispersal_simulation
from madingley.tracking import read_dispersal_file

logger = logging.getLogger("run_dispersal")

DEFAULT_CONFIG = PROJECT_ROOT / "configs" / "default.yaml"


def save_plots(result, config, dispersal_path=None) -> None:
    """Write the standard summary figures into the output directory."""
    from madingley.viz.grid import (
        plot_cohort_count_map,
        plot_dispersal_flow_map,
        plot_dispersal_timeseries,
        plot_realm_map,
    )

    out_dir = Path(config.output.directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    suffix = config.output.file_suffix
    plot_realm_map(result.grid, save_path=out_dir / f"realm_map{suffix}.png")
    plot_cohort_count_map(result, time_step=0,
                          save_path=out_dir / f"cohorts_initial{suffix}.png")
    plot_cohort_count_map(result, time_step=-1,
                          save_path=out_dir / f"cohorts_final{suffix}.png")
    plot_dispersal_timeseries(result, save_path=out_dir / f"dispersal_timeseries{suffix}.png")
    if dispersal_path is not None and dispersal_path.exists():
        table = read_dispersal_file(dispersal_path)
        plot_dispersal_flow_map(table, result.grid,
                                save_path=out_dir / f"dispersal_flow{suffix}.png")
    logger.info("Saved plots to %s", out_dir)


def main():
    parser = argparse.ArgumentParser(
        description="Run a dispersal-only Madingley simulation.",
        epilog="Example: python scripts/run_dispersal.py --steps 24 --track --plots",
    )
    parser.add_argument(
        "--config", type=str, default=str(DEFAULT_CONFIG),
        help="Base config YAML (default: configs/default.yaml)",
    )
    parser.add_argument(
        "--scenario", type=str, default=None,
        help="Scenario YAML merged over the base config",
    )
    parser.add_argument(
        "--steps", type=int, default=None,
        help="Override model.n_time_steps",
    )
    parser.add_argument(
        "--output", type=str, default=None,
        help="Override output.directory",
    )
    parser.add_argument(
        "--track", action="store_true",
        help="Write the per-cell dispersal tracking file",
    )
    parser.add_argument(
        "--plots", action="store_true",
        help="Save summary plots to the output directory",
    )
    parser.add_argument(
        "--log-level", type=str, default=None,
        help="Override output.log_level (DEBUG, INFO, WARNING, ...)",
    )
    args = parser.parse_args()

    overrides = {"model": {}, "output": {}}
    if args.steps is not None:
        overrides["model"]["n_time_steps"] = args.steps
    if args.track:
        overrides["model"]["track_cross_cell_processes"] = True
    if args.output is not None:
        overrides["output"]["directory"] = args.output
    if args.plots:
        overrides["output"]["save_plots"] = True
    if args.log_level is not None:
        overrides["output"]["log_level"] = args.log_level

    config = load_config(args.config, args.scenario, overrides)
    configure_logging(config.output.log_level)

    print("=" * 60)
    print("Madingley Dispersal Runner")
    print("=" * 60)

    t0 = time.time()
    result = run_dispersal_simulation(config)
    elapsed = time.time() - t0

    out = config.output
    dispersal_path = None
    if config.model.track_cross_cell_processes:
        dispersal_path = Path(out.directory) / f"{out.dispersal_filename}{out.file_suffix}.txt"
    if out.save_plots:
        save_plots(result, config, dispersal_path)

    print(f"\n  Grid:              {result.grid.num_lat_cells} x {result.grid.num_lon_cells} cells")
    print(f"  Time steps:        {result.n_time_steps} ({config.model.global_time_step_unit})")
    print(f"  Dispersal type:    {config.model.dispersal_only_type}")
    print(f"  Total dispersals:  {result.total_dispersals}")
    print(f"  Cohorts (start):   {int(result.cohort_counts[0].sum())}")
    print(f"  Cohorts (end):     {int(result.cohort_counts[-1].sum())}")
    if dispersal_path is not None:
        print(f"  Tracking file:     {dispersal_path}")
    print(f"  Runtime:           {elapsed:.1f} s")
    print("\nDone.")


if __name__ == "__main__":
    main()
