"""Tracking of cross-grid-cell processes (dispersal) to text output.

The dispersal tracker writes one tab-separated row per grid cell per
committed time step: cohorts leaving and entering through each of the
eight compass directions, the mean body mass of dispersing cohorts and
the mean body mass of all cohorts now in the cell.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from madingley.types import DIRECTION_LONG_NAMES

logger = logging.getLogger(__name__)

DISPERSAL_HEADER = (
    ["TimeStep", "Cellrow", "CellCol", "Latitude", "Longitude"]
    + [f"cohortsExit{name}" for name in DIRECTION_LONG_NAMES]
    + [f"cohortsEnter{name}" for name in DIRECTION_LONG_NAMES]
    + ["MeanDispersingCohortWeight", "MeanCohortWeight"]
)


def _mean_or_zero(values: Sequence[float]) -> float:
    return float(np.mean(values)) if len(values) > 0 else 0.0


class DispersalTracker:
    """Writes per-cell dispersal counts to ``<output_path>/<filename><suffix>.txt``."""

    def __init__(self, dispersal_filename: str, output_path: Union[str, Path],
                 output_file_suffix: str = ""):
        output_path = Path(output_path)
        output_path.mkdir(parents=True, exist_ok=True)
        self.path = output_path / f"{dispersal_filename}{output_file_suffix}.txt"
        self._stream = open(self.path, 'w')
        self._stream.write("\t".join(DISPERSAL_HEADER) + "\n")
        logger.info("Tracking dispersal to %s", self.path)

    def record_dispersal(
        self,
        inbound_cohorts: np.ndarray,
        outbound_cohorts: np.ndarray,
        outbound_cohort_weights: List[List[List[float]]],
        current_time_step: int,
        grid,
    ) -> None:
        n_lat, n_lon = outbound_cohorts.shape[:2]
        for ii in range(n_lat):
            for jj in range(n_lon):
                mean_outbound = _mean_or_zero(outbound_cohort_weights[ii][jj])
                masses = [c.individual_body_mass
                          for c in grid.get_grid_cell_cohorts(ii, jj).all_items()]
                mean_cohort = _mean_or_zero(masses)
                fields = [
                    str(current_time_step), str(ii), str(jj),
                    repr(grid.get_cell_latitude(ii)),
                    repr(grid.get_cell_longitude(jj)),
                ]
                fields += [str(int(x)) for x in outbound_cohorts[ii, jj]]
                fields += [str(int(x)) for x in inbound_cohorts[ii, jj]]
                fields += [f"{mean_outbound:.6f}", f"{mean_cohort:.6f}"]
                self._stream.write("\t".join(fields) + "\n")
        self._stream.flush()

    def close_streams(self) -> None:
        if not self._stream.closed:
            self._stream.close()


class CrossCellProcessTracker:
    """Front end for all cross-cell process trackers.

    When ``track_cross_cell_processes`` is False no files are opened and
    recording is a no-op.
    """

    def __init__(self, track_cross_cell_processes: bool, filename: str = "DispersalData",
                 output_path: Union[str, Path] = "results/", output_file_suffix: str = ""):
        self.track_cross_cell_processes = track_cross_cell_processes
        self.track_dispersal: Optional[DispersalTracker] = None
        if track_cross_cell_processes:
            self.track_dispersal = DispersalTracker(filename, output_path, output_file_suffix)

    def record_dispersal_for_a_cell(self, inbound_cohorts, outbound_cohorts,
                                    outbound_cohort_weights, time_step, grid) -> None:
        if self.track_dispersal is not None:
            self.track_dispersal.record_dispersal(
                inbound_cohorts, outbound_cohorts, outbound_cohort_weights,
                time_step, grid)

    def close_streams(self) -> None:
        if self.track_dispersal is not None:
            self.track_dispersal.close_streams()

    def __enter__(self) -> 'CrossCellProcessTracker':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close_streams()


def read_dispersal_file(path: Union[str, Path]) -> pd.DataFrame:
    """Load a dispersal tracking file written by DispersalTracker.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Dispersal file not found: {path}")
    return pd.read_csv(path, sep="\t")
