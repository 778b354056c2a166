"""Configuration system for the Madingley dispersal model.

Hierarchical YAML configuration with deep-merge support:
  default.yaml → scenario override → sweep overrides

The loaded MadingleyConfig doubles as the model initialisation context
handed to the cross-grid-cell ecology: dispersal formulations read their
parameters from its ``dispersal`` section and the plankton threshold
from its ``model`` section.

References:
  - Madingley model EcologicalParameters (dispersal parameter defaults)
  - Harfoot et al. (2014) Text S1 §4 (dispersal)
"""

from __future__ import annotations

import dataclasses
import logging
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from madingley.utils import MONTH_TIME_STEP_UNITS, TIME_UNITS


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class ModelSection:
    """Top-level run control."""
    global_time_step_unit: str = "month"
    n_time_steps: int = 12
    draw_randomly: bool = False
    seed: int = 14141
    plankton_dispersal_threshold: float = 0.01   # g; lighter cohorts drift
    dispersal_only: bool = True
    dispersal_only_type: str = "diffusion"       # 'diffusion', 'advection', 'responsive'
    specific_locations: bool = False             # skip cross-cell ecology entirely
    track_cross_cell_processes: bool = False


@dataclass
class GridSection:
    """Model grid extent and environment source."""
    min_lat: float = -10.0
    max_lat: float = 10.0
    min_lon: float = -10.0
    max_lon: float = 10.0
    lat_cell_size: float = 1.0
    lon_cell_size: float = 1.0
    environment_file: Optional[str] = None   # .npz with realm / u_vel / v_vel
    default_realm: int = 2                   # used when no environment file
    default_u_velocity: float = 0.0          # m/s
    default_v_velocity: float = 0.0          # m/s


@dataclass
class DispersalSection:
    """Parameters of the three dispersal formulations."""
    # Advective (planktonic, ocean currents)
    advective_time_unit: str = "month"
    horizontal_diffusivity: float = 100.0         # m² s⁻¹
    advective_time_step_hours: int = 18
    # Diffusive (immature cohorts)
    diffusive_time_unit: str = "month"
    diffusive_speed_scalar: float = 0.0278        # km month⁻¹ g⁻ᵉ
    diffusive_speed_exponent: float = 0.48
    # Responsive (mature cohorts: starvation and density)
    responsive_time_unit: str = "month"
    density_threshold_scaling: float = 50000.0
    starvation_threshold: float = 0.8             # fraction of adult mass
    responsive_speed_scalar: float = 0.0278
    responsive_speed_exponent: float = 0.48


@dataclass
class SeedingSection:
    """Initial cohorts and stocks."""
    cohort_definitions_file: Optional[str] = None   # None → packaged table
    stock_definitions_file: Optional[str] = None
    terrestrial_stock_biomass_density: float = 1.0e8  # g km⁻²
    marine_stock_biomass: float = 1.0e12              # g per cell
    zero_abundance: bool = False


@dataclass
class OutputSection:
    """Output control."""
    directory: str = "results/"
    dispersal_filename: str = "DispersalData"
    file_suffix: str = ""
    log_level: str = "INFO"
    save_plots: bool = False


@dataclass
class MadingleyConfig:
    """Complete model configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    model: ModelSection = field(default_factory=ModelSection)
    grid: GridSection = field(default_factory=GridSection)
    dispersal: DispersalSection = field(default_factory=DispersalSection)
    seeding: SeedingSection = field(default_factory=SeedingSection)
    output: OutputSection = field(default_factory=OutputSection)

    @property
    def plankton_dispersal_threshold(self) -> float:
        return self.model.plankton_dispersal_threshold


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> MadingleyConfig:
    """Convert a merged YAML dict to a MadingleyConfig."""
    section_map = {
        'model': ModelSection,
        'grid': GridSection,
        'dispersal': DispersalSection,
        'seeding': SeedingSection,
        'output': OutputSection,
    }
    sections = {}
    for key, cls in section_map.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    return MadingleyConfig(**sections)


VALID_DISPERSAL_ONLY_TYPES = {"diffusion", "advection", "responsive"}
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_config(config: MadingleyConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    Checks:
      - The global time step unit maps to a calendar month
      - Dispersal time units are supported
      - Grid extent is non-empty and divisible by the cell size
      - Dispersal parameters are in range
      - Output log level is a logging level name
    """
    m = config.model
    if m.global_time_step_unit.lower() not in MONTH_TIME_STEP_UNITS:
        raise ValueError(
            f"model.global_time_step_unit must be one of {MONTH_TIME_STEP_UNITS}, "
            f"got '{m.global_time_step_unit}'"
        )
    if m.n_time_steps < 0:
        raise ValueError(f"model.n_time_steps must be >= 0, got {m.n_time_steps}")
    if m.dispersal_only_type not in VALID_DISPERSAL_ONLY_TYPES:
        raise ValueError(
            f"model.dispersal_only_type must be one of "
            f"{VALID_DISPERSAL_ONLY_TYPES}, got '{m.dispersal_only_type}'"
        )
    if m.plankton_dispersal_threshold < 0:
        raise ValueError("model.plankton_dispersal_threshold must be >= 0")

    # Grid extent
    g = config.grid
    for axis, lo, hi, size in (
        ("lat", g.min_lat, g.max_lat, g.lat_cell_size),
        ("lon", g.min_lon, g.max_lon, g.lon_cell_size),
    ):
        if size <= 0:
            raise ValueError(f"grid.{axis}_cell_size must be positive, got {size}")
        if hi <= lo:
            raise ValueError(f"grid.max_{axis} ({hi}) must be > grid.min_{axis} ({lo})")
        n_cells = (hi - lo) / size
        if abs(n_cells - round(n_cells)) > 1e-9:
            raise ValueError(
                f"grid {axis} extent {hi - lo} is not a whole number of "
                f"{size}-degree cells"
            )
    if g.min_lat < -90 or g.max_lat > 90:
        raise ValueError(f"grid latitude range must lie in [-90, 90], got "
                         f"[{g.min_lat}, {g.max_lat}]")
    if g.default_realm not in (1, 2):
        raise ValueError(f"grid.default_realm must be 1 (land) or 2 (marine), "
                         f"got {g.default_realm}")
    if g.environment_file is not None and not Path(g.environment_file).exists():
        warnings.warn(
            f"grid.environment_file '{g.environment_file}' does not exist. "
            f"Grid construction will fail at runtime.",
            UserWarning,
            stacklevel=2,
        )

    # Dispersal
    d = config.dispersal
    for name in ("advective_time_unit", "diffusive_time_unit", "responsive_time_unit"):
        unit = getattr(d, name)
        if unit not in TIME_UNITS:
            raise ValueError(f"dispersal.{name} must be one of {TIME_UNITS}, got '{unit}'")
    if d.horizontal_diffusivity < 0:
        raise ValueError("dispersal.horizontal_diffusivity must be >= 0")
    if d.advective_time_step_hours <= 0:
        raise ValueError("dispersal.advective_time_step_hours must be positive")
    if not (0.0 < d.starvation_threshold < 1.0):
        raise ValueError(
            f"dispersal.starvation_threshold must be in (0, 1), "
            f"got {d.starvation_threshold}"
        )
    if d.density_threshold_scaling < 0:
        raise ValueError("dispersal.density_threshold_scaling must be >= 0")

    s = config.seeding
    if s.terrestrial_stock_biomass_density < 0 or s.marine_stock_biomass < 0:
        raise ValueError("seeding stock biomasses must be >= 0")

    if config.output.log_level.upper() not in VALID_LOG_LEVELS:
        raise ValueError(
            f"output.log_level must be one of {VALID_LOG_LEVELS}, "
            f"got '{config.output.log_level}'"
        )


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    sweep_overrides: Optional[Dict] = None,
) -> MadingleyConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → sweep overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML.
        sweep_overrides: Optional dict of parameter overrides.

    Returns:
        Validated MadingleyConfig.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)

    if sweep_overrides is not None:
        deep_merge(config_dict, sweep_overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> MadingleyConfig:
    """Return a MadingleyConfig with all default values."""
    config = MadingleyConfig()
    validate_config(config)
    return config


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """Configure root logging and route warnings through it."""
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger().setLevel(level)
    logging.captureWarnings(True)
