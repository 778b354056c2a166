"""Madingley dispersal visualization library.

Modules:
  - style: Dark theme colours and helpers
  - grid: Grid maps and dispersal timeseries
"""

from madingley.viz.style import (  # noqa: F401
    ACCENT_COLORS,
    DARK_BG,
    DARK_PANEL,
    GRID_COLOR,
    REALM_COLORS,
    TEXT_COLOR,
    apply_dark_theme,
    dark_figure,
    save_figure,
)

from madingley.viz.grid import (  # noqa: F401
    plot_cohort_count_map,
    plot_dispersal_flow_map,
    plot_dispersal_timeseries,
    plot_realm_map,
)
