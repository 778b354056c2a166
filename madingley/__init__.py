"""Madingley cross-grid-cell ecology: cohort dispersal on a lat/lon grid.

A dispersal-only slice of the Madingley General Ecosystem Model:
  - Cohort and stock data holders, per-cell handlers
  - Functional group definitions read from CSV tables
  - Regular lat/lon model grid with same-realm neighbour lookups
  - Advective, diffusive and responsive dispersal formulations
  - The cross-grid-cell coordinator that runs and commits dispersal
  - Per-cell dispersal tracking to tab-separated output

References:
  - Harfoot et al. (2014) PLoS Biol 12(4): e1001841
"""

__version__ = "0.1.0"
