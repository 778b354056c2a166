"""Utility functions: time-unit conversion and geodesic cell dimensions.

All geodesic quantities use the WGS84 ellipsoid radii and return
kilometres (lengths) or square kilometres (areas).

References:
  - Madingley model UtilityFunctions (time units assume a 360-day year)
  - Snyder (1987) Map Projections, USGS PP 1395, p. 24-25
"""

from __future__ import annotations

import math

# ═══════════════════════════════════════════════════════════════════════
# TIME UNITS
# ═══════════════════════════════════════════════════════════════════════

DAYS_IN_YEAR = 360.0
MONTHS_IN_YEAR = 12.0
DAYS_IN_WEEK = 7.0
SECONDS_IN_DAY = 24.0 * 60.0 * 60.0

# Index table for integer-coded time unit parameters
TIME_UNITS = ("day", "month", "year")

_DAYS_PER_UNIT = {
    "year": DAYS_IN_YEAR,
    "month": DAYS_IN_YEAR / MONTHS_IN_YEAR,
    "bimonth": DAYS_IN_YEAR / (MONTHS_IN_YEAR * 2),
    "week": DAYS_IN_WEEK,
    "day": 1.0,
}

# Targets reachable from each source unit
_SUPPORTED = {
    "year": {"year", "month", "bimonth", "week", "day"},
    "month": {"year", "month", "bimonth", "week", "day", "second"},
    "bimonth": {"year", "month", "bimonth", "week", "day", "second"},
    "week": {"year", "month", "bimonth", "week", "day", "second"},
    "day": {"year", "month", "bimonth", "week", "day"},
}


def convert_time_units(from_unit: str, to_unit: str) -> float:
    """Scalar converting a duration of one ``from_unit`` into ``to_unit``.

    E.g. convert_time_units("month", "day") == 30.0.

    Args:
        from_unit: Source unit (year, month, bimonth, week, day).
        to_unit: Target unit; "second" is accepted from month, bimonth
            and week.

    Returns:
        Number of ``to_unit`` in one ``from_unit``.

    Raises:
        ValueError: If the combination is not supported.
    """
    src = from_unit.lower()
    dst = to_unit.lower()
    if src not in _SUPPORTED or dst not in _SUPPORTED[src]:
        raise ValueError(
            f"Time unit conversion from '{from_unit}' to '{to_unit}' "
            f"is not supported"
        )
    days = _DAYS_PER_UNIT[src]
    if dst == "second":
        return days * SECONDS_IN_DAY
    return days / _DAYS_PER_UNIT[dst]


# Model time step units for which a calendar month is defined
MONTH_TIME_STEP_UNITS = ("year", "month", "week", "day")


def get_current_month(time_step: int, model_time_step_unit: str) -> int:
    """Calendar month (0-11) for a model time step.

    Yearly models always report month 0. Weekly and daily steps are
    converted using 30-day months.

    Raises:
        ValueError: For a time step unit other than year, month, week or day.
    """
    unit = model_time_step_unit.lower()
    if unit == "year":
        return 0
    if unit == "month":
        return int(time_step) % 12
    if unit == "week":
        weeks_per_month = (DAYS_IN_YEAR / MONTHS_IN_YEAR) / DAYS_IN_WEEK
        return int(math.floor(time_step / weeks_per_month)) % 12
    if unit == "day":
        return int(math.floor(time_step / (DAYS_IN_YEAR / MONTHS_IN_YEAR))) % 12
    raise ValueError(f"Unsupported model time step unit '{model_time_step_unit}'")


# ═══════════════════════════════════════════════════════════════════════
# GEODESY
# ═══════════════════════════════════════════════════════════════════════

EQUATORIAL_RADIUS_M = 6378137.0
POLAR_RADIUS_M = 6356752.3142


def degrees_to_radians(degrees: float) -> float:
    return degrees * math.pi / 180.0


def _radii_of_curvature(latitude: float):
    """Meridional (M) and normal (N) radii of curvature in metres."""
    phi = degrees_to_radians(latitude)
    a, b = EQUATORIAL_RADIUS_M, POLAR_RADIUS_M
    temp = (a * math.cos(phi)) ** 2 + (b * math.sin(phi)) ** 2
    m_phi = (a * b) ** 2 / temp ** 1.5
    n_phi = a ** 2 / math.sqrt(temp)
    return m_phi, n_phi


def length_of_degree_latitude(latitude: float) -> float:
    """Length (km) of one degree of latitude at the given latitude."""
    m_phi, _ = _radii_of_curvature(latitude)
    return math.pi / 180.0 * m_phi / 1000.0


def length_of_degree_longitude(latitude: float) -> float:
    """Length (km) of one degree of longitude at the given latitude."""
    _, n_phi = _radii_of_curvature(latitude)
    return (math.pi / 180.0 * math.cos(degrees_to_radians(latitude))
            * n_phi / 1000.0)


def grid_cell_area(latitude: float, lon_cell_size: float,
                   lat_cell_size: float) -> float:
    """Approximate area (km²) of a grid cell, evaluated at ``latitude``.

    Args:
        latitude: Latitude (degrees) at which degree lengths are taken.
        lon_cell_size: Cell width in degrees of longitude.
        lat_cell_size: Cell height in degrees of latitude.
    """
    return (length_of_degree_latitude(latitude) * lat_cell_size
            * length_of_degree_longitude(latitude) * lon_cell_size)
