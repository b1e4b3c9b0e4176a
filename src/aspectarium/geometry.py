"""Circular arithmetic on ecliptic longitudes."""

from __future__ import annotations

_SNAP = 1e-9


def normalize360(deg: float) -> float:
    """Wrap an angle into [0, 360); values within 1e-9 of 0 or 360 snap to 0."""
    # Python's float modulo already folds negatives into [0, 360]
    x = float(deg) % 360.0
    if abs(x) < _SNAP or abs(x - 360.0) < _SNAP:
        return 0.0
    return x


def separation(a: float, b: float) -> float:
    """Shortest angular distance between two longitudes, in [0, 180]."""
    d = abs(normalize360(a) - normalize360(b))
    if d > 180.0:
        d = 360.0 - d
    return d


def in_arc(lon: float, start: float, end: float) -> bool:
    """Whether ``lon`` lies in the half-open circular interval [start, end)."""
    lon = normalize360(lon)
    start = normalize360(start)
    end = normalize360(end)
    if end <= start:
        end += 360.0
        if lon < start:
            lon += 360.0
    return start <= lon < end


def round_longitude(deg: float, places: int = 3) -> float:
    """Round to ``places`` decimals and rewrap, so 359.9996 becomes 0.0."""
    return normalize360(round(normalize360(deg), places))
