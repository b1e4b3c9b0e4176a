"""House placement of longitudes within a 12-cusp frame."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from astrolabe.schemas.chart import BodyPosition, HouseFrame

from aspectarium.geometry import in_arc


def _cusp_map(frame: HouseFrame | Mapping[int, float] | Sequence[float] | None) -> dict[int, float]:
    if frame is None:
        return {}
    if isinstance(frame, HouseFrame):
        return dict(frame.cusps)
    if isinstance(frame, Mapping):
        return {int(house): float(lon) for house, lon in frame.items()}
    return {i + 1: float(lon) for i, lon in enumerate(frame)}


def locate_house(
    longitude: float,
    frame: HouseFrame | Mapping[int, float] | Sequence[float] | None,
) -> int | None:
    """House (1..12) containing ``longitude``, or None if the frame is incomplete.

    House h spans [cusp h, cusp h+1); house 12 wraps back to cusp 1.
    """
    cusps = _cusp_map(frame)
    if any(house not in cusps for house in range(1, 13)):
        return None

    for house in range(1, 13):
        next_house = house % 12 + 1
        if in_arc(longitude, cusps[house], cusps[next_house]):
            return house
    return None


def place_bodies(
    positions: Sequence[BodyPosition],
    frame: HouseFrame | Mapping[int, float] | Sequence[float] | None,
) -> dict[str, int | None]:
    """Map each body name to its house, keeping input order."""
    return {pos.name: locate_house(pos.longitude, frame) for pos in positions}
