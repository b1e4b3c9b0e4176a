"""Aspect detection and orb calculations."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from astrolabe.schemas.chart import AspectDefinition, AspectMatch, BodyPosition

from aspectarium.bodies import ASPECTS, LUMINARY_ORB_BONUS, is_luminary
from aspectarium.geometry import normalize360, separation

logger = logging.getLogger(__name__)

# Below this deviation an aspect is reported as exact
EXACT_THRESHOLD = 0.1

# How far (days) positions are projected to judge applying vs separating
_PROJECTION_DAYS = 0.1


def effective_orb(body1: str, body2: str, base_orb: float, luminary_bonus: float = LUMINARY_ORB_BONUS) -> float:
    """Base orb widened by half the bonus for each luminary in the pair."""
    luminaries = int(is_luminary(body1)) + int(is_luminary(body2))
    return base_orb + luminaries * (luminary_bonus / 2.0)


def aspect_strength(delta: float, orb: float) -> int:
    """0..100 closeness score; only an exact zero deviation scores 100."""
    if orb <= 0:
        return 0
    score = round(max(0.0, min(100.0, (1.0 - delta / orb) * 100.0)))
    if delta > 0:
        score = min(score, 99)
    return score


def _is_applying(
    lon1: float, lon2: float, speed1: float, speed2: float, aspect_angle: float
) -> bool | None:
    """Determine if an aspect is applying (getting tighter) or separating."""
    if speed1 == 0.0 and speed2 == 0.0:
        return None

    orb_now = abs(separation(lon1, lon2) - aspect_angle)

    # Project positions forward slightly
    lon1_future = normalize360(lon1 + speed1 * _PROJECTION_DAYS)
    lon2_future = normalize360(lon2 + speed2 * _PROJECTION_DAYS)
    orb_future = abs(separation(lon1_future, lon2_future) - aspect_angle)

    return orb_future < orb_now


def match_pair(
    first: BodyPosition,
    second: BodyPosition,
    definitions: Sequence[AspectDefinition] = ASPECTS,
    luminary_bonus: float = LUMINARY_ORB_BONUS,
    second_fixed: bool = False,
) -> AspectMatch | None:
    """First aspect definition (in table order) whose orb covers the pair."""
    sep = separation(first.longitude, second.longitude)

    for definition in definitions:
        orb = effective_orb(first.name, second.name, definition.base_orb, luminary_bonus)
        delta = abs(sep - definition.target_angle)
        if delta > orb:
            continue

        exact = delta < EXACT_THRESHOLD
        delta = min(round(delta, 3), orb)
        return AspectMatch(
            body_a=first.name,
            body_b=second.name,
            type=definition.name,
            target_angle=definition.target_angle,
            separation=round(sep, 3),
            delta=delta,
            orb_used=orb,
            within_orb=round(orb - delta, 3),
            exact=exact,
            strength=aspect_strength(delta, orb),
            applying=_is_applying(
                first.longitude,
                second.longitude,
                first.speed,
                0.0 if second_fixed else second.speed,
                definition.target_angle,
            ),
        )
    return None


def _sorted_by_delta(aspects: list[AspectMatch]) -> list[AspectMatch]:
    # Stable: ties keep pair order
    return sorted(aspects, key=lambda a: a.delta)


def find_aspects(
    positions: Sequence[BodyPosition],
    definitions: Sequence[AspectDefinition] = ASPECTS,
    luminary_bonus: float = LUMINARY_ORB_BONUS,
) -> list[AspectMatch]:
    """Find the aspect (if any) for every unordered pair in one chart.

    Returns matches sorted tightest first.
    """
    aspects_found = []
    for i, body1 in enumerate(positions):
        for body2 in positions[i + 1:]:
            match = match_pair(body1, body2, definitions, luminary_bonus)
            if match is not None:
                aspects_found.append(match)

    logger.debug("Found %d aspects among %d bodies", len(aspects_found), len(positions))
    return _sorted_by_delta(aspects_found)


def find_cross_aspects(
    first: Sequence[BodyPosition],
    second: Sequence[BodyPosition],
    definitions: Sequence[AspectDefinition] = ASPECTS,
    luminary_bonus: float = LUMINARY_ORB_BONUS,
    second_fixed: bool = False,
) -> list[AspectMatch]:
    """Aspects between every body of ``first`` and every body of ``second``.

    Used for transit-to-natal (``second_fixed=True``: the natal chart does
    not move) and synastry comparisons.
    """
    aspects_found = []
    for body1 in first:
        for body2 in second:
            match = match_pair(body1, body2, definitions, luminary_bonus, second_fixed)
            if match is not None:
                aspects_found.append(match)
    return _sorted_by_delta(aspects_found)
