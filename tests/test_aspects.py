"""Tests for aspect detection."""

from astrolabe.schemas.chart import AspectDefinition, BodyPosition
from aspectarium.aspects import (
    _is_applying,
    aspect_strength,
    effective_orb,
    find_aspects,
    find_cross_aspects,
    match_pair,
)


def _body(name: str, longitude: float, speed: float = 0.0) -> BodyPosition:
    return BodyPosition(name=name, longitude=longitude, speed=speed)


def test_exact_trine():
    match = match_pair(_body("mars", 10.0), _body("jupiter", 130.0))

    assert match is not None
    assert match.type == "trine"
    assert match.target_angle == 120.0
    assert match.delta == 0.0
    assert match.exact is True
    assert match.strength == 100
    assert match.orb_used == 6.0
    assert match.within_orb == 6.0


def test_luminary_opposition_uses_bonus():
    match = match_pair(_body("sun", 0.0), _body("moon", 185.0))

    assert match is not None
    assert match.type == "opposition"
    assert match.separation == 175.0
    assert match.delta == 5.0
    assert match.exact is False
    assert match.orb_used == 10.0
    assert match.within_orb == 5.0
    assert match.strength == 50


def test_exact_uses_unrounded_deviation():
    match = match_pair(_body("mars", 0.0), _body("jupiter", 120.09996))

    assert match is not None
    assert match.delta == 0.1
    assert match.exact is True


def test_effective_orb():
    assert effective_orb("mars", "saturn", 8.0) == 8.0
    assert effective_orb("sun", "saturn", 8.0) == 9.0
    assert effective_orb("Sun", "Moon", 8.0) == 10.0


def test_first_definition_wins_when_orbs_overlap():
    table = (
        AspectDefinition(name="wide", target_angle=90.0, base_orb=20.0),
        AspectDefinition(name="narrow", target_angle=100.0, base_orb=5.0),
    )
    match = match_pair(_body("mars", 0.0), _body("venus", 100.0), definitions=table)

    assert match is not None
    assert match.type == "wide"
    assert match.delta == 10.0


def test_pair_outside_every_orb():
    assert match_pair(_body("mars", 0.0), _body("venus", 45.0)) is None


def test_strength_hits_100_only_when_exact():
    assert aspect_strength(0.0, 6.0) == 100
    assert aspect_strength(0.001, 10.0) == 99
    assert aspect_strength(6.0, 6.0) == 0
    assert aspect_strength(3.0, 6.0) == 50


def test_find_aspects_sorted_by_delta():
    positions = [
        _body("sun", 324.0, 1.0),
        _body("moon", 228.0, 13.0),
        _body("mars", 112.0, 0.6),
        _body("saturn", 355.0, 0.05),
        _body("venus", 2.0, 1.2),
    ]

    aspects = find_aspects(positions)

    assert aspects
    deltas = [a.delta for a in aspects]
    assert deltas == sorted(deltas)
    for a in aspects:
        assert 0.0 <= a.delta <= a.orb_used
        assert 0 <= a.strength <= 100
        assert (a.strength == 100) == (a.delta == 0.0)


def test_find_aspects_one_aspect_per_pair():
    positions = [_body("mars", 0.0), _body("venus", 0.5), _body("jupiter", 120.0)]

    aspects = find_aspects(positions)
    pairs = [(a.body_a, a.body_b) for a in aspects]

    assert len(pairs) == len(set(pairs))
    assert ("mars", "venus") in pairs


def test_find_cross_aspects_pairs_across_charts():
    transits = [_body("mars", 90.0, 0.5)]
    natal = [_body("sun", 0.0, 1.0), _body("venus", 200.0, 1.0)]

    aspects = find_cross_aspects(transits, natal, second_fixed=True)

    assert [(a.body_a, a.body_b, a.type) for a in aspects] == [("mars", "sun", "square")]


def test_is_applying():
    """Test applying/separating detection."""
    # Faster body approaching slower body from behind
    assert _is_applying(100.0, 110.0, 1.0, 0.1, 0.0) is True

    # Bodies moving apart
    assert _is_applying(100.0, 110.0, -1.0, 1.0, 0.0) is False

    # No motion information
    assert _is_applying(100.0, 110.0, 0.0, 0.0, 0.0) is None
