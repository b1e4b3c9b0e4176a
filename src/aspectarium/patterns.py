"""Aspect pattern detection (Grand Trine, T-Square, Yod, Kite, ...).

Detection runs in two passes over the aspect graph (bodies are nodes,
matched aspects are typed edges). Pass one finds the primitive shapes;
pass two builds Kites on top of Grand Trines and Boomerangs on top of
Yods. Every loop walks lists in a fixed order so identical aspect sets
always give identical, identically ordered results.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from itertools import combinations

from astrolabe.schemas.chart import (
    AspectMatch,
    BodyPosition,
    Pattern,
    PatternReport,
    PatternSummary,
    Significance,
)

from aspectarium.bodies import ELEMENTS, MODES, longitude_to_sign, sign_element, sign_mode
from aspectarium.geometry import separation

logger = logging.getLogger(__name__)

# Allowed deviation from 90 degrees between a T-Square apex and each base body
T_SQUARE_TOLERANCE = 10.0

PATTERN_NAMES: dict[str, str] = {
    "grand_trine": "Grand Trine",
    "t_square": "T-Square",
    "yod": "Yod",
    "grand_cross": "Grand Cross",
    "kite": "Kite",
    "mystic_rectangle": "Mystic Rectangle",
    "cradle": "Cradle",
    "boomerang": "Boomerang",
}

# Also the order patterns are reported in within a significance tier
PATTERN_SIGNIFICANCE: dict[str, Significance] = {
    "grand_trine": Significance.MAJOR,
    "t_square": Significance.MAJOR,
    "yod": Significance.MAJOR,
    "grand_cross": Significance.MAJOR,
    "kite": Significance.MODERATE,
    "mystic_rectangle": Significance.MODERATE,
    "cradle": Significance.MODERATE,
    "boomerang": Significance.MODERATE,
}

PATTERN_KEYWORDS: dict[str, list[str]] = {
    "grand_trine": ["harmony", "talent", "ease", "flow"],
    "t_square": ["tension", "dynamic", "challenge", "growth"],
    "yod": ["destiny", "adjustment", "special purpose", "karmic", "fated"],
    "grand_cross": ["challenge", "stress", "achievement", "mastery"],
    "kite": ["focused talent", "directed energy", "achievement", "success"],
    "mystic_rectangle": ["balance", "integration", "practical mysticism", "harmony"],
    "cradle": ["support", "protection", "gentle growth", "nurturing"],
    "boomerang": ["transformation", "release", "breakthrough", "resolution"],
}

_TIER_RANK = {Significance.MAJOR: 0, Significance.MODERATE: 1, Significance.MINOR: 2}


class AspectGraph:
    """Typed-edge lookup over an aspect list, preserving list order."""

    def __init__(self, aspects: Sequence[AspectMatch], body_order: Sequence[str] = ()) -> None:
        self.aspects = list(aspects)
        self._by_type: dict[str, list[AspectMatch]] = {}
        self._edges: dict[tuple[str, str, str], AspectMatch] = {}

        bodies = list(dict.fromkeys(body_order))
        for aspect in self.aspects:
            kind = aspect.type.lower()
            self._by_type.setdefault(kind, []).append(aspect)
            for a, b in ((aspect.body_a, aspect.body_b), (aspect.body_b, aspect.body_a)):
                self._edges.setdefault((kind, a, b), aspect)
            for body in (aspect.body_a, aspect.body_b):
                if body not in bodies:
                    bodies.append(body)
        self.bodies = bodies
        self._rank = {body: i for i, body in enumerate(bodies)}

    def of_type(self, kind: str) -> list[AspectMatch]:
        return self._by_type.get(kind, [])

    def edge(self, a: str, b: str, kind: str) -> AspectMatch | None:
        return self._edges.get((kind, a, b))

    def ordered(self, bodies: Sequence[str]) -> list[str]:
        return sorted(bodies, key=lambda body: self._rank.get(body, len(self._rank)))


class PatternDetector:
    """Mines one aspect set for named configurations."""

    def __init__(self, aspects: Sequence[AspectMatch], positions: Sequence[BodyPosition] | None = None) -> None:
        self.positions = {pos.name: pos.longitude for pos in positions or ()}
        self.graph = AspectGraph(aspects, [pos.name for pos in positions or ()])

    # -- helpers ---------------------------------------------------------

    def _angle(self, body1: str, body2: str, aspect: AspectMatch) -> float:
        if body1 in self.positions and body2 in self.positions:
            return separation(self.positions[body1], self.positions[body2])
        return aspect.separation

    def _dominant(self, planets: Sequence[str], classify, choices: Sequence[str]) -> str | None:
        counts = dict.fromkeys(choices, 0)
        known = False
        for planet in planets:
            if planet in self.positions:
                sign, _ = longitude_to_sign(self.positions[planet])
                counts[classify(sign)] += 1
                known = True
        if not known:
            return None
        # max() keeps the first of equal counts
        return max(choices, key=lambda choice: counts[choice])

    def _element(self, planets: Sequence[str]) -> str | None:
        return self._dominant(planets, sign_element, ELEMENTS)

    def _mode(self, planets: Sequence[str]) -> str | None:
        return self._dominant(planets, sign_mode, MODES)

    def _pattern(
        self,
        kind: str,
        planets: Sequence[str],
        aspects: Sequence[AspectMatch],
        *,
        roles: dict[str, str] | None = None,
        element: str | None = None,
        mode: str | None = None,
        base_planets: Sequence[str] = (),
        extra_keywords: Sequence[str] = (),
    ) -> Pattern:
        average = sum(a.delta for a in aspects) / len(aspects) if aspects else 0.0
        return Pattern(
            type=kind,
            name=PATTERN_NAMES[kind],
            planets=list(planets),
            roles=roles or {},
            significance=PATTERN_SIGNIFICANCE[kind],
            supporting_aspects=list(aspects),
            average_orb=round(average, 3),
            element=element,
            mode=mode,
            base_planets=list(base_planets),
            keywords=[*PATTERN_KEYWORDS[kind], *extra_keywords],
        )

    # -- pass one: primitives --------------------------------------------

    def grand_trines(self) -> list[Pattern]:
        found = []
        for trines in combinations(self.graph.of_type("trine"), 3):
            members = [body for t in trines for body in (t.body_a, t.body_b)]
            planets = list(dict.fromkeys(members))
            # Closed triangle: three bodies, each on exactly two trines
            if len(planets) != 3 or any(members.count(p) != 2 for p in planets):
                continue
            planets = self.graph.ordered(planets)
            element = self._element(planets)
            found.append(
                self._pattern(
                    "grand_trine",
                    planets,
                    trines,
                    element=element,
                    extra_keywords=[f"{element} energy"] if element else [],
                )
            )
        return found

    def t_squares(self) -> list[Pattern]:
        found = []
        for opposition in self.graph.of_type("opposition"):
            base = (opposition.body_a, opposition.body_b)
            for apex in self.graph.bodies:
                if apex in base:
                    continue
                squares = [self.graph.edge(apex, b, "square") for b in base]
                if None in squares:
                    continue
                if any(
                    abs(self._angle(apex, b, sq) - 90.0) > T_SQUARE_TOLERANCE
                    for b, sq in zip(base, squares)
                ):
                    continue
                planets = [apex, *base]
                mode = self._mode(planets)
                found.append(
                    self._pattern(
                        "t_square",
                        planets,
                        [opposition, *squares],
                        roles={"apex": apex},
                        mode=mode,
                        extra_keywords=[f"{mode} crisis"] if mode else [],
                    )
                )
        return found

    def yods(self) -> list[Pattern]:
        found = []
        for sextile in self.graph.of_type("sextile"):
            base = (sextile.body_a, sextile.body_b)
            for apex in self.graph.bodies:
                if apex in base:
                    continue
                quincunxes = [self.graph.edge(apex, b, "quincunx") for b in base]
                if None in quincunxes:
                    continue
                found.append(
                    self._pattern(
                        "yod",
                        [apex, *base],
                        [sextile, *quincunxes],
                        roles={"apex": apex},
                    )
                )
        return found

    def grand_crosses(self) -> list[Pattern]:
        found = []
        for opp1, opp2 in combinations(self.graph.of_type("opposition"), 2):
            a, b = opp1.body_a, opp1.body_b
            c, d = opp2.body_a, opp2.body_b
            if len({a, b, c, d}) != 4:
                continue
            squares = [self.graph.edge(x, y, "square") for x, y in ((a, c), (a, d), (b, c), (b, d))]
            if None in squares:
                continue
            planets = self.graph.ordered([a, b, c, d])
            mode = self._mode(planets)
            found.append(
                self._pattern(
                    "grand_cross",
                    planets,
                    [opp1, opp2, *squares],
                    mode=mode,
                    extra_keywords=[f"{mode} cross"] if mode else [],
                )
            )
        return found

    def mystic_rectangles(self) -> list[Pattern]:
        found = []
        for opp1, opp2 in combinations(self.graph.of_type("opposition"), 2):
            a, b = opp1.body_a, opp1.body_b
            c, d = opp2.body_a, opp2.body_b
            if len({a, b, c, d}) != 4:
                continue
            for near, far in (("sextile", "trine"), ("trine", "sextile")):
                sides = [
                    self.graph.edge(a, c, near),
                    self.graph.edge(b, d, near),
                    self.graph.edge(a, d, far),
                    self.graph.edge(b, c, far),
                ]
                if None in sides:
                    continue
                found.append(
                    self._pattern(
                        "mystic_rectangle",
                        self.graph.ordered([a, b, c, d]),
                        [opp1, opp2, *sides],
                    )
                )
                break
        return found

    def cradles(self) -> list[Pattern]:
        """Sextile b-c bridged by trines c-a and b-d; a and d close onto it by sextile."""
        found = []
        for bridge in self.graph.of_type("sextile"):
            b, c = bridge.body_a, bridge.body_b
            for a in self.graph.bodies:
                if a in (b, c):
                    continue
                trine_ca = self.graph.edge(c, a, "trine")
                sextile_ab = self.graph.edge(a, b, "sextile")
                if trine_ca is None or sextile_ab is None:
                    continue
                for d in self.graph.bodies:
                    if d in (a, b, c):
                        continue
                    trine_bd = self.graph.edge(b, d, "trine")
                    sextile_cd = self.graph.edge(c, d, "sextile")
                    if trine_bd is None or sextile_cd is None:
                        continue
                    found.append(
                        self._pattern(
                            "cradle",
                            [a, b, c, d],
                            [bridge, trine_ca, trine_bd, sextile_ab, sextile_cd],
                            roles={"outer_start": a, "outer_end": d},
                        )
                    )
        return found

    # -- pass two: composites --------------------------------------------

    def kites(self, grand_trines: Sequence[Pattern]) -> list[Pattern]:
        found = []
        oppositions = self.graph.of_type("opposition")
        for trine in grand_trines:
            for opposition in oppositions:
                for focus in trine.planets:
                    if not opposition.involves(focus):
                        continue
                    tail = opposition.other(focus)
                    if tail in trine.planets:
                        continue
                    sextiles = [
                        self.graph.edge(tail, other, "sextile")
                        for other in trine.planets
                        if other != focus
                    ]
                    if None in sextiles:
                        continue
                    found.append(
                        self._pattern(
                            "kite",
                            [*trine.planets, tail],
                            [*trine.supporting_aspects, opposition, *sextiles],
                            roles={"focus": focus, "tail": tail},
                            element=trine.element,
                            base_planets=trine.planets,
                        )
                    )
        return found

    def boomerangs(self, yods: Sequence[Pattern]) -> list[Pattern]:
        found = []
        oppositions = self.graph.of_type("opposition")
        for yod in yods:
            apex = yod.roles["apex"]
            for opposition in oppositions:
                if not opposition.involves(apex):
                    continue
                release = opposition.other(apex)
                if release in yod.planets:
                    continue
                found.append(
                    self._pattern(
                        "boomerang",
                        [*yod.planets, release],
                        [*yod.supporting_aspects, opposition],
                        roles={"apex": apex, "release": release},
                        base_planets=yod.planets,
                    )
                )
        return found

    # -- pipeline --------------------------------------------------------

    def detect(self) -> PatternReport:
        primitives = {
            "grand_trine": self.grand_trines(),
            "t_square": self.t_squares(),
            "yod": self.yods(),
            "grand_cross": self.grand_crosses(),
            "mystic_rectangle": self.mystic_rectangles(),
            "cradle": self.cradles(),
        }
        composites = {
            "kite": self.kites(primitives["grand_trine"]),
            "boomerang": self.boomerangs(primitives["yod"]),
        }
        detected = {**primitives, **composites}

        patterns = [p for kind in PATTERN_SIGNIFICANCE for p in detected[kind]]
        patterns.sort(key=lambda p: _TIER_RANK[p.significance])

        logger.debug(
            "Detected %d patterns from %d aspects",
            len(patterns),
            len(self.graph.aspects),
        )
        return PatternReport(patterns=patterns, summary=summarize_patterns(patterns))


def summarize_patterns(patterns: Sequence[Pattern]) -> PatternSummary:
    """Type counts, top keywords, and a rough complexity level."""
    pattern_types: dict[str, int] = {}
    keywords: Counter[str] = Counter()
    for pattern in patterns:
        pattern_types[pattern.type] = pattern_types.get(pattern.type, 0) + 1
        keywords.update(pattern.keywords)

    major = sum(1 for p in patterns if p.significance is Significance.MAJOR)
    if major >= 3:
        complexity = "high"
    elif major == 0:
        complexity = "low"
    else:
        complexity = "moderate"

    return PatternSummary(
        total_patterns=len(patterns),
        pattern_types=pattern_types,
        dominant_themes=[keyword for keyword, _ in keywords.most_common(5)],
        complexity_level=complexity,
    )


def detect_patterns(
    aspects: Sequence[AspectMatch],
    positions: Sequence[BodyPosition] | None = None,
) -> PatternReport:
    """Detect all aspect patterns in an aspect set."""
    return PatternDetector(aspects, positions).detect()
