"""Pydantic schemas for chart positions, houses, aspects, and patterns."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

ZODIAC_SIGNS = (
    "Aries",
    "Taurus",
    "Gemini",
    "Cancer",
    "Leo",
    "Virgo",
    "Libra",
    "Scorpio",
    "Sagittarius",
    "Capricorn",
    "Aquarius",
    "Pisces",
)


def _wrap360(value: float) -> float:
    wrapped = float(value) % 360.0
    if abs(wrapped) < 1e-9 or abs(wrapped - 360.0) < 1e-9:
        return 0.0
    return wrapped


class ReconciliationState(str, Enum):
    """Outcome of aligning raw house output with the chart angles."""

    ALIGNED = "aligned"
    SEARCHING = "searching"
    FORCED = "forced"
    UNRECONCILED = "unreconciled"


class Significance(str, Enum):
    MAJOR = "major"
    MODERATE = "moderate"
    MINOR = "minor"


class BodyPosition(BaseModel):
    """Ecliptic position of a celestial body."""

    model_config = ConfigDict(frozen=True)

    name: str
    longitude: float = Field(ge=0.0, lt=360.0)
    latitude: float = 0.0
    distance: float = 0.0
    speed: float = 0.0  # deg/day, negative when retrograde

    @field_validator("longitude", mode="before")
    @classmethod
    def _normalize_longitude(cls, value: float) -> float:
        return _wrap360(value)

    @property
    def sign(self) -> str:
        return ZODIAC_SIGNS[int(self.longitude // 30.0) % 12]

    @property
    def degree(self) -> float:
        """Degree within the sign."""
        return self.longitude % 30.0

    @property
    def retrograde(self) -> bool:
        return self.speed < 0


class ChartAngles(BaseModel):
    """Ascendant, Midheaven, ARMC and Vertex."""

    model_config = ConfigDict(frozen=True)

    asc: float
    mc: float
    armc: float
    vertex: float

    @field_validator("asc", "mc", "armc", "vertex", mode="before")
    @classmethod
    def _normalize(cls, value: float) -> float:
        return _wrap360(value)


class HouseFrame(BaseModel):
    """Twelve house cusps plus chart angles for one house system."""

    model_config = ConfigDict(frozen=True)

    system: str = Field(min_length=1, max_length=1)
    cusps: dict[int, float]
    angles: ChartAngles
    status: ReconciliationState = ReconciliationState.ALIGNED

    @field_validator("system", mode="before")
    @classmethod
    def _upper_system(cls, value: str) -> str:
        return str(value).strip().upper()

    @field_validator("cusps", mode="before")
    @classmethod
    def _normalize_cusps(cls, value: dict) -> dict:
        return {int(house): _wrap360(lon) for house, lon in dict(value).items()}

    @property
    def is_reconciled(self) -> bool:
        return self.status in (ReconciliationState.ALIGNED, ReconciliationState.FORCED)


class AspectDefinition(BaseModel):
    """An entry of the ordered aspect table."""

    model_config = ConfigDict(frozen=True)

    name: str
    target_angle: float = Field(ge=0.0, le=180.0)
    base_orb: float = Field(gt=0.0)


class AspectMatch(BaseModel):
    """A matched aspect between two bodies. Immutable result record."""

    model_config = ConfigDict(frozen=True)

    body_a: str
    body_b: str
    type: str
    target_angle: float
    separation: float
    delta: float = Field(ge=0.0)
    orb_used: float
    within_orb: float
    exact: bool
    strength: int = Field(ge=0, le=100)
    applying: bool | None = None

    def involves(self, body: str) -> bool:
        return body in (self.body_a, self.body_b)

    def other(self, body: str) -> str:
        return self.body_b if body == self.body_a else self.body_a


class Pattern(BaseModel):
    """A named multi-body aspect configuration."""

    model_config = ConfigDict(frozen=True)

    type: str
    name: str
    planets: list[str]
    roles: dict[str, str] = Field(default_factory=dict)
    significance: Significance
    supporting_aspects: list[AspectMatch]
    average_orb: float
    element: str | None = None
    mode: str | None = None
    base_planets: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)


class PatternSummary(BaseModel):
    total_patterns: int = 0
    pattern_types: dict[str, int] = Field(default_factory=dict)
    dominant_themes: list[str] = Field(default_factory=list)
    complexity_level: str = "low"


class PatternReport(BaseModel):
    """Detected patterns (sorted by significance tier) plus their summary."""

    patterns: list[Pattern] = Field(default_factory=list)
    summary: PatternSummary = Field(default_factory=PatternSummary)

    @property
    def major_patterns(self) -> list[Pattern]:
        return [p for p in self.patterns if p.significance is Significance.MAJOR]


class ChartRequest(BaseModel):
    """One chart to compute: a UTC instant, a place, and a house system."""

    instant: datetime
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    house_system: str | None = None


class ChartBundle(BaseModel):
    """Complete computed chart handed to storage/rendering/interpretation layers."""

    instant: datetime | None = None
    latitude: float | None = None
    longitude: float | None = None
    house_system: str | None = None

    positions: list[BodyPosition]
    houses: HouseFrame | None = None
    placements: dict[str, int | None] = Field(default_factory=dict)
    aspects: list[AspectMatch] = Field(default_factory=list)
    patterns: list[Pattern] = Field(default_factory=list)
    pattern_summary: PatternSummary = Field(default_factory=PatternSummary)
    warnings: list[str] = Field(default_factory=list)
    cache_hit: bool = False


class TransitReport(BaseModel):
    """Transiting bodies at one instant measured against a natal chart."""

    instant: datetime
    positions: list[BodyPosition]
    placements: dict[str, int | None] = Field(default_factory=dict)
    aspects: list[AspectMatch] = Field(default_factory=list)


class SynastryReport(BaseModel):
    """Cross-chart aspects and house overlays between two charts."""

    aspects: list[AspectMatch] = Field(default_factory=list)
    overlays_a_in_b: dict[str, int | None] = Field(default_factory=dict)
    overlays_b_in_a: dict[str, int | None] = Field(default_factory=dict)
