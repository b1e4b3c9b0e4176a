"""Body definitions, the ordered aspect table, and sign data."""

from __future__ import annotations

from astrolabe.schemas.chart import ZODIAC_SIGNS, AspectDefinition

# swetest body codes, in request order
BODY_CODES: dict[str, str] = {
    "sun": "0",
    "moon": "1",
    "mercury": "2",
    "venus": "3",
    "mars": "4",
    "jupiter": "5",
    "saturn": "6",
    "uranus": "7",
    "neptune": "8",
    "pluto": "9",
    "chiron": "D",
    "mean_node": "m",
    "true_node": "t",
}

# Passed to swetest as -p<...>
BODY_REQUEST = "".join(BODY_CODES.values())

LUMINARIES = frozenset({"sun", "moon"})

# Extra orb for luminary pairs, split half per luminary
LUMINARY_ORB_BONUS = 2.0

# Ordered: the first definition within orb wins, since orb ranges overlap.
ASPECTS: tuple[AspectDefinition, ...] = (
    AspectDefinition(name="conjunction", target_angle=0.0, base_orb=8.0),
    AspectDefinition(name="opposition", target_angle=180.0, base_orb=8.0),
    AspectDefinition(name="trine", target_angle=120.0, base_orb=6.0),
    AspectDefinition(name="square", target_angle=90.0, base_orb=6.0),
    AspectDefinition(name="sextile", target_angle=60.0, base_orb=4.0),
    AspectDefinition(name="quincunx", target_angle=150.0, base_orb=3.0),
    AspectDefinition(name="semisextile", target_angle=30.0, base_orb=2.0),
)

# swetest -house system letters
HOUSE_SYSTEMS: dict[str, str] = {
    "P": "Placidus",
    "K": "Koch",
    "O": "Porphyrius",
    "R": "Regiomontanus",
    "C": "Campanus",
    "A": "Equal",
    "E": "Equal from Ascendant",
    "W": "Whole Signs",
    "X": "Meridian System",
    "T": "Topocentric",
    "B": "Alcabitius",
    "M": "Morinus",
}

# Common spellings that differ from the HOUSE_SYSTEMS names
HOUSE_SYSTEM_ALIASES: dict[str, str] = {
    "porphyry": "O",
    "whole sign": "W",
    "meridian": "X",
    "axial rotation": "X",
    "equal from asc": "E",
}

# Zodiac signs in order
SIGNS = list(ZODIAC_SIGNS)

ELEMENTS = ("fire", "earth", "air", "water")
MODES = ("cardinal", "fixed", "mutable")


def normalize_body_name(label: str) -> str:
    """Turn a calculator label ("mean Node", "Sun") into a snake_case body name."""
    return "_".join(str(label).strip().lower().replace("-", " ").split())


def is_luminary(name: str) -> bool:
    return normalize_body_name(name) in LUMINARIES


def longitude_to_sign(longitude: float) -> tuple[str, float]:
    """Convert ecliptic longitude to sign and degree within sign."""
    longitude = longitude % 360.0
    sign_index = int(longitude / 30.0) % 12
    degree = longitude - (sign_index * 30.0)
    return SIGNS[sign_index], degree


def sign_element(sign: str) -> str:
    return ELEMENTS[SIGNS.index(sign) % 4]


def sign_mode(sign: str) -> str:
    return MODES[SIGNS.index(sign) % 3]


def _house_system_key(name: str) -> str:
    return " ".join(name.lower().replace("_", " ").replace("-", " ").split())


_HOUSE_SYSTEM_NAMES: dict[str, str] = {
    **{_house_system_key(name): letter for letter, name in HOUSE_SYSTEMS.items()},
    **HOUSE_SYSTEM_ALIASES,
}


def validate_house_system(code: str) -> str:
    """Return the house system letter for a one-letter code or a full name.

    Names match whole and case-insensitively ("placidus", "Whole Signs");
    anything else is rejected rather than guessed from its first letter.
    """
    raw = str(code or "").strip()
    if len(raw) == 1 and raw.upper() in HOUSE_SYSTEMS:
        return raw.upper()
    hsys = _HOUSE_SYSTEM_NAMES.get(_house_system_key(raw))
    if hsys is None:
        raise ValueError(f"unknown house system {code!r}")
    return hsys
