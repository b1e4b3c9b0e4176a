"""Tests for environment-driven settings and error formatting."""

import pytest
from astrolabe.config import get_settings, reset_settings_cache
from astrolabe.errors import EphemerisError, EphemerisParseError
from astrolabe.schemas.chart import BodyPosition
from aspectarium.bodies import (
    HOUSE_SYSTEMS,
    longitude_to_sign,
    normalize_body_name,
    validate_house_system,
)
from pydantic import ValidationError


def test_settings_defaults():
    settings = get_settings()

    assert settings.swetest_path == "/usr/local/bin/swetest"
    assert settings.ephemeris_timeout_seconds == 15.0
    assert settings.ephemeris_max_concurrency == 4
    assert settings.default_house_system == "P"


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("SWEPH_PATH", "swetest")
    monkeypatch.setenv("SWEPH_DATA_PATH", "/srv/ephe")
    monkeypatch.setenv("DEFAULT_HOUSE_SYSTEM", "W")
    reset_settings_cache()

    settings = get_settings()

    assert settings.swetest_path == "swetest"
    assert settings.sweph_data_path == "/srv/ephe"
    assert settings.default_house_system == "W"
    assert get_settings() is settings


def test_settings_reject_bad_limits(monkeypatch):
    monkeypatch.setenv("EPHEMERIS_MAX_CONCURRENCY", "0")
    reset_settings_cache()

    with pytest.raises(ValidationError):
        get_settings()


def test_error_message_carries_stage_and_raw():
    error = EphemerisParseError("could not parse planetary positions", stage="positions", raw="x" * 2000)

    assert isinstance(error, EphemerisError)
    assert len(error.raw) == 500
    assert str(error).startswith("[positions] could not parse planetary positions (raw: 'xxx")


def test_validate_house_system():
    assert validate_house_system("placidus") == "P"
    assert validate_house_system(" w ") == "W"
    with pytest.raises(ValueError):
        validate_house_system("Z")
    with pytest.raises(ValueError):
        validate_house_system("")


@pytest.mark.parametrize(("letter", "name"), sorted(HOUSE_SYSTEMS.items()))
def test_validate_house_system_by_full_name(letter, name):
    assert validate_house_system(name) == letter
    assert validate_house_system(name.upper()) == letter
    assert validate_house_system(letter.lower()) == letter


@pytest.mark.parametrize(
    ("name", "letter"),
    [("porphyry", "O"), ("alcabitius", "B"), ("meridian", "X"), ("equal", "A"), ("whole_sign", "W")],
)
def test_validate_house_system_does_not_guess_from_first_letter(name, letter):
    assert validate_house_system(name) == letter


@pytest.mark.parametrize("name", ["placid", "pxyz", "koch system", "ZZ"])
def test_validate_house_system_rejects_unknown_names(name):
    with pytest.raises(ValueError):
        validate_house_system(name)


def test_body_names_and_signs():
    assert normalize_body_name("mean Node") == "mean_node"
    assert normalize_body_name(" Sun ") == "sun"
    assert longitude_to_sign(324.73) == ("Aquarius", pytest.approx(24.73))
    assert longitude_to_sign(0.0) == ("Aries", 0.0)


def test_body_position_sign_and_wrap():
    sun = BodyPosition(name="sun", longitude=324.73)
    pluto = BodyPosition(name="pluto", longitude=-1.5, speed=-0.01)

    assert sun.sign == "Aquarius"
    assert sun.degree == pytest.approx(24.73)
    assert pluto.longitude == pytest.approx(358.5)
    assert pluto.sign == "Pisces"
    assert pluto.retrograde is True
