"""Shared fixtures: canned calculator output and fake swetest executables."""

from __future__ import annotations

import pytest
from astrolabe.config import reset_settings_cache

POSITIONS_OUTPUT = """\
Sun,324.7312000,-0.0000845,0.987654321,1.0142010
Moon,228.4100000,4.1234567,0.002567890,13.2011000
Mercury,310.1200000,-1.5000000,1.123456789,-0.4500000
Venus,2.0000000,1.2000000,0.723000000,1.2000000
Mars,112.0000000,2.0000000,1.520000000,0.6000000
Jupiter,60.5000000,-0.5000000,5.200000000,0.1000000
Saturn,355.0000000,-1.9000000,9.500000000,0.0500000
Uranus,48.2000000,-0.2000000,19.80000000,0.0100000
Neptune,357.5000000,-1.1000000,30.10000000,0.0300000
Pluto,301.3000000,-3.2000000,35.20000000,0.0200000
Chiron,19.4000000,1.0000000,18.50000000,0.0400000
mean Node,15.8000000,0.0000000,0.002569000,-0.0529000
true Node,15.1000000,0.0000000,0.002459000,-0.0110000
"""

CUSPS = [15.0, 45.0, 72.0, 98.0, 130.0, 165.0, 195.0, 225.0, 252.0, 278.0, 310.0, 345.0]

# 12 cusps, ASC, MC, ARMC, Vertex, then equatorial ASC, co-ASC (Koch),
# co-ASC (Munkasey), polar ASC
HOUSES_OUTPUT = "\n".join(
    [*(f"{c:.7f}" for c in CUSPS), "15.0000000", "278.0000000", "276.5000000", "190.2500000",
     "22.1000000", "130.3000000", "301.2000000", "77.4000000"]
) + "\n"


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    """Keep tests independent of the ambient environment."""
    for name in (
        "SWEPH_PATH",
        "SWEPH_DATA_PATH",
        "EPHEMERIS_TIMEOUT_SECONDS",
        "EPHEMERIS_MAX_CONCURRENCY",
        "DEFAULT_HOUSE_SYSTEM",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def fake_swetest(tmp_path):
    """Factory writing an executable shell script that stands in for swetest.

    Every invocation appends its argument list to ``<script>.args``.
    """

    def _make(body: str, name: str = "swetest") -> str:
        path = tmp_path / name
        path.write_text(f'#!/bin/sh\necho "$*" >> "$0.args"\n{body}')
        path.chmod(0o755)
        return str(path)

    return _make


@pytest.fixture
def canned_swetest(fake_swetest):
    """Fake swetest answering position and house requests with canned output."""
    return fake_swetest(
        'case "$*" in\n'
        "  *-house*) cat <<'EOF'\n"
        f"{HOUSES_OUTPUT}"
        "EOF\n"
        "  ;;\n"
        "  *) cat <<'EOF'\n"
        f"{POSITIONS_OUTPUT}"
        "EOF\n"
        "  ;;\n"
        "esac\n"
    )
