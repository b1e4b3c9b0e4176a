"""External ephemeris calculator (swetest) invocation and output parsing.

swetest prints loosely structured text: a header, one row per body for
position requests, and a stream of cusps and angles for house requests
whose column layout shifts between builds. Malformed rows are skipped and
the house stream goes through ``HouseReconciler`` to find the block where
ASC sits on cusp 1 and MC on cusp 10.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import os
import re
import shutil
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from astrolabe.config import get_settings
from astrolabe.errors import (
    ConfigurationError,
    EphemerisInvocationError,
    EphemerisParseError,
)
from astrolabe.schemas.chart import (
    BodyPosition,
    ChartAngles,
    HouseFrame,
    ReconciliationState,
)

from aspectarium.bodies import BODY_REQUEST, normalize_body_name, validate_house_system
from aspectarium.geometry import normalize360, round_longitude, separation

logger = logging.getLogger(__name__)

# Degrees allowed between ASC/cusp 1 and MC/cusp 10
HOUSE_ALIGNMENT_TOLERANCE = 0.8

# Only Placidus frames get cusp 1/10 forced onto ASC/MC
FORCEABLE_HOUSE_SYSTEM = "P"

_CUSP_COUNT = 12
_WINDOW = 16  # 12 cusps + ASC, MC, ARMC, Vertex
_TAIL_BLOCK = 20  # 12 cusps + 8 angle values in the usual layout
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")

_TERMINAL_STATES = frozenset(
    {ReconciliationState.ALIGNED, ReconciliationState.FORCED, ReconciliationState.UNRECONCILED}
)


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


def _to_float(token: str) -> float | None:
    try:
        value = float(token)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def _split_row(line: str) -> list[str]:
    """Split a row into [name, field, ...] for comma or whitespace layouts."""
    if "," in line:
        parts = [part.strip() for part in line.split(",")]
        while parts and not parts[-1]:
            parts.pop()
        return parts

    tokens = line.split()
    name_tokens: list[str] = []
    for token in tokens:
        if _to_float(token) is not None:
            break
        name_tokens.append(token)
    if not name_tokens:
        return []
    return [" ".join(name_tokens), *tokens[len(name_tokens):]]


def parse_positions(lines: Sequence[str]) -> list[BodyPosition]:
    """Parse swetest position rows (name, lon, lat, dist[, speed])."""
    rows: list[BodyPosition] = []
    for line in lines:
        line = line.strip()
        if not line or line.lower().startswith("date"):
            continue
        fields = _split_row(line)
        if len(fields) < 4:
            continue

        name = normalize_body_name(fields[0])
        lon, lat, dist = (_to_float(f) for f in fields[1:4])
        if not name or lon is None or lat is None or dist is None:
            continue
        speed = _to_float(fields[4]) if len(fields) > 4 else None

        rows.append(
            BodyPosition(
                name=name,
                longitude=normalize360(lon),
                latitude=lat,
                distance=dist,
                speed=speed if speed is not None else 0.0,
            )
        )

    if not rows:
        raise EphemerisParseError(
            "could not parse planetary positions",
            stage="positions",
            raw="\n".join(lines),
        )
    return rows


def scan_house_values(lines: Iterable[str]) -> list[float]:
    """Every numeric token in emission order, wrapped into [0, 360) and rounded."""
    values: list[float] = []
    for line in lines:
        for raw in _NUMBER.findall(line):
            values.append(round_longitude(float(raw)))
    return values


@dataclass(frozen=True)
class HouseCandidate:
    """A 12-cusp + 4-angle slice of the numeric token stream."""

    cusps: tuple[float, ...]
    angles: tuple[float, float, float, float]
    offset: int

    @classmethod
    def at(cls, values: Sequence[float], offset: int) -> HouseCandidate:
        cusps = tuple(values[offset:offset + _CUSP_COUNT])
        asc, mc, armc, vertex = values[offset + _CUSP_COUNT:offset + _WINDOW]
        return cls(cusps=cusps, angles=(asc, mc, armc, vertex), offset=offset)

    def forced(self) -> HouseCandidate:
        cusps = list(self.cusps)
        cusps[0] = self.angles[0]
        cusps[9] = self.angles[1]
        return HouseCandidate(cusps=tuple(cusps), angles=self.angles, offset=self.offset)


class HouseReconciler:
    """State machine aligning raw house output with ASC/MC.

    aligned       tail block (or a searched window) has ASC~cusp1 and MC~cusp10
    searching     tail block misaligned, sliding a 16-wide window over the stream
    forced        nothing aligned, Placidus: cusp1/cusp10 overwritten with ASC/MC
    unreconciled  nothing aligned, other systems: tail block returned as-is
    """

    def __init__(
        self,
        values: Sequence[float],
        house_system: str,
        tolerance: float = HOUSE_ALIGNMENT_TOLERANCE,
    ) -> None:
        if len(values) < _WINDOW:
            raise EphemerisParseError(
                f"need at least {_WINDOW} numeric values for houses, got {len(values)}",
                stage="houses",
                raw=" ".join(f"{v:g}" for v in values),
            )
        self.values = list(values)
        self.house_system = house_system.upper()
        self.tolerance = tolerance
        self.state: ReconciliationState | None = None
        self.candidate: HouseCandidate | None = None
        self._handlers = {ReconciliationState.SEARCHING: self._search}

    def is_aligned(self, candidate: HouseCandidate) -> bool:
        asc, mc = candidate.angles[0], candidate.angles[1]
        return (
            separation(asc, candidate.cusps[0]) <= self.tolerance
            and separation(mc, candidate.cusps[9]) <= self.tolerance
        )

    def reconcile(self) -> HouseFrame:
        self.state = self._start()
        while self.state not in _TERMINAL_STATES:
            self.state = self._handlers[self.state]()
        return self._frame()

    def _start(self) -> ReconciliationState:
        block = _TAIL_BLOCK if len(self.values) >= _TAIL_BLOCK else _WINDOW
        self.candidate = HouseCandidate.at(self.values, len(self.values) - block)
        if self.is_aligned(self.candidate):
            return ReconciliationState.ALIGNED
        return ReconciliationState.SEARCHING

    def _search(self) -> ReconciliationState:
        for offset in range(len(self.values) - _WINDOW + 1):
            window = HouseCandidate.at(self.values, offset)
            if self.is_aligned(window):
                logger.info("House frame aligned by window search at offset %d", offset)
                self.candidate = window
                return ReconciliationState.ALIGNED

        if self.house_system == FORCEABLE_HOUSE_SYSTEM:
            logger.warning("No aligned house window; forcing cusp 1/10 onto ASC/MC")
            self.candidate = self.candidate.forced()
            return ReconciliationState.FORCED

        logger.warning("No aligned house window for system %s; frame left unreconciled", self.house_system)
        return ReconciliationState.UNRECONCILED

    def _frame(self) -> HouseFrame:
        asc, mc, armc, vertex = (round_longitude(v) for v in self.candidate.angles)
        return HouseFrame(
            system=self.house_system,
            cusps={i + 1: round_longitude(c) for i, c in enumerate(self.candidate.cusps)},
            angles=ChartAngles(asc=asc, mc=mc, armc=armc, vertex=vertex),
            status=self.state,
        )


def parse_houses(lines: Sequence[str], house_system: str) -> HouseFrame:
    """Parse swetest house output into a reconciled (or flagged) HouseFrame."""
    return HouseReconciler(scan_house_values(lines), house_system).reconcile()


class EphemerisGateway:
    """Runs swetest as a subprocess, bounded by a fixed number of slots."""

    def __init__(
        self,
        binary: str | None = None,
        *,
        data_path: str | None = None,
        timeout: float | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        settings = get_settings()
        self.binary = binary if binary is not None else settings.swetest_path
        self.data_path = data_path if data_path is not None else settings.sweph_data_path
        self.timeout = timeout if timeout is not None else settings.ephemeris_timeout_seconds
        self.max_concurrency = max_concurrency or settings.ephemeris_max_concurrency
        self._slots = asyncio.Semaphore(self.max_concurrency)

    def resolve_binary(self, stage: str | None = None) -> str:
        candidate = str(self.binary or "").strip()
        if not candidate:
            raise ConfigurationError("swetest path is not configured; set SWEPH_PATH", stage=stage)

        if os.sep not in candidate:
            found = shutil.which(candidate)
            if found:
                return found
            raise ConfigurationError(f"swetest '{candidate}' not found on PATH", stage=stage)

        path = Path(candidate)
        if not path.is_file() or not os.access(path, os.X_OK):
            raise ConfigurationError(
                f"swetest not found or not executable at {candidate}; set SWEPH_PATH",
                stage=stage,
            )
        return str(path)

    def _base_args(self, instant: datetime) -> list[str]:
        utc = _as_utc(instant)
        args = []
        if self.data_path:
            args.append(f"-edir{self.data_path}")
        args.extend(
            [
                "-eswe",
                f"-b{utc.day}.{utc.month}.{utc.year}",
                f"-ut{utc.hour:02d}:{utc.minute:02d}:{utc.second:02d}",
            ]
        )
        return args

    def position_args(self, instant: datetime) -> list[str]:
        return [*self._base_args(instant), f"-p{BODY_REQUEST}", "-fPlbRs", "-g,", "-head", "-n1"]

    def house_args(self, instant: datetime, latitude: float, longitude: float, house_system: str) -> list[str]:
        # swetest takes east longitude first, then north latitude. -fl prints one
        # decimal longitude per row: 12 cusps, then ASC, MC, ARMC, Vertex and
        # four auxiliary angles, which is the 20-value tail block.
        return [
            *self._base_args(instant),
            f"-house{longitude:.6f},{latitude:.6f},{house_system}",
            "-fl",
            "-g,",
            "-head",
        ]

    async def _run(self, stage: str, args: list[str]) -> list[str]:
        binary = self.resolve_binary(stage)
        command = " ".join(args)
        logger.debug("swetest %s: %s %s", stage, binary, command)

        async with self._slots:
            try:
                proc = await asyncio.create_subprocess_exec(
                    binary,
                    *args,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as exc:
                raise ConfigurationError(f"could not start swetest: {exc}", stage=stage) from exc

            try:
                stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
            except TimeoutError:
                raise EphemerisInvocationError(
                    f"swetest timed out after {self.timeout:g}s",
                    stage=stage,
                    raw=command,
                ) from None
            finally:
                # Timed out or cancelled: the child must not outlive the call
                if proc.returncode is None:
                    with contextlib.suppress(ProcessLookupError):
                        proc.kill()
                    await proc.wait()

        if proc.returncode != 0:
            raise EphemerisInvocationError(
                f"swetest exited with status {proc.returncode}",
                stage=stage,
                raw=stderr.decode(errors="replace").strip() or command,
            )

        lines = [line.strip() for line in stdout.decode(errors="replace").splitlines() if line.strip()]
        if not lines:
            raise EphemerisInvocationError("swetest returned no data", stage=stage, raw=command)
        return lines

    async def positions(self, instant: datetime) -> list[BodyPosition]:
        """Body positions (Sun..Pluto, Chiron, nodes) at a UTC instant."""
        lines = await self._run("positions", self.position_args(instant))
        positions = parse_positions(lines)
        logger.info("Parsed %d body positions for %s", len(positions), _as_utc(instant).isoformat())
        return positions

    async def houses(
        self,
        instant: datetime,
        latitude: float,
        longitude: float,
        house_system: str | None = None,
    ) -> HouseFrame:
        """House cusps and angles for a place and house system."""
        if not -90.0 <= latitude <= 90.0:
            raise ValueError(f"latitude out of range: {latitude}")
        if not -180.0 <= longitude <= 180.0:
            raise ValueError(f"longitude out of range: {longitude}")
        hsys = validate_house_system(house_system or get_settings().default_house_system)

        lines = await self._run("houses", self.house_args(instant, latitude, longitude, hsys))
        frame = parse_houses(lines, hsys)
        logger.info("House frame %s for %s: %s", hsys, _as_utc(instant).isoformat(), frame.status.value)
        return frame
