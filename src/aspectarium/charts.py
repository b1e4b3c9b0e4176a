"""Chart calculation entry points: natal charts, batches, transits, synastry."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from astrolabe.config import get_settings
from astrolabe.errors import UnreconciledHouseFrame
from astrolabe.schemas.chart import (
    BodyPosition,
    ChartBundle,
    ChartRequest,
    HouseFrame,
    ReconciliationState,
    SynastryReport,
    TransitReport,
)
from astrolabe.services.chart_cache import ChartCache, chart_cache_key

from aspectarium.aspects import find_aspects, find_cross_aspects
from aspectarium.bodies import validate_house_system
from aspectarium.gateway import EphemerisGateway
from aspectarium.houses import place_bodies
from aspectarium.patterns import detect_patterns

logger = logging.getLogger(__name__)


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


def to_utc(local_date: date, local_time: time | None, timezone: str) -> tuple[datetime, list[str]]:
    """Convert a local civil date/time in an IANA zone to a UTC instant.

    Returns (instant, warnings). Unknown time uses local noon; an invalid
    zone falls back to UTC.
    """
    warnings: list[str] = []
    if local_time is None:
        local_time = time(12, 0, 0)
        warnings.append("time unknown, using local noon")
    try:
        tz = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        tz = UTC
        warnings.append(f"invalid timezone '{timezone}', fallback to UTC")
        logger.warning("Invalid timezone %r, using UTC", timezone)

    local = datetime.combine(local_date, local_time, tzinfo=tz)
    return local.astimezone(UTC), warnings


def analyze_chart(
    positions: Sequence[BodyPosition],
    houses: HouseFrame | None = None,
    warnings: Sequence[str] = (),
) -> ChartBundle:
    """Aspects, house placements, and patterns for already-known positions.

    This is the path for positions/houses served from a cache; it never
    touches the external calculator.
    """
    positions = list(positions)
    warnings = list(warnings)

    if houses is not None and houses.status is ReconciliationState.UNRECONCILED:
        warnings.append(f"house frame ({houses.system}) could not be aligned with ASC/MC")
    elif houses is not None and houses.status is ReconciliationState.FORCED:
        warnings.append("house cusps 1 and 10 forced onto ASC and MC")

    aspects = find_aspects(positions)
    report = detect_patterns(aspects, positions)

    return ChartBundle(
        positions=positions,
        houses=houses,
        placements=place_bodies(positions, houses),
        aspects=aspects,
        patterns=report.patterns,
        pattern_summary=report.summary,
        warnings=warnings,
    )


async def calculate_chart(
    instant: datetime,
    latitude: float,
    longitude: float,
    house_system: str | None = None,
    *,
    gateway: EphemerisGateway | None = None,
    cache: ChartCache | None = None,
    require_reconciled_houses: bool = False,
    warnings: Sequence[str] = (),
) -> ChartBundle:
    """Compute a full chart, consulting the cache before the calculator."""
    hsys = validate_house_system(house_system or get_settings().default_house_system)
    utc = _as_utc(instant)
    key = chart_cache_key(utc, latitude, longitude, hsys)

    cached = cache.get(key) if cache is not None else None
    if cached is not None and cached.positions:
        logger.debug("Chart cache hit %s", key)
        positions, houses, cache_hit = cached.positions, cached.houses, True
    else:
        gateway = gateway or EphemerisGateway()
        positions = await gateway.positions(utc)
        houses = await gateway.houses(utc, latitude, longitude, hsys)
        cache_hit = False

    if require_reconciled_houses and houses is not None and not houses.is_reconciled:
        raise UnreconciledHouseFrame(
            "house cusps could not be aligned with ASC/MC",
            stage="houses",
            raw=" ".join(f"{h}:{c:g}" for h, c in sorted(houses.cusps.items())),
        )

    if cache is not None and not cache_hit:
        cache.put(key, positions, houses)

    bundle = analyze_chart(positions, houses, warnings)
    logger.info(
        "Chart %s: %d positions, %d aspects, %d patterns%s",
        utc.isoformat(),
        len(bundle.positions),
        len(bundle.aspects),
        len(bundle.patterns),
        " (cached)" if cache_hit else "",
    )
    return bundle.model_copy(
        update={
            "instant": utc,
            "latitude": latitude,
            "longitude": longitude,
            "house_system": hsys,
            "cache_hit": cache_hit,
        }
    )


async def calculate_natal_chart(
    birth_date: date,
    birth_time: time | None,
    birth_latitude: float,
    birth_longitude: float,
    birth_timezone: str,
    house_system: str | None = None,
    *,
    gateway: EphemerisGateway | None = None,
    cache: ChartCache | None = None,
) -> ChartBundle:
    """Compute a chart from a local birth date/time and IANA time zone."""
    instant, warnings = to_utc(birth_date, birth_time, birth_timezone)
    return await calculate_chart(
        instant,
        birth_latitude,
        birth_longitude,
        house_system,
        gateway=gateway,
        cache=cache,
        warnings=warnings,
    )


async def calculate_charts(
    requests: Sequence[ChartRequest],
    *,
    gateway: EphemerisGateway | None = None,
    cache: ChartCache | None = None,
) -> list[ChartBundle | BaseException]:
    """Compute many charts concurrently, results in request order.

    Subprocess calls share the gateway's slot limit. A failed chart is
    returned as its exception so the rest of the batch still completes.
    """
    gateway = gateway or EphemerisGateway()
    logger.info(
        "Calculating %d charts with concurrency=%d",
        len(requests),
        gateway.max_concurrency,
    )
    results = await asyncio.gather(
        *[
            calculate_chart(
                r.instant,
                r.latitude,
                r.longitude,
                r.house_system,
                gateway=gateway,
                cache=cache,
            )
            for r in requests
        ],
        return_exceptions=True,
    )
    for request, result in zip(requests, results):
        if isinstance(result, BaseException):
            logger.warning("Chart calculation failed for %s: %s", request.instant.isoformat(), result)
    return list(results)


async def calculate_transits(
    natal: ChartBundle,
    instant: datetime,
    *,
    gateway: EphemerisGateway | None = None,
) -> TransitReport:
    """Transiting positions at ``instant`` against a natal chart."""
    gateway = gateway or EphemerisGateway()
    utc = _as_utc(instant)
    positions = await gateway.positions(utc)
    return TransitReport(
        instant=utc,
        positions=positions,
        placements=place_bodies(positions, natal.houses),
        aspects=find_cross_aspects(positions, natal.positions, second_fixed=True),
    )


async def scan_transits(
    natal: ChartBundle,
    start: datetime,
    days: int,
    *,
    step_hours: float = 24.0,
    gateway: EphemerisGateway | None = None,
) -> list[TransitReport]:
    """Transit reports from ``start`` every ``step_hours`` across ``days`` days."""
    if days < 1:
        raise ValueError("days must be at least 1")
    if step_hours <= 0:
        raise ValueError("step_hours must be positive")

    gateway = gateway or EphemerisGateway()
    start = _as_utc(start)
    steps = max(1, int(days * 24 // step_hours))
    instants = [start + timedelta(hours=step_hours * i) for i in range(steps)]
    logger.info("Scanning %d transit instants from %s", len(instants), start.isoformat())

    tasks = [asyncio.create_task(calculate_transits(natal, t, gateway=gateway)) for t in instants]
    try:
        reports = await asyncio.gather(*tasks)
    except BaseException:
        # One failed instant fails the scan; free the gateway slots held by the rest
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.warning("Transit scan from %s aborted", start.isoformat())
        raise
    return list(reports)


def compare_charts(first: ChartBundle, second: ChartBundle) -> SynastryReport:
    """Synastry: cross aspects plus each chart's bodies in the other's houses."""
    return SynastryReport(
        aspects=find_cross_aspects(first.positions, second.positions),
        overlays_a_in_b=place_bodies(first.positions, second.houses),
        overlays_b_in_a=place_bodies(second.positions, first.houses),
    )
