"""Chart calculation cache contract -- key derivation plus an in-memory adapter."""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from datetime import UTC, datetime
from typing import Protocol

from pydantic import BaseModel, Field

from astrolabe.schemas.chart import BodyPosition, HouseFrame

logger = logging.getLogger(__name__)


class CachedChart(BaseModel):
    """Serialized positions/houses for one (instant, place, house system)."""

    positions: list[BodyPosition] = Field(default_factory=list)
    houses: HouseFrame | None = None


class ChartCache(Protocol):
    def get(self, key: str) -> CachedChart | None: ...

    def put(self, key: str, positions: list[BodyPosition], houses: HouseFrame | None) -> None: ...


def chart_cache_key(instant: datetime, latitude: float, longitude: float, house_system: str) -> str:
    """Stable SHA-1 key for a chart calculation request."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    payload = json.dumps(
        {
            "utc": instant.astimezone(UTC).isoformat(),
            "lat": round(float(latitude), 6),
            "lon": round(float(longitude), 6),
            "hs": str(house_system).strip().upper(),
        },
        separators=(",", ":"),
    )
    return hashlib.sha1(payload.encode()).hexdigest()


class InMemoryChartCache:
    """Process-local cache storing JSON payloads, re-validated on read."""

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> CachedChart | None:
        with self._lock:
            raw = self._entries.get(key)
        if raw is None:
            return None
        return CachedChart.model_validate_json(raw)

    def put(self, key: str, positions: list[BodyPosition], houses: HouseFrame | None) -> None:
        payload = CachedChart(positions=list(positions), houses=houses).model_dump_json()
        with self._lock:
            self._entries[key] = payload
        logger.debug("Cached chart %s (%d positions)", key, len(positions))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
