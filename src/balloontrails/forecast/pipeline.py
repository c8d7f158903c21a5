"""Compare observed balloon motion against forecast winds for a bounded batch of points.

Points are processed in fixed sub-batches (six in flight at a time by default); each sub-batch
is awaited in full before the next starts. A point without an observed vector, or whose forecast
lookup fails, is dropped from the results; it never aborts the batch.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Sequence

import pandas as pd
from pydantic import BaseModel, Field

from balloontrails.forecast.client import OpenMeteoForecastClient
from balloontrails.forecast.levels import nearest_pressure_level, round_hour_utc
from balloontrails.ingestion.errors import classify_fetch_error
from balloontrails.settings import AppConfig, get_config
from balloontrails.utils.geo import smallest_angle_diff, uv_to_speed_heading
from balloontrails.utils.time import isoformat_z

logger = logging.getLogger(__name__)

OVERFLOW_POLICIES = {"truncate", "reject"}


class BatchTooLargeError(ValueError):
    """Raised when a batch exceeds the point cap under the `reject` policy."""


class ForecastPoint(BaseModel):
    id: str
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    alt_km: float
    timestamp: datetime
    hour: int
    obs_speed: Optional[float] = None
    obs_head: Optional[float] = None


class ForecastComparison(BaseModel):
    id: str
    lat: float
    lon: float
    hour: int
    level: int
    hour_iso: str
    obs_speed: float
    obs_head: float
    fc_speed: float
    fc_head: float
    d_speed: float
    d_head: float


class ComparisonStats(BaseModel):
    count: int = 0
    med_dspeed: float = 0.0
    p90_dspeed: float = 0.0
    med_dhead: float = 0.0
    p90_dhead: float = 0.0


@dataclass
class ComparisonResult:
    comparisons: list[ForecastComparison] = field(default_factory=list)
    stats: ComparisonStats = field(default_factory=ComparisonStats)


def _median_p90(values: Sequence[float]) -> tuple[float, float]:
    """Nearest-rank style: sorted[n // 2] and sorted[floor(0.9 n)]; (0, 0) when empty."""

    if not values:
        return 0.0, 0.0
    ordered = sorted(values)
    n = len(ordered)
    median = ordered[n // 2]
    p90 = ordered[min(n - 1, int(math.floor(n * 0.9)))]
    return median, p90


def compute_stats(comparisons: Sequence[ForecastComparison]) -> ComparisonStats:
    med_dspeed, p90_dspeed = _median_p90([abs(c.d_speed) for c in comparisons])
    med_dhead, p90_dhead = _median_p90([abs(c.d_head) for c in comparisons])
    return ComparisonStats(
        count=len(comparisons),
        med_dspeed=med_dspeed,
        p90_dspeed=p90_dspeed,
        med_dhead=med_dhead,
        p90_dhead=p90_dhead,
    )


class ForecastComparisonPipeline:
    def __init__(
        self,
        client: OpenMeteoForecastClient,
        *,
        batch_size: int = 6,
        max_points: int = 100,
        overflow_policy: str = "truncate",
    ) -> None:
        policy = (overflow_policy or "truncate").strip().lower()
        if policy not in OVERFLOW_POLICIES:
            raise ValueError("forecast.overflow_policy must be one of: truncate, reject")
        if batch_size <= 0:
            raise ValueError("forecast.concurrency must be > 0")
        if max_points <= 0:
            raise ValueError("forecast.max_points must be > 0")
        self.client = client
        self.batch_size = batch_size
        self.max_points = max_points
        self.overflow_policy = policy

    @classmethod
    def from_config(
        cls,
        config: Optional[AppConfig] = None,
        client: Optional[OpenMeteoForecastClient] = None,
    ) -> "ForecastComparisonPipeline":
        resolved = config or get_config()
        section = resolved.forecast
        return cls(
            client or OpenMeteoForecastClient(config=resolved),
            batch_size=section.concurrency,
            max_points=section.max_points,
            overflow_policy=section.overflow_policy,
        )

    def _bounded(self, points: Sequence[ForecastPoint]) -> list[ForecastPoint]:
        if len(points) <= self.max_points:
            return list(points)
        if self.overflow_policy == "reject":
            raise BatchTooLargeError(
                f"forecast comparison accepts at most {self.max_points} points, got {len(points)}"
            )
        logger.warning(
            "Truncating forecast comparison batch from %s to %s points.", len(points), self.max_points
        )
        return list(points[: self.max_points])

    async def _compare_point(self, point: ForecastPoint) -> Optional[ForecastComparison]:
        if point.obs_speed is None or point.obs_head is None:
            return None

        level = nearest_pressure_level(point.alt_km)
        hour = round_hour_utc(point.timestamp)
        try:
            wind = await self.client.fetch_wind(point.lat, point.lon, level, hour)
        except Exception as exc:  # noqa: BLE001 - one point never aborts the batch
            info = classify_fetch_error(exc)
            logger.warning(
                "Forecast lookup failed for point %s (%s): %s", point.id, info.code, info.message
            )
            return None
        if wind is None:
            return None

        fc_speed, fc_head = uv_to_speed_heading(wind.u, wind.v)
        return ForecastComparison(
            id=point.id,
            lat=point.lat,
            lon=point.lon,
            hour=point.hour,
            level=level,
            hour_iso=isoformat_z(hour),
            obs_speed=point.obs_speed,
            obs_head=point.obs_head,
            fc_speed=fc_speed,
            fc_head=fc_head,
            d_speed=fc_speed - point.obs_speed,
            d_head=smallest_angle_diff(fc_head, point.obs_head),
        )

    async def compare(self, points: Sequence[ForecastPoint]) -> ComparisonResult:
        bounded = self._bounded(points)
        comparisons: list[ForecastComparison] = []
        for start in range(0, len(bounded), self.batch_size):
            batch = bounded[start : start + self.batch_size]
            results = await asyncio.gather(*(self._compare_point(p) for p in batch))
            comparisons.extend(r for r in results if r is not None)

        dropped = len(bounded) - len(comparisons)
        if dropped:
            logger.info("Forecast comparison dropped %s of %s points.", dropped, len(bounded))
        return ComparisonResult(comparisons=comparisons, stats=compute_stats(comparisons))


async def _compare_with_owned_client(
    points: Sequence[ForecastPoint], config: AppConfig
) -> ComparisonResult:
    async with OpenMeteoForecastClient(config=config) as client:
        pipeline = ForecastComparisonPipeline.from_config(config, client=client)
        return await pipeline.compare(points)


def compare_sync(
    points: Sequence[ForecastPoint], config: Optional[AppConfig] = None
) -> ComparisonResult:
    """Blocking wrapper for scripts; not usable from inside a running event loop."""

    return asyncio.run(_compare_with_owned_client(points, config or get_config()))


def comparisons_to_features(result: ComparisonResult) -> dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [c.lon, c.lat]},
                "properties": c.model_dump(exclude={"lat", "lon"}),
            }
            for c in result.comparisons
        ],
    }


def comparisons_to_frame(result: ComparisonResult) -> pd.DataFrame:
    columns = list(ForecastComparison.model_fields)
    if not result.comparisons:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame([c.model_dump() for c in result.comparisons], columns=columns)
