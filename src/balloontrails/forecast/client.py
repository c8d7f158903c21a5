"""Async wind forecast lookups against Open-Meteo pressure-level data.

One request per (grid cell, UTC hour, pressure level). Results are memoized in an LruCache owned
by the caller. Requests have an explicit timeout and are never retried: a point whose forecast
cannot be fetched is simply left out of the comparison.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import httpx

from balloontrails.forecast.levels import grid_bucket, round_hour_utc
from balloontrails.ingestion.errors import classify_fetch_error
from balloontrails.settings import AppConfig, get_config
from balloontrails.utils.cache import LruCache
from balloontrails.utils.geo import wind_to_uv
from balloontrails.utils.time import epoch_hour

logger = logging.getLogger(__name__)


class ForecastClientError(RuntimeError):
    """Raised when a forecast response is missing the requested wind values."""


@dataclass(frozen=True)
class WindVector:
    u: float
    v: float


@dataclass(frozen=True)
class ForecastKey:
    lat_bucket: float
    lon_bucket: float
    epoch_hour: int
    level: int


def forecast_key(
    lat: float, lon: float, hour: datetime, level: int, step_deg: float = 0.25
) -> ForecastKey:
    return ForecastKey(
        lat_bucket=grid_bucket(lat, step_deg),
        lon_bucket=grid_bucket(lon, step_deg),
        epoch_hour=epoch_hour(hour),
        level=level,
    )


def _hourly_value(hourly: dict[str, Any], name: str, hour_text: str) -> Optional[float]:
    values = hourly.get(name)
    if not isinstance(values, list) or not values:
        return None
    times = hourly.get("time")
    index = 0
    if isinstance(times, list) and hour_text in times:
        index = times.index(hour_text)
    value = values[index]
    return None if value is None else float(value)


class OpenMeteoForecastClient:
    def __init__(
        self,
        config: Optional[AppConfig] = None,
        cache: Optional[LruCache[WindVector]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config or get_config()
        section = self.config.forecast
        self.cache: LruCache[WindVector] = cache or LruCache(
            max_entries=self.config.cache.max_entries,
            ttl_seconds=self.config.cache.ttl_seconds,
            enabled=self.config.cache.enabled,
        )
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=section.request_timeout_seconds,
            headers={"accept": "application/json"},
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "OpenMeteoForecastClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _params(self, key: ForecastKey, hour: datetime) -> dict[str, Any]:
        hour_text = hour.strftime("%Y-%m-%dT%H:%M")
        return {
            "latitude": key.lat_bucket,
            "longitude": key.lon_bucket,
            "hourly": f"wind_speed_{key.level}hPa,wind_direction_{key.level}hPa",
            "wind_speed_unit": "ms",
            "timezone": "UTC",
            "start_hour": hour_text,
            "end_hour": hour_text,
        }

    async def _request_wind(self, key: ForecastKey, hour: datetime) -> WindVector:
        response = await self._http.get(
            self.config.forecast.base_url,
            params=self._params(key, hour),
            timeout=self.config.forecast.request_timeout_seconds,
        )
        response.raise_for_status()
        payload = response.json()
        hourly = payload.get("hourly") if isinstance(payload, dict) else None
        if not isinstance(hourly, dict):
            raise ForecastClientError("forecast payload has no hourly block")

        hour_text = hour.strftime("%Y-%m-%dT%H:%M")
        speed = _hourly_value(hourly, f"wind_speed_{key.level}hPa", hour_text)
        direction = _hourly_value(hourly, f"wind_direction_{key.level}hPa", hour_text)
        if speed is None or direction is None:
            raise ForecastClientError(f"no wind at {key.level} hPa for {hour_text}")

        u, v = wind_to_uv(speed, direction)
        return WindVector(u=u, v=v)

    async def fetch_wind(
        self, lat: float, lon: float, level: int, timestamp: datetime
    ) -> Optional[WindVector]:
        """Forecast wind for the grid cell containing (lat, lon), or None if unavailable."""

        hour = round_hour_utc(timestamp)
        key = forecast_key(lat, lon, hour, level, self.config.forecast.grid_step_deg)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            wind = await self._request_wind(key, hour)
        except (httpx.HTTPError, ForecastClientError, ValueError) as exc:
            info = classify_fetch_error(exc)
            logger.warning(
                "Forecast unavailable at %.2f,%.2f %s hPa (%s): %s",
                key.lat_bucket,
                key.lon_bucket,
                level,
                info.code,
                info.message,
            )
            return None

        self.cache.set(key, wind)
        return wind
