"""Hour snapshot ingestion client.

Downloads the hourly balloon snapshots (`{base_url}/00.json` ... `{base_url}/23.json`) and turns
each into validated Samples. Snapshot endpoints are flaky (missing hours, truncated JSON, 5xx),
so transient failures are retried with exponential backoff and a missing hour ends up as an
empty bucket rather than an error.
"""

from __future__ import annotations

import logging
import random
import time
from datetime import datetime, timezone
from typing import Iterable, Optional

import httpx

from balloontrails.ingestion.errors import classify_fetch_error
from balloontrails.ingestion.schemas import parse_hour_payload
from balloontrails.settings import AppConfig, get_config
from balloontrails.tracking.models import Sample
from balloontrails.tracking.store import HourBucketStore

logger = logging.getLogger(__name__)


class HourFetchError(RuntimeError):
    """Raised when an hour snapshot cannot be fetched after retries."""


def hour_path(hour: int) -> str:
    return f"{hour:02d}.json"


class HourBucketClient:
    """Fetches hour snapshots with retries. Close via `close()` to release connections."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.config = config or get_config()
        section = self.config.ingestion
        base_url = section.base_url.rstrip("/") + "/"
        self._http = http_client or httpx.Client(
            base_url=base_url,
            timeout=section.request_timeout_seconds,
            headers={"accept": "application/json"},
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "HourBucketClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @staticmethod
    def _parse_retry_after_seconds(value: Optional[str]) -> Optional[float]:
        if not value:
            return None
        try:
            seconds = float(value.strip())
        except ValueError:
            return None
        return seconds if seconds >= 0 else None

    @staticmethod
    def _is_retryable_status(status_code: int) -> bool:
        return status_code in {408, 429, 500, 502, 503, 504}

    def _compute_backoff_seconds(self, attempt: int, retry_after_seconds: Optional[float]) -> float:
        section = self.config.ingestion
        delay = float(section.retry_backoff_seconds) * (float(section.backoff_multiplier) ** attempt)
        delay = min(float(section.max_backoff_seconds), max(0.0, delay))
        if section.jitter_seconds > 0:
            delay += random.uniform(0.0, float(section.jitter_seconds))
        if section.respect_retry_after and retry_after_seconds is not None:
            delay = max(delay, retry_after_seconds)
        return delay

    def _request_payload(self, hour: int) -> object:
        max_retries = max(0, int(self.config.ingestion.max_retries))
        last_error: Optional[Exception] = None
        for attempt in range(max_retries + 1):
            try:
                response = self._http.get(hour_path(hour))
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as exc:
                last_error = exc
                status = int(exc.response.status_code)
                if not self._is_retryable_status(status) or attempt >= max_retries:
                    break
                delay = self._compute_backoff_seconds(
                    attempt, self._parse_retry_after_seconds(exc.response.headers.get("retry-after"))
                )
                logger.warning(
                    "Hour %02d request failed (%s). Retrying in %.2fs (attempt %s/%s).",
                    hour,
                    status,
                    delay,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(delay)
            except (httpx.TransportError, ValueError) as exc:
                # Transport failures and truncated/non-JSON bodies.
                last_error = exc
                if attempt >= max_retries:
                    break
                delay = self._compute_backoff_seconds(attempt, None)
                logger.warning(
                    "Hour %02d request error (%s). Retrying in %.2fs (attempt %s/%s).",
                    hour,
                    type(exc).__name__,
                    delay,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(delay)

        raise HourFetchError(
            f"hour {hour:02d} request failed after retries: {last_error}"
        ) from last_error

    def fetch_hour(self, hour: int, now: Optional[datetime] = None) -> list[Sample]:
        """Samples for one hour offset; an empty list when the snapshot cannot be fetched."""

        reference = now or datetime.now(timezone.utc)
        try:
            payload = self._request_payload(hour)
        except HourFetchError as exc:
            info = classify_fetch_error(exc.__cause__ or exc)
            logger.warning("Hour %02d unavailable (%s): %s", hour, info.code, info.message)
            return []
        return parse_hour_payload(payload, hour, reference)

    def fetch_all(
        self, hours: Optional[Iterable[int]] = None, now: Optional[datetime] = None
    ) -> dict[int, list[Sample]]:
        reference = now or datetime.now(timezone.utc)
        wanted = list(hours) if hours is not None else list(range(self.config.app.hours_back))
        buckets = {hour: self.fetch_hour(hour, now=reference) for hour in wanted}
        total = sum(len(samples) for samples in buckets.values())
        logger.info("Fetched %s samples across %s hour snapshots.", total, len(wanted))
        return buckets

    def fill_store(
        self, store: HourBucketStore, hours: Optional[Iterable[int]] = None
    ) -> HourBucketStore:
        for hour, samples in self.fetch_all(hours).items():
            if samples:
                store.set_bucket(hour, samples)
        return store
