from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError

from balloontrails.tracking.models import Sample
from balloontrails.utils.time import hours_ago

logger = logging.getLogger(__name__)

# One hour snapshot: [[lat, lon, alt_km], ...]
RawTripletArray = TypeAdapter(list[tuple[float, float, float]])


def _in_range(lat: float, lon: float, alt_km: float) -> bool:
    if any(math.isnan(v) for v in (lat, lon, alt_km)):
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180 and 0 <= alt_km <= 40


def parse_hour_payload(payload: Any, hour: int, now: datetime) -> list[Sample]:
    """Validate one snapshot and turn it into Samples stamped `now - hour` hours.

    An unparseable payload yields no samples. Out-of-range rows and exact duplicates are dropped.
    """

    try:
        triplets = RawTripletArray.validate_python(payload)
    except ValidationError as exc:
        logger.warning("Hour %02d payload rejected: %s error(s).", hour, exc.error_count())
        return []

    timestamp = hours_ago(now, hour)
    samples: list[Sample] = []
    seen: set[tuple[float, float, float]] = set()
    skipped = 0
    for lat, lon, alt_km in triplets:
        if not _in_range(lat, lon, alt_km):
            skipped += 1
            continue
        key = (round(lat, 5), round(lon, 5), round(alt_km, 2))
        if key in seen:
            skipped += 1
            continue
        seen.add(key)
        samples.append(Sample(lat=lat, lon=lon, alt_km=alt_km, timestamp=timestamp, hour=hour))

    if skipped:
        logger.debug("Hour %02d: skipped %s invalid or duplicate rows.", hour, skipped)
    return samples
