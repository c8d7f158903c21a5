from __future__ import annotations

import logging
import threading
from typing import Iterable, Iterator, Mapping, Sequence

from balloontrails.tracking.models import Sample

logger = logging.getLogger(__name__)

HOURS_BACK = 24


def sort_samples(samples: Iterable[Sample]) -> list[Sample]:
    """Stable order used everywhere identity is derived: timestamp, latitude, longitude."""

    return sorted(samples, key=lambda s: (s.timestamp, s.lat, s.lon))


class HourBucketStore(Mapping[int, Sequence[Sample]]):
    """Per-hour sample sets; missing hours read as empty.

    Buckets may be filled from several threads in any order. Each bucket is kept in the
    stable linking order so bucket indices are meaningful as track origins.
    """

    def __init__(self, hours: int = HOURS_BACK) -> None:
        self.hours = hours
        self._buckets: dict[int, tuple[Sample, ...]] = {}
        self._lock = threading.Lock()

    def set_bucket(self, hour: int, samples: Iterable[Sample]) -> bool:
        """Store `samples` for `hour`; returns True if the hour was previously empty."""

        if not 0 <= hour < self.hours:
            raise ValueError(f"hour must be in [0, {self.hours - 1}], got {hour}")
        ordered = tuple(sort_samples(samples))
        with self._lock:
            is_new = hour not in self._buckets
            if not is_new:
                logger.warning("Replacing hour bucket %02d (%s samples).", hour, len(ordered))
            self._buckets[hour] = ordered
        return is_new

    def get_bucket(self, hour: int) -> tuple[Sample, ...]:
        with self._lock:
            return self._buckets.get(hour, ())

    def has_bucket(self, hour: int) -> bool:
        with self._lock:
            return bool(self._buckets.get(hour))

    def loaded_hours(self) -> list[int]:
        with self._lock:
            return sorted(h for h, samples in self._buckets.items() if samples)

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()

    def __getitem__(self, hour: int) -> Sequence[Sample]:
        return self.get_bucket(hour)

    def __contains__(self, hour: object) -> bool:
        return isinstance(hour, int) and self.has_bucket(hour)

    def __iter__(self) -> Iterator[int]:
        return iter(self.loaded_hours())

    def __len__(self) -> int:
        return len(self.loaded_hours())
