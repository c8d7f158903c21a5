"""In-memory trail state for one viewing session.

Hour buckets arrive in any order. Whenever both halves of an hour pair are present the pair is
linked, its segments are built and their boxes go into the spatial index, exactly once per
pair. Replacing a bucket discards the pairs that depended on it so they are rebuilt.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from balloontrails.forecast.pipeline import ForecastPoint
from balloontrails.settings import AppConfig, get_config
from balloontrails.tracking.linker import build_pair_tracks, nearest_within
from balloontrails.tracking.models import IndexItem, Sample, Segment, TrackId
from balloontrails.tracking.neighbors import find_adjacent_vector
from balloontrails.tracking.segments import build_segments, index_items
from balloontrails.tracking.spatial_index import BBox, SegmentIndex
from balloontrails.tracking.store import HourBucketStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PairBuild:
    pair_hour: int
    segments: list[Segment] = field(default_factory=list)
    index_items: list[IndexItem] = field(default_factory=list)


def build_pair(
    left: Sequence[Sample],
    right: Sequence[Sample],
    pair_hour: int,
    max_km_per_hour: float = 500.0,
    max_speed_ms: Optional[float] = None,
) -> PairBuild:
    """Link one hour pair and derive its segments; pure and safe to run off the event loop."""

    tracks = build_pair_tracks(left, right, pair_hour, max_km_per_hour)
    segments = build_segments(tracks, max_speed_ms=max_speed_ms)
    return PairBuild(pair_hour=pair_hour, segments=segments, index_items=index_items(segments))


class TrailSession:
    def __init__(
        self,
        config: Optional[AppConfig] = None,
        store: Optional[HourBucketStore] = None,
        index: Optional[SegmentIndex] = None,
    ) -> None:
        self.config = config or get_config()
        self.store = store or HourBucketStore(hours=self.config.app.hours_back)
        self.index = index or SegmentIndex()
        self._pair_segments: dict[int, list[Segment]] = {}
        self._segments_by_id: dict[str, Segment] = {}
        self._lock = threading.Lock()

    # -- ingestion -------------------------------------------------------------------------

    def _pending_pairs(self, hour: int) -> list[int]:
        candidates = [h for h in (hour - 1, hour) if 0 <= h < self.store.hours - 1]
        with self._lock:
            built = set(self._pair_segments)
        return [
            h
            for h in candidates
            if h not in built and self.store.has_bucket(h) and self.store.has_bucket(h + 1)
        ]

    def _discard_pairs(self, pair_hours: Iterable[int]) -> None:
        drop = list(pair_hours)
        with self._lock:
            for h in drop:
                for segment in self._pair_segments.pop(h, []):
                    self._segments_by_id.pop(segment.id, None)
        removed = self.index.remove_pairs(drop)
        if removed:
            logger.info("Discarded %s index items for pairs %s.", removed, drop)

    def _apply(self, build: PairBuild) -> None:
        with self._lock:
            if build.pair_hour in self._pair_segments:
                return
            self._pair_segments[build.pair_hour] = build.segments
            for segment in build.segments:
                self._segments_by_id[segment.id] = segment
        self.index.insert(build.index_items)
        logger.debug(
            "Pair %02d-%02d: %s segments.",
            build.pair_hour,
            build.pair_hour + 1,
            len(build.segments),
        )

    def _build(self, pair_hour: int) -> PairBuild:
        section = self.config.tracking
        return build_pair(
            self.store.get_bucket(pair_hour),
            self.store.get_bucket(pair_hour + 1),
            pair_hour,
            max_km_per_hour=section.max_km_per_hour,
            max_speed_ms=section.max_reasonable_speed_ms,
        )

    def add_hour_bucket(self, hour: int, samples: Iterable[Sample]) -> list[int]:
        """Store a bucket and link any pair it completes; returns the pair hours built."""

        is_new = self.store.set_bucket(hour, samples)
        if not is_new:
            self._discard_pairs([hour - 1, hour])

        built: list[int] = []
        for pair_hour in self._pending_pairs(hour):
            self._apply(self._build(pair_hour))
            built.append(pair_hour)
        return built

    async def add_hour_bucket_async(self, hour: int, samples: Iterable[Sample]) -> list[int]:
        return await asyncio.to_thread(self.add_hour_bucket, hour, list(samples))

    # -- queries ---------------------------------------------------------------------------

    def pair_segments(self, pair_hour: int) -> list[Segment]:
        with self._lock:
            return list(self._pair_segments.get(pair_hour, []))

    def built_pairs(self) -> list[int]:
        with self._lock:
            return sorted(self._pair_segments)

    def all_segments(self) -> list[Segment]:
        with self._lock:
            return [s for h in sorted(self._pair_segments) for s in self._pair_segments[h]]

    def visible_segments(self, bbox: BBox, max_hours: Optional[int] = None) -> list[Segment]:
        """Segments whose boxes meet `bbox`, limited to pairs starting before `max_hours`."""

        limit = self.config.tracking.trails_max_hours if max_hours is None else max_hours
        with self._lock:
            by_id = dict(self._segments_by_id)
        visible: list[Segment] = []
        for item in self.index.query(bbox):
            if item.pair_hour >= limit:
                continue
            segment = by_id.get(item.segment_id)
            if segment is not None:
                visible.append(segment)
        return visible

    def track_segment_ids(self) -> dict[str, list[str]]:
        mapping: dict[str, list[str]] = {}
        for segment in self.all_segments():
            mapping.setdefault(str(segment.track_id), []).append(segment.id)
        return mapping

    # -- selection -------------------------------------------------------------------------

    def follow_track(self, track_id: TrackId | str, to_hour: int) -> Optional[Sample]:
        """Step from a track's origin sample toward `to_hour` by nearest neighbors.

        Stepping stops at the first hour with no sample within the per-hour cap and the last
        sample reached is returned. None only for a malformed id or a missing origin.
        """

        parsed = TrackId.parse(track_id) if isinstance(track_id, str) else track_id
        if parsed is None:
            return None
        origin_bucket = self.store.get_bucket(parsed.origin_hour)
        if parsed.origin_index >= len(origin_bucket):
            return None

        current = origin_bucket[parsed.origin_index]
        step = 1 if to_hour >= parsed.origin_hour else -1
        max_km = self.config.tracking.max_km_per_hour
        for hour in range(parsed.origin_hour + step, to_hour + step, step):
            candidates = self.store.get_bucket(hour)
            index, _ = nearest_within(current, candidates, max_km)
            if index is None:
                logger.debug("Track %s stops at hour %02d.", parsed, hour - step)
                break
            current = candidates[index]
        return current

    def forecast_points(self, samples: Iterable[Sample]) -> list[ForecastPoint]:
        """Comparison inputs for samples that have an observed vector, capped at max_points."""

        neighbors = self.config.neighbors
        limit = self.config.forecast.max_points
        points: list[ForecastPoint] = []
        for sample in samples:
            neighbor = find_adjacent_vector(
                sample,
                self.store,
                max_km=neighbors.max_km,
                cyclic=neighbors.cyclic_hours,
                hours=self.store.hours,
            )
            if not neighbor.has_neighbor:
                continue
            points.append(
                ForecastPoint(
                    id=f"{sample.lat},{sample.lon},{sample.hour}",
                    lat=sample.lat,
                    lon=sample.lon,
                    alt_km=sample.alt_km,
                    timestamp=sample.timestamp,
                    hour=sample.hour,
                    obs_speed=neighbor.speed_ms,
                    obs_head=neighbor.heading_deg,
                )
            )
            if len(points) >= limit:
                break
        return points
