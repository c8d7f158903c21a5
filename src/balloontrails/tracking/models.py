from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Sample:
    """One observed position inside an hour snapshot."""

    lat: float
    lon: float
    alt_km: float
    timestamp: datetime
    # 0 = most recent snapshot, 23 = oldest.
    hour: int


_TRACK_ID_PATTERN = re.compile(r"^track-(\d+)-(\d+)$")


@dataclass(frozen=True, order=True)
class TrackId:
    """Structured track identity: origin hour and index in the sorted origin bucket.

    A track is always born while linking the pair (origin_hour, origin_hour + 1).
    """

    origin_hour: int
    origin_index: int

    @property
    def origin_pair(self) -> tuple[int, int]:
        return self.origin_hour, self.origin_hour + 1

    def __str__(self) -> str:
        return f"track-{self.origin_hour}-{self.origin_index}"

    @classmethod
    def parse(cls, text: str) -> Optional["TrackId"]:
        """Parse the rendered form used by external selection ids; None if malformed."""

        match = _TRACK_ID_PATTERN.match(text.strip())
        if not match:
            return None
        return cls(origin_hour=int(match.group(1)), origin_index=int(match.group(2)))


@dataclass
class Track:
    track_id: TrackId
    samples: list[Sample] = field(default_factory=list)


@dataclass(frozen=True)
class Link:
    """Greedy assignment of a left-hour sample to a right-hour sample (indices in sorted order)."""

    left_index: int
    right_index: int
    distance_km: float


@dataclass(frozen=True)
class Segment:
    id: str
    track_id: TrackId
    sequence_index: int
    start: tuple[float, float]  # (lon, lat)
    end: tuple[float, float]
    h0: int
    d_alt_km: float
    abs_d_alt_km: float
    length_km: float
    speed_ms: float

    @property
    def bbox(self) -> tuple[float, float, float, float]:
        """(min_lon, min_lat, max_lon, max_lat)"""

        return (
            min(self.start[0], self.end[0]),
            min(self.start[1], self.end[1]),
            max(self.start[0], self.end[0]),
            max(self.start[1], self.end[1]),
        )


@dataclass(frozen=True)
class IndexItem:
    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float
    segment_id: str
    track_id: TrackId
    pair_hour: int

    @property
    def bbox(self) -> tuple[float, float, float, float]:
        return self.min_lon, self.min_lat, self.max_lon, self.max_lat


@dataclass(frozen=True)
class NeighborResult:
    has_neighbor: bool
    from_hour: str  # "prev" | "next"
    speed_ms: float
    heading_deg: float
    distance_km: Optional[float] = None
    neighbor_hour: Optional[int] = None
