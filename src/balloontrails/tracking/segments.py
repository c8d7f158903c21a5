from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Sequence

import pandas as pd

from balloontrails.tracking.models import IndexItem, Segment, Track
from balloontrails.utils.geo import distance_km

logger = logging.getLogger(__name__)

# Hour offsets are labels, not measured durations; one step is taken to be exactly one hour.
SECONDS_PER_HOUR_STEP = 3600.0

SEGMENT_COLUMNS = [
    "id",
    "track_id",
    "sequence_index",
    "h0",
    "start_lon",
    "start_lat",
    "end_lon",
    "end_lat",
    "d_alt_km",
    "abs_d_alt_km",
    "length_km",
    "speed_ms",
]


def build_segments(
    tracks: Iterable[Track], max_speed_ms: Optional[float] = None
) -> list[Segment]:
    """Emit one directed segment per consecutive sample pair of every track.

    Sequence indices are assigned before the optional speed filter so a segment id does not
    depend on whether its siblings were dropped.
    """

    segments: list[Segment] = []
    dropped = 0
    for track in tracks:
        if len(track.samples) < 2:
            continue
        ordered = sorted(track.samples, key=lambda s: (s.hour, s.timestamp))
        for index, (prev, nxt) in enumerate(zip(ordered, ordered[1:])):
            length_km = distance_km(prev, nxt)
            elapsed_seconds = (nxt.hour - prev.hour) * SECONDS_PER_HOUR_STEP
            speed_ms = length_km * 1000.0 / elapsed_seconds if elapsed_seconds > 0 else 0.0
            if max_speed_ms is not None and speed_ms > max_speed_ms:
                dropped += 1
                continue
            d_alt_km = nxt.alt_km - prev.alt_km
            segments.append(
                Segment(
                    id=f"{track.track_id}-{index}",
                    track_id=track.track_id,
                    sequence_index=index,
                    start=(prev.lon, prev.lat),
                    end=(nxt.lon, nxt.lat),
                    h0=prev.hour,
                    d_alt_km=d_alt_km,
                    abs_d_alt_km=abs(d_alt_km),
                    length_km=length_km,
                    speed_ms=speed_ms,
                )
            )
    if dropped:
        logger.info("Dropped %s segments faster than %.1f m/s.", dropped, max_speed_ms)
    return segments


def index_items(segments: Iterable[Segment]) -> list[IndexItem]:
    items: list[IndexItem] = []
    for segment in segments:
        min_lon, min_lat, max_lon, max_lat = segment.bbox
        items.append(
            IndexItem(
                min_lon=min_lon,
                min_lat=min_lat,
                max_lon=max_lon,
                max_lat=max_lat,
                segment_id=segment.id,
                track_id=segment.track_id,
                pair_hour=segment.h0,
            )
        )
    return items


def segment_properties(segment: Segment) -> dict[str, Any]:
    return {
        "id": segment.id,
        "trackId": str(segment.track_id),
        "h0": segment.h0,
        "dAltKm": segment.d_alt_km,
        "absDAltKm": segment.abs_d_alt_km,
        "lengthKm": segment.length_km,
        "speedMs": segment.speed_ms,
    }


def segments_to_features(segments: Sequence[Segment]) -> dict[str, Any]:
    """GeoJSON-like FeatureCollection of two-point LineStrings."""

    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {
                    "type": "LineString",
                    "coordinates": [list(segment.start), list(segment.end)],
                },
                "properties": segment_properties(segment),
            }
            for segment in segments
        ],
    }


def segments_to_frame(segments: Sequence[Segment]) -> pd.DataFrame:
    if not segments:
        return pd.DataFrame(columns=SEGMENT_COLUMNS)

    rows = [
        {
            "id": s.id,
            "track_id": str(s.track_id),
            "sequence_index": s.sequence_index,
            "h0": s.h0,
            "start_lon": s.start[0],
            "start_lat": s.start[1],
            "end_lon": s.end[0],
            "end_lat": s.end[1],
            "d_alt_km": s.d_alt_km,
            "abs_d_alt_km": s.abs_d_alt_km,
            "length_km": s.length_km,
            "speed_ms": s.speed_ms,
        }
        for s in segments
    ]
    frame = pd.DataFrame(rows, columns=SEGMENT_COLUMNS)
    return frame.sort_values(["h0", "id"]).reset_index(drop=True)
