"""Greedy nearest-neighbor linking of samples across adjacent hour snapshots.

Each left-hour sample picks its closest right-hour sample independently. Two left samples may
pick the same right sample; that merge is kept as-is rather than resolved with a one-to-one
assignment.
"""

from __future__ import annotations

import logging
import math
from typing import Mapping, Optional, Sequence

from balloontrails.tracking.models import Link, Sample, Track, TrackId
from balloontrails.tracking.store import HOURS_BACK, sort_samples
from balloontrails.utils.geo import distance_km

logger = logging.getLogger(__name__)


def nearest_within(
    sample: Sample, candidates: Sequence[Sample], max_distance_km: float
) -> tuple[Optional[int], float]:
    """Index and distance of the closest candidate strictly under the cap (first minimum wins)."""

    best_index: Optional[int] = None
    best_distance = math.inf
    for index, candidate in enumerate(candidates):
        distance = distance_km(sample, candidate)
        if distance < best_distance and distance < max_distance_km:
            best_index = index
            best_distance = distance
    return best_index, best_distance


def link_pair(
    left: Sequence[Sample], right: Sequence[Sample], max_distance_km: float
) -> list[Link]:
    """Link every left sample to its nearest right sample within `max_distance_km`.

    Both sides are put in stable order first; link indices refer to that sorted order.
    Left samples without a qualifying candidate end their track at this boundary and
    produce no link.
    """

    sorted_left = sort_samples(left)
    sorted_right = sort_samples(right)
    links: list[Link] = []
    for left_index, sample in enumerate(sorted_left):
        right_index, distance = nearest_within(sample, sorted_right, max_distance_km)
        if right_index is not None:
            links.append(Link(left_index=left_index, right_index=right_index, distance_km=distance))
    return links


def build_pair_tracks(
    left: Sequence[Sample],
    right: Sequence[Sample],
    pair_hour: int,
    max_distance_km: float = 500.0,
) -> list[Track]:
    """One two-sample track per link for the pair (pair_hour, pair_hour + 1)."""

    sorted_left = sort_samples(left)
    sorted_right = sort_samples(right)
    tracks: list[Track] = []
    for link in link_pair(sorted_left, sorted_right, max_distance_km):
        track_id = TrackId(origin_hour=pair_hour, origin_index=link.left_index)
        tracks.append(
            Track(
                track_id=track_id,
                samples=[sorted_left[link.left_index], sorted_right[link.right_index]],
            )
        )
    return tracks


def build_tracks(
    buckets: Mapping[int, Sequence[Sample]],
    max_distance_km: float = 500.0,
    hours: int = HOURS_BACK,
) -> list[Track]:
    """Chain pair links across the whole window into multi-hour tracks.

    A left sample owned by a track extends that track; an unowned left sample that links starts
    a new one. A right sample chosen by several tracks is appended to each, but only the first
    of them (in processing order) owns it and continues from it.
    """

    sorted_buckets = {h: sort_samples(buckets.get(h) or ()) for h in range(hours)}
    tracks: list[Track] = []
    # (hour, index in sorted bucket) -> owning track
    owner: dict[tuple[int, int], Track] = {}

    for hour in range(hours - 1):
        left = sorted_buckets[hour]
        right = sorted_buckets[hour + 1]
        if not left or not right:
            continue

        for link in link_pair(left, right, max_distance_km):
            track = owner.get((hour, link.left_index))
            if track is None:
                track = Track(
                    track_id=TrackId(origin_hour=hour, origin_index=link.left_index),
                    samples=[left[link.left_index]],
                )
                tracks.append(track)
                owner[(hour, link.left_index)] = track

            track.samples.append(right[link.right_index])
            owner.setdefault((hour + 1, link.right_index), track)

    logger.debug("Built %s tracks from %s hour buckets.", len(tracks), hours)
    return tracks
