from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

from balloontrails.tracking.linker import build_pair_tracks, build_tracks, link_pair
from balloontrails.tracking.models import Sample, TrackId
from balloontrails.tracking.segments import build_segments

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def _sample(lat: float, lon: float, hour: int, alt_km: float = 10.0) -> Sample:
    return Sample(lat=lat, lon=lon, alt_km=alt_km, timestamp=NOW - timedelta(hours=hour), hour=hour)


def test_links_to_nearest_candidate() -> None:
    left = [_sample(0.0, 0.0, 0)]
    right = [_sample(10.0, 10.0, 1), _sample(0.0, 0.001, 1)]

    links = link_pair(left, right, max_distance_km=500)

    assert len(links) == 1
    # Right side is sorted by (timestamp, lat, lon): (0, 0.001) comes first.
    assert links[0].right_index == 0
    assert links[0].distance_km < 1.0


def test_candidates_at_or_beyond_cap_are_ignored() -> None:
    left = [_sample(0.0, 0.0, 0)]
    right = [_sample(0.0, 10.0, 1)]  # ~1112 km

    assert link_pair(left, right, max_distance_km=500) == []


def test_greedy_matching_allows_shared_right_sample() -> None:
    left = [_sample(0.0, 0.0, 0), _sample(0.0, 0.2, 0)]
    right = [_sample(0.0, 0.1, 1), _sample(5.0, 5.0, 1)]

    links = link_pair(left, right, max_distance_km=500)

    assert [link.right_index for link in links] == [0, 0]


def test_first_seen_minimum_wins_on_ties() -> None:
    left = [_sample(0.0, 0.0, 0)]
    right = [_sample(0.0, 1.0, 1), _sample(0.0, -1.0, 1)]

    links = link_pair(left, right, max_distance_km=500)

    # Sorted by lon within equal (timestamp, lat): (0, -1) first.
    assert links[0].right_index == 0


def test_pair_tracks_are_deterministic_for_shuffled_input() -> None:
    rng = random.Random(7)
    left = [_sample(rng.uniform(-10, 10), rng.uniform(-10, 10), 3) for _ in range(40)]
    right = [_sample(s.lat + rng.uniform(-0.5, 0.5), s.lon + rng.uniform(-0.5, 0.5), 4) for s in left]

    def run() -> tuple[set[str], int]:
        shuffled_left = list(left)
        shuffled_right = list(right)
        rng.shuffle(shuffled_left)
        rng.shuffle(shuffled_right)
        tracks = build_pair_tracks(shuffled_left, shuffled_right, pair_hour=3, max_distance_km=500)
        return {str(t.track_id) for t in tracks}, len(build_segments(tracks))

    first = run()
    second = run()
    assert first == second
    assert first[1] == 40


def test_build_tracks_chains_consecutive_hours() -> None:
    buckets = {
        0: [_sample(0.0, 0.0, 0)],
        1: [_sample(0.0, 0.5, 1)],
        2: [_sample(0.0, 1.0, 2)],
    }

    tracks = build_tracks(buckets, max_distance_km=500)

    assert len(tracks) == 1
    assert tracks[0].track_id == TrackId(origin_hour=0, origin_index=0)
    assert [s.hour for s in tracks[0].samples] == [0, 1, 2]


def test_build_tracks_merge_keeps_first_owner() -> None:
    buckets = {
        0: [_sample(0.0, 0.0, 0), _sample(0.0, 0.2, 0)],
        1: [_sample(0.0, 0.1, 1)],
        2: [_sample(0.0, 0.3, 2)],
    }

    tracks = build_tracks(buckets, max_distance_km=500)

    assert [len(t.samples) for t in tracks] == [3, 2]
    for track in tracks:
        hours = [s.hour for s in track.samples]
        assert hours == sorted(set(hours))


def test_build_tracks_skips_missing_buckets() -> None:
    buckets = {0: [_sample(0.0, 0.0, 0)], 2: [_sample(0.0, 0.1, 2)], 3: [_sample(0.0, 0.2, 3)]}

    tracks = build_tracks(buckets, max_distance_km=500)

    assert len(tracks) == 1
    assert tracks[0].track_id.origin_pair == (2, 3)


def test_track_id_round_trips_through_text() -> None:
    track_id = TrackId(origin_hour=4, origin_index=17)
    assert str(track_id) == "track-4-17"
    assert TrackId.parse("track-4-17") == track_id
    assert TrackId.parse("balloon-4") is None
