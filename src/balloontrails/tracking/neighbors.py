from __future__ import annotations

from typing import Mapping, Optional, Sequence

from balloontrails.tracking.linker import nearest_within
from balloontrails.tracking.models import NeighborResult, Sample
from balloontrails.tracking.store import HOURS_BACK
from balloontrails.utils.geo import bearing_deg

NO_NEIGHBOR = NeighborResult(has_neighbor=False, from_hour="prev", speed_ms=0.0, heading_deg=0.0)


def adjacent_hours(
    hour: int, cyclic: bool = True, hours: int = HOURS_BACK
) -> tuple[Optional[int], Optional[int]]:
    """(previous, next) hour offsets; None where the window ends and wrapping is off."""

    prev_hour: Optional[int] = hour - 1
    next_hour: Optional[int] = hour + 1
    if prev_hour < 0:
        prev_hour = hours - 1 if cyclic else None
    if next_hour >= hours:
        next_hour = 0 if cyclic else None
    return prev_hour, next_hour


def find_adjacent_vector(
    sample: Sample,
    buckets: Mapping[int, Sequence[Sample]],
    max_km: float = 500.0,
    cyclic: bool = True,
    hours: int = HOURS_BACK,
) -> NeighborResult:
    """Observed speed/heading of `sample` from its closest sample in an adjacent hour.

    Speed assumes one hour between the two positions (km per hour divided by 3.6). Heading
    always runs from the previous-hour position toward the next-hour position, whichever side
    supplied the neighbor. When no neighbor qualifies the zero speed/heading is a placeholder,
    not an observation.
    """

    prev_hour, next_hour = adjacent_hours(sample.hour, cyclic=cyclic, hours=hours)
    prev_samples = (buckets.get(prev_hour) or ()) if prev_hour is not None else ()
    next_samples = (buckets.get(next_hour) or ()) if next_hour is not None else ()

    prev_index, prev_distance = nearest_within(sample, prev_samples, max_km)
    next_index, next_distance = nearest_within(sample, next_samples, max_km)

    use_prev = prev_index is not None and (next_index is None or prev_distance <= next_distance)
    if use_prev:
        neighbor = prev_samples[prev_index]
        return NeighborResult(
            has_neighbor=True,
            from_hour="prev",
            speed_ms=prev_distance / 3.6,
            heading_deg=bearing_deg(neighbor, sample),
            distance_km=prev_distance,
            neighbor_hour=prev_hour,
        )
    if next_index is not None:
        neighbor = next_samples[next_index]
        return NeighborResult(
            has_neighbor=True,
            from_hour="next",
            speed_ms=next_distance / 3.6,
            heading_deg=bearing_deg(sample, neighbor),
            distance_km=next_distance,
            neighbor_hour=next_hour,
        )
    return NO_NEIGHBOR
