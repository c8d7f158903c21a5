from __future__ import annotations

from balloontrails.tracking.models import IndexItem, TrackId
from balloontrails.tracking.spatial_index import SegmentIndex


def _grid_items(n: int = 5) -> list[IndexItem]:
    items = []
    for i in range(n):
        for j in range(n):
            # Unit boxes with a one-degree gap between neighbours.
            items.append(
                IndexItem(
                    min_lon=2.0 * i,
                    min_lat=2.0 * j,
                    max_lon=2.0 * i + 1,
                    max_lat=2.0 * j + 1,
                    segment_id=f"cell-{i}-{j}",
                    track_id=TrackId(origin_hour=i, origin_index=j),
                    pair_hour=i,
                )
            )
    return items


def test_query_single_cell_and_whole_grid() -> None:
    index = SegmentIndex()
    index.insert(_grid_items())

    hits = index.query((4.0, 6.0, 5.0, 7.0))
    assert [item.segment_id for item in hits] == ["cell-2-3"]

    everything = index.query((0.0, 0.0, 9.0, 9.0))
    assert len(everything) == 25


def test_items_survive_incremental_inserts() -> None:
    items = _grid_items()
    index = SegmentIndex()
    index.insert(items[:10])
    index.insert(items[10:])
    index.insert([])

    assert len(index) == 25
    assert len(index.query((-1.0, -1.0, 10.0, 10.0))) == 25


def test_duplicate_inserts_are_kept() -> None:
    item = _grid_items(1)[0]
    index = SegmentIndex()
    index.insert([item])
    index.insert([item])

    assert len(index.query((0.0, 0.0, 1.0, 1.0))) == 2


def test_degenerate_boxes_are_indexed() -> None:
    index = SegmentIndex()
    index.insert(
        [
            IndexItem(1.0, 1.0, 1.0, 1.0, "point", TrackId(0, 0), 0),
            IndexItem(2.0, 5.0, 3.0, 5.0, "flat", TrackId(0, 1), 0),
        ]
    )

    assert [i.segment_id for i in index.query((0.5, 0.5, 1.5, 1.5))] == ["point"]
    assert [i.segment_id for i in index.query((2.5, 4.0, 2.6, 6.0))] == ["flat"]


def test_remove_pairs_and_empty_queries() -> None:
    index = SegmentIndex()
    assert index.query((0.0, 0.0, 1.0, 1.0)) == []

    index.insert(_grid_items())
    removed = index.remove_pairs([0, 1])

    assert removed == 10
    assert index.pair_hours() == {2, 3, 4}
    assert index.query((0.0, 0.0, 3.0, 9.0)) == []
