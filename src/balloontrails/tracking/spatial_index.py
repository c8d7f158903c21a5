"""Bounding-box index over segment index items, backed by shapely's STRtree."""

from __future__ import annotations

import logging
import threading
from typing import Iterable, Optional

from shapely.geometry import LineString, Point
from shapely.geometry.base import BaseGeometry
from shapely.strtree import STRtree

from balloontrails.tracking.models import IndexItem

logger = logging.getLogger(__name__)

BBox = tuple[float, float, float, float]


def envelope(bbox: BBox) -> BaseGeometry:
    """A geometry whose envelope is exactly `bbox`, valid for zero-width boxes too."""

    min_x, min_y, max_x, max_y = bbox
    if min_x == max_x and min_y == max_y:
        return Point(min_x, min_y)
    return LineString([(min_x, min_y), (max_x, max_y)])


class SegmentIndex:
    """Spatial index of IndexItems.

    STRtree is immutable, so every `insert` rebuilds the tree from all items kept so far.
    Inserting the same item twice stores it twice.
    """

    def __init__(self, node_capacity: int = 10) -> None:
        self.node_capacity = node_capacity
        self._items: list[IndexItem] = []
        self._tree: Optional[STRtree] = None
        self._lock = threading.Lock()

    def insert(self, items: Iterable[IndexItem]) -> int:
        new_items = list(items)
        if not new_items:
            return 0
        with self._lock:
            self._items.extend(new_items)
            self._tree = STRtree(
                [envelope(item.bbox) for item in self._items], node_capacity=self.node_capacity
            )
            total = len(self._items)
        logger.debug("Index rebuilt with %s items (+%s).", total, len(new_items))
        return len(new_items)

    def remove_pairs(self, pair_hours: Iterable[int]) -> int:
        """Drop every item built from the given hour pairs; returns how many were removed."""

        drop = set(pair_hours)
        with self._lock:
            kept = [item for item in self._items if item.pair_hour not in drop]
            removed = len(self._items) - len(kept)
            if removed:
                self._items = kept
                self._tree = (
                    STRtree([envelope(item.bbox) for item in kept], node_capacity=self.node_capacity)
                    if kept
                    else None
                )
        return removed

    def query(self, bbox: BBox) -> list[IndexItem]:
        """Items whose box intersects `bbox` (box test only, edges inclusive)."""

        with self._lock:
            tree = self._tree
            items = self._items
        if tree is None:
            return []
        hits = sorted(int(i) for i in tree.query(envelope(bbox)))
        return [items[i] for i in hits]

    def all(self) -> list[IndexItem]:
        with self._lock:
            return list(self._items)

    def pair_hours(self) -> set[int]:
        with self._lock:
            return {item.pair_hour for item in self._items}

    def clear(self) -> None:
        with self._lock:
            self._items = []
            self._tree = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
