"""Drawable route geometry per itinerary day.

Resolution walks a strict fallback chain:

1. cached polylines for the day, returned without touching the network;
2. the day's link ids walked through the network data, bridging missing links
   with a straight node-to-node segment;
3. straight lines between consecutive stops when there is no usable link data.

Tiers 2 and 3 both write their result back into the cache.
"""
from __future__ import annotations

import threading
from enum import Enum
from typing import Dict, List, Optional, Sequence

from planner.config import get_logger
from planner.errors import GeometryResolutionMiss
from planner.schemas import ItineraryDay, LatLng, Polyline, RouteGeometry
from planner.tools.network_lookup import NetworkLookup

logger = get_logger(__name__)

# Running link segments are chunked once they exceed this many points.
MAX_SEGMENT_POINTS = 100


class DayGeometryState(str, Enum):
    UNCOMPUTED = "uncomputed"
    COMPUTING = "computing"
    CACHED = "cached"


class DayGeometryCache:
    """Per-day polylines for one itinerary generation.

    ``clear()`` drops every day and starts a new epoch; writes tagged with an
    older epoch are discarded. Each day has its own lock so different days can
    be resolved in parallel while writes to the same day stay serialised.
    """

    def __init__(self) -> None:
        self._entries: Dict[int, List[Polyline]] = {}
        self._locks: Dict[int, threading.Lock] = {}
        self._computing: set[int] = set()
        self._guard = threading.Lock()
        self._epoch = 0

    @property
    def epoch(self) -> int:
        return self._epoch

    def lock_for(self, day: int) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(day, threading.Lock())

    def get(self, day: int) -> Optional[List[Polyline]]:
        with self._guard:
            cached = self._entries.get(day)
            return list(cached) if cached is not None else None

    def put(self, day: int, polylines: Sequence[Polyline], epoch: Optional[int] = None) -> bool:
        with self._guard:
            if epoch is not None and epoch != self._epoch:
                logger.info("Discarding day %d geometry from stale epoch %d (now %d)", day, epoch, self._epoch)
                return False
            self._entries[day] = list(polylines)
            return True

    def mark_computing(self, day: int, computing: bool) -> None:
        with self._guard:
            if computing:
                self._computing.add(day)
            else:
                self._computing.discard(day)

    def state(self, day: int) -> DayGeometryState:
        with self._guard:
            if day in self._computing:
                return DayGeometryState.COMPUTING
            if day in self._entries:
                return DayGeometryState.CACHED
            return DayGeometryState.UNCOMPUTED

    def clear(self) -> int:
        with self._guard:
            self._entries.clear()
            self._computing.clear()
            self._epoch += 1
            logger.debug("Geometry cache cleared; epoch is now %d", self._epoch)
            return self._epoch

    def __contains__(self, day: int) -> bool:
        with self._guard:
            return day in self._entries


def _link_points(network: NetworkLookup, link_id: str) -> List[LatLng]:
    points = network.get_link_by_id(link_id)
    if not points:
        raise GeometryResolutionMiss("link", link_id)
    return points


def _node_point(network: NetworkLookup, node_id: Optional[str]) -> LatLng:
    point = network.get_node_by_id(node_id) if node_id is not None else None
    if point is None or not point.is_valid:
        raise GeometryResolutionMiss("node", str(node_id))
    return point


def walk_links(day: ItineraryDay, network: NetworkLookup) -> List[Polyline]:
    """Stitch link geometry into polylines, bridging links missing from the network."""
    link_ids = day.route.link_ids
    node_ids = day.route.node_ids
    polylines: List[Polyline] = []
    segment: List[LatLng] = []
    missing = 0

    def flush() -> None:
        if len(segment) > 1:
            polylines.append(Polyline(points=list(segment), kind="link"))
        segment.clear()

    for idx, link_id in enumerate(link_ids):
        try:
            points = _link_points(network, link_id)
        except GeometryResolutionMiss as miss:
            missing += 1
            flush()
            # The link sits between node idx and node idx + 1 of the interleaved route.
            before = node_ids[idx] if idx < len(node_ids) else None
            after = node_ids[idx + 1] if idx + 1 < len(node_ids) else None
            try:
                bridge = [_node_point(network, before), _node_point(network, after)]
            except GeometryResolutionMiss as node_miss:
                logger.warning("Day %d: %s and %s; skipping link", day.day, miss, node_miss)
                continue
            logger.info("Day %d: %s; bridged nodes %s → %s", day.day, miss, before, after)
            polylines.append(Polyline(points=bridge, kind="bridge"))
            continue

        if segment and segment[-1] == points[0]:
            segment.extend(points[1:])
        else:
            segment.extend(points)
        if len(segment) > MAX_SEGMENT_POINTS:
            flush()
    flush()

    if missing:
        logger.info("Day %d: %d of %d links missing from network data", day.day, missing, len(link_ids))
    return polylines


def connect_stops(day: ItineraryDay) -> List[Polyline]:
    """Join runs of consecutive stops that have valid coordinates."""
    polylines: List[Polyline] = []
    run: List[LatLng] = []
    for stop in day.stops:
        if stop.coordinates.is_valid:
            run.append(stop.coordinates)
            continue
        logger.warning("Day %d: stop %r has no valid coordinates", day.day, stop.name)
        if len(run) > 1:
            polylines.append(Polyline(points=run, kind="direct"))
        run = []
    if len(run) > 1:
        polylines.append(Polyline(points=run, kind="direct"))
    return polylines


def bounds_for(day: ItineraryDay, polylines: Sequence[Polyline]) -> List[LatLng]:
    points = [point for line in polylines for point in line.points]
    if points:
        return points
    return [stop.coordinates for stop in day.stops if stop.coordinates.is_valid]


def resolve_day_geometry(
    day: ItineraryDay,
    cache: DayGeometryCache,
    network: Optional[NetworkLookup],
) -> RouteGeometry:
    """Return the polylines to draw for ``day`` plus the bounds to frame them."""
    with cache.lock_for(day.day):
        cached = cache.get(day.day)
        if cached is not None:
            logger.debug("Day %d: geometry cache hit (%d polylines)", day.day, len(cached))
            return RouteGeometry(day=day.day, polylines=cached, bounds=bounds_for(day, cached), source="cache")

        epoch = cache.epoch
        cache.mark_computing(day.day, True)
        try:
            if day.route.link_ids and network is not None and network.is_loaded():
                polylines = walk_links(day, network)
                source = "links"
            else:
                polylines = connect_stops(day)
                source = "direct"
            cache.put(day.day, polylines, epoch)
        finally:
            cache.mark_computing(day.day, False)

    logger.info("Day %d: resolved %d polyline(s) from %s", day.day, len(polylines), source)
    return RouteGeometry(day=day.day, polylines=polylines, bounds=bounds_for(day, polylines), source=source)
