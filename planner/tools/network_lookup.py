"""GeoJSON-backed road network lookups (precomputed geometry only)."""
from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol

from planner.config import get_logger
from planner.schemas import LatLng

logger = get_logger(__name__)


class NetworkLookup(Protocol):
    def get_node_by_id(self, node_id: str) -> Optional[LatLng]: ...

    def get_link_by_id(self, link_id: str) -> Optional[List[LatLng]]: ...

    def is_loaded(self) -> bool: ...


def _point(pair: Any) -> Optional[LatLng]:
    # GeoJSON positions are [lng, lat].
    if not isinstance(pair, (list, tuple)) or len(pair) < 2:
        return None
    lng, lat = pair[0], pair[1]
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return None
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return None
    return LatLng(lat=float(lat), lng=float(lng))


def _feature_id(feature: Mapping[str, Any], key: str) -> Optional[str]:
    props = feature.get("properties") or {}
    value = props.get(key)
    if value is None:
        value = feature.get("id")
    return None if value is None else str(value)


class GeoJsonNetwork:
    def __init__(
        self,
        links: Optional[Mapping[str, Any]] = None,
        nodes: Optional[Mapping[str, Any]] = None,
    ):
        self._links: Dict[str, List[Any]] = {}
        self._nodes: Dict[str, Any] = {}
        if links:
            self.load_links(links)
        if nodes:
            self.load_nodes(nodes)

    def load_links(self, collection: Mapping[str, Any]) -> int:
        for feature in collection.get("features") or []:
            geometry = feature.get("geometry") or {}
            if geometry.get("type") != "LineString":
                continue
            link_id = _feature_id(feature, "LINK_ID")
            if link_id is not None:
                self._links[link_id] = geometry.get("coordinates") or []
        logger.info("Network links loaded: %d", len(self._links))
        return len(self._links)

    def load_nodes(self, collection: Mapping[str, Any]) -> int:
        for feature in collection.get("features") or []:
            geometry = feature.get("geometry") or {}
            if geometry.get("type") != "Point":
                continue
            node_id = _feature_id(feature, "NODE_ID")
            if node_id is not None:
                self._nodes[node_id] = geometry.get("coordinates")
        logger.info("Network nodes loaded: %d", len(self._nodes))
        return len(self._nodes)

    def is_loaded(self) -> bool:
        return bool(self._links)

    def get_node_by_id(self, node_id: str) -> Optional[LatLng]:
        raw = self._nodes.get(str(node_id))
        return _point(raw) if raw is not None else None

    def get_link_by_id(self, link_id: str) -> Optional[List[LatLng]]:
        raw = self._links.get(str(link_id))
        if not raw or len(raw) < 2:
            return None
        points: List[LatLng] = []
        for pair in raw:
            point = _point(pair)
            if point is None:
                logger.warning("Malformed coordinate pair in link %s: %r", link_id, pair)
                continue
            points.append(point)
        return points or None

    @classmethod
    def from_files(
        cls,
        links_path: str | Path | None,
        nodes_path: str | Path | None = None,
    ) -> "GeoJsonNetwork":
        network = cls()
        for path, loader in ((links_path, network.load_links), (nodes_path, network.load_nodes)):
            if not path:
                continue
            try:
                with open(path, encoding="utf-8") as fh:
                    loader(json.load(fh))
            except (OSError, ValueError):
                logger.warning("Failed to load network data from %s", path, exc_info=True)
        return network
