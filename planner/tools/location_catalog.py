import json
import math
import re
from difflib import SequenceMatcher
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

from planner.config import get_logger
from planner.schemas import Location, normalize_category

logger = get_logger(__name__)

NAME_SIMILARITY_THRESHOLD = 0.7


def normalize_name(name: str) -> str:
    return re.sub(r"\s+", "", name or "").lower()


def name_similarity(a: str, b: str) -> float:
    left, right = normalize_name(a), normalize_name(b)
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    return SequenceMatcher(None, left, right).ratio()


def best_name_match(
    target: str,
    candidates: Iterable[str],
    threshold: float = NAME_SIMILARITY_THRESHOLD,
) -> Tuple[Optional[str], float]:
    """Return the most similar candidate name, or ``None`` below ``threshold``."""
    best: Optional[str] = None
    best_score = 0.0
    for candidate in candidates:
        score = name_similarity(target, candidate)
        if score > best_score:
            best, best_score = candidate, score
    return (best if best_score >= threshold else None), best_score


class LocationCatalog(Protocol):
    def get_by_id(self, location_id: str) -> Optional[Location]: ...

    def get_by_name(self, name: str) -> Optional[Location]: ...


class InMemoryLocationCatalog:
    """Lookup-by-id/name over a fixed set of locations."""

    def __init__(self, locations: Iterable[Location] = ()):
        self._by_id: Dict[str, Location] = {}
        self._by_name: Dict[str, Location] = {}
        for location in locations:
            self.add(location)

    def add(self, location: Location) -> None:
        self._by_id[location.id] = location
        self._by_name.setdefault(location.name, location)

    def __len__(self) -> int:
        return len(self._by_id)

    def get_by_id(self, location_id: str) -> Optional[Location]:
        if location_id is None:
            return None
        return self._by_id.get(str(location_id))

    def get_by_name(self, name: str) -> Optional[Location]:
        if not name:
            return None
        exact = self._by_name.get(name)
        if exact is not None:
            return exact
        match, score = best_name_match(name, self._by_name.keys())
        if match is None:
            return None
        logger.debug("Fuzzy catalog match %r -> %r (%.2f)", name, match, score)
        return self._by_name[match]

    def recommendation_pool(self, category: str, limit: Optional[int] = None) -> List[Location]:
        """Locations of ``category`` ranked by rating weighted with review volume."""

        def score(loc: Location) -> float:
            return (loc.rating or 0.0) * math.log1p(loc.review_count or 0)

        ranked = sorted(
            (loc for loc in self._by_id.values() if loc.category == category),
            key=lambda loc: (-score(loc), loc.name),
        )
        return ranked[:limit] if limit is not None else ranked

    def recommendation_pools(
        self, categories: Sequence[str], limit: Optional[int] = None
    ) -> Dict[str, List[Location]]:
        return {category: self.recommendation_pool(category, limit) for category in categories}

    @classmethod
    def from_records(cls, records: Iterable[Mapping]) -> "InMemoryLocationCatalog":
        locations: List[Location] = []
        skipped = 0
        for record in records:
            if normalize_category(record.get("category")) is None:
                skipped += 1
                continue
            locations.append(Location.model_validate(record))
        if skipped:
            logger.warning("Skipped %d catalog records with unknown categories", skipped)
        return cls(locations)

    @classmethod
    def from_json(cls, path: str | Path) -> "InMemoryLocationCatalog":
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        records = data.get("locations", []) if isinstance(data, dict) else data
        catalog = cls.from_records(records)
        logger.info("Loaded %d locations from %s", len(catalog), path)
        return catalog
