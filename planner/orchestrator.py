# planner/orchestrator.py
from __future__ import annotations

import asyncio
from typing import Dict, List, Mapping, Optional, Sequence

from planner.agents.fallback_itinerary import build_fallback_itinerary
from planner.agents.payload_builder import build_payload
from planner.agents.quota_engine import QUOTA_CATEGORIES, auto_complete, compute_minimums
from planner.agents.route_geometry import DayGeometryCache, resolve_day_geometry
from planner.agents.schedule_parser import parse_schedule
from planner.config import Settings, get_logger, load_settings
from planner.errors import GenerationCancelled, GenerationInProgress, ServerResponseError, ValidationError
from planner.schemas import (
    ItineraryDay,
    ItineraryResult,
    Location,
    RouteGeometry,
    SelectionEntry,
    TimeWindow,
)
from planner.tools.location_catalog import InMemoryLocationCatalog, LocationCatalog
from planner.tools.network_lookup import GeoJsonNetwork, NetworkLookup
from planner.tools.scheduler_client import SchedulerClient

logger = get_logger(__name__)


class ItineraryGenerator:
    """Runs quota → payload → scheduler → parser → geometry for one trigger at a time.

    A second trigger while one is in flight is rejected. Every generation starts
    a fresh geometry-cache epoch; ``cancel()`` starts another, which makes any
    late parse or geometry results of the in-flight generation get discarded.
    """

    def __init__(
        self,
        scheduler: SchedulerClient,
        catalog: Optional[LocationCatalog] = None,
        network: Optional[NetworkLookup] = None,
        *,
        cache: Optional[DayGeometryCache] = None,
        lodging_per_day: bool = False,
    ):
        self.scheduler = scheduler
        self.catalog = catalog
        self.network = network
        self.cache = cache or DayGeometryCache()
        self.lodging_per_day = lodging_per_day
        self._lock = asyncio.Lock()
        self._days: Dict[int, ItineraryDay] = {}

    @property
    def is_generating(self) -> bool:
        return self._lock.locked()

    @property
    def days(self) -> List[ItineraryDay]:
        return [self._days[number] for number in sorted(self._days)]

    def cancel(self) -> int:
        epoch = self.cache.clear()
        logger.info("Generation epoch invalidated (now %d)", epoch)
        return epoch

    def _default_pools(self) -> Dict[str, List[Location]]:
        if isinstance(self.catalog, InMemoryLocationCatalog):
            return self.catalog.recommendation_pools(QUOTA_CATEGORIES)
        return {}

    def _check_epoch(self, epoch: int) -> None:
        if self.cache.epoch != epoch:
            raise GenerationCancelled(f"generation epoch {epoch} was superseded by {self.cache.epoch}")

    async def generate(
        self,
        selected: Sequence[SelectionEntry],
        window: TimeWindow,
        pools: Optional[Mapping[str, Sequence[Location]]] = None,
    ) -> ItineraryResult:
        if self._lock.locked():
            raise GenerationInProgress("an itinerary is already being generated")

        async with self._lock:
            trip_days = window.trip_days
            if trip_days < 1:
                raise ValidationError("time window needs both a start and an end")
            minimums = compute_minimums(trip_days, lodging_per_day=self.lodging_per_day)
            entries = auto_complete(
                selected,
                pools if pools is not None else self._default_pools(),
                trip_days,
                minimums=minimums,
            )
            payload = build_payload(entries, window)

            # Only a request that validated replaces the previous itinerary.
            epoch = self.cache.clear()
            self._days = {}

            used_fallback = False
            try:
                response = await self.scheduler.generate_schedule(payload)
                self._check_epoch(epoch)
                days = parse_schedule(response, window.start.date(), entries, self.catalog)
            except ServerResponseError as exc:
                self._check_epoch(epoch)
                logger.warning("Scheduler response unusable (%s); building itinerary locally", exc)
                days = build_fallback_itinerary(entries, window)
                used_fallback = True

            geometries = await asyncio.gather(
                *[asyncio.to_thread(resolve_day_geometry, day, self.cache, self.network) for day in days]
            )
            self._check_epoch(epoch)

            self._days = {day.day: day for day in days}
            logger.info(
                "Itinerary ready: %d day(s), %d stop(s)%s",
                len(days),
                sum(len(day.stops) for day in days),
                " (local fallback)" if used_fallback else "",
            )
            return ItineraryResult(
                days=days,
                geometries=list(geometries),
                payload=payload,
                trip_days=trip_days,
                used_fallback=used_fallback,
            )

    def day_geometry(self, day_number: int) -> RouteGeometry:
        day = self._days.get(day_number)
        if day is None:
            raise KeyError(day_number)
        return resolve_day_geometry(day, self.cache, self.network)


def build_generator(settings: Optional[Settings] = None) -> ItineraryGenerator:
    """Wire the generator from environment settings."""
    settings = settings or load_settings()
    catalog = InMemoryLocationCatalog.from_json(settings.catalog_path) if settings.catalog_path else InMemoryLocationCatalog()
    network = GeoJsonNetwork.from_files(settings.network_links_path, settings.network_nodes_path)
    scheduler = SchedulerClient(settings.schedule_api, timeout=settings.schedule_timeout)
    return ItineraryGenerator(scheduler, catalog, network, lodging_per_day=settings.lodging_per_day)
