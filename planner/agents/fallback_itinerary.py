"""Local itinerary builder used when the scheduler response is unusable."""
from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from planner.agents.schedule_parser import DEFAULT_STAY_MINUTES, WEEKDAY_ORDER, add_minutes
from planner.config import get_logger
from planner.errors import ValidationError
from planner.geo_utils import distance_km, estimate_travel_minutes
from planner.schemas import ItineraryDay, ItineraryStop, Location, SelectionEntry, TimeWindow

logger = get_logger(__name__)

ACTIVITY_CATEGORIES = ("attraction", "restaurant", "cafe")


def _nearest(origin: Optional[Location], pool: List[Location]) -> Location:
    if origin is None or not origin.coordinates.is_valid:
        return pool[0]
    return min(pool, key=lambda loc: (not loc.coordinates.is_valid, distance_km(origin.coordinates, loc.coordinates)))


def _stop(location: Location, day_number: int, index: int, arrival: str) -> ItineraryStop:
    return ItineraryStop(
        id=f"{location.id}_{day_number}_{index}",
        location_id=location.id,
        name=location.name,
        category=location.category,
        coordinates=location.coordinates,
        address=location.address,
        phone=location.phone,
        description=location.description,
        rating=location.rating,
        review_count=location.review_count,
        links=dict(location.links),
        arrival_time=arrival,
        departure_time=add_minutes(arrival, DEFAULT_STAY_MINUTES),
        stay_duration_minutes=DEFAULT_STAY_MINUTES,
        node_id=location.id,
    )


def build_fallback_itinerary(entries: Sequence[SelectionEntry], window: TimeWindow) -> List[ItineraryDay]:
    """Spread the selection across the trip's days without the scheduler.

    Lodging opens day one; activities are split evenly per category and each
    day is ordered nearest-neighbour from the previous stop.
    """
    if window.start is None or window.end is None:
        raise ValidationError("time window needs both a start and an end")
    num_days = window.trip_days
    pools: Dict[str, List[Location]] = {category: [] for category in ACTIVITY_CATEGORIES}
    lodgings: List[Location] = []
    for entry in entries:
        if entry.category == "lodging":
            lodgings.append(entry.location)
        elif entry.category in pools:
            pools[entry.category].append(entry.location)

    quotas = {category: math.ceil(len(pool) / num_days) for category, pool in pools.items()}
    day_start = window.start.strftime("%H:%M")
    days: List[ItineraryDay] = []

    for day_number in range(1, num_days + 1):
        current_date: datetime = window.start + timedelta(days=day_number - 1)
        stops: List[ItineraryStop] = []
        previous: Optional[Location] = None
        clock = day_start
        total_km = 0.0

        if day_number == 1 and lodgings:
            previous = lodgings[0]
            stops.append(_stop(previous, day_number, 0, clock))
            clock = stops[-1].departure_time

        todays: List[Location] = []
        for category in ACTIVITY_CATEGORIES:
            take = min(quotas[category], len(pools[category]))
            todays.extend(pools[category][:take])
            del pools[category][:take]

        while todays:
            nxt = _nearest(previous, todays)
            todays.remove(nxt)
            if previous is not None:
                km = distance_km(previous.coordinates, nxt.coordinates)
                minutes = estimate_travel_minutes(km)
                total_km += km
                stops[-1].travel_time_to_next = f"{minutes} min"
                clock = add_minutes(clock, minutes)
            stops.append(_stop(nxt, day_number, len(stops), clock))
            clock = stops[-1].departure_time
            previous = nxt

        days.append(
            ItineraryDay(
                day=day_number,
                weekday=WEEKDAY_ORDER[current_date.weekday()],
                date=f"{current_date.month:02d}/{current_date.day:02d}",
                stops=stops,
                total_distance_km=round(total_km, 1),
            )
        )
        logger.info("Fallback day %d: %d stop(s), %.1f km", day_number, len(stops), total_km)

    return days
