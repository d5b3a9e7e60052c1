"""Turns the scheduler's flat response into day-partitioned itinerary days."""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from planner.config import get_logger
from planner.errors import PlaceResolutionMiss, ServerResponseError
from planner.schemas import (
    BackendResponse,
    ItineraryDay,
    ItineraryStop,
    LatLng,
    Location,
    MalformedResponse,
    RawDayRouteSummary,
    RawScheduleStop,
    RouteOnlyResponse,
    RouteReference,
    ScheduleResponse,
    SelectionEntry,
    classify_response,
    normalize_category,
    to_schedule_response,
)
from planner.tools.location_catalog import LocationCatalog, best_name_match, normalize_name

logger = get_logger(__name__)

WEEKDAY_ORDER: Tuple[str, ...] = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

# No per-category durations exist upstream; every stop gets the same stay.
DEFAULT_STAY_MINUTES = 60

# Fixed infrastructure whose backend records are often incomplete. Matched by
# name alias and substituted only when it opens or closes a day.
FIXED_LOCATIONS: Tuple[Tuple[Tuple[str, ...], Location], ...] = (
    (
        ("제주국제공항", "제주공항", "jeju international airport", "jeju airport"),
        Location(
            id="jeju-airport",
            name="제주국제공항",
            category="transit-node",
            coordinates=LatLng(lat=33.510418, lng=126.4891647),
            address="제주특별자치도 제주시 공항로 2",
            phone="064-797-2114",
            description="제주도의 관문 국제공항",
            rating=4.0,
            links={"homepage": "https://www.airport.co.kr/jeju/"},
        ),
    ),
)


# ---------- time helpers ----------
def format_hhmm(token: str) -> str:
    """``"0930"`` -> ``"09:30"``; anything else falls back to ``"00:00"``."""
    token = (token or "").strip()
    if len(token) == 4 and token.isdigit():
        return f"{token[:2]}:{token[2:]}"
    return "00:00"


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def add_minutes(hhmm: str, minutes: int) -> str:
    total = (_minutes(hhmm) + minutes) % (24 * 60)
    return f"{total // 60:02d}:{total % 60:02d}"


def minutes_between(start: str, end: str) -> int:
    return _minutes(end) - _minutes(start)


def format_day_date(trip_start: Optional[date], day_number: int) -> str:
    base = trip_start or date.today()
    if isinstance(base, datetime):
        base = base.date()
    target = base + timedelta(days=day_number - 1)
    return f"{target.month:02d}/{target.day:02d}"


# ---------- day numbering and routes ----------
def _day_label(summary: Optional[RawDayRouteSummary], trip_start: Optional[date], day_number: int) -> str:
    if summary is not None and summary.calendar_date is not None:
        return f"{summary.calendar_date.month:02d}/{summary.calendar_date.day:02d}"
    return format_day_date(trip_start, day_number)


def weekday_rank(label: str) -> int:
    try:
        return WEEKDAY_ORDER.index(label)
    except ValueError:
        return len(WEEKDAY_ORDER)


def create_day_mapping(weekdays: Sequence[str]) -> Dict[str, int]:
    """Number the present weekdays 1..N in canonical Mon→Sun order.

    Unknown labels sort after Sunday, keeping their relative order.
    """
    unique = list(dict.fromkeys(weekdays))
    ordered = sorted(unique, key=weekday_rank)
    return {label: idx + 1 for idx, label in enumerate(ordered)}


def split_route(summary: Optional[RawDayRouteSummary]) -> RouteReference:
    if summary is None:
        return RouteReference()
    if not summary.interleaved_route:
        return RouteReference(node_ids=list(summary.node_ids or []))
    route = RouteReference.from_interleaved(summary.interleaved_route)
    if not route.is_consistent:
        logger.warning(
            "Route for %s has %d nodes and %d links; expected nodes = links + 1",
            summary.day,
            len(route.node_ids),
            len(route.link_ids),
        )
    return route


# ---------- place resolution ----------
def fixed_location_for(name: str) -> Optional[Location]:
    lowered = (name or "").lower()
    for aliases, location in FIXED_LOCATIONS:
        if any(alias.lower() in lowered for alias in aliases):
            return location
    return None


class PlaceResolver:
    """Resolves a scheduler stop against the selection, then the catalog."""

    def __init__(self, selection: Sequence[SelectionEntry], catalog: Optional[LocationCatalog] = None):
        self.catalog = catalog
        self._by_id: Dict[str, Location] = {}
        self._by_name: Dict[str, Location] = {}
        self._by_compact_name: Dict[str, Location] = {}
        for entry in selection:
            loc = entry.location
            self._by_id.setdefault(loc.id, loc)
            self._by_name.setdefault(loc.name, loc)
            self._by_compact_name.setdefault(normalize_name(loc.name), loc)

    def resolve(self, name: str, place_id: Optional[str] = None) -> Location:
        if place_id and place_id in self._by_id:
            return self._by_id[place_id]
        if name:
            if name in self._by_name:
                return self._by_name[name]
            compact = normalize_name(name)
            if compact in self._by_compact_name:
                return self._by_compact_name[compact]
            match, score = best_name_match(name, self._by_name.keys())
            if match is not None:
                logger.debug("Matched %r to selected %r by similarity %.2f", name, match, score)
                return self._by_name[match]
        if self.catalog is not None:
            found = self.catalog.get_by_id(place_id) if place_id else None
            if found is None and name:
                found = self.catalog.get_by_name(name)
            if found is not None:
                return found
        raise PlaceResolutionMiss(name, place_id)


def _stop_from_location(location: Location, **timing: Any) -> ItineraryStop:
    return ItineraryStop(
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
        **timing,
    )


def _placeholder_stop(name: str, raw: Optional[RawScheduleStop], **timing: Any) -> ItineraryStop:
    return ItineraryStop(
        location_id=raw.id if raw else None,
        name=name or "Unknown Place",
        category=normalize_category(raw.place_type) if raw else None,
        is_fallback=True,
        **timing,
    )


# ---------- per-day assembly ----------
# A raw stop plus the number of consecutive time blocks it covers.
GroupedStop = Tuple[RawScheduleStop, int]


def _place_key(raw: RawScheduleStop) -> str:
    return raw.id if raw.id else raw.place_name


def group_consecutive_blocks(raw_stops: Sequence[RawScheduleStop]) -> List[GroupedStop]:
    """Merge back-to-back time blocks at the same place into a single visit."""
    grouped: List[GroupedStop] = []
    for raw in raw_stops:
        if grouped and _place_key(grouped[-1][0]) == _place_key(raw):
            first, blocks = grouped[-1]
            grouped[-1] = (first, blocks + 1)
        else:
            grouped.append((raw, 1))
    return grouped


def _match_raw_stop(node_id: str, pending: List[GroupedStop]) -> Optional[GroupedStop]:
    for idx, (raw, _) in enumerate(pending):
        if raw.id is not None and raw.id == node_id:
            return pending.pop(idx)
    for idx, (raw, _) in enumerate(pending):
        if raw.place_name == node_id:
            return pending.pop(idx)
    return None


def _ordered_visits(
    raw_stops: List[RawScheduleStop], route: RouteReference, weekday: str
) -> List[Tuple[Optional[str], Optional[GroupedStop]]]:
    """Pair each visit with its node id (if routed) and grouped raw stop (if scheduled)."""
    grouped = group_consecutive_blocks(raw_stops)
    if not route.node_ids:
        return [(item[0].id, item) for item in grouped]
    pending = list(grouped)
    visits = [(node_id, _match_raw_stop(node_id, pending)) for node_id in route.node_ids]
    if pending:
        logger.warning(
            "%s: %d scheduled stop(s) not on the route: %s",
            weekday,
            len(pending),
            ", ".join(raw.place_name for raw, _ in pending),
        )
    return visits


def _build_day_stops(
    day_number: int,
    weekday: str,
    raw_stops: List[RawScheduleStop],
    route: RouteReference,
    resolver: PlaceResolver,
) -> List[ItineraryStop]:
    visits = _ordered_visits(raw_stops, route, weekday)
    stops: List[ItineraryStop] = []
    last_index = len(visits) - 1

    for idx, (node_id, scheduled) in enumerate(visits):
        raw, blocks = scheduled if scheduled is not None else (None, 1)
        name = raw.place_name if raw else (node_id or "")
        place_id = (raw.id if raw and raw.id else None) or node_id
        if raw is not None:
            arrival = format_hhmm(raw.hhmm)
        elif stops:
            arrival = stops[-1].departure_time
        else:
            arrival = "00:00"
        stay = blocks * DEFAULT_STAY_MINUTES
        timing = dict(
            id=f"{(place_id or normalize_name(name) or 'place')}_{day_number}_{idx}",
            time_block=raw.time_block if raw else "",
            arrival_time=arrival,
            departure_time=add_minutes(arrival, stay),
            stay_duration_minutes=stay,
            node_id=node_id,
        )

        fixed = fixed_location_for(name)
        if fixed is not None and idx in (0, last_index):
            stops.append(_stop_from_location(fixed, **timing))
            continue
        try:
            location = resolver.resolve(name, place_id)
        except PlaceResolutionMiss as exc:
            logger.warning("Day %d: %s; using placeholder stop", day_number, exc)
            stops.append(_placeholder_stop(name, raw, **timing))
            continue
        stops.append(_stop_from_location(location, **timing))

    for current, following in zip(stops, stops[1:]):
        gap = minutes_between(current.departure_time, following.arrival_time)
        current.travel_time_to_next = f"{max(0, gap)} min"
    return stops


def _as_schedule_response(response: BackendResponse | Any) -> ScheduleResponse:
    classified = classify_response(response)
    if isinstance(classified, MalformedResponse):
        raise ServerResponseError(f"malformed scheduler response: {classified.reason}", raw=classified.raw)
    if isinstance(classified, RouteOnlyResponse):
        return to_schedule_response(classified)
    return classified


def parse_schedule(
    response: BackendResponse | Any,
    trip_start: Optional[date],
    selection: Sequence[SelectionEntry],
    catalog: Optional[LocationCatalog] = None,
) -> List[ItineraryDay]:
    """Parse a scheduler response into itinerary days sorted by day number.

    Raises ``ServerResponseError`` when ``schedule`` or ``route_summary`` is
    missing. Stops that cannot be resolved become placeholder stops flagged
    ``is_fallback``; they never abort the parse.
    """
    parsed = _as_schedule_response(response)

    stops_by_weekday: Dict[str, List[RawScheduleStop]] = {}
    for raw in parsed.schedule:
        stops_by_weekday.setdefault(raw.weekday, []).append(raw)
    for items in stops_by_weekday.values():
        items.sort(key=lambda raw: raw.time_block)

    routes_by_weekday: Dict[str, RawDayRouteSummary] = {}
    for summary in parsed.route_summary:
        routes_by_weekday.setdefault(summary.day, summary)

    day_mapping = create_day_mapping(list(stops_by_weekday) + list(routes_by_weekday))
    logger.info("Weekday → day mapping: %s", day_mapping)

    resolver = PlaceResolver(selection, catalog)
    days: List[ItineraryDay] = []
    for weekday, day_number in day_mapping.items():
        summary = routes_by_weekday.get(weekday)
        route = split_route(summary)
        stops = _build_day_stops(day_number, weekday, stops_by_weekday.get(weekday, []), route, resolver)
        days.append(
            ItineraryDay(
                day=day_number,
                weekday=weekday,
                date=_day_label(summary, trip_start, day_number),
                stops=stops,
                total_distance_km=(summary.total_distance_m / 1000) if summary else 0.0,
                route=route,
            )
        )

    days.sort(key=lambda d: d.day)
    logger.info(
        "Parsed %d day(s), %d stop(s), %d placeholder(s)",
        len(days),
        sum(len(d.stops) for d in days),
        sum(1 for d in days for s in d.stops if s.is_fallback),
    )
    return days
