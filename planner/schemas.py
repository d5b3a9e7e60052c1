import math
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

Category = Literal["lodging", "attraction", "restaurant", "cafe", "transit-node"]

CATEGORIES: Tuple[str, ...] = ("lodging", "attraction", "restaurant", "cafe", "transit-node")

# Labels used by the catalog and the scheduler, mapped onto our category set.
_CATEGORY_ALIASES: Dict[str, str] = {
    "accommodation": "lodging",
    "hotel": "lodging",
    "숙소": "lodging",
    "landmark": "attraction",
    "touristspot": "attraction",
    "tourist_spot": "attraction",
    "관광지": "attraction",
    "음식점": "restaurant",
    "food": "restaurant",
    "카페": "cafe",
    "coffee": "cafe",
    "transport": "transit-node",
    "transit": "transit-node",
    "transit_node": "transit-node",
    "교통": "transit-node",
}


def normalize_category(value: Any) -> Optional[str]:
    """Map a raw category label onto ``CATEGORIES``; ``None`` if unknown."""
    if value is None:
        return None
    label = str(value).strip()
    if label in CATEGORIES:
        return label
    lowered = label.lower()
    if lowered in CATEGORIES:
        return lowered
    return _CATEGORY_ALIASES.get(lowered) or _CATEGORY_ALIASES.get(label)


def _coerce_id(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return str(value)


# ------- Locations and selection -------
class LatLng(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float

    @field_serializer("lat", "lng", when_used="json")
    def _finite_or_null(self, value: float) -> Optional[float]:
        return value if math.isfinite(value) else None

    @property
    def is_valid(self) -> bool:
        return math.isfinite(self.lat) and math.isfinite(self.lng)


# Placeholder coordinates for stops we could not resolve.
SENTINEL_COORDINATES = LatLng(lat=float("nan"), lng=float("nan"))


class Location(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str
    category: Category
    coordinates: LatLng
    address: str = ""
    phone: str = ""
    description: str = ""
    rating: Optional[float] = None
    review_count: Optional[int] = None
    links: Dict[str, str] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> Any:
        return _coerce_id(value)

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: Any) -> Any:
        return normalize_category(value) or value


class SelectionEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    location: Location
    is_candidate: bool = False

    @property
    def id(self) -> str:
        return self.location.id

    @property
    def category(self) -> str:
        return self.location.category


class TimeWindow(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @property
    def trip_days(self) -> int:
        if self.start is None or self.end is None:
            return 0
        return max(1, (self.end.date() - self.start.date()).days + 1)


# ------- Scheduler request -------
class SchedulePlace(BaseModel):
    id: Union[int, str]
    name: str


class SchedulePayload(BaseModel):
    selected: List[SchedulePlace] = Field(default_factory=list)
    candidates: List[SchedulePlace] = Field(default_factory=list)
    start_datetime: str
    end_datetime: str


# ------- Scheduler response -------
class RawScheduleStop(BaseModel):
    model_config = ConfigDict(extra="ignore")

    time_block: str
    place_name: str
    place_type: str = ""
    id: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> Any:
        return _coerce_id(value)

    @property
    def weekday(self) -> str:
        return self.time_block.split("_")[0]

    @property
    def hhmm(self) -> str:
        parts = self.time_block.split("_")
        return parts[1] if len(parts) > 1 else parts[0]


class RawDayRouteSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    day: str
    total_distance_m: float = 0.0
    interleaved_route: List[str] = Field(default_factory=list)
    status: Optional[str] = None
    places_routed: Optional[List[str]] = None
    places_scheduled: Optional[List[str]] = None
    # Set by route-only responses, which carry node ids without links.
    node_ids: Optional[List[str]] = None
    # Real calendar date of the day, when the backend reports one.
    calendar_date: Optional[date] = None

    @field_validator("interleaved_route", "node_ids", mode="before")
    @classmethod
    def _ids_as_str(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(item) for item in value]
        return value


class ScheduleResponse(BaseModel):
    kind: Literal["schedule"] = "schedule"
    schedule: List[RawScheduleStop]
    route_summary: List[RawDayRouteSummary]
    total_reward: Optional[float] = None


class PlannerDayRoute(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: str
    node_ids: List[str] = Field(..., alias="nodeIds")

    @field_validator("node_ids", mode="before")
    @classmethod
    def _ids_as_str(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(item) for item in value]
        return value


class RouteOnlyResponse(BaseModel):
    kind: Literal["route_only"] = "route_only"
    routes: List[PlannerDayRoute] = Field(default_factory=list)


class MalformedResponse(BaseModel):
    kind: Literal["malformed"] = "malformed"
    reason: str
    raw: Any = None


BackendResponse = Union[ScheduleResponse, RouteOnlyResponse, MalformedResponse]


# ------- Itinerary -------
class RouteReference(BaseModel):
    node_ids: List[str] = Field(default_factory=list)
    link_ids: List[str] = Field(default_factory=list)
    interleaved_route: List[str] = Field(default_factory=list)

    @classmethod
    def from_interleaved(cls, route: List[Any]) -> "RouteReference":
        """Split ``[N1, L1, N2, ...]`` into node ids (even) and link ids (odd)."""
        ids = [str(item) for item in route]
        return cls(node_ids=ids[0::2], link_ids=ids[1::2], interleaved_route=ids)

    def interleave(self) -> List[str]:
        merged: List[str] = []
        for idx, node_id in enumerate(self.node_ids):
            merged.append(node_id)
            if idx < len(self.link_ids):
                merged.append(self.link_ids[idx])
        return merged

    @property
    def is_consistent(self) -> bool:
        if not self.interleaved_route:
            return not self.node_ids and not self.link_ids
        return len(self.node_ids) == len(self.link_ids) + 1 and self.interleave() == self.interleaved_route


class ItineraryStop(BaseModel):
    id: str
    location_id: Optional[str] = None
    name: str
    category: Optional[Category] = None
    coordinates: LatLng = SENTINEL_COORDINATES
    address: str = ""
    phone: str = ""
    description: str = ""
    rating: Optional[float] = None
    review_count: Optional[int] = None
    links: Dict[str, str] = Field(default_factory=dict)
    time_block: str = ""
    arrival_time: str = "00:00"
    departure_time: str = "00:00"
    stay_duration_minutes: int = 60
    travel_time_to_next: str = "N/A"
    node_id: Optional[str] = None
    is_fallback: bool = False


class ItineraryDay(BaseModel):
    day: int
    weekday: str
    date: str
    stops: List[ItineraryStop] = Field(default_factory=list)
    total_distance_km: float = 0.0
    route: RouteReference = Field(default_factory=RouteReference)


# ------- Geometry -------
class Polyline(BaseModel):
    points: List[LatLng]
    kind: Literal["link", "bridge", "direct"] = "link"

    @property
    def is_fallback(self) -> bool:
        return self.kind != "link"


class RouteGeometry(BaseModel):
    day: int
    polylines: List[Polyline] = Field(default_factory=list)
    bounds: List[LatLng] = Field(default_factory=list)
    source: Literal["cache", "links", "direct"] = "direct"


class ItineraryResult(BaseModel):
    days: List[ItineraryDay] = Field(default_factory=list)
    geometries: List[RouteGeometry] = Field(default_factory=list)
    payload: Optional[SchedulePayload] = None
    trip_days: int = 0
    used_fallback: bool = False


# ------- Response classification -------
_WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def to_schedule_response(response: RouteOnlyResponse) -> ScheduleResponse:
    """Express a route-only planner response in the schedule shape."""
    summaries: List[RawDayRouteSummary] = []
    for route in response.routes:
        try:
            calendar_date: Optional[date] = datetime.fromisoformat(route.date).date()
        except ValueError:
            calendar_date = None
        weekday = _WEEKDAY_LABELS[calendar_date.weekday()] if calendar_date else route.date
        summaries.append(
            RawDayRouteSummary(day=weekday, node_ids=route.node_ids, calendar_date=calendar_date)
        )
    return ScheduleResponse(schedule=[], route_summary=summaries)


def classify_response(raw: Any) -> BackendResponse:
    """Detect which backend response variant ``raw`` is, exactly once."""
    if isinstance(raw, (ScheduleResponse, RouteOnlyResponse, MalformedResponse)):
        return raw
    if isinstance(raw, dict):
        missing = [key for key in ("schedule", "route_summary") if not isinstance(raw.get(key), list)]
        if missing:
            return MalformedResponse(reason=f"missing {', '.join(missing)}", raw=raw)
        try:
            return ScheduleResponse.model_validate({**raw, "kind": "schedule"})
        except PydanticValidationError as exc:
            return MalformedResponse(reason=f"invalid schedule response: {exc.error_count()} error(s)", raw=raw)
    if isinstance(raw, list) and all(isinstance(item, dict) and "date" in item and "nodeIds" in item for item in raw):
        try:
            return RouteOnlyResponse(routes=[PlannerDayRoute.model_validate(item) for item in raw])
        except PydanticValidationError as exc:
            return MalformedResponse(reason=f"invalid route response: {exc.error_count()} error(s)", raw=raw)
    return MalformedResponse(reason=f"unrecognised response of type {type(raw).__name__}", raw=raw)


# ------- HTTP request -------
class SelectedPlace(Location):
    is_candidate: bool = False


class ItineraryRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    selected: List[SelectedPlace] = Field(default_factory=list)
    start_datetime: Optional[datetime] = None
    end_datetime: Optional[datetime] = None
    pools: Optional[Dict[str, List[Location]]] = None

    def entries(self) -> List[SelectionEntry]:
        return [
            SelectionEntry(
                location=Location.model_validate(place.model_dump(exclude={"is_candidate"})),
                is_candidate=place.is_candidate,
            )
            for place in self.selected
        ]

    def window(self) -> TimeWindow:
        return TimeWindow(start=self.start_datetime, end=self.end_datetime)
