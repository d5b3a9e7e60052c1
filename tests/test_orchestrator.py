import asyncio
from datetime import datetime

import pytest

from planner.agents.fallback_itinerary import build_fallback_itinerary
from planner.errors import GenerationCancelled, GenerationInProgress, SchedulerUnavailable, ValidationError
from planner.orchestrator import ItineraryGenerator
from planner.schemas import LatLng, Location, SelectionEntry, TimeWindow
from planner.tools.location_catalog import InMemoryLocationCatalog

ONE_DAY = TimeWindow(start=datetime(2025, 5, 6, 9, 0), end=datetime(2025, 5, 6, 20, 0))
TWO_DAYS = TimeWindow(start=datetime(2025, 5, 6, 9, 0), end=datetime(2025, 5, 7, 20, 0))


def _loc(pid: str, category: str, lat: float, lng: float) -> Location:
    return Location(id=pid, name=f"{category}-{pid}", category=category, coordinates=LatLng(lat=lat, lng=lng))


def _catalog() -> InMemoryLocationCatalog:
    locations = [_loc(f"a{i}", "attraction", 33.40 + i * 0.01, 126.50) for i in range(6)]
    locations += [_loc(f"r{i}", "restaurant", 33.45, 126.50 + i * 0.01) for i in range(4)]
    locations += [_loc(f"c{i}", "cafe", 33.47, 126.55 + i * 0.01) for i in range(4)]
    locations += [_loc("h0", "lodging", 33.25, 126.41)]
    return InMemoryLocationCatalog(locations)


class FakeScheduler:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.payloads = []
        self.on_call = None

    async def generate_schedule(self, payload):
        self.payloads.append(payload)
        if self.on_call is not None:
            await self.on_call()
        if self.error is not None:
            raise self.error
        return self.response


SCHEDULE = {
    "schedule": [
        {"time_block": "Tue_0900", "place_name": "attraction-a0", "place_type": "attraction", "id": "a0"},
        {"time_block": "Tue_1100", "place_name": "restaurant-r0", "place_type": "restaurant", "id": "r0"},
        {"time_block": "Tue_1300", "place_name": "cafe-c0", "place_type": "cafe", "id": "c0"},
    ],
    "route_summary": [{"day": "Tue", "total_distance_m": 8200, "interleaved_route": []}],
}


def test_generate_runs_full_pipeline():
    scheduler = FakeScheduler(response=SCHEDULE)
    generator = ItineraryGenerator(scheduler, _catalog())
    selected = [SelectionEntry(location=_loc("a0", "attraction", 33.40, 126.50))]

    result = asyncio.run(generator.generate(selected, ONE_DAY))

    assert not result.used_fallback
    assert result.trip_days == 1
    payload = scheduler.payloads[0]
    assert [p.id for p in payload.selected] == ["a0"]
    assert len(payload.candidates) == 3 + 3 + 3 + 1
    (day,) = result.days
    assert [s.location_id for s in day.stops] == ["a0", "r0", "c0"]
    assert day.total_distance_km == 8.2
    (geometry,) = result.geometries
    assert geometry.source == "direct"
    assert len(geometry.polylines) == 1
    assert generator.day_geometry(1).source == "cache"
    with pytest.raises(KeyError):
        generator.day_geometry(2)


def test_generate_falls_back_when_scheduler_unavailable():
    scheduler = FakeScheduler(error=SchedulerUnavailable("down"))
    generator = ItineraryGenerator(scheduler, _catalog())

    result = asyncio.run(generator.generate([], TWO_DAYS))

    assert result.used_fallback
    assert [d.day for d in result.days] == [1, 2]
    assert result.days[0].stops[0].category == "lodging"
    assert len(result.geometries) == 2


def test_generate_falls_back_on_malformed_response():
    generator = ItineraryGenerator(FakeScheduler(response={"schedule": []}), _catalog())

    result = asyncio.run(generator.generate([], ONE_DAY))

    assert result.used_fallback


def test_second_trigger_is_rejected_while_generating():
    async def run():
        release = asyncio.Event()
        scheduler = FakeScheduler(response=SCHEDULE)
        scheduler.on_call = release.wait
        generator = ItineraryGenerator(scheduler, _catalog())

        first = asyncio.create_task(generator.generate([], ONE_DAY))
        await asyncio.sleep(0)
        assert generator.is_generating
        with pytest.raises(GenerationInProgress):
            await generator.generate([], ONE_DAY)
        release.set()
        result = await first
        assert not generator.is_generating
        return result

    result = asyncio.run(run())
    assert len(result.days) == 1


def test_cancel_discards_in_flight_results():
    scheduler = FakeScheduler(response=SCHEDULE)
    generator = ItineraryGenerator(scheduler, _catalog())

    async def cancel_midway():
        generator.cancel()

    scheduler.on_call = cancel_midway

    with pytest.raises(GenerationCancelled):
        asyncio.run(generator.generate([], ONE_DAY))
    assert generator.days == []


def test_generate_rejects_missing_window():
    generator = ItineraryGenerator(FakeScheduler(response=SCHEDULE), _catalog())

    with pytest.raises(ValidationError):
        asyncio.run(generator.generate([], TimeWindow(start=datetime(2025, 5, 6, 9, 0))))


def test_fallback_builder_spreads_activities_over_days():
    catalog = _catalog()
    entries = [SelectionEntry(location=catalog.get_by_id(pid)) for pid in ("h0", "a0", "a1", "a2", "a3", "r0", "r1")]

    days = build_fallback_itinerary(entries, TWO_DAYS)

    first, second = days
    assert (first.weekday, first.date, second.weekday, second.date) == ("Tue", "05/06", "Wed", "05/07")
    assert [s.category for s in first.stops].count("attraction") == 2
    assert first.stops[0].location_id == "h0"
    assert first.stops[0].arrival_time == "09:00"
    assert len(first.stops) == 4
    assert len(second.stops) == 3
    assert first.stops[-1].travel_time_to_next == "N/A"
    assert first.stops[0].travel_time_to_next.endswith(" min")
    assert first.total_distance_km > 0


def test_rejected_request_keeps_previous_itinerary():
    generator = ItineraryGenerator(FakeScheduler(response=SCHEDULE), _catalog())
    asyncio.run(generator.generate([], ONE_DAY))
    epoch = generator.cache.epoch

    with pytest.raises(ValidationError):
        asyncio.run(generator.generate([], TimeWindow(start=datetime(2025, 5, 6, 9, 0))))

    assert generator.cache.epoch == epoch
    assert [d.day for d in generator.days] == [1]
    assert generator.day_geometry(1).source == "cache"
