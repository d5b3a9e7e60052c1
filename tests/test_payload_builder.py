from datetime import datetime, timedelta, timezone

import pytest

from planner.agents.payload_builder import build_payload
from planner.errors import ValidationError
from planner.schemas import LatLng, Location, SelectionEntry, TimeWindow


def _entry(loc_id: str, name: str, candidate: bool = False) -> SelectionEntry:
    location = Location(id=loc_id, name=name, category="attraction", coordinates=LatLng(lat=33.4, lng=126.5))
    return SelectionEntry(location=location, is_candidate=candidate)


WINDOW = TimeWindow(start=datetime(2025, 5, 6, 9, 0), end=datetime(2025, 5, 7, 18, 0))


def test_payload_splits_selected_and_candidates():
    entries = [_entry("12", "성산일출봉"), _entry("x-7", "우도", candidate=True), _entry("3", "", candidate=True)]

    payload = build_payload(entries, WINDOW)

    assert [p.id for p in payload.selected] == [12]
    assert [p.id for p in payload.candidates] == ["x-7", 3]
    assert payload.candidates[1].name == "Unknown Place"
    assert payload.start_datetime == "2025-05-06T09:00:00"
    assert payload.end_datetime == "2025-05-07T18:00:00"


def test_payload_wire_shape():
    body = build_payload([_entry("1", "한라산")], WINDOW).model_dump(mode="json")

    assert set(body) == {"selected", "candidates", "start_datetime", "end_datetime"}
    assert body["selected"] == [{"id": 1, "name": "한라산"}]
    assert body["candidates"] == []


@pytest.mark.parametrize(
    "window",
    [
        None,
        TimeWindow(start=datetime(2025, 5, 6, 9, 0)),
        TimeWindow(end=datetime(2025, 5, 6, 9, 0)),
        TimeWindow(start=datetime(2025, 5, 7, 9, 0), end=datetime(2025, 5, 6, 9, 0)),
        TimeWindow(start=datetime(2025, 5, 6, 9, 0, tzinfo=timezone(timedelta(hours=9))), end=datetime(2025, 5, 7, 18, 0)),
    ],
)
def test_payload_rejects_incomplete_window(window):
    with pytest.raises(ValidationError):
        build_payload([_entry("1", "한라산")], window)


def test_payload_rejects_empty_selection():
    with pytest.raises(ValidationError):
        build_payload([], WINDOW)
