import pytest

from planner.agents.quota_engine import auto_complete, compute_minimums, count_by_category
from planner.schemas import LatLng, Location, SelectionEntry


def _loc(loc_id: str, category: str, name: str | None = None) -> Location:
    return Location(
        id=loc_id,
        name=name or f"{category}-{loc_id}",
        category=category,
        coordinates=LatLng(lat=33.5, lng=126.5),
    )


def _pool(category: str, count: int, prefix: str) -> list:
    return [_loc(f"{prefix}{i}", category) for i in range(count)]


def test_minimums_scale_with_trip_length():
    assert compute_minimums(1) == {"attraction": 4, "restaurant": 3, "cafe": 3, "lodging": 1}
    assert compute_minimums(3) == {"attraction": 12, "restaurant": 9, "cafe": 9, "lodging": 1}


def test_minimums_lodging_per_day_flag():
    assert compute_minimums(3, lodging_per_day=True)["lodging"] == 3


def test_minimums_reject_non_positive_days():
    with pytest.raises(ValueError):
        compute_minimums(0)


def test_auto_complete_fills_two_day_trip():
    selected = [
        SelectionEntry(location=_loc("a1", "attraction")),
        SelectionEntry(location=_loc("r1", "restaurant")),
    ]
    pools = {
        "attraction": [_loc("a1", "attraction")] + _pool("attraction", 10, "pa"),
        "restaurant": _pool("restaurant", 10, "pr"),
        "cafe": _pool("cafe", 10, "pc"),
        "lodging": _pool("lodging", 3, "pl"),
    }

    result = auto_complete(selected, pools, 2)

    assert len(result) == 21
    assert result[:2] == selected
    counts = count_by_category(result)
    assert counts == {"attraction": 8, "restaurant": 6, "cafe": 6, "lodging": 1}
    ids = [entry.id for entry in result]
    assert len(ids) == len(set(ids))
    assert all(entry.is_candidate for entry in result[2:])
    # Candidates follow category processing order.
    added = [entry.category for entry in result[2:]]
    assert added == ["attraction"] * 7 + ["restaurant"] * 5 + ["cafe"] * 6 + ["lodging"]


def test_auto_complete_keeps_surplus_selection():
    selected = [SelectionEntry(location=_loc(f"a{i}", "attraction")) for i in range(6)]
    pools = {"attraction": _pool("attraction", 5, "pa")}

    result = auto_complete(selected, pools, 1, minimums={"attraction": 4})

    assert result == selected


def test_auto_complete_short_pool_contributes_what_it_has():
    pools = {
        "attraction": _pool("attraction", 2, "pa"),
        "restaurant": _pool("restaurant", 3, "pr"),
        "cafe": [],
        "lodging": _pool("lodging", 1, "pl"),
    }

    result = auto_complete([], pools, 1)

    counts = count_by_category(result)
    assert counts == {"attraction": 2, "restaurant": 3, "lodging": 1}


def test_auto_complete_two_day_trip_with_lodging_selected():
    selected = [
        SelectionEntry(location=_loc("a1", "attraction")),
        SelectionEntry(location=_loc("a2", "attraction")),
        SelectionEntry(location=_loc("r1", "restaurant")),
        SelectionEntry(location=_loc("h1", "lodging")),
    ]
    pools = {
        "attraction": _pool("attraction", 10, "pa"),
        "restaurant": _pool("restaurant", 10, "pr"),
        "cafe": _pool("cafe", 10, "pc"),
        "lodging": _pool("lodging", 3, "pl"),
    }

    result = auto_complete(selected, pools, 2)

    assert compute_minimums(2) == {"attraction": 8, "restaurant": 6, "cafe": 6, "lodging": 1}
    assert len(result) == 21
    assert result[:4] == selected
    added = count_by_category(entry for entry in result[4:])
    assert added == {"attraction": 6, "restaurant": 5, "cafe": 6}
