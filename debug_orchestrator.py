# debug_orchestrator.py
import asyncio
import json
from datetime import datetime

from planner.orchestrator import build_generator
from planner.schemas import LatLng, Location, SelectionEntry, TimeWindow


async def main():
    selected = [
        SelectionEntry(
            location=Location(
                id="1",
                name="성산일출봉",
                category="attraction",
                coordinates=LatLng(lat=33.458, lng=126.942),
            )
        ),
        SelectionEntry(
            location=Location(
                id="2",
                name="우진해장국",
                category="restaurant",
                coordinates=LatLng(lat=33.511, lng=126.520),
            )
        ),
        SelectionEntry(
            location=Location(
                id="3",
                name="카페 델문도",
                category="cafe",
                coordinates=LatLng(lat=33.543, lng=126.669),
            ),
            is_candidate=True,
        ),
    ]
    window = TimeWindow(start=datetime(2025, 5, 6, 9, 0), end=datetime(2025, 5, 8, 18, 0))

    # Uses ITINERARY_* settings from the environment; without a scheduler URL
    # this exercises the local fallback path.
    generator = build_generator()
    result = await generator.generate(selected, window)
    print("➡️ Generator returned:\n")
    print(json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    asyncio.run(main())
