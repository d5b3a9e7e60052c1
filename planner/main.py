from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from planner.agents.quota_engine import compute_minimums
from planner.config import get_logger, load_settings
from planner.errors import GenerationCancelled, GenerationInProgress, ServerResponseError, ValidationError
from planner.orchestrator import build_generator
from planner.schemas import ItineraryRequest

logger = get_logger(__name__)

settings = load_settings()
generator = build_generator(settings)

app = FastAPI(title="Itinerary Planner API")

# Local map UIs reach the API directly; ITINERARY_ALLOWED_ORIGINS narrows this.
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.post("/api/itinerary")
async def api_itinerary(request: ItineraryRequest) -> Dict[str, Any]:
    """Generate a multi-day itinerary with per-day route geometry."""
    try:
        result = await generator.generate(request.entries(), request.window(), request.pools)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except (GenerationInProgress, GenerationCancelled) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ServerResponseError as exc:
        logger.error("Scheduler response could not be used: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return result.model_dump(mode="json")


@app.get("/api/itinerary/days/{day}/route")
def api_day_route(day: int) -> Dict[str, Any]:
    try:
        geometry = generator.day_geometry(day)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"no itinerary day {day}") from exc
    return geometry.model_dump(mode="json")


@app.post("/api/itinerary/cancel")
async def api_cancel() -> Dict[str, Any]:
    epoch = generator.cancel()
    return {"cancelled": True, "epoch": epoch}


@app.get("/api/quota/minimums")
async def api_minimums(trip_days: int = Query(...)) -> Dict[str, int]:
    try:
        return compute_minimums(trip_days, lodging_per_day=settings.lodging_per_day)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
