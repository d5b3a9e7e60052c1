"""Error taxonomy for the itinerary pipeline.

Only ``ValidationError`` and ``ServerResponseError`` are reported to callers as
hard failures. The resolution misses and ``QuotaShortfall`` are raised and
handled inside their stage; they surface through logs only.
"""
from __future__ import annotations

from typing import Any, List


class PlannerError(Exception):
    """Base class for every error raised by the planner package."""


class ValidationError(PlannerError):
    """The request cannot be turned into a scheduler payload."""


class ServerResponseError(PlannerError):
    """The backend scheduler returned a response we cannot parse."""

    def __init__(self, message: str, raw: Any = None):
        super().__init__(message)
        self.raw = raw


class SchedulerUnavailable(ServerResponseError):
    """The backend could not be reached or answered with an error status."""


class PlaceResolutionMiss(PlannerError):
    def __init__(self, name: str, place_id: str | None = None):
        super().__init__(f"no location found for {name!r} (id={place_id or 'N/A'})")
        self.name = name
        self.place_id = place_id


class GeometryResolutionMiss(PlannerError):
    def __init__(self, kind: str, element_id: str):
        super().__init__(f"{kind} {element_id!r} missing from network data")
        self.kind = kind
        self.element_id = element_id


class QuotaShortfall(PlannerError):
    def __init__(self, category: str, needed: int, available: List[Any]):
        super().__init__(
            f"{category}: needed {needed} more, pool only had {len(available)} usable"
        )
        self.category = category
        self.needed = needed
        self.available = available


class GenerationInProgress(PlannerError):
    """A second generation was triggered while one is still in flight."""


class GenerationCancelled(PlannerError):
    """The generation epoch was invalidated before its results were applied."""
