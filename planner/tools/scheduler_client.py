import time
from typing import Optional

import httpx

from planner.config import get_logger
from planner.errors import SchedulerUnavailable
from planner.schemas import BackendResponse, SchedulePayload, classify_response

logger = get_logger(__name__)


class SchedulerClient:
    """
    Thin async client for the backend scheduling service. The service itself is
    a black box: we POST the payload and classify whatever comes back.
    """
    ENDPOINT = "/generate_schedule"

    def __init__(self, base_url: Optional[str], *, timeout: float = 30.0):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.ENDPOINT}"

    async def generate_schedule(self, payload: SchedulePayload) -> BackendResponse:
        if not self.base_url:
            raise SchedulerUnavailable("ITINERARY_SCHEDULE_API environment variable not configured")

        body = payload.model_dump(mode="json")
        logger.info(
            "POST %s (%d selected, %d candidates)",
            self.url,
            len(payload.selected),
            len(payload.candidates),
        )
        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=body)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            logger.warning("Scheduler request failed: %s", exc, exc_info=True)
            raise SchedulerUnavailable(f"scheduler request failed: {exc}") from exc
        except ValueError as exc:
            raise SchedulerUnavailable("scheduler returned a non-JSON body") from exc

        logger.info("Scheduler answered in %.0f ms", (time.monotonic() - started) * 1000)
        classified = classify_response(data)
        logger.debug("Scheduler response classified as %s", classified.kind)
        return classified
