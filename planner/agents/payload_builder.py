"""Builds the request body sent to the backend scheduler."""
from __future__ import annotations

from typing import Sequence, Union

from planner.config import get_logger
from planner.errors import ValidationError
from planner.schemas import SchedulePayload, SchedulePlace, SelectionEntry, TimeWindow

logger = get_logger(__name__)


def _wire_id(value: str) -> Union[int, str]:
    # The scheduler keys places by numeric database id where one exists.
    try:
        return int(value)
    except (TypeError, ValueError):
        return value


def _to_schedule_place(entry: SelectionEntry) -> SchedulePlace:
    return SchedulePlace(id=_wire_id(entry.id), name=entry.location.name or "Unknown Place")


def build_payload(entries: Sequence[SelectionEntry], window: TimeWindow | None) -> SchedulePayload:
    """Split entries into selected/candidate lists and attach the time window."""
    if window is None or window.start is None or window.end is None:
        raise ValidationError("time window needs both a start and an end")
    try:
        reversed_window = window.end < window.start
    except TypeError as exc:
        raise ValidationError("time window mixes timezone-aware and naive instants") from exc
    if reversed_window:
        raise ValidationError("time window ends before it starts")
    if not entries:
        raise ValidationError("at least one location must be selected")

    selected = [_to_schedule_place(e) for e in entries if not e.is_candidate]
    candidates = [_to_schedule_place(e) for e in entries if e.is_candidate]
    payload = SchedulePayload(
        selected=selected,
        candidates=candidates,
        start_datetime=window.start.isoformat(),
        end_datetime=window.end.isoformat(),
    )
    logger.info(
        "Payload ready: %d selected, %d candidates, %s → %s",
        len(selected),
        len(candidates),
        payload.start_datetime,
        payload.end_datetime,
    )
    return payload
