"""
Time-slot scheduling rules for tasks.

Every operation takes the current slot list and returns a new list; the input
is never mutated, so a rejected operation leaves the caller's draft exactly as
it was. Rules enforced here:

- at most one slot per calendar date
- end time strictly after start time, same day (no overnight spans)
- changing the start time clears the end time
- approved slots are locked for non-admins (no time edits, no removal)
- only admins may change the approval flag
"""

import datetime as dt
import logging
from collections.abc import Iterator
from typing import Optional, Union

from ...errors import (
    DuplicateDateError,
    InvalidRange,
    Locked,
    MissingSlot,
    MissingStartTime,
    PermissionDenied,
    ValidationError,
)
from ...shared.timeofday import MINUTES_PER_DAY, TimeOfDay, format_duration, format_slot_date
from .schemas import SlotSummary, TimeSlot

logger = logging.getLogger(__name__)

SLOT_STEP_MINUTES = 30

TimeInput = Union[str, TimeOfDay]


def _coerce_time(value: TimeInput, index: Optional[int] = None) -> TimeOfDay:
    if isinstance(value, TimeOfDay):
        return value
    try:
        return TimeOfDay.parse(value)
    except ValueError as e:
        raise ValidationError(str(e), slot_index=index) from e


def _slot_at(slots: list[TimeSlot], index: int) -> TimeSlot:
    if not 0 <= index < len(slots):
        raise ValidationError("Time slot not found", slot_index=index)
    return slots[index]


def _ensure_unlocked(slot: TimeSlot, index: int, is_admin: bool) -> None:
    if slot.approved and not is_admin:
        raise Locked(slot_index=index)


def _replace(slots: list[TimeSlot], index: int, slot: TimeSlot) -> list[TimeSlot]:
    updated = list(slots)
    updated[index] = slot
    return updated


def _find_duplicate_date(slots: list[TimeSlot]) -> Optional[int]:
    """Index of the first slot whose date already appeared earlier, if any."""
    seen: set[dt.date] = set()
    for index, slot in enumerate(slots):
        if slot.date in seen:
            return index
        seen.add(slot.date)
    return None


def add_slot(slots: list[TimeSlot], today: dt.date) -> list[TimeSlot]:
    """Append an empty slot for `today` (the caller's local calendar date)."""
    for index, slot in enumerate(slots):
        if slot.date == today:
            raise DuplicateDateError(slot_index=index)
    return [*slots, TimeSlot(date=today, startTime="", endTime="", approved=False)]


def remove_slot(slots: list[TimeSlot], index: int, *, is_admin: bool = False) -> list[TimeSlot]:
    slot = _slot_at(slots, index)
    _ensure_unlocked(slot, index, is_admin)
    return [s for i, s in enumerate(slots) if i != index]


def set_start_time(
    slots: list[TimeSlot], index: int, time: TimeInput, *, is_admin: bool = False
) -> list[TimeSlot]:
    slot = _slot_at(slots, index)
    _ensure_unlocked(slot, index, is_admin)
    start = _coerce_time(time, index)
    # A new start invalidates whatever end was chosen for the old one
    return _replace(slots, index, slot.model_copy(update={"startTime": start.format(), "endTime": ""}))


def set_end_time(
    slots: list[TimeSlot], index: int, time: TimeInput, *, is_admin: bool = False
) -> list[TimeSlot]:
    slot = _slot_at(slots, index)
    _ensure_unlocked(slot, index, is_admin)
    end = _coerce_time(time, index)
    start = slot.start
    if start is None:
        raise InvalidRange("Select a start time first", slot_index=index)
    if end <= start:
        raise InvalidRange(slot_index=index)
    return _replace(slots, index, slot.model_copy(update={"endTime": end.format()}))


def set_approval(
    slots: list[TimeSlot], index: int, value: bool, *, is_admin: bool = False
) -> list[TimeSlot]:
    """Admins may approve and un-approve freely."""
    if not is_admin:
        raise PermissionDenied("Only admins can approve time slots", slot_index=index)
    slot = _slot_at(slots, index)
    return _replace(slots, index, slot.model_copy(update={"approved": bool(value)}))


def compute_duration(start_time: TimeInput, end_time: TimeInput) -> tuple[int, int]:
    """Elapsed (hours, minutes) between two same-day times."""
    start = _coerce_time(start_time)
    end = _coerce_time(end_time)
    if end <= start:
        raise InvalidRange()
    return divmod(end.minutes - start.minutes, 60)


def list_start_times() -> Iterator[TimeOfDay]:
    for minutes in range(0, MINUTES_PER_DAY, SLOT_STEP_MINUTES):
        yield TimeOfDay.from_minutes(minutes)


def list_available_end_times(start_time: TimeInput) -> Iterator[TimeOfDay]:
    """End-time choices after `start_time`, half-hour steps, up to 23:30."""
    start = _coerce_time(start_time)
    for minutes in range(start.minutes + SLOT_STEP_MINUTES, MINUTES_PER_DAY, SLOT_STEP_MINUTES):
        yield TimeOfDay.from_minutes(minutes)


def end_time_options(start_time: TimeInput) -> list[dict]:
    """End-time choices with their 12-hour label and the slot length they give."""
    start = _coerce_time(start_time)
    return [
        {
            "time": end.format(),
            "label": end.format_12h(),
            "duration": format_duration(*compute_duration(start, end)),
        }
        for end in list_available_end_times(start)
    ]


def summarize_slot(slot: TimeSlot) -> SlotSummary:
    start, end = slot.start, slot.end
    summary = SlotSummary(date=format_slot_date(slot.date))
    if start is None:
        return summary
    summary.timeRange = start.format_12h()
    if end is not None and end > start:
        summary.timeRange = f"{summary.timeRange} - {end.format_12h()}"
        summary.duration = format_duration(*compute_duration(start, end))
    return summary


def validate_slots(slots: list[TimeSlot]) -> None:
    """Gate run before saving a task; the first violation found is raised."""
    if not slots:
        raise MissingSlot()

    for index, slot in enumerate(slots):
        if slot.start is None:
            raise MissingStartTime(slot_index=index)
        if slot.end is not None and slot.end <= slot.start:
            raise InvalidRange(slot_index=index)


def reconcile_slots(
    previous: list[TimeSlot], submitted: list[TimeSlot], *, is_admin: bool = False
) -> list[TimeSlot]:
    """
    Check a full replacement slot list against the stored one.

    Non-admins must hand back every approved slot untouched and cannot set or
    clear approval flags. Returns the submitted list when it is acceptable.
    """
    duplicate = _find_duplicate_date(submitted)
    if duplicate is not None:
        raise DuplicateDateError(slot_index=duplicate)

    if is_admin:
        return list(submitted)

    submitted_by_date = {slot.date: (index, slot) for index, slot in enumerate(submitted)}
    previous_by_date = {slot.date: slot for slot in previous}

    for index, old in enumerate(previous):
        if not old.approved:
            continue
        match = submitted_by_date.get(old.date)
        if match is None:
            logger.warning(f"🔒 Approved slot for {old.date} removed by non-admin")
            raise Locked("Approved time slots cannot be removed", slot_index=index)
        new_index, new = match
        if new.startTime != old.startTime or new.endTime != old.endTime:
            raise Locked(slot_index=new_index)
        if not new.approved:
            raise PermissionDenied("Only admins can approve time slots", slot_index=new_index)

    for index, slot in enumerate(submitted):
        old = previous_by_date.get(slot.date)
        if slot.approved and not (old and old.approved):
            raise PermissionDenied("Only admins can approve time slots", slot_index=index)

    return list(submitted)


class TimeSlotDraft:
    """In-memory slot list owned by a single edit session."""

    def __init__(self, slots: Optional[list[TimeSlot]] = None, is_admin: bool = False):
        self.slots: list[TimeSlot] = list(slots or [])
        self.is_admin = is_admin

    def add(self, today: Optional[dt.date] = None) -> None:
        self.slots = add_slot(self.slots, today or dt.date.today())

    def remove(self, index: int) -> None:
        self.slots = remove_slot(self.slots, index, is_admin=self.is_admin)

    def set_start(self, index: int, time: TimeInput) -> None:
        self.slots = set_start_time(self.slots, index, time, is_admin=self.is_admin)

    def set_end(self, index: int, time: TimeInput) -> None:
        self.slots = set_end_time(self.slots, index, time, is_admin=self.is_admin)

    def approve(self, index: int, value: bool = True) -> None:
        self.slots = set_approval(self.slots, index, value, is_admin=self.is_admin)

    def validate(self) -> None:
        validate_slots(self.slots)
