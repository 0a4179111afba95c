"""Time-of-day value type shared by the scheduler, the query engine and the API.

Slots store times as 24h "HH:MM" strings with "" meaning "not chosen yet".
All comparisons and arithmetic go through TimeOfDay instead of slicing those
strings.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])?\s*$")


@dataclass(frozen=True, order=True)
class TimeOfDay:
    hour: int
    minute: int

    def __post_init__(self):
        if not 0 <= self.hour <= 23 or not 0 <= self.minute <= 59:
            raise ValueError(f"Invalid time of day: {self.hour}:{self.minute}")

    @classmethod
    def parse(cls, text: str) -> "TimeOfDay":
        """Parse "13:30", "09:05" or "1:30 PM" style input."""
        match = _TIME_RE.match(text or "")
        if not match:
            raise ValueError(f"Invalid time format: {text!r}")

        hour, minute = int(match.group(1)), int(match.group(2))
        period = match.group(3)
        if period:
            if not 1 <= hour <= 12:
                raise ValueError(f"Invalid 12-hour time: {text!r}")
            period = period.upper()
            if period == "PM" and hour != 12:
                hour += 12
            elif period == "AM" and hour == 12:
                hour = 0
        return cls(hour, minute)

    @classmethod
    def parse_optional(cls, text: Optional[str]) -> Optional["TimeOfDay"]:
        if not text or not text.strip():
            return None
        return cls.parse(text)

    @classmethod
    def from_minutes(cls, minutes: int) -> "TimeOfDay":
        if not 0 <= minutes < MINUTES_PER_DAY:
            raise ValueError(f"Minutes out of range for a single day: {minutes}")
        return cls(minutes // 60, minutes % 60)

    @property
    def minutes(self) -> int:
        return self.hour * 60 + self.minute

    def format(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    def format_12h(self) -> str:
        period = "PM" if self.hour >= 12 else "AM"
        hour12 = self.hour % 12 or 12
        return f"{hour12}:{self.minute:02d} {period}"

    def __str__(self) -> str:
        return self.format()


def normalize_time(text: Optional[str]) -> str:
    """Normalize user input to stored form ("HH:MM" or "")."""
    value = TimeOfDay.parse_optional(text)
    return value.format() if value else ""


def format_duration(hours: int, minutes: int) -> str:
    if hours == 0:
        return f"{minutes} minutes"
    hours_label = f"{hours} hour{'s' if hours > 1 else ''}"
    if minutes == 0:
        return hours_label
    return f"{hours_label} {minutes} minutes"


def format_slot_date(value: date) -> str:
    """Short label used for slot badges, e.g. "Mon, Jan 6"."""
    return f"{value.strftime('%a, %b')} {value.day}"
