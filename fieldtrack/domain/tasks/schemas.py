"""Task domain schemas - Pydantic models for validation"""

import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.timeofday import TimeOfDay, normalize_time

TaskStatus = Literal["in-progress", "completed"]
TaskSortKey = Literal["newest", "oldest", "title-asc", "title-desc", "time"]


class TimeSlot(BaseModel):
    """One scheduled working window of a task; at most one per date"""

    date: dt.date
    startTime: str = ""
    endTime: str = ""
    approved: bool = False

    @field_validator("startTime", "endTime", mode="before")
    @classmethod
    def normalize_times(cls, v):
        if v is None:
            return ""
        return normalize_time(v)

    @field_validator("approved", mode="before")
    @classmethod
    def default_approved(cls, v):
        return bool(v) if v is not None else False

    @property
    def start(self) -> Optional[TimeOfDay]:
        return TimeOfDay.parse_optional(self.startTime)

    @property
    def end(self) -> Optional[TimeOfDay]:
        return TimeOfDay.parse_optional(self.endTime)

    def to_record(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "startTime": self.startTime,
            "endTime": self.endTime,
            "approved": self.approved,
        }


class SlotSummary(BaseModel):
    """Display labels for one slot: date badge, 12-hour time range and length"""

    date: str
    timeRange: str = ""
    duration: str = ""


class TaskCreate(BaseModel):
    """Schema for creating a task"""

    title: str
    site: str
    description: str = ""
    notes: Optional[str] = ""
    status: Optional[TaskStatus] = None
    timeSlots: list[TimeSlot] = Field(default_factory=list)
    existingImages: list[str] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    """Schema for updating a task; omitted fields are left untouched"""

    title: Optional[str] = None
    site: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[TaskStatus] = None
    timeSlots: Optional[list[TimeSlot]] = None
    existingImages: Optional[list[str]] = None


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


class SlotApprovalUpdate(BaseModel):
    approved: bool


class TaskResponse(BaseModel):
    """Schema for task response"""

    id: int
    title: str
    site: str
    description: str
    notes: Optional[str] = None
    status: TaskStatus
    timeSlots: list[TimeSlot]
    schedule: list[SlotSummary] = Field(default_factory=list)
    images: list[str]
    userId: str
    uploaderEmail: Optional[str] = None
    createdAt: Optional[dt.datetime] = None
    updatedAt: Optional[dt.datetime] = None


class TaskPageResponse(BaseModel):
    items: list[TaskResponse]
    totalCount: int
    totalPages: int
    page: int
    pageSize: int


def slots_from_records(records: Optional[list]) -> list[TimeSlot]:
    """Load stored slot dicts into TimeSlot models, keeping their order."""
    return [TimeSlot.model_validate(record) for record in records or []]


def slots_to_records(slots: list[TimeSlot]) -> list[dict]:
    return [slot.to_record() for slot in slots]
