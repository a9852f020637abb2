import datetime  # Import module to avoid name collision with date fields
import enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .metadata import EventMetadata, parse_metadata


class AttendanceStatus(str, enum.Enum):
    REGISTERED = "registered"
    PRESENT = "present"
    LATE = "late"
    ABSENT = "absent"
    UNAUTHORIZED = "unauthorized"


# Statuses that settle a user's attendance for the day.
QUALIFYING_STATUSES = frozenset(
    {AttendanceStatus.PRESENT, AttendanceStatus.LATE, AttendanceStatus.ABSENT}
)
# A late arrival is a present arrival classified after the cutoff.
ARRIVAL_STATUSES = frozenset({AttendanceStatus.PRESENT, AttendanceStatus.LATE})


# --- Base Schema ---
class AttendanceEventBase(BaseModel):
    user_id: Optional[str] = None
    status: AttendanceStatus
    timestamp: datetime.datetime
    confidence: Optional[float] = None
    source: Optional[EventMetadata] = None

    @field_validator("source", mode="before")
    @classmethod
    def _parse_source(cls, value):
        return parse_metadata(value)


# --- Create Schema (Input) ---
class AttendanceEventCreate(AttendanceEventBase):
    event_date: Optional[datetime.date] = None

    def day(self) -> datetime.date:
        return self.event_date or self.timestamp.date()


# --- Read Schema (Output) ---
class AttendanceEventRead(AttendanceEventBase):
    id: int
    event_date: datetime.date

    model_config = ConfigDict(from_attributes=True)


# --- API payloads ---
class IdentifyRequest(BaseModel):
    embedding: List[float] = Field(..., min_length=1)
    camera_id: Optional[str] = None


class RecordPresenceRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    status: AttendanceStatus = AttendanceStatus.PRESENT
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)


class AbsenteeRead(BaseModel):
    user_id: str
    display_name: str


class MarkAbsenteesRequest(BaseModel):
    date: datetime.date = Field(default_factory=datetime.date.today)


class DailyStatsRead(BaseModel):
    date: datetime.date
    total: int
    present: int
    late: int
    absent: int
    present_percentage: int
    late_percentage: int
    absent_percentage: int
