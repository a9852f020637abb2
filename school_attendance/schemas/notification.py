import datetime
import enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class NotificationStatus(str, enum.Enum):
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"


class ChannelStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class Recipient(BaseModel):
    email: Optional[str] = None
    phone: Optional[str] = None


class NotificationLogCreate(BaseModel):
    contact_id: Optional[int] = None
    student_name: Optional[str] = None
    recipient: Recipient
    subject: str
    message: str
    status: NotificationStatus = NotificationStatus.PROCESSING
    email_status: ChannelStatus = ChannelStatus.PENDING
    sms_status: ChannelStatus = ChannelStatus.PENDING
    notification_date: datetime.datetime


class NotificationLogRead(NotificationLogCreate):
    id: int
    error_details: Optional[str] = None
    completed_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(from_attributes=True)


# --- API payloads ---
class SendNotificationRequest(BaseModel):
    type: Literal["email", "sms"]
    recipient: str = Field(..., min_length=1)
    subject: str = ""
    message: str = Field(..., min_length=1)


class SentMessage(BaseModel):
    id: str
    method: str


class SendNotificationResponse(BaseModel):
    success: bool
    data: SentMessage
    message: str


class NotifyAbsenteesRequest(BaseModel):
    date: datetime.date = Field(default_factory=datetime.date.today)
    # Limit the run to these students; all recorded absentees when omitted.
    user_ids: Optional[List[str]] = None


class BatchSummaryRead(BaseModel):
    sent: int
    failed: int
