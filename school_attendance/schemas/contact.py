import json
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from school_attendance.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationPreferences(BaseModel):
    email: bool = False
    sms: bool = False


def parse_preferences(value) -> NotificationPreferences:
    """Accept stored preferences as a mapping, a JSON string or nothing."""
    if not value:
        return NotificationPreferences()
    if isinstance(value, NotificationPreferences):
        return value
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            logger.error("Error parsing notification preferences: %r", value)
            return NotificationPreferences()
    if isinstance(value, dict):
        return NotificationPreferences(
            email=bool(value.get("email")), sms=bool(value.get("sms"))
        )
    return NotificationPreferences()


class ContactBase(BaseModel):
    student_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=100, examples=["Mary Doe"])
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)
    notification_preferences: NotificationPreferences = Field(
        default_factory=NotificationPreferences
    )

    @field_validator("notification_preferences", mode="before")
    @classmethod
    def _parse_preferences(cls, value):
        return parse_preferences(value)

    @field_validator("email", "phone", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def wants_email(self) -> bool:
        return bool(self.email) and self.notification_preferences.email

    def wants_sms(self) -> bool:
        return bool(self.phone) and self.notification_preferences.sms


class ContactCreate(ContactBase):
    pass


class ContactRead(ContactBase):
    id: int

    model_config = ConfigDict(from_attributes=True)
