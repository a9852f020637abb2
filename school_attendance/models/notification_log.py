from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class NotificationLog(Base, TimestampMixin):
    __tablename__ = "notification_logs"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    contact_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("parent_contacts.id", ondelete="SET NULL"), index=True
    )
    student_name: Mapped[Optional[str]] = mapped_column(String(100))
    recipient: Mapped[dict[str, Any]] = mapped_column(nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # processing -> sent | failed
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    email_status: Mapped[str] = mapped_column(String(20), server_default="pending")
    sms_status: Mapped[str] = mapped_column(String(20), server_default="pending")
    error_details: Mapped[Optional[str]] = mapped_column(Text)

    notification_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    def __repr__(self):
        return f"<NotificationLog(id={self.id}, status='{self.status}')>"
