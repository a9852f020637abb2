from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import Date, DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class AttendanceEvent(Base, TimestampMixin):
    __tablename__ = "attendance_events"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    # Null for captures that matched nobody
    user_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)

    # registered / present / late / absent / unauthorized
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # The calendar day of the event (stored separately for easy unique indexing)
    event_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Confidence score of the match at that moment
    confidence: Mapped[Optional[float]] = mapped_column(nullable=True)

    # Capture / system metadata, see schemas.metadata
    source: Mapped[Optional[dict[str, Any]]] = mapped_column()

    # one event per user per day per status.
    __table_args__ = (
        UniqueConstraint(
            "user_id", "event_date", "status", name="uq_attendance_user_day_status"
        ),
    )

    def __repr__(self):
        return (
            f"<AttendanceEvent(user_id={self.user_id}, status='{self.status}', "
            f"date='{self.event_date}')>"
        )
