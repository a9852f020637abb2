from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class IdentityRecord(Base, TimestampMixin):
    __tablename__ = "identities"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    # Re-registration adds a new row; the most recent one is authoritative.
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(100))
    department: Mapped[Optional[str]] = mapped_column(String(100))
    position: Mapped[Optional[str]] = mapped_column(String(100))

    # Comma-joined descriptor, see services.descriptor
    descriptor: Mapped[str] = mapped_column(Text, nullable=False)
    reference_image_ref: Mapped[Optional[str]] = mapped_column(String(500))
    registration_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column()

    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (Index("ix_identities_user_registered", "user_id", "registered_at"),)

    def __repr__(self):
        return f"<IdentityRecord(user_id='{self.user_id}', name='{self.display_name}')>"
