from typing import Any, Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class Contact(Base, TimestampMixin):
    __tablename__ = "parent_contacts"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    # Identity user_id by convention; not a foreign key.
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(32))

    # {"email": bool, "sms": bool}
    notification_preferences: Mapped[Optional[dict[str, Any]]] = mapped_column()

    def __repr__(self):
        return f"<Contact(id={self.id}, student_id='{self.student_id}')>"
