"""
Store interfaces consumed by the attendance services.

The services only depend on these protocols; ``stores.sql`` binds them to
SQLAlchemy and the tests bind them to in-memory fakes. Every method raises
``StoreError`` when the backing store fails.
"""
import datetime
from typing import Iterable, Optional, Protocol, Sequence

from school_attendance.schemas.attendance import (
    AttendanceEventCreate,
    AttendanceEventRead,
    AttendanceStatus,
)
from school_attendance.schemas.contact import ContactCreate, ContactRead
from school_attendance.schemas.identity import IdentityCreate, IdentityRead
from school_attendance.schemas.notification import (
    NotificationLogCreate,
    NotificationLogRead,
)


class RecordStore(Protocol):
    async def find_events(
        self,
        *,
        on_date: Optional[datetime.date] = None,
        statuses: Optional[Iterable[AttendanceStatus]] = None,
        user_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[AttendanceEventRead]: ...

    async def count_events(
        self,
        *,
        user_id: Optional[str] = None,
        statuses: Optional[Iterable[AttendanceStatus]] = None,
    ) -> int: ...

    # Raises DuplicateEventError when (user_id, date, status) already exists.
    async def insert_events(
        self, events: Sequence[AttendanceEventCreate]
    ) -> list[AttendanceEventRead]: ...


class IdentityStore(Protocol):
    # Oldest first.
    async def list_registered(self) -> list[IdentityRead]: ...

    async def latest_for_user(self, user_id: str) -> Optional[IdentityRead]: ...

    async def add(
        self,
        identity: IdentityCreate,
        descriptor: str,
        registered_at: datetime.datetime,
    ) -> IdentityRead: ...


class ContactStore(Protocol):
    async def list_all(self) -> list[ContactRead]: ...

    async def for_student(self, student_id: str) -> list[ContactRead]: ...

    async def get(self, contact_id: int) -> Optional[ContactRead]: ...

    async def add(self, contact: ContactCreate) -> ContactRead: ...

    async def delete(self, contact_id: int) -> bool: ...


class NotificationLogStore(Protocol):
    async def create(self, entry: NotificationLogCreate) -> int: ...

    # No-op once the entry has left the processing state.
    async def update(self, log_id: int, **changes) -> None: ...

    async def recent(self, limit: int = 10) -> list[NotificationLogRead]: ...


def most_recent_per_user(records: Iterable[IdentityRead]) -> dict[str, IdentityRead]:
    """Collapse re-registrations: the latest record for each user wins."""
    latest: dict[str, IdentityRead] = {}
    for record in records:
        current = latest.get(record.user_id)
        if current is None or (record.registered_at, record.id) >= (
            current.registered_at,
            current.id,
        ):
            latest[record.user_id] = record
    return latest
