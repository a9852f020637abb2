import datetime
import functools
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.errors import DuplicateEventError, StoreError
from school_attendance.models.attendance import AttendanceEvent
from school_attendance.models.contact import Contact
from school_attendance.models.identity import IdentityRecord
from school_attendance.models.notification_log import NotificationLog
from school_attendance.schemas.attendance import (
    AttendanceEventCreate,
    AttendanceEventRead,
    AttendanceStatus,
)
from school_attendance.schemas.contact import ContactCreate, ContactRead
from school_attendance.schemas.identity import IdentityCreate, IdentityRead
from school_attendance.schemas.metadata import (
    RegistrationMetadata,
    dump_metadata,
)
from school_attendance.schemas.notification import (
    NotificationLogCreate,
    NotificationLogRead,
    NotificationStatus,
)


def store_operation(method):
    """Roll back and re-raise database failures as StoreError."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await method(self, *args, **kwargs)
        except StoreError:
            raise
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise StoreError(f"{type(self).__name__}.{method.__name__} failed: {exc}") from exc

    return wrapper


def _status_values(statuses: Optional[Iterable[AttendanceStatus]]) -> Optional[list[str]]:
    if statuses is None:
        return None
    return [AttendanceStatus(status).value for status in statuses]


class SqlRecordStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    @store_operation
    async def find_events(
        self,
        *,
        on_date: Optional[datetime.date] = None,
        statuses: Optional[Iterable[AttendanceStatus]] = None,
        user_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[AttendanceEventRead]:
        query = select(AttendanceEvent)
        if on_date is not None:
            query = query.where(AttendanceEvent.event_date == on_date)
        status_values = _status_values(statuses)
        if status_values is not None:
            query = query.where(AttendanceEvent.status.in_(status_values))
        if user_id is not None:
            query = query.where(AttendanceEvent.user_id == user_id)
        query = query.order_by(AttendanceEvent.timestamp.desc(), AttendanceEvent.id.desc())
        if limit is not None:
            query = query.limit(limit)

        result = await self.db.execute(query)
        return [AttendanceEventRead.model_validate(row) for row in result.scalars().all()]

    @store_operation
    async def count_events(
        self,
        *,
        user_id: Optional[str] = None,
        statuses: Optional[Iterable[AttendanceStatus]] = None,
    ) -> int:
        query = select(func.count(AttendanceEvent.id))
        if user_id is not None:
            query = query.where(AttendanceEvent.user_id == user_id)
        status_values = _status_values(statuses)
        if status_values is not None:
            query = query.where(AttendanceEvent.status.in_(status_values))
        result = await self.db.execute(query)
        return int(result.scalar_one() or 0)

    @store_operation
    async def insert_events(
        self, events: Sequence[AttendanceEventCreate]
    ) -> list[AttendanceEventRead]:
        if not events:
            return []
        rows = [
            AttendanceEvent(
                user_id=event.user_id,
                status=event.status.value,
                timestamp=event.timestamp,
                event_date=event.day(),
                confidence=event.confidence,
                source=dump_metadata(event.source),
            )
            for event in events
        ]
        self.db.add_all(rows)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise DuplicateEventError(
                "Attendance event already exists for this user, day and status"
            ) from exc
        return [AttendanceEventRead.model_validate(row) for row in rows]


class SqlIdentityStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    @store_operation
    async def list_registered(self) -> list[IdentityRead]:
        query = select(IdentityRecord).order_by(
            IdentityRecord.registered_at, IdentityRecord.id
        )
        result = await self.db.execute(query)
        return [IdentityRead.model_validate(row) for row in result.scalars().all()]

    @store_operation
    async def latest_for_user(self, user_id: str) -> Optional[IdentityRead]:
        query = (
            select(IdentityRecord)
            .where(IdentityRecord.user_id == user_id)
            .order_by(IdentityRecord.registered_at.desc(), IdentityRecord.id.desc())
            .limit(1)
        )
        result = await self.db.execute(query)
        record = result.scalars().first()
        return IdentityRead.model_validate(record) if record else None

    @store_operation
    async def add(
        self,
        identity: IdentityCreate,
        descriptor: str,
        registered_at: datetime.datetime,
    ) -> IdentityRead:
        metadata = RegistrationMetadata(
            name=identity.display_name,
            employee_id=identity.employee_id,
            registered_at=registered_at,
        )
        record = IdentityRecord(
            user_id=identity.user_id,
            display_name=identity.display_name,
            department=identity.department,
            position=identity.position,
            descriptor=descriptor,
            reference_image_ref=identity.reference_image_ref,
            registration_metadata=dump_metadata(metadata),
            registered_at=registered_at,
        )
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)
        return IdentityRead.model_validate(record)


class SqlContactStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    @store_operation
    async def list_all(self) -> list[ContactRead]:
        result = await self.db.execute(select(Contact).order_by(Contact.name, Contact.id))
        return [ContactRead.model_validate(row) for row in result.scalars().all()]

    @store_operation
    async def for_student(self, student_id: str) -> list[ContactRead]:
        query = select(Contact).where(Contact.student_id == student_id).order_by(Contact.id)
        result = await self.db.execute(query)
        return [ContactRead.model_validate(row) for row in result.scalars().all()]

    @store_operation
    async def get(self, contact_id: int) -> Optional[ContactRead]:
        contact = await self.db.get(Contact, contact_id)
        return ContactRead.model_validate(contact) if contact else None

    @store_operation
    async def add(self, contact: ContactCreate) -> ContactRead:
        row = Contact(
            student_id=contact.student_id,
            name=contact.name,
            email=contact.email,
            phone=contact.phone,
            notification_preferences=contact.notification_preferences.model_dump(),
        )
        self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)
        return ContactRead.model_validate(row)

    @store_operation
    async def delete(self, contact_id: int) -> bool:
        result = await self.db.execute(delete(Contact).where(Contact.id == contact_id))
        await self.db.commit()
        return result.rowcount > 0


class SqlNotificationLogStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    @store_operation
    async def create(self, entry: NotificationLogCreate) -> int:
        row = NotificationLog(
            contact_id=entry.contact_id,
            student_name=entry.student_name,
            recipient=entry.recipient.model_dump(),
            subject=entry.subject,
            message=entry.message,
            status=entry.status.value,
            email_status=entry.email_status.value,
            sms_status=entry.sms_status.value,
            notification_date=entry.notification_date,
        )
        self.db.add(row)
        await self.db.commit()
        return row.id

    @store_operation
    async def update(self, log_id: int, **changes) -> None:
        values = {
            key: value.value if hasattr(value, "value") else value
            for key, value in changes.items()
        }
        await self.db.execute(
            update(NotificationLog)
            .where(
                NotificationLog.id == log_id,
                NotificationLog.status == NotificationStatus.PROCESSING.value,
            )
            .values(**values)
        )
        await self.db.commit()

    @store_operation
    async def recent(self, limit: int = 10) -> list[NotificationLogRead]:
        query = (
            select(NotificationLog)
            .order_by(NotificationLog.notification_date.desc(), NotificationLog.id.desc())
            .limit(limit)
        )
        result = await self.db.execute(query)
        return [NotificationLogRead.model_validate(row) for row in result.scalars().all()]
