import datetime
from dataclasses import dataclass
from typing import Optional

from school_attendance.cache import CacheClient
from school_attendance.config import settings
from school_attendance.errors import CacheError, DuplicateEventError
from school_attendance.schemas.attendance import (
    ARRIVAL_STATUSES,
    AttendanceEventCreate,
    AttendanceStatus,
)
from school_attendance.schemas.metadata import CaptureMetadata
from school_attendance.services.notification import (
    LATE_SUBJECT,
    NotificationDispatcher,
    NotificationRequest,
    late_message,
)
from school_attendance.stores.base import ContactStore, IdentityStore, RecordStore
from school_attendance.utils.logging import get_logger

logger = get_logger(__name__)

RECORDABLE_STATUSES = frozenset({AttendanceStatus.PRESENT, AttendanceStatus.UNAUTHORIZED})


@dataclass(frozen=True)
class PresenceOutcome:
    created: bool
    status: AttendanceStatus
    late: bool = False


class AttendanceService:
    """
    Records presence events, at most one per user, day and status.

    Dedup runs in three layers: the cache fast path, an existence check
    against the record store, and the store's own uniqueness constraint which
    closes the race between the check and the insert. ``now`` is always
    supplied by the caller.
    """

    def __init__(
        self,
        records: RecordStore,
        identities: IdentityStore,
        contacts: Optional[ContactStore] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        cache: Optional[CacheClient] = None,
        late_cutoff: datetime.time = settings.LATE_CUTOFF,
        cache_ttl_seconds: int = settings.ATTENDANCE_CACHE_TTL_SECONDS,
    ):
        self.records = records
        self.identities = identities
        self.contacts = contacts
        self.dispatcher = dispatcher
        self.cache = cache
        self.late_cutoff = late_cutoff
        self.cache_ttl_seconds = cache_ttl_seconds

    def is_late(self, now: datetime.datetime) -> bool:
        # Half-open: exactly at the cutoff is on time.
        return now.time() > self.late_cutoff

    @staticmethod
    def _cache_key(user_id: str, day: datetime.date, status: AttendanceStatus) -> str:
        return f"attendance:{user_id}:{day.isoformat()}:{status.value}"

    async def _seen(self, key: str) -> bool:
        if self.cache is None:
            return False
        try:
            return bool(await self.cache.get(key))
        except CacheError as exc:
            logger.warning("Cache read for %s failed, checking the store: %s", key, exc)
            return False

    async def _remember(self, key: str) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.setex(key, self.cache_ttl_seconds, "marked")
        except CacheError as exc:
            # The store already holds the event; the cache is only a fast path.
            logger.warning("Cache write for %s failed: %s", key, exc)

    async def record(
        self,
        user_id: str,
        status: AttendanceStatus,
        confidence: Optional[float],
        now: datetime.datetime,
        source: Optional[CaptureMetadata] = None,
    ) -> PresenceOutcome:
        status = AttendanceStatus(status)
        if status not in RECORDABLE_STATUSES:
            raise ValueError(f"Cannot record presence with status '{status.value}'")

        today = now.date()
        redis_key = self._cache_key(user_id, today, status)

        # Quick check in the cache (The fast path)
        if await self._seen(redis_key):
            logger.info("Attendance already recorded for %s on %s (%s)", user_id, today, status.value)
            return PresenceOutcome(created=False, status=status)

        dedup_statuses = ARRIVAL_STATUSES if status == AttendanceStatus.PRESENT else {status}
        existing = await self.records.find_events(
            on_date=today, statuses=dedup_statuses, user_id=user_id, limit=1
        )
        if existing:
            logger.info("Attendance already recorded for %s on %s (%s)", user_id, today, status.value)
            await self._remember(redis_key)
            return PresenceOutcome(created=False, status=existing[0].status)

        late = status == AttendanceStatus.PRESENT and self.is_late(now)
        stored_status = AttendanceStatus.LATE if late else status

        try:
            await self.records.insert_events(
                [
                    AttendanceEventCreate(
                        user_id=user_id,
                        status=stored_status,
                        timestamp=now,
                        event_date=today,
                        confidence=confidence,
                        source=source,
                    )
                ]
            )
        except DuplicateEventError:
            # Another request won the race between the check and the insert.
            logger.info("Concurrent attendance write for %s on %s ignored", user_id, today)
            await self._remember(redis_key)
            return PresenceOutcome(created=False, status=stored_status, late=late)

        await self._remember(redis_key)
        logger.info("Attendance recorded for %s with status %s", user_id, stored_status.value)

        if late:
            await self._notify_late_arrival(user_id, now)

        return PresenceOutcome(created=True, status=stored_status, late=late)

    async def record_presence(
        self,
        user_id: str,
        status: AttendanceStatus,
        confidence: Optional[float],
        now: datetime.datetime,
        source: Optional[CaptureMetadata] = None,
    ) -> bool:
        """True once the event is stored, whether by this call or an earlier one."""
        await self.record(user_id, status, confidence, now, source=source)
        return True

    async def _notify_late_arrival(self, user_id: str, now: datetime.datetime) -> None:
        if self.dispatcher is None or self.contacts is None:
            return
        try:
            identity = await self.identities.latest_for_user(user_id)
            student_name = (identity.display_name if identity else None) or "Unknown Student"
            logger.info("Late arrival recorded for %s", student_name)

            contacts = await self.contacts.for_student(user_id)
            if not contacts:
                logger.warning("No parent contact found for student %s", user_id)
                return

            await self.dispatcher.notify_all(
                NotificationRequest(
                    contact=contact,
                    subject=LATE_SUBJECT,
                    message=late_message(contact.name, student_name, now),
                    student_name=student_name,
                )
                for contact in contacts
            )
        except Exception:
            # Best effort; the attendance write stands.
            logger.exception("Error sending late arrival notification for %s", user_id)
