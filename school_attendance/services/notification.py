import datetime
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from school_attendance.errors import StoreError, TransportError
from school_attendance.schemas.contact import ContactRead
from school_attendance.schemas.notification import (
    ChannelStatus,
    NotificationLogCreate,
    NotificationStatus,
    Recipient,
)
from school_attendance.services.absentees import AbsenteeResolver
from school_attendance.services.transports import EmailTransport, SmsTransport
from school_attendance.stores.base import ContactStore, NotificationLogStore
from school_attendance.utils.logging import get_logger

logger = get_logger(__name__)

ABSENCE_SUBJECT = "Attendance Alert: Student Absence"
LATE_SUBJECT = "Attendance Alert: Late Arrival"
TEST_SUBJECT = "Test Notification"


def absence_message(contact_name: str, student_name: str, on_date: datetime.date) -> str:
    return (
        f"Dear {contact_name}, this is an automated notification from the school "
        f"attendance system. Your child, {student_name}, has been marked absent "
        f"today ({on_date.isoformat()}). If this is unexpected, please contact the "
        f"school office."
    )


def late_message(contact_name: str, student_name: str, arrived_at: datetime.datetime) -> str:
    return (
        f"Dear {contact_name}, this is an automated notification from the school "
        f"attendance system. Your child, {student_name}, arrived late today "
        f"({arrived_at.date().isoformat()} at {arrived_at.strftime('%H:%M')})."
    )


def sample_message() -> str:
    return "This is a test notification from the school attendance system."


@dataclass(frozen=True)
class ChannelResult:
    email_sent: bool
    sms_sent: bool

    @property
    def delivered(self) -> bool:
        return self.email_sent or self.sms_sent


@dataclass(frozen=True)
class NotificationRequest:
    contact: ContactRead
    subject: str
    message: str
    student_name: Optional[str] = None


@dataclass
class BatchSummary:
    sent: int = 0
    failed: int = 0


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class NotificationDispatcher:
    """
    Delivers one message to a contact over every channel the contact enabled.

    A log entry is created in ``processing`` before any delivery attempt and
    finalized exactly once. Channel failures are independent and recorded in
    the entry; they never propagate.
    """

    def __init__(
        self,
        logs: NotificationLogStore,
        email: EmailTransport,
        sms: SmsTransport,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ):
        self.logs = logs
        self.email = email
        self.sms = sms
        self.clock = clock

    async def _update_log(self, log_id: int, **changes) -> None:
        try:
            await self.logs.update(log_id, **changes)
        except StoreError:
            logger.exception("Failed to update notification log %s", log_id)

    async def notify(
        self,
        contact: ContactRead,
        subject: str,
        message: str,
        student_name: Optional[str] = None,
    ) -> ChannelResult:
        wants_email = contact.wants_email()
        wants_sms = contact.wants_sms()

        log_id = await self.logs.create(
            NotificationLogCreate(
                contact_id=contact.id,
                student_name=student_name,
                recipient=Recipient(
                    email=contact.email if wants_email else None,
                    phone=contact.phone if wants_sms else None,
                ),
                subject=subject,
                message=message,
                status=NotificationStatus.PROCESSING,
                email_status=ChannelStatus.PENDING if wants_email else ChannelStatus.SKIPPED,
                sms_status=ChannelStatus.PENDING if wants_sms else ChannelStatus.SKIPPED,
                notification_date=self.clock(),
            )
        )

        errors: list[str] = []

        email_sent = False
        if wants_email:
            try:
                await self.email.send(contact.email, subject, message)
                email_sent = True
                await self._update_log(log_id, email_status=ChannelStatus.SENT)
            except TransportError as exc:
                logger.warning("Email to contact %s failed: %s", contact.id, exc)
                errors.append(f"email: {exc}")
                await self._update_log(
                    log_id, email_status=ChannelStatus.FAILED, error_details="; ".join(errors)
                )

        sms_sent = False
        if wants_sms:
            try:
                await self.sms.send(contact.phone, message)
                sms_sent = True
                await self._update_log(log_id, sms_status=ChannelStatus.SENT)
            except TransportError as exc:
                logger.warning("SMS to contact %s failed: %s", contact.id, exc)
                errors.append(f"sms: {exc}")
                await self._update_log(
                    log_id, sms_status=ChannelStatus.FAILED, error_details="; ".join(errors)
                )

        result = ChannelResult(email_sent=email_sent, sms_sent=sms_sent)
        await self._update_log(
            log_id,
            status=NotificationStatus.SENT if result.delivered else NotificationStatus.FAILED,
            completed_at=self.clock(),
        )
        return result

    async def notify_all(self, requests: Iterable[NotificationRequest]) -> BatchSummary:
        """Notify each recipient in turn; one recipient's failure never stops the batch."""
        summary = BatchSummary()
        for request in requests:
            try:
                result = await self.notify(
                    request.contact,
                    request.subject,
                    request.message,
                    student_name=request.student_name,
                )
            except StoreError:
                logger.exception("Could not log notification for contact %s", request.contact.id)
                summary.failed += 1
                continue

            if result.delivered:
                summary.sent += 1
            else:
                summary.failed += 1

        logger.info("Notification batch finished: sent=%d failed=%d", summary.sent, summary.failed)
        return summary


class AbsenceNotifier:
    """Sends absence notices to the contacts of students recorded absent."""

    def __init__(
        self,
        resolver: AbsenteeResolver,
        contacts: ContactStore,
        dispatcher: NotificationDispatcher,
    ):
        self.resolver = resolver
        self.contacts = contacts
        self.dispatcher = dispatcher

    async def notify_absentees(
        self, on_date: datetime.date, user_ids: Optional[Iterable[str]] = None
    ) -> BatchSummary:
        absentees = await self.resolver.recorded_absentees(on_date)
        if user_ids is not None:
            selected = set(user_ids)
            absentees = [absentee for absentee in absentees if absentee.user_id in selected]

        summary = BatchSummary()
        requests: list[NotificationRequest] = []
        for absentee in absentees:
            contacts = await self.contacts.for_student(absentee.user_id)
            if not contacts:
                logger.error("No parent contact found for student %s", absentee.user_id)
                summary.failed += 1
                continue
            for contact in contacts:
                requests.append(
                    NotificationRequest(
                        contact=contact,
                        subject=ABSENCE_SUBJECT,
                        message=absence_message(contact.name, absentee.display_name, on_date),
                        student_name=absentee.display_name,
                    )
                )

        batch = await self.dispatcher.notify_all(requests)
        summary.sent += batch.sent
        summary.failed += batch.failed
        return summary

    async def send_test(self, contact: ContactRead) -> ChannelResult:
        return await self.dispatcher.notify(
            contact, TEST_SUBJECT, sample_message(), student_name="Test Student"
        )
