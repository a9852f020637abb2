import asyncio
import datetime

import pytest

from school_attendance.schemas.attendance import AttendanceEventCreate, AttendanceStatus
from school_attendance.schemas.notification import ChannelStatus, NotificationStatus
from school_attendance.services.absentees import AbsenteeResolver
from school_attendance.services.notification import (
    ABSENCE_SUBJECT,
    AbsenceNotifier,
    NotificationDispatcher,
    NotificationRequest,
)

DAY = datetime.date(2024, 3, 4)
COMPLETED = datetime.datetime(2024, 3, 4, 16, 0)


@pytest.fixture
def dispatcher(logs, email_transport, sms_transport):
    return NotificationDispatcher(logs, email_transport, sms_transport, clock=lambda: COMPLETED)


def test_email_only_contact_never_touches_sms(dispatcher, contacts, sms_transport, logs):
    contact = contacts.create("stu-1", "Parent", email="p@example.com", email_pref=True)

    result = asyncio.run(dispatcher.notify(contact, "Subject", "Body"))

    assert result.email_sent
    assert not result.sms_sent
    assert sms_transport.sent == []
    entry = logs.entries[1]
    assert entry["email_status"] == ChannelStatus.SENT
    assert entry["sms_status"] == ChannelStatus.SKIPPED
    assert entry["status"] == NotificationStatus.SENT
    assert entry["completed_at"] == COMPLETED


def test_channel_requires_both_preference_and_address(
    dispatcher, contacts, email_transport, sms_transport
):
    contact = contacts.create(
        "stu-1", "Parent", email="p@example.com", phone="+15550100", sms_pref=True
    )

    result = asyncio.run(dispatcher.notify(contact, "Subject", "Body"))

    assert not result.email_sent
    assert result.sms_sent
    assert email_transport.sent == []
    assert sms_transport.sent == [("+15550100", "Body")]


def test_email_failure_does_not_prevent_sms(dispatcher, contacts, email_transport, logs):
    email_transport.failing.add("p@example.com")
    contact = contacts.create(
        "stu-1",
        "Parent",
        email="p@example.com",
        phone="+15550100",
        email_pref=True,
        sms_pref=True,
    )

    result = asyncio.run(dispatcher.notify(contact, "Subject", "Body"))

    assert not result.email_sent
    assert result.sms_sent
    entry = logs.entries[1]
    assert entry["email_status"] == ChannelStatus.FAILED
    assert entry["sms_status"] == ChannelStatus.SENT
    assert "rejected" in entry["error_details"]
    assert entry["status"] == NotificationStatus.SENT


def test_all_channels_failing_marks_entry_failed(dispatcher, contacts, email_transport, logs):
    email_transport.failing.add("p@example.com")
    contact = contacts.create("stu-1", "Parent", email="p@example.com", email_pref=True)

    result = asyncio.run(dispatcher.notify(contact, "Subject", "Body"))

    assert not result.delivered
    assert logs.entries[1]["status"] == NotificationStatus.FAILED
    assert logs.entries[1]["completed_at"] == COMPLETED


def test_log_update_failure_is_swallowed(dispatcher, contacts, email_transport, logs):
    logs.fail_updates = True
    contact = contacts.create("stu-1", "Parent", email="p@example.com", email_pref=True)

    result = asyncio.run(dispatcher.notify(contact, "Subject", "Body"))

    assert result.email_sent
    assert len(email_transport.sent) == 1
    assert logs.entries[1]["status"] == NotificationStatus.PROCESSING


def test_batch_continues_past_a_failing_recipient(dispatcher, contacts, email_transport, logs):
    recipients = [
        contacts.create(f"stu-{n}", f"Parent {n}", email=f"p{n}@example.com", email_pref=True)
        for n in range(5)
    ]
    email_transport.failing.add("p2@example.com")

    summary = asyncio.run(
        dispatcher.notify_all(
            NotificationRequest(contact=contact, subject="Subject", message="Body")
            for contact in recipients
        )
    )

    assert (summary.sent, summary.failed) == (4, 1)
    assert len(logs.entries) == 5
    statuses = {entry["contact_id"]: entry["email_status"] for entry in logs.entries.values()}
    assert statuses[recipients[2].id] == ChannelStatus.FAILED
    assert [s for cid, s in statuses.items() if cid != recipients[2].id] == [ChannelStatus.SENT] * 4


def test_batch_counts_unloggable_recipient_as_failure(dispatcher, contacts, logs):
    contact = contacts.create("stu-1", "Parent", email="p@example.com", email_pref=True)
    logs.fail_creates = True

    summary = asyncio.run(
        dispatcher.notify_all([NotificationRequest(contact=contact, subject="S", message="M")])
    )

    assert (summary.sent, summary.failed) == (0, 1)


def test_absence_notifier_messages_recorded_absentees(
    records, identities, contacts, dispatcher, email_transport
):
    identities.enroll("stu-1", "Ada Lovelace")
    identities.enroll("stu-2", "Alan Turing")
    identities.enroll("stu-3", "Grace Hopper")
    contacts.create("stu-1", "Mrs Lovelace", email="ada.parent@example.com", email_pref=True)
    contacts.create("stu-3", "Mr Hopper", email="grace.parent@example.com", email_pref=True)
    asyncio.run(
        records.insert_events(
            [
                AttendanceEventCreate(
                    user_id=user_id,
                    status=AttendanceStatus.ABSENT,
                    timestamp=datetime.datetime(2024, 3, 4, 23, 59, 59),
                )
                for user_id in ("stu-1", "stu-2")
            ]
        )
    )
    notifier = AbsenceNotifier(AbsenteeResolver(records, identities), contacts, dispatcher)

    summary = asyncio.run(notifier.notify_absentees(DAY))

    # stu-2 has no contact; stu-3 was not recorded absent.
    assert (summary.sent, summary.failed) == (1, 1)
    assert len(email_transport.sent) == 1
    to, subject, body = email_transport.sent[0]
    assert to == "ada.parent@example.com"
    assert subject == ABSENCE_SUBJECT
    assert "Ada Lovelace" in body and "2024-03-04" in body


def test_absence_notifier_honours_selection(records, identities, contacts, dispatcher):
    for user_id in ("stu-1", "stu-2"):
        identities.enroll(user_id, user_id.upper())
        contacts.create(user_id, "Parent", email=f"{user_id}@example.com", email_pref=True)
    asyncio.run(
        records.insert_events(
            [
                AttendanceEventCreate(
                    user_id=user_id,
                    status=AttendanceStatus.ABSENT,
                    timestamp=datetime.datetime(2024, 3, 4, 23, 59, 59),
                )
                for user_id in ("stu-1", "stu-2")
            ]
        )
    )
    notifier = AbsenceNotifier(AbsenteeResolver(records, identities), contacts, dispatcher)

    summary = asyncio.run(notifier.notify_absentees(DAY, user_ids=["stu-2"]))

    assert (summary.sent, summary.failed) == (1, 0)


def test_send_test_notification(dispatcher, contacts, email_transport):
    contact = contacts.create("stu-1", "Parent", email="p@example.com", email_pref=True)
    notifier = AbsenceNotifier(None, contacts, dispatcher)

    result = asyncio.run(notifier.send_test(contact))

    assert result.email_sent
    assert email_transport.sent[0][1] == "Test Notification"
