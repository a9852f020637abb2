import datetime
import os
import tempfile

import pytest

# Settings are read at import time; point them at a throwaway database first.
_TMP_DIR = tempfile.mkdtemp(prefix="school-attendance-tests-")
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["LOCAL_ONLY"] = "false"
os.environ["CACHE_BACKEND"] = "memory"
os.environ["EMAIL_TRANSPORT"] = "log"
os.environ["SMS_TRANSPORT"] = "log"
os.environ["DESCRIPTOR_DIMENSION"] = "128"

from school_attendance.errors import DuplicateEventError, StoreError, TransportError  # noqa: E402
from school_attendance.schemas.attendance import AttendanceEventRead  # noqa: E402
from school_attendance.schemas.contact import ContactRead  # noqa: E402
from school_attendance.schemas.identity import IdentityRead  # noqa: E402
from school_attendance.schemas.metadata import RegistrationMetadata  # noqa: E402
from school_attendance.schemas.notification import (  # noqa: E402
    NotificationLogRead,
    NotificationStatus,
)


class MemoryRecordStore:
    def __init__(self):
        self.events: list[AttendanceEventRead] = []
        self.fail_reads = False
        self.insert_calls = 0

    async def find_events(self, *, on_date=None, statuses=None, user_id=None, limit=None):
        if self.fail_reads:
            raise StoreError("record store unavailable")
        wanted = set(statuses) if statuses is not None else None
        found = [
            event
            for event in reversed(self.events)
            if (on_date is None or event.event_date == on_date)
            and (wanted is None or event.status in wanted)
            and (user_id is None or event.user_id == user_id)
        ]
        return found[:limit] if limit is not None else found

    async def count_events(self, *, user_id=None, statuses=None):
        return len(await self.find_events(user_id=user_id, statuses=statuses))

    async def insert_events(self, events):
        self.insert_calls += 1
        keys = {(e.user_id, e.event_date, e.status) for e in self.events if e.user_id}
        for event in events:
            if event.user_id and (event.user_id, event.day(), event.status) in keys:
                raise DuplicateEventError("duplicate")
        stored = []
        for event in events:
            row = AttendanceEventRead(
                id=len(self.events) + 1,
                event_date=event.day(),
                **event.model_dump(exclude={"event_date", "source"}),
                source=event.source,
            )
            self.events.append(row)
            stored.append(row)
        return stored


class MemoryIdentityStore:
    def __init__(self):
        self.records: list[IdentityRead] = []

    def enroll(self, user_id, display_name, descriptor="0.0", registered_at=None):
        record = IdentityRead(
            id=len(self.records) + 1,
            user_id=user_id,
            display_name=display_name,
            descriptor=descriptor,
            registration_metadata=RegistrationMetadata(name=display_name),
            registered_at=registered_at or datetime.datetime(2024, 1, 1, 8, 0),
        )
        self.records.append(record)
        return record

    async def list_registered(self):
        return sorted(self.records, key=lambda r: (r.registered_at, r.id))

    async def latest_for_user(self, user_id):
        matches = [r for r in await self.list_registered() if r.user_id == user_id]
        return matches[-1] if matches else None

    async def add(self, identity, descriptor, registered_at):
        return self.enroll(identity.user_id, identity.display_name, descriptor, registered_at)


class MemoryContactStore:
    def __init__(self):
        self.contacts: list[ContactRead] = []

    def create(self, student_id, name, email=None, phone=None, email_pref=False, sms_pref=False):
        contact = ContactRead(
            id=len(self.contacts) + 1,
            student_id=student_id,
            name=name,
            email=email,
            phone=phone,
            notification_preferences={"email": email_pref, "sms": sms_pref},
        )
        self.contacts.append(contact)
        return contact

    async def list_all(self):
        return list(self.contacts)

    async def for_student(self, student_id):
        return [c for c in self.contacts if c.student_id == student_id]

    async def get(self, contact_id):
        return next((c for c in self.contacts if c.id == contact_id), None)

    async def add(self, contact):
        return self.create(contact.student_id, contact.name, contact.email, contact.phone)

    async def delete(self, contact_id):
        before = len(self.contacts)
        self.contacts = [c for c in self.contacts if c.id != contact_id]
        return len(self.contacts) < before


class MemoryLogStore:
    def __init__(self):
        self.entries: dict[int, dict] = {}
        self.fail_updates = False
        self.fail_creates = False

    async def create(self, entry):
        if self.fail_creates:
            raise StoreError("log store unavailable")
        log_id = len(self.entries) + 1
        self.entries[log_id] = {**entry.model_dump(), "id": log_id}
        return log_id

    async def update(self, log_id, **changes):
        if self.fail_updates:
            raise StoreError("log store unavailable")
        entry = self.entries[log_id]
        if entry["status"] != NotificationStatus.PROCESSING:
            return
        entry.update(changes)

    async def recent(self, limit=10):
        rows = sorted(self.entries.values(), key=lambda e: e["id"], reverse=True)
        return [NotificationLogRead(**row) for row in rows[:limit]]


class RecordingEmailTransport:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, to, subject, body):
        if to in self.failing:
            raise TransportError(f"mailbox {to} rejected the message")
        self.sent.append((to, subject, body))


class RecordingSmsTransport:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent: list[tuple[str, str]] = []

    async def send(self, to, body):
        if to in self.failing:
            raise TransportError(f"carrier rejected {to}")
        self.sent.append((to, body))


@pytest.fixture
def records():
    return MemoryRecordStore()


@pytest.fixture
def identities():
    return MemoryIdentityStore()


@pytest.fixture
def contacts():
    return MemoryContactStore()


@pytest.fixture
def logs():
    return MemoryLogStore()


@pytest.fixture
def email_transport():
    return RecordingEmailTransport()


@pytest.fixture
def sms_transport():
    return RecordingSmsTransport()
