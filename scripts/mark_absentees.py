"""End-of-day sweep: mark absentees and notify their contacts.

    python scripts/mark_absentees.py [YYYY-MM-DD] [--notify]
"""
import argparse
import asyncio
import datetime
import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from school_attendance.config import settings
from school_attendance.database import AsyncSessionLocal, init_models
from school_attendance.services.absentees import AbsenteeResolver
from school_attendance.services.notification import AbsenceNotifier, NotificationDispatcher
from school_attendance.services.transports import get_email_transport, get_sms_transport
from school_attendance.stores.sql import (
    SqlContactStore,
    SqlIdentityStore,
    SqlNotificationLogStore,
    SqlRecordStore,
)
from school_attendance.utils.logging import configure_logging


async def run(on_date: datetime.date, notify: bool) -> None:
    await init_models()
    async with AsyncSessionLocal() as session:
        resolver = AbsenteeResolver(SqlRecordStore(session), SqlIdentityStore(session))
        marked = await resolver.mark_absentees(on_date, datetime.datetime.now())
        print(f"Marked {marked} absentees for {on_date.isoformat()}")

        if notify:
            dispatcher = NotificationDispatcher(
                SqlNotificationLogStore(session), get_email_transport(), get_sms_transport()
            )
            notifier = AbsenceNotifier(resolver, SqlContactStore(session), dispatcher)
            summary = await notifier.notify_absentees(on_date)
            print(f"Sent {summary.sent}, failed {summary.failed}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Mark absentees for a date")
    parser.add_argument("date", nargs="?", default=None, help="YYYY-MM-DD (default: today)")
    parser.add_argument("--notify", action="store_true", help="notify parent contacts")
    args = parser.parse_args()

    on_date = (
        datetime.datetime.strptime(args.date, "%Y-%m-%d").date()
        if args.date
        else datetime.date.today()
    )
    configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    asyncio.run(run(on_date, args.notify))


if __name__ == "__main__":
    main()
