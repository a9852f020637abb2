import asyncio
import datetime
import logging
import os
import sys

from dotenv import load_dotenv

script_dir = os.path.dirname(os.path.abspath(__file__))
if os.path.basename(script_dir) == 'scripts':
    project_root = os.path.dirname(script_dir)
else:
    project_root = script_dir

sys.path.append(project_root)
env_path = os.path.join(project_root, ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)

# Quiet the root logger and SQLAlchemy loggers
logging.basicConfig(level=logging.CRITICAL)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

from school_attendance.database import AsyncSessionLocal
from school_attendance.errors import StoreError
from school_attendance.stores.base import most_recent_per_user
from school_attendance.stores.sql import SqlIdentityStore, SqlRecordStore


async def show_attendance(on_date: datetime.date | None):
    print("\n" + "=" * 95)
    print(f" {'ID':<5} | {'Date':<12} | {'Time':<10} | {'Name':<20} | {'User ID':<15} | {'Status':<12}")
    print("=" * 95)

    try:
        async with AsyncSessionLocal() as session:
            events = await SqlRecordStore(session).find_events(on_date=on_date)
            names = most_recent_per_user(await SqlIdentityStore(session).list_registered())

            if not events:
                print(f" {'No records found.':<90}")
            for event in events:
                identity = names.get(event.user_id) if event.user_id else None
                name = (identity.display_name if identity else None) or "Unknown"
                user_id = event.user_id or "---"
                time_str = event.timestamp.strftime("%H:%M:%S")

                print(f" {event.id:<5} | {str(event.event_date):<12} | {time_str:<10} | {name:<20} | {user_id:<15} | {event.status.value:<12}")

    except StoreError as e:
        print(f"\n[!] Error fetching data: {e}")
        if "DATABASE_URL" in str(e):
            print("    Hint: Check your .env file location.")

    print("=" * 95 + "\n")


if __name__ == "__main__":
    selected = (
        datetime.datetime.strptime(sys.argv[1], "%Y-%m-%d").date() if len(sys.argv) > 1 else None
    )
    try:
        asyncio.run(show_attendance(selected))
    except KeyboardInterrupt:
        pass
