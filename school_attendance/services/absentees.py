import datetime
from dataclasses import dataclass

from school_attendance.schemas.attendance import (
    QUALIFYING_STATUSES,
    AttendanceEventCreate,
    AttendanceStatus,
)
from school_attendance.schemas.metadata import SystemMetadata, metadata_name
from school_attendance.stores.base import IdentityStore, RecordStore, most_recent_per_user
from school_attendance.utils.logging import get_logger

logger = get_logger(__name__)

UNKNOWN_NAME = "Unknown"
# Automatic absence events are stamped at the last second of the day.
END_OF_DAY = datetime.time(23, 59, 59)


@dataclass(frozen=True)
class Absentee:
    user_id: str
    display_name: str


class AbsenteeResolver:
    """
    Two views of absence for a date:

    * computed absentees: registered users with no present, late or absent
      event yet (candidates for end-of-day marking);
    * recorded absentees: users that already carry an absent event.

    Unauthorized captures never count as presence.
    """

    def __init__(self, records: RecordStore, identities: IdentityStore):
        self.records = records
        self.identities = identities

    async def _settled_user_ids(self, on_date: datetime.date) -> set[str]:
        events = await self.records.find_events(on_date=on_date, statuses=QUALIFYING_STATUSES)
        return {event.user_id for event in events if event.user_id}

    async def resolve_absentees(self, on_date: datetime.date) -> list[Absentee]:
        registered = most_recent_per_user(await self.identities.list_registered())
        settled = await self._settled_user_ids(on_date)

        return [
            Absentee(user_id=user_id, display_name=identity.display_name or UNKNOWN_NAME)
            for user_id, identity in registered.items()
            if user_id not in settled
        ]

    async def recorded_absentees(self, on_date: datetime.date) -> list[Absentee]:
        events = await self.records.find_events(
            on_date=on_date, statuses=[AttendanceStatus.ABSENT]
        )
        registered = most_recent_per_user(await self.identities.list_registered())

        absentees: dict[str, Absentee] = {}
        for event in events:
            if not event.user_id or event.user_id in absentees:
                continue
            identity = registered.get(event.user_id)
            name = (identity.display_name if identity else None) or metadata_name(
                event.source
            )
            absentees[event.user_id] = Absentee(event.user_id, name or UNKNOWN_NAME)
        return list(absentees.values())

    async def mark_absentees(self, on_date: datetime.date, now: datetime.datetime) -> int:
        """Insert an absent event for every computed absentee; returns the count."""
        absentees = await self.resolve_absentees(on_date)
        if not absentees:
            logger.info("No absentees to mark for %s", on_date)
            return 0

        stamp = datetime.datetime.combine(on_date, END_OF_DAY, tzinfo=now.tzinfo)
        events = [
            AttendanceEventCreate(
                user_id=absentee.user_id,
                status=AttendanceStatus.ABSENT,
                timestamp=stamp,
                event_date=on_date,
                source=SystemMetadata(
                    automatic=True, name=absentee.display_name, recorded_at=now
                ),
            )
            for absentee in absentees
        ]
        inserted = await self.records.insert_events(events)
        logger.info("Marked %d absentees for %s", len(inserted), on_date)
        return len(inserted)
