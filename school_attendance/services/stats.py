import datetime

from school_attendance.schemas.attendance import (
    ARRIVAL_STATUSES,
    AttendanceStatus,
    DailyStatsRead,
)
from school_attendance.stores.base import IdentityStore, RecordStore


def _percentage(part: int, total: int) -> int:
    return round(part * 100 / total) if total > 0 else 0


class StatsService:
    def __init__(self, records: RecordStore, identities: IdentityStore):
        self.records = records
        self.identities = identities

    async def daily_stats(self, on_date: datetime.date) -> DailyStatsRead:
        total = len({identity.user_id for identity in await self.identities.list_registered()})
        events = await self.records.find_events(on_date=on_date)

        by_status: dict[AttendanceStatus, set[str]] = {}
        for event in events:
            if event.user_id:
                by_status.setdefault(event.status, set()).add(event.user_id)

        present = len(by_status.get(AttendanceStatus.PRESENT, ()))
        late = len(by_status.get(AttendanceStatus.LATE, ()))
        explicit_absent = len(by_status.get(AttendanceStatus.ABSENT, ()))
        # Users not yet marked count as absent.
        absent = max(explicit_absent, total - present - late)

        return DailyStatsRead(
            date=on_date,
            total=total,
            present=present,
            late=late,
            absent=absent,
            present_percentage=_percentage(present, total),
            late_percentage=_percentage(late, total),
            absent_percentage=_percentage(absent, total),
        )

    async def user_arrival_count(self, user_id: str) -> int:
        return await self.records.count_events(user_id=user_id, statuses=ARRIVAL_STATUSES)
