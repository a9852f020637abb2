from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.cache import get_cache
from school_attendance.database import get_db
from school_attendance.services.absentees import AbsenteeResolver
from school_attendance.services.attendance import AttendanceService
from school_attendance.services.notification import AbsenceNotifier, NotificationDispatcher
from school_attendance.services.recognition import RecognitionService
from school_attendance.services.stats import StatsService
from school_attendance.services.transports import get_email_transport, get_sms_transport
from school_attendance.stores.sql import (
    SqlContactStore,
    SqlIdentityStore,
    SqlNotificationLogStore,
    SqlRecordStore,
)


def get_dispatcher(db: AsyncSession = Depends(get_db)) -> NotificationDispatcher:
    return NotificationDispatcher(
        SqlNotificationLogStore(db), get_email_transport(), get_sms_transport()
    )


def get_attendance_service(
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_cache),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> AttendanceService:
    return AttendanceService(
        SqlRecordStore(db),
        SqlIdentityStore(db),
        contacts=SqlContactStore(db),
        dispatcher=dispatcher,
        cache=cache,
    )


def get_recognition_service(db: AsyncSession = Depends(get_db)) -> RecognitionService:
    return RecognitionService(SqlIdentityStore(db))


def get_absentee_resolver(db: AsyncSession = Depends(get_db)) -> AbsenteeResolver:
    return AbsenteeResolver(SqlRecordStore(db), SqlIdentityStore(db))


def get_stats_service(db: AsyncSession = Depends(get_db)) -> StatsService:
    return StatsService(SqlRecordStore(db), SqlIdentityStore(db))


def get_absence_notifier(
    db: AsyncSession = Depends(get_db),
    resolver: AbsenteeResolver = Depends(get_absentee_resolver),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> AbsenceNotifier:
    return AbsenceNotifier(resolver, SqlContactStore(db), dispatcher)
