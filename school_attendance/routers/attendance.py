import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.database import get_db
from school_attendance.dependencies import (
    get_absentee_resolver,
    get_attendance_service,
    get_recognition_service,
    get_stats_service,
)
from school_attendance.errors import FormatError
from school_attendance.schemas.attendance import (
    AbsenteeRead,
    AttendanceEventRead,
    AttendanceStatus,
    DailyStatsRead,
    IdentifyRequest,
    MarkAbsenteesRequest,
    RecordPresenceRequest,
)
from school_attendance.schemas.metadata import CaptureMetadata
from school_attendance.services.absentees import AbsenteeResolver
from school_attendance.services.attendance import AttendanceService
from school_attendance.services.recognition import RecognitionService
from school_attendance.services.stats import StatsService
from school_attendance.stores.sql import SqlRecordStore

router = APIRouter(prefix="/attendance", tags=["attendance"])


def _parse_date(value: Optional[str]) -> datetime.date:
    if not value:
        return datetime.date.today()
    try:
        return datetime.datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD")


@router.post("/identify")
async def identify_and_mark(
    request: IdentifyRequest,
    recognition: RecognitionService = Depends(get_recognition_service),
    attendance: AttendanceService = Depends(get_attendance_service),
):
    try:
        result = await recognition.identify(request.embedding)
    except FormatError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    if not result.recognized:
        return {"status": "unknown", "message": "No matching person found"}

    now = datetime.datetime.now()
    identity = result.identity
    outcome = await attendance.record(
        identity.user_id,
        AttendanceStatus.PRESENT,
        result.confidence,
        now,
        source=CaptureMetadata(
            camera_id=request.camera_id, confidence=result.confidence, captured_at=now
        ),
    )

    if outcome.created:
        return {
            "status": "success",
            "attendance_status": outcome.status.value,
            "user_id": identity.user_id,
            "display_name": identity.display_name,
            "confidence": result.confidence,
        }
    return {
        "status": "ignored",
        "message": "Attendance already marked today",
        "user_id": identity.user_id,
        "display_name": identity.display_name,
    }


@router.post("/record")
async def record_presence(
    request: RecordPresenceRequest,
    attendance: AttendanceService = Depends(get_attendance_service),
):
    try:
        outcome = await attendance.record(
            request.user_id, request.status, request.confidence, datetime.datetime.now()
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {
        "created": outcome.created,
        "status": outcome.status.value,
        "late": outcome.late,
    }


@router.get("/history", response_model=List[AttendanceEventRead])
async def get_attendance_history(
    limit: int = Query(100, ge=1, le=1000),
    date: Optional[str] = Query(None, description="Filter by date (YYYY-MM-DD)"),
    db: AsyncSession = Depends(get_db),
):
    """
    Fetch the most recent attendance events with optional date filtering.
    """
    on_date = _parse_date(date) if date else None
    return await SqlRecordStore(db).find_events(on_date=on_date, limit=limit)


@router.get("/absentees", response_model=List[AbsenteeRead])
async def computed_absentees(
    date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today"),
    resolver: AbsenteeResolver = Depends(get_absentee_resolver),
):
    """Registered users with no attendance event yet for the date."""
    return await resolver.resolve_absentees(_parse_date(date))


@router.get("/absentees/recorded", response_model=List[AbsenteeRead])
async def recorded_absentees(
    date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today"),
    resolver: AbsenteeResolver = Depends(get_absentee_resolver),
):
    return await resolver.recorded_absentees(_parse_date(date))


@router.post("/absentees/mark")
async def mark_absentees(
    request: MarkAbsenteesRequest,
    resolver: AbsenteeResolver = Depends(get_absentee_resolver),
):
    inserted = await resolver.mark_absentees(request.date, datetime.datetime.now())
    return {"success": True, "date": request.date.isoformat(), "absentees_marked": inserted}


@router.get("/stats", response_model=DailyStatsRead)
async def attendance_stats(
    date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today"),
    stats: StatsService = Depends(get_stats_service),
):
    return await stats.daily_stats(_parse_date(date))


@router.get("/users/{user_id}/count")
async def user_attendance_count(
    user_id: str, stats: StatsService = Depends(get_stats_service)
):
    return {"user_id": user_id, "count": await stats.user_arrival_count(user_id)}
