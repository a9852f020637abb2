from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.database import get_db
from school_attendance.dependencies import get_absence_notifier
from school_attendance.errors import TransportError
from school_attendance.schemas.notification import (
    BatchSummaryRead,
    NotificationLogRead,
    NotifyAbsenteesRequest,
    SendNotificationRequest,
    SendNotificationResponse,
    SentMessage,
)
from school_attendance.services.notification import AbsenceNotifier
from school_attendance.services.transports import (
    get_email_transport,
    get_sms_transport,
    new_message_id,
)
from school_attendance.stores.sql import SqlContactStore, SqlNotificationLogStore
from school_attendance.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post("/send", response_model=SendNotificationResponse)
async def send_notification(request: SendNotificationRequest):
    """Deliver one message over a single channel."""
    logger.info("Processing %s notification for %s", request.type, request.recipient)
    try:
        if request.type == "email":
            await get_email_transport().send(request.recipient, request.subject, request.message)
        else:
            await get_sms_transport().send(request.recipient, request.message)
    except TransportError as exc:
        logger.error("Notification service error: %s", exc)
        return JSONResponse(status_code=502, content={"success": False, "error": str(exc)})

    return SendNotificationResponse(
        success=True,
        data=SentMessage(id=new_message_id(), method=request.type),
        message=f"{request.type.upper()} notification sent successfully",
    )


@router.post("/absentees", response_model=BatchSummaryRead)
async def notify_absentees(
    request: NotifyAbsenteesRequest,
    notifier: AbsenceNotifier = Depends(get_absence_notifier),
):
    """Notify the contacts of students recorded absent on the date."""
    summary = await notifier.notify_absentees(request.date, request.user_ids)
    return BatchSummaryRead(sent=summary.sent, failed=summary.failed)


@router.post("/test/{contact_id}")
async def send_test_notification(
    contact_id: int,
    db: AsyncSession = Depends(get_db),
    notifier: AbsenceNotifier = Depends(get_absence_notifier),
):
    contact = await SqlContactStore(db).get(contact_id)
    if contact is None:
        raise HTTPException(status_code=404, detail="Contact not found")
    result = await notifier.send_test(contact)
    return {"email_sent": result.email_sent, "sms_sent": result.sms_sent}


@router.get("/logs", response_model=List[NotificationLogRead])
async def notification_logs(
    limit: int = Query(10, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    return await SqlNotificationLogStore(db).recent(limit)
