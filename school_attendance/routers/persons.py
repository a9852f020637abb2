import datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.database import get_db
from school_attendance.dependencies import get_recognition_service
from school_attendance.errors import FormatError
from school_attendance.schemas.identity import IdentityCreate, IdentitySummary
from school_attendance.services.descriptor import default_codec
from school_attendance.services.recognition import RecognitionService
from school_attendance.stores.sql import SqlIdentityStore

router = APIRouter(prefix="/persons", tags=["persons"])


@router.post("/register", response_model=IdentitySummary)
async def register_person(
    person_in: IdentityCreate,
    db: AsyncSession = Depends(get_db),
    recognition: RecognitionService = Depends(get_recognition_service),
):
    """Register a face and block duplicate employee IDs or faces."""
    try:
        descriptor = default_codec.encode(person_in.embedding)
    except FormatError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    identities = SqlIdentityStore(db)

    if person_in.employee_id:
        for existing in await identities.list_registered():
            metadata = existing.registration_metadata
            if (
                metadata is not None
                and metadata.employee_id == person_in.employee_id
                and existing.user_id != person_in.user_id
            ):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Employee ID '{person_in.employee_id}' already registered.",
                )

    match = await recognition.identify(person_in.embedding)
    if match.recognized and match.identity.user_id != person_in.user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f"Face already registered! Matched with: "
                f"{match.identity.display_name} ({match.identity.user_id})"
            ),
        )

    return await identities.add(person_in, descriptor, datetime.datetime.now())


@router.get("/", response_model=List[IdentitySummary])
async def list_persons(db: AsyncSession = Depends(get_db)):
    return await SqlIdentityStore(db).list_registered()
