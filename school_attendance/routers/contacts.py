from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.database import get_db
from school_attendance.schemas.contact import ContactCreate, ContactRead
from school_attendance.stores.sql import SqlContactStore

router = APIRouter(prefix="/contacts", tags=["contacts"])


@router.get("/", response_model=List[ContactRead])
async def list_contacts(
    student_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    contacts = SqlContactStore(db)
    if student_id:
        return await contacts.for_student(student_id)
    return await contacts.list_all()


@router.post("/", response_model=ContactRead, status_code=status.HTTP_201_CREATED)
async def create_contact(contact_in: ContactCreate, db: AsyncSession = Depends(get_db)):
    return await SqlContactStore(db).add(contact_in)


@router.get("/{contact_id}", response_model=ContactRead)
async def get_contact(contact_id: int, db: AsyncSession = Depends(get_db)):
    contact = await SqlContactStore(db).get(contact_id)
    if contact is None:
        raise HTTPException(status_code=404, detail="Contact not found")
    return contact


@router.delete("/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_contact(contact_id: int, db: AsyncSession = Depends(get_db)):
    if not await SqlContactStore(db).delete(contact_id):
        raise HTTPException(status_code=404, detail="Contact not found")
