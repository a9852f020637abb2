import asyncio
import datetime
import os
import random
import sys

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from school_attendance.config import settings
from school_attendance.database import AsyncSessionLocal, init_models
from school_attendance.schemas.contact import ContactCreate, NotificationPreferences
from school_attendance.schemas.identity import IdentityCreate
from school_attendance.services.descriptor import default_codec
from school_attendance.stores.sql import SqlContactStore, SqlIdentityStore

DEMO_STUDENTS = [
    ("stu-001", "Ada Lovelace", "Grade 7"),
    ("stu-002", "Alan Turing", "Grade 7"),
    ("stu-003", "Grace Hopper", "Grade 8"),
]


async def seed():
    await init_models()
    async with AsyncSessionLocal() as session:
        identities = SqlIdentityStore(session)
        contacts = SqlContactStore(session)

        # Check if DB is already seeded
        if await identities.list_registered():
            print("Database already contains data. Skipping seed.")
            return

        print("Seeding database with demo students...")
        for user_id, name, department in DEMO_STUDENTS:
            # Random descriptor; real ones come from the face model.
            fake_embedding = [
                random.uniform(-0.2, 0.2) for _ in range(settings.DESCRIPTOR_DIMENSION)
            ]
            identity = IdentityCreate(
                user_id=user_id,
                display_name=name,
                department=department,
                position="student",
                embedding=fake_embedding,
            )
            await identities.add(
                identity, default_codec.encode(fake_embedding), datetime.datetime.now()
            )
            await contacts.add(
                ContactCreate(
                    student_id=user_id,
                    name=f"Parent of {name}",
                    email=f"{user_id}@parents.example",
                    notification_preferences=NotificationPreferences(email=True),
                )
            )
            print(f"Added student: {name} with ID: {user_id}")


if __name__ == "__main__":
    asyncio.run(seed())
