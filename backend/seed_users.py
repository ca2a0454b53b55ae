"""
Database seeding script for local development.

Creates an ADMIN, a TEACHER with two open slots, and a STUDENT with
a starting credit balance, then prints a bearer token for each user.
Run this script after the database is set up but before first use.
"""

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.core.jwt import create_user_token
from backend.app.db.session import AsyncSessionLocal
from backend.app.domain.booking.ledger import CreditLedger
from backend.app.domain.booking.slot_store import SlotStore
from backend.app.models.booking_enums import LedgerEntryKind
from backend.app.models.user import User
from backend.app.models.enums import UserRole
from sqlalchemy import select

STARTING_CREDITS = 50


async def seed_users():
    """
    Seed initial users with different roles.

    Creates:
    - 1 ADMIN user
    - 1 TEACHER user with two OPEN slots tomorrow
    - 1 STUDENT user with STARTING_CREDITS credits
    """
    async with AsyncSessionLocal() as db:
        print("🌱 Starting seeding...")

        result = await db.execute(select(User).where(User.username == "admin"))
        if result.scalar_one_or_none():
            print("ℹ️  ADMIN user already exists, skipping seeding")
            return

        admin = User(email="admin@tutoring.local", username="admin", role=UserRole.ADMIN)
        teacher = User(
            email="teacher@tutoring.local", username="teacher", display_name="Demo Teacher", role=UserRole.TEACHER
        )
        student = User(email="student@tutoring.local", username="student", role=UserRole.STUDENT)
        db.add_all([admin, teacher, student])
        await db.flush()

        tomorrow = (datetime.now(timezone.utc) + timedelta(days=1)).replace(hour=15, minute=0, second=0, microsecond=0)
        for offset, price in ((0, 10), (1, 15)):
            start = tomorrow + timedelta(hours=offset)
            await SlotStore.create(db, teacher.id, start, start + timedelta(minutes=50), price)
        print("✅ Created 2 OPEN slots for teacher")

        await CreditLedger.append(
            db, student.id, LedgerEntryKind.PURCHASE, STARTING_CREDITS, meta={"method": "seed"}
        )
        print(f"✅ Credited student with {STARTING_CREDITS} credits")

        await db.commit()

        print("\n🎉 Seeding completed successfully!")
        print("\nDevelopment tokens:")
        for user in (admin, teacher, student):
            token = create_user_token(user)
            print(f"  - {user.role.value:<8} {user.username}: {token}")


if __name__ == "__main__":
    asyncio.run(seed_users())
