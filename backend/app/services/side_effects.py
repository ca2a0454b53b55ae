"""
Post-commit side effects for the booking engine.

Runs strictly after a unit of work has committed. Nothing here can undo a
booking or a refund: provider and notification failures are retried a
bounded number of times, logged, written to the dead-letter queue and
reported back as a MeetingOutcome.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from sqlalchemy import update
from sqlalchemy.ext.asyncio import async_sessionmaker

from backend.app.core.config import Settings, settings
from backend.app.core.reliability import CircuitBreaker, CircuitOpenError, meeting_circuit_breaker, retry_async
from backend.app.models.booking import Booking
from backend.app.models.class_slot import ClassSlot
from backend.app.models.dlq import DeadLetterQueue
from backend.app.models.notification import NotificationType
from backend.app.models.user import User
from backend.app.services.meeting_provisioner import (
    BbbError, BbbMeetingProvisioner, MeetingParams, ProvisionStatus,
)
from backend.app.services.notification_service import Notifier

logger = logging.getLogger(__name__)


class MeetingOutcomeStatus(str, enum.Enum):
    CREATED = "CREATED"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    FAILED = "FAILED"


@dataclass(frozen=True)
class MeetingOutcome:
    status: MeetingOutcomeStatus
    join_link: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def failed(cls, reason: str) -> "MeetingOutcome":
        return cls(status=MeetingOutcomeStatus.FAILED, reason=reason)

    def as_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "join_link": self.join_link, "reason": self.reason}


def meeting_id_for_slot(slot_id: int) -> str:
    return f"slot-{slot_id}"


class SideEffectDispatcher:
    """
    Args:
        session_factory: Used for the join-link write and DLQ records, each in its own transaction
        provisioner: Meeting provider, None when not configured
        notifier: In-app notifications
        public_base_url: Base for the join link handed to students and teachers
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        provisioner: Optional[BbbMeetingProvisioner],
        notifier: Notifier,
        public_base_url: str = "",
        breaker: CircuitBreaker = meeting_circuit_breaker,
        config: Settings = settings,
    ):
        self._session_factory = session_factory
        self._provisioner = provisioner
        self._notifier = notifier
        self._public_base_url = public_base_url.rstrip("/")
        self._breaker = breaker
        self._config = config

    # --- Hooks ---

    async def after_booking_created(self, booking: Booking, slot: ClassSlot) -> MeetingOutcome:
        await self._notifier.notify(
            [booking.teacher_id],
            NotificationType.NEW_BOOKING,
            {
                "booking_id": booking.id,
                "slot_id": slot.id,
                "student_id": booking.student_id,
                "start_at": slot.start_at.isoformat(),
            },
        )
        return await self._provision_meeting(booking, slot)

    async def after_booking_cancelled(self, booking: Booking) -> None:
        await self._notifier.notify(
            [booking.teacher_id],
            NotificationType.BOOKING_CANCELLED,
            {"booking_id": booking.id, "slot_id": booking.slot_id, "student_id": booking.student_id},
        )

    async def after_slot_cancelled(self, slot: ClassSlot, booking: Optional[Booking]) -> None:
        if booking is None:
            return
        await self._notifier.notify(
            [booking.student_id],
            NotificationType.SESSION_CANCELLED,
            {"booking_id": booking.id, "slot_id": slot.id, "refunded_credits": booking.price_credits},
        )

    async def after_booking_completed(self, booking: Booking) -> None:
        await self._notifier.notify(
            [booking.student_id],
            NotificationType.LESSON_COMPLETED,
            {"booking_id": booking.id, "slot_id": booking.slot_id},
        )

    # --- Meeting provisioning ---

    async def _provision_meeting(self, booking: Booking, slot: ClassSlot) -> MeetingOutcome:
        if self._provisioner is None:
            return MeetingOutcome.failed("provider_not_configured")

        meeting_id = meeting_id_for_slot(slot.id)
        params = MeetingParams(
            name=await self._meeting_name(booking.teacher_id),
            duration_minutes=self._duration_minutes(slot),
            logout_url=self._config.cors_origin.rstrip("/"),
        )

        async def attempt():
            return await self._breaker.call(self._provisioner.create_meeting, meeting_id, params)

        try:
            result = await retry_async(
                attempt,
                attempts=self._config.side_effect_max_attempts,
                retry_on=(BbbError, httpx.HTTPError),
                base_delay=self._config.side_effect_retry_delay_seconds,
            )
        except CircuitOpenError:
            logger.warning("Meeting provider circuit open, skipping meeting %s", meeting_id)
            return MeetingOutcome.failed("circuit_open")
        except Exception as exc:
            logger.error("Meeting provisioning failed for booking %s: %s", booking.id, exc)
            await self._record_failure(
                "provision_meeting", exc, {"booking_id": booking.id, "slot_id": slot.id, "meeting_id": meeting_id}
            )
            return MeetingOutcome.failed(str(exc)[:500])

        join_link = f"{self._public_base_url}/bbb/sessions/{slot.id}/join"
        await self._store_join_link(slot.id, join_link)

        status = (
            MeetingOutcomeStatus.ALREADY_EXISTS
            if result.status == ProvisionStatus.ALREADY_EXISTS
            else MeetingOutcomeStatus.CREATED
        )
        return MeetingOutcome(status=status, join_link=join_link)

    async def _meeting_name(self, teacher_id: int) -> str:
        async with self._session_factory() as db:
            teacher = await db.get(User, teacher_id)
        name = (teacher.display_name or teacher.username) if teacher else "Teacher"
        return f"Class with {name}"

    @staticmethod
    def _duration_minutes(slot: ClassSlot) -> Optional[int]:
        seconds = (slot.end_at - slot.start_at).total_seconds()
        if seconds <= 0:
            return None
        return max(1, round(seconds / 60))

    async def _store_join_link(self, slot_id: int, join_link: str) -> None:
        try:
            async with self._session_factory() as db:
                await db.execute(
                    update(ClassSlot).where(ClassSlot.id == slot_id).values(meeting_link=join_link)
                )
                await db.commit()
        except Exception as exc:
            logger.exception("Failed to store join link for slot %s", slot_id)
            await self._record_failure("store_join_link", exc, {"slot_id": slot_id, "join_link": join_link})

    async def _record_failure(self, task_name: str, exc: Exception, payload: Dict[str, Any]) -> None:
        try:
            async with self._session_factory() as db:
                db.add(DeadLetterQueue.from_exception(
                    task_name, exc, payload, attempts=self._config.side_effect_max_attempts
                ))
                await db.commit()
        except Exception:
            logger.exception("Failed to write DLQ record for %s", task_name)
