"""
Side-Effect Dispatcher and Meeting Provisioner Tests.

The BBB server is replaced by httpx.MockTransport; nothing leaves the process.
"""

import hashlib
from urllib.parse import parse_qsl, urlsplit

import httpx
import pytest
from sqlalchemy import select

from backend.app.core.reliability import CircuitBreaker
from backend.app.domain.booking.booking_engine import BookingEngine
from backend.app.domain.booking.results import BookingCreated
from backend.app.domain.booking.slot_store import SlotStore
from backend.app.domain.booking.booking_store import BookingStore
from backend.app.models.booking_enums import BookingStatus
from backend.app.models.dlq import DeadLetterQueue
from backend.app.models.notification import Notification, NotificationType
from backend.app.services.meeting_provisioner import (
    BbbClient, BbbError, BbbMeetingProvisioner, MeetingParams, ProvisionStatus,
    build_query, derive_meeting_passwords, normalize_base_url,
)
from backend.app.services.notification_service import Notifier
from backend.app.services.side_effects import MeetingOutcomeStatus, SideEffectDispatcher

SECRET = "s3cr3t"

SUCCESS_XML = "<response><returncode>SUCCESS</returncode><meetingID>slot-1</meetingID></response>"
NOT_UNIQUE_XML = (
    "<response><returncode>FAILED</returncode><messageKey>idNotUnique</messageKey>"
    "<message>A meeting already exists with that meeting ID.</message></response>"
)
BAD_CHECKSUM_XML = (
    "<response><returncode>FAILED</returncode><messageKey>checksumError</messageKey>"
    "<message>You did not pass the checksum security check</message></response>"
)


def bbb_transport(body: str, status_code: int = 200, calls: list = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        return httpx.Response(status_code, text=body, headers={"content-type": "text/xml"})
    return httpx.MockTransport(handler)


def provisioner_with(body: str, status_code: int = 200, calls: list = None) -> BbbMeetingProvisioner:
    client = BbbClient(
        "https://bbb.example.com/bigbluebutton/api/",
        SECRET,
        transport=bbb_transport(body, status_code, calls),
    )
    return BbbMeetingProvisioner(client, password_salt="salt")


def dispatcher_with(session_factory, provisioner, breaker=None) -> SideEffectDispatcher:
    return SideEffectDispatcher(
        session_factory=session_factory,
        provisioner=provisioner,
        notifier=Notifier(session_factory),
        public_base_url="https://api.example.com/",
        breaker=breaker or CircuitBreaker(failure_threshold=5, reset_timeout=60),
    )


# --- Signing ---

def test_build_query_sorts_and_encodes():
    query = build_query({"name": "Class with Ana & Bo", "record": False, "duration": None, "meetingID": "slot-1"})

    assert query == "meetingID=slot-1&name=Class%20with%20Ana%20%26%20Bo&record=false"


def test_signed_url_checksum_covers_method_query_and_secret():
    client = BbbClient("https://bbb.example.com/bigbluebutton", SECRET)

    url = client.build_signed_url("create", {"meetingID": "slot-1"})

    expected = hashlib.sha1(f"createmeetingID=slot-1{SECRET}".encode()).hexdigest()
    assert url == f"https://bbb.example.com/bigbluebutton/api/create?meetingID=slot-1&checksum={expected}"


def test_base_url_normalization():
    assert normalize_base_url("https://bbb.example.com/bigbluebutton/api/") == "https://bbb.example.com/bigbluebutton"
    assert normalize_base_url("https://bbb.example.com/") == "https://bbb.example.com"


def test_meeting_passwords_are_deterministic_and_distinct():
    first = derive_meeting_passwords("slot-7", "salt")
    again = derive_meeting_passwords("slot-7", "salt")
    other = derive_meeting_passwords("slot-8", "salt")

    assert first == again
    assert first != other
    assert first["moderator"].startswith("m_")
    assert first["attendee"].startswith("a_")
    assert len(first["moderator"]) == 22
    assert first["moderator"][2:] != first["attendee"][2:]


# --- Provisioner ---

@pytest.mark.asyncio
async def test_create_meeting_success_sends_signed_create():
    calls = []
    provisioner = provisioner_with(SUCCESS_XML, calls=calls)

    result = await provisioner.create_meeting("slot-1", MeetingParams(name="Class with T", duration_minutes=50))

    assert result.status == ProvisionStatus.SUCCESS
    assert len(calls) == 1
    url = urlsplit(str(calls[0].url))
    assert url.path == "/bigbluebutton/api/create"
    params = dict(parse_qsl(url.query))
    assert params["meetingID"] == "slot-1"
    assert params["duration"] == "50"
    assert params["moderatorPW"] == derive_meeting_passwords("slot-1", "salt")["moderator"]
    assert "checksum" in params


@pytest.mark.asyncio
async def test_meeting_already_exists_is_success():
    provisioner = provisioner_with(NOT_UNIQUE_XML)

    result = await provisioner.create_meeting("slot-1", MeetingParams(name="x"))

    assert result.status == ProvisionStatus.ALREADY_EXISTS


@pytest.mark.asyncio
async def test_other_bbb_failures_raise():
    provisioner = provisioner_with(BAD_CHECKSUM_XML)

    with pytest.raises(BbbError) as exc_info:
        await provisioner.create_meeting("slot-1", MeetingParams(name="x"))

    assert exc_info.value.message_key == "checksumError"


# --- Dispatcher ---

@pytest.mark.asyncio
async def test_booking_provisions_meeting_and_notifies_teacher(session_factory, student, teacher, fund, make_slot):
    await fund(student.id, 10)
    slot = await make_slot(teacher.id, price=10)
    engine = BookingEngine(session_factory, dispatcher=dispatcher_with(session_factory, provisioner_with(SUCCESS_XML)))

    result = await engine.create_booking(student.id, slot.id)

    assert isinstance(result, BookingCreated)
    outcome = result.meeting_outcome
    assert outcome.status == MeetingOutcomeStatus.CREATED
    assert outcome.join_link == f"https://api.example.com/bbb/sessions/{slot.id}/join"

    async with session_factory() as db:
        stored = await SlotStore.get(db, slot.id)
        assert stored.meeting_link == outcome.join_link

        notes = (await db.execute(select(Notification).where(Notification.user_id == teacher.id))).scalars().all()
        assert [n.type for n in notes] == [NotificationType.NEW_BOOKING]
        assert notes[0].payload["booking_id"] == result.booking.id


@pytest.mark.asyncio
async def test_existing_meeting_reported_as_already_exists(session_factory, student, teacher, fund, make_slot):
    await fund(student.id, 10)
    slot = await make_slot(teacher.id, price=10)
    engine = BookingEngine(session_factory, dispatcher=dispatcher_with(session_factory, provisioner_with(NOT_UNIQUE_XML)))

    result = await engine.create_booking(student.id, slot.id)

    assert result.meeting_outcome.status == MeetingOutcomeStatus.ALREADY_EXISTS
    assert result.meeting_outcome.join_link


@pytest.mark.asyncio
async def test_provider_failure_never_undoes_booking(session_factory, student, teacher, fund, make_slot):
    await fund(student.id, 10)
    slot = await make_slot(teacher.id, price=10)
    calls = []
    provisioner = provisioner_with("<html>bad gateway</html>", status_code=502, calls=calls)
    engine = BookingEngine(session_factory, dispatcher=dispatcher_with(session_factory, provisioner))

    result = await engine.create_booking(student.id, slot.id)

    assert isinstance(result, BookingCreated)
    assert result.meeting_outcome.status == MeetingOutcomeStatus.FAILED
    assert "502" in result.meeting_outcome.reason
    # Bounded retry (settings.side_effect_max_attempts)
    assert len(calls) == 2

    async with session_factory() as db:
        booking = await BookingStore.get(db, result.booking.id)
        assert booking.status == BookingStatus.BOOKED
        dead = (await db.execute(select(DeadLetterQueue))).scalars().all()
        assert len(dead) == 1
        assert dead[0].task_name == "provision_meeting"
        assert dead[0].booking_id == result.booking.id
        assert dead[0].retry_count == 2


@pytest.mark.asyncio
async def test_unconfigured_provider_reports_failure(session_factory, student, teacher, fund, make_slot):
    await fund(student.id, 10)
    slot = await make_slot(teacher.id, price=10)
    engine = BookingEngine(session_factory, dispatcher=dispatcher_with(session_factory, None))

    result = await engine.create_booking(student.id, slot.id)

    assert result.meeting_outcome.status == MeetingOutcomeStatus.FAILED
    assert result.meeting_outcome.reason == "provider_not_configured"


@pytest.mark.asyncio
async def test_open_circuit_skips_provider(session_factory, student, teacher, fund, make_slot):
    await fund(student.id, 10)
    slot = await make_slot(teacher.id, price=10)
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=60)
    breaker.record_failure()
    calls = []
    dispatcher = dispatcher_with(session_factory, provisioner_with(SUCCESS_XML, calls=calls), breaker=breaker)

    result = await BookingEngine(session_factory, dispatcher=dispatcher).create_booking(student.id, slot.id)

    assert result.meeting_outcome.reason == "circuit_open"
    assert calls == []


@pytest.mark.asyncio
async def test_dispatcher_crash_is_reported_softly(session_factory, student, teacher, fund, make_slot, mocker):
    await fund(student.id, 10)
    slot = await make_slot(teacher.id, price=10)
    dispatcher = mocker.Mock(spec=SideEffectDispatcher)
    dispatcher.after_booking_created = mocker.AsyncMock(side_effect=RuntimeError("boom"))

    result = await BookingEngine(session_factory, dispatcher=dispatcher).create_booking(student.id, slot.id)

    assert isinstance(result, BookingCreated)
    assert result.meeting_outcome.status == MeetingOutcomeStatus.FAILED
    assert result.meeting_outcome.reason == "dispatch_error: RuntimeError"


@pytest.mark.asyncio
async def test_cancellation_notifies_teacher_and_owner_cancel_notifies_student(
    session_factory, student, teacher, fund, make_slot
):
    await fund(student.id, 20)
    slot_a = await make_slot(teacher.id, price=10)
    slot_b = await make_slot(teacher.id, price=10, offset_hours=3)
    engine = BookingEngine(session_factory, dispatcher=dispatcher_with(session_factory, None))
    booking_a = (await engine.create_booking(student.id, slot_a.id)).booking
    await engine.create_booking(student.id, slot_b.id)

    await engine.cancel_booking(student.id, booking_a.id)
    await engine.cancel_slot(teacher.id, slot_b.id)

    async with session_factory() as db:
        teacher_types = (await db.execute(
            select(Notification.type).where(Notification.user_id == teacher.id).order_by(Notification.id)
        )).scalars().all()
        student_notes = (await db.execute(
            select(Notification).where(Notification.user_id == student.id)
        )).scalars().all()

    assert teacher_types == [
        NotificationType.NEW_BOOKING, NotificationType.NEW_BOOKING, NotificationType.BOOKING_CANCELLED
    ]
    assert [n.type for n in student_notes] == [NotificationType.SESSION_CANCELLED]
    assert student_notes[0].payload["refunded_credits"] == 10
