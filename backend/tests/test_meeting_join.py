"""
Integration tests for the BigBlueButton join link handed out with a booking.
"""

import hashlib
from urllib.parse import parse_qsl, urlsplit

import httpx
import pytest

from backend.app.core.dependencies import get_meeting_provisioner
from backend.app.main import app
from backend.app.services.meeting_provisioner import BbbClient, BbbMeetingProvisioner, derive_meeting_passwords

SECRET = "s3cr3t"
SUCCESS_XML = "<response><returncode>SUCCESS</returncode></response>"


@pytest.fixture
def bbb_configured():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text=SUCCESS_XML))
    provisioner = BbbMeetingProvisioner(
        BbbClient("https://bbb.example.com/bigbluebutton", SECRET, transport=transport),
        password_salt="salt",
    )
    app.dependency_overrides[get_meeting_provisioner] = lambda: provisioner
    yield provisioner
    app.dependency_overrides.pop(get_meeting_provisioner, None)


async def book_with_link(client, student, teacher, fund, make_slot, auth_headers):
    await fund(student.id, 10)
    slot = await make_slot(teacher.id, price=10)
    response = await client.post("/v1/bookings", json={"slot_id": slot.id}, headers=auth_headers(student))
    assert response.status_code == 201
    return slot, response.json()["meeting_outcome"]["join_link"]


def join_params(location: str) -> dict:
    url = urlsplit(location)
    assert url.netloc == "bbb.example.com"
    assert url.path == "/bigbluebutton/api/join"
    query, _, checksum = url.query.rpartition("&checksum=")
    assert checksum == hashlib.sha1(f"join{query}{SECRET}".encode()).hexdigest()
    return dict(parse_qsl(url.query))


@pytest.mark.asyncio
async def test_student_follows_join_link_as_attendee(
    client, bbb_configured, student, teacher, fund, make_slot, auth_headers
):
    slot, join_link = await book_with_link(client, student, teacher, fund, make_slot, auth_headers)
    assert urlsplit(join_link).path == f"/bbb/sessions/{slot.id}/join"

    response = await client.get(urlsplit(join_link).path, headers=auth_headers(student))

    assert response.status_code == 302
    params = join_params(response.headers["location"])
    assert params["meetingID"] == f"slot-{slot.id}"
    assert params["fullName"] == "Student_A"
    assert params["password"] == derive_meeting_passwords(f"slot-{slot.id}", "salt")["attendee"]


@pytest.mark.asyncio
async def test_teacher_joins_as_moderator_with_query_token(
    client, bbb_configured, student, teacher, fund, make_slot, auth_headers
):
    slot, join_link = await book_with_link(client, student, teacher, fund, make_slot, auth_headers)
    token = auth_headers(teacher)["Authorization"].split(" ", 1)[1]

    response = await client.get(urlsplit(join_link).path, params={"token": token})

    assert response.status_code == 302
    params = join_params(response.headers["location"])
    assert params["password"] == derive_meeting_passwords(f"slot-{slot.id}", "salt")["moderator"]


@pytest.mark.asyncio
async def test_strangers_cannot_join(
    client, bbb_configured, student, other_student, teacher, other_teacher, fund, make_slot, auth_headers
):
    slot, _ = await book_with_link(client, student, teacher, fund, make_slot, auth_headers)
    path = f"/bbb/sessions/{slot.id}/join"

    assert (await client.get(path, headers=auth_headers(other_student))).status_code == 403
    assert (await client.get(path, headers=auth_headers(other_teacher))).status_code == 403
    assert (await client.get(path)).status_code == 401
    assert (await client.get("/bbb/sessions/9999/join", headers=auth_headers(student))).status_code == 404


@pytest.mark.asyncio
async def test_join_without_bbb_configured_is_501(client, student, teacher, fund, make_slot, auth_headers):
    await fund(student.id, 10)
    slot = await make_slot(teacher.id, price=10)
    await client.post("/v1/bookings", json={"slot_id": slot.id}, headers=auth_headers(student))

    response = await client.get(f"/bbb/sessions/{slot.id}/join", headers=auth_headers(student))

    assert response.status_code == 501
    assert response.json()["error_code"] == "ERR_BBB_NOT_CONFIGURED"
