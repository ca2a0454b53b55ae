"""
Integration tests for teacher slot management, lesson outcomes and notifications.
"""

import pytest

SLOT_BODY = {"start_at": "2030-02-03T15:00:00", "end_at": "2030-02-03T15:50:00", "price_credits": 6}


async def book(client, student_headers, slot_id):
    response = await client.post("/v1/bookings", json={"slot_id": slot_id}, headers=student_headers)
    assert response.status_code == 201
    return response.json()["booking_id"]


@pytest.mark.asyncio
async def test_create_and_list_own_slots(client, teacher, other_teacher, auth_headers):
    response = await client.post("/v1/teacher/slots", json=SLOT_BODY, headers=auth_headers(teacher))

    assert response.status_code == 201
    data = response.json()
    assert data["owner_id"] == teacher.id
    assert data["status"] == "OPEN"
    assert data["price_credits"] == 6

    mine = (await client.get("/v1/teacher/slots", headers=auth_headers(teacher))).json()
    theirs = (await client.get("/v1/teacher/slots", headers=auth_headers(other_teacher))).json()
    assert mine["total"] == 1
    assert theirs["total"] == 0

    public = (await client.get("/v1/slots")).json()
    assert [s["id"] for s in public["slots"]] == [data["id"]]


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {**SLOT_BODY, "end_at": SLOT_BODY["start_at"]},
    {**SLOT_BODY, "end_at": "2030-02-03T14:00:00"},
    {**SLOT_BODY, "price_credits": 0},
])
async def test_create_slot_validation(client, teacher, auth_headers, body):
    response = await client.post("/v1/teacher/slots", json=body, headers=auth_headers(teacher))

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_price_change_applies_to_future_bookings_only(
    client, student, teacher, fund, make_slot, auth_headers
):
    await fund(student.id, 20)
    slot = await make_slot(teacher.id, price=5)
    booking_id = await book(client, auth_headers(student), slot.id)

    response = await client.patch(
        f"/v1/teacher/slots/{slot.id}", json={"price_credits": 9}, headers=auth_headers(teacher)
    )
    assert response.status_code == 200
    assert response.json()["price_credits"] == 9

    bookings = (await client.get("/v1/bookings", headers=auth_headers(student))).json()
    assert bookings[0]["id"] == booking_id
    assert bookings[0]["price_credits"] == 5


@pytest.mark.asyncio
async def test_cancel_open_slot(client, teacher, make_slot, auth_headers):
    slot = await make_slot(teacher.id)

    response = await client.patch(
        f"/v1/teacher/slots/{slot.id}", json={"status": "CANCELLED"}, headers=auth_headers(teacher)
    )

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    assert (await client.get("/v1/slots")).json()["total"] == 0

    again = await client.patch(
        f"/v1/teacher/slots/{slot.id}", json={"status": "CANCELLED"}, headers=auth_headers(teacher)
    )
    assert again.status_code == 409


async def own_slot_price(client, headers, slot_id):
    slots = (await client.get("/v1/teacher/slots", headers=headers)).json()["slots"]
    return next(s["price_credits"] for s in slots if s["id"] == slot_id)


@pytest.mark.asyncio
async def test_cancel_with_detail_edit_is_rejected(client, teacher, make_slot, auth_headers):
    slot = await make_slot(teacher.id, price=10)

    response = await client.patch(
        f"/v1/teacher/slots/{slot.id}",
        json={"status": "CANCELLED", "price_credits": 99},
        headers=auth_headers(teacher)
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION"
    assert await own_slot_price(client, auth_headers(teacher), slot.id) == 10
    assert (await client.get("/v1/slots")).json()["total"] == 1


@pytest.mark.asyncio
async def test_cancelled_slot_cannot_be_edited(client, teacher, make_slot, auth_headers):
    slot = await make_slot(teacher.id, price=10)
    cancel = await client.patch(
        f"/v1/teacher/slots/{slot.id}", json={"status": "CANCELLED"}, headers=auth_headers(teacher)
    )
    assert cancel.status_code == 200

    response = await client.patch(
        f"/v1/teacher/slots/{slot.id}", json={"price_credits": 99}, headers=auth_headers(teacher)
    )

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_BOOKING_INVALID_STATE"
    assert await own_slot_price(client, auth_headers(teacher), slot.id) == 10


@pytest.mark.asyncio
async def test_cancel_booked_slot_refunds_student(client, student, teacher, fund, make_slot, auth_headers):
    await fund(student.id, 10)
    slot = await make_slot(teacher.id, price=10)
    booking_id = await book(client, auth_headers(student), slot.id)

    response = await client.patch(
        f"/v1/teacher/slots/{slot.id}", json={"status": "CANCELLED"}, headers=auth_headers(teacher)
    )

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    assert (await client.get("/v1/credits/balance", headers=auth_headers(student))).json() == {"balance": 10}

    bookings = (await client.get("/v1/bookings", headers=auth_headers(student))).json()
    assert bookings[0]["id"] == booking_id
    assert bookings[0]["status"] == "CANCELLED"

    notes = (await client.get("/v1/notifications", headers=auth_headers(student))).json()
    assert [n["type"] for n in notes] == ["SESSION_CANCELLED"]


@pytest.mark.asyncio
async def test_other_teachers_slot_is_404(client, teacher, other_teacher, make_slot, auth_headers):
    slot = await make_slot(teacher.id)

    response = await client.patch(
        f"/v1/teacher/slots/{slot.id}", json={"price_credits": 3}, headers=auth_headers(other_teacher)
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_complete_and_no_show(client, student, teacher, other_teacher, fund, make_slot, auth_headers):
    await fund(student.id, 20)
    first = await make_slot(teacher.id, price=10)
    second = await make_slot(teacher.id, price=10, offset_hours=2)
    completed_id = await book(client, auth_headers(student), first.id)
    absent_id = await book(client, auth_headers(student), second.id)

    stranger = await client.post(
        f"/v1/teacher/bookings/{completed_id}/complete", headers=auth_headers(other_teacher)
    )
    assert stranger.status_code == 404

    done = await client.post(f"/v1/teacher/bookings/{completed_id}/complete", headers=auth_headers(teacher))
    assert done.status_code == 200
    assert done.json()["status"] == "COMPLETED"

    absent = await client.post(f"/v1/teacher/bookings/{absent_id}/no-show", headers=auth_headers(teacher))
    assert absent.status_code == 200
    assert absent.json()["status"] == "NO_SHOW"

    again = await client.post(f"/v1/teacher/bookings/{completed_id}/no-show", headers=auth_headers(teacher))
    assert again.status_code == 409

    # Neither outcome refunds
    assert (await client.get("/v1/credits/balance", headers=auth_headers(student))).json() == {"balance": 0}

    listed = (await client.get("/v1/teacher/bookings", headers=auth_headers(teacher))).json()
    assert {b["id"] for b in listed} == {completed_id, absent_id}


@pytest.mark.asyncio
async def test_notifications_read_flow(client, student, teacher, fund, make_slot, auth_headers):
    await fund(student.id, 20)
    await book(client, auth_headers(student), (await make_slot(teacher.id)).id)
    await book(client, auth_headers(student), (await make_slot(teacher.id, offset_hours=1)).id)
    headers = auth_headers(teacher)

    notes = (await client.get("/v1/notifications", headers=headers)).json()
    assert [n["type"] for n in notes] == ["NEW_BOOKING", "NEW_BOOKING"]
    assert not any(n["is_read"] for n in notes)

    one = await client.patch(f"/v1/notifications/{notes[0]['id']}/read", headers=headers)
    assert one.status_code == 200
    unread = (await client.get("/v1/notifications", params={"unread_only": True}, headers=headers)).json()
    assert len(unread) == 1

    everything = await client.patch("/v1/notifications/read-all", headers=headers)
    assert everything.json() == {"status": "success", "count": 1}

    foreign = await client.patch(f"/v1/notifications/{notes[0]['id']}/read", headers=auth_headers(student))
    assert foreign.status_code == 404
