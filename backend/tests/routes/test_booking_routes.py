import json

from conftest import auth_headers

MONDAY = "2030-01-07"


def book(client, user, tutor, **overrides):
    body = {"tutorId": tutor.id, "date": MONDAY, "time": "14:00"}
    body.update(overrides)
    return client.post("/api/bookings", json=body, headers=auth_headers(user))


class TestCreateBooking:
    def test_created_unpaid_with_server_price(self, client, student, tutor):
        response = book(client, student, tutor)

        assert response.status_code == 201
        body = response.json()
        assert body["tutorId"] == tutor.id
        assert body["tutorName"] == "Ada Tutor"
        assert body["date"] == MONDAY
        assert body["time"] == "14:00"
        assert body["status"] == "confirmed"
        assert body["paymentStatus"] == "pending"
        assert body["paymentAmount"] == 20.0
        assert body["isTrial"] is False

    def test_trial_booking(self, client, student, tutor):
        response = book(client, student, tutor, useTrial=True)

        assert response.status_code == 201
        assert response.json()["paymentAmount"] == 5.0
        assert response.json()["isTrial"] is True

    def test_client_cannot_set_amount(self, client, student, tutor):
        response = book(client, student, tutor, paymentAmount=1)
        assert response.status_code == 422

    def test_missing_time(self, client, student, tutor):
        response = book(client, student, tutor, time=None)

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "SELECTION_REQUIRED"

    def test_time_outside_availability(self, client, student, tutor):
        response = book(client, student, tutor, time="16:00")

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "SLOT_UNAVAILABLE"

    def test_double_booking_conflict(self, client, student, other_student, tutor):
        assert book(client, student, tutor).status_code == 201

        response = book(client, other_student, tutor)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "BOOKING_CONFLICT"

    def test_requires_authentication(self, client, tutor):
        response = client.post(
            "/api/bookings", json={"tutorId": tutor.id, "date": MONDAY, "time": "14:00"}
        )
        assert response.status_code == 401

    def test_suspended_account(self, client, db, student, tutor):
        student.is_suspended = True
        db.commit()

        response = book(client, student, tutor)

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "ACCOUNT_SUSPENDED"


class TestRecurringBookings:
    def test_series_created(self, client, student, tutor):
        response = client.post(
            "/api/bookings/recurring",
            json={"tutorId": tutor.id, "startDate": MONDAY, "time": "14:00", "weeks": 4},
            headers=auth_headers(student),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["weeks"] == 4
        assert body["totalAmount"] == 72.0
        assert body["discountPercent"] == 10
        assert [b["date"] for b in body["bookings"]] == [
            "2030-01-07",
            "2030-01-14",
            "2030-01-21",
            "2030-01-28",
        ]
        assert {b["recurringId"] for b in body["bookings"]} == {body["recurringId"]}

        series = client.get(
            f"/api/bookings/recurring/{body['recurringId']}", headers=auth_headers(student)
        )
        assert series.status_code == 200
        assert series.json()["totalAmount"] == 72.0

    def test_series_with_unsupported_length(self, client, student, tutor):
        response = client.post(
            "/api/bookings/recurring",
            json={"tutorId": tutor.id, "startDate": MONDAY, "time": "14:00", "weeks": 3},
            headers=auth_headers(student),
        )
        assert response.status_code == 400


class TestListingsAndCancellation:
    def test_listings(self, client, student, tutor_user, tutor):
        created = book(client, student, tutor).json()

        mine = client.get("/api/bookings/student", headers=auth_headers(student)).json()
        taught = client.get("/api/bookings/teacher", headers=auth_headers(tutor_user)).json()

        assert [b["id"] for b in mine["bookings"]] == [created["id"]]
        assert [b["id"] for b in taught["bookings"]] == [created["id"]]

    def test_cancel_frees_slot(self, client, student, other_student, tutor):
        created = book(client, student, tutor).json()

        response = client.delete(f"/api/bookings/{created['id']}", headers=auth_headers(student))

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["cancelledAt"] is not None
        assert book(client, other_student, tutor).status_code == 201

    def test_stranger_cannot_cancel(self, client, student, other_student, tutor):
        created = book(client, student, tutor).json()

        response = client.delete(
            f"/api/bookings/{created['id']}", headers=auth_headers(other_student)
        )
        assert response.status_code == 403

    def test_tutor_sets_meeting_link(self, client, student, tutor_user, tutor):
        created = book(client, student, tutor).json()

        response = client.patch(
            f"/api/bookings/{created['id']}/meeting-link",
            json={"meetingLink": "https://meet.example.com/abc"},
            headers=auth_headers(tutor_user),
        )

        assert response.status_code == 200
        assert response.json()["meetingLink"] == "https://meet.example.com/abc"

    def test_meeting_link_must_be_a_url(self, client, student, tutor_user, tutor):
        created = book(client, student, tutor).json()

        response = client.patch(
            f"/api/bookings/{created['id']}/meeting-link",
            json={"meetingLink": "javascript:alert(1)"},
            headers=auth_headers(tutor_user),
        )
        assert response.status_code == 422

    def test_unknown_booking(self, client, student):
        response = client.delete("/api/bookings/missing", headers=auth_headers(student))
        assert response.status_code == 404


class TestCheckoutFlow:
    def test_session_status_and_webhook(self, client, student, tutor):
        created = book(client, student, tutor).json()

        session = client.post(
            "/api/checkout/create-session",
            json={"bookingId": created["id"]},
            headers=auth_headers(student),
        )
        assert session.status_code == 200
        session_body = session.json()
        assert session_body["sessionId"] == f"cs_mock_{created['id']}"
        assert session_body["amount"] == 20.0
        assert "/booking/success?" in session_body["url"]

        status = client.get(f"/api/checkout/status/{created['id']}", headers=auth_headers(student))
        assert status.json()["paymentStatus"] == "pending"

        event = {
            "id": "evt_route",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": session_body["sessionId"],
                    "payment_status": "paid",
                    "payment_intent": "pi_route",
                    "metadata": {"booking_id": created["id"]},
                }
            },
        }
        ack = client.post(
            "/api/webhook/stripe",
            content=json.dumps(event),
            headers={"content-type": "application/json"},
        )
        assert ack.status_code == 200
        assert ack.json() == {
            "received": True,
            "eventType": "checkout.session.completed",
            "handled": True,
            "updated": 1,
            "refunded": 0,
        }

        status = client.get(f"/api/checkout/status/{created['id']}", headers=auth_headers(student))
        assert status.json()["paymentStatus"] == "paid"
        assert status.json()["paidAt"] is not None

    def test_trial_flag_must_match_booking(self, client, student, tutor):
        created = book(client, student, tutor).json()

        response = client.post(
            "/api/checkout/create-session",
            json={"bookingId": created["id"], "useTrial": True},
            headers=auth_headers(student),
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "TRIAL_MISMATCH"

    def test_cancel_releases_slot(self, client, student, other_student, tutor):
        created = book(client, student, tutor).json()

        response = client.post(
            "/api/checkout/cancel",
            json={"bookingId": created["id"]},
            headers=auth_headers(student),
        )

        assert response.status_code == 200
        assert response.json() == {
            "bookingId": created["id"],
            "released": True,
            "releasedCount": 1,
        }
        assert book(client, other_student, tutor).status_code == 201

    def test_malformed_webhook(self, client):
        response = client.post(
            "/api/webhook/stripe",
            content=b"not json",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_PAYLOAD"
