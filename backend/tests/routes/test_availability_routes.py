from conftest import auth_headers


class TestPublicAvailability:
    def test_weekly_map(self, client, tutor):
        response = client.get(f"/api/tutors/{tutor.id}/availability")

        assert response.status_code == 200
        body = response.json()
        assert body["tutorId"] == tutor.id
        assert body["hourlyRate"] == 20.0
        assert body["availability"] == {"monday": ["14:00", "15:00"], "wednesday": ["18:00"]}

    def test_unknown_tutor_is_not_an_error(self, client, db):
        response = client.get("/api/tutors/nobody/availability")

        assert response.status_code == 200
        assert response.json()["availability"] == {}

    def test_bookable_slots(self, client, tutor):
        response = client.get(
            f"/api/tutors/{tutor.id}/slots",
            params={"date": "2030-01-07", "timezone": "America/Los_Angeles"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["timezone"] == "America/Los_Angeles"
        assert body["slots"] == [
            {"time": "14:00", "localDate": "2030-01-07", "localTime": "6:00 AM"},
            {"time": "15:00", "localDate": "2030-01-07", "localTime": "7:00 AM"},
        ]

    def test_bookable_slots_bad_date(self, client, tutor):
        response = client.get(f"/api/tutors/{tutor.id}/slots", params={"date": "tomorrow"})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_BOOKING_DATE"


class TestTutorAvailabilityEditor:
    def test_requires_authentication(self, client, tutor):
        response = client.put("/api/tutor/availability", json={"availability": {}})

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "NOT_AUTHENTICATED"

    def test_garbage_principal(self, client, tutor):
        response = client.get(
            "/api/tutor/availability", headers={"x-ms-client-principal": "%%%not-base64"}
        )
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "INVALID_PRINCIPAL"

    def test_get_own_availability(self, client, tutor_user, tutor):
        response = client.get("/api/tutor/availability", headers=auth_headers(tutor_user))

        assert response.status_code == 200
        assert len(response.json()["availability"]) == 7

    def test_replace_availability(self, client, tutor_user, tutor):
        response = client.put(
            "/api/tutor/availability",
            json={"availability": {"tuesday": ["09:00", "08:00", "09:00"]}},
            headers=auth_headers(tutor_user),
        )

        assert response.status_code == 200
        assert response.json()["availability"]["tuesday"] == ["08:00", "09:00"]
        public = client.get(f"/api/tutors/{tutor.id}/availability").json()
        assert public["availability"] == {"tuesday": ["08:00", "09:00"]}

    def test_replace_rejects_bad_time(self, client, tutor_user, tutor):
        response = client.put(
            "/api/tutor/availability",
            json={"availability": {"tuesday": ["9am"]}},
            headers=auth_headers(tutor_user),
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_AVAILABILITY"

    def test_replace_rejects_unknown_fields(self, client, tutor_user, tutor):
        response = client.put(
            "/api/tutor/availability",
            json={"availability": {}, "hourlyRate": 999},
            headers=auth_headers(tutor_user),
        )
        assert response.status_code == 422

    def test_students_have_no_editor(self, client, student):
        response = client.get("/api/tutor/availability", headers=auth_headers(student))
        assert response.status_code == 404


class TestTrialAndPricing:
    def test_trial_status(self, client, student):
        response = client.get("/api/users/trial-status", headers=auth_headers(student))

        assert response.status_code == 200
        assert response.json() == {"eligible": True, "hasUsedTrial": False, "trialPrice": 5.0}

    def test_trial_status_creates_user_on_first_visit(self, client, db):
        from tutorbook.models.user import User

        newcomer = User(external_id="first-visit", email="new@example.com")
        response = client.get("/api/users/trial-status", headers=auth_headers(newcomer))

        assert response.status_code == 200
        assert db.query(User).filter(User.external_id == "first-visit").count() == 1

    def test_recurring_quote(self, client, student, tutor):
        response = client.post(
            "/api/pricing/quote",
            json={"tutorId": tutor.id, "isRecurring": True, "recurringWeeks": 4},
            headers=auth_headers(student),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["price"] == 72.0
        assert body["displayPrice"] == 72
        assert body["savings"] == 8.0
        assert body["discountPercent"] == 10

    def test_trial_quote(self, client, student, tutor):
        response = client.post(
            "/api/pricing/quote",
            json={"tutorId": tutor.id, "useTrial": True},
            headers=auth_headers(student),
        )
        assert response.json()["price"] == 5.0
        assert response.json()["isTrial"] is True

    def test_quote_with_bad_weeks(self, client, student, tutor):
        response = client.post(
            "/api/pricing/quote",
            json={"tutorId": tutor.id, "isRecurring": True, "recurringWeeks": 3},
            headers=auth_headers(student),
        )
        assert response.status_code == 400
