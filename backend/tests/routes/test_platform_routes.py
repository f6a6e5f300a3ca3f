class TestAutoCompleteJob:
    def test_rejects_missing_secret(self, client, db):
        response = client.post("/api/jobs/auto-complete")

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "INVALID_JOB_SECRET"

    def test_rejects_wrong_secret(self, client, db):
        response = client.post(
            "/api/jobs/auto-complete", headers={"x-autocomplete-secret": "guess"}
        )
        assert response.status_code == 401

    def test_runs_with_secret(self, client, db):
        response = client.post(
            "/api/jobs/auto-complete", headers={"x-autocomplete-secret": "test-job-secret"}
        )

        assert response.status_code == 200
        assert response.json() == {"completed": 0}


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["environment"] == "test"

    def test_metrics_exposed(self, client, db, tutor):
        client.get(f"/api/tutors/{tutor.id}/availability")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        assert "tutorbook_http_requests_total" in response.text


class TestRequestId:
    def test_generated_when_absent(self, client):
        response = client.get("/health")
        assert response.headers.get("X-Request-ID")

    def test_inbound_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-abc-123"})
        assert response.headers["X-Request-ID"] == "req-abc-123"
