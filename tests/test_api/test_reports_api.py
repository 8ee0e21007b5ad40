"""
Tests for the /api/v1/reports adapter.
"""

import pytest
from fastapi.testclient import TestClient

from app.dependencies import get_lifecycle
from app.main import app

REPORTER = {"X-User-Id": "reporter-1", "X-User-Role": "reporter"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}

BODY = {
    "category": "electrical",
    "location": {"type": "specific", "block_id": 5, "room_number": "101"},
    "equipment_description": "Ceiling light",
    "problem_description": "Light flickering constantly in the room",
}


@pytest.fixture
def client(lifecycle):
    app.dependency_overrides[get_lifecycle] = lambda: lifecycle
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestReportsApi:

    def test_identity_required(self, client):
        assert client.post("/api/v1/reports", json=BODY).status_code == 401
        bad_role = {"X-User-Id": "u1", "X-User-Role": "janitor"}
        assert client.post("/api/v1/reports", json=BODY, headers=bad_role).status_code == 401

    def test_create_and_fetch(self, client):
        response = client.post("/api/v1/reports", json=BODY, headers=REPORTER)
        assert response.status_code == 201
        ticket_id = response.json()["report"]["ticket_id"]
        assert ticket_id == "AASTU-FIX-20250115-0001"

        fetched = client.get(f"/api/v1/reports/{ticket_id}", headers=REPORTER)
        assert fetched.status_code == 200
        assert fetched.json()["status"] == "submitted"

    def test_duplicate_returns_409(self, client):
        client.post("/api/v1/reports", json=BODY, headers=REPORTER)
        response = client.post("/api/v1/reports", json=BODY, headers=REPORTER)
        assert response.status_code == 409
        payload = response.json()
        assert payload["error_code"] == "REPORT_001"
        assert payload["details"]["duplicate_result"]["has_duplicates"] is True

        forced = client.post("/api/v1/reports?ignore_duplicates=true", json=BODY, headers=REPORTER)
        assert forced.status_code == 201

    def test_invalid_body(self, client):
        short = {**BODY, "problem_description": "broken"}
        assert client.post("/api/v1/reports", json=short, headers=REPORTER).status_code == 422

    def test_not_found(self, client):
        response = client.get("/api/v1/reports/AASTU-FIX-20250115-0999", headers=REPORTER)
        assert response.status_code == 404
        assert response.json()["error_code"] == "REPORT_003"

    def test_transition_errors_mapped(self, client):
        ticket_id = client.post("/api/v1/reports", json=BODY, headers=REPORTER).json()["report"]["ticket_id"]
        url = f"/api/v1/reports/{ticket_id}/transitions"

        forbidden = client.post(url, json={"to_status": "under_review"}, headers=REPORTER)
        assert forbidden.status_code == 403

        invalid = client.post(url, json={"to_status": "completed"}, headers=ADMIN)
        assert invalid.status_code == 409
        assert invalid.json()["error_code"] == "REPORT_002"

        missing = client.post(url, json={"to_status": "rejected", "rejection_reason": "no"}, headers=ADMIN)
        assert missing.status_code == 400

        ok = client.post(url, json={"to_status": "under_review"}, headers=ADMIN)
        assert ok.status_code == 200
        assert ok.json()["to_status"] == "under_review"

    def test_available_transitions_and_history(self, client):
        ticket_id = client.post("/api/v1/reports", json=BODY, headers=REPORTER).json()["report"]["ticket_id"]
        available = client.get(f"/api/v1/reports/{ticket_id}/transitions", headers=ADMIN).json()
        assert {t["to_status"] for t in available} == {"under_review", "rejected"}

        history = client.get(f"/api/v1/reports/{ticket_id}/history", headers=ADMIN).json()
        assert [h["action"] for h in history] == ["submit"]

    def test_rating_eligibility(self, client):
        ticket_id = client.post("/api/v1/reports", json=BODY, headers=REPORTER).json()["report"]["ticket_id"]
        response = client.get(f"/api/v1/reports/{ticket_id}/rating/eligibility", headers=REPORTER)
        assert response.status_code == 200
        assert response.json()["can_rate"] is False
