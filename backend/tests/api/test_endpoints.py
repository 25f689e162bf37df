"""
Integration tests for API endpoints.

The app runs against the SQLite database configured in conftest; the SMTP
transport is always replaced by the in-memory provider.
"""

import os

import pytest
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from tracker.core.exceptions import ConnectivityError
from tracker.main import app
from tracker.middleware.rate_limit import limiter

ADMIN_EMAIL = os.environ["ADMIN_EMAIL"]
ADMIN_PASSWORD = os.environ["ADMIN_PASSWORD"]

API = "/api/v1"


@pytest.fixture
def client(auth_headers):
    """Client with a running lifespan and an empty clicks table."""
    limiter.reset()
    with TestClient(app) as test_client:
        test_client.delete(f"{API}/clicks", headers=auth_headers)
        yield test_client


class TestHealthEndpoints:

    def test_health_check_success(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["checks"]["database"]["status"] == "healthy"

    def test_liveness(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_root_endpoint(self, client):
        data = client.get("/").json()

        assert "name" in data
        assert "version" in data


class TestLogEndpoint:
    """Public click ingestion."""

    def test_repeated_clicks_aggregate(self, client, auth_headers):
        click = {"user_id": "u1", "dept": "sales", "campaign": "spring25", "time": "2025-03-01T10:00:00Z"}

        first = client.post("/log", json=click)
        second = client.post("/log", json={**click, "time": "2025-03-01T11:00:00Z"})

        assert first.json() == {"status": "logged", "action": "inserted"}
        assert second.json() == {"status": "logged", "action": "updated"}

        rows = client.get(f"{API}/clicks", headers=auth_headers).json()
        assert len(rows) == 1
        assert rows[0]["click_count"] == 2
        assert rows[0]["time"] == "2025-03-01T11:00:00Z"

    def test_request_metadata_fills_missing_fields(self, client, auth_headers):
        client.post("/log", json={"user_id": "u2"}, headers={"User-Agent": "MailPreview/1.0"})

        row = client.get(f"{API}/clicks", headers=auth_headers).json()[0]
        assert row["dept"] == ""
        assert row["campaign"] == ""
        assert row["ip"] == "testclient"
        assert row["user_agent"] == "MailPreview/1.0"

    def test_malformed_body_is_not_logged(self, client):
        response = client.post("/log", content=b"{not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 200
        assert response.json() == {"status": "error", "action": "not_logged"}

    def test_no_auth_required(self, client):
        response = client.post("/log", json={"user_id": "anon"})

        assert response.status_code == 200


class TestClickAdminEndpoints:

    def test_requires_token(self, client):
        assert client.get(f"{API}/clicks").status_code == 401
        assert client.delete(f"{API}/clicks").status_code == 401

    def test_rejects_bad_token(self, client):
        response = client.get(f"{API}/clicks", headers={"Authorization": "Bearer not-a-token"})

        assert response.status_code == 403

    def test_pending_records(self, client, auth_headers):
        response = client.post(
            f"{API}/clicks/pending",
            json={"records": [
                {"user_id": "u1", "dept": "sales", "campaign": 7},
                {"user_id": "u2", "dept": "sales", "campaign": 7},
            ]},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["created"] == 2
        rows = client.get(f"{API}/clicks", headers=auth_headers).json()
        assert {row["campaign"] for row in rows} == {"7"}
        assert all(row["click_count"] == 1 for row in rows)

    def test_pending_partial_failure(self, client, auth_headers):
        client.post("/log", json={"user_id": "dup", "dept": "sales", "campaign": "c1"})

        response = client.post(
            f"{API}/clicks/pending",
            json={"records": [
                {"user_id": "x", "dept": "sales", "campaign": "c1"},
                {"user_id": "dup", "dept": "sales", "campaign": "c1"},
            ]},
            headers=auth_headers,
        )

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["created"] == 1
        assert detail["errors"] == ["record 1: identity key already exists (dup/sales/c1)"]
        rows = client.get(f"{API}/clicks", headers=auth_headers).json()
        assert {row["user_id"] for row in rows} == {"dup", "x"}

    def test_delete_single_record(self, client, auth_headers):
        client.post("/log", json={"user_id": "u1"})
        row_id = client.get(f"{API}/clicks", headers=auth_headers).json()[0]["id"]

        assert client.delete(f"{API}/clicks/{row_id}", headers=auth_headers).status_code == 200
        assert client.delete(f"{API}/clicks/{row_id}", headers=auth_headers).status_code == 404

    def test_delete_all(self, client, auth_headers):
        client.post("/log", json={"user_id": "u1"})
        client.post("/log", json={"user_id": "u2"})

        response = client.delete(f"{API}/clicks", headers=auth_headers)

        assert response.json()["deleted"] == 2
        assert client.get(f"{API}/clicks", headers=auth_headers).json() == []


class TestSendEmailsEndpoint:

    @pytest.fixture
    def provider(self, fake_provider, pipeline_factory):
        with patch("tracker.api.v1.send.dispatch_pipeline", pipeline_factory(fake_provider)):
            yield fake_provider

    def test_mixed_batch(self, client, auth_headers, provider):
        response = client.post(
            f"{API}/send-emails",
            json={
                "recipients": [{"email": "a@x.com"}, {"email": "not-an-email"}, {"email": "c@x.com"}],
                "campaign": "Q3",
                "template": {"subject": "Action required", "body": "<p>Hi</p>{{LINK_TEXT}}"},
                "trackingLinks": ["https://t/1", "https://t/2", "https://t/3"],
                "linkMasking": {"enabled": True, "displayText": "Click Here"},
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {
            "status": "completed",
            "sent": 2,
            "failed": 1,
            "total": 3,
            "errors": ["not-an-email: Invalid email format"],
        }
        assert all(">Click Here</a>" in message.html_body for message in provider.delivered)

    def test_no_recipients(self, client, auth_headers, provider):
        response = client.post(
            f"{API}/send-emails",
            json={"recipients": [], "campaign": "Q3", "template": {"subject": "s", "body": "b"}},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "No recipients provided"
        assert provider.verify_calls == 0

    def test_missing_address_fails_only_that_recipient(self, client, auth_headers, provider):
        response = client.post(
            f"{API}/send-emails",
            json={
                "recipients": [{"email": "a@x.com"}, {"email": None}, {"name": "no email"}, {"email": 42}],
                "campaign": "Q3",
                "template": {"subject": "s", "body": "b"},
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {
            "status": "completed",
            "sent": 1,
            "failed": 3,
            "total": 4,
            "errors": [
                "None: Invalid email format",
                "None: Invalid email format",
                "42: Invalid email format",
            ],
        }
        assert provider.delivered_to == ["a@x.com"]

    def test_settings_storage_failure(self, client, auth_headers, provider):
        failing = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("database is locked")))
        with patch("tracker.api.v1.send.mail_settings_service.get_snapshot", failing):
            response = client.post(
                f"{API}/send-emails",
                json={
                    "recipients": [{"email": "a@x.com"}],
                    "campaign": "Q3",
                    "template": {"subject": "s", "body": "b"},
                },
                headers=auth_headers,
            )

        assert response.status_code == 500
        assert response.json()["detail"] == "Could not load email configuration"
        assert provider.verify_calls == 0

    def test_probe_failure(self, client, auth_headers, provider):
        provider.verify_error = ConnectivityError(
            ConnectivityError.UNREACHABLE, "Connection refused", host="smtp.test.local", port=587
        )

        response = client.post(
            f"{API}/send-emails",
            json={
                "recipients": [{"email": "a@x.com"}],
                "campaign": "Q3",
                "template": {"subject": "s", "body": "b"},
            },
            headers=auth_headers,
        )

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["kind"] == "unreachable"
        assert detail["total"] == 1
        assert provider.attempted == []

    def test_requires_token(self, client):
        assert client.post(f"{API}/send-emails", json={}).status_code == 401


class TestEmailConfigEndpoints:

    def test_save_and_read_back(self, client, auth_headers):
        saved = client.post(
            f"{API}/email-config",
            json={"host": "smtp.corp.example", "port": 465, "user": "awareness@corp.example",
                  "pass": "hunter2", "secure": True},
            headers=auth_headers,
        )
        current = client.get(f"{API}/email-config", headers=auth_headers)

        assert saved.status_code == 200
        data = current.json()
        assert data["host"] == "smtp.corp.example"
        assert data["port"] == 465
        assert data["password_set"] is True
        assert data["source"] == "database"
        assert "hunter2" not in current.text

    def test_missing_fields(self, client, auth_headers):
        response = client.post(f"{API}/email-config", json={"host": "smtp.corp.example"}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Missing required fields"

    def test_probe_unsaved_settings(self, client, auth_headers, fake_provider, pipeline_factory):
        with patch("tracker.api.v1.email_settings.dispatch_pipeline", pipeline_factory(fake_provider)):
            response = client.post(
                f"{API}/test-smtp",
                json={"host": "smtp.corp.example", "port": 587, "user": "u", "pass": "p"},
                headers=auth_headers,
            )

        assert response.status_code == 200
        assert response.json()["status"] == "success"
        assert fake_provider.verify_calls == 1

    def test_probe_failure_returns_hint(self, client, auth_headers, provider_class, pipeline_factory):
        provider = provider_class(verify_error=ConnectivityError(
            ConnectivityError.CREDENTIALS, "535 Invalid login", host="smtp.corp.example", port=587
        ))
        with patch("tracker.api.v1.email_settings.dispatch_pipeline", pipeline_factory(provider)):
            response = client.get(f"{API}/test-email", headers=auth_headers)

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["status"] == "failed"
        assert detail["kind"] == "credentials"
        assert detail["hint"] == ConnectivityError.HINTS[ConnectivityError.CREDENTIALS]


class TestAuthEndpoints:

    def test_signin_success(self, client):
        response = client.post(
            f"{API}/auth/signin", json={"username": ADMIN_EMAIL, "password": ADMIN_PASSWORD}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        verify = client.post(
            f"{API}/auth/verify", headers={"Authorization": f"Bearer {data['token']}"}
        )
        assert verify.json()["user"]["email"] == ADMIN_EMAIL

    def test_signin_wrong_password(self, client):
        response = client.post(f"{API}/auth/signin", json={"username": ADMIN_EMAIL, "password": "nope"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"

    def test_signin_missing_fields(self, client):
        response = client.post(f"{API}/auth/signin", json={"username": ADMIN_EMAIL})

        assert response.status_code == 400

    def test_signin_is_rate_limited(self, client):
        statuses = [
            client.post(f"{API}/auth/signin", json={"username": ADMIN_EMAIL, "password": "nope"}).status_code
            for _ in range(6)
        ]

        assert statuses[:5] == [401] * 5
        assert statuses[5] == 429
