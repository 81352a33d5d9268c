"""
Email router tests (send, send-batch, status, config).

Every external edge is mocked: the config file lives in tmp_path, SendGrid is
an httpx.MockTransport, Nylas is a MagicMock(spec=NylasClient), and the
Supabase audit log is disabled. No real network or DB calls.

Coverage:
  - Default config sends through the fallback sender
  - SendGrid enabled at runtime via PATCH /config with an apiKey
  - Nylas send with a client-held grant restored into the session
  - Mock-grant sessions (direct grant) fall back to mock delivery
  - Config read / partial update / invariant rejection
  - Provider status
"""

import json
import os
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

# Ensure env vars are set before importing anything that triggers app imports
os.environ.setdefault("SESSION_SECRET", "test-session-secret")

from fastapi.testclient import TestClient

from app.dependencies import (
    get_config_service,
    get_dispatcher,
    get_nylas_client,
    get_secrets,
)
from app.main import app
from app.services.config_store import ConfigService
from app.services.dispatcher import EmailDispatcher
from app.services.nylas_client import NylasClient
from app.services.providers import FallbackSender, NylasSender, SendGridSender
from app.services.secrets import NYLAS_API_KEY, SENDGRID_API_KEY, SecretsProvider


def _email(to: str = "care@example.org") -> dict:
    return {"to": to, "subject": "Care inquiry", "body": "Hello,\nWe need help."}


class _Backends:
    """Per-test wiring of secrets, config, senders and the Nylas mock."""

    def __init__(self, tmp_path):
        self.secrets = SecretsProvider({})
        self.config = ConfigService(tmp_path / "app-config.json", self.secrets)
        self.sendgrid_requests: list[dict] = []

        self.nylas = MagicMock(spec=NylasClient)
        self.nylas.is_configured.side_effect = lambda: self.secrets.has(NYLAS_API_KEY)
        self.nylas.check_grant = AsyncMock(side_effect=lambda grant_id: grant_id == "grant-1")
        self.nylas.send_message = AsyncMock(return_value={"id": "nylas-msg"})

        self.dispatcher = EmailDispatcher(
            config=self.config,
            sendgrid=SendGridSender(
                self.secrets,
                api_uri="https://sendgrid.test",
                transport=httpx.MockTransport(self._sendgrid_handler),
            ),
            nylas=NylasSender(self.nylas),
            fallback=FallbackSender(),
            audit_log=False,
        )

    def _sendgrid_handler(self, request: httpx.Request) -> httpx.Response:
        self.sendgrid_requests.append(json.loads(request.content))
        return httpx.Response(202, headers={"X-Message-Id": f"sg-{len(self.sendgrid_requests)}"})

    def install(self) -> None:
        app.dependency_overrides[get_secrets] = lambda: self.secrets
        app.dependency_overrides[get_config_service] = lambda: self.config
        app.dependency_overrides[get_nylas_client] = lambda: self.nylas
        app.dependency_overrides[get_dispatcher] = lambda: self.dispatcher


@pytest.fixture
def backends(tmp_path):
    wiring = _Backends(tmp_path)
    wiring.install()
    yield wiring
    app.dependency_overrides.clear()


@pytest.fixture
def client(backends):
    return TestClient(app)


class TestSendBatch:
    """POST /api/email/send-batch"""

    def test_default_config_uses_fallback(self, client, backends):
        response = client.post(
            "/api/email/send-batch",
            json={"emails": [_email("a@example.org"), _email("b@example.org")]},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["provider"] == "fallback"
        assert (data["sent"], data["failed"], data["total"]) == (2, 0, 2)
        assert data["message"] == "2 of 2 emails sent successfully"
        assert all(r["message_id"].startswith("mock-msg-") for r in data["results"])
        assert backends.sendgrid_requests == []

    def test_empty_batch_is_rejected(self, client):
        response = client.post("/api/email/send-batch", json={"emails": []})

        assert response.status_code == 400
        assert response.json()["detail"] == "No emails to send"

    def test_invalid_email_payload_is_422(self, client):
        response = client.post("/api/email/send-batch", json={"emails": [{"to": "x@example.org"}]})

        assert response.status_code == 422

    def test_sendgrid_enabled_at_runtime(self, client, backends):
        """An apiKey sent with the config update enables SendGrid immediately."""
        patch_response = client.patch(
            "/api/email/config",
            json={"emailService": {"provider": "sendgrid", "sendgrid": {"apiKey": "SG.key"}}},
        )
        assert patch_response.status_code == 200

        response = client.post("/api/email/send-batch", json={"emails": [_email()]})

        data = response.json()
        assert data["provider"] == "sendgrid"
        assert data["results"][0]["message_id"] == "sg-1"
        assert backends.sendgrid_requests[0]["personalizations"] == [
            {"to": [{"email": "care@example.org"}]}
        ]

    def test_nylas_send_restores_client_grant(self, client, backends):
        """A grant held by the client is adopted into the session, then used to send."""
        backends.secrets.set(NYLAS_API_KEY, "nylas-key")
        client.patch(
            "/api/email/config",
            json={"emailService": {"provider": "nylas", "nylas": {"credentialPresent": True}}},
        )

        response = client.post(
            "/api/email/send-batch",
            json={"emails": [_email()]},
            headers={"X-Nylas-Grant-Id": "grant-1"},
        )

        data = response.json()
        assert data["provider"] == "nylas"
        assert data["sent"] == 1
        backends.nylas.send_message.assert_awaited_once()
        assert backends.nylas.send_message.await_args.args[0] == "grant-1"
        assert client.get("/api/nylas/grant-id").json() == {"grantId": "grant-1"}

    def test_header_grant_cannot_override_session_grant(self, client, backends):
        """An unverifiable header grant does not replace the linked mailbox."""
        backends.secrets.set(NYLAS_API_KEY, "nylas-key")
        client.patch(
            "/api/email/config",
            json={"emailService": {"provider": "nylas", "nylas": {"credentialPresent": True}}},
        )
        client.post("/api/nylas/set-grant-id", json={"grantId": "grant-1"})

        response = client.post(
            "/api/email/send-batch",
            json={"emails": [_email()]},
            headers={"X-Nylas-Grant-Id": "forged"},
        )

        assert response.json()["provider"] == "nylas"
        assert backends.nylas.send_message.await_args.args[0] == "grant-1"
        assert client.get("/api/nylas/grant-id").json() == {"grantId": "grant-1"}

    def test_nylas_without_grant_falls_back(self, client, backends):
        backends.secrets.set(NYLAS_API_KEY, "nylas-key")
        client.patch(
            "/api/email/config",
            json={"emailService": {"provider": "nylas", "nylas": {"credentialPresent": True}}},
        )

        response = client.post("/api/email/send-batch", json={"emails": [_email()]})

        assert response.json()["provider"] == "fallback"
        backends.nylas.send_message.assert_not_awaited()

    def test_mock_grant_session_uses_fallback(self, client, backends):
        backends.secrets.set(NYLAS_API_KEY, "nylas-key")
        client.patch(
            "/api/email/config",
            json={"emailService": {"provider": "nylas", "nylas": {"credentialPresent": True}}},
        )
        client.post("/api/direct/set-direct-grant")

        response = client.post(
            "/api/email/send-batch",
            json={"emails": [_email()]},
            headers={"X-Nylas-Grant-Id": "grant-1"},
        )

        assert response.json()["provider"] == "fallback"
        backends.nylas.check_grant.assert_not_awaited()
        backends.nylas.send_message.assert_not_awaited()


class TestSendOne:
    """POST /api/email/send"""

    def test_returns_single_result(self, client):
        response = client.post("/api/email/send", json=_email())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message_id"].startswith("mock-msg-")

    def test_accepts_from_and_reply_to_aliases(self, client, backends):
        client.patch(
            "/api/email/config",
            json={"emailService": {"provider": "sendgrid", "sendgrid": {"apiKey": "SG.key"}}},
        )
        payload = {**_email(), "from": "Jane Doe <jane@example.com>", "replyTo": "jane@example.com"}

        response = client.post("/api/email/send", json=payload)

        assert response.json()["success"] is True
        sent = backends.sendgrid_requests[0]
        assert sent["from"] == {"email": "jane@example.com", "name": "Jane Doe"}
        assert sent["reply_to"] == {"email": "jane@example.com"}


class TestConfigEndpoints:
    """GET / PATCH /api/email/config"""

    def test_get_returns_default_document(self, client):
        response = client.get("/api/email/config")

        assert response.status_code == 200
        assert response.json() == {
            "emailService": {
                "provider": "fallback",
                "sendgrid": {"credentialPresent": False},
                "nylas": {"credentialPresent": False},
            }
        }

    def test_patch_merges_and_hides_api_key(self, client, backends):
        response = client.patch(
            "/api/email/config",
            json={"emailService": {"sendgrid": {"apiKey": "SG.secret"}}},
        )

        assert response.status_code == 200
        document = response.json()
        assert document["emailService"]["provider"] == "fallback"
        assert document["emailService"]["sendgrid"] == {"credentialPresent": True}
        assert "SG.secret" not in response.text
        assert backends.secrets.get(SENDGRID_API_KEY) == "SG.secret"

    def test_provider_without_credential_is_422(self, client):
        response = client.patch("/api/email/config", json={"emailService": {"provider": "nylas"}})

        assert response.status_code == 422
        assert client.get("/api/email/config").json()["emailService"]["provider"] == "fallback"

    def test_unknown_provider_is_422(self, client):
        response = client.patch(
            "/api/email/config", json={"emailService": {"provider": "carrier-pigeon"}}
        )

        assert response.status_code == 422


class TestStatus:
    """GET /api/email/status"""

    def test_default_status(self, client):
        response = client.get("/api/email/status")

        assert response.status_code == 200
        assert response.json() == {
            "provider": "fallback",
            "sendgridAvailable": False,
            "nylasAvailable": False,
            "grantInSession": False,
            "usingMockGrant": False,
        }

    def test_reflects_session_and_keys(self, client, backends):
        backends.secrets.set(SENDGRID_API_KEY, "SG.key")
        client.post("/api/direct/set-direct-grant")

        data = client.get("/api/email/status").json()

        assert data["sendgridAvailable"] is True
        assert data["grantInSession"] is True
        assert data["usingMockGrant"] is True

    def test_reload_rereads_config_file(self, client, backends):
        client.get("/api/email/config")
        backends.config.path.write_text(json.dumps({
            "emailService": {
                "provider": "sendgrid",
                "sendgrid": {"credentialPresent": True},
                "nylas": {"credentialPresent": False},
            }
        }))

        assert client.get("/api/email/status").json()["provider"] == "fallback"
        assert client.get("/api/email/status?reload=true").json()["provider"] == "sendgrid"


class TestHealth:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_db_health_without_supabase_is_503(self, client, monkeypatch):
        from app import db

        monkeypatch.setattr(db, "supabase_admin", None)

        assert client.get("/health/db").status_code == 503
