"""
HTTP-level tests for the relay application.

The app is built with create_app() around an injected config and a processor
whose downstream is an httpx.MockTransport.  Supabase is a MagicMock; no real
DB or network calls are made.
"""

import json
import logging
import time
from unittest.mock import AsyncMock, MagicMock

import httpx
from fastapi.testclient import TestClient

from mailrelay.config import GeneralSettings, ResendSettings, TargetSettings, WebhookConfig
from mailrelay.main import create_app
from mailrelay.services.signature import sign_webhook_payload
from mailrelay.services.webhook_handler import build_webhook_processor

SECRET = "whsec_endpoint_secret"
WEBHOOK_PATH = "/api/webhooks/resend"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_config(**general) -> WebhookConfig:
    return WebhookConfig(
        resend=ResendSettings(signing_secret=SECRET),
        target=TargetSettings(
            url="https://downstream.example.com/hook",
            auth_token="target-token",
            max_retries=2,
            retry_delay_ms=10,
        ),
        general=GeneralSettings(**general),
    )


class _Downstream:
    def __init__(self, status: int = 200, text: str = "ok"):
        self.status = status
        self.text = text
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, text=self.text)


def _make_client(config=None, downstream=None, storage_client=None):
    config = config or _make_config()
    downstream = downstream or _Downstream()
    processor = build_webhook_processor(
        config,
        storage_client=storage_client,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(downstream)),
        sleep=AsyncMock(),
    )
    app = create_app(config, processor=processor, storage_client=storage_client)
    return TestClient(app), downstream


def _resend_body(event_type: str = "email.delivered") -> str:
    return json.dumps({
        "type": event_type,
        "created_at": "2024-01-01T00:00:00.000Z",
        "data": {
            "id": "email-123",
            "from": "noreply@example.com",
            "to": ["customer@example.com"],
            "subject": "Hello",
            "created_at": "2024-01-01T00:00:00.000Z",
        },
    })


def _signed_headers(body: str, timestamp=None, secret: str = SECRET) -> dict:
    ts = str(int(time.time()) if timestamp is None else timestamp)
    return {
        "Content-Type": "application/json",
        "svix-signature": sign_webhook_payload(secret, ts, body),
        "svix-timestamp": ts,
    }


# ===========================================================================
# POST /api/webhooks/resend
# ===========================================================================

class TestReceiveResendWebhook:
    def test_valid_webhook_returns_200(self):
        client, downstream = _make_client()
        body = _resend_body()

        response = client.post(WEBHOOK_PATH, content=body, headers=_signed_headers(body))

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Webhook processed successfully"
        assert data["webhookId"].startswith("wh_")
        assert len(downstream.requests) == 1
        forwarded = json.loads(downstream.requests[0].content)
        assert forwarded["id"] == data["webhookId"]
        assert forwarded["eventType"] == "email.delivered"

    def test_missing_signature_returns_401(self):
        client, downstream = _make_client()
        body = _resend_body()
        headers = _signed_headers(body)
        del headers["svix-signature"]

        response = client.post(WEBHOOK_PATH, content=body, headers=headers)

        assert response.status_code == 401
        data = response.json()
        assert data["success"] is False
        assert data["message"] == "Invalid webhook signature"
        assert "Missing signature" in data["error"]
        assert downstream.requests == []

    def test_wrong_secret_returns_401(self):
        client, downstream = _make_client()
        body = _resend_body()

        response = client.post(
            WEBHOOK_PATH, content=body, headers=_signed_headers(body, secret="whsec_other")
        )

        assert response.status_code == 401
        assert "Signature mismatch" in response.json()["error"]
        assert downstream.requests == []

    def test_body_tampered_after_signing_returns_401(self):
        client, _ = _make_client()
        body = _resend_body()
        headers = _signed_headers(body)

        response = client.post(
            WEBHOOK_PATH, content=body.replace("Hello", "Hullo"), headers=headers
        )

        assert response.status_code == 401

    def test_stale_timestamp_returns_401(self):
        client, _ = _make_client()
        body = _resend_body()

        response = client.post(
            WEBHOOK_PATH,
            content=body,
            headers=_signed_headers(body, timestamp=int(time.time()) - 3600),
        )

        assert response.status_code == 401
        assert "too old" in response.json()["error"]

    def test_invalid_json_returns_400(self):
        client, downstream = _make_client()
        body = "not json"

        response = client.post(WEBHOOK_PATH, content=body, headers=_signed_headers(body))

        assert response.status_code == 400
        data = response.json()
        assert data["message"] == "Invalid webhook payload"
        assert data["error"].startswith("Invalid JSON payload")
        assert downstream.requests == []

    def test_missing_type_returns_400(self):
        client, downstream = _make_client()
        body = json.dumps({"data": {"id": "e", "from": "a@x.io", "to": ["b@x.io"]}})

        response = client.post(WEBHOOK_PATH, content=body, headers=_signed_headers(body))

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid payload structure: Missing event type"
        assert downstream.requests == []

    def test_downstream_5xx_returns_500_and_records_failure(self):
        mock_sb = MagicMock()
        downstream = _Downstream(503, "maintenance")
        client, _ = _make_client(downstream=downstream, storage_client=mock_sb)
        body = _resend_body("email.bounced")

        response = client.post(WEBHOOK_PATH, content=body, headers=_signed_headers(body))

        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert data["message"] == "Error processing webhook"
        assert "503" in data["error"]
        assert len(downstream.requests) == 3

        mock_sb.table.assert_called_once_with("failed_webhooks")
        row = mock_sb.table.return_value.insert.call_args[0][0]
        assert row["event_type"] == "email.bounced"
        assert row["payload"]["emailId"] == "email-123"
        assert row["error"] == data["error"]

    def test_downstream_4xx_is_not_retried(self):
        downstream = _Downstream(422, "unprocessable")
        client, _ = _make_client(downstream=downstream)
        body = _resend_body()

        response = client.post(WEBHOOK_PATH, content=body, headers=_signed_headers(body))

        assert response.status_code == 500
        assert len(downstream.requests) == 1

    def test_get_is_method_not_allowed(self):
        client, _ = _make_client()

        response = client.get(WEBHOOK_PATH)

        assert response.status_code == 405


# ===========================================================================
# Service endpoints
# ===========================================================================

class TestServiceEndpoints:
    def test_root(self):
        client, _ = _make_client()
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["message"] == "Resend Webhook Relay"

    def test_health(self):
        client, _ = _make_client()
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_health_config_valid(self):
        client, _ = _make_client()
        response = client.get("/health/config")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "config": "valid"}

    def test_health_config_reports_problems_without_secrets(self):
        config = WebhookConfig(target=TargetSettings(auth_token="super-secret-token"))
        client, _ = _make_client(config=config)

        response = client.get("/health/config")

        assert response.status_code == 503
        detail = response.json()["detail"]
        assert detail["message"] == "Webhook configuration error"
        assert detail["errors"] == [
            "Missing Resend webhook signing secret",
            "Missing target webhook URL",
        ]
        assert "super-secret-token" not in response.text

    def test_health_db_without_client(self):
        client, _ = _make_client(storage_client=None)
        response = client.get("/health/db")
        assert response.status_code == 503

    def test_health_db_reachable(self):
        mock_sb = MagicMock()
        client, _ = _make_client(storage_client=mock_sb)

        response = client.get("/health/db")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": "reachable"}
        mock_sb.table.assert_called_once_with("failed_webhooks")

    def test_health_db_query_failure(self):
        mock_sb = MagicMock()
        mock_sb.table.return_value.select.return_value.limit.return_value.execute.side_effect = (
            Exception("connection refused")
        )
        client, _ = _make_client(storage_client=mock_sb)

        response = client.get("/health/db")

        assert response.status_code == 503
        assert "connection refused" in response.json()["detail"]


class TestStartup:
    def test_lifespan_logs_configuration_problems(self, caplog):
        client, _ = _make_client(config=WebhookConfig())

        with caplog.at_level("WARNING", logger="mailrelay.main"):
            with client:
                pass

        assert "Missing target webhook URL" in caplog.text

    def test_debug_flag_enables_debug_logging(self):
        logger = logging.getLogger("mailrelay")
        previous = logger.level
        try:
            _make_client(config=_make_config(debug=True))
            assert logger.level == logging.DEBUG
        finally:
            logger.setLevel(previous)
