"""Integration tests for /webhooks/iugu endpoint (app/routers/webhooks.py)"""
import asyncio
import time
from unittest.mock import patch

import httpx

from main import app

VALID_TOKEN = "test-webhook-token"

FORM_BODY = (
    "event=invoice.status_changed"
    f"&token={VALID_TOKEN}"
    "&data%5Bid%5D=INV-1"
    "&data%5Bstatus%5D=paid"
    "&data%5Bsubscription_id%5D=SUB-1"
)

HANDLED = {"ok": True, "skipped": False, "subscription_id": "s1", "alloyal_synced": True}


class TestIuguWebhookAuth:
    def test_invalid_token_returns_401(self, client_with_mock_db):
        client, _ = client_with_mock_db

        with patch("app.routers.webhooks.settings") as mock_settings, \
             patch("app.routers.webhooks.handle_invoice_event") as mock_handle:
            mock_settings.iugu_webhook_token = VALID_TOKEN
            response = client.post("/webhooks/iugu", json={"event": "invoice.status_changed", "token": "wrong"})

        assert response.status_code == 401
        mock_handle.assert_not_called()

    def test_unconfigured_token_returns_401(self, client_with_mock_db):
        client, _ = client_with_mock_db

        with patch("app.routers.webhooks.settings") as mock_settings:
            mock_settings.iugu_webhook_token = ""
            response = client.post("/webhooks/iugu", json={"event": "invoice.status_changed", "token": ""})

        assert response.status_code == 401

    def test_empty_body_returns_400(self, client_with_mock_db):
        client, _ = client_with_mock_db

        response = client.post("/webhooks/iugu", content=b"", headers={"Content-Type": "application/json"})

        assert response.status_code == 400

    def test_malformed_json_returns_400(self, client_with_mock_db):
        client, _ = client_with_mock_db

        response = client.post("/webhooks/iugu", content=b"{broken", headers={"Content-Type": "application/json"})

        assert response.status_code == 400


class TestIuguWebhookFormats:
    def test_form_encoded_delivery(self, client_with_mock_db):
        client, mock_db = client_with_mock_db

        with patch("app.routers.webhooks.settings") as mock_settings, \
             patch("app.routers.webhooks.handle_invoice_event", return_value=HANDLED) as mock_handle:
            mock_settings.iugu_webhook_token = VALID_TOKEN
            response = client.post(
                "/webhooks/iugu",
                content=FORM_BODY,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )

        assert response.status_code == 200
        assert response.json()["alloyal_synced"] is True
        db, event = mock_handle.call_args[0]
        assert db is mock_db
        assert event.invoice_id == "INV-1"
        assert event.status == "paid"
        assert event.subscription_id == "SUB-1"

    def test_json_delivery_with_nested_object(self, client_with_mock_db):
        client, _ = client_with_mock_db
        payload = {
            "event": "invoice.status_changed",
            "token": VALID_TOKEN,
            "data": {"object": {"id": "INV-2", "status": "paid", "subscription_id": "SUB-2"}},
        }

        with patch("app.routers.webhooks.settings") as mock_settings, \
             patch("app.routers.webhooks.handle_invoice_event", return_value=HANDLED) as mock_handle:
            mock_settings.iugu_webhook_token = VALID_TOKEN
            response = client.post("/webhooks/iugu", json=payload)

        assert response.status_code == 200
        event = mock_handle.call_args[0][1]
        assert event.subscription_id == "SUB-2"
        assert event.is_invoice_paid is True

    def test_ignored_event_still_200(self, client_with_mock_db):
        client, _ = client_with_mock_db
        skipped = {"ok": True, "skipped": True, "reason": "Evento não relevante",
                   "subscription_id": None, "alloyal_synced": False}

        with patch("app.routers.webhooks.settings") as mock_settings, \
             patch("app.routers.webhooks.handle_invoice_event", return_value=skipped):
            mock_settings.iugu_webhook_token = VALID_TOKEN
            response = client.post("/webhooks/iugu", json={"event": "invoice.created", "token": VALID_TOKEN})

        assert response.status_code == 200
        assert response.json()["skipped"] is True

    def test_plain_text_body_returns_400(self, client_with_mock_db):
        client, _ = client_with_mock_db

        with patch("app.routers.webhooks.handle_invoice_event") as mock_handle:
            response = client.post("/webhooks/iugu", content=b"hello world", headers={"Content-Type": "text/plain"})

        assert response.status_code == 400
        mock_handle.assert_not_called()


class TestIuguWebhookConcurrency:
    def test_slow_activation_does_not_block_other_requests(self, client_with_mock_db):
        """A paid invoice waiting on the loyalty platform must not stall /health"""
        def slow_handle(db, event):
            time.sleep(1.0)
            return HANDLED

        async def scenario():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
                async def health_after_delay():
                    await asyncio.sleep(0.1)
                    started = time.monotonic()
                    response = await http.get("/health")
                    return response, time.monotonic() - started

                return await asyncio.gather(
                    http.post("/webhooks/iugu", content=FORM_BODY,
                              headers={"Content-Type": "application/x-www-form-urlencoded"}),
                    health_after_delay(),
                )

        with patch("app.routers.webhooks.settings") as mock_settings, \
             patch("app.routers.webhooks.handle_invoice_event", side_effect=slow_handle):
            mock_settings.iugu_webhook_token = VALID_TOKEN
            webhook_response, (health_response, health_latency) = asyncio.run(scenario())

        assert webhook_response.status_code == 200
        assert webhook_response.json()["alloyal_synced"] is True
        assert health_response.status_code == 200
        assert health_latency < 0.6
