"""Tests for the Stripe webhook adapter and route."""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from unittest.mock import patch

import pytest
import stripe
from fastapi.testclient import TestClient

from staybook.api.factory import create_app
from staybook.stripe.webhook import (
    InvalidPayloadError,
    InvalidSignatureError,
    StripePaymentEvent,
    verify_and_extract,
)

WEBHOOK_SECRET = "whsec_test_secret"
ROUTE = "staybook.api.routes.webhooks_stripe"


def _sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _intent_event(event_type="payment_intent.succeeded", **intent):
    obj = {"id": "pi_123", "object": "payment_intent", "latest_charge": "ch_123"}
    obj.update(intent)
    return json.dumps(
        {"id": "evt_123", "object": "event", "type": event_type, "data": {"object": obj}}
    ).encode()


class TestVerifyAndExtract:
    def test_succeeded_event(self):
        payload = _intent_event()

        event = verify_and_extract(payload, _sign(payload), WEBHOOK_SECRET)

        assert event == StripePaymentEvent(
            event_id="evt_123",
            event_type="payment_intent.succeeded",
            intent_id="pi_123",
            payment_id="ch_123",
            failure_reason=None,
        )

    def test_failed_event_reason(self):
        payload = _intent_event(
            "payment_intent.payment_failed",
            latest_charge=None,
            last_payment_error={"code": "card_declined", "message": "Your card was declined."},
        )

        event = verify_and_extract(payload, _sign(payload), WEBHOOK_SECRET)

        assert event.payment_id == "pi_123"
        assert event.failure_reason == "Your card was declined."

    def test_wrong_secret(self):
        payload = _intent_event()

        with pytest.raises(InvalidSignatureError):
            verify_and_extract(payload, _sign(payload, secret="whsec_other"), WEBHOOK_SECRET)

    def test_stale_timestamp(self):
        payload = _intent_event()

        with pytest.raises(InvalidSignatureError):
            verify_and_extract(
                payload, _sign(payload, timestamp=int(time.time()) - 3600), WEBHOOK_SECRET
            )

    def test_body_not_json(self):
        payload = b"not json"

        with pytest.raises(InvalidPayloadError):
            verify_and_extract(payload, _sign(payload), WEBHOOK_SECRET)

    def test_raw_body_handed_to_sdk(self):
        payload = _intent_event()
        signature = _sign(payload)

        with patch(
            "staybook.stripe.webhook.stripe.Webhook.construct_event",
            wraps=stripe.Webhook.construct_event,
        ) as construct:
            event = verify_and_extract(payload, signature, WEBHOOK_SECRET)

        construct.assert_called_once_with(payload, signature, WEBHOOK_SECRET)
        assert event.intent_id == "pi_123"

    def test_missing_event_id(self):
        payload = json.dumps({"object": "event", "type": "payment_intent.succeeded"}).encode()

        with pytest.raises(InvalidPayloadError):
            verify_and_extract(payload, _sign(payload), WEBHOOK_SECRET)


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    app = create_app(role="public")
    return TestClient(app)


class TestStripeWebhookRoute:
    def test_missing_signature_header(self, client):
        response = client.post("/webhooks/stripe", content=b"{}")
        assert response.status_code == 422

    def test_bad_signature_400(self, client):
        response = client.post(
            "/webhooks/stripe", content=_intent_event(), headers={"Stripe-Signature": "t=1,v1=abc"}
        )
        assert response.status_code == 400
        assert response.text == "invalid signature"

    def test_secret_not_configured_500(self, monkeypatch):
        monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)
        client = TestClient(create_app(role="public"))

        payload = _intent_event()
        response = client.post(
            "/webhooks/stripe", content=payload, headers={"Stripe-Signature": _sign(payload)}
        )
        assert response.status_code == 500

    def test_succeeded_settles(self, client):
        payload = _intent_event()

        with patch(
            f"{ROUTE}.process_payment_success", return_value={"status": "settled", "record_id": "rec-1"}
        ) as success:
            response = client.post(
                "/webhooks/stripe", content=payload, headers={"Stripe-Signature": _sign(payload)}
            )

        assert response.status_code == 200
        assert response.text == "ok"
        kwargs = success.call_args.kwargs
        assert kwargs["gateway"] == "stripe"
        assert kwargs["gateway_order_id"] == "pi_123"
        assert kwargs["gateway_payment_id"] == "ch_123"

    def test_redelivery_reports_duplicate(self, client):
        payload = _intent_event()

        with patch(f"{ROUTE}.process_payment_success", return_value={"status": "duplicate"}):
            response = client.post(
                "/webhooks/stripe", content=payload, headers={"Stripe-Signature": _sign(payload)}
            )

        assert response.status_code == 200
        assert response.text == "duplicate"

    def test_failed_payment(self, client):
        payload = _intent_event(
            "payment_intent.payment_failed", last_payment_error={"code": "card_declined"}
        )

        with patch(
            f"{ROUTE}.process_payment_failure", return_value={"status": "failed", "record_id": "rec-1"}
        ) as failure:
            response = client.post(
                "/webhooks/stripe", content=payload, headers={"Stripe-Signature": _sign(payload)}
            )

        assert response.status_code == 200
        assert failure.call_args.kwargs["reason"] == "card_declined"

    def test_other_event_ignored(self, client):
        payload = _intent_event("customer.created")

        with patch(f"{ROUTE}.process_payment_success") as success:
            response = client.post(
                "/webhooks/stripe", content=payload, headers={"Stripe-Signature": _sign(payload)}
            )

        assert response.status_code == 200
        assert response.text == "ignored"
        success.assert_not_called()

    def test_event_without_intent_id(self, client):
        with patch(
            f"{ROUTE}.verify_and_extract",
            return_value=StripePaymentEvent(
                event_id="evt_1",
                event_type="payment_intent.succeeded",
                intent_id=None,
                payment_id=None,
                failure_reason=None,
            ),
        ):
            response = client.post(
                "/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=x"}
            )

        assert response.status_code == 400
