"""
Tests for WebhookReconciler.

Tests cover:
- Signature verification before anything is stored
- Deduplication by gateway event id
- Dispatch of stored events
"""

import json

import pytest

from escrow.exceptions import WebhookSignatureError
from escrow.models import Transaction, WebhookEvent
from escrow.state_machines import TransactionStatus, WebhookEventStatus
from escrow.tests.fakes import VALID_SIGNATURE, stripe_event


def encode(payload: dict) -> bytes:
    return json.dumps(payload).encode()


class TestReceive:
    """Tests for verifying and storing inbound events."""

    def test_stores_verified_event(self, reconciler):
        payload = stripe_event("payment_intent.succeeded", {"id": "pi_1"}, event_id="evt_store")

        webhook_event, needs_processing = reconciler.receive(encode(payload), VALID_SIGNATURE)

        assert needs_processing is True
        assert webhook_event.gateway_event_id == "evt_store"
        assert webhook_event.event_type == "payment_intent.succeeded"
        assert webhook_event.status == WebhookEventStatus.PENDING
        assert webhook_event.payload == payload

    def test_duplicate_delivery_reuses_row(self, reconciler):
        body = encode(stripe_event("payment_intent.succeeded", {"id": "pi_1"}, event_id="evt_dup"))

        first, _ = reconciler.receive(body, VALID_SIGNATURE)
        second, needs_processing = reconciler.receive(body, VALID_SIGNATURE)

        assert first.pk == second.pk
        assert needs_processing is True
        assert WebhookEvent.objects.filter(gateway_event_id="evt_dup").count() == 1

    def test_processed_event_is_not_processed_again(self, reconciler, processed_webhook_event):
        body = encode(processed_webhook_event.payload)

        webhook_event, needs_processing = reconciler.receive(body, VALID_SIGNATURE)

        assert webhook_event.pk == processed_webhook_event.pk
        assert needs_processing is False

    def test_missing_signature(self, reconciler, gateway):
        with pytest.raises(WebhookSignatureError) as exc_info:
            reconciler.receive(encode(stripe_event("x.y", {})), "")

        assert exc_info.value.message == "Missing Stripe-Signature header"
        assert gateway.calls_for("verify_webhook_signature") == []
        assert not WebhookEvent.objects.exists()

    def test_invalid_signature_stores_nothing(self, reconciler):
        with pytest.raises(WebhookSignatureError) as exc_info:
            reconciler.receive(encode(stripe_event("x.y", {})), "t=1,v1=forged")

        assert exc_info.value.message == "Invalid webhook signature"
        assert not WebhookEvent.objects.exists()

    def test_event_without_type_rejected(self, reconciler):
        with pytest.raises(WebhookSignatureError):
            reconciler.receive(encode({"id": "evt_no_type"}), VALID_SIGNATURE)

        assert not WebhookEvent.objects.exists()


class TestReconcile:
    """Tests for applying stored events."""

    def test_reconcile_applies_handler(self, reconciler, make_event, held_transaction):
        event = make_event(
            "payment_intent.payment_failed", {"id": held_transaction.payment_intent_id}
        )

        result = reconciler.reconcile(event)

        assert result.success
        assert Transaction.objects.get(pk=held_transaction.pk).status == TransactionStatus.FAILED
