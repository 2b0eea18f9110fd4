"""
Tests for the Stripe webhook view.

Tests cover:
- Signature verification
- Webhook event creation and idempotency
- Task queuing
"""

import json
from unittest.mock import patch

import pytest
from django.test import RequestFactory

from escrow.models import WebhookEvent
from escrow.state_machines import WebhookEventStatus
from escrow.tests.fakes import VALID_SIGNATURE, stripe_event
from escrow.webhooks.views import stripe_webhook

WEBHOOK_PATH = "/api/v1/escrow/webhooks/gateway/"


# =============================================================================
# Setup
# =============================================================================


@pytest.fixture
def rf():
    """Request factory for creating test requests."""
    return RequestFactory()


@pytest.fixture
def mock_task():
    with patch("escrow.webhooks.views.process_webhook_event") as task:
        yield task


@pytest.fixture(autouse=True)
def patched_engine(engine):
    with patch("escrow.webhooks.views.build_engine", return_value=engine):
        yield engine


def make_webhook_request(rf, payload: dict, signature: str | None = VALID_SIGNATURE):
    """Create a POST request to the webhook endpoint."""
    headers = {}
    if signature is not None:
        headers["HTTP_STRIPE_SIGNATURE"] = signature
    return rf.post(
        WEBHOOK_PATH,
        data=json.dumps(payload),
        content_type="application/json",
        **headers,
    )


# =============================================================================
# Signature Verification Tests
# =============================================================================


class TestStripeWebhookSignature:
    """Tests for signature verification."""

    def test_missing_signature_returns_400(self, rf, mock_task):
        """Should return 400 if Stripe-Signature header is missing."""
        request = make_webhook_request(rf, stripe_event("payment_intent.succeeded", {}), None)

        response = stripe_webhook(request)

        assert response.status_code == 400
        assert b"Missing Stripe-Signature header" in response.content
        mock_task.delay.assert_not_called()

    def test_invalid_signature_returns_400(self, rf, mock_task):
        """Should return 400 and store nothing if verification fails."""
        request = make_webhook_request(
            rf, stripe_event("payment_intent.succeeded", {}), "t=1,v1=forged"
        )

        response = stripe_webhook(request)

        assert response.status_code == 400
        assert b"Invalid webhook signature" in response.content
        assert not WebhookEvent.objects.exists()
        mock_task.delay.assert_not_called()


# =============================================================================
# Event Handling Tests
# =============================================================================


class TestStripeWebhookEventHandling:
    """Tests for storing and queuing events."""

    def test_new_event_is_stored_and_queued(self, rf, mock_task):
        """Should create a pending WebhookEvent and queue it."""
        payload = stripe_event("charge.dispute.created", {"id": "dp_1"}, event_id="evt_new")

        response = stripe_webhook(make_webhook_request(rf, payload))

        assert response.status_code == 200
        assert response.content == b"Accepted"
        webhook_event = WebhookEvent.objects.get(gateway_event_id="evt_new")
        assert webhook_event.status == WebhookEventStatus.PENDING
        mock_task.delay.assert_called_once_with(str(webhook_event.id))

    def test_processed_event_is_not_queued_again(self, rf, mock_task, processed_webhook_event):
        """Should acknowledge a redelivered event that was already processed."""
        response = stripe_webhook(make_webhook_request(rf, processed_webhook_event.payload))

        assert response.status_code == 200
        assert response.content == b"Already processed"
        mock_task.delay.assert_not_called()

    def test_redelivered_failed_event_is_queued(self, rf, mock_task, make_event):
        """Should queue an event whose earlier processing failed."""
        failed = make_event(
            "payment_intent.payment_failed",
            {"id": "pi_x"},
            status=WebhookEventStatus.FAILED,
            retry_count=1,
        )

        response = stripe_webhook(make_webhook_request(rf, failed.payload))

        assert response.status_code == 200
        mock_task.delay.assert_called_once_with(str(failed.id))

    def test_get_not_allowed(self, rf):
        response = stripe_webhook(rf.get(WEBHOOK_PATH))

        assert response.status_code == 405
