"""
Tests for the webhook Celery tasks.

Tests cover:
- process_webhook_event task
- retry_failed_webhooks task
"""

from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.utils import timezone

from escrow.models import Transaction, WebhookEvent
from escrow.state_machines import TransactionStatus, WebhookEventStatus
from escrow.tasks import (
    STRANDED_PENDING_THRESHOLD_MINUTES,
    process_webhook_event,
    retry_failed_webhooks,
)


@pytest.fixture(autouse=True)
def patched_engine(engine):
    with patch("escrow.tasks.build_engine", return_value=engine):
        yield engine


# =============================================================================
# process_webhook_event Tests
# =============================================================================


class TestProcessWebhookEvent:
    """Tests for the process_webhook_event task."""

    def test_process_pending_event_success(self, make_event, held_transaction):
        """Should apply the event and mark it processed."""
        event = make_event(
            "payment_intent.payment_failed", {"id": held_transaction.payment_intent_id}
        )

        result = process_webhook_event(str(event.id))

        assert result["status"] == "processed"
        assert result["gateway_event_id"] == event.gateway_event_id

        event.refresh_from_db()
        assert event.status == WebhookEventStatus.PROCESSED
        assert event.processed_at is not None
        assert event.retry_count == 1
        assert Transaction.objects.get(pk=held_transaction.pk).status == TransactionStatus.FAILED

    def test_skip_already_processed_event(self, processed_webhook_event):
        """Should skip already processed events."""
        with patch("escrow.webhooks.reconciler.dispatch_webhook") as mock_dispatch:
            result = process_webhook_event(str(processed_webhook_event.id))

        assert result["status"] == "already_processed"
        mock_dispatch.assert_not_called()

    def test_event_not_found(self, db):
        result = process_webhook_event(str(uuid4()))

        assert result["status"] == "not_found"

    def test_handler_failure_marks_event_failed(self, make_event):
        """Should mark the event failed when the handler returns a failure."""
        event = make_event("payment_intent.payment_failed", {})

        result = process_webhook_event(str(event.id))

        assert result["status"] == "handler_failed"
        assert "payment_intent_id" in result["error"]
        event.refresh_from_db()
        assert event.status == WebhookEventStatus.FAILED
        assert event.error_message == result["error"]

    def test_exception_marks_event_failed_and_raises(self, make_event):
        """Should mark the event failed and re-raise for Celery retry."""
        event = make_event("payment_intent.succeeded", {"id": "pi_1"})

        with patch("escrow.webhooks.reconciler.dispatch_webhook") as mock_dispatch:
            mock_dispatch.side_effect = RuntimeError("Database connection lost")

            with pytest.raises(RuntimeError, match="Database connection lost"):
                process_webhook_event(str(event.id))

        event.refresh_from_db()
        assert event.status == WebhookEventStatus.FAILED
        assert "Database connection lost" in event.error_message

    def test_retry_after_failure_succeeds(self, make_event):
        """A failed event processes normally on the next attempt."""
        event = make_event(
            "payment_intent.succeeded",
            {"id": "pi_1"},
            status=WebhookEventStatus.FAILED,
            retry_count=2,
        )

        result = process_webhook_event(str(event.id))

        assert result["status"] == "processed"
        event.refresh_from_db()
        assert event.retry_count == 3
        assert event.error_message is None


# =============================================================================
# retry_failed_webhooks Tests
# =============================================================================


class TestRetryFailedWebhooks:
    """Tests for the retry_failed_webhooks task."""

    def test_requeues_failed_and_stranded_events(self, make_event, settings):
        failed = make_event(
            "payment_intent.succeeded",
            {"id": "pi_1"},
            status=WebhookEventStatus.FAILED,
            retry_count=1,
        )
        make_event(
            "payment_intent.succeeded",
            {"id": "pi_2"},
            status=WebhookEventStatus.FAILED,
            retry_count=settings.ESCROW_WEBHOOK_MAX_RETRIES,
        )
        stranded = make_event("payment_intent.succeeded", {"id": "pi_3"})
        WebhookEvent.objects.filter(pk=stranded.pk).update(
            created_at=timezone.now() - timedelta(minutes=STRANDED_PENDING_THRESHOLD_MINUTES + 1)
        )
        make_event("payment_intent.succeeded", {"id": "pi_4"})
        make_event(
            "payment_intent.succeeded", {"id": "pi_5"}, status=WebhookEventStatus.PROCESSED
        )

        with patch("escrow.tasks.process_webhook_event.delay") as mock_delay:
            result = retry_failed_webhooks()

        assert result["queued_count"] == 2
        queued = {call.args[0] for call in mock_delay.call_args_list}
        assert queued == {str(failed.id), str(stranded.id)}

    def test_nothing_to_retry(self, db):
        with patch("escrow.tasks.process_webhook_event.delay") as mock_delay:
            result = retry_failed_webhooks()

        assert result == {"queued_count": 0}
        mock_delay.assert_not_called()
