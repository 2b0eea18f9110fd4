"""
Celery tasks for the escrow engine.

This module provides async tasks for:
- Processing gateway webhook events
- Replaying failed or stranded webhook events

The periodic auto-release sweep and payout retry live in escrow.workers
and are re-exported here so Celery autodiscovery registers them.

Usage:
    from escrow.tasks import process_webhook_event

    process_webhook_event.delay(str(webhook_event.id))
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from escrow.models import WebhookEvent
from escrow.services import build_engine
from escrow.state_machines import WebhookEventStatus
from escrow.webhooks.reconciler import WebhookReconciler

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

WEBHOOK_REPLAY_BATCH_SIZE = 100

# Pending events older than this were never picked up by a worker.
STRANDED_PENDING_THRESHOLD_MINUTES = 10


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": settings.ESCROW_WEBHOOK_MAX_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a stored webhook event.

    This task:
    1. Loads the WebhookEvent by ID
    2. Checks if already processed (idempotency)
    3. Marks as processing
    4. Dispatches to its handler inside a database transaction
    5. Marks as processed or failed

    Raises:
        Exception: Re-raised to trigger Celery retry (transient gateway
            errors while mapping a chargeback, database errors)
    """
    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.is_processed:
        logger.info(
            "WebhookEvent already processed, skipping",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "gateway_event_id": webhook_event.gateway_event_id,
            },
        )
        return {"status": "already_processed", "webhook_event_id": str(webhook_event_id)}

    webhook_event.mark_processing()
    webhook_event.save(update_fields=["status", "retry_count", "updated_at"])

    log_context = {
        "webhook_event_id": str(webhook_event_id),
        "gateway_event_id": webhook_event.gateway_event_id,
        "event_type": webhook_event.event_type,
        "retry_count": webhook_event.retry_count,
    }
    logger.info(f"Dispatching webhook: {webhook_event.event_type}", extra=log_context)

    reconciler = WebhookReconciler.from_engine(build_engine())

    try:
        with transaction.atomic():
            result = reconciler.reconcile(webhook_event)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        webhook_event.mark_failed(error_msg)
        webhook_event.save(update_fields=["status", "error_message", "updated_at"])
        logger.exception(
            "Webhook processing failed with exception",
            extra={**log_context, "error": error_msg},
        )
        raise

    if not result.success:
        error_msg = result.error or "Handler returned failure"
        webhook_event.mark_failed(error_msg)
        webhook_event.save(update_fields=["status", "error_message", "updated_at"])
        logger.warning(
            f"Webhook handler failed: {error_msg}",
            extra={**log_context, "error_code": result.error_code},
        )
        return {
            "status": "handler_failed",
            "webhook_event_id": str(webhook_event_id),
            "error": error_msg,
        }

    webhook_event.mark_processed()
    webhook_event.save(update_fields=["status", "processed_at", "error_message", "updated_at"])
    logger.info("Webhook processed successfully", extra=log_context)
    return {
        "status": "processed",
        "webhook_event_id": str(webhook_event_id),
        "gateway_event_id": webhook_event.gateway_event_id,
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task re-queuing failed webhooks under the retry ceiling,
    plus pending ones that were never picked up.
    """
    stranded_before = timezone.now() - timedelta(minutes=STRANDED_PENDING_THRESHOLD_MINUTES)
    candidates = WebhookEvent.objects.filter(
        Q(status=WebhookEventStatus.FAILED, retry_count__lt=settings.ESCROW_WEBHOOK_MAX_RETRIES)
        | Q(status=WebhookEventStatus.PENDING, created_at__lt=stranded_before)
    ).order_by("created_at")[:WEBHOOK_REPLAY_BATCH_SIZE]

    queued_count = 0
    for webhook in candidates:
        process_webhook_event.delay(str(webhook.id))
        queued_count += 1
        logger.info(
            "Queued webhook for retry",
            extra={
                "webhook_event_id": str(webhook.id),
                "gateway_event_id": webhook.gateway_event_id,
                "retry_count": webhook.retry_count,
            },
        )

    logger.info(
        f"Queued {queued_count} webhooks for retry",
        extra={"queued_count": queued_count},
    )
    return {"queued_count": queued_count}


# =============================================================================
# Re-exported Worker Tasks
# =============================================================================
# These tasks are defined in escrow.workers but re-exported here for
# Celery autodiscovery.

from escrow.workers import (  # noqa: E402, F401
    retry_outstanding_payouts,
    run_auto_release_sweep,
)
