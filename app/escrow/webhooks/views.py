"""
Webhook endpoint view for Stripe.

The view:
1. Verifies the webhook signature (through WebhookReconciler.receive)
2. Creates/retrieves the WebhookEvent record (idempotent)
3. Queues the event for async processing
4. Returns immediately

Usage:
    # In urls.py
    from escrow.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/gateway/", stripe_webhook, name="gateway-webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from escrow.exceptions import WebhookSignatureError
from escrow.services import build_engine
from escrow.tasks import process_webhook_event
from escrow.webhooks.reconciler import WebhookReconciler

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and queue Stripe webhook events.

    Security:
    - Unverifiable events are rejected with 400 and never stored
    - CSRF exemption required for external webhooks
    - Only POST requests accepted

    Idempotency:
    - WebhookEvent.gateway_event_id is unique
    - Already-processed events return 200 without being queued again

    Returns:
        HttpResponse with status:
        - 200: Event accepted (new or duplicate)
        - 400: Missing/invalid signature or payload
    """
    reconciler = WebhookReconciler.from_engine(build_engine())
    signature = request.headers.get("Stripe-Signature", "")

    try:
        webhook_event, needs_processing = reconciler.receive(request.body, signature)
    except WebhookSignatureError as e:
        logger.warning(
            "Webhook rejected",
            extra={"error": e.message, "gateway_code": e.gateway_code},
        )
        return HttpResponse(e.message, status=400)

    if not needs_processing:
        logger.info(
            "Webhook already processed, returning success",
            extra={"gateway_event_id": webhook_event.gateway_event_id},
        )
        return HttpResponse("Already processed", status=200)

    process_webhook_event.delay(str(webhook_event.id))
    logger.info(
        "Webhook queued for processing",
        extra={
            "gateway_event_id": webhook_event.gateway_event_id,
            "webhook_event_id": str(webhook_event.id),
        },
    )
    return HttpResponse("Accepted", status=200)
