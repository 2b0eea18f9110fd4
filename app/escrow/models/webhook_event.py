"""
WebhookEvent model for gateway webhook event tracking.

Every verified webhook is stored before it is interpreted. The unique
``gateway_event_id`` turns a redelivered event into a lookup instead of a
second round of side effects; the handlers themselves are also
check-then-write, so replaying a stored event is safe too.

Usage:
    event, created = WebhookEvent.objects.get_or_create(
        gateway_event_id="evt_1234567890",
        defaults={"event_type": "charge.dispute.created", "payload": payload},
    )
    if not created and event.is_processed:
        return HttpResponse(status=200)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from escrow.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks gateway webhook events for idempotent processing.

    Processing Flow:
        1. Webhook arrives, signature verified
        2. Insert/get WebhookEvent by gateway_event_id
        3. If PROCESSED -> acknowledge without re-processing
        4. Otherwise queue escrow.tasks.process_webhook_event
        5. Task marks PROCESSING, dispatches, then PROCESSED or FAILED
        6. FAILED events are replayed by retry_failed_webhooks
    """

    gateway_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Gateway event id (evt_xxx)",
    )
    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Gateway event type (e.g. 'payment_intent.payment_failed')",
    )
    payload = models.JSONField(
        help_text="Full verified event payload",
    )
    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )
    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )
    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )
    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "retry_count"], name="escrow_webhook_retry_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.gateway_event_id}, {self.event_type})"

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def can_retry(self) -> bool:
        """Failed and still under the retry ceiling."""
        return (
            self.status == WebhookEventStatus.FAILED
            and self.retry_count < settings.ESCROW_WEBHOOK_MAX_RETRIES
        )

    # Helpers below do not save; callers save the fields they touched.

    def mark_processing(self) -> None:
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_object(self) -> dict:
        """The ``data.object`` of the payload, or an empty dict."""
        try:
            return self.payload.get("data", {}).get("object", {}) or {}
        except (AttributeError, TypeError):
            return {}

    def get_object_id(self) -> str | None:
        return self.get_object().get("id")
