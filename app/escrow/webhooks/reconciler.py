"""
WebhookReconciler: the single entry point for gateway webhooks.

``receive`` verifies the signature and stores the event (deduplicated by
gateway event id); nothing is interpreted before verification succeeds.
``reconcile`` dispatches a stored event to its handler.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from escrow.exceptions import WebhookSignatureError
from escrow.models import WebhookEvent
from escrow.state_machines import WebhookEventStatus
from escrow.webhooks.handlers import dispatch_webhook

if TYPE_CHECKING:
    from core.services import ServiceResult
    from escrow.protocols import PaymentGateway, SellerAccountDirectory
    from escrow.services import DisputeHandler, EscrowEngine, EscrowStateMachine


logger = logging.getLogger(__name__)


class WebhookReconciler:
    """Keeps transactions consistent with what the gateway reports."""

    def __init__(
        self,
        gateway: PaymentGateway,
        state_machine: EscrowStateMachine,
        disputes: DisputeHandler,
        directory: SellerAccountDirectory,
    ):
        self.gateway = gateway
        self.state_machine = state_machine
        self.disputes = disputes
        self.directory = directory

    @classmethod
    def from_engine(cls, engine: EscrowEngine) -> WebhookReconciler:
        return cls(
            gateway=engine.gateway,
            state_machine=engine.state_machine,
            disputes=engine.disputes,
            directory=engine.directory,
        )

    def receive(self, payload: bytes, signature: str) -> tuple[WebhookEvent, bool]:
        """
        Verify and store an inbound event.

        Returns:
            (webhook_event, needs_processing); needs_processing is False
            for an event that was already processed

        Raises:
            WebhookSignatureError: Missing or invalid signature, or an
                event without id/type
        """
        if not signature:
            raise WebhookSignatureError(
                "Missing Stripe-Signature header",
                gateway_code="signature_missing",
            )

        event_data = self.gateway.verify_webhook_signature(payload, signature)

        gateway_event_id = event_data.get("id")
        event_type = event_data.get("type")
        if not gateway_event_id or not event_type:
            raise WebhookSignatureError(
                "Webhook missing required fields",
                gateway_code="invalid_event",
            )

        webhook_event, created = WebhookEvent.objects.get_or_create(
            gateway_event_id=gateway_event_id,
            defaults={
                "event_type": event_type,
                "payload": event_data,
                "status": WebhookEventStatus.PENDING,
            },
        )

        logger.info(
            f"Received Stripe webhook: {event_type}",
            extra={
                "gateway_event_id": gateway_event_id,
                "event_type": event_type,
                "event_created": created,
                "status": webhook_event.status,
            },
        )
        return webhook_event, not webhook_event.is_processed

    def reconcile(self, webhook_event: WebhookEvent) -> ServiceResult:
        """Apply a stored event; safe to call more than once."""
        return dispatch_webhook(self, webhook_event)
