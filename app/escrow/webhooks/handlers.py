"""
Webhook event handlers for Stripe events.

This module provides a handler registry and one handler per Stripe event
type the escrow engine cares about. Handlers receive the reconciler
(for its collaborators) and the stored WebhookEvent, and return a
ServiceResult.

Every handler is safe to run twice on the same event: state changes go
through EscrowStateMachine, which checks the persisted status before
writing, and capability updates are plain overwrites.

Usage:
    from escrow.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(reconciler, webhook_event) -> ServiceResult:
        ...

    result = dispatch_webhook(reconciler, webhook_event)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from core.services import ServiceResult

if TYPE_CHECKING:
    from escrow.models import WebhookEvent
    from escrow.webhooks.reconciler import WebhookReconciler

    Handler = Callable[[WebhookReconciler, WebhookEvent], ServiceResult]


logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


WEBHOOK_HANDLERS: dict[str, Handler] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Args:
        event_type: The Stripe event type (e.g., "payment_intent.payment_failed")
    """

    def decorator(func: Handler) -> Handler:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(reconciler: WebhookReconciler, webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to its handler.

    Unknown event types are acknowledged as successes so Stripe stops
    redelivering them.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"gateway_event_id": webhook_event.gateway_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"gateway_event_id": webhook_event.gateway_event_id},
    )
    return handler(reconciler, webhook_event)


# =============================================================================
# Payment Intent Handlers
# =============================================================================


@register_handler("payment_intent.succeeded")
@register_handler("payment_intent.amount_capturable_updated")
def handle_payment_intent_informational(
    reconciler: WebhookReconciler, webhook_event: WebhookEvent
) -> ServiceResult:
    """
    Authorization or capture succeeded.

    Informational only: the transaction reached payment_held when it was
    created and completed when we captured.
    """
    logger.info(
        f"{webhook_event.event_type} for {webhook_event.get_object_id()}",
        extra={
            "gateway_event_id": webhook_event.gateway_event_id,
            "payment_intent_id": webhook_event.get_object_id(),
        },
    )
    return ServiceResult.success(None)


@register_handler("payment_intent.payment_failed")
def handle_payment_intent_failed(
    reconciler: WebhookReconciler, webhook_event: WebhookEvent
) -> ServiceResult:
    """Move the matching non-terminal transaction to failed."""
    payment_intent = webhook_event.get_object()
    last_error = payment_intent.get("last_payment_error") or {}
    reason = last_error.get("message") or "Payment failed"
    return _fail_transaction(reconciler, webhook_event, reason)


@register_handler("payment_intent.canceled")
def handle_payment_intent_canceled(
    reconciler: WebhookReconciler, webhook_event: WebhookEvent
) -> ServiceResult:
    """
    The authorization was cancelled at the gateway (for example expired).

    Our own voids arrive here too; by then the transaction is terminal
    and the state machine ignores the event.
    """
    payment_intent = webhook_event.get_object()
    cancellation_reason = payment_intent.get("cancellation_reason") or "unknown"
    return _fail_transaction(
        reconciler,
        webhook_event,
        f"Authorization cancelled by gateway ({cancellation_reason})",
    )


def _fail_transaction(
    reconciler: WebhookReconciler,
    webhook_event: WebhookEvent,
    reason: str,
) -> ServiceResult:
    payment_intent_id = webhook_event.get_object_id()
    if not payment_intent_id:
        logger.error(
            f"{webhook_event.event_type}: Could not extract payment_intent_id",
            extra={"gateway_event_id": webhook_event.gateway_event_id},
        )
        return ServiceResult.failure(
            "Missing payment_intent_id in event",
            error_code="MISSING_OBJECT_ID",
        )

    txn = reconciler.state_machine.mark_failed(payment_intent_id, reason)
    if txn is None:
        logger.info(
            f"No transaction for payment intent {payment_intent_id}",
            extra={
                "gateway_event_id": webhook_event.gateway_event_id,
                "payment_intent_id": payment_intent_id,
            },
        )
    return ServiceResult.success(txn)


# =============================================================================
# Dispute Handlers
# =============================================================================


@register_handler("charge.dispute.created")
def handle_charge_dispute_created(
    reconciler: WebhookReconciler, webhook_event: WebhookEvent
) -> ServiceResult:
    """
    A chargeback was opened by the card network.

    The dispute object names the charge; the intent is read from it
    directly when present and otherwise looked up through the charge.
    """
    dispute = webhook_event.get_object()
    gateway_dispute_id = dispute.get("id")
    if not gateway_dispute_id:
        return ServiceResult.failure(
            "Missing dispute id in event",
            error_code="MISSING_OBJECT_ID",
        )

    payment_intent_id = dispute.get("payment_intent")
    charge_id = dispute.get("charge")
    if not payment_intent_id and charge_id:
        payment_intent_id = reconciler.gateway.retrieve_charge(charge_id).payment_intent_id

    if not payment_intent_id:
        logger.warning(
            f"Chargeback {gateway_dispute_id} could not be mapped to a payment intent",
            extra={
                "gateway_event_id": webhook_event.gateway_event_id,
                "gateway_dispute_id": gateway_dispute_id,
                "charge_id": charge_id,
            },
        )
        return ServiceResult.failure(
            "Chargeback has no payment intent",
            error_code="PAYMENT_INTENT_NOT_FOUND",
        )

    txn = reconciler.disputes.record_gateway_dispute(
        payment_intent_id,
        gateway_dispute_id=gateway_dispute_id,
        gateway_reason=dispute.get("reason"),
    )
    if txn is None:
        logger.info(
            f"No transaction for disputed payment intent {payment_intent_id}",
            extra={
                "gateway_event_id": webhook_event.gateway_event_id,
                "payment_intent_id": payment_intent_id,
            },
        )
    return ServiceResult.success(txn)


# =============================================================================
# Connect Account Handlers
# =============================================================================


@register_handler("account.updated")
def handle_account_updated(
    reconciler: WebhookReconciler, webhook_event: WebhookEvent
) -> ServiceResult:
    """Refresh the seller's cached capability flags."""
    account = webhook_event.get_object()
    account_ref = account.get("id")
    if not account_ref:
        return ServiceResult.failure(
            "Missing account id in event",
            error_code="MISSING_OBJECT_ID",
        )

    updated = reconciler.directory.update_capabilities(
        account_ref,
        charges_enabled=bool(account.get("charges_enabled")),
        payouts_enabled=bool(account.get("payouts_enabled")),
        details_submitted=bool(account.get("details_submitted")),
    )
    if not updated:
        logger.info(
            f"account.updated for unknown connected account {account_ref}",
            extra={"gateway_event_id": webhook_event.gateway_event_id},
        )
    return ServiceResult.success(None)
