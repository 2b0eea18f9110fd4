"""
In-memory PaymentGateway for escrow tests.

FakeGateway behaves like Stripe where the engine depends on it:
manual-capture intents, idempotent capture/cancel/transfer keyed on the
idempotency key, and errors raised as GatewayError subclasses. Failures
can be scripted per operation.

Usage:
    gateway = FakeGateway()
    gateway.add_intent("pi_123", amount_cents=10000)
    gateway.fail_next("capture_payment_intent", GatewayTimeoutError("timed out"))

    engine = build_engine(gateway=gateway)
    ...
    assert gateway.charge_count("pi_123") == 1
"""

from __future__ import annotations

import itertools
import json
import uuid
from dataclasses import replace

from escrow.exceptions import InvalidGatewayRequestError, WebhookSignatureError
from escrow.protocols import (
    AuthorizePaymentParams,
    ChargeResult,
    PaymentIntentResult,
    TransferResult,
)

VALID_SIGNATURE = "t=1,v1=valid"

CANCELABLE_STATUSES = {
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
    "requires_capture",
}


def stripe_event(event_type: str, obj: dict, event_id: str | None = None) -> dict:
    """A verified Stripe event payload wrapping ``obj``."""
    return {
        "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }


class FakeGateway:
    """PaymentGateway test double that records every call."""

    def __init__(self):
        self.intents: dict[str, PaymentIntentResult] = {}
        self.charges: dict[str, ChargeResult] = {}
        self.calls: list[tuple[str, dict]] = []
        self._failures: dict[str, list[Exception]] = {}
        self._lost_responses: dict[str, list[Exception]] = {}
        self._idempotent_results: dict[str, object] = {}
        self._charges_made: dict[str, int] = {}
        self.transfers: list[TransferResult] = []
        self._ids = itertools.count(1)

    # =========================================================================
    # Test helpers
    # =========================================================================

    def add_intent(
        self,
        payment_intent_id: str,
        amount_cents: int = 10000,
        currency: str = "usd",
        status: str = "requires_capture",
    ) -> PaymentIntentResult:
        intent = PaymentIntentResult(
            id=payment_intent_id,
            status=status,
            amount_cents=amount_cents,
            currency=currency,
            client_secret=f"{payment_intent_id}_secret",
        )
        self.intents[payment_intent_id] = intent
        return intent

    def add_charge(self, charge_id: str, payment_intent_id: str | None) -> ChargeResult:
        charge = ChargeResult(id=charge_id, payment_intent_id=payment_intent_id)
        self.charges[charge_id] = charge
        return charge

    def fail_next(self, operation: str, error: Exception) -> None:
        """Make the next call to ``operation`` raise ``error``."""
        self._failures.setdefault(operation, []).append(error)

    def lose_next_response(self, operation: str, error: Exception) -> None:
        """Apply the next call at the gateway but raise ``error`` instead of replying."""
        self._lost_responses.setdefault(operation, []).append(error)

    def calls_for(self, operation: str) -> list[dict]:
        return [kwargs for name, kwargs in self.calls if name == operation]

    def charge_count(self, payment_intent_id: str) -> int:
        """Number of captures that actually moved money."""
        return self._charges_made.get(payment_intent_id, 0)

    # =========================================================================
    # PaymentGateway
    # =========================================================================

    def authorize_payment(self, params: AuthorizePaymentParams) -> PaymentIntentResult:
        self._record("authorize_payment", params=params)
        if params.idempotency_key in self._idempotent_results:
            return self._idempotent_results[params.idempotency_key]

        payment_intent_id = f"pi_fake_{next(self._ids)}"
        intent = self.add_intent(
            payment_intent_id,
            amount_cents=params.amount_cents,
            currency=params.currency,
            status="requires_payment_method",
        )
        intent.metadata = dict(params.metadata)
        self._idempotent_results[params.idempotency_key] = intent
        return intent

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentResult:
        self._record("retrieve_payment_intent", payment_intent_id=payment_intent_id)
        return self._intent(payment_intent_id)

    def capture_payment_intent(
        self, payment_intent_id: str, idempotency_key: str
    ) -> PaymentIntentResult:
        self._record(
            "capture_payment_intent",
            payment_intent_id=payment_intent_id,
            idempotency_key=idempotency_key,
        )
        if idempotency_key in self._idempotent_results:
            return self._idempotent_results[idempotency_key]

        intent = self._intent(payment_intent_id)
        if intent.status != "requires_capture":
            raise InvalidGatewayRequestError(
                f"This PaymentIntent could not be captured because it has a status of "
                f"{intent.status}.",
                gateway_code="payment_intent_unexpected_state",
            )

        captured = replace(intent, status="succeeded", captured=True)
        self.intents[payment_intent_id] = captured
        self._charges_made[payment_intent_id] = self.charge_count(payment_intent_id) + 1
        self._idempotent_results[idempotency_key] = captured
        self._raise_lost_response("capture_payment_intent")
        return captured

    def cancel_payment_intent(
        self,
        payment_intent_id: str,
        idempotency_key: str,
        reason: str | None = None,
    ) -> PaymentIntentResult:
        self._record(
            "cancel_payment_intent",
            payment_intent_id=payment_intent_id,
            idempotency_key=idempotency_key,
            reason=reason,
        )
        if idempotency_key in self._idempotent_results:
            return self._idempotent_results[idempotency_key]

        intent = self._intent(payment_intent_id)
        if intent.status not in CANCELABLE_STATUSES:
            raise InvalidGatewayRequestError(
                f"You cannot cancel this PaymentIntent because it has a status of "
                f"{intent.status}.",
                gateway_code="payment_intent_unexpected_state",
            )

        cancelled = replace(intent, status="canceled")
        self.intents[payment_intent_id] = cancelled
        self._idempotent_results[idempotency_key] = cancelled
        return cancelled

    def create_transfer(
        self,
        amount_cents: int,
        destination_account: str,
        idempotency_key: str,
        currency: str = "usd",
        metadata: dict[str, str] | None = None,
        transfer_group: str | None = None,
    ) -> TransferResult:
        self._record(
            "create_transfer",
            amount_cents=amount_cents,
            destination_account=destination_account,
            idempotency_key=idempotency_key,
            currency=currency,
            metadata=metadata,
            transfer_group=transfer_group,
        )
        if idempotency_key in self._idempotent_results:
            return self._idempotent_results[idempotency_key]

        transfer = TransferResult(
            id=f"tr_fake_{next(self._ids)}",
            amount_cents=amount_cents,
            currency=currency,
            destination_account=destination_account,
            metadata=dict(metadata or {}),
        )
        self.transfers.append(transfer)
        self._idempotent_results[idempotency_key] = transfer
        self._raise_lost_response("create_transfer")
        return transfer

    def retrieve_charge(self, charge_id: str) -> ChargeResult:
        self._record("retrieve_charge", charge_id=charge_id)
        try:
            return self.charges[charge_id]
        except KeyError:
            raise InvalidGatewayRequestError(
                f"No such charge: '{charge_id}'",
                gateway_code="resource_missing",
            ) from None

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict:
        self._record("verify_webhook_signature", signature=signature)
        if signature != VALID_SIGNATURE:
            raise WebhookSignatureError(
                "Invalid webhook signature",
                gateway_code="signature_verification_failed",
            )
        return json.loads(payload)

    # =========================================================================
    # Internals
    # =========================================================================

    def _record(self, operation: str, **kwargs) -> None:
        self.calls.append((operation, kwargs))
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def _raise_lost_response(self, operation: str) -> None:
        pending = self._lost_responses.get(operation)
        if pending:
            raise pending.pop(0)

    def _intent(self, payment_intent_id: str) -> PaymentIntentResult:
        try:
            return self.intents[payment_intent_id]
        except KeyError:
            raise InvalidGatewayRequestError(
                f"No such payment_intent: '{payment_intent_id}'",
                gateway_code="resource_missing",
            ) from None
