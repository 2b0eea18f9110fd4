"""
Stripe implementation of the PaymentGateway contract.

All Stripe calls go through StripeAdapter so that every call has a
bounded timeout, an idempotency key where it moves money, structured
start/completion logging with timing, and its SDK errors translated into
escrow.exceptions GatewayError subclasses. Nothing outside this module
imports ``stripe``.

The adapter is an ordinary object built around a ``stripe.StripeClient``;
it holds no module-level state. Build one per unit of work with
``StripeAdapter.from_settings()`` or pass a prepared client in tests.

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: Per-request timeout
- STRIPE_MAX_RETRIES: Network retries performed by the Stripe client

Usage:
    from escrow.adapters import IdempotencyKeyGenerator, StripeAdapter

    gateway = StripeAdapter.from_settings()
    result = gateway.capture_payment_intent(
        payment_intent_id="pi_xxx",
        idempotency_key=IdempotencyKeyGenerator.generate("capture", txn.id),
    )
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from typing import TYPE_CHECKING, Any

import stripe
from django.conf import settings

from escrow.exceptions import (
    GatewayError,
    GatewayRateLimitError,
    GatewayTimeoutError,
    GatewayUnavailableError,
    InsufficientFundsError,
    InvalidAccountError,
    InvalidGatewayRequestError,
    PaymentDeclinedError,
    WebhookSignatureError,
)
from escrow.protocols import (
    AuthorizePaymentParams,
    ChargeResult,
    PaymentIntentResult,
    TransferResult,
)

if TYPE_CHECKING:
    from collections.abc import Callable


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for gateway calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    Keys are deterministic: the same operation on the same transaction and
    attempt always yields the same key, which is what makes a retried
    capture or transfer collapse into the original one at the gateway.

    Example:
        key = IdempotencyKeyGenerator.generate("capture", transaction.id)
        # "capture:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int | str = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    Thread-safe for use from Celery workers; the wrapped StripeClient keeps
    per-thread HTTP sessions.
    """

    def __init__(self, client: stripe.StripeClient, webhook_secret: str = ""):
        self.client = client
        self.webhook_secret = webhook_secret
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @classmethod
    def from_settings(cls) -> StripeAdapter:
        """Build an adapter from Django settings."""
        client = stripe.StripeClient(
            settings.STRIPE_SECRET_KEY,
            http_client=stripe.RequestsClient(timeout=settings.STRIPE_API_TIMEOUT_SECONDS),
            max_network_retries=settings.STRIPE_MAX_RETRIES,
        )
        return cls(client=client, webhook_secret=settings.STRIPE_WEBHOOK_SECRET)

    # =========================================================================
    # Core Operations
    # =========================================================================

    def authorize_payment(self, params: AuthorizePaymentParams) -> PaymentIntentResult:
        """
        Create a manual-capture PaymentIntent (authorization hold).

        Raises:
            PaymentDeclinedError: Card was declined
            InvalidGatewayRequestError: Invalid parameters
            GatewayUnavailableError: Stripe service unavailable
            GatewayTimeoutError: Request timed out
        """
        log_context = {
            "operation": "authorize_payment",
            "amount_cents": params.amount_cents,
            "currency": params.currency,
            "idempotency_key": params.idempotency_key,
        }

        intent = self._execute(
            log_context,
            lambda: self.client.v1.payment_intents.create(
                params={
                    "amount": params.amount_cents,
                    "currency": params.currency,
                    "capture_method": params.capture_method,
                    "payment_method_types": ["card"],
                    "metadata": params.metadata,
                },
                options={"idempotency_key": params.idempotency_key},
            ),
            result_context=lambda i: {"payment_intent_id": i.id, "status": i.status},
        )
        return self._intent_result(intent)

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentResult:
        """
        Retrieve a PaymentIntent by ID.

        Raises:
            InvalidGatewayRequestError: PaymentIntent not found
        """
        log_context = {
            "operation": "retrieve_payment_intent",
            "payment_intent_id": payment_intent_id,
        }

        intent = self._execute(
            log_context,
            lambda: self.client.v1.payment_intents.retrieve(payment_intent_id),
            result_context=lambda i: {"status": i.status},
            level=logging.DEBUG,
        )
        return self._intent_result(intent)

    def capture_payment_intent(
        self,
        payment_intent_id: str,
        idempotency_key: str,
    ) -> PaymentIntentResult:
        """
        Capture an authorized PaymentIntent in full.

        Raises:
            InvalidGatewayRequestError: PaymentIntent not capturable
                (expired, cancelled or already captured with another key)
            GatewayTimeoutError / GatewayUnavailableError: retry with the
                same idempotency key
        """
        log_context = {
            "operation": "capture_payment_intent",
            "payment_intent_id": payment_intent_id,
            "idempotency_key": idempotency_key,
        }

        intent = self._execute(
            log_context,
            lambda: self.client.v1.payment_intents.capture(
                payment_intent_id,
                options={"idempotency_key": idempotency_key},
            ),
            result_context=lambda i: {
                "status": i.status,
                "amount_captured": i.amount_received,
            },
        )
        return self._intent_result(intent)

    def cancel_payment_intent(
        self,
        payment_intent_id: str,
        idempotency_key: str,
        reason: str | None = None,
    ) -> PaymentIntentResult:
        """
        Void an uncaptured PaymentIntent, releasing the buyer's hold.

        Args:
            reason: One of Stripe's cancellation reasons
                (duplicate, fraudulent, requested_by_customer, abandoned)
        """
        log_context = {
            "operation": "cancel_payment_intent",
            "payment_intent_id": payment_intent_id,
            "idempotency_key": idempotency_key,
            "reason": reason,
        }

        cancel_params: dict[str, Any] = {}
        if reason:
            cancel_params["cancellation_reason"] = reason

        intent = self._execute(
            log_context,
            lambda: self.client.v1.payment_intents.cancel(
                payment_intent_id,
                params=cancel_params,
                options={"idempotency_key": idempotency_key},
            ),
            result_context=lambda i: {"status": i.status},
        )
        return self._intent_result(intent)

    def create_transfer(
        self,
        amount_cents: int,
        destination_account: str,
        idempotency_key: str,
        currency: str = "usd",
        metadata: dict[str, str] | None = None,
        transfer_group: str | None = None,
    ) -> TransferResult:
        """
        Create a transfer to a connected Stripe account.

        Raises:
            InvalidAccountError: Invalid destination account
            InsufficientFundsError: Insufficient platform balance
        """
        log_context = {
            "operation": "create_transfer",
            "amount_cents": amount_cents,
            "destination_account": destination_account,
            "idempotency_key": idempotency_key,
        }

        transfer_params: dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency,
            "destination": destination_account,
            "metadata": metadata or {},
        }
        if transfer_group:
            transfer_params["transfer_group"] = transfer_group

        transfer = self._execute(
            log_context,
            lambda: self.client.v1.transfers.create(
                params=transfer_params,
                options={"idempotency_key": idempotency_key},
            ),
            result_context=lambda t: {"transfer_id": t.id},
        )
        return TransferResult(
            id=transfer.id,
            amount_cents=transfer.amount,
            currency=transfer.currency,
            destination_account=transfer.destination,
            metadata=dict(transfer.metadata or {}),
            raw_response=transfer.to_dict(),
        )

    def retrieve_charge(self, charge_id: str) -> ChargeResult:
        """Retrieve a Charge by ID, used to map chargebacks to intents."""
        log_context = {
            "operation": "retrieve_charge",
            "charge_id": charge_id,
        }

        charge = self._execute(
            log_context,
            lambda: self.client.v1.charges.retrieve(charge_id),
            result_context=lambda c: {"payment_intent_id": c.payment_intent},
            level=logging.DEBUG,
        )
        return ChargeResult(
            id=charge.id,
            payment_intent_id=charge.payment_intent,
            amount_cents=charge.amount,
            currency=charge.currency,
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Args:
            payload: Raw webhook payload bytes
            signature: Stripe-Signature header value

        Returns:
            Parsed event data dict

        Raises:
            WebhookSignatureError: Missing secret, bad signature or bad payload
        """
        if not self.webhook_secret:
            raise WebhookSignatureError(
                "Webhook signing secret is not configured",
                gateway_code="webhook_secret_missing",
            )

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(
                "Invalid webhook signature",
                gateway_code="signature_verification_failed",
                details={"error": str(e)},
            ) from e
        except ValueError as e:
            raise WebhookSignatureError(
                "Invalid webhook payload",
                gateway_code="invalid_payload",
                details={"error": str(e)},
            ) from e

        return event.to_dict()

    # =========================================================================
    # Internals
    # =========================================================================

    def _execute(
        self,
        log_context: dict[str, Any],
        call: Callable[[], Any],
        result_context: Callable[[Any], dict[str, Any]],
        level: int = logging.INFO,
    ) -> Any:
        start_time = time.time()
        self.logger.log(level, "Starting Stripe operation", extra=log_context)

        try:
            result = call()
        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            raise self._translate_error(e, log_context, duration_ms) from e

        duration_ms = (time.time() - start_time) * 1000
        self.logger.log(
            level,
            "Stripe operation completed",
            extra={**log_context, **result_context(result), "duration_ms": duration_ms},
        )
        return result

    @staticmethod
    def _intent_result(intent: Any) -> PaymentIntentResult:
        return PaymentIntentResult(
            id=intent.id,
            status=intent.status,
            amount_cents=intent.amount,
            currency=intent.currency,
            client_secret=intent.client_secret,
            captured=(intent.amount_received or 0) > 0,
            metadata=dict(intent.metadata or {}),
            raw_response=intent.to_dict(),
        )

    def _translate_error(
        self,
        error: stripe.StripeError,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> GatewayError:
        """
        Map a Stripe SDK error onto the GatewayError hierarchy.

        Returns the exception to raise; transient errors have
        ``is_retryable`` set.
        """
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = ((error.json_body or {}).get("error") or {}).get("decline_code")
            self.logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )
            error_class = (
                InsufficientFundsError
                if decline_code == "insufficient_funds"
                else PaymentDeclinedError
            )
            return error_class(
                str(error.user_message or error),
                gateway_code=error.code,
                decline_code=decline_code,
            )

        if isinstance(error, stripe.InvalidRequestError):
            self.logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            if "account" in str(error).lower():
                return InvalidAccountError(str(error), gateway_code=error.code)
            return InvalidGatewayRequestError(str(error), gateway_code=error.code)

        if isinstance(error, stripe.IdempotencyError):
            self.logger.error("Idempotency key reused with different parameters", extra=log_context)
            return InvalidGatewayRequestError(str(error), gateway_code="idempotency_error")

        if isinstance(error, stripe.RateLimitError):
            self.logger.warning("Rate limited by Stripe", extra=log_context)
            return GatewayRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                gateway_code="rate_limit",
            )

        if isinstance(error, stripe.APIConnectionError):
            self.logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            if "timeout" in str(error).lower() or "timed out" in str(error).lower():
                return GatewayTimeoutError(
                    "Stripe request timed out. Please retry.",
                    gateway_code="timeout",
                )
            return GatewayUnavailableError(
                "Could not connect to Stripe. Please retry.",
                gateway_code="api_connection_error",
            )

        if isinstance(error, stripe.APIError):
            self.logger.error("Stripe API error", extra=log_context, exc_info=True)
            return GatewayUnavailableError(
                "Stripe service error. Please retry.",
                gateway_code="api_error",
            )

        if isinstance(error, stripe.AuthenticationError):
            self.logger.critical("Stripe authentication failed - check API key", extra=log_context)
            return InvalidGatewayRequestError(
                "Stripe authentication failed",
                gateway_code="authentication_error",
            )

        self.logger.error(
            f"Unexpected error from Stripe: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        return GatewayUnavailableError(
            f"Unexpected Stripe error: {error}",
            gateway_code="unknown_error",
        )
