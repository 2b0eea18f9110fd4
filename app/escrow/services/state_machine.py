"""
EscrowStateMachine: every status change of a Transaction.

The machine reads the transaction, checks the caller and the current
status, performs the gateway call the transition needs (if any), and
then commits through TransactionStore, whose compare-and-swap rejects
the write if another path moved the transaction in the meantime.

Transition Graph:
    pending        -> payment_held   (create: intent confirmed, item reserved)
    payment_held   -> shipped        (seller marks shipped)
    payment_held   -> disputed       (buyer or seller opens a dispute)
    shipped        -> completed      (buyer confirms, or auto-release)
    shipped        -> disputed       (buyer or seller opens a dispute)
    disputed       -> completed | refunded | cancelled   (administrative)
    pending        -> cancelled      (item unavailable, intent voided)
    non-terminal   -> failed         (gateway reports the payment failed)

Item Status:
    Failed, cancelled and refunded purchases put the item back on sale
    only if it was never shipped; a shipped item stays reserved.
    non-terminal   -> disputed       (chargeback from the card network)

Capture Safety:
    Capture uses one idempotency key per transaction, so the buyer's
    confirmation and the auto-release sweep racing on the same
    transaction produce at most one charge; the loser of the race then
    fails the CAS and gets a ConflictError.

Usage:
    engine = build_engine()
    txn = engine.state_machine.create(
        item_id=item_id,
        buyer_id=request.user.pk,
        payment_intent_id="pi_xxx",
        shipping_address={...},
    )
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from core.exceptions import ConflictError, ValidationError
from escrow.adapters import IdempotencyKeyGenerator
from escrow.exceptions import (
    GatewayError,
    InvalidStateTransitionError,
    NotTransactionPartyError,
)
from escrow.models import Dispute, Transaction
from escrow.state_machines import (
    Carrier,
    DisputeReason,
    DisputeResolution,
    DisputeSource,
    EscrowStatus,
    TransactionStatus,
    can_transition,
)

if TYPE_CHECKING:
    from datetime import datetime

    from escrow.fees import FeeCalculator
    from escrow.protocols import ItemCatalog, PaymentGateway, SellerAccountDirectory
    from escrow.services.payout_dispatcher import PayoutDispatcher
    from escrow.services.transaction_store import TransactionStore


logger = logging.getLogger(__name__)

INTENT_CANCELED = "canceled"

COMPLETION_FIELDS = [
    "escrow_status",
    "escrow_release_date",
    "completed_at",
    "delivery_confirmed_at",
    "rating_enabled",
]
FAILURE_FIELDS = ["escrow_status", "failure_reason", "failed_at"]


class EscrowStateMachine:
    """
    Drives Transaction through its lifecycle.

    Collaborators are injected; see escrow.services.engine.build_engine for
    the production wiring.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        store: TransactionStore,
        catalog: ItemCatalog,
        directory: SellerAccountDirectory,
        fee_calculator: FeeCalculator,
        payouts: PayoutDispatcher | None = None,
        auto_release_days: int | None = None,
    ):
        self.gateway = gateway
        self.store = store
        self.catalog = catalog
        self.directory = directory
        self.fee_calculator = fee_calculator
        self.payouts = payouts
        if auto_release_days is None:
            auto_release_days = settings.ESCROW_AUTO_RELEASE_DAYS
        self.auto_release_window = timedelta(days=auto_release_days)

    # =========================================================================
    # Creation
    # =========================================================================

    def create(
        self,
        item_id: uuid.UUID,
        buyer_id: int,
        payment_intent_id: str,
        shipping_address: dict | None = None,
    ) -> Transaction:
        """
        Materialize a transaction for a confirmed authorization hold.

        The item reservation and the transaction row are written in one
        database transaction. If the item cannot be reserved, the hold is
        voided before the ConflictError propagates, as it is when the buyer
        turns out to be the seller.

        Re-submitting the same intent for the same buyer and item returns
        the existing transaction.

        Raises:
            ConflictError: Intent not capturable, already used, or the item
                is unavailable or priced differently
            ValidationError: Buyer is the seller
            NotFoundError: Unknown item
        """
        existing = self.store.get_by_payment_intent(payment_intent_id)
        if existing is not None:
            return self._existing_for(existing, buyer_id, item_id)

        intent = self.gateway.retrieve_payment_intent(payment_intent_id)
        if not intent.is_capturable:
            raise ConflictError(
                f"Payment is not authorized (status '{intent.status}')",
                error_code="PAYMENT_NOT_AUTHORIZED",
                details={"payment_intent_id": payment_intent_id, "intent_status": intent.status},
            )

        item = self.catalog.get_for_purchase(item_id)
        if item.seller_id == buyer_id:
            logger.warning(
                f"Purchase of item {item_id} rejected: buyer is the seller",
                extra={"item_id": str(item_id), "payment_intent_id": payment_intent_id},
            )
            self._void_after_rejection(payment_intent_id)
            raise ValidationError(
                "You cannot buy your own item",
                error_code="CANNOT_BUY_OWN_ITEM",
                details={"item_id": str(item_id)},
            )

        try:
            self._check_intent_matches_item(intent, item)
            fees = self.fee_calculator.calculate(
                item.price_cents,
                self.directory.get_tier(item.seller_id),
                item.currency,
            )
            with transaction.atomic():
                self.catalog.mark_pending(item.item_id)
                txn = self.store.create_pending(
                    buyer_id=buyer_id,
                    seller_id=item.seller_id,
                    item_id=item.item_id,
                    payment_intent_id=payment_intent_id,
                    fees=fees,
                    shipping_address=shipping_address,
                )
                expected = txn.status
                txn.hold_payment()
                self.store.commit(txn, expected, ["escrow_status"])
        except IntegrityError:
            existing = self.store.get_by_payment_intent(payment_intent_id)
            if existing is None:
                raise
            return self._existing_for(existing, buyer_id, item_id)
        except ConflictError as e:
            logger.warning(
                f"Purchase of item {item_id} rejected: {e.message}",
                extra={
                    "item_id": str(item_id),
                    "payment_intent_id": payment_intent_id,
                    "error_code": e.error_code,
                },
            )
            self._void_after_rejection(payment_intent_id)
            raise

        logger.info(
            f"Transaction {txn.pk} created, payment held",
            extra={
                "transaction_id": str(txn.pk),
                "item_id": str(item_id),
                "buyer_id": buyer_id,
                "seller_id": item.seller_id,
                "payment_intent_id": payment_intent_id,
                "amount_cents": txn.amount_cents,
            },
        )
        return txn

    # =========================================================================
    # Party actions
    # =========================================================================

    def mark_shipped(
        self,
        transaction_id: uuid.UUID,
        actor_id: int,
        tracking_number: str,
        carrier: str,
    ) -> Transaction:
        """
        Seller hands the item to a carrier; starts the auto-release clock.

        Raises:
            NotTransactionPartyError: Caller is not the seller
            ValidationError: Missing tracking number or unknown carrier
            InvalidStateTransitionError: Not in payment_held
        """
        txn = self.store.get(transaction_id)
        if actor_id != txn.seller_id:
            raise NotTransactionPartyError(
                "Only the seller can mark this transaction shipped",
                details={"transaction_id": str(txn.pk)},
            )

        tracking_number = (tracking_number or "").strip()
        if not tracking_number:
            raise ValidationError(
                "Tracking number is required",
                error_code="TRACKING_NUMBER_REQUIRED",
            )
        if carrier not in Carrier.values:
            raise ValidationError(
                f"Unknown carrier '{carrier}'",
                error_code="INVALID_CARRIER",
                details={"carrier": carrier, "allowed": list(Carrier.values)},
            )

        self._require_status(txn, [TransactionStatus.PAYMENT_HELD], TransactionStatus.SHIPPED)

        now = timezone.now()
        expected = txn.status
        txn.ship(
            tracking_number=tracking_number,
            carrier=carrier,
            shipped_at=now,
            auto_release_at=now + self.auto_release_window,
        )
        self.store.commit(
            txn,
            expected,
            ["tracking_number", "carrier", "shipped_at", "auto_release_date"],
        )

        logger.info(
            f"Transaction {txn.pk} shipped",
            extra={
                "transaction_id": str(txn.pk),
                "carrier": carrier,
                "auto_release_date": txn.auto_release_date.isoformat(),
            },
        )
        return txn

    def confirm_delivery(self, transaction_id: uuid.UUID, actor_id: int) -> Transaction:
        """
        Buyer confirms receipt: capture, complete, then pay the seller.

        A transient gateway failure leaves the transaction shipped so the
        buyer can retry.

        Raises:
            NotTransactionPartyError: Caller is not the buyer
            InvalidStateTransitionError: Not shipped (e.g. disputed)
            GatewayError: Capture failed
        """
        txn = self.store.get(transaction_id)
        if actor_id != txn.buyer_id:
            raise NotTransactionPartyError(
                "Only the buyer can confirm delivery",
                details={"transaction_id": str(txn.pk)},
            )

        self._require_status(txn, [TransactionStatus.SHIPPED], TransactionStatus.COMPLETED)
        return self._capture_and_complete(txn, EscrowStatus.RELEASED)

    def auto_release(self, transaction_id: uuid.UUID, now: datetime | None = None) -> Transaction:
        """
        Release funds after the grace window with no buyer action.

        Raises:
            InvalidStateTransitionError: Not shipped with funds held
            ConflictError: The auto-release date has not been reached
            GatewayError: Capture failed
        """
        now = now or timezone.now()
        txn = self.store.get(transaction_id)

        self._require_status(txn, [TransactionStatus.SHIPPED], TransactionStatus.COMPLETED)
        if txn.escrow_status != EscrowStatus.HELD:
            raise InvalidStateTransitionError(
                f"Escrow is '{txn.escrow_status}', not held",
                details={"transaction_id": str(txn.pk), "escrow_status": txn.escrow_status},
            )
        if txn.auto_release_date is None or now < txn.auto_release_date:
            raise ConflictError(
                "Auto-release date has not been reached",
                error_code="AUTO_RELEASE_NOT_DUE",
                details={
                    "transaction_id": str(txn.pk),
                    "auto_release_date": (
                        txn.auto_release_date.isoformat() if txn.auto_release_date else None
                    ),
                },
            )

        return self._capture_and_complete(txn, EscrowStatus.AUTO_RELEASED)

    def open_dispute(
        self,
        transaction_id: uuid.UUID,
        actor_id: int,
        reason: str,
        description: str = "",
    ) -> Dispute:
        """
        Freeze the transaction pending administrative review.

        Raises:
            NotTransactionPartyError: Caller is neither buyer nor seller
            InvalidStateTransitionError: Not in payment_held or shipped
        """
        txn = self.store.get(transaction_id)
        if not txn.is_party(actor_id):
            raise NotTransactionPartyError(
                "Only the buyer or seller can dispute this transaction",
                details={"transaction_id": str(txn.pk)},
            )

        self._require_status(
            txn,
            [TransactionStatus.PAYMENT_HELD, TransactionStatus.SHIPPED],
            TransactionStatus.DISPUTED,
        )

        with transaction.atomic():
            expected = txn.status
            txn.open_dispute()
            self.store.commit(txn, expected, [])
            dispute = Dispute.objects.create(
                transaction=txn,
                reason=reason,
                description=description,
                source=DisputeSource.PARTY,
                opened_by_id=actor_id,
                opened_at=timezone.now(),
            )

        logger.info(
            f"Dispute opened on transaction {txn.pk}",
            extra={
                "transaction_id": str(txn.pk),
                "opened_by": actor_id,
                "reason": reason,
                "from_status": expected,
            },
        )
        return dispute

    # =========================================================================
    # Gateway-reported changes (webhooks)
    # =========================================================================

    def force_dispute(
        self,
        payment_intent_id: str,
        gateway_dispute_id: str,
        reason: str = DisputeReason.OTHER,
        gateway_reason: str = "",
    ) -> Transaction | None:
        """
        Record a chargeback, moving any non-terminal transaction to disputed.

        Returns None when no transaction uses the intent. Replaying the same
        chargeback is a no-op.
        """
        txn = self.store.get_by_payment_intent(payment_intent_id)
        if txn is None:
            return None

        log_context = {
            "transaction_id": str(txn.pk),
            "payment_intent_id": payment_intent_id,
            "gateway_dispute_id": gateway_dispute_id,
        }

        if txn.status == TransactionStatus.DISPUTED:
            dispute = Dispute.objects.filter(transaction=txn).first()
            if dispute is not None and not dispute.gateway_dispute_id:
                dispute.gateway_dispute_id = gateway_dispute_id
                dispute.gateway_reason = gateway_reason
                dispute.save(update_fields=["gateway_dispute_id", "gateway_reason", "updated_at"])
                logger.info("Chargeback attached to existing dispute", extra=log_context)
            return txn

        if txn.is_terminal:
            logger.warning(
                f"Chargeback on {txn.status} transaction {txn.pk}, needs manual review",
                extra={**log_context, "status": txn.status},
            )
            return txn

        with transaction.atomic():
            expected = txn.status
            txn.force_dispute()
            self.store.commit(txn, expected, [])
            Dispute.objects.create(
                transaction=txn,
                reason=reason,
                source=DisputeSource.GATEWAY,
                opened_at=timezone.now(),
                gateway_dispute_id=gateway_dispute_id,
                gateway_reason=gateway_reason,
            )

        logger.warning(
            f"Chargeback opened on transaction {txn.pk}",
            extra={**log_context, "from_status": expected, "gateway_reason": gateway_reason},
        )
        return txn

    def mark_failed(self, payment_intent_id: str, reason: str) -> Transaction | None:
        """
        Record a payment failure reported by the gateway.

        Terminal and disputed transactions are left alone. Returns None
        when no transaction uses the intent.
        """
        txn = self.store.get_by_payment_intent(payment_intent_id)
        if txn is None:
            return None

        if not can_transition(txn.status, TransactionStatus.FAILED):
            logger.info(
                f"Ignoring payment failure for {txn.status} transaction {txn.pk}",
                extra={"transaction_id": str(txn.pk), "payment_intent_id": payment_intent_id},
            )
            return txn

        self._fail(txn, txn.status, reason)
        return txn

    # =========================================================================
    # Administrative actions
    # =========================================================================

    def cancel(self, transaction_id: uuid.UUID, note: str = "") -> Transaction:
        """
        Void the authorization and cancel a pending or disputed transaction.

        Raises:
            InvalidStateTransitionError: Not pending or disputed
            GatewayError: The authorization could not be voided
        """
        txn = self.store.get(transaction_id)
        self._require_status(
            txn,
            [TransactionStatus.PENDING, TransactionStatus.DISPUTED],
            TransactionStatus.CANCELLED,
        )
        self._void_authorization(txn)

        with transaction.atomic():
            expected = txn.status
            txn.cancel(cancelled_at=timezone.now())
            self.store.commit(txn, expected, ["escrow_status", "cancelled_at"])
            self._close_dispute(txn, DisputeResolution.CANCELLED, note)
            self._return_item(txn)

        logger.info(
            f"Transaction {txn.pk} cancelled",
            extra={"transaction_id": str(txn.pk), "from_status": expected},
        )
        return txn

    def refund(self, transaction_id: uuid.UUID, note: str = "") -> Transaction:
        """
        Resolve a dispute in the buyer's favour by voiding the hold.

        Raises:
            InvalidStateTransitionError: Not disputed
            GatewayError: The authorization could not be voided
        """
        txn = self.store.get(transaction_id)
        self._require_status(txn, [TransactionStatus.DISPUTED], TransactionStatus.REFUNDED)
        self._void_authorization(txn)

        with transaction.atomic():
            expected = txn.status
            txn.refund(refunded_at=timezone.now())
            self.store.commit(txn, expected, ["escrow_status", "refunded_at"])
            self._close_dispute(txn, DisputeResolution.REFUNDED, note)
            self._return_item(txn)

        logger.info(
            f"Transaction {txn.pk} refunded",
            extra={"transaction_id": str(txn.pk)},
        )
        return txn

    def release_disputed(self, transaction_id: uuid.UUID, note: str = "") -> Transaction:
        """
        Resolve a dispute in the seller's favour: capture and pay out.

        Raises:
            InvalidStateTransitionError: Not disputed
            GatewayError: Capture failed
        """
        txn = self.store.get(transaction_id)
        self._require_status(txn, [TransactionStatus.DISPUTED], TransactionStatus.COMPLETED)
        return self._capture_and_complete(txn, EscrowStatus.RELEASED, resolution_note=note)

    # =========================================================================
    # Internals
    # =========================================================================

    def _capture_and_complete(
        self,
        txn: Transaction,
        escrow_status: str,
        resolution_note: str | None = None,
    ) -> Transaction:
        expected = txn.status
        log_context = {
            "transaction_id": str(txn.pk),
            "payment_intent_id": txn.payment_intent_id,
            "escrow_status": escrow_status,
        }

        try:
            self.gateway.capture_payment_intent(
                txn.payment_intent_id,
                idempotency_key=IdempotencyKeyGenerator.generate("capture", txn.pk),
            )
        except GatewayError as e:
            if e.is_retryable:
                logger.warning(
                    f"Capture for transaction {txn.pk} failed transiently, state unchanged",
                    extra={**log_context, "error_code": e.error_code},
                )
                raise
            logger.error(
                f"Capture for transaction {txn.pk} failed permanently",
                extra={**log_context, "error_code": e.error_code},
            )
            if can_transition(expected, TransactionStatus.FAILED):
                self._fail(txn, expected, e.message)
            raise

        released_at = timezone.now()
        with transaction.atomic():
            txn.complete(escrow_status=escrow_status, released_at=released_at)
            self.store.commit(txn, expected, COMPLETION_FIELDS)
            if expected == TransactionStatus.DISPUTED:
                self._close_dispute(txn, DisputeResolution.RELEASED, resolution_note or "")
            self.catalog.mark_sold(txn.item_id)

        logger.info(
            f"Transaction {txn.pk} completed",
            extra={**log_context, "from_status": expected},
        )

        if self.payouts is not None:
            try:
                self.payouts.payout(txn)
            except Exception:
                # The purchase is complete; the payout retry task picks it up.
                logger.exception(
                    f"Payout for completed transaction {txn.pk} raised unexpectedly",
                    extra=log_context,
                )
        return txn

    def _fail(self, txn: Transaction, expected: str, reason: str) -> None:
        with transaction.atomic():
            txn.fail(reason=reason, failed_at=timezone.now())
            self.store.commit(txn, expected, FAILURE_FIELDS)
            self._return_item(txn)

        logger.warning(
            f"Transaction {txn.pk} failed: {reason}",
            extra={
                "transaction_id": str(txn.pk),
                "payment_intent_id": txn.payment_intent_id,
                "from_status": expected,
            },
        )

    def _return_item(self, txn: Transaction) -> None:
        """Put the item back on sale unless it already left with the buyer."""
        if txn.shipped_at is None:
            self.catalog.mark_available(txn.item_id)
            return
        logger.warning(
            f"Item {txn.item_id} already shipped for transaction {txn.pk}, left reserved",
            extra={
                "transaction_id": str(txn.pk),
                "item_id": str(txn.item_id),
                "status": txn.status,
            },
        )

    def _close_dispute(self, txn: Transaction, resolution: str, note: str) -> None:
        Dispute.objects.filter(transaction=txn, resolved_at__isnull=True).update(
            resolution=resolution,
            resolution_note=note,
            resolved_at=timezone.now(),
            updated_at=timezone.now(),
        )

    def _void_authorization(self, txn: Transaction) -> None:
        """Cancel the intent; an intent the gateway already cancelled counts as voided."""
        try:
            self.gateway.cancel_payment_intent(
                txn.payment_intent_id,
                idempotency_key=IdempotencyKeyGenerator.generate("cancel", txn.pk),
                reason="requested_by_customer",
            )
        except GatewayError as e:
            if e.is_retryable:
                raise
            intent = self.gateway.retrieve_payment_intent(txn.payment_intent_id)
            if intent.status != INTENT_CANCELED:
                raise
            logger.info(
                f"Intent for transaction {txn.pk} was already cancelled",
                extra={"transaction_id": str(txn.pk), "payment_intent_id": txn.payment_intent_id},
            )

    def _void_after_rejection(self, payment_intent_id: str) -> None:
        try:
            self.gateway.cancel_payment_intent(
                payment_intent_id,
                idempotency_key=IdempotencyKeyGenerator.generate("cancel", payment_intent_id),
                reason="abandoned",
            )
        except GatewayError as e:
            # The rejection is what the caller needs to see; the hold
            # expires on its own if this void is lost.
            logger.error(
                f"Could not void authorization {payment_intent_id}",
                extra={"payment_intent_id": payment_intent_id, "error_code": e.error_code},
            )

    def _check_intent_matches_item(self, intent, item) -> None:
        if not item.is_purchasable:
            raise ConflictError(
                "Item is no longer available",
                error_code="ITEM_UNAVAILABLE",
                details={"item_id": str(item.item_id)},
            )
        if intent.amount_cents != item.price_cents or intent.currency.lower() != item.currency:
            raise ConflictError(
                "Payment amount does not match the item price",
                error_code="AMOUNT_MISMATCH",
                details={
                    "item_id": str(item.item_id),
                    "intent_amount_cents": intent.amount_cents,
                    "item_price_cents": item.price_cents,
                },
            )

    def _existing_for(self, existing: Transaction, buyer_id: int, item_id) -> Transaction:
        if existing.buyer_id == buyer_id and str(existing.item_id) == str(item_id):
            logger.info(
                f"Transaction {existing.pk} already exists for intent",
                extra={
                    "transaction_id": str(existing.pk),
                    "payment_intent_id": existing.payment_intent_id,
                },
            )
            return existing
        raise ConflictError(
            "Payment has already been used for another purchase",
            error_code="PAYMENT_INTENT_IN_USE",
            details={"payment_intent_id": existing.payment_intent_id},
        )

    def _require_status(self, txn: Transaction, allowed: list[str], target: str) -> None:
        if txn.status not in allowed:
            raise InvalidStateTransitionError(
                f"Cannot move transaction from '{txn.status}' to '{target}'",
                details={
                    "transaction_id": str(txn.pk),
                    "current_status": txn.status,
                    "target_status": target,
                },
            )
