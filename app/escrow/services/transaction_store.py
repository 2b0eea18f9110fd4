"""
Persistence for Transaction with compare-and-swap writes.

TransactionStore is the only code that writes a Transaction row after it
is created. Every write is a single conditional UPDATE:

    UPDATE escrow_transaction
       SET ..., version = version + 1
     WHERE id = %s AND status = <expected> AND version = <read version>

If no row matches, somebody else changed the transaction between our
read and our write; the caller gets a ConflictError and the row is left
untouched. Status changes are additionally checked against the explicit
ALLOWED_TRANSITIONS table before any SQL is issued.

Usage:
    store = TransactionStore()
    txn = store.get(transaction_id)
    expected = txn.status
    txn.ship(...)
    store.commit(txn, expected, ["tracking_number", "carrier", "shipped_at"])
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import F, Q
from django.utils import timezone

from escrow.exceptions import (
    InvalidStateTransitionError,
    StaleRecordError,
    TransactionNotFoundError,
)
from escrow.models import Transaction
from escrow.state_machines import (
    EscrowStatus,
    PayoutStatus,
    TransactionStatus,
    can_transition,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from django.db.models import QuerySet

    from escrow.fees import FeeBreakdown


logger = logging.getLogger(__name__)


class TransactionStore:
    """Loads and conditionally updates Transaction rows."""

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, transaction_id: uuid.UUID | str) -> Transaction:
        """
        Load a transaction by id.

        Raises:
            TransactionNotFoundError: If it does not exist
        """
        try:
            return Transaction.objects.get(pk=transaction_id)
        except (Transaction.DoesNotExist, DjangoValidationError, ValueError, TypeError):
            raise TransactionNotFoundError(
                f"Transaction {transaction_id} not found",
                details={"transaction_id": str(transaction_id)},
            ) from None

    def get_by_payment_intent(self, payment_intent_id: str) -> Transaction | None:
        return Transaction.objects.filter(payment_intent_id=payment_intent_id).first()

    def for_party(self, user) -> QuerySet[Transaction]:
        """Transactions the user bought or sold; staff see everything."""
        queryset = Transaction.objects.select_related("dispute")
        if user.is_staff:
            return queryset
        return queryset.filter(Q(buyer=user) | Q(seller=user))

    def overdue_for_auto_release(self, now: datetime, limit: int) -> list[uuid.UUID]:
        """Ids of shipped transactions whose grace window has elapsed, oldest first."""
        return list(
            Transaction.objects.filter(
                status=TransactionStatus.SHIPPED,
                escrow_status=EscrowStatus.HELD,
                auto_release_date__lte=now,
            )
            .order_by("auto_release_date")
            .values_list("id", flat=True)[:limit]
        )

    def outstanding_payouts(self, limit: int, max_attempts: int) -> list[uuid.UUID]:
        """Ids of completed transactions whose seller has not been paid yet."""
        return list(
            Transaction.objects.filter(
                status=TransactionStatus.COMPLETED,
                payout_status__in=[PayoutStatus.NONE, PayoutStatus.FAILED],
                payout_attempt__lte=max_attempts,
            )
            .order_by("completed_at")
            .values_list("id", flat=True)[:limit]
        )

    # =========================================================================
    # Writes
    # =========================================================================

    def create_pending(
        self,
        *,
        buyer_id: int,
        seller_id: int,
        item_id: uuid.UUID,
        payment_intent_id: str,
        fees: FeeBreakdown,
        shipping_address: dict | None = None,
        metadata: dict | None = None,
    ) -> Transaction:
        """Insert a new transaction in PENDING with the fee snapshot."""
        return Transaction.objects.create(
            buyer_id=buyer_id,
            seller_id=seller_id,
            item_id=item_id,
            payment_intent_id=payment_intent_id,
            amount_cents=fees.amount_cents,
            currency=fees.currency,
            platform_fee_percentage=fees.platform_fee_percentage,
            platform_fee_cents=fees.platform_fee_cents,
            gateway_fee_cents=fees.gateway_fee_cents,
            seller_payout_cents=fees.seller_payout_cents,
            net_platform_revenue_cents=fees.net_platform_revenue_cents,
            shipping_address=shipping_address or {},
            metadata=metadata or {},
            status=TransactionStatus.PENDING,
        )

    def commit(
        self,
        txn: Transaction,
        expected_status: str,
        fields: Iterable[str],
    ) -> Transaction:
        """
        Persist in-memory changes to ``txn`` if nobody else moved it.

        Args:
            txn: Instance mutated by one of its transition methods
            expected_status: Status the caller read before mutating
            fields: Model fields to write besides status

        Raises:
            InvalidStateTransitionError: The new status is not reachable from
                ``expected_status``, or the row's status changed underneath us
            StaleRecordError: Same status but a newer version was written
        """
        if txn.status != expected_status and not can_transition(expected_status, txn.status):
            raise InvalidStateTransitionError(
                f"Cannot move transaction from '{expected_status}' to '{txn.status}'",
                details={
                    "transaction_id": str(txn.pk),
                    "current_status": expected_status,
                    "target_status": txn.status,
                },
            )

        values = {name: getattr(txn, name) for name in fields}
        values["status"] = txn.status
        now = timezone.now()

        updated = Transaction.objects.filter(
            pk=txn.pk,
            status=expected_status,
            version=txn.version,
        ).update(**values, version=F("version") + 1, updated_at=now)

        if not updated:
            raise self._conflict(txn, expected_status)

        txn.version += 1
        txn.updated_at = now

        logger.info(
            f"Transaction {txn.pk} committed: {expected_status} -> {txn.status}",
            extra={
                "transaction_id": str(txn.pk),
                "from_status": expected_status,
                "to_status": txn.status,
                "version": txn.version,
            },
        )
        return txn

    def record_payout_success(self, txn: Transaction, transfer_id: str) -> bool:
        """Store the transfer id; False if the payout was already recorded."""
        now = timezone.now()
        updated = (
            Transaction.objects.filter(
                pk=txn.pk,
                status=TransactionStatus.COMPLETED,
            )
            .exclude(payout_status=PayoutStatus.COMPLETED)
            .update(
                transfer_id=transfer_id,
                payout_status=PayoutStatus.COMPLETED,
                payout_failure_reason="",
                paid_out_at=now,
                version=F("version") + 1,
                updated_at=now,
            )
        )
        if updated:
            txn.transfer_id = transfer_id
            txn.payout_status = PayoutStatus.COMPLETED
            txn.payout_failure_reason = ""
            txn.paid_out_at = now
            txn.version += 1
        return bool(updated)

    def record_payout_failure(
        self,
        txn: Transaction,
        reason: str,
        advance_attempt: bool,
    ) -> bool:
        """
        Mark the payout failed.

        ``advance_attempt`` bumps the attempt number so the next transfer
        uses a fresh idempotency key (the previous one is burned by a
        permanent rejection).
        """
        now = timezone.now()
        values = {
            "payout_status": PayoutStatus.FAILED,
            "payout_failure_reason": reason,
            "version": F("version") + 1,
            "updated_at": now,
        }
        if advance_attempt:
            values["payout_attempt"] = F("payout_attempt") + 1

        updated = (
            Transaction.objects.filter(pk=txn.pk, status=TransactionStatus.COMPLETED)
            .exclude(payout_status=PayoutStatus.COMPLETED)
            .update(**values)
        )
        if updated:
            txn.refresh_from_db(
                fields=["payout_status", "payout_failure_reason", "payout_attempt", "version"]
            )
        return bool(updated)

    # =========================================================================
    # Internals
    # =========================================================================

    def _conflict(self, txn: Transaction, expected_status: str):
        current = (
            Transaction.objects.filter(pk=txn.pk).values("status", "version").first()
        )
        if current is None:
            return TransactionNotFoundError(
                f"Transaction {txn.pk} not found",
                details={"transaction_id": str(txn.pk)},
            )

        details = {
            "transaction_id": str(txn.pk),
            "expected_status": expected_status,
            "current_status": current["status"],
            "expected_version": txn.version,
            "current_version": current["version"],
        }
        logger.warning(
            f"Lost update race on transaction {txn.pk}",
            extra=details,
        )

        if current["status"] != expected_status:
            return InvalidStateTransitionError(
                f"Transaction is '{current['status']}', expected '{expected_status}'",
                details=details,
            )
        return StaleRecordError(
            f"Transaction {txn.pk} was modified by another process",
            details=details,
        )
