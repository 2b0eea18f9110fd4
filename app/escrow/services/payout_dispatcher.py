"""
PayoutDispatcher: transfers the seller's share after capture.

A payout is attempted only for a completed transaction whose seller has
a connected account with payouts enabled; otherwise it is skipped and
``payout_status`` stays ``none`` so the periodic retry picks it up once
the seller finishes onboarding.

A failed transfer is an operational alert. It is recorded on the
transaction and logged at ERROR, and it never undoes the completed
purchase, so ``payout`` returns a ServiceResult instead of raising.

Idempotency:
    The transfer key is derived from the transaction id and
    ``payout_attempt``. Transient failures keep the attempt number so the
    retry reuses the key and cannot create a second transfer; permanent
    failures advance it because the gateway has burned the old key.

Usage:
    result = dispatcher.payout(txn)
    if not result.success:
        logger.info(result.error_code)   # PAYOUTS_NOT_ENABLED, GATEWAY_TIMEOUT, ...
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from core.services import ServiceResult
from escrow.adapters import IdempotencyKeyGenerator
from escrow.exceptions import GatewayError
from escrow.state_machines import PayoutStatus, TransactionStatus

if TYPE_CHECKING:
    from escrow.models import Transaction
    from escrow.protocols import PaymentGateway, SellerAccountDirectory
    from escrow.services.transaction_store import TransactionStore


logger = logging.getLogger(__name__)


def transfer_group_for(txn: Transaction) -> str:
    return f"ORDER_{txn.pk}"


class PayoutDispatcher:
    """Sends seller payouts through the payment gateway."""

    def __init__(
        self,
        gateway: PaymentGateway,
        store: TransactionStore,
        directory: SellerAccountDirectory,
    ):
        self.gateway = gateway
        self.store = store
        self.directory = directory

    def payout(self, txn: Transaction) -> ServiceResult[Transaction]:
        """
        Transfer ``seller_payout_cents`` to the seller's connected account.

        Returns:
            ServiceResult with the transaction on success (or when it was
            already paid); a failure result when skipped or rejected
        """
        log_context = {
            "transaction_id": str(txn.pk),
            "seller_id": txn.seller_id,
            "amount_cents": txn.seller_payout_cents,
            "attempt": txn.payout_attempt,
        }

        if txn.status != TransactionStatus.COMPLETED:
            return ServiceResult.failure(
                f"Transaction is '{txn.status}', payouts need a completed purchase",
                error_code="TRANSACTION_NOT_COMPLETED",
            )

        if txn.payout_status == PayoutStatus.COMPLETED:
            return ServiceResult.success(txn)

        account = self.directory.get_connected_account(txn.seller_id)
        if account is None or not account.payouts_enabled:
            logger.info(
                "Payout skipped, seller cannot receive payouts yet",
                extra={**log_context, "has_account": account is not None},
            )
            return ServiceResult.failure(
                "Seller has no connected account with payouts enabled",
                error_code="PAYOUTS_NOT_ENABLED",
            )

        idempotency_key = IdempotencyKeyGenerator.generate(
            "transfer", txn.pk, txn.payout_attempt
        )

        try:
            result = self.gateway.create_transfer(
                amount_cents=txn.seller_payout_cents,
                destination_account=account.account_ref,
                idempotency_key=idempotency_key,
                currency=txn.currency,
                metadata={
                    "transaction_id": str(txn.pk),
                    "item_id": str(txn.item_id),
                    "seller_id": str(txn.seller_id),
                    "payout_attempt": str(txn.payout_attempt),
                },
                transfer_group=transfer_group_for(txn),
            )
        except GatewayError as e:
            self.store.record_payout_failure(
                txn,
                reason=e.message,
                advance_attempt=not e.is_retryable,
            )
            logger.error(
                f"Payout failed for transaction {txn.pk}: {e.message}",
                extra={
                    **log_context,
                    "error_code": e.error_code,
                    "retryable": e.is_retryable,
                    "destination_account": account.account_ref,
                },
            )
            return ServiceResult.from_exception(e)

        if not self.store.record_payout_success(txn, result.id):
            logger.warning(
                f"Payout for transaction {txn.pk} was already recorded",
                extra={**log_context, "transfer_id": result.id},
            )
            return ServiceResult.success(txn)

        logger.info(
            f"Payout completed for transaction {txn.pk}",
            extra={**log_context, "transfer_id": result.id},
        )
        return ServiceResult.success(txn)
