"""
Payout retry worker.

Completed transactions whose payout was skipped (seller not onboarded)
or failed are retried until the attempt number passes
ESCROW_PAYOUT_MAX_ATTEMPTS. Transient failures reuse the same transfer
idempotency key, so a transfer that actually went through on an earlier
attempt is returned by the gateway instead of duplicated.
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings

from escrow.services import build_engine

logger = logging.getLogger(__name__)

PAYOUT_RETRY_BATCH_SIZE = 100


@shared_task(bind=True)
def retry_outstanding_payouts(self) -> dict:
    """Periodic task: attempt payouts for completed, unpaid transactions."""
    engine = build_engine()
    transaction_ids = engine.store.outstanding_payouts(
        limit=PAYOUT_RETRY_BATCH_SIZE,
        max_attempts=settings.ESCROW_PAYOUT_MAX_ATTEMPTS,
    )

    paid = 0
    not_paid = 0
    for transaction_id in transaction_ids:
        try:
            txn = engine.store.get(transaction_id)
            result = engine.payouts.payout(txn)
        except Exception:
            not_paid += 1
            logger.exception(
                f"Payout retry for transaction {transaction_id} raised unexpectedly",
                extra={"transaction_id": str(transaction_id)},
            )
            continue

        if result.success:
            paid += 1
        else:
            not_paid += 1

    logger.info(
        f"Payout retry finished: {paid} paid, {not_paid} outstanding",
        extra={"candidates": len(transaction_ids), "paid": paid, "outstanding": not_paid},
    )
    return {"candidates": len(transaction_ids), "paid": paid, "outstanding": not_paid}
