"""
Auto-release worker: releases escrow after the grace window.

A shipped transaction whose buyer neither confirms delivery nor disputes
within ESCROW_AUTO_RELEASE_DAYS is captured and paid out by this sweep.

The sweep fetches a bounded batch of overdue ids and releases each one
independently. A failure on one transaction is logged with its id and
does not stop the others. Running the sweep twice is harmless: a
transaction released by the first run is no longer shipped/held, so the
second run either does not select it or gets a ConflictError for it.

Usage:
    # Typically called via celery-beat schedule
    from escrow.workers import run_auto_release_sweep
    run_auto_release_sweep.delay()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from core.exceptions import BaseApplicationError, ConflictError
from escrow.services import build_engine

if TYPE_CHECKING:
    from datetime import datetime

    from escrow.services import EscrowStateMachine, TransactionStore


logger = logging.getLogger(__name__)


class AutoReleaseScheduler:
    """Selects overdue shipped transactions and auto-releases them."""

    def __init__(
        self,
        state_machine: EscrowStateMachine,
        store: TransactionStore,
        batch_size: int | None = None,
    ):
        self.state_machine = state_machine
        self.store = store
        self.batch_size = batch_size or settings.ESCROW_AUTO_RELEASE_BATCH_SIZE

    def sweep(self, now: datetime | None = None) -> dict:
        """
        Release every overdue transaction in one batch.

        Returns:
            Dict with candidates, released, skipped (lost a race) and
            failed counts, plus the ids that failed
        """
        now = now or timezone.now()
        candidate_ids = self.store.overdue_for_auto_release(now, limit=self.batch_size)

        report = {
            "candidates": len(candidate_ids),
            "released": 0,
            "skipped": 0,
            "failed": 0,
            "failed_ids": [],
        }

        for transaction_id in candidate_ids:
            try:
                self.state_machine.auto_release(transaction_id, now=now)
            except ConflictError as e:
                report["skipped"] += 1
                logger.info(
                    f"Auto-release skipped for transaction {transaction_id}: {e.message}",
                    extra={"transaction_id": str(transaction_id), "error_code": e.error_code},
                )
            except BaseApplicationError as e:
                report["failed"] += 1
                report["failed_ids"].append(str(transaction_id))
                logger.error(
                    f"Auto-release failed for transaction {transaction_id}: {e.message}",
                    extra={"transaction_id": str(transaction_id), "error_code": e.error_code},
                )
            except Exception:
                report["failed"] += 1
                report["failed_ids"].append(str(transaction_id))
                logger.exception(
                    f"Unexpected error auto-releasing transaction {transaction_id}",
                    extra={"transaction_id": str(transaction_id)},
                )
            else:
                report["released"] += 1

        logger.info(
            f"Auto-release sweep finished: {report['released']} released, "
            f"{report['failed']} failed",
            extra={key: value for key, value in report.items() if key != "failed_ids"},
        )
        return report


@shared_task(bind=True)
def run_auto_release_sweep(self) -> dict:
    """
    Periodic task releasing overdue escrow holds.

    Scheduled hourly through django-celery-beat (see migration
    escrow.0002_add_periodic_schedules).
    """
    engine = build_engine()
    scheduler = AutoReleaseScheduler(state_machine=engine.state_machine, store=engine.store)
    return scheduler.sweep()
