"""
Tests for the auto-release worker.

Tests cover:
- Releasing overdue shipped transactions
- Per-transaction failure isolation
- Repeated and racing sweeps
- The periodic Celery task
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone

from escrow.exceptions import GatewayTimeoutError
from escrow.models import Transaction
from escrow.state_machines import EscrowStatus, TransactionStatus
from escrow.workers import AutoReleaseScheduler, run_auto_release_sweep


@pytest.fixture
def scheduler(engine):
    return AutoReleaseScheduler(state_machine=engine.state_machine, store=engine.store)


def overdue(make_transaction, hours_late):
    return make_transaction(
        TransactionStatus.SHIPPED,
        tracking_number="1Z999",
        carrier="ups",
        shipped_at=timezone.now() - timedelta(days=3, hours=hours_late),
        auto_release_date=timezone.now() - timedelta(hours=hours_late),
    )


class TestSweep:
    """Tests for AutoReleaseScheduler.sweep."""

    def test_releases_only_overdue(self, scheduler, gateway, overdue_transaction, shipped_transaction):
        report = scheduler.sweep()

        assert report == {
            "candidates": 1,
            "released": 1,
            "skipped": 0,
            "failed": 0,
            "failed_ids": [],
        }
        released = Transaction.objects.get(pk=overdue_transaction.pk)
        assert released.status == TransactionStatus.COMPLETED
        assert released.escrow_status == EscrowStatus.AUTO_RELEASED
        assert Transaction.objects.get(pk=shipped_transaction.pk).status == TransactionStatus.SHIPPED

    def test_failure_does_not_stop_the_batch(self, scheduler, gateway, make_transaction):
        """One capture timing out leaves that transaction shipped and releases the rest."""
        first = overdue(make_transaction, hours_late=5)
        second = overdue(make_transaction, hours_late=1)
        gateway.fail_next("capture_payment_intent", GatewayTimeoutError("timed out"))

        report = scheduler.sweep()

        assert report["released"] == 1
        assert report["failed"] == 1
        assert report["failed_ids"] == [str(first.pk)]
        assert Transaction.objects.get(pk=first.pk).status == TransactionStatus.SHIPPED
        assert Transaction.objects.get(pk=second.pk).status == TransactionStatus.COMPLETED

    def test_unexpected_error_is_isolated(self, scheduler, engine, make_transaction):
        first = overdue(make_transaction, hours_late=5)
        second = overdue(make_transaction, hours_late=1)
        real_auto_release = engine.state_machine.auto_release

        def flaky(transaction_id, now=None):
            if transaction_id == first.pk:
                raise RuntimeError("boom")
            return real_auto_release(transaction_id, now=now)

        with patch.object(engine.state_machine, "auto_release", side_effect=flaky):
            report = scheduler.sweep()

        assert report["failed_ids"] == [str(first.pk)]
        assert Transaction.objects.get(pk=second.pk).status == TransactionStatus.COMPLETED

    def test_second_sweep_is_a_noop(self, scheduler, gateway, overdue_transaction):
        scheduler.sweep()

        report = scheduler.sweep()

        assert report["candidates"] == 0
        assert gateway.charge_count(overdue_transaction.payment_intent_id) == 1

    def test_candidate_released_by_buyer_meanwhile_is_skipped(
        self, scheduler, engine, gateway, overdue_transaction, buyer
    ):
        """The buyer confirms after the batch was selected; the sweep loses the race."""
        with patch.object(
            engine.store, "overdue_for_auto_release", return_value=[overdue_transaction.pk]
        ):
            engine.state_machine.confirm_delivery(overdue_transaction.pk, buyer.pk)
            report = scheduler.sweep()

        assert report["skipped"] == 1
        assert report["released"] == 0
        assert gateway.charge_count(overdue_transaction.payment_intent_id) == 1
        row = Transaction.objects.get(pk=overdue_transaction.pk)
        assert row.escrow_status == EscrowStatus.RELEASED

    def test_batch_size_limits_candidates(self, engine, make_transaction):
        for hours in (3, 2, 1):
            overdue(make_transaction, hours_late=hours)
        scheduler = AutoReleaseScheduler(
            state_machine=engine.state_machine, store=engine.store, batch_size=2
        )

        report = scheduler.sweep()

        assert report["candidates"] == 2
        assert Transaction.objects.filter(status=TransactionStatus.SHIPPED).count() == 1


class TestRunAutoReleaseSweepTask:
    """Tests for the periodic task."""

    def test_task_runs_sweep(self, engine, overdue_transaction):
        with patch("escrow.workers.auto_release.build_engine", return_value=engine):
            result = run_auto_release_sweep()

        assert result["released"] == 1
        assert (
            Transaction.objects.get(pk=overdue_transaction.pk).status
            == TransactionStatus.COMPLETED
        )
