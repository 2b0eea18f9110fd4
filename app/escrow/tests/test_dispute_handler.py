"""
Tests for DisputeHandler.

Tests cover:
- Input validation for party disputes
- Chargeback reason mapping
- Administrative resolution (release, refund, cancel)
"""

import pytest

from catalog.models import Item, ItemStatus
from core.exceptions import ValidationError
from escrow.exceptions import InvalidStateTransitionError, NotTransactionPartyError
from escrow.models import Dispute, Transaction
from escrow.services.dispute_handler import MAX_DESCRIPTION_LENGTH, map_gateway_reason
from escrow.state_machines import (
    DisputeReason,
    DisputeResolution,
    DisputeSource,
    EscrowStatus,
    TransactionStatus,
)


class TestOpenDispute:
    """Tests for party-opened disputes."""

    def test_opens_dispute_with_trimmed_description(self, engine, held_transaction, buyer):
        dispute = engine.disputes.open_dispute(
            held_transaction.pk,
            actor_id=buyer.pk,
            reason=DisputeReason.NOT_AS_DESCRIBED,
            description="  Wrong colour  ",
        )

        assert dispute.description == "Wrong colour"
        assert dispute.source == DisputeSource.PARTY
        assert Transaction.objects.get(pk=held_transaction.pk).status == TransactionStatus.DISPUTED

    def test_unknown_reason_rejected(self, engine, held_transaction, buyer):
        with pytest.raises(ValidationError) as exc_info:
            engine.disputes.open_dispute(held_transaction.pk, buyer.pk, "changed_my_mind")

        assert exc_info.value.error_code == "INVALID_DISPUTE_REASON"
        assert not Dispute.objects.exists()

    def test_description_too_long(self, engine, held_transaction, buyer):
        with pytest.raises(ValidationError) as exc_info:
            engine.disputes.open_dispute(
                held_transaction.pk,
                buyer.pk,
                DisputeReason.OTHER,
                "x" * (MAX_DESCRIPTION_LENGTH + 1),
            )

        assert exc_info.value.error_code == "DESCRIPTION_TOO_LONG"

    def test_outsider_rejected_before_validation(self, engine, held_transaction, outsider):
        with pytest.raises(NotTransactionPartyError):
            engine.disputes.open_dispute(held_transaction.pk, outsider.pk, "bogus")

    def test_pending_transaction_cannot_be_disputed_by_party(
        self, engine, pending_transaction, buyer
    ):
        with pytest.raises(InvalidStateTransitionError):
            engine.disputes.open_dispute(pending_transaction.pk, buyer.pk, DisputeReason.OTHER)


class TestGatewayDisputes:
    """Tests for chargebacks."""

    @pytest.mark.parametrize(
        "gateway_reason,expected",
        [
            ("product_not_received", DisputeReason.NOT_RECEIVED),
            ("product_unacceptable", DisputeReason.NOT_AS_DESCRIBED),
            ("fraudulent", DisputeReason.OTHER),
            (None, DisputeReason.OTHER),
        ],
    )
    def test_map_gateway_reason(self, gateway_reason, expected):
        assert map_gateway_reason(gateway_reason) == expected

    def test_record_gateway_dispute(self, engine, shipped_transaction):
        txn = engine.disputes.record_gateway_dispute(
            shipped_transaction.payment_intent_id,
            gateway_dispute_id="dp_abc",
            gateway_reason="product_unacceptable",
        )

        assert txn.status == TransactionStatus.DISPUTED
        dispute = Dispute.objects.get(transaction=txn)
        assert dispute.reason == DisputeReason.NOT_AS_DESCRIBED
        assert dispute.gateway_reason == "product_unacceptable"


class TestResolve:
    """Tests for administrative resolution."""

    @pytest.fixture
    def disputed(self, engine, shipped_transaction, buyer):
        engine.disputes.open_dispute(shipped_transaction.pk, buyer.pk, DisputeReason.DAMAGED)
        return shipped_transaction

    def test_release_pays_seller(self, engine, gateway, disputed, seller_account):
        txn = engine.disputes.resolve(disputed.pk, DisputeResolution.RELEASED, note="Tracked")

        assert txn.status == TransactionStatus.COMPLETED
        assert gateway.charge_count(txn.payment_intent_id) == 1
        assert len(gateway.transfers) == 1
        assert Dispute.objects.get(transaction=txn).resolution == DisputeResolution.RELEASED

    def test_refund_after_shipping_keeps_item_reserved(self, engine, gateway, disputed):
        """The goods are with the buyer, so the item must not be sold again."""
        txn = engine.disputes.resolve(disputed.pk, DisputeResolution.REFUNDED)

        assert txn.status == TransactionStatus.REFUNDED
        assert txn.escrow_status == EscrowStatus.REFUNDED
        assert gateway.intents[txn.payment_intent_id].status == "canceled"
        assert Item.objects.get(pk=txn.item_id).status == ItemStatus.PENDING

    def test_refund_before_shipping_returns_item_to_sale(self, engine, held_transaction, buyer):
        engine.disputes.open_dispute(held_transaction.pk, buyer.pk, DisputeReason.OTHER)

        txn = engine.disputes.resolve(held_transaction.pk, DisputeResolution.REFUNDED)

        assert txn.status == TransactionStatus.REFUNDED
        assert Item.objects.get(pk=txn.item_id).status == ItemStatus.ACTIVE

    def test_cancel(self, engine, disputed):
        txn = engine.disputes.resolve(disputed.pk, DisputeResolution.CANCELLED, note="Duplicate")

        assert txn.status == TransactionStatus.CANCELLED
        dispute = Dispute.objects.get(transaction=txn)
        assert dispute.resolution == DisputeResolution.CANCELLED
        assert dispute.resolution_note == "Duplicate"

    def test_unknown_resolution(self, engine, disputed):
        with pytest.raises(ValidationError) as exc_info:
            engine.disputes.resolve(disputed.pk, "split")

        assert exc_info.value.error_code == "INVALID_RESOLUTION"

    def test_only_disputed_can_be_resolved(self, engine, gateway, shipped_transaction):
        with pytest.raises(InvalidStateTransitionError):
            engine.disputes.resolve(shipped_transaction.pk, DisputeResolution.RELEASED)

        assert gateway.calls_for("capture_payment_intent") == []
