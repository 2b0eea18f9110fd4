"""
Pytest fixtures shared by the escrow test packages.

Every engine built here runs on FakeGateway, so no test reaches Stripe.
Transactions are created directly in the state a test starts from, with
their item reserved in the catalog and their intent registered with the
fake gateway.

Usage:
    def test_confirm_delivery(engine, shipped_transaction, buyer):
        txn = engine.state_machine.confirm_delivery(shipped_transaction.pk, buyer.pk)
        assert txn.status == TransactionStatus.COMPLETED
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from catalog.models import ItemStatus
from escrow.fees import FeeCalculator
from escrow.services import build_engine
from escrow.state_machines import TransactionStatus
from escrow.tests.factories import (
    ItemFactory,
    SellerAccountFactory,
    TransactionFactory,
    UserFactory,
)
from escrow.tests.fakes import FakeGateway

# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def gateway():
    """In-memory payment gateway."""
    return FakeGateway()


@pytest.fixture
def fee_calculator():
    """Fee calculator with the default rates (8% / 5%, 2.9% + 0.30)."""
    return FeeCalculator()


@pytest.fixture
def engine(db, gateway, fee_calculator):
    """Escrow engine wired to the fake gateway and the Django-backed catalog."""
    return build_engine(gateway=gateway, fee_calculator=fee_calculator)


# =============================================================================
# Party Fixtures
# =============================================================================


@pytest.fixture
def buyer(db):
    return UserFactory()


@pytest.fixture
def seller(db):
    return UserFactory()


@pytest.fixture
def outsider(db):
    """A user who is neither buyer nor seller."""
    return UserFactory()


@pytest.fixture
def seller_account(db, seller):
    """Standard-tier seller who can accept charges and receive payouts."""
    return SellerAccountFactory(seller=seller)


@pytest.fixture
def item(db, seller):
    """Active 100.00 USD item listed by ``seller``."""
    return ItemFactory(seller=seller, price_cents=10000, currency="usd")


# =============================================================================
# Transaction State Fixtures
# =============================================================================


@pytest.fixture
def make_transaction(db, gateway, buyer, seller):
    """
    Build a transaction in any status.

    The backing item is reserved (or sold, for completed transactions) and
    the payment intent is registered with the fake gateway as capturable.
    """

    def _make(status=TransactionStatus.PAYMENT_HELD, item_status=None, **kwargs):
        if item_status is None:
            item_status = (
                ItemStatus.SOLD if status == TransactionStatus.COMPLETED else ItemStatus.PENDING
            )
        item = ItemFactory(seller=seller, price_cents=10000, status=item_status)
        txn = TransactionFactory(
            buyer=buyer,
            seller=seller,
            item_id=item.id,
            status=status,
            **kwargs,
        )
        intent_status = "succeeded" if status == TransactionStatus.COMPLETED else "requires_capture"
        gateway.add_intent(
            txn.payment_intent_id,
            amount_cents=txn.amount_cents,
            currency=txn.currency,
            status=intent_status,
        )
        return txn

    return _make


@pytest.fixture
def pending_transaction(make_transaction):
    return make_transaction(TransactionStatus.PENDING)


@pytest.fixture
def held_transaction(make_transaction):
    return make_transaction(TransactionStatus.PAYMENT_HELD)


@pytest.fixture
def shipped_transaction(make_transaction):
    """Shipped yesterday; auto-release is two days away."""
    shipped_at = timezone.now() - timedelta(days=1)
    return make_transaction(
        TransactionStatus.SHIPPED,
        tracking_number="1Z999AA10123456784",
        carrier="ups",
        shipped_at=shipped_at,
        auto_release_date=shipped_at + timedelta(days=3),
    )


@pytest.fixture
def overdue_transaction(make_transaction):
    """Shipped four days ago; auto-release passed a day ago."""
    shipped_at = timezone.now() - timedelta(days=4)
    return make_transaction(
        TransactionStatus.SHIPPED,
        tracking_number="9400111899223197428490",
        carrier="usps",
        shipped_at=shipped_at,
        auto_release_date=shipped_at + timedelta(days=3),
    )


@pytest.fixture
def completed_transaction(make_transaction):
    now = timezone.now()
    return make_transaction(
        TransactionStatus.COMPLETED,
        escrow_status="released",
        completed_at=now,
        escrow_release_date=now,
        rating_enabled=True,
    )
