"""
Transaction model: the escrow aggregate root.

A Transaction records one purchase of one item from authorization hold
to release (or reversal). Money is stored in minor units, the lifecycle
in a django-fsm status field, and every write after creation goes
through escrow.services.TransactionStore, which applies it as a
compare-and-swap on (status, version).

Usage:
    from escrow.models import Transaction
    from escrow.state_machines import TransactionStatus

    txn = store.get(transaction_id)
    expected = txn.status
    txn.ship(tracking_number="1Z999", carrier="ups", shipped_at=now,
             auto_release_at=now + timedelta(days=3))
    store.commit(txn, expected, ["tracking_number", "carrier", ...])
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from escrow.money import Currency, from_minor_units
from escrow.state_machines import (
    Carrier,
    EscrowStatus,
    PayoutStatus,
    TransactionStatus,
    is_terminal,
)


class Transaction(UUIDPrimaryKeyMixin, BaseModel):
    """
    One escrowed purchase.

    State Flow:
        PENDING -> PAYMENT_HELD -> SHIPPED -> COMPLETED
        PAYMENT_HELD/SHIPPED -> DISPUTED -> COMPLETED/REFUNDED/CANCELLED
        PENDING -> CANCELLED
        PENDING/PAYMENT_HELD/SHIPPED -> FAILED

    Money invariant (enforced by a check constraint):
        platform_fee_cents + seller_payout_cents == amount_cents
    """

    # ==========================================================================
    # Parties and subject (immutable after creation)
    # ==========================================================================

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="purchases",
        help_text="User paying for the item",
    )
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="sales",
        help_text="User selling the item",
    )
    item_id = models.UUIDField(
        db_index=True,
        help_text="Catalog item being purchased",
    )

    # ==========================================================================
    # Money (minor units)
    # ==========================================================================

    amount_cents = models.PositiveBigIntegerField(
        help_text="Sale price in the smallest currency unit",
    )
    currency = models.CharField(
        max_length=3,
        choices=Currency.choices,
        default=Currency.USD,
        help_text="ISO 4217 currency code (lowercase)",
    )
    platform_fee_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        help_text="Take rate applied at purchase time",
    )
    platform_fee_cents = models.PositiveBigIntegerField(
        help_text="Platform fee in minor units",
    )
    gateway_fee_cents = models.PositiveBigIntegerField(
        help_text="Estimated card processing fee in minor units",
    )
    seller_payout_cents = models.PositiveBigIntegerField(
        help_text="Amount owed to the seller in minor units",
    )
    net_platform_revenue_cents = models.BigIntegerField(
        help_text="Platform fee minus estimated gateway fee (may be negative)",
    )

    # ==========================================================================
    # Gateway linkage
    # ==========================================================================

    payment_intent_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Gateway payment intent holding the buyer's funds",
    )
    transfer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Gateway transfer id, set after a successful payout",
    )
    payout_status = models.CharField(
        max_length=20,
        choices=PayoutStatus.choices,
        default=PayoutStatus.NONE,
        db_index=True,
        help_text="Outcome of the transfer to the seller",
    )
    payout_attempt = models.PositiveIntegerField(
        default=1,
        help_text="Attempt number used in the transfer idempotency key",
    )
    payout_failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Last payout failure reported by the gateway",
    )
    paid_out_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the transfer to the seller succeeded",
    )

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    status = FSMField(
        default=TransactionStatus.PENDING,
        choices=TransactionStatus.choices,
        db_index=True,
        help_text="Transaction lifecycle status",
    )
    version = models.PositiveIntegerField(
        default=1,
        help_text="Optimistic concurrency version, bumped on every write",
    )
    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Why the payment failed, if it did",
    )
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Escrow bookkeeping
    # ==========================================================================

    escrow_status = models.CharField(
        max_length=20,
        choices=EscrowStatus.choices,
        default=EscrowStatus.HELD,
        db_index=True,
        help_text="Where the buyer's funds are",
    )
    escrow_release_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When funds were released to the seller",
    )
    auto_release_date = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Deadline after which funds release without buyer action",
    )

    # ==========================================================================
    # Shipping
    # ==========================================================================

    tracking_number = models.CharField(max_length=100, blank=True, default="")
    carrier = models.CharField(
        max_length=20,
        choices=Carrier.choices,
        blank=True,
        default="",
    )
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivery_confirmed_at = models.DateTimeField(null=True, blank=True)
    shipping_address = models.JSONField(
        default=dict,
        blank=True,
        help_text="Destination address captured at purchase",
    )

    rating_enabled = models.BooleanField(
        default=False,
        help_text="Unlocked once the purchase completes",
    )
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Transaction"
        verbose_name_plural = "Transactions"
        indexes = [
            models.Index(fields=["buyer", "status"], name="escrow_txn_buyer_status_idx"),
            models.Index(fields=["seller", "status"], name="escrow_txn_seller_status_idx"),
            models.Index(
                fields=["status", "escrow_status", "auto_release_date"],
                name="escrow_txn_auto_release_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="escrow_txn_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(
                    amount_cents=models.F("platform_fee_cents") + models.F("seller_payout_cents")
                ),
                name="escrow_txn_fees_balance",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{from_minor_units(self.amount_cents, self.currency)} {self.currency.upper()}"
        return f"Transaction({self.id}, {self.status}, {amount_display})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    def is_party(self, user_id) -> bool:
        return user_id in (self.buyer_id, self.seller_id)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=TransactionStatus.PENDING,
        target=TransactionStatus.PAYMENT_HELD,
    )
    def hold_payment(self):
        """
        Funds are authorized and the item is reserved.

        Transition: PENDING -> PAYMENT_HELD
        """
        self.escrow_status = EscrowStatus.HELD

    @transition(
        field=status,
        source=TransactionStatus.PAYMENT_HELD,
        target=TransactionStatus.SHIPPED,
    )
    def ship(self, tracking_number, carrier, shipped_at, auto_release_at):
        """
        Seller handed the item to a carrier.

        Transition: PAYMENT_HELD -> SHIPPED
        """
        self.tracking_number = tracking_number
        self.carrier = carrier
        self.shipped_at = shipped_at
        self.auto_release_date = auto_release_at

    @transition(
        field=status,
        source=[TransactionStatus.SHIPPED, TransactionStatus.DISPUTED],
        target=TransactionStatus.COMPLETED,
    )
    def complete(self, escrow_status, released_at):
        """
        Capture succeeded; funds belong to the seller.

        Transition: SHIPPED/DISPUTED -> COMPLETED
        """
        self.escrow_status = escrow_status
        self.escrow_release_date = released_at
        self.completed_at = released_at
        self.rating_enabled = True
        if escrow_status == EscrowStatus.RELEASED:
            self.delivery_confirmed_at = released_at

    @transition(
        field=status,
        source=[TransactionStatus.PAYMENT_HELD, TransactionStatus.SHIPPED],
        target=TransactionStatus.DISPUTED,
    )
    def open_dispute(self):
        """
        Buyer or seller disputed the purchase.

        Transition: PAYMENT_HELD/SHIPPED -> DISPUTED
        """

    @transition(
        field=status,
        source=[
            TransactionStatus.PENDING,
            TransactionStatus.PAYMENT_HELD,
            TransactionStatus.SHIPPED,
        ],
        target=TransactionStatus.DISPUTED,
    )
    def force_dispute(self):
        """
        The card network opened a chargeback.

        Transition: PENDING/PAYMENT_HELD/SHIPPED -> DISPUTED
        """

    @transition(
        field=status,
        source=[TransactionStatus.PENDING, TransactionStatus.DISPUTED],
        target=TransactionStatus.CANCELLED,
    )
    def cancel(self, cancelled_at):
        """
        Purchase voided before capture.

        Transition: PENDING/DISPUTED -> CANCELLED
        """
        self.escrow_status = EscrowStatus.REFUNDED
        self.cancelled_at = cancelled_at

    @transition(
        field=status,
        source=TransactionStatus.DISPUTED,
        target=TransactionStatus.REFUNDED,
    )
    def refund(self, refunded_at):
        """
        Dispute resolved in the buyer's favour.

        Transition: DISPUTED -> REFUNDED
        """
        self.escrow_status = EscrowStatus.REFUNDED
        self.refunded_at = refunded_at

    @transition(
        field=status,
        source=[
            TransactionStatus.PENDING,
            TransactionStatus.PAYMENT_HELD,
            TransactionStatus.SHIPPED,
        ],
        target=TransactionStatus.FAILED,
    )
    def fail(self, reason, failed_at):
        """
        The gateway reported the payment as failed.

        Transition: PENDING/PAYMENT_HELD/SHIPPED -> FAILED
        """
        self.escrow_status = EscrowStatus.REFUNDED
        self.failure_reason = reason
        self.failed_at = failed_at
