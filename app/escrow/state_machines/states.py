"""
State enums for escrow models.

This module defines the closed enumerations used by escrow models with
django-fsm, together with the explicit allowed-transition table that
TransactionStore consults before every status write.

State Machines Overview:

Transaction States:
    pending → payment_held → shipped → completed (buyer confirms / auto-release)
    payment_held/shipped → disputed → completed | refunded | cancelled (admin)
    pending → cancelled (item no longer available, authorization voided)
    pending/payment_held/shipped → failed (gateway reports the payment failed)
    pending/payment_held/shipped → disputed (gateway chargeback)

Escrow States:
    held → released (buyer confirmed delivery)
    held → auto_released (grace window elapsed)
    held → refunded (authorization voided on cancel/refund/failure)

Payout States:
    none → completed
    none → failed → completed (retry)
"""

from django.db import models


class TransactionStatus(models.TextChoices):
    """
    States for the Transaction lifecycle.

    Terminal states: COMPLETED, CANCELLED, REFUNDED, FAILED
    """

    PENDING = "pending", "Pending"
    PAYMENT_HELD = "payment_held", "Payment Held"
    SHIPPED = "shipped", "Shipped"
    COMPLETED = "completed", "Completed"
    DISPUTED = "disputed", "Disputed"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"
    FAILED = "failed", "Failed"


class EscrowStatus(models.TextChoices):
    """Where the buyer's funds are relative to the seller."""

    HELD = "held", "Held"
    RELEASED = "released", "Released"
    AUTO_RELEASED = "auto_released", "Auto Released"
    REFUNDED = "refunded", "Refunded"


class PayoutStatus(models.TextChoices):
    """Outcome of the transfer to the seller's connected account."""

    NONE = "none", "None"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class SellerTier(models.TextChoices):
    """Platform fee tier of a seller."""

    STANDARD = "standard", "Standard"
    PREMIUM = "premium", "Premium"


class Carrier(models.TextChoices):
    """Shipping carriers accepted when marking a transaction shipped."""

    USPS = "usps", "USPS"
    UPS = "ups", "UPS"
    FEDEX = "fedex", "FedEx"
    DHL = "dhl", "DHL"
    OTHER = "other", "Other"


class DisputeReason(models.TextChoices):
    """Why a party (or the card network) disputed a transaction."""

    NOT_AS_DESCRIBED = "not_as_described", "Not As Described"
    NOT_RECEIVED = "not_received", "Not Received"
    DAMAGED = "damaged", "Damaged"
    OTHER = "other", "Other"


class DisputeSource(models.TextChoices):
    """Who opened the dispute."""

    PARTY = "party", "Buyer or Seller"
    GATEWAY = "gateway", "Payment Gateway"


class DisputeResolution(models.TextChoices):
    """Administrative outcome of a dispute."""

    RELEASED = "released", "Released to Seller"
    REFUNDED = "refunded", "Refunded to Buyer"
    CANCELLED = "cancelled", "Cancelled"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for gateway webhook events.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED → PROCESSING (retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


_S = TransactionStatus

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    _S.PENDING: frozenset({_S.PAYMENT_HELD, _S.CANCELLED, _S.DISPUTED, _S.FAILED}),
    _S.PAYMENT_HELD: frozenset({_S.SHIPPED, _S.DISPUTED, _S.FAILED}),
    _S.SHIPPED: frozenset({_S.COMPLETED, _S.DISPUTED, _S.FAILED}),
    _S.DISPUTED: frozenset({_S.COMPLETED, _S.REFUNDED, _S.CANCELLED}),
    _S.COMPLETED: frozenset(),
    _S.CANCELLED: frozenset(),
    _S.REFUNDED: frozenset(),
    _S.FAILED: frozenset(),
}

TERMINAL_STATUSES: frozenset[str] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def can_transition(source: str, target: str) -> bool:
    """Return True if ``source → target`` is an edge of the transaction graph."""
    return target in ALLOWED_TRANSITIONS.get(source, frozenset())


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


__all__ = [
    "ALLOWED_TRANSITIONS",
    "Carrier",
    "DisputeReason",
    "DisputeResolution",
    "DisputeSource",
    "EscrowStatus",
    "PayoutStatus",
    "SellerTier",
    "TERMINAL_STATUSES",
    "TransactionStatus",
    "WebhookEventStatus",
    "can_transition",
    "is_terminal",
]
