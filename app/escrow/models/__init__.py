"""
Escrow domain models.

- Transaction: one escrowed purchase (aggregate root)
- Dispute: dispute record attached to a transaction
- SellerAccount: seller payout account and fee tier
- WebhookEvent: gateway webhook events for idempotent processing
"""

from escrow.models.dispute import Dispute
from escrow.models.seller_account import SellerAccount
from escrow.models.transaction import Transaction
from escrow.models.webhook_event import WebhookEvent

__all__ = [
    "Dispute",
    "SellerAccount",
    "Transaction",
    "WebhookEvent",
]
