"""
Escrow services.

Components:
    TransactionStore: CAS persistence for Transaction
    EscrowStateMachine: all status transitions
    PayoutDispatcher: transfers to sellers after capture
    DisputeHandler: party disputes, chargebacks, admin resolution
    CheckoutService: fee previews and authorization holds
    build_engine: production wiring of the above
"""

from escrow.services.checkout import CheckoutService, PaymentIntentQuote
from escrow.services.dispute_handler import DisputeHandler, map_gateway_reason
from escrow.services.engine import EscrowEngine, build_engine
from escrow.services.payout_dispatcher import PayoutDispatcher
from escrow.services.seller_directory import DjangoSellerAccountDirectory
from escrow.services.state_machine import EscrowStateMachine
from escrow.services.transaction_store import TransactionStore

__all__ = [
    "CheckoutService",
    "DisputeHandler",
    "DjangoSellerAccountDirectory",
    "EscrowEngine",
    "EscrowStateMachine",
    "PaymentIntentQuote",
    "PayoutDispatcher",
    "TransactionStore",
    "build_engine",
    "map_gateway_reason",
]
