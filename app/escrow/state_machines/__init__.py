"""
State machine enums and the allowed-transition table for escrow models.
"""

from escrow.state_machines.states import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    Carrier,
    DisputeReason,
    DisputeResolution,
    DisputeSource,
    EscrowStatus,
    PayoutStatus,
    SellerTier,
    TransactionStatus,
    WebhookEventStatus,
    can_transition,
    is_terminal,
)

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
