"""
Payment gateway adapters.

All gateway calls go through these adapters to ensure consistent error
handling, timeouts, idempotency and observability.

Usage:
    from escrow.adapters import StripeAdapter

    gateway = StripeAdapter.from_settings()
"""

from escrow.adapters.stripe_adapter import (
    IdempotencyKeyGenerator,
    StripeAdapter,
)

__all__ = [
    "IdempotencyKeyGenerator",
    "StripeAdapter",
]
