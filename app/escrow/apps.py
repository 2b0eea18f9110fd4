"""
Escrow app configuration.

This app provides the marketplace escrow engine:
- Fee computation and authorization holds
- The transaction state machine and its CAS store
- Seller payouts through Stripe Connect
- Webhook reconciliation, auto-release and dispute handling
"""

from django.apps import AppConfig


class EscrowConfig(AppConfig):
    """Configuration for the escrow application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "escrow"
    verbose_name = "Escrow"
