"""
SellerAccount model: a seller's payout destination and fee tier.

Capability flags are a cache of what the gateway reports through
``account.updated`` webhooks; the engine reads them to decide whether a
payout can be attempted.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from escrow.state_machines import SellerTier


class SellerAccount(BaseModel):
    """Connected payout account and platform fee tier for one seller."""

    seller = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="seller_account",
    )
    tier = models.CharField(
        max_length=20,
        choices=SellerTier.choices,
        default=SellerTier.STANDARD,
        help_text="Premium sellers pay a reduced platform fee",
    )
    stripe_account_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Connected account id (acct_xxx)",
    )
    charges_enabled = models.BooleanField(default=False)
    payouts_enabled = models.BooleanField(default=False)
    details_submitted = models.BooleanField(default=False)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Seller Account"
        verbose_name_plural = "Seller Accounts"

    def __str__(self) -> str:
        return f"SellerAccount({self.seller_id}, {self.tier}, {self.stripe_account_id or 'unlinked'})"

    @property
    def is_ready_for_payouts(self) -> bool:
        return bool(self.stripe_account_id) and self.payouts_enabled
