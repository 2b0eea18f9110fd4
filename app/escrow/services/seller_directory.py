"""
Database-backed SellerAccountDirectory.

Sellers without a SellerAccount row are standard-tier and cannot receive
payouts.
"""

from __future__ import annotations

import logging

from django.utils import timezone

from escrow.models import SellerAccount
from escrow.protocols import ConnectedAccountInfo
from escrow.state_machines import SellerTier

logger = logging.getLogger(__name__)


class DjangoSellerAccountDirectory:
    """SellerAccountDirectory over escrow.models.SellerAccount."""

    def get_connected_account(self, seller_id: int) -> ConnectedAccountInfo | None:
        account = SellerAccount.objects.filter(seller_id=seller_id).first()
        if account is None or not account.stripe_account_id:
            return None

        return ConnectedAccountInfo(
            account_ref=account.stripe_account_id,
            charges_enabled=account.charges_enabled,
            payouts_enabled=account.payouts_enabled,
            details_submitted=account.details_submitted,
        )

    def get_tier(self, seller_id: int) -> str:
        tier = (
            SellerAccount.objects.filter(seller_id=seller_id)
            .values_list("tier", flat=True)
            .first()
        )
        return tier or SellerTier.STANDARD

    def update_capabilities(
        self,
        account_ref: str,
        charges_enabled: bool,
        payouts_enabled: bool,
        details_submitted: bool,
    ) -> bool:
        """Refresh cached capability flags; False if the account is unknown."""
        updated = SellerAccount.objects.filter(stripe_account_id=account_ref).update(
            charges_enabled=charges_enabled,
            payouts_enabled=payouts_enabled,
            details_submitted=details_submitted,
            updated_at=timezone.now(),
        )
        if updated:
            logger.info(
                f"Capabilities updated for connected account {account_ref}",
                extra={
                    "account_ref": account_ref,
                    "charges_enabled": charges_enabled,
                    "payouts_enabled": payouts_enabled,
                    "details_submitted": details_submitted,
                },
            )
        return bool(updated)
