"""
Checkout: fee previews and authorization holds, before any Transaction.

The buyer's client confirms the returned intent directly with Stripe and
then asks EscrowStateMachine.create to materialize the transaction.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.exceptions import ConflictError, ValidationError
from escrow.protocols import AuthorizePaymentParams

if TYPE_CHECKING:
    from escrow.fees import FeeBreakdown, FeeCalculator
    from escrow.protocols import ItemCatalog, PaymentGateway, SellerAccountDirectory


logger = logging.getLogger(__name__)


@dataclass
class PaymentIntentQuote:
    """An authorization hold ready for client-side confirmation."""

    payment_intent_id: str
    client_secret: str | None
    fees: FeeBreakdown


class CheckoutService:
    """Prices items and places manual-capture holds."""

    def __init__(
        self,
        gateway: PaymentGateway,
        catalog: ItemCatalog,
        directory: SellerAccountDirectory,
        fee_calculator: FeeCalculator,
    ):
        self.gateway = gateway
        self.catalog = catalog
        self.directory = directory
        self.fee_calculator = fee_calculator

    def preview_fees(self, item_id: uuid.UUID) -> FeeBreakdown:
        """Fee breakdown for an item at its seller's current tier."""
        item = self.catalog.get_for_purchase(item_id)
        return self.fee_calculator.calculate(
            item.price_cents,
            self.directory.get_tier(item.seller_id),
            item.currency,
        )

    def create_payment_intent(self, buyer_id: int, item_id: uuid.UUID) -> PaymentIntentQuote:
        """
        Place an authorization hold for the item's price.

        Raises:
            NotFoundError: Unknown item
            ConflictError: Item not for sale, or seller cannot accept charges
            ValidationError: Buyer is the seller
            GatewayError: Stripe rejected the authorization
        """
        item = self.catalog.get_for_purchase(item_id)
        if not item.is_purchasable:
            raise ConflictError(
                "Item is no longer available",
                error_code="ITEM_UNAVAILABLE",
                details={"item_id": str(item_id)},
            )
        if item.seller_id == buyer_id:
            raise ValidationError(
                "You cannot buy your own item",
                error_code="CANNOT_BUY_OWN_ITEM",
                details={"item_id": str(item_id)},
            )

        account = self.directory.get_connected_account(item.seller_id)
        if account is not None and not account.charges_enabled:
            raise ConflictError(
                "Seller cannot accept payments yet",
                error_code="SELLER_CHARGES_DISABLED",
                details={"item_id": str(item_id)},
            )

        tier = self.directory.get_tier(item.seller_id)
        fees = self.fee_calculator.calculate(item.price_cents, tier, item.currency)

        intent = self.gateway.authorize_payment(
            AuthorizePaymentParams(
                amount_cents=fees.amount_cents,
                currency=fees.currency,
                idempotency_key=f"authorize:{item_id}:{buyer_id}:{uuid.uuid4().hex}",
                metadata={
                    "item_id": str(item_id),
                    "buyer_id": str(buyer_id),
                    "seller_id": str(item.seller_id),
                    "seller_tier": str(tier),
                    **fees.as_metadata(),
                },
            )
        )

        logger.info(
            f"Authorization hold placed for item {item_id}",
            extra={
                "item_id": str(item_id),
                "buyer_id": buyer_id,
                "payment_intent_id": intent.id,
                "amount_cents": fees.amount_cents,
            },
        )
        return PaymentIntentQuote(
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            fees=fees,
        )
