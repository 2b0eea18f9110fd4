"""
Fee computation for marketplace sales.

FeeCalculator is pure: given a sale price in minor units and the seller's
tier it returns the platform's take, the card-processing estimate and the
seller's payout. Every output is an integer number of minor units rounded
half-up, and ``platform_fee_cents + seller_payout_cents == amount_cents``
holds exactly because the payout is derived from the rounded fee.

Worked example (standard seller, 100.00 USD):
    platform fee     = 10000 * 0.08          = 800
    gateway fee      = 10000 * 0.029 + 30    = 320
    seller payout    = 10000 - 800           = 9200
    net revenue      = 800 - 320             = 480

The gateway fee is an estimate for display and reporting; it is never
reconciled against the fee the processor actually charges.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings

from core.exceptions import ValidationError
from escrow.money import from_minor_units, minor_unit_exponent, round_half_up
from escrow.state_machines import SellerTier

DEFAULT_PLATFORM_FEE_PERCENT = {
    SellerTier.STANDARD: Decimal("8"),
    SellerTier.PREMIUM: Decimal("5"),
}
DEFAULT_GATEWAY_FEE_PERCENT = Decimal("2.9")
DEFAULT_GATEWAY_FEE_FIXED = Decimal("0.30")


@dataclass(frozen=True)
class FeeBreakdown:
    """
    Result of a fee calculation, all amounts in minor units.

    ``platform_fee_percentage`` is stored alongside the absolute fee so a
    later change to the take rate never alters historical records.
    """

    amount_cents: int
    currency: str
    seller_tier: str
    platform_fee_percentage: Decimal
    platform_fee_cents: int
    gateway_fee_cents: int
    seller_payout_cents: int
    net_platform_revenue_cents: int

    def as_decimal_dict(self) -> dict[str, object]:
        """Major-unit representation for API responses."""
        return {
            "amount": from_minor_units(self.amount_cents, self.currency),
            "currency": self.currency,
            "seller_tier": self.seller_tier,
            "platform_fee_percentage": self.platform_fee_percentage,
            "platform_fee": from_minor_units(self.platform_fee_cents, self.currency),
            "gateway_fee": from_minor_units(self.gateway_fee_cents, self.currency),
            "seller_payout": from_minor_units(self.seller_payout_cents, self.currency),
            "net_platform_revenue": from_minor_units(
                self.net_platform_revenue_cents, self.currency
            ),
        }

    def as_metadata(self) -> dict[str, str]:
        """Flat string mapping suitable for gateway metadata."""
        return {
            "platform_fee_cents": str(self.platform_fee_cents),
            "platform_fee_percentage": str(self.platform_fee_percentage),
            "seller_payout_cents": str(self.seller_payout_cents),
        }


class FeeCalculator:
    """
    Computes the fee breakdown for a sale.

    Rates are percentages; the fixed gateway fee is in major units and is
    converted to the sale currency's minor unit.

    Usage:
        calculator = FeeCalculator.from_settings()
        fees = calculator.calculate(10000, SellerTier.PREMIUM)
        fees.platform_fee_cents   # 500
    """

    def __init__(
        self,
        standard_percent: Decimal = DEFAULT_PLATFORM_FEE_PERCENT[SellerTier.STANDARD],
        premium_percent: Decimal = DEFAULT_PLATFORM_FEE_PERCENT[SellerTier.PREMIUM],
        gateway_percent: Decimal = DEFAULT_GATEWAY_FEE_PERCENT,
        gateway_fixed: Decimal = DEFAULT_GATEWAY_FEE_FIXED,
        default_currency: str = "usd",
    ):
        self.platform_percent = {
            SellerTier.STANDARD: Decimal(standard_percent),
            SellerTier.PREMIUM: Decimal(premium_percent),
        }
        self.gateway_percent = Decimal(gateway_percent)
        self.gateway_fixed = Decimal(gateway_fixed)
        self.default_currency = default_currency

    @classmethod
    def from_settings(cls) -> FeeCalculator:
        return cls(
            standard_percent=Decimal(settings.ESCROW_PLATFORM_FEE_STANDARD_PERCENT),
            premium_percent=Decimal(settings.ESCROW_PLATFORM_FEE_PREMIUM_PERCENT),
            gateway_percent=Decimal(settings.ESCROW_GATEWAY_FEE_PERCENT),
            gateway_fixed=Decimal(settings.ESCROW_GATEWAY_FEE_FIXED),
            default_currency=settings.ESCROW_DEFAULT_CURRENCY,
        )

    def platform_fee_percentage(self, tier: str) -> Decimal:
        try:
            return self.platform_percent[tier]
        except KeyError:
            raise ValidationError(
                f"Unknown seller tier: {tier}",
                error_code="INVALID_SELLER_TIER",
                details={"seller_tier": tier},
            ) from None

    def calculate(
        self,
        amount_cents: int,
        tier: str = SellerTier.STANDARD,
        currency: str | None = None,
    ) -> FeeBreakdown:
        """
        Compute the fee breakdown for a sale price.

        Args:
            amount_cents: Sale price in minor units
            tier: Seller tier (standard or premium)
            currency: Sale currency (defaults to ESCROW_DEFAULT_CURRENCY)

        Returns:
            FeeBreakdown with every amount in minor units

        Raises:
            ValidationError: If the price is not a positive integer or the
                tier/currency is unknown
        """
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
            raise ValidationError(
                "Price must be an integer number of minor units",
                error_code="INVALID_PRICE",
                details={"amount_cents": str(amount_cents)},
            )
        if amount_cents <= 0:
            raise ValidationError(
                "Price must be positive",
                error_code="INVALID_PRICE",
                details={"amount_cents": amount_cents},
            )

        currency = currency or self.default_currency
        percentage = self.platform_fee_percentage(tier)
        exponent = minor_unit_exponent(currency)
        amount = Decimal(amount_cents)

        platform_fee = round_half_up(amount * percentage / 100)
        gateway_fee = round_half_up(
            amount * self.gateway_percent / 100 + self.gateway_fixed.scaleb(exponent)
        )

        return FeeBreakdown(
            amount_cents=amount_cents,
            currency=currency.lower(),
            seller_tier=str(tier),
            platform_fee_percentage=percentage,
            platform_fee_cents=platform_fee,
            gateway_fee_cents=gateway_fee,
            seller_payout_cents=amount_cents - platform_fee,
            net_platform_revenue_cents=platform_fee - gateway_fee,
        )
