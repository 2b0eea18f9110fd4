"""
Tests for FeeCalculator and the money helpers.

Tests cover:
- Standard and premium tier breakdowns
- Half-up rounding and the fee/payout balance
- Input validation (non-positive prices, unknown tiers and currencies)
- Zero-decimal currencies
- Major-unit rendering at the API boundary
"""

from decimal import Decimal

import pytest
from django.test import override_settings

from core.exceptions import ValidationError
from escrow.fees import FeeCalculator
from escrow.money import from_minor_units, to_minor_units
from escrow.state_machines import SellerTier


class TestFeeCalculatorTiers:
    """Tests for the worked examples of each tier."""

    def test_standard_seller_100_dollars(self):
        fees = FeeCalculator().calculate(10000, SellerTier.STANDARD)

        assert fees.platform_fee_percentage == Decimal("8")
        assert fees.platform_fee_cents == 800
        assert fees.gateway_fee_cents == 320
        assert fees.seller_payout_cents == 9200
        assert fees.net_platform_revenue_cents == 480

    def test_premium_seller_100_dollars(self):
        fees = FeeCalculator().calculate(10000, SellerTier.PREMIUM)

        assert fees.platform_fee_percentage == Decimal("5")
        assert fees.platform_fee_cents == 500
        assert fees.gateway_fee_cents == 320
        assert fees.seller_payout_cents == 9500
        assert fees.net_platform_revenue_cents == 180

    def test_default_tier_is_standard(self):
        fees = FeeCalculator().calculate(10000)

        assert fees.seller_tier == SellerTier.STANDARD
        assert fees.platform_fee_cents == 800

    @override_settings(
        ESCROW_PLATFORM_FEE_STANDARD_PERCENT="10",
        ESCROW_PLATFORM_FEE_PREMIUM_PERCENT="4",
        ESCROW_GATEWAY_FEE_PERCENT="3",
        ESCROW_GATEWAY_FEE_FIXED="0.25",
    )
    def test_from_settings_reads_configured_rates(self):
        calculator = FeeCalculator.from_settings()

        standard = calculator.calculate(10000, SellerTier.STANDARD)
        premium = calculator.calculate(10000, SellerTier.PREMIUM)

        assert standard.platform_fee_cents == 1000
        assert premium.platform_fee_cents == 400
        assert standard.gateway_fee_cents == 325

    @override_settings(ESCROW_DEFAULT_CURRENCY="eur")
    def test_currency_defaults_to_configured_currency(self):
        fees = FeeCalculator.from_settings().calculate(10000)

        assert fees.currency == "eur"


class TestFeeCalculatorRounding:
    """Tests for rounding behavior."""

    @pytest.mark.parametrize("amount_cents", [1, 99, 1234, 9999, 10001, 123457, 99999999])
    def test_fee_plus_payout_equals_price(self, amount_cents):
        for tier in (SellerTier.STANDARD, SellerTier.PREMIUM):
            fees = FeeCalculator().calculate(amount_cents, tier)
            assert fees.platform_fee_cents + fees.seller_payout_cents == amount_cents

    def test_platform_fee_rounds_half_up(self):
        # 5% of 50 cents = 2.5 cents
        fees = FeeCalculator().calculate(50, SellerTier.PREMIUM)

        assert fees.platform_fee_cents == 3
        assert fees.seller_payout_cents == 47

    def test_gateway_fee_rounds_half_up(self):
        # 2.9% of 50 cents = 1.45, plus 30 = 31.45
        fees = FeeCalculator().calculate(50, SellerTier.STANDARD)
        assert fees.gateway_fee_cents == 31

        # 2.9% of 150.00 = 435 + 30 = 465 exactly
        fees = FeeCalculator().calculate(15000, SellerTier.STANDARD)
        assert fees.gateway_fee_cents == 465

    def test_net_revenue_can_be_negative_on_small_sales(self):
        fees = FeeCalculator().calculate(100, SellerTier.STANDARD)

        assert fees.platform_fee_cents == 8
        assert fees.gateway_fee_cents == 33
        assert fees.net_platform_revenue_cents == -25


class TestFeeCalculatorValidation:
    """Tests for rejected inputs."""

    @pytest.mark.parametrize("amount_cents", [0, -1, -10000])
    def test_non_positive_price_rejected(self, amount_cents):
        with pytest.raises(ValidationError) as exc_info:
            FeeCalculator().calculate(amount_cents, SellerTier.STANDARD)

        assert exc_info.value.error_code == "INVALID_PRICE"

    @pytest.mark.parametrize("amount_cents", [100.5, "100", True, None])
    def test_non_integer_price_rejected(self, amount_cents):
        with pytest.raises(ValidationError) as exc_info:
            FeeCalculator().calculate(amount_cents, SellerTier.STANDARD)

        assert exc_info.value.error_code == "INVALID_PRICE"

    def test_unknown_tier_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            FeeCalculator().calculate(10000, "platinum")

        assert exc_info.value.error_code == "INVALID_SELLER_TIER"

    def test_unknown_currency_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            FeeCalculator().calculate(10000, SellerTier.STANDARD, "xyz")

        assert exc_info.value.error_code == "UNSUPPORTED_CURRENCY"


class TestZeroDecimalCurrency:
    """Tests for currencies without a minor unit."""

    def test_jpy_fixed_gateway_fee_is_not_scaled(self):
        # 10,000 JPY: 2.9% = 290, fixed 0.30 JPY rounds with it -> 290
        fees = FeeCalculator().calculate(10000, SellerTier.STANDARD, "jpy")

        assert fees.currency == "jpy"
        assert fees.platform_fee_cents == 800
        assert fees.gateway_fee_cents == 290
        assert fees.seller_payout_cents == 9200

    def test_jpy_renders_without_decimals(self):
        fees = FeeCalculator().calculate(1500, SellerTier.STANDARD, "jpy")

        assert fees.as_decimal_dict()["amount"] == Decimal("1500")
        assert str(fees.as_decimal_dict()["amount"]) == "1500"


class TestFeeBreakdownRendering:
    """Tests for the API and metadata representations."""

    def test_as_decimal_dict_uses_major_units(self):
        data = FeeCalculator().calculate(10000, SellerTier.STANDARD).as_decimal_dict()

        assert str(data["amount"]) == "100.00"
        assert str(data["platform_fee"]) == "8.00"
        assert str(data["gateway_fee"]) == "3.20"
        assert str(data["seller_payout"]) == "92.00"
        assert str(data["net_platform_revenue"]) == "4.80"

    def test_as_metadata_is_flat_strings(self):
        metadata = FeeCalculator().calculate(10000, SellerTier.PREMIUM).as_metadata()

        assert metadata == {
            "platform_fee_cents": "500",
            "platform_fee_percentage": "5",
            "seller_payout_cents": "9500",
        }


class TestMoneyHelpers:
    """Tests for minor-unit conversion."""

    def test_to_minor_units_rounds_half_up(self):
        assert to_minor_units("100.00", "usd") == 10000
        assert to_minor_units(Decimal("0.005"), "usd") == 1
        assert to_minor_units("19.994", "usd") == 1999

    def test_to_minor_units_rejects_garbage(self):
        with pytest.raises(ValidationError) as exc_info:
            to_minor_units("ten dollars", "usd")

        assert exc_info.value.error_code == "INVALID_AMOUNT"

    def test_to_minor_units_rejects_infinity(self):
        with pytest.raises(ValidationError):
            to_minor_units("Infinity", "usd")

    def test_from_minor_units_keeps_currency_precision(self):
        assert str(from_minor_units(9200, "usd")) == "92.00"
        assert str(from_minor_units(-25, "usd")) == "-0.25"
        assert str(from_minor_units(1500, "JPY")) == "1500"
