"""
Money helpers.

Amounts are stored and computed as integers in the currency's minor unit
(cents for USD). Decimal values only exist at the API boundary.

Usage:
    from escrow.money import to_minor_units, from_minor_units

    to_minor_units(Decimal("100.00"), "usd")   # 10000
    from_minor_units(10000, "usd")             # Decimal("100.00")
    from_minor_units(1500, "jpy")              # Decimal("1500")
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.db import models

from core.exceptions import ValidationError


class Currency(models.TextChoices):
    """Currencies accepted for purchases."""

    USD = "usd", "US Dollar"
    EUR = "eur", "Euro"
    GBP = "gbp", "British Pound"
    JPY = "jpy", "Japanese Yen"


# Number of decimal places in each currency's minor unit
MINOR_UNIT_EXPONENTS: dict[str, int] = {
    Currency.USD: 2,
    Currency.EUR: 2,
    Currency.GBP: 2,
    Currency.JPY: 0,
}


def minor_unit_exponent(currency: str) -> int:
    try:
        return MINOR_UNIT_EXPONENTS[currency.lower()]
    except KeyError:
        raise ValidationError(
            f"Unsupported currency: {currency}",
            error_code="UNSUPPORTED_CURRENCY",
            details={"currency": currency},
        ) from None


def round_half_up(value: Decimal) -> int:
    """Round a Decimal amount of minor units to an integer, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_minor_units(amount, currency: str) -> int:
    """
    Convert a major-unit amount (e.g. "100.00") into minor units.

    Raises:
        ValidationError: If the amount is not a number
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError(
            f"Invalid amount: {amount}",
            error_code="INVALID_AMOUNT",
            details={"amount": str(amount)},
        ) from None
    if not value.is_finite():
        raise ValidationError(
            f"Invalid amount: {amount}",
            error_code="INVALID_AMOUNT",
            details={"amount": str(amount)},
        )
    return round_half_up(value.scaleb(minor_unit_exponent(currency)))


def from_minor_units(amount_cents: int, currency: str) -> Decimal:
    """Convert minor units into a Decimal with the currency's precision."""
    exponent = minor_unit_exponent(currency)
    return Decimal(amount_cents).scaleb(-exponent).quantize(Decimal(1).scaleb(-exponent))
