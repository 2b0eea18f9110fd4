"""
DRF serializers for the escrow API.

Money is stored in minor units and rendered in major units as decimal
strings ("92.00"), converted only here at the API boundary.

Related files:
    - models/: Transaction, Dispute
    - views.py: Escrow API views
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema_field
from rest_framework import serializers

from escrow.models import Dispute, Transaction
from escrow.money import from_minor_units
from escrow.state_machines import Carrier, DisputeReason


@extend_schema_field(OpenApiTypes.DECIMAL)
class MinorUnitAmountField(serializers.Field):
    """Read-only decimal string for an integer minor-unit attribute."""

    def __init__(self, cents_attr: str, **kwargs):
        kwargs["read_only"] = True
        kwargs["source"] = "*"
        self.cents_attr = cents_attr
        super().__init__(**kwargs)

    def to_representation(self, instance):
        return str(from_minor_units(getattr(instance, self.cents_attr), instance.currency))


# =============================================================================
# Fees
# =============================================================================


class FeeBreakdownSerializer(serializers.Serializer):
    """
    Fee breakdown in major units.

    Usage:
        FeeBreakdownSerializer(fees.as_decimal_dict()).data
    """

    amount = serializers.CharField(read_only=True)
    currency = serializers.CharField(read_only=True)
    seller_tier = serializers.CharField(read_only=True)
    platform_fee_percentage = serializers.CharField(read_only=True)
    platform_fee = serializers.CharField(read_only=True)
    gateway_fee = serializers.CharField(
        read_only=True,
        help_text="Estimated card processing fee",
    )
    seller_payout = serializers.CharField(read_only=True)
    net_platform_revenue = serializers.CharField(read_only=True)


class CreatePaymentIntentSerializer(serializers.Serializer):
    item_id = serializers.UUIDField(help_text="Item to purchase")


class PaymentIntentResponseSerializer(serializers.Serializer):
    payment_intent_id = serializers.CharField(read_only=True)
    client_secret = serializers.CharField(read_only=True)
    fees = FeeBreakdownSerializer(read_only=True)


# =============================================================================
# Transactions
# =============================================================================


class ShippingAddressSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    line1 = serializers.CharField(max_length=200)
    line2 = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")
    city = serializers.CharField(max_length=100)
    state = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    postal_code = serializers.CharField(max_length=20)
    country = serializers.CharField(max_length=2, required=False, default="US")


class DisputeSerializer(serializers.ModelSerializer):
    class Meta:
        model = Dispute
        fields = [
            "id",
            "reason",
            "description",
            "source",
            "opened_by",
            "opened_at",
            "gateway_dispute_id",
            "resolution",
            "resolution_note",
            "resolved_at",
        ]
        read_only_fields = fields


class TransactionSerializer(serializers.ModelSerializer):
    """Full transaction view for the buyer, the seller and staff."""

    amount = MinorUnitAmountField("amount_cents")
    platform_fee = MinorUnitAmountField("platform_fee_cents")
    gateway_fee = MinorUnitAmountField("gateway_fee_cents")
    seller_payout = MinorUnitAmountField("seller_payout_cents")
    net_platform_revenue = MinorUnitAmountField("net_platform_revenue_cents")
    dispute = DisputeSerializer(read_only=True)

    class Meta:
        model = Transaction
        fields = [
            "id",
            "buyer",
            "seller",
            "item_id",
            "amount",
            "currency",
            "platform_fee_percentage",
            "platform_fee",
            "gateway_fee",
            "seller_payout",
            "net_platform_revenue",
            "status",
            "escrow_status",
            "payout_status",
            "payment_intent_id",
            "transfer_id",
            "tracking_number",
            "carrier",
            "shipped_at",
            "auto_release_date",
            "escrow_release_date",
            "delivery_confirmed_at",
            "completed_at",
            "rating_enabled",
            "shipping_address",
            "dispute",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CreateTransactionSerializer(serializers.Serializer):
    item_id = serializers.UUIDField()
    payment_intent_id = serializers.CharField(max_length=255)
    shipping_address = ShippingAddressSerializer()


class MarkShippedSerializer(serializers.Serializer):
    tracking_number = serializers.CharField(max_length=100)
    carrier = serializers.ChoiceField(choices=Carrier.choices)


class OpenDisputeSerializer(serializers.Serializer):
    reason = serializers.ChoiceField(choices=DisputeReason.choices)
    description = serializers.CharField(
        max_length=2000,
        required=False,
        allow_blank=True,
        default="",
    )


class AutoReleaseReportSerializer(serializers.Serializer):
    candidates = serializers.IntegerField()
    released = serializers.IntegerField()
    skipped = serializers.IntegerField()
    failed = serializers.IntegerField()
    failed_ids = serializers.ListField(child=serializers.CharField())
