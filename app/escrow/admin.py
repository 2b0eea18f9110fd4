"""
Escrow admin configuration.

Transactions are read-only here: every status change goes through the
state machine. Dispute resolution is offered as admin actions that call
DisputeHandler.resolve, which is the only place disputes are resolved.
"""

from django.contrib import admin, messages

from core.exceptions import BaseApplicationError
from escrow.models import Dispute, SellerAccount, Transaction, WebhookEvent
from escrow.services import build_engine
from escrow.state_machines import DisputeResolution, TransactionStatus


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """
    Admin configuration for Transaction.

    Provides visibility into escrow state and the dispute resolution actions.
    """

    list_display = [
        "id",
        "buyer",
        "seller",
        "amount_cents",
        "currency",
        "status",
        "escrow_status",
        "payout_status",
        "auto_release_date",
        "created_at",
    ]
    list_filter = ["status", "escrow_status", "payout_status", "currency"]
    search_fields = ["id", "payment_intent_id", "transfer_id", "buyer__email", "seller__email"]
    ordering = ["-created_at"]
    actions = ["release_to_seller", "refund_buyer", "cancel_transaction"]

    fieldsets = (
        (None, {"fields": ("id", "buyer", "seller", "item_id", "status", "version")}),
        (
            "Money",
            {
                "fields": (
                    "amount_cents",
                    "currency",
                    "platform_fee_percentage",
                    "platform_fee_cents",
                    "gateway_fee_cents",
                    "seller_payout_cents",
                    "net_platform_revenue_cents",
                ),
            },
        ),
        (
            "Gateway",
            {
                "fields": (
                    "payment_intent_id",
                    "transfer_id",
                    "payout_status",
                    "payout_attempt",
                    "payout_failure_reason",
                    "paid_out_at",
                ),
            },
        ),
        (
            "Escrow",
            {
                "fields": (
                    "escrow_status",
                    "auto_release_date",
                    "escrow_release_date",
                    "failure_reason",
                ),
            },
        ),
        (
            "Shipping",
            {
                "fields": (
                    "tracking_number",
                    "carrier",
                    "shipped_at",
                    "delivery_confirmed_at",
                    "shipping_address",
                ),
            },
        ),
        (
            "Timestamps",
            {
                "fields": (
                    "completed_at",
                    "cancelled_at",
                    "refunded_at",
                    "failed_at",
                    "created_at",
                    "updated_at",
                ),
                "classes": ("collapse",),
            },
        ),
    )

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description="Resolve dispute: release funds to seller")
    def release_to_seller(self, request, queryset):
        self._resolve(request, queryset, DisputeResolution.RELEASED)

    @admin.action(description="Resolve dispute: refund buyer")
    def refund_buyer(self, request, queryset):
        self._resolve(request, queryset, DisputeResolution.REFUNDED)

    @admin.action(description="Cancel transaction and void authorization")
    def cancel_transaction(self, request, queryset):
        engine = build_engine()
        for txn in queryset:
            try:
                if txn.status == TransactionStatus.DISPUTED:
                    engine.disputes.resolve(
                        txn.pk,
                        DisputeResolution.CANCELLED,
                        note="Cancelled from admin",
                        resolved_by=request.user,
                    )
                else:
                    engine.state_machine.cancel(txn.pk, note="Cancelled from admin")
            except BaseApplicationError as e:
                self.message_user(request, f"{txn.pk}: {e.message}", level=messages.ERROR)
            else:
                self.message_user(request, f"{txn.pk}: cancelled", level=messages.SUCCESS)

    def _resolve(self, request, queryset, resolution):
        engine = build_engine()
        for txn in queryset:
            try:
                engine.disputes.resolve(
                    txn.pk,
                    resolution,
                    note=f"Resolved from admin by {request.user}",
                    resolved_by=request.user,
                )
            except BaseApplicationError as e:
                self.message_user(request, f"{txn.pk}: {e.message}", level=messages.ERROR)
            else:
                self.message_user(request, f"{txn.pk}: {resolution}", level=messages.SUCCESS)


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    """Admin configuration for Dispute."""

    list_display = [
        "id",
        "transaction",
        "reason",
        "source",
        "gateway_dispute_id",
        "resolution",
        "opened_at",
        "resolved_at",
    ]
    list_filter = ["reason", "source", "resolution"]
    search_fields = ["id", "transaction__id", "gateway_dispute_id"]
    readonly_fields = [
        "id",
        "transaction",
        "source",
        "opened_by",
        "opened_at",
        "gateway_dispute_id",
        "gateway_reason",
        "resolution",
        "resolved_at",
        "created_at",
        "updated_at",
    ]
    ordering = ["-opened_at"]


@admin.register(SellerAccount)
class SellerAccountAdmin(admin.ModelAdmin):
    """
    Admin configuration for SellerAccount.

    Tier is editable; capability flags mirror the gateway.
    """

    list_display = [
        "id",
        "seller",
        "tier",
        "stripe_account_id",
        "charges_enabled",
        "payouts_enabled",
        "details_submitted",
    ]
    list_filter = ["tier", "charges_enabled", "payouts_enabled"]
    search_fields = ["seller__email", "seller__username", "stripe_account_id"]
    readonly_fields = [
        "charges_enabled",
        "payouts_enabled",
        "details_submitted",
        "created_at",
        "updated_at",
    ]


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """Admin configuration for WebhookEvent."""

    list_display = [
        "gateway_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type"]
    search_fields = ["gateway_event_id", "event_type"]
    readonly_fields = [
        "id",
        "gateway_event_id",
        "event_type",
        "payload",
        "status",
        "processed_at",
        "error_message",
        "retry_count",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
