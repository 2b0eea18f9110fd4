import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="SellerAccount",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("tier", models.CharField(choices=[("standard", "Standard"), ("premium", "Premium")], default="standard", help_text="Premium sellers pay a reduced platform fee", max_length=20)),
                ("stripe_account_id", models.CharField(blank=True, help_text="Connected account id (acct_xxx)", max_length=255, null=True, unique=True)),
                ("charges_enabled", models.BooleanField(default=False)),
                ("payouts_enabled", models.BooleanField(default=False)),
                ("details_submitted", models.BooleanField(default=False)),
                ("seller", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="seller_account", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Seller Account",
                "verbose_name_plural": "Seller Accounts",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Transaction",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier (UUID v4)", primary_key=True, serialize=False)),
                ("item_id", models.UUIDField(db_index=True, help_text="Catalog item being purchased")),
                ("amount_cents", models.PositiveBigIntegerField(help_text="Sale price in the smallest currency unit")),
                ("currency", models.CharField(choices=[("usd", "US Dollar"), ("eur", "Euro"), ("gbp", "British Pound"), ("jpy", "Japanese Yen")], default="usd", help_text="ISO 4217 currency code (lowercase)", max_length=3)),
                ("platform_fee_percentage", models.DecimalField(decimal_places=2, help_text="Take rate applied at purchase time", max_digits=5)),
                ("platform_fee_cents", models.PositiveBigIntegerField(help_text="Platform fee in minor units")),
                ("gateway_fee_cents", models.PositiveBigIntegerField(help_text="Estimated card processing fee in minor units")),
                ("seller_payout_cents", models.PositiveBigIntegerField(help_text="Amount owed to the seller in minor units")),
                ("net_platform_revenue_cents", models.BigIntegerField(help_text="Platform fee minus estimated gateway fee (may be negative)")),
                ("payment_intent_id", models.CharField(help_text="Gateway payment intent holding the buyer's funds", max_length=255, unique=True)),
                ("transfer_id", models.CharField(blank=True, help_text="Gateway transfer id, set after a successful payout", max_length=255, null=True)),
                ("payout_status", models.CharField(choices=[("none", "None"), ("completed", "Completed"), ("failed", "Failed")], db_index=True, default="none", help_text="Outcome of the transfer to the seller", max_length=20)),
                ("payout_attempt", models.PositiveIntegerField(default=1, help_text="Attempt number used in the transfer idempotency key")),
                ("payout_failure_reason", models.TextField(blank=True, default="", help_text="Last payout failure reported by the gateway")),
                ("paid_out_at", models.DateTimeField(blank=True, help_text="When the transfer to the seller succeeded", null=True)),
                ("status", django_fsm.FSMField(choices=[("pending", "Pending"), ("payment_held", "Payment Held"), ("shipped", "Shipped"), ("completed", "Completed"), ("disputed", "Disputed"), ("cancelled", "Cancelled"), ("refunded", "Refunded"), ("failed", "Failed")], db_index=True, default="pending", help_text="Transaction lifecycle status", max_length=50)),
                ("version", models.PositiveIntegerField(default=1, help_text="Optimistic concurrency version, bumped on every write")),
                ("failure_reason", models.TextField(blank=True, default="", help_text="Why the payment failed, if it did")),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("escrow_status", models.CharField(choices=[("held", "Held"), ("released", "Released"), ("auto_released", "Auto Released"), ("refunded", "Refunded")], db_index=True, default="held", help_text="Where the buyer's funds are", max_length=20)),
                ("escrow_release_date", models.DateTimeField(blank=True, help_text="When funds were released to the seller", null=True)),
                ("auto_release_date", models.DateTimeField(blank=True, db_index=True, help_text="Deadline after which funds release without buyer action", null=True)),
                ("tracking_number", models.CharField(blank=True, default="", max_length=100)),
                ("carrier", models.CharField(blank=True, choices=[("usps", "USPS"), ("ups", "UPS"), ("fedex", "FedEx"), ("dhl", "DHL"), ("other", "Other")], default="", max_length=20)),
                ("shipped_at", models.DateTimeField(blank=True, null=True)),
                ("delivery_confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("shipping_address", models.JSONField(blank=True, default=dict, help_text="Destination address captured at purchase")),
                ("rating_enabled", models.BooleanField(default=False, help_text="Unlocked once the purchase completes")),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("buyer", models.ForeignKey(help_text="User paying for the item", on_delete=django.db.models.deletion.PROTECT, related_name="purchases", to=settings.AUTH_USER_MODEL)),
                ("seller", models.ForeignKey(help_text="User selling the item", on_delete=django.db.models.deletion.PROTECT, related_name="sales", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Transaction",
                "verbose_name_plural": "Transactions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["buyer", "status"], name="escrow_txn_buyer_status_idx"),
                    models.Index(fields=["seller", "status"], name="escrow_txn_seller_status_idx"),
                    models.Index(fields=["status", "escrow_status", "auto_release_date"], name="escrow_txn_auto_release_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount_cents__gt", 0)), name="escrow_txn_amount_positive"),
                    models.CheckConstraint(condition=models.Q(("amount_cents", models.F("platform_fee_cents") + models.F("seller_payout_cents"))), name="escrow_txn_fees_balance"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Dispute",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier (UUID v4)", primary_key=True, serialize=False)),
                ("reason", models.CharField(choices=[("not_as_described", "Not As Described"), ("not_received", "Not Received"), ("damaged", "Damaged"), ("other", "Other")], help_text="Dispute reason", max_length=30)),
                ("description", models.TextField(blank=True, default="", help_text="Free-text explanation from the opener")),
                ("source", models.CharField(choices=[("party", "Buyer or Seller"), ("gateway", "Payment Gateway")], default="party", max_length=20)),
                ("opened_at", models.DateTimeField()),
                ("gateway_dispute_id", models.CharField(blank=True, help_text="Gateway dispute id (dp_xxx) for chargebacks", max_length=255, null=True, unique=True)),
                ("gateway_reason", models.CharField(blank=True, default="", help_text="Reason string reported by the gateway", max_length=100)),
                ("resolution", models.CharField(blank=True, choices=[("released", "Released to Seller"), ("refunded", "Refunded to Buyer"), ("cancelled", "Cancelled")], default="", max_length=20)),
                ("resolution_note", models.TextField(blank=True, default="")),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                ("opened_by", models.ForeignKey(blank=True, help_text="Party who opened the dispute (empty for chargebacks)", null=True, on_delete=django.db.models.deletion.PROTECT, related_name="opened_disputes", to=settings.AUTH_USER_MODEL)),
                ("transaction", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="dispute", to="escrow.transaction")),
            ],
            options={
                "verbose_name": "Dispute",
                "verbose_name_plural": "Disputes",
                "ordering": ["-opened_at"],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier (UUID v4)", primary_key=True, serialize=False)),
                ("gateway_event_id", models.CharField(help_text="Gateway event id (evt_xxx)", max_length=255, unique=True)),
                ("event_type", models.CharField(db_index=True, help_text="Gateway event type (e.g. 'payment_intent.payment_failed')", max_length=100)),
                ("payload", models.JSONField(help_text="Full verified event payload")),
                ("status", models.CharField(choices=[("pending", "Pending"), ("processing", "Processing"), ("processed", "Processed"), ("failed", "Failed")], db_index=True, default="pending", help_text="Current processing status", max_length=20)),
                ("processed_at", models.DateTimeField(blank=True, help_text="When event was successfully processed", null=True)),
                ("error_message", models.TextField(blank=True, help_text="Error message if processing failed", null=True)),
                ("retry_count", models.PositiveSmallIntegerField(default=0, help_text="Number of processing attempts")),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "retry_count"], name="escrow_webhook_retry_idx"),
                ],
            },
        ),
    ]
