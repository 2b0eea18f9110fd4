import uuid

import django.db.models.deletion
import catalog.models
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Item",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("title", models.CharField(help_text="Listing title", max_length=200)),
                (
                    "price_cents",
                    models.PositiveBigIntegerField(
                        help_text="Sale price in the smallest currency unit"
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default=catalog.models.default_currency,
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("pending", "Pending"),
                            ("sold", "Sold"),
                        ],
                        db_index=True,
                        default="active",
                        help_text="Sale status",
                        max_length=20,
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        help_text="User selling the item",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="items",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["seller", "status"], name="catalog_item_seller_status_idx"
                    )
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("price_cents__gt", 0)),
                        name="catalog_item_price_positive",
                    )
                ],
            },
        ),
    ]
