"""
Catalog models.

Item is the thing being sold. Listing CRUD, search and media live
elsewhere; this model only carries what a purchase needs: seller,
price in minor units, currency and sale status.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


def default_currency() -> str:
    return settings.ESCROW_DEFAULT_CURRENCY


class ItemStatus(models.TextChoices):
    """
    Sale status of an item.

    State Flow:
        ACTIVE → PENDING (purchase in escrow) → SOLD
        PENDING → ACTIVE (purchase cancelled, refunded or failed before shipping)
    """

    ACTIVE = "active", "Active"
    PENDING = "pending", "Pending"
    SOLD = "sold", "Sold"


class Item(UUIDPrimaryKeyMixin, BaseModel):
    """
    A physical good listed for sale by a seller.

    Only one purchase can be in flight at a time: moving an item out of
    ACTIVE is a conditional update (see DjangoItemCatalog.mark_pending).
    """

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="items",
        help_text="User selling the item",
    )
    title = models.CharField(
        max_length=200,
        help_text="Listing title",
    )
    price_cents = models.PositiveBigIntegerField(
        help_text="Sale price in the smallest currency unit",
    )
    currency = models.CharField(
        max_length=3,
        default=default_currency,
        help_text="ISO 4217 currency code (lowercase)",
    )
    status = models.CharField(
        max_length=20,
        choices=ItemStatus.choices,
        default=ItemStatus.ACTIVE,
        db_index=True,
        help_text="Sale status",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["seller", "status"], name="catalog_item_seller_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price_cents__gt=0),
                name="catalog_item_price_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Item {self.id}: {self.title} ({self.status})"

    @property
    def is_purchasable(self) -> bool:
        """Whether a new purchase may start for this item."""
        return self.status == ItemStatus.ACTIVE
