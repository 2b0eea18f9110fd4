"""
Database-backed item catalog used by the escrow engine.

Status flips are conditional UPDATE statements so that two buyers racing
for the same item cannot both move it to pending.
"""

from __future__ import annotations

import logging

from django.utils import timezone

from catalog.models import Item, ItemStatus
from core.exceptions import ConflictError, NotFoundError
from escrow.protocols import PurchasableItem

logger = logging.getLogger(__name__)


class DjangoItemCatalog:
    """ItemCatalog implementation over catalog.models.Item."""

    def get_for_purchase(self, item_id) -> PurchasableItem:
        """
        Return price, seller and availability for an item.

        Raises:
            NotFoundError: If the item does not exist
        """
        item = Item.objects.filter(pk=item_id).first()
        if item is None:
            raise NotFoundError(
                f"Item {item_id} not found",
                error_code="ITEM_NOT_FOUND",
                details={"item_id": str(item_id)},
            )

        return PurchasableItem(
            item_id=item.id,
            seller_id=item.seller_id,
            price_cents=item.price_cents,
            currency=item.currency,
            is_purchasable=item.is_purchasable,
        )

    def mark_pending(self, item_id) -> None:
        """
        Reserve an active item for a purchase.

        Raises:
            ConflictError: If the item is no longer active
        """
        updated = Item.objects.filter(pk=item_id, status=ItemStatus.ACTIVE).update(
            status=ItemStatus.PENDING,
            updated_at=timezone.now(),
        )
        if not updated:
            raise ConflictError(
                "Item is no longer available",
                error_code="ITEM_UNAVAILABLE",
                details={"item_id": str(item_id)},
            )

        logger.info(
            f"Item {item_id} reserved for purchase",
            extra={"item_id": str(item_id)},
        )

    def mark_sold(self, item_id) -> None:
        """Mark a reserved item as sold."""
        self._flip(item_id, ItemStatus.PENDING, ItemStatus.SOLD)

    def mark_available(self, item_id) -> None:
        """Return a reserved item to sale."""
        self._flip(item_id, ItemStatus.PENDING, ItemStatus.ACTIVE)

    def _flip(self, item_id, source: str, target: str) -> None:
        updated = Item.objects.filter(pk=item_id, status=source).update(
            status=target,
            updated_at=timezone.now(),
        )
        if updated:
            logger.info(
                f"Item {item_id} moved {source} -> {target}",
                extra={"item_id": str(item_id), "target_status": target},
            )
        else:
            # Purchase bookkeeping has already happened; the item row is
            # owned by the catalog and may have been edited independently.
            logger.warning(
                f"Item {item_id} not in {source}, left unchanged",
                extra={"item_id": str(item_id), "target_status": target},
            )
