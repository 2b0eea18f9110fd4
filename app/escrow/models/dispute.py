"""
Dispute model.

A transaction has at most one dispute. It is opened either by the buyer
or seller (through DisputeHandler) or by the card network (chargeback
webhook), and it freezes the transaction until an administrator
resolves it.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from escrow.state_machines import DisputeReason, DisputeResolution, DisputeSource


class Dispute(UUIDPrimaryKeyMixin, BaseModel):
    """Why and by whom a transaction was disputed, and how it ended."""

    transaction = models.OneToOneField(
        "escrow.Transaction",
        on_delete=models.PROTECT,
        related_name="dispute",
    )
    reason = models.CharField(
        max_length=30,
        choices=DisputeReason.choices,
        help_text="Dispute reason",
    )
    description = models.TextField(
        blank=True,
        default="",
        help_text="Free-text explanation from the opener",
    )
    source = models.CharField(
        max_length=20,
        choices=DisputeSource.choices,
        default=DisputeSource.PARTY,
    )
    opened_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="opened_disputes",
        help_text="Party who opened the dispute (empty for chargebacks)",
    )
    opened_at = models.DateTimeField()

    gateway_dispute_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Gateway dispute id (dp_xxx) for chargebacks",
    )
    gateway_reason = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Reason string reported by the gateway",
    )

    resolution = models.CharField(
        max_length=20,
        choices=DisputeResolution.choices,
        blank=True,
        default="",
    )
    resolution_note = models.TextField(blank=True, default="")
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-opened_at"]
        verbose_name = "Dispute"
        verbose_name_plural = "Disputes"

    def __str__(self) -> str:
        return f"Dispute({self.transaction_id}, {self.reason})"

    @property
    def is_resolved(self) -> bool:
        return bool(self.resolution)
