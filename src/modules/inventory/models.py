"""Inventory ledger.

Every stock change triggered by an order transition leaves one
``InventoryAdjustment`` per order line.  The ledger is append-only: rows
are inserted (usually in bulk) and never updated or deleted.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from modules.core.models import AppendOnlyModel
from modules.inventory.constants import AdjustmentReason


class InventoryAdjustment(AppendOnlyModel):
    """Signed stock movement for one product."""

    product = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="adjustments",
    )
    quantity_change = models.IntegerField()
    reason = models.CharField(max_length=20, choices=AdjustmentReason.choices)
    note = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        db_table = "inventory_adjustments"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["product", "-created_at"],
                name="inv_adj_product_created_idx",
            ),
            models.Index(fields=["reason"], name="inv_adj_reason_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.product_id} {self.quantity_change:+d} ({self.reason})"
