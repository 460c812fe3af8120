"""Django ORM implementation of the Inventory Adjuster.

Stock is never changed read-modify-write in Python: all deltas of a call
are folded per product and applied in a single
``UPDATE ... SET stock_quantity = stock_quantity + CASE ... END``.
Product rows are locked in primary-key order first so concurrent
confirmations touching the same products cannot deadlock.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

import structlog
from django.db import transaction
from django.db.models import Case, F, IntegerField, Value, When
from django.utils import timezone

from modules.inventory.constants import AdjustmentReason
from modules.inventory.dtos import AdjustmentDTO, StockDelta
from modules.inventory.models import InventoryAdjustment
from modules.inventory.repositories.interfaces import IInventoryAdjuster
from modules.products.exceptions import ProductNotFound
from modules.products.models import Product

logger = structlog.get_logger(__name__)


class InventoryDjangoRepository(IInventoryAdjuster):
    """Concrete Inventory Adjuster backed by Django ORM."""

    def get_stock_levels(
        self, product_ids: Iterable[UUID], lock: bool = True
    ) -> Dict[UUID, int]:
        ids = sorted(set(product_ids), key=str)
        if not ids:
            return {}
        queryset = Product.objects.filter(id__in=ids).order_by("id")
        if lock:
            queryset = queryset.select_for_update()
        return {product.id: product.stock_quantity for product in queryset}

    @transaction.atomic
    def apply_deltas(self, deltas: Sequence[StockDelta]) -> None:
        totals = fold_deltas(deltas)
        if not totals:
            return

        ids = sorted(totals, key=str)
        found = set(self.get_stock_levels(ids, lock=True))
        missing = [pid for pid in ids if pid not in found]
        if missing:
            raise ProductNotFound(missing)

        whens = [When(id=pid, then=Value(delta)) for pid, delta in totals.items()]
        Product.objects.filter(id__in=ids).update(
            stock_quantity=F("stock_quantity")
            + Case(*whens, default=Value(0), output_field=IntegerField()),
            updated_at=timezone.now(),
        )
        logger.info(
            "inventory.deltas_applied",
            product_count=len(totals),
            total_change=sum(totals.values()),
        )

    def record_adjustment(
        self,
        product_id: UUID,
        quantity_change: int,
        reason: AdjustmentReason,
        note: str = "",
        actor_id: Optional[int] = None,
    ) -> InventoryAdjustment:
        adjustment = InventoryAdjustment.objects.create(
            product_id=product_id,
            quantity_change=quantity_change,
            reason=reason,
            note=note,
            created_by_id=actor_id,
        )
        logger.info(
            "inventory.adjustment_recorded",
            product_id=str(product_id),
            quantity_change=quantity_change,
            reason=str(reason),
        )
        return adjustment

    def record_adjustments(
        self, adjustments: Sequence[AdjustmentDTO]
    ) -> List[InventoryAdjustment]:
        rows = [
            InventoryAdjustment(
                product_id=dto.product_id,
                quantity_change=dto.quantity_change,
                reason=dto.reason,
                note=dto.note,
                created_by_id=dto.actor_id,
            )
            for dto in adjustments
        ]
        if not rows:
            return []
        created = InventoryAdjustment.objects.bulk_create(rows)
        logger.info("inventory.adjustments_recorded", count=len(created))
        return created


def fold_deltas(deltas: Iterable[StockDelta]) -> Dict[UUID, int]:
    """Sum deltas per product, dropping products whose net change is zero."""
    totals: Dict[UUID, int] = defaultdict(int)
    for item in deltas:
        totals[item.product_id] += item.delta
    return {pid: delta for pid, delta in totals.items() if delta != 0}
