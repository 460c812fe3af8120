"""Django ORM implementation of the Order Store.

Concurrency control on status updates is two-layered: the service reads
the order with ``select_for_update()`` and the write itself is a
compare-and-swap (``UPDATE ... WHERE id = %s AND status = %s``), so a
stale read can never silently overwrite a newer status even on backends
that ignore row locks.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Case, TextField, Value, When
from django.db.models.functions import Concat
from django.utils import timezone

from modules.orders.constants import OrderStatus
from modules.orders.exceptions import ConcurrentModification, OrderNotFound
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderStore
from modules.products.models import Product

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderStore):
    """Concrete Order Store backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        order = Order(
            customer_id=data.get("customer_id"),
            notes=data.get("notes", ""),
            status=OrderStatus.PENDING,
        )
        order.save()

        total = Decimal("0.00")
        items = data.get("items", [])
        prices = dict(
            Product.objects.filter(
                id__in=[item["product_id"] for item in items]
            ).values_list("id", "price")
        )
        for item_data in items:
            item = OrderItem(
                order=order,
                product_id=item_data["product_id"],
                quantity=item_data["quantity"],
                unit_price=item_data.get("unit_price")
                or prices.get(item_data["product_id"]),
            )
            item.save()
            total += item.subtotal

        order.total_amount = total
        order.save(update_fields=["total_amount", "updated_at"])

        self.add_history(
            order_id=order.id,
            new_status=OrderStatus.PENDING,
            actor_id=data.get("actor_id"),
            notes="Order created",
        )
        logger.info("order.created", order_id=str(order.id), item_count=len(items))
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with items and history prefetched.

        Returns ``None`` for non-existent, soft-deleted or invalid IDs.
        """
        try:
            return (
                Order.objects.alive()
                .prefetch_related("items__product", "status_history")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: UUID) -> Optional[Order]:
        try:
            return Order.objects.alive().select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def find_status(self, order_id: UUID) -> Optional[int]:
        try:
            return (
                Order.objects.alive()
                .filter(id=order_id)
                .values_list("status", flat=True)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_items(self, order_id: UUID) -> List[OrderItem]:
        return list(
            OrderItem.objects.alive()
            .select_related("product")
            .filter(order_id=order_id)
            .order_by("product_id")
        )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def write_status(
        self,
        order_id: UUID,
        new_status: int,
        actor_id: Optional[int],
        expected_status: int,
    ) -> None:
        updated = (
            Order.objects.alive()
            .filter(id=order_id, status=expected_status)
            .update(
                status=int(new_status),
                processed_by_id=actor_id,
                updated_at=timezone.now(),
            )
        )
        if updated == 1:
            logger.info(
                "order.status_written",
                order_id=str(order_id),
                old_status=int(expected_status),
                new_status=int(new_status),
            )
            return

        if self.find_status(order_id) is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        logger.warning(
            "order.status_conflict",
            order_id=str(order_id),
            expected_status=int(expected_status),
        )
        raise ConcurrentModification(order_id, OrderStatus.get_by_id(expected_status))

    def add_history(
        self,
        order_id: UUID,
        new_status: int,
        old_status: Optional[int] = None,
        actor_id: Optional[int] = None,
        notes: str = "",
    ) -> OrderStatusHistory:
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=None if old_status is None else int(old_status),
            new_status=int(new_status),
            actor_id=actor_id,
            notes=notes,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=int(new_status),
        )
        return history

    def append_notes(self, order_id: UUID, text: str) -> None:
        if not text:
            return
        Order.objects.filter(id=order_id).update(
            notes=Case(
                When(notes="", then=Value(text, output_field=TextField())),
                default=Concat(
                    "notes", Value("\n" + text), output_field=TextField()
                ),
                output_field=TextField(),
            ),
            updated_at=timezone.now(),
        )
