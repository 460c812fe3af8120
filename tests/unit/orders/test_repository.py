"""Tests for OrderDjangoRepository against the test database."""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from modules.orders.constants import OrderStatus
from modules.orders.exceptions import ConcurrentModification, OrderNotFound
from modules.orders.models import Order, OrderStatusHistory

pytestmark = pytest.mark.unit


class TestCreate:
    def test_creates_pending_order_with_items_and_total(
        self, order_store, make_product, customer_user
    ):
        a = make_product(price="12.50")
        b = make_product(price="3.00")

        order = order_store.create(
            {
                "customer_id": customer_user.id,
                "items": [
                    {"product_id": a.id, "quantity": 2},
                    {"product_id": b.id, "quantity": 1, "unit_price": Decimal("2.00")},
                ],
                "notes": "leave at the door",
            }
        )

        assert order.status == OrderStatus.PENDING
        assert order.order_number.startswith("ORD-")
        assert order.total_amount == Decimal("27.00")
        assert order.items.count() == 2
        history = OrderStatusHistory.objects.get(order=order)
        assert history.old_status is None
        assert history.new_status == OrderStatus.PENDING

    def test_does_not_touch_stock(self, order_store, make_product, make_order):
        product = make_product(stock=4)
        make_order((product, 3))
        product.refresh_from_db()
        assert product.stock_quantity == 4


class TestReads:
    def test_find_status(self, order_store, make_product, make_order):
        order = make_order((make_product(), 1))
        assert order_store.find_status(order.id) == OrderStatus.PENDING

    def test_find_status_missing_or_invalid(self, order_store):
        assert order_store.find_status(uuid4()) is None
        assert order_store.find_status("not-a-uuid") is None

    def test_get_by_id_excludes_soft_deleted(self, order_store, make_product, make_order):
        order = make_order((make_product(), 1))
        order.delete()
        assert order_store.get_by_id(str(order.id)) is None

    def test_get_for_update(self, order_store, make_product, make_order):
        order = make_order((make_product(), 1))
        locked = order_store.get_for_update(order.id)
        assert locked.id == order.id

    def test_get_items_ordered_by_product(self, order_store, make_product, make_order):
        a, b = make_product(), make_product()
        order = make_order((a, 1), (b, 2))
        items = order_store.get_items(order.id)
        assert [item.product_id for item in items] == sorted([a.id, b.id], key=str)


class TestWriteStatus:
    def test_compare_and_swap_success(
        self, order_store, make_product, make_order, admin_user
    ):
        order = make_order((make_product(), 1))

        order_store.write_status(
            order.id, OrderStatus.CONFIRMED, admin_user.id, OrderStatus.PENDING
        )

        order.refresh_from_db()
        assert order.status == OrderStatus.CONFIRMED
        assert order.processed_by_id == admin_user.id

    def test_stale_expected_status_raises(self, order_store, make_product, make_order):
        order = make_order((make_product(), 1))
        order_store.write_status(order.id, OrderStatus.CONFIRMED, None, OrderStatus.PENDING)

        with pytest.raises(ConcurrentModification) as exc_info:
            order_store.write_status(
                order.id, OrderStatus.CANCELLED, None, OrderStatus.PENDING
            )

        assert exc_info.value.expected_status is OrderStatus.PENDING
        assert Order.objects.get(id=order.id).status == OrderStatus.CONFIRMED

    def test_missing_order_raises_not_found(self, order_store):
        with pytest.raises(OrderNotFound):
            order_store.write_status(
                uuid4(), OrderStatus.CONFIRMED, None, OrderStatus.PENDING
            )


class TestHistoryAndNotes:
    def test_add_history(self, order_store, make_product, make_order, admin_user):
        order = make_order((make_product(), 1))

        record = order_store.add_history(
            order.id,
            OrderStatus.CONFIRMED,
            old_status=OrderStatus.PENDING,
            actor_id=admin_user.id,
            notes="ok",
        )

        assert record.old_status == OrderStatus.PENDING
        assert record.actor_id == admin_user.id
        assert order.status_history.count() == 2

    def test_append_notes(self, order_store, make_product, make_order):
        order = make_order((make_product(), 1))

        order_store.append_notes(order.id, "Returned: too small")
        order_store.append_notes(order.id, "Returned: again")

        order.refresh_from_db()
        assert order.notes == "Returned: too small\nReturned: again"
