"""End-to-end order lifecycle through the ORM-backed collaborators.

Covers:
- Full COD lifecycle with stock deduction, ledger and history.
- Cancelling a confirmed order restores every line exactly once.
- Insufficient stock on any line leaves status and stock untouched.
- Returns restore stock and annotate the order.
- Customers cancel or return only their own orders, never a confirmed or
  wallet-paid one.
- Backward moves need the operator PIN and never touch stock.
- Stale status reads are rejected by compare-and-swap.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from modules.inventory.constants import AdjustmentReason
from modules.inventory.models import InventoryAdjustment
from modules.orders.constants import ActorRole, OrderStatus, PaymentMethod
from modules.orders.events import OrderCancelled, OrderStatusChanged
from modules.orders.exceptions import (
    ConcurrentModification,
    InsufficientStock,
    InvalidTransition,
    OrderOwnershipError,
    PaymentNotConfirmed,
    RefundRequired,
    UnauthorizedBackwardMove,
)
from modules.orders.models import Order, OrderStatusHistory
from modules.products.models import Product

pytestmark = pytest.mark.integration

PIN = "2468"


def _stock(product: Product) -> int:
    return Product.objects.get(id=product.id).stock_quantity


class TestHappyPath:
    def test_cod_order_from_pending_to_completed(
        self, workflow, payment_repo, make_product, make_order, admin_user
    ):
        product = make_product(stock=10)
        order = make_order((product, 4))
        payment_repo.create(order.id, PaymentMethod.COD, Decimal("40.00"))

        workflow.confirm_order(order.id, actor_id=admin_user.id)
        assert _stock(product) == 6

        workflow.start_shipping(order.id, actor_role=ActorRole.SHIPPER)
        workflow.mark_delivered(order.id, actor_role=ActorRole.SHIPPER)

        with pytest.raises(PaymentNotConfirmed):
            workflow.complete_order(order.id)

        payment = payment_repo.get_dominant(order.id)
        payment_repo.set_paid(payment, True)
        completed = workflow.complete_order(order.id, actor_id=admin_user.id)

        assert completed.status == OrderStatus.COMPLETED
        assert completed.processed_by_id == admin_user.id
        assert _stock(product) == 6
        statuses = list(
            OrderStatusHistory.objects.filter(order=order)
            .order_by("created_at", "id")
            .values_list("new_status", flat=True)
        )
        assert statuses == [
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.SHIPPING,
            OrderStatus.DELIVERED,
            OrderStatus.COMPLETED,
        ]
        sale = InventoryAdjustment.objects.get(product=product)
        assert sale.reason == AdjustmentReason.SALE
        assert sale.quantity_change == -4
        assert sale.note == f"Order {order.order_number} confirmed"

    def test_unpaid_wallet_order_waits_for_payment(
        self, workflow, payment_repo, make_product, make_order
    ):
        product = make_product(stock=5)
        order = make_order((product, 1))
        payment = payment_repo.create(order.id, PaymentMethod.WALLET, Decimal("10.00"))

        with pytest.raises(PaymentNotConfirmed):
            workflow.confirm_order(order.id)
        assert _stock(product) == 5

        payment_repo.set_paid(payment, True)
        workflow.confirm_order(order.id)
        assert Order.objects.get(id=order.id).status == OrderStatus.CONFIRMED


class TestCancellation:
    def test_cancel_confirmed_restores_each_line(
        self, workflow, event_bus, make_product, make_order, admin_user
    ):
        a, b = make_product(stock=10), make_product(stock=5)
        order = make_order((a, 3), (b, 1))
        workflow.confirm_order(order.id)
        assert (_stock(a), _stock(b)) == (7, 4)

        published = []

        class Recorder:
            def handle(self, event) -> None:
                published.append(event)

        event_bus.subscribe(OrderCancelled, Recorder())

        workflow.transition(order.id, OrderStatus.CANCELLED, actor_id=admin_user.id)

        assert (_stock(a), _stock(b)) == (10, 5)
        returns = InventoryAdjustment.objects.filter(reason=AdjustmentReason.RETURN)
        assert returns.count() == 2
        assert sorted(returns.values_list("quantity_change", flat=True)) == [1, 3]
        assert published[0].stock_restored is True

    def test_second_cancellation_does_not_restore_twice(
        self, workflow, make_product, make_order
    ):
        product = make_product(stock=10)
        order = make_order((product, 2))
        workflow.confirm_order(order.id)
        workflow.transition(order.id, OrderStatus.CANCELLED)

        with pytest.raises(InvalidTransition, match="status is terminal"):
            workflow.transition(order.id, OrderStatus.CANCELLED)
        with pytest.raises(InvalidTransition):
            workflow.cancel_order(order.id)

        assert _stock(product) == 10
        assert InventoryAdjustment.objects.filter(reason="RETURN").count() == 1

    def test_pending_cancel_by_owner(
        self, workflow, make_product, make_order, customer_user
    ):
        product = make_product(stock=3)
        order = make_order((product, 2))

        cancelled = workflow.cancel_order(
            order.id, actor_id=customer_user.id, is_customer=True, reason="too slow"
        )

        assert cancelled.status == OrderStatus.CANCELLED
        assert _stock(product) == 3
        assert not InventoryAdjustment.objects.exists()

class TestCustomerRequests:
    def test_stranger_cannot_cancel_confirmed_order(
        self, workflow, make_product, make_order, django_user_model
    ):
        stranger = django_user_model.objects.create_user("stranger", password="x")
        product = make_product(stock=10)
        order = make_order((product, 3))
        workflow.confirm_order(order.id)

        with pytest.raises(InvalidTransition, match="only pending orders"):
            workflow.transition(
                order.id,
                OrderStatus.CANCELLED,
                actor_id=stranger.id,
                actor_role=ActorRole.CUSTOMER,
            )

        assert Order.objects.get(id=order.id).status == OrderStatus.CONFIRMED
        assert _stock(product) == 7

    def test_owner_cannot_cancel_wallet_paid_order(
        self, workflow, payment_repo, make_product, make_order, customer_user
    ):
        order = make_order((make_product(stock=5), 1))
        payment = payment_repo.create(order.id, PaymentMethod.WALLET, Decimal("10.00"))
        payment_repo.set_paid(payment, True)

        with pytest.raises(RefundRequired):
            workflow.transition(
                order.id,
                OrderStatus.CANCELLED,
                actor_id=customer_user.id,
                actor_role=ActorRole.CUSTOMER,
            )

        assert Order.objects.get(id=order.id).status == OrderStatus.PENDING

    def test_stranger_cannot_return_delivered_order(
        self, workflow, make_product, make_order, django_user_model
    ):
        stranger = django_user_model.objects.create_user("stranger", password="x")
        product = make_product(stock=6)
        order = make_order((product, 2))
        for step in (
            workflow.confirm_order,
            workflow.start_shipping,
            workflow.mark_delivered,
        ):
            step(order.id)

        with pytest.raises(OrderOwnershipError):
            workflow.transition(
                order.id,
                OrderStatus.RETURNED,
                actor_id=stranger.id,
                actor_role=ActorRole.CUSTOMER,
            )

        assert Order.objects.get(id=order.id).status == OrderStatus.DELIVERED
        assert _stock(product) == 4
        assert not InventoryAdjustment.objects.filter(
            reason=AdjustmentReason.RETURN
        ).exists()



class TestStockCheck:
    def test_shortfall_on_one_line_applies_nothing(
        self, workflow, make_product, make_order
    ):
        plenty, scarce = make_product(stock=50), make_product(stock=1)
        order = make_order((plenty, 5), (scarce, 2))

        with pytest.raises(InsufficientStock) as exc_info:
            workflow.confirm_order(order.id)

        assert exc_info.value.product_id == scarce.id
        assert Order.objects.get(id=order.id).status == OrderStatus.PENDING
        assert (_stock(plenty), _stock(scarce)) == (50, 1)
        assert not InventoryAdjustment.objects.exists()

    def test_stock_moved_since_order_creation(self, workflow, make_product, make_order):
        product = make_product(stock=3)
        first = make_order((product, 2))
        second = make_order((product, 2))

        workflow.confirm_order(first.id)

        with pytest.raises(InsufficientStock):
            workflow.confirm_order(second.id)
        assert _stock(product) == 1


class TestReturns:
    def test_return_after_delivery(self, workflow, make_product, make_order):
        product = make_product(stock=8)
        order = make_order((product, 3))
        workflow.confirm_order(order.id)
        workflow.start_shipping(order.id)
        workflow.mark_delivered(order.id)

        returned = workflow.return_order(order.id, reason="wrong size")

        assert returned.status == OrderStatus.RETURNED
        assert "Returned: wrong size" in returned.notes
        assert _stock(product) == 8
        entry = InventoryAdjustment.objects.get(reason=AdjustmentReason.RETURN)
        assert entry.note == f"Order {order.order_number} returned: wrong size"

    def test_return_while_shipping(self, workflow, make_product, make_order):
        product = make_product(stock=4)
        order = make_order((product, 4))
        workflow.confirm_order(order.id)
        workflow.start_shipping(order.id)

        workflow.return_order(order.id)

        assert _stock(product) == 4


class TestBackwardMoves:
    def test_admin_with_pin_moves_back_without_stock_effect(
        self, workflow, event_bus, make_product, make_order, admin_user
    ):
        product = make_product(stock=5)
        order = make_order((product, 2))
        workflow.confirm_order(order.id)
        workflow.start_shipping(order.id)

        changes = []

        class Recorder:
            def handle(self, event) -> None:
                changes.append(event)

        event_bus.subscribe(OrderStatusChanged, Recorder())

        moved = workflow.transition(
            order.id, OrderStatus.CONFIRMED, actor_id=admin_user.id, admin_pin=PIN
        )

        assert moved.status == OrderStatus.CONFIRMED
        assert _stock(product) == 3
        assert changes[0].backward is True
        last = (
            OrderStatusHistory.objects.filter(order=order)
            .order_by("-created_at", "-id")
            .first()
        )
        assert last.old_status == OrderStatus.SHIPPING

    def test_wrong_pin_leaves_order_untouched(self, workflow, make_product, make_order):
        order = make_order((make_product(stock=5), 1))
        workflow.confirm_order(order.id)
        workflow.start_shipping(order.id)

        with pytest.raises(UnauthorizedBackwardMove):
            workflow.transition(order.id, OrderStatus.CONFIRMED, admin_pin="1111")

        assert Order.objects.get(id=order.id).status == OrderStatus.SHIPPING

    def test_completed_orders_cannot_be_reopened(
        self, workflow, make_product, make_order
    ):
        order = make_order((make_product(stock=5), 1))
        for step in (
            workflow.confirm_order,
            workflow.start_shipping,
            workflow.mark_delivered,
            workflow.complete_order,
        ):
            step(order.id)

        with pytest.raises(InvalidTransition, match="completed orders"):
            workflow.transition(order.id, OrderStatus.DELIVERED, admin_pin=PIN)


class TestConcurrency:
    def test_stale_read_is_rejected(self, order_store, make_product, make_order):
        order = make_order((make_product(), 1))
        stale = order_store.find_status(order.id)

        order_store.write_status(order.id, OrderStatus.CONFIRMED, None, stale)

        with pytest.raises(ConcurrentModification):
            order_store.write_status(order.id, OrderStatus.CANCELLED, None, stale)
        assert order_store.find_status(order.id) == OrderStatus.CONFIRMED
