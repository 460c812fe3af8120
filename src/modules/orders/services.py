"""Order workflow service layer (Use Cases).

Decide-then-apply orchestration of the order lifecycle.  Every command
locks the order row, asks ``modules.orders.workflow`` whether the move is
legal, applies the stock side effects through the Inventory Adjuster,
writes the new status with compare-and-swap and appends history, all in
one atomic transaction.  The service defines the unit-of-work boundary.

Side effects by edge:
- PENDING -> CONFIRMED: stock re-checked under lock and deducted (SALE).
- CONFIRMED -> CANCELLED: stock restored (RETURN).
- any -> RETURNED: stock restored (RETURN).
- DELIVERED -> COMPLETED: no stock effect, payment must be settled.
- Backward moves (admin + PIN): status only.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Dict, List, Optional, Union
from uuid import UUID

import structlog
from django.conf import settings
from django.db import transaction

from modules.inventory.constants import AdjustmentReason
from modules.inventory.dtos import AdjustmentDTO, StockDelta
from modules.orders.constants import (
    DEFAULT_ADMIN_PIN,
    TERMINAL_STATES,
    ActorRole,
    OrderStatus,
    PaymentMethod,
)
from modules.orders.events import (
    OrderCancelled,
    OrderReturned,
    OrderStatusChanged,
    StockAdjusted,
)
from modules.orders.exceptions import (
    InsufficientStock,
    InvalidTransition,
    OrderNotFound,
    OrderOwnershipError,
    PaymentNotConfirmed,
    RefundRequired,
    UnauthorizedBackwardMove,
)
from modules.orders.workflow import (
    REASON_PAYMENT,
    REASON_TERMINAL,
    REASON_UNKNOWN,
    can_cancel,
    can_return,
    ensure_transition,
)
from modules.products.exceptions import ProductNotFound
from shared.infrastructure.bus import event_bus as default_event_bus

if TYPE_CHECKING:
    from modules.inventory.repositories.interfaces import IInventoryAdjuster
    from modules.orders.dtos import CreateOrderDTO
    from modules.orders.models import Order, OrderItem
    from modules.orders.repositories.interfaces import IOrderStore
    from modules.payments.dtos import PaymentInfo
    from modules.payments.repositories.interfaces import IPaymentInfoProvider
    from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)

REASON_NOT_PENDING = "only pending orders can be cancelled"
REASON_NOT_RETURNABLE = "order cannot be returned in this status"

_SETTLED_METHODS = frozenset({PaymentMethod.COD, PaymentMethod.WALLET})


class OrderWorkflowService:
    """Application service for the order lifecycle.

    Receives its collaborators via constructor injection (DIP).
    ``admin_pin`` defaults to ``settings.ORDER_ADMIN_PIN``.
    """

    def __init__(
        self,
        order_store: IOrderStore,
        payment_provider: IPaymentInfoProvider,
        inventory_adjuster: IInventoryAdjuster,
        event_bus: Optional[IEventBus] = None,
        admin_pin: Optional[str] = None,
    ) -> None:
        self._order_store = order_store
        self._payment_provider = payment_provider
        self._inventory = inventory_adjuster
        self._event_bus = event_bus if event_bus is not None else default_event_bus
        if admin_pin is None:
            admin_pin = getattr(settings, "ORDER_ADMIN_PIN", DEFAULT_ADMIN_PIN)
        self._admin_pin = str(admin_pin)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_order(self, dto: CreateOrderDTO, actor_id: Optional[int] = None) -> Order:
        """Persist a new PENDING order.  Stock moves on confirmation, not here."""
        order = self._order_store.create(
            {
                "customer_id": dto.customer_id,
                "items": [
                    {
                        "product_id": item.product_id,
                        "quantity": item.quantity,
                        "unit_price": item.unit_price,
                    }
                    for item in dto.items
                ],
                "notes": dto.notes or "",
                "actor_id": actor_id,
            }
        )
        return self._order_store.get_by_id(str(order.id)) or order

    @transaction.atomic
    def transition(
        self,
        order_id: UUID,
        to_status: Union[OrderStatus, int, str],
        actor_id: Optional[int] = None,
        actor_role: ActorRole = ActorRole.ADMIN,
        admin_pin: Optional[str] = None,
        notes: str = "",
    ) -> Order:
        """Move an order to *to_status* (member, id or code).

        Raises:
            OrderNotFound: order does not exist.
            InvalidTransition: move not allowed for this status or actor.
            PaymentNotConfirmed: wallet edge before payment, or unpaid
                completion.
            UnauthorizedBackwardMove: backward move without admin role + PIN.
            InsufficientStock: confirmation with a stock shortfall.
            OrderOwnershipError: customer cancel or return of another user's order.
            RefundRequired: customer cancel of a wallet-paid order.
            ConcurrentModification: status changed since it was read.
        """
        order = self._lock_order(order_id)
        target = OrderStatus.resolve(to_status)
        if target is None:
            logger.warning(
                "order.invalid_transition",
                order_id=str(order_id),
                new_status=str(to_status),
                reason=REASON_UNKNOWN,
            )
            raise InvalidTransition(order.current_status, to_status, REASON_UNKNOWN)
        if ActorRole(actor_role) == ActorRole.CUSTOMER:
            if target == OrderStatus.CANCELLED:
                self._guard_cancel(order, actor_id, is_customer=True)
            elif target == OrderStatus.RETURNED:
                self._guard_return(order, actor_id, actor_role)
        return self._apply(
            order,
            target,
            actor_id=actor_id,
            actor_role=actor_role,
            admin_pin=admin_pin,
            notes=notes,
        )

    @transaction.atomic
    def confirm_order(
        self, order_id: UUID, actor_id: Optional[int] = None, notes: str = ""
    ) -> Order:
        """PENDING -> CONFIRMED, deducting stock for every line."""
        order = self._lock_order(order_id)
        return self._apply(
            order,
            OrderStatus.CONFIRMED,
            actor_id=actor_id,
            notes=notes or "Order confirmed",
        )

    @transaction.atomic
    def start_shipping(
        self,
        order_id: UUID,
        actor_id: Optional[int] = None,
        actor_role: ActorRole = ActorRole.ADMIN,
    ) -> Order:
        order = self._lock_order(order_id)
        return self._apply(
            order, OrderStatus.SHIPPING, actor_id=actor_id, actor_role=actor_role
        )

    @transaction.atomic
    def mark_delivered(
        self,
        order_id: UUID,
        actor_id: Optional[int] = None,
        actor_role: ActorRole = ActorRole.ADMIN,
    ) -> Order:
        order = self._lock_order(order_id)
        return self._apply(
            order, OrderStatus.DELIVERED, actor_id=actor_id, actor_role=actor_role
        )

    @transaction.atomic
    def complete_order(self, order_id: UUID, actor_id: Optional[int] = None) -> Order:
        """DELIVERED -> COMPLETED once the payment is settled."""
        order = self._lock_order(order_id)
        return self._apply(
            order,
            OrderStatus.COMPLETED,
            actor_id=actor_id,
            notes="Order completed",
        )

    @transaction.atomic
    def cancel_order(
        self,
        order_id: UUID,
        actor_id: Optional[int] = None,
        is_customer: bool = False,
        reason: str = "",
    ) -> Order:
        """Cancel a PENDING order.

        Customers may only cancel their own orders, and not once the wallet
        payment went through (that needs a refund instead).

        Raises:
            OrderNotFound: order does not exist.
            InvalidTransition: order is not PENDING.
            OrderOwnershipError: customer does not own the order.
            RefundRequired: customer order already paid through the wallet.
        """
        order = self._lock_order(order_id)
        self._guard_cancel(order, actor_id, is_customer)
        return self._apply(
            order,
            OrderStatus.CANCELLED,
            actor_id=actor_id,
            actor_role=ActorRole.CUSTOMER if is_customer else ActorRole.ADMIN,
            notes=reason or "Order cancelled",
        )

    @transaction.atomic
    def return_order(
        self,
        order_id: UUID,
        actor_id: Optional[int] = None,
        actor_role: ActorRole = ActorRole.ADMIN,
        reason: str = "",
    ) -> Order:
        """Return a shipped, delivered or completed order and restore stock."""
        order = self._lock_order(order_id)
        self._guard_return(order, actor_id, actor_role)
        return self._apply(
            order,
            OrderStatus.RETURNED,
            actor_id=actor_id,
            actor_role=actor_role,
            notes=f"Returned: {reason}" if reason else "Order returned",
            reason=reason,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: UUID) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_store.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_order(self, order_id: UUID) -> Order:
        order = self._order_store.get_for_update(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def _guard_cancel(
        self, order: Order, actor_id: Optional[int], is_customer: bool
    ) -> None:
        current = order.current_status
        log = logger.bind(
            order_id=str(order.id), current_status=current.code, is_customer=is_customer
        )

        if not can_cancel(current, is_customer):
            log.warning("order.cancel_not_allowed")
            raise InvalidTransition(
                current,
                OrderStatus.CANCELLED,
                REASON_TERMINAL if current in TERMINAL_STATES else REASON_NOT_PENDING,
            )

        if is_customer:
            self._ensure_owner(order, actor_id, log)
            if self._payment_provider.has_paid_payment(order.id, PaymentMethod.WALLET):
                log.warning("order.cancel_requires_refund")
                raise RefundRequired(
                    f"Order {order.order_number} is paid through the wallet; "
                    f"request a refund instead."
                )

    def _guard_return(
        self, order: Order, actor_id: Optional[int], actor_role: ActorRole
    ) -> None:
        current = order.current_status
        log = logger.bind(order_id=str(order.id), current_status=current.code)

        if not can_return(current):
            log.warning("order.return_not_allowed")
            raise InvalidTransition(
                current,
                OrderStatus.RETURNED,
                REASON_TERMINAL if current in TERMINAL_STATES else REASON_NOT_RETURNABLE,
            )
        if ActorRole(actor_role) == ActorRole.CUSTOMER:
            self._ensure_owner(order, actor_id, log)

    def _ensure_owner(self, order: Order, actor_id: Optional[int], log) -> None:
        if actor_id is None or order.customer_id != actor_id:
            log.warning("order.ownership_violation", actor_id=actor_id)
            raise OrderOwnershipError(
                f"Order {order.order_number} does not belong to user {actor_id}."
            )

    def _apply(
        self,
        order: Order,
        target: OrderStatus,
        actor_id: Optional[int] = None,
        actor_role: ActorRole = ActorRole.ADMIN,
        admin_pin: Optional[str] = None,
        notes: str = "",
        reason: str = "",
    ) -> Order:
        current = order.current_status
        log = logger.bind(
            order_id=str(order.id),
            current_status=current.code,
            new_status=target.code,
            actor_role=str(actor_role),
        )
        payment = self._payment_provider.get_payment_info(order.id)

        try:
            verdict = ensure_transition(
                current,
                target,
                payment.method,
                payment.is_paid,
                actor_role=actor_role,
                admin_pin=admin_pin,
                expected_pin=self._admin_pin,
            )
        except (InvalidTransition, UnauthorizedBackwardMove) as exc:
            log.warning(
                "order.invalid_transition",
                reason=exc.reason,
                error=type(exc).__name__,
            )
            raise

        if target == OrderStatus.COMPLETED:
            self._ensure_settled(current, target, payment, log)

        deducts = (current, target) == (OrderStatus.PENDING, OrderStatus.CONFIRMED)
        restores = target == OrderStatus.RETURNED or (
            current == OrderStatus.CONFIRMED and target == OrderStatus.CANCELLED
        )
        items: List[OrderItem] = []
        if deducts or restores:
            items = self._order_store.get_items(order.id)
        if deducts:
            self._check_stock(items, log)

        self._order_store.write_status(
            order.id, target, actor_id, expected_status=current
        )

        stock_reason: Optional[AdjustmentReason] = None
        if deducts and items:
            stock_reason = AdjustmentReason.SALE
            note = f"Order {order.order_number} confirmed"
            self._move_stock(items, -1, stock_reason, note, actor_id)
            log.info("order.stock_deducted", line_count=len(items))
        elif restores and items:
            stock_reason = AdjustmentReason.RETURN
            if target == OrderStatus.CANCELLED:
                note = f"Order {order.order_number} cancelled"
            else:
                note = f"Order {order.order_number} returned"
                if reason:
                    note = f"{note}: {reason}"
            self._move_stock(items, 1, stock_reason, note, actor_id)
            log.info("order.stock_restored", line_count=len(items))

        self._order_store.add_history(
            order_id=order.id,
            new_status=target,
            old_status=current,
            actor_id=actor_id,
            notes=notes,
        )
        if target == OrderStatus.RETURNED and reason:
            self._order_store.append_notes(order.id, f"Returned: {reason}")

        log.info("order.status_updated", backward=verdict.is_backward)

        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                old_status=int(current),
                new_status=int(target),
                actor_id=actor_id,
                backward=verdict.is_backward,
            )
        )
        if stock_reason is not None:
            order.add_domain_event(
                StockAdjusted(
                    aggregate_id=order.id,
                    reason=str(stock_reason),
                    line_count=len(items),
                )
            )
        if target == OrderStatus.CANCELLED:
            order.add_domain_event(
                OrderCancelled(
                    aggregate_id=order.id, stock_restored=stock_reason is not None
                )
            )
        elif target == OrderStatus.RETURNED:
            order.add_domain_event(OrderReturned(aggregate_id=order.id, reason=reason))
        self._event_bus.publish_all(order.pull_domain_events())

        return self._order_store.get_by_id(str(order.id)) or order

    def _ensure_settled(
        self,
        current: OrderStatus,
        target: OrderStatus,
        payment: PaymentInfo,
        log,
    ) -> None:
        """A COD or wallet order completes only once its payment is PAID."""
        if payment.method in _SETTLED_METHODS and not payment.is_paid:
            log.warning("order.completion_unpaid", payment_method=str(payment.method))
            raise PaymentNotConfirmed(current, target, REASON_PAYMENT)

    def _check_stock(self, items: List[OrderItem], log) -> None:
        """Verify every line is covered under row lock; nothing is deducted."""
        required = _quantities_by_product(items)
        if not required:
            return
        levels = self._inventory.get_stock_levels(list(required), lock=True)

        missing = [pid for pid in required if pid not in levels]
        if missing:
            log.warning("order.product_missing", product_ids=[str(p) for p in missing])
            raise ProductNotFound(missing)

        skus = {item.product_id: getattr(item.product, "sku", None) for item in items}
        for product_id, quantity in required.items():
            available = levels[product_id]
            if available < quantity:
                log.warning(
                    "order.insufficient_stock",
                    product_id=str(product_id),
                    requested=quantity,
                    available=available,
                )
                raise InsufficientStock(
                    product_id, quantity, available, sku=skus.get(product_id)
                )

    def _move_stock(
        self,
        items: List[OrderItem],
        sign: int,
        reason: AdjustmentReason,
        note: str,
        actor_id: Optional[int],
    ) -> None:
        """One bulk delta per product, one ledger entry per line."""
        deltas = [
            StockDelta(product_id=product_id, delta=sign * quantity)
            for product_id, quantity in _quantities_by_product(items).items()
        ]
        self._inventory.apply_deltas(deltas)
        self._inventory.record_adjustments(
            [
                AdjustmentDTO(
                    product_id=item.product_id,
                    quantity_change=sign * item.quantity,
                    reason=reason,
                    note=note,
                    actor_id=actor_id,
                )
                for item in items
            ]
        )


def _quantities_by_product(items: List[OrderItem]) -> Dict[UUID, int]:
    totals: Dict[UUID, int] = defaultdict(int)
    for item in items:
        totals[item.product_id] += item.quantity
    return dict(sorted(totals.items(), key=lambda pair: str(pair[0])))
