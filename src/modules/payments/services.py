"""Payment service layer.

Cash-on-delivery orders are settled by an operator after delivery: the
COD payment record is created or marked paid, and the order is completed
in the same transaction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional
from uuid import UUID

import structlog
from django.db import transaction

from modules.orders.constants import OrderStatus, PaymentMethod
from modules.orders.exceptions import InvalidTransition, OrderNotFound
from modules.payments.exceptions import PaymentMethodMismatch

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderStore
    from modules.orders.services import OrderWorkflowService
    from modules.payments.repositories.interfaces import IPaymentInfoProvider

logger = structlog.get_logger(__name__)

REASON_NOT_DELIVERED = "payment can only be confirmed after delivery"


class PaymentService:
    """Application service for payment use-cases."""

    def __init__(
        self,
        payment_repository: IPaymentInfoProvider,
        order_store: IOrderStore,
        workflow_service: OrderWorkflowService,
    ) -> None:
        self._payment_repo = payment_repository
        self._order_store = order_store
        self._workflow = workflow_service

    @transaction.atomic
    def confirm_cod_payment(
        self,
        order_id: UUID,
        actor_id: Optional[int] = None,
        paid: bool = True,
    ) -> Order:
        """Record cash collected on delivery and complete the order.

        With ``paid=False`` the COD payment is put back to PENDING and the
        order stays DELIVERED.

        Raises:
            OrderNotFound: order does not exist.
            InvalidTransition: order is not DELIVERED.
            PaymentMethodMismatch: order was paid through the wallet.
        """
        order = self._order_store.get_for_update(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(order_id=str(order_id), current_status=order.status)

        if order.current_status != OrderStatus.DELIVERED:
            log.warning("payment.confirm_not_allowed")
            raise InvalidTransition(
                order.current_status, OrderStatus.COMPLETED, REASON_NOT_DELIVERED
            )

        payment = self._payment_repo.get_dominant(order.id)
        if payment is None:
            payment = self._payment_repo.create(
                order.id, PaymentMethod.COD, order.total_amount, paid=paid
            )
        elif PaymentMethod.normalize(payment.method) != PaymentMethod.COD:
            log.warning("payment.method_mismatch", payment_method=payment.method)
            raise PaymentMethodMismatch(
                f"Order {order.order_number} is not a cash-on-delivery order."
            )
        else:
            self._payment_repo.set_paid(payment, paid)

        log.info("payment.cod_confirmed", paid=paid, payment_id=str(payment.id))

        if not paid:
            return self._order_store.get_by_id(str(order.id)) or order
        return self._workflow.complete_order(order.id, actor_id=actor_id)
