"""Django ORM implementation of the Payment Info Provider."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.utils import timezone

from modules.orders.constants import PaymentMethod
from modules.payments.constants import PaymentStatus
from modules.payments.dtos import PaymentInfo
from modules.payments.models import Payment
from modules.payments.repositories.interfaces import IPaymentInfoProvider

logger = structlog.get_logger(__name__)


class PaymentDjangoRepository(IPaymentInfoProvider):
    """Concrete payment repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Payment]:
        try:
            return Payment.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_dominant(self, order_id: UUID) -> Optional[Payment]:
        return Payment.objects.for_order(order_id).dominant()

    def get_payment_info(self, order_id: UUID) -> PaymentInfo:
        payment = self.get_dominant(order_id)
        if payment is None:
            return PaymentInfo()
        return PaymentInfo(method=payment.method, is_paid=payment.is_paid)

    def has_paid_payment(self, order_id: UUID, method: PaymentMethod) -> bool:
        return (
            Payment.objects.for_order(order_id).paid().filter(method=method).exists()
        )

    def create(
        self,
        order_id: UUID,
        method: PaymentMethod,
        amount: Decimal,
        paid: bool = False,
    ) -> Payment:
        payment = Payment.objects.create(
            order_id=order_id,
            method=method,
            amount=amount,
            status=PaymentStatus.PAID if paid else PaymentStatus.PENDING,
            paid_at=timezone.now() if paid else None,
        )
        logger.info(
            "payment.created",
            payment_id=str(payment.id),
            order_id=str(order_id),
            method=str(method),
            status=payment.status,
        )
        return payment

    def set_paid(self, payment: Payment, paid: bool) -> Payment:
        if paid:
            payment.mark_paid()
        else:
            payment.mark_pending()
        logger.info(
            "payment.status_updated",
            payment_id=str(payment.id),
            order_id=str(payment.order_id),
            status=payment.status,
        )
        return payment
