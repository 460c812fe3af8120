"""Payment Info Provider contract.

The order workflow reads payment state only through this interface.
``PaymentService`` additionally uses the write methods to record COD
settlement after delivery.
"""

from __future__ import annotations

from abc import abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository
from modules.orders.constants import PaymentMethod

if TYPE_CHECKING:
    from modules.payments.dtos import PaymentInfo
    from modules.payments.models import Payment


class IPaymentInfoProvider(IRepository["Payment"]):
    """Repository contract for order payments."""

    @abstractmethod
    def get_payment_info(self, order_id: UUID) -> PaymentInfo:
        """Dominant payment method of the order and whether it is paid.

        An order without payments yields ``PaymentInfo(method=None,
        is_paid=False)``.
        """

    @abstractmethod
    def has_paid_payment(self, order_id: UUID, method: PaymentMethod) -> bool:
        """Whether a PAID payment exists for the order through *method*."""

    @abstractmethod
    def get_dominant(self, order_id: UUID) -> Optional[Payment]:
        """The record ``get_payment_info`` is derived from."""

    @abstractmethod
    def create(
        self,
        order_id: UUID,
        method: PaymentMethod,
        amount: Decimal,
        paid: bool = False,
    ) -> Payment:
        """Create a payment record."""

    @abstractmethod
    def set_paid(self, payment: Payment, paid: bool) -> Payment:
        """Mark a payment as paid (``paid=True``) or back to pending."""
