"""Payment records attached to orders.

An order may accumulate several payment attempts (a failed wallet charge
followed by a successful one, a COD record created at checkout and
confirmed after delivery).  The *dominant* payment that drives the order
workflow is the latest PAID record, or the latest record of any status
when none is paid.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.orders.constants import PaymentMethod
from modules.payments.constants import PaymentStatus


class PaymentQuerySet(models.QuerySet):
    def for_order(self, order_id) -> "PaymentQuerySet":
        return self.filter(order_id=order_id)

    def paid(self) -> "PaymentQuerySet":
        return self.filter(status=PaymentStatus.PAID)

    def dominant(self) -> "Payment | None":
        """Latest paid payment, falling back to the latest of any status."""
        latest = self.order_by("-created_at", "-id")
        return latest.paid().first() or latest.first()


class Payment(BaseModel):
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="payments",
    )
    method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    paid_at = models.DateTimeField(null=True, blank=True, default=None)
    gateway_reference = models.CharField(max_length=255, blank=True, default="")

    objects = PaymentQuerySet.as_manager()

    class Meta:
        db_table = "payments"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["order", "status"],
                name="payments_order_status_idx",
            ),
        ]

    @property
    def is_paid(self) -> bool:
        return self.status == PaymentStatus.PAID

    def mark_paid(self) -> None:
        self.status = PaymentStatus.PAID
        self.paid_at = timezone.now()
        self.save(update_fields=["status", "paid_at"])

    def mark_pending(self) -> None:
        self.status = PaymentStatus.PENDING
        self.paid_at = None
        self.save(update_fields=["status", "paid_at"])

    def __str__(self) -> str:
        return f"{self.method} {self.amount} [{self.status}] ({self.order_id})"
