"""Order domain constants.

Defines the order status taxonomy, payment methods, actor roles and the
canonical forward transition table of the order lifecycle.

Status ids are persisted, so they never change.  ``COMPLETED`` was added
after ``RETURNED`` and keeps id 8 while sorting before it.
"""

from __future__ import annotations

from typing import Optional, Union

from django.db import models


class OrderStatus(models.IntegerChoices):
    PENDING = 1, "Pending confirmation"
    CONFIRMED = 2, "Confirmed"
    SHIPPING = 3, "Shipping"
    DELIVERED = 4, "Delivered"
    CANCELLED = 5, "Cancelled"
    RETURNED = 6, "Returned"
    COMPLETED = 8, "Completed"

    @property
    def code(self) -> str:
        """Stable machine-readable code (e.g. ``"PENDING"``)."""
        return self.name

    @property
    def sort_order(self) -> int:
        return STATUS_SORT_ORDER[self]

    @classmethod
    def get_by_id(cls, status_id: Union[int, str, None]) -> Optional["OrderStatus"]:
        """Return the status with *status_id*, or ``None`` if unknown.

        Numeric strings are accepted (``"2"`` resolves to ``CONFIRMED``).
        """
        try:
            return cls(int(status_id))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None

    @classmethod
    def get_by_code(cls, code: Optional[str]) -> Optional["OrderStatus"]:
        """Return the status whose code matches *code* (case-insensitive)."""
        if not code:
            return None
        return cls.__members__.get(code.strip().upper())

    @classmethod
    def get_all(cls) -> list["OrderStatus"]:
        """Return every status ordered by ``sort_order``."""
        return sorted(cls, key=lambda status: status.sort_order)

    @classmethod
    def resolve(cls, value: Union["OrderStatus", int, str, None]) -> Optional["OrderStatus"]:
        """Resolve a status member, id, numeric string or code."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and not value.strip().isdigit():
            return cls.get_by_code(value)
        return cls.get_by_id(value)


STATUS_SORT_ORDER: dict[OrderStatus, int] = {
    OrderStatus.PENDING: 1,
    OrderStatus.CONFIRMED: 2,
    OrderStatus.SHIPPING: 3,
    OrderStatus.DELIVERED: 4,
    OrderStatus.CANCELLED: 5,
    OrderStatus.RETURNED: 6,
    OrderStatus.COMPLETED: 7,
}


class PaymentMethod(models.TextChoices):
    COD = "COD", "Cash on delivery"
    WALLET = "WALLET", "Wallet gateway"

    @classmethod
    def normalize(cls, value: Optional[str]) -> Optional["PaymentMethod"]:
        """Map a gateway string to a method; unknown or empty gives ``None``."""
        if not value:
            return None
        return cls.__members__.get(str(value).strip().upper())


class ActorRole(models.TextChoices):
    CUSTOMER = "CUSTOMER", "Customer"
    ADMIN = "ADMIN", "Administrator"
    SHIPPER = "SHIPPER", "Delivery agent"
    SYSTEM = "SYSTEM", "System"


FORWARD_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.SHIPPING, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPING: frozenset({OrderStatus.DELIVERED, OrderStatus.RETURNED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.RETURNED, OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset({OrderStatus.RETURNED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
}

TERMINAL_STATES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.CANCELLED, OrderStatus.RETURNED}
)

# Edges where a wallet order must already be paid.
PAYMENT_GATED_TRANSITIONS: frozenset[tuple[OrderStatus, OrderStatus]] = frozenset(
    {
        (OrderStatus.PENDING, OrderStatus.CONFIRMED),
        (OrderStatus.CONFIRMED, OrderStatus.SHIPPING),
    }
)

DEFAULT_ADMIN_PIN = "1234"

ORDER_NUMBER_MAX_RETRIES = 5
