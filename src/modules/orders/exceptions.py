"""Order domain exceptions.

Raised by the workflow policy and the Service Layer when a lifecycle rule
is violated.  Callers (an API layer, a management command) catch these and
decide the user-facing message; nothing here is retried automatically.
"""

from __future__ import annotations

from typing import Any, Optional


def _status_label(status: Any) -> str:
    label = getattr(status, "label", None)
    return str(label) if label is not None else str(status)


class OrderNotFound(Exception):
    """The requested order does not exist or has been soft-deleted."""


class InvalidTransition(Exception):
    """The requested status change is not allowed from the current status.

    ``from_status``/``to_status`` carry the attempted edge and ``reason`` a
    short human-readable explanation (e.g. ``"would skip steps"``).
    """

    def __init__(self, from_status: Any, to_status: Any, reason: str = "") -> None:
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        message = (
            f"Cannot transition from {_status_label(from_status)} "
            f"to {_status_label(to_status)}"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class PaymentNotConfirmed(InvalidTransition):
    """A payment-gated edge was attempted before the payment was confirmed."""


class UnauthorizedBackwardMove(Exception):
    """A backward move was attempted without valid elevated authorization."""

    def __init__(self, from_status: Any, to_status: Any, reason: str = "") -> None:
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        super().__init__(
            f"Moving back from {_status_label(from_status)} to "
            f"{_status_label(to_status)} requires administrator authorization"
            + (f": {reason}" if reason else "")
        )


class InsufficientStock(Exception):
    """Not enough stock to confirm the order; nothing was deducted."""

    def __init__(
        self,
        product_id: Any,
        requested: int,
        available: int,
        sku: Optional[str] = None,
    ) -> None:
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.sku = sku
        super().__init__(
            f"Product {sku or product_id}: requested {requested}, "
            f"available {available}."
        )


class ConcurrentModification(Exception):
    """The order status changed between the read and the write.

    The caller should re-read the order and decide again; the move may no
    longer be legal.
    """

    def __init__(self, order_id: Any, expected_status: Any) -> None:
        self.order_id = order_id
        self.expected_status = expected_status
        super().__init__(
            f"Order {order_id} is no longer in status "
            f"{_status_label(expected_status)}."
        )


class RefundRequired(Exception):
    """A customer tried to cancel an order already paid through the wallet."""


class OrderOwnershipError(Exception):
    """A customer acted on an order that belongs to someone else."""
