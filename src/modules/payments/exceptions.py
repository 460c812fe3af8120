"""Payment domain exceptions."""

from __future__ import annotations


class PaymentMethodMismatch(Exception):
    """The operation does not apply to the order's payment method.

    Raised, for instance, when an operator tries to confirm cash payment
    for an order that was paid through the wallet gateway.
    """
