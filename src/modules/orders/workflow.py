"""Order lifecycle policy.

Pure decision functions over the status taxonomy in ``constants``: which
moves are legal, which need elevated authorization, and which are blocked
by payment state.  No I/O, no logging, no mutable state, so every function
is safe to call from any thread.

Statuses may be passed as ``OrderStatus`` members or raw ids; payment
methods as ``PaymentMethod`` members, gateway strings or ``None``.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Optional, Union

from modules.orders.constants import (
    FORWARD_TRANSITIONS,
    PAYMENT_GATED_TRANSITIONS,
    TERMINAL_STATES,
    ActorRole,
    OrderStatus,
    PaymentMethod,
)
from modules.orders.exceptions import (
    InvalidTransition,
    PaymentNotConfirmed,
    UnauthorizedBackwardMove,
)

StatusLike = Union[OrderStatus, int, str]
MethodLike = Union[PaymentMethod, str, None]

REASON_TERMINAL = "status is terminal"
REASON_BACK_TO_PENDING = "cannot move back to pending"
REASON_SAME_STATUS = "order is already in this status"
REASON_PAYMENT = "payment not completed"
REASON_COMPLETED_LOCKED = "completed orders can only be returned"
REASON_SKIP = "would skip steps"
REASON_UNKNOWN = "unknown status"
REASON_ACTOR = "actor role may not request this transition"

_ELEVATED_ROLES = frozenset({ActorRole.ADMIN, ActorRole.SYSTEM})

_ACTOR_EDGES: dict[ActorRole, frozenset[tuple[OrderStatus, OrderStatus]]] = {
    ActorRole.SHIPPER: frozenset(
        {
            (OrderStatus.CONFIRMED, OrderStatus.SHIPPING),
            (OrderStatus.SHIPPING, OrderStatus.DELIVERED),
        }
    ),
}

_ACTOR_TARGETS: dict[ActorRole, frozenset[OrderStatus]] = {
    ActorRole.CUSTOMER: frozenset({OrderStatus.CANCELLED, OrderStatus.RETURNED}),
}


@dataclass(frozen=True)
class TransitionVerdict:
    """Outcome of evaluating one (from, to) pair in a payment context."""

    from_status: Optional[OrderStatus]
    to_status: Optional[OrderStatus]
    allowed: bool
    requires_elevated_auth: bool = False
    payment_blocked: bool = False
    reason: str = ""

    @property
    def is_backward(self) -> bool:
        return self.allowed and self.requires_elevated_auth


def _as_status(value: StatusLike) -> Optional[OrderStatus]:
    return OrderStatus.resolve(value)


def _is_wallet(payment_method: MethodLike) -> bool:
    return PaymentMethod.normalize(payment_method) == PaymentMethod.WALLET


def payment_allows(
    from_status: OrderStatus,
    to_status: OrderStatus,
    payment_method: MethodLike = None,
    is_paid: bool = False,
) -> bool:
    """Wallet orders must be paid before confirmation and before shipping."""
    if (from_status, to_status) not in PAYMENT_GATED_TRANSITIONS:
        return True
    if _is_wallet(payment_method):
        return bool(is_paid)
    return True


def is_backward_move(from_status: StatusLike, to_status: StatusLike) -> bool:
    """A move to a lower status id that does not end the order (cancel/return)."""
    current, target = _as_status(from_status), _as_status(to_status)
    if current is None or target is None:
        return False
    return target.value < current.value and target not in TERMINAL_STATES


def evaluate_transition(
    from_status: StatusLike,
    to_status: StatusLike,
    payment_method: MethodLike = None,
    is_paid: bool = False,
) -> TransitionVerdict:
    """Decide a (from, to) pair.  Total: every pair gets a verdict."""
    current, target = _as_status(from_status), _as_status(to_status)

    if current is None or target is None:
        return TransitionVerdict(current, target, False, reason=REASON_UNKNOWN)
    if current in TERMINAL_STATES:
        return TransitionVerdict(current, target, False, reason=REASON_TERMINAL)
    if target == OrderStatus.PENDING:
        return TransitionVerdict(current, target, False, reason=REASON_BACK_TO_PENDING)
    if target == current:
        return TransitionVerdict(current, target, False, reason=REASON_SAME_STATUS)

    if target in FORWARD_TRANSITIONS[current]:
        if not payment_allows(current, target, payment_method, is_paid):
            return TransitionVerdict(
                current, target, False, payment_blocked=True, reason=REASON_PAYMENT
            )
        return TransitionVerdict(current, target, True)

    if is_backward_move(current, target):
        if current == OrderStatus.COMPLETED:
            return TransitionVerdict(
                current, target, False, reason=REASON_COMPLETED_LOCKED
            )
        return TransitionVerdict(current, target, True, requires_elevated_auth=True)

    return TransitionVerdict(current, target, False, reason=REASON_SKIP)


def is_valid_transition(
    from_status: StatusLike,
    to_status: StatusLike,
    payment_method: MethodLike = None,
    is_paid: bool = False,
) -> bool:
    """True only for forward edges permitted without elevated authorization."""
    verdict = evaluate_transition(from_status, to_status, payment_method, is_paid)
    return verdict.allowed and not verdict.requires_elevated_auth


def can_cancel(status: StatusLike, is_customer: bool = False) -> bool:
    """Only a PENDING order can be cancelled, by customers and admins alike.

    Whether a paid wallet order may still be cancelled by its customer is a
    payment question answered by the service, not here.
    """
    return _as_status(status) == OrderStatus.PENDING


def can_return(status: StatusLike) -> bool:
    """An order is returnable wherever the forward table has a RETURNED edge."""
    current = _as_status(status)
    if current is None:
        return False
    return OrderStatus.RETURNED in FORWARD_TRANSITIONS[current]


def can_confirm(
    status: StatusLike, payment_method: MethodLike = None, is_paid: bool = False
) -> bool:
    if _as_status(status) != OrderStatus.PENDING:
        return False
    return payment_allows(
        OrderStatus.PENDING, OrderStatus.CONFIRMED, payment_method, is_paid
    )


def can_start_shipping(
    status: StatusLike, payment_method: MethodLike = None, is_paid: bool = False
) -> bool:
    if _as_status(status) != OrderStatus.CONFIRMED:
        return False
    return payment_allows(
        OrderStatus.CONFIRMED, OrderStatus.SHIPPING, payment_method, is_paid
    )


def actor_may_request(
    actor_role: Union[ActorRole, str], from_status: StatusLike, to_status: StatusLike
) -> bool:
    """Role policy for the normal (forward) path.

    Admins and the system may take any edge; delivery agents only move an
    order into and through shipping; customers may only cancel or return.
    """
    role = ActorRole(actor_role)
    current, target = _as_status(from_status), _as_status(to_status)
    if role in _ELEVATED_ROLES:
        return True
    if role in _ACTOR_EDGES:
        return (current, target) in _ACTOR_EDGES[role]
    return target in _ACTOR_TARGETS.get(role, frozenset())


def check_admin_pin(supplied_pin: Optional[str], expected_pin: str) -> bool:
    """Constant-time comparison of the operator PIN."""
    if not supplied_pin or not expected_pin:
        return False
    return secrets.compare_digest(str(supplied_pin), str(expected_pin))


def ensure_transition(
    from_status: StatusLike,
    to_status: StatusLike,
    payment_method: MethodLike = None,
    is_paid: bool = False,
    actor_role: Union[ActorRole, str] = ActorRole.ADMIN,
    admin_pin: Optional[str] = None,
    expected_pin: str = "",
) -> TransitionVerdict:
    """Evaluate a move and raise the matching typed error if it is illegal.

    Raises:
        PaymentNotConfirmed: wallet edge attempted before payment.
        InvalidTransition: edge not in the table, or not for this actor.
        UnauthorizedBackwardMove: backward move without admin role and PIN.
    """
    verdict = evaluate_transition(from_status, to_status, payment_method, is_paid)
    current = verdict.from_status or from_status
    target = verdict.to_status or to_status

    if verdict.payment_blocked:
        raise PaymentNotConfirmed(current, target, verdict.reason)
    if not verdict.allowed:
        raise InvalidTransition(current, target, verdict.reason)

    role = ActorRole(actor_role)
    if verdict.requires_elevated_auth:
        if role not in _ELEVATED_ROLES:
            raise UnauthorizedBackwardMove(current, target, "administrator role required")
        if not admin_pin:
            raise UnauthorizedBackwardMove(current, target, "PIN required")
        if not check_admin_pin(admin_pin, expected_pin):
            raise UnauthorizedBackwardMove(current, target, "PIN is incorrect")
        return verdict

    if not actor_may_request(role, current, target):
        raise InvalidTransition(current, target, REASON_ACTOR)
    return verdict
