"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class OrderStatusChanged(DomainEvent):
    """Raised after any successful status change."""

    old_status: int
    new_status: int
    actor_id: Optional[int] = None
    backward: bool = False


@dataclass(frozen=True, kw_only=True)
class OrderCancelled(DomainEvent):
    """Raised when an order reaches CANCELLED."""

    stock_restored: bool = False


@dataclass(frozen=True, kw_only=True)
class OrderReturned(DomainEvent):
    """Raised when an order reaches RETURNED."""

    reason: str = ""


@dataclass(frozen=True, kw_only=True)
class StockAdjusted(DomainEvent):
    """Raised when a transition moved stock for the order's lines."""

    reason: str
    line_count: int
