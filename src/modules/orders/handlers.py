"""Event handlers for Orders domain events."""

from __future__ import annotations

import structlog

from modules.orders.events import (
    OrderCancelled,
    OrderReturned,
    OrderStatusChanged,
    StockAdjusted,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        logger.info(
            "order.event.status_changed",
            order_id=str(event.aggregate_id),
            old_status=event.old_status,
            new_status=event.new_status,
            backward=event.backward,
        )


class OrderCancelledHandler(IEventHandler[OrderCancelled]):
    def handle(self, event: OrderCancelled) -> None:
        logger.info(
            "order.event.cancelled",
            order_id=str(event.aggregate_id),
            stock_restored=event.stock_restored,
        )


class OrderReturnedHandler(IEventHandler[OrderReturned]):
    def handle(self, event: OrderReturned) -> None:
        logger.info(
            "order.event.returned",
            order_id=str(event.aggregate_id),
            reason=event.reason,
        )


class StockAdjustedHandler(IEventHandler[StockAdjusted]):
    def handle(self, event: StockAdjusted) -> None:
        logger.info(
            "order.event.stock_adjusted",
            order_id=str(event.aggregate_id),
            reason=event.reason,
            line_count=event.line_count,
        )


order_status_changed_handler = OrderStatusChangedHandler()
order_cancelled_handler = OrderCancelledHandler()
order_returned_handler = OrderReturnedHandler()
stock_adjusted_handler = StockAdjustedHandler()
