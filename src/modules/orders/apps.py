from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.orders"
    label = "orders"

    def ready(self) -> None:
        from modules.orders.events import (
            OrderCancelled,
            OrderReturned,
            OrderStatusChanged,
            StockAdjusted,
        )
        from modules.orders.handlers import (
            order_cancelled_handler,
            order_returned_handler,
            order_status_changed_handler,
            stock_adjusted_handler,
        )
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(OrderStatusChanged, order_status_changed_handler)
        event_bus.subscribe(OrderCancelled, order_cancelled_handler)
        event_bus.subscribe(OrderReturned, order_returned_handler)
        event_bus.subscribe(StockAdjusted, stock_adjusted_handler)
