"""Order Store contract.

Extends ``IRepository[Order]`` with what the workflow needs: read the
current status (optionally under a row lock), write a new status with
compare-and-swap, read the order lines and append history.

The Service Layer depends exclusively on this contract.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderItem, OrderStatusHistory


class IOrderStore(IRepository["Order"]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create a PENDING order with its items atomically.

        ``data`` must include ``items`` (list of dicts with ``product_id``,
        ``quantity`` and optionally ``unit_price``) and may include
        ``customer_id``, ``notes`` and ``actor_id``.
        """

    @abstractmethod
    def get_for_update(self, id: UUID) -> Optional[Order]:
        """Retrieve an order holding a row-level lock until commit."""

    @abstractmethod
    def find_status(self, order_id: UUID) -> Optional[int]:
        """Current status id, ``None`` if the order does not exist."""

    @abstractmethod
    def write_status(
        self,
        order_id: UUID,
        new_status: int,
        actor_id: Optional[int],
        expected_status: int,
    ) -> None:
        """Persist a new status if the order is still in *expected_status*.

        Raises:
            ConcurrentModification: the stored status is no longer
                *expected_status*.
        """

    @abstractmethod
    def get_items(self, order_id: UUID) -> List[OrderItem]:
        """Order lines ordered by product id."""

    @abstractmethod
    def add_history(
        self,
        order_id: UUID,
        new_status: int,
        old_status: Optional[int] = None,
        actor_id: Optional[int] = None,
        notes: str = "",
    ) -> OrderStatusHistory:
        """Append a record to the order's audit trail."""

    @abstractmethod
    def append_notes(self, order_id: UUID, text: str) -> None:
        """Append a line to the order's free-text notes."""
