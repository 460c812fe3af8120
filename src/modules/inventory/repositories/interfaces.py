"""Inventory Adjuster contract.

The order workflow changes stock only through this interface: read the
current levels (optionally locked), apply signed deltas, and append the
matching ledger entries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from modules.inventory.constants import AdjustmentReason

if TYPE_CHECKING:
    from modules.inventory.dtos import AdjustmentDTO, StockDelta
    from modules.inventory.models import InventoryAdjustment


class IInventoryAdjuster(ABC):
    """Repository contract for stock levels and the adjustment ledger."""

    @abstractmethod
    def get_stock_levels(
        self, product_ids: Iterable[UUID], lock: bool = True
    ) -> Dict[UUID, int]:
        """Current stock per product; missing products are absent from the map.

        With ``lock=True`` the product rows stay locked until the enclosing
        transaction ends.
        """

    @abstractmethod
    def apply_deltas(self, deltas: Sequence[StockDelta]) -> None:
        """Apply all deltas atomically.

        Raises:
            ProductNotFound: any referenced product is missing (nothing applied).
        """

    @abstractmethod
    def record_adjustment(
        self,
        product_id: UUID,
        quantity_change: int,
        reason: AdjustmentReason,
        note: str = "",
        actor_id: Optional[int] = None,
    ) -> InventoryAdjustment:
        """Append one ledger entry."""

    @abstractmethod
    def record_adjustments(
        self, adjustments: Sequence[AdjustmentDTO]
    ) -> List[InventoryAdjustment]:
        """Append several ledger entries in one write."""
