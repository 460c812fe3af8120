"""Inventory DTOs exchanged between the order workflow and the adjuster.

Framework-agnostic, immutable Pydantic v2 models.

- ``StockDelta``: signed change to apply to one product's stock.
- ``AdjustmentDTO``: one ledger entry to append.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from modules.inventory.constants import AdjustmentReason


class StockDelta(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: UUID
    delta: int

    @field_validator("delta")
    @classmethod
    def delta_must_not_be_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("Stock delta cannot be zero.")
        return v


class AdjustmentDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity_change: int
    reason: AdjustmentReason
    note: str = ""
    actor_id: Optional[int] = None
