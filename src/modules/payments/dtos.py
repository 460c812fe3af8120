"""Payment DTOs.

``PaymentInfo`` is what the order workflow needs to know about payment:
the dominant method and whether it is settled.  Immutable Pydantic v2
model so it can be passed across layers without defensive copies.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from modules.orders.constants import PaymentMethod


class PaymentInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: Optional[PaymentMethod] = None
    is_paid: bool = False

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: object) -> Optional[PaymentMethod]:
        if v is None or isinstance(v, PaymentMethod):
            return v
        return PaymentMethod.normalize(str(v))

    @property
    def is_wallet(self) -> bool:
        return self.method == PaymentMethod.WALLET

    @property
    def is_cod(self) -> bool:
        return self.method == PaymentMethod.COD
