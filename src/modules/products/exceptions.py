"""Product domain exceptions."""

from __future__ import annotations

from typing import Any, Iterable


class ProductNotFound(Exception):
    """One or more products referenced by a stock change do not exist."""

    def __init__(self, product_ids: Iterable[Any]) -> None:
        self.product_ids = [str(pid) for pid in product_ids]
        super().__init__(f"Products not found: {', '.join(self.product_ids)}.")
