"""Inventory domain constants."""

from django.db import models


class AdjustmentReason(models.TextChoices):
    SALE = "SALE", "Sale"
    RETURN = "RETURN", "Return"
