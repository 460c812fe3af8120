"""Order repositories package."""

from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.repositories.interfaces import IOrderStore

__all__ = ["IOrderStore", "OrderDjangoRepository"]
