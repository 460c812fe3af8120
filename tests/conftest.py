from decimal import Decimal
from itertools import count

import pytest

from modules.inventory.repositories import InventoryDjangoRepository
from modules.orders.repositories import OrderDjangoRepository
from modules.orders.services import OrderWorkflowService
from modules.payments.repositories import PaymentDjangoRepository
from modules.products.models import Product, ProductStatus
from shared.infrastructure.bus import InMemoryEventBus

TEST_ADMIN_PIN = "2468"


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def admin_user(django_user_model):
    return django_user_model.objects.create_user(
        "ops-admin", password="admin-pass", is_staff=True
    )


@pytest.fixture()
def customer_user(django_user_model):
    return django_user_model.objects.create_user("buyer", password="buyer-pass")


@pytest.fixture()
def make_product():
    """Factory for catalog products with a given stock level."""
    sequence = count(1)

    def _make(stock: int = 10, price: str = "10.00", sku: str | None = None) -> Product:
        n = next(sequence)
        return Product.objects.create(
            sku=sku or f"SKU-{n:03d}",
            name=f"Product {n}",
            price=Decimal(price),
            stock_quantity=stock,
            status=ProductStatus.ACTIVE,
        )

    return _make


@pytest.fixture()
def order_store():
    return OrderDjangoRepository()


@pytest.fixture()
def payment_repo():
    return PaymentDjangoRepository()


@pytest.fixture()
def inventory_repo():
    return InventoryDjangoRepository()


@pytest.fixture()
def event_bus():
    return InMemoryEventBus()


@pytest.fixture()
def workflow(order_store, payment_repo, inventory_repo, event_bus):
    return OrderWorkflowService(
        order_store,
        payment_repo,
        inventory_repo,
        event_bus=event_bus,
        admin_pin=TEST_ADMIN_PIN,
    )


@pytest.fixture()
def make_order(order_store, customer_user):
    """Factory: ``make_order((product, qty), ...)`` creates a PENDING order."""

    def _make(*lines, customer=None):
        owner = customer or customer_user
        return order_store.create(
            {
                "customer_id": owner.id,
                "items": [
                    {"product_id": product.id, "quantity": quantity}
                    for product, quantity in lines
                ],
            }
        )

    return _make
