from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.inventory.repositories import InventoryDjangoRepository
from modules.orders.constants import ActorRole, OrderStatus, PaymentMethod
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
from modules.orders.exceptions import InsufficientStock
from modules.orders.repositories import OrderDjangoRepository
from modules.orders.services import OrderWorkflowService
from modules.payments.repositories import PaymentDjangoRepository
from modules.payments.services import PaymentService
from modules.products.models import Product, ProductStatus


class Command(BaseCommand):
    help = "Seed database with development data driven through the order workflow."

    def add_arguments(self, parser):
        parser.add_argument("--orders", type=int, default=30)

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users = self._seed_users()
        products = self._seed_products()
        orders_created = self._seed_orders(users, products, options["orders"])

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={len(users)}, "
                f"products={len(products)}, "
                f"orders={orders_created}"
            )
        )

    def _seed_users(self) -> dict:
        User = get_user_model()
        users = {}
        for username, staff in (("admin", True), ("shipper", True), ("customer", False)):
            user, created = User.objects.get_or_create(
                username=username, defaults={"is_staff": staff}
            )
            if created:
                user.set_password(f"{username}123")
                user.save(update_fields=["password"])
            users[username] = user
        return users

    def _seed_products(self) -> list[Product]:
        self.stdout.write("Creating products...")
        products: list[Product] = []
        catalog = [
            ("ELEC-001", "27in Monitor", Decimal("1299.90")),
            ("ELEC-002", "Mechanical Keyboard", Decimal("399.90")),
            ("ELEC-003", "Gaming Mouse", Decimal("249.90")),
            ("ELEC-004", "14in Laptop", Decimal("3999.00")),
            ("FURN-001", "Office Desk", Decimal("899.00")),
            ("FURN-002", "Ergonomic Chair", Decimal("1499.00")),
            ("OFF-001", "A4 Paper", Decimal("29.90")),
            ("OFF-002", "Notebook", Decimal("19.90")),
        ]
        for sku, name, price in catalog:
            product, _ = Product.objects.get_or_create(
                sku=sku,
                defaults={
                    "name": name,
                    "price": price,
                    "stock_quantity": random.randint(10, 200),
                    "status": ProductStatus.ACTIVE,
                },
            )
            products.append(product)
        self.stdout.write(self.style.SUCCESS("Creating products... Done!"))
        return products

    def _seed_orders(self, users: dict, products: list[Product], count: int) -> int:
        self.stdout.write("Creating orders...")
        if not products:
            self.stdout.write(self.style.WARNING("Skipping orders (no products)."))
            return 0

        order_store = OrderDjangoRepository()
        payment_repo = PaymentDjangoRepository()
        workflow = OrderWorkflowService(
            order_store, payment_repo, InventoryDjangoRepository()
        )
        payments = PaymentService(payment_repo, order_store, workflow)
        admin_id = users["admin"].id
        shipper_id = users["shipper"].id

        # Target status reached by walking the lifecycle forward.
        targets = [
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.SHIPPING,
            OrderStatus.DELIVERED,
            OrderStatus.COMPLETED,
            OrderStatus.CANCELLED,
            OrderStatus.RETURNED,
        ]

        created = 0
        for i in range(count):
            lines = random.sample(products, k=random.randint(1, 3))
            order = workflow.create_order(
                CreateOrderDTO(
                    customer_id=users["customer"].id,
                    items=[
                        CreateOrderItemDTO(
                            product_id=product.id, quantity=random.randint(1, 3)
                        )
                        for product in lines
                    ],
                    notes=f"Seed order {i + 1}",
                ),
                actor_id=users["customer"].id,
            )
            payment_repo.create(order.id, PaymentMethod.COD, order.total_amount)
            created += 1

            target = random.choice(targets)
            if target == OrderStatus.PENDING:
                continue
            if target == OrderStatus.CANCELLED:
                workflow.cancel_order(order.id, actor_id=admin_id, reason="Seed")
                continue
            try:
                workflow.confirm_order(order.id, actor_id=admin_id)
            except InsufficientStock:
                continue
            if target == OrderStatus.CONFIRMED:
                continue
            workflow.start_shipping(
                order.id, actor_id=shipper_id, actor_role=ActorRole.SHIPPER
            )
            if target == OrderStatus.SHIPPING:
                continue
            workflow.mark_delivered(
                order.id, actor_id=shipper_id, actor_role=ActorRole.SHIPPER
            )
            if target == OrderStatus.COMPLETED:
                payments.confirm_cod_payment(order.id, actor_id=admin_id)
            elif target == OrderStatus.RETURNED:
                workflow.return_order(order.id, actor_id=admin_id, reason="Seed return")

        self.stdout.write(self.style.SUCCESS("Creating orders... Done!"))
        return created
