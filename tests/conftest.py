"""Pytest fixtures for agromart tests."""

import tempfile
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from agromart.database import Database
from agromart.models import DiscountType, ProductStatus, Role
from agromart.tables import (
    Address,
    CartItem,
    Coupon,
    DeliveryArea,
    Order,
    OrderItem,
    Product,
    User,
)


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def database(temp_dir):
    """A file-backed SQLite database with the schema created."""
    db = Database(f"sqlite:///{temp_dir / 'agromart.db'}")
    db.create_schema()
    yield db
    db.dispose()


class Factory:
    """Inserts rows for tests; each call commits on its own."""

    def __init__(self, database: Database):
        self.database = database
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def _save(self, row):
        with self.database.transaction() as session:
            session.add(row)
        return row

    def user(self, role: Role = Role.CUSTOMER, name: str | None = None) -> User:
        n = self._next()
        return self._save(
            User(name=name or f"{role.value.title()} {n}", email=f"user{n}@example.com", role=role)
        )

    def delivery_area(self, fee: str = "70.00", is_active: bool = True) -> DeliveryArea:
        return self._save(
            DeliveryArea(name=f"Area {self._next()}", delivery_fee=Decimal(fee), is_active=is_active)
        )

    def address(self, user: User, delivery_area: DeliveryArea | None = None) -> Address:
        return self._save(
            Address(
                user_id=user.id,
                name=user.name,
                phone="+880-1111-111111",
                address_line1="House 45, Road 12",
                city="Dhaka",
                postal_code="1209",
                country="Bangladesh",
                is_default=True,
                delivery_area_id=delivery_area.id if delivery_area else None,
            )
        )

    def product(
        self,
        seller: User,
        price: str = "100.00",
        stock: int = 10,
        min_qty: int = 1,
        max_qty: int | None = None,
        status: ProductStatus = ProductStatus.ACTIVE,
        name: str | None = None,
    ) -> Product:
        return self._save(
            Product(
                seller_id=seller.id,
                name=name or f"Product {self._next()}",
                price=Decimal(price),
                stock_quantity=stock,
                min_order_quantity=min_qty,
                max_order_quantity=max_qty,
                status=status,
            )
        )

    def coupon(
        self,
        code: str,
        discount_type: DiscountType = DiscountType.PERCENTAGE,
        value: str = "10",
        min_order_value: str | None = None,
        max_discount: str | None = None,
        valid_from: datetime | None = None,
        valid_until: datetime | None = None,
        is_active: bool = True,
    ) -> Coupon:
        now = datetime.now(timezone.utc)
        return self._save(
            Coupon(
                code=code,
                discount_type=discount_type,
                discount_value=Decimal(value),
                min_order_value=Decimal(min_order_value) if min_order_value else None,
                max_discount=Decimal(max_discount) if max_discount else None,
                valid_from=valid_from or now - timedelta(days=1),
                valid_until=valid_until or now + timedelta(days=30),
                is_active=is_active,
            )
        )

    def cart_item(self, user: User, product: Product, quantity: int = 1) -> CartItem:
        return self._save(CartItem(user_id=user.id, product_id=product.id, quantity=quantity))


@pytest.fixture
def factory(database):
    return Factory(database)


@pytest.fixture
def market(factory):
    """A seller, a customer with an address, and a rider."""

    customer = factory.user(Role.CUSTOMER)
    return SimpleNamespace(
        seller=factory.user(Role.SELLER),
        customer=customer,
        rider=factory.user(Role.RIDER),
        admin=factory.user(Role.ADMIN),
        address=factory.address(customer),
    )


def stock_of(database: Database, product_id: str) -> int:
    with database.session() as session:
        return session.scalar(select(Product.stock_quantity).where(Product.id == product_id))


def count_rows(database: Database, table) -> int:
    with database.session() as session:
        return session.scalar(select(func.count()).select_from(table))


def cart_product_ids(database: Database, user_id: str) -> set[str]:
    with database.session() as session:
        return set(
            session.scalars(select(CartItem.product_id).where(CartItem.user_id == user_id))
        )


def snapshot(database: Database) -> dict:
    """Everything a checkout may touch, for before/after comparison."""
    with database.session() as session:
        return {
            "stock": dict(session.execute(select(Product.id, Product.stock_quantity)).all()),
            "orders": session.scalar(select(func.count()).select_from(Order)),
            "order_items": session.scalar(select(func.count()).select_from(OrderItem)),
            "cart": sorted(
                session.execute(
                    select(CartItem.user_id, CartItem.product_id, CartItem.quantity)
                ).all()
            ),
        }
