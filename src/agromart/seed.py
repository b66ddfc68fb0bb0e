"""Demo data for a fresh agromart database."""

import logging
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import func, select

from .database import Database
from .models import DiscountType, ProductStatus, Role, _utc_now
from .tables import Address, Coupon, DeliveryArea, Product, User

logger = logging.getLogger(__name__)

PRODUCTS = [
    # name, category, price, unit, stock, min, max, organic
    ("Premium Basmati Rice", "CROPS", "120.00", "KG", 500, 5, None, True),
    ("Golden Wheat", "CROPS", "85.00", "KG", 800, 10, None, False),
    ("Fresh Tomatoes", "VEGETABLES", "60.00", "KG", 200, 1, 50, True),
    ("Green Chilies", "VEGETABLES", "40.00", "KG", 150, 1, 20, False),
    ("Himsagar Mangoes", "FRUITS", "180.00", "KG", 300, 2, 40, True),
    ("Fresh Cow Milk", "DAIRY", "90.00", "LITER", 100, 1, 10, False),
    ("Rohu Fish", "FISH", "350.00", "KG", 60, 1, 5, False),
]


def seed_demo_data(database: Database) -> dict[str, int]:
    """
    Insert demo users, an address book, products and coupons.

    Does nothing if users already exist. Returns counts of inserted rows.
    """
    now = _utc_now()
    with database.transaction() as session:
        if session.scalar(select(func.count()).select_from(User)):
            logger.info("seed_skipped reason=users_exist")
            return {}

        admin = User(name="Admin User", email="admin@agromart.test", role=Role.ADMIN)
        farmer = User(name="Rahim Uddin", email="farmer@agromart.test", role=Role.SELLER)
        shop_owner = User(name="Hasan Ali", email="shop@agromart.test", role=Role.SHOP_OWNER)
        customer = User(name="John Smith", email="customer@agromart.test", role=Role.CUSTOMER)
        rider = User(name="Karim Rider", email="rider@agromart.test", role=Role.RIDER)
        users = [admin, farmer, shop_owner, customer, rider]
        session.add_all(users)

        area = DeliveryArea(
            name="Dhaka Central",
            delivery_fee=Decimal("50.00"),
            estimated_delivery_time=60,
        )
        session.add(area)

        session.add(
            Address(
                user=customer,
                name="John Smith",
                phone="+880-1111-111111",
                address_line1="House 45, Road 12",
                address_line2="Dhanmondi",
                city="Dhaka",
                state="Dhaka Division",
                postal_code="1209",
                country="Bangladesh",
                is_default=True,
                delivery_area=area,
            )
        )

        for name, category, price, unit, stock, min_qty, max_qty, organic in PRODUCTS:
            session.add(
                Product(
                    seller=farmer,
                    name=name,
                    category=category,
                    price=Decimal(price),
                    unit=unit,
                    stock_quantity=stock,
                    min_order_quantity=min_qty,
                    max_order_quantity=max_qty,
                    is_organic=organic,
                    status=ProductStatus.ACTIVE,
                )
            )

        session.add_all(
            [
                Coupon(
                    code="WELCOME10",
                    description="Welcome bonus - 10% off on first order",
                    discount_type=DiscountType.PERCENTAGE,
                    discount_value=Decimal("10"),
                    min_order_value=Decimal("200"),
                    max_discount=Decimal("100"),
                    valid_from=now - timedelta(days=1),
                    valid_until=now + timedelta(days=365),
                ),
                Coupon(
                    code="ORGANIC20",
                    description="20% off on organic products",
                    discount_type=DiscountType.PERCENTAGE,
                    discount_value=Decimal("20"),
                    min_order_value=Decimal("500"),
                    max_discount=Decimal("200"),
                    valid_from=now - timedelta(days=1),
                    valid_until=now + timedelta(days=180),
                ),
            ]
        )

    counts = {"users": len(users), "products": len(PRODUCTS), "coupons": 2, "addresses": 1}
    logger.info("seed_done %s", " ".join(f"{k}={v}" for k, v in counts.items()))
    return counts
