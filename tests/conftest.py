import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["DB_TYPE"] = "sqlite"
os.environ.setdefault("SQLITE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from storefront.core.db import Base  # noqa: E402
from storefront.models import (  # noqa: E402
    Coupon, CouponRedemption, CouponType, CustomerProfile, DeliveryBusiness, FlavorOption, FlavorPrice,
    MenuItem, MenuItemFlavor, Order, OrderStatus, PaymentMethod, PizzaSize, User,
)

NOW = datetime(2026, 3, 10, 18, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def seed_storefront(db):
    """One pizzeria, its owner, one customer and a small menu."""
    owner = User(email="owner@pizzaria.test", role="owner")
    customer_user = User(email="ana@cliente.test", role="customer")
    other_owner = User(email="other@owner.test", role="owner")
    db.add_all([owner, customer_user, other_owner])
    await db.flush()

    business = DeliveryBusiness(
        owner_id=owner.id,
        name="Pizzaria Bella",
        delivery_fee=Decimal("8.00"),
        min_order_value=Decimal("0.00"),
        allow_scheduling=True,
    )
    other_business = DeliveryBusiness(owner_id=other_owner.id, name="Outra", delivery_fee=Decimal("5.00"))
    db.add_all([business, other_business])
    await db.flush()

    profile = CustomerProfile(user_id=customer_user.id, name="Ana", phone="11999990000", address="Rua A, 10")
    burger = MenuItem(business_id=business.id, name="Burger", price=Decimal("30.00"))
    soda = MenuItem(business_id=business.id, name="Soda", price=Decimal("6.50"))
    pizza = MenuItem(business_id=business.id, name="Pizza", price=Decimal("0.00"), supports_fractional=True)
    special = MenuItem(business_id=business.id, name="Pizza Especial", price=Decimal("0.00"), supports_fractional=True)
    hidden = MenuItem(business_id=business.id, name="Old item", price=Decimal("10.00"), active=False)
    db.add_all([profile, burger, soda, pizza, special, hidden])
    await db.flush()

    calabresa = FlavorOption(business_id=business.id, name="Calabresa")
    margherita = FlavorOption(business_id=business.id, name="Margherita")
    portuguesa = FlavorOption(business_id=business.id, name="Portuguesa")
    retired = FlavorOption(business_id=business.id, name="Retired", active=False)
    db.add_all([calabresa, margherita, portuguesa, retired])
    await db.flush()

    db.add_all([
        FlavorPrice(flavor_id=calabresa.id, size=PizzaSize.BROTO, price=Decimal("32.00")),
        FlavorPrice(flavor_id=calabresa.id, size=PizzaSize.GRANDE, price=Decimal("42.90")),
        FlavorPrice(flavor_id=margherita.id, size=PizzaSize.BROTO, price=Decimal("29.90")),
        FlavorPrice(flavor_id=margherita.id, size=PizzaSize.GRANDE, price=Decimal("38.50")),
        FlavorPrice(flavor_id=portuguesa.id, size=PizzaSize.GRANDE, price=Decimal("45.00")),
        FlavorPrice(flavor_id=retired.id, size=PizzaSize.GRANDE, price=Decimal("20.00")),
        # the special pizza only offers calabresa and portuguesa
        MenuItemFlavor(menu_item_id=special.id, flavor_id=calabresa.id),
        MenuItemFlavor(menu_item_id=special.id, flavor_id=portuguesa.id),
    ])
    await db.commit()

    return SimpleNamespace(
        owner=owner,
        other_owner=other_owner,
        customer_user=customer_user,
        business=business,
        other_business=other_business,
        profile=profile,
        burger=burger,
        soda=soda,
        pizza=pizza,
        special=special,
        hidden=hidden,
        calabresa=calabresa,
        margherita=margherita,
        portuguesa=portuguesa,
        retired=retired,
    )


@pytest.fixture
async def seed(db):
    return await seed_storefront(db)


@pytest.fixture
def make_coupon(db, seed):
    async def _make(code="PROMO10", type=CouponType.PERCENT, value="10", **kwargs):
        coupon = Coupon(
            business_id=kwargs.pop("business_id", seed.business.id),
            code=code,
            type=type,
            value=Decimal(value),
            min_order_value=Decimal(kwargs.pop("min_order_value", "0")),
            uses_count=kwargs.pop("uses_count", 0),
            **kwargs,
        )
        db.add(coupon)
        await db.commit()
        return coupon
    return _make


@pytest.fixture
def redeem(db, seed):
    """Record a past redemption of `coupon` on a delivered order."""
    async def _redeem(coupon, customer_id):
        order = Order(
            order_code=f"R{coupon.id}{customer_id or 0}x",
            business_id=seed.business.id,
            customer_id=customer_id,
            customer_name="Ana",
            customer_phone="11999990000",
            total_amount=Decimal("10.00"),
            payment_method=PaymentMethod.PIX,
            status=OrderStatus.DELIVERED,
        )
        db.add(order)
        await db.flush()
        db.add(CouponRedemption(coupon_id=coupon.id, order_id=order.id, customer_id=customer_id,
                                discount_amount=Decimal("1.00")))
        await db.commit()
    return _redeem
