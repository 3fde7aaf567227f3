# storefront/models/order_models.py
from datetime import datetime, timezone
from decimal import Decimal
import enum
from sqlalchemy import (
    Column, Integer, String, ForeignKey, Numeric, DateTime, Enum, Text, CheckConstraint
)
from sqlalchemy.orm import relationship
from storefront.core.db import Base


def _utcnow():
    return datetime.now(timezone.utc)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PIX = "pix"
    FOOD_VOUCHER = "food_voucher"


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),)

    id = Column(Integer, primary_key=True, index=True)
    order_code = Column(String(16), unique=True, nullable=False, index=True)

    business_id = Column(Integer, ForeignKey("delivery_businesses.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customer_profiles.id"), nullable=True, index=True)  # null for counter/guest

    # Contact snapshot, copied at order time
    customer_name = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)
    customer_address = Column(String, nullable=False, default="")

    total_amount = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    delivery_fee = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    discount_amount = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    coupon_code = Column(String(50), nullable=True)

    payment_method = Column(
        Enum(PaymentMethod, name="payment_method", values_callable=_enum_values),
        nullable=False,
        default=PaymentMethod.CASH,
    )
    status = Column(
        Enum(OrderStatus, name="order_status", values_callable=_enum_values),
        nullable=False,
        default=OrderStatus.PENDING,
    )
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=False, default="")

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=_utcnow)

    items = relationship("OrderItem", back_populates="order", lazy="selectin")


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (CheckConstraint("quantity >= 1", name="ck_order_items_quantity"),)

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False, index=True)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(14, 2), nullable=False)   # price at order time
    total_price = Column(Numeric(14, 2), nullable=False)
    notes = Column(Text, nullable=True)                    # fractional composition

    order = relationship("Order", back_populates="items")
