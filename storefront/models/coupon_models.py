from datetime import datetime, timezone
from decimal import Decimal
import enum
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Boolean, ForeignKey, Enum, UniqueConstraint
)
from sqlalchemy.orm import relationship
from storefront.core.db import Base


def _utcnow():
    return datetime.now(timezone.utc)


class CouponType(str, enum.Enum):
    PERCENT = "percent"
    FIXED = "fixed"


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (UniqueConstraint("business_id", "code", name="uq_coupon_business_code"),)

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("delivery_businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    code = Column(String(50), nullable=False)  # stored upper-cased and trimmed
    type = Column(
        Enum(CouponType, name="coupon_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    value = Column(Numeric(10, 2), nullable=False)
    min_order_value = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    start_at = Column(DateTime(timezone=True), nullable=True)
    end_at = Column(DateTime(timezone=True), nullable=True)

    max_uses = Column(Integer, nullable=True)
    max_uses_per_customer = Column(Integer, nullable=True)
    uses_count = Column(Integer, nullable=False, default=0)  # advisory, not atomic
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=_utcnow)

    redemptions = relationship("CouponRedemption", back_populates="coupon", cascade="all, delete-orphan")


class CouponRedemption(Base):
    __tablename__ = "coupon_redemptions"

    id = Column(Integer, primary_key=True, index=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customer_profiles.id"), nullable=True, index=True)
    discount_amount = Column(Numeric(14, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    coupon = relationship("Coupon", back_populates="redemptions")
