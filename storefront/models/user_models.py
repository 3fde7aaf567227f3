from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from storefront.core.db import Base

ROLE_OWNER = "owner"
ROLE_CUSTOMER = "customer"


class User(Base):
    """Identity comes from the external auth provider; only the role lives here."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    role = Column(String, nullable=False, default=ROLE_CUSTOMER)  # 'owner' or 'customer'
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class UserActivity(Base):
    """Audit trail of owner actions (coupon edits, status changes, API writes)."""
    __tablename__ = "user_activity"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    username = Column(String, nullable=False)
    business_id = Column(Integer, ForeignKey("delivery_businesses.id"), nullable=True, index=True)

    message = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
