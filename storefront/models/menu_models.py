# storefront/models/menu_models.py
import enum
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Numeric, ForeignKey, Enum, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.core.db import Base


class PizzaSize(str, enum.Enum):
    BROTO = "broto"
    GRANDE = "grande"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("delivery_businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    active = Column(Boolean, default=True)
    supports_fractional = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    business = relationship("DeliveryBusiness", back_populates="menu_items")
    allowed_flavors = relationship("MenuItemFlavor", cascade="all, delete-orphan", lazy="selectin")


class FlavorOption(Base):
    __tablename__ = "flavor_options"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("delivery_businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    active = Column(Boolean, default=True)

    prices = relationship("FlavorPrice", back_populates="flavor", cascade="all, delete-orphan", lazy="selectin")


class FlavorPrice(Base):
    __tablename__ = "flavor_prices"
    __table_args__ = (UniqueConstraint("flavor_id", "size", name="uq_flavor_price_size"),)

    id = Column(Integer, primary_key=True, index=True)
    flavor_id = Column(Integer, ForeignKey("flavor_options.id", ondelete="CASCADE"), nullable=False, index=True)
    size = Column(Enum(PizzaSize, name="pizza_size", values_callable=lambda e: [m.value for m in e]), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    flavor = relationship("FlavorOption", back_populates="prices")


class MenuItemFlavor(Base):
    """Restricts which flavors a fractional menu item offers. No rows means all active flavors."""
    __tablename__ = "menu_item_flavors"
    __table_args__ = (UniqueConstraint("menu_item_id", "flavor_id", name="uq_menu_item_flavor"),)

    id = Column(Integer, primary_key=True, index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False, index=True)
    flavor_id = Column(Integer, ForeignKey("flavor_options.id", ondelete="CASCADE"), nullable=False, index=True)
