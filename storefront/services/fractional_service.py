"""
Half-and-half ("meio a meio") items.

A fractional menu item is ordered as two half portions at one size and
costs as much as the dearer half. The rule is fixed business policy.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import FractionalSelectionError
from storefront.models.menu_models import FlavorOption, FlavorPrice, MenuItem, MenuItemFlavor, PizzaSize
from storefront.schemas.pricing_schemas import CartLine, FractionalDetails
from storefront.utils.decimal_utils import quantize_money

logger = logging.getLogger(__name__)

PriceTable = Mapping[int, Mapping[PizzaSize, Decimal]]


@dataclass
class FlavorCatalog:
    flavors: Dict[int, FlavorOption] = field(default_factory=dict)
    prices: Dict[int, Dict[PizzaSize, Decimal]] = field(default_factory=dict)
    restricted: bool = False


def fractional_price(prices: PriceTable, flavor1_id: int, flavor2_id: int, size: PizzaSize) -> Decimal:
    size = PizzaSize(size)
    p1 = prices.get(flavor1_id, {}).get(size)
    p2 = prices.get(flavor2_id, {}).get(size)
    if p1 is None or p2 is None:
        raise FractionalSelectionError(f"Both flavors need a price for size '{size.label}'")
    return quantize_money(max(p1, p2))


def fractional_cart_key(base_item_id: int, size: PizzaSize, flavor1_id: int, flavor2_id: int) -> str:
    return f"{base_item_id}|half|{PizzaSize(size).value}|{flavor1_id}|{flavor2_id}"


def fractional_notes(size: PizzaSize, flavor1_name: str, flavor2_name: str) -> str:
    return f"Half and half - {PizzaSize(size).label} - 1/2 {flavor1_name} + 1/2 {flavor2_name}"


def fractional_display_name(base_name: str, size: PizzaSize, flavor1_name: str, flavor2_name: str) -> str:
    return f"{base_name} - {PizzaSize(size).label} (1/2 {flavor1_name} + 1/2 {flavor2_name})"


async def load_flavor_catalog(db: AsyncSession, business_id: int, menu_item_id: Optional[int] = None) -> FlavorCatalog:
    result = await db.execute(
        select(FlavorOption)
        .where(FlavorOption.business_id == business_id, FlavorOption.active == True)  # noqa: E712
        .order_by(FlavorOption.name)
    )
    available: List[FlavorOption] = list(result.scalars().all())

    restricted = False
    if menu_item_id is not None:
        allowed = await db.execute(
            select(MenuItemFlavor.flavor_id).where(MenuItemFlavor.menu_item_id == menu_item_id)
        )
        allowed_ids = set(allowed.scalars().all())
        if allowed_ids:
            restricted = True
            available = [f for f in available if f.id in allowed_ids]

    catalog = FlavorCatalog(flavors={f.id: f for f in available}, restricted=restricted)
    if not available:
        return catalog

    price_rows = await db.execute(
        select(FlavorPrice).where(FlavorPrice.flavor_id.in_(list(catalog.flavors)))
    )
    for fp in price_rows.scalars().all():
        catalog.prices.setdefault(fp.flavor_id, {})[PizzaSize(fp.size)] = quantize_money(fp.price)
    return catalog


async def get_fractional_item(db: AsyncSession, business_id: int, menu_item_id: int) -> MenuItem:
    result = await db.execute(
        select(MenuItem).where(MenuItem.id == menu_item_id, MenuItem.business_id == business_id)
    )
    item = result.scalar_one_or_none()
    if not item or not item.active:
        raise FractionalSelectionError("Menu item not available")
    if not item.supports_fractional:
        raise FractionalSelectionError(f"'{item.name}' cannot be ordered half and half")
    return item


async def confirm_fractional_selection(
    db: AsyncSession,
    business_id: int,
    menu_item_id: int,
    flavor1_id: int,
    flavor2_id: int,
    size: PizzaSize,
    quantity: int = 1,
) -> CartLine:
    if quantity < 1:
        raise FractionalSelectionError("Quantity must be at least 1")

    size = PizzaSize(size)
    item = await get_fractional_item(db, business_id, menu_item_id)
    catalog = await load_flavor_catalog(db, business_id, item.id)

    f1 = catalog.flavors.get(flavor1_id)
    f2 = catalog.flavors.get(flavor2_id)
    if f1 is None or f2 is None:
        raise FractionalSelectionError("Flavor not available for this item")

    price = fractional_price(catalog.prices, flavor1_id, flavor2_id, size)
    if price <= 0:
        raise FractionalSelectionError("Selection has no price")

    return CartLine(
        key=fractional_cart_key(item.id, size, f1.id, f2.id),
        menu_item_id=item.id,
        name=fractional_display_name(item.name, size, f1.name, f2.name),
        unit_price=price,
        quantity=quantity,
        fractional=FractionalDetails(
            size=size,
            flavor1_id=f1.id,
            flavor1_name=f1.name,
            flavor2_id=f2.id,
            flavor2_name=f2.name,
        ),
    )
