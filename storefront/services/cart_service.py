# storefront/services/cart_service.py
import logging
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import FractionalSelectionError, ValidationError
from storefront.models.business_models import DeliveryBusiness
from storefront.models.menu_models import MenuItem
from storefront.schemas.pricing_schemas import (
    CartLine, FulfillmentMode, PricingResult, QuoteLine, QuoteRequest, QuoteResponse,
)
from storefront.services.coupon_service import CouponValidationResult, validate_coupon
from storefront.services.fractional_service import confirm_fractional_selection
from storefront.services.pricing_service import compute_pricing, compute_subtotal
from storefront.utils.decimal_utils import quantize_money

logger = logging.getLogger(__name__)


class Cart:
    """
    In-memory cart for one checkout.

    Lines keep insertion order and are keyed by cart key, so two different
    half-and-half pairings of the same pizza are two lines. Pricing is
    recomputed from scratch on every read; a coupon result validated for an
    older subtotal never contributes a discount.
    """

    def __init__(self, business_id: int, delivery_fee=None, customer_id: Optional[int] = None,
                 mode: FulfillmentMode = FulfillmentMode.DELIVERY):
        self.business_id = business_id
        self.delivery_fee = quantize_money(delivery_fee or 0)
        self.customer_id = customer_id
        self.mode = mode
        self.applied_coupon: Optional[CouponValidationResult] = None
        self._lines: "OrderedDict[str, CartLine]" = OrderedDict()

    # -----------------------
    # Lines
    # -----------------------
    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines.values())

    def is_empty(self) -> bool:
        return not self._lines

    def add_item(self, menu_item: MenuItem, quantity: int = 1) -> CartLine:
        if menu_item.supports_fractional:
            raise FractionalSelectionError(f"'{menu_item.name}' needs a flavor selection")
        line = CartLine(
            key=str(menu_item.id),
            menu_item_id=menu_item.id,
            name=menu_item.name,
            unit_price=quantize_money(menu_item.price),
            quantity=quantity,
        )
        return self.add_line(line)

    def add_line(self, line: CartLine) -> CartLine:
        existing = self._lines.get(line.key)
        if existing:
            line = existing.model_copy(update={"quantity": existing.quantity + line.quantity})
        self._lines[line.key] = line
        return line

    def increment(self, key: str) -> None:
        line = self._get(key)
        self._lines[key] = line.model_copy(update={"quantity": line.quantity + 1})

    def decrement(self, key: str) -> None:
        line = self._get(key)
        if line.quantity > 1:
            self._lines[key] = line.model_copy(update={"quantity": line.quantity - 1})
        else:
            del self._lines[key]

    def remove(self, key: str) -> None:
        self._lines.pop(key, None)

    def set_mode(self, mode: FulfillmentMode) -> None:
        self.mode = FulfillmentMode(mode)

    def _get(self, key: str) -> CartLine:
        try:
            return self._lines[key]
        except KeyError:
            raise ValidationError(f"Cart line '{key}' not found")

    # -----------------------
    # Coupon
    # -----------------------
    @property
    def subtotal(self) -> Decimal:
        return compute_subtotal(self._lines.values())

    async def apply_coupon(self, db: AsyncSession, code: str, now: Optional[datetime] = None) -> CouponValidationResult:
        result = await validate_coupon(db, code, self.business_id, self.subtotal, self.customer_id, now)
        if result.ok:
            self.applied_coupon = result
        return result

    def remove_coupon(self) -> None:
        # client-side only, redemption counters are untouched
        self.applied_coupon = None

    async def refresh(self, db: AsyncSession, now: Optional[datetime] = None) -> PricingResult:
        """Re-validate the applied coupon if the subtotal moved since it was checked."""
        pricing = self.pricing()
        if self.applied_coupon is not None and pricing.coupon_stale:
            code = self.applied_coupon.code
            result = await validate_coupon(db, code, self.business_id, self.subtotal, self.customer_id, now)
            if result.ok:
                self.applied_coupon = result
            else:
                logger.info("Dropping coupon %s after cart change: %s", code, result.reason.value)
                self.applied_coupon = None
            pricing = self.pricing()
        return pricing

    def pricing(self) -> PricingResult:
        return compute_pricing(self._lines.values(), self.mode, self.delivery_fee, self.applied_coupon)

    def clear(self) -> None:
        self._lines.clear()
        self.applied_coupon = None


# -----------------------
# Server-side line resolution
# -----------------------
async def get_business(db: AsyncSession, business_id: int) -> DeliveryBusiness:
    result = await db.execute(select(DeliveryBusiness).where(DeliveryBusiness.id == business_id))
    business = result.scalar_one_or_none()
    if not business or business.is_active is False:
        raise ValidationError("Business not found")
    return business


async def build_cart_lines(db: AsyncSession, business_id: int, items: Iterable[QuoteLine]) -> List[CartLine]:
    """Turn requested lines into priced cart lines using current menu prices."""
    items = list(items)
    ids = {i.menu_item_id for i in items}
    menu: Dict[int, MenuItem] = {}
    if ids:
        result = await db.execute(
            select(MenuItem).where(MenuItem.business_id == business_id, MenuItem.id.in_(ids))
        )
        menu = {m.id: m for m in result.scalars().all()}

    cart = Cart(business_id)
    for item in items:
        menu_item = menu.get(item.menu_item_id)
        if menu_item is None or not menu_item.active:
            raise ValidationError(f"Menu item {item.menu_item_id} is not available")

        if item.is_fractional or menu_item.supports_fractional:
            if item.size is None or item.flavor1_id is None or item.flavor2_id is None:
                raise ValidationError(f"'{menu_item.name}' needs a size and two flavors")
            line = await confirm_fractional_selection(
                db, business_id, menu_item.id, item.flavor1_id, item.flavor2_id, item.size, item.quantity
            )
            cart.add_line(line)
        else:
            cart.add_item(menu_item, item.quantity)
    return cart.lines


async def quote_cart(db: AsyncSession, payload: QuoteRequest, customer_id: Optional[int] = None,
                     now: Optional[datetime] = None) -> QuoteResponse:
    business = await get_business(db, payload.business_id)
    lines = await build_cart_lines(db, business.id, payload.items)

    cart = Cart(business.id, business.delivery_fee, customer_id, payload.fulfillment_mode)
    for line in lines:
        cart.add_line(line)

    coupon_error = coupon_reason = None
    if payload.coupon_code:
        result = await cart.apply_coupon(db, payload.coupon_code, now)
        if not result.ok:
            coupon_error, coupon_reason = result.message, result.reason.value

    return QuoteResponse(
        lines=cart.lines,
        pricing=cart.pricing(),
        coupon_error=coupon_error,
        coupon_reason=coupon_reason,
    )
