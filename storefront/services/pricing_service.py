"""
Order pricing.

Pure functions: no I/O, no clock. Called again on every cart, fulfillment
mode or coupon change. The coupon discount is computed on the item subtotal
only, so the delivery fee is never discounted.
"""
from decimal import Decimal
from typing import Iterable, Optional, TYPE_CHECKING

from storefront.schemas.pricing_schemas import CartLine, FulfillmentMode, PricingResult
from storefront.utils.decimal_utils import ZERO, quantize_money, to_decimal

if TYPE_CHECKING:
    from storefront.services.coupon_service import CouponValidationResult


def compute_subtotal(lines: Iterable[CartLine]) -> Decimal:
    subtotal = sum((to_decimal(line.unit_price) * line.quantity for line in lines), ZERO)
    return quantize_money(subtotal)


def compute_delivery_fee(mode: FulfillmentMode, business_delivery_fee) -> Decimal:
    if mode == FulfillmentMode.PICKUP:
        return ZERO
    return quantize_money(business_delivery_fee or 0)


def coupon_applies_to(applied_coupon: Optional["CouponValidationResult"], subtotal: Decimal) -> bool:
    """A cached coupon result only counts for the subtotal it was validated against."""
    if applied_coupon is None or not applied_coupon.ok:
        return False
    return quantize_money(applied_coupon.subtotal) == quantize_money(subtotal)


def compute_pricing(
    lines: Iterable[CartLine],
    mode: FulfillmentMode,
    business_delivery_fee=None,
    applied_coupon: Optional["CouponValidationResult"] = None,
) -> PricingResult:
    lines = list(lines)
    subtotal = compute_subtotal(lines)
    delivery_fee = compute_delivery_fee(mode, business_delivery_fee)

    discount = ZERO
    stale = False
    coupon_code = None
    if applied_coupon is not None and applied_coupon.ok:
        if coupon_applies_to(applied_coupon, subtotal):
            discount = quantize_money(applied_coupon.discount_amount)
            coupon_code = applied_coupon.code
        else:
            stale = True

    total = max(ZERO, subtotal + delivery_fee - discount)
    return PricingResult(
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        discount=discount,
        total=quantize_money(total),
        coupon_code=coupon_code,
        coupon_stale=stale,
    )
