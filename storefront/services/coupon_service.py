# storefront/services/coupon_service.py
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from storefront.core.config import CURRENCY_SYMBOL
from storefront.core.exceptions import CouponRejected, CouponRejectReason, ValidationError
from storefront.models.coupon_models import Coupon, CouponRedemption, CouponType
from storefront.schemas.coupon_schemas import CouponCreate, CouponUpdate
from storefront.utils.activity_helpers import log_owner_action
from storefront.utils.decimal_utils import ZERO, format_currency, quantize_money, to_decimal

logger = logging.getLogger(__name__)

REJECT_MESSAGES = {
    CouponRejectReason.NOT_FOUND: "Coupon not found",
    CouponRejectReason.INACTIVE: "This coupon is not active",
    CouponRejectReason.NOT_STARTED: "This coupon is not valid yet",
    CouponRejectReason.EXPIRED: "This coupon has expired",
    CouponRejectReason.EXHAUSTED: "This coupon has reached its usage limit",
    CouponRejectReason.PER_CUSTOMER_LIMIT_REACHED: "You have already used this coupon the maximum number of times",
}


@dataclass
class CouponValidationResult:
    ok: bool
    code: str
    subtotal: Decimal
    discount_amount: Decimal = ZERO
    coupon: Optional[Coupon] = None
    reason: Optional[CouponRejectReason] = None
    message: Optional[str] = None

    @classmethod
    def rejected(cls, code: str, subtotal: Decimal, reason: CouponRejectReason,
                 coupon: Optional[Coupon] = None, message: Optional[str] = None):
        return cls(
            ok=False,
            code=code,
            subtotal=subtotal,
            coupon=coupon,
            reason=reason,
            message=message or REJECT_MESSAGES.get(reason, reason.value),
        )


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; they are stored as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def calculate_discount(coupon_type: CouponType, value, subtotal) -> Decimal:
    subtotal = to_decimal(subtotal)
    value = to_decimal(value)
    if coupon_type == CouponType.PERCENT:
        discount = subtotal * value / Decimal("100")
    else:
        discount = value
    # never more than the items being paid for
    return quantize_money(min(discount, subtotal))


# -----------------------
# LOOKUPS
# -----------------------
async def get_coupon_by_code(db: AsyncSession, business_id: int, code: str) -> Optional[Coupon]:
    result = await db.execute(
        select(Coupon).where(Coupon.business_id == business_id, Coupon.code == normalize_code(code))
    )
    return result.scalar_one_or_none()


async def count_customer_redemptions(db: AsyncSession, coupon_id: int, customer_id: int) -> int:
    result = await db.execute(
        select(func.count(CouponRedemption.id)).where(
            CouponRedemption.coupon_id == coupon_id,
            CouponRedemption.customer_id == customer_id,
        )
    )
    return result.scalar_one()


# -----------------------
# VALIDATE
# -----------------------
async def validate_coupon(
    db: AsyncSession,
    code: str,
    business_id: int,
    subtotal,
    customer_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> CouponValidationResult:
    """
    Decide whether `code` applies to an order of `subtotal` for this business.

    Checks run in a fixed order and the first failure wins: not found,
    inactive, not started, expired, below minimum, exhausted, per-customer
    limit. The per-customer limit is only enforced when a customer is known;
    counter and guest orders skip it. Nothing is written: validation can be
    re-run freely whenever the subtotal changes.
    """
    normalized = normalize_code(code)
    subtotal = quantize_money(subtotal)
    now = now or datetime.now(timezone.utc)

    if not normalized:
        return CouponValidationResult.rejected(normalized, subtotal, CouponRejectReason.NOT_FOUND)

    coupon = await get_coupon_by_code(db, business_id, normalized)
    result = await _check_coupon(db, coupon, normalized, subtotal, customer_id, now)
    if not result.ok:
        logger.info("Coupon %s rejected for business %s: %s", normalized, business_id, result.reason.value)
    return result


async def _check_coupon(db, coupon, code, subtotal, customer_id, now) -> CouponValidationResult:
    if coupon is None:
        return CouponValidationResult.rejected(code, subtotal, CouponRejectReason.NOT_FOUND)

    if not coupon.is_active:
        return CouponValidationResult.rejected(code, subtotal, CouponRejectReason.INACTIVE, coupon)

    start_at = _as_utc(coupon.start_at)
    if start_at and now < start_at:
        return CouponValidationResult.rejected(code, subtotal, CouponRejectReason.NOT_STARTED, coupon)

    end_at = _as_utc(coupon.end_at)
    if end_at and now > end_at:
        return CouponValidationResult.rejected(code, subtotal, CouponRejectReason.EXPIRED, coupon)

    min_order_value = to_decimal(coupon.min_order_value)
    if subtotal < min_order_value:
        message = f"Minimum order of {format_currency(min_order_value, CURRENCY_SYMBOL)} to use this coupon"
        return CouponValidationResult.rejected(code, subtotal, CouponRejectReason.BELOW_MINIMUM, coupon, message)

    if coupon.max_uses is not None and (coupon.uses_count or 0) >= coupon.max_uses:
        return CouponValidationResult.rejected(code, subtotal, CouponRejectReason.EXHAUSTED, coupon)

    if coupon.max_uses_per_customer is not None and customer_id is not None:
        used = await count_customer_redemptions(db, coupon.id, customer_id)
        if used >= coupon.max_uses_per_customer:
            return CouponValidationResult.rejected(
                code, subtotal, CouponRejectReason.PER_CUSTOMER_LIMIT_REACHED, coupon
            )

    return CouponValidationResult(
        ok=True,
        code=code,
        subtotal=subtotal,
        discount_amount=calculate_discount(coupon.type, coupon.value, subtotal),
        coupon=coupon,
    )


async def require_valid_coupon(db: AsyncSession, code: str, business_id: int, subtotal,
                               customer_id: Optional[int] = None,
                               now: Optional[datetime] = None) -> CouponValidationResult:
    result = await validate_coupon(db, code, business_id, subtotal, customer_id, now)
    if not result.ok:
        raise CouponRejected(result.reason, result.message)
    return result


# -----------------------
# OWNER MANAGEMENT
# -----------------------
def _check_coupon_rules(coupon_type: CouponType, value, start_at, end_at):
    if coupon_type == CouponType.PERCENT and not (Decimal("0") < to_decimal(value) <= Decimal("100")):
        raise ValidationError("Percentage discount must be between 0 and 100")
    if coupon_type == CouponType.FIXED and to_decimal(value) <= 0:
        raise ValidationError("Fixed discount must be greater than 0")
    if start_at and end_at and _as_utc(start_at) >= _as_utc(end_at):
        raise ValidationError("Start date must be before end date")


async def create_coupon(db: AsyncSession, business_id: int, payload: CouponCreate, _user) -> Coupon:
    _check_coupon_rules(payload.type, payload.value, payload.start_at, payload.end_at)

    if await get_coupon_by_code(db, business_id, payload.code):
        raise ValidationError("Coupon code already exists")

    coupon = Coupon(business_id=business_id, uses_count=0, **payload.model_dump())
    db.add(coupon)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise ValidationError("Coupon code already exists")

    await log_owner_action(db, _user, business_id, f"Created coupon '{coupon.code}'")

    await db.commit()
    await db.refresh(coupon)
    return coupon


async def list_coupons(db: AsyncSession, business_id: int, active: Optional[bool] = None,
                       code: Optional[str] = None) -> List[Coupon]:
    filters = [Coupon.business_id == business_id]
    if active is not None:
        filters.append(Coupon.is_active == active)
    if code:
        filters.append(Coupon.code.ilike(f"%{normalize_code(code)}%"))

    result = await db.execute(select(Coupon).where(and_(*filters)).order_by(Coupon.id.desc()))
    return result.scalars().all()


async def get_coupon(db: AsyncSession, business_id: int, coupon_id: int) -> Optional[Coupon]:
    result = await db.execute(
        select(Coupon).where(Coupon.id == coupon_id, Coupon.business_id == business_id)
    )
    return result.scalar_one_or_none()


async def update_coupon(db: AsyncSession, business_id: int, coupon_id: int,
                        payload: CouponUpdate, _user) -> Optional[Coupon]:
    coupon = await get_coupon(db, business_id, coupon_id)
    if not coupon:
        return None

    update_data = payload.model_dump(exclude_unset=True)

    if "code" in update_data and update_data["code"] != coupon.code:
        if await get_coupon_by_code(db, business_id, update_data["code"]):
            raise ValidationError("Coupon code already exists")

    _check_coupon_rules(
        update_data.get("type", coupon.type),
        update_data.get("value", coupon.value),
        update_data.get("start_at", coupon.start_at),
        update_data.get("end_at", coupon.end_at),
    )

    for key, value in update_data.items():
        setattr(coupon, key, value)

    await log_owner_action(db, _user, business_id, f"Updated coupon '{coupon.code}' (ID: {coupon.id})")

    await db.commit()
    await db.refresh(coupon)
    return coupon


async def deactivate_coupon(db: AsyncSession, business_id: int, coupon_id: int, _user) -> Optional[Coupon]:
    coupon = await get_coupon(db, business_id, coupon_id)
    if not coupon:
        return None

    coupon.is_active = False

    await log_owner_action(db, _user, business_id, f"Deactivated coupon '{coupon.code}' (ID: {coupon.id})")

    await db.commit()
    await db.refresh(coupon)
    return coupon
