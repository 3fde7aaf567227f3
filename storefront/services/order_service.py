# storefront/services/order_service.py
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.config import ORDER_CODE_LENGTH, SCHEDULE_MIN_LEAD_MINUTES
from storefront.core.exceptions import OrderNotFound, RemoteWriteFailure, ValidationError
from storefront.models.business_models import DeliveryBusiness
from storefront.models.coupon_models import Coupon, CouponRedemption
from storefront.models.order_models import Order, OrderItem, OrderStatus, PaymentMethod
from storefront.schemas.order_schemas import CheckoutCustomer, OrderCreate
from storefront.schemas.pricing_schemas import CartLine, FulfillmentMode, PricingResult, QuoteLine
from storefront.services.cart_service import Cart, build_cart_lines, get_business
from storefront.services.coupon_service import CouponValidationResult, require_valid_coupon
from storefront.services.fractional_service import fractional_notes
from storefront.services.pricing_service import compute_pricing, compute_subtotal
from storefront.utils.activity_helpers import log_owner_action
from storefront.utils.decimal_utils import quantize_money, to_decimal

logger = logging.getLogger(__name__)

PICKUP_NOTE = "Pickup at counter"

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

STATUS_FLOW: Dict[OrderStatus, List[OrderStatus]] = {
    OrderStatus.PENDING: [OrderStatus.PREPARING, OrderStatus.CANCELLED],
    OrderStatus.PREPARING: [OrderStatus.READY, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED],
    OrderStatus.READY: [OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED, OrderStatus.CANCELLED],
    OrderStatus.OUT_FOR_DELIVERY: [OrderStatus.DELIVERED, OrderStatus.CANCELLED],
    OrderStatus.DELIVERED: [],
    OrderStatus.CANCELLED: [],
}


def next_statuses(status: OrderStatus) -> List[OrderStatus]:
    """Natural next steps offered to the owner. Not enforced on update."""
    return list(STATUS_FLOW.get(OrderStatus(status), []))


def generate_order_code() -> str:
    return uuid.uuid4().hex[:ORDER_CODE_LENGTH]


# =====================================================
# 🔹 CHECKOUT VALIDATION
# =====================================================
def _check_customer(customer: CheckoutCustomer) -> None:
    missing = [name for name in ("name", "phone") if not getattr(customer, name).strip()]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def _check_schedule(business: DeliveryBusiness, scheduled_at: Optional[datetime],
                    now: datetime) -> Optional[datetime]:
    if scheduled_at is None:
        return None
    if not business.allow_scheduling:
        raise ValidationError("This business does not accept scheduled orders")
    if scheduled_at.tzinfo is None:
        scheduled_at = scheduled_at.replace(tzinfo=timezone.utc)
    if scheduled_at < now + timedelta(minutes=SCHEDULE_MIN_LEAD_MINUTES):
        raise ValidationError(f"Orders must be scheduled at least {SCHEDULE_MIN_LEAD_MINUTES} minutes ahead")
    return scheduled_at


def _order_notes(customer: CheckoutCustomer, mode: FulfillmentMode) -> str:
    parts = [customer.notes.strip(), PICKUP_NOTE if mode == FulfillmentMode.PICKUP else ""]
    return " - ".join(p for p in parts if p)


def _item_notes(line: CartLine) -> Optional[str]:
    if line.fractional is None:
        return None
    f = line.fractional
    return fractional_notes(f.size, f.flavor1_name, f.flavor2_name)


# =====================================================
# 🔹 SUBMIT ORDER
# =====================================================
async def submit_order(
    db: AsyncSession,
    payload: OrderCreate,
    customer_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Order:
    """
    Price and persist a checkout.

    Prices and the coupon are resolved again here, so whatever the cart
    showed earlier, the order carries the latest snapshot. The order row,
    its items and the coupon redemption are three separate commits. If the
    items fail after the order row landed, the order stays in place for
    manual reconciliation and `RemoteWriteFailure` carries its id. A failed
    redemption write is logged and does not fail the checkout.
    """
    now = now or datetime.now(timezone.utc)

    if not payload.items:
        raise ValidationError("Cart is empty")
    _check_customer(payload.customer)

    business = await get_business(db, payload.business_id)
    lines = await build_cart_lines(db, business.id, payload.items)
    subtotal = compute_subtotal(lines)

    # online orders respect the store minimum, counter orders do not
    if customer_id is not None and subtotal < to_decimal(business.min_order_value):
        raise ValidationError(f"Minimum order value is {quantize_money(business.min_order_value)}")

    scheduled_at = _check_schedule(business, payload.scheduled_at, now)

    applied: Optional[CouponValidationResult] = None
    if payload.coupon_code and payload.coupon_code.strip():
        applied = await require_valid_coupon(db, payload.coupon_code, business.id, subtotal, customer_id, now)

    pricing = compute_pricing(lines, payload.fulfillment_mode, business.delivery_fee, applied)
    # a code collision rolls back and expires every loaded instance
    coupon_id = applied.coupon.id if applied is not None else None

    order = await _insert_order(db, business, payload, customer_id, pricing, scheduled_at)
    order_id, order_code = order.id, order.order_code

    await _insert_items(db, order_id, order_code, lines)
    if coupon_id is not None:
        await _record_redemption(db, order_id, pricing.discount, coupon_id, pricing.coupon_code, customer_id)

    logger.info("Order %s created for business %s (total %s)", order_code, payload.business_id, pricing.total)
    return await get_order(db, order_id)


async def _insert_order(db: AsyncSession, business: DeliveryBusiness, payload: OrderCreate,
                        customer_id: Optional[int], pricing: PricingResult,
                        scheduled_at: Optional[datetime]) -> Order:
    customer = payload.customer
    business_id = business.id
    # order codes are short and random; collisions handled by retry
    for _ in range(5):
        order = Order(
            order_code=generate_order_code(),
            business_id=business_id,
            customer_id=customer_id,
            customer_name=customer.name.strip(),
            customer_phone=customer.phone.strip(),
            customer_address=customer.address.strip(),
            total_amount=pricing.total,
            delivery_fee=pricing.delivery_fee,
            discount_amount=pricing.discount,
            coupon_code=pricing.coupon_code,
            payment_method=PaymentMethod(payload.payment_method),
            status=OrderStatus.PENDING,
            scheduled_at=scheduled_at,
            notes=_order_notes(customer, payload.fulfillment_mode),
        )
        db.add(order)
        try:
            await db.commit()
            return order
        except IntegrityError:
            await db.rollback()
            continue
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Order insert failed for business %s: %s", business_id, e)
            raise RemoteWriteFailure("order") from e

    raise RemoteWriteFailure("order")


async def _insert_items(db: AsyncSession, order_id: int, order_code: str, lines: List[CartLine]) -> None:
    items = [
        OrderItem(
            order_id=order_id,
            menu_item_id=line.menu_item_id,
            quantity=line.quantity,
            unit_price=quantize_money(line.unit_price),
            total_price=quantize_money(line.line_total),
            notes=_item_notes(line),
        )
        for line in lines
    ]
    db.add_all(items)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(
            "Order %s (%s) saved without items, needs manual reconciliation: %s",
            order_id, order_code, e,
        )
        raise RemoteWriteFailure("order_items", order_id) from e


async def _record_redemption(db: AsyncSession, order_id: int, discount, coupon_id: int, coupon_code: str,
                             customer_id: Optional[int]) -> None:
    try:
        coupon = await db.get(Coupon, coupon_id)
        db.add(CouponRedemption(
            coupon_id=coupon_id,
            order_id=order_id,
            customer_id=customer_id,
            discount_amount=discount,
        ))
        # advisory counter: concurrent redemptions may both pass the limit
        if coupon is not None:
            coupon.uses_count = (coupon.uses_count or 0) + 1
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Coupon redemption for order %s (coupon %s) not recorded: %s", order_id, coupon_code, e)


async def submit_cart(
    db: AsyncSession,
    cart: Cart,
    customer: CheckoutCustomer,
    payment_method: PaymentMethod = PaymentMethod.CASH,
    scheduled_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Order:
    """Submit an in-memory cart; on success the cart and its coupon are released."""
    items = []
    for line in cart.lines:
        f = line.fractional
        items.append(QuoteLine(
            menu_item_id=line.menu_item_id,
            quantity=line.quantity,
            size=f.size if f else None,
            flavor1_id=f.flavor1_id if f else None,
            flavor2_id=f.flavor2_id if f else None,
        ))
    payload = OrderCreate(
        business_id=cart.business_id,
        items=items,
        customer=customer,
        fulfillment_mode=cart.mode,
        payment_method=payment_method,
        coupon_code=cart.applied_coupon.code if cart.applied_coupon else None,
        scheduled_at=scheduled_at,
    )
    order = await submit_order(db, payload, cart.customer_id, now)
    cart.clear()
    return order


# =====================================================
# 🔹 STATUS UPDATES
# =====================================================
async def update_order_status(db: AsyncSession, order_id: int, new_status: str,
                              business_id: int, _user=None) -> Order:
    try:
        status = OrderStatus(new_status)
    except ValueError:
        raise ValidationError(f"Unknown order status: {new_status}")

    order = await get_order(db, order_id, business_id=business_id)
    previous = order.status
    order.status = status

    if _user is not None:
        previous_label = getattr(previous, "value", previous)
        await log_owner_action(db, _user, business_id, f"Order {order.order_code}: {previous_label} -> {status.value}")

    await db.commit()
    return order


# =====================================================
# 🔹 RETRIEVAL
# =====================================================
async def get_order(db: AsyncSession, order_id: int, business_id: Optional[int] = None,
                    customer_id: Optional[int] = None) -> Order:
    query = (
        select(Order)
        .where(Order.id == order_id)
        .options(selectinload(Order.items))
        .execution_options(populate_existing=True)
    )
    if business_id is not None:
        query = query.where(Order.business_id == business_id)
    if customer_id is not None:
        query = query.where(Order.customer_id == customer_id)

    result = await db.execute(query)
    order = result.scalars().first()
    if not order:
        raise OrderNotFound(f"Order {order_id} not found")
    return order


async def list_business_orders(db: AsyncSession, business_id: int, status: Optional[OrderStatus] = None,
                               limit: int = 100, offset: int = 0) -> List[Order]:
    query = select(Order).where(Order.business_id == business_id).options(selectinload(Order.items))
    if status is not None:
        query = query.where(Order.status == status)
    result = await db.execute(query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset))
    return result.scalars().all()


async def list_customer_orders(db: AsyncSession, customer_id: int, limit: int = 100, offset: int = 0) -> List[Order]:
    result = await db.execute(
        select(Order)
        .where(Order.customer_id == customer_id)
        .options(selectinload(Order.items))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return result.scalars().all()


async def get_order_items(db: AsyncSession, order_id: int) -> List[OrderItem]:
    result = await db.execute(select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id))
    return result.scalars().all()
