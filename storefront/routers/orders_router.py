from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from storefront.core.db import get_db
from storefront.core.exceptions import StorefrontError
from storefront.models.order_models import OrderStatus
from storefront.models.user_models import ROLE_OWNER
from storefront.schemas.order_schemas import OrderCreate, OrderResponse, OrderStatusUpdate
from storefront.services.order_service import (
    get_order,
    list_business_orders,
    list_customer_orders,
    next_statuses,
    submit_order,
    update_order_status,
)
from storefront.utils.check_roles import require_role
from storefront.utils.get_user import (
    get_current_user, get_customer_profile, get_optional_user, get_owned_business,
)
from storefront.utils.http_errors import to_http_exception

router = APIRouter(prefix="/orders", tags=["Orders"])


def _order_response(order) -> OrderResponse:
    response = OrderResponse.model_validate(order, from_attributes=True)
    response.next_statuses = next_statuses(order.status)
    return response


# POST /orders
@router.post("/", response_model=OrderResponse, status_code=201)
async def route_submit_order(payload: OrderCreate, db: AsyncSession = Depends(get_db),
                             user=Depends(get_optional_user)):
    """
    Checkout. Signed-in customers get the order linked to their profile;
    guests and counter sales are stored without a customer.
    """
    profile = await get_customer_profile(db, user)
    try:
        order = await submit_order(db, payload, customer_id=profile.id if profile else None)
    except StorefrontError as e:
        raise to_http_exception(e)
    return _order_response(order)


# GET /orders
@router.get("/", response_model=List[OrderResponse])
@require_role(["owner"])
async def route_list_orders(
    status: OrderStatus | None = Query(None, description="Filter by status"),
    limit: int = 100,
    offset: int = 0,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    business = await get_owned_business(db, _user)
    orders = await list_business_orders(db, business.id, status=status, limit=limit, offset=offset)
    return [_order_response(o) for o in orders]


# GET /orders/mine
@router.get("/mine", response_model=List[OrderResponse])
async def route_my_orders(limit: int = 100, offset: int = 0, db: AsyncSession = Depends(get_db),
                          user=Depends(get_current_user)):
    profile = await get_customer_profile(db, user)
    if not profile:
        raise HTTPException(status_code=404, detail="Customer profile not found")
    orders = await list_customer_orders(db, profile.id, limit=limit, offset=offset)
    return [_order_response(o) for o in orders]


# GET /orders/{order_id}
@router.get("/{order_id}", response_model=OrderResponse)
async def route_get_order(order_id: int, db: AsyncSession = Depends(get_db), user=Depends(get_current_user)):
    try:
        if user.role == ROLE_OWNER:
            business = await get_owned_business(db, user)
            order = await get_order(db, order_id, business_id=business.id)
        else:
            profile = await get_customer_profile(db, user)
            if not profile:
                raise HTTPException(status_code=404, detail="Order not found")
            order = await get_order(db, order_id, customer_id=profile.id)
    except StorefrontError as e:
        raise to_http_exception(e)
    return _order_response(order)


# PATCH /orders/{order_id}/status
@router.patch("/{order_id}/status", response_model=OrderResponse)
@require_role(["owner"])
async def route_update_status(
    order_id: int,
    payload: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    business = await get_owned_business(db, _user)
    try:
        order = await update_order_status(db, order_id, payload.status, business.id, _user)
    except StorefrontError as e:
        raise to_http_exception(e)
    return _order_response(order)
