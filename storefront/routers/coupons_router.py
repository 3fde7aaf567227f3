from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from storefront.core.db import get_db
from storefront.core.exceptions import StorefrontError
from storefront.schemas.coupon_schemas import (
    CouponCreate, CouponOut, CouponUpdate, CouponValidateRequest, CouponValidationOut,
)
from storefront.services.coupon_service import (
    create_coupon,
    deactivate_coupon,
    get_coupon,
    list_coupons,
    update_coupon,
    validate_coupon,
)
from storefront.utils.check_roles import require_role
from storefront.utils.get_user import (
    get_current_user, get_customer_profile, get_optional_user, get_owned_business,
)
from storefront.utils.http_errors import to_http_exception

router = APIRouter(prefix="/coupons", tags=["Coupons"])


@router.post("/validate", response_model=CouponValidationOut)
async def route_validate_coupon(payload: CouponValidateRequest, db: AsyncSession = Depends(get_db),
                                user=Depends(get_optional_user)):
    """
    Check a code against a subtotal. Rejections return 422 with the reason.
    The per-customer limit is checked for the signed-in customer, as at checkout.
    """
    profile = await get_customer_profile(db, user)
    result = await validate_coupon(
        db, payload.code, payload.business_id, payload.subtotal, profile.id if profile else None
    )
    if not result.ok:
        raise HTTPException(status_code=422, detail={"reason": result.reason.value, "message": result.message})
    return CouponValidationOut(
        ok=True,
        code=result.code,
        discount_amount=result.discount_amount,
        coupon=CouponOut.model_validate(result.coupon, from_attributes=True),
    )


@router.post("/", response_model=CouponOut, status_code=201)
@require_role(["owner"])
async def route_create_coupon(
    payload: CouponCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    business = await get_owned_business(db, _user)
    try:
        return await create_coupon(db, business.id, payload, _user)
    except StorefrontError as e:
        raise to_http_exception(e)


@router.get("/", response_model=List[CouponOut])
@require_role(["owner"])
async def route_list_coupons(
    db: AsyncSession = Depends(get_db),
    active: bool | None = Query(None, description="Filter by active flag"),
    code: str | None = Query(None, description="Partial code match"),
    _user=Depends(get_current_user),
):
    business = await get_owned_business(db, _user)
    return await list_coupons(db, business.id, active=active, code=code)


@router.get("/{coupon_id}", response_model=CouponOut)
@require_role(["owner"])
async def route_get_coupon(coupon_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    business = await get_owned_business(db, _user)
    coupon = await get_coupon(db, business.id, coupon_id)
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return coupon


@router.put("/{coupon_id}", response_model=CouponOut)
@require_role(["owner"])
async def route_update_coupon(
    coupon_id: int,
    payload: CouponUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    business = await get_owned_business(db, _user)
    try:
        updated = await update_coupon(db, business.id, coupon_id, payload, _user)
    except StorefrontError as e:
        raise to_http_exception(e)
    if not updated:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return updated


@router.delete("/{coupon_id}", response_model=CouponOut)
@require_role(["owner"])
async def route_deactivate_coupon(coupon_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    """Deactivate a coupon; redemption history is kept."""
    business = await get_owned_business(db, _user)
    coupon = await deactivate_coupon(db, business.id, coupon_id, _user)
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return coupon
