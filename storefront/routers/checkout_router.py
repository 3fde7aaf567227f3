from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.db import get_db
from storefront.core.exceptions import StorefrontError
from storefront.schemas.pricing_schemas import QuoteRequest, QuoteResponse
from storefront.services.cart_service import quote_cart
from storefront.utils.get_user import get_customer_profile, get_optional_user
from storefront.utils.http_errors import to_http_exception

router = APIRouter(prefix="/checkout", tags=["Checkout"])


# POST /checkout/quote
@router.post("/quote", response_model=QuoteResponse)
async def route_quote(payload: QuoteRequest, db: AsyncSession = Depends(get_db), user=Depends(get_optional_user)):
    """
    Price a cart with current menu prices. Call again after every cart,
    fulfillment mode or coupon change; coupon problems come back in
    `coupon_error` and never fail the quote.
    """
    profile = await get_customer_profile(db, user)
    try:
        return await quote_cart(db, payload, customer_id=profile.id if profile else None)
    except StorefrontError as e:
        raise to_http_exception(e)
