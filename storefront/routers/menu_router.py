from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.db import get_db
from storefront.core.exceptions import StorefrontError
from storefront.schemas.menu_schemas import FlavorCatalogOut, FlavorOut, FractionalSelectionRequest
from storefront.schemas.pricing_schemas import CartLine
from storefront.services.fractional_service import (
    confirm_fractional_selection, get_fractional_item, load_flavor_catalog,
)
from storefront.utils.http_errors import to_http_exception

router = APIRouter(prefix="/menu", tags=["Menu"])


# GET /menu/{menu_item_id}/flavors
@router.get("/{menu_item_id}/flavors", response_model=FlavorCatalogOut)
async def route_get_flavors(
    menu_item_id: int,
    business_id: int = Query(..., description="Business that owns the item"),
    db: AsyncSession = Depends(get_db),
):
    """Flavors offered for a half-and-half item, with their price per size."""
    try:
        item = await get_fractional_item(db, business_id, menu_item_id)
    except StorefrontError as e:
        raise to_http_exception(e)
    catalog = await load_flavor_catalog(db, business_id, item.id)
    return FlavorCatalogOut(
        menu_item_id=item.id,
        restricted=catalog.restricted,
        flavors=[
            FlavorOut(id=f.id, name=f.name, prices=catalog.prices.get(f.id, {}))
            for f in catalog.flavors.values()
        ],
    )


# POST /menu/fractional/confirm
@router.post("/fractional/confirm", response_model=CartLine)
async def route_confirm_fractional(payload: FractionalSelectionRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await confirm_fractional_selection(
            db,
            payload.business_id,
            payload.menu_item_id,
            payload.flavor1_id,
            payload.flavor2_id,
            payload.size,
            payload.quantity,
        )
    except StorefrontError as e:
        raise to_http_exception(e)
