from decimal import Decimal
from typing import Dict, List

from pydantic import BaseModel, Field

from storefront.models.menu_models import PizzaSize


class FlavorOut(BaseModel):
    id: int
    name: str
    prices: Dict[PizzaSize, Decimal] = {}


class FlavorCatalogOut(BaseModel):
    menu_item_id: int
    restricted: bool
    flavors: List[FlavorOut]


class FractionalSelectionRequest(BaseModel):
    business_id: int
    menu_item_id: int
    size: PizzaSize
    flavor1_id: int
    flavor2_id: int
    quantity: int = Field(default=1, ge=1)
