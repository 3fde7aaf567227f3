# storefront/schemas/pricing_schemas.py
import enum
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field
from typing_extensions import Annotated

from storefront.models.menu_models import PizzaSize

NonNegativeDecimal = Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]


class FulfillmentMode(str, enum.Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"


class FractionalDetails(BaseModel):
    size: PizzaSize
    flavor1_id: int
    flavor1_name: str
    flavor2_id: int
    flavor2_name: str


class CartLine(BaseModel):
    """One cart row. `key` separates half-and-half pairings of the same menu item."""
    key: str
    menu_item_id: int
    name: str
    unit_price: NonNegativeDecimal
    quantity: int = Field(ge=1)
    fractional: Optional[FractionalDetails] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class PricingResult(BaseModel):
    subtotal: Decimal
    delivery_fee: Decimal
    discount: Decimal
    total: Decimal
    coupon_code: Optional[str] = None
    coupon_stale: bool = False


# -----------------------
# Quote request/response
# -----------------------
class QuoteLine(BaseModel):
    menu_item_id: int
    quantity: int = Field(ge=1)
    size: Optional[PizzaSize] = None
    flavor1_id: Optional[int] = None
    flavor2_id: Optional[int] = None

    @property
    def is_fractional(self) -> bool:
        return self.flavor1_id is not None or self.flavor2_id is not None


class QuoteRequest(BaseModel):
    business_id: int
    items: List[QuoteLine]
    fulfillment_mode: FulfillmentMode = FulfillmentMode.DELIVERY
    coupon_code: Optional[str] = None


class QuoteResponse(BaseModel):
    lines: List[CartLine]
    pricing: PricingResult
    coupon_error: Optional[str] = None
    coupon_reason: Optional[str] = None
