from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from storefront.models.order_models import OrderStatus, PaymentMethod
from storefront.schemas.pricing_schemas import FulfillmentMode, QuoteLine


# =====================================================
# 🔹 Input / Request Schemas
# =====================================================
class CheckoutCustomer(BaseModel):
    name: str = ""
    phone: str = ""
    address: str = ""
    notes: str = ""


class OrderCreate(BaseModel):
    business_id: int
    items: List[QuoteLine]
    customer: CheckoutCustomer
    fulfillment_mode: FulfillmentMode = FulfillmentMode.DELIVERY
    payment_method: PaymentMethod = PaymentMethod.CASH
    coupon_code: Optional[str] = None
    scheduled_at: Optional[datetime] = None


class OrderStatusUpdate(BaseModel):
    # plain str so unknown values reach the service and get a domain error
    status: str


# =====================================================
# 🔹 Response Schemas
# =====================================================
class OrderItemResponse(BaseModel):
    id: int
    menu_item_id: int
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    id: int
    order_code: str
    business_id: int
    customer_id: Optional[int] = None
    customer_name: str
    customer_phone: str
    customer_address: str
    total_amount: Decimal
    delivery_fee: Decimal
    discount_amount: Decimal
    coupon_code: Optional[str] = None
    payment_method: PaymentMethod
    status: OrderStatus
    scheduled_at: Optional[datetime] = None
    notes: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []
    next_statuses: List[OrderStatus] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class OrderMessage(BaseModel):
    message: str
    data: Optional[OrderResponse] = None
