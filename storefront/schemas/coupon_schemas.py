from pydantic import BaseModel, Field, field_validator
from typing import Optional
from typing_extensions import Annotated
from datetime import datetime
from decimal import Decimal

from storefront.models.coupon_models import CouponType

PositiveDecimal = Annotated[Decimal, Field(gt=0, max_digits=10, decimal_places=2)]
NonNegativeDecimal = Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]


class CouponBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    type: CouponType
    value: PositiveDecimal
    min_order_value: NonNegativeDecimal = Decimal("0.00")
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    max_uses: Optional[int] = Field(default=None, ge=1)
    max_uses_per_customer: Optional[int] = Field(default=None, ge=1)
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class CouponCreate(CouponBase):
    pass


class CouponUpdate(BaseModel):
    code: Optional[str] = None
    type: Optional[CouponType] = None
    value: Optional[PositiveDecimal] = None
    min_order_value: Optional[NonNegativeDecimal] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    max_uses: Optional[int] = Field(default=None, ge=1)
    max_uses_per_customer: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v is not None else v


class CouponOut(CouponBase):
    id: int
    business_id: int
    uses_count: int
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CouponValidateRequest(BaseModel):
    code: str
    business_id: int
    subtotal: NonNegativeDecimal


class CouponValidationOut(BaseModel):
    ok: bool
    code: str
    discount_amount: Decimal = Decimal("0.00")
    reason: Optional[str] = None
    message: Optional[str] = None
    coupon: Optional[CouponOut] = None
