# storefront/schemas/notification_schemas.py
from decimal import Decimal
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel


class OrderNotification(BaseModel):
    """Projection of an order row used by the owner's unread bell."""
    id: int
    customer_name: str = ""
    total_amount: Decimal = Decimal("0.00")
    status: str = "pending"
    created_at: Optional[str] = None
    order_code: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "OrderNotification":
        # only fields present on the row are set, so partial rows merge cleanly
        data: Dict[str, Any] = {"id": row["id"]}
        for key in ("customer_name", "total_amount", "order_code"):
            if row.get(key) is not None:
                data[key] = row[key]
        status = row.get("status")
        if status is not None:
            data["status"] = getattr(status, "value", status)
        created_at = row.get("created_at")
        if created_at is not None:
            data["created_at"] = created_at.isoformat() if hasattr(created_at, "isoformat") else str(created_at)
        return cls(**data)


EffectKind = Literal["play_sound", "toast", "modal"]
ModalKind = Literal["new_order", "status_change"]


class UIEffect(BaseModel):
    kind: EffectKind
    title: Optional[str] = None
    description: Optional[str] = None
    modal: Optional[ModalKind] = None
    duration_ms: Optional[int] = None
    order: Optional[OrderNotification] = None
