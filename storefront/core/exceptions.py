# storefront/core/exceptions.py
import enum
from typing import Optional


class StorefrontError(ValueError):
    """Base class for domain failures raised by the services layer."""


class ValidationError(StorefrontError):
    """Missing or invalid checkout input. Fixed by the user, never fatal."""


class OrderNotFound(StorefrontError):
    pass


class FractionalSelectionError(StorefrontError):
    """A half-and-half selection that cannot be confirmed."""


class CouponRejectReason(str, enum.Enum):
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    NOT_STARTED = "not_started"
    EXPIRED = "expired"
    BELOW_MINIMUM = "below_minimum"
    EXHAUSTED = "exhausted"
    PER_CUSTOMER_LIMIT_REACHED = "per_customer_limit_reached"


class CouponRejected(StorefrontError):
    def __init__(self, reason: CouponRejectReason, message: Optional[str] = None):
        self.reason = reason
        self.message = message or reason.value
        super().__init__(self.message)


class RemoteWriteFailure(StorefrontError):
    """
    A persistence step of checkout failed. When `order_id` is set the order row
    already exists and is left in place for manual reconciliation.
    """

    def __init__(self, stage: str, order_id: Optional[int] = None):
        self.stage = stage
        self.order_id = order_id
        super().__init__(f"Failed to write {stage}. Please try again.")


class ChannelError(StorefrontError):
    """Realtime subscription failure. Logged, never shown to the viewer."""
