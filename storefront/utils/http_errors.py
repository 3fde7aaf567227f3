# storefront/utils/http_errors.py
from fastapi import HTTPException

from storefront.core.exceptions import (
    CouponRejected, FractionalSelectionError, OrderNotFound, RemoteWriteFailure, StorefrontError, ValidationError,
)


def to_http_exception(exc: StorefrontError) -> HTTPException:
    if isinstance(exc, OrderNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, CouponRejected):
        return HTTPException(status_code=422, detail={"reason": exc.reason.value, "message": exc.message})
    if isinstance(exc, RemoteWriteFailure):
        detail = {"message": "Could not place the order. Please try again.", "stage": exc.stage}
        if exc.order_id is not None:
            detail["order_id"] = exc.order_id
        return HTTPException(status_code=502, detail=detail)
    if isinstance(exc, (ValidationError, FractionalSelectionError)):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
