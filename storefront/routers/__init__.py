from fastapi import APIRouter
from .checkout_router import router as checkout_router
from .coupons_router import router as coupons_router
from .menu_router import router as menu_router
from .orders_router import router as orders_router
from .notifications_router import router as notifications_router

router = APIRouter()

router.include_router(checkout_router)
router.include_router(coupons_router)
router.include_router(menu_router)
router.include_router(orders_router)
router.include_router(notifications_router)
