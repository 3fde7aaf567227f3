# storefront/middleware/activity_logger.py
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from storefront.utils.activity_helpers import log_user_activity
from storefront.core import db as db_module

logger = logging.getLogger(__name__)


class ActivityLoggerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Call actual endpoint; the user dependency fills request.state.user
        response = await call_next(request)

        user = getattr(request.state, "user", None)
        user_id = getattr(user, "id", None) if user else None
        username = getattr(user, "email", None) if user else None

        # Only log modifying requests
        if user_id and request.method in ["POST", "PUT", "PATCH", "DELETE"] and response.status_code < 400:
            message = f"Performed {request.method} on {request.url.path}"
            try:
                session_factory = getattr(request.app.state, "session_factory", db_module.AsyncSessionLocal)
                async with session_factory() as db:
                    await log_user_activity(db, user_id=user_id, username=username, message=message, commit=True)
            except Exception:
                logger.exception("Failed to log activity")

        return response
