# storefront/utils/check_roles.py
import logging
from fastapi import HTTPException
from typing import Callable, Iterable
from functools import wraps

logger = logging.getLogger(__name__)


def require_role(roles: Iterable[str]):
    """Route decorator; the route must take the signed-in user as `_user`."""
    allowed = {r.lower() for r in roles}

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, _user, **kwargs):
            if _user is None:
                raise HTTPException(status_code=401, detail="User not authenticated")
            if (_user.role or "").lower() not in allowed:
                logger.info("User %s (%s) denied on %s", _user.id, _user.role, func.__name__)
                raise HTTPException(status_code=403, detail="Permission denied")
            return await func(*args, _user=_user, **kwargs)
        return wrapper
    return decorator
