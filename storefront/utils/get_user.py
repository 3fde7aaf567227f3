# storefront/utils/get_user.py
from typing import Optional

from fastapi import Request, Depends, HTTPException, Header
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from storefront.models.user_models import User
from storefront.models.business_models import CustomerProfile, DeliveryBusiness
from storefront.core.db import get_db
from storefront.core.security import user_id_from_token


def _raw_token(token: Optional[str], authorization: Optional[str]) -> Optional[str]:
    # Support either header
    if token:
        return token
    if authorization and authorization.startswith("Bearer "):
        return authorization.split("Bearer ")[1]
    return None


async def load_user_from_token(db: AsyncSession, raw_token: str) -> User:
    try:
        user_id = user_id_from_token(raw_token)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalars().first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User account is inactive.")
    return user


async def get_current_user(
    request: Request,
    token: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> User:
    raw_token = _raw_token(token, authorization)
    if not raw_token:
        raise HTTPException(status_code=401, detail="Missing access token")

    user = await load_user_from_token(db, raw_token)
    request.state.user = user
    return user


async def get_optional_user(
    request: Request,
    token: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Guest checkout: no token means no user, a bad token is still rejected."""
    raw_token = _raw_token(token, authorization)
    if not raw_token:
        return None
    user = await load_user_from_token(db, raw_token)
    request.state.user = user
    return user


async def get_owned_business(db: AsyncSession, user: User) -> DeliveryBusiness:
    result = await db.execute(select(DeliveryBusiness).where(DeliveryBusiness.owner_id == user.id))
    business = result.scalars().first()
    if not business:
        raise HTTPException(status_code=404, detail="No business registered for this user")
    return business


async def get_customer_profile(db: AsyncSession, user: Optional[User]) -> Optional[CustomerProfile]:
    if user is None:
        return None
    result = await db.execute(select(CustomerProfile).where(CustomerProfile.user_id == user.id))
    return result.scalars().first()
