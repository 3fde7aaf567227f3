import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.user_models import User, UserActivity

logger = logging.getLogger(__name__)


async def log_user_activity(
    db: AsyncSession,
    user_id: Optional[int] = None,
    username: Optional[str] = None,
    message: str = "",
    business_id: Optional[int] = None,
    commit: bool = False,
):
    """
    Adds an audit row to the session. Unless `commit` is set, the row rides
    on the caller's commit together with the change it describes.
    """
    db.add(UserActivity(
        user_id=user_id,
        username=username or "anonymous",
        business_id=business_id,
        message=message,
    ))
    logger.debug("Activity by %s: %s", username or "anonymous", message)
    if commit:
        await db.commit()


async def log_owner_action(db: AsyncSession, user: User, business_id: int, message: str):
    await log_user_activity(db, user_id=user.id, username=user.email, message=message, business_id=business_id)
