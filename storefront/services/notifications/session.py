# storefront/services/notifications/session.py
import logging
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.user_models import User
from storefront.realtime.change_feed import ChangeFeed
from storefront.schemas.notification_schemas import OrderNotification
from storefront.services.notifications.router import (
    BusinessChannel, Channel, Emit, NotificationRouter, resolve_channel,
)
from storefront.services.notifications.store import NotificationStore

logger = logging.getLogger(__name__)


class NotificationSession:
    """
    Owns the notification store and router of one signed-in viewer.

    The channel is resolved once in `start()`; `stop()` releases the channel
    subscription and every store listener, so reconnects never stack up
    duplicate subscriptions.
    """

    def __init__(self, user: User, feed: ChangeFeed, emit: Emit, store: Optional[NotificationStore] = None):
        self.user = user
        self.store = store or NotificationStore()
        self.router = NotificationRouter(self.store, emit, feed)

    @property
    def channel(self) -> Optional[Channel]:
        return self.router.channel

    @property
    def is_business(self) -> bool:
        return isinstance(self.router.channel, BusinessChannel)

    async def start(self, db: AsyncSession) -> Optional[Channel]:
        channel = await resolve_channel(db, self.user)
        if channel is None:
            logger.info("No notification channel for user %s (role %s)", self.user.id, self.user.role)
            return None
        self.router.open(channel)
        return channel

    def stop(self) -> None:
        self.router.close()
        self.store.close()

    def subscribe_notifications(self, listener: Callable[[List[OrderNotification]], None]) -> Callable[[], None]:
        return self.store.subscribe(listener)

    def mark_as_read(self, order_id: int) -> None:
        self.store.remove(order_id)

    def clear_all_notifications(self) -> None:
        self.store.clear_all()

    def notifications(self) -> List[OrderNotification]:
        return self.store.get_notifications()
