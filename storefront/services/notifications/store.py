# storefront/services/notifications/store.py
import logging
from typing import Callable, List, Union

from storefront.core.config import NOTIFICATION_STORE_LIMIT
from storefront.schemas.notification_schemas import OrderNotification

logger = logging.getLogger(__name__)

Listener = Callable[[List[OrderNotification]], None]


class NotificationStore:
    """
    Unread order notifications for one business viewer, newest first.

    Entries are unique by order id. Nothing is persisted and nothing is
    backfilled: the store only holds what arrived over the realtime channel
    during this session. Consumers read through `subscribe`.
    """

    def __init__(self, limit: int = NOTIFICATION_STORE_LIMIT):
        self._limit = limit
        self._notifications: List[OrderNotification] = []
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_notifications(self) -> List[OrderNotification]:
        return [n.model_copy() for n in self._notifications]

    def has_unread(self) -> bool:
        return bool(self._notifications)

    def add(self, notification: Union[OrderNotification, dict]) -> None:
        notification = self._coerce(notification)
        if self._index(notification.id) is not None:
            # already known: merge instead of duplicating
            self.update(notification)
            return
        self._notifications = [notification] + self._notifications[: max(self._limit - 1, 0)]
        self._notify()

    def update(self, notification: Union[OrderNotification, dict]) -> None:
        notification = self._coerce(notification)
        index = self._index(notification.id)
        if index is None:
            # a status-only update for an order we never saw
            self.add(notification)
            return
        merged = self._notifications[index].model_copy(update=notification.model_dump(exclude_unset=True))
        self._notifications[index] = merged
        self._notify()

    def remove(self, order_id: int) -> None:
        before = len(self._notifications)
        self._notifications = [n for n in self._notifications if n.id != order_id]
        if len(self._notifications) != before:
            self._notify()

    def clear_all(self) -> None:
        self._notifications = []
        self._notify()

    def close(self) -> None:
        self._listeners.clear()

    def _index(self, order_id: int):
        for i, n in enumerate(self._notifications):
            if n.id == order_id:
                return i
        return None

    @staticmethod
    def _coerce(notification) -> OrderNotification:
        if isinstance(notification, OrderNotification):
            return notification
        return OrderNotification.from_row(notification)

    def _notify(self) -> None:
        snapshot = self.get_notifications()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Notification listener failed")
