"""
Realtime fan-out of order events.

Each viewer session opens exactly one channel, chosen from the viewer's
role when the session starts:

* business owners listen to every order of their business. A new order
  lands in the notification store and raises a sound, a toast and the
  new-order modal; later updates only refresh the store entry.
* customers listen to their own orders. Status updates raise a toast and
  the status modal. Customers get no store and no unread bell.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import CURRENCY_SYMBOL
from storefront.models.business_models import CustomerProfile, DeliveryBusiness
from storefront.models.user_models import ROLE_CUSTOMER, ROLE_OWNER, User
from storefront.realtime.change_feed import ChangeEvent, ChangeFeed, ChangeOp, ChannelStatus, Subscription
from storefront.schemas.notification_schemas import OrderNotification, UIEffect
from storefront.services.notifications.store import NotificationStore
from storefront.utils.decimal_utils import format_currency

logger = logging.getLogger(__name__)

ORDERS_TABLE = "orders"
NEW_ORDER_TOAST_MS = 5000
STATUS_TOAST_MS = 4000

# `rejected` is not a persisted status yet; kept so the copy exists if the schema grows it
CUSTOMER_STATUS_MESSAGES: Dict[str, Dict[str, str]] = {
    "preparing": {"title": "👨‍🍳 Preparing", "description": "Your order is being prepared."},
    "ready": {"title": "📦 Ready!", "description": "Your order is ready for pickup or delivery."},
    "out_for_delivery": {"title": "🛵 Out for delivery", "description": "Your order is on its way."},
    "delivered": {"title": "✅ Delivered", "description": "Your order was delivered. Enjoy!"},
    "cancelled": {"title": "❌ Cancelled", "description": "Your order was cancelled."},
    "rejected": {"title": "🚫 Rejected", "description": "Your order was rejected."},
}


@dataclass(frozen=True)
class BusinessChannel:
    business_id: int

    filter_column = "business_id"

    @property
    def filter_value(self) -> int:
        return self.business_id


@dataclass(frozen=True)
class CustomerChannel:
    customer_id: int

    filter_column = "customer_id"

    @property
    def filter_value(self) -> int:
        return self.customer_id


Channel = Union[BusinessChannel, CustomerChannel]
Emit = Callable[[UIEffect], None]


async def resolve_channel(db: AsyncSession, user: User) -> Optional[Channel]:
    """Pick the viewer's channel from the role stored on the user row."""
    if user.role == ROLE_OWNER:
        result = await db.execute(select(DeliveryBusiness.id).where(DeliveryBusiness.owner_id == user.id))
        business_id = result.scalar_one_or_none()
        return BusinessChannel(business_id) if business_id is not None else None

    if user.role == ROLE_CUSTOMER:
        result = await db.execute(select(CustomerProfile.id).where(CustomerProfile.user_id == user.id))
        customer_id = result.scalar_one_or_none()
        return CustomerChannel(customer_id) if customer_id is not None else None

    return None


class NotificationRouter:
    def __init__(self, store: NotificationStore, emit: Emit, feed: ChangeFeed):
        self.store = store
        self.emit = emit
        self.feed = feed
        self.channel: Optional[Channel] = None
        self._subscription: Optional[Subscription] = None

    @property
    def is_open(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def open(self, channel: Channel) -> None:
        if self._subscription is not None:
            self.close()
        self.channel = channel
        self._subscription = self.feed.subscribe(
            ORDERS_TABLE,
            channel.filter_column,
            channel.filter_value,
            self.handle,
            on_status=self._on_status,
        )
        logger.info("Opened %s for %s=%s", type(channel).__name__, channel.filter_column, channel.filter_value)

    def close(self) -> None:
        if self._subscription is None:
            return
        self._subscription.unsubscribe()
        logger.info("Closed %s", type(self.channel).__name__)
        self._subscription = None
        self.channel = None

    def handle(self, change: ChangeEvent) -> None:
        if isinstance(self.channel, BusinessChannel):
            self._handle_business(change)
        elif isinstance(self.channel, CustomerChannel):
            self._handle_customer(change)

    # -----------------------
    # Business owner
    # -----------------------
    def _handle_business(self, change: ChangeEvent) -> None:
        notification = OrderNotification.from_row(change.row)
        if change.op == ChangeOp.INSERT:
            self.store.add(notification)
            self.emit(UIEffect(kind="play_sound"))
            self.emit(UIEffect(
                kind="toast",
                title="🎉 New order!",
                description=(
                    f"{notification.customer_name} placed an order of "
                    f"{format_currency(notification.total_amount, CURRENCY_SYMBOL)}"
                ),
                duration_ms=NEW_ORDER_TOAST_MS,
                order=notification,
            ))
            self.emit(UIEffect(kind="modal", modal="new_order", order=notification))
        elif change.op == ChangeOp.UPDATE:
            self.store.update(notification)

    # -----------------------
    # Customer
    # -----------------------
    def _handle_customer(self, change: ChangeEvent) -> None:
        if change.op == ChangeOp.INSERT:
            logger.debug("Customer channel saw new order %s", change.row.get("id"))
            return
        if change.op != ChangeOp.UPDATE:
            return

        notification = OrderNotification.from_row(change.row)
        message = CUSTOMER_STATUS_MESSAGES.get(notification.status)
        if message is None:
            return
        self.emit(UIEffect(
            kind="toast",
            title=message["title"],
            description=message["description"],
            duration_ms=STATUS_TOAST_MS,
            order=notification,
        ))
        self.emit(UIEffect(
            kind="modal",
            modal="status_change",
            title=message["title"],
            description=message["description"],
            order=notification,
        ))

    def _on_status(self, status: ChannelStatus, error: Optional[Exception]) -> None:
        if status in (ChannelStatus.CHANNEL_ERROR, ChannelStatus.TIMED_OUT):
            logger.warning("Notification channel %s: %s", status.value, error)
        else:
            logger.debug("Notification channel status: %s", status.value)
