from storefront.services.notifications.store import NotificationStore
from storefront.services.notifications.router import (
    BusinessChannel, Channel, CustomerChannel, NotificationRouter, resolve_channel,
)
from storefront.services.notifications.session import NotificationSession
